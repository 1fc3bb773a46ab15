"""
JWT verification for the caller identity.

Tokens are issued by the external auth service. RS256 with key files is the
default; an ``HS*`` algorithm switches to the shared ``jwt_secret``.
"""

from __future__ import annotations

from datetime import datetime, timedelta, timezone
from pathlib import Path
from typing import Any

import jwt

from mindgym.config import get_settings

_signing_key: str | None = None
_verify_key: str | None = None


def _uses_shared_secret(algorithm: str) -> bool:
    return algorithm.upper().startswith("HS")


def _load_keys() -> tuple[str, str]:
    """Return (signing key, verification key), cached after first call."""
    global _signing_key, _verify_key  # noqa: PLW0603
    if _signing_key is None or _verify_key is None:
        settings = get_settings()
        if _uses_shared_secret(settings.jwt_algorithm):
            if not settings.jwt_secret:
                msg = "MINDGYM_JWT_SECRET must be set for HMAC algorithms"
                raise RuntimeError(msg)
            _signing_key = _verify_key = settings.jwt_secret
        else:
            _verify_key = Path(settings.jwt_public_key_path).read_text()
            private_path = Path(settings.jwt_private_key_path)
            _signing_key = private_path.read_text() if private_path.exists() else ""
    return _signing_key, _verify_key


def reset_keys() -> None:
    """Reset cached keys (useful for testing)."""
    global _signing_key, _verify_key  # noqa: PLW0603
    _signing_key = None
    _verify_key = None


def create_access_token(account_id: int) -> str:
    """
    Create a short-lived access token.

    Production tokens come from the auth service; this exists for local
    tooling and tests that share its key material.
    """
    signing_key, _ = _load_keys()
    if not signing_key:
        msg = "No signing key available"
        raise RuntimeError(msg)
    settings = get_settings()
    now = datetime.now(timezone.utc)
    payload: dict[str, Any] = {
        "sub": str(account_id),
        "iat": now,
        "exp": now + timedelta(minutes=settings.jwt_access_token_expire_minutes),
        "iss": settings.jwt_issuer,
        "type": "access",
    }
    return jwt.encode(payload, signing_key, algorithm=settings.jwt_algorithm)


def verify_token(token: str, expected_type: str = "access") -> dict[str, Any]:
    """
    Verify and decode a JWT token.

    Raises:
        jwt.InvalidTokenError: If the token is invalid, expired, of the wrong
            type, or its subject is not an account id.
    """
    _, verify_key = _load_keys()
    settings = get_settings()
    try:
        payload: dict[str, Any] = jwt.decode(
            token,
            verify_key,
            algorithms=[settings.jwt_algorithm],
            issuer=settings.jwt_issuer,
        )
    except jwt.ExpiredSignatureError:
        msg = "Token has expired"
        raise jwt.InvalidTokenError(msg) from None

    if payload.get("type", expected_type) != expected_type:
        msg = f"Expected token type '{expected_type}', got '{payload.get('type')}'"
        raise jwt.InvalidTokenError(msg)

    sub = payload.get("sub")
    if not isinstance(sub, str) or not sub.isdigit():
        msg = "Token subject is not an account id"
        raise jwt.InvalidTokenError(msg)

    return payload
