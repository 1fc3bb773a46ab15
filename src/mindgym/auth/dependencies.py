"""FastAPI authentication dependencies."""

from __future__ import annotations

import jwt
from fastapi import HTTPException, Security
from fastapi.security import HTTPAuthorizationCredentials, HTTPBearer

from mindgym.auth.jwt import verify_token

_bearer = HTTPBearer(auto_error=False)


def _account_id_from(credentials: HTTPAuthorizationCredentials) -> int:
    try:
        payload = verify_token(credentials.credentials, expected_type="access")
    except jwt.InvalidTokenError as e:
        raise HTTPException(status_code=401, detail=str(e)) from e
    return int(payload["sub"])


async def get_current_account_id(
    credentials: HTTPAuthorizationCredentials | None = Security(_bearer),
) -> int:
    """Resolve the bearer token to an account id. Raises 401 on failure."""
    if credentials is None:
        raise HTTPException(status_code=401, detail="Not authenticated")
    return _account_id_from(credentials)


async def get_optional_account_id(
    credentials: HTTPAuthorizationCredentials | None = Security(_bearer),
) -> int | None:
    """Like ``get_current_account_id`` but guests (no header) resolve to None.

    A header that is present but invalid is still rejected.
    """
    if credentials is None:
        return None
    return _account_id_from(credentials)
