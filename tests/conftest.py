"""Shared test fixtures.

Tests run against a temporary SQLite file through aiosqlite with the
in-process leaderboard lock and HS256 tokens, so no PostgreSQL, Redis or key
files are needed.
"""

from __future__ import annotations

import os
from collections.abc import AsyncGenerator, Awaitable, Callable
from datetime import datetime, timezone
from pathlib import Path

os.environ["MINDGYM_JWT_ALGORITHM"] = "HS256"
os.environ["MINDGYM_JWT_SECRET"] = "mindgym-test-secret-0123456789abcdef"
os.environ["MINDGYM_LEADERBOARD_LOCK_BACKEND"] = "local"
os.environ["MINDGYM_LOG_FORMAT"] = "console"

import pytest  # noqa: E402
import pytest_asyncio  # noqa: E402
from httpx import ASGITransport, AsyncClient  # noqa: E402
from sqlalchemy.ext.asyncio import AsyncSession  # noqa: E402

from mindgym.auth.jwt import create_access_token, reset_keys  # noqa: E402
from mindgym.config import Settings, get_settings  # noqa: E402
from mindgym.database import close_db, get_engine, init_db  # noqa: E402
from mindgym.db.models import Account, Base, FeatureFlag  # noqa: E402

get_settings.cache_clear()
reset_keys()

# Wednesday noon UTC; the ISO week runs 2026-03-02 .. 2026-03-09.
NOW = datetime(2026, 3, 4, 12, 0, tzinfo=timezone.utc)


@pytest.fixture
def settings() -> Settings:
    return get_settings()


@pytest.fixture
def now() -> datetime:
    return NOW


@pytest_asyncio.fixture
async def db_engine(tmp_path: Path) -> AsyncGenerator[None, None]:
    """Fresh SQLite database file with every table created."""
    await init_db(f"sqlite+aiosqlite:///{tmp_path / 'mindgym.db'}")
    async with get_engine().begin() as conn:
        await conn.run_sync(Base.metadata.create_all)
    yield
    await close_db()


@pytest_asyncio.fixture
async def db_session(db_engine: None) -> AsyncGenerator[AsyncSession, None]:
    """Get a direct database session for setup and assertions."""
    async with AsyncSession(get_engine(), expire_on_commit=False) as session:
        yield session


@pytest_asyncio.fixture
async def make_account(db_session: AsyncSession) -> Callable[..., Awaitable[Account]]:
    """Factory inserting an account row and returning it."""

    async def _make(display_name: str = "player", **fields: object) -> Account:
        account = Account(display_name=display_name, **fields)
        db_session.add(account)
        await db_session.commit()
        return account

    return _make


@pytest_asyncio.fixture
async def enable_leaderboard(db_session: AsyncSession) -> Callable[..., Awaitable[None]]:
    """Write the ``leaderboard`` feature flag."""

    async def _enable(enabled: bool = True, **payload: object) -> None:
        flag = await db_session.get(FeatureFlag, "leaderboard")
        if flag is None:
            flag = FeatureFlag(key="leaderboard", enabled=enabled, payload=dict(payload), updated_at=NOW)
            db_session.add(flag)
        else:
            flag.enabled = enabled
            flag.payload = dict(payload)
        await db_session.commit()

    return _enable


@pytest.fixture
def auth_headers() -> Callable[[int], dict[str, str]]:
    """Bearer header for an account id, signed with the test secret."""

    def _headers(account_id: int) -> dict[str, str]:
        return {"Authorization": f"Bearer {create_access_token(account_id)}"}

    return _headers


@pytest_asyncio.fixture
async def client(db_engine: None) -> AsyncGenerator[AsyncClient, None]:
    """Create an async HTTP test client bound to the temporary database."""
    from mindgym.leaderboard.locks import _cached_try_lock
    from mindgym.main import create_app

    _cached_try_lock.cache_clear()
    app = create_app()
    transport = ASGITransport(app=app)
    async with AsyncClient(transport=transport, base_url="http://test") as ac:
        yield ac
