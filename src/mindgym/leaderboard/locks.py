"""Non-blocking named locks for leaderboard recomputation.

Every backend exposes ``hold(db, key)``, an async context manager yielding
``True`` when the lock was taken and ``False`` when someone else holds it.
It never waits.
"""

from __future__ import annotations

import asyncio
import logging
from collections.abc import AsyncIterator, Callable
from contextlib import AbstractAsyncContextManager, asynccontextmanager
from functools import lru_cache
from typing import Protocol

from redis.asyncio import Redis
from redis.exceptions import LockNotOwnedError
from sqlalchemy import text
from sqlalchemy.ext.asyncio import AsyncSession

from mindgym.config import get_settings
from mindgym.redis_client import get_redis

logger = logging.getLogger(__name__)


class TryLock(Protocol):
    def hold(self, db: AsyncSession, key: str) -> AbstractAsyncContextManager[bool]: ...


class AdvisoryTryLock:
    """``pg_try_advisory_xact_lock``: released when the session's transaction ends."""

    @asynccontextmanager
    async def hold(self, db: AsyncSession, key: str) -> AsyncIterator[bool]:
        result = await db.execute(
            text("SELECT pg_try_advisory_xact_lock(hashtext(:key))"),
            {"key": key},
        )
        yield bool(result.scalar())


class RedisTryLock:
    """Token-owned redis-py ``Lock`` shared by every API instance.

    The TTL bounds a crashed holder. Release only deletes the key while this
    holder still owns it, so an overrun never frees a lock taken by someone else.
    """

    def __init__(self, ttl_seconds: int = 30, redis_factory: Callable[[], Redis] = get_redis) -> None:
        self.ttl_seconds = ttl_seconds
        self._redis_factory = redis_factory

    @asynccontextmanager
    async def hold(self, db: AsyncSession, key: str) -> AsyncIterator[bool]:
        redis = self._redis_factory()
        lock = redis.lock(f"lock:{key}", timeout=self.ttl_seconds, blocking=False)
        acquired = bool(await lock.acquire())
        try:
            yield acquired
        finally:
            if acquired:
                try:
                    await lock.release()
                except LockNotOwnedError:
                    logger.warning("Lock %s expired before release; left to its new holder", key)


class LocalTryLock:
    """In-process mutex per key, for single-instance deployments and tests."""

    def __init__(self) -> None:
        self._locks: dict[str, asyncio.Lock] = {}

    @asynccontextmanager
    async def hold(self, db: AsyncSession, key: str) -> AsyncIterator[bool]:
        lock = self._locks.setdefault(key, asyncio.Lock())
        if lock.locked():
            yield False
            return
        await lock.acquire()
        try:
            yield True
        finally:
            lock.release()


def build_try_lock(backend: str, *, ttl_seconds: int = 30) -> TryLock:
    if backend == "advisory":
        return AdvisoryTryLock()
    if backend == "redis":
        return RedisTryLock(ttl_seconds=ttl_seconds)
    if backend == "local":
        return LocalTryLock()
    msg = f"Unknown leaderboard lock backend: {backend}"
    raise ValueError(msg)


@lru_cache
def _cached_try_lock(backend: str, ttl_seconds: int) -> TryLock:
    logger.info("Using %s lock backend for leaderboard recomputation", backend)
    return build_try_lock(backend, ttl_seconds=ttl_seconds)


def get_try_lock() -> TryLock:
    """FastAPI dependency: the process-wide lock for the configured backend."""
    settings = get_settings()
    return _cached_try_lock(settings.leaderboard_lock_backend, settings.leaderboard_lock_ttl_seconds)
