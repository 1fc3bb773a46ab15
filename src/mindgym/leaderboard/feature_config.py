"""Leaderboard tuning read from the externally owned ``feature_flags`` table.

Re-read on every request; never cached in process.
"""

from __future__ import annotations

import logging
from collections.abc import Mapping
from dataclasses import dataclass
from typing import Any

from sqlalchemy import select
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession

from mindgym.db.models import FeatureFlag
from mindgym.unlocks.common import clamp, coerce_int

logger = logging.getLogger(__name__)

LEADERBOARD_FLAG_KEY = "leaderboard"

DEFAULT_TOP_N = 10
MAX_TOP_N = 100
DEFAULT_TTL_SECONDS = 60
MIN_TTL_SECONDS = 5
MAX_TTL_SECONDS = 3600


@dataclass(frozen=True)
class LeaderboardConfig:
    enabled: bool = False
    top_n: int = DEFAULT_TOP_N
    version: int = 1
    snapshot_ttl_seconds: int = DEFAULT_TTL_SECONDS
    weekly_enabled: bool = False
    hide_guests: bool = False

    @classmethod
    def from_flag(cls, enabled: bool, payload: Any) -> LeaderboardConfig:
        """Clamp a flag payload; both snake_case and camelCase keys are accepted."""
        data: Mapping[str, Any] = payload if isinstance(payload, Mapping) else {}

        def get(*keys: str) -> Any:
            for key in keys:
                if data.get(key) is not None:
                    return data[key]
            return None

        top_n = coerce_int(get("top_n", "topN"), DEFAULT_TOP_N) or DEFAULT_TOP_N
        ttl = coerce_int(get("snapshot_ttl_seconds", "snapshotTtlSeconds"), 0)
        if ttl <= 0:
            ttl = coerce_int(get("snapshot_ttl_ms", "snapshotTtlMs"), DEFAULT_TTL_SECONDS * 1000) // 1000
        return cls(
            enabled=bool(enabled),
            top_n=clamp(top_n, 1, MAX_TOP_N),
            version=max(1, coerce_int(get("version"), 1)),
            snapshot_ttl_seconds=clamp(ttl or DEFAULT_TTL_SECONDS, MIN_TTL_SECONDS, MAX_TTL_SECONDS),
            weekly_enabled=bool(get("weekly_enabled", "weeklyEnabled") or False),
            hide_guests=bool(get("hide_guests", "hideGuests") or False),
        )


async def load_leaderboard_config(db: AsyncSession) -> LeaderboardConfig:
    """Read the leaderboard flag. Any read failure means disabled."""
    try:
        result = await db.execute(select(FeatureFlag).where(FeatureFlag.key == LEADERBOARD_FLAG_KEY))
        flag = result.scalar_one_or_none()
    except SQLAlchemyError:
        logger.warning("Failed to read leaderboard feature flag; treating as disabled", exc_info=True)
        await db.rollback()
        return LeaderboardConfig(enabled=False)
    if flag is None:
        return LeaderboardConfig(enabled=False)
    return LeaderboardConfig.from_flag(flag.enabled, flag.payload)
