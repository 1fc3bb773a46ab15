"""Leaderboard snapshot cache: freshness, try-lock recompute, stale serving, my position."""

from __future__ import annotations

from contextlib import asynccontextmanager
from datetime import date, timedelta

import pytest
import pytest_asyncio
from redis.exceptions import ConnectionError as RedisConnectionError
from sqlalchemy import select

from mindgym.db.models import DailyActivity, LeaderboardSnapshot
from mindgym.leaderboard.feature_config import LeaderboardConfig, load_leaderboard_config
from mindgym.leaderboard.locks import LocalTryLock
from mindgym.leaderboard.service import (
    InvalidScope,
    LeaderboardDisabled,
    LeaderboardUnavailable,
    LoginRequired,
    get_leaderboard,
    get_my_position,
    is_fresh,
)
from mindgym.training.energy import as_utc

CONFIG = LeaderboardConfig(enabled=True, weekly_enabled=True)


class SpyLock:
    """Records every acquisition attempt; always grants the lock."""

    def __init__(self) -> None:
        self.calls: list[str] = []

    @asynccontextmanager
    async def hold(self, db, key):
        self.calls.append(key)
        yield True


class BrokenLock:
    @asynccontextmanager
    async def hold(self, db, key):
        raise RedisConnectionError("redis is down")
        yield False  # pragma: no cover


def ghost_payload(top_n: int = 10, version: int = 1) -> dict:
    return {
        "config": {"top_n": top_n, "version": version},
        "entries": [
            {
                "rank": 1,
                "account_id": 999,
                "display_name": "ghost",
                "avatar_url": None,
                "value": 7,
                "xp": 7,
                "rank_level": 1,
                "currency": 7,
            }
        ],
    }


@pytest_asyncio.fixture
async def players(db_session, make_account, now):
    """Four ranked players and one banned account, with this week's and last week's activity."""
    a = await make_account("ada", currency=100, xp=50)
    b = await make_account("bob", currency=100, xp=80)
    c = await make_account("cy", currency=300, xp=10)
    d = await make_account("dee", currency=100, xp=80)
    await make_account("banned", currency=1000, xp=1000, is_banned=True)

    monday = date(2026, 3, 2)
    db_session.add_all(
        [
            DailyActivity(account_id=a.id, activity_date=monday, total_xp=200, sessions_count=3, updated_at=now),
            DailyActivity(account_id=c.id, activity_date=now.date(), total_xp=50, sessions_count=1, updated_at=now),
            DailyActivity(
                account_id=c.id, activity_date=monday - timedelta(days=1), total_xp=999, sessions_count=9, updated_at=now
            ),
        ]
    )
    await db_session.commit()
    return {"a": a, "b": b, "c": c, "d": d}


async def store_snapshot(db, key: str, computed_at, payload: dict) -> None:
    db.add(LeaderboardSnapshot(kind=key, computed_at=computed_at, payload=payload))
    await db.commit()


async def snapshot_computed_at(db, key: str):
    result = await db.execute(select(LeaderboardSnapshot.computed_at).where(LeaderboardSnapshot.kind == key))
    return as_utc(result.scalar_one_or_none())


class TestFreshness:
    def test_is_fresh_checks_age_config_and_shape(self, now):
        payload = ghost_payload()
        assert is_fresh(now - timedelta(seconds=5), payload, CONFIG, now)
        assert not is_fresh(now - timedelta(seconds=60), payload, CONFIG, now)
        assert not is_fresh(now - timedelta(seconds=5), ghost_payload(version=2), CONFIG, now)
        assert not is_fresh(now - timedelta(seconds=5), ghost_payload(top_n=20), CONFIG, now)
        assert not is_fresh(now - timedelta(seconds=5), {"config": {"top_n": 10, "version": 1}}, CONFIG, now)
        assert not is_fresh(now - timedelta(seconds=5), {"entries": []}, CONFIG, now)
        assert not is_fresh(None, payload, CONFIG, now)

    @pytest.mark.asyncio
    async def test_fresh_snapshot_is_served_without_lock_or_write(self, db_session, players, now):
        computed = now - timedelta(seconds=5)
        await store_snapshot(db_session, "currency:all", computed, ghost_payload())
        lock = SpyLock()

        board = await get_leaderboard(db_session, "currency", "all", CONFIG, lock, now=now)

        assert lock.calls == []
        assert board["stale"] is False
        assert [e["display_name"] for e in board["entries"]] == ["ghost"]
        assert await snapshot_computed_at(db_session, "currency:all") == computed


class TestRecompute:
    @pytest.mark.asyncio
    async def test_stale_snapshot_is_recomputed_under_lock(self, db_session, players, now):
        await store_snapshot(db_session, "currency:all", now - timedelta(seconds=120), ghost_payload())
        lock = SpyLock()

        board = await get_leaderboard(db_session, "currency", "all", CONFIG, lock, now=now)

        assert lock.calls == ["leaderboard:currency:all"]
        assert board["stale"] is False
        assert [e["display_name"] for e in board["entries"]] == ["cy", "bob", "dee", "ada"]
        assert await snapshot_computed_at(db_session, "currency:all") == now

    @pytest.mark.asyncio
    async def test_version_bump_forces_recompute(self, db_session, players, now):
        await store_snapshot(db_session, "currency:all", now - timedelta(seconds=1), ghost_payload())
        lock = SpyLock()
        config = LeaderboardConfig(enabled=True, version=2)

        board = await get_leaderboard(db_session, "currency", "all", config, lock, now=now)

        assert lock.calls
        assert board["config"] == {"top_n": 10, "version": 2}
        assert board["entries"][0]["display_name"] == "cy"

    @pytest.mark.asyncio
    async def test_missing_snapshot_is_computed(self, db_session, players, now):
        board = await get_leaderboard(db_session, "rank", "all", CONFIG, LocalTryLock(), now=now)
        assert [e["display_name"] for e in board["entries"]] == ["bob", "dee", "ada", "cy"]

    @pytest.mark.asyncio
    async def test_banned_accounts_are_excluded(self, db_session, players, now):
        board = await get_leaderboard(db_session, "currency", "all", CONFIG, LocalTryLock(), now=now)
        assert "banned" not in [e["display_name"] for e in board["entries"]]

    @pytest.mark.asyncio
    async def test_top_n_and_medals(self, db_session, players, now):
        config = LeaderboardConfig(enabled=True, top_n=3)
        board = await get_leaderboard(db_session, "currency", "all", config, LocalTryLock(), now=now)
        assert [e["medal"] for e in board["entries"]] == ["gold", "silver", "bronze"]
        assert [e["rank"] for e in board["entries"]] == [1, 2, 3]

    @pytest.mark.asyncio
    async def test_weekly_scope_only_counts_this_week(self, db_session, players, now):
        board = await get_leaderboard(db_session, "rank", "week", CONFIG, LocalTryLock(), now=now)
        names = [e["display_name"] for e in board["entries"]]
        assert names == ["ada", "cy", "bob", "dee"]
        assert board["entries"][1]["value"] == 50
        assert board["window"] == {"start": date(2026, 3, 2), "end": date(2026, 3, 9)}


class TestLockBusy:
    @pytest.mark.asyncio
    async def test_busy_lock_serves_stale_snapshot(self, db_session, players, now):
        old = now - timedelta(seconds=600)
        await store_snapshot(db_session, "currency:all", old, ghost_payload())
        lock = LocalTryLock()

        async with lock.hold(db_session, "leaderboard:currency:all") as held:
            assert held
            board = await get_leaderboard(db_session, "currency", "all", CONFIG, lock, now=now)

        assert board["stale"] is True
        assert [e["display_name"] for e in board["entries"]] == ["ghost"]
        assert await snapshot_computed_at(db_session, "currency:all") == old

    @pytest.mark.asyncio
    async def test_busy_lock_without_snapshot_is_unavailable(self, db_session, players, now):
        lock = LocalTryLock()
        async with lock.hold(db_session, "leaderboard:rank:all"):
            with pytest.raises(LeaderboardUnavailable):
                await get_leaderboard(db_session, "rank", "all", CONFIG, lock, now=now)

    @pytest.mark.asyncio
    async def test_lock_backend_failure_degrades_to_stale(self, db_session, players, now):
        await store_snapshot(db_session, "currency:all", now - timedelta(seconds=600), ghost_payload())
        board = await get_leaderboard(db_session, "currency", "all", CONFIG, BrokenLock(), now=now)
        assert board["stale"] is True

    @pytest.mark.asyncio
    async def test_local_lock_is_released_after_use(self, db_session):
        lock = LocalTryLock()
        async with lock.hold(db_session, "k") as first:
            assert first
        async with lock.hold(db_session, "k") as second:
            assert second


class TestAccess:
    @pytest.mark.asyncio
    async def test_disabled(self, db_session, now):
        with pytest.raises(LeaderboardDisabled):
            await get_leaderboard(db_session, "currency", "all", LeaderboardConfig(), SpyLock(), now=now)

    @pytest.mark.asyncio
    @pytest.mark.parametrize(("kind", "scope"), [("currency", "week"), ("xp", "all"), ("rank", "month")])
    async def test_invalid_scope(self, db_session, now, kind, scope):
        with pytest.raises(InvalidScope):
            await get_leaderboard(db_session, kind, scope, CONFIG, SpyLock(), now=now)

    @pytest.mark.asyncio
    async def test_weekly_needs_flag(self, db_session, now):
        config = LeaderboardConfig(enabled=True, weekly_enabled=False)
        with pytest.raises(InvalidScope):
            await get_leaderboard(db_session, "rank", "week", config, SpyLock(), now=now)

    @pytest.mark.asyncio
    async def test_hidden_from_guests(self, db_session, now):
        config = LeaderboardConfig(enabled=True, hide_guests=True)
        with pytest.raises(LoginRequired):
            await get_leaderboard(db_session, "rank", "all", config, SpyLock(), viewer_id=None, now=now)


class TestMyPosition:
    @pytest.mark.asyncio
    @pytest.mark.parametrize(("kind", "scope"), [("currency", "all"), ("rank", "all"), ("rank", "week")])
    async def test_matches_top_n_order(self, db_session, players, now, kind, scope):
        board = await get_leaderboard(db_session, kind, scope, CONFIG, LocalTryLock(), now=now)
        for entry in board["entries"]:
            mine = await get_my_position(db_session, kind, scope, CONFIG, entry["account_id"], now=now)
            assert mine["rank"] == entry["rank"], entry["display_name"]
            assert mine["value"] == entry["value"]

    @pytest.mark.asyncio
    async def test_ties_break_on_lower_account_id(self, db_session, players, now):
        bob = await get_my_position(db_session, "rank", "all", CONFIG, players["b"].id, now=now)
        dee = await get_my_position(db_session, "rank", "all", CONFIG, players["d"].id, now=now)
        assert (bob["rank"], dee["rank"]) == (1, 2)
        assert bob["medal"] == "gold"

    @pytest.mark.asyncio
    async def test_outside_top_n(self, db_session, players, now):
        config = LeaderboardConfig(enabled=True, top_n=1)
        mine = await get_my_position(db_session, "currency", "all", config, players["a"].id, now=now)
        assert mine["rank"] == 4
        assert mine["medal"] is None


class TestFeatureConfig:
    @pytest.mark.asyncio
    async def test_missing_flag_is_disabled(self, db_session):
        config = await load_leaderboard_config(db_session)
        assert config.enabled is False

    @pytest.mark.asyncio
    async def test_flag_is_read_every_time(self, db_session, enable_leaderboard):
        await enable_leaderboard(topN=25, weeklyEnabled=True)
        first = await load_leaderboard_config(db_session)
        await enable_leaderboard(enabled=False, top_n=25)
        second = await load_leaderboard_config(db_session)
        assert first.enabled is True
        assert first.top_n == 25
        assert first.weekly_enabled is True
        assert second.enabled is False
