"""Profile read: unlock row creation, legacy rewrite, energy persistence, milestones."""

from __future__ import annotations

from datetime import date, timedelta

import pytest
from sqlalchemy import select

from mindgym.db.models import Account, DailyActivity, GameSession, UserUnlock
from mindgym.training.energy import as_utc
from mindgym.training.errors import AccountNotFound
from mindgym.training.profile_service import compute_milestones, get_profile
from mindgym.unlocks import GAME_MODES, SpatialUnlocks, default_unlocks


def played(mode: str, depth: int = 1, accuracy: float = 95.0, **snapshot) -> GameSession:
    return GameSession(
        game_mode=mode,
        depth=depth,
        score=int(accuracy),
        accuracy=accuracy,
        config_snapshot={"mode": mode, "depth": depth, **snapshot},
    )


async def unlock_rows(db, account_id: int) -> dict[str, dict]:
    result = await db.execute(
        select(UserUnlock)
        .where(UserUnlock.account_id == account_id)
        .execution_options(populate_existing=True)
    )
    return {row.game_mode: row.unlocked_params for row in result.scalars()}


class TestProfile:
    @pytest.mark.asyncio
    async def test_creates_default_unlock_rows(self, db_session, make_account, settings, now):
        account = await make_account("ada")

        profile = await get_profile(db_session, account.id, settings=settings, now=now)

        rows = await unlock_rows(db_session, account.id)
        assert sorted(rows) == sorted(GAME_MODES)
        for mode in GAME_MODES:
            assert rows[mode] == default_unlocks(mode).to_payload()
            assert profile["unlocks"][mode] == rows[mode]
        assert profile["display_name"] == "ada"
        assert profile["rank"]["level"] == 1
        assert profile["milestones"] == []
        assert profile["recent_sessions"] == []

    @pytest.mark.asyncio
    async def test_rewrites_legacy_payload(self, db_session, make_account, settings, now):
        account = await make_account()
        db_session.add(
            UserUnlock(account_id=account.id, game_mode="numeric", unlocked_params={"maxN": 2, "rounds": [5, 10]})
        )
        await db_session.commit()

        profile = await get_profile(db_session, account.id, settings=settings, now=now)

        stored = (await unlock_rows(db_session, account.id))["numeric"]
        assert "maxN" not in stored
        assert stored["max_depth"] == 2
        assert stored == profile["unlocks"]["numeric"]

    @pytest.mark.asyncio
    async def test_persists_recovered_energy(self, db_session, make_account, settings, now):
        interval = timedelta(seconds=settings.energy_recovery_interval_seconds)
        last = now - interval * 2 - timedelta(minutes=30)
        account = await make_account(energy_current=1, energy_last_updated=last)

        profile = await get_profile(db_session, account.id, settings=settings, now=now)

        assert profile["energy"]["current"] == 3
        assert profile["energy"]["unlimited"] is False
        result = await db_session.execute(
            select(Account).where(Account.id == account.id).execution_options(populate_existing=True)
        )
        stored = result.scalar_one()
        assert stored.energy_current == 3
        assert as_utc(stored.energy_last_updated) == last + interval * 2

    @pytest.mark.asyncio
    async def test_unlimited_energy_leaves_clock(self, db_session, make_account, settings, now):
        last = now - timedelta(days=2)
        account = await make_account(
            energy_current=0, energy_last_updated=last, unlimited_energy_until=now + timedelta(hours=1)
        )

        profile = await get_profile(db_session, account.id, settings=settings, now=now)

        assert profile["energy"]["unlimited"] is True
        assert profile["energy"]["current"] == settings.energy_max
        result = await db_session.execute(
            select(Account.energy_current).where(Account.id == account.id)
        )
        assert result.scalar_one() == 0

    @pytest.mark.asyncio
    async def test_history_and_activity(self, db_session, make_account, settings, now):
        account = await make_account()
        db_session.add_all(
            [
                GameSession(
                    account_id=account.id,
                    game_mode="numeric",
                    depth=3,
                    score=95,
                    accuracy=95.0,
                    config_snapshot={"mode": "numeric", "depth": 3},
                    created_at=now - timedelta(hours=2),
                ),
                GameSession(
                    account_id=account.id,
                    game_mode="mouse",
                    depth=1,
                    score=50,
                    accuracy=50.0,
                    config_snapshot={"mode": "mouse", "targets": 9},
                    created_at=now - timedelta(hours=1),
                ),
                DailyActivity(account_id=account.id, activity_date=date(2026, 3, 3), total_xp=40, sessions_count=2),
                DailyActivity(account_id=account.id, activity_date=date(2025, 12, 31), total_xp=99, sessions_count=1),
            ]
        )
        await db_session.commit()

        profile = await get_profile(db_session, account.id, settings=settings, now=now)

        assert [s["mode"] for s in profile["recent_sessions"]] == ["mouse", "numeric"]
        assert profile["milestones"] == ["numeric_2back", "numeric_3back"]
        assert profile["daily_activity"] == [{"day": date(2026, 3, 3), "xp": 40, "sessions": 2}]

    @pytest.mark.asyncio
    async def test_unknown_account(self, db_session, settings, now):
        with pytest.raises(AccountNotFound):
            await get_profile(db_session, 404, settings=settings, now=now)


class TestMilestones:
    def test_low_accuracy_sessions_do_not_count(self):
        assert compute_milestones([played("numeric", depth=7, accuracy=89.9)], {}) == []

    def test_per_mode_milestones(self):
        sessions = [
            played("numeric", depth=5),
            played("spatial", depth=2, grid_size=4),
            played("spatial", depth=3, grid_size=5),
            played("mouse", targets=7),
            played("house", speed="normal", event_count=12),
        ]
        assert compute_milestones(sessions, {}) == [
            "house_normal_12_events",
            "mouse_4_targets",
            "mouse_7_targets",
            "numeric_2back",
            "numeric_3back",
            "numeric_5back",
            "spatial_4x4_2back",
            "spatial_5x5_3back",
        ]

    def test_fast_house_counts_for_both_house_milestones(self):
        sessions = [played("house", speed="fast", event_count=15)]
        assert compute_milestones(sessions, {}) == ["house_fast_15_events", "house_normal_12_events"]

    def test_spatial_grid_unlock(self):
        unlocks = {"spatial": SpatialUnlocks.from_payload({"grids": [3, 4, 5]})}
        assert compute_milestones([], unlocks) == ["spatial_5x5_unlocked"]
