"""Account read surface: recovered energy, rank, unlock trees, milestones and history."""

from __future__ import annotations

import logging
from collections.abc import Iterable
from datetime import date, datetime, timezone

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from mindgym.config import Settings, get_settings
from mindgym.db.base import upsert
from mindgym.db.models import Account, DailyActivity, GameSession, UserUnlock
from mindgym.training.energy import as_utc
from mindgym.training.errors import AccountNotFound
from mindgym.training.rank_levels import compute_rank
from mindgym.training.settlement import energy_payload, read_account_energy
from mindgym.unlocks import GAME_MODES, QUALIFYING_ACCURACY, SpatialUnlocks, UnlockState, normalize_unlocks

logger = logging.getLogger(__name__)

RECENT_SESSIONS_LIMIT = 50


async def get_or_create_unlocks(db: AsyncSession, account_id: int, now: datetime | None = None) -> dict[str, UnlockState]:
    """Load all four unlock trees, creating default rows and rewriting legacy payloads."""
    now = now or datetime.now(timezone.utc)
    result = await db.execute(select(UserUnlock).where(UserUnlock.account_id == account_id))
    rows = {row.game_mode: row for row in result.scalars()}

    states: dict[str, UnlockState] = {}
    for mode in GAME_MODES:
        row = rows.get(mode)
        state = normalize_unlocks(mode, row.unlocked_params if row is not None else None)
        states[mode] = state
        payload = state.to_payload()
        if row is None:
            stmt = upsert(db, UserUnlock).values(
                account_id=account_id, game_mode=mode, unlocked_params=payload, updated_at=now
            )
            await db.execute(stmt.on_conflict_do_nothing(index_elements=["account_id", "game_mode"]))
        elif row.unlocked_params != payload:
            # Legacy camelCase shape; store the canonical one from now on.
            row.unlocked_params = payload
            row.updated_at = now
    return states


def _snapshot_int(snapshot: dict, key: str, fallback: int = 0) -> int:
    value = snapshot.get(key, fallback)
    return value if isinstance(value, int) and not isinstance(value, bool) else fallback


def compute_milestones(sessions: Iterable[GameSession], unlocks: dict[str, UnlockState]) -> list[str]:
    """Milestones earned from qualifying recent clears and the unlock trees."""
    done: set[str] = set()
    for s in sessions:
        if s.accuracy < QUALIFYING_ACCURACY:
            continue
        snap = s.config_snapshot or {}
        if s.game_mode == "numeric":
            for n in (2, 3, 5, 7):
                if s.depth >= n:
                    done.add(f"numeric_{n}back")
        elif s.game_mode == "spatial":
            grid = _snapshot_int(snap, "grid_size", 3)
            if grid == 3 and s.depth >= 2:
                done.add("spatial_3x3_2back")
            if grid == 4 and s.depth >= 2:
                done.add("spatial_4x4_2back")
            if grid == 5 and s.depth >= 3:
                done.add("spatial_5x5_3back")
        elif s.game_mode == "mouse":
            targets = _snapshot_int(snap, "targets")
            for n in (4, 7, 9):
                if targets >= n:
                    done.add(f"mouse_{n}_targets")
        elif s.game_mode == "house":
            speed = snap.get("speed")
            events = _snapshot_int(snap, "event_count")
            if speed in ("normal", "fast") and events >= 12:
                done.add("house_normal_12_events")
            if speed == "fast" and events >= 15:
                done.add("house_fast_15_events")

    spatial = unlocks.get("spatial")
    if isinstance(spatial, SpatialUnlocks) and 5 in spatial.grids:
        done.add("spatial_5x5_unlocked")
    return sorted(done)


def _session_entry(s: GameSession) -> dict:
    return {
        "id": s.id,
        "mode": s.game_mode,
        "depth": s.depth,
        "score": s.score,
        "accuracy": s.accuracy,
        "avg_reaction_time_ms": s.avg_reaction_time_ms,
        "created_at": as_utc(s.created_at),
    }


async def get_profile(
    db: AsyncSession,
    account_id: int,
    *,
    settings: Settings | None = None,
    now: datetime | None = None,
) -> dict:
    """Build the profile payload. Persists the energy clock when recovery advanced it."""
    settings = settings or get_settings()
    now = now or datetime.now(timezone.utc)

    account = await db.get(Account, account_id)
    if account is None:
        raise AccountNotFound(f"Account {account_id} not found")

    energy, unlimited = read_account_energy(account, now, settings)
    if not unlimited and (
        energy.current != account.energy_current
        or as_utc(energy.last_updated) != as_utc(account.energy_last_updated)
    ):
        account.energy_current = energy.current
        account.energy_last_updated = energy.last_updated

    unlocks = await get_or_create_unlocks(db, account_id, now)

    sessions_result = await db.execute(
        select(GameSession)
        .where(GameSession.account_id == account_id)
        .order_by(GameSession.created_at.desc(), GameSession.id.desc())
        .limit(RECENT_SESSIONS_LIMIT)
    )
    sessions = list(sessions_result.scalars())

    activity_result = await db.execute(
        select(DailyActivity)
        .where(
            DailyActivity.account_id == account_id,
            DailyActivity.activity_date >= date(now.year, 1, 1),
            DailyActivity.activity_date <= date(now.year, 12, 31),
        )
        .order_by(DailyActivity.activity_date)
    )
    activity = [
        {"day": row.activity_date, "xp": row.total_xp, "sessions": row.sessions_count}
        for row in activity_result.scalars()
    ]

    await db.commit()

    return {
        "id": account.id,
        "display_name": account.display_name,
        "avatar_url": account.avatar_url,
        "xp": account.xp,
        "rank": compute_rank(account.xp),
        "currency": account.currency,
        "energy": energy_payload(energy, unlimited, settings, account.unlimited_energy_until),
        "check_in": {"last_date": account.check_in_last_date, "streak": account.check_in_streak},
        "owned_items": list(account.owned_items or []),
        "inventory": dict(account.inventory or {}),
        "unlocks": {mode: state.to_payload() for mode, state in unlocks.items()},
        "milestones": compute_milestones(sessions, unlocks),
        "daily_activity": activity,
        "recent_sessions": [_session_entry(s) for s in sessions],
    }
