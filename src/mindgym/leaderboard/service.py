"""Leaderboard snapshot cache.

Top-N rankings are materialized into ``leaderboard_snapshots`` rows keyed by
``kind:scope``. A fresh snapshot is served as-is. A stale or missing one is
recomputed under a non-blocking lock; when the lock is busy the existing
snapshot is served instead, stale or not. The caller's own position is never
read from the snapshot: it is counted on demand with the same total order.
"""

from __future__ import annotations

import logging
from datetime import date, datetime, timedelta, timezone
from typing import Any

from redis.exceptions import RedisError
from sqlalchemy import and_, func, or_, select
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession

from mindgym.db.base import upsert
from mindgym.db.models import Account, DailyActivity, LeaderboardSnapshot
from mindgym.leaderboard.feature_config import LeaderboardConfig
from mindgym.leaderboard.locks import TryLock
from mindgym.leaderboard.week import get_week_window
from mindgym.training.energy import as_utc
from mindgym.training.rank_levels import rank_level

logger = logging.getLogger(__name__)

SCOPES_BY_KIND: dict[str, tuple[str, ...]] = {
    "currency": ("all",),
    "rank": ("all", "week"),
}

MEDALS = {1: "gold", 2: "silver", 3: "bronze"}


class LeaderboardError(Exception):
    code = "leaderboard_error"
    status_code = 500

    def __init__(self, message: str = "") -> None:
        super().__init__(message or self.code)


class LeaderboardDisabled(LeaderboardError):
    code = "leaderboard_disabled"
    status_code = 503


class InvalidScope(LeaderboardError):
    code = "invalid_scope"
    status_code = 400


class LoginRequired(LeaderboardError):
    code = "login_required"
    status_code = 401


class LeaderboardUnavailable(LeaderboardError):
    code = "leaderboard_unavailable"
    status_code = 503


class ViewerNotFound(LeaderboardError):
    code = "account_not_found"
    status_code = 404


def medal_for(rank: int) -> str | None:
    return MEDALS.get(rank)


def snapshot_key(kind: str, scope: str) -> str:
    return f"{kind}:{scope}"


def check_access(kind: str, scope: str, config: LeaderboardConfig, viewer_id: int | None) -> None:
    """Raise the matching ``LeaderboardError`` when this board may not be served."""
    if not config.enabled:
        raise LeaderboardDisabled
    if scope not in SCOPES_BY_KIND.get(kind, ()):
        raise InvalidScope(f"Unknown leaderboard {kind!r} with scope {scope!r}")
    if scope == "week" and not config.weekly_enabled:
        raise InvalidScope("Weekly leaderboard is disabled")
    if config.hide_guests and viewer_id is None:
        raise LoginRequired


def is_fresh(computed_at: datetime | None, payload: Any, config: LeaderboardConfig, now: datetime) -> bool:
    """Fresh iff younger than the TTL, built with the current config, and well-formed."""
    if computed_at is None or not isinstance(payload, dict):
        return False
    if now - as_utc(computed_at) >= timedelta(seconds=config.snapshot_ttl_seconds):
        return False
    snap_config = payload.get("config")
    if not isinstance(snap_config, dict):
        return False
    if snap_config.get("top_n") != config.top_n or snap_config.get("version") != config.version:
        return False
    entries = payload.get("entries")
    if not isinstance(entries, list):
        return False
    return all(isinstance(e, dict) and "account_id" in e and "value" in e for e in entries)


# ---------------------------------------------------------------------------
# Ranking queries
# ---------------------------------------------------------------------------


def _weekly_xp_subquery(start: date, end: date):
    week_xp = func.coalesce(func.sum(DailyActivity.total_xp), 0)
    return (
        select(Account.id.label("account_id"), week_xp.label("week_xp"))
        .select_from(Account)
        .outerjoin(
            DailyActivity,
            and_(
                DailyActivity.account_id == Account.id,
                DailyActivity.activity_date >= start,
                DailyActivity.activity_date < end,
            ),
        )
        .where(Account.is_banned.is_(False))
        .group_by(Account.id)
        .subquery()
    )


def _order_columns(kind: str, scope: str, week=None) -> list:
    """Metric columns in ranking priority. Ties always break on lower account id."""
    if kind == "currency":
        return [Account.currency, Account.xp]
    if scope == "week":
        return [week.c.week_xp, Account.xp, Account.currency]
    return [Account.xp, Account.currency]


async def compute_entries(
    db: AsyncSession,
    kind: str,
    scope: str,
    top_n: int,
    now: datetime,
) -> list[dict]:
    week = _weekly_xp_subquery(*get_week_window(now)) if scope == "week" else None
    columns = _order_columns(kind, scope, week)

    stmt = select(Account.id, Account.display_name, Account.avatar_url, Account.xp, Account.currency)
    if week is not None:
        stmt = stmt.add_columns(week.c.week_xp).join(week, week.c.account_id == Account.id)
    else:
        stmt = stmt.where(Account.is_banned.is_(False))
    stmt = stmt.order_by(*(c.desc() for c in columns), Account.id.asc()).limit(top_n)

    result = await db.execute(stmt)
    entries = []
    for idx, row in enumerate(result.all(), start=1):
        if kind == "currency":
            value = row.currency
        elif week is not None:
            value = int(row.week_xp or 0)
        else:
            value = row.xp
        entries.append(
            {
                "rank": idx,
                "account_id": row.id,
                "display_name": row.display_name,
                "avatar_url": row.avatar_url,
                "value": value,
                "xp": row.xp,
                "rank_level": rank_level(row.xp),
                "currency": row.currency,
            }
        )
    return entries


# ---------------------------------------------------------------------------
# Snapshot cache
# ---------------------------------------------------------------------------


async def _read_snapshot(db: AsyncSession, key: str) -> tuple[datetime | None, Any]:
    result = await db.execute(
        select(LeaderboardSnapshot.computed_at, LeaderboardSnapshot.payload).where(LeaderboardSnapshot.kind == key)
    )
    row = result.one_or_none()
    if row is None:
        return None, None
    return as_utc(row.computed_at), row.payload


async def _write_snapshot(db: AsyncSession, key: str, computed_at: datetime, payload: dict) -> None:
    stmt = upsert(db, LeaderboardSnapshot).values(kind=key, computed_at=computed_at, payload=payload)
    await db.execute(
        stmt.on_conflict_do_update(
            index_elements=["kind"],
            set_={"computed_at": stmt.excluded.computed_at, "payload": stmt.excluded.payload},
        )
    )


def _board_response(
    kind: str,
    scope: str,
    computed_at: datetime,
    payload: dict,
    config: LeaderboardConfig,
    *,
    stale: bool,
    now: datetime,
) -> dict:
    entries = [e for e in payload.get("entries", []) if isinstance(e, dict)]
    response = {
        "kind": kind,
        "scope": scope,
        "computed_at": computed_at,
        "config": {"top_n": config.top_n, "version": config.version},
        "stale": stale,
        "window": None,
        "entries": [{**e, "medal": medal_for(int(e.get("rank", 0)))} for e in entries],
    }
    if scope == "week":
        start, end = get_week_window(now)
        response["window"] = {"start": start, "end": end}
    return response


async def get_leaderboard(
    db: AsyncSession,
    kind: str,
    scope: str,
    config: LeaderboardConfig,
    lock: TryLock,
    *,
    viewer_id: int | None = None,
    now: datetime | None = None,
) -> dict:
    """Serve a Top-N board, recomputing the snapshot when stale and the lock is free."""
    now = now or datetime.now(timezone.utc)
    check_access(kind, scope, config, viewer_id)

    key = snapshot_key(kind, scope)
    computed_at, payload = await _read_snapshot(db, key)
    if is_fresh(computed_at, payload, config, now):
        return _board_response(kind, scope, computed_at, payload, config, stale=False, now=now)

    refreshed = False
    try:
        async with lock.hold(db, f"leaderboard:{key}") as acquired:
            if acquired:
                entries = await compute_entries(db, kind, scope, config.top_n, now)
                new_payload = {
                    "kind": kind,
                    "scope": scope,
                    "computed_at": now.isoformat(),
                    "config": {"top_n": config.top_n, "version": config.version},
                    "entries": entries,
                }
                await _write_snapshot(db, key, now, new_payload)
                await db.commit()
                computed_at, payload = now, new_payload
                refreshed = True
            else:
                logger.info("Leaderboard %s is being recomputed elsewhere; serving existing snapshot", key)
    except (SQLAlchemyError, RedisError, RuntimeError):
        logger.warning("Leaderboard recompute failed for %s; serving existing snapshot", key, exc_info=True)
        await db.rollback()

    if not isinstance(payload, dict) or computed_at is None:
        raise LeaderboardUnavailable
    return _board_response(kind, scope, computed_at, payload, config, stale=not refreshed, now=now)


async def get_my_position(
    db: AsyncSession,
    kind: str,
    scope: str,
    config: LeaderboardConfig,
    account_id: int,
    *,
    now: datetime | None = None,
) -> dict:
    """The caller's 1-based position: count of accounts ordered strictly before them, plus one."""
    now = now or datetime.now(timezone.utc)
    check_access(kind, scope, config, account_id)

    me = await db.get(Account, account_id)
    if me is None:
        raise ViewerNotFound

    week = _weekly_xp_subquery(*get_week_window(now)) if scope == "week" else None
    week_xp = None
    if week is not None:
        result = await db.execute(select(week.c.week_xp).where(week.c.account_id == account_id))
        week_xp = int(result.scalar_one_or_none() or 0)

    columns = _order_columns(kind, scope, week)
    mine = {"currency": me.currency, "xp": me.xp, "week_xp": week_xp}
    my_values = [mine[c.key] for c in columns]

    # (a, b, ..., id) ordered before mine lexicographically, descending metrics then ascending id.
    clauses = []
    for i, column in enumerate(columns):
        equal_prefix = [columns[j] == my_values[j] for j in range(i)]
        clauses.append(and_(*equal_prefix, column > my_values[i]))
    clauses.append(and_(*(c == v for c, v in zip(columns, my_values)), Account.id < account_id))

    stmt = select(func.count()).select_from(Account)
    if week is not None:
        stmt = stmt.join(week, week.c.account_id == Account.id)
    else:
        stmt = stmt.where(Account.is_banned.is_(False))
    ahead = (await db.execute(stmt.where(or_(*clauses)))).scalar_one()

    position = int(ahead) + 1
    value = me.currency if kind == "currency" else (week_xp if week is not None else me.xp)
    return {
        "kind": kind,
        "scope": scope,
        "account_id": me.id,
        "rank": position,
        "value": value,
        "xp": me.xp,
        "rank_level": rank_level(me.xp),
        "currency": me.currency,
        "medal": medal_for(position),
    }
