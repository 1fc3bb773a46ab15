"""Session settlement transaction.

Converts a finished session into persisted account changes in one database
transaction:

    Validate -> LoadState -> CheckEnergy -> CheckGate -> ComputeDeltas -> Persist -> Respond

Every abort rolls the whole transaction back; ``run_settlement`` turns errors
into a tagged ``SettlementOutcome`` so nothing is ever left half-committed.
"""

from __future__ import annotations

import logging
import math
from collections.abc import Mapping
from dataclasses import asdict, dataclass, field
from datetime import datetime, time, timedelta, timezone
from typing import Any

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from mindgym.config import Settings, get_settings
from mindgym.db.base import upsert
from mindgym.db.models import Account, DailyActivity, GameSession, UserUnlock
from mindgym.training.energy import EnergyState, as_utc, read_energy
from mindgym.training.errors import (
    INTERNAL_ERROR,
    AccountNotFound,
    ConfigLocked,
    EnergyExhausted,
    SettlementError,
    SettlementOutcome,
    ValidationError,
)
from mindgym.training.rank_levels import compute_rank, rank_level
from mindgym.training.rewards import PERFECT_ACCURACY, compute_rewards, compute_score
from mindgym.unlocks import (
    GAME_MODES,
    PlayedConfig,
    UnlockState,
    advance_after_session,
    normalize_unlocks,
)
from mindgym.unlocks.common import clamp, coerce_float, coerce_int

logger = logging.getLogger(__name__)

MAX_DEPTH = 12
MAX_TOTAL_ROUNDS = 100
MAX_CLIENT_SESSION_ID = 64


# ---------------------------------------------------------------------------
# Validate
# ---------------------------------------------------------------------------


@dataclass(frozen=True)
class SessionInput:
    """Settlement request after coercion and clamping."""

    played: PlayedConfig
    accuracy: float
    total_rounds: int
    reported_score: float | None = None
    avg_reaction_time_ms: int | None = None
    correct_count: int = 0
    incorrect_count: int = 0
    missed_count: int = 0
    duration_ms: int = 0
    mode_details: dict[str, Any] = field(default_factory=dict)
    client_session_id: str | None = None

    @property
    def mode(self) -> str:
        return self.played.mode


def _pick(source: Mapping[str, Any], *keys: str) -> Any:
    """First present key among snake_case and legacy camelCase spellings."""
    for key in keys:
        if key in source and source[key] is not None:
            return source[key]
    return None


def _finite_number(value: Any) -> float | None:
    if isinstance(value, bool) or not isinstance(value, (int, float)):
        return None
    return float(value) if math.isfinite(value) else None


def parse_session_input(body: Any) -> SessionInput:
    """Validate and coerce a raw settlement body. Raises ``ValidationError``."""
    if not isinstance(body, Mapping):
        raise ValidationError("Request body must be a JSON object")

    config = body.get("config")
    if not isinstance(config, Mapping):
        config = {}

    mode = _pick(config, "mode") or _pick(body, "mode")
    if mode not in GAME_MODES:
        raise ValidationError(f"Unknown game mode: {mode!r}", code="invalid_mode")

    total_rounds = clamp(
        coerce_int(_pick(body, "total_rounds", "totalRounds") or _pick(config, "total_rounds", "totalRounds"), 10),
        1,
        MAX_TOTAL_ROUNDS,
    )
    depth = clamp(coerce_int(_pick(config, "depth", "nLevel"), 1), 1, MAX_DEPTH)
    grid_size = coerce_int(_pick(config, "grid_size", "gridSize"), 3)

    details = _pick(body, "mode_details", "modeSpecificDetails")
    details = dict(details) if isinstance(details, Mapping) else {}

    played = _played_config(mode, depth, total_rounds, grid_size, details)
    # Rewards must read the same round count the unlock gate checks.
    total_rounds = played.rounds

    client_session_id = _pick(body, "client_session_id", "clientSessionId")
    if client_session_id is not None:
        if not isinstance(client_session_id, str) or not 0 < len(client_session_id.strip()) <= MAX_CLIENT_SESSION_ID:
            raise ValidationError("client_session_id must be a non-empty string of at most 64 characters")
        client_session_id = client_session_id.strip()

    reaction = _finite_number(_pick(body, "avg_reaction_time_ms", "avgReactionTimeMs"))

    return SessionInput(
        played=played,
        accuracy=clamp_accuracy(coerce_float(body.get("accuracy"), 0.0)),
        total_rounds=total_rounds,
        reported_score=_finite_number(_pick(body, "reported_score", "reportedScore", "score")),
        avg_reaction_time_ms=max(0, int(reaction)) if reaction is not None else None,
        correct_count=max(0, coerce_int(_pick(body, "correct_count", "correctCount"), 0)),
        incorrect_count=max(0, coerce_int(_pick(body, "incorrect_count", "incorrectCount"), 0)),
        missed_count=max(0, coerce_int(_pick(body, "missed_count", "missedCount"), 0)),
        duration_ms=max(0, coerce_int(_pick(body, "duration_ms", "durationMs"), 0)),
        mode_details=details,
        client_session_id=client_session_id,
    )


def clamp_accuracy(accuracy: float) -> float:
    return max(0.0, min(100.0, accuracy))


def _played_config(mode: str, depth: int, total_rounds: int, grid_size: int, details: dict[str, Any]) -> PlayedConfig:
    """Mouse and house have no depth axis; their depth is always 1."""
    if mode == "mouse":
        return PlayedConfig(
            mode=mode,
            depth=1,
            rounds=coerce_int(_pick(details, "rounds", "totalRounds"), total_rounds),
            targets=coerce_int(_pick(details, "targets", "numMice", "count"), 3),
            difficulty=str(_pick(details, "difficulty") or "easy"),
        )
    if mode == "house":
        return PlayedConfig(
            mode=mode,
            depth=1,
            rounds=coerce_int(_pick(details, "rounds", "totalRounds"), total_rounds),
            speed=str(_pick(details, "speed") or "easy"),
            initial_count=coerce_int(_pick(details, "initial_count", "initialPeople"), 3),
            event_count=coerce_int(_pick(details, "event_count", "eventCount"), 6),
        )
    return PlayedConfig(mode=mode, depth=depth, rounds=total_rounds, grid_size=grid_size)


def resolve_score(inp: SessionInput, *, trust_reported: bool) -> int:
    """Server-recomputed score, or the reported one bounded to ``[0, recomputed]``."""
    recomputed = compute_score(inp.accuracy, inp.played.depth, inp.played.rounds)
    if not trust_reported or inp.reported_score is None:
        return recomputed
    return max(0, min(recomputed, int(inp.reported_score)))


# ---------------------------------------------------------------------------
# LoadState
# ---------------------------------------------------------------------------


async def load_account_for_update(db: AsyncSession, account_id: int) -> Account:
    result = await db.execute(select(Account).where(Account.id == account_id).with_for_update())
    account = result.scalar_one_or_none()
    if account is None:
        raise AccountNotFound(f"Account {account_id} not found")
    return account


async def load_unlock_states(db: AsyncSession, account_id: int) -> dict[str, UnlockState]:
    """Typed unlock trees for every mode; missing rows read as defaults."""
    result = await db.execute(select(UserUnlock).where(UserUnlock.account_id == account_id))
    rows = {row.game_mode: row.unlocked_params for row in result.scalars()}
    return {mode: normalize_unlocks(mode, rows.get(mode)) for mode in GAME_MODES}


def energy_payload(state: EnergyState, unlimited: bool, settings: Settings, unlimited_until: datetime | None = None) -> dict:
    last = as_utc(state.last_updated)
    next_at = None
    if not unlimited and state.current < settings.energy_max and last is not None:
        next_at = last + timedelta(seconds=settings.energy_recovery_interval_seconds)
    return {
        "current": state.current,
        "max": settings.energy_max,
        "last_updated": last,
        "next_recovery_at": next_at,
        "unlimited": unlimited,
        "unlimited_until": as_utc(unlimited_until) if unlimited else None,
    }


def read_account_energy(account: Account, now: datetime, settings: Settings) -> tuple[EnergyState, bool]:
    return read_energy(
        account.energy_current,
        account.energy_last_updated,
        account.unlimited_energy_until,
        now,
        max_energy=settings.energy_max,
        interval=timedelta(seconds=settings.energy_recovery_interval_seconds),
    )


def _utc_day_start(now: datetime) -> datetime:
    return datetime.combine(now.date(), time.min, tzinfo=timezone.utc)


async def _is_first_session_today(db: AsyncSession, account_id: int, now: datetime) -> bool:
    result = await db.execute(
        select(DailyActivity.sessions_count).where(
            DailyActivity.account_id == account_id,
            DailyActivity.activity_date == now.date(),
        )
    )
    count = result.scalar_one_or_none()
    return not count


async def _has_perfect_session_today(db: AsyncSession, account_id: int, now: datetime) -> bool:
    result = await db.execute(
        select(GameSession.id)
        .where(
            GameSession.account_id == account_id,
            GameSession.accuracy >= PERFECT_ACCURACY,
            GameSession.created_at >= _utc_day_start(now),
        )
        .limit(1)
    )
    return result.scalar_one_or_none() is not None


# ---------------------------------------------------------------------------
# Settlement
# ---------------------------------------------------------------------------


def _account_summary(account: Account) -> dict:
    rank = compute_rank(account.xp)
    return {
        "xp": account.xp,
        "rank_level": rank["level"],
        "rank_title": rank["title"],
        "currency": account.currency,
    }


async def _replay(
    db: AsyncSession,
    account: Account,
    previous: GameSession,
    now: datetime,
    settings: Settings,
) -> dict:
    """Response for a repeated client_session_id. Performs no writes."""
    energy, unlimited = read_account_energy(account, now, settings)
    states = await load_unlock_states(db, account.id)
    stored = previous.rewards or {}
    return {
        "session_id": previous.id,
        "mode": previous.game_mode,
        "replayed": True,
        "rewards": {k: v for k, v in stored.items() if k != "newly_unlocked"},
        "newly_unlocked": list(stored.get("newly_unlocked", [])),
        **_account_summary(account),
        "energy": energy_payload(energy, unlimited, settings, account.unlimited_energy_until),
        "unlocks": {mode: state.to_payload() for mode, state in states.items()},
    }


async def settle_session(
    db: AsyncSession,
    account_id: int,
    body: Any,
    *,
    settings: Settings | None = None,
    now: datetime | None = None,
) -> dict:
    """Run the settlement state machine inside the caller's transaction.

    Raises a ``SettlementError`` subclass on abort; the caller owns
    commit/rollback (see ``run_settlement``).
    """
    settings = settings or get_settings()
    now = now or datetime.now(timezone.utc)

    inp = parse_session_input(body)

    account = await load_account_for_update(db, account_id)

    if inp.client_session_id is not None:
        result = await db.execute(
            select(GameSession).where(
                GameSession.account_id == account_id,
                GameSession.idempotency_key == inp.client_session_id,
            )
        )
        previous = result.scalar_one_or_none()
        if previous is not None:
            logger.info("Replaying settlement %s for account %s", inp.client_session_id, account_id)
            return await _replay(db, account, previous, now, settings)

    states = await load_unlock_states(db, account_id)

    energy, unlimited = read_account_energy(account, now, settings)
    if not unlimited and energy.current <= 0:
        raise EnergyExhausted("No energy left")

    state = states[inp.mode]
    if not state.is_unlocked(inp.played):
        raise ConfigLocked(f"Configuration not unlocked for mode {inp.mode}")

    next_state, newly_unlocked = advance_after_session(state, inp.played, inp.accuracy)

    first_session_today = await _is_first_session_today(db, account_id, now)
    first_perfect_today = inp.accuracy >= PERFECT_ACCURACY and not await _has_perfect_session_today(
        db, account_id, now
    )
    rewards = compute_rewards(
        score=resolve_score(inp, trust_reported=settings.trust_reported_score),
        accuracy=inp.accuracy,
        depth=inp.played.depth,
        rounds=inp.played.rounds,
        first_session_today=first_session_today,
        first_perfect_today=first_perfect_today,
        newly_unlocked_count=len(newly_unlocked),
    )

    # Persist
    session = GameSession(
        account_id=account_id,
        game_mode=inp.mode,
        depth=inp.played.depth,
        score=rewards.score,
        accuracy=inp.accuracy,
        config_snapshot={
            **asdict(inp.played),
            "total_rounds": inp.total_rounds,
            "metrics": {
                "correct": inp.correct_count,
                "incorrect": inp.incorrect_count,
                "missed": inp.missed_count,
                "duration_ms": inp.duration_ms,
            },
            "details": inp.mode_details,
        },
        avg_reaction_time_ms=inp.avg_reaction_time_ms,
        idempotency_key=inp.client_session_id,
        rewards={**rewards.as_dict(), "newly_unlocked": newly_unlocked},
        created_at=now,
    )
    db.add(session)

    account.xp += rewards.xp
    account.rank_level = rank_level(account.xp)
    account.currency += rewards.currency_total

    if unlimited:
        energy_after = energy
    else:
        # A session that unlocks something costs no energy.
        refund = 1 if newly_unlocked else 0
        energy_after = EnergyState(
            current=max(0, energy.current - 1 + refund),
            last_updated=energy.last_updated or now,
        )
        account.energy_current = energy_after.current
        account.energy_last_updated = energy_after.last_updated

    stmt = upsert(db, DailyActivity).values(
        account_id=account_id,
        activity_date=now.date(),
        total_xp=rewards.xp,
        sessions_count=1,
        updated_at=now,
    )
    await db.execute(
        stmt.on_conflict_do_update(
            index_elements=["account_id", "activity_date"],
            set_={
                "total_xp": DailyActivity.total_xp + stmt.excluded.total_xp,
                "sessions_count": DailyActivity.sessions_count + 1,
                "updated_at": stmt.excluded.updated_at,
            },
        )
    )

    if newly_unlocked:
        states[inp.mode] = next_state
        stmt = upsert(db, UserUnlock).values(
            account_id=account_id,
            game_mode=inp.mode,
            unlocked_params=next_state.to_payload(),
            updated_at=now,
        )
        await db.execute(
            stmt.on_conflict_do_update(
                index_elements=["account_id", "game_mode"],
                set_={
                    "unlocked_params": stmt.excluded.unlocked_params,
                    "updated_at": stmt.excluded.updated_at,
                },
            )
        )

    await db.flush()

    logger.info(
        "Settled %s session for account %s: xp=%d currency=%d unlocked=%s",
        inp.mode,
        account_id,
        rewards.xp,
        rewards.currency_total,
        newly_unlocked,
    )

    return {
        "session_id": session.id,
        "mode": inp.mode,
        "replayed": False,
        "rewards": rewards.as_dict(),
        "newly_unlocked": newly_unlocked,
        **_account_summary(account),
        "energy": energy_payload(energy_after, unlimited, settings, account.unlimited_energy_until),
        "unlocks": {mode: s.to_payload() for mode, s in states.items()},
    }


async def run_settlement(
    db: AsyncSession,
    account_id: int,
    body: Any,
    *,
    settings: Settings | None = None,
    now: datetime | None = None,
) -> SettlementOutcome:
    """Settle and commit, or roll back and return the error code."""
    try:
        result = await settle_session(db, account_id, body, settings=settings, now=now)
        await db.commit()
    except SettlementError as exc:
        await db.rollback()
        logger.info("Settlement rejected for account %s: %s (%s)", account_id, exc.code, exc)
        return SettlementOutcome(error_code=exc.code)
    except Exception:
        await db.rollback()
        logger.exception("Settlement failed for account %s", account_id)
        return SettlementOutcome(error_code=INTERNAL_ERROR)
    return SettlementOutcome(result=result)
