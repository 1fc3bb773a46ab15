"""ORM models for accounts, the session log, unlock trees and leaderboard snapshots.

Tables are created by the Alembic migrations under ``alembic/versions``; the
definitions here must stay in sync with them.
"""

from __future__ import annotations

from datetime import date, datetime
from typing import Any

from sqlalchemy import (
    BigInteger,
    Boolean,
    Date,
    DateTime,
    Float,
    ForeignKey,
    Index,
    Integer,
    String,
    Text,
    UniqueConstraint,
    false,
    func,
)
from sqlalchemy.orm import Mapped, mapped_column

from mindgym.db.base import Base, BigIntPK, JSONPayload


# ---------------------------------------------------------------------------
# Accounts
# ---------------------------------------------------------------------------


class Account(Base):
    """Account aggregate: progression, currency, energy and inventory.

    ``rank_level`` is always written together with ``xp`` and readers recompute
    it from ``xp``; it is never updated on its own.
    """

    __tablename__ = "accounts"

    id: Mapped[int] = mapped_column(BigIntPK, primary_key=True, autoincrement=True)
    display_name: Mapped[str] = mapped_column(String(64), nullable=False)
    avatar_url: Mapped[str | None] = mapped_column(Text, nullable=True)

    xp: Mapped[int] = mapped_column(BigInteger, nullable=False, default=0, server_default="0")
    rank_level: Mapped[int] = mapped_column(Integer, nullable=False, default=1, server_default="1")
    currency: Mapped[int] = mapped_column(BigInteger, nullable=False, default=0, server_default="0")

    energy_current: Mapped[int] = mapped_column(Integer, nullable=False, default=5, server_default="5")
    energy_last_updated: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)
    unlimited_energy_until: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)

    check_in_last_date: Mapped[date | None] = mapped_column(Date, nullable=True)
    check_in_streak: Mapped[int] = mapped_column(Integer, nullable=False, default=0, server_default="0")

    owned_items: Mapped[list[Any]] = mapped_column(JSONPayload, nullable=False, default=list, server_default="[]")
    inventory: Mapped[dict[str, Any]] = mapped_column(JSONPayload, nullable=False, default=dict, server_default="{}")

    is_banned: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False, server_default=false())
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False, server_default=func.now())
    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), nullable=False, server_default=func.now(), onupdate=func.now()
    )


# ---------------------------------------------------------------------------
# Session log (append-only)
# ---------------------------------------------------------------------------


class GameSession(Base):
    """One finished minigame session. Rows are never updated or deleted."""

    __tablename__ = "game_sessions"
    __table_args__ = (
        UniqueConstraint("account_id", "idempotency_key", name="game_sessions_account_idem_key"),
        Index("idx_game_sessions_account_created", "account_id", "created_at"),
    )

    id: Mapped[int] = mapped_column(BigIntPK, primary_key=True, autoincrement=True)
    account_id: Mapped[int] = mapped_column(
        BigInteger, ForeignKey("accounts.id", ondelete="CASCADE"), nullable=False
    )
    game_mode: Mapped[str] = mapped_column(String(16), nullable=False)
    depth: Mapped[int] = mapped_column(Integer, nullable=False)
    score: Mapped[int] = mapped_column(Integer, nullable=False)
    accuracy: Mapped[float] = mapped_column(Float, nullable=False)
    config_snapshot: Mapped[dict[str, Any]] = mapped_column(JSONPayload, nullable=False)
    avg_reaction_time_ms: Mapped[int | None] = mapped_column(Integer, nullable=True)
    idempotency_key: Mapped[str | None] = mapped_column(String(64), nullable=True)
    rewards: Mapped[dict[str, Any]] = mapped_column(JSONPayload, nullable=False, default=dict, server_default="{}")
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False)


# ---------------------------------------------------------------------------
# Daily activity rollup
# ---------------------------------------------------------------------------


class DailyActivity(Base):
    """XP and session count per account per UTC calendar day."""

    __tablename__ = "daily_activity"
    __table_args__ = (
        UniqueConstraint("account_id", "activity_date", name="daily_activity_account_date_key"),
    )

    id: Mapped[int] = mapped_column(BigIntPK, primary_key=True, autoincrement=True)
    account_id: Mapped[int] = mapped_column(
        BigInteger, ForeignKey("accounts.id", ondelete="CASCADE"), nullable=False
    )
    activity_date: Mapped[date] = mapped_column(Date, nullable=False)
    total_xp: Mapped[int] = mapped_column(Integer, nullable=False, default=0, server_default="0")
    sessions_count: Mapped[int] = mapped_column(Integer, nullable=False, default=0, server_default="0")
    updated_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False, server_default=func.now())


# ---------------------------------------------------------------------------
# Unlock trees
# ---------------------------------------------------------------------------


class UserUnlock(Base):
    """Per-mode unlock tree payload. Fields only ever grow."""

    __tablename__ = "user_unlocks"

    account_id: Mapped[int] = mapped_column(
        BigInteger, ForeignKey("accounts.id", ondelete="CASCADE"), primary_key=True
    )
    game_mode: Mapped[str] = mapped_column(String(16), primary_key=True)
    unlocked_params: Mapped[dict[str, Any]] = mapped_column(
        JSONPayload, nullable=False, default=dict, server_default="{}"
    )
    updated_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False, server_default=func.now())


# ---------------------------------------------------------------------------
# Leaderboard cache + feature configuration
# ---------------------------------------------------------------------------


class LeaderboardSnapshot(Base):
    """Materialized Top-N ranking, one row per ``kind:scope`` key."""

    __tablename__ = "leaderboard_snapshots"

    kind: Mapped[str] = mapped_column(String(32), primary_key=True)
    computed_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False)
    payload: Mapped[dict[str, Any]] = mapped_column(JSONPayload, nullable=False)


class FeatureFlag(Base):
    """Externally owned key/value feature configuration."""

    __tablename__ = "feature_flags"

    key: Mapped[str] = mapped_column(String(64), primary_key=True)
    enabled: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False, server_default=false())
    payload: Mapped[dict[str, Any]] = mapped_column(JSONPayload, nullable=False, default=dict, server_default="{}")
    updated_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False, server_default=func.now())
