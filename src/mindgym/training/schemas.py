"""Pydantic response models for training endpoints."""

from __future__ import annotations

from datetime import date, datetime
from typing import Any

from pydantic import BaseModel

# --- Shared ---


class EnergyResponse(BaseModel):
    current: int
    max: int
    last_updated: datetime | None = None
    next_recovery_at: datetime | None = None
    unlimited: bool = False
    unlimited_until: datetime | None = None


class RewardsResponse(BaseModel):
    score: int
    xp_earned: int
    currency_earned: int
    bonuses: dict[str, int] = {}
    currency_total: int


# --- Settlement ---


class SessionSettlementResponse(BaseModel):
    session_id: int
    mode: str
    replayed: bool = False
    rewards: RewardsResponse
    newly_unlocked: list[str] = []
    xp: int
    rank_level: int
    rank_title: str
    currency: int
    energy: EnergyResponse
    unlocks: dict[str, dict[str, Any]]


# --- Profile ---


class RankResponse(BaseModel):
    level: int
    title: str
    xp_into_level: int
    xp_for_level: int
    next_level: int
    next_title: str


class CheckInResponse(BaseModel):
    last_date: date | None = None
    streak: int = 0


class DailyActivityEntry(BaseModel):
    day: date
    xp: int
    sessions: int


class RecentSessionEntry(BaseModel):
    id: int
    mode: str
    depth: int
    score: int
    accuracy: float
    avg_reaction_time_ms: int | None = None
    created_at: datetime


class ProfileResponse(BaseModel):
    id: int
    display_name: str
    avatar_url: str | None = None
    xp: int
    rank: RankResponse
    currency: int
    energy: EnergyResponse
    check_in: CheckInResponse
    owned_items: list[Any] = []
    inventory: dict[str, Any] = {}
    unlocks: dict[str, dict[str, Any]]
    milestones: list[str] = []
    daily_activity: list[DailyActivityEntry] = []
    recent_sessions: list[RecentSessionEntry] = []


# --- Levels ---


class LevelEntry(BaseModel):
    level: int
    title: str
    xp_required: int


class AllLevelsResponse(BaseModel):
    levels: list[LevelEntry]
