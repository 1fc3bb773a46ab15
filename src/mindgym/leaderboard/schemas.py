"""Pydantic response models for leaderboard endpoints."""

from __future__ import annotations

from datetime import date, datetime

from pydantic import BaseModel


class LeaderboardEntry(BaseModel):
    rank: int
    account_id: int
    display_name: str
    avatar_url: str | None = None
    value: int
    xp: int
    rank_level: int
    currency: int
    medal: str | None = None


class BoardConfig(BaseModel):
    top_n: int
    version: int


class WeekWindow(BaseModel):
    start: date
    end: date


class LeaderboardResponse(BaseModel):
    kind: str
    scope: str
    computed_at: datetime
    config: BoardConfig
    stale: bool = False
    window: WeekWindow | None = None
    entries: list[LeaderboardEntry]


class MyPositionResponse(BaseModel):
    kind: str
    scope: str
    account_id: int
    rank: int
    value: int
    xp: int
    rank_level: int
    currency: int
    medal: str | None = None
