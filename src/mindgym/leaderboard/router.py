"""Leaderboard API endpoints."""

from __future__ import annotations

from fastapi import APIRouter, Depends, HTTPException, Query
from sqlalchemy.ext.asyncio import AsyncSession

from mindgym.auth.dependencies import get_current_account_id, get_optional_account_id
from mindgym.database import get_session
from mindgym.leaderboard.feature_config import load_leaderboard_config
from mindgym.leaderboard.locks import TryLock, get_try_lock
from mindgym.leaderboard.schemas import LeaderboardResponse, MyPositionResponse
from mindgym.leaderboard.service import LeaderboardError, get_leaderboard, get_my_position

router = APIRouter(prefix="/api/v1/leaderboard", tags=["Leaderboard"])


@router.get("/{kind}", response_model=LeaderboardResponse)
async def get_board(
    kind: str,
    scope: str = Query("all"),
    viewer_id: int | None = Depends(get_optional_account_id),
    lock: TryLock = Depends(get_try_lock),
    db: AsyncSession = Depends(get_session),
):
    """Top-N board for ``currency`` or ``rank``."""
    config = await load_leaderboard_config(db)
    try:
        board = await get_leaderboard(db, kind, scope.strip() or "all", config, lock, viewer_id=viewer_id)
    except LeaderboardError as e:
        raise HTTPException(status_code=e.status_code, detail=e.code) from e
    return LeaderboardResponse(**board)


@router.get("/{kind}/me", response_model=MyPositionResponse)
async def get_my_board_position(
    kind: str,
    scope: str = Query("all"),
    account_id: int = Depends(get_current_account_id),
    db: AsyncSession = Depends(get_session),
):
    """The caller's own position, which may lie outside the Top-N."""
    config = await load_leaderboard_config(db)
    try:
        position = await get_my_position(db, kind, scope.strip() or "all", config, account_id)
    except LeaderboardError as e:
        raise HTTPException(status_code=e.status_code, detail=e.code) from e
    return MyPositionResponse(**position)
