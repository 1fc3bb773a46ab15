"""Training API endpoints: session settlement, profile and the rank table."""

from __future__ import annotations

import json
from typing import Any

from fastapi import APIRouter, Depends, HTTPException, Request
from sqlalchemy.ext.asyncio import AsyncSession

from mindgym.auth.dependencies import get_current_account_id
from mindgym.config import get_settings
from mindgym.database import get_session
from mindgym.training.errors import AccountNotFound
from mindgym.training.profile_service import get_profile
from mindgym.training.rank_levels import RANK_THRESHOLDS
from mindgym.training.schemas import (
    AllLevelsResponse,
    LevelEntry,
    ProfileResponse,
    SessionSettlementResponse,
)
from mindgym.training.settlement import run_settlement

router = APIRouter(prefix="/api/v1", tags=["Training"])


async def _json_body(request: Request) -> Any:
    # Shape is validated by the settlement itself so malformed bodies map to invalid_body.
    try:
        return await request.json()
    except (json.JSONDecodeError, UnicodeDecodeError):
        return None


@router.post("/game/session", response_model=SessionSettlementResponse)
async def settle_game_session(
    request: Request,
    account_id: int = Depends(get_current_account_id),
    db: AsyncSession = Depends(get_session),
):
    """Settle a finished session: rewards, energy, unlocks."""
    body = await _json_body(request)
    outcome = await run_settlement(db, account_id, body, settings=get_settings())
    if not outcome.ok:
        raise HTTPException(status_code=outcome.status_code, detail=outcome.error_code)
    return SessionSettlementResponse(**outcome.result)


@router.get("/users/me/profile", response_model=ProfileResponse)
async def get_my_profile(
    account_id: int = Depends(get_current_account_id),
    db: AsyncSession = Depends(get_session),
):
    """Get the caller's profile with recovered energy and unlock trees."""
    try:
        profile = await get_profile(db, account_id, settings=get_settings())
    except AccountNotFound as e:
        raise HTTPException(status_code=404, detail=e.code) from e
    return ProfileResponse(**profile)


@router.get("/levels", response_model=AllLevelsResponse)
async def list_levels():
    """Get all rank level definitions."""
    return AllLevelsResponse(
        levels=[
            LevelEntry(level=t["level"], title=t["title"], xp_required=t["xp_required"])
            for t in RANK_THRESHOLDS
        ]
    )
