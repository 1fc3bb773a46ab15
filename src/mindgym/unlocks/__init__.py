"""Per-mode unlock trees.

Each tree is an immutable state object with ``is_unlocked`` (gating) and
``advance`` (progression). Both are pure; storage goes through
``normalize_unlocks``/``to_payload`` at the boundary.
"""

from __future__ import annotations

from collections.abc import Mapping
from typing import Any, Union

from mindgym.unlocks.common import PlayedConfig
from mindgym.unlocks.house import HouseUnlocks
from mindgym.unlocks.mouse import MouseUnlocks
from mindgym.unlocks.numeric import NumericUnlocks
from mindgym.unlocks.spatial import SpatialUnlocks

UnlockState = Union[NumericUnlocks, SpatialUnlocks, MouseUnlocks, HouseUnlocks]

UNLOCK_TREES: dict[str, type] = {
    "numeric": NumericUnlocks,
    "spatial": SpatialUnlocks,
    "mouse": MouseUnlocks,
    "house": HouseUnlocks,
}
GAME_MODES: tuple[str, ...] = tuple(UNLOCK_TREES)

QUALIFYING_ACCURACY = 90.0


def default_unlocks(mode: str) -> UnlockState:
    return UNLOCK_TREES[mode]()


def normalize_unlocks(mode: str, raw: Any) -> UnlockState:
    """Turn a stored (possibly legacy) JSON payload into a typed tree."""
    if not isinstance(raw, Mapping) or not raw:
        return default_unlocks(mode)
    return UNLOCK_TREES[mode].from_payload(raw)


def advance_after_session(state: UnlockState, cfg: PlayedConfig, accuracy: float) -> tuple[UnlockState, list[str]]:
    """Progress the tree after a session; only qualifying clears move it."""
    if accuracy < QUALIFYING_ACCURACY:
        return state, []
    return state.advance(cfg)


__all__ = [
    "GAME_MODES",
    "QUALIFYING_ACCURACY",
    "UNLOCK_TREES",
    "HouseUnlocks",
    "MouseUnlocks",
    "NumericUnlocks",
    "PlayedConfig",
    "SpatialUnlocks",
    "UnlockState",
    "advance_after_session",
    "default_unlocks",
    "normalize_unlocks",
]
