"""Shared pieces of the per-mode unlock trees: coercion, round ladders, played config."""

from __future__ import annotations

import math
from collections.abc import Iterable, Mapping
from dataclasses import dataclass
from typing import Any

ROUND_OPTIONS = (5, 10, 15, 20, 25, 30)
MAX_ROUNDS = ROUND_OPTIONS[-1]
ROUND_STEP = 5


def coerce_int(value: Any, fallback: int = 0) -> int:
    """Truncate anything numeric (or numeric-looking) to int, else ``fallback``."""
    if isinstance(value, bool) or value is None:
        return fallback
    try:
        number = float(value)
    except (TypeError, ValueError):
        return fallback
    if not math.isfinite(number):
        return fallback
    return int(number)


def coerce_float(value: Any, fallback: float = 0.0) -> float:
    if isinstance(value, bool) or value is None:
        return fallback
    try:
        number = float(value)
    except (TypeError, ValueError):
        return fallback
    return number if math.isfinite(number) else fallback


def clamp(value: int, low: int, high: int) -> int:
    return max(low, min(high, value))


def min_rounds_for(depth: int) -> int:
    """Smallest round option long enough to exercise ``depth`` (needs depth + 1 stimuli)."""
    target = depth + 1
    for option in ROUND_OPTIONS:
        if option >= target:
            return option
    return MAX_ROUNDS


def standard_rounds_for(depth: int) -> int:
    """Round count whose clear at the current cap opens the next depth."""
    return max(10, min_rounds_for(depth))


def seed_rounds(depth: int) -> tuple[int, ...]:
    return tuple(sorted({min_rounds_for(depth), standard_rounds_for(depth)}))


def parse_rounds_map(raw: Any) -> dict[int, tuple[int, ...]]:
    """Parse a ``{"depth": [rounds, ...]}`` JSON object, dropping junk entries."""
    if not isinstance(raw, Mapping):
        return {}
    parsed: dict[int, tuple[int, ...]] = {}
    for key, values in raw.items():
        depth = coerce_int(key, 0)
        if depth <= 0 or not isinstance(values, Iterable) or isinstance(values, (str, bytes, Mapping)):
            continue
        rounds = {coerce_int(v, 0) for v in values}
        parsed[depth] = tuple(sorted(r for r in rounds if 0 < r <= MAX_ROUNDS))
    return parsed


def ensure_seeded(rounds_by_depth: dict[int, tuple[int, ...]], up_to: int) -> dict[int, tuple[int, ...]]:
    """Every depth in ``1..up_to`` carries at least its seed round set."""
    result = dict(rounds_by_depth)
    for depth in range(1, up_to + 1):
        result[depth] = tuple(sorted({*result.get(depth, ()), *seed_rounds(depth)}))
    return result


def rounds_payload(rounds_by_depth: Mapping[int, tuple[int, ...]]) -> dict[str, list[int]]:
    return {str(depth): list(rounds) for depth, rounds in sorted(rounds_by_depth.items())}


def advance_round_ladder(
    rounds_by_depth: Mapping[int, tuple[int, ...]],
    depth: int,
    rounds: int,
    id_prefix: str,
) -> tuple[dict[int, tuple[int, ...]], list[str]]:
    """Open the next round length at ``depth`` after a qualifying clear."""
    result = dict(rounds_by_depth)
    next_rounds = rounds + ROUND_STEP
    current = result.get(depth, ())
    if next_rounds in ROUND_OPTIONS and next_rounds not in current:
        result[depth] = tuple(sorted({*current, next_rounds}))
        return result, [f"{id_prefix}_depth_{depth}_rounds_{next_rounds}"]
    return result, []


def ladder_index(ladder: tuple[str, ...], value: str) -> int:
    try:
        return ladder.index(value)
    except ValueError:
        return -1


def parse_ladder(raw: Any, ladder: tuple[str, ...]) -> tuple[str, ...]:
    """Keep known tiers in ladder order; the first tier is always available."""
    values = set(raw) if isinstance(raw, (list, tuple)) else set()
    values = {str(v) for v in values} | {ladder[0]}
    return tuple(tier for tier in ladder if tier in values)


def advance_ladder(unlocked: tuple[str, ...], ladder: tuple[str, ...], played: str, id_prefix: str) -> tuple[tuple[str, ...], list[str]]:
    """Open one tier when the highest unlocked tier was cleared."""
    highest = max(ladder_index(ladder, tier) for tier in unlocked)
    if ladder_index(ladder, played) != highest or highest >= len(ladder) - 1:
        return unlocked, []
    nxt = ladder[highest + 1]
    return (*unlocked, nxt), [f"{id_prefix}_{nxt}"]


@dataclass(frozen=True)
class PlayedConfig:
    """Configuration of one session, normalized from client input.

    Numeric and spatial use ``depth``/``rounds``/``grid_size``; mouse uses
    ``targets``/``difficulty``/``rounds``; house uses ``speed``,
    ``initial_count``, ``event_count`` and ``rounds``.
    """

    mode: str
    depth: int = 1
    rounds: int = 10
    grid_size: int = 3
    targets: int = 3
    difficulty: str = "easy"
    speed: str = "easy"
    initial_count: int = 3
    event_count: int = 6
