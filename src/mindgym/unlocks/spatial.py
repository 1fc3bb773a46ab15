"""Spatial N-back unlock tree: grid ladder 3x3 -> 4x4 -> 5x5, each with its own depth cap."""

from __future__ import annotations

from collections.abc import Mapping
from dataclasses import dataclass, field
from typing import Any

from mindgym.unlocks.common import (
    PlayedConfig,
    advance_round_ladder,
    clamp,
    coerce_int,
    ensure_seeded,
    parse_rounds_map,
    rounds_payload,
    seed_rounds,
    standard_rounds_for,
)

GRID_DEPTH_CAPS: dict[int, int] = {3: 5, 4: 12, 5: 12}

# grid -> (minimum cleared depth, grid it opens)
GRID_LADDER: dict[int, tuple[int, int]] = {3: (3, 4), 4: (4, 5)}


@dataclass(frozen=True)
class SpatialUnlocks:
    grids: tuple[int, ...] = (3,)
    depth_cap_by_grid: dict[int, int] = field(default_factory=lambda: {3: 1})
    rounds_by_depth: dict[int, tuple[int, ...]] = field(default_factory=lambda: {1: seed_rounds(1)})

    @classmethod
    def from_payload(cls, raw: Mapping[str, Any]) -> SpatialUnlocks:
        raw_grids = raw.get("grids")
        grids = {coerce_int(g, 0) for g in raw_grids} if isinstance(raw_grids, list) else set()
        grids = {g for g in grids if g in GRID_DEPTH_CAPS} | {3}

        raw_caps = raw.get("depth_cap_by_grid", raw.get("maxNByGrid"))
        caps: dict[int, int] = {}
        if isinstance(raw_caps, Mapping):
            for key, value in raw_caps.items():
                grid = coerce_int(key, 0)
                if grid in grids:
                    caps[grid] = clamp(coerce_int(value, 1), 1, GRID_DEPTH_CAPS[grid])
        for grid in grids:
            caps.setdefault(grid, 1)

        rounds_by_depth = parse_rounds_map(raw.get("rounds_by_depth", raw.get("roundsByN")))
        deepest = max([*caps.values(), *rounds_by_depth.keys(), 1])
        return cls(
            grids=tuple(sorted(grids)),
            depth_cap_by_grid=caps,
            rounds_by_depth=ensure_seeded(rounds_by_depth, deepest),
        )

    def to_payload(self) -> dict[str, Any]:
        return {
            "grids": list(self.grids),
            "depth_cap_by_grid": {str(g): cap for g, cap in sorted(self.depth_cap_by_grid.items())},
            "rounds_by_depth": rounds_payload(self.rounds_by_depth),
        }

    def is_unlocked(self, cfg: PlayedConfig) -> bool:
        if cfg.grid_size not in self.grids:
            return False
        if not 1 <= cfg.depth <= self.depth_cap_by_grid.get(cfg.grid_size, 1):
            return False
        return cfg.rounds in self.rounds_by_depth.get(cfg.depth, ())

    def advance(self, cfg: PlayedConfig) -> tuple[SpatialUnlocks, list[str]]:
        grid = cfg.grid_size
        rounds_by_depth, unlocked = advance_round_ladder(self.rounds_by_depth, cfg.depth, cfg.rounds, "spatial")
        caps = dict(self.depth_cap_by_grid)
        grids = set(self.grids)

        cap = caps.get(grid, 1)
        grid_max = GRID_DEPTH_CAPS.get(grid, 1)
        if cfg.rounds == standard_rounds_for(cfg.depth) and cfg.depth == cap and cap < grid_max:
            caps[grid] = cap + 1
            rounds_by_depth[cap + 1] = tuple(sorted({*rounds_by_depth.get(cap + 1, ()), *seed_rounds(cap + 1)}))
            unlocked.append(f"spatial_{grid}x{grid}_depth_{cap + 1}")

        if grid in GRID_LADDER:
            min_depth, next_grid = GRID_LADDER[grid]
            if cfg.depth >= min_depth and next_grid not in grids:
                grids.add(next_grid)
                caps.setdefault(next_grid, 1)
                unlocked.append(f"spatial_grid_{next_grid}")

        if not unlocked:
            return self, []
        return (
            SpatialUnlocks(grids=tuple(sorted(grids)), depth_cap_by_grid=caps, rounds_by_depth=rounds_by_depth),
            unlocked,
        )
