"""Numeric N-back unlock tree: depth cap 1..12 plus per-depth round lengths."""

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

MAX_DEPTH = 12


@dataclass(frozen=True)
class NumericUnlocks:
    max_depth: int = 1
    rounds_by_depth: dict[int, tuple[int, ...]] = field(default_factory=lambda: {1: seed_rounds(1)})

    @classmethod
    def from_payload(cls, raw: Mapping[str, Any]) -> NumericUnlocks:
        max_depth = clamp(coerce_int(raw.get("max_depth", raw.get("maxN")), 1), 1, MAX_DEPTH)

        mapping = raw.get("rounds_by_depth", raw.get("roundsByN"))
        if isinstance(mapping, Mapping):
            return cls(max_depth=max_depth, rounds_by_depth=ensure_seeded(parse_rounds_map(mapping), max_depth))

        legacy = raw.get("rounds")
        if isinstance(legacy, list):
            # Older rows kept one flat list of round lengths for every depth.
            base = {5, 10} | {r for r in (coerce_int(x, 0) for x in legacy) if r > 0}
            rounds_by_depth = {
                depth: tuple(sorted(base if depth == 1 else {r for r in base if r >= 10}))
                for depth in range(1, max_depth + 1)
            }
            return cls(max_depth=max_depth, rounds_by_depth=ensure_seeded(rounds_by_depth, max_depth))

        return cls()

    def to_payload(self) -> dict[str, Any]:
        return {"max_depth": self.max_depth, "rounds_by_depth": rounds_payload(self.rounds_by_depth)}

    def is_unlocked(self, cfg: PlayedConfig) -> bool:
        if not 1 <= cfg.depth <= self.max_depth:
            return False
        return cfg.rounds in self.rounds_by_depth.get(cfg.depth, ())

    def advance(self, cfg: PlayedConfig) -> tuple[NumericUnlocks, list[str]]:
        rounds_by_depth, unlocked = advance_round_ladder(self.rounds_by_depth, cfg.depth, cfg.rounds, "numeric")
        max_depth = self.max_depth

        if cfg.rounds == standard_rounds_for(cfg.depth) and cfg.depth == max_depth and max_depth < MAX_DEPTH:
            max_depth += 1
            rounds_by_depth[max_depth] = tuple(sorted({*rounds_by_depth.get(max_depth, ()), *seed_rounds(max_depth)}))
            unlocked.append(f"numeric_depth_{max_depth}")

        if not unlocked:
            return self, []
        return NumericUnlocks(max_depth=max_depth, rounds_by_depth=rounds_by_depth), unlocked
