"""Mouse-tracking unlock tree: difficulty ladder, simultaneous targets and rounds."""

from __future__ import annotations

from collections.abc import Mapping
from dataclasses import dataclass
from typing import Any

from mindgym.unlocks.common import PlayedConfig, advance_ladder, clamp, coerce_int, parse_ladder

DIFFICULTIES = ("easy", "medium", "hard", "hell")
MIN_TARGETS, MAX_TARGETS = 3, 9
MIN_ROUNDS, MAX_ROUNDS = 3, 5


@dataclass(frozen=True)
class MouseUnlocks:
    max_targets: int = MIN_TARGETS
    difficulties: tuple[str, ...] = (DIFFICULTIES[0],)
    max_rounds: int = MIN_ROUNDS

    @classmethod
    def from_payload(cls, raw: Mapping[str, Any]) -> MouseUnlocks:
        return cls(
            max_targets=clamp(coerce_int(raw.get("max_targets", raw.get("maxMice")), MIN_TARGETS), MIN_TARGETS, MAX_TARGETS),
            difficulties=parse_ladder(raw.get("difficulties"), DIFFICULTIES),
            max_rounds=clamp(coerce_int(raw.get("max_rounds", raw.get("maxRounds")), MIN_ROUNDS), MIN_ROUNDS, MAX_ROUNDS),
        )

    def to_payload(self) -> dict[str, Any]:
        return {
            "max_targets": self.max_targets,
            "difficulties": list(self.difficulties),
            "max_rounds": self.max_rounds,
        }

    def is_unlocked(self, cfg: PlayedConfig) -> bool:
        return (
            1 <= cfg.targets <= self.max_targets
            and 1 <= cfg.rounds <= self.max_rounds
            and cfg.difficulty in self.difficulties
        )

    def advance(self, cfg: PlayedConfig) -> tuple[MouseUnlocks, list[str]]:
        difficulties, unlocked = advance_ladder(self.difficulties, DIFFICULTIES, cfg.difficulty, "mouse_difficulty")
        max_targets = self.max_targets
        max_rounds = self.max_rounds

        if cfg.targets >= max_targets and max_targets < MAX_TARGETS:
            max_targets += 1
            unlocked.append(f"mouse_targets_{max_targets}")

        if max_rounds < MAX_ROUNDS:
            max_rounds += 1
            unlocked.append(f"mouse_rounds_{max_rounds}")

        if not unlocked:
            return self, []
        return MouseUnlocks(max_targets=max_targets, difficulties=difficulties, max_rounds=max_rounds), unlocked
