"""House-counting unlock tree: speed ladder, initial occupants, event count and rounds."""

from __future__ import annotations

from collections.abc import Mapping
from dataclasses import dataclass
from typing import Any

from mindgym.unlocks.common import PlayedConfig, advance_ladder, clamp, coerce_int, parse_ladder

SPEEDS = ("easy", "normal", "fast")
MIN_INITIAL, MAX_INITIAL = 3, 7
MIN_EVENTS, MAX_EVENTS, EVENT_STEP = 6, 24, 3
MIN_ROUNDS, MAX_ROUNDS = 3, 5


@dataclass(frozen=True)
class HouseUnlocks:
    speeds: tuple[str, ...] = (SPEEDS[0],)
    max_initial_count: int = MIN_INITIAL
    max_events: int = MIN_EVENTS
    max_rounds: int = MIN_ROUNDS

    @classmethod
    def from_payload(cls, raw: Mapping[str, Any]) -> HouseUnlocks:
        initial = raw.get("max_initial_count", raw.get("maxInitialPeople"))
        events = raw.get("max_events", raw.get("maxEvents"))
        rounds = raw.get("max_rounds", raw.get("maxRounds"))
        return cls(
            speeds=parse_ladder(raw.get("speeds"), SPEEDS),
            max_initial_count=clamp(coerce_int(initial, MIN_INITIAL), MIN_INITIAL, MAX_INITIAL),
            max_events=clamp(coerce_int(events, MIN_EVENTS), MIN_EVENTS, MAX_EVENTS),
            max_rounds=clamp(coerce_int(rounds, MIN_ROUNDS), MIN_ROUNDS, MAX_ROUNDS),
        )

    def to_payload(self) -> dict[str, Any]:
        return {
            "speeds": list(self.speeds),
            "max_initial_count": self.max_initial_count,
            "max_events": self.max_events,
            "max_rounds": self.max_rounds,
        }

    def is_unlocked(self, cfg: PlayedConfig) -> bool:
        return (
            cfg.speed in self.speeds
            and 1 <= cfg.initial_count <= self.max_initial_count
            and 1 <= cfg.event_count <= self.max_events
            and 1 <= cfg.rounds <= self.max_rounds
        )

    def advance(self, cfg: PlayedConfig) -> tuple[HouseUnlocks, list[str]]:
        speeds, unlocked = advance_ladder(self.speeds, SPEEDS, cfg.speed, "house_speed")
        max_initial = self.max_initial_count
        max_events = self.max_events
        max_rounds = self.max_rounds

        if cfg.initial_count >= max_initial and max_initial < MAX_INITIAL:
            max_initial += 1
            unlocked.append(f"house_initial_{max_initial}")

        if cfg.event_count >= max_events and max_events < MAX_EVENTS:
            max_events = min(MAX_EVENTS, max_events + EVENT_STEP)
            unlocked.append(f"house_events_{max_events}")

        if max_rounds < MAX_ROUNDS:
            max_rounds += 1
            unlocked.append(f"house_rounds_{max_rounds}")

        if not unlocked:
            return self, []
        return (
            HouseUnlocks(speeds=speeds, max_initial_count=max_initial, max_events=max_events, max_rounds=max_rounds),
            unlocked,
        )
