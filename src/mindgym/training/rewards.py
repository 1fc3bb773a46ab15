"""Session reward formulas: score, XP, currency and daily bonuses.

All functions are pure; the settlement transaction supplies the facts that
require storage (first session of the day, first perfect session of the day).
"""

from __future__ import annotations

import math
from dataclasses import dataclass, field

SESSION_CURRENCY_CAP = 100
CURRENCY_PER_SCORE = 0.05
FIRST_SESSION_OF_DAY_BONUS = 10
FIRST_PERFECT_OF_DAY_BONUS = 25
UNLOCK_BONUS = 5
PERFECT_ACCURACY = 100.0


def round_half_up(value: float) -> int:
    """Round .5 away from zero for non-negative values (banker's rounding would drift)."""
    return math.floor(value + 0.5)


def compute_score(accuracy: float, depth: int, rounds: int) -> int:
    return round_half_up(accuracy * depth * rounds / 10)


def compute_xp(accuracy: float, depth: int, rounds: int) -> int:
    depth_coeff = 1 + (depth - 1) * 0.2
    length_coeff = 1.5 if rounds >= 20 else 1.0
    return round_half_up(20 * (depth_coeff + length_coeff) * accuracy / 100)


def compute_currency(score: int) -> int:
    return max(0, min(SESSION_CURRENCY_CAP, round_half_up(score * CURRENCY_PER_SCORE)))


@dataclass(frozen=True)
class RewardBreakdown:
    score: int
    xp: int
    currency: int
    bonuses: dict[str, int] = field(default_factory=dict)

    @property
    def currency_total(self) -> int:
        return self.currency + sum(self.bonuses.values())

    def as_dict(self) -> dict:
        return {
            "score": self.score,
            "xp_earned": self.xp,
            "currency_earned": self.currency,
            "bonuses": dict(self.bonuses),
            "currency_total": self.currency_total,
        }


def compute_rewards(
    *,
    score: int,
    accuracy: float,
    depth: int,
    rounds: int,
    first_session_today: bool,
    first_perfect_today: bool,
    newly_unlocked_count: int,
) -> RewardBreakdown:
    """Combine the base formulas with the independently gated bonuses.

    ``first_perfect_today`` must already reflect whether *this* session is a
    100% clear; the caller checks the session log for an earlier one.
    """
    bonuses = {
        "first_session_of_day": FIRST_SESSION_OF_DAY_BONUS if first_session_today else 0,
        "first_perfect_of_day": FIRST_PERFECT_OF_DAY_BONUS if first_perfect_today else 0,
        "unlocks": UNLOCK_BONUS * max(0, newly_unlocked_count),
    }
    return RewardBreakdown(
        score=score,
        xp=compute_xp(accuracy, depth, rounds),
        currency=compute_currency(score),
        bonuses=bonuses,
    )
