"""Energy regeneration clock.

Energy is a capped resource that regenerates one unit per recovery interval.
Recovery is computed lazily on every read/settlement with direct arithmetic,
so arbitrarily long absences cost O(1).
"""

from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime, timedelta, timezone

ENERGY_MAX = 5
RECOVERY_INTERVAL = timedelta(hours=4)


@dataclass(frozen=True)
class EnergyState:
    current: int
    last_updated: datetime | None


def as_utc(dt: datetime | None) -> datetime | None:
    """Attach UTC to naive datetimes (SQLite drops tzinfo on the way back)."""
    if dt is None or dt.tzinfo is not None:
        return dt
    return dt.replace(tzinfo=timezone.utc)


def is_unlimited(unlimited_until: datetime | None, now: datetime) -> bool:
    """True while an unlimited-energy window is still open."""
    until = as_utc(unlimited_until)
    return until is not None and until > now


def recover(
    current: int,
    last_updated: datetime | None,
    now: datetime,
    *,
    max_energy: int = ENERGY_MAX,
    interval: timedelta = RECOVERY_INTERVAL,
) -> EnergyState:
    """Apply regeneration between ``last_updated`` and ``now``.

    The clock advances by whole intervals only; the remainder is carried
    forward. Units recovered past the cap are still spent advancing the clock,
    so a full bar does not bank regeneration for later.
    """
    last = as_utc(last_updated) or now
    elapsed = max(timedelta(0), now - last)
    whole_units = elapsed // interval
    if whole_units <= 0:
        return EnergyState(current=current, last_updated=last_updated)

    return EnergyState(
        current=min(max_energy, current + whole_units),
        last_updated=last + interval * whole_units,
    )


def read_energy(
    current: int,
    last_updated: datetime | None,
    unlimited_until: datetime | None,
    now: datetime,
    *,
    max_energy: int = ENERGY_MAX,
    interval: timedelta = RECOVERY_INTERVAL,
) -> tuple[EnergyState, bool]:
    """Return the effective energy state and whether the account is unlimited.

    Unlimited accounts read as full and their clock is left untouched.
    """
    if is_unlimited(unlimited_until, now):
        return EnergyState(current=max_energy, last_updated=last_updated), True
    return recover(current, last_updated, now, max_energy=max_energy, interval=interval), False
