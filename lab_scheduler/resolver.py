from __future__ import annotations

from dataclasses import dataclass
from datetime import timedelta
from typing import Iterable

from .errors import Exhausted, InvalidReservation
from .interval import Interval, overlaps, same_bounds, strictly_inside

DEFERRAL_STEP = timedelta(days=1)
DEFERRAL_HORIZON_DAYS = 365


@dataclass(frozen=True)
class Resolution:
    strategy: str
    resource: str
    interval: Interval
    deferred_days: int = 0


def conflicts_with(candidate: Interval, existing: Interval) -> bool:
    """Return True if ``candidate`` cannot be booked next to ``existing``.

    The half-open overlap test is paired with an exact-match / enclosed test;
    both are evaluated even though the second is mostly covered by the first.
    """
    if overlaps(existing, candidate):
        return True
    return same_bounds(existing, candidate) or strictly_inside(existing, candidate)


def find_conflicts(candidate: Interval, active: Iterable[Interval]) -> list[Interval]:
    return [existing for existing in active if conflicts_with(candidate, existing)]


def is_reservable(candidate: Interval, active: Iterable[Interval]) -> bool:
    for existing in active:
        if conflicts_with(candidate, existing):
            return False
    return True


def resolve(
    resource: str,
    candidate: Interval,
    active: Iterable[Interval],
    defer: bool = True,
) -> Resolution:
    """Accept ``candidate`` or push it forward one day at a time until it fits.

    ``active`` must hold the currently active intervals of ``resource`` only.
    The search is greedy: the first free day wins, other resources are never
    considered. Raises ``InvalidReservation`` when deferral is disabled and
    ``Exhausted`` once the shifted start passes the 365-day horizon.
    """
    booked = list(active)
    if is_reservable(candidate, booked):
        return Resolution(strategy="requested", resource=resource, interval=candidate)

    if not defer:
        raise InvalidReservation(f"Reservation overlaps with an existing active reservation on {resource}.")

    horizon = candidate.start + timedelta(days=DEFERRAL_HORIZON_DAYS)
    shifted = candidate
    days = 0
    while True:
        shifted = shifted.shifted(DEFERRAL_STEP)
        days += 1
        if shifted.start > horizon:
            raise Exhausted(
                f"No available slot on {resource} within {DEFERRAL_HORIZON_DAYS} days of "
                f"{candidate.start.isoformat(timespec='minutes')}."
            )
        if is_reservable(shifted, booked):
            return Resolution(strategy="deferred", resource=resource, interval=shifted, deferred_days=days)
