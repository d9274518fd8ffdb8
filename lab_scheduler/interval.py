from dataclasses import dataclass
from datetime import datetime, timedelta

from .errors import InvalidReservation


@dataclass(frozen=True)
class Interval:
    start: datetime
    end: datetime

    def __post_init__(self) -> None:
        if self.start >= self.end:
            raise InvalidReservation("Reservation start time must be earlier than end time.")

    def shifted(self, delta: timedelta) -> "Interval":
        return Interval(self.start + delta, self.end + delta)

    def within(self, range_start: datetime, range_end: datetime) -> bool:
        """Return True when the interval lies inside [range_start, range_end], both ends inclusive."""
        return self.start >= range_start and self.end <= range_end

    @property
    def duration(self) -> timedelta:
        return self.end - self.start


def overlaps(a: Interval, b: Interval) -> bool:
    """Return True when two intervals intersect.

    Intervals are treated as half-open ranges: [start, end)
    so touching boundaries (e.g. 10:00-11:00 and 11:00-12:00) do not overlap.
    """
    return a.start < b.end and b.start < a.end


def contains(outer: Interval, inner: Interval) -> bool:
    """Return True if ``outer`` fully encloses ``inner`` (shared boundaries allowed)."""
    return outer.start <= inner.start and outer.end >= inner.end


def same_bounds(a: Interval, b: Interval) -> bool:
    return a.start == b.start and a.end == b.end


def strictly_inside(outer: Interval, inner: Interval) -> bool:
    return inner.start > outer.start and inner.end < outer.end
