from __future__ import annotations

import threading


class ReservationIdGenerator:
    """Monotonically increasing reservation ids, never reused within a process."""

    def __init__(self, start: int = 0) -> None:
        if start < 0:
            raise ValueError("start must not be negative")
        self._last = start
        self._lock = threading.Lock()

    @property
    def last(self) -> int:
        return self._last

    def next_id(self) -> str:
        with self._lock:
            self._last += 1
            return str(self._last)

    def advance_past(self, value: int) -> None:
        # Only ever moves forward so ids handed out earlier stay unique.
        with self._lock:
            if value > self._last:
                self._last = value


_GENERATOR: ReservationIdGenerator | None = None
_GENERATOR_LOCK = threading.Lock()


def init_id_generator(start: int = 0) -> ReservationIdGenerator:
    """Create the process-wide generator, or move the existing one past ``start``."""
    global _GENERATOR
    with _GENERATOR_LOCK:
        if _GENERATOR is None:
            _GENERATOR = ReservationIdGenerator(start)
        else:
            _GENERATOR.advance_past(start)
        return _GENERATOR


def get_id_generator() -> ReservationIdGenerator:
    return init_id_generator(0)
