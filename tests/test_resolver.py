import unittest
from datetime import datetime, timedelta

from lab_scheduler import Exhausted, Interval, InvalidReservation, conflicts_with, find_conflicts, is_reservable, resolve


def _slot(day: int, start_hour: int, end_hour: int, month: int = 1, year: int = 2024) -> Interval:
    return Interval(datetime(year, month, day, start_hour, 0), datetime(year, month, day, end_hour, 0))


class TestConflictsWith(unittest.TestCase):
    def setUp(self) -> None:
        self.existing = _slot(10, 9, 11)

    def test_same_bounds_conflicts(self) -> None:
        self.assertTrue(conflicts_with(_slot(10, 9, 11), self.existing))

    def test_enclosed_candidate_conflicts(self) -> None:
        candidate = Interval(datetime(2024, 1, 10, 9, 30), datetime(2024, 1, 10, 10, 30))
        self.assertTrue(conflicts_with(candidate, self.existing))

    def test_back_to_back_is_allowed(self) -> None:
        self.assertFalse(conflicts_with(_slot(10, 11, 12), self.existing))
        self.assertFalse(conflicts_with(_slot(10, 8, 9), self.existing))

    def test_find_conflicts_lists_only_clashing_intervals(self) -> None:
        active = [self.existing, _slot(10, 13, 14), _slot(11, 9, 11)]
        conflicts = find_conflicts(_slot(10, 10, 14), active)

        self.assertEqual(conflicts, [self.existing, _slot(10, 13, 14)])

    def test_is_reservable_with_no_reservations(self) -> None:
        self.assertTrue(is_reservable(_slot(10, 9, 11), []))


class TestResolve(unittest.TestCase):
    def test_free_candidate_is_accepted_as_requested(self) -> None:
        resolution = resolve("Lab-A", _slot(10, 9, 11), [_slot(10, 11, 12)])

        self.assertEqual(resolution.strategy, "requested")
        self.assertEqual(resolution.interval, _slot(10, 9, 11))
        self.assertEqual(resolution.deferred_days, 0)

    def test_conflict_defers_to_next_day_same_clock_time(self) -> None:
        resolution = resolve("Lab-A", _slot(10, 9, 11), [_slot(10, 9, 11)])

        self.assertEqual(resolution.strategy, "deferred")
        self.assertEqual(resolution.interval, _slot(11, 9, 11))
        self.assertEqual(resolution.deferred_days, 1)

    def test_first_free_day_wins(self) -> None:
        active = [_slot(day, 9, 11) for day in range(10, 15)]
        resolution = resolve("Lab-A", _slot(10, 10, 12), active)

        self.assertEqual(resolution.interval, _slot(15, 10, 12))
        self.assertEqual(resolution.deferred_days, 5)

    def test_conflict_without_deferral_is_rejected(self) -> None:
        with self.assertRaises(InvalidReservation):
            resolve("Lab-A", _slot(10, 9, 11), [_slot(10, 9, 11)], defer=False)

    def test_deferral_exhausts_after_365_days(self) -> None:
        first = _slot(10, 9, 11)
        active = [first.shifted(timedelta(days=offset)) for offset in range(0, 366)]

        with self.assertRaises(Exhausted):
            resolve("Lab-A", first, active)

    def test_last_day_of_horizon_is_still_tried(self) -> None:
        first = _slot(10, 9, 11)
        active = [first.shifted(timedelta(days=offset)) for offset in range(0, 365)]

        resolution = resolve("Lab-A", first, active)

        self.assertEqual(resolution.deferred_days, 365)
        self.assertEqual(resolution.interval, first.shifted(timedelta(days=365)))

    def test_exhausted_is_an_invalid_reservation(self) -> None:
        self.assertTrue(issubclass(Exhausted, InvalidReservation))


if __name__ == "__main__":
    unittest.main()
