import tempfile
import unittest
from datetime import datetime
from pathlib import Path

from lab_scheduler import ReservationRecord, ReservationStatus, ReservationYamlRepository, ResourceRecord


def _record(reservation_id: str, resource: str = "Lab-A", day: int = 10, start_hour: int = 9, end_hour: int = 11) -> ReservationRecord:
    return ReservationRecord(
        reservation_id=reservation_id,
        resource=resource,
        username="alice",
        start=datetime(2024, 1, day, start_hour, 0),
        end=datetime(2024, 1, day, end_hour, 0),
        purpose="Chemistry practice",
        priority=3,
        status=ReservationStatus.ACTIVE,
        created_at=datetime(2024, 1, 1, 8, 0),
    )


class TestReservationYamlRepository(unittest.TestCase):
    def test_save_and_find_round_trip_keeps_fields(self) -> None:
        with tempfile.TemporaryDirectory() as temp_dir:
            repo = ReservationYamlRepository(Path(temp_dir) / "data")
            repo.save(_record("1"))

            found = repo.find_by_id("1")

            self.assertEqual(found, _record("1"))
            self.assertTrue(repo.exists_by_id("1"))
            self.assertFalse(repo.exists_by_id("2"))

    def test_save_replaces_in_place_and_keeps_insertion_order(self) -> None:
        with tempfile.TemporaryDirectory() as temp_dir:
            repo = ReservationYamlRepository(Path(temp_dir) / "data")
            repo.save(_record("1"))
            repo.save(_record("2", day=11))
            repo.save(_record("1").expired())

            records = repo.find_all()

            self.assertEqual([record.reservation_id for record in records], ["1", "2"])
            self.assertEqual(records[0].status, ReservationStatus.EXPIRED)

    def test_find_by_resource_and_range(self) -> None:
        with tempfile.TemporaryDirectory() as temp_dir:
            repo = ReservationYamlRepository(Path(temp_dir) / "data")
            repo.save_many([_record("1"), _record("2", resource="Lab-B"), _record("3", day=12)])

            self.assertEqual([r.reservation_id for r in repo.find_by_resource_name("Lab-A")], ["1", "3"])
            in_range = repo.find_in_range(datetime(2024, 1, 10, 9, 0), datetime(2024, 1, 11, 0, 0))
            self.assertEqual([r.reservation_id for r in in_range], ["1", "2"])

    def test_delete_reports_whether_row_existed(self) -> None:
        with tempfile.TemporaryDirectory() as temp_dir:
            repo = ReservationYamlRepository(Path(temp_dir) / "data")
            repo.save(_record("1"))

            self.assertTrue(repo.delete("1"))
            self.assertFalse(repo.delete("1"))
            self.assertEqual(repo.find_all(), [])

    def test_max_numeric_id(self) -> None:
        with tempfile.TemporaryDirectory() as temp_dir:
            repo = ReservationYamlRepository(Path(temp_dir) / "data")
            self.assertEqual(repo.max_numeric_id(), 0)

            repo.save_many([_record("7"), _record("12", day=11), _record("legacy", day=12)])

            self.assertEqual(repo.max_numeric_id(), 12)

    def test_register_resource_is_idempotent(self) -> None:
        with tempfile.TemporaryDirectory() as temp_dir:
            repo = ReservationYamlRepository(Path(temp_dir) / "data")
            repo.register_resource(" Lab-A ")
            repo.save_resource(ResourceRecord(name="Lab-A", reservation_ids=["1"]))
            again = repo.register_resource("Lab-A")

            self.assertEqual(again.reservation_ids, ["1"])
            self.assertEqual(len(repo.get_resources()), 1)

    def test_register_rejects_blank_names(self) -> None:
        with tempfile.TemporaryDirectory() as temp_dir:
            repo = ReservationYamlRepository(Path(temp_dir) / "data")
            with self.assertRaises(ValueError):
                repo.register_resource("   ")
            with self.assertRaises(ValueError):
                repo.register_subject("")

    def test_subject_directory(self) -> None:
        with tempfile.TemporaryDirectory() as temp_dir:
            repo = ReservationYamlRepository(Path(temp_dir) / "data")
            repo.register_subject("alice")

            self.assertIsNotNone(repo.find_subject_by_username("alice"))
            self.assertIsNone(repo.find_subject_by_username("bob"))

    def test_log_event_appends_entries(self) -> None:
        with tempfile.TemporaryDirectory() as temp_dir:
            repo = ReservationYamlRepository(Path(temp_dir) / "data")
            repo.log_event("RESERVATION_CREATED", {"reservation_id": "1"}, datetime(2024, 1, 1, 8, 0))

            events = repo.get_events("RESERVATION_CREATED")

            self.assertEqual(len(events), 1)
            self.assertEqual(events[0]["event_time"], "2024-01-01T08:00:00")

    def test_corrupted_yaml_is_recovered(self) -> None:
        with tempfile.TemporaryDirectory() as temp_dir:
            data_dir = Path(temp_dir) / "data"
            repo = ReservationYamlRepository(data_dir)
            reservations_path = data_dir / "reservations.yaml"
            reservations_path.write_text("this: [is: invalid", encoding="utf-8")

            records = repo.find_all()

            self.assertEqual(records, [])
            self.assertIn("[]", reservations_path.read_text(encoding="utf-8"))
            self.assertEqual(len(repo.get_events("YAML_RECOVERED")), 1)
            self.assertEqual(len(list(data_dir.glob("reservations.corrupt.*.yaml"))), 1)

    def test_non_mapping_rows_are_skipped(self) -> None:
        with tempfile.TemporaryDirectory() as temp_dir:
            data_dir = Path(temp_dir) / "data"
            repo = ReservationYamlRepository(data_dir)
            repo.save(_record("1"))
            text = (data_dir / "reservations.yaml").read_text(encoding="utf-8")
            (data_dir / "reservations.yaml").write_text(text + "- just a string\n", encoding="utf-8")

            self.assertEqual(len(repo.find_all()), 1)
            self.assertEqual(len(repo.get_events("YAML_ROW_SKIPPED")), 1)


if __name__ == "__main__":
    unittest.main()
