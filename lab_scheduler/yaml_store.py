from __future__ import annotations

from datetime import datetime
from pathlib import Path
from typing import Any, Iterable
import shutil
import threading

import yaml

from .errors import ReservationStorageError
from .records import ReservationRecord, ResourceRecord, SubjectRecord


class ReservationYamlRepository:
    """YAML-backed reservation store plus the laboratory and user directories.

    ``reservations.yaml`` is the canonical collection; the ``reservation_ids``
    lists kept in ``resources.yaml`` and ``subjects.yaml`` are derived views.
    Every read-modify-write runs under one re-entrant lock because each write
    replaces a whole file.
    """

    def __init__(self, base_dir: str | Path = "data") -> None:
        self.base_dir = Path(base_dir)
        self.reservations_file = self.base_dir / "reservations.yaml"
        self.resources_file = self.base_dir / "resources.yaml"
        self.subjects_file = self.base_dir / "subjects.yaml"
        self.log_file = self.base_dir / "reservation_events.yaml"
        self._lock = threading.RLock()
        self._ensure_files()

    @property
    def lock(self) -> threading.RLock:
        return self._lock

    def _ensure_files(self) -> None:
        self.base_dir.mkdir(parents=True, exist_ok=True)
        for path in (self.reservations_file, self.resources_file, self.subjects_file, self.log_file):
            if not path.exists():
                path.write_text("[]\n", encoding="utf-8")

    def _read_yaml_list(self, path: Path) -> list[dict[str, Any]]:
        try:
            payload = yaml.safe_load(path.read_text(encoding="utf-8"))
        except FileNotFoundError:
            path.write_text("[]\n", encoding="utf-8")
            return []
        except (OSError, UnicodeDecodeError, yaml.YAMLError) as error:
            self._recover_corrupted_yaml(path, error)
            return []

        if payload is None:
            return []
        if not isinstance(payload, list):
            self._recover_corrupted_yaml(path, ValueError("top-level YAML is not a list"))
            return []

        sanitized: list[dict[str, Any]] = []
        for index, row in enumerate(payload):
            if isinstance(row, dict):
                sanitized.append(row)
            elif path != self.log_file:
                self.log_event(
                    "YAML_ROW_SKIPPED",
                    {
                        "file": str(path.name),
                        "index": index,
                        "reason": "row is not a mapping",
                    },
                )
        return sanitized

    def _write_yaml_list(self, path: Path, rows: list[dict[str, Any]]) -> None:
        temp_path = path.with_suffix(path.suffix + ".tmp")
        try:
            temp_path.write_text(yaml.safe_dump(rows, allow_unicode=True, sort_keys=False), encoding="utf-8")
            temp_path.replace(path)
        except OSError as error:
            raise ReservationStorageError(f"Failed to write YAML file: {path}") from error
        finally:
            if temp_path.exists():
                temp_path.unlink(missing_ok=True)

    def _recover_corrupted_yaml(self, path: Path, error: Exception) -> None:
        timestamp = datetime.now().strftime("%Y%m%d%H%M%S")
        backup_path: Path | None = path.with_name(f"{path.stem}.corrupt.{timestamp}{path.suffix}")
        try:
            if path.exists():
                shutil.copy2(path, backup_path)
        except OSError:
            backup_path = None

        path.write_text("[]\n", encoding="utf-8")
        if path != self.log_file:
            self.log_event(
                "YAML_RECOVERED",
                {
                    "file": str(path.name),
                    "backup": str(backup_path.name) if backup_path is not None else None,
                    "reason": str(error),
                },
            )

    def log_event(self, event_type: str, payload: dict[str, Any], event_time: datetime | None = None) -> None:
        timestamp = (event_time or datetime.now()).isoformat(timespec="seconds")
        with self._lock:
            events = self._read_yaml_list(self.log_file)
            events.append({"event_time": timestamp, "event_type": event_type, "payload": payload})
            self._write_yaml_list(self.log_file, events)

    def get_events(self, event_type: str | None = None) -> list[dict[str, Any]]:
        events = self._read_yaml_list(self.log_file)
        if event_type is None:
            return events
        return [event for event in events if event.get("event_type") == event_type]

    # Reservations

    def find_all(self) -> list[ReservationRecord]:
        rows = self._read_yaml_list(self.reservations_file)
        return [ReservationRecord.from_dict(row) for row in rows]

    def find_by_id(self, reservation_id: str) -> ReservationRecord | None:
        for row in self._read_yaml_list(self.reservations_file):
            if str(row.get("reservation_id")) == reservation_id:
                return ReservationRecord.from_dict(row)
        return None

    def exists_by_id(self, reservation_id: str) -> bool:
        return self.find_by_id(reservation_id) is not None

    def find_by_resource_name(self, resource: str) -> list[ReservationRecord]:
        return [record for record in self.find_all() if record.resource == resource]

    def find_by_username(self, username: str) -> list[ReservationRecord]:
        return [record for record in self.find_all() if record.username == username]

    def find_in_range(self, start: datetime, end: datetime) -> list[ReservationRecord]:
        return [record for record in self.find_all() if record.start >= start and record.end <= end]

    def save(self, record: ReservationRecord) -> ReservationRecord:
        """Insert ``record`` or replace the row with the same id in place."""
        with self._lock:
            rows = self._read_yaml_list(self.reservations_file)
            for index, row in enumerate(rows):
                if str(row.get("reservation_id")) == record.reservation_id:
                    rows[index] = record.to_dict()
                    break
            else:
                rows.append(record.to_dict())
            self._write_yaml_list(self.reservations_file, rows)
        return record

    def save_many(self, records: Iterable[ReservationRecord]) -> list[ReservationRecord]:
        saved = list(records)
        with self._lock:
            rows = self._read_yaml_list(self.reservations_file)
            positions = {str(row.get("reservation_id")): index for index, row in enumerate(rows)}
            for record in saved:
                if record.reservation_id in positions:
                    rows[positions[record.reservation_id]] = record.to_dict()
                else:
                    positions[record.reservation_id] = len(rows)
                    rows.append(record.to_dict())
            self._write_yaml_list(self.reservations_file, rows)
        return saved

    def delete(self, reservation_id: str) -> bool:
        """Remove the row for ``reservation_id``; returns False when nothing was stored."""
        with self._lock:
            rows = self._read_yaml_list(self.reservations_file)
            remaining = [row for row in rows if str(row.get("reservation_id")) != reservation_id]
            if len(remaining) == len(rows):
                return False
            self._write_yaml_list(self.reservations_file, remaining)
            return True

    def delete_all(self) -> int:
        with self._lock:
            rows = self._read_yaml_list(self.reservations_file)
            self._write_yaml_list(self.reservations_file, [])
            return len(rows)

    def max_numeric_id(self) -> int:
        highest = 0
        for row in self._read_yaml_list(self.reservations_file):
            value = str(row.get("reservation_id", ""))
            if value.isdigit():
                highest = max(highest, int(value))
        return highest

    # Laboratories

    def get_resources(self) -> list[ResourceRecord]:
        return [ResourceRecord.from_dict(row) for row in self._read_yaml_list(self.resources_file)]

    def find_resource_by_name(self, name: str) -> ResourceRecord | None:
        for row in self._read_yaml_list(self.resources_file):
            if str(row.get("name")) == name:
                return ResourceRecord.from_dict(row)
        return None

    def save_resource(self, resource: ResourceRecord) -> ResourceRecord:
        with self._lock:
            rows = self._read_yaml_list(self.resources_file)
            _upsert(rows, "name", resource.name, resource.to_dict())
            self._write_yaml_list(self.resources_file, rows)
        return resource

    def register_resource(self, name: str) -> ResourceRecord:
        name = _normalize_name(name, "resource")
        with self._lock:
            existing = self.find_resource_by_name(name)
            if existing is not None:
                return existing
            return self.save_resource(ResourceRecord(name=name))

    # Users

    def get_subjects(self) -> list[SubjectRecord]:
        return [SubjectRecord.from_dict(row) for row in self._read_yaml_list(self.subjects_file)]

    def find_subject_by_username(self, username: str) -> SubjectRecord | None:
        for row in self._read_yaml_list(self.subjects_file):
            if str(row.get("username")) == username:
                return SubjectRecord.from_dict(row)
        return None

    def save_subject(self, subject: SubjectRecord) -> SubjectRecord:
        with self._lock:
            rows = self._read_yaml_list(self.subjects_file)
            _upsert(rows, "username", subject.username, subject.to_dict())
            self._write_yaml_list(self.subjects_file, rows)
        return subject

    def register_subject(self, username: str) -> SubjectRecord:
        username = _normalize_name(username, "username")
        with self._lock:
            existing = self.find_subject_by_username(username)
            if existing is not None:
                return existing
            return self.save_subject(SubjectRecord(username=username))


def _upsert(rows: list[dict[str, Any]], key: str, value: str, payload: dict[str, Any]) -> None:
    for index, row in enumerate(rows):
        if str(row.get(key)) == value:
            rows[index] = payload
            return
    rows.append(payload)


def _normalize_name(value: str | None, label: str) -> str:
    if value is None:
        raise ValueError(f"{label} must not be None")

    normalized = value.strip()
    if not normalized:
        raise ValueError(f"{label} must not be empty")
    return normalized
