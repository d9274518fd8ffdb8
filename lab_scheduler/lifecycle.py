from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime
from typing import Iterable

from .errors import Inconsistent, NotFound, ReservationStorageError
from .records import ReservationRecord, ReservationStatus
from .yaml_store import ReservationYamlRepository


@dataclass(frozen=True)
class IndexDivergence:
    owner_kind: str
    owner: str
    reservation_id: str
    problem: str


class ReservationLifecycle:
    """Status transitions, purge sweeps and the denormalized reservation lists.

    A reservation goes Active -> Expired -> removed. Expiry is observed only by
    ``sweep_expirations``; removal happens only in ``purge_expired`` (Expired
    rows) or ``cancel``. The laboratory and user ``reservation_ids`` lists follow
    the store, never the other way around.
    """

    def __init__(self, repository: ReservationYamlRepository) -> None:
        self.repository = repository

    def sweep_expirations(self, now: datetime, resource: str | None = None) -> list[str]:
        changed: list[ReservationRecord] = []
        with self.repository.lock:
            for record in self.repository.find_all():
                if resource is not None and record.resource != resource:
                    continue
                if record.status is ReservationStatus.ACTIVE and record.has_elapsed(now):
                    changed.append(record.expired())
            if changed:
                self.repository.save_many(changed)

        self._log_expired(changed, now)
        return [record.reservation_id for record in changed]

    def _log_expired(self, records: list[ReservationRecord], now: datetime) -> None:
        for record in records:
            self.repository.log_event(
                "RESERVATION_EXPIRED",
                {
                    "reservation_id": record.reservation_id,
                    "resource": record.resource,
                    "end": record.end.isoformat(timespec="minutes"),
                },
                now,
            )

    def expire_for_subject(self, username: str, now: datetime) -> list[str]:
        subject = self.repository.find_subject_by_username(username)
        if subject is None:
            raise NotFound(f"User not found: {username}")

        changed: list[ReservationRecord] = []
        with self.repository.lock:
            for reservation_id in subject.reservation_ids:
                record = self.repository.find_by_id(reservation_id)
                if record is None or not record.is_active or not record.has_elapsed(now):
                    continue
                self.repository.save(record.expired())
                changed.append(record)

        self._log_expired(changed, now)
        return [record.reservation_id for record in changed]

    def purge_expired(self, resource: str | None = None) -> list[str]:
        purged: list[str] = []
        for record in self.repository.find_all():
            if record.status is not ReservationStatus.EXPIRED:
                continue
            if resource is not None and record.resource != resource:
                continue
            try:
                with self.repository.lock:
                    if not self.repository.delete(record.reservation_id):
                        # Already purged by a concurrent sweep.
                        continue
                    self._detach(record)
            except ReservationStorageError as error:
                self.repository.log_event(
                    "PURGE_SKIPPED",
                    {"reservation_id": record.reservation_id, "reason": str(error)},
                )
                continue

            purged.append(record.reservation_id)
            self.repository.log_event(
                "RESERVATION_PURGED",
                {"reservation_id": record.reservation_id, "resource": record.resource, "username": record.username},
            )
        return purged

    def attach(self, record: ReservationRecord) -> None:
        self.attach_many([record])

    def attach_many(self, records: Iterable[ReservationRecord]) -> None:
        by_resource: dict[str, list[str]] = {}
        by_subject: dict[str, list[str]] = {}
        for record in records:
            by_resource.setdefault(record.resource, []).append(record.reservation_id)
            by_subject.setdefault(record.username, []).append(record.reservation_id)

        with self.repository.lock:
            for name, reservation_ids in by_resource.items():
                resource = self.repository.find_resource_by_name(name)
                if resource is None:
                    raise NotFound(f"Laboratory not found: {name}")
                resource.reservation_ids.extend(rid for rid in reservation_ids if rid not in resource.reservation_ids)
                self.repository.save_resource(resource)
            for username, reservation_ids in by_subject.items():
                subject = self.repository.find_subject_by_username(username)
                if subject is None:
                    raise NotFound(f"User not found: {username}")
                subject.reservation_ids.extend(rid for rid in reservation_ids if rid not in subject.reservation_ids)
                self.repository.save_subject(subject)

    def _detach(self, record: ReservationRecord) -> None:
        resource = self.repository.find_resource_by_name(record.resource)
        if resource is not None and record.reservation_id in resource.reservation_ids:
            resource.reservation_ids = [rid for rid in resource.reservation_ids if rid != record.reservation_id]
            self.repository.save_resource(resource)

        subject = self.repository.find_subject_by_username(record.username)
        if subject is not None and record.reservation_id in subject.reservation_ids:
            subject.reservation_ids = [rid for rid in subject.reservation_ids if rid != record.reservation_id]
            self.repository.save_subject(subject)

    def cancel(self, reservation_id: str, now: datetime | None = None) -> bool:
        """Remove a reservation everywhere and report whether the store row is gone.

        A row that survives the delete is reported as ``False``. A list that
        still names the id after the row is gone raises ``Inconsistent``.
        """
        if not reservation_id:
            raise ValueError("reservation_id must not be empty")

        with self.repository.lock:
            record = self.repository.find_by_id(reservation_id)
            if record is None:
                raise NotFound(f"Reservation not found: {reservation_id}")

            self._detach(record)
            self.repository.delete(reservation_id)
            removed = not self.repository.exists_by_id(reservation_id)

            if removed:
                leftovers = [
                    divergence
                    for divergence in self._divergences_for(record)
                    if divergence.problem == "dangling"
                ]
                if leftovers:
                    raise Inconsistent(
                        f"Reservation {reservation_id} is still listed by "
                        + ", ".join(f"{item.owner_kind} {item.owner}" for item in leftovers)
                    )

        self.repository.log_event(
            "RESERVATION_CANCELLED",
            {"reservation_id": reservation_id, "resource": record.resource, "verified": removed},
            now,
        )
        return removed

    def _divergences_for(self, record: ReservationRecord) -> list[IndexDivergence]:
        found: list[IndexDivergence] = []
        resource = self.repository.find_resource_by_name(record.resource)
        if resource is not None and record.reservation_id in resource.reservation_ids:
            found.append(IndexDivergence("resource", resource.name, record.reservation_id, "dangling"))
        subject = self.repository.find_subject_by_username(record.username)
        if subject is not None and record.reservation_id in subject.reservation_ids:
            found.append(IndexDivergence("subject", subject.username, record.reservation_id, "dangling"))
        return found

    def find_divergences(self) -> list[IndexDivergence]:
        """Compare every denormalized list with the canonical store."""
        records = {record.reservation_id: record for record in self.repository.find_all()}
        divergences: list[IndexDivergence] = []

        listed_by_resource: set[tuple[str, str]] = set()
        for resource in self.repository.get_resources():
            for reservation_id in resource.reservation_ids:
                record = records.get(reservation_id)
                if record is None or record.resource != resource.name:
                    divergences.append(IndexDivergence("resource", resource.name, reservation_id, "dangling"))
                else:
                    listed_by_resource.add((resource.name, reservation_id))

        listed_by_subject: set[tuple[str, str]] = set()
        for subject in self.repository.get_subjects():
            for reservation_id in subject.reservation_ids:
                record = records.get(reservation_id)
                if record is None or record.username != subject.username:
                    divergences.append(IndexDivergence("subject", subject.username, reservation_id, "dangling"))
                else:
                    listed_by_subject.add((subject.username, reservation_id))

        for reservation_id, record in records.items():
            if (record.resource, reservation_id) not in listed_by_resource:
                divergences.append(IndexDivergence("resource", record.resource, reservation_id, "missing"))
            if (record.username, reservation_id) not in listed_by_subject:
                divergences.append(IndexDivergence("subject", record.username, reservation_id, "missing"))
        return divergences

    def rebuild_indexes(self) -> int:
        """Recompute every laboratory and user list from the store; returns how many lists changed."""
        changed = 0
        with self.repository.lock:
            records = self.repository.find_all()
            for resource in self.repository.get_resources():
                expected = [record.reservation_id for record in records if record.resource == resource.name]
                if expected != resource.reservation_ids:
                    resource.reservation_ids = expected
                    self.repository.save_resource(resource)
                    changed += 1
            for subject in self.repository.get_subjects():
                expected = [record.reservation_id for record in records if record.username == subject.username]
                if expected != subject.reservation_ids:
                    subject.reservation_ids = expected
                    self.repository.save_subject(subject)
                    changed += 1

        if changed:
            self.repository.log_event("INDEXES_REBUILT", {"lists_changed": changed})
        return changed

    def clear_all(self) -> int:
        with self.repository.lock:
            removed = self.repository.delete_all()
            for resource in self.repository.get_resources():
                if resource.reservation_ids:
                    resource.reservation_ids = []
                    self.repository.save_resource(resource)
            for subject in self.repository.get_subjects():
                if subject.reservation_ids:
                    subject.reservation_ids = []
                    self.repository.save_subject(subject)

        self.repository.log_event("RESERVATIONS_CLEARED", {"count": removed})
        return removed
