from __future__ import annotations

from contextlib import ExitStack
from dataclasses import dataclass
from datetime import datetime, timedelta
from typing import Callable
import random
import threading

from .errors import InvalidReservation, NotFound, ReservationError, ReservationStorageError
from .ids import ReservationIdGenerator, init_id_generator
from .interval import Interval
from .lifecycle import ReservationLifecycle
from .records import ReservationRecord, ReservationStatus
from .resolver import is_reservable, resolve
from .yaml_store import ReservationYamlRepository

MIN_PRIORITY = 1
MAX_PRIORITY = 5
RANDOM_WINDOW_DAYS = 30
MIN_RANDOM_RESERVATIONS = 100
MAX_RANDOM_RESERVATIONS = 1000


@dataclass(frozen=True)
class HousekeepingReport:
    expired: list[str]
    purged: list[str]


class SchedulingService:
    def __init__(
        self,
        repository: ReservationYamlRepository,
        now_provider: Callable[[], datetime] | None = None,
        id_generator: ReservationIdGenerator | None = None,
    ) -> None:
        self.repository = repository
        self.lifecycle = ReservationLifecycle(repository)
        self.clock: Callable[[], datetime] = now_provider or datetime.now
        self.ids = id_generator or init_id_generator()
        self.ids.advance_past(repository.max_numeric_id())
        self._resource_locks: dict[str, threading.Lock] = {}
        self._locks_guard = threading.Lock()

    def _lock_for(self, resource: str) -> threading.Lock:
        with self._locks_guard:
            lock = self._resource_locks.get(resource)
            if lock is None:
                lock = threading.Lock()
                self._resource_locks[resource] = lock
            return lock

    def run_housekeeping(self, now: datetime | None = None, resource: str | None = None) -> HousekeepingReport:
        effective_now = now or self.clock()
        expired = self.lifecycle.sweep_expirations(effective_now, resource=resource)
        purged = self.lifecycle.purge_expired(resource=resource)
        return HousekeepingReport(expired=expired, purged=purged)

    def active_intervals(self, resource: str, now: datetime) -> list[Interval]:
        return [
            record.interval
            for record in self.repository.find_by_resource_name(resource)
            if record.is_active and not record.has_elapsed(now)
        ]

    def create_reservation(
        self,
        resource: str,
        username: str,
        start: datetime,
        end: datetime,
        purpose: str = "",
        priority: int = MIN_PRIORITY,
        defer: bool = True,
        now: datetime | None = None,
    ) -> ReservationRecord:
        candidate = Interval(start, end)
        _validate_priority(priority)

        if self.repository.find_resource_by_name(resource) is None:
            raise NotFound(f"Laboratory not found: {resource}")
        if self.repository.find_subject_by_username(username) is None:
            raise NotFound(f"User not found: {username}")

        effective_now = now or self.clock()
        self.run_housekeeping(effective_now)

        with self._lock_for(resource):
            resolution = resolve(resource, candidate, self.active_intervals(resource, effective_now), defer=defer)
            record = ReservationRecord(
                reservation_id=self.ids.next_id(),
                resource=resource,
                username=username,
                start=resolution.interval.start,
                end=resolution.interval.end,
                purpose=purpose,
                priority=priority,
                status=ReservationStatus.ACTIVE,
                created_at=effective_now,
            )
            self.repository.save(record)
            self.lifecycle.attach(record)

        if resolution.deferred_days:
            self.repository.log_event(
                "RESERVATION_DEFERRED",
                {
                    "reservation_id": record.reservation_id,
                    "requested_start": candidate.start.isoformat(timespec="minutes"),
                    "start": record.start.isoformat(timespec="minutes"),
                    "deferred_days": resolution.deferred_days,
                },
                effective_now,
            )
        self.repository.log_event(
            "RESERVATION_CREATED",
            {
                "reservation_id": record.reservation_id,
                "resource": resource,
                "username": username,
                "start": record.start.isoformat(timespec="minutes"),
                "end": record.end.isoformat(timespec="minutes"),
                "priority": priority,
            },
            effective_now,
        )
        return record

    def is_resource_available(
        self,
        resource: str,
        start: datetime,
        end: datetime,
        now: datetime | None = None,
    ) -> bool:
        candidate = Interval(start, end)
        return is_reservable(candidate, self.active_intervals(resource, now or self.clock()))

    def list_in_range(self, start: datetime, end: datetime) -> list[ReservationRecord]:
        if start > end:
            raise InvalidReservation("Range start must not be after range end.")
        return self.repository.find_in_range(start, end)

    def list_reservations(self) -> list[ReservationRecord]:
        return self.repository.find_all()

    def get_reservation(self, reservation_id: str) -> ReservationRecord:
        record = self.repository.find_by_id(reservation_id)
        if record is None:
            raise NotFound(f"Reservation not found: {reservation_id}")
        return record

    def cancel_reservation(self, reservation_id: str) -> bool:
        record = self.get_reservation(reservation_id)
        with self._lock_for(record.resource):
            return self.lifecycle.cancel(reservation_id, now=self.clock())

    def reservations_for_resource(self, resource: str) -> list[ReservationRecord]:
        lab = self.repository.find_resource_by_name(resource)
        if lab is None:
            raise NotFound(f"Laboratory not found: {resource}")
        return self._resolve_ids(lab.reservation_ids)

    def reservations_for_subject(
        self,
        username: str,
        active_only: bool = False,
        now: datetime | None = None,
    ) -> list[ReservationRecord]:
        subject = self.repository.find_subject_by_username(username)
        if subject is None:
            raise NotFound(f"User not found: {username}")

        records = self._resolve_ids(subject.reservation_ids)
        if active_only:
            effective_now = now or self.clock()
            records = [record for record in records if self.is_reservation_current(record, effective_now)]
        return records

    def _resolve_ids(self, reservation_ids: list[str]) -> list[ReservationRecord]:
        # Ids without a stored row are stale list entries; the store wins.
        by_id = {record.reservation_id: record for record in self.repository.find_all()}
        return [by_id[reservation_id] for reservation_id in reservation_ids if reservation_id in by_id]

    def is_reservation_current(self, record: ReservationRecord, now: datetime | None = None) -> bool:
        return (now or self.clock()) < record.end

    def delete_all_reservations(self) -> int:
        return self.lifecycle.clear_all()

    def seed_random_reservations(
        self,
        min_count: int = MIN_RANDOM_RESERVATIONS,
        max_count: int = MAX_RANDOM_RESERVATIONS,
        now: datetime | None = None,
        seed: int | str | None = None,
    ) -> list[ReservationRecord]:
        """Book random 2-4 hour slots over the next 30 days across every lab and user.

        Busy slots are skipped rather than deferred. Records are written in one
        batch and then attached to the lab and user lists.
        """
        if min_count <= 0:
            raise ValueError("min_count must be greater than zero")

        resources = [resource.name for resource in self.repository.get_resources()]
        if not resources:
            raise InvalidReservation("No laboratories found for generating reservations")
        usernames = [subject.username for subject in self.repository.get_subjects()]
        if not usernames:
            raise InvalidReservation("No users found for generating reservations")

        target = max(min_count, min(max_count, MAX_RANDOM_RESERVATIONS))
        effective_now = now or self.clock()
        rng = random.Random(seed)

        generated: list[ReservationRecord] = []
        with ExitStack() as stack:
            # Every lab stays locked from the snapshot to the batch write.
            for resource in sorted(resources):
                stack.enter_context(self._lock_for(resource))

            booked: dict[str, list[Interval]] = {
                resource: self.active_intervals(resource, effective_now) for resource in resources
            }
            attempts = 0
            max_attempts = target * 20
            while len(generated) < target and attempts < max_attempts:
                attempts += 1
                resource = rng.choice(resources)
                start = effective_now + timedelta(days=rng.randrange(RANDOM_WINDOW_DAYS))
                candidate = Interval(start, start + timedelta(hours=2 + rng.randrange(3)))
                if not is_reservable(candidate, booked[resource]):
                    continue

                booked[resource].append(candidate)
                generated.append(
                    ReservationRecord(
                        reservation_id=self.ids.next_id(),
                        resource=resource,
                        username=rng.choice(usernames),
                        start=candidate.start,
                        end=candidate.end,
                        purpose="Random reservation",
                        priority=rng.randint(MIN_PRIORITY, MAX_PRIORITY),
                        status=ReservationStatus.ACTIVE,
                        created_at=effective_now,
                    )
                )

            with self.repository.lock:
                self.repository.save_many(generated)
                self.lifecycle.attach_many(generated)

        self.repository.log_event(
            "TEST_DATA_GENERATED",
            {
                "count": len(generated),
                "requested": target,
                "resources": len(resources),
                "users": len(usernames),
                "date_window_days": RANDOM_WINDOW_DAYS,
            },
            effective_now,
        )
        return generated


class HousekeepingTimer:
    """Runs expire-then-purge on a daemon thread every ``interval_seconds``."""

    def __init__(self, service: SchedulingService, interval_seconds: float = 60.0) -> None:
        if interval_seconds <= 0:
            raise ValueError("interval_seconds must be greater than zero")
        self.service = service
        self.interval_seconds = interval_seconds
        self.runs = 0
        self.failures = 0
        self._stop = threading.Event()
        self._thread: threading.Thread | None = None

    @property
    def is_running(self) -> bool:
        return self._thread is not None and self._thread.is_alive()

    def start(self) -> None:
        if self.is_running:
            return
        self._stop.clear()
        self._thread = threading.Thread(target=self._run, name="lab-scheduler-housekeeping", daemon=True)
        self._thread.start()

    def stop(self, timeout: float | None = None) -> None:
        self._stop.set()
        if self._thread is not None:
            self._thread.join(timeout)
            self._thread = None

    def _run(self) -> None:
        while not self._stop.wait(self.interval_seconds):
            try:
                self.service.run_housekeeping()
            except (ReservationError, ReservationStorageError) as error:
                self.failures += 1
                self.service.repository.log_event(
                    "HOUSEKEEPING_FAILED",
                    {"error": type(error).__name__, "reason": str(error)},
                )
                continue
            self.runs += 1


def _validate_priority(priority: int) -> None:
    if isinstance(priority, bool) or not isinstance(priority, int):
        raise InvalidReservation("priority must be an integer")
    if not MIN_PRIORITY <= priority <= MAX_PRIORITY:
        raise InvalidReservation(f"priority must be between {MIN_PRIORITY} and {MAX_PRIORITY}")
