from __future__ import annotations

from dataclasses import dataclass, field, replace
from datetime import datetime
from enum import Enum
from typing import Any

from .interval import Interval


class ReservationStatus(str, Enum):
    ACTIVE = "active"
    EXPIRED = "expired"


@dataclass(frozen=True)
class ReservationRecord:
    reservation_id: str
    resource: str
    username: str
    start: datetime
    end: datetime
    purpose: str
    priority: int
    status: ReservationStatus
    created_at: datetime

    @property
    def interval(self) -> Interval:
        return Interval(self.start, self.end)

    @property
    def is_active(self) -> bool:
        return self.status is ReservationStatus.ACTIVE

    def has_elapsed(self, now: datetime) -> bool:
        return self.end < now

    def expired(self) -> "ReservationRecord":
        return replace(self, status=ReservationStatus.EXPIRED)

    def to_dict(self) -> dict[str, Any]:
        return {
            "reservation_id": self.reservation_id,
            "resource": self.resource,
            "username": self.username,
            "start": self.start.isoformat(timespec="minutes"),
            "end": self.end.isoformat(timespec="minutes"),
            "purpose": self.purpose,
            "priority": self.priority,
            "status": self.status.value,
            "created_at": self.created_at.isoformat(timespec="seconds"),
        }

    @staticmethod
    def from_dict(data: dict[str, Any]) -> "ReservationRecord":
        return ReservationRecord(
            reservation_id=str(data["reservation_id"]),
            resource=str(data["resource"]),
            username=str(data["username"]),
            start=datetime.fromisoformat(str(data["start"])),
            end=datetime.fromisoformat(str(data["end"])),
            purpose=str(data.get("purpose") or ""),
            priority=int(data.get("priority", 1)),
            status=ReservationStatus(str(data.get("status", ReservationStatus.ACTIVE.value))),
            created_at=datetime.fromisoformat(str(data["created_at"])),
        )


@dataclass
class ResourceRecord:
    """A bookable laboratory. ``reservation_ids`` mirrors the store and is never authoritative."""

    name: str
    reservation_ids: list[str] = field(default_factory=list)

    def to_dict(self) -> dict[str, Any]:
        return {"name": self.name, "reservation_ids": list(self.reservation_ids)}

    @staticmethod
    def from_dict(data: dict[str, Any]) -> "ResourceRecord":
        return ResourceRecord(
            name=str(data["name"]),
            reservation_ids=[str(value) for value in data.get("reservation_ids") or []],
        )


@dataclass
class SubjectRecord:
    username: str
    reservation_ids: list[str] = field(default_factory=list)

    def to_dict(self) -> dict[str, Any]:
        return {"username": self.username, "reservation_ids": list(self.reservation_ids)}

    @staticmethod
    def from_dict(data: dict[str, Any]) -> "SubjectRecord":
        return SubjectRecord(
            username=str(data["username"]),
            reservation_ids=[str(value) for value in data.get("reservation_ids") or []],
        )
