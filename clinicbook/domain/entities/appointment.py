from __future__ import annotations

from dataclasses import dataclass, replace
from datetime import date, datetime
from enum import Enum


class AppointmentStatus(str, Enum):
    PENDING = "PENDING"
    CONFIRMED = "CONFIRMED"
    COMPLETED = "COMPLETED"
    CANCELLED = "CANCELLED"


LIVE_STATUSES = (AppointmentStatus.PENDING, AppointmentStatus.CONFIRMED)


@dataclass(frozen=True)
class AppointmentCandidate:
    customer_name: str
    service: str
    date: date
    start_minute: int  # minutes since midnight
    duration_minutes: int
    notes: str | None = None
    status: AppointmentStatus = AppointmentStatus.CONFIRMED

    @property
    def end_minute(self) -> int:
        return self.start_minute + self.duration_minutes


@dataclass(frozen=True)
class Appointment:
    id: str
    customer_name: str
    customer_phone: str
    service: str
    date: date
    start_minute: int
    duration_minutes: int
    status: AppointmentStatus
    created_at: datetime
    updated_at: datetime
    notes: str | None = None
    conversation_id: str | None = None  # weak reference, used for idempotency only

    @property
    def end_minute(self) -> int:
        return self.start_minute + self.duration_minutes

    @property
    def time_label(self) -> str:
        return f"{self.start_minute // 60:02d}:{self.start_minute % 60:02d}"

    @property
    def is_live(self) -> bool:
        return self.status in LIVE_STATUSES

    def with_changes(self, **changes) -> "Appointment":
        return replace(self, **changes)

    def summary(self) -> str:
        return f"{self.service} on {self.date.isoformat()} at {self.time_label}"
