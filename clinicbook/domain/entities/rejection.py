from __future__ import annotations

from dataclasses import dataclass
from typing import Union

from clinicbook.domain.entities.appointment import Appointment


@dataclass(frozen=True)
class DateBlocked:
    date: str
    reason: str | None = None


@dataclass(frozen=True)
class SlotBlocked:
    reason: str | None = None
    blocked_range: str | None = None  # "HH:MM-HH:MM"


@dataclass(frozen=True)
class TimeConflict:
    existing_summary: str


@dataclass(frozen=True)
class AlreadyScheduled:
    appointment_id: str


@dataclass(frozen=True)
class InvalidTime:
    time: str
    allowed: tuple[str, ...]


@dataclass(frozen=True)
class ValidationError:
    field: str
    message: str = ""


@dataclass(frozen=True)
class NotFound:
    entity: str
    id: str


Rejection = Union[
    DateBlocked,
    SlotBlocked,
    TimeConflict,
    AlreadyScheduled,
    InvalidTime,
    ValidationError,
    NotFound,
]

REJECTION_TYPES = (
    DateBlocked,
    SlotBlocked,
    TimeConflict,
    AlreadyScheduled,
    InvalidTime,
    ValidationError,
    NotFound,
)


@dataclass(frozen=True)
class BookingOutcome:
    appointment: Appointment
    rescheduled: bool = False  # prior live appointments were superseded


def is_rejection(value: object) -> bool:
    return isinstance(value, REJECTION_TYPES)
