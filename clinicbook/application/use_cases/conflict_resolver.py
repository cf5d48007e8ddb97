from __future__ import annotations

from datetime import date
from typing import Iterable, Sequence

from clinicbook.application.ports.calendar_store import CalendarTransaction
from clinicbook.application.utils.time_parser import parse_hhmm
from clinicbook.domain.entities.appointment import Appointment, AppointmentStatus
from clinicbook.domain.entities.blocking import BlockedTimeSlot
from clinicbook.domain.entities.conflict import Conflict, ConflictKind


def intervals_overlap(a_start: int, a_end: int, b_start: int, b_end: int) -> bool:
    """Half-open overlap: [a_start, a_end) and [b_start, b_end) share at least one minute."""
    return a_start < b_end and b_start < a_end


def find_overlap(
    start_minute: int,
    duration_minutes: int,
    appointments: Iterable[Appointment],
    blocked_slots: Iterable[BlockedTimeSlot],
) -> Conflict | None:
    """First blocked slot or non-cancelled appointment overlapping the candidate, if any."""
    if duration_minutes <= 0:
        raise ValueError("duration must be positive")

    end_minute = start_minute + duration_minutes
    for slot in blocked_slots:
        if intervals_overlap(start_minute, end_minute, slot.start_minute, slot.end_minute):
            return Conflict(kind=ConflictKind.SLOT_BLOCKED, record=slot)
    for appointment in appointments:
        if appointment.status == AppointmentStatus.CANCELLED:
            continue
        if intervals_overlap(start_minute, end_minute, appointment.start_minute, appointment.end_minute):
            return Conflict(kind=ConflictKind.APPOINTMENT, record=appointment)
    return None


class ConflictResolver:
    """Decides availability of a candidate interval against one day of the calendar."""

    def check_conflict(
        self,
        view: CalendarTransaction,
        day: date,
        start_minute: int,
        duration_minutes: int,
        exclude_appointment_id: str | None = None,
    ) -> Conflict | None:
        if duration_minutes <= 0:
            raise ValueError("duration must be positive")

        blocked_day = view.get_blocked_date(day)
        if blocked_day is not None:
            return Conflict(kind=ConflictKind.DAY_BLOCKED, record=blocked_day)

        return find_overlap(
            start_minute,
            duration_minutes,
            appointments=view.list_appointments_on(day, exclude_id=exclude_appointment_id),
            blocked_slots=view.list_blocked_slots(day, day),
        )

    def available_times(
        self,
        view: CalendarTransaction,
        day: date,
        duration_minutes: int,
        bookable_times: Sequence[str],
        exclude_appointment_id: str | None = None,
    ) -> list[str]:
        if view.get_blocked_date(day) is not None:
            return []

        appointments = view.list_appointments_on(day, exclude_id=exclude_appointment_id)
        slots = view.list_blocked_slots(day, day)
        return [
            label
            for label in bookable_times
            if find_overlap(parse_hhmm(label), duration_minutes, appointments, slots) is None
        ]
