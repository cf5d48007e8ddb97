from __future__ import annotations

import threading
from contextlib import contextmanager
from datetime import date
from typing import Iterator

from clinicbook.application.exceptions import DuplicateRecordError
from clinicbook.application.ports.calendar_store import CalendarStorePort, CalendarTransaction
from clinicbook.domain.entities.appointment import Appointment, AppointmentStatus
from clinicbook.domain.entities.blocking import BlockedDate, BlockedTimeSlot
from clinicbook.domain.entities.prescription import Prescription


class MemoryCalendarStore(CalendarStorePort):
    """Process-local calendar. One lock covers a whole transaction, so transactions are serial."""

    def __init__(self) -> None:
        self._appointments: dict[str, Appointment] = {}
        self._blocked_dates: dict[str, BlockedDate] = {}
        self._blocked_slots: dict[str, BlockedTimeSlot] = {}
        self._prescriptions: dict[str, Prescription] = {}
        self._lock = threading.RLock()

    @contextmanager
    def transaction(self) -> Iterator[CalendarTransaction]:
        with self._lock:
            snapshot = (
                dict(self._appointments),
                dict(self._blocked_dates),
                dict(self._blocked_slots),
                dict(self._prescriptions),
            )
            try:
                yield _MemoryCalendarTransaction(self)
            except BaseException:
                self._appointments, self._blocked_dates, self._blocked_slots, self._prescriptions = snapshot
                raise


def _in_range(day: date, start: date | None, end: date | None) -> bool:
    if start is not None and day < start:
        return False
    if end is not None and day > end:
        return False
    return True


class _MemoryCalendarTransaction(CalendarTransaction):
    def __init__(self, store: MemoryCalendarStore) -> None:
        self._store = store

    def get_appointment(self, appointment_id: str) -> Appointment | None:
        return self._store._appointments.get(appointment_id)

    def list_appointments_on(self, day: date, exclude_id: str | None = None) -> list[Appointment]:
        found = [
            a
            for a in self._store._appointments.values()
            if a.date == day and a.status != AppointmentStatus.CANCELLED and a.id != exclude_id
        ]
        return sorted(found, key=lambda a: a.start_minute)

    def list_appointments(
        self,
        start: date | None = None,
        end: date | None = None,
        status: AppointmentStatus | None = None,
    ) -> list[Appointment]:
        found = [
            a
            for a in self._store._appointments.values()
            if _in_range(a.date, start, end) and (status is None or a.status == status)
        ]
        return sorted(found, key=lambda a: (a.date, a.start_minute))

    def find_live_for_phone(self, customer_phone: str) -> list[Appointment]:
        found = [a for a in self._store._appointments.values() if a.customer_phone == customer_phone and a.is_live]
        return sorted(found, key=lambda a: (a.date, a.start_minute))

    def find_active_for_conversation(self, conversation_id: str) -> Appointment | None:
        for appointment in self._store._appointments.values():
            if appointment.conversation_id == conversation_id and appointment.status != AppointmentStatus.CANCELLED:
                return appointment
        return None

    def add_appointment(self, appointment: Appointment) -> Appointment:
        self._store._appointments[appointment.id] = appointment
        return appointment

    def save_appointment(self, appointment: Appointment) -> Appointment:
        self._store._appointments[appointment.id] = appointment
        return appointment

    def delete_appointment(self, appointment_id: str) -> bool:
        return self._store._appointments.pop(appointment_id, None) is not None

    def cancel_live_for_phone(self, customer_phone: str, except_id: str | None = None) -> int:
        count = 0
        for appointment in self.find_live_for_phone(customer_phone):
            if appointment.id == except_id:
                continue
            self._store._appointments[appointment.id] = appointment.with_changes(status=AppointmentStatus.CANCELLED)
            count += 1
        return count

    def get_blocked_date(self, day: date) -> BlockedDate | None:
        for blocked in self._store._blocked_dates.values():
            if blocked.date == day:
                return blocked
        return None

    def get_blocked_date_by_id(self, blocked_id: str) -> BlockedDate | None:
        return self._store._blocked_dates.get(blocked_id)

    def list_blocked_dates(self, start: date | None = None, end: date | None = None) -> list[BlockedDate]:
        found = [b for b in self._store._blocked_dates.values() if _in_range(b.date, start, end)]
        return sorted(found, key=lambda b: b.date)

    def add_blocked_date(self, blocked: BlockedDate) -> BlockedDate:
        if self.get_blocked_date(blocked.date) is not None:
            raise DuplicateRecordError(f"date {blocked.date.isoformat()} is already blocked")
        self._store._blocked_dates[blocked.id] = blocked
        return blocked

    def save_blocked_date(self, blocked: BlockedDate) -> BlockedDate:
        self._store._blocked_dates[blocked.id] = blocked
        return blocked

    def delete_blocked_date(self, blocked_id: str) -> bool:
        return self._store._blocked_dates.pop(blocked_id, None) is not None

    def get_blocked_slot(self, slot_id: str) -> BlockedTimeSlot | None:
        return self._store._blocked_slots.get(slot_id)

    def list_blocked_slots(self, start: date | None = None, end: date | None = None) -> list[BlockedTimeSlot]:
        found = [s for s in self._store._blocked_slots.values() if _in_range(s.date, start, end)]
        return sorted(found, key=lambda s: (s.date, s.start_minute))

    def add_blocked_slot(self, slot: BlockedTimeSlot) -> BlockedTimeSlot:
        self._store._blocked_slots[slot.id] = slot
        return slot

    def save_blocked_slot(self, slot: BlockedTimeSlot) -> BlockedTimeSlot:
        self._store._blocked_slots[slot.id] = slot
        return slot

    def delete_blocked_slot(self, slot_id: str) -> bool:
        return self._store._blocked_slots.pop(slot_id, None) is not None

    def add_prescription(self, prescription: Prescription) -> Prescription:
        self._store._prescriptions[prescription.id] = prescription
        return prescription

    def list_prescriptions(self, patient_name: str | None = None) -> list[Prescription]:
        found = list(self._store._prescriptions.values())
        if patient_name:
            needle = patient_name.casefold()
            found = [p for p in found if needle in p.patient_name.casefold()]
        return sorted(found, key=lambda p: p.created_at, reverse=True)
