from __future__ import annotations

import calendar
import logging
from collections import Counter
from dataclasses import dataclass, field
from datetime import date, datetime, timedelta
from typing import Callable

from clinicbook.application.exceptions import DuplicateRecordError, WriteConflictError
from clinicbook.application.ports.calendar_store import CalendarStorePort
from clinicbook.application.ports.session_store import SessionStorePort
from clinicbook.application.use_cases.booking import (
    RACE_LOST_SUMMARY,
    BookingLifecycleManager,
    new_id,
    utc_now,
    validate_slot,
)
from clinicbook.application.utils.time_parser import format_minutes, parse_hhmm
from clinicbook.domain.entities.appointment import Appointment, AppointmentCandidate, AppointmentStatus
from clinicbook.domain.entities.blocking import BlockedDate, BlockedTimeSlot
from clinicbook.domain.entities.conversation import Conversation
from clinicbook.domain.entities.message import Message
from clinicbook.domain.entities.prescription import Prescription
from clinicbook.domain.entities.rejection import (
    BookingOutcome,
    NotFound,
    Rejection,
    TimeConflict,
    ValidationError,
)


@dataclass(frozen=True)
class AppointmentChanges:
    """Fields an administrator may change; None leaves the field as is."""

    customer_name: str | None = None
    customer_phone: str | None = None
    service: str | None = None
    date: date | None = None
    time: str | None = None
    duration_minutes: int | None = None
    status: AppointmentStatus | None = None
    notes: str | None = None


@dataclass(frozen=True)
class MonthView:
    year: int
    month: int
    appointments: dict[str, list[Appointment]]
    total: int


@dataclass(frozen=True)
class DashboardStats:
    total_appointments: int
    appointments_this_month: int
    appointments_by_status: dict[str, int]
    top_services: list[tuple[str, int]]
    popular_times: list[tuple[str, int]]
    upcoming_appointments: list[Appointment] = field(default_factory=list)
    total_conversations: int = 0


class CalendarAdminUseCase:
    """
    Direct calendar management for clinic staff.

    Appointments written here go through the same conflict checks as
    conversation bookings; only the bookable-times restriction is skipped.
    """

    def __init__(
        self,
        calendar: CalendarStorePort,
        sessions: SessionStorePort,
        booking: BookingLifecycleManager,
        default_duration_minutes: int = 30,
        clock: Callable[[], datetime] = utc_now,
    ) -> None:
        self._calendar = calendar
        self._sessions = sessions
        self._booking = booking
        self._default_duration = default_duration_minutes
        self._clock = clock
        self._logger = logging.getLogger(__name__)

    # Appointments

    def list_appointments(
        self,
        start: date | None = None,
        end: date | None = None,
        status: AppointmentStatus | None = None,
    ) -> list[Appointment]:
        with self._calendar.transaction() as tx:
            return tx.list_appointments(start, end, status)

    def get_appointment(self, appointment_id: str) -> Appointment | NotFound:
        with self._calendar.transaction() as tx:
            found = tx.get_appointment(appointment_id)
        return found if found is not None else NotFound(entity="appointment", id=appointment_id)

    def create_appointment(
        self,
        customer_name: str,
        customer_phone: str,
        service: str,
        day: date,
        time: str,
        duration_minutes: int | None = None,
        status: AppointmentStatus = AppointmentStatus.CONFIRMED,
        notes: str | None = None,
    ) -> BookingOutcome | Rejection:
        try:
            start_minute = parse_hhmm(time)
        except ValueError as e:
            return ValidationError(field="time", message=str(e))

        candidate = AppointmentCandidate(
            customer_name=customer_name,
            service=service,
            date=day,
            start_minute=start_minute,
            duration_minutes=duration_minutes or self._default_duration,
            notes=notes,
            status=status,
        )
        return self._booking.create_appointment(customer_phone, candidate)

    def update_appointment(self, appointment_id: str, changes: AppointmentChanges) -> Appointment | Rejection:
        start_minute = None
        if changes.time is not None:
            try:
                start_minute = parse_hhmm(changes.time)
            except ValueError as e:
                return ValidationError(field="time", message=str(e))
        for name in ("customer_name", "customer_phone", "service"):
            value = getattr(changes, name)
            if value is not None and not value.strip():
                return ValidationError(field=name, message=f"{name} must not be empty")

        try:
            with self._calendar.transaction() as tx:
                current = tx.get_appointment(appointment_id)
                if current is None:
                    return NotFound(entity="appointment", id=appointment_id)

                updated = current.with_changes(
                    customer_name=(changes.customer_name or current.customer_name).strip(),
                    customer_phone=(changes.customer_phone or current.customer_phone).strip(),
                    service=(changes.service or current.service).strip(),
                    date=changes.date or current.date,
                    start_minute=current.start_minute if start_minute is None else start_minute,
                    duration_minutes=(
                        current.duration_minutes if changes.duration_minutes is None else changes.duration_minutes
                    ),
                    status=changes.status or current.status,
                    notes=current.notes if changes.notes is None else changes.notes,
                    updated_at=self._clock(),
                )

                invalid = validate_slot(updated.start_minute, updated.duration_minutes)
                if invalid is not None:
                    return invalid

                moved = (
                    updated.date != current.date
                    or updated.start_minute != current.start_minute
                    or updated.duration_minutes != current.duration_minutes
                )
                # Every non-cancelled appointment holds its slot, live or completed.
                occupies = updated.status != AppointmentStatus.CANCELLED
                restored = occupies and current.status == AppointmentStatus.CANCELLED
                reactivated = updated.is_live and not current.is_live
                if occupies and (moved or restored):
                    rejection = self._booking.check_slot(
                        tx,
                        updated.date,
                        updated.start_minute,
                        updated.duration_minutes,
                        exclude_appointment_id=current.id,
                    )
                    if rejection is not None:
                        return rejection

                if updated.is_live and (reactivated or updated.customer_phone != current.customer_phone):
                    tx.cancel_live_for_phone(updated.customer_phone, except_id=current.id)

                saved = tx.save_appointment(updated)
        except WriteConflictError:
            self._logger.warning(
                "Concurrent booking won the slot",
                extra={"appointment_id": appointment_id, "reason": "write_conflict"},
            )
            return TimeConflict(existing_summary=RACE_LOST_SUMMARY)

        self._logger.info("Appointment updated", extra={"appointment_id": appointment_id})
        return saved

    def delete_appointment(self, appointment_id: str) -> NotFound | None:
        with self._calendar.transaction() as tx:
            deleted = tx.delete_appointment(appointment_id)
        if not deleted:
            return NotFound(entity="appointment", id=appointment_id)
        self._logger.info("Appointment deleted", extra={"appointment_id": appointment_id})
        return None

    # Blocked dates

    def list_blocked_dates(self, start: date | None = None, end: date | None = None) -> list[BlockedDate]:
        with self._calendar.transaction() as tx:
            return tx.list_blocked_dates(start, end)

    def create_blocked_date(self, day: date, reason: str | None = None) -> BlockedDate | ValidationError:
        try:
            with self._calendar.transaction() as tx:
                blocked = tx.add_blocked_date(
                    BlockedDate(id=new_id(), date=day, reason=_clean(reason), created_at=self._clock())
                )
        except DuplicateRecordError:
            return ValidationError(field="date", message="date is already blocked")
        self._logger.info("Date blocked", extra={"reason": blocked.reason})
        return blocked

    def update_blocked_date(self, blocked_id: str, reason: str | None) -> BlockedDate | NotFound:
        with self._calendar.transaction() as tx:
            current = tx.get_blocked_date_by_id(blocked_id)
            if current is None:
                return NotFound(entity="blocked_date", id=blocked_id)
            return tx.save_blocked_date(
                BlockedDate(id=current.id, date=current.date, reason=_clean(reason), created_at=current.created_at)
            )

    def delete_blocked_date(self, blocked_id: str) -> NotFound | None:
        with self._calendar.transaction() as tx:
            deleted = tx.delete_blocked_date(blocked_id)
        return None if deleted else NotFound(entity="blocked_date", id=blocked_id)

    def delete_blocked_date_on(self, day: date) -> NotFound | None:
        with self._calendar.transaction() as tx:
            current = tx.get_blocked_date(day)
            if current is None:
                return NotFound(entity="blocked_date", id=day.isoformat())
            tx.delete_blocked_date(current.id)
        return None

    # Blocked time slots

    def list_blocked_slots(self, start: date | None = None, end: date | None = None) -> list[BlockedTimeSlot]:
        with self._calendar.transaction() as tx:
            return tx.list_blocked_slots(start, end)

    def create_blocked_slot(
        self, day: date, start_time: str, end_time: str, reason: str | None = None
    ) -> BlockedTimeSlot | ValidationError:
        parsed = _parse_range(start_time, end_time)
        if isinstance(parsed, ValidationError):
            return parsed
        start_minute, end_minute = parsed

        with self._calendar.transaction() as tx:
            slot = tx.add_blocked_slot(
                BlockedTimeSlot(
                    id=new_id(),
                    date=day,
                    start_minute=start_minute,
                    end_minute=end_minute,
                    reason=_clean(reason),
                    created_at=self._clock(),
                )
            )
        self._logger.info("Time slot blocked", extra={"reason": slot.reason})
        return slot

    def update_blocked_slot(
        self,
        slot_id: str,
        day: date | None = None,
        start_time: str | None = None,
        end_time: str | None = None,
        reason: str | None = None,
    ) -> BlockedTimeSlot | Rejection:
        with self._calendar.transaction() as tx:
            current = tx.get_blocked_slot(slot_id)
            if current is None:
                return NotFound(entity="blocked_slot", id=slot_id)

            parsed = _parse_range(
                start_time if start_time is not None else format_minutes(current.start_minute),
                end_time if end_time is not None else format_minutes(current.end_minute),
            )
            if isinstance(parsed, ValidationError):
                return parsed
            start_minute, end_minute = parsed

            return tx.save_blocked_slot(
                BlockedTimeSlot(
                    id=current.id,
                    date=day or current.date,
                    start_minute=start_minute,
                    end_minute=end_minute,
                    reason=current.reason if reason is None else _clean(reason),
                    created_at=current.created_at,
                )
            )

    def delete_blocked_slot(self, slot_id: str) -> NotFound | None:
        with self._calendar.transaction() as tx:
            deleted = tx.delete_blocked_slot(slot_id)
        return None if deleted else NotFound(entity="blocked_slot", id=slot_id)

    # Prescriptions

    def list_prescriptions(self, patient_name: str | None = None) -> list[Prescription]:
        with self._calendar.transaction() as tx:
            return tx.list_prescriptions(_clean(patient_name))

    def create_prescription(self, patient_name: str, content: str) -> Prescription | ValidationError:
        if not patient_name.strip():
            return ValidationError(field="patient_name", message="patient name is required")
        if not content.strip():
            return ValidationError(field="content", message="content is required")

        with self._calendar.transaction() as tx:
            prescription = tx.add_prescription(
                Prescription(
                    id=new_id(),
                    patient_name=patient_name.strip(),
                    content=content.strip(),
                    created_at=self._clock(),
                )
            )
        self._logger.info("Prescription recorded", extra={"prescription_id": prescription.id})
        return prescription

    # Conversations

    def list_conversations(self) -> list[tuple[Conversation, Message | None, int]]:
        return self._sessions.list_conversations()

    def get_conversation(self, conversation_id: str) -> tuple[Conversation, list[Message]] | NotFound:
        conversation = self._sessions.get_conversation(conversation_id)
        if conversation is None:
            return NotFound(entity="conversation", id=conversation_id)
        return conversation, self._sessions.get_history(conversation_id)

    # Reporting

    def month_view(self, month: str | None = None) -> MonthView | ValidationError:
        if month:
            try:
                first = datetime.strptime(month, "%Y-%m").date()
            except ValueError:
                return ValidationError(field="month", message="expected YYYY-MM")
        else:
            first = self._clock().date().replace(day=1)
        last = first.replace(day=calendar.monthrange(first.year, first.month)[1])

        grouped: dict[str, list[Appointment]] = {}
        appointments = self.list_appointments(first, last)
        for appointment in appointments:
            grouped.setdefault(appointment.date.isoformat(), []).append(appointment)
        return MonthView(year=first.year, month=first.month, appointments=grouped, total=len(appointments))

    def dashboard_stats(self) -> DashboardStats:
        today = self._clock().date()
        first = today.replace(day=1)
        last = first.replace(day=calendar.monthrange(first.year, first.month)[1])

        appointments = self.list_appointments()
        by_status = Counter(a.status.value for a in appointments)
        services = Counter(a.service for a in appointments)
        times = Counter(a.time_label for a in appointments)
        upcoming = [a for a in appointments if a.is_live and today <= a.date <= today + timedelta(days=7)]

        return DashboardStats(
            total_appointments=len(appointments),
            appointments_this_month=sum(1 for a in appointments if first <= a.date <= last),
            appointments_by_status=dict(by_status),
            top_services=services.most_common(5),
            popular_times=times.most_common(5),
            upcoming_appointments=upcoming[:10],
            total_conversations=len(self._sessions.list_conversations()),
        )


def _parse_range(start_time: str, end_time: str) -> tuple[int, int] | ValidationError:
    try:
        start_minute = parse_hhmm(start_time)
    except ValueError as e:
        return ValidationError(field="start_time", message=str(e))
    try:
        end_minute = parse_hhmm(end_time)
    except ValueError as e:
        return ValidationError(field="end_time", message=str(e))
    if start_minute >= end_minute:
        return ValidationError(field="end_time", message="end time must be after start time")
    return start_minute, end_minute


def _clean(text: str | None) -> str | None:
    if text is None:
        return None
    return text.strip() or None
