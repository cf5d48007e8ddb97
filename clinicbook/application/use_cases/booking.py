from __future__ import annotations

import logging
import uuid
from datetime import date, datetime, timezone
from typing import Callable

from clinicbook.application.exceptions import WriteConflictError
from clinicbook.application.ports.calendar_store import CalendarStorePort, CalendarTransaction
from clinicbook.application.ports.session_store import SessionStorePort
from clinicbook.application.use_cases.conflict_resolver import ConflictResolver
from clinicbook.application.utils.time_parser import fits_in_day, format_minutes, validate_duration
from clinicbook.domain.entities.appointment import LIVE_STATUSES, Appointment, AppointmentCandidate, AppointmentStatus
from clinicbook.domain.entities.blocking import BlockedTimeSlot
from clinicbook.domain.entities.conflict import Conflict, ConflictKind
from clinicbook.domain.entities.rejection import (
    AlreadyScheduled,
    BookingOutcome,
    DateBlocked,
    NotFound,
    Rejection,
    SlotBlocked,
    TimeConflict,
    ValidationError,
)

RACE_LOST_SUMMARY = "that time was just taken by another booking"


def utc_now() -> datetime:
    return datetime.now(timezone.utc)


def new_id() -> str:
    return uuid.uuid4().hex


def conflict_to_rejection(conflict: Conflict) -> Rejection:
    record = conflict.record
    if conflict.kind == ConflictKind.DAY_BLOCKED:
        return DateBlocked(date=record.date.isoformat(), reason=conflict.reason)
    if conflict.kind == ConflictKind.SLOT_BLOCKED and isinstance(record, BlockedTimeSlot):
        return SlotBlocked(
            reason=conflict.reason,
            blocked_range=f"{format_minutes(record.start_minute)}-{format_minutes(record.end_minute)}",
        )
    return TimeConflict(existing_summary=record.summary())


def validate_slot(start_minute: int, duration_minutes: int) -> ValidationError | None:
    try:
        validate_duration(duration_minutes)
    except ValueError as e:
        return ValidationError(field="duration", message=str(e))
    if not fits_in_day(start_minute, duration_minutes):
        return ValidationError(field="time", message="appointment must start and end on the same day")
    return None


class BookingLifecycleManager:
    """
    Owns the Appointment state machine.

    Invariants kept here:
    - a customer phone has at most one live (PENDING/CONFIRMED) appointment;
      booking again cancels the previous one in the same transaction
      (reschedule-by-replacement)
    - a conversation materializes at most one non-cancelled appointment

    Every rejection is returned as a value; nothing here raises for a
    business-rule failure.
    """

    def __init__(
        self,
        calendar: CalendarStorePort,
        sessions: SessionStorePort,
        resolver: ConflictResolver | None = None,
        clock: Callable[[], datetime] = utc_now,
    ) -> None:
        self._calendar = calendar
        self._sessions = sessions
        self._resolver = resolver or ConflictResolver()
        self._clock = clock
        self._logger = logging.getLogger(__name__)

    def check_slot(
        self,
        tx: CalendarTransaction,
        day: date,
        start_minute: int,
        duration_minutes: int,
        exclude_appointment_id: str | None = None,
    ) -> Rejection | None:
        conflict = self._resolver.check_conflict(
            tx, day, start_minute, duration_minutes, exclude_appointment_id=exclude_appointment_id
        )
        if conflict is None:
            return None
        return conflict_to_rejection(conflict)

    def create_appointment(
        self,
        customer_phone: str,
        candidate: AppointmentCandidate,
        conversation_id: str | None = None,
    ) -> BookingOutcome | Rejection:
        if not customer_phone.strip():
            return ValidationError(field="customer_phone", message="phone number is required")
        if not candidate.customer_name.strip():
            return ValidationError(field="customer_name", message="name is required")
        if not candidate.service.strip():
            return ValidationError(field="service", message="service is required")
        invalid = validate_slot(candidate.start_minute, candidate.duration_minutes)
        if invalid is not None:
            return invalid

        try:
            with self._calendar.transaction() as tx:
                # A redelivered booking trigger must not book twice.
                if conversation_id:
                    existing = tx.find_active_for_conversation(conversation_id)
                    if existing is not None:
                        self._logger.info(
                            "Conversation already has an appointment",
                            extra={"conversation_id": conversation_id, "appointment_id": existing.id},
                        )
                        return AlreadyScheduled(appointment_id=existing.id)

                # A cancelled record occupies no time.
                if candidate.status != AppointmentStatus.CANCELLED:
                    rejection = self.check_slot(tx, candidate.date, candidate.start_minute, candidate.duration_minutes)
                    if rejection is not None:
                        self._logger.info(
                            "Booking rejected",
                            extra={"phone": customer_phone, "reason": type(rejection).__name__},
                        )
                        return rejection

                # Reschedule-by-replacement: a new live booking supersedes every live one.
                superseded = 0
                if candidate.status in LIVE_STATUSES:
                    superseded = tx.cancel_live_for_phone(customer_phone)
                now = self._clock()
                appointment = tx.add_appointment(
                    Appointment(
                        id=new_id(),
                        customer_name=candidate.customer_name.strip(),
                        customer_phone=customer_phone,
                        service=candidate.service.strip(),
                        date=candidate.date,
                        start_minute=candidate.start_minute,
                        duration_minutes=candidate.duration_minutes,
                        status=candidate.status,
                        notes=candidate.notes,
                        conversation_id=conversation_id,
                        created_at=now,
                        updated_at=now,
                    )
                )
        except WriteConflictError:
            self._logger.warning(
                "Concurrent booking won the slot",
                extra={"phone": customer_phone, "reason": "write_conflict"},
            )
            return TimeConflict(existing_summary=RACE_LOST_SUMMARY)

        self._logger.info(
            "Appointment created",
            extra={"appointment_id": appointment.id, "phone": customer_phone, "superseded": superseded},
        )
        return BookingOutcome(appointment=appointment, rescheduled=superseded > 0)

    def reschedule_appointment(
        self,
        appointment_id: str,
        new_date: date,
        new_start_minute: int,
    ) -> BookingOutcome | Rejection:
        try:
            with self._calendar.transaction() as tx:
                current = tx.get_appointment(appointment_id)
                if current is None:
                    return NotFound(entity="appointment", id=appointment_id)
                if not current.is_live:
                    return ValidationError(field="status", message=f"appointment is {current.status.value}")

                invalid = validate_slot(new_start_minute, current.duration_minutes)
                if invalid is not None:
                    return invalid

                rejection = self.check_slot(
                    tx, new_date, new_start_minute, current.duration_minutes, exclude_appointment_id=current.id
                )
                if rejection is not None:
                    return rejection

                updated = tx.save_appointment(
                    current.with_changes(date=new_date, start_minute=new_start_minute, updated_at=self._clock())
                )
        except WriteConflictError:
            self._logger.warning(
                "Concurrent booking won the slot",
                extra={"appointment_id": appointment_id, "reason": "write_conflict"},
            )
            return TimeConflict(existing_summary=RACE_LOST_SUMMARY)

        self._logger.info("Appointment rescheduled", extra={"appointment_id": updated.id})
        return BookingOutcome(appointment=updated, rescheduled=True)

    def cancel_appointment(self, appointment_id: str) -> Appointment | NotFound:
        with self._calendar.transaction() as tx:
            current = tx.get_appointment(appointment_id)
            if current is None:
                return NotFound(entity="appointment", id=appointment_id)
            if current.status == AppointmentStatus.CANCELLED:
                return current
            cancelled = tx.save_appointment(
                current.with_changes(status=AppointmentStatus.CANCELLED, updated_at=self._clock())
            )
        self._logger.info("Appointment cancelled", extra={"appointment_id": appointment_id})
        return cancelled

    def complete_appointment(self, appointment_id: str) -> Appointment | Rejection:
        with self._calendar.transaction() as tx:
            current = tx.get_appointment(appointment_id)
            if current is None:
                return NotFound(entity="appointment", id=appointment_id)
            if current.status == AppointmentStatus.COMPLETED:
                return current
            if current.status == AppointmentStatus.CANCELLED:
                return ValidationError(field="status", message="a cancelled appointment cannot be completed")
            return tx.save_appointment(
                current.with_changes(status=AppointmentStatus.COMPLETED, updated_at=self._clock())
            )

    def complete_conversation(self, conversation_id: str) -> None:
        self._sessions.close_conversation(conversation_id)
        self._logger.info("Conversation closed", extra={"conversation_id": conversation_id})

    def find_live_appointment(self, customer_phone: str) -> Appointment | None:
        with self._calendar.transaction() as tx:
            live = tx.find_live_for_phone(customer_phone)
        return live[0] if live else None
