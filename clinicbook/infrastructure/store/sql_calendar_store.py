from __future__ import annotations

import logging
from contextlib import contextmanager
from datetime import date
from typing import Iterator

from sqlalchemy import select, update
from sqlalchemy.exc import IntegrityError, OperationalError
from sqlalchemy.orm import Session, sessionmaker

from clinicbook.application.exceptions import DuplicateRecordError, WriteConflictError
from clinicbook.application.ports.calendar_store import CalendarStorePort, CalendarTransaction
from clinicbook.domain.entities.appointment import LIVE_STATUSES, Appointment, AppointmentStatus
from clinicbook.domain.entities.blocking import BlockedDate, BlockedTimeSlot
from clinicbook.domain.entities.prescription import Prescription
from clinicbook.infrastructure.store.sql_models import (
    AppointmentRow,
    BlockedDateRow,
    BlockedTimeSlotRow,
    PrescriptionRow,
)

SERIALIZATION_FAILURE = "40001"


class SqlCalendarStore(CalendarStorePort):
    def __init__(self, session_factory: sessionmaker) -> None:
        self._session_factory = session_factory
        self._logger = logging.getLogger(__name__)

    @contextmanager
    def transaction(self) -> Iterator[CalendarTransaction]:
        with self._session_factory() as session:
            try:
                with session.begin():
                    yield _SqlCalendarTransaction(session)
            except OperationalError as e:
                if _is_serialization_failure(e):
                    self._logger.warning("Serializable transaction aborted", extra={"error": str(e.orig)})
                    raise WriteConflictError("concurrent calendar write") from e
                raise


def _is_serialization_failure(error: OperationalError) -> bool:
    orig = error.orig
    code = getattr(orig, "pgcode", None) or getattr(orig, "sqlstate", None)
    return code == SERIALIZATION_FAILURE


def _range_filter(stmt, column, start: date | None, end: date | None):
    if start is not None:
        stmt = stmt.where(column >= start)
    if end is not None:
        stmt = stmt.where(column <= end)
    return stmt


class _SqlCalendarTransaction(CalendarTransaction):
    def __init__(self, session: Session) -> None:
        self._session = session

    # Appointments

    def get_appointment(self, appointment_id: str) -> Appointment | None:
        row = self._session.get(AppointmentRow, appointment_id)
        return _appointment_from_row(row) if row is not None else None

    def list_appointments_on(self, day: date, exclude_id: str | None = None) -> list[Appointment]:
        stmt = select(AppointmentRow).where(
            AppointmentRow.date == day,
            AppointmentRow.status != AppointmentStatus.CANCELLED.value,
        )
        if exclude_id is not None:
            stmt = stmt.where(AppointmentRow.id != exclude_id)
        rows = self._session.scalars(stmt.order_by(AppointmentRow.start_minute)).all()
        return [_appointment_from_row(row) for row in rows]

    def list_appointments(
        self,
        start: date | None = None,
        end: date | None = None,
        status: AppointmentStatus | None = None,
    ) -> list[Appointment]:
        stmt = _range_filter(select(AppointmentRow), AppointmentRow.date, start, end)
        if status is not None:
            stmt = stmt.where(AppointmentRow.status == status.value)
        rows = self._session.scalars(stmt.order_by(AppointmentRow.date, AppointmentRow.start_minute)).all()
        return [_appointment_from_row(row) for row in rows]

    def find_live_for_phone(self, customer_phone: str) -> list[Appointment]:
        stmt = (
            select(AppointmentRow)
            .where(
                AppointmentRow.customer_phone == customer_phone,
                AppointmentRow.status.in_([s.value for s in LIVE_STATUSES]),
            )
            .order_by(AppointmentRow.date, AppointmentRow.start_minute)
        )
        return [_appointment_from_row(row) for row in self._session.scalars(stmt).all()]

    def find_active_for_conversation(self, conversation_id: str) -> Appointment | None:
        stmt = select(AppointmentRow).where(
            AppointmentRow.conversation_id == conversation_id,
            AppointmentRow.status != AppointmentStatus.CANCELLED.value,
        )
        row = self._session.scalars(stmt).first()
        return _appointment_from_row(row) if row is not None else None

    def add_appointment(self, appointment: Appointment) -> Appointment:
        self._session.add(_appointment_to_row(appointment, AppointmentRow()))
        self._flush_or_conflict()
        return appointment

    def save_appointment(self, appointment: Appointment) -> Appointment:
        row = self._session.get(AppointmentRow, appointment.id)
        if row is None:
            raise KeyError(f"unknown appointment {appointment.id}")
        _appointment_to_row(appointment, row)
        self._flush_or_conflict()
        return appointment

    def delete_appointment(self, appointment_id: str) -> bool:
        row = self._session.get(AppointmentRow, appointment_id)
        if row is None:
            return False
        self._session.delete(row)
        self._session.flush()
        return True

    def cancel_live_for_phone(self, customer_phone: str, except_id: str | None = None) -> int:
        stmt = update(AppointmentRow).where(
            AppointmentRow.customer_phone == customer_phone,
            AppointmentRow.status.in_([s.value for s in LIVE_STATUSES]),
        )
        if except_id is not None:
            stmt = stmt.where(AppointmentRow.id != except_id)
        result = self._session.execute(
            stmt.values(status=AppointmentStatus.CANCELLED.value),
            execution_options={"synchronize_session": "fetch"},
        )
        return result.rowcount or 0

    def _flush_or_conflict(self) -> None:
        try:
            self._session.flush()
        except IntegrityError as e:
            raise WriteConflictError("appointment slot or customer already taken") from e

    # Blocked dates

    def get_blocked_date(self, day: date) -> BlockedDate | None:
        row = self._session.scalars(select(BlockedDateRow).where(BlockedDateRow.date == day)).first()
        return _blocked_date_from_row(row) if row is not None else None

    def get_blocked_date_by_id(self, blocked_id: str) -> BlockedDate | None:
        row = self._session.get(BlockedDateRow, blocked_id)
        return _blocked_date_from_row(row) if row is not None else None

    def list_blocked_dates(self, start: date | None = None, end: date | None = None) -> list[BlockedDate]:
        stmt = _range_filter(select(BlockedDateRow), BlockedDateRow.date, start, end)
        return [_blocked_date_from_row(row) for row in self._session.scalars(stmt.order_by(BlockedDateRow.date))]

    def add_blocked_date(self, blocked: BlockedDate) -> BlockedDate:
        self._session.add(
            BlockedDateRow(id=blocked.id, date=blocked.date, reason=blocked.reason, created_at=blocked.created_at)
        )
        try:
            self._session.flush()
        except IntegrityError as e:
            raise DuplicateRecordError(f"date {blocked.date.isoformat()} is already blocked") from e
        return blocked

    def save_blocked_date(self, blocked: BlockedDate) -> BlockedDate:
        row = self._session.get(BlockedDateRow, blocked.id)
        if row is None:
            raise KeyError(f"unknown blocked date {blocked.id}")
        row.date = blocked.date
        row.reason = blocked.reason
        try:
            self._session.flush()
        except IntegrityError as e:
            raise DuplicateRecordError(f"date {blocked.date.isoformat()} is already blocked") from e
        return blocked

    def delete_blocked_date(self, blocked_id: str) -> bool:
        row = self._session.get(BlockedDateRow, blocked_id)
        if row is None:
            return False
        self._session.delete(row)
        self._session.flush()
        return True

    # Blocked time slots

    def get_blocked_slot(self, slot_id: str) -> BlockedTimeSlot | None:
        row = self._session.get(BlockedTimeSlotRow, slot_id)
        return _blocked_slot_from_row(row) if row is not None else None

    def list_blocked_slots(self, start: date | None = None, end: date | None = None) -> list[BlockedTimeSlot]:
        stmt = _range_filter(select(BlockedTimeSlotRow), BlockedTimeSlotRow.date, start, end)
        stmt = stmt.order_by(BlockedTimeSlotRow.date, BlockedTimeSlotRow.start_minute)
        return [_blocked_slot_from_row(row) for row in self._session.scalars(stmt)]

    def add_blocked_slot(self, slot: BlockedTimeSlot) -> BlockedTimeSlot:
        self._session.add(_blocked_slot_to_row(slot, BlockedTimeSlotRow()))
        self._session.flush()
        return slot

    def save_blocked_slot(self, slot: BlockedTimeSlot) -> BlockedTimeSlot:
        row = self._session.get(BlockedTimeSlotRow, slot.id)
        if row is None:
            raise KeyError(f"unknown blocked slot {slot.id}")
        _blocked_slot_to_row(slot, row)
        self._session.flush()
        return slot

    def delete_blocked_slot(self, slot_id: str) -> bool:
        row = self._session.get(BlockedTimeSlotRow, slot_id)
        if row is None:
            return False
        self._session.delete(row)
        self._session.flush()
        return True

    # Prescriptions

    def add_prescription(self, prescription: Prescription) -> Prescription:
        self._session.add(
            PrescriptionRow(
                id=prescription.id,
                patient_name=prescription.patient_name,
                content=prescription.content,
                created_at=prescription.created_at,
            )
        )
        self._session.flush()
        return prescription

    def list_prescriptions(self, patient_name: str | None = None) -> list[Prescription]:
        stmt = select(PrescriptionRow)
        if patient_name:
            stmt = stmt.where(PrescriptionRow.patient_name.icontains(patient_name, autoescape=True))
        rows = self._session.scalars(stmt.order_by(PrescriptionRow.created_at.desc()))
        return [_prescription_from_row(row) for row in rows]


def _appointment_from_row(row: AppointmentRow) -> Appointment:
    return Appointment(
        id=row.id,
        customer_name=row.customer_name,
        customer_phone=row.customer_phone,
        service=row.service,
        date=row.date,
        start_minute=row.start_minute,
        duration_minutes=row.duration_minutes,
        status=AppointmentStatus(row.status),
        notes=row.notes,
        conversation_id=row.conversation_id,
        created_at=row.created_at,
        updated_at=row.updated_at,
    )


def _appointment_to_row(appointment: Appointment, row: AppointmentRow) -> AppointmentRow:
    row.id = appointment.id
    row.customer_name = appointment.customer_name
    row.customer_phone = appointment.customer_phone
    row.service = appointment.service
    row.date = appointment.date
    row.start_minute = appointment.start_minute
    row.duration_minutes = appointment.duration_minutes
    row.status = appointment.status.value
    row.notes = appointment.notes
    row.conversation_id = appointment.conversation_id
    row.created_at = appointment.created_at
    row.updated_at = appointment.updated_at
    return row


def _blocked_date_from_row(row: BlockedDateRow) -> BlockedDate:
    return BlockedDate(id=row.id, date=row.date, reason=row.reason, created_at=row.created_at)


def _blocked_slot_from_row(row: BlockedTimeSlotRow) -> BlockedTimeSlot:
    return BlockedTimeSlot(
        id=row.id,
        date=row.date,
        start_minute=row.start_minute,
        end_minute=row.end_minute,
        reason=row.reason,
        created_at=row.created_at,
    )


def _blocked_slot_to_row(slot: BlockedTimeSlot, row: BlockedTimeSlotRow) -> BlockedTimeSlotRow:
    row.id = slot.id
    row.date = slot.date
    row.start_minute = slot.start_minute
    row.end_minute = slot.end_minute
    row.reason = slot.reason
    row.created_at = slot.created_at
    return row


def _prescription_from_row(row: PrescriptionRow) -> Prescription:
    return Prescription(id=row.id, patient_name=row.patient_name, content=row.content, created_at=row.created_at)
