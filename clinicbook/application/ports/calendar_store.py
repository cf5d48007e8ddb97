from __future__ import annotations

from abc import ABC, abstractmethod
from contextlib import AbstractContextManager
from datetime import date

from clinicbook.domain.entities.appointment import Appointment, AppointmentStatus
from clinicbook.domain.entities.blocking import BlockedDate, BlockedTimeSlot
from clinicbook.domain.entities.prescription import Prescription


class CalendarTransaction(ABC):
    """
    Unit of work over the calendar.

    Everything read through a transaction is consistent with what it writes:
    a conflict check followed by an insert inside one transaction either
    commits as a whole or raises WriteConflictError.
    """

    @abstractmethod
    def get_appointment(self, appointment_id: str) -> Appointment | None:
        raise NotImplementedError

    @abstractmethod
    def list_appointments_on(self, day: date, exclude_id: str | None = None) -> list[Appointment]:
        """Non-cancelled appointments on a day, ordered by start."""
        raise NotImplementedError

    @abstractmethod
    def list_appointments(
        self,
        start: date | None = None,
        end: date | None = None,
        status: AppointmentStatus | None = None,
    ) -> list[Appointment]:
        """Appointments in [start, end] (inclusive), ordered by date then start."""
        raise NotImplementedError

    @abstractmethod
    def find_live_for_phone(self, customer_phone: str) -> list[Appointment]:
        """PENDING/CONFIRMED appointments for a phone, earliest first."""
        raise NotImplementedError

    @abstractmethod
    def find_active_for_conversation(self, conversation_id: str) -> Appointment | None:
        """Any non-cancelled appointment created by the conversation."""
        raise NotImplementedError

    @abstractmethod
    def add_appointment(self, appointment: Appointment) -> Appointment:
        raise NotImplementedError

    @abstractmethod
    def save_appointment(self, appointment: Appointment) -> Appointment:
        raise NotImplementedError

    @abstractmethod
    def delete_appointment(self, appointment_id: str) -> bool:
        raise NotImplementedError

    @abstractmethod
    def cancel_live_for_phone(self, customer_phone: str, except_id: str | None = None) -> int:
        """Cancel every live appointment of a phone. Returns how many were cancelled."""
        raise NotImplementedError

    @abstractmethod
    def get_blocked_date(self, day: date) -> BlockedDate | None:
        raise NotImplementedError

    @abstractmethod
    def get_blocked_date_by_id(self, blocked_id: str) -> BlockedDate | None:
        raise NotImplementedError

    @abstractmethod
    def list_blocked_dates(self, start: date | None = None, end: date | None = None) -> list[BlockedDate]:
        raise NotImplementedError

    @abstractmethod
    def add_blocked_date(self, blocked: BlockedDate) -> BlockedDate:
        """Raises DuplicateRecordError if the date is already blocked."""
        raise NotImplementedError

    @abstractmethod
    def save_blocked_date(self, blocked: BlockedDate) -> BlockedDate:
        raise NotImplementedError

    @abstractmethod
    def delete_blocked_date(self, blocked_id: str) -> bool:
        raise NotImplementedError

    @abstractmethod
    def get_blocked_slot(self, slot_id: str) -> BlockedTimeSlot | None:
        raise NotImplementedError

    @abstractmethod
    def list_blocked_slots(self, start: date | None = None, end: date | None = None) -> list[BlockedTimeSlot]:
        raise NotImplementedError

    @abstractmethod
    def add_blocked_slot(self, slot: BlockedTimeSlot) -> BlockedTimeSlot:
        raise NotImplementedError

    @abstractmethod
    def save_blocked_slot(self, slot: BlockedTimeSlot) -> BlockedTimeSlot:
        raise NotImplementedError

    @abstractmethod
    def delete_blocked_slot(self, slot_id: str) -> bool:
        raise NotImplementedError

    @abstractmethod
    def add_prescription(self, prescription: Prescription) -> Prescription:
        raise NotImplementedError

    @abstractmethod
    def list_prescriptions(self, patient_name: str | None = None) -> list[Prescription]:
        """Newest first; `patient_name` matches case-insensitively anywhere in the name."""
        raise NotImplementedError


class CalendarStorePort(ABC):
    @abstractmethod
    def transaction(self) -> AbstractContextManager[CalendarTransaction]:
        """
        Open a serializable transaction.

        Commits when the block exits normally, rolls back on exception.
        Raises WriteConflictError when the commit loses a race with a
        concurrent writer.
        """
        raise NotImplementedError
