from __future__ import annotations

from clinicbook.application.utils.time_parser import format_display_date, parse_iso_date
from clinicbook.domain.entities.appointment import Appointment
from clinicbook.domain.entities.rejection import (
    AlreadyScheduled,
    DateBlocked,
    InvalidTime,
    NotFound,
    Rejection,
    SlotBlocked,
    TimeConflict,
    ValidationError,
)

FIELD_PROMPTS = {
    "customer_name": "your full name",
    "service": "the service you would like",
    "date": "the date (for example 2025-11-07)",
    "time": "the time (for example 10:30)",
    "new_date": "the new date (for example 2025-11-07)",
    "new_time": "the new time (for example 10:30)",
    "duration": "the appointment length",
}


class ReplyComposer:
    """Builds every text the engine itself sends to a customer."""

    def __init__(self, clinic_name: str) -> None:
        self._clinic_name = clinic_name

    def booking_confirmed(self, appointment: Appointment, rescheduled: bool) -> str:
        headline = "Appointment rescheduled!" if rescheduled else "Appointment confirmed!"
        return "\n".join(
            [
                headline,
                "",
                "Summary:",
                f"Name: {appointment.customer_name}",
                f"Service: {appointment.service}",
                f"Date: {format_display_date(appointment.date)}",
                f"Time: {appointment.time_label}",
                "",
                f"See you soon at {self._clinic_name}!",
            ]
        )

    def reschedule_confirmed(self, appointment: Appointment) -> str:
        return "\n".join(
            [
                "Change confirmed!",
                "",
                "New time:",
                f"Name: {appointment.customer_name}",
                f"Service: {appointment.service}",
                f"Date: {format_display_date(appointment.date)}",
                f"Time: {appointment.time_label}",
                "",
                f"See you soon at {self._clinic_name}!",
            ]
        )

    def cancellation_confirmed(self, appointment: Appointment) -> str:
        return (
            f"Your appointment for {appointment.service} on {format_display_date(appointment.date)} "
            f"at {appointment.time_label} has been cancelled. Message us anytime to book again."
        )

    def no_booking_found(self) -> str:
        return (
            "I could not find an active appointment for this number. "
            "If you booked with another number, please tell me the name used for the booking."
        )

    def try_again_later(self) -> str:
        return f"Sorry, the {self._clinic_name} assistant is having trouble right now. Please try again in a few moments."

    def rejection(self, rejection: Rejection, alternatives: list[str] | None = None) -> str:
        if isinstance(rejection, DateBlocked):
            day = _display(rejection.date)
            reason = f" ({rejection.reason})" if rejection.reason else ""
            return f"Sorry, we are closed on {day}{reason}.\n\nPlease choose another date."

        if isinstance(rejection, SlotBlocked):
            reason = f" ({rejection.reason})" if rejection.reason else ""
            text = f"Sorry, that time is unavailable{reason}."
            return text + self._alternatives_block(alternatives)

        if isinstance(rejection, TimeConflict):
            text = "Sorry, that time is already booked."
            return text + self._alternatives_block(alternatives)

        if isinstance(rejection, InvalidTime):
            return (
                f"Sorry, {rejection.time} is not one of our appointment times.\n\n"
                f"Available times: {', '.join(rejection.allowed)}\n\n"
                "Please choose one of these times."
            )

        if isinstance(rejection, ValidationError):
            wanted = FIELD_PROMPTS.get(rejection.field, rejection.field)
            return f"Sorry, I could not understand {wanted}. Could you send it again?"

        if isinstance(rejection, NotFound):
            return self.no_booking_found()

        if isinstance(rejection, AlreadyScheduled):
            return "Your appointment is already booked. See you soon!"

        raise TypeError(f"unsupported rejection {rejection!r}")

    def _alternatives_block(self, alternatives: list[str] | None) -> str:
        if alternatives:
            return f"\n\nOpen times that day: {', '.join(alternatives)}\n\nWhich one do you prefer?"
        return "\n\nThere are no other open times that day. Please choose another date."


def _display(iso_day: str) -> str:
    try:
        return format_display_date(parse_iso_date(iso_day))
    except ValueError:
        return iso_day
