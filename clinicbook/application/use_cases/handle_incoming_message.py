from __future__ import annotations

import logging
from dataclasses import dataclass
from datetime import date
from typing import Sequence

from clinicbook.application.exceptions import ExternalServiceUnavailable
from clinicbook.application.ports.calendar_store import CalendarStorePort
from clinicbook.application.ports.intent_extractor import IntentExtractorPort
from clinicbook.application.ports.session_store import SessionStorePort
from clinicbook.application.use_cases.booking import BookingLifecycleManager
from clinicbook.application.use_cases.conflict_resolver import ConflictResolver
from clinicbook.application.use_cases.reply_composer import ReplyComposer
from clinicbook.application.utils.time_parser import parse_hhmm, parse_iso_date
from clinicbook.domain.entities.appointment import AppointmentCandidate
from clinicbook.domain.entities.conversation import Conversation
from clinicbook.domain.entities.intent import BookingIntent, CancelIntent, ExtractionResult, RescheduleIntent
from clinicbook.domain.entities.message import MessageRole
from clinicbook.domain.entities.rejection import (
    AlreadyScheduled,
    BookingOutcome,
    InvalidTime,
    NotFound,
    Rejection,
    SlotBlocked,
    TimeConflict,
    ValidationError,
)


@dataclass(frozen=True)
class OutboundReply:
    text: str
    action: str  # reply, booked, rescheduled, cancelled, rejected, not_found, already_scheduled, unavailable
    conversation_id: str


class HandleIncomingMessageUseCase:
    """
    Drives one turn of a customer conversation.

    The inbound message is stored before the extractor is called, so a
    failing or slow extractor never loses what the customer wrote. No
    calendar transaction is open while the extractor runs.
    """

    def __init__(
        self,
        sessions: SessionStorePort,
        extractor: IntentExtractorPort,
        booking: BookingLifecycleManager,
        calendar: CalendarStorePort,
        composer: ReplyComposer,
        bookable_times: Sequence[str],
        conversation_duration_minutes: int = 60,
        history_limit: int | None = None,
        max_suggested_times: int = 4,
        resolver: ConflictResolver | None = None,
    ) -> None:
        self._sessions = sessions
        self._extractor = extractor
        self._booking = booking
        self._calendar = calendar
        self._composer = composer
        self._bookable_times = tuple(bookable_times)
        self._duration = conversation_duration_minutes
        self._history_limit = history_limit
        self._max_suggested = max_suggested_times
        self._resolver = resolver or ConflictResolver()
        self._logger = logging.getLogger(__name__)

    def handle(self, phone_number: str, text: str) -> OutboundReply:
        conversation = self._sessions.get_or_create_active(phone_number)
        self._sessions.append_message(conversation.id, MessageRole.USER, text)
        self._logger.info(
            "Inbound message stored",
            extra={"phone": phone_number, "conversation_id": conversation.id},
        )

        history = self._sessions.get_history(conversation.id, limit=self._history_limit)
        try:
            result = self._extractor.extract_intent(history, dict(conversation.context))
        except ExternalServiceUnavailable as e:
            self._logger.warning(
                "Intent extractor unavailable",
                extra={"phone": phone_number, "conversation_id": conversation.id, "error": str(e)},
            )
            return OutboundReply(
                text=self._composer.try_again_later(), action="unavailable", conversation_id=conversation.id
            )

        self._logger.info(
            "Intent extracted",
            extra={"conversation_id": conversation.id, "intent": result.intent_name},
        )
        if result.reply:
            self._sessions.append_message(conversation.id, MessageRole.ASSISTANT, result.reply)
        if result.context_updates:
            conversation = self._sessions.update_context(conversation.id, result.context_updates)

        intent = result.intent
        if isinstance(intent, BookingIntent):
            reply = self._handle_booking(conversation, intent, result)
        elif isinstance(intent, RescheduleIntent):
            reply = self._handle_reschedule(conversation, intent)
        elif isinstance(intent, CancelIntent):
            reply = self._handle_cancel(conversation)
        else:
            reply = OutboundReply(text=result.reply, action="reply", conversation_id=conversation.id)

        self._logger.info(
            "Turn completed",
            extra={"phone": phone_number, "conversation_id": conversation.id, "action": reply.action},
        )
        return reply

    def _handle_booking(
        self, conversation: Conversation, intent: BookingIntent, result: ExtractionResult
    ) -> OutboundReply:
        parsed = self._parse_slot(intent.date, intent.time, date_field="date", time_field="time")
        if not isinstance(parsed, tuple):
            return self._reject(conversation, parsed)
        day, start_minute = parsed

        notes = f"Insurance: {intent.insurance}" if intent.insurance else None
        candidate = AppointmentCandidate(
            customer_name=intent.customer_name,
            service=intent.service,
            date=day,
            start_minute=start_minute,
            duration_minutes=self._duration,
            notes=notes,
        )
        outcome = self._booking.create_appointment(
            conversation.phone_number, candidate, conversation_id=conversation.id
        )

        if isinstance(outcome, AlreadyScheduled):
            text = result.reply or self._composer.rejection(outcome)
            if not result.reply:
                self._sessions.append_message(conversation.id, MessageRole.ASSISTANT, text)
            return OutboundReply(text=text, action="already_scheduled", conversation_id=conversation.id)

        if not isinstance(outcome, BookingOutcome):
            return self._reject(conversation, outcome, day=day)

        self._booking.complete_conversation(conversation.id)
        text = self._composer.booking_confirmed(outcome.appointment, rescheduled=outcome.rescheduled)
        self._sessions.append_message(conversation.id, MessageRole.ASSISTANT, text)
        return OutboundReply(
            text=text,
            action="rescheduled" if outcome.rescheduled else "booked",
            conversation_id=conversation.id,
        )

    def _handle_reschedule(self, conversation: Conversation, intent: RescheduleIntent) -> OutboundReply:
        current = self._booking.find_live_appointment(conversation.phone_number)
        if current is None:
            return self._not_found(conversation)

        parsed = self._parse_slot(intent.new_date, intent.new_time, date_field="new_date", time_field="new_time")
        if not isinstance(parsed, tuple):
            return self._reject(conversation, parsed)
        day, start_minute = parsed

        outcome = self._booking.reschedule_appointment(current.id, day, start_minute)
        if isinstance(outcome, NotFound):
            return self._not_found(conversation)
        if not isinstance(outcome, BookingOutcome):
            return self._reject(
                conversation,
                outcome,
                day=day,
                duration_minutes=current.duration_minutes,
                exclude_appointment_id=current.id,
            )

        text = self._composer.reschedule_confirmed(outcome.appointment)
        self._sessions.append_message(conversation.id, MessageRole.ASSISTANT, text)
        return OutboundReply(text=text, action="rescheduled", conversation_id=conversation.id)

    def _handle_cancel(self, conversation: Conversation) -> OutboundReply:
        current = self._booking.find_live_appointment(conversation.phone_number)
        if current is None:
            return self._not_found(conversation)

        cancelled = self._booking.cancel_appointment(current.id)
        if isinstance(cancelled, NotFound):
            return self._not_found(conversation)

        text = self._composer.cancellation_confirmed(cancelled)
        self._sessions.append_message(conversation.id, MessageRole.ASSISTANT, text)
        return OutboundReply(text=text, action="cancelled", conversation_id=conversation.id)

    def _parse_slot(
        self, raw_date: str, raw_time: str, date_field: str, time_field: str
    ) -> tuple[date, int] | Rejection:
        try:
            day = parse_iso_date(raw_date)
        except ValueError as e:
            return ValidationError(field=date_field, message=str(e))
        try:
            start_minute = parse_hhmm(raw_time)
        except ValueError as e:
            return ValidationError(field=time_field, message=str(e))

        if not any(parse_hhmm(label) == start_minute for label in self._bookable_times):
            return InvalidTime(time=raw_time, allowed=self._bookable_times)
        return day, start_minute

    def _reject(
        self,
        conversation: Conversation,
        rejection: Rejection,
        day: date | None = None,
        duration_minutes: int | None = None,
        exclude_appointment_id: str | None = None,
    ) -> OutboundReply:
        alternatives = None
        if day is not None and isinstance(rejection, (SlotBlocked, TimeConflict)):
            alternatives = self._suggest_times(day, duration_minutes or self._duration, exclude_appointment_id)

        self._logger.info(
            "Request rejected",
            extra={"conversation_id": conversation.id, "reason": type(rejection).__name__},
        )
        text = self._composer.rejection(rejection, alternatives)
        self._sessions.append_message(conversation.id, MessageRole.ASSISTANT, text)
        return OutboundReply(text=text, action="rejected", conversation_id=conversation.id)

    def _not_found(self, conversation: Conversation) -> OutboundReply:
        text = self._composer.no_booking_found()
        self._sessions.append_message(conversation.id, MessageRole.ASSISTANT, text)
        return OutboundReply(text=text, action="not_found", conversation_id=conversation.id)

    def _suggest_times(self, day: date, duration_minutes: int, exclude_appointment_id: str | None) -> list[str]:
        # Read-only view; the booking transaction remains the authority.
        with self._calendar.transaction() as view:
            times = self._resolver.available_times(
                view,
                day,
                duration_minutes,
                self._bookable_times,
                exclude_appointment_id=exclude_appointment_id,
            )
        return times[: self._max_suggested]
