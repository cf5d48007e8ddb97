"""
Tests for one conversation turn: storage, extraction and booking side effects.
"""

from __future__ import annotations

from datetime import date, datetime, timezone

import pytest
from conftest import ScriptedExtractor, candidate

from clinicbook.application.exceptions import LLMContractError, LLMUpstreamError
from clinicbook.application.use_cases.booking import BookingLifecycleManager
from clinicbook.application.use_cases.handle_incoming_message import HandleIncomingMessageUseCase
from clinicbook.application.use_cases.reply_composer import ReplyComposer
from clinicbook.domain.entities.appointment import AppointmentStatus
from clinicbook.domain.entities.blocking import BlockedDate
from clinicbook.domain.entities.conversation import ConversationStatus
from clinicbook.domain.entities.intent import (
    BookingIntent,
    CancelIntent,
    ExtractionResult,
    PlainReply,
    RescheduleIntent,
)
from clinicbook.domain.entities.message import MessageRole
from clinicbook.infrastructure.store.memory_calendar_store import MemoryCalendarStore
from clinicbook.infrastructure.store.memory_store import MemorySessionStore

PHONE = "5511999990000"
TIMES = ("09:30", "10:30", "11:30", "13:00", "14:00", "15:00", "16:00")


def _booking(day: str = "2025-11-07", time: str = "10:30", reply: str = "Perfeito!") -> ExtractionResult:
    return ExtractionResult(
        reply=reply,
        intent=BookingIntent(customer_name="Maria Silva", service="Limpeza", date=day, time=time, insurance="Unimed"),
    )


@pytest.fixture
def env():
    calendar = MemoryCalendarStore()
    sessions = MemorySessionStore()
    extractor = ScriptedExtractor()
    booking = BookingLifecycleManager(calendar=calendar, sessions=sessions)
    use_case = HandleIncomingMessageUseCase(
        sessions=sessions,
        extractor=extractor,
        booking=booking,
        calendar=calendar,
        composer=ReplyComposer(clinic_name="SpeOdonto"),
        bookable_times=TIMES,
        conversation_duration_minutes=60,
        history_limit=40,
        max_suggested_times=3,
    )
    return use_case, extractor, calendar, sessions


def _transcript(sessions, conversation_id):
    return [(m.role, m.content) for m in sessions.get_history(conversation_id)]


def test_plain_reply_is_stored_and_returned(env):
    use_case, extractor, _, sessions = env
    extractor.queue(ExtractionResult(reply="Qual o seu nome?", context_updates={"service": "Limpeza"}))

    reply = use_case.handle(PHONE, "Quero marcar uma limpeza")

    assert reply.action == "reply"
    assert reply.text == "Qual o seu nome?"
    assert _transcript(sessions, reply.conversation_id) == [
        (MessageRole.USER, "Quero marcar uma limpeza"),
        (MessageRole.ASSISTANT, "Qual o seu nome?"),
    ]
    assert sessions.get_conversation(reply.conversation_id).context == {"service": "Limpeza"}


def test_extractor_sees_history_and_collected_context(env):
    use_case, extractor, _, _ = env
    extractor.queue(
        ExtractionResult(reply="Qual servico?", context_updates={"customer_name": "Maria"}),
        ExtractionResult(reply="Qual data?"),
    )

    use_case.handle(PHONE, "Sou a Maria")
    use_case.handle(PHONE, "Limpeza")

    history, context = extractor.calls[1]
    assert [m.content for m in history] == ["Sou a Maria", "Qual servico?", "Limpeza"]
    assert context == {"customer_name": "Maria"}


def test_completed_booking_confirms_and_closes_conversation(env):
    use_case, extractor, calendar, sessions = env
    extractor.queue(_booking())

    reply = use_case.handle(PHONE, "Pode confirmar")

    assert reply.action == "booked"
    assert "Appointment confirmed!" in reply.text
    assert "07/11/2025" in reply.text
    assert "10:30" in reply.text
    assert sessions.get_conversation(reply.conversation_id).status == ConversationStatus.CLOSED

    with calendar.transaction() as tx:
        [appointment] = tx.find_live_for_phone(PHONE)
    assert appointment.duration_minutes == 60
    assert appointment.conversation_id == reply.conversation_id
    assert appointment.notes == "Insurance: Unimed"

    # Extractor reply and the synthesized confirmation are both in the transcript.
    roles = [role for role, _ in _transcript(sessions, reply.conversation_id)]
    assert roles == [MessageRole.USER, MessageRole.ASSISTANT, MessageRole.ASSISTANT]


def test_next_message_after_booking_starts_a_new_conversation(env):
    use_case, extractor, _, _ = env
    extractor.queue(_booking(), ExtractionResult(reply="Ola de novo!"))

    booked = use_case.handle(PHONE, "Pode confirmar")
    follow_up = use_case.handle(PHONE, "Obrigada")

    assert follow_up.conversation_id != booked.conversation_id


def test_booking_again_from_a_new_conversation_reschedules(env):
    use_case, extractor, calendar, _ = env
    extractor.queue(_booking(time="10:30"), _booking(time="14:00"))

    use_case.handle(PHONE, "Pode confirmar")
    second = use_case.handle(PHONE, "Na verdade prefiro as 14h")

    assert second.action == "rescheduled"
    assert "Appointment rescheduled!" in second.text
    with calendar.transaction() as tx:
        live = tx.find_live_for_phone(PHONE)
    assert [a.time_label for a in live] == ["14:00"]


def test_time_outside_bookable_times_lists_the_options(env):
    use_case, extractor, calendar, sessions = env
    extractor.queue(_booking(time="10:00"))

    reply = use_case.handle(PHONE, "Pode ser as 10h")

    assert reply.action == "rejected"
    assert "09:30, 10:30, 11:30" in reply.text
    assert sessions.get_conversation(reply.conversation_id).status == ConversationStatus.ACTIVE
    with calendar.transaction() as tx:
        assert tx.list_appointments() == []


def test_malformed_date_asks_to_repeat(env):
    use_case, extractor, _, _ = env
    extractor.queue(_booking(day="07/11"))

    reply = use_case.handle(PHONE, "Dia 7")

    assert reply.action == "rejected"
    assert "the date" in reply.text


def test_blocked_day_keeps_the_conversation_open(env):
    use_case, extractor, calendar, sessions = env
    with calendar.transaction() as tx:
        tx.add_blocked_date(
            BlockedDate(id="b", date=date(2025, 11, 6), reason="Feriado", created_at=datetime.now(timezone.utc))
        )
    extractor.queue(_booking(day="2025-11-06"))

    reply = use_case.handle(PHONE, "Dia 6 as 10:30")

    assert reply.action == "rejected"
    assert "06/11/2025" in reply.text
    assert "Feriado" in reply.text
    assert sessions.get_conversation(reply.conversation_id).is_active


def test_taken_slot_suggests_open_times(env):
    use_case, extractor, _, _ = env
    extractor.queue(_booking(time="10:30"))
    use_case.handle("5511000000001", "Confirmo")

    extractor.queue(_booking(time="10:30"))
    reply = use_case.handle(PHONE, "Confirmo")

    assert reply.action == "rejected"
    assert "already booked" in reply.text
    assert "09:30, 11:30, 13:00" in reply.text


def test_redelivered_booking_trigger_is_a_no_op(env):
    use_case, extractor, calendar, sessions = env
    conversation = sessions.get_or_create_active(PHONE)
    BookingLifecycleManager(calendar=calendar, sessions=sessions).create_appointment(
        PHONE, candidate(time="10:30", duration=60), conversation_id=conversation.id
    )
    extractor.queue(_booking(reply="Seu horario ja esta reservado."))

    reply = use_case.handle(PHONE, "Confirmo")

    assert reply.action == "already_scheduled"
    assert reply.text == "Seu horario ja esta reservado."
    with calendar.transaction() as tx:
        assert len(tx.find_live_for_phone(PHONE)) == 1


def test_cancel_intent_cancels_the_live_booking(env):
    use_case, extractor, calendar, _ = env
    extractor.queue(_booking(), ExtractionResult(reply="", intent=CancelIntent()))

    use_case.handle(PHONE, "Confirmo")
    reply = use_case.handle(PHONE, "Quero cancelar")

    assert reply.action == "cancelled"
    assert "has been cancelled" in reply.text
    with calendar.transaction() as tx:
        [appointment] = tx.list_appointments()
    assert appointment.status == AppointmentStatus.CANCELLED


def test_cancel_without_booking_reports_not_found(env):
    use_case, extractor, _, _ = env
    extractor.queue(ExtractionResult(reply="", intent=CancelIntent()))

    reply = use_case.handle(PHONE, "Cancelar")

    assert reply.action == "not_found"
    assert "could not find" in reply.text


def test_reschedule_intent_moves_the_booking(env):
    use_case, extractor, calendar, _ = env
    extractor.queue(
        _booking(time="10:30"),
        ExtractionResult(reply="", intent=RescheduleIntent(new_date="2025-11-10", new_time="15:00")),
    )

    booked = use_case.handle(PHONE, "Confirmo")
    reply = use_case.handle(PHONE, "Pode mudar para dia 10 as 15h?")

    assert reply.action == "rescheduled"
    assert "Change confirmed!" in reply.text
    assert "10/11/2025" in reply.text
    with calendar.transaction() as tx:
        [appointment] = tx.find_live_for_phone(PHONE)
    assert appointment.date == date(2025, 11, 10)
    assert appointment.time_label == "15:00"
    assert appointment.conversation_id == booked.conversation_id


def test_reschedule_without_booking_reports_not_found(env):
    use_case, extractor, _, _ = env
    extractor.queue(ExtractionResult(reply="", intent=RescheduleIntent(new_date="2025-11-10", new_time="15:00")))

    assert use_case.handle(PHONE, "Mudar horario").action == "not_found"


@pytest.mark.parametrize("error", [LLMUpstreamError("timeout"), LLMContractError("bad json")])
def test_extractor_failure_asks_to_try_again_and_keeps_the_message(env, error):
    use_case, extractor, _, sessions = env
    extractor.queue(error)

    reply = use_case.handle(PHONE, "Oi, tudo bem?")

    assert reply.action == "unavailable"
    assert "try again" in reply.text
    assert _transcript(sessions, reply.conversation_id) == [(MessageRole.USER, "Oi, tudo bem?")]
    assert sessions.get_conversation(reply.conversation_id).is_active


def test_plain_reply_intent_has_no_calendar_effect(env):
    use_case, extractor, calendar, _ = env
    extractor.queue(ExtractionResult(reply="Temos horarios as 09:30 e 10:30.", intent=PlainReply()))

    use_case.handle(PHONE, "Quais horarios?")

    with calendar.transaction() as tx:
        assert tx.list_appointments() == []
