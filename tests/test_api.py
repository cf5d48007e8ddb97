"""
Tests for the HTTP surface: webhooks and the admin API.
"""

from __future__ import annotations

from contextlib import ExitStack

import pytest
from conftest import ScriptedExtractor
from fastapi.testclient import TestClient

from clinicbook.core.config import Settings
from clinicbook.domain.entities.intent import BookingIntent, ExtractionResult
from clinicbook.infrastructure.zapi.mock_platform import MockMessagingPlatform
from clinicbook.main import create_app
from clinicbook.wiring.dependencies import build_container

PHONE = "5511999990000"
AUTH = {"Authorization": "Bearer secret"}


def _settings(tmp_path, **overrides) -> Settings:
    values = {
        "ENV": "test",
        "STORE_PROVIDER": "sql",
        "DATABASE_URL": f"sqlite:///{tmp_path / 'api.db'}",
        "EXTRACTOR_PROVIDER": "mock",
        "ADMIN_TOKEN": "secret",
        "AUTO_REPLY_ENABLED": True,
    }
    values.update(overrides)
    return Settings(**values)


@pytest.fixture
def extractor():
    return ScriptedExtractor()


@pytest.fixture
def platform():
    return MockMessagingPlatform()


@pytest.fixture
def make_client(tmp_path, extractor, platform):
    with ExitStack() as stack:

        def make(**overrides) -> TestClient:
            container = build_container(_settings(tmp_path, **overrides), extractor=extractor, platform=platform)
            return stack.enter_context(TestClient(create_app(container=container)))

        yield make


@pytest.fixture
def client(make_client):
    return make_client()


def _zapi_payload(**overrides):
    payload = {
        "type": "ReceivedCallback",
        "phone": PHONE,
        "fromMe": False,
        "senderName": "Maria",
        "messageId": "3EB0",
        "text": {"message": "Oi, quero marcar uma limpeza"},
    }
    payload.update(overrides)
    return payload


def test_health(client):
    assert client.get("/health").json() == {"status": "ok"}


def test_message_webhook_returns_the_reply(client, extractor):
    extractor.queue(ExtractionResult(reply="Qual o seu nome?"))

    response = client.post("/webhooks/messages", json={"phoneNumber": PHONE, "text": "Oi"})

    assert response.status_code == 200
    body = response.json()
    assert body["outboundText"] == "Qual o seu nome?"
    assert body["action"] == "reply"
    assert body["conversationId"]


def test_message_webhook_validates_the_body(client):
    assert client.post("/webhooks/messages", json={"phoneNumber": PHONE}).status_code == 422


def test_zapi_webhook_processes_and_sends_in_background(client, extractor, platform):
    extractor.queue(
        ExtractionResult(
            reply="",
            intent=BookingIntent(
                customer_name="Maria Silva", service="Limpeza", date="2025-11-07", time="10:30", insurance=None
            ),
        )
    )

    response = client.post("/webhooks/zapi", json=_zapi_payload())

    assert response.json() == {"status": "accepted"}
    [(phone, text)] = platform.sent
    assert phone == PHONE
    assert "Appointment confirmed!" in text


def test_zapi_webhook_does_not_send_when_auto_reply_is_off(make_client, extractor, platform):
    client = make_client(AUTO_REPLY_ENABLED=False)
    extractor.queue(ExtractionResult(reply="Qual o seu nome?"))

    assert client.post("/webhooks/zapi", json=_zapi_payload()).json() == {"status": "accepted"}
    assert platform.sent == []


@pytest.mark.parametrize(
    "overrides, reason",
    [
        ({"fromMe": True}, "fromMe"),
        ({"type": "MessageStatusCallback"}, "not_received_callback"),
        ({"text": None}, "no_text"),
        ({"phone": "120363019502650977-group"}, "group"),
        ({"isGroup": True}, "group"),
    ],
)
def test_zapi_webhook_ignores_non_customer_messages(client, extractor, overrides, reason):
    response = client.post("/webhooks/zapi", json=_zapi_payload(**overrides))

    assert response.json() == {"status": "ignored", "reason": reason}
    assert extractor.calls == []


def test_zapi_image_caption_counts_as_text(client, extractor, platform):
    extractor.queue(ExtractionResult(reply="Recebi a foto."))

    response = client.post(
        "/webhooks/zapi", json=_zapi_payload(text=None, image={"caption": "Segue o pedido medico"})
    )

    assert response.json() == {"status": "accepted"}
    history, _ = extractor.calls[0]
    assert history[-1].content == "Segue o pedido medico"


def test_zapi_webhook_rejects_bad_client_token(make_client):
    client = make_client(ZAPI_CLIENT_TOKEN="zapi-secret")

    assert client.post("/webhooks/zapi", json=_zapi_payload()).status_code == 401
    assert (
        client.post("/webhooks/zapi", json=_zapi_payload(fromMe=True), headers={"Client-Token": "zapi-secret"})
        .json()["status"]
        == "ignored"
    )


def test_zapi_webhook_rejects_invalid_json(client):
    response = client.post("/webhooks/zapi", content=b"{not json", headers={"Content-Type": "application/json"})
    assert response.status_code == 400


def test_admin_requires_the_token(client, make_client):
    assert client.get("/api/v1/admin/appointments").status_code == 401
    assert client.get("/api/v1/admin/appointments", headers={"Authorization": "Bearer wrong"}).status_code == 401

    disabled = make_client(ADMIN_TOKEN=None)
    assert disabled.get("/api/v1/admin/appointments", headers=AUTH).status_code == 401


def test_admin_appointment_lifecycle(client):
    created = client.post(
        "/api/v1/admin/appointments",
        headers=AUTH,
        json={
            "customerName": "Maria Silva",
            "customerPhone": PHONE,
            "service": "Limpeza",
            "date": "2025-11-07",
            "time": "10:00",
        },
    )
    assert created.status_code == 201
    appointment = created.json()["appointment"]
    assert appointment["customerName"] == "Maria Silva"
    assert appointment["duration"] == 30
    assert appointment["status"] == "CONFIRMED"
    assert created.json()["rescheduled"] is False

    conflict = client.post(
        "/api/v1/admin/appointments",
        headers=AUTH,
        json={
            "customerName": "Ana",
            "customerPhone": "5511000000002",
            "service": "Limpeza",
            "date": "2025-11-07",
            "time": "10:15",
        },
    )
    assert conflict.status_code == 409
    assert conflict.json()["detail"]["error"] == "TimeConflict"

    listed = client.get("/api/v1/admin/appointments", headers=AUTH, params={"start": "2025-11-01", "end": "2025-11-30"})
    assert [a["id"] for a in listed.json()] == [appointment["id"]]

    patched = client.patch(
        f"/api/v1/admin/appointments/{appointment['id']}", headers=AUTH, json={"time": "11:00", "notes": "Retorno"}
    )
    assert patched.status_code == 200
    assert patched.json()["time"] == "11:00"
    assert patched.json()["notes"] == "Retorno"

    assert client.delete(f"/api/v1/admin/appointments/{appointment['id']}", headers=AUTH).status_code == 204
    missing = client.get(f"/api/v1/admin/appointments/{appointment['id']}", headers=AUTH)
    assert missing.status_code == 404
    assert missing.json()["detail"]["error"] == "NotFound"


def test_admin_invalid_time_is_a_bad_request(client):
    response = client.post(
        "/api/v1/admin/appointments",
        headers=AUTH,
        json={"customerName": "Maria", "customerPhone": PHONE, "service": "Limpeza", "date": "2025-11-07", "time": "9h75"},
    )
    assert response.status_code == 400
    assert response.json()["detail"]["field"] == "time"


def test_admin_blocked_dates(client):
    created = client.post("/api/v1/admin/blocked-dates", headers=AUTH, json={"date": "2025-11-06", "reason": "Feriado"})
    assert created.status_code == 201
    assert created.json()["reason"] == "Feriado"

    duplicate = client.post("/api/v1/admin/blocked-dates", headers=AUTH, json={"date": "2025-11-06"})
    assert duplicate.status_code == 400

    booking = client.post(
        "/api/v1/admin/appointments",
        headers=AUTH,
        json={"customerName": "Maria", "customerPhone": PHONE, "service": "Limpeza", "date": "2025-11-06", "time": "10:00"},
    )
    assert booking.status_code == 409
    assert booking.json()["detail"] == {"error": "DateBlocked", "date": "2025-11-06", "reason": "Feriado"}

    assert client.delete("/api/v1/admin/blocked-dates", headers=AUTH, params={"date": "2025-11-06"}).status_code == 204
    assert client.get("/api/v1/admin/blocked-dates", headers=AUTH).json() == []


def test_admin_blocked_slots(client):
    created = client.post(
        "/api/v1/admin/blocked-slots",
        headers=AUTH,
        json={"date": "2025-11-07", "startTime": "12:00", "endTime": "13:00", "reason": "Almoco"},
    )
    assert created.status_code == 201
    slot = created.json()
    assert (slot["startTime"], slot["endTime"]) == ("12:00", "13:00")

    patched = client.patch(f"/api/v1/admin/blocked-slots/{slot['id']}", headers=AUTH, json={"endTime": "14:00"})
    assert patched.json()["endTime"] == "14:00"

    inverted = client.post(
        "/api/v1/admin/blocked-slots",
        headers=AUTH,
        json={"date": "2025-11-07", "startTime": "15:00", "endTime": "14:00"},
    )
    assert inverted.status_code == 400

    assert client.delete(f"/api/v1/admin/blocked-slots/{slot['id']}", headers=AUTH).status_code == 204
    assert client.delete(f"/api/v1/admin/blocked-slots/{slot['id']}", headers=AUTH).status_code == 404


def test_admin_conversations_calendar_and_stats(client, extractor):
    extractor.queue(
        ExtractionResult(
            reply="Perfeito!",
            intent=BookingIntent(
                customer_name="Maria Silva", service="Limpeza", date="2025-11-07", time="10:30", insurance=None
            ),
        )
    )
    booked = client.post("/webhooks/messages", json={"phoneNumber": PHONE, "text": "Pode confirmar"}).json()

    [summary] = client.get("/api/v1/admin/conversations", headers=AUTH).json()
    assert summary["phoneNumber"] == PHONE
    assert summary["status"] == "CLOSED"
    assert summary["messageCount"] == 3

    detail = client.get(f"/api/v1/admin/conversations/{booked['conversationId']}", headers=AUTH).json()
    assert [m["role"] for m in detail["messages"]] == ["USER", "ASSISTANT", "ASSISTANT"]
    assert client.get("/api/v1/admin/conversations/missing", headers=AUTH).status_code == 404

    month = client.get("/api/v1/admin/calendar", headers=AUTH, params={"month": "2025-11"}).json()
    assert month["total"] == 1
    assert [a["time"] for a in month["appointments"]["2025-11-07"]] == ["10:30"]
    assert client.get("/api/v1/admin/calendar", headers=AUTH, params={"month": "nov"}).status_code == 400

    stats = client.get("/api/v1/admin/dashboard/stats", headers=AUTH).json()
    assert stats["totalAppointments"] == 1
    assert stats["topServices"] == [{"key": "Limpeza", "count": 1}]
    assert stats["totalConversations"] == 1


def test_admin_prescriptions(client):
    created = client.post(
        "/api/v1/admin/prescriptions",
        headers=AUTH,
        json={"patientName": "Maria Silva", "content": "Amoxicilina 500mg, 8/8h por 7 dias"},
    )
    assert created.status_code == 201
    prescription = created.json()
    assert prescription["patientName"] == "Maria Silva"
    assert prescription["createdAt"]

    client.post("/api/v1/admin/prescriptions", headers=AUTH, json={"patientName": "Joao", "content": "Ibuprofeno"})

    matches = client.get("/api/v1/admin/prescriptions", headers=AUTH, params={"patientName": "MARIA"}).json()
    assert [p["id"] for p in matches] == [prescription["id"]]
    assert len(client.get("/api/v1/admin/prescriptions", headers=AUTH).json()) == 2

    blank = client.post("/api/v1/admin/prescriptions", headers=AUTH, json={"patientName": "  ", "content": "x"})
    assert blank.status_code == 400
    assert blank.json()["detail"]["field"] == "patient_name"
    assert client.post("/api/v1/admin/prescriptions", headers=AUTH, json={"patientName": "Maria"}).status_code == 422
    assert client.get("/api/v1/admin/prescriptions").status_code == 401
