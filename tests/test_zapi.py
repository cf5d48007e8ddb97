"""
Tests for the Z-API adapter: callback parsing, outbound sends and token checks.
"""

from __future__ import annotations

import json

import httpx
import pytest

from clinicbook.application.dto.webhook_event import ZApiWebhookDTO
from clinicbook.application.exceptions import ExternalServiceUnavailable
from clinicbook.application.use_cases.send_reply import SendReplyUseCase
from clinicbook.infrastructure.zapi.mock_platform import MockMessagingPlatform
from clinicbook.infrastructure.zapi.webhook_verify import verify_client_token
from clinicbook.infrastructure.zapi.zapi_client import ZApiClient, format_phone


def test_callback_maps_to_inbound_message():
    event = ZApiWebhookDTO.model_validate(
        {
            "type": "ReceivedCallback",
            "phone": "5511999990000",
            "fromMe": False,
            "chatName": "Maria",
            "messageId": "3EB0",
            "text": {"message": "  Oi!  "},
            "momment": 1730000000000,
        }
    )

    inbound = event.to_inbound()
    assert inbound.phone_number == "5511999990000"
    assert inbound.text == "Oi!"
    assert inbound.sender_name == "Maria"
    assert inbound.message_id == "3EB0"


def test_ignored_callback_has_no_inbound_message():
    event = ZApiWebhookDTO.model_validate({"type": "ReceivedCallback", "phone": "5511999990000", "waitingMessage": True})
    assert event.ignore_reason() == "waiting_message"
    assert event.to_inbound() is None


@pytest.mark.parametrize(
    "raw, expected",
    [
        ("(11) 99999-0000", "5511999990000"),
        ("+55 11 99999-0000", "5511999990000"),
        ("5511999990000", "5511999990000"),
    ],
)
def test_format_phone(raw, expected):
    assert format_phone(raw) == expected


def _client(handler) -> ZApiClient:
    return ZApiClient(
        base_url="https://api.z-api.io/",
        instance_id="INSTANCE",
        token="TOKEN",
        client_token="CLIENT",
        http_client=httpx.Client(transport=httpx.MockTransport(handler)),
    )


def test_send_text_posts_to_the_instance_endpoint():
    seen = []

    def handler(request: httpx.Request) -> httpx.Response:
        seen.append(request)
        return httpx.Response(200, json={"messageId": "abc"})

    _client(handler).send_text("(11) 99999-0000", "Appointment confirmed!")

    [request] = seen
    assert str(request.url) == "https://api.z-api.io/instances/INSTANCE/token/TOKEN/send-text"
    assert request.headers["Client-Token"] == "CLIENT"
    assert json.loads(request.content) == {"phone": "5511999990000", "message": "Appointment confirmed!"}


def test_send_text_raises_on_error_status():
    client = _client(lambda request: httpx.Response(400, json={"error": "instance not connected"}))

    with pytest.raises(ExternalServiceUnavailable):
        client.send_text("5511999990000", "Oi")


def test_send_text_raises_on_transport_error():
    def handler(request: httpx.Request) -> httpx.Response:
        raise httpx.ConnectError("connection refused", request=request)

    with pytest.raises(ExternalServiceUnavailable):
        _client(handler).send_text("5511999990000", "Oi")


def test_send_reply_honours_the_auto_reply_switch():
    platform = MockMessagingPlatform()

    assert SendReplyUseCase(platform, auto_reply_enabled=False).execute("5511999990000", "Oi") is False
    assert SendReplyUseCase(platform, auto_reply_enabled=True).execute("5511999990000", "") is False
    assert platform.sent == []

    assert SendReplyUseCase(platform, auto_reply_enabled=True).execute("5511999990000", "Oi") is True
    assert platform.sent == [("5511999990000", "Oi")]


def test_client_token_verification():
    assert verify_client_token(None, None, "test") is True
    assert verify_client_token(None, "secret", "prod") is False
    assert verify_client_token("wrong", "secret", "prod") is False
    assert verify_client_token("secret", "secret", "prod") is True
