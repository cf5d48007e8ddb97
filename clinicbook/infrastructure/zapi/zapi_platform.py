from __future__ import annotations

from clinicbook.application.ports.message_platform import MessagePlatformPort
from clinicbook.infrastructure.zapi.zapi_client import ZApiClient


class ZApiPlatform(MessagePlatformPort):
    def __init__(self, client: ZApiClient) -> None:
        self._client = client

    def send_text(self, phone_number: str, text: str) -> None:
        self._client.send_text(phone_number=phone_number, text=text)

    def close(self) -> None:
        self._client.close()
