from __future__ import annotations

import logging

from clinicbook.application.ports.message_platform import MessagePlatformPort


class MockMessagingPlatform(MessagePlatformPort):
    """Records outgoing texts instead of delivering them."""

    def __init__(self) -> None:
        self.sent: list[tuple[str, str]] = []
        self._logger = logging.getLogger(__name__)

    def send_text(self, phone_number: str, text: str) -> None:
        self.sent.append((phone_number, text))
        self._logger.info("Mock send", extra={"phone": phone_number, "text_length": len(text)})
