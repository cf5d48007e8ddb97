from __future__ import annotations

from typing import Any

from pydantic import BaseModel, ConfigDict, Field

from clinicbook.domain.entities.message import InboundMessage


class ZApiWebhookDTO(BaseModel):
    """Z-API `ReceivedCallback` payload; only the fields the engine reads."""

    model_config = ConfigDict(extra="ignore", populate_by_name=True)

    phone: str = ""
    type: str | None = None
    from_me: bool = Field(default=False, alias="fromMe")
    waiting_message: bool = Field(default=False, alias="waitingMessage")
    is_group: bool = Field(default=False, alias="isGroup")
    sender_name: str | None = Field(default=None, alias="senderName")
    chat_name: str | None = Field(default=None, alias="chatName")
    message_id: str | None = Field(default=None, alias="messageId")
    text: dict[str, Any] | None = None
    image: dict[str, Any] | None = None

    def message_text(self) -> str:
        if self.text and self.text.get("message"):
            return str(self.text["message"])
        if self.image and self.image.get("caption"):
            return str(self.image["caption"])
        return ""

    def ignore_reason(self) -> str | None:
        if self.from_me:
            return "fromMe"
        if self.type != "ReceivedCallback":
            return "not_received_callback"
        if self.waiting_message:
            return "waiting_message"
        if not self.message_text().strip():
            return "no_text"
        if self.is_group or "-" in self.phone or "@g.us" in self.phone:
            return "group"
        if not self.phone:
            return "no_phone"
        return None

    def to_inbound(self) -> InboundMessage | None:
        if self.ignore_reason() is not None:
            return None
        return InboundMessage(
            phone_number=self.phone,
            text=self.message_text().strip(),
            sender_name=self.sender_name or self.chat_name,
            message_id=self.message_id,
        )
