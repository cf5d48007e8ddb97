from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime
from enum import Enum


class MessageRole(str, Enum):
    USER = "USER"
    ASSISTANT = "ASSISTANT"


@dataclass(frozen=True)
class Message:
    id: str
    conversation_id: str
    seq: int  # arrival order within the conversation
    role: MessageRole
    content: str
    created_at: datetime


@dataclass(frozen=True)
class InboundMessage:
    phone_number: str
    text: str
    sender_name: str | None = None
    message_id: str | None = None
