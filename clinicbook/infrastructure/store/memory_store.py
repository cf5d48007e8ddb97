from __future__ import annotations

import threading
import uuid
from dataclasses import replace
from datetime import datetime, timezone

from clinicbook.application.ports.session_store import SessionStorePort
from clinicbook.domain.entities.conversation import Conversation, ConversationStatus, merge_context
from clinicbook.domain.entities.message import Message, MessageRole


class MemorySessionStore(SessionStorePort):
    """Process-local sessions. Every read-modify-write runs under one store lock."""

    def __init__(self) -> None:
        self._conversations: dict[str, Conversation] = {}
        self._messages: dict[str, list[Message]] = {}
        self._active_by_phone: dict[str, str] = {}
        self._lock = threading.RLock()

    def get_or_create_active(self, phone_number: str) -> Conversation:
        with self._lock:
            conversation_id = self._active_by_phone.get(phone_number)
            if conversation_id is not None:
                return self._conversations[conversation_id]

            now = _now()
            conversation = Conversation(
                id=uuid.uuid4().hex,
                phone_number=phone_number,
                status=ConversationStatus.ACTIVE,
                created_at=now,
                updated_at=now,
            )
            self._conversations[conversation.id] = conversation
            self._messages[conversation.id] = []
            self._active_by_phone[phone_number] = conversation.id
            return conversation

    def get_conversation(self, conversation_id: str) -> Conversation | None:
        with self._lock:
            return self._conversations.get(conversation_id)

    def append_message(self, conversation_id: str, role: MessageRole, content: str) -> Message:
        with self._lock:
            if conversation_id not in self._conversations:
                raise KeyError(f"unknown conversation {conversation_id}")
            messages = self._messages.setdefault(conversation_id, [])
            message = Message(
                id=uuid.uuid4().hex,
                conversation_id=conversation_id,
                seq=len(messages) + 1,
                role=role,
                content=content,
                created_at=_now(),
            )
            messages.append(message)
            current = self._conversations[conversation_id]
            self._conversations[conversation_id] = replace(current, updated_at=message.created_at)
            return message

    def get_history(self, conversation_id: str, limit: int | None = None) -> list[Message]:
        with self._lock:
            messages = list(self._messages.get(conversation_id, []))
        if limit is not None:
            return messages[-limit:] if limit > 0 else []
        return messages

    def update_context(self, conversation_id: str, partial: dict[str, str | None]) -> Conversation:
        with self._lock:
            current = self._conversations.get(conversation_id)
            if current is None:
                raise KeyError(f"unknown conversation {conversation_id}")
            updated = replace(current, context=merge_context(current.context, partial), updated_at=_now())
            self._conversations[conversation_id] = updated
            return updated

    def close_conversation(self, conversation_id: str) -> Conversation | None:
        with self._lock:
            current = self._conversations.get(conversation_id)
            if current is None:
                return None
            closed = replace(current, status=ConversationStatus.CLOSED, updated_at=_now())
            self._conversations[conversation_id] = closed
            if self._active_by_phone.get(current.phone_number) == conversation_id:
                del self._active_by_phone[current.phone_number]
            return closed

    def list_conversations(self) -> list[tuple[Conversation, Message | None, int]]:
        with self._lock:
            rows = []
            for conversation in self._conversations.values():
                messages = self._messages.get(conversation.id, [])
                rows.append((conversation, messages[-1] if messages else None, len(messages)))
        rows.sort(key=lambda row: row[0].updated_at, reverse=True)
        return rows


def _now() -> datetime:
    return datetime.now(timezone.utc)
