from __future__ import annotations

from abc import ABC, abstractmethod

from clinicbook.domain.entities.conversation import Conversation
from clinicbook.domain.entities.message import Message, MessageRole


class SessionStorePort(ABC):
    @abstractmethod
    def get_or_create_active(self, phone_number: str) -> Conversation:
        """
        Return the ACTIVE conversation for a phone, creating one if none exists.
        Atomic: concurrent first messages from one phone share one conversation.
        """
        raise NotImplementedError

    @abstractmethod
    def get_conversation(self, conversation_id: str) -> Conversation | None:
        raise NotImplementedError

    @abstractmethod
    def append_message(self, conversation_id: str, role: MessageRole, content: str) -> Message:
        raise NotImplementedError

    @abstractmethod
    def get_history(self, conversation_id: str, limit: int | None = None) -> list[Message]:
        """Messages oldest to newest; with a limit, the newest `limit` of them."""
        raise NotImplementedError

    @abstractmethod
    def update_context(self, conversation_id: str, partial: dict[str, str | None]) -> Conversation:
        raise NotImplementedError

    @abstractmethod
    def close_conversation(self, conversation_id: str) -> Conversation | None:
        raise NotImplementedError

    @abstractmethod
    def list_conversations(self) -> list[tuple[Conversation, Message | None, int]]:
        """(conversation, last message, message count), most recently updated first."""
        raise NotImplementedError
