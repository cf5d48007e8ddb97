from __future__ import annotations

import logging
import uuid
from datetime import datetime, timezone

from sqlalchemy import func, select
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session, sessionmaker

from clinicbook.application.ports.session_store import SessionStorePort
from clinicbook.domain.entities.conversation import Conversation, ConversationStatus, merge_context
from clinicbook.domain.entities.message import Message, MessageRole
from clinicbook.infrastructure.store.sql_models import ConversationRow, MessageRow


class SqlSessionStore(SessionStorePort):
    def __init__(self, session_factory: sessionmaker) -> None:
        self._session_factory = session_factory
        self._logger = logging.getLogger(__name__)

    def get_or_create_active(self, phone_number: str) -> Conversation:
        with self._session_factory() as session:
            try:
                with session.begin():
                    row = _find_active(session, phone_number)
                    if row is None:
                        now = _now()
                        row = ConversationRow(
                            id=uuid.uuid4().hex,
                            phone_number=phone_number,
                            status=ConversationStatus.ACTIVE.value,
                            context={},
                            created_at=now,
                            updated_at=now,
                        )
                        session.add(row)
                        session.flush()
                        self._logger.info(
                            "Conversation created", extra={"conversation_id": row.id, "phone": phone_number}
                        )
                    return _conversation_from_row(row)
            except IntegrityError:
                # A concurrent first message from the same phone created it.
                with session.begin():
                    row = _find_active(session, phone_number)
                    if row is None:
                        raise
                    return _conversation_from_row(row)

    def get_conversation(self, conversation_id: str) -> Conversation | None:
        with self._session_factory() as session:
            row = session.get(ConversationRow, conversation_id)
            return _conversation_from_row(row) if row is not None else None

    def append_message(self, conversation_id: str, role: MessageRole, content: str) -> Message:
        with self._session_factory() as session, session.begin():
            conversation = session.get(ConversationRow, conversation_id)
            if conversation is None:
                raise KeyError(f"unknown conversation {conversation_id}")
            last_seq = session.scalar(
                select(func.max(MessageRow.seq)).where(MessageRow.conversation_id == conversation_id)
            )
            now = _now()
            row = MessageRow(
                id=uuid.uuid4().hex,
                conversation_id=conversation_id,
                seq=(last_seq or 0) + 1,
                role=role.value,
                content=content,
                created_at=now,
            )
            session.add(row)
            conversation.updated_at = now
            session.flush()
            return _message_from_row(row)

    def get_history(self, conversation_id: str, limit: int | None = None) -> list[Message]:
        with self._session_factory() as session:
            stmt = select(MessageRow).where(MessageRow.conversation_id == conversation_id)
            if limit is not None:
                if limit <= 0:
                    return []
                rows = session.scalars(stmt.order_by(MessageRow.seq.desc()).limit(limit)).all()
                rows = list(reversed(rows))
            else:
                rows = session.scalars(stmt.order_by(MessageRow.seq)).all()
            return [_message_from_row(row) for row in rows]

    def update_context(self, conversation_id: str, partial: dict[str, str | None]) -> Conversation:
        with self._session_factory() as session, session.begin():
            row = session.get(ConversationRow, conversation_id)
            if row is None:
                raise KeyError(f"unknown conversation {conversation_id}")
            # Reassign so the JSON column is marked dirty.
            row.context = merge_context(dict(row.context or {}), partial)
            row.updated_at = _now()
            session.flush()
            return _conversation_from_row(row)

    def close_conversation(self, conversation_id: str) -> Conversation | None:
        with self._session_factory() as session, session.begin():
            row = session.get(ConversationRow, conversation_id)
            if row is None:
                return None
            row.status = ConversationStatus.CLOSED.value
            row.updated_at = _now()
            session.flush()
            return _conversation_from_row(row)

    def list_conversations(self) -> list[tuple[Conversation, Message | None, int]]:
        with self._session_factory() as session:
            conversations = session.scalars(select(ConversationRow).order_by(ConversationRow.updated_at.desc())).all()
            out: list[tuple[Conversation, Message | None, int]] = []
            for row in conversations:
                count = session.scalar(
                    select(func.count()).select_from(MessageRow).where(MessageRow.conversation_id == row.id)
                )
                last = session.scalars(
                    select(MessageRow).where(MessageRow.conversation_id == row.id).order_by(MessageRow.seq.desc())
                ).first()
                out.append(
                    (_conversation_from_row(row), _message_from_row(last) if last is not None else None, count or 0)
                )
            return out


def _find_active(session: Session, phone_number: str) -> ConversationRow | None:
    stmt = select(ConversationRow).where(
        ConversationRow.phone_number == phone_number,
        ConversationRow.status == ConversationStatus.ACTIVE.value,
    )
    return session.scalars(stmt).first()


def _conversation_from_row(row: ConversationRow) -> Conversation:
    return Conversation(
        id=row.id,
        phone_number=row.phone_number,
        status=ConversationStatus(row.status),
        context=dict(row.context or {}),
        created_at=row.created_at,
        updated_at=row.updated_at,
    )


def _message_from_row(row: MessageRow) -> Message:
    return Message(
        id=row.id,
        conversation_id=row.conversation_id,
        seq=row.seq,
        role=MessageRole(row.role),
        content=row.content,
        created_at=row.created_at,
    )


def _now() -> datetime:
    return datetime.now(timezone.utc)
