"""
Relational schema for the calendar and the conversation sessions.
"""

from sqlalchemy import JSON, Column, Date, DateTime, ForeignKey, Index, Integer, String, Text, UniqueConstraint, text

from clinicbook.infrastructure.store.database import Base

_NOT_CANCELLED = text("status != 'CANCELLED'")
_LIVE = text("status IN ('PENDING', 'CONFIRMED')")
_ACTIVE = text("status = 'ACTIVE'")


class AppointmentRow(Base):
    __tablename__ = "appointments"

    id = Column(String(32), primary_key=True)
    customer_name = Column(String(255), nullable=False)
    customer_phone = Column(String(64), nullable=False, index=True)
    service = Column(String(255), nullable=False)
    date = Column(Date, nullable=False, index=True)
    start_minute = Column(Integer, nullable=False)  # minutes since midnight
    duration_minutes = Column(Integer, nullable=False)
    # PENDING, CONFIRMED, COMPLETED, CANCELLED
    status = Column(String(16), nullable=False, index=True)
    notes = Column(Text, nullable=True)
    conversation_id = Column(String(32), nullable=True, index=True)  # no FK: weak reference
    created_at = Column(DateTime(timezone=True), nullable=False)
    updated_at = Column(DateTime(timezone=True), nullable=False)

    __table_args__ = (
        # Final authority for two writers racing for the same slot.
        Index(
            "uq_appointments_slot",
            "date",
            "start_minute",
            unique=True,
            sqlite_where=_NOT_CANCELLED,
            postgresql_where=_NOT_CANCELLED,
        ),
        Index(
            "uq_appointments_live_phone",
            "customer_phone",
            unique=True,
            sqlite_where=_LIVE,
            postgresql_where=_LIVE,
        ),
    )


class BlockedDateRow(Base):
    __tablename__ = "blocked_dates"

    id = Column(String(32), primary_key=True)
    date = Column(Date, nullable=False, unique=True)
    reason = Column(String(255), nullable=True)
    created_at = Column(DateTime(timezone=True), nullable=False)


class BlockedTimeSlotRow(Base):
    __tablename__ = "blocked_time_slots"

    id = Column(String(32), primary_key=True)
    date = Column(Date, nullable=False, index=True)
    start_minute = Column(Integer, nullable=False)
    end_minute = Column(Integer, nullable=False)  # exclusive
    reason = Column(String(255), nullable=True)
    created_at = Column(DateTime(timezone=True), nullable=False)


class PrescriptionRow(Base):
    __tablename__ = "prescriptions"

    id = Column(String(32), primary_key=True)
    patient_name = Column(String(255), nullable=False, index=True)
    content = Column(Text, nullable=False)
    created_at = Column(DateTime(timezone=True), nullable=False, index=True)


class ConversationRow(Base):
    __tablename__ = "conversations"

    id = Column(String(32), primary_key=True)
    phone_number = Column(String(64), nullable=False, index=True)
    status = Column(String(16), nullable=False)  # ACTIVE, CLOSED
    context = Column(JSON, nullable=False, default=dict)
    created_at = Column(DateTime(timezone=True), nullable=False)
    updated_at = Column(DateTime(timezone=True), nullable=False)

    __table_args__ = (
        Index(
            "uq_conversations_active_phone",
            "phone_number",
            unique=True,
            sqlite_where=_ACTIVE,
            postgresql_where=_ACTIVE,
        ),
    )


class MessageRow(Base):
    __tablename__ = "messages"

    id = Column(String(32), primary_key=True)
    conversation_id = Column(String(32), ForeignKey("conversations.id", ondelete="CASCADE"), nullable=False)
    seq = Column(Integer, nullable=False)
    role = Column(String(16), nullable=False)  # USER, ASSISTANT
    content = Column(Text, nullable=False)
    created_at = Column(DateTime(timezone=True), nullable=False)

    __table_args__ = (UniqueConstraint("conversation_id", "seq", name="uq_messages_conversation_seq"),)
