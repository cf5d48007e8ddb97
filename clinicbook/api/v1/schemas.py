import datetime as dt

from pydantic import BaseModel, ConfigDict, Field

from clinicbook.domain.entities.appointment import Appointment, AppointmentStatus
from clinicbook.domain.entities.blocking import BlockedDate, BlockedTimeSlot
from clinicbook.domain.entities.conversation import Conversation
from clinicbook.domain.entities.message import Message
from clinicbook.domain.entities.prescription import Prescription


class CamelModel(BaseModel):
    model_config = ConfigDict(populate_by_name=True)


# Webhooks


class InboundMessageSchema(CamelModel):
    phone_number: str = Field(alias="phoneNumber", min_length=1)
    text: str = Field(min_length=1)


class OutboundMessageSchema(CamelModel):
    outbound_text: str = Field(alias="outboundText")
    action: str
    conversation_id: str = Field(alias="conversationId")


# Appointments


class AppointmentSchema(CamelModel):
    id: str
    customer_name: str = Field(alias="customerName")
    customer_phone: str = Field(alias="customerPhone")
    service: str
    date: dt.date
    time: str
    duration: int
    status: AppointmentStatus
    notes: str | None = None
    conversation_id: str | None = Field(default=None, alias="conversationId")
    created_at: dt.datetime = Field(alias="createdAt")
    updated_at: dt.datetime = Field(alias="updatedAt")

    @classmethod
    def from_entity(cls, appointment: Appointment) -> "AppointmentSchema":
        return cls(
            id=appointment.id,
            customer_name=appointment.customer_name,
            customer_phone=appointment.customer_phone,
            service=appointment.service,
            date=appointment.date,
            time=appointment.time_label,
            duration=appointment.duration_minutes,
            status=appointment.status,
            notes=appointment.notes,
            conversation_id=appointment.conversation_id,
            created_at=appointment.created_at,
            updated_at=appointment.updated_at,
        )


class AppointmentCreateSchema(CamelModel):
    customer_name: str = Field(alias="customerName", min_length=1)
    customer_phone: str = Field(alias="customerPhone", min_length=1)
    service: str = Field(min_length=1)
    date: dt.date
    time: str
    duration: int | None = None
    status: AppointmentStatus = AppointmentStatus.CONFIRMED
    notes: str | None = None


class AppointmentUpdateSchema(CamelModel):
    customer_name: str | None = Field(default=None, alias="customerName")
    customer_phone: str | None = Field(default=None, alias="customerPhone")
    service: str | None = None
    date: dt.date | None = None
    time: str | None = None
    duration: int | None = None
    status: AppointmentStatus | None = None
    notes: str | None = None


class AppointmentCreatedSchema(CamelModel):
    appointment: AppointmentSchema
    rescheduled: bool


# Blocking


class BlockedDateSchema(CamelModel):
    id: str
    date: dt.date
    reason: str | None = None
    created_at: dt.datetime = Field(alias="createdAt")

    @classmethod
    def from_entity(cls, blocked: BlockedDate) -> "BlockedDateSchema":
        return cls(id=blocked.id, date=blocked.date, reason=blocked.reason, created_at=blocked.created_at)


class BlockedDateCreateSchema(CamelModel):
    date: dt.date
    reason: str | None = None


class BlockedDateUpdateSchema(CamelModel):
    reason: str | None = None


class BlockedSlotSchema(CamelModel):
    id: str
    date: dt.date
    start_time: str = Field(alias="startTime")
    end_time: str = Field(alias="endTime")
    reason: str | None = None
    created_at: dt.datetime = Field(alias="createdAt")

    @classmethod
    def from_entity(cls, slot: BlockedTimeSlot) -> "BlockedSlotSchema":
        return cls(
            id=slot.id,
            date=slot.date,
            start_time=f"{slot.start_minute // 60:02d}:{slot.start_minute % 60:02d}",
            end_time=f"{slot.end_minute // 60:02d}:{slot.end_minute % 60:02d}",
            reason=slot.reason,
            created_at=slot.created_at,
        )


class BlockedSlotCreateSchema(CamelModel):
    date: dt.date
    start_time: str = Field(alias="startTime")
    end_time: str = Field(alias="endTime")
    reason: str | None = None


class BlockedSlotUpdateSchema(CamelModel):
    date: dt.date | None = None
    start_time: str | None = Field(default=None, alias="startTime")
    end_time: str | None = Field(default=None, alias="endTime")
    reason: str | None = None


# Prescriptions


class PrescriptionSchema(CamelModel):
    id: str
    patient_name: str = Field(alias="patientName")
    content: str
    created_at: dt.datetime = Field(alias="createdAt")

    @classmethod
    def from_entity(cls, prescription: Prescription) -> "PrescriptionSchema":
        return cls(
            id=prescription.id,
            patient_name=prescription.patient_name,
            content=prescription.content,
            created_at=prescription.created_at,
        )


class PrescriptionCreateSchema(CamelModel):
    patient_name: str = Field(alias="patientName", min_length=1)
    content: str = Field(min_length=1)


# Conversations


class MessageSchema(CamelModel):
    id: str
    role: str
    content: str
    created_at: dt.datetime = Field(alias="createdAt")

    @classmethod
    def from_entity(cls, message: Message) -> "MessageSchema":
        return cls(id=message.id, role=message.role.value, content=message.content, created_at=message.created_at)


class ConversationSummarySchema(CamelModel):
    id: str
    phone_number: str = Field(alias="phoneNumber")
    status: str
    context: dict[str, str] = Field(default_factory=dict)
    created_at: dt.datetime = Field(alias="createdAt")
    updated_at: dt.datetime = Field(alias="updatedAt")
    last_message: MessageSchema | None = Field(default=None, alias="lastMessage")
    message_count: int = Field(default=0, alias="messageCount")

    @classmethod
    def from_entity(
        cls, conversation: Conversation, last_message: Message | None = None, message_count: int = 0
    ) -> "ConversationSummarySchema":
        return cls(
            id=conversation.id,
            phone_number=conversation.phone_number,
            status=conversation.status.value,
            context=dict(conversation.context),
            created_at=conversation.created_at,
            updated_at=conversation.updated_at,
            last_message=MessageSchema.from_entity(last_message) if last_message else None,
            message_count=message_count,
        )


class ConversationDetailSchema(ConversationSummarySchema):
    messages: list[MessageSchema] = Field(default_factory=list)


# Reporting


class MonthViewSchema(CamelModel):
    year: int
    month: int
    appointments: dict[str, list[AppointmentSchema]]
    total: int


class CountSchema(CamelModel):
    key: str
    count: int


class DashboardStatsSchema(CamelModel):
    total_appointments: int = Field(alias="totalAppointments")
    appointments_this_month: int = Field(alias="appointmentsThisMonth")
    appointments_by_status: dict[str, int] = Field(alias="appointmentsByStatus")
    top_services: list[CountSchema] = Field(alias="topServices")
    popular_times: list[CountSchema] = Field(alias="popularTimes")
    upcoming_appointments: list[AppointmentSchema] = Field(alias="upcomingAppointments")
    total_conversations: int = Field(alias="totalConversations")