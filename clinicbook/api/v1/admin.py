import datetime as dt
import hmac
import logging
from dataclasses import asdict

from fastapi import APIRouter, Depends, Header, HTTPException, Query, Response

from clinicbook.api.v1.schemas import (
    AppointmentCreatedSchema,
    AppointmentCreateSchema,
    AppointmentSchema,
    AppointmentUpdateSchema,
    BlockedDateCreateSchema,
    BlockedDateSchema,
    BlockedDateUpdateSchema,
    BlockedSlotCreateSchema,
    BlockedSlotSchema,
    BlockedSlotUpdateSchema,
    ConversationDetailSchema,
    ConversationSummarySchema,
    CountSchema,
    DashboardStatsSchema,
    MessageSchema,
    MonthViewSchema,
    PrescriptionCreateSchema,
    PrescriptionSchema,
)
from clinicbook.application.use_cases.calendar_admin import AppointmentChanges, CalendarAdminUseCase
from clinicbook.core.config import Settings
from clinicbook.domain.entities.appointment import AppointmentStatus
from clinicbook.domain.entities.rejection import (
    AlreadyScheduled,
    DateBlocked,
    NotFound,
    SlotBlocked,
    TimeConflict,
    is_rejection,
)
from clinicbook.wiring.dependencies import get_calendar_admin_use_case, get_settings

logger = logging.getLogger(__name__)


def require_admin(
    authorization: str | None = Header(default=None),
    settings: Settings = Depends(get_settings),
) -> None:
    expected = settings.ADMIN_TOKEN
    token = (authorization or "").removeprefix("Bearer ").strip()
    if not expected or not token or not hmac.compare_digest(token.encode("utf-8"), expected.encode("utf-8")):
        raise HTTPException(status_code=401, detail="Unauthorized")


router = APIRouter(dependencies=[Depends(require_admin)])


def _raise_for(rejection) -> None:
    """Translate a rejection value into the matching HTTP error."""
    if isinstance(rejection, NotFound):
        status_code = 404
    elif isinstance(rejection, (DateBlocked, SlotBlocked, TimeConflict, AlreadyScheduled)):
        status_code = 409
    else:
        status_code = 400
    raise HTTPException(
        status_code=status_code,
        detail={"error": type(rejection).__name__, **asdict(rejection)},
    )


def _unwrap(result):
    if is_rejection(result):
        _raise_for(result)
    return result


# Appointments


@router.get("/appointments", response_model=list[AppointmentSchema])
def list_appointments(
    start: dt.date | None = Query(default=None),
    end: dt.date | None = Query(default=None),
    status: AppointmentStatus | None = Query(default=None),
    uc: CalendarAdminUseCase = Depends(get_calendar_admin_use_case),
):
    return [AppointmentSchema.from_entity(a) for a in uc.list_appointments(start, end, status)]


@router.get("/appointments/{appointment_id}", response_model=AppointmentSchema)
def get_appointment(appointment_id: str, uc: CalendarAdminUseCase = Depends(get_calendar_admin_use_case)):
    return AppointmentSchema.from_entity(_unwrap(uc.get_appointment(appointment_id)))


@router.post("/appointments", response_model=AppointmentCreatedSchema, status_code=201)
def create_appointment(
    req: AppointmentCreateSchema,
    uc: CalendarAdminUseCase = Depends(get_calendar_admin_use_case),
):
    outcome = _unwrap(
        uc.create_appointment(
            customer_name=req.customer_name,
            customer_phone=req.customer_phone,
            service=req.service,
            day=req.date,
            time=req.time,
            duration_minutes=req.duration,
            status=req.status,
            notes=req.notes,
        )
    )
    return AppointmentCreatedSchema(
        appointment=AppointmentSchema.from_entity(outcome.appointment), rescheduled=outcome.rescheduled
    )


@router.patch("/appointments/{appointment_id}", response_model=AppointmentSchema)
def update_appointment(
    appointment_id: str,
    req: AppointmentUpdateSchema,
    uc: CalendarAdminUseCase = Depends(get_calendar_admin_use_case),
):
    changes = AppointmentChanges(
        customer_name=req.customer_name,
        customer_phone=req.customer_phone,
        service=req.service,
        date=req.date,
        time=req.time,
        duration_minutes=req.duration,
        status=req.status,
        notes=req.notes,
    )
    return AppointmentSchema.from_entity(_unwrap(uc.update_appointment(appointment_id, changes)))


@router.delete("/appointments/{appointment_id}", status_code=204)
def delete_appointment(appointment_id: str, uc: CalendarAdminUseCase = Depends(get_calendar_admin_use_case)):
    _unwrap(uc.delete_appointment(appointment_id))
    return Response(status_code=204)


# Blocked dates


@router.get("/blocked-dates", response_model=list[BlockedDateSchema])
def list_blocked_dates(
    start: dt.date | None = Query(default=None),
    end: dt.date | None = Query(default=None),
    uc: CalendarAdminUseCase = Depends(get_calendar_admin_use_case),
):
    return [BlockedDateSchema.from_entity(b) for b in uc.list_blocked_dates(start, end)]


@router.post("/blocked-dates", response_model=BlockedDateSchema, status_code=201)
def create_blocked_date(req: BlockedDateCreateSchema, uc: CalendarAdminUseCase = Depends(get_calendar_admin_use_case)):
    return BlockedDateSchema.from_entity(_unwrap(uc.create_blocked_date(req.date, req.reason)))


@router.patch("/blocked-dates/{blocked_id}", response_model=BlockedDateSchema)
def update_blocked_date(
    blocked_id: str,
    req: BlockedDateUpdateSchema,
    uc: CalendarAdminUseCase = Depends(get_calendar_admin_use_case),
):
    return BlockedDateSchema.from_entity(_unwrap(uc.update_blocked_date(blocked_id, req.reason)))


@router.delete("/blocked-dates", status_code=204)
def delete_blocked_date_on(date: dt.date = Query(...), uc: CalendarAdminUseCase = Depends(get_calendar_admin_use_case)):
    _unwrap(uc.delete_blocked_date_on(date))
    return Response(status_code=204)


@router.delete("/blocked-dates/{blocked_id}", status_code=204)
def delete_blocked_date(blocked_id: str, uc: CalendarAdminUseCase = Depends(get_calendar_admin_use_case)):
    _unwrap(uc.delete_blocked_date(blocked_id))
    return Response(status_code=204)


# Blocked time slots


@router.get("/blocked-slots", response_model=list[BlockedSlotSchema])
def list_blocked_slots(
    start: dt.date | None = Query(default=None),
    end: dt.date | None = Query(default=None),
    uc: CalendarAdminUseCase = Depends(get_calendar_admin_use_case),
):
    return [BlockedSlotSchema.from_entity(s) for s in uc.list_blocked_slots(start, end)]


@router.post("/blocked-slots", response_model=BlockedSlotSchema, status_code=201)
def create_blocked_slot(req: BlockedSlotCreateSchema, uc: CalendarAdminUseCase = Depends(get_calendar_admin_use_case)):
    slot = _unwrap(uc.create_blocked_slot(req.date, req.start_time, req.end_time, req.reason))
    return BlockedSlotSchema.from_entity(slot)


@router.patch("/blocked-slots/{slot_id}", response_model=BlockedSlotSchema)
def update_blocked_slot(
    slot_id: str,
    req: BlockedSlotUpdateSchema,
    uc: CalendarAdminUseCase = Depends(get_calendar_admin_use_case),
):
    slot = _unwrap(uc.update_blocked_slot(slot_id, req.date, req.start_time, req.end_time, req.reason))
    return BlockedSlotSchema.from_entity(slot)


@router.delete("/blocked-slots/{slot_id}", status_code=204)
def delete_blocked_slot(slot_id: str, uc: CalendarAdminUseCase = Depends(get_calendar_admin_use_case)):
    _unwrap(uc.delete_blocked_slot(slot_id))
    return Response(status_code=204)


# Prescriptions


@router.get("/prescriptions", response_model=list[PrescriptionSchema])
def list_prescriptions(
    patient_name: str | None = Query(default=None, alias="patientName"),
    uc: CalendarAdminUseCase = Depends(get_calendar_admin_use_case),
):
    return [PrescriptionSchema.from_entity(p) for p in uc.list_prescriptions(patient_name)]


@router.post("/prescriptions", response_model=PrescriptionSchema, status_code=201)
def create_prescription(req: PrescriptionCreateSchema, uc: CalendarAdminUseCase = Depends(get_calendar_admin_use_case)):
    prescription = _unwrap(uc.create_prescription(req.patient_name, req.content))
    return PrescriptionSchema.from_entity(prescription)


# Conversations


@router.get("/conversations", response_model=list[ConversationSummarySchema])
def list_conversations(uc: CalendarAdminUseCase = Depends(get_calendar_admin_use_case)):
    return [
        ConversationSummarySchema.from_entity(conversation, last_message, count)
        for conversation, last_message, count in uc.list_conversations()
    ]


@router.get("/conversations/{conversation_id}", response_model=ConversationDetailSchema)
def get_conversation(conversation_id: str, uc: CalendarAdminUseCase = Depends(get_calendar_admin_use_case)):
    conversation, messages = _unwrap(uc.get_conversation(conversation_id))
    summary = ConversationSummarySchema.from_entity(
        conversation, messages[-1] if messages else None, len(messages)
    )
    return ConversationDetailSchema(
        **summary.model_dump(),
        messages=[MessageSchema.from_entity(m) for m in messages],
    )


# Reporting


@router.get("/calendar", response_model=MonthViewSchema)
def month_view(
    month: str | None = Query(default=None, description="YYYY-MM"),
    uc: CalendarAdminUseCase = Depends(get_calendar_admin_use_case),
):
    view = _unwrap(uc.month_view(month))
    return MonthViewSchema(
        year=view.year,
        month=view.month,
        appointments={
            day: [AppointmentSchema.from_entity(a) for a in items] for day, items in view.appointments.items()
        },
        total=view.total,
    )


@router.get("/dashboard/stats", response_model=DashboardStatsSchema)
def dashboard_stats(uc: CalendarAdminUseCase = Depends(get_calendar_admin_use_case)):
    stats = uc.dashboard_stats()
    return DashboardStatsSchema(
        total_appointments=stats.total_appointments,
        appointments_this_month=stats.appointments_this_month,
        appointments_by_status=stats.appointments_by_status,
        top_services=[CountSchema(key=k, count=c) for k, c in stats.top_services],
        popular_times=[CountSchema(key=k, count=c) for k, c in stats.popular_times],
        upcoming_appointments=[AppointmentSchema.from_entity(a) for a in stats.upcoming_appointments],
        total_conversations=stats.total_conversations,
    )
