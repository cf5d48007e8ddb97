from __future__ import annotations

import json
import logging

from fastapi import APIRouter, BackgroundTasks, Depends, Request
from fastapi.responses import JSONResponse
from pydantic import ValidationError as PydanticValidationError
from sqlalchemy.exc import SQLAlchemyError

from clinicbook.api.v1.schemas import InboundMessageSchema, OutboundMessageSchema
from clinicbook.application.dto.webhook_event import ZApiWebhookDTO
from clinicbook.application.exceptions import ExternalServiceUnavailable
from clinicbook.application.use_cases.handle_incoming_message import HandleIncomingMessageUseCase
from clinicbook.application.use_cases.send_reply import SendReplyUseCase
from clinicbook.core.config import Settings
from clinicbook.domain.entities.message import InboundMessage
from clinicbook.infrastructure.zapi.webhook_verify import verify_client_token
from clinicbook.wiring.dependencies import (
    get_handle_incoming_message_use_case,
    get_send_reply_use_case,
    get_settings,
)

router = APIRouter()
logger = logging.getLogger(__name__)


@router.post("/webhooks/messages", response_model=OutboundMessageSchema)
def receive_message(
    req: InboundMessageSchema,
    use_case: HandleIncomingMessageUseCase = Depends(get_handle_incoming_message_use_case),
):
    try:
        reply = use_case.handle(req.phone_number.strip(), req.text)
    except SQLAlchemyError as e:
        logger.exception("Store failure while handling message", extra={"phone": req.phone_number, "error": str(e)})
        return JSONResponse(status_code=500, content={"error": "Internal server error"})

    return OutboundMessageSchema(
        outbound_text=reply.text, action=reply.action, conversation_id=reply.conversation_id
    )


@router.post("/webhooks/zapi")
async def zapi_webhook(
    request: Request,
    background_tasks: BackgroundTasks,
    settings: Settings = Depends(get_settings),
    use_case: HandleIncomingMessageUseCase = Depends(get_handle_incoming_message_use_case),
    send_reply: SendReplyUseCase = Depends(get_send_reply_use_case),
):
    if not verify_client_token(request.headers.get("Client-Token"), settings.ZAPI_CLIENT_TOKEN, settings.ENV):
        return JSONResponse(status_code=401, content={"error": "Unauthorized"})

    body = await request.body()
    try:
        payload = json.loads(body.decode("utf-8")) if body else {}
        event = ZApiWebhookDTO.model_validate(payload)
    except (ValueError, PydanticValidationError):
        logger.exception("Failed to parse Z-API webhook body")
        return JSONResponse(status_code=400, content={"error": "Invalid payload"})

    reason = event.ignore_reason()
    if reason is not None:
        logger.info("Z-API callback ignored", extra={"phone": event.phone, "reason": reason})
        return {"status": "ignored", "reason": reason}

    inbound = event.to_inbound()
    logger.info("Z-API message received", extra={"phone": inbound.phone_number})
    background_tasks.add_task(process_inbound, inbound, use_case, send_reply)
    return {"status": "accepted"}


def process_inbound(
    inbound: InboundMessage,
    use_case: HandleIncomingMessageUseCase,
    send_reply: SendReplyUseCase,
) -> None:
    try:
        reply = use_case.handle(inbound.phone_number, inbound.text)
        send_reply.execute(inbound.phone_number, reply.text)
    except ExternalServiceUnavailable as e:
        logger.error("Reply delivery failed", extra={"phone": inbound.phone_number, "error": str(e)})
    except Exception as e:
        logger.exception(
            "Failed to handle incoming message",
            extra={"phone": inbound.phone_number, "error": str(e)},
        )
