from __future__ import annotations

import json
import logging
from datetime import datetime
from typing import Any
from zoneinfo import ZoneInfo

from openai import OpenAI

from clinicbook.application.exceptions import LLMContractError, LLMUpstreamError
from clinicbook.application.ports.intent_extractor import IntentExtractorPort
from clinicbook.core.config import Settings
from clinicbook.domain.entities.conversation import CONTEXT_KEYS
from clinicbook.domain.entities.intent import (
    BookingIntent,
    CancelIntent,
    ExtractionResult,
    PlainReply,
    RescheduleIntent,
)
from clinicbook.domain.entities.message import Message, MessageRole
from clinicbook.infrastructure.llm.prompts import build_intent_prompt


class OpenAIIntentExtractor(IntentExtractorPort):
    """
    Intent extractor backed by any OpenAI-compatible chat completions API.

    Contract guarantees:
    - extract_intent returns ExtractionResult with raw string fields
    - Raises:
        LLMUpstreamError: networking/provider failures, including the timeout
        LLMContractError: invalid JSON or wrong schema/shape
    """

    def __init__(self, settings: Settings, client: OpenAI | None = None) -> None:
        self._settings = settings
        self._client = client or OpenAI(
            api_key=settings.OPENAI_API_KEY,
            base_url=settings.OPENAI_BASE_URL,
            timeout=settings.EXTRACTOR_TIMEOUT_SECONDS,
            max_retries=settings.EXTRACTOR_MAX_RETRIES,
        )
        self._logger = logging.getLogger(__name__)

    def extract_intent(self, history: list[Message], context: dict[str, str]) -> ExtractionResult:
        today = datetime.now(ZoneInfo(self._settings.CLINIC_TIMEZONE)).date()
        system_prompt = build_intent_prompt(
            clinic_name=self._settings.CLINIC_NAME,
            today=today,
            bookable_times=list(self._settings.BOOKABLE_TIMES),
            services=list(self._settings.CLINIC_SERVICES),
            context=context,
        )
        messages = [{"role": "system", "content": system_prompt}]
        messages += [
            {"role": "user" if m.role == MessageRole.USER else "assistant", "content": m.content}
            for m in history
        ]

        text = self._call_text(messages)
        data = _parse_json(text)
        result = parse_extraction(data)
        self._logger.info("Intent extracted", extra={"intent": result.intent_name})
        return result

    def _call_text(self, messages: list[dict[str, str]]) -> str:
        try:
            resp = self._client.chat.completions.create(
                model=self._settings.OPENAI_MODEL_INTENT,
                messages=messages,
                temperature=self._settings.OPENAI_TEMPERATURE_INTENT,
                max_tokens=600,
                response_format={"type": "json_object"},
            )
        except Exception as e:
            raise LLMUpstreamError(f"OpenAI API error: {e}") from e

        content = (resp.choices[0].message.content or "").strip() if resp.choices else ""
        if not content:
            raise LLMContractError("LLM returned empty response text.")

        return content


def parse_extraction(data: Any) -> ExtractionResult:
    """Map the model's JSON object onto an ExtractionResult."""
    if not isinstance(data, dict):
        raise LLMContractError("Extract: expected a JSON object with keys: reply, intent, context.")

    reply = data.get("reply", "")
    if not isinstance(reply, str):
        raise LLMContractError("Extract: 'reply' must be a string.")

    intent_raw = data.get("intent") or {}
    if not isinstance(intent_raw, dict):
        raise LLMContractError("Extract: 'intent' must be an object.")

    context_raw = data.get("context") or {}
    if not isinstance(context_raw, dict):
        raise LLMContractError("Extract: 'context' must be an object.")
    context_updates = {
        key: str(value).strip() for key, value in context_raw.items() if key in CONTEXT_KEYS and value is not None
    }

    intent_type = str(intent_raw.get("type") or "none").strip().lower()
    if intent_type == "none":
        intent = PlainReply()
    elif intent_type == "booking":
        insurance = _field(intent_raw, "insurance")
        intent = BookingIntent(
            customer_name=_field(intent_raw, "customer_name"),
            service=_field(intent_raw, "service"),
            date=_field(intent_raw, "date"),
            time=_field(intent_raw, "time"),
            insurance=insurance or None,
        )
    elif intent_type == "reschedule":
        intent = RescheduleIntent(new_date=_field(intent_raw, "new_date"), new_time=_field(intent_raw, "new_time"))
    elif intent_type == "cancel":
        intent = CancelIntent()
    else:
        raise LLMContractError(f"Extract: unknown intent type {intent_type!r}.")

    return ExtractionResult(reply=reply.strip(), intent=intent, context_updates=context_updates)


def _field(raw: dict[str, Any], key: str) -> str:
    value = raw.get(key)
    return "" if value is None else str(value).strip()


def _parse_json(text: str) -> Any:
    try:
        return json.loads(text)
    except Exception:
        snippet = text[:200].replace("\n", " ")
        raise LLMContractError(f"Extract: invalid JSON. Snippet: {snippet!r}")
