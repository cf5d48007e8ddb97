from __future__ import annotations

import re

from clinicbook.application.ports.intent_extractor import IntentExtractorPort
from clinicbook.domain.entities.intent import (
    BookingIntent,
    CancelIntent,
    ExtractionResult,
    PlainReply,
    RescheduleIntent,
)
from clinicbook.domain.entities.message import Message, MessageRole

_DATE_RE = re.compile(r"\b(\d{4}-\d{2}-\d{2})\b")
_TIME_RE = re.compile(r"\b(\d{1,2}[:h]\d{2})\b")
_NAME_RE = re.compile(r"\b(?:my name is|name:)\s*([^,.;\n]+)", re.IGNORECASE)
_SERVICE_RE = re.compile(r"\b(?:service:|for a|for an)\s*([^,.;\n]+)", re.IGNORECASE)


class MockIntentExtractor(IntentExtractorPort):
    """Deterministic keyword extractor for local runs without an LLM."""

    def extract_intent(self, history: list[Message], context: dict[str, str]) -> ExtractionResult:
        last_user = next((m.content for m in reversed(history) if m.role == MessageRole.USER), "")
        normalized = last_user.lower()

        updates: dict[str, str] = {}
        for key, pattern in (
            ("customer_name", _NAME_RE),
            ("service", _SERVICE_RE),
            ("date", _DATE_RE),
            ("time", _TIME_RE),
        ):
            match = pattern.search(last_user)
            if match:
                updates[key] = match.group(1).strip()
        if "time" in updates:
            updates["time"] = updates["time"].replace("h", ":")
        collected = {**context, **updates}

        if "cancel" in normalized:
            return ExtractionResult(reply="", intent=CancelIntent(), context_updates=updates)

        if any(word in normalized for word in ("reschedule", "change", "move")) and "date" in updates and "time" in updates:
            return ExtractionResult(
                reply="",
                intent=RescheduleIntent(new_date=updates["date"], new_time=updates["time"]),
                context_updates=updates,
            )

        missing = [key for key in ("customer_name", "service", "date", "time") if not collected.get(key)]
        if not missing:
            return ExtractionResult(
                reply="",
                intent=BookingIntent(
                    customer_name=collected["customer_name"],
                    service=collected["service"],
                    date=collected["date"],
                    time=collected["time"],
                    insurance=collected.get("insurance"),
                ),
                context_updates=updates,
            )

        prompts = {
            "customer_name": "Could you tell me your full name?",
            "service": "Which service would you like to book?",
            "date": "Which date would you prefer (YYYY-MM-DD)?",
            "time": "What time works best for you?",
        }
        return ExtractionResult(reply=prompts[missing[0]], intent=PlainReply(), context_updates=updates)
