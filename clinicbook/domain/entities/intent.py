from __future__ import annotations

from dataclasses import dataclass, field
from typing import Union


@dataclass(frozen=True)
class PlainReply:
    pass


@dataclass(frozen=True)
class BookingIntent:
    customer_name: str
    service: str
    date: str  # YYYY-MM-DD, validated by the orchestrator
    time: str  # HH:MM
    insurance: str | None = None


@dataclass(frozen=True)
class RescheduleIntent:
    new_date: str
    new_time: str


@dataclass(frozen=True)
class CancelIntent:
    pass


Intent = Union[PlainReply, BookingIntent, RescheduleIntent, CancelIntent]


@dataclass(frozen=True)
class ExtractionResult:
    reply: str
    intent: Intent = PlainReply()
    context_updates: dict[str, str] = field(default_factory=dict)

    @property
    def intent_name(self) -> str:
        return {
            PlainReply: "plain_reply",
            BookingIntent: "booking",
            RescheduleIntent: "reschedule",
            CancelIntent: "cancel",
        }[type(self.intent)]
