from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum

# Partially collected booking fields carried across turns.
CONTEXT_KEYS = ("customer_name", "service", "date", "time", "insurance")


class ConversationStatus(str, Enum):
    ACTIVE = "ACTIVE"
    CLOSED = "CLOSED"


@dataclass(frozen=True)
class Conversation:
    id: str
    phone_number: str
    status: ConversationStatus
    created_at: datetime
    updated_at: datetime
    context: dict[str, str] = field(default_factory=dict)

    @property
    def is_active(self) -> bool:
        return self.status == ConversationStatus.ACTIVE


def merge_context(current: dict[str, str], partial: dict[str, str | None]) -> dict[str, str]:
    """Merge newly collected fields; unknown keys and empty values are dropped."""
    merged = dict(current)
    for key, value in partial.items():
        if key not in CONTEXT_KEYS or value is None:
            continue
        text = str(value).strip()
        if text:
            merged[key] = text
    return merged
