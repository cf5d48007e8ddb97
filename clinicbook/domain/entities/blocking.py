from __future__ import annotations

from dataclasses import dataclass
from datetime import date, datetime


@dataclass(frozen=True)
class BlockedDate:
    id: str
    date: date
    created_at: datetime
    reason: str | None = None


@dataclass(frozen=True)
class BlockedTimeSlot:
    id: str
    date: date
    start_minute: int
    end_minute: int  # exclusive
    created_at: datetime
    reason: str | None = None
