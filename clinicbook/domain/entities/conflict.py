from __future__ import annotations

from dataclasses import dataclass
from enum import Enum

from clinicbook.domain.entities.appointment import Appointment
from clinicbook.domain.entities.blocking import BlockedDate, BlockedTimeSlot


class ConflictKind(str, Enum):
    DAY_BLOCKED = "day_blocked"
    SLOT_BLOCKED = "slot_blocked"
    APPOINTMENT = "appointment"


@dataclass(frozen=True)
class Conflict:
    kind: ConflictKind
    record: Appointment | BlockedDate | BlockedTimeSlot

    @property
    def reason(self) -> str | None:
        if isinstance(self.record, (BlockedDate, BlockedTimeSlot)):
            return self.record.reason
        return None
