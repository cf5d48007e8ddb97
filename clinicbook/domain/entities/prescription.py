from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime


@dataclass(frozen=True)
class Prescription:
    """Free-text prescription staff record for a patient, matched by name only."""

    id: str
    patient_name: str
    content: str
    created_at: datetime
