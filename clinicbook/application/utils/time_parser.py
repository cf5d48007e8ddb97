from __future__ import annotations

import re
from datetime import date, datetime

MIN_DURATION_MINUTES = 15
MAX_DURATION_MINUTES = 480
MINUTES_PER_DAY = 24 * 60

_TIME_RE = re.compile(r"^\s*(\d{1,2})\s*(?::(\d{2})|h(\d{2})?)\s*$", re.IGNORECASE)
_DATE_RE = re.compile(r"^\d{4}-\d{2}-\d{2}$")


def parse_hhmm(text: str) -> int:
    """Parse "09:30", "9:30", "9h30" or "9h" into minutes since midnight."""
    match = _TIME_RE.match(text or "")
    if not match:
        raise ValueError(f"invalid time: {text!r}")
    hour = int(match.group(1))
    minute = int(match.group(2) or match.group(3) or 0)
    if hour > 23 or minute > 59:
        raise ValueError(f"invalid time: {text!r}")
    return hour * 60 + minute


def format_minutes(minutes: int) -> str:
    return f"{minutes // 60:02d}:{minutes % 60:02d}"


def normalize_hhmm(text: str) -> str:
    return format_minutes(parse_hhmm(text))


def parse_iso_date(text: str) -> date:
    value = (text or "").strip()
    if not _DATE_RE.match(value):
        raise ValueError(f"invalid date: {text!r}")
    return datetime.strptime(value, "%Y-%m-%d").date()


def format_display_date(value: date) -> str:
    return value.strftime("%d/%m/%Y")


def validate_duration(minutes: int) -> None:
    if minutes < MIN_DURATION_MINUTES or minutes > MAX_DURATION_MINUTES:
        raise ValueError(
            f"duration must be between {MIN_DURATION_MINUTES} and {MAX_DURATION_MINUTES} minutes"
        )


def fits_in_day(start_minute: int, duration_minutes: int) -> bool:
    # Appointments never span midnight.
    return 0 <= start_minute and start_minute + duration_minutes <= MINUTES_PER_DAY
