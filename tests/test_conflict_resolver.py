"""
Tests for interval overlap and availability.
"""

from __future__ import annotations

import itertools
from datetime import date, datetime, timezone

import pytest

from clinicbook.application.use_cases.conflict_resolver import ConflictResolver, find_overlap, intervals_overlap
from clinicbook.domain.entities.appointment import Appointment, AppointmentStatus
from clinicbook.domain.entities.blocking import BlockedDate, BlockedTimeSlot
from clinicbook.domain.entities.conflict import ConflictKind
from clinicbook.infrastructure.store.memory_calendar_store import MemoryCalendarStore

DAY = date(2025, 11, 7)
NOW = datetime(2025, 11, 1, tzinfo=timezone.utc)


def _appointment(
    appointment_id: str, start: int, duration: int, status=AppointmentStatus.CONFIRMED, day: date = DAY
) -> Appointment:
    return Appointment(
        id=appointment_id,
        customer_name="Maria",
        customer_phone=f"phone-{appointment_id}",
        service="Limpeza",
        date=day,
        start_minute=start,
        duration_minutes=duration,
        status=status,
        created_at=NOW,
        updated_at=NOW,
    )


def _store_with(*appointments: Appointment) -> MemoryCalendarStore:
    store = MemoryCalendarStore()
    with store.transaction() as tx:
        for appointment in appointments:
            tx.add_appointment(appointment)
    return store


def test_half_open_boundaries():
    # [09:30, 10:00) then [10:00, 10:30): touching is not overlapping.
    assert not intervals_overlap(570, 600, 600, 630)
    assert not intervals_overlap(600, 630, 570, 600)
    # 09:59 for any positive duration reaches into 10:00.
    assert intervals_overlap(599, 600, 600, 630) is False
    assert intervals_overlap(599, 601, 600, 630)


def test_candidate_ending_at_existing_start_is_free():
    existing = [_appointment("a", 600, 30)]
    assert find_overlap(570, 30, existing, []) is None
    assert find_overlap(630, 30, existing, []) is None


def test_candidate_starting_before_and_crossing_existing_start_conflicts():
    existing = [_appointment("a", 600, 30)]
    conflict = find_overlap(599, 15, existing, [])
    assert conflict is not None
    assert conflict.kind == ConflictKind.APPOINTMENT
    assert conflict.record.id == "a"


def test_cancelled_appointments_do_not_block():
    existing = [_appointment("a", 600, 30, status=AppointmentStatus.CANCELLED)]
    assert find_overlap(600, 30, existing, []) is None


def test_zero_or_negative_duration_is_invalid():
    with pytest.raises(ValueError):
        find_overlap(600, 0, [], [])
    with pytest.raises(ValueError):
        find_overlap(600, -15, [], [])


def test_blocked_date_is_reported_before_overlaps():
    store = _store_with(_appointment("a", 600, 30))
    with store.transaction() as tx:
        tx.add_blocked_date(BlockedDate(id="b", date=DAY, reason="Feriado", created_at=NOW))
        conflict = ConflictResolver().check_conflict(tx, DAY, 600, 30)

    assert conflict.kind == ConflictKind.DAY_BLOCKED
    assert conflict.reason == "Feriado"


def test_blocked_slot_conflicts_like_an_appointment():
    store = MemoryCalendarStore()
    with store.transaction() as tx:
        tx.add_blocked_slot(
            BlockedTimeSlot(id="s", date=DAY, start_minute=12 * 60, end_minute=13 * 60, reason="Almoco", created_at=NOW)
        )
        resolver = ConflictResolver()
        assert resolver.check_conflict(tx, DAY, 11 * 60 + 30, 30) is None
        assert resolver.check_conflict(tx, DAY, 13 * 60, 30) is None
        conflict = resolver.check_conflict(tx, DAY, 12 * 60 + 30, 60)

    assert conflict.kind == ConflictKind.SLOT_BLOCKED
    assert conflict.reason == "Almoco"


def test_reschedule_check_excludes_the_appointment_itself():
    store = _store_with(_appointment("a", 600, 30))
    with store.transaction() as tx:
        resolver = ConflictResolver()
        assert resolver.check_conflict(tx, DAY, 615, 30) is not None
        assert resolver.check_conflict(tx, DAY, 615, 30, exclude_appointment_id="a") is None


def test_other_days_are_ignored():
    store = _store_with(_appointment("a", 600, 30, day=date(2025, 11, 8)))
    with store.transaction() as tx:
        assert ConflictResolver().check_conflict(tx, DAY, 600, 30) is None


def test_available_times_skips_taken_and_blocked_slots():
    store = _store_with(_appointment("a", 10 * 60 + 30, 60))
    with store.transaction() as tx:
        tx.add_blocked_slot(
            BlockedTimeSlot(id="s", date=DAY, start_minute=14 * 60, end_minute=15 * 60, created_at=NOW)
        )
        times = ConflictResolver().available_times(
            tx, DAY, 60, ["09:30", "10:30", "11:30", "13:00", "14:00", "15:00", "16:00"]
        )

    assert times == ["09:30", "11:30", "13:00", "15:00", "16:00"]


def test_available_times_on_blocked_day_is_empty():
    store = MemoryCalendarStore()
    with store.transaction() as tx:
        tx.add_blocked_date(BlockedDate(id="b", date=DAY, created_at=NOW))
        assert ConflictResolver().available_times(tx, DAY, 60, ["09:30", "10:30"]) == []


def test_overlap_detection_does_not_depend_on_insertion_order():
    """If a candidate fits, inserting it changes the verdict for a third interval only by its own overlap."""
    intervals = [(540, 30), (570, 45), (600, 30), (615, 60), (700, 15), (690, 20)]
    for base, candidate, third in itertools.permutations(intervals, 3):
        existing = [_appointment("base", *base)]
        if find_overlap(*candidate, existing, []) is not None:
            continue

        combined = existing + [_appointment("cand", *candidate)]
        expected = {
            a.id for a in combined if intervals_overlap(third[0], sum(third), a.start_minute, a.end_minute)
        }
        found = set()
        for appointment in combined:
            if find_overlap(*third, [appointment], []) is not None:
                found.add(appointment.id)
        assert found == expected
        assert (find_overlap(*third, combined, []) is None) == (not expected)
