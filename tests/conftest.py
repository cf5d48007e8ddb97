from __future__ import annotations

from datetime import date

import pytest

from clinicbook.application.ports.intent_extractor import IntentExtractorPort
from clinicbook.application.use_cases.booking import BookingLifecycleManager
from clinicbook.domain.entities.appointment import AppointmentCandidate
from clinicbook.domain.entities.intent import ExtractionResult
from clinicbook.domain.entities.message import Message
from clinicbook.infrastructure.store.database import create_db_engine, init_schema, make_session_factory
from clinicbook.infrastructure.store.memory_calendar_store import MemoryCalendarStore
from clinicbook.infrastructure.store.memory_store import MemorySessionStore
from clinicbook.infrastructure.store.sql_calendar_store import SqlCalendarStore
from clinicbook.infrastructure.store.sql_session_store import SqlSessionStore


class ScriptedExtractor(IntentExtractorPort):
    """Returns queued results in order and records what it was called with."""

    def __init__(self, *results: ExtractionResult | Exception) -> None:
        self.results = list(results)
        self.calls: list[tuple[list[Message], dict[str, str]]] = []

    def queue(self, *results: ExtractionResult | Exception) -> None:
        self.results.extend(results)

    def extract_intent(self, history: list[Message], context: dict[str, str]) -> ExtractionResult:
        self.calls.append((list(history), dict(context)))
        result = self.results.pop(0)
        if isinstance(result, Exception):
            raise result
        return result


def candidate(
    day: date = date(2025, 11, 7),
    time: str = "10:00",
    duration: int = 30,
    name: str = "Maria Silva",
    service: str = "Limpeza",
) -> AppointmentCandidate:
    hours, minutes = time.split(":")
    return AppointmentCandidate(
        customer_name=name,
        service=service,
        date=day,
        start_minute=int(hours) * 60 + int(minutes),
        duration_minutes=duration,
    )


@pytest.fixture
def sql_engine(tmp_path):
    engine = create_db_engine(f"sqlite:///{tmp_path / 'clinicbook.db'}")
    init_schema(engine)
    yield engine
    engine.dispose()


@pytest.fixture
def sql_stores(sql_engine):
    session_factory = make_session_factory(sql_engine)
    return SqlCalendarStore(session_factory), SqlSessionStore(session_factory)


@pytest.fixture(params=["memory", "sql"])
def stores(request):
    """(calendar, sessions) for every store backend."""
    if request.param == "memory":
        return MemoryCalendarStore(), MemorySessionStore()
    return request.getfixturevalue("sql_stores")


@pytest.fixture
def manager(stores) -> BookingLifecycleManager:
    calendar, sessions = stores
    return BookingLifecycleManager(calendar=calendar, sessions=sessions)
