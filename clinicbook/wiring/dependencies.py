from __future__ import annotations

import logging
from dataclasses import dataclass

from fastapi import Request
from sqlalchemy.engine import Engine

from clinicbook.application.ports.calendar_store import CalendarStorePort
from clinicbook.application.ports.intent_extractor import IntentExtractorPort
from clinicbook.application.ports.message_platform import MessagePlatformPort
from clinicbook.application.ports.session_store import SessionStorePort
from clinicbook.application.use_cases.booking import BookingLifecycleManager
from clinicbook.application.use_cases.calendar_admin import CalendarAdminUseCase
from clinicbook.application.use_cases.conflict_resolver import ConflictResolver
from clinicbook.application.use_cases.handle_incoming_message import HandleIncomingMessageUseCase
from clinicbook.application.use_cases.reply_composer import ReplyComposer
from clinicbook.application.use_cases.send_reply import SendReplyUseCase
from clinicbook.core.config import Settings
from clinicbook.infrastructure.llm.mock_llm import MockIntentExtractor
from clinicbook.infrastructure.llm.openai_llm import OpenAIIntentExtractor
from clinicbook.infrastructure.store.database import create_db_engine, init_schema, make_session_factory
from clinicbook.infrastructure.store.memory_calendar_store import MemoryCalendarStore
from clinicbook.infrastructure.store.memory_store import MemorySessionStore
from clinicbook.infrastructure.store.sql_calendar_store import SqlCalendarStore
from clinicbook.infrastructure.store.sql_session_store import SqlSessionStore
from clinicbook.infrastructure.zapi.mock_platform import MockMessagingPlatform
from clinicbook.infrastructure.zapi.zapi_client import ZApiClient
from clinicbook.infrastructure.zapi.zapi_platform import ZApiPlatform

logger = logging.getLogger(__name__)


@dataclass
class Container:
    settings: Settings
    calendar: CalendarStorePort
    sessions: SessionStorePort
    extractor: IntentExtractorPort
    platform: MessagePlatformPort
    booking: BookingLifecycleManager
    admin: CalendarAdminUseCase
    handle_message: HandleIncomingMessageUseCase
    send_reply: SendReplyUseCase
    engine: Engine | None = None

    def start(self) -> None:
        if self.engine is not None:
            init_schema(self.engine)

    def close(self) -> None:
        if isinstance(self.platform, ZApiPlatform):
            self.platform.close()
        if self.engine is not None:
            self.engine.dispose()


def build_extractor(settings: Settings) -> IntentExtractorPort:
    provider = settings.EXTRACTOR_PROVIDER.lower()
    if provider == "mock":
        return MockIntentExtractor()
    if provider != "openai":
        raise ValueError(f"Unknown EXTRACTOR_PROVIDER: {settings.EXTRACTOR_PROVIDER}")
    if not (settings.OPENAI_API_KEY and settings.OPENAI_API_KEY.strip()):
        if settings.ENV.lower() in {"dev", "local", "test"}:
            logger.info("Using MockIntentExtractor (OPENAI_API_KEY missing, ENV=%s)", settings.ENV)
            return MockIntentExtractor()
        raise ValueError("OPENAI_API_KEY is required for the openai extractor.")
    return OpenAIIntentExtractor(settings)


def build_platform(settings: Settings) -> MessagePlatformPort:
    if not (settings.ZAPI_INSTANCE_ID and settings.ZAPI_TOKEN):
        logger.info("Using MockMessagingPlatform (Z-API credentials missing)")
        return MockMessagingPlatform()
    client = ZApiClient(
        base_url=settings.ZAPI_BASE_URL,
        instance_id=settings.ZAPI_INSTANCE_ID,
        token=settings.ZAPI_TOKEN,
        client_token=settings.ZAPI_CLIENT_TOKEN,
    )
    return ZApiPlatform(client=client)


def build_container(
    settings: Settings,
    extractor: IntentExtractorPort | None = None,
    platform: MessagePlatformPort | None = None,
) -> Container:
    engine = None
    provider = settings.STORE_PROVIDER.lower()
    if provider == "memory":
        calendar: CalendarStorePort = MemoryCalendarStore()
        sessions: SessionStorePort = MemorySessionStore()
    elif provider == "sql":
        engine = create_db_engine(settings.DATABASE_URL)
        session_factory = make_session_factory(engine)
        calendar = SqlCalendarStore(session_factory)
        sessions = SqlSessionStore(session_factory)
    else:
        raise ValueError(f"Unknown STORE_PROVIDER: {settings.STORE_PROVIDER}")

    extractor = extractor or build_extractor(settings)
    platform = platform or build_platform(settings)
    resolver = ConflictResolver()
    booking = BookingLifecycleManager(calendar=calendar, sessions=sessions, resolver=resolver)

    handle_message = HandleIncomingMessageUseCase(
        sessions=sessions,
        extractor=extractor,
        booking=booking,
        calendar=calendar,
        composer=ReplyComposer(clinic_name=settings.CLINIC_NAME),
        bookable_times=settings.BOOKABLE_TIMES,
        conversation_duration_minutes=settings.CONVERSATION_DURATION_MINUTES,
        history_limit=settings.HISTORY_LIMIT,
        max_suggested_times=settings.MAX_SUGGESTED_TIMES,
        resolver=resolver,
    )
    admin = CalendarAdminUseCase(
        calendar=calendar,
        sessions=sessions,
        booking=booking,
        default_duration_minutes=settings.ADMIN_DURATION_MINUTES,
    )

    logger.info(
        "Container built",
        extra={"store": provider, "extractor": type(extractor).__name__, "platform": type(platform).__name__},
    )
    return Container(
        settings=settings,
        calendar=calendar,
        sessions=sessions,
        extractor=extractor,
        platform=platform,
        booking=booking,
        admin=admin,
        handle_message=handle_message,
        send_reply=SendReplyUseCase(platform=platform, auto_reply_enabled=settings.AUTO_REPLY_ENABLED),
        engine=engine,
    )


def get_container(request: Request) -> Container:
    return request.app.state.container


def get_settings(request: Request) -> Settings:
    return get_container(request).settings


def get_handle_incoming_message_use_case(request: Request) -> HandleIncomingMessageUseCase:
    return get_container(request).handle_message


def get_send_reply_use_case(request: Request) -> SendReplyUseCase:
    return get_container(request).send_reply


def get_calendar_admin_use_case(request: Request) -> CalendarAdminUseCase:
    return get_container(request).admin
