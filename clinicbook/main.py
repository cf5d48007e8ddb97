import logging
from contextlib import asynccontextmanager

from fastapi import FastAPI

from clinicbook.api.v1.admin import router as admin_router
from clinicbook.api.webhooks import router as webhooks_router
from clinicbook.core.config import Settings, load_settings
from clinicbook.wiring.dependencies import Container, build_container


class ContextFormatter(logging.Formatter):
    def format(self, record: logging.LogRecord) -> str:
        extras = []
        for key in ("phone", "conversation_id", "appointment_id", "intent", "action", "reason", "error"):
            value = getattr(record, key, None)
            if value not in (None, ""):
                extras.append(f"{key}={value}")
        base = super().format(record)
        if extras:
            return f"{base} | " + " ".join(extras)
        return base


def configure_logging(level: str) -> None:
    handler = logging.StreamHandler()
    handler.setFormatter(ContextFormatter("%(levelname)s:%(name)s:%(message)s"))

    root = logging.getLogger()
    root.setLevel(getattr(logging, level.upper(), logging.INFO))
    root.handlers.clear()
    root.addHandler(handler)


def create_app(settings: Settings | None = None, container: Container | None = None) -> FastAPI:
    settings = settings or (container.settings if container else load_settings())
    configure_logging(settings.LOG_LEVEL)

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        owned = app.state.container
        owned.start()
        try:
            yield
        finally:
            owned.close()

    app = FastAPI(title="Clinic Booking Engine", version="1.0.0", lifespan=lifespan)
    app.state.container = container or build_container(settings)

    app.include_router(webhooks_router, tags=["webhooks"])
    app.include_router(admin_router, prefix="/api/v1/admin", tags=["admin"])

    @app.get("/health")
    def health() -> dict[str, str]:
        return {"status": "ok"}

    return app


app = create_app()
