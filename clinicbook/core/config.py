from pydantic import field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

from clinicbook.application.utils.time_parser import normalize_hhmm

DEFAULT_BOOKABLE_TIMES = ("09:30", "10:30", "11:30", "13:00", "14:00", "15:00", "16:00")


class Settings(BaseSettings):
    model_config = SettingsConfigDict(env_file=".env", extra="ignore")

    ENV: str = "dev"
    LOG_LEVEL: str = "INFO"

    DATABASE_URL: str = "sqlite:///./clinicbook.db"
    STORE_PROVIDER: str = "sql"  # "sql" | "memory"

    EXTRACTOR_PROVIDER: str = "openai"  # "openai" | "mock"
    OPENAI_API_KEY: str | None = None
    OPENAI_BASE_URL: str | None = None  # any OpenAI-compatible endpoint
    OPENAI_MODEL_INTENT: str = "gpt-4o-mini"
    OPENAI_TEMPERATURE_INTENT: float = 0.2
    EXTRACTOR_TIMEOUT_SECONDS: float = 20.0
    EXTRACTOR_MAX_RETRIES: int = 1
    HISTORY_LIMIT: int = 40

    CLINIC_NAME: str = "SpeOdonto"
    CLINIC_TIMEZONE: str = "America/Sao_Paulo"
    CLINIC_SERVICES: tuple[str, ...] = ()
    BOOKABLE_TIMES: tuple[str, ...] = DEFAULT_BOOKABLE_TIMES
    CONVERSATION_DURATION_MINUTES: int = 60
    ADMIN_DURATION_MINUTES: int = 30
    MAX_SUGGESTED_TIMES: int = 4

    ADMIN_TOKEN: str | None = None

    ZAPI_BASE_URL: str = "https://api.z-api.io"
    ZAPI_INSTANCE_ID: str | None = None
    ZAPI_TOKEN: str | None = None
    ZAPI_CLIENT_TOKEN: str | None = None
    AUTO_REPLY_ENABLED: bool = False

    @field_validator("BOOKABLE_TIMES")
    @classmethod
    def _normalize_bookable_times(cls, value: tuple[str, ...]) -> tuple[str, ...]:
        normalized = sorted({normalize_hhmm(t) for t in value})
        if not normalized:
            raise ValueError("BOOKABLE_TIMES must not be empty")
        return tuple(normalized)


def load_settings() -> Settings:
    return Settings()
