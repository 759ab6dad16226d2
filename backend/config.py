"""Application settings and per-client configuration objects."""
from dataclasses import dataclass
from functools import lru_cache

from pydantic_settings import BaseSettings, SettingsConfigDict


@dataclass(frozen=True)
class TranscriptionConfig:
    api_key: str
    base_url: str = "https://api.deepgram.com"
    model: str = "nova-2"
    timeout: float | None = None


@dataclass(frozen=True)
class ExtractionConfig:
    api_key: str
    base_url: str = "https://api.openai.com"
    model: str = "gpt-4o-mini"
    timeout: float | None = None


class Settings(BaseSettings):
    model_config = SettingsConfigDict(env_file=".env", env_file_encoding="utf-8", extra="ignore")

    app_name: str = "Voice Diary"
    app_version: str = "1.0.0"
    env: str = "dev"
    render: str = ""
    log_level: str = "INFO"

    # Storage
    database_url: str | None = None
    database_path: str = "./voicediary.db"

    # Speech-to-text
    deepgram_api_key: str = ""
    deepgram_base_url: str = "https://api.deepgram.com"
    deepgram_model: str = "nova-2"
    transcription_timeout: float | None = None

    # Structured extraction
    openai_api_key: str = ""
    openai_base_url: str = "https://api.openai.com"
    openai_model: str = "gpt-4o-mini"
    extraction_timeout: float | None = None

    # Calendar dates for new logs are computed in this zone
    app_timezone: str = "Asia/Kolkata"

    # Browser sessions
    secret_key: str = "dev-secret-key-change-in-production-min-32-chars"
    session_expire_minutes: int = 480

    # Server
    host: str = "0.0.0.0"
    port: int = 8000

    @property
    def is_production(self) -> bool:
        return self.env.lower() in ("prod", "production") or bool(self.render)

    def resolved_database_url(self) -> str:
        """Return the SQLAlchemy URL, refusing the SQLite fallback in production."""
        url = self.database_url
        if not url:
            if self.is_production:
                raise RuntimeError(
                    "DATABASE_URL missing in production; refusing to start with SQLite. "
                    "Please configure DATABASE_URL environment variable."
                )
            url = f"sqlite:///{self.database_path}"
        # Hosted Postgres providers hand out postgres://, SQLAlchemy wants postgresql://
        if url.startswith("postgres://"):
            url = url.replace("postgres://", "postgresql://", 1)
        return url

    def transcription(self) -> TranscriptionConfig:
        return TranscriptionConfig(
            api_key=self.deepgram_api_key,
            base_url=self.deepgram_base_url,
            model=self.deepgram_model,
            timeout=self.transcription_timeout,
        )

    def extraction(self) -> ExtractionConfig:
        return ExtractionConfig(
            api_key=self.openai_api_key,
            base_url=self.openai_base_url,
            model=self.openai_model,
            timeout=self.extraction_timeout,
        )


@lru_cache()
def get_settings() -> Settings:
    return Settings()
