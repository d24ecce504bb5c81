from pydantic import AnyUrl
from pydantic_settings import BaseSettings, SettingsConfigDict
from functools import lru_cache
from typing import Literal

class Settings(BaseSettings):
    model_config = SettingsConfigDict(env_file=".env", extra="ignore")

    ENV: str = "dev"
    SERVICE_PORT: int = 8080
    LOG_JSON: bool = True
    # Event store selection: "memory" or "redis"
    EVENT_STORE: Literal["memory", "redis"] = "memory"
    REDIS_URL: AnyUrl | None = None
    # Agents skip event logging entirely when disabled
    AGENT_LOGGING_ENABLED: bool = True
    STATUS_LOOKBACK_EVENTS: int = 200

    # Model provider
    OPENAI_API_KEY: str | None = None
    MOCK_LLM: bool = False
    SCRIPTWRITER_MODEL: str = "gpt-5"
    SCRIPTWRITER_FALLBACK_MODEL: str | None = "gpt-4.1-mini"
    SCRIPTWRITER_MAX_TOKENS: int = 3200
    SCRIPTWRITER_FALLBACK_MAX_TOKENS: int = 1400
    SCRIPTWRITER_TIMEOUT_S: float = 45.0
    EDITOR_MODEL: str = "gpt-4.1-mini"
    EDITOR_FALLBACK_MODEL: str | None = "gpt-4o-mini"
    EDITOR_MAX_TOKENS: int = 1800
    EDITOR_FALLBACK_MAX_TOKENS: int = 900

    # Storage backend selection: "memory" or "s3"
    STORAGE_BACKEND: Literal["memory", "s3"] = "memory"
    AWS_S3_BUCKET: str | None = None
    AWS_REGION: str = "us-east-1"
    S3_ENDPOINT_URL: str | None = None
    UPLOAD_MAX_ATTEMPTS: int = 3
    UPLOAD_BASE_DELAY_S: float = 0.5

    # Authentication
    API_KEYS: str = ""  # Comma-separated list of API keys
    REQUIRE_AUTH: bool = False

    @property
    def use_mock_llm(self) -> bool:
        return self.MOCK_LLM or self.ENV == "test"

@lru_cache(maxsize=1)
def get_settings() -> Settings:
    return Settings()
