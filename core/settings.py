from functools import lru_cache
from typing import List, Literal, Optional

from pydantic import BaseModel, Field, PostgresDsn, SecretStr, model_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

from core.prompts import MEDICAL_CONTEXT


class CustomSettings(BaseSettings):
    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=True,
        extra="ignore",
    )


class AppSettings(CustomSettings):
    ENVIRONMENT: Literal["local", "dev", "prod"] = Field(default="local")
    LOG_LEVEL: str = Field(default="INFO")
    JSON_LOGS: bool = Field(default=False)
    CORS_ORIGINS: List[str] = Field(
        default=["http://localhost:3000", "http://localhost:5173"]
    )


class PgDbSettings(CustomSettings):
    POSTGRES_ENGINE: str = Field(default="postgresql+asyncpg")
    POSTGRES_USER: str = Field(default="postgres")
    POSTGRES_PASSWORD: SecretStr = Field(default="postgres")
    POSTGRES_DB: str = Field(default="meditrack")
    POSTGRES_HOST: str = Field(default="localhost")
    POSTGRES_PORT: int = Field(default=5432)
    DATABASE_URL: PostgresDsn | str = Field(default="")

    @model_validator(mode="before")
    def validate_postgres_dsn(cls, data: dict):
        if isinstance(data, dict) and not data.get("DATABASE_URL"):
            _built_uri = PostgresDsn.build(
                scheme=data.get("POSTGRES_ENGINE", "postgresql+asyncpg"),
                username=data.get("POSTGRES_USER", "postgres"),
                password=data.get("POSTGRES_PASSWORD", "postgres"),
                host=data.get("POSTGRES_HOST", "localhost"),
                port=int(data.get("POSTGRES_PORT", 5432)),
                path=data.get("POSTGRES_DB", "meditrack"),
            ).unicode_string()
            data["DATABASE_URL"] = _built_uri
        return data


class InferenceSettings(CustomSettings):
    """Configuration for the local medical model.

    Env vars:
    - LOCAL_LLM_ENABLED: when false the offline rule-based responder answers
    - LOCAL_LLM_URL: Ollama `/api/chat` or any OpenAI-compatible chat endpoint
    - LOCAL_LLM_MODEL
    - LOCAL_LLM_TIMEOUT_SECONDS
    """

    LOCAL_LLM_ENABLED: bool = Field(default=True)
    LOCAL_LLM_URL: str = Field(default="http://localhost:11434/api/chat")
    LOCAL_LLM_MODEL: str = Field(default="llama2")
    LOCAL_LLM_TIMEOUT_SECONDS: float = Field(default=15.0, gt=0)
    TEMPERATURE: float = Field(default=0.7)
    TOP_P: float = Field(default=0.9)
    MAX_TOKENS: int = Field(default=500)

    @property
    def backend_name(self) -> str:
        return "local" if self.LOCAL_LLM_ENABLED else "rules"


class ChatSettings(CustomSettings):
    """Conversation handling knobs.

    CONTEXT_MAX_CHARS is a character budget standing in for a token budget;
    leave it unset to bound the context by turn count only.
    """

    CHAT_STORE_BACKEND: Literal["memory", "sql"] = Field(default="memory")
    CONTEXT_MAX_TURNS: int = Field(default=6, ge=1)
    CONTEXT_MAX_CHARS: Optional[int] = Field(default=None, ge=1)
    MAX_MESSAGE_CHARS: int = Field(default=4000, ge=1)
    SYSTEM_PREAMBLE: str = Field(default=MEDICAL_CONTEXT)


class AuthSettings(CustomSettings):
    # Header carrying the doctor id, set by the authenticating gateway
    OWNER_HEADER: str = Field(default="X-User-Id")


class Settings(BaseModel):
    APP: AppSettings = Field(default_factory=AppSettings)
    DATABASE: PgDbSettings = Field(default_factory=PgDbSettings)
    INFERENCE: InferenceSettings = Field(default_factory=InferenceSettings)
    CHAT: ChatSettings = Field(default_factory=ChatSettings)
    AUTH: AuthSettings = Field(default_factory=AuthSettings)


@lru_cache
def get_settings() -> Settings:
    return Settings()


SETTINGS = get_settings()
