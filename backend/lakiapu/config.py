"""Application settings"""
import sys
from functools import lru_cache
from typing import Annotated, ClassVar, cast

from pydantic import Field, field_validator, model_validator
from pydantic_settings import BaseSettings, NoDecode, SettingsConfigDict


def _running_tests() -> bool:
    return "pytest" in sys.modules


class Settings(BaseSettings):
    """Runtime configuration, read from the environment and `.env`"""
    app_name: str = "Lakiapu"
    debug: bool = Field(default_factory=_running_tests)
    api_prefix: str = "/api/v1"

    # Database
    database_url: str = "sqlite+aiosqlite:///./data/lakiapu.db"

    cors_allow_origins: Annotated[list[str], NoDecode] = ["http://localhost:5173", "http://127.0.0.1:5173"]
    cors_allow_credentials: bool = False
    trusted_proxies: Annotated[list[str], NoDecode] = []

    # Answer generation
    openai_api_key: str = ""
    openai_base_url: str = "https://api.openai.com/v1"
    ai_model: str = "gpt-4o"
    ai_temperature: float = 0.7
    generation_timeout_seconds: float = 60.0

    # Retrieval
    embedding_model: str = "text-embedding-3-small"
    chroma_persist_dir: str = "./chroma_db"
    chroma_collection: str = "legal_sources"
    retrieval_timeout_seconds: float = 10.0
    retrieval_results_per_corpus: int = 3
    retrieval_min_relevance: float = 0.0

    # Attachments
    upload_dir: str = "./uploads"
    max_attachment_bytes: int = 5 * 1024 * 1024
    max_attachments: int = 10

    rate_limit_per_minute: int = 120
    rate_limit_per_second: int = 20

    log_level: str = "INFO"
    log_dir: str = "logs"

    model_config: ClassVar[SettingsConfigDict] = cast(
        SettingsConfigDict,
        cast(
            object,
            {
                "env_file": None if _running_tests() else ".env",
                "extra": "ignore",
            },
        ),
    )

    @field_validator("cors_allow_origins", "trusted_proxies", mode="before")
    @classmethod
    def _parse_csv_list(cls, value: object):
        if isinstance(value, str):
            parts = [p.strip() for p in value.split(",")]
            return [p for p in parts if p]
        return value

    @field_validator("debug", mode="before")
    @classmethod
    def _parse_debug(cls, value: object):
        if value is None:
            return bool(_running_tests())
        if isinstance(value, bool):
            return bool(value)
        if isinstance(value, int):
            return bool(int(value))
        if isinstance(value, str):
            s = value.strip().lower()
            if not s:
                return bool(_running_tests())
            if s in {"1", "true", "yes", "y", "on"}:
                return True
            if s in {"0", "false", "no", "n", "off"}:
                return False
            return True
        return bool(_running_tests())

    @model_validator(mode="after")
    def _validate_required(self):
        if _running_tests():
            return self
        if not self.debug and not self.openai_api_key.strip():
            raise ValueError("OPENAI_API_KEY must be set when DEBUG is False")
        return self


@lru_cache()
def get_settings() -> Settings:
    """Return the cached settings instance"""
    return Settings()
