# sflibrary/config.py
from functools import lru_cache
from pathlib import Path
from typing import Optional

from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """Runtime configuration, read from the environment or a ``.env`` file.

    Both credentials are optional: a missing store key turns
    every catalog call into a ``CatalogError`` and a missing completion key
    makes the AI endpoint answer with a configuration error, while the rest
    of the service keeps working.
    """

    model_config = SettingsConfigDict(
        env_file=".env",
        case_sensitive=False,
        extra="ignore",
        populate_by_name=True,
    )

    # Hosted catalog (Supabase / PostgREST)
    supabase_url: Optional[str] = Field(None, alias="SUPABASE_URL")
    supabase_anon_key: Optional[str] = Field(None, alias="SUPABASE_ANON_KEY")

    # Completion API (OpenAI-compatible)
    openai_api_key: Optional[str] = Field(None, alias="OPENAI_API_KEY")
    openai_base_url: str = Field("https://api.openai.com/v1", alias="OPENAI_BASE_URL")
    openai_model: str = Field("gpt-4.1-mini", alias="OPENAI_MODEL")
    ai_temperature: float = Field(0.3, alias="AI_TEMPERATURE")
    ai_max_output_tokens: int = Field(500, alias="AI_MAX_OUTPUT_TOKENS")

    http_timeout: float = Field(10.0, alias="HTTP_TIMEOUT")
    recent_searches_file: Path = Field(
        Path("data") / "recent_searches.json", alias="RECENT_SEARCHES_FILE"
    )
    log_level: str = Field("INFO", alias="LOG_LEVEL")
    host: str = Field("127.0.0.1", alias="HOST")
    port: int = Field(8000, alias="PORT")

    @property
    def store_ready(self) -> bool:
        return bool(self.supabase_url and self.supabase_anon_key)

    @property
    def store_rest_url(self) -> str:
        return f"{(self.supabase_url or '').rstrip('/')}/rest/v1"


@lru_cache(maxsize=1)
def get_settings() -> Settings:
    return Settings()
