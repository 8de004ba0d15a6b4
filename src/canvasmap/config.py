from functools import lru_cache
from typing import Optional

from dotenv import load_dotenv
from pydantic_settings import BaseSettings, SettingsConfigDict

load_dotenv()


class Settings(BaseSettings):
    """Runtime configuration, read from ``CANVASMAP_*`` environment variables or ``.env``."""

    model_config = SettingsConfigDict(
        env_prefix="CANVASMAP_",
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore",
    )

    # Persistence (Supabase). Without a URL and key MappingStore.from_settings keeps mappings in memory.
    supabase_url: Optional[str] = None
    supabase_key: Optional[str] = None
    mappings_table: str = "mappings"

    # AI suggestions
    openai_api_key: Optional[str] = None
    openai_model: str = "gpt-4.1-2025-04-14"
    openai_temperature: float = 0.2
    ai_max_samples: int = 20

    log_level: str = "INFO"

    @property
    def has_supabase(self) -> bool:
        return bool(self.supabase_url and self.supabase_key)


@lru_cache
def get_settings() -> Settings:
    return Settings()
