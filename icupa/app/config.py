from __future__ import annotations

from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8-sig",
        case_sensitive=False,
        extra="ignore",
    )

    SUPABASE_URL: str = ""
    SUPABASE_SERVICE_ROLE_KEY: str = ""
    APP_ENV: str = "local"
    FRONTEND_CORS_ORIGINS: list[str] = Field(default_factory=lambda: ["*"])

    OPENAI_API_KEY: str = ""
    ANTHROPIC_API_KEY: str = ""
    GEMINI_API_KEY: str = ""

    EXTRACT_MODEL: str = "gpt-4o-mini"
    CLEAN_MODEL: str = "claude-3-5-haiku-latest"
    ENHANCE_MODEL: str = "gemini-2.5-flash"
    PROMPT_MODEL: str = "gpt-4o-mini"
    IMAGE_MODEL: str = "dall-e-3"
    IMAGE_SIZE: str = "1024x1024"

    # "supabase" or "r2"
    IMAGE_STORAGE_BACKEND: str = "supabase"
    MENU_PHOTOS_BUCKET: str = "menu_photos"

    IMAGE_BACKFILL_BATCH_SIZE: int = 20
    IMAGE_RATE_DELAY_SECONDS: float = 1.1
    IMAGE_MAX_RETRIES: int = 2
    IMAGE_RETRY_DELAY_SECONDS: float = 2.0

    EXTRACTION_MAX_CONTENT_CHARS: int = 12000
    EXTRACTION_SKIP_EXISTING: bool = True
    HTTP_TIMEOUT_SECONDS: float = 20.0


settings = Settings()
