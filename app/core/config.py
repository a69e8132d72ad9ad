"""
Application configuration management
"""
from functools import lru_cache
from typing import List
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """Application settings"""

    # Supabase
    SUPABASE_URL: str
    SUPABASE_PUBLISHABLE_KEY: str
    SUPABASE_SECRET_KEY: str

    # OpenAI
    OPENAI_API_KEY: str = ""
    OPENAI_ORGANIZATION_ID: str = ""
    OPENAI_PROJECT_ID: str = ""
    OPENAI_TRANSCRIBE_MODEL: str = "whisper-1"
    OPENAI_VISION_MODEL: str = "gpt-4o"
    OPENAI_SYNTHESIS_MODEL: str = "gpt-4o-mini"

    # Application
    APP_ENV: str = "development"
    APP_NAME: str = "YouTube Recipe Extractor API"
    APP_VERSION: str = "1.0.0"
    DEBUG: bool = True

    # CORS
    CORS_ORIGINS: str = "http://localhost:3000,http://localhost:5173"

    # Server
    HOST: str = "0.0.0.0"
    PORT: int = 8000

    # Rate Limiting
    RATE_LIMIT_PER_MINUTE: int = 60
    EXTRACTION_RATE_LIMIT_PER_MINUTE: int = 10  # Stricter limit for heavy extraction operations

    # YouTube extraction
    YOUTUBE_MAX_DURATION: int = 3600  # seconds
    YOUTUBE_MAX_FRAMES: int = 20  # frames sent to the vision model
    YOUTUBE_MAX_HEIGHT: int = 720
    YOUTUBE_SCENE_THRESHOLD: float = 0.3
    YOUTUBE_OCR_BATCH_SIZE: int = 5
    YOUTUBE_OCR_LANGUAGES: str = "eng+ara"
    YOUTUBE_TEMP_DIR: str = "temp/youtube"
    YOUTUBE_TEMP_MAX_AGE_HOURS: int = 6
    YOUTUBE_TEMP_CLEANUP_INTERVAL_HOURS: int = 1

    # External tools
    FFMPEG_PATH: str = "ffmpeg"
    TESSERACT_PATH: str = "tesseract"

    # Monitoring
    SENTRY_DSN: str = ""

    # Uvicorn workers; each runs its own background jobs
    UVICORN_WORKERS: int = 1

    # Logging
    LOG_LEVEL: str = "INFO"

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=True,
        extra="ignore"
    )

    @property
    def cors_origins_list(self) -> List[str]:
        """Parse CORS origins from comma-separated string"""
        return [origin.strip() for origin in self.CORS_ORIGINS.split(",")]

    @property
    def is_production(self) -> bool:
        """Check if running in production"""
        return self.APP_ENV == "production"


@lru_cache()
def get_settings() -> Settings:
    """Get cached settings instance"""
    return Settings()
