"""Application configuration using Pydantic BaseSettings."""

import logging

import structlog
from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """Application settings loaded from environment variables."""

    model_config = SettingsConfigDict(env_file=".env", env_file_encoding="utf-8", extra="ignore")

    # Database Configuration
    database_url: str = Field(
        default="sqlite+aiosqlite:///./storage/sakuga.db", alias="DATABASE_URL"
    )
    db_pool_size: int = Field(default=5, ge=1, alias="DB_POOL_SIZE")

    # Application Environment
    app_env: str = Field(default="development", alias="APP_ENV")
    log_level: str = Field(default="INFO", alias="LOG_LEVEL")

    # CORS Configuration
    cors_origins: str = Field(default="http://localhost:5173", alias="CORS_ORIGINS")

    # Server Configuration
    host: str = Field(default="0.0.0.0", alias="HOST")
    port: int = Field(default=3000, alias="PORT")

    # Image storage (generated files live in <storage_path>/images)
    storage_path: str = Field(default="./storage", alias="STORAGE_PATH")

    # Provider credentials (fallbacks for keys stored in the database)
    openai_api_key: str = Field(default="", alias="OPENAI_API_KEY")
    stability_api_key: str = Field(default="", alias="STABILITY_API_KEY")
    replicate_api_token: str = Field(default="", alias="REPLICATE_API_TOKEN")
    gemini_api_key: str = Field(default="", alias="GEMINI_API_KEY")
    ideogram_api_key: str = Field(default="", alias="IDEOGRAM_API_KEY")
    fal_key: str = Field(default="", alias="FAL_KEY")
    together_api_key: str = Field(default="", alias="TOGETHER_API_KEY")
    bfl_api_key: str = Field(default="", alias="BFL_API_KEY")

    # Local Automatic1111 WebUI (started with --api)
    a1111_url: str = Field(default="", alias="A1111_URL")

    # Provider HTTP behaviour
    provider_timeout_seconds: float = Field(default=120.0, gt=0, alias="PROVIDER_TIMEOUT_SECONDS")
    bfl_poll_interval_seconds: float = Field(default=1.0, ge=0, alias="BFL_POLL_INTERVAL_SECONDS")
    bfl_max_poll_attempts: int = Field(default=60, ge=1, alias="BFL_MAX_POLL_ATTEMPTS")

    # Request limits
    max_images_per_request: int = Field(default=4, ge=1, le=10, alias="MAX_IMAGES_PER_REQUEST")
    max_prompt_length: int = Field(default=4000, ge=1, alias="MAX_PROMPT_LENGTH")

    @property
    def cors_origins_list(self) -> list[str]:
        """Parse CORS origins from comma-separated string."""
        return [origin.strip() for origin in self.cors_origins.split(",")]

    @property
    def images_path(self) -> str:
        """Directory holding generated image files."""
        return f"{self.storage_path.rstrip('/')}/images"


def configure_logging(settings: Settings) -> None:
    """Configure structlog based on application environment.

    - Production: JSON output for log aggregation
    - Development: Console output for human readability
    """
    level = logging.getLevelName(settings.log_level.upper())
    if not isinstance(level, int):
        level = logging.INFO

    if settings.app_env == "production":
        renderer = structlog.processors.JSONRenderer()
        extra_processors = [
            structlog.processors.StackInfoRenderer(),
            structlog.processors.format_exc_info,
        ]
    else:
        renderer = structlog.dev.ConsoleRenderer()
        extra_processors = []

    structlog.configure(
        processors=[
            structlog.stdlib.add_log_level,
            structlog.processors.TimeStamper(fmt="iso"),
            *extra_processors,
            renderer,
        ],
        wrapper_class=structlog.make_filtering_bound_logger(level),
        context_class=dict,
        logger_factory=structlog.PrintLoggerFactory(),
        cache_logger_on_first_use=True,
    )
