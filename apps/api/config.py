"""
Application configuration using Pydantic Settings.
"""

from pydantic_settings import BaseSettings, SettingsConfigDict
from typing import List, Literal


class Settings(BaseSettings):
    """Application settings loaded from environment variables."""

    # Database
    DATABASE_URL: str = "sqlite+aiosqlite:///./coloring_pages.db"

    # Redis
    REDIS_URL: str = "redis://localhost:6379"

    # API
    API_HOST: str = "0.0.0.0"
    API_PORT: int = 8000
    LOG_LEVEL: str = "INFO"
    RATE_LIMITS_ENABLED: bool = True

    # CORS
    CORS_ORIGINS: List[str] = ["http://localhost:3000", "http://127.0.0.1:3000"]

    # Billing (GrooveSell)
    GROOVESELL_WEBHOOK_SECRET: str = ""
    CREDITS_PER_PURCHASE: int = 5
    SIGNUP_CREDITS: int = 3
    CREDITS_PER_GENERATION: int = 1

    # Image generation
    OPENAI_API_KEY: str = ""
    REPLICATE_API_TOKEN: str = ""
    REPLICATE_MODEL_URL: str = "https://api.replicate.com/v1/models/openai/gpt-image-1/predictions"
    IMAGE_GENERATION_TIMEOUT_SECONDS: int = 180
    MAX_IMAGE_UPLOAD_BYTES: int = 20 * 1024 * 1024

    # Image storage: "fs" keeps files on the server, "indexeddb" leaves them to the browser
    IMAGE_STORAGE_MODE: str = ""
    VERCEL: str = ""
    IMAGE_OUTPUT_DIR: str = "./generated-images"

    # Security
    JWT_SECRET: str = "change_me_in_production"
    JWT_ALGORITHM: str = "HS256"
    JWT_EXPIRATION_HOURS: int = 24
    AUTO_CREATE_DB_SCHEMA: bool = True

    model_config = SettingsConfigDict(env_file=".env", case_sensitive=True)


settings = Settings()


def resolve_image_storage_mode() -> Literal["fs", "indexeddb"]:
    """Pick where generated images live: explicit mode wins, Vercel defaults to the browser."""
    explicit = (settings.IMAGE_STORAGE_MODE or "").strip().lower()
    if explicit in ("fs", "indexeddb"):
        return explicit  # type: ignore[return-value]
    if (settings.VERCEL or "").strip() == "1":
        return "indexeddb"
    return "fs"


def require_image_provider_keys() -> None:
    """Raise a configuration error when the image provider cannot be called."""
    if not (settings.OPENAI_API_KEY or "").strip():
        raise ValueError("OPENAI_API_KEY is not configured")
    if not (settings.REPLICATE_API_TOKEN or "").strip():
        raise ValueError("REPLICATE_API_TOKEN is not configured")


def validate_security_settings() -> None:
    """Fail fast when insecure default secrets are still configured."""
    insecure_values = {
        "",
        "change_me_in_production",
        "your_jwt_secret_change_in_production",
    }
    jwt_secret = (settings.JWT_SECRET or "").strip()

    if jwt_secret in insecure_values or len(jwt_secret) < 24:
        raise ValueError("JWT_SECRET is insecure. Configure a strong non-default secret (>=24 chars).")
