"""
Deployment settings: Gemini models, Stripe, S3, Redis, database and server.
"""

from functools import lru_cache
from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore",
    )

    # --- Environment ---
    env: str = Field(default="development", alias="ENV")
    log_level: str = Field(default="info", alias="LOG_LEVEL")
    debug: bool = Field(default=False, alias="DEBUG")

    # --- Database ---
    database_url: str = Field(
        default="sqlite+aiosqlite:///./mirror.db",
        alias="DATABASE_URL",
    )

    # --- Gemini ---
    gemini_api_key: str = Field(default="", alias="GEMINI_API_KEY")
    image_model: str = Field(default="gemini-2.5-flash-image", alias="IMAGE_MODEL")
    text_model: str = Field(default="gemini-3-flash-preview", alias="TEXT_MODEL")
    shopping_model: str = Field(default="gemini-3-pro-image-preview", alias="SHOPPING_MODEL")
    tts_model: str = Field(default="gemini-2.5-flash-preview-tts", alias="TTS_MODEL")
    tts_voice: str = Field(default="Kore", alias="TTS_VOICE")
    backend_timeout_seconds: float = Field(default=90.0, alias="BACKEND_TIMEOUT_SECONDS")

    # --- Sessions ---
    max_active_sessions: int = Field(default=2000, alias="MAX_ACTIVE_SESSIONS")
    session_idle_seconds: float = Field(default=1800.0, alias="SESSION_IDLE_SECONDS")

    # --- Stripe ---
    stripe_secret_key: str = Field(default="", alias="STRIPE_SECRET_KEY")
    public_url: str = Field(default="http://localhost:5173", alias="PUBLIC_URL")

    # --- AWS S3 ---
    aws_access_key_id: str = Field(default="", alias="AWS_ACCESS_KEY_ID")
    aws_secret_access_key: str = Field(default="", alias="AWS_SECRET_ACCESS_KEY")
    aws_region: str = Field(default="us-east-1", alias="AWS_REGION")
    s3_bucket_name: str = Field(default="everyday-mirror", alias="S3_BUCKET_NAME")

    # --- Redis ---
    redis_url: str = Field(default="", alias="REDIS_URL")

    # --- API ---
    api_host: str = Field(default="0.0.0.0", alias="API_HOST")
    api_port: int = Field(default=8080, alias="API_PORT")
    cors_origins: str = Field(default="*", alias="CORS_ORIGINS")


@lru_cache
def get_settings() -> Settings:
    return Settings()
