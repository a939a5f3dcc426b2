"""Application configuration, settings management and logging setup.

This module defines the application settings loaded from environment
variables and provides helpers for accessing cached settings and for
configuring the standard library logging once at startup.
"""

import logging
from functools import lru_cache
from typing import List

from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """Application configuration loaded from environment variables.

    Attributes:
        DATABASE_URL: Database connection string.
        SECRET_KEY: Secret key used for JWT signing.
        ALGORITHM: Algorithm used to encode JWT tokens.
        ACCESS_TOKEN_EXPIRE_MINUTES: Access token lifetime in minutes.
        REFRESH_TOKEN_EXPIRE_MINUTES: Refresh token lifetime in minutes.
        ALLOWED_ORIGINS: Allowed origins for CORS.
        REDIS_URL: Redis connection URL for rate limiting and caching.
        CLOUDINARY_URL: Cloudinary connection URL for image uploads.
        GOOGLE_CLIENT_ID: OAuth client id accepted for Google sign-in.
        GOOGLE_TOKENINFO_URL: Endpoint used to verify Google ID tokens.
        GOOGLE_VISION_API_KEY: API key for the Cloud Vision REST API.
        GEMINI_API_KEY: API key for the Gemini REST API.
        GEMINI_MODEL: Gemini model used for identification and queries.
        UPCITEMDB_API_KEY: Optional key for the UPCitemdb product lookup.
        BARCODE_LOOKUP_API_KEY: Optional key for the Barcode Lookup API.
        ORACLE_TIMEOUT_SECONDS: Timeout applied to every external call.
        AI_RATE_LIMIT_TIMES: Requests allowed per window on AI endpoints.
        AI_RATE_LIMIT_SECONDS: Length of the AI rate limit window.
        QUERY_ITEM_LIMIT: Maximum items summarised for natural-language queries.
        LOG_LEVEL: Root logging level.
    """

    DATABASE_URL: str = "sqlite:///./inventory.db"
    SECRET_KEY: str = "dev-secret"
    ALGORITHM: str = "HS256"
    ACCESS_TOKEN_EXPIRE_MINUTES: int = 60 * 24
    REFRESH_TOKEN_EXPIRE_MINUTES: int = 60 * 24 * 7
    ALLOWED_ORIGINS: List[str] = ["http://localhost:5173"]
    REDIS_URL: str = "redis://redis:6379"
    CLOUDINARY_URL: str | None = None
    GOOGLE_CLIENT_ID: str | None = None
    GOOGLE_TOKENINFO_URL: str = "https://oauth2.googleapis.com/tokeninfo"
    GOOGLE_VISION_API_KEY: str | None = None
    GEMINI_API_KEY: str | None = None
    GEMINI_MODEL: str = "gemini-1.5-flash"
    UPCITEMDB_API_KEY: str | None = None
    BARCODE_LOOKUP_API_KEY: str | None = None
    ORACLE_TIMEOUT_SECONDS: float = 10.0
    AI_RATE_LIMIT_TIMES: int = 20
    AI_RATE_LIMIT_SECONDS: int = 60
    QUERY_ITEM_LIMIT: int = 100
    LOG_LEVEL: str = "INFO"

    model_config = SettingsConfigDict(env_file=".env", extra="allow")


@lru_cache()
def get_settings() -> Settings:
    """Return cached application settings.

    The settings object is cached to prevent reloading environment
    variables multiple times during application lifetime.
    """

    return Settings()


def configure_logging(level: str | None = None) -> None:
    """Configure root logging for the API process.

    Args:
        level: Logging level name. Defaults to ``Settings.LOG_LEVEL``.
    """

    logging.basicConfig(
        level=(level or get_settings().LOG_LEVEL).upper(),
        format="%(asctime)s %(levelname)s [%(name)s] %(message)s",
    )
