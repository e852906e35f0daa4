"""Application configuration and settings management.

This module defines the application settings loaded from environment
variables and provides helper functions for accessing cached settings
and configuring logging.
"""

import logging
from functools import lru_cache
from typing import List, Literal

from pydantic_settings import BaseSettings, SettingsConfigDict

from .policies import PhonePolicy, get_phone_policy_by_name


class Settings(BaseSettings):
    """Application configuration loaded from environment variables.

    Attributes:
        DATABASE_URL: Database connection string.
        HOST: Interface the HTTP server binds to.
        PORT: Port the HTTP server listens on.
        ENVIRONMENT: Runtime mode, ``development`` or ``production``.
        CORS_ORIGIN: Comma separated list of allowed origins, ``*`` for any.
        REDIS_URL: Redis connection URL for rate limiting. When unset an
            in-process server is used.
        RATE_LIMIT_TIMES: Requests allowed per client per window.
        RATE_LIMIT_SECONDS: Length of the rate limit window in seconds.
        MAX_BODY_BYTES: Largest accepted request body.
        DB_CONNECT_RETRIES: Connection attempts made at startup.
        DB_CONNECT_RETRY_DELAY: Seconds to wait between attempts.
        PHONE_POLICY: ``lenient`` or ``strict`` phone rules.
        FRONTEND_DIR: Directory of the built frontend served in production.
    """

    model_config = SettingsConfigDict(env_file=".env", extra="ignore")

    DATABASE_URL: str = "sqlite:///./contacts.db"
    HOST: str = "0.0.0.0"
    PORT: int = 5000
    ENVIRONMENT: str = "development"
    CORS_ORIGIN: str = "*"
    REDIS_URL: str | None = None
    RATE_LIMIT_TIMES: int = 100
    RATE_LIMIT_SECONDS: int = 15 * 60
    MAX_BODY_BYTES: int = 10 * 1024
    DB_CONNECT_RETRIES: int = 5
    DB_CONNECT_RETRY_DELAY: float = 5.0
    PHONE_POLICY: Literal["lenient", "strict"] = "lenient"
    FRONTEND_DIR: str = "client/build"

    @property
    def allowed_origins(self) -> List[str]:
        """Origins parsed from ``CORS_ORIGIN``."""
        return [origin.strip() for origin in self.CORS_ORIGIN.split(",") if origin.strip()]

    @property
    def is_production(self) -> bool:
        return self.ENVIRONMENT == "production"

    @property
    def is_development(self) -> bool:
        return self.ENVIRONMENT == "development"

    @property
    def phone_policy(self) -> PhonePolicy:
        return get_phone_policy_by_name(self.PHONE_POLICY)


@lru_cache()
def get_settings() -> Settings:
    """Return cached application settings.

    The settings object is cached to prevent reloading environment
    variables multiple times during application lifetime.
    """

    return Settings()


def configure_logging(settings: Settings) -> None:
    """Configure root logging for the given runtime mode."""
    logging.basicConfig(
        format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
        level=logging.DEBUG if settings.is_development else logging.INFO,
    )
