import os
from typing import Literal

from pydantic import BaseModel


def _env_list(name: str, default: str) -> list[str]:
    return [item.strip() for item in os.getenv(name, default).split(",") if item.strip()]


class Settings(BaseModel):
    """Process configuration, read once from the environment at startup."""

    environment: Literal["development", "production", "test"] = "development"
    log_level: str = "INFO"

    jwt_secret: str = "jwt_fallback_secret"
    jwt_expires_in: int = 15 * 60
    jwt_refresh_secret: str = "jwt_refresh_fallback_secret"
    jwt_refresh_expires_in: int = 7 * 24 * 60 * 60
    jwt_algorithm: str = "HS256"

    database_url: str = "postgresql+asyncpg://postgres:postgres@db:5432/rah_e_ayandeh"
    redis_url: str = "redis://localhost:6379"
    revocation_backend: Literal["redis", "memory"] = "redis"
    cache_backend: Literal["redis", "memory"] = "redis"
    # seconds, applied to every Redis and database call
    store_timeout: float = 5.0

    # fixed window applied per client address to every /api route
    rate_limit_window_minutes: int = 15
    rate_limit_max: int = 100

    sentry_dsn: str | None = None
    release: str | None = None
    otlp_endpoint: str | None = None
    cors_origins: list[str] = ["*"]

    @property
    def is_development(self) -> bool:
        return self.environment == "development"

    @classmethod
    def from_env(cls) -> "Settings":
        return cls(
            environment=os.getenv("ENVIRONMENT", "development"),
            log_level=os.getenv("LOG_LEVEL", "INFO"),
            jwt_secret=os.getenv("JWT_SECRET", "jwt_fallback_secret"),
            jwt_expires_in=int(os.getenv("JWT_EXPIRES_IN", 15 * 60)),
            jwt_refresh_secret=os.getenv("JWT_REFRESH_SECRET", "jwt_refresh_fallback_secret"),
            jwt_refresh_expires_in=int(os.getenv("JWT_REFRESH_EXPIRES_IN", 7 * 24 * 60 * 60)),
            jwt_algorithm=os.getenv("JWT_ALGORITHM", "HS256"),
            database_url=os.getenv(
                "DATABASE_URL",
                "postgresql+asyncpg://postgres:postgres@db:5432/rah_e_ayandeh",
            ),
            redis_url=os.getenv("REDIS_URL", "redis://localhost:6379"),
            revocation_backend=os.getenv("REVOCATION_BACKEND", "redis"),
            cache_backend=os.getenv("CACHE_BACKEND", "redis"),
            store_timeout=float(os.getenv("STORE_TIMEOUT", 5)),
            rate_limit_window_minutes=int(os.getenv("RATE_LIMIT_WINDOW", 15)),
            rate_limit_max=int(os.getenv("RATE_LIMIT_MAX", 100)),
            sentry_dsn=os.getenv("SENTRY_DSN") or None,
            release=os.getenv("RELEASE"),
            otlp_endpoint=os.getenv("OTLP_ENDPOINT") or None,
            cors_origins=_env_list("CORS_ORIGINS", "*"),
        )
