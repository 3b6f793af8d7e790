"""Application configuration via environment variables.

Uses pydantic-settings to load config from env vars with BARBERSHOP_ prefix.
No YAML files, no file-based config — just env vars (12-factor app style).

Learn: Both halves of the realtime layer read from here. The server uses
the Redis/JWT/heartbeat settings; the client manager uses the reconnect,
fallback and relay settings as defaults that tests can override per instance.
"""

from typing import Optional

from pydantic import model_validator
from pydantic_settings import BaseSettings


class Settings(BaseSettings):
    """All app configuration. Set via BARBERSHOP_* env vars."""

    # Redis
    redis_url: str = "redis://localhost:6379/0"

    # Auth
    jwt_secret: str = "change-me-in-production"
    jwt_algorithm: str = "HS256"
    access_token_expire_minutes: int = 60

    # Server
    environment: str = "development"
    debug: bool = False
    host: str = "0.0.0.0"
    port: int = 8000

    # CORS
    cors_origins: list[str] = [
        "http://localhost:3000",
    ]

    # Realtime — server side
    realtime_events_channel: str = "barbershop:realtime:events"
    heartbeat_interval_seconds: float = 15.0

    # Realtime — client side
    realtime_url: str = "http://localhost:8000/api/realtime"
    broadcast_channel: str = "barbershop-realtime"
    reconnect_base_seconds: float = 1.0
    reconnect_max_seconds: float = 30.0
    max_reconnect_attempts: int = 5
    fallback_interval_seconds: float = 30.0
    refresh_cooldown_seconds: float = 0.2
    seen_events_limit: Optional[int] = None  # None = unbounded

    model_config = {"env_prefix": "BARBERSHOP_"}

    @model_validator(mode="after")
    def validate_production_settings(self):
        """Ensure sensitive defaults are changed in non-development environments."""
        if (
            self.environment != "development"
            and self.jwt_secret == "change-me-in-production"
        ):
            raise ValueError(
                "BARBERSHOP_JWT_SECRET must be set to a secure value in "
                "non-development environments. Generate one with: "
                'python -c "import secrets; print(secrets.token_urlsafe(32))"'
            )
        return self


# Singleton — import this everywhere
settings = Settings()
