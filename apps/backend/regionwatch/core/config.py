"""
Application configuration loaded from environment variables.

Uses pydantic-settings for type-safe env var parsing with automatic
.env file loading. Every upstream URL is injected via environment so the
same build runs against the local docker-compose stack and the staging
backend.

To extend: add new fields here and document them in .env.example.
See https://docs.pydantic.dev/latest/concepts/pydantic_settings/
"""

from typing import Optional

from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    # ─── Core ──────────────────────────────────────────────────────
    environment: str = "development"
    debug: bool = False

    # ─── Upstream services ─────────────────────────────────────────
    # Region / user / strike endpoints all live behind the same API gateway.
    region_api_url: str = "http://localhost:8080/api"
    # The activity log is a separate service with its own base URL.
    activity_api_url: str = "http://localhost:8090"
    http_timeout: float = 10.0

    # ─── Realtime (STOMP over websocket) ───────────────────────────
    realtime_url: str = "ws://localhost:8080/ws/websocket"
    realtime_reconnect_delay: float = 5.0
    realtime_heartbeat_incoming_ms: int = 4000
    realtime_heartbeat_outgoing_ms: int = 4000

    # When set, the channel connects for this subject at startup.
    subject_id: Optional[str] = None

    # ─── Navigation ────────────────────────────────────────────────
    default_region_type: str = "COUNTRY"
    # Regions whose average rating falls below this get the tertiary tint.
    low_rating_threshold: float = 30.0
    # Time the backend needs to process eliminations after a strike.
    strike_settle_seconds: float = 2.0

    # ─── Nearby users ──────────────────────────────────────────────
    nearby_max_distance_km: float = 5.0
    nearby_poll_interval: float = 30.0

    # ─── Diagnostics ───────────────────────────────────────────────
    diagnostics_buffer_size: int = 500

    # ─── CORS ──────────────────────────────────────────────────────
    cors_origins_str: str = "http://localhost:5173,http://localhost:3000"

    @property
    def cors_origins(self) -> list[str]:
        return [o.strip() for o in self.cors_origins_str.split(",") if o.strip()]

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore",  # Don't fail on unknown env vars
    )


# Module-level singleton: import this everywhere instead of instantiating Settings()
settings = Settings()
