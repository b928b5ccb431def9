"""
Centralized settings for the Water Complaint System backend.

Provides a lightweight wrapper around environment variables (with `.env`
support for local development) so the rest of the codebase can import a single
`get_settings()` helper when configuration is needed. Explicit environment
variables always win over values read from the `.env` file.
"""

from __future__ import annotations

from dataclasses import dataclass
from functools import lru_cache
from pathlib import Path
from typing import Optional
import os

from dotenv import dotenv_values


@dataclass(frozen=True)
class Settings:
    """Immutable view of application configuration."""

    # General
    environment: str
    public_base_url: str
    allowed_hosts: tuple[str, ...]
    cors_origins: tuple[str, ...]

    # Durable storage
    storage_backend: str
    database_url: str
    storage_key: str

    # Demonstration auto-advance
    auto_advance_enabled: bool
    auto_advance_delays: tuple[float, float, float]

    # SMS gateway
    sms_api_url: Optional[str]
    sms_api_key: Optional[str]
    sms_sender_id: Optional[str]
    sms_rate_limit_per_minute: int

    # Reverse geocoding
    geocoder_url: str
    geocoder_user_agent: str

    # Observability
    sentry_dsn: Optional[str]


def _as_bool(value: Optional[str], default: bool = False) -> bool:
    if value is None:
        return default
    return value.strip().lower() in {"1", "true", "yes", "on"}


def _as_list(value: Optional[str]) -> tuple[str, ...]:
    if not value:
        return ()
    return tuple(item.strip() for item in value.split(",") if item.strip())


def _as_delays(value: Optional[str]) -> tuple[float, float, float]:
    parts = [float(item) for item in _as_list(value)]
    if len(parts) != 3:
        raise ValueError(
            f"AUTO_ADVANCE_DELAYS must list exactly three delays in seconds, got {value!r}"
        )
    return parts[0], parts[1], parts[2]


def _env_lookup(key: str, env: dict[str, str], default: Optional[str] = None) -> Optional[str]:
    return os.environ.get(key) or env.get(key) or default


@lru_cache()
def get_settings() -> Settings:
    """Load settings once per process."""

    env_path = Path(__file__).resolve().parents[2] / ".env"
    env_file = dotenv_values(str(env_path)) if env_path.exists() else {}

    return Settings(
        environment=_env_lookup("APP_ENV", env_file, "development"),
        public_base_url=_env_lookup("PUBLIC_BASE_URL", env_file, "http://localhost:5173").rstrip("/"),
        allowed_hosts=_as_list(_env_lookup("ALLOWED_HOSTS", env_file, "*")),
        cors_origins=_as_list(_env_lookup("CORS_ORIGINS", env_file, "*")),
        storage_backend=_env_lookup("STORAGE_BACKEND", env_file, "sql").lower(),
        database_url=_env_lookup(
            "DATABASE_URL", env_file, "sqlite+aiosqlite:///./water_complaints.db"
        ),
        storage_key=_env_lookup("STORAGE_KEY", env_file, "complaints"),
        auto_advance_enabled=_as_bool(_env_lookup("AUTO_ADVANCE_ENABLED", env_file, "true"), True),
        auto_advance_delays=_as_delays(_env_lookup("AUTO_ADVANCE_DELAYS", env_file, "10,15,20")),
        sms_api_url=_env_lookup("SMS_API_URL", env_file),
        sms_api_key=_env_lookup("SMS_API_KEY", env_file),
        sms_sender_id=_env_lookup("SMS_SENDER_ID", env_file),
        sms_rate_limit_per_minute=int(_env_lookup("SMS_RATE_LIMIT_PER_MINUTE", env_file, "10")),
        geocoder_url=_env_lookup(
            "GEOCODER_URL", env_file, "https://nominatim.openstreetmap.org/reverse"
        ),
        geocoder_user_agent=_env_lookup(
            "GEOCODER_USER_AGENT", env_file, "WaterComplaintSystem/1.0"
        ),
        sentry_dsn=_env_lookup("SENTRY_DSN", env_file),
    )


__all__ = ["Settings", "get_settings"]
