"""
Centralized configuration with environment variable overrides.

Slot granularity, booking horizon, cache lifetime and data-source timeouts
are configurable here. Nothing is hardcoded in scheduling or tool logic.
"""

import logging
import os
from dataclasses import dataclass, field
from zoneinfo import ZoneInfo, ZoneInfoNotFoundError

from dotenv import load_dotenv

load_dotenv()

logger = logging.getLogger(__name__)


def _safe_int(env_var: str, default: str) -> int:
    """Parse an integer from an env var with a clear error on bad values."""
    raw = os.getenv(env_var, default)
    try:
        return int(raw)
    except (ValueError, TypeError):
        raise ValueError(
            f"Invalid integer for {env_var}: {raw!r}"
        ) from None


def _safe_float(env_var: str, default: str) -> float:
    """Parse a float from an env var with a clear error on bad values."""
    raw = os.getenv(env_var, default)
    try:
        return float(raw)
    except (ValueError, TypeError):
        raise ValueError(
            f"Invalid float for {env_var}: {raw!r}"
        ) from None


@dataclass(frozen=True)
class SchedulingConfig:
    """Slot grid and booking-window settings."""

    slot_interval_minutes: int = _safe_int("SLOT_INTERVAL_MINUTES", "30")
    default_service_duration_minutes: int = _safe_int("DEFAULT_SERVICE_DURATION", "60")
    advance_booking_days: int = _safe_int("ADVANCE_BOOKING_DAYS", "30")
    business_timezone: str = os.getenv("BUSINESS_TIMEZONE", "UTC")


@dataclass(frozen=True)
class CacheConfig:
    """Short-lived slot cache settings."""

    slot_cache_ttl_seconds: float = _safe_float("SLOT_CACHE_TTL_SECONDS", "60")
    slot_cache_max_entries: int = _safe_int("SLOT_CACHE_MAX_ENTRIES", "512")


@dataclass(frozen=True)
class DataSourceConfig:
    """Limits applied to calls into the external data layer."""

    fetch_timeout_seconds: float = _safe_float("FETCH_TIMEOUT_SECONDS", "10.0")


@dataclass(frozen=True)
class AppConfig:
    """Root configuration aggregating all sub-configs."""

    scheduling: SchedulingConfig = field(default_factory=SchedulingConfig)
    cache: CacheConfig = field(default_factory=CacheConfig)
    data_source: DataSourceConfig = field(default_factory=DataSourceConfig)
    log_level: str = os.getenv("LOG_LEVEL", "INFO")
    app_name: str = os.getenv("APP_NAME", "salon-booking")


def _validate_config(config: AppConfig) -> None:
    """Validate configuration values are within acceptable ranges."""
    if not 1 <= config.scheduling.slot_interval_minutes <= 24 * 60:
        raise ValueError(
            "SLOT_INTERVAL_MINUTES must be between 1 and 1440, "
            f"got {config.scheduling.slot_interval_minutes}"
        )
    if config.scheduling.default_service_duration_minutes < 1:
        raise ValueError(
            "DEFAULT_SERVICE_DURATION must be >= 1, "
            f"got {config.scheduling.default_service_duration_minutes}"
        )
    if config.scheduling.advance_booking_days < 0:
        raise ValueError(
            f"ADVANCE_BOOKING_DAYS must be >= 0, got {config.scheduling.advance_booking_days}"
        )
    try:
        ZoneInfo(config.scheduling.business_timezone)
    except (ZoneInfoNotFoundError, ValueError):
        raise ValueError(
            f"BUSINESS_TIMEZONE is not a known timezone: {config.scheduling.business_timezone!r}"
        ) from None

    if config.cache.slot_cache_ttl_seconds < 0:
        raise ValueError(
            f"SLOT_CACHE_TTL_SECONDS must be >= 0, got {config.cache.slot_cache_ttl_seconds}"
        )
    if config.cache.slot_cache_max_entries < 1:
        raise ValueError(
            f"SLOT_CACHE_MAX_ENTRIES must be >= 1, got {config.cache.slot_cache_max_entries}"
        )
    if config.data_source.fetch_timeout_seconds <= 0:
        raise ValueError(
            "FETCH_TIMEOUT_SECONDS must be > 0, "
            f"got {config.data_source.fetch_timeout_seconds}"
        )


def load_config() -> AppConfig:
    """Load and validate application configuration."""
    config = AppConfig()
    _validate_config(config)
    logging.basicConfig(
        level=getattr(logging, config.log_level.upper(), logging.INFO),
        format="%(asctime)s [%(name)s] %(levelname)s: %(message)s",
        datefmt="%Y-%m-%d %H:%M:%S",
    )
    logger.info("Configuration loaded for '%s'", config.app_name)
    return config


# Singleton instance
settings = load_config()
