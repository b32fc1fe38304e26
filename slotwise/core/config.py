"""
Core Configuration Module

Centralizes process-level environment configuration for the scheduling service.
Provides a singleton Settings object with sensible defaults.

Per-shop values (weights, recommendation toggle, top-K sizes, max distance,
retry ceiling) are NOT read from here: they travel in a ShopConfig that is
passed explicitly into every scoring, eligibility and emission call.

Usage:
    from slotwise.core.config import settings

    print(settings.APP_ENV)
    print(settings.DEFAULT_DEADLINE_MS)
"""

import os
from typing import List, Optional


class Settings:
    """
    Application settings loaded from environment variables.

    Every value is read lazily so tests can monkeypatch the environment.
    """

    # ==================== Application Settings ====================

    @property
    def APP_NAME(self) -> str:
        """Service name reported by the root and health endpoints"""
        return os.getenv("APP_NAME", "slotwise")

    @property
    def APP_VERSION(self) -> str:
        return os.getenv("APP_VERSION", "1.0.0")

    @property
    def APP_ENV(self) -> str:
        """Application environment: dev, staging, production"""
        return os.getenv("APP_ENV", "dev")

    @property
    def LOG_LEVEL(self) -> str:
        """Logging level: DEBUG, INFO, WARNING, ERROR, CRITICAL"""
        return os.getenv("LOG_LEVEL", "INFO")

    @property
    def API_PREFIX(self) -> str:
        """Prefix for all API routes"""
        return os.getenv("API_PREFIX", "/api")

    # ==================== Scheduling Settings ====================

    @property
    def DEFAULT_DEADLINE_MS(self) -> int:
        """Scoring deadline used when the caller does not supply one"""
        return int(os.getenv("DEFAULT_DEADLINE_MS", "2000"))

    @property
    def DEFAULT_HORIZON_DAYS(self) -> int:
        """Days ahead scanned for slot recommendations when no range is given"""
        return int(os.getenv("DEFAULT_HORIZON_DAYS", "7"))

    @property
    def CATALOG_PATH(self) -> Optional[str]:
        """JSON file with shop catalogs loaded at startup (unset = start empty)"""
        return os.getenv("CATALOG_PATH") or None

    # ==================== Event Emitter Settings ====================

    @property
    def EVENT_SCHEMA_VERSION(self) -> str:
        """Schema version stamped on outbound events (part of the idempotency key)"""
        return os.getenv("EVENT_SCHEMA_VERSION", "1")

    @property
    def EMITTER_POLL_INTERVAL(self) -> float:
        """Seconds between outbox drains in the background delivery loop"""
        return float(os.getenv("EMITTER_POLL_INTERVAL", "0.5"))

    @property
    def WEBHOOK_CLIENT_TIMEOUT(self) -> float:
        """Per-attempt timeout for webhook delivery"""
        return float(os.getenv("WEBHOOK_CLIENT_TIMEOUT", "10.0"))

    @property
    def WEBHOOK_CLIENT_MAX_CONNECTIONS(self) -> int:
        return int(os.getenv("WEBHOOK_CLIENT_MAX_CONNECTIONS", "50"))

    @property
    def WEBHOOK_CLIENT_MAX_KEEPALIVE(self) -> int:
        return int(os.getenv("WEBHOOK_CLIENT_MAX_KEEPALIVE", "10"))

    # ==================== CORS Settings ====================

    @property
    def CORS_ORIGINS(self) -> List[str]:
        """Allowed CORS origins"""
        origins_str = os.getenv("CORS_ORIGINS", "*")
        if origins_str == "*":
            return ["*"]
        return [origin.strip() for origin in origins_str.split(",") if origin.strip()]

    @property
    def CORS_ALLOW_CREDENTIALS(self) -> bool:
        """Allow credentials in CORS requests"""
        return os.getenv("CORS_ALLOW_CREDENTIALS", "true").lower() == "true"


# ==================== Singleton Instance ====================

_settings: Optional[Settings] = None


def get_settings() -> Settings:
    """
    Get the singleton Settings instance.

    Returns:
        Settings object with configuration values

    Example:
        >>> from slotwise.core.config import get_settings
        >>> get_settings().API_PREFIX
        '/api'
    """
    global _settings

    if _settings is None:
        _settings = Settings()

    return _settings


# Convenience singleton for direct import
settings = get_settings()


# ==================== Helper Functions ====================

def is_production() -> bool:
    """
    Check if the application is running in production environment.

    Returns:
        True if APP_ENV is 'production' or 'prod'
    """
    env = settings.APP_ENV.lower()
    return env in ("production", "prod")
