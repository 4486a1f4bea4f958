"""
Configuration Module
====================

Centralized configuration management using Pydantic Settings.
Loads from environment variables with type validation and defaults.

Usage:
    from shared.config import settings

    print(settings.environment)
    print(settings.risk_scoring.trend_noise_threshold)
"""

from shared.config.settings import (
    Environment,
    EventBackend,
    LogLevel,
    RiskScoringSettings,
    Settings,
    StorageBackend,
    get_settings,
)


# Global settings instance (singleton)
settings = get_settings()

__all__ = [
    "Settings",
    "RiskScoringSettings",
    "get_settings",
    "settings",
    "Environment",
    "LogLevel",
    "StorageBackend",
    "EventBackend",
]
