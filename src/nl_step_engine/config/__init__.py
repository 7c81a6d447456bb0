"""
Configuration module - Centralized settings management.

This module provides type-safe configuration management using Pydantic,
supporting environment variables, YAML files, and CLI arguments.

Usage:
    from nl_step_engine.config import get_settings, load_config

    # Get global settings (loaded once)
    settings = get_settings()

    # Or load fresh settings with overrides
    settings = load_config(matcher={"confidence_threshold": 0.7})

Environment Variables:
    NL_STEP_ENGINE__MATCHER__CONFIDENCE_THRESHOLD=0.7
    NL_STEP_ENGINE__EXECUTOR__TIMEOUT_MS=15000
    NL_STEP_ENGINE__CACHE__DIRECTORY=/tmp/step-cache
"""

from nl_step_engine.config.settings import (
    Settings,
    EngineSettings,
    MatcherSettings,
    ExecutorSettings,
    CacheSettings,
    LoggingSettings,
)
from nl_step_engine.config.loader import ConfigLoader, load_config

# Global settings singleton
_settings: Settings | None = None


def get_settings() -> Settings:
    """
    Get the global settings instance (singleton).

    Settings are loaded once from environment variables and config files.
    Call reset_settings() to reload.

    Returns:
        Global Settings instance
    """
    global _settings
    if _settings is None:
        _settings = load_config()
    return _settings


def reset_settings() -> None:
    """Reset the global settings (forces reload on next get_settings())."""
    global _settings
    _settings = None


__all__ = [
    "Settings",
    "EngineSettings",
    "MatcherSettings",
    "ExecutorSettings",
    "CacheSettings",
    "LoggingSettings",
    "ConfigLoader",
    "load_config",
    "get_settings",
    "reset_settings",
]
