"""
Settings - Pydantic models for type-safe configuration.

This module defines all configuration settings as Pydantic models,
providing validation, type hints, and automatic environment variable loading.

Example:
    >>> from nl_step_engine.config import Settings, load_config
    >>> settings = load_config()  # Loads from env, yaml, and defaults
    >>> print(settings.matcher.confidence_threshold)
    0.6
"""

from typing import Literal, Optional
from pydantic import BaseModel, Field
from pydantic_settings import BaseSettings, SettingsConfigDict


class EngineSettings(BaseModel):
    """
    Step engine behavior settings.

    Attributes:
        enabled: Master switch; a disabled engine refuses to run steps
        parse_cache_ttl_ms: Lifetime of the grammar parse memo
        decompose: Split compound/conditional/loop instructions
        screenshot_on_failure: Capture a screenshot before re-raising a failure
        screenshot_dir: Directory for failure screenshots
    """
    enabled: bool = True
    parse_cache_ttl_ms: int = Field(default=300000, ge=0)
    decompose: bool = True
    screenshot_on_failure: bool = True
    screenshot_dir: str = "."


class MatcherSettings(BaseModel):
    """
    Element matcher settings.

    Attributes:
        confidence_threshold: Minimum confidence to accept a strategy result
        a11y_cache_ttl_ms: How long an accessibility snapshot is reused
        self_heal_min_score: Minimum fingerprint score for a self-healed match
    """
    confidence_threshold: float = Field(default=0.6, ge=0.0, le=1.0)
    a11y_cache_ttl_ms: int = Field(default=500, ge=0, le=60000)
    self_heal_min_score: float = Field(default=0.5, ge=0.0, le=1.0)


class ExecutorSettings(BaseModel):
    """
    Action executor settings.

    Attributes:
        timeout_ms: Default timeout for element operations
        navigation_timeout_ms: Floor for navigation timeouts
        retries: Recovery attempts after a failed operation (0 disables recovery)
        poll_interval_ms: Poll interval for polling assertions
        login_url: Where to go after clearing the session (reload when unset)
    """
    timeout_ms: int = Field(default=10000, ge=100, le=300000)
    navigation_timeout_ms: int = Field(default=30000, ge=1000, le=300000)
    retries: int = Field(default=1, ge=0, le=10)
    poll_interval_ms: int = Field(default=250, ge=10, le=10000)
    login_url: Optional[str] = None


class CacheSettings(BaseModel):
    """
    Persistent element cache settings.

    Attributes:
        enabled: Use the cache for lookup and learning
        directory: Directory holding element-cache.json
        ttl_ms: Maximum idle age of an entry
        max_entries: Entry count above which LRU eviction applies
        save_debounce_ms: Delay that coalesces cache writes
    """
    enabled: bool = True
    directory: str = ".ai-step-cache"
    ttl_ms: int = Field(default=24 * 60 * 60 * 1000, ge=1000)
    max_entries: int = Field(default=5000, ge=1)
    save_debounce_ms: int = Field(default=2000, ge=0, le=60000)


class LoggingSettings(BaseModel):
    """
    Logging configuration.

    Attributes:
        level: Log level
        format: Log format string
        file: Log file path (None for console only)
        json_format: Use JSON format for logs
    """
    level: Literal["DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"] = "INFO"
    format: str = "%(asctime)s - %(name)s - %(levelname)s - %(message)s"
    file: Optional[str] = None
    json_format: bool = False


class Settings(BaseSettings):
    """
    Root settings container - single source of truth for all configuration.

    Settings are loaded in this priority order (highest to lowest):
    1. Explicit values passed to constructor
    2. Environment variables (prefixed with NL_STEP_ENGINE__)
    3. Config file (YAML)
    4. Default values

    Example:
        >>> settings = Settings()  # Load from env vars
        >>> settings = Settings(matcher=MatcherSettings(confidence_threshold=0.7))
    """

    model_config = SettingsConfigDict(
        env_prefix="NL_STEP_ENGINE__",
        env_nested_delimiter="__",
        case_sensitive=False,
        extra="ignore",
    )

    engine: EngineSettings = Field(default_factory=EngineSettings)
    matcher: MatcherSettings = Field(default_factory=MatcherSettings)
    executor: ExecutorSettings = Field(default_factory=ExecutorSettings)
    cache: CacheSettings = Field(default_factory=CacheSettings)
    logging: LoggingSettings = Field(default_factory=LoggingSettings)

    debug: bool = False

    def merge_with(self, overrides: dict) -> "Settings":
        """
        Create a new Settings instance with overrides applied.

        Args:
            overrides: Dictionary of values to override

        Returns:
            New Settings instance with overrides applied
        """
        current = self.model_dump()

        def deep_merge(base: dict, updates: dict) -> dict:
            for key, value in updates.items():
                if key in base and isinstance(base[key], dict) and isinstance(value, dict):
                    deep_merge(base[key], value)
                else:
                    base[key] = value
            return base

        merged = deep_merge(current, overrides)
        return Settings(**merged)
