"""
Tests for configuration system.
"""

import pytest

from nl_step_engine.config import (
    CacheSettings,
    ConfigLoader,
    ExecutorSettings,
    MatcherSettings,
    Settings,
    get_settings,
    load_config,
    reset_settings,
)
from nl_step_engine.exceptions import ConfigurationError


class TestSettings:
    """Test the Settings classes."""

    def test_default_settings(self):
        """Test default settings are created correctly."""
        settings = Settings()

        assert settings.engine.enabled is True
        assert settings.engine.decompose is True
        assert settings.matcher.confidence_threshold == 0.6
        assert settings.matcher.a11y_cache_ttl_ms == 500
        assert settings.executor.timeout_ms == 10000
        assert settings.cache.directory == ".ai-step-cache"
        assert settings.cache.save_debounce_ms == 2000
        assert settings.logging.level == "INFO"

    def test_override_settings(self):
        """Test overriding settings."""
        settings = Settings(
            matcher=MatcherSettings(confidence_threshold=0.8),
            executor=ExecutorSettings(timeout_ms=5000, login_url="/login"),
        )

        assert settings.matcher.confidence_threshold == 0.8
        assert settings.executor.timeout_ms == 5000
        assert settings.executor.login_url == "/login"

    def test_merge_with_overrides(self):
        """Test merging settings with overrides."""
        settings = Settings()
        new_settings = settings.merge_with({
            "matcher": {"confidence_threshold": 0.75},
            "cache": {"enabled": False},
        })

        assert new_settings.matcher.confidence_threshold == 0.75
        assert new_settings.cache.enabled is False
        # Other settings should remain default
        assert new_settings.matcher.self_heal_min_score == 0.5
        assert new_settings.cache.directory == ".ai-step-cache"
        # Original untouched
        assert settings.cache.enabled is True

    def test_executor_settings_validation(self):
        """Test validation of executor settings."""
        assert ExecutorSettings(timeout_ms=100).timeout_ms == 100

        with pytest.raises(ValueError):
            ExecutorSettings(timeout_ms=50)
        with pytest.raises(ValueError):
            ExecutorSettings(poll_interval_ms=1)

    def test_matcher_settings_validation(self):
        """Test validation of matcher settings."""
        with pytest.raises(ValueError):
            MatcherSettings(confidence_threshold=1.5)
        with pytest.raises(ValueError):
            MatcherSettings(a11y_cache_ttl_ms=-1)

    def test_cache_settings_validation(self):
        """Test validation of cache settings."""
        with pytest.raises(ValueError):
            CacheSettings(save_debounce_ms=120000)
        with pytest.raises(ValueError):
            CacheSettings(max_entries=0)

    def test_environment_variables(self, monkeypatch):
        """Nested values come from prefixed environment variables."""
        monkeypatch.setenv("NL_STEP_ENGINE__MATCHER__CONFIDENCE_THRESHOLD", "0.9")
        monkeypatch.setenv("NL_STEP_ENGINE__EXECUTOR__TIMEOUT_MS", "2500")

        settings = Settings()

        assert settings.matcher.confidence_threshold == 0.9
        assert settings.executor.timeout_ms == 2500


class TestConfigLoader:
    """Test loading from files."""

    def test_yaml_file(self, tmp_path, monkeypatch):
        """Values in the YAML file are applied."""
        monkeypatch.chdir(tmp_path)
        path = tmp_path / "custom.yaml"
        path.write_text("matcher:\n  confidence_threshold: 0.7\ncache:\n  directory: /tmp/steps\n")

        settings = ConfigLoader(path).load()

        assert settings.matcher.confidence_threshold == 0.7
        assert settings.cache.directory == "/tmp/steps"

    def test_overrides_beat_file(self, tmp_path, monkeypatch):
        """Explicit overrides take precedence."""
        monkeypatch.chdir(tmp_path)
        path = tmp_path / "custom.yaml"
        path.write_text("executor:\n  timeout_ms: 4000\n")

        settings = load_config(config_path=path, executor={"timeout_ms": 6000})

        assert settings.executor.timeout_ms == 6000

    def test_default_path_discovery(self, tmp_path, monkeypatch):
        """A config file in the working directory is found."""
        monkeypatch.chdir(tmp_path)
        (tmp_path / "nl-step-engine.yaml").write_text("engine:\n  decompose: false\n")

        assert load_config().engine.decompose is False

    def test_missing_explicit_file(self, tmp_path):
        """An explicit path that does not exist is an error."""
        with pytest.raises(ConfigurationError):
            ConfigLoader(tmp_path / "missing.yaml").find_config_file()

    def test_invalid_yaml(self, tmp_path):
        """Broken YAML is reported as a configuration error."""
        path = tmp_path / "bad.yaml"
        path.write_text("matcher: [unclosed\n")
        with pytest.raises(ConfigurationError):
            ConfigLoader(path).load_yaml_config(path)

    def test_non_mapping_yaml(self, tmp_path):
        """The top level must be a mapping."""
        path = tmp_path / "list.yaml"
        path.write_text("- a\n- b\n")
        with pytest.raises(ConfigurationError):
            ConfigLoader(path).load_yaml_config(path)

    def test_empty_yaml(self, tmp_path):
        """An empty file is an empty config."""
        path = tmp_path / "empty.yaml"
        path.write_text("")
        assert ConfigLoader(path).load_yaml_config(path) == {}


class TestSettingsSingleton:
    """Test get_settings / reset_settings."""

    def test_singleton(self, tmp_path, monkeypatch):
        """The same instance is returned until reset."""
        monkeypatch.chdir(tmp_path)
        reset_settings()
        first = get_settings()
        assert get_settings() is first
        reset_settings()
        assert get_settings() is not first
        reset_settings()
