"""Unit Tests for settings and logging configuration."""

import logging
import os

import pytest
import structlog

from thinkloop.application.logging import configure_logging, resolve_level
from thinkloop.application.settings import (
    ThinkloopSettings,
    configure,
    get_settings,
    reset_settings,
)


@pytest.fixture(autouse=True)
def isolated_settings(monkeypatch, tmp_path):
    # No stray .env file or THINKLOOP_* variables
    monkeypatch.chdir(tmp_path)
    for key in list(os.environ):
        if key.startswith("THINKLOOP_"):
            monkeypatch.delenv(key)
    reset_settings()
    yield
    reset_settings()


class TestThinkloopSettings:
    def test_defaults(self):
        settings = ThinkloopSettings()

        assert settings.default_model == "gpt-4.1-mini"
        assert settings.models == ("gpt-4.1-mini",)
        assert settings.max_iterations == 25
        assert settings.retry_max_retries == 3
        assert settings.log_level == "INFO"

    def test_environment_overrides(self, monkeypatch):
        monkeypatch.setenv("THINKLOOP_DEFAULT_MODEL", "gpt-4.1")
        monkeypatch.setenv("THINKLOOP_FALLBACK_MODELS", '["gpt-4.1-mini"]')
        monkeypatch.setenv("THINKLOOP_MAX_ITERATIONS", "7")
        monkeypatch.setenv("THINKLOOP_LOG_LEVEL", "debug")

        settings = ThinkloopSettings()

        assert settings.models == ("gpt-4.1", "gpt-4.1-mini")
        assert settings.max_iterations == 7
        assert settings.log_level == "DEBUG"


class TestSettingsAccess:
    def test_get_settings_is_cached(self):
        assert get_settings() is get_settings()

    def test_configure_and_reset(self):
        explicit = ThinkloopSettings(default_model="custom")

        configure(explicit)
        assert get_settings() is explicit

        reset_settings()
        assert get_settings() is not explicit


class TestLogging:
    def test_resolve_level(self):
        assert resolve_level("debug") == logging.DEBUG
        assert resolve_level(logging.WARNING) == logging.WARNING
        with pytest.raises(ValueError):
            resolve_level("verbose")

    def test_configure_logging(self):
        try:
            configure_logging("WARNING", json_output=True)
            assert structlog.is_configured()
        finally:
            structlog.reset_defaults()
