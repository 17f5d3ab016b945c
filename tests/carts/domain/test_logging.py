"""Tests for logging configuration helpers."""

import logging

import pytest
import structlog
from carts.utils.logging import add_context, clear_context, configure_logging, get_env, get_log_level

ENV_VARS = ("ENV", "ENVIRONMENT", "PROTEAN_ENV", "LOG_LEVEL")


@pytest.fixture
def restore_logging():
    yield
    clear_context()
    configure_logging()


@pytest.fixture
def set_env(monkeypatch):
    for name in ENV_VARS:
        monkeypatch.delenv(name, raising=False)

    def _set_env(**values):
        for name, value in values.items():
            monkeypatch.setenv(name, value)

    return _set_env


class TestGetEnv:
    def test_defaults_to_development(self, set_env):
        assert get_env() == "development"

    def test_reads_protean_env(self, set_env):
        set_env(PROTEAN_ENV="Production")
        assert get_env() == "production"

    def test_env_wins_over_protean_env(self, set_env):
        set_env(ENV="staging", PROTEAN_ENV="test")
        assert get_env() == "staging"


class TestLogLevel:
    @pytest.mark.parametrize(
        "env, level",
        [("production", "INFO"), ("staging", "INFO"), ("development", "DEBUG"), ("test", "WARNING")],
    )
    def test_level_from_env(self, set_env, env, level):
        set_env(PROTEAN_ENV=env)
        assert get_log_level() == level

    def test_unknown_env_logs_info(self, set_env):
        set_env(PROTEAN_ENV="qa")
        assert get_log_level() == "INFO"

    def test_log_level_override(self, set_env):
        set_env(PROTEAN_ENV="production", LOG_LEVEL="error")
        assert get_log_level() == "ERROR"


class TestConfigureLogging:
    def test_json_in_production(self, restore_logging, set_env):
        set_env(PROTEAN_ENV="production")
        configure_logging()

        assert logging.getLogger().level == logging.INFO
        processors = structlog.get_config()["processors"]
        assert isinstance(processors[-1], structlog.processors.JSONRenderer)

    def test_console_in_development(self, restore_logging, set_env):
        set_env(PROTEAN_ENV="development")
        configure_logging()

        assert logging.getLogger().level == logging.DEBUG
        processors = structlog.get_config()["processors"]
        assert isinstance(processors[-1], structlog.dev.ConsoleRenderer)

    def test_framework_loggers_are_quiet(self, restore_logging, set_env):
        set_env(PROTEAN_ENV="development")
        configure_logging()
        assert logging.getLogger("protean").level == logging.WARNING

    def test_context_helpers(self, restore_logging):
        add_context(cart_id="cart-1")
        assert structlog.contextvars.get_contextvars() == {"cart_id": "cart-1"}

        clear_context()
        assert structlog.contextvars.get_contextvars() == {}
