"""Tests for logging configuration helpers."""

import logging

import structlog

from ordering.utils.logging import (
    configure_logging,
    current_environment,
    get_log_level,
    log_context,
    redact_secrets,
)


class TestLogLevel:
    def test_level_follows_environment(self, monkeypatch):
        monkeypatch.delenv("LOG_LEVEL", raising=False)
        monkeypatch.setenv("ENVIRONMENT", "production")
        assert get_log_level() == "INFO"

        monkeypatch.setenv("ENVIRONMENT", "development")
        assert get_log_level() == "DEBUG"

    def test_protean_env_used_when_environment_unset(self, monkeypatch):
        monkeypatch.delenv("ENVIRONMENT", raising=False)
        monkeypatch.setenv("PROTEAN_ENV", "Test")
        assert current_environment() == "test"

    def test_explicit_level_wins(self, monkeypatch):
        monkeypatch.setenv("ENVIRONMENT", "production")
        monkeypatch.setenv("LOG_LEVEL", "debug")
        assert get_log_level() == "DEBUG"


class TestRedaction:
    def test_secret_keys_are_masked(self):
        event = redact_secrets(None, "info", {"event": "x", "signature": "t=1,v1=abc", "api_key": "sk_live"})
        assert event == {"event": "x", "signature": "***", "api_key": "***"}

    def test_other_keys_untouched(self):
        event = redact_secrets(None, "info", {"event": "x", "order_id": "42"})
        assert event == {"event": "x", "order_id": "42"}


class TestLogContext:
    def test_values_bound_only_inside_block(self):
        structlog.contextvars.clear_contextvars()
        with log_context(event_id="evt_1"):
            assert structlog.contextvars.get_contextvars() == {"event_id": "evt_1"}
        assert structlog.contextvars.get_contextvars() == {}

    def test_values_unbound_when_block_raises(self):
        structlog.contextvars.clear_contextvars()
        try:
            with log_context(event_id="evt_1"):
                raise RuntimeError("boom")
        except RuntimeError:
            pass
        assert structlog.contextvars.get_contextvars() == {}


def test_configure_logging_writes_files(tmp_path, monkeypatch):
    monkeypatch.setenv("LOG_LEVEL", "INFO")
    root = logging.getLogger()
    saved = root.handlers[:], root.level
    try:
        configure_logging(log_dir=str(tmp_path), log_file_prefix="sweeper")
        assert len(root.handlers) == 3
        assert (tmp_path / "sweeper.log").exists()
        assert (tmp_path / "sweeper_error.log").exists()
        assert logging.getLogger("stripe").level == logging.WARNING
    finally:
        for handler in root.handlers:
            handler.close()
        root.handlers, level = saved
        root.setLevel(level)
        structlog.reset_defaults()
