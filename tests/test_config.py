"""Tests for environment-driven engine settings and logging setup."""

import logging

import pytest
from pydantic import ValidationError

from promotion_engine.commands.expression import ExpressionCommand
from promotion_engine.config import EngineSettings, get_settings, override_settings
from promotion_engine.utils.logging import configure_logging


def test_defaults():
    settings = EngineSettings()
    assert settings.default_timeout_seconds == 30.0
    assert settings.default_validity_days == 30
    assert settings.db_echo is False


def test_from_env(monkeypatch):
    monkeypatch.setenv("PROMO_DEFAULT_TIMEOUT_SECONDS", "2.5")
    monkeypatch.setenv("PROMO_DEFAULT_VALIDITY_DAYS", "7")
    monkeypatch.setenv("PROMO_DB_ECHO", "true")
    monkeypatch.setenv("PROMO_LOG_LEVEL", "debug")
    settings = EngineSettings.from_env()
    assert settings.default_timeout_seconds == 2.5
    assert settings.default_validity_days == 7
    assert settings.db_echo is True
    assert settings.log_level == "DEBUG"
    assert settings.log_dir is None


def test_invalid_timeout_rejected(monkeypatch):
    monkeypatch.setenv("PROMO_DEFAULT_TIMEOUT_SECONDS", "0")
    with pytest.raises(ValidationError):
        EngineSettings.from_env()


def test_settings_read_lazily_from_env(monkeypatch):
    monkeypatch.setenv("PROMO_DEFAULT_VALIDITY_DAYS", "12")
    override_settings(None)
    assert get_settings().default_validity_days == 12
    assert get_settings() is get_settings()


def test_node_validity_default_follows_settings(make_config, context):
    override_settings(EngineSettings(default_validity_days=3))
    promo = ExpressionCommand(make_config("calculation", "expression", "5")).execute(context).payload
    days = (promo.valid_until - context.get("evaluationTime")).days
    assert days in (2, 3)


@pytest.fixture
def restore_logging():
    root = logging.getLogger()
    engine_logger = logging.getLogger("promotion_engine")
    saved = (list(root.handlers), root.level, engine_logger.level)
    yield
    for handler in list(root.handlers):
        root.removeHandler(handler)
        if handler not in saved[0]:
            handler.close()
    for handler in saved[0]:
        root.addHandler(handler)
    root.setLevel(saved[1])
    engine_logger.setLevel(saved[2])


def test_configure_logging_writes_file(tmp_path, restore_logging):
    configure_logging(level="DEBUG", log_dir=str(tmp_path), log_to_console=False)
    logging.getLogger("promotion_engine.tests").info("hello from the engine")
    for handler in logging.getLogger().handlers:
        handler.flush()
    assert "hello from the engine" in (tmp_path / "promotion_engine.log").read_text(encoding="utf-8")


def test_configure_logging_defaults_from_settings(tmp_path, restore_logging):
    override_settings(EngineSettings(log_level="DEBUG", log_dir=str(tmp_path / "engine-logs")))
    configure_logging(log_to_console=False)
    assert logging.getLogger("promotion_engine").level == logging.DEBUG
    logging.getLogger("promotion_engine.tests").debug("debug line from settings")
    for handler in logging.getLogger().handlers:
        handler.flush()
    log_file = tmp_path / "engine-logs" / "promotion_engine.log"
    assert "debug line from settings" in log_file.read_text(encoding="utf-8")
