"""Tests for settings and logging setup."""

import io
import logging

from canvasmap.config import Settings, get_settings
from canvasmap.logger import configure_logging


def test_settings_defaults(monkeypatch):
    for name in ("CANVASMAP_SUPABASE_URL", "CANVASMAP_SUPABASE_KEY", "CANVASMAP_OPENAI_MODEL"):
        monkeypatch.delenv(name, raising=False)
    settings = Settings(_env_file=None)

    assert settings.mappings_table == "mappings"
    assert settings.openai_model == "gpt-4.1-2025-04-14"
    assert not settings.has_supabase


def test_settings_from_env(monkeypatch):
    monkeypatch.setenv("CANVASMAP_SUPABASE_URL", "https://example.supabase.co")
    monkeypatch.setenv("CANVASMAP_SUPABASE_KEY", "anon-key")
    monkeypatch.setenv("CANVASMAP_OPENAI_TEMPERATURE", "0.7")

    settings = get_settings()
    assert settings.has_supabase
    assert settings.openai_temperature == 0.7
    assert get_settings() is settings


def test_configure_logging_format():
    stream = io.StringIO()
    configure_logging("warning", stream=stream)

    logging.getLogger("canvasmap.test").warning("hello")
    logging.getLogger("canvasmap.test").info("hidden")

    line = stream.getvalue().strip()
    assert line.endswith(" - canvasmap.test - WARNING - hello")
    assert "hidden" not in stream.getvalue()


def test_configure_logging_unknown_level_defaults_to_info():
    stream = io.StringIO()
    configure_logging("chatty", stream=stream)
    assert logging.getLogger().level == logging.INFO
