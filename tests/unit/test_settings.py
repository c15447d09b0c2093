import logging
from vitalis.config.logging_config import configure_logging
from vitalis.config.settings import DEFAULT_AI_API_URL, get_settings, load_settings, reset_settings


def test_defaults():
    settings = load_settings()
    assert settings.ai_api_url == DEFAULT_AI_API_URL
    assert settings.ai_temperature == 0.1
    assert settings.ai_max_tokens == 4000
    assert settings.ai_timeout_seconds == 120.0
    assert settings.ai_enabled is False


def test_legacy_key_variable(monkeypatch):
    monkeypatch.setenv("OPEN_ROUTER_API_KEY", "  legacy-key  ")
    monkeypatch.setenv("ENABLE_AI_ANALYSIS", "true")
    settings = load_settings()
    assert settings.ai_api_key == "legacy-key"
    assert settings.ai_enabled is True


def test_primary_key_wins(monkeypatch):
    monkeypatch.setenv("AI_API_KEY", "primary")
    monkeypatch.setenv("OPEN_ROUTER_API_KEY", "legacy")
    assert load_settings().ai_api_key == "primary"


def test_ai_disabled_flag(monkeypatch):
    monkeypatch.setenv("AI_API_KEY", "primary")
    monkeypatch.setenv("ENABLE_AI_ANALYSIS", "no")
    assert load_settings().ai_enabled is False


def test_settings_are_cached_until_reset(monkeypatch):
    first = get_settings()
    assert get_settings() is first

    monkeypatch.setenv("AI_MODEL", "other/model")
    reset_settings()
    assert get_settings().ai_model == "other/model"


def test_configure_logging():
    configure_logging("debug")
    assert logging.getLogger().level == logging.DEBUG
    assert logging.getLogger("httpx").level == logging.WARNING
    configure_logging("WARNING")
    assert logging.getLogger().level == logging.WARNING
