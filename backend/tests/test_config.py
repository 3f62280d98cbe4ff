from __future__ import annotations

import pytest

from niftyai.config import Settings, active_provider_key, get_settings


_CONFIG_VARS = (
    "ENVIRONMENT",
    "AI_PROVIDER",
    "API_KEY",
    "GEMINI_API_KEY",
    "PERPLEXITY_API_KEY",
    "FRONTEND_ORIGINS",
    "TICKER_INTERVAL_SECONDS",
    "TOAST_TTL_SECONDS",
    "DEFAULT_INDEX",
    "PORT",
)


@pytest.fixture(autouse=True)
def _clean_env(monkeypatch):
    for name in _CONFIG_VARS:
        monkeypatch.delenv(name, raising=False)
    get_settings.cache_clear()
    yield
    get_settings.cache_clear()


def test_defaults_select_gemini_without_key():
    settings = get_settings()
    assert settings.ai_provider == "gemini"
    assert settings.default_index == "NIFTY 50"
    assert settings.ticker_interval_seconds == 5.0
    assert settings.toast_ttl_seconds == 5.0
    assert active_provider_key(settings) == ""


def test_legacy_api_key_feeds_gemini(monkeypatch):
    monkeypatch.setenv("API_KEY", "legacy-key")
    assert get_settings().gemini_api_key == "legacy-key"

    get_settings.cache_clear()
    monkeypatch.setenv("GEMINI_API_KEY", "explicit-key")
    assert get_settings().gemini_api_key == "explicit-key"


def test_provider_name_is_normalised(monkeypatch):
    monkeypatch.setenv("AI_PROVIDER", "  Perplexity ")
    monkeypatch.setenv("PERPLEXITY_API_KEY", "pplx")
    settings = get_settings()
    assert settings.ai_provider == "perplexity"
    assert active_provider_key(settings) == "pplx"


def test_unknown_provider_is_rejected(monkeypatch):
    monkeypatch.setenv("AI_PROVIDER", "openai")
    with pytest.raises(RuntimeError, match="Unsupported AI_PROVIDER"):
        get_settings()


def test_production_requires_active_provider_key(monkeypatch):
    monkeypatch.setenv("ENVIRONMENT", "production")
    with pytest.raises(RuntimeError, match="GEMINI_API_KEY"):
        get_settings()

    get_settings.cache_clear()
    monkeypatch.setenv("GEMINI_API_KEY", "prod-key")
    assert get_settings().environment == "production"


def test_invalid_origins_are_rejected(monkeypatch):
    monkeypatch.setenv("FRONTEND_ORIGINS", "http://localhost:5173,not-a-url")
    with pytest.raises(RuntimeError, match="not-a-url"):
        get_settings()


def test_origins_accept_json_lists(monkeypatch):
    monkeypatch.setenv("FRONTEND_ORIGINS", '["https://trader.example.in"]')
    assert get_settings().frontend_origins == ["https://trader.example.in"]


def test_non_positive_intervals_are_rejected(monkeypatch):
    monkeypatch.setenv("TICKER_INTERVAL_SECONDS", "0")
    with pytest.raises(RuntimeError, match="TICKER_INTERVAL_SECONDS"):
        get_settings()


def test_unparseable_numbers_fall_back_to_defaults(monkeypatch):
    monkeypatch.setenv("TOAST_TTL_SECONDS", "soon")
    assert get_settings().toast_ttl_seconds == 5.0


def test_active_provider_key_follows_provider():
    settings = Settings(gemini_api_key="g", perplexity_api_key="p")
    assert active_provider_key(settings) == "g"
    settings.ai_provider = "perplexity"
    assert active_provider_key(settings) == "p"


def test_unknown_default_index_is_rejected(monkeypatch):
    monkeypatch.setenv("DEFAULT_INDEX", "SENSEX")
    with pytest.raises(RuntimeError, match="DEFAULT_INDEX"):
        get_settings()


def test_default_index_accepts_member_names(monkeypatch):
    monkeypatch.setenv("DEFAULT_INDEX", "BANK_NIFTY")
    monkeypatch.setenv("PORT", "9100")
    settings = get_settings()
    assert settings.default_index == "BANK_NIFTY"
    assert settings.port == 9100
