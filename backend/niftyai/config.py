from __future__ import annotations

import json
import os
from dataclasses import dataclass, field
from functools import lru_cache
from pathlib import Path
from typing import List
from urllib.parse import urlparse

from niftyai.schemas import MarketIndex

SUPPORTED_AI_PROVIDERS = {"gemini", "perplexity"}


def _load_dotenv(path: str = ".env") -> None:
    candidates = [Path(path)]
    resolved = Path(__file__).resolve()
    for parent in resolved.parents:
        candidates.append(parent / ".env")
    seen: set[Path] = set()
    for env_path in candidates:
        if env_path in seen or not env_path.exists():
            continue
        seen.add(env_path)
        for raw in env_path.read_text(encoding="utf-8").splitlines():
            line = raw.strip()
            if not line or line.startswith("#") or "=" not in line:
                continue
            key, value = line.split("=", 1)
            key = key.strip()
            value = value.strip().strip('"').strip("'")
            os.environ.setdefault(key, value)


def _env(name: str, default: str = "") -> str:
    return os.getenv(name, default)


def _env_int(name: str, default: int) -> int:
    raw = os.getenv(name)
    if raw is None:
        return default
    try:
        return int(raw)
    except ValueError:
        return default


def _env_float(name: str, default: float) -> float:
    raw = os.getenv(name)
    if raw is None:
        return default
    try:
        return float(raw)
    except ValueError:
        return default


def _env_list(name: str, default: List[str]) -> List[str]:
    raw = os.getenv(name)
    if not raw:
        return default
    try:
        parsed = json.loads(raw)
        if isinstance(parsed, list):
            return [str(item) for item in parsed]
    except json.JSONDecodeError:
        pass
    return [token.strip() for token in raw.split(",") if token.strip()] or default


@dataclass
class Settings:
    app_name: str = "NiftyAI Live Trader"
    environment: str = "development"
    log_level: str = "INFO"
    host: str = "0.0.0.0"
    port: int = 8000

    frontend_origins: List[str] = field(default_factory=lambda: ["http://localhost:5173", "http://localhost:3000"])

    ai_provider: str = "gemini"
    ai_timeout_seconds: int = 60
    ai_temperature: float = 0.2

    gemini_api_key: str = ""
    gemini_model: str = "gemini-2.5-flash"
    gemini_api_url: str = "https://generativelanguage.googleapis.com/v1beta"

    perplexity_api_key: str = ""
    perplexity_model: str = "sonar"
    perplexity_api_url: str = "https://api.perplexity.ai"

    default_index: str = "NIFTY 50"
    ticker_interval_seconds: float = 5.0
    ticker_volatility: float = 0.0015
    toast_ttl_seconds: float = 5.0


def _is_http_url(value: str) -> bool:
    parsed = urlparse(value.strip())
    return parsed.scheme in {"http", "https"} and bool(parsed.netloc)


def active_provider_key(settings: Settings) -> str:
    if settings.ai_provider == "perplexity":
        return settings.perplexity_api_key
    return settings.gemini_api_key


def _validate_settings(settings: Settings) -> None:
    if settings.ai_provider not in SUPPORTED_AI_PROVIDERS:
        raise RuntimeError(
            f"Unsupported AI_PROVIDER '{settings.ai_provider}'. Expected one of: {', '.join(sorted(SUPPORTED_AI_PROVIDERS))}"
        )

    if settings.environment.lower() == "production" and not active_provider_key(settings).strip():
        name = "PERPLEXITY_API_KEY" if settings.ai_provider == "perplexity" else "GEMINI_API_KEY"
        raise RuntimeError(f"Missing required production environment variable: {name}")

    invalid_origins = [origin for origin in settings.frontend_origins if not _is_http_url(origin)]
    if invalid_origins:
        raise RuntimeError(f"Invalid FRONTEND_ORIGINS entries: {', '.join(invalid_origins)}")

    try:
        MarketIndex.parse(settings.default_index)
    except ValueError as exc:
        choices = ", ".join(index.value for index in MarketIndex)
        raise RuntimeError(f"Invalid DEFAULT_INDEX '{settings.default_index}'. Expected one of: {choices}") from exc

    if settings.ticker_interval_seconds <= 0:
        raise RuntimeError("TICKER_INTERVAL_SECONDS must be positive.")
    if settings.toast_ttl_seconds <= 0:
        raise RuntimeError("TOAST_TTL_SECONDS must be positive.")


@lru_cache(maxsize=1)
def get_settings() -> Settings:
    _load_dotenv()
    settings = Settings(
        app_name=_env("APP_NAME", "NiftyAI Live Trader"),
        environment=_env("ENVIRONMENT", "development"),
        log_level=_env("LOG_LEVEL", "INFO"),
        host=_env("HOST", "0.0.0.0"),
        port=_env_int("PORT", 8000),
        frontend_origins=_env_list("FRONTEND_ORIGINS", ["http://localhost:5173", "http://localhost:3000"]),
        ai_provider=_env("AI_PROVIDER", "gemini").strip().lower(),
        ai_timeout_seconds=_env_int("AI_TIMEOUT_SECONDS", 60),
        ai_temperature=_env_float("AI_TEMPERATURE", 0.2),
        gemini_api_key=_env("GEMINI_API_KEY") or _env("API_KEY"),
        gemini_model=_env("GEMINI_MODEL", "gemini-2.5-flash"),
        gemini_api_url=_env("GEMINI_API_URL", "https://generativelanguage.googleapis.com/v1beta"),
        perplexity_api_key=_env("PERPLEXITY_API_KEY"),
        perplexity_model=_env("PERPLEXITY_MODEL", "sonar"),
        perplexity_api_url=_env("PERPLEXITY_API_URL", "https://api.perplexity.ai"),
        default_index=_env("DEFAULT_INDEX", "NIFTY 50"),
        ticker_interval_seconds=_env_float("TICKER_INTERVAL_SECONDS", 5.0),
        ticker_volatility=_env_float("TICKER_VOLATILITY", 0.0015),
        toast_ttl_seconds=_env_float("TOAST_TTL_SECONDS", 5.0),
    )
    _validate_settings(settings)
    return settings
