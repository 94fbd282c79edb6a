"""Runtime settings for TriageSense services."""

from __future__ import annotations

import os
from dataclasses import dataclass, field

DEFAULT_TEXT_MODELS = (
    "gemini-2.5-flash",
    "gemini-2.0-flash",
    "gemini-1.5-flash",
)
DEFAULT_VISION_MODELS = (
    "gemini-2.5-flash",
    "gemini-2.0-flash",
    "gemini-1.5-pro",
)


def _first_env(*names: str) -> str | None:
    for name in names:
        value = os.getenv(name)
        if value:
            return value
    return None


def _model_list(value: str | None, default: tuple[str, ...]) -> tuple[str, ...]:
    if not value:
        return default
    models = tuple(dict.fromkeys(token.strip() for token in value.split(",") if token.strip()))
    return models or default


def _as_float(value: str | None, default: float) -> float:
    if value is None or not value.strip():
        return default
    return float(value)


@dataclass(frozen=True)
class Settings:
    app_name: str = field(default_factory=lambda: os.getenv("TRIAGESENSE_APP_NAME", "triagesense-api"))

    gemini_api_key: str | None = field(
        default_factory=lambda: _first_env(
            "GEMINI_API_KEY",
            "GOOGLE_API_KEY",
            "Gemini_API_Key",
            "gemini_api_key",
        )
    )
    gemini_base_url: str = field(
        default_factory=lambda: os.getenv(
            "TRIAGESENSE_GEMINI_BASE_URL",
            "https://generativelanguage.googleapis.com/v1beta",
        )
    )

    # Candidate order is fallback priority.
    text_models: tuple[str, ...] = field(
        default_factory=lambda: _model_list(os.getenv("GEMINI_TEXT_MODELS"), DEFAULT_TEXT_MODELS)
    )
    # Used for image and audio attachments.
    vision_models: tuple[str, ...] = field(
        default_factory=lambda: _model_list(os.getenv("GEMINI_VISION_MODELS"), DEFAULT_VISION_MODELS)
    )

    model_timeout_sec: float = field(
        default_factory=lambda: _as_float(os.getenv("TRIAGESENSE_MODEL_TIMEOUT_SEC"), 30.0)
    )
    diagnosis_temperature: float = 0.2
    transcription_temperature: float = 0.0

    # Wait-time scraping
    known_system_timeout_sec: float = field(
        default_factory=lambda: _as_float(os.getenv("TRIAGESENSE_KNOWN_SYSTEM_TIMEOUT_SEC"), 10.0)
    )
    site_timeout_sec: float = field(
        default_factory=lambda: _as_float(os.getenv("TRIAGESENSE_SITE_TIMEOUT_SEC"), 5.0)
    )
    scrape_cache_ttl_sec: float = field(
        default_factory=lambda: _as_float(os.getenv("TRIAGESENSE_SCRAPE_CACHE_TTL_SEC"), 300.0)
    )
    user_agent: str = field(
        default_factory=lambda: os.getenv("TRIAGESENSE_USER_AGENT", "TriageSense/1.0")
    )


def get_settings() -> Settings:
    return Settings()
