"""Supported output languages and script-based language hints."""

from __future__ import annotations

import re

BASELINE_LANGUAGE = "en"

LANGUAGE_LABELS = {
    "en": "English",
    "es": "Spanish",
    "fr": "French",
    "de": "German",
    "it": "Italian",
    "pt": "Portuguese",
    "pl": "Polish",
    "hi": "Hindi",
    "ar": "Arabic",
    "zh": "Chinese",
    "ja": "Japanese",
    "ko": "Korean",
    "nl": "Dutch",
    "ru": "Russian",
    "sv": "Swedish",
    "tr": "Turkish",
    "uk": "Ukrainian",
    "vi": "Vietnamese",
    "id": "Indonesian",
    "fil": "Filipino",
    "ta": "Tamil",
    "te": "Telugu",
    "cs": "Czech",
    "da": "Danish",
    "fi": "Finnish",
    "el": "Greek",
    "hu": "Hungarian",
    "no": "Norwegian",
    "ro": "Romanian",
    "sk": "Slovak",
}

SUPPORTED_LANGUAGES = frozenset(LANGUAGE_LABELS)

# Checked in order; Telugu and Tamil before Devanagari so mixed text keeps the rarer script,
# kana before Han so Japanese with kanji is not read as Chinese.
_SCRIPT_PATTERNS: tuple[tuple[str, re.Pattern[str]], ...] = (
    ("te", re.compile(r"[\u0C00-\u0C7F]")),
    ("ta", re.compile(r"[\u0B80-\u0BFF]")),
    ("hi", re.compile(r"[\u0900-\u097F]")),
    ("ar", re.compile(r"[\u0600-\u06FF]")),
    ("ja", re.compile(r"[\u3040-\u30FF]")),
    ("zh", re.compile(r"[\u4E00-\u9FFF]")),
    ("ko", re.compile(r"[\uAC00-\uD7AF]")),
)


def normalize_language_code(value: object) -> str | None:
    """Return the supported code for ``value`` (``"en-US"`` -> ``"en"``), else None."""
    if not isinstance(value, str):
        return None
    token = value.strip().lower().replace("_", "-")
    if not token:
        return None
    if token in SUPPORTED_LANGUAGES:
        return token
    primary = token.split("-", 1)[0]
    if primary in SUPPORTED_LANGUAGES:
        return primary
    if primary == "tl":
        return "fil"
    if primary == "nb" or primary == "nn":
        return "no"
    return None


def is_supported(code: str | None) -> bool:
    return code in SUPPORTED_LANGUAGES


def language_label(code: str) -> str:
    return LANGUAGE_LABELS.get(code, code)


def infer_language_from_script(text: str) -> str | None:
    value = str(text or "")
    for code, pattern in _SCRIPT_PATTERNS:
        if pattern.search(value):
            return code
    return None
