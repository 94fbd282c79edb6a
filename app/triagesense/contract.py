"""Extraction and validation of the JSON object embedded in model output.

Model text is expected to hold exactly one JSON object, possibly wrapped in prose
or code fences. Extraction is a two-step ladder: parse the whole text, then parse
the span between the first ``{`` and the last ``}``. Anything else fails closed
with ``MalformedResponse``; a parsed object that breaks its schema fails with
``InvalidContract`` naming the field.
"""

from __future__ import annotations

import json
import re
from typing import Any

from triagesense.errors import InvalidContract, MalformedResponse
from triagesense.languages import BASELINE_LANGUAGE, normalize_language_code
from triagesense.schemas import DiagnosisResult, TranslationPayload


def _strip_code_fences(text: str) -> str:
    cleaned = text.strip()
    if cleaned.startswith("```"):
        cleaned = re.sub(r"^```[a-zA-Z]*\n?", "", cleaned)
        cleaned = re.sub(r"\n?```$", "", cleaned)
    return cleaned.strip()


def extract_json_object(text: str | None) -> dict[str, Any]:
    body = _strip_code_fences(text or "")
    if not body:
        raise MalformedResponse("model returned no text")

    try:
        parsed = json.loads(body)
    except json.JSONDecodeError:
        parsed = None
    else:
        if isinstance(parsed, dict):
            return parsed

    start = body.find("{")
    end = body.rfind("}")
    if start != -1 and end != -1 and end > start:
        try:
            parsed = json.loads(body[start : end + 1])
        except json.JSONDecodeError as exc:
            raise MalformedResponse(f"embedded JSON object did not parse: {exc.msg}") from exc
        if isinstance(parsed, dict):
            return parsed

    snippet = body.replace("\n", " ")[:120]
    raise MalformedResponse(f"no JSON object found in model output: '{snippet}'")


def _require_text(payload: dict[str, Any], field: str) -> str:
    if field not in payload or payload[field] is None:
        raise InvalidContract(field, "missing")
    value = payload[field]
    if not isinstance(value, str):
        raise InvalidContract(field, f"expected string, got {type(value).__name__}")
    cleaned = value.strip()
    if not cleaned:
        raise InvalidContract(field, "empty")
    return cleaned


def _require_severity(payload: dict[str, Any]) -> int:
    if "severity" not in payload or payload["severity"] is None:
        raise InvalidContract("severity", "missing")
    raw = payload["severity"]
    if isinstance(raw, bool):
        raise InvalidContract("severity", "expected integer, got bool")
    if isinstance(raw, float) and raw.is_integer():
        raw = int(raw)
    elif isinstance(raw, str) and re.fullmatch(r"[0-9]+", raw.strip()):
        raw = int(raw.strip())
    if not isinstance(raw, int):
        raise InvalidContract("severity", f"expected integer, got {type(raw).__name__}")
    if raw not in (1, 2, 3):
        raise InvalidContract("severity", f"out of range: {raw}")
    return raw


def _language_or_default(payload: dict[str, Any], default: str) -> str:
    return normalize_language_code(payload.get("languageCode")) or default


def validate_diagnosis(payload: dict[str, Any], *, default_language: str = BASELINE_LANGUAGE) -> DiagnosisResult:
    condition = _require_text(payload, "condition")
    severity = _require_severity(payload)
    reasoning = _require_text(payload, "reasoning")
    return DiagnosisResult(
        condition=condition,
        severity=severity,
        reasoning=reasoning,
        language_code=_language_or_default(payload, default_language),
    )


def validate_transcription(
    payload: dict[str, Any],
    *,
    default_language: str = BASELINE_LANGUAGE,
) -> tuple[str, str]:
    """Return ``(text, language_code)``; blank text is left for the caller to judge."""
    if "symptomsText" not in payload or payload["symptomsText"] is None:
        raise InvalidContract("symptomsText", "missing")
    text = payload["symptomsText"]
    if not isinstance(text, str):
        raise InvalidContract("symptomsText", f"expected string, got {type(text).__name__}")
    return text.strip(), _language_or_default(payload, default_language)


def validate_translation(payload: dict[str, Any]) -> TranslationPayload:
    return TranslationPayload(
        condition=_require_text(payload, "condition"),
        reasoning=_require_text(payload, "reasoning"),
    )


def validate_language(payload: dict[str, Any]) -> str:
    raw = payload.get("languageCode")
    if raw is None:
        raise InvalidContract("languageCode", "missing")
    code = normalize_language_code(raw)
    if code is None:
        raise InvalidContract("languageCode", f"unsupported language: {raw!r}")
    return code


def parse_diagnosis(text: str | None, *, default_language: str = BASELINE_LANGUAGE) -> DiagnosisResult:
    return validate_diagnosis(extract_json_object(text), default_language=default_language)


def parse_transcription(text: str | None, *, default_language: str = BASELINE_LANGUAGE) -> tuple[str, str]:
    return validate_transcription(extract_json_object(text), default_language=default_language)


def parse_translation(text: str | None) -> TranslationPayload:
    return validate_translation(extract_json_object(text))


def parse_language(text: str | None) -> str:
    return validate_language(extract_json_object(text))
