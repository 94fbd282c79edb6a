"""Symptom/image diagnosis pipeline."""

from __future__ import annotations

import re
from typing import Any

from triagesense.config import Settings
from triagesense.contract import parse_diagnosis, parse_translation
from triagesense.errors import (
    BackendFailureKind,
    InputValidationError,
    InvalidContract,
    InvalidDiagnosisResponse,
    InvalidImage,
    MalformedResponse,
    UnsafeInput,
    UpstreamError,
)
from triagesense.gemini import ModelCallChain
from triagesense.languages import BASELINE_LANGUAGE, normalize_language_code
from triagesense.prompts import build_diagnosis_prompt, build_translation_prompt
from triagesense.schemas import (
    DiagnosisRequest,
    DiagnosisResult,
    Enrichment,
    GenerationRequest,
    ImagePayload,
    InlineAttachment,
    TranslationPayload,
)

_UNSAFE_PATTERNS = (
    re.compile(r"self[- ]?harm", re.IGNORECASE),
    re.compile(r"suicid", re.IGNORECASE),
    re.compile(r"kill\s+myself", re.IGNORECASE),
    re.compile(r"end\s+my\s+life", re.IGNORECASE),
    re.compile(r"hurt\s+myself", re.IGNORECASE),
)

_IMAGE_MIME = re.compile(r"^image/[a-z0-9.+-]+$")


def normalize_symptoms(raw: list[Any]) -> list[str]:
    symptoms: list[str] = []
    for item in raw:
        if not isinstance(item, str):
            raise InputValidationError("symptoms must contain only strings")
        cleaned = " ".join(item.split())
        if cleaned:
            symptoms.append(cleaned)
    return symptoms


def is_unsafe_input(symptoms: list[str]) -> bool:
    text = " ".join(symptoms)
    return any(pattern.search(text) for pattern in _UNSAFE_PATTERNS)


def normalize_image(image: ImagePayload) -> InlineAttachment:
    """Strip a data-URL prefix; its embedded MIME type wins over the declared one."""
    data = image.data.strip()
    mime_type = image.mime_type.strip().lower()
    if data.startswith("data:") and "," in data:
        header, _, data = data.partition(",")
        embedded = header[len("data:") :].split(";", 1)[0].strip().lower()
        if embedded:
            mime_type = embedded
    mime_type = mime_type.split(";", 1)[0].strip()
    if not _IMAGE_MIME.match(mime_type):
        raise InputValidationError("image mime type must be a valid image MIME type")
    data = data.strip()
    if not data:
        raise InputValidationError("image data must be non-empty")
    return InlineAttachment(mime_type=mime_type, data=data)


class DiagnosisPipeline:
    def __init__(self, chain: ModelCallChain, settings: Settings):
        self._chain = chain
        self._settings = settings

    async def diagnose(self, request: DiagnosisRequest) -> DiagnosisResult:
        result, _meta = await self.diagnose_with_meta(request)
        return result

    async def diagnose_with_meta(self, request: DiagnosisRequest) -> tuple[DiagnosisResult, dict[str, Any]]:
        symptoms = normalize_symptoms(request.symptoms)
        if not symptoms and request.image is None:
            raise InputValidationError("symptoms or image required")
        if is_unsafe_input(symptoms):
            raise UnsafeInput()

        requested_language: str | None = None
        if request.language_code is not None:
            requested_language = normalize_language_code(request.language_code)
            if requested_language is None:
                raise InputValidationError(f"unsupported languageCode: {request.language_code}")

        attachment = normalize_image(request.image) if request.image is not None else None

        prompt = build_diagnosis_prompt(
            symptoms,
            has_image=attachment is not None,
            language_code=requested_language,
            profile=request.profile,
        )
        generation = GenerationRequest(
            prompt=prompt,
            attachment=attachment,
            temperature=self._settings.diagnosis_temperature,
            json_mode=True,
            task="diagnosis",
        )
        candidates = self._settings.vision_models if attachment is not None else self._settings.text_models

        try:
            outcome = await self._chain.run(candidates, generation)
        except UpstreamError as exc:
            if attachment is not None and exc.kind is BackendFailureKind.INVALID_INPUT:
                raise InvalidImage(str(exc)) from exc
            raise

        try:
            result = parse_diagnosis(outcome.text, default_language=requested_language or BASELINE_LANGUAGE)
        except (MalformedResponse, InvalidContract) as exc:
            print(f"[triagesense] diagnosis_contract_failed: model={outcome.model}: {exc}")
            raise InvalidDiagnosisResponse(f"diagnosis response rejected: {exc}") from exc

        target_language = requested_language or result.language_code
        translation: Enrichment[TranslationPayload] = Enrichment.skipped()
        if target_language != BASELINE_LANGUAGE:
            translation = await self._translate(result, target_language)
        if translation.ok and translation.value is not None:
            result = result.model_copy(
                update={
                    "condition": translation.value.condition,
                    "reasoning": translation.value.reasoning,
                }
            )
        result = result.model_copy(update={"language_code": target_language})

        return result, {
            "model": outcome.model,
            "attempted_models": list(outcome.attempted),
            "has_image": attachment is not None,
            "translation": translation,
        }

    async def _translate(self, result: DiagnosisResult, language_code: str) -> Enrichment[TranslationPayload]:
        generation = GenerationRequest(
            prompt=build_translation_prompt(result.condition, result.reasoning, language_code),
            temperature=self._settings.diagnosis_temperature,
            json_mode=True,
            task="translation",
        )
        try:
            outcome = await self._chain.run(self._settings.text_models, generation)
            return Enrichment.succeeded(parse_translation(outcome.text))
        except Exception as exc:
            print(f"[triagesense] translation_fallback: lang={language_code} {type(exc).__name__}: {exc}")
            return Enrichment.failed(f"{type(exc).__name__}: {exc}")
