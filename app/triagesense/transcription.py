"""Audio transcription with a dedicated language-identification pass."""

from __future__ import annotations

import re
from typing import Any

from triagesense.config import Settings
from triagesense.contract import parse_language, parse_transcription
from triagesense.errors import EmptyTranscript, InputValidationError
from triagesense.gemini import ModelCallChain
from triagesense.languages import BASELINE_LANGUAGE, infer_language_from_script
from triagesense.prompts import build_language_detection_prompt, build_transcription_prompt
from triagesense.schemas import AudioPayload, Enrichment, GenerationRequest, InlineAttachment, TranscriptionResult

_AUDIO_MIME = re.compile(r"^audio/[a-z0-9.+-]+$")


def normalize_audio(audio: AudioPayload) -> InlineAttachment:
    """Validate the base MIME type; codec parameters after ``;`` are dropped."""
    raw_mime = (audio.mime_type or "").strip().lower()
    mime_type = raw_mime.split(";", 1)[0].strip()
    if not _AUDIO_MIME.match(mime_type):
        raise InputValidationError("audioMimeType must be a valid audio MIME type")

    data = (audio.data or "").strip()
    if data.startswith("data:") and "," in data:
        _, _, data = data.partition(",")
        data = data.strip()
    if not data:
        raise InputValidationError("audioData must be non-empty")
    return InlineAttachment(mime_type=mime_type, data=data)


class TranscriptionPipeline:
    def __init__(self, chain: ModelCallChain, settings: Settings):
        self._chain = chain
        self._settings = settings

    async def transcribe(self, audio: AudioPayload) -> TranscriptionResult:
        result, _meta = await self.transcribe_with_meta(audio)
        return result

    async def transcribe_with_meta(self, audio: AudioPayload) -> tuple[TranscriptionResult, dict[str, Any]]:
        attachment = normalize_audio(audio)

        outcome = await self._chain.run(
            self._settings.vision_models,
            GenerationRequest(
                prompt=build_transcription_prompt(),
                attachment=attachment,
                temperature=self._settings.transcription_temperature,
                json_mode=True,
                task="transcription",
            ),
        )
        text, language = parse_transcription(outcome.text)
        if not text:
            raise EmptyTranscript(f"model {outcome.model} returned a blank transcript")
        language_source = "transcription"

        detection = await self._detect_language(attachment)
        if detection.ok and detection.value:
            language = detection.value
            language_source = "detection"

        if language == BASELINE_LANGUAGE:
            scripted = infer_language_from_script(text)
            if scripted is not None:
                language = scripted
                language_source = "script"

        result = TranscriptionResult(symptoms_text=text, language_code=language)
        return result, {
            "model": outcome.model,
            "language_source": language_source,
            "language_detection": detection,
        }

    async def _detect_language(self, attachment: InlineAttachment) -> Enrichment[str]:
        try:
            outcome = await self._chain.run(
                self._settings.vision_models,
                GenerationRequest(
                    prompt=build_language_detection_prompt(),
                    attachment=attachment,
                    temperature=0.0,
                    json_mode=True,
                    task="language_detection",
                ),
            )
            return Enrichment.succeeded(parse_language(outcome.text))
        except Exception as exc:
            print(f"[triagesense] language_detection_fallback: {type(exc).__name__}: {exc}")
            return Enrichment.failed(f"{type(exc).__name__}: {exc}")
