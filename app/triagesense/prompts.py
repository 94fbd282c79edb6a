"""Prompt builders for the Gemini calls."""

from __future__ import annotations

import json

from triagesense.languages import BASELINE_LANGUAGE, SUPPORTED_LANGUAGES, language_label
from triagesense.schemas import UserProfile

_SUPPORTED_CODES = ", ".join(sorted(SUPPORTED_LANGUAGES))


def _profile_lines(profile: UserProfile | None) -> list[str]:
    if profile is None:
        return []
    lines: list[str] = []
    if profile.age is not None:
        lines.append(f"- Age: {profile.age}")
    if profile.gender:
        lines.append(f"- Gender: {profile.gender.strip()}")
    if profile.height_cm is not None:
        lines.append(f"- Height: {profile.height_cm:g} cm")
    if profile.weight_kg is not None:
        lines.append(f"- Weight: {profile.weight_kg:g} kg")
    return lines


def build_diagnosis_prompt(
    symptoms: list[str],
    *,
    has_image: bool,
    language_code: str | None,
    profile: UserProfile | None = None,
) -> str:
    symptom_text = ", ".join(symptoms) if symptoms else "(no symptoms were typed; rely on the attached image)"

    if has_image:
        image_rule = (
            "- An image of the affected area is attached. Use visible findings as evidence "
            "alongside the listed symptoms."
        )
    else:
        image_rule = "- No image is attached. Base the assessment on the listed symptoms only."

    if language_code:
        label = language_label(language_code)
        language_rule = (
            f"- Write condition and reasoning in {label}. "
            f'Set "languageCode" to "{language_code}".'
        )
    else:
        language_rule = (
            "- Detect the language the symptoms are written in, answer in that language and set "
            f'"languageCode" to its ISO 639-1 code (one of: {_SUPPORTED_CODES}). '
            f'If unsure, answer in English and use "{BASELINE_LANGUAGE}".'
        )

    profile_lines = _profile_lines(profile)
    profile_block = ""
    if profile_lines:
        profile_block = "\nPatient profile:\n" + "\n".join(profile_lines) + "\n"

    return (
        "You are a statistical medical triage assistant.\n\n"
        f"Given the user's symptoms: {symptom_text}\n"
        f"{profile_block}\n"
        "Your task:\n"
        "- Output ONLY strict JSON in this format:\n"
        "{\n"
        '  "condition": "...",\n'
        '  "severity": 1,\n'
        '  "reasoning": "...",\n'
        '  "languageCode": "en"\n'
        "}\n\n"
        "Rules:\n"
        "- No medical advice.\n"
        "- Only statistical likelihood.\n"
        "- Severity must be an integer: 1 = mild, 2 = moderate, 3 = severe.\n"
        "- Use severity 3 for dangerous symptoms (chest pain, fainting, stroke signs, severe bleeding, "
        "difficulty breathing).\n"
        f"{image_rule}\n"
        f"{language_rule}\n"
        "- Do NOT include markdown, code fences, or any text outside the JSON."
    )


def build_translation_prompt(condition: str, reasoning: str, language_code: str) -> str:
    payload = {"condition": condition, "reasoning": reasoning}
    return (
        f"Translate the values of this JSON object into {language_label(language_code)} "
        f"({language_code}). Keep medical meaning exact and do not add advice.\n"
        'Return ONLY JSON with keys "condition" and "reasoning".\n'
        f"Input:\n{json.dumps(payload, ensure_ascii=False)}"
    )


def build_transcription_prompt() -> str:
    return (
        "Transcribe the attached audio recording of a person describing their symptoms.\n"
        "Rules:\n"
        "- Transcribe verbatim in the original spoken language.\n"
        "- Do NOT translate. Keep the native script of the spoken language.\n"
        "- Do not summarise, correct or add words.\n"
        '- Return ONLY JSON: {"symptomsText": "...", "languageCode": "..."}\n'
        f'- "languageCode" is the ISO 639-1 code of the spoken language, one of: {_SUPPORTED_CODES}. '
        f'Use "{BASELINE_LANGUAGE}" if unsure.\n'
        '- If nothing intelligible is spoken, return an empty "symptomsText".'
    )


def build_language_detection_prompt() -> str:
    return (
        "Identify the language spoken in the attached audio recording.\n"
        f'Return ONLY JSON: {{"languageCode": "..."}} where the value is one of: {_SUPPORTED_CODES}.\n'
        "Judge by the spoken words, not by accent."
    )
