import json

import pytest

from triagesense.contract import (
    extract_json_object,
    parse_diagnosis,
    parse_language,
    parse_transcription,
    parse_translation,
)
from triagesense.errors import InvalidContract, MalformedResponse


def _diagnosis(**overrides):
    payload = {
        "condition": "tension headache",
        "severity": 1,
        "reasoning": "Common pattern for stress.",
        "languageCode": "en",
    }
    payload.update(overrides)
    return payload


def test_extract_json_object_direct_parse():
    payload = _diagnosis()
    assert extract_json_object(json.dumps(payload)) == payload


def test_extract_json_object_recovers_from_prose_and_code_fence():
    payload = _diagnosis(condition="migraine", severity=2)
    text = (
        "Sure! Here is the assessment you asked for:\n"
        "```json\n"
        f"{json.dumps(payload, indent=2)}\n"
        "```\n"
        "Let me know if you need anything else."
    )
    assert extract_json_object(text) == payload


def test_extract_json_object_strips_leading_code_fence():
    payload = _diagnosis()
    text = f"```json\n{json.dumps(payload)}\n```"
    assert extract_json_object(text) == payload


def test_extract_json_object_rejects_text_without_object():
    with pytest.raises(MalformedResponse):
        extract_json_object("I am not able to help with that.")


def test_extract_json_object_rejects_broken_embedded_object():
    with pytest.raises(MalformedResponse):
        extract_json_object('Result: {"condition": "flu", } trailing')


def test_extract_json_object_rejects_empty_text():
    with pytest.raises(MalformedResponse):
        extract_json_object("   ")
    with pytest.raises(MalformedResponse):
        extract_json_object(None)


@pytest.mark.parametrize("field", ["condition", "severity", "reasoning"])
def test_parse_diagnosis_names_missing_field(field):
    payload = _diagnosis()
    payload.pop(field)
    with pytest.raises(InvalidContract) as excinfo:
        parse_diagnosis(json.dumps(payload))
    assert excinfo.value.field == field
    assert field in str(excinfo.value)


def test_parse_diagnosis_rejects_blank_condition():
    with pytest.raises(InvalidContract) as excinfo:
        parse_diagnosis(json.dumps(_diagnosis(condition="   ")))
    assert excinfo.value.field == "condition"


@pytest.mark.parametrize("severity", [0, 4, -1, "high", True, 2.5, "²", " 2.0 "])
def test_parse_diagnosis_rejects_bad_severity(severity):
    with pytest.raises(InvalidContract) as excinfo:
        parse_diagnosis(json.dumps(_diagnosis(severity=severity)))
    assert excinfo.value.field == "severity"


def test_parse_diagnosis_accepts_integral_severity_forms():
    assert parse_diagnosis(json.dumps(_diagnosis(severity="3"))).severity == 3
    assert parse_diagnosis(json.dumps(_diagnosis(severity=2.0))).severity == 2


def test_parse_diagnosis_language_code_normalized_or_defaulted():
    assert parse_diagnosis(json.dumps(_diagnosis(languageCode="es-MX"))).language_code == "es"
    assert parse_diagnosis(json.dumps(_diagnosis(languageCode="xx"))).language_code == "en"

    payload = _diagnosis()
    payload.pop("languageCode")
    assert parse_diagnosis(json.dumps(payload), default_language="fr").language_code == "fr"


def test_parse_transcription_keeps_blank_text_for_caller():
    text, language = parse_transcription('{"symptomsText": "   ", "languageCode": "es"}')
    assert text == ""
    assert language == "es"


def test_parse_transcription_requires_text_field():
    with pytest.raises(InvalidContract) as excinfo:
        parse_transcription('{"languageCode": "es"}')
    assert excinfo.value.field == "symptomsText"


def test_parse_translation_requires_both_fields():
    with pytest.raises(InvalidContract) as excinfo:
        parse_translation('{"condition": "gripe", "reasoning": ""}')
    assert excinfo.value.field == "reasoning"

    translated = parse_translation('{"condition": "gripe", "reasoning": "Fiebre y tos."}')
    assert translated.condition == "gripe"


def test_parse_language_rejects_unsupported_code():
    assert parse_language('{"languageCode": "TE"}') == "te"
    with pytest.raises(InvalidContract) as excinfo:
        parse_language('{"languageCode": "klingon"}')
    assert excinfo.value.field == "languageCode"
