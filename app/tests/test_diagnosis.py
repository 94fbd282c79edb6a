import asyncio
import json

import pytest

from triagesense.config import Settings
from triagesense.diagnosis import DiagnosisPipeline, normalize_image
from triagesense.errors import (
    BackendFailureKind,
    InputValidationError,
    InvalidDiagnosisResponse,
    InvalidImage,
    ModelUnavailable,
    UnsafeInput,
    UpstreamError,
)
from triagesense.gemini import ModelCallOutcome
from triagesense.languages import SUPPORTED_LANGUAGES
from triagesense.schemas import DiagnosisRequest, ImagePayload


class ScriptedChain:
    """Answers each call by task label; exceptions are raised instead of returned."""

    def __init__(self, responses):
        self.responses = responses
        self.calls = []

    async def run(self, candidates, request):
        self.calls.append((tuple(candidates), request))
        value = self.responses[request.task]
        if isinstance(value, Exception):
            raise value
        return ModelCallOutcome(text=value, model=candidates[0], attempted=(candidates[0],))

    def tasks(self):
        return [request.task for _, request in self.calls]


def _settings() -> Settings:
    return Settings(
        gemini_api_key="test-key",
        text_models=("text-a", "text-b"),
        vision_models=("vision-a",),
    )


def _diagnosis_json(**overrides) -> str:
    payload = {
        "condition": "Tension headache",
        "severity": 1,
        "reasoning": "Stress-related headache pattern.",
        "languageCode": "en",
    }
    payload.update(overrides)
    return json.dumps(payload, ensure_ascii=False)


def _run(chain, **request):
    pipeline = DiagnosisPipeline(chain, _settings())
    return asyncio.run(pipeline.diagnose_with_meta(DiagnosisRequest(**request)))


def test_rejects_request_without_symptoms_or_image():
    chain = ScriptedChain({})
    with pytest.raises(InputValidationError):
        _run(chain, symptoms=["   ", ""])
    assert chain.calls == []


def test_rejects_non_string_symptoms():
    chain = ScriptedChain({})
    with pytest.raises(InputValidationError):
        _run(chain, symptoms=["headache", 123])
    assert chain.calls == []


def test_rejects_unsafe_input_before_calling_model():
    chain = ScriptedChain({})
    with pytest.raises(UnsafeInput) as excinfo:
        _run(chain, symptoms=["I want to self harm"])
    assert excinfo.value.status_code == 400
    assert chain.calls == []


def test_rejects_unsupported_language():
    chain = ScriptedChain({})
    with pytest.raises(InputValidationError):
        _run(chain, symptoms=["headache"], language_code="xx")
    assert chain.calls == []


def test_english_diagnosis_uses_text_models_and_skips_translation():
    chain = ScriptedChain({"diagnosis": _diagnosis_json()})
    result, meta = _run(chain, symptoms=["  headache ", "stress"])

    assert result.condition == "Tension headache"
    assert result.severity == 1
    assert result.language_code == "en"
    assert meta["translation"].status == "skipped"
    assert chain.tasks() == ["diagnosis"]

    candidates, request = chain.calls[0]
    assert candidates == ("text-a", "text-b")
    assert request.attachment is None
    assert "headache, stress" in request.prompt
    assert request.json_mode is True


def test_profile_is_embedded_in_prompt():
    chain = ScriptedChain({"diagnosis": _diagnosis_json()})
    _run(chain, symptoms=["cough"], profile={"age": 42, "gender": "female", "height": 170, "weight": 65})

    prompt = chain.calls[0][1].prompt
    assert "Age: 42" in prompt
    assert "Height: 170 cm" in prompt
    assert "Weight: 65 kg" in prompt


def test_image_only_request_uses_vision_models_and_data_url_mime():
    chain = ScriptedChain({"diagnosis": _diagnosis_json(condition="Contact dermatitis", severity=2)})
    result, meta = _run(
        chain,
        image={"data": "data:image/png;base64,iVBORw0KGgo=", "mime_type": "image/jpeg"},
    )

    assert result.condition == "Contact dermatitis"
    assert meta["has_image"] is True
    candidates, request = chain.calls[0]
    assert candidates == ("vision-a",)
    assert request.attachment.mime_type == "image/png"
    assert request.attachment.data == "iVBORw0KGgo="
    assert "no symptoms were typed" in request.prompt
    assert "image of the affected area is attached" in request.prompt


def test_normalize_image_rejects_non_image_mime():
    with pytest.raises(InputValidationError):
        normalize_image(ImagePayload(data="AAAA", mime_type="application/pdf"))


def test_requested_language_triggers_translation():
    chain = ScriptedChain(
        {
            "diagnosis": _diagnosis_json(condition="Cefalea tensional", languageCode="es"),
            "translation": '{"condition": "Cefalea tensional", "reasoning": "Patrón de cefalea por estrés."}',
        }
    )
    result, meta = _run(chain, symptoms=["dolor de cabeza"], language_code="es")

    assert result.language_code == "es"
    assert result.reasoning == "Patrón de cefalea por estrés."
    assert meta["translation"].status == "succeeded"
    assert chain.tasks() == ["diagnosis", "translation"]
    assert chain.calls[1][0] == ("text-a", "text-b")
    assert 'Set "languageCode" to "es"' in chain.calls[0][1].prompt


def test_detected_language_triggers_translation():
    chain = ScriptedChain(
        {
            "diagnosis": _diagnosis_json(languageCode="hi"),
            "translation": '{"condition": "तनाव सिरदर्द", "reasoning": "तनाव से जुड़ा सिरदर्द।"}',
        }
    )
    result, _meta = _run(chain, symptoms=["सिरदर्द"])

    assert result.language_code == "hi"
    assert result.condition == "तनाव सिरदर्द"


def test_translation_failure_keeps_original_text():
    chain = ScriptedChain(
        {
            "diagnosis": _diagnosis_json(),
            "translation": UpstreamError("503 from backend"),
        }
    )
    result, meta = _run(chain, symptoms=["headache"], language_code="fr")

    assert result.condition == "Tension headache"
    assert result.reasoning == "Stress-related headache pattern."
    assert result.language_code == "fr"
    assert meta["translation"].status == "failed"


def test_translation_with_empty_fields_keeps_original_text():
    chain = ScriptedChain(
        {
            "diagnosis": _diagnosis_json(),
            "translation": '{"condition": "", "reasoning": ""}',
        }
    )
    result, meta = _run(chain, symptoms=["headache"], language_code="de")

    assert result.condition == "Tension headache"
    assert meta["translation"].status == "failed"


@pytest.mark.parametrize(
    "raw",
    [
        "I think you have a cold.",
        _diagnosis_json(severity=7),
        _diagnosis_json(reasoning=""),
    ],
)
def test_invalid_model_output_is_classified(raw):
    chain = ScriptedChain({"diagnosis": raw})
    with pytest.raises(InvalidDiagnosisResponse) as excinfo:
        _run(chain, symptoms=["headache"])
    assert excinfo.value.retryable is True
    assert excinfo.value.status_code == 502


def test_rejected_image_maps_to_invalid_image():
    chain = ScriptedChain(
        {"diagnosis": UpstreamError("bad image", kind=BackendFailureKind.INVALID_INPUT, model="vision-a")}
    )
    with pytest.raises(InvalidImage) as excinfo:
        _run(chain, symptoms=["rash"], image={"data": "AAAA", "mime_type": "image/jpeg"})
    assert excinfo.value.retryable is False
    assert "image" in excinfo.value.public_message.lower()


def test_invalid_input_without_image_stays_upstream_error():
    chain = ScriptedChain({"diagnosis": UpstreamError("bad prompt", kind=BackendFailureKind.INVALID_INPUT)})
    with pytest.raises(UpstreamError):
        _run(chain, symptoms=["rash"])


def test_model_unavailable_propagates():
    chain = ScriptedChain({"diagnosis": ModelUnavailable(["text-a", "text-b"])})
    with pytest.raises(ModelUnavailable):
        _run(chain, symptoms=["rash"])


@pytest.mark.parametrize("severity", [1, 2, 3])
def test_returned_results_hold_invariants(severity):
    chain = ScriptedChain(
        {
            "diagnosis": _diagnosis_json(severity=severity, languageCode="pt-BR"),
            "translation": '{"condition": "Cefaleia", "reasoning": "Padrão de estresse."}',
        }
    )
    result, _meta = _run(chain, symptoms=["dor de cabeça"])

    assert result.severity in {1, 2, 3}
    assert result.condition and result.reasoning
    assert result.language_code in SUPPORTED_LANGUAGES
    assert result.language_code == "pt"
