"""HTTP entrypoint for the TriageSense orchestration API."""

from __future__ import annotations

from typing import Any

import httpx
from fastapi import Body, FastAPI, HTTPException
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from pydantic import ValidationError

from triagesense.config import Settings, get_settings
from triagesense.diagnosis import DiagnosisPipeline
from triagesense.errors import (
    EmptyTranscript,
    InputValidationError,
    InvalidImage,
    TriageServiceError,
    UnsafeInput,
)
from triagesense.gemini import build_call_chain
from triagesense.schemas import AudioPayload, DiagnosisRequest, WaitTimesRequest
from triagesense.transcription import TranscriptionPipeline
from triagesense.utils import elapsed_ms, now_ms, utc_now
from triagesense.waittimes import WaitTimeResolver


def _error_response(exc: TriageServiceError, error: str, route: str) -> JSONResponse:
    print(f"[triagesense] {route}_error: {type(exc).__name__} status={exc.status_code}: {exc}")
    return JSONResponse(status_code=exc.status_code, content=exc.to_payload(error))


def _validate(model: type, payload: dict[str, Any]) -> Any:
    try:
        return model.model_validate(payload)
    except ValidationError as exc:
        raise HTTPException(status_code=422, detail=exc.errors(include_url=False)) from exc


def create_app(
    settings: Settings | None = None,
    *,
    model_transport: httpx.AsyncBaseTransport | None = None,
    scrape_transport: httpx.AsyncBaseTransport | None = None,
) -> FastAPI:
    settings = settings or get_settings()
    chain = build_call_chain(settings, transport=model_transport)
    diagnosis = DiagnosisPipeline(chain, settings)
    transcription = TranscriptionPipeline(chain, settings)
    wait_times = WaitTimeResolver(settings, transport=scrape_transport)

    api = FastAPI(title="TriageSense API", version="1.0.0")
    api.add_middleware(
        CORSMiddleware,
        allow_origins=["*"],
        allow_credentials=False,
        allow_methods=["GET", "POST", "OPTIONS"],
        allow_headers=["*"],
    )

    @api.get("/health")
    async def health() -> dict[str, Any]:
        return {
            "status": "ok",
            "service": settings.app_name,
            "timestamp": utc_now().isoformat(),
            "gemini_key_configured": bool(settings.gemini_api_key),
            "text_models": list(settings.text_models),
            "vision_models": list(settings.vision_models),
            "scrape_cache_entries": len(wait_times.cache),
        }

    @api.post("/diagnose")
    async def diagnose(payload: dict[str, Any] = Body(...)):
        request = _validate(DiagnosisRequest, payload)
        started = now_ms()
        try:
            result, meta = await diagnosis.diagnose_with_meta(request)
        except UnsafeInput as exc:
            return _error_response(exc, "unsafe_input", "diagnose")
        except InputValidationError as exc:
            return _error_response(exc, "invalid_request", "diagnose")
        except InvalidImage as exc:
            return _error_response(exc, "invalid_image", "diagnose")
        except TriageServiceError as exc:
            return _error_response(exc, "llm_failure", "diagnose")
        print(
            f"[triagesense] diagnose_ok: model={meta['model']} translation={meta['translation'].status} "
            f"latency_ms={elapsed_ms(started)}"
        )
        return result.model_dump(by_alias=True)

    @api.post("/transcribe-audio")
    async def transcribe_audio(payload: dict[str, Any] = Body(...)):
        audio = _validate(AudioPayload, payload)
        started = now_ms()
        try:
            result, meta = await transcription.transcribe_with_meta(audio)
        except InputValidationError as exc:
            return _error_response(exc, "invalid_request", "transcribe")
        except EmptyTranscript as exc:
            return _error_response(exc, "empty_transcript", "transcribe")
        except TriageServiceError as exc:
            return _error_response(exc, "transcription_failure", "transcribe")
        print(
            f"[triagesense] transcribe_ok: model={meta['model']} language_source={meta['language_source']} "
            f"latency_ms={elapsed_ms(started)}"
        )
        return result.model_dump(by_alias=True)

    @api.post("/waittimes")
    async def resolve_wait_times(payload: dict[str, Any] = Body(...)):
        request = _validate(WaitTimesRequest, payload)
        facilities = [facility.model_dump() for facility in request.hospitals]
        enriched = await wait_times.resolve_batch(facilities)
        return {"status": "ok", "data": enriched}

    return api


app = create_app()
