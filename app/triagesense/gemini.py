"""Gemini client: per-model handles and the candidate fallback chain."""

from __future__ import annotations

from dataclasses import dataclass
from typing import Any, Protocol, Sequence

import httpx

from triagesense.config import Settings
from triagesense.errors import BackendFailureKind, ConfigurationError, ModelUnavailable, UpstreamError
from triagesense.schemas import GenerationRequest

_NOT_FOUND_STATUSES = {"NOT_FOUND"}
_INVALID_INPUT_STATUSES = {"INVALID_ARGUMENT", "FAILED_PRECONDITION"}
_CREDENTIAL_STATUSES = {"UNAUTHENTICATED", "PERMISSION_DENIED"}


class BackendCallError(Exception):
    """A failed ``generateContent`` call, already classified."""

    def __init__(self, kind: BackendFailureKind, message: str, *, status_code: int | None = None):
        super().__init__(message)
        self.kind = kind
        self.status_code = status_code


def _error_status(response: httpx.Response) -> tuple[str, str]:
    try:
        payload = response.json()
    except ValueError:
        return "", response.text[:200]
    error = payload.get("error") if isinstance(payload, dict) else None
    if not isinstance(error, dict):
        return "", response.text[:200]
    return str(error.get("status") or "").upper(), str(error.get("message") or "")[:200]


def classify_failure(status_code: int, error_status: str = "") -> BackendFailureKind:
    if status_code == 404 or error_status in _NOT_FOUND_STATUSES:
        return BackendFailureKind.NOT_FOUND
    if status_code == 400 or error_status in _INVALID_INPUT_STATUSES:
        return BackendFailureKind.INVALID_INPUT
    return BackendFailureKind.TRANSIENT


def _response_text(data: Any) -> str:
    if not isinstance(data, dict):
        return ""
    candidates = data.get("candidates")
    if not isinstance(candidates, list) or not candidates or not isinstance(candidates[0], dict):
        return ""
    content = candidates[0].get("content")
    parts = content.get("parts") if isinstance(content, dict) else None
    if not isinstance(parts, list):
        return ""
    return "".join(str(p.get("text", "")) for p in parts if isinstance(p, dict)).strip()


class ModelHandle(Protocol):
    model_name: str

    async def generate(self, request: GenerationRequest) -> str: ...


class GeminiModelHandle:
    def __init__(
        self,
        model_name: str,
        settings: Settings,
        *,
        transport: httpx.AsyncBaseTransport | None = None,
    ):
        self.model_name = model_name
        self._settings = settings
        self._transport = transport

    @property
    def url(self) -> str:
        return f"{self._settings.gemini_base_url.rstrip('/')}/models/{self.model_name}:generateContent"

    @staticmethod
    def build_body(request: GenerationRequest) -> dict[str, Any]:
        parts: list[dict[str, Any]] = [{"text": request.prompt}]
        if request.attachment is not None:
            parts.append(
                {
                    "inline_data": {
                        "mime_type": request.attachment.mime_type,
                        "data": request.attachment.data,
                    }
                }
            )
        generation_config: dict[str, Any] = {"temperature": request.temperature}
        if request.json_mode:
            generation_config["responseMimeType"] = "application/json"
        return {
            "contents": [{"parts": parts}],
            "generationConfig": generation_config,
        }

    async def generate(self, request: GenerationRequest) -> str:
        body = self.build_body(request)
        try:
            async with httpx.AsyncClient(
                timeout=self._settings.model_timeout_sec,
                transport=self._transport,
            ) as client:
                response = await client.post(self.url, params={"key": self._settings.gemini_api_key}, json=body)
        except httpx.TimeoutException as exc:
            raise BackendCallError(
                BackendFailureKind.TRANSIENT,
                f"{self.model_name} timed out after {self._settings.model_timeout_sec}s",
            ) from exc
        except httpx.HTTPError as exc:
            raise BackendCallError(
                BackendFailureKind.TRANSIENT,
                f"{self.model_name} transport error: {type(exc).__name__}: {exc}",
            ) from exc

        if response.is_error:
            error_status, detail = _error_status(response)
            if response.status_code in {401, 403} or error_status in _CREDENTIAL_STATUSES:
                raise ConfigurationError(
                    f"Gemini rejected credentials for {self.model_name}: {response.status_code} {detail}"
                )
            raise BackendCallError(
                classify_failure(response.status_code, error_status),
                f"{self.model_name} returned {response.status_code} {error_status}: {detail}".strip(),
                status_code=response.status_code,
            )

        try:
            data = response.json()
        except ValueError as exc:
            raise BackendCallError(
                BackendFailureKind.TRANSIENT,
                f"{self.model_name} returned a non-JSON envelope",
                status_code=response.status_code,
            ) from exc
        return _response_text(data)


class ModelHandleFactory:
    """Builds and pools one handle per candidate model identifier."""

    def __init__(self, settings: Settings, *, transport: httpx.AsyncBaseTransport | None = None):
        self._settings = settings
        self._transport = transport
        self._handles: dict[str, ModelHandle] = {}

    def ensure_configured(self) -> None:
        if not self._settings.gemini_api_key:
            raise ConfigurationError("GEMINI_API_KEY is required")

    def handle_for(self, model_name: str) -> ModelHandle:
        handle = self._handles.get(model_name)
        if handle is None:
            handle = GeminiModelHandle(model_name, self._settings, transport=self._transport)
            self._handles[model_name] = handle
        return handle

    def discard(self, model_name: str) -> None:
        self._handles.pop(model_name, None)


@dataclass(frozen=True)
class ModelCallOutcome:
    text: str
    model: str
    attempted: tuple[str, ...]


class ModelCallChain:
    """Tries candidates in order, moving on only when a model is not found."""

    def __init__(self, factory: ModelHandleFactory):
        self._factory = factory

    async def run(self, candidates: Sequence[str], request: GenerationRequest) -> ModelCallOutcome:
        if not candidates:
            raise ConfigurationError("no candidate models configured")
        self._factory.ensure_configured()

        attempted: list[str] = []
        for model_name in candidates:
            attempted.append(model_name)
            handle = self._factory.handle_for(model_name)
            try:
                text = await handle.generate(request)
            except BackendCallError as exc:
                if exc.kind is BackendFailureKind.NOT_FOUND:
                    print(
                        f"[triagesense] gemini_model_retry: task={request.task} model={model_name} "
                        f"status={exc.status_code}; trying next candidate"
                    )
                    self._factory.discard(model_name)
                    continue
                print(f"[triagesense] gemini_call_failed: task={request.task} model={model_name} kind={exc.kind.value}: {exc}")
                raise UpstreamError(
                    str(exc),
                    kind=exc.kind,
                    model=model_name,
                    upstream_status=exc.status_code,
                ) from exc
            return ModelCallOutcome(text=text, model=model_name, attempted=tuple(attempted))

        print(f"[triagesense] gemini_candidates_exhausted: task={request.task} tried={','.join(attempted)}")
        raise ModelUnavailable(attempted)


def build_call_chain(settings: Settings, *, transport: httpx.AsyncBaseTransport | None = None) -> ModelCallChain:
    return ModelCallChain(ModelHandleFactory(settings, transport=transport))
