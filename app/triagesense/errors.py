"""Classified failures raised by the orchestration layer.

Every error carries two messages: the internal one (``str(exc)``) for logs and a
``public_message`` that is safe to hand back to an API caller. ``status_code`` and
``retryable`` tell the HTTP surface how to present the failure; nothing in this
package retries on the caller's behalf.
"""

from __future__ import annotations

from enum import Enum


class BackendFailureKind(str, Enum):
    """How the generative backend failed, decided once where the call is made."""

    NOT_FOUND = "not_found"
    INVALID_INPUT = "invalid_input"
    TRANSIENT = "transient"


class TriageServiceError(Exception):
    default_public_message = "Service temporarily unavailable"
    default_status_code = 503
    default_retryable = True

    def __init__(
        self,
        message: str,
        *,
        public_message: str | None = None,
        status_code: int | None = None,
        retryable: bool | None = None,
    ):
        super().__init__(message)
        self.public_message = public_message or self.default_public_message
        self.status_code = status_code or self.default_status_code
        self.retryable = self.default_retryable if retryable is None else retryable

    def to_payload(self, error: str) -> dict[str, str]:
        return {"error": error, "message": self.public_message}


class InputValidationError(TriageServiceError):
    default_public_message = "Invalid request"
    default_status_code = 400
    default_retryable = False

    def __init__(self, message: str, **kwargs):
        kwargs.setdefault("public_message", message)
        super().__init__(message, **kwargs)


class UnsafeInput(InputValidationError):
    def __init__(self, message: str = "unsafe_input", **kwargs):
        kwargs.setdefault(
            "public_message",
            "This service cannot help with self-harm. Please contact local emergency services or a crisis line.",
        )
        super().__init__(message, **kwargs)


class ConfigurationError(TriageServiceError):
    default_public_message = "Service not configured"
    default_status_code = 503
    default_retryable = False


class ModelUnavailable(TriageServiceError):
    default_public_message = "AI service temporarily unavailable"

    def __init__(self, candidates: tuple[str, ...] | list[str], **kwargs):
        self.candidates = tuple(candidates)
        super().__init__(
            "No candidate model available: " + ", ".join(self.candidates),
            **kwargs,
        )


class UpstreamError(TriageServiceError):
    default_public_message = "AI service temporarily unavailable"

    def __init__(
        self,
        message: str,
        *,
        kind: BackendFailureKind = BackendFailureKind.TRANSIENT,
        model: str | None = None,
        upstream_status: int | None = None,
        **kwargs,
    ):
        self.kind = kind
        self.model = model
        self.upstream_status = upstream_status
        if kind is BackendFailureKind.INVALID_INPUT:
            kwargs.setdefault("status_code", 502)
        super().__init__(message, **kwargs)


class MalformedResponse(TriageServiceError):
    default_public_message = "AI service returned an unexpected response"
    default_status_code = 502


class InvalidContract(TriageServiceError):
    default_public_message = "AI service returned an unexpected response"
    default_status_code = 502

    def __init__(self, field: str, reason: str, **kwargs):
        self.field = field
        self.reason = reason
        super().__init__(f"invalid field '{field}': {reason}", **kwargs)


class InvalidDiagnosisResponse(TriageServiceError):
    default_public_message = "AI service returned an unexpected response"
    default_status_code = 502


class InvalidImage(TriageServiceError):
    default_public_message = "The image could not be processed. Try a different photo."
    default_status_code = 422
    default_retryable = False


class EmptyTranscript(TriageServiceError):
    default_public_message = "No speech could be detected in the recording"
    default_status_code = 422
    default_retryable = False
