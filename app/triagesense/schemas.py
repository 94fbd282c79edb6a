"""Pydantic schemas for TriageSense endpoints and internal contracts."""

from __future__ import annotations

from dataclasses import dataclass
from typing import Any, Generic, Literal, TypeVar

from pydantic import AliasChoices, BaseModel, ConfigDict, Field

Severity = Literal[1, 2, 3]
EnrichmentStatus = Literal["skipped", "succeeded", "failed"]
WaitSource = Literal["known_system", "site", "synthetic"]

T = TypeVar("T")


class InlineAttachment(BaseModel):
    model_config = ConfigDict(frozen=True)

    mime_type: str
    data: str


class GenerationRequest(BaseModel):
    model_config = ConfigDict(frozen=True)

    prompt: str
    attachment: InlineAttachment | None = None
    temperature: float = 0.2
    json_mode: bool = True
    # Label for logs only; the backend never sees it.
    task: str = "generate"


class UserProfile(BaseModel):
    age: int | None = Field(default=None, ge=0, le=130)
    gender: str | None = None
    height_cm: float | None = Field(default=None, gt=0, validation_alias=AliasChoices("height_cm", "height"))
    weight_kg: float | None = Field(default=None, gt=0, validation_alias=AliasChoices("weight_kg", "weight"))


class ImagePayload(BaseModel):
    data: str = Field(validation_alias=AliasChoices("data", "imageData", "image_data"))
    mime_type: str = Field(
        default="image/jpeg",
        validation_alias=AliasChoices("mime_type", "mimeType", "imageMimeType"),
    )


class AudioPayload(BaseModel):
    data: str = Field(validation_alias=AliasChoices("data", "audioData", "audio_data"))
    mime_type: str = Field(validation_alias=AliasChoices("mime_type", "mimeType", "audioMimeType"))


class DiagnosisRequest(BaseModel):
    symptoms: list[Any] = Field(default_factory=list)
    image: ImagePayload | None = None
    language_code: str | None = Field(
        default=None,
        validation_alias=AliasChoices("language_code", "languageCode"),
    )
    profile: UserProfile | None = None


class DiagnosisResult(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    condition: str = Field(min_length=1)
    severity: Severity
    reasoning: str = Field(min_length=1)
    language_code: str = Field(alias="languageCode")


class TranscriptionResult(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    symptoms_text: str = Field(alias="symptomsText", min_length=1)
    language_code: str = Field(alias="languageCode")


class TranslationPayload(BaseModel):
    condition: str
    reasoning: str


class Facility(BaseModel):
    """Minimal shape a facility must have; extra keys are carried through untouched."""

    model_config = ConfigDict(extra="allow")

    name: str = Field(min_length=1)
    website: str | None = None


class WaitTimesRequest(BaseModel):
    hospitals: list[Facility] = Field(
        default_factory=list,
        validation_alias=AliasChoices("hospitals", "facilities"),
    )


@dataclass(frozen=True)
class WaitEstimate:
    minutes: int
    estimated: bool
    source: WaitSource


@dataclass(frozen=True)
class Enrichment(Generic[T]):
    """Outcome of a best-effort secondary call. Every status is a valid end state."""

    status: EnrichmentStatus
    value: T | None = None
    error: str | None = None

    @classmethod
    def skipped(cls) -> "Enrichment[T]":
        return cls(status="skipped")

    @classmethod
    def succeeded(cls, value: T) -> "Enrichment[T]":
        return cls(status="succeeded", value=value)

    @classmethod
    def failed(cls, error: str) -> "Enrichment[T]":
        return cls(status="failed", error=error)

    @property
    def ok(self) -> bool:
        return self.status == "succeeded"
