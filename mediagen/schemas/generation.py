"""Pydantic v2 schemas for generation requests and results."""

from __future__ import annotations

import base64
import binascii
import enum
from typing import Any, Literal

from pydantic import BaseModel, Field, field_validator, model_validator


class GenerationKind(str, enum.Enum):
    """Which generation path a request takes."""

    IMAGE = "image"
    VIDEO = "video"
    EDIT = "edit"


class ReferenceRole(str, enum.Enum):
    """What a reference image stands for in the prompt."""

    START_FRAME = "start_frame"
    END_FRAME = "end_frame"
    SUBJECT = "subject"
    LOCATION = "location"
    STYLE = "style"
    REFERENCE = "reference"


class ReferencePart(BaseModel):
    """One binary input handed over by the caller."""

    data: bytes
    mime_type: str = "image/jpeg"
    role: ReferenceRole = ReferenceRole.REFERENCE

    @classmethod
    def from_data_url(
        cls,
        value: str,
        role: ReferenceRole = ReferenceRole.REFERENCE,
        default_mime: str = "image/jpeg",
    ) -> ReferencePart:
        """Build a part from ``data:<mime>;base64,<payload>`` or bare base64."""
        mime_type = default_mime
        payload = value
        if value.startswith("data:"):
            header, _, payload = value.partition(",")
            mime_type = header[5:].split(";")[0] or default_mime
        try:
            raw = base64.b64decode(payload, validate=True)
        except (binascii.Error, ValueError) as e:
            raise ValueError(f"Reference is not valid base64: {e}") from e
        return cls(data=raw, mime_type=mime_type, role=role)


class VideoParams(BaseModel):
    duration_seconds: int | None = Field(default=None, gt=0)
    resolution: str | None = None
    with_audio: bool = False
    camera_fixed: bool = False

    @field_validator("duration_seconds", mode="before")
    @classmethod
    def _strip_seconds_suffix(cls, v: Any) -> Any:
        # UI tokens look like "8s"
        if isinstance(v, str):
            return int(v.strip().rstrip("s"))
        return v


class EditParams(BaseModel):
    image_size: str | None = None
    num_images: int = Field(default=1, ge=1)
    enable_safety_checker: bool = True
    enhance_prompt_mode: Literal["standard", "fast"] = "standard"


class LoraWeight(BaseModel):
    path: str
    scale: float = 1.0


class GenerationRequest(BaseModel):
    """Abstract generation request, provider-agnostic."""

    kind: GenerationKind
    prompt: str
    aspect_ratio: str = "auto"
    model: str
    references: list[ReferencePart] = Field(default_factory=list)
    video: VideoParams | None = None
    edit: EditParams | None = None
    loras: list[LoraWeight] = Field(default_factory=list)

    @model_validator(mode="after")
    def _one_path_active(self) -> GenerationRequest:
        if self.video is not None and self.kind is not GenerationKind.VIDEO:
            raise ValueError(f"video parameters given for a {self.kind.value} request")
        return self


class Adjustment(BaseModel):
    """Audit record of one normalization applied by the validator."""

    field: str
    requested: Any = None
    applied: Any = None
    reason: str


class NormalizedRequest(BaseModel):
    """A request after it has been checked against its model's capabilities."""

    kind: GenerationKind
    prompt: str
    model: str
    provider: str
    aspect_ratio: str
    references: list[ReferencePart] = Field(default_factory=list)
    duration_seconds: int | None = None
    resolution: str | None = None
    with_audio: bool = False
    camera_fixed: bool = False
    num_images: int = 1
    image_size: str | None = None
    enable_safety_checker: bool = True
    enhance_prompt_mode: str = "standard"
    loras: list[LoraWeight] = Field(default_factory=list)
    adjustments: list[Adjustment] = Field(default_factory=list)

    def adjustment_for(self, field: str) -> Adjustment | None:
        for adj in self.adjustments:
            if adj.field == field:
                return adj
        return None


class MediaResult(BaseModel):
    """Canonical output: one media reference regardless of provider."""

    uri: str | None = None
    data: bytes | None = None
    mime_type: str
    kind: Literal["image", "video"]
    prompt: str
    model: str
    provider: str

    @model_validator(mode="after")
    def _exactly_one_payload(self) -> MediaResult:
        if (self.uri is None) == (self.data is None):
            raise ValueError("MediaResult needs exactly one of uri or data")
        return self
