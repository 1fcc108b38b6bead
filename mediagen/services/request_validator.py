"""Constraint validator — normalizes a request against its model's capabilities.

Each rule is a small policy function returning the value to use plus an
optional ``Adjustment``; ``validate_request`` composes them and records every
adjustment on the returned ``NormalizedRequest``.

Precedence for duration × resolution conflicts is fixed: when a resolution is
offered by the model but not at the requested duration, the duration moves
and the resolution is kept. The resolution only steps down when the model
does not offer it at any duration.
"""

from __future__ import annotations

import logging

from mediagen.errors import ValidationError, ValidationReason
from mediagen.schemas.generation import (
    Adjustment,
    GenerationKind,
    GenerationRequest,
    NormalizedRequest,
    ReferenceRole,
    VideoParams,
)
from mediagen.services.capability_registry import RESOLUTION_LADDER, CapabilitySpec

logger = logging.getLogger(__name__)

LANDSCAPE = "16:9"
PORTRAIT = "9:16"


# ---------------------------------------------------------------------------
# Aspect ratio
# ---------------------------------------------------------------------------

def _parse_ratio(ratio: str) -> tuple[float, float] | None:
    w, sep, h = ratio.partition(":")
    if not sep:
        return None
    try:
        return float(w), float(h)
    except ValueError:
        return None


def infer_video_orientation(ratio: str) -> str:
    """16:9 when the ratio is wider than tall, otherwise 9:16."""
    parsed = _parse_ratio(ratio)
    if parsed and parsed[0] > parsed[1]:
        return LANDSCAPE
    return PORTRAIT


def normalize_aspect_ratio(
    requested: str, spec: CapabilitySpec,
) -> tuple[str, Adjustment | None]:
    if requested in spec.aspect_ratios:
        return requested, None

    if spec.is_video:
        applied = infer_video_orientation(requested)
        if applied not in spec.aspect_ratios:
            applied = spec.default_aspect_ratio
    else:
        applied = spec.default_aspect_ratio

    return applied, Adjustment(
        field="aspect_ratio",
        requested=requested,
        applied=applied,
        reason="unsupported_aspect_ratio",
    )


# ---------------------------------------------------------------------------
# Resolution / duration
# ---------------------------------------------------------------------------

def normalize_resolution(
    requested: str | None, spec: CapabilitySpec,
) -> tuple[str | None, Adjustment | None]:
    supported = spec.resolutions
    if requested is None or not supported:
        return (requested or spec.default_resolution), None
    if requested in supported:
        return requested, None

    applied = spec.default_resolution
    if requested in RESOLUTION_LADDER:
        below = RESOLUTION_LADDER[RESOLUTION_LADDER.index(requested) + 1:]
        applied = next((r for r in below if r in supported), spec.default_resolution)

    return applied, Adjustment(
        field="resolution",
        requested=requested,
        applied=applied,
        reason="unsupported_resolution",
    )


def snap_duration(requested: int, allowed: tuple[int, ...]) -> int:
    """Lowest allowed value >= requested, else the highest allowed value."""
    ordered = sorted(allowed)
    for value in ordered:
        if value >= requested:
            return value
    return ordered[-1]


def normalize_duration(
    requested: int | None, resolution: str | None, spec: CapabilitySpec,
) -> tuple[int | None, Adjustment | None]:
    if not spec.durations:
        return requested, None

    fixed = spec.fixed_duration
    if fixed is not None:
        if requested is None or requested == fixed:
            return fixed, None
        return fixed, Adjustment(
            field="duration_seconds",
            requested=requested,
            applied=fixed,
            reason="fixed_duration",
        )

    if requested is None:
        requested = spec.default_duration or spec.durations[0]

    legal = spec.durations_for(resolution) or spec.durations
    if requested in legal:
        return requested, None

    applied = snap_duration(requested, legal)
    reason = (
        "resolution_requires_duration"
        if legal != spec.durations
        else "snapped_to_allowed"
    )
    return applied, Adjustment(
        field="duration_seconds",
        requested=requested,
        applied=applied,
        reason=reason,
    )


# ---------------------------------------------------------------------------
# Audio / outputs / references
# ---------------------------------------------------------------------------

def normalize_audio(requested: bool, spec: CapabilitySpec) -> tuple[bool, Adjustment | None]:
    if requested and not spec.audio:
        return False, Adjustment(
            field="with_audio",
            requested=True,
            applied=False,
            reason="audio_unsupported",
        )
    return requested, None


def normalize_output_count(requested: int, spec: CapabilitySpec) -> tuple[int, Adjustment | None]:
    applied = max(1, min(requested, spec.max_output_images))
    if applied == requested:
        return requested, None
    return applied, Adjustment(
        field="num_images",
        requested=requested,
        applied=applied,
        reason="output_count_limit",
    )


def check_references(request: GenerationRequest, spec: CapabilitySpec) -> None:
    count = len(request.references)
    needs_seed = spec.requires_seed_image or request.kind is GenerationKind.EDIT
    minimum = max(spec.min_references, 1 if needs_seed else 0)

    if count < minimum:
        raise ValidationError(
            f"{spec.model} requires at least {minimum} reference image(s), got {count}",
            ValidationReason.MISSING_REQUIRED_INPUT,
            provider=spec.provider,
            model=spec.model,
        )
    if count > spec.max_references:
        raise ValidationError(
            f"{spec.model} accepts at most {spec.max_references} reference image(s), got {count}",
            ValidationReason.TOO_MANY_INPUTS,
            provider=spec.provider,
            model=spec.model,
        )
    if (
        request.kind is GenerationKind.VIDEO
        and request.references
        and all(ref.role is ReferenceRole.END_FRAME for ref in request.references)
    ):
        raise ValidationError(
            f"{spec.model} got an end frame without a start frame",
            ValidationReason.MISSING_REQUIRED_INPUT,
            provider=spec.provider,
            model=spec.model,
        )


# ---------------------------------------------------------------------------
# Entry point
# ---------------------------------------------------------------------------

def validate_request(request: GenerationRequest, spec: CapabilitySpec) -> NormalizedRequest:
    """Check ``request`` against ``spec`` and return the normalized form.

    Raises:
        ValidationError: kind not served, empty prompt, or reference count
            outside the model's bounds.
    """
    if request.kind not in spec.kinds:
        raise ValidationError(
            f"{spec.model} does not support {request.kind.value} generation",
            ValidationReason.KIND_MISMATCH,
            provider=spec.provider,
            model=spec.model,
        )

    prompt = request.prompt.strip()
    if not prompt:
        raise ValidationError(
            "Prompt must not be empty",
            ValidationReason.EMPTY_PROMPT,
            provider=spec.provider,
            model=spec.model,
        )

    check_references(request, spec)

    adjustments: list[Adjustment] = []

    def _keep(value, adjustment):
        if adjustment is not None:
            adjustments.append(adjustment)
        return value

    aspect_ratio = _keep(*normalize_aspect_ratio(request.aspect_ratio, spec))

    duration = resolution = None
    with_audio = camera_fixed = False
    if request.kind is GenerationKind.VIDEO:
        video = request.video or VideoParams()
        resolution = _keep(*normalize_resolution(video.resolution, spec))
        duration = _keep(*normalize_duration(video.duration_seconds, resolution, spec))
        with_audio = _keep(*normalize_audio(video.with_audio, spec))
        camera_fixed = video.camera_fixed

    edit = request.edit
    num_images = 1
    if request.kind is not GenerationKind.VIDEO:
        num_images = _keep(*normalize_output_count(edit.num_images if edit else 1, spec))

    for adj in adjustments:
        logger.info(
            "Normalized %s for model=%s: %r -> %r (%s)",
            adj.field, spec.model, adj.requested, adj.applied, adj.reason,
        )

    return NormalizedRequest(
        kind=request.kind,
        prompt=prompt,
        model=spec.model,
        provider=spec.provider,
        aspect_ratio=aspect_ratio,
        references=list(request.references),
        duration_seconds=duration,
        resolution=resolution,
        with_audio=with_audio,
        camera_fixed=camera_fixed,
        num_images=num_images,
        image_size=edit.image_size if edit else None,
        enable_safety_checker=edit.enable_safety_checker if edit else True,
        enhance_prompt_mode=edit.enhance_prompt_mode if edit else "standard",
        loras=[lora for lora in request.loras if lora.path.strip()],
        adjustments=adjustments,
    )
