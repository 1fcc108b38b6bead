"""Declarative model capability registry.

Single source of truth for what every supported model accepts: aspect
ratios, duration × resolution combinations, audio support, reference-image
counts and output counts. Validation and routing consult this table instead
of branching on model-name substrings.

Usage:
    from mediagen.services.capability_registry import CAPABILITY_REGISTRY
    spec = CAPABILITY_REGISTRY.lookup("veo-3.1-generate-preview")
    spec.durations_for("1080p")   # (8,)
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Any

from mediagen.errors import ValidationError, ValidationReason
from mediagen.schemas.generation import GenerationKind

logger = logging.getLogger(__name__)


# ---------------------------------------------------------------------------
# Types
# ---------------------------------------------------------------------------

# Highest first; used for resolution downgrades.
RESOLUTION_LADDER = ("4k", "1080p", "720p", "580p", "540p", "480p", "360p")

PROVIDER_FAL = "fal"
PROVIDER_GEMINI = "gemini"
PROVIDER_VEO = "veo"


@dataclass(frozen=True)
class DurationResolutionMap:
    """Allowed duration × resolution combination for a model."""
    durations: tuple[int, ...]
    resolutions: tuple[str, ...]


@dataclass(frozen=True)
class CapabilitySpec:
    """Capability descriptor for a single model."""
    provider: str
    model: str
    kinds: frozenset[GenerationKind]
    aspect_ratios: tuple[str, ...]
    default_aspect_ratio: str
    duration_resolution_map: tuple[DurationResolutionMap, ...] = ()
    default_duration: int | None = None
    default_resolution: str | None = None
    audio: bool = False
    min_references: int = 0
    max_references: int = 0
    requires_seed_image: bool = False
    max_output_images: int = 1

    @property
    def is_video(self) -> bool:
        return GenerationKind.VIDEO in self.kinds

    @property
    def durations(self) -> tuple[int, ...]:
        """Every duration legal at some resolution, ascending."""
        return tuple(sorted({d for drm in self.duration_resolution_map for d in drm.durations}))

    @property
    def resolutions(self) -> tuple[str, ...]:
        """Every supported resolution, in declaration order."""
        seen: list[str] = []
        for drm in self.duration_resolution_map:
            for res in drm.resolutions:
                if res not in seen:
                    seen.append(res)
        return tuple(seen)

    @property
    def fixed_duration(self) -> int | None:
        durations = self.durations
        return durations[0] if len(durations) == 1 else None

    def durations_for(self, resolution: str | None) -> tuple[int, ...]:
        """Durations legal at ``resolution`` (all durations when None)."""
        if resolution is None:
            return self.durations
        return tuple(sorted({
            d
            for drm in self.duration_resolution_map
            if not drm.resolutions or resolution in drm.resolutions
            for d in drm.durations
        }))

    def allows(self, duration: int | None, resolution: str | None) -> bool:
        if not self.duration_resolution_map:
            return True
        return any(
            (duration is None or duration in drm.durations)
            and (resolution is None or not drm.resolutions or resolution in drm.resolutions)
            for drm in self.duration_resolution_map
        )


# ---------------------------------------------------------------------------
# Registry class
# ---------------------------------------------------------------------------

class CapabilityRegistry:
    """In-memory registry of all supported models."""

    def __init__(self) -> None:
        self._models: dict[str, CapabilitySpec] = {}
        self._by_provider: dict[str, list[CapabilitySpec]] = {}

    def register(self, spec: CapabilitySpec) -> None:
        if spec.model in self._models:
            raise ValueError(f"Model already registered: {spec.model}")
        self._models[spec.model] = spec
        self._by_provider.setdefault(spec.provider, []).append(spec)

    def get(self, model: str) -> CapabilitySpec | None:
        return self._models.get(model)

    def lookup(self, model: str) -> CapabilitySpec:
        """Return the capabilities of ``model`` or raise a validation error."""
        spec = self._models.get(model)
        if spec is None:
            raise ValidationError(
                f"Unknown model: {model}",
                ValidationReason.UNKNOWN_MODEL,
                model=model,
            )
        return spec

    def __contains__(self, model: str) -> bool:
        return model in self._models

    def __len__(self) -> int:
        return len(self._models)

    def list_models(self, provider: str | None = None) -> list[CapabilitySpec]:
        """List models, optionally filtered by provider."""
        if provider:
            return list(self._by_provider.get(provider, []))
        return list(self._models.values())

    def list_providers(self) -> list[str]:
        return sorted(self._by_provider.keys())

    def to_dict_list(self) -> list[dict[str, Any]]:
        """Serialize all models (e.g. for a model picker)."""
        return [
            {
                "provider": spec.provider,
                "model": spec.model,
                "kinds": sorted(k.value for k in spec.kinds),
                "aspect_ratios": list(spec.aspect_ratios),
                "default_aspect_ratio": spec.default_aspect_ratio,
                "duration_resolution_map": [
                    {
                        "durations": list(drm.durations),
                        "resolutions": list(drm.resolutions),
                    }
                    for drm in spec.duration_resolution_map
                ],
                "audio": spec.audio,
                "min_references": spec.min_references,
                "max_references": spec.max_references,
                "requires_seed_image": spec.requires_seed_image,
                "max_output_images": spec.max_output_images,
            }
            for spec in self._models.values()
        ]


# ---------------------------------------------------------------------------
# Helpers to reduce boilerplate
# ---------------------------------------------------------------------------

_IMAGE = frozenset({GenerationKind.IMAGE})
_EDIT = frozenset({GenerationKind.EDIT})
_IMAGE_AND_EDIT = frozenset({GenerationKind.IMAGE, GenerationKind.EDIT})
_VIDEO = frozenset({GenerationKind.VIDEO})

GEMINI_IMAGE_RATIOS = ("1:1", "2:3", "3:2", "3:4", "4:3", "4:5", "5:4", "9:16", "16:9", "21:9")
SEEDREAM_RATIOS = ("1:1", "3:4", "9:16", "4:3", "16:9")
VEO_RATIOS = ("16:9", "9:16")


def _image(
    provider: str,
    model: str,
    kinds: frozenset[GenerationKind],
    ratios: tuple[str, ...],
    default_ratio: str = "3:4",
    *,
    max_refs: int = 0,
    seed: bool = False,
    outputs: int = 1,
) -> CapabilitySpec:
    """Shorthand factory for image/edit models."""
    return CapabilitySpec(
        provider=provider,
        model=model,
        kinds=kinds,
        aspect_ratios=ratios,
        default_aspect_ratio=default_ratio,
        min_references=1 if seed else 0,
        max_references=max_refs,
        requires_seed_image=seed,
        max_output_images=outputs,
    )


def _video(
    provider: str,
    model: str,
    durations: list[int],
    resolutions: list[str],
    ratios: tuple[str, ...],
    default_ratio: str,
    *,
    audio: bool = False,
    seed: bool = True,
    max_refs: int = 1,
    default_duration: int | None = None,
    default_resolution: str | None = None,
    drm_list: list[dict] | None = None,
) -> CapabilitySpec:
    """Shorthand factory for video models."""
    if drm_list:
        drm = tuple(
            DurationResolutionMap(
                durations=tuple(d["durations"]),
                resolutions=tuple(d["resolutions"]),
            )
            for d in drm_list
        )
    else:
        drm = (DurationResolutionMap(
            durations=tuple(durations),
            resolutions=tuple(resolutions),
        ),)
    return CapabilitySpec(
        provider=provider,
        model=model,
        kinds=_VIDEO,
        aspect_ratios=ratios,
        default_aspect_ratio=default_ratio,
        duration_resolution_map=drm,
        default_duration=default_duration or drm[0].durations[0],
        default_resolution=default_resolution or (drm[0].resolutions[0] if drm[0].resolutions else None),
        audio=audio,
        min_references=1 if seed else 0,
        max_references=max_refs,
        requires_seed_image=seed,
    )


# ---------------------------------------------------------------------------
# Build the global registry
# ---------------------------------------------------------------------------

CAPABILITY_REGISTRY = CapabilityRegistry()

# ================== Gemini image (Nano Banana) ==================

for _model in (
    "nano-banana-pro-preview",
    "gemini-3-pro-image-preview",
    "gemini-3.1-flash-image-preview",
):
    CAPABILITY_REGISTRY.register(_image(
        PROVIDER_GEMINI, _model, _IMAGE_AND_EDIT, GEMINI_IMAGE_RATIOS,
        max_refs=14,
    ))

# ================== xAI Grok Imagine (via Fal) ==================

CAPABILITY_REGISTRY.register(_image(
    PROVIDER_FAL, "xai/grok-imagine-image/text-to-image", _IMAGE,
    ("16:9", "4:3", "3:2", "1:1", "2:3", "3:4", "9:16"),
    outputs=4,
))

CAPABILITY_REGISTRY.register(_image(
    PROVIDER_FAL, "xai/grok-imagine-image/edit", _EDIT,
    ("auto",), "auto",
    max_refs=1, seed=True, outputs=4,
))

CAPABILITY_REGISTRY.register(_video(
    PROVIDER_FAL, "xai/grok-imagine-video/image-to-video",
    [5, 6, 9], ["720p"],
    ("auto", "16:9", "9:16", "1:1", "4:3", "3:4", "3:2", "2:3"), "auto",
))

# ================== ByteDance Seedream (via Fal) ==================

for _model in (
    "fal-ai/bytedance/seedream/v4.5/text-to-image",
    "fal-ai/bytedance/seedream/v4/text-to-image",
    "fal-ai/bytedance/seedream/v5/lite/text-to-image",
):
    CAPABILITY_REGISTRY.register(_image(
        PROVIDER_FAL, _model, _IMAGE, SEEDREAM_RATIOS, outputs=6,
    ))

for _model in (
    "fal-ai/bytedance/seedream/v4.5/edit",
    "fal-ai/bytedance/seedream/v4/edit",
):
    CAPABILITY_REGISTRY.register(_image(
        PROVIDER_FAL, _model, _EDIT, ("auto",) + SEEDREAM_RATIOS, "auto",
        max_refs=10, seed=True, outputs=6,
    ))

# ================== Fal video ==================

CAPABILITY_REGISTRY.register(_video(
    PROVIDER_FAL, "wan/v2.6/image-to-video/flash",
    [5, 10, 15], ["720p", "1080p"],
    ("auto",), "auto",
    default_resolution="1080p",
))

CAPABILITY_REGISTRY.register(_video(
    PROVIDER_FAL, "fal-ai/wan-25-preview/image-to-video",
    [5, 10], ["480p", "720p", "1080p"],
    ("auto",), "auto",
    default_resolution="1080p",
))

CAPABILITY_REGISTRY.register(_video(
    PROVIDER_FAL, "fal-ai/bytedance/seedance/v1.5/pro/image-to-video",
    list(range(4, 13)), ["480p", "720p", "1080p"],
    ("21:9", "16:9", "4:3", "1:1", "3:4", "9:16"), "16:9",
    audio=True, default_duration=5, default_resolution="720p",
))

CAPABILITY_REGISTRY.register(_video(
    PROVIDER_FAL, "fal-ai/wan/v2.2-a14b/image-to-video/lora",
    [5, 10], ["480p", "720p"],
    ("auto", "16:9", "9:16", "1:1"), "auto",
    default_resolution="720p",
))

# ================== Google Veo ==================

for _model in ("veo-3.1-generate-preview", "veo-3.1-fast-generate-preview"):
    CAPABILITY_REGISTRY.register(_video(
        PROVIDER_VEO, _model, [], [],
        VEO_RATIOS, "9:16",
        audio=True, seed=False, max_refs=2,
        default_duration=8, default_resolution="1080p",
        drm_list=[
            {"durations": [4, 6, 8], "resolutions": ["720p"]},
            {"durations": [8], "resolutions": ["1080p", "4k"]},
        ],
    ))

for _model in ("veo-3.0-generate-001", "veo-3.0-fast-generate-001"):
    CAPABILITY_REGISTRY.register(_video(
        PROVIDER_VEO, _model,
        [8], ["720p", "1080p"],
        VEO_RATIOS, "9:16",
        audio=True, seed=False,
        default_resolution="1080p",
    ))

CAPABILITY_REGISTRY.register(_video(
    PROVIDER_VEO, "veo-2.0-generate-001",
    [5, 6, 7, 8], ["720p"],
    VEO_RATIOS, "9:16",
    seed=False,
))


logger.info(
    "Capability registry initialized: %d models from %d providers",
    len(CAPABILITY_REGISTRY),
    len(CAPABILITY_REGISTRY.list_providers()),
)
