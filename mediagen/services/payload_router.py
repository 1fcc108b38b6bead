"""Payload builder / router.

Maps a normalized request plus its ingested assets onto one provider's
request envelope. Provider selection is an exact lookup in the per-provider
profile tables, then a prefix rule; field mapping is driven by the same
static tables, so adding a model variant to an existing provider means adding
a table row.
"""

from __future__ import annotations

import base64
import logging
from dataclasses import dataclass, field
from typing import Any, Callable

from mediagen.errors import RoutingError
from mediagen.schemas.generation import NormalizedRequest, ReferenceRole
from mediagen.services.asset_ingestion import IngestedAsset
from mediagen.services.capability_registry import PROVIDER_FAL, PROVIDER_GEMINI, PROVIDER_VEO
from mediagen.services.providers.base import ExecutionMode, ProviderEnvelope

logger = logging.getLogger(__name__)


# ---------------------------------------------------------------------------
# Routes
# ---------------------------------------------------------------------------

@dataclass(frozen=True)
class ProviderRoute:
    """Where a model goes and how its inputs must be shaped."""
    provider: str
    mode: ExecutionMode
    hosted_references: bool


ROUTES: dict[str, ProviderRoute] = {
    PROVIDER_FAL: ProviderRoute(PROVIDER_FAL, ExecutionMode.SYNC, hosted_references=True),
    PROVIDER_GEMINI: ProviderRoute(PROVIDER_GEMINI, ExecutionMode.SYNC, hosted_references=False),
    PROVIDER_VEO: ProviderRoute(PROVIDER_VEO, ExecutionMode.ASYNC, hosted_references=False),
}

PREFIX_RULES: tuple[tuple[str, str], ...] = (
    ("veo-", PROVIDER_VEO),
    ("gemini-", PROVIDER_GEMINI),
    ("nano-banana", PROVIDER_GEMINI),
    ("fal-ai/", PROVIDER_FAL),
    ("xai/", PROVIDER_FAL),
    ("wan/", PROVIDER_FAL),
)


# ---------------------------------------------------------------------------
# Value sources shared by the Fal field tables
# ---------------------------------------------------------------------------

@dataclass(frozen=True)
class _PayloadContext:
    request: NormalizedRequest
    assets: list[IngestedAsset]

    @property
    def primary(self) -> IngestedAsset | None:
        return self.assets[0] if self.assets else None


# Seedream takes size presets instead of ratios
SEEDREAM_IMAGE_SIZES = {
    "1:1": "square_hd",
    "3:4": "portrait_4_3",
    "9:16": "portrait_16_9",
    "4:3": "landscape_4_3",
    "16:9": "landscape_16_9",
}


def _ref(asset: IngestedAsset | None) -> str | None:
    if asset is None:
        return None
    if asset.url is not None:
        return asset.url
    return f"data:{asset.mime_type};base64,{base64.b64encode(asset.data or b'').decode()}"


def _image_size(ctx: _PayloadContext) -> str:
    req = ctx.request
    return req.image_size or SEEDREAM_IMAGE_SIZES.get(req.aspect_ratio, "auto_4K")


def _wan_num_frames(ctx: _PayloadContext) -> int | None:
    # 16 fps; clips longer than the 81-frame default need the 161-frame max
    duration = ctx.request.duration_seconds or 5
    return 161 if duration >= 10 else None


def _wan_fps(ctx: _PayloadContext) -> int | None:
    return 16 if _wan_num_frames(ctx) else None


VALUE_SOURCES: dict[str, Callable[[_PayloadContext], Any]] = {
    "prompt": lambda ctx: ctx.request.prompt,
    "image_url": lambda ctx: _ref(ctx.primary),
    "image_urls": lambda ctx: [_ref(a) for a in ctx.assets],
    "aspect_ratio": lambda ctx: ctx.request.aspect_ratio,
    "resolution": lambda ctx: ctx.request.resolution,
    "duration_int": lambda ctx: ctx.request.duration_seconds,
    "duration_str": lambda ctx: (
        str(ctx.request.duration_seconds) if ctx.request.duration_seconds is not None else None
    ),
    "num_images": lambda ctx: ctx.request.num_images,
    "image_size": _image_size,
    "enable_safety_checker": lambda ctx: ctx.request.enable_safety_checker,
    "enhance_prompt_mode": lambda ctx: ctx.request.enhance_prompt_mode,
    "generate_audio": lambda ctx: ctx.request.with_audio,
    "camera_fixed": lambda ctx: ctx.request.camera_fixed,
    "wan_num_frames": _wan_num_frames,
    "wan_fps": _wan_fps,
    "loras": lambda ctx: [l.model_dump() for l in ctx.request.loras] or None,
}


# ---------------------------------------------------------------------------
# Profiles
# ---------------------------------------------------------------------------

@dataclass(frozen=True)
class FalProfile:
    """Fal endpoint plus provider-field → value-source mapping."""
    endpoint: str
    fields: dict[str, str]
    constants: dict[str, Any] = field(default_factory=dict)


@dataclass(frozen=True)
class GeminiProfile:
    response_modalities: tuple[str, ...] = ("IMAGE",)
    image_size: str = "2K"


@dataclass(frozen=True)
class VeoProfile:
    last_frame: bool = False
    audio_param: bool = False


def _fal(endpoint: str, fields: dict[str, str], **constants: Any) -> FalProfile:
    return FalProfile(endpoint=endpoint, fields=fields, constants=constants)


_GROK_VIDEO_FIELDS = {
    "prompt": "prompt",
    "image_url": "image_url",
    "duration": "duration_int",
    "aspect_ratio": "aspect_ratio",
}
_SEEDREAM_T2I_FIELDS = {
    "prompt": "prompt",
    "image_size": "image_size",
    "num_images": "num_images",
    "enable_safety_checker": "enable_safety_checker",
}
_SEEDREAM_EDIT_FIELDS = {**_SEEDREAM_T2I_FIELDS, "image_urls": "image_urls"}
_WAN_FIELDS = {
    "prompt": "prompt",
    "image_url": "image_url",
    "resolution": "resolution",
    "duration": "duration_str",
    "enable_safety_checker": "enable_safety_checker",
}

FAL_PROFILES: dict[str, FalProfile] = {
    "xai/grok-imagine-video/image-to-video": _fal(
        "xai/grok-imagine-video/image-to-video", _GROK_VIDEO_FIELDS,
    ),
    "xai/grok-imagine-image/edit": _fal(
        "xai/grok-imagine-image/edit",
        {"prompt": "prompt", "image_url": "image_url", "num_images": "num_images"},
        output_format="jpeg",
    ),
    "xai/grok-imagine-image/text-to-image": _fal(
        "xai/grok-imagine-image/text-to-image",
        {"prompt": "prompt", "num_images": "num_images", "aspect_ratio": "aspect_ratio"},
        output_format="jpeg",
    ),
    "fal-ai/bytedance/seedream/v4.5/edit": _fal(
        "fal-ai/bytedance/seedream/v4.5/edit", _SEEDREAM_EDIT_FIELDS,
    ),
    "fal-ai/bytedance/seedream/v4/edit": _fal(
        "fal-ai/bytedance/seedream/v4/edit",
        {**_SEEDREAM_EDIT_FIELDS, "enhance_prompt_mode": "enhance_prompt_mode"},
    ),
    "fal-ai/bytedance/seedream/v4.5/text-to-image": _fal(
        "fal-ai/bytedance/seedream/v4.5/text-to-image", _SEEDREAM_T2I_FIELDS,
    ),
    "fal-ai/bytedance/seedream/v4/text-to-image": _fal(
        "fal-ai/bytedance/seedream/v4/text-to-image", _SEEDREAM_T2I_FIELDS,
    ),
    "fal-ai/bytedance/seedream/v5/lite/text-to-image": _fal(
        "fal-ai/bytedance/seedream/v5/lite/text-to-image", _SEEDREAM_T2I_FIELDS,
    ),
    "wan/v2.6/image-to-video/flash": _fal(
        "wan/v2.6/image-to-video/flash", _WAN_FIELDS,
        enable_prompt_expansion=True,
    ),
    "fal-ai/wan-25-preview/image-to-video": _fal(
        "fal-ai/wan-25-preview/image-to-video", _WAN_FIELDS,
        enable_prompt_expansion=True,
    ),
    "fal-ai/bytedance/seedance/v1.5/pro/image-to-video": _fal(
        "fal-ai/bytedance/seedance/v1.5/pro/image-to-video",
        {
            "prompt": "prompt",
            "image_url": "image_url",
            "aspect_ratio": "aspect_ratio",
            "resolution": "resolution",
            "duration": "duration_str",
            "camera_fixed": "camera_fixed",
            "generate_audio": "generate_audio",
            "enable_safety_checker": "enable_safety_checker",
        },
    ),
    "fal-ai/wan/v2.2-a14b/image-to-video/lora": _fal(
        "fal-ai/wan/v2.2-a14b/image-to-video/lora",
        {
            "prompt": "prompt",
            "image_url": "image_url",
            "resolution": "resolution",
            "aspect_ratio": "aspect_ratio",
            "enable_safety_checker": "enable_safety_checker",
            "num_frames": "wan_num_frames",
            "frames_per_second": "wan_fps",
            "loras": "loras",
        },
    ),
}

GEMINI_PROFILES: dict[str, GeminiProfile] = {
    "nano-banana-pro-preview": GeminiProfile(),
    "gemini-3-pro-image-preview": GeminiProfile(),
    "gemini-3.1-flash-image-preview": GeminiProfile(),
}

VEO_PROFILES: dict[str, VeoProfile] = {
    "veo-3.1-generate-preview": VeoProfile(last_frame=True, audio_param=True),
    "veo-3.1-fast-generate-preview": VeoProfile(last_frame=True, audio_param=True),
    "veo-3.0-generate-001": VeoProfile(audio_param=True),
    "veo-3.0-fast-generate-001": VeoProfile(audio_param=True),
    "veo-2.0-generate-001": VeoProfile(),
}

# Used when a model matches a prefix rule but has no row of its own. Every
# shipped model has a row, so this serves models registered in a custom
# CapabilityRegistry, e.g. a new Veo or Gemini preview.
# Fal has no default: every Fal endpoint needs its own field table.
DEFAULT_PROFILES: dict[str, Any] = {
    PROVIDER_GEMINI: GeminiProfile(response_modalities=("TEXT", "IMAGE")),
    PROVIDER_VEO: VeoProfile(),
}

GEMINI_SAFETY_SETTINGS = [
    {"category": category, "threshold": "BLOCK_ONLY_HIGH"}
    for category in (
        "HARM_CATEGORY_HATE_SPEECH",
        "HARM_CATEGORY_SEXUALLY_EXPLICIT",
        "HARM_CATEGORY_HARASSMENT",
        "HARM_CATEGORY_DANGEROUS_CONTENT",
    )
]


# ---------------------------------------------------------------------------
# Body builders
# ---------------------------------------------------------------------------

def _build_fal_body(profile: FalProfile, ctx: _PayloadContext) -> dict[str, Any]:
    body: dict[str, Any] = {}
    for name, source in profile.fields.items():
        value = VALUE_SOURCES[source](ctx)
        if value is not None:
            body[name] = value
    body.update(profile.constants)
    return body


def _inline_part(asset: IngestedAsset) -> dict[str, Any]:
    if asset.url is not None:
        return {"fileData": {"mimeType": asset.mime_type, "fileUri": asset.url}}
    return {
        "inlineData": {
            "mimeType": asset.mime_type,
            "data": base64.b64encode(asset.data or b"").decode(),
        }
    }


def _build_gemini_body(profile: GeminiProfile, ctx: _PayloadContext) -> dict[str, Any]:
    parts: list[dict[str, Any]] = [{"text": ctx.request.prompt}]
    parts.extend(_inline_part(asset) for asset in ctx.assets)
    return {
        "contents": [{"role": "user", "parts": parts}],
        "generationConfig": {
            "responseModalities": list(profile.response_modalities),
            "imageConfig": {
                "aspectRatio": ctx.request.aspect_ratio,
                "imageSize": profile.image_size,
            },
        },
        "safetySettings": GEMINI_SAFETY_SETTINGS,
    }


def _veo_image(asset: IngestedAsset) -> dict[str, Any]:
    return {
        "bytesBase64Encoded": base64.b64encode(asset.data or b"").decode(),
        "mimeType": asset.mime_type,
    }


def _pick_frames(assets: list[IngestedAsset]) -> tuple[IngestedAsset | None, IngestedAsset | None]:
    start = next((a for a in assets if a.role is ReferenceRole.START_FRAME), None)
    end = next((a for a in assets if a.role is ReferenceRole.END_FRAME), None)
    # Untagged references fill the free slots in order: start, then last frame.
    untagged = [a for a in assets if a.role not in (ReferenceRole.START_FRAME, ReferenceRole.END_FRAME)]
    if start is None and untagged:
        start = untagged.pop(0)
    if end is None and untagged:
        end = untagged.pop(0)
    return start, end


def _build_veo_body(profile: VeoProfile, ctx: _PayloadContext) -> dict[str, Any]:
    req = ctx.request
    instance: dict[str, Any] = {"prompt": req.prompt}
    start, end = _pick_frames(ctx.assets)
    if start is not None:
        instance["image"] = _veo_image(start)
    if end is not None and profile.last_frame:
        instance["lastFrame"] = _veo_image(end)

    parameters: dict[str, Any] = {
        "aspectRatio": req.aspect_ratio,
        "personGeneration": "allow_adult",
        "sampleCount": 1,
    }
    if req.duration_seconds is not None:
        parameters["durationSeconds"] = req.duration_seconds
    if req.resolution is not None:
        parameters["resolution"] = req.resolution
    if profile.audio_param:
        parameters["generateAudio"] = req.with_audio

    return {"instances": [instance], "parameters": parameters}


# provider → (endpoint for model, body builder)
_BODY_BUILDERS: dict[str, tuple[Callable[[str, Any], str], Callable[[Any, _PayloadContext], dict]]] = {
    PROVIDER_FAL: (lambda model, profile: profile.endpoint, _build_fal_body),
    PROVIDER_GEMINI: (lambda model, profile: f"models/{model}:generateContent", _build_gemini_body),
    PROVIDER_VEO: (lambda model, profile: f"models/{model}:predictLongRunning", _build_veo_body),
}


# ---------------------------------------------------------------------------
# Router
# ---------------------------------------------------------------------------

class PayloadRouter:
    """Resolve a model to its provider and build the provider envelope."""

    def __init__(
        self,
        *,
        fal_profiles: dict[str, FalProfile] | None = None,
        gemini_profiles: dict[str, GeminiProfile] | None = None,
        veo_profiles: dict[str, VeoProfile] | None = None,
        prefix_rules: tuple[tuple[str, str], ...] = PREFIX_RULES,
    ) -> None:
        self._profiles: dict[str, dict[str, Any]] = {
            PROVIDER_FAL: dict(FAL_PROFILES if fal_profiles is None else fal_profiles),
            PROVIDER_GEMINI: dict(GEMINI_PROFILES if gemini_profiles is None else gemini_profiles),
            PROVIDER_VEO: dict(VEO_PROFILES if veo_profiles is None else veo_profiles),
        }
        self._prefix_rules = prefix_rules

    def _profile(self, model: str) -> tuple[str, Any]:
        for provider, profiles in self._profiles.items():
            if model in profiles:
                return provider, profiles[model]
        for prefix, provider in self._prefix_rules:
            if model.startswith(prefix) and provider in DEFAULT_PROFILES:
                return provider, DEFAULT_PROFILES[provider]
        raise RoutingError(f"Unsupported model: {model}", model=model)

    def resolve(self, model: str) -> ProviderRoute:
        """Return the route for ``model`` or raise ``RoutingError``."""
        provider, _ = self._profile(model)
        return ROUTES[provider]

    def build(
        self,
        request: NormalizedRequest,
        assets: list[IngestedAsset],
        model: str | None = None,
    ) -> ProviderEnvelope:
        """Pure mapping of ``request`` + ``assets`` onto a provider envelope."""
        model = model or request.model
        provider, profile = self._profile(model)
        route = ROUTES[provider]
        ctx = _PayloadContext(request=request, assets=list(assets))

        endpoint_for, build_body = _BODY_BUILDERS[provider]
        endpoint = endpoint_for(model, profile)
        body = build_body(profile, ctx)

        logger.debug("Built %s envelope for model=%s endpoint=%s", provider, model, endpoint)
        return ProviderEnvelope(
            provider=provider,
            model=model,
            endpoint=endpoint,
            mode=route.mode,
            body=body,
        )


PAYLOAD_ROUTER = PayloadRouter()
