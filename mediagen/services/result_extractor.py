"""Result extractor — one canonical ``MediaResult`` from heterogeneous responses.

Shapes are tried in a fixed order, richer/nested first:

    video: data.video.url → video.url → (response.)generateVideoResponse
           .generatedSamples[0].video.uri → (response.)generatedVideos[0]
           .video.uri → Gemini candidate inline/file part
    image: data.images[0].url → images[0].url → data.image.url → image.url
           → Gemini candidate inline/file part (last one wins)

Everything here is a pure function of its arguments.
"""

from __future__ import annotations

import base64
import binascii
import logging
import mimetypes
from typing import Any

from mediagen.errors import ExtractionError
from mediagen.schemas.generation import GenerationKind, MediaResult

logger = logging.getLogger(__name__)

_Path = tuple[Any, ...]

# (path to the object holding the link, key of the link)
_VIDEO_SHAPES: tuple[tuple[_Path, str], ...] = (
    (("data", "video"), "url"),
    (("video",), "url"),
    (("response", "generateVideoResponse", "generatedSamples", 0, "video"), "uri"),
    (("generateVideoResponse", "generatedSamples", 0, "video"), "uri"),
    (("response", "generatedVideos", 0, "video"), "uri"),
    (("generatedVideos", 0, "video"), "uri"),
)

_IMAGE_SHAPES: tuple[tuple[_Path, str], ...] = (
    (("data", "images", 0), "url"),
    (("images", 0), "url"),
    (("data", "image"), "url"),
    (("image",), "url"),
)

_DEFAULT_MIME = {"image": "image/png", "video": "video/mp4"}

# Gemini finish reasons that mean the output was withheld
_SAFETY_FINISH_REASONS = {"SAFETY", "IMAGE_SAFETY", "PROHIBITED_CONTENT", "BLOCKLIST", "SPII"}


def _dig(raw: Any, path: _Path) -> Any:
    node = raw
    for step in path:
        if isinstance(step, int):
            if not isinstance(node, list) or len(node) <= step:
                return None
            node = node[step]
        else:
            if not isinstance(node, dict):
                return None
            node = node.get(step)
        if node is None:
            return None
    return node


def _media_kind(kind: GenerationKind | str) -> str:
    value = kind.value if isinstance(kind, GenerationKind) else str(kind)
    return "video" if value == GenerationKind.VIDEO.value else "image"


def _from_shapes(raw: Any, shapes, media: str) -> tuple[str, str] | None:
    for path, key in shapes:
        holder = _dig(raw, path)
        if not isinstance(holder, dict):
            continue
        link = holder.get(key)
        if isinstance(link, str) and link:
            mime = (
                holder.get("content_type")
                or holder.get("mimeType")
                or mimetypes.guess_type(link.split("?")[0])[0]
                or _DEFAULT_MIME[media]
            )
            return link, mime
    return None


def _gemini_parts(raw: Any) -> list[dict[str, Any]]:
    parts = _dig(raw, ("candidates", 0, "content", "parts"))
    if parts is None:
        parts = _dig(raw, ("response", "candidates", 0, "content", "parts"))
    return [p for p in parts or [] if isinstance(p, dict)]


def _from_gemini_parts(raw: Any, media: str) -> tuple[str | None, bytes | None, str] | None:
    found: tuple[str | None, bytes | None, str] | None = None
    for part in _gemini_parts(raw):
        inline = part.get("inlineData") or part.get("inline_data")
        if isinstance(inline, dict):
            mime = inline.get("mimeType") or inline.get("mime_type") or ""
            if mime.startswith(f"{media}/") and inline.get("data"):
                try:
                    data = base64.b64decode(inline["data"])
                except (binascii.Error, ValueError):
                    continue
                found = (None, data, mime)
                continue
        file_data = part.get("fileData") or part.get("file_data")
        if isinstance(file_data, dict):
            mime = file_data.get("mimeType") or file_data.get("mime_type") or ""
            uri = file_data.get("fileUri") or file_data.get("file_uri")
            if uri and (not mime or mime.startswith(f"{media}/")):
                found = (uri, None, mime or _DEFAULT_MIME[media])
    return found


def extract(
    raw: Any,
    kind: GenerationKind | str,
    *,
    model: str,
    provider: str,
    prompt: str,
) -> MediaResult:
    """Return the canonical result for ``raw`` or raise ``ExtractionError``."""
    media = _media_kind(kind)
    shapes = _VIDEO_SHAPES if media == "video" else _IMAGE_SHAPES

    link = _from_shapes(raw, shapes, media)
    if link is not None:
        uri, mime = link
        return MediaResult(
            uri=uri, mime_type=mime, kind=media, prompt=prompt, model=model, provider=provider,
        )

    inline = _from_gemini_parts(raw, media)
    if inline is not None:
        uri, data, mime = inline
        return MediaResult(
            uri=uri, data=data, mime_type=mime, kind=media,
            prompt=prompt, model=model, provider=provider,
        )

    keys = sorted(raw) if isinstance(raw, dict) else type(raw).__name__
    raise ExtractionError(
        f"No {media} found in response (keys={keys})",
        raw=raw,
        provider=provider,
        model=model,
    )


def find_safety_block(raw: Any) -> list[str] | None:
    """Return the provider's reasons if the output was safety-filtered.

    Recognizes Veo ``raiMediaFilteredCount`` (flat or nested), Gemini
    ``promptFeedback.blockReason`` and safety ``finishReason`` values.
    """
    if not isinstance(raw, dict):
        return None

    for prefix in ((), ("generateVideoResponse",), ("response",), ("response", "generateVideoResponse")):
        count = _dig(raw, prefix + ("raiMediaFilteredCount",))
        if isinstance(count, (int, float)) and count > 0:
            reasons = _dig(raw, prefix + ("raiMediaFilteredReasons",)) or []
            return [str(r) for r in reasons] or ["Unknown safety reason"]

    block_reason = _dig(raw, ("promptFeedback", "blockReason"))
    if block_reason:
        return [str(block_reason)]

    finish_reason = _dig(raw, ("candidates", 0, "finishReason"))
    if finish_reason in _SAFETY_FINISH_REASONS:
        ratings = _dig(raw, ("candidates", 0, "safetyRatings")) or []
        blocked = [r.get("category") for r in ratings if isinstance(r, dict) and r.get("blocked")]
        return [str(finish_reason), *[str(c) for c in blocked if c]]

    return None
