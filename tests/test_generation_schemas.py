"""Tests for the request and result schemas"""
import base64

import pytest
from pydantic import ValidationError as PydanticValidationError

from mediagen.schemas.generation import MediaResult, ReferencePart, ReferenceRole, VideoParams

PNG_BYTES = b"\x89PNG\r\n\x1a\n"


def test_data_url_takes_mime_from_header():
    value = "data:image/png;base64," + base64.b64encode(PNG_BYTES).decode()
    part = ReferencePart.from_data_url(value, role=ReferenceRole.START_FRAME)
    assert part.data == PNG_BYTES
    assert part.mime_type == "image/png"
    assert part.role is ReferenceRole.START_FRAME


def test_bare_base64_uses_default_mime():
    part = ReferencePart.from_data_url(base64.b64encode(b"hello").decode())
    assert part.data == b"hello"
    assert part.mime_type == "image/jpeg"
    assert part.role is ReferenceRole.REFERENCE

    webp = ReferencePart.from_data_url(base64.b64encode(b"hello").decode(), default_mime="image/webp")
    assert webp.mime_type == "image/webp"


def test_data_url_without_mime_falls_back_to_default():
    part = ReferencePart.from_data_url("data:;base64," + base64.b64encode(b"x").decode())
    assert part.mime_type == "image/jpeg"


@pytest.mark.parametrize("value", ["not base64!!", "data:image/png;base64,@@@@", "abc"])
def test_invalid_base64_is_rejected(value):
    with pytest.raises(ValueError, match="not valid base64"):
        ReferencePart.from_data_url(value)


def test_duration_accepts_seconds_token():
    assert VideoParams(duration_seconds="8s").duration_seconds == 8
    assert VideoParams(duration_seconds=6).duration_seconds == 6


@pytest.mark.parametrize("payload", [{}, {"uri": "https://x.test/a.png", "data": b"a"}])
def test_media_result_needs_exactly_one_payload(payload):
    with pytest.raises(PydanticValidationError):
        MediaResult(mime_type="image/png", kind="image", prompt="p", model="m", provider="fal", **payload)
