"""Tests for result extraction across provider response shapes"""
import base64

import pytest

from mediagen.errors import ExtractionError
from mediagen.services.result_extractor import extract, find_safety_block


def _extract(raw, kind="image"):
    return extract(raw, kind, model="m", provider="p", prompt="a fox")


@pytest.mark.parametrize("raw", [
    {"data": {"video": {"url": "https://cdn.test/v.mp4"}}},
    {"video": {"url": "https://cdn.test/v.mp4"}},
    {"response": {"generateVideoResponse": {"generatedSamples": [{"video": {"uri": "https://cdn.test/v.mp4"}}]}}},
    {"generateVideoResponse": {"generatedSamples": [{"video": {"uri": "https://cdn.test/v.mp4"}}]}},
    {"generatedVideos": [{"video": {"uri": "https://cdn.test/v.mp4"}}]},
])
def test_video_shapes(raw):
    result = _extract(raw, "video")
    assert result.uri == "https://cdn.test/v.mp4"
    assert result.kind == "video"
    assert result.mime_type == "video/mp4"


@pytest.mark.parametrize("raw", [
    {"data": {"images": [{"url": "https://cdn.test/i.png"}]}},
    {"images": [{"url": "https://cdn.test/i.png"}, {"url": "https://cdn.test/other.png"}]},
    {"image": {"url": "https://cdn.test/i.png"}},
])
def test_image_shapes(raw):
    result = _extract(raw)
    assert result.uri == "https://cdn.test/i.png"
    assert result.mime_type == "image/png"
    assert result.prompt == "a fox"


def test_nested_shape_wins_over_flat():
    raw = {"data": {"video": {"url": "nested"}}, "video": {"url": "flat"}}
    assert _extract(raw, "video").uri == "nested"


def test_content_type_from_response():
    raw = {"images": [{"url": "https://cdn.test/file", "content_type": "image/jpeg"}]}
    assert _extract(raw).mime_type == "image/jpeg"


def test_edit_requests_extract_images():
    assert _extract({"images": [{"url": "X"}]}, "edit").kind == "image"


def test_gemini_inline_image_last_part_wins():
    raw = {"candidates": [{"content": {"parts": [
        {"text": "here you go"},
        {"inlineData": {"mimeType": "image/png", "data": base64.b64encode(b"first").decode()}},
        {"inlineData": {"mimeType": "image/png", "data": base64.b64encode(b"second").decode()}},
    ]}}]}
    result = _extract(raw)
    assert result.data == b"second"
    assert result.uri is None
    assert result.mime_type == "image/png"


def test_extraction_is_idempotent():
    raw = {"images": [{"url": "X"}]}
    assert _extract(raw) == _extract(raw)


@pytest.mark.parametrize("raw", [{}, {"images": []}, {"video": {"url": ""}}, ["not", "a", "dict"]])
def test_no_media_raises(raw):
    with pytest.raises(ExtractionError) as exc:
        _extract(raw)
    assert exc.value.raw == raw
    assert exc.value.reason == "no_media_found"


def test_video_request_does_not_accept_images():
    with pytest.raises(ExtractionError):
        _extract({"images": [{"url": "X"}]}, "video")


def test_safety_block_veo_flat_and_nested():
    assert find_safety_block({"raiMediaFilteredCount": 1, "raiMediaFilteredReasons": ["r1"]}) == ["r1"]
    nested = {"response": {"generateVideoResponse": {"raiMediaFilteredCount": 2}}}
    assert find_safety_block(nested) == ["Unknown safety reason"]
    assert find_safety_block({"raiMediaFilteredCount": 0}) is None


def test_safety_block_gemini():
    assert find_safety_block({"promptFeedback": {"blockReason": "SAFETY"}}) == ["SAFETY"]
    raw = {"candidates": [{
        "finishReason": "IMAGE_SAFETY",
        "safetyRatings": [{"category": "HARM_CATEGORY_HARASSMENT", "blocked": True}],
    }]}
    assert find_safety_block(raw) == ["IMAGE_SAFETY", "HARM_CATEGORY_HARASSMENT"]
    assert find_safety_block({"candidates": [{"finishReason": "STOP"}]}) is None
