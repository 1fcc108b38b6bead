"""Tests for reference asset ingestion"""
import asyncio

import httpx
import pytest

from mediagen.errors import IngestionError, ProviderCallError
from mediagen.schemas.generation import ReferencePart, ReferenceRole
from mediagen.services.asset_ingestion import ingest_assets


class SlowStorage:
    """Finishes uploads in reverse order of submission."""

    def __init__(self, fail_at: int | None = None, error: Exception | None = None):
        self.fail_at = fail_at
        self.error = error or ProviderCallError("storage unavailable", status_code=503, retriable=True, provider="fal")
        self.started = 0
        self.cancelled = 0

    async def upload(self, data: bytes, mime_type: str) -> str:
        index = self.started
        self.started += 1
        try:
            await asyncio.sleep(0.01 * (5 - index))
        except asyncio.CancelledError:
            self.cancelled += 1
            raise
        if index == self.fail_at:
            raise self.error
        return f"https://files.test/{data.decode()}"


def _parts(*names, role=ReferenceRole.SUBJECT):
    return [ReferencePart(data=name.encode(), mime_type="image/png", role=role) for name in names]


async def test_hosted_urls_keep_input_order():
    assets = await ingest_assets(_parts("a", "b", "c", "d"), storage=SlowStorage())
    assert [a.url for a in assets] == [f"https://files.test/{n}" for n in "abcd"]
    assert [a.position for a in assets] == [0, 1, 2, 3]
    assert all(a.is_hosted for a in assets)


async def test_inline_passthrough_without_storage():
    parts = _parts("a", "b")
    assets = await ingest_assets(parts)
    assert [a.data for a in assets] == [b"a", b"b"]
    assert not any(a.is_hosted for a in assets)
    assert assets[0].role is ReferenceRole.SUBJECT


async def test_empty_input():
    assert await ingest_assets([], storage=SlowStorage()) == []


async def test_first_failure_aborts_the_rest():
    storage = SlowStorage(fail_at=3)
    parts = _parts("a", "b", "c") + _parts("d", role=ReferenceRole.STYLE)
    with pytest.raises(IngestionError) as exc:
        await ingest_assets(parts, storage=storage)
    assert exc.value.position == 3
    assert exc.value.role == "style"
    assert exc.value.provider == "fal"
    assert isinstance(exc.value.__cause__, ProviderCallError)
    # index 3 sleeps least, so the others were still pending
    assert storage.cancelled == 3


@pytest.mark.parametrize("error", [
    httpx.ConnectError("storage unreachable"),
    OSError("disk gone"),
    KeyError("file_url"),
])
async def test_foreign_upload_errors_are_typed_and_fail_fast(error):
    storage = SlowStorage(fail_at=4, error=error)
    parts = _parts("a", "b", "c", "d") + _parts("e", role=ReferenceRole.START_FRAME)
    with pytest.raises(IngestionError) as exc:
        await ingest_assets(parts, storage=storage)
    assert exc.value.position == 4
    assert exc.value.role == "start_frame"
    assert exc.value.provider is None
    assert exc.value.__cause__ is error
    assert type(error).__name__ in exc.value.message
    assert storage.cancelled == 4
