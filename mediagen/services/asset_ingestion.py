"""Asset ingestion — turn caller-owned reference bytes into provider references.

Providers that want hosted URLs get every part uploaded concurrently, with
results joined back in input order (position 0 is the primary image).
Providers that accept inline bytes get the parts passed straight through.
"""

from __future__ import annotations

import asyncio
import logging
from dataclasses import dataclass

from mediagen.errors import GenerationError, IngestionError
from mediagen.schemas.generation import ReferencePart, ReferenceRole
from mediagen.services.providers.base import StorageAdapter

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class IngestedAsset:
    """A reference part after ingestion: hosted URL or inline bytes."""
    position: int
    role: ReferenceRole
    mime_type: str
    url: str | None = None
    data: bytes | None = None

    @property
    def is_hosted(self) -> bool:
        return self.url is not None


async def _upload_one(
    storage: StorageAdapter, part: ReferencePart, position: int,
) -> IngestedAsset:
    try:
        url = await storage.upload(part.data, part.mime_type)
    except Exception as e:
        detail = e.message if isinstance(e, GenerationError) else f"{type(e).__name__}: {e}"
        raise IngestionError(
            f"Upload failed for {part.role.value} reference #{position}: {detail}",
            role=part.role.value,
            position=position,
            provider=e.provider if isinstance(e, GenerationError) else None,
        ) from e
    return IngestedAsset(position=position, role=part.role, mime_type=part.mime_type, url=url)


async def ingest_assets(
    parts: list[ReferencePart],
    *,
    storage: StorageAdapter | None = None,
) -> list[IngestedAsset]:
    """Ingest ``parts`` in order.

    Args:
        parts: Reference parts as supplied by the caller.
        storage: Blob store for providers needing hosted URLs; ``None``
            means the provider takes inline bytes.

    Returns:
        One ``IngestedAsset`` per part, same order as ``parts``.

    Raises:
        IngestionError: the first failing upload; remaining uploads are
            cancelled.
    """
    if storage is None:
        return [
            IngestedAsset(position=i, role=p.role, mime_type=p.mime_type, data=p.data)
            for i, p in enumerate(parts)
        ]
    if not parts:
        return []

    tasks = [
        asyncio.ensure_future(_upload_one(storage, part, i))
        for i, part in enumerate(parts)
    ]
    try:
        assets = await asyncio.gather(*tasks)
    except IngestionError as e:
        logger.error("Ingestion failed at position=%d role=%s: %s", e.position, e.role, e.message)
        raise
    finally:
        pending = [task for task in tasks if not task.done()]
        for task in pending:
            task.cancel()
        if pending:
            await asyncio.gather(*pending, return_exceptions=True)

    logger.info("Ingested %d reference(s) as hosted URLs", len(assets))
    return list(assets)
