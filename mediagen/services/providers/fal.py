"""Fal.ai provider — Grok Imagine, Seedream, Seedance and Wan endpoints.

Uses the synchronous ``fal.run`` gateway, which holds the connection until
the queued job finishes, and Fal storage for hosted reference images.
"""

from __future__ import annotations

import logging
import mimetypes
import uuid
from typing import Any

import httpx

from mediagen.config import Settings
from mediagen.errors import ProviderCallError
from mediagen.services.capability_registry import PROVIDER_FAL
from mediagen.services.providers.base import HttpProvider, ProviderEnvelope

logger = logging.getLogger(__name__)


class FalClient(HttpProvider):
    """Synchronous generation + storage upload against Fal.ai."""

    provider_name = PROVIDER_FAL

    def __init__(
        self,
        *,
        api_key: str,
        run_endpoint: str = "https://fal.run",
        storage_endpoint: str = "https://rest.alpha.fal.ai/storage/upload",
        http_client: httpx.AsyncClient | None = None,
        timeout: float = 180.0,
    ):
        super().__init__(http_client=http_client, timeout=timeout)
        self._api_key = api_key
        self._run_endpoint = run_endpoint.rstrip("/")
        self._storage_endpoint = storage_endpoint.rstrip("/")

    @classmethod
    def from_settings(cls, settings: Settings, http_client: httpx.AsyncClient | None = None) -> FalClient:
        return cls(
            api_key=settings.FAL_KEY,
            run_endpoint=settings.FAL_RUN_ENDPOINT,
            storage_endpoint=settings.FAL_STORAGE_ENDPOINT,
            http_client=http_client,
            timeout=settings.HTTP_TIMEOUT,
        )

    def _headers(self, model: str | None = None) -> dict[str, str]:
        if not self._api_key:
            raise ProviderCallError(
                "FAL_KEY is not configured",
                status_code=401,
                provider=self.provider_name,
                model=model,
            )
        return {"Authorization": f"Key {self._api_key}"}

    async def call(self, envelope: ProviderEnvelope) -> dict[str, Any]:
        url = f"{self._run_endpoint}/{envelope.endpoint}"
        logger.info("Calling Fal endpoint=%s model=%s", envelope.endpoint, envelope.model)
        result = await self._send_json(
            "POST", url,
            json=envelope.body,
            headers=self._headers(envelope.model),
            model=envelope.model,
        )
        logger.info("Fal endpoint=%s returned keys=%s", envelope.endpoint, sorted(result))
        return result

    async def upload(self, data: bytes, mime_type: str) -> str:
        """Upload bytes to Fal storage and return the hosted file URL."""
        ext = mimetypes.guess_extension(mime_type) or ".bin"
        initiate = await self._send_json(
            "POST", f"{self._storage_endpoint}/initiate",
            json={"content_type": mime_type, "file_name": f"{uuid.uuid4().hex}{ext}"},
            headers=self._headers(),
        )
        upload_url = initiate.get("upload_url")
        file_url = initiate.get("file_url")
        if not upload_url or not file_url:
            raise ProviderCallError(
                f"Fal storage initiate returned no upload target: {sorted(initiate)}",
                provider=self.provider_name,
            )

        await self._send("PUT", upload_url, content=data, headers={"Content-Type": mime_type})
        logger.debug("Uploaded %d bytes (%s) to Fal storage", len(data), mime_type)
        return file_url
