"""Google Veo video provider.

Long-running operation pattern:
  POST models/{model}:predictLongRunning → {"name": "models/.../operations/..."}
  GET  {name} → {"done": bool, "response": {...}, "error": {...}}
"""

from __future__ import annotations

import logging
from typing import Any

from mediagen.errors import ProviderCallError
from mediagen.services.capability_registry import PROVIDER_VEO
from mediagen.services.providers.base import OperationHandle, OperationStatus, ProviderEnvelope
from mediagen.services.providers.gemini import GoogleApiProvider

logger = logging.getLogger(__name__)


class VeoClient(GoogleApiProvider):
    """Start and poll Veo video operations."""

    provider_name = PROVIDER_VEO

    async def start_operation(self, envelope: ProviderEnvelope) -> OperationHandle:
        url = f"{self._endpoint}/{envelope.endpoint}"
        data = await self._send_json(
            "POST", url,
            json=envelope.body,
            headers=self._headers(envelope.model),
            model=envelope.model,
        )
        name = data.get("name")
        if not name:
            raise ProviderCallError(
                f"Veo returned no operation name: {sorted(data)}",
                provider=self.provider_name,
                model=envelope.model,
            )
        logger.info("Veo operation started: %s (model=%s)", name, envelope.model)
        return OperationHandle(provider=self.provider_name, model=envelope.model, name=name)

    async def poll_operation(self, handle: OperationHandle) -> OperationStatus:
        data = await self._send_json(
            "GET", f"{self._endpoint}/{handle.name}",
            headers=self._headers(handle.model),
            model=handle.model,
        )
        metadata: dict[str, Any] = data.get("metadata") or {}
        progress = metadata.get("progressPercent") or metadata.get("state")
        return OperationStatus(
            done=bool(data.get("done")),
            response=data.get("response"),
            error=data.get("error"),
            progress=str(progress) if progress is not None else None,
        )

    async def download(self, uri: str, *, model: str | None = None) -> bytes:
        """Fetch a generated video; Veo file URIs need the API key."""
        response = await self._send(
            "GET", uri,
            headers=self._headers(model),
            follow_redirects=True,
            model=model,
        )
        logger.info("Downloaded Veo video (%d bytes)", len(response.content))
        return response.content
