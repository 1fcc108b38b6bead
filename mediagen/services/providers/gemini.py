"""Gemini image provider (Nano Banana / Gemini 3 image models).

``generateContent`` answers synchronously with candidate parts; reference
images travel inline as base64.
"""

from __future__ import annotations

import logging
from typing import Any

import httpx

from mediagen.config import Settings
from mediagen.errors import ProviderCallError
from mediagen.services.capability_registry import PROVIDER_GEMINI
from mediagen.services.providers.base import HttpProvider, ProviderEnvelope

logger = logging.getLogger(__name__)

_DEFAULT_ENDPOINT = "https://generativelanguage.googleapis.com/v1beta"


class GoogleApiProvider(HttpProvider):
    """Shared auth/endpoint handling for Generative Language API adapters."""

    def __init__(
        self,
        *,
        api_key: str,
        endpoint: str = _DEFAULT_ENDPOINT,
        http_client: httpx.AsyncClient | None = None,
        timeout: float = 180.0,
    ):
        super().__init__(http_client=http_client, timeout=timeout)
        self._api_key = api_key
        self._endpoint = endpoint.rstrip("/")

    @classmethod
    def from_settings(cls, settings: Settings, http_client: httpx.AsyncClient | None = None):
        return cls(
            api_key=settings.GEMINI_API_KEY,
            endpoint=settings.GEMINI_ENDPOINT,
            http_client=http_client,
            timeout=settings.HTTP_TIMEOUT,
        )

    def _headers(self, model: str | None = None) -> dict[str, str]:
        if not self._api_key:
            raise ProviderCallError(
                "GEMINI_API_KEY is not configured",
                status_code=401,
                provider=self.provider_name,
                model=model,
            )
        return {"x-goog-api-key": self._api_key, "Content-Type": "application/json"}


class GeminiImageClient(GoogleApiProvider):
    """Synchronous image generation via ``models/{model}:generateContent``."""

    provider_name = PROVIDER_GEMINI

    async def call(self, envelope: ProviderEnvelope) -> dict[str, Any]:
        url = f"{self._endpoint}/{envelope.endpoint}"
        logger.info("Calling Gemini image model=%s", envelope.model)
        return await self._send_json(
            "POST", url,
            json=envelope.body,
            headers=self._headers(envelope.model),
            model=envelope.model,
        )
