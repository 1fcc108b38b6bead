"""
Base protocols and data classes for provider adapters.

Synchronous providers implement ``call``; long-running providers implement
``start_operation`` / ``poll_operation``; blob stores implement ``upload``.
The orchestrator only talks to these protocols, so tests swap in fakes.
"""

from __future__ import annotations

import enum
import logging
from dataclasses import dataclass, field
from typing import Any, Protocol, runtime_checkable

import httpx

from mediagen.errors import ProviderCallError

logger = logging.getLogger(__name__)

# Statuses worth a caller-level retry
RETRIABLE_STATUS = {408, 429, 500, 502, 503, 504}


class ExecutionMode(str, enum.Enum):
    """How the provider executes generation."""

    SYNC = "sync"    # Returns result immediately
    ASYNC = "async"  # Returns an operation handle, requires polling


@dataclass(frozen=True)
class ProviderEnvelope:
    """Provider-specific request ready to send."""
    provider: str
    model: str
    endpoint: str
    mode: ExecutionMode
    body: dict[str, Any] = field(default_factory=dict)


@dataclass(frozen=True)
class OperationHandle:
    """Opaque reference to an in-flight long-running operation."""
    provider: str
    model: str
    name: str


@dataclass
class OperationStatus:
    """One status check of a long-running operation."""
    done: bool
    response: dict[str, Any] | None = None
    error: dict[str, Any] | None = None
    progress: str | None = None


@runtime_checkable
class SyncProviderAdapter(Protocol):
    async def call(self, envelope: ProviderEnvelope) -> dict[str, Any]: ...


@runtime_checkable
class AsyncProviderAdapter(Protocol):
    async def start_operation(self, envelope: ProviderEnvelope) -> OperationHandle: ...

    async def poll_operation(self, handle: OperationHandle) -> OperationStatus: ...


@runtime_checkable
class StorageAdapter(Protocol):
    async def upload(self, data: bytes, mime_type: str) -> str: ...


# ---------------------------------------------------------------------------
# Shared httpx plumbing
# ---------------------------------------------------------------------------

def _error_detail(response: httpx.Response) -> str:
    try:
        body = response.json()
    except ValueError:
        return response.text[:300]
    if isinstance(body, dict):
        err = body.get("error") or body.get("detail") or body
        if isinstance(err, dict):
            return str(err.get("message") or err)
        return str(err)
    return str(body)[:300]


class HttpProvider:
    """Base for adapters backed by an ``httpx.AsyncClient``.

    A client passed in is shared and never closed here; otherwise one is
    created lazily and closed by ``aclose()``.
    """

    provider_name: str = "unknown"

    def __init__(self, *, http_client: httpx.AsyncClient | None = None, timeout: float = 180.0):
        self._http_client = http_client
        self._own_client = http_client is None
        self._timeout = timeout

    def _get_client(self) -> httpx.AsyncClient:
        if self._http_client is None or self._http_client.is_closed:
            self._http_client = httpx.AsyncClient(timeout=self._timeout)
            self._own_client = True
        return self._http_client

    async def aclose(self) -> None:
        if self._own_client and self._http_client is not None:
            await self._http_client.aclose()
            self._http_client = None

    async def _send(
        self,
        method: str,
        url: str,
        *,
        model: str | None = None,
        **kwargs: Any,
    ) -> httpx.Response:
        """Send a request, mapping transport/HTTP failures to ProviderCallError."""
        try:
            response = await self._get_client().request(method, url, **kwargs)
        except httpx.TimeoutException as e:
            raise ProviderCallError(
                f"{self.provider_name} request timed out: {e}",
                status_code=408,
                retriable=True,
                provider=self.provider_name,
                model=model,
            ) from e
        except httpx.TransportError as e:
            raise ProviderCallError(
                f"{self.provider_name} transport error: {e}",
                retriable=True,
                provider=self.provider_name,
                model=model,
            ) from e

        if response.is_error:
            status = response.status_code
            raise ProviderCallError(
                f"{self.provider_name} HTTP {status}: {_error_detail(response)}",
                status_code=status,
                retriable=status in RETRIABLE_STATUS,
                provider=self.provider_name,
                model=model,
            )
        return response

    async def _send_json(self, method: str, url: str, **kwargs: Any) -> dict[str, Any]:
        response = await self._send(method, url, **kwargs)
        try:
            data = response.json()
        except ValueError as e:
            raise ProviderCallError(
                f"{self.provider_name} returned non-JSON body",
                status_code=response.status_code,
                provider=self.provider_name,
                model=kwargs.get("model"),
            ) from e
        if not isinstance(data, dict):
            return {"data": data}
        return data
