"""Generation orchestrator — composition root of the pipeline.

    validate → ingest → build envelope → call | start + poll → extract

Progress is reported as an ordered stream of ``ProgressEvent`` values that
ends with exactly one ``done`` or ``failed`` event. The orchestrator never
retries; the first failing stage ends the stream.
"""

from __future__ import annotations

import asyncio
import dataclasses
import enum
import logging
from dataclasses import dataclass, field
from typing import Any, AsyncIterator

import httpx

from mediagen.config import Settings, get_settings
from mediagen.errors import (
    CancelledError,
    GenerationError,
    ProviderCallError,
    RoutingError,
    SafetyFilteredError,
)
from mediagen.schemas.generation import Adjustment, GenerationRequest, MediaResult
from mediagen.services.asset_ingestion import ingest_assets
from mediagen.services.capability_registry import (
    CAPABILITY_REGISTRY,
    PROVIDER_FAL,
    PROVIDER_GEMINI,
    PROVIDER_VEO,
    CapabilityRegistry,
)
from mediagen.services.operation_poller import OperationPoller, ProviderJob
from mediagen.services.payload_router import PAYLOAD_ROUTER, PayloadRouter
from mediagen.services.providers.base import ExecutionMode, ProviderEnvelope, StorageAdapter
from mediagen.services.providers.fal import FalClient
from mediagen.services.providers.gemini import GeminiImageClient
from mediagen.services.providers.veo import VeoClient
from mediagen.services.request_validator import validate_request
from mediagen.services.result_extractor import extract, find_safety_block

logger = logging.getLogger(__name__)


class ProgressStage(str, enum.Enum):
    VALIDATED = "validated"
    ASSETS_INGESTED = "assets_ingested"
    SUBMITTED = "submitted"
    POLLING = "polling"
    DONE = "done"
    FAILED = "failed"


@dataclass
class ProgressEvent:
    """One step of a generation, in order."""
    stage: ProgressStage
    model: str
    provider: str | None = None
    job: ProviderJob | None = None
    result: MediaResult | None = None
    error: GenerationError | None = None
    adjustments: list[Adjustment] = field(default_factory=list)
    message: str = ""

    @property
    def is_terminal(self) -> bool:
        return self.stage in (ProgressStage.DONE, ProgressStage.FAILED)


def default_adapters(
    settings: Settings, http_client: httpx.AsyncClient | None = None,
) -> dict[str, Any]:
    """Real provider clients built from ``settings``."""
    return {
        PROVIDER_FAL: FalClient.from_settings(settings, http_client),
        PROVIDER_GEMINI: GeminiImageClient.from_settings(settings, http_client),
        PROVIDER_VEO: VeoClient.from_settings(settings, http_client),
    }


class GenerationOrchestrator:
    """Runs one generation request end to end.

    Holds no per-request state, so one instance may serve concurrent
    requests. Configuration and collaborators come in through the
    constructor; tests pass fakes for ``adapters`` and ``storage``.
    """

    def __init__(
        self,
        settings: Settings | None = None,
        *,
        registry: CapabilityRegistry | None = None,
        router: PayloadRouter | None = None,
        adapters: dict[str, Any] | None = None,
        storage: StorageAdapter | None = None,
        poller: OperationPoller | None = None,
        http_client: httpx.AsyncClient | None = None,
    ) -> None:
        self.settings = settings or get_settings()
        self.registry = registry or CAPABILITY_REGISTRY
        self.router = router or PAYLOAD_ROUTER
        self.adapters = adapters if adapters is not None else default_adapters(self.settings, http_client)
        if storage is None and isinstance(self.adapters.get(PROVIDER_FAL), StorageAdapter):
            storage = self.adapters[PROVIDER_FAL]
        self.storage = storage
        self.poller = poller or OperationPoller(
            self.settings.POLL_INTERVAL_SECONDS,
            self.settings.POLL_TIMEOUT_SECONDS,
        )

    async def aclose(self) -> None:
        for adapter in self.adapters.values():
            close = getattr(adapter, "aclose", None)
            if close is not None:
                await close()

    def _adapter(self, provider: str, model: str) -> Any:
        adapter = self.adapters.get(provider)
        if adapter is None:
            raise RoutingError(f"No adapter configured for provider {provider}", provider=provider, model=model)
        return adapter

    async def _call_sync(
        self, adapter: Any, envelope: ProviderEnvelope, deadline: float | None,
    ) -> dict[str, Any]:
        if deadline is None:
            return await adapter.call(envelope)
        remaining = max(0.0, deadline - self.poller.now())
        try:
            return await asyncio.wait_for(adapter.call(envelope), timeout=remaining)
        except asyncio.TimeoutError as e:
            raise CancelledError(
                "Caller deadline passed", provider=envelope.provider, model=envelope.model,
            ) from e

    async def _maybe_inline_video(self, adapter: Any, result: MediaResult) -> MediaResult:
        if not (
            self.settings.VEO_INLINE_VIDEO
            and result.provider == PROVIDER_VEO
            and result.uri is not None
            and hasattr(adapter, "download")
        ):
            return result
        data = await adapter.download(result.uri, model=result.model)
        return result.model_copy(update={"uri": None, "data": data})

    async def submit(
        self,
        request: GenerationRequest,
        *,
        cancel_event: asyncio.Event | None = None,
        deadline: float | None = None,
    ) -> AsyncIterator[ProgressEvent]:
        """Run ``request`` and yield progress events.

        Args:
            request: The generation request.
            cancel_event: Set to stop an in-flight long-running job.
            deadline: Absolute time (poller clock, ``time.monotonic`` by
                default) after which the request is abandoned as cancelled.

        Yields:
            ``validated``, ``assets_ingested``, ``submitted``, zero or more
            ``polling``, then ``done`` (with ``result``) or ``failed``
            (with ``error``).
        """
        model = request.model
        provider: str | None = None
        try:
            spec = self.registry.lookup(model)
            provider = spec.provider
            normalized = validate_request(request, spec)
            yield ProgressEvent(
                ProgressStage.VALIDATED, model, provider, adjustments=list(normalized.adjustments),
            )

            route = self.router.resolve(model)
            provider = route.provider
            storage = self.storage if route.hosted_references else None
            if route.hosted_references and storage is None and normalized.references:
                raise RoutingError(
                    f"Provider {provider} needs hosted references but no storage is configured",
                    provider=provider,
                    model=model,
                )
            assets = await ingest_assets(normalized.references, storage=storage)
            yield ProgressEvent(
                ProgressStage.ASSETS_INGESTED, model, provider, message=f"{len(assets)} reference(s)",
            )

            envelope = self.router.build(normalized, assets)
            adapter = self._adapter(envelope.provider, model)

            if envelope.mode is ExecutionMode.SYNC:
                yield ProgressEvent(ProgressStage.SUBMITTED, model, provider)
                raw = await self._call_sync(adapter, envelope, deadline)
                reasons = find_safety_block(raw)
                if reasons:
                    raise SafetyFilteredError(
                        f"Blocked by safety policy: {', '.join(reasons)}",
                        reasons=reasons,
                        provider=provider,
                        model=model,
                    )
            else:
                handle = await adapter.start_operation(envelope)
                job = ProviderJob(provider=provider, model=model, handle=handle)
                yield ProgressEvent(
                    ProgressStage.SUBMITTED, model, provider, job=dataclasses.replace(job),
                )
                async for snapshot in self.poller.track(
                    adapter, job, cancel_event=cancel_event, deadline=deadline,
                ):
                    yield ProgressEvent(
                        ProgressStage.POLLING, model, provider,
                        job=dataclasses.replace(snapshot),
                        message=snapshot.progress or "",
                    )
                raw = job.response or {}

            result = extract(
                raw, normalized.kind, model=model, provider=provider, prompt=normalized.prompt,
            )
            result = await self._maybe_inline_video(adapter, result)
            logger.info("Generation done: model=%s provider=%s kind=%s", model, provider, result.kind)
            yield ProgressEvent(ProgressStage.DONE, model, provider, result=result)

        except GenerationError as e:
            logger.error("Generation failed: model=%s provider=%s %s", model, provider, e)
            yield ProgressEvent(
                ProgressStage.FAILED, model, e.provider or provider, error=e, message=e.message,
            )
        except Exception as e:
            logger.exception("Unexpected failure: model=%s provider=%s", model, provider)
            error = ProviderCallError(
                f"{type(e).__name__}: {e}",
                retriable=isinstance(e, httpx.TransportError),
                provider=provider,
                model=model,
            )
            error.__cause__ = e
            yield ProgressEvent(ProgressStage.FAILED, model, provider, error=error, message=error.message)

    async def generate(
        self,
        request: GenerationRequest,
        *,
        cancel_event: asyncio.Event | None = None,
        deadline: float | None = None,
    ) -> MediaResult:
        """Submit and await: return the result or raise the ``GenerationError``."""
        async for event in self.submit(request, cancel_event=cancel_event, deadline=deadline):
            if event.stage is ProgressStage.DONE and event.result is not None:
                return event.result
            if event.stage is ProgressStage.FAILED and event.error is not None:
                raise event.error
        raise RuntimeError("Generation stream ended without a terminal event")
