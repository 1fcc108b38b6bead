"""Operation poller — drives long-running provider jobs to a terminal state.

State machine for a ``ProviderJob``::

    submitted → polling → polling … → succeeded | failed

Polling keeps a fixed interval and tolerates individual failed status checks;
it stops on a terminal status, on the overall timeout, or when the caller's
cancel event / deadline fires.
"""

from __future__ import annotations

import asyncio
import enum
import logging
import time
from dataclasses import dataclass
from typing import Any, AsyncIterator, Awaitable, Callable

import httpx

from mediagen.errors import (
    CancelledError,
    GenerationError,
    OperationFailedError,
    PollTimeoutError,
    PollTransientError,
    SafetyFilteredError,
)
from mediagen.services.providers.base import AsyncProviderAdapter, OperationHandle
from mediagen.services.result_extractor import find_safety_block

logger = logging.getLogger(__name__)


class JobStatus(str, enum.Enum):
    SUBMITTED = "submitted"
    POLLING = "polling"
    SUCCEEDED = "succeeded"
    FAILED = "failed"


@dataclass
class ProviderJob:
    """One in-flight submission. Only the poller mutates it."""
    provider: str
    model: str
    handle: OperationHandle | None = None
    status: JobStatus = JobStatus.SUBMITTED
    progress: str | None = None
    poll_errors: int = 0
    polls: int = 0
    last_error: str | None = None
    response: dict[str, Any] | None = None

    @property
    def is_terminal(self) -> bool:
        return self.status in (JobStatus.SUCCEEDED, JobStatus.FAILED)


class OperationPoller:
    """Fixed-interval, time-bounded, cancellable polling loop."""

    def __init__(
        self,
        interval: float = 10.0,
        timeout: float = 600.0,
        *,
        sleep: Callable[[float], Awaitable[Any]] | None = None,
        clock: Callable[[], float] = time.monotonic,
    ):
        if interval <= 0 or timeout <= 0:
            raise ValueError("interval and timeout must be positive")
        self.interval = interval
        self.timeout = timeout
        self._sleep = sleep or asyncio.sleep
        self._clock = clock

    def now(self) -> float:
        """Current time on the clock deadlines are measured against."""
        return self._clock()

    async def _wait(self, seconds: float, cancel_event: asyncio.Event | None) -> None:
        if cancel_event is None:
            await self._sleep(seconds)
            return
        sleeper = asyncio.ensure_future(self._sleep(seconds))
        waiter = asyncio.ensure_future(cancel_event.wait())
        try:
            await asyncio.wait({sleeper, waiter}, return_when=asyncio.FIRST_COMPLETED)
        finally:
            for task in (sleeper, waiter):
                if not task.done():
                    task.cancel()

    def _fail(self, job: ProviderJob, error: GenerationError) -> GenerationError:
        job.status = JobStatus.FAILED
        job.last_error = error.message
        logger.error(
            "Job %s (%s) failed after %d poll(s): %s",
            job.handle.name if job.handle else "-", job.model, job.polls, error.message,
        )
        return error

    def _check_cancelled(
        self, job: ProviderJob, cancel_event: asyncio.Event | None, deadline: float | None,
    ) -> None:
        if cancel_event is not None and cancel_event.is_set():
            raise self._fail(job, CancelledError(
                "Generation cancelled by caller", provider=job.provider, model=job.model,
            ))
        if deadline is not None and self._clock() >= deadline:
            raise self._fail(job, CancelledError(
                "Caller deadline passed", provider=job.provider, model=job.model,
            ))

    async def track(
        self,
        adapter: AsyncProviderAdapter,
        job: ProviderJob,
        *,
        cancel_event: asyncio.Event | None = None,
        deadline: float | None = None,
    ) -> AsyncIterator[ProviderJob]:
        """Poll ``job`` until terminal, yielding it after every non-terminal check.

        On success ``job.response`` holds the provider's final response.

        Args:
            adapter: Provider implementing ``poll_operation``.
            job: Job created at submission, with its handle set.
            cancel_event: Set by the caller to stop polling.
            deadline: Absolute time on this poller's clock after which
                polling stops as cancelled.

        Raises:
            OperationFailedError: the operation finished with an error.
            SafetyFilteredError: the provider filtered the output.
            PollTimeoutError: no terminal status within ``timeout``.
            CancelledError: cancel event set or deadline passed.
        """
        if job.handle is None:
            raise ValueError("Cannot poll a job without an operation handle")

        started = self._clock()
        job.status = JobStatus.POLLING

        try:
            while True:
                self._check_cancelled(job, cancel_event, deadline)

                elapsed = self._clock() - started
                if elapsed >= self.timeout:
                    raise self._fail(job, PollTimeoutError(
                        f"Operation {job.handle.name} not finished after {self.timeout:.0f}s "
                        f"({job.polls} polls, {job.poll_errors} failed)",
                        poll_errors=job.poll_errors,
                        provider=job.provider,
                        model=job.model,
                    ))

                wait = min(self.interval, self.timeout - elapsed)
                if deadline is not None:
                    wait = max(0.0, min(wait, deadline - self._clock()))
                await self._wait(wait, cancel_event)
                self._check_cancelled(job, cancel_event, deadline)

                job.polls += 1
                try:
                    status = await adapter.poll_operation(job.handle)
                except (GenerationError, httpx.HTTPError) as e:
                    transient = PollTransientError(
                        str(e), provider=job.provider, model=job.model,
                    )
                    job.poll_errors += 1
                    job.last_error = transient.message
                    logger.warning(
                        "Poll %d for %s failed (%d so far), retrying: %s",
                        job.polls, job.handle.name, job.poll_errors, transient.message,
                    )
                    continue

                if status.progress is not None:
                    job.progress = status.progress

                if not status.done:
                    logger.debug("Operation %s still running (poll %d)", job.handle.name, job.polls)
                    yield job
                    continue

                if status.error:
                    message = status.error.get("message") or str(status.error)
                    raise self._fail(job, OperationFailedError(
                        f"Operation failed: {message}", provider=job.provider, model=job.model,
                    ))

                response = status.response or {}
                reasons = find_safety_block(response)
                if reasons:
                    raise self._fail(job, SafetyFilteredError(
                        f"Blocked by safety policy: {', '.join(reasons)}",
                        reasons=reasons,
                        provider=job.provider,
                        model=job.model,
                    ))

                job.response = response
                job.status = JobStatus.SUCCEEDED
                logger.info("Operation %s succeeded after %d poll(s)", job.handle.name, job.polls)
                return
        except asyncio.CancelledError:
            job.status = JobStatus.FAILED
            job.last_error = "task cancelled"
            logger.warning("Polling for %s cancelled", job.handle.name)
            raise
