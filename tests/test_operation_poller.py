"""Tests for long-running operation polling"""
import asyncio

import pytest

from conftest import FakeAsyncAdapter
from mediagen.errors import (
    CancelledError,
    OperationFailedError,
    PollTimeoutError,
    ProviderCallError,
    SafetyFilteredError,
)
from mediagen.services.operation_poller import JobStatus, OperationPoller, ProviderJob
from mediagen.services.providers.base import OperationHandle, OperationStatus

DONE = OperationStatus(done=True, response={"generatedVideos": [{"video": {"uri": "gs://v.mp4"}}]})


def _job():
    handle = OperationHandle(provider="veo", model="veo-3.1-generate-preview", name="operations/op-1")
    return ProviderJob(provider="veo", model="veo-3.1-generate-preview", handle=handle)


async def _drain(poller, adapter, job, **kwargs):
    ticks = []
    async for snapshot in poller.track(adapter, job, **kwargs):
        ticks.append((snapshot.status, snapshot.polls, snapshot.progress))
    return ticks


async def test_polls_at_fixed_interval_until_done(poller, fake_sleep):
    adapter = FakeAsyncAdapter([
        OperationStatus(done=False, progress="10"),
        OperationStatus(done=False, progress="60"),
        DONE,
    ])
    job = _job()
    ticks = await _drain(poller, adapter, job)

    assert ticks == [(JobStatus.POLLING, 1, "10"), (JobStatus.POLLING, 2, "60")]
    assert fake_sleep.calls == [10.0, 10.0, 10.0]
    assert job.status is JobStatus.SUCCEEDED
    assert job.response == DONE.response


async def test_transient_poll_errors_are_absorbed(poller):
    adapter = FakeAsyncAdapter([
        ProviderCallError("veo HTTP 503", status_code=503, retriable=True),
        OperationStatus(done=False),
        ProviderCallError("veo transport error", retriable=True),
        DONE,
    ])
    job = _job()
    ticks = await _drain(poller, adapter, job)

    assert len(ticks) == 1
    assert job.poll_errors == 2
    assert job.polls == 4
    assert job.status is JobStatus.SUCCEEDED


async def test_timeout_bounds_polling(clock, fake_sleep):
    poller = OperationPoller(10.0, 35.0, sleep=fake_sleep, clock=clock)
    adapter = FakeAsyncAdapter([ProviderCallError("boom")] * 10)
    job = _job()
    with pytest.raises(PollTimeoutError) as exc:
        await _drain(poller, adapter, job)

    assert fake_sleep.calls == [10.0, 10.0, 10.0, 5.0]
    assert exc.value.poll_errors == 4
    assert job.status is JobStatus.FAILED


async def test_operation_error_fails_the_job(poller):
    adapter = FakeAsyncAdapter([OperationStatus(done=True, error={"code": 3, "message": "bad prompt"})])
    job = _job()
    with pytest.raises(OperationFailedError, match="bad prompt"):
        await _drain(poller, adapter, job)
    assert job.status is JobStatus.FAILED
    assert job.last_error == "Operation failed: bad prompt"


async def test_safety_filtered_completion(poller):
    response = {
        "generateVideoResponse": {
            "raiMediaFilteredCount": 1,
            "raiMediaFilteredReasons": ["Celebrity likeness"],
        }
    }
    adapter = FakeAsyncAdapter([OperationStatus(done=True, response=response)])
    with pytest.raises(SafetyFilteredError) as exc:
        await _drain(poller, adapter, _job())
    assert exc.value.reasons == ["Celebrity likeness"]


async def test_cancel_event_stops_polling(poller):
    cancel = asyncio.Event()
    adapter = FakeAsyncAdapter([OperationStatus(done=False)] * 5)
    job = _job()
    seen = 0
    with pytest.raises(CancelledError):
        async for _ in poller.track(adapter, job, cancel_event=cancel):
            seen += 1
            cancel.set()
    assert seen == 1
    assert adapter.polls == 1
    assert job.status is JobStatus.FAILED


async def test_deadline_cancels(poller, clock):
    adapter = FakeAsyncAdapter([OperationStatus(done=False)] * 10)
    job = _job()
    with pytest.raises(CancelledError, match="deadline"):
        await _drain(poller, adapter, job, deadline=clock.now + 25.0)
    assert adapter.polls == 2


async def test_job_without_handle_is_rejected(poller):
    with pytest.raises(ValueError):
        await _drain(poller, FakeAsyncAdapter([]), ProviderJob(provider="veo", model="m"))


def test_interval_must_be_positive():
    with pytest.raises(ValueError):
        OperationPoller(0, 600)
