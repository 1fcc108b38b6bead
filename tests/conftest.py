"""Pytest configuration and shared fakes.

Keeps the project root on `sys.path` so tests import the `mediagen` package
however pytest is invoked, and provides in-memory provider doubles.
"""
import os
import sys

import pytest

ROOT = os.path.abspath(os.path.join(os.path.dirname(__file__), ".."))
if ROOT not in sys.path:
    sys.path.insert(0, ROOT)

from mediagen.config import Settings  # noqa: E402
from mediagen.services.operation_poller import OperationPoller  # noqa: E402
from mediagen.services.providers.base import OperationHandle, OperationStatus  # noqa: E402


class FakeClock:
    """Monotonic clock advanced only by FakeSleep."""

    def __init__(self, start: float = 1000.0):
        self.now = start

    def __call__(self) -> float:
        return self.now


class FakeSleep:
    """Records requested waits and advances the fake clock instantly."""

    def __init__(self, clock: FakeClock):
        self.clock = clock
        self.calls: list[float] = []

    async def __call__(self, seconds: float) -> None:
        self.calls.append(seconds)
        self.clock.now += seconds


class FakeSyncAdapter:
    """Sync provider returning a canned response."""

    def __init__(self, response=None, error: Exception | None = None):
        self.response = response if response is not None else {}
        self.error = error
        self.envelopes = []

    async def call(self, envelope):
        self.envelopes.append(envelope)
        if self.error is not None:
            raise self.error
        return self.response


class FakeAsyncAdapter:
    """Long-running provider replaying a scripted list of poll outcomes.

    Each item is an ``OperationStatus`` or an exception to raise.
    """

    def __init__(self, script, name: str = "operations/op-1"):
        self.script = list(script)
        self.name = name
        self.envelopes = []
        self.polls = 0

    async def start_operation(self, envelope):
        self.envelopes.append(envelope)
        return OperationHandle(provider=envelope.provider, model=envelope.model, name=self.name)

    async def poll_operation(self, handle):
        self.polls += 1
        item = self.script.pop(0) if self.script else OperationStatus(done=False)
        if isinstance(item, Exception):
            raise item
        return item


class FakeStorage:
    """Blob store handing out predictable URLs."""

    def __init__(self):
        self.uploads: list[tuple[bytes, str]] = []

    async def upload(self, data: bytes, mime_type: str) -> str:
        self.uploads.append((data, mime_type))
        return f"https://files.test/{len(self.uploads)}"


@pytest.fixture
def settings():
    """Settings isolated from the developer's environment and .env file."""
    return Settings(
        _env_file=None,
        FAL_KEY="test-fal-key",
        GEMINI_API_KEY="test-gemini-key",
        POLL_INTERVAL_SECONDS=10.0,
        POLL_TIMEOUT_SECONDS=600.0,
    )


@pytest.fixture
def clock():
    return FakeClock()


@pytest.fixture
def fake_sleep(clock):
    return FakeSleep(clock)


@pytest.fixture
def poller(clock, fake_sleep):
    return OperationPoller(10.0, 600.0, sleep=fake_sleep, clock=clock)


@pytest.fixture
def storage():
    return FakeStorage()
