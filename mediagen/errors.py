"""Typed failure taxonomy for the generation core.

Every stage raises a subclass of ``GenerationError``; the orchestrator turns
the first one raised into the terminal ``failed`` progress event.
"""

from __future__ import annotations

import enum
from typing import Any


class ErrorKind(str, enum.Enum):
    """Top-level failure categories."""

    VALIDATION = "validation"
    INGESTION = "ingestion"
    ROUTING = "routing"
    PROVIDER_CALL = "provider_call"
    PROVIDER_REJECTED = "provider_rejected"
    POLL_TRANSIENT = "poll_transient"
    TIMEOUT = "timeout"
    SAFETY_FILTERED = "safety_filtered"
    EXTRACTION = "extraction"
    CANCELLED = "cancelled"


class ValidationReason(str, enum.Enum):
    UNKNOWN_MODEL = "unknown_model"
    KIND_MISMATCH = "kind_mismatch"
    EMPTY_PROMPT = "empty_prompt"
    MISSING_REQUIRED_INPUT = "missing_required_input"
    TOO_MANY_INPUTS = "too_many_inputs"


class GenerationError(Exception):
    """Base error carrying the failing provider/model for diagnostics."""

    kind: ErrorKind = ErrorKind.PROVIDER_CALL
    retriable: bool = False

    def __init__(
        self,
        message: str,
        *,
        provider: str | None = None,
        model: str | None = None,
    ):
        super().__init__(message)
        self.message = message
        self.provider = provider
        self.model = model

    def __str__(self) -> str:
        prefix = f"[{self.kind.value}]"
        if self.model:
            prefix += f" {self.model}:"
        return f"{prefix} {self.message}"


class ValidationError(GenerationError):
    """Bad or missing input; never retried."""

    kind = ErrorKind.VALIDATION

    def __init__(self, message: str, reason: ValidationReason, **kwargs: Any):
        super().__init__(message, **kwargs)
        self.reason = reason


class IngestionError(GenerationError):
    """A reference part could not be uploaded."""

    kind = ErrorKind.INGESTION
    retriable = True

    def __init__(self, message: str, *, role: str, position: int, **kwargs: Any):
        super().__init__(message, **kwargs)
        self.role = role
        self.position = position


class RoutingError(GenerationError):
    """No provider adapter serves the model (configuration error)."""

    kind = ErrorKind.ROUTING
    reason = "unsupported_model"


class ProviderCallError(GenerationError):
    """Network/HTTP failure talking to a provider."""

    kind = ErrorKind.PROVIDER_CALL

    def __init__(
        self,
        message: str,
        *,
        status_code: int = 0,
        retriable: bool = False,
        **kwargs: Any,
    ):
        super().__init__(message, **kwargs)
        self.status_code = status_code
        self.retriable = retriable


class OperationFailedError(GenerationError):
    """Long-running operation finished with a provider-reported error."""

    kind = ErrorKind.PROVIDER_REJECTED


class PollTransientError(GenerationError):
    """A single status check failed; absorbed by the poller."""

    kind = ErrorKind.POLL_TRANSIENT
    retriable = True


class PollTimeoutError(GenerationError):
    """The operation did not reach a terminal state in time."""

    kind = ErrorKind.TIMEOUT
    retriable = True

    def __init__(self, message: str, *, poll_errors: int = 0, **kwargs: Any):
        super().__init__(message, **kwargs)
        self.poll_errors = poll_errors


class SafetyFilteredError(GenerationError):
    """Provider blocked the output for policy reasons."""

    kind = ErrorKind.SAFETY_FILTERED

    def __init__(self, message: str, *, reasons: list[str] | None = None, **kwargs: Any):
        super().__init__(message, **kwargs)
        self.reasons = list(reasons or [])


class ExtractionError(GenerationError):
    """Response carried no recognizable media; likely a contract change."""

    kind = ErrorKind.EXTRACTION
    reason = "no_media_found"

    def __init__(self, message: str, *, raw: Any = None, **kwargs: Any):
        super().__init__(message, **kwargs)
        self.raw = raw


class CancelledError(GenerationError):
    """Caller cancelled the request or its deadline passed."""

    kind = ErrorKind.CANCELLED
