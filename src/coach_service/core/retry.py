"""Retry policy and failure classification for generation requests."""

import asyncio
from dataclasses import dataclass
from typing import List

import httpx

from coach_service.core.errors import ErrorKind, ExhaustionKind, GenerationError

# Message fragments providers use for transient overload
_OVERLOAD_MARKERS = ("overloaded", "UNAVAILABLE", "try again later")
_QUOTA_MARKERS = ("quota", "RESOURCE_EXHAUSTED", "billing")

RETRYABLE_KINDS = frozenset({
    ErrorKind.PROVIDER_UNAVAILABLE,
    ErrorKind.REQUEST_TIMEOUT,
})


@dataclass(frozen=True)
class RetryPolicy:
    """Backoff schedule applied to each model candidate."""

    retries: int = 2
    initial_delay_ms: int = 400
    per_attempt_timeout_ms: int = 7000

    def __post_init__(self):
        if self.retries < 0:
            raise ValueError(f"Invalid retries: {self.retries}")
        if self.initial_delay_ms <= 0:
            raise ValueError(f"Invalid initial delay: {self.initial_delay_ms}")
        if self.per_attempt_timeout_ms <= 0:
            raise ValueError(f"Invalid per-attempt timeout: {self.per_attempt_timeout_ms}")

    @property
    def max_attempts(self) -> int:
        """Attempts allowed per model."""
        return self.retries + 1

    @property
    def per_attempt_timeout_s(self) -> float:
        return self.per_attempt_timeout_ms / 1000

    def backoff_schedule(self) -> List[int]:
        """Delays (ms) slept between consecutive attempts on one model."""
        return [self.initial_delay_ms * (2 ** i) for i in range(self.retries)]


@dataclass(frozen=True)
class Classification:
    """Outcome of classifying one failed attempt."""

    kind: ErrorKind
    retryable: bool


def classify_error(error: BaseException) -> Classification:
    """
    Classify a failed attempt.

    Overload, unavailability and timeouts are retryable on the same model.
    Everything else (rate limits, quota, auth, schema, malformed request,
    unknown) abandons the model immediately.

    Args:
        error: Exception raised by the attempt (or the timeout)

    Returns:
        Classification with the error kind and retryability
    """
    kind = _kind_for(error)
    return Classification(kind=kind, retryable=kind in RETRYABLE_KINDS)


def _kind_for(error: BaseException) -> ErrorKind:
    if isinstance(error, (asyncio.TimeoutError, httpx.TimeoutException)):
        return ErrorKind.REQUEST_TIMEOUT
    if isinstance(error, httpx.TransportError):
        return ErrorKind.NETWORK_UNAVAILABLE

    message = str(error)
    status = None
    if isinstance(error, GenerationError):
        status = error.status
        message = f"{message} {error.status_text}"
    elif isinstance(error, httpx.HTTPStatusError):
        status = error.response.status_code

    is_quota = any(m.lower() in message.lower() for m in _QUOTA_MARKERS)
    if status == 429:
        return ErrorKind.QUOTA_EXCEEDED if is_quota else ErrorKind.PROVIDER_RATE_LIMITED
    if status in (500, 502, 503, 504) or any(m in message for m in _OVERLOAD_MARKERS):
        return ErrorKind.PROVIDER_UNAVAILABLE
    if is_quota:
        return ErrorKind.QUOTA_EXCEEDED
    if status is not None and 400 <= status < 500:
        return ErrorKind.SCHEMA_OR_AUTH_ERROR
    if isinstance(error, (ValueError, KeyError, TypeError)):
        return ErrorKind.SCHEMA_OR_AUTH_ERROR
    return ErrorKind.UNKNOWN


def exhaustion_kind(kind: ErrorKind) -> ExhaustionKind:
    """Collapse the last attempt's ErrorKind into the user-facing taxonomy."""
    if kind in (ErrorKind.PROVIDER_RATE_LIMITED, ErrorKind.PROVIDER_UNAVAILABLE):
        return ExhaustionKind.RATE_LIMITED
    if kind == ErrorKind.QUOTA_EXCEEDED:
        return ExhaustionKind.QUOTA_EXCEEDED
    if kind in (ErrorKind.NETWORK_UNAVAILABLE, ErrorKind.REQUEST_TIMEOUT):
        return ExhaustionKind.NETWORK_UNAVAILABLE
    return ExhaustionKind.UNKNOWN
