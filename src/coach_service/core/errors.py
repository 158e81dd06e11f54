"""Error taxonomy, user-facing messages and exception types.

Every failure the core surfaces carries an ErrorKind. Exhaustion of the
generation dispatcher is further collapsed into a small ExhaustionKind
taxonomy so callers never see provider-specific codes.
"""

from enum import Enum
from typing import Optional


class ErrorKind(str, Enum):
    """Classified failure (or terminal condition) kinds."""

    PERMISSION_DENIED = "permission_denied"
    DEVICE_NOT_FOUND = "device_not_found"
    NETWORK_UNAVAILABLE = "network_unavailable"
    PROVIDER_RATE_LIMITED = "provider_rate_limited"
    QUOTA_EXCEEDED = "quota_exceeded"
    PROVIDER_UNAVAILABLE = "provider_unavailable"
    REQUEST_TIMEOUT = "request_timeout"
    POLLING_TIMEOUT = "polling_timeout"
    EMPTY_TRANSCRIPT = "empty_transcript"  # valid terminal state, not an error
    UNSUPPORTED_ENCODING = "unsupported_encoding"
    SCHEMA_OR_AUTH_ERROR = "schema_or_auth_error"
    PROVIDER_NOT_CONFIGURED = "provider_not_configured"
    TRANSCRIPTION_FAILED = "transcription_failed"
    UNKNOWN = "unknown"


class ExhaustionKind(str, Enum):
    """User-facing classification once every model/key/retry is spent."""

    RATE_LIMITED = "rate_limited"
    QUOTA_EXCEEDED = "quota_exceeded"
    NETWORK_UNAVAILABLE = "network_unavailable"
    UNKNOWN = "unknown"


ERROR_MESSAGES = {
    ErrorKind.PERMISSION_DENIED: "Microphone access is blocked. Allow microphone permission and try again.",
    ErrorKind.DEVICE_NOT_FOUND: "No microphone found. Connect a microphone and try again.",
    ErrorKind.NETWORK_UNAVAILABLE: "Network connection failed. Check your connection and try again.",
    ErrorKind.PROVIDER_RATE_LIMITED: "The service is busy right now. Please try again in a moment.",
    ErrorKind.QUOTA_EXCEEDED: "The service is busy right now. Please try again later.",
    ErrorKind.PROVIDER_UNAVAILABLE: "The service is busy right now. Please try again in a moment.",
    ErrorKind.REQUEST_TIMEOUT: "The request took too long. Please try again.",
    ErrorKind.POLLING_TIMEOUT: "Transcription is taking too long. Please try again.",
    ErrorKind.EMPTY_TRANSCRIPT: "We didn't catch anything. Try speaking again.",
    ErrorKind.UNSUPPORTED_ENCODING: "This audio format is not supported.",
    ErrorKind.SCHEMA_OR_AUTH_ERROR: "The request could not be processed.",
    ErrorKind.PROVIDER_NOT_CONFIGURED: "Speech transcription is not configured on the server.",
    ErrorKind.TRANSCRIPTION_FAILED: "Transcription failed. Please try again.",
    ErrorKind.UNKNOWN: "Something went wrong. Please try again.",
}

EXHAUSTION_MESSAGES = {
    ExhaustionKind.RATE_LIMITED: "The service is busy right now. Please try again in a moment.",
    ExhaustionKind.QUOTA_EXCEEDED: "The service is busy right now. Please try again later.",
    ExhaustionKind.NETWORK_UNAVAILABLE: "Could not reach the feedback service. Check your connection and try again.",
    ExhaustionKind.UNKNOWN: "Something went wrong while generating feedback. Please try again.",
}


def user_message(kind) -> str:
    """Return the user-facing message for an ErrorKind or ExhaustionKind."""
    if isinstance(kind, ExhaustionKind):
        return EXHAUSTION_MESSAGES[kind]
    return ERROR_MESSAGES.get(kind, ERROR_MESSAGES[ErrorKind.UNKNOWN])


class CoachError(Exception):
    """Base class for classified errors raised by the core."""

    def __init__(self, kind: ErrorKind, message: str = ""):
        super().__init__(message or user_message(kind))
        self.kind = kind


class CaptureError(CoachError):
    """Raised when the microphone cannot be acquired or fails mid-capture."""

    pass


class ProviderError(CoachError):
    """Raised inside provider adapters; converted to TranscriptionResult.error."""

    pass


class GenerationError(Exception):
    """Raised by generation transports for a failed generate-content call."""

    def __init__(self, message: str, status: Optional[int] = None, status_text: str = ""):
        super().__init__(message)
        self.status = status
        self.status_text = status_text


class ExhaustedError(Exception):
    """Raised when every candidate model (and key) has been tried."""

    def __init__(
        self,
        kind: ExhaustionKind,
        cause_kind: Optional[ErrorKind] = None,
        last_error: Optional[BaseException] = None,
        attempts: int = 0,
    ):
        super().__init__(user_message(kind))
        self.kind = kind
        self.cause_kind = cause_kind
        self.last_error = last_error
        self.attempts = attempts


class SubmissionInProgress(Exception):
    """Raised when a submission is requested while another is in flight."""

    pass


class NoCredentialsError(Exception):
    """Raised when a KeyPool has no usable credential."""

    pass
