"""Transcription provider protocol and shared HTTP adapter behaviour.

Defines the interface every batch speech-to-text provider implements so
the speech endpoint can treat them polymorphically.
"""

import logging
from dataclasses import dataclass
from enum import Enum
from typing import FrozenSet, Optional, Protocol, runtime_checkable

import httpx

from coach_service.core.audio_utils import detect_encoding
from coach_service.core.errors import ErrorKind, ProviderError
from coach_service.core.transcript import TranscribeOptions, TranscriptionResult

logger = logging.getLogger(__name__)


class ProviderId(str, Enum):
    """Supported speech-to-text providers."""

    ASSEMBLYAI = "assemblyai"
    DEEPGRAM = "deepgram"
    WHISPER = "whisper"
    GOOGLE = "google"
    BROWSER = "browser"
    GEMINI = "gemini"


@dataclass(frozen=True)
class ProviderConfig:
    """Deployment-time provider selection."""

    provider_id: ProviderId
    credential: str = ""
    language_hint: str = "en-US"
    timeout_seconds: float = 30.0
    poll_interval_seconds: float = 1.0
    max_poll_attempts: int = 60


@runtime_checkable
class TranscriptionProvider(Protocol):
    """Protocol for batch transcription providers."""

    provider_id: ProviderId

    async def transcribe(
        self,
        audio: bytes,
        mime_type: Optional[str] = None,
        options: Optional[TranscribeOptions] = None,
    ) -> TranscriptionResult:
        """Transcribe a complete audio payload. Never raises for provider failures."""
        ...


class HTTPTranscriptionProvider:
    """
    Base class for providers reached over HTTP.

    Subclasses implement _transcribe() and may raise ProviderError or let
    httpx errors escape; transcribe() converts every failure into a
    TranscriptionResult with error set, so empty text and failure stay
    distinguishable.
    """

    provider_id: ProviderId
    display_name: str = ""
    supported_encodings: FrozenSet[str] = frozenset()

    def __init__(self, config: ProviderConfig, client: Optional[httpx.AsyncClient] = None):
        """
        Initialize provider.

        Args:
            config: Deployment-time provider configuration
            client: Shared HTTP client (a private one is created if omitted)
        """
        self.config = config
        self._owns_client = client is None
        self._client = client or httpx.AsyncClient(timeout=config.timeout_seconds)

    async def transcribe(
        self,
        audio: bytes,
        mime_type: Optional[str] = None,
        options: Optional[TranscribeOptions] = None,
    ) -> TranscriptionResult:
        options = options or TranscribeOptions()
        encoding = detect_encoding(audio, mime_type)
        pid = self.provider_id.value

        if encoding not in self.supported_encodings:
            message = (
                f"{self.display_name} cannot decode {encoding or 'unknown encoding'} "
                f"(declared {mime_type or 'none'}); supported: "
                f"{', '.join(sorted(self.supported_encodings))}"
            )
            logger.warning(message)
            return TranscriptionResult.failure(pid, ErrorKind.UNSUPPORTED_ENCODING, message, encoding)

        if not self.config.credential:
            return TranscriptionResult.failure(
                pid,
                ErrorKind.PROVIDER_NOT_CONFIGURED,
                f"{self.display_name} API key required",
                encoding,
            )

        language = options.language_hint or self.config.language_hint
        logger.info(f"Transcribing {len(audio)} bytes of {encoding} with {pid} ({language})")

        try:
            result = await self._transcribe(audio, encoding, language, options)
        except ProviderError as e:
            logger.warning(f"{pid} transcription failed: {e.kind.value}: {e}")
            return TranscriptionResult.failure(pid, e.kind, str(e), encoding)
        except httpx.TimeoutException as e:
            logger.warning(f"{pid} request timed out: {e}")
            return TranscriptionResult.failure(pid, ErrorKind.REQUEST_TIMEOUT, f"{self.display_name} request timed out", encoding)
        except httpx.HTTPStatusError as e:
            kind = status_error_kind(e.response.status_code)
            message = f"{self.display_name} returned {e.response.status_code}: {_error_text(e.response)}"
            logger.warning(message)
            return TranscriptionResult.failure(pid, kind, message, encoding)
        except httpx.TransportError as e:
            logger.warning(f"{pid} unreachable: {e}")
            return TranscriptionResult.failure(pid, ErrorKind.NETWORK_UNAVAILABLE, f"{self.display_name} unreachable", encoding)
        except (KeyError, IndexError, TypeError, ValueError) as e:
            logger.warning(f"{pid} returned an unexpected response: {e!r}")
            return TranscriptionResult.failure(pid, ErrorKind.TRANSCRIPTION_FAILED, f"Unexpected {self.display_name} response", encoding)

        result.encoding = encoding
        result.language = result.language or language
        return result

    async def _transcribe(
        self,
        audio: bytes,
        encoding: str,
        language: str,
        options: TranscribeOptions,
    ) -> TranscriptionResult:
        raise NotImplementedError

    async def aclose(self) -> None:
        if self._owns_client:
            await self._client.aclose()


def status_error_kind(status: int) -> ErrorKind:
    """Map a provider HTTP status to an ErrorKind."""
    if status == 429:
        return ErrorKind.PROVIDER_RATE_LIMITED
    if status == 408:
        return ErrorKind.REQUEST_TIMEOUT
    if status >= 500:
        return ErrorKind.PROVIDER_UNAVAILABLE
    if status == 415:
        return ErrorKind.UNSUPPORTED_ENCODING
    return ErrorKind.SCHEMA_OR_AUTH_ERROR


def _error_text(response: httpx.Response) -> str:
    try:
        return response.text[:200]
    except httpx.ResponseNotRead:
        return ""
