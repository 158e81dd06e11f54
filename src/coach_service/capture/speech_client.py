"""Client for the backend speech endpoints."""

import logging
from typing import Any, Dict, Optional

import httpx

from coach_service.core.errors import ErrorKind
from coach_service.core.providers.base import status_error_kind
from coach_service.core.transcript import TranscribeOptions, TranscriptionResult

logger = logging.getLogger(__name__)

_FILENAMES = {
    "audio/wav": "recording.wav",
    "audio/webm": "recording.webm",
    "audio/ogg": "recording.ogg",
    "audio/flac": "recording.flac",
    "audio/mpeg": "recording.mp3",
    "audio/mp4": "recording.m4a",
}


class SpeechApiClient:
    """
    Posts captured audio to /api/speech/transcribe.

    transcribe() never raises: transport and server failures come back as a
    TranscriptionResult with error set, so the caller can fall back to the
    interim transcript.
    """

    def __init__(self, client: httpx.AsyncClient, base_url: str):
        self._client = client
        self._base_url = base_url.rstrip("/")

    async def transcribe(
        self,
        audio: bytes,
        mime_type: str = "audio/wav",
        options: Optional[TranscribeOptions] = None,
    ) -> TranscriptionResult:
        options = options or TranscribeOptions()
        data = {
            "diarization": str(options.diarization).lower(),
            "timestamps": str(options.timestamps).lower(),
        }
        if options.language_hint:
            data["language"] = options.language_hint

        filename = _FILENAMES.get(mime_type, "recording.bin")
        try:
            response = await self._client.post(
                f"{self._base_url}/api/speech/transcribe",
                data=data,
                files={"audio": (filename, audio, mime_type)},
            )
        except httpx.TimeoutException as e:
            logger.warning(f"Speech backend timed out: {e}")
            return TranscriptionResult.failure("backend", ErrorKind.REQUEST_TIMEOUT, str(e) or "timeout")
        except httpx.TransportError as e:
            logger.warning(f"Speech backend unreachable: {e}")
            return TranscriptionResult.failure("backend", ErrorKind.NETWORK_UNAVAILABLE, str(e) or "unreachable")

        try:
            body = response.json()
        except ValueError:
            body = {}
        if not isinstance(body, dict):
            body = {}

        provider = body.get("provider") or "backend"
        if response.is_error or not body.get("success"):
            kind = _error_kind(body.get("error"), response.status_code)
            message = body.get("message") or body.get("detail") or response.reason_phrase
            logger.warning(f"Backend transcription failed ({response.status_code}): {message}")
            return TranscriptionResult.failure(provider, kind, str(message), body.get("encoding"))

        return TranscriptionResult(
            text=body.get("text") or "",
            provider_id=provider,
            confidence=body.get("confidence"),
            encoding=body.get("encoding"),
            language=body.get("language"),
            words=body.get("words") or [],
            speakers=body.get("speakers") or [],
        )

    async def get_config(self) -> Dict[str, Any]:
        """Fetch /api/speech/config. Raises httpx errors."""
        response = await self._client.get(f"{self._base_url}/api/speech/config")
        response.raise_for_status()
        return response.json()


def _error_kind(value: Any, status: int) -> ErrorKind:
    try:
        return ErrorKind(value)
    except ValueError:
        if status >= 400:
            return status_error_kind(status)
        return ErrorKind.TRANSCRIPTION_FAILED
