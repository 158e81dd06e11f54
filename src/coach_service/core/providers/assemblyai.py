"""AssemblyAI provider: upload, request a transcript, poll until terminal."""

import asyncio
import logging

from coach_service.core import audio_utils
from coach_service.core.errors import ErrorKind, ProviderError
from coach_service.core.providers.base import HTTPTranscriptionProvider, ProviderId
from coach_service.core.transcript import TranscribeOptions, TranscriptionResult

logger = logging.getLogger(__name__)

API_BASE = "https://api.assemblyai.com/v2"


class AssemblyAIProvider(HTTPTranscriptionProvider):
    """
    Upload-then-poll provider.

    Terminal statuses are "completed" (text may be empty) and "error".
    Running out of poll attempts while still queued/processing is a
    PollingTimeout, never empty text.
    """

    provider_id = ProviderId.ASSEMBLYAI
    display_name = "AssemblyAI"
    supported_encodings = frozenset({
        audio_utils.WAV,
        audio_utils.WEBM,
        audio_utils.OGG,
        audio_utils.FLAC,
        audio_utils.MP3,
        audio_utils.MP4,
    })

    async def _transcribe(
        self,
        audio: bytes,
        encoding: str,
        language: str,
        options: TranscribeOptions,
    ) -> TranscriptionResult:
        headers = {"authorization": self.config.credential}

        upload_url = await self._upload(audio, headers)

        response = await self._client.post(
            f"{API_BASE}/transcript",
            headers=headers,
            json={
                "audio_url": upload_url,
                "language_code": _language_code(language),
                "punctuate": True,
                "format_text": True,
                "speaker_labels": options.diarization,
            },
        )
        response.raise_for_status()
        transcript_id = response.json()["id"]

        transcript = await self._poll(transcript_id, headers)

        return TranscriptionResult(
            text=transcript.get("text") or "",
            provider_id=self.provider_id.value,
            confidence=transcript.get("confidence"),
            language=transcript.get("language_code"),
            words=transcript.get("words") or [],
            speakers=transcript.get("utterances") or [],
        )

    async def _upload(self, audio: bytes, headers: dict) -> str:
        response = await self._client.post(
            f"{API_BASE}/upload",
            headers={**headers, "content-type": "application/octet-stream"},
            content=audio,
        )
        response.raise_for_status()
        return response.json()["upload_url"]

    async def _poll(self, transcript_id: str, headers: dict) -> dict:
        """Poll the transcript status on a fixed interval, bounded by max_poll_attempts."""
        polling_url = f"{API_BASE}/transcript/{transcript_id}"

        for attempt in range(self.config.max_poll_attempts):
            response = await self._client.get(polling_url, headers=headers)
            response.raise_for_status()
            data = response.json()
            status = data.get("status")

            if status == "completed":
                return data
            if status == "error":
                raise ProviderError(
                    ErrorKind.TRANSCRIPTION_FAILED,
                    f"AssemblyAI transcription failed: {data.get('error', 'unknown error')}",
                )

            logger.debug(f"Transcript {transcript_id} {status} (poll {attempt + 1})")
            if attempt + 1 < self.config.max_poll_attempts:
                await asyncio.sleep(self.config.poll_interval_seconds)

        raise ProviderError(
            ErrorKind.POLLING_TIMEOUT,
            f"AssemblyAI transcript {transcript_id} still processing after "
            f"{self.config.max_poll_attempts} polls",
        )


def _language_code(language: str) -> str:
    # AssemblyAI wants "en_us" style codes for regional variants, plain "en" otherwise
    code = language.replace("-", "_").lower()
    return code if code in ("en_us", "en_au", "en_uk") else code.split("_", 1)[0]
