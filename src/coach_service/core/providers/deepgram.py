"""Deepgram pre-recorded provider (single call)."""

from coach_service.core import audio_utils
from coach_service.core.providers.base import HTTPTranscriptionProvider, ProviderId
from coach_service.core.transcript import TranscribeOptions, TranscriptionResult

LISTEN_URL = "https://api.deepgram.com/v1/listen"


class DeepgramProvider(HTTPTranscriptionProvider):
    """One request, one response. An empty transcript is a success."""

    provider_id = ProviderId.DEEPGRAM
    display_name = "Deepgram"
    supported_encodings = frozenset({
        audio_utils.WAV,
        audio_utils.WEBM,
        audio_utils.OGG,
        audio_utils.FLAC,
        audio_utils.MP3,
        audio_utils.MP4,
    })

    model: str = "nova-2"

    async def _transcribe(
        self,
        audio: bytes,
        encoding: str,
        language: str,
        options: TranscribeOptions,
    ) -> TranscriptionResult:
        response = await self._client.post(
            LISTEN_URL,
            headers={
                "Authorization": f"Token {self.config.credential}",
                "Content-Type": encoding,
            },
            params={
                "model": self.model,
                "language": language,
                "punctuate": "true",
                "diarize": str(options.diarization).lower(),
                "smart_format": "true",
            },
            content=audio,
        )
        response.raise_for_status()

        channels = response.json()["results"]["channels"]
        alternatives = channels[0]["alternatives"] if channels else []
        if not alternatives:
            return TranscriptionResult(text="", provider_id=self.provider_id.value)

        best = alternatives[0]
        return TranscriptionResult(
            text=best.get("transcript") or "",
            provider_id=self.provider_id.value,
            confidence=best.get("confidence"),
            words=best.get("words") or [],
        )
