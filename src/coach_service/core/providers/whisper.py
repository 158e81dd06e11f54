"""OpenAI Whisper provider (single multipart call)."""

from coach_service.core import audio_utils
from coach_service.core.providers.base import HTTPTranscriptionProvider, ProviderId
from coach_service.core.transcript import TranscribeOptions, TranscriptionResult

TRANSCRIPTIONS_URL = "https://api.openai.com/v1/audio/transcriptions"

_EXTENSIONS = {
    audio_utils.WAV: "wav",
    audio_utils.WEBM: "webm",
    audio_utils.OGG: "ogg",
    audio_utils.FLAC: "flac",
    audio_utils.MP3: "mp3",
    audio_utils.MP4: "m4a",
}


class WhisperProvider(HTTPTranscriptionProvider):
    """Whisper reports no confidence, so confidence is left unknown."""

    provider_id = ProviderId.WHISPER
    display_name = "OpenAI Whisper"
    supported_encodings = frozenset(_EXTENSIONS)

    model: str = "whisper-1"

    async def _transcribe(
        self,
        audio: bytes,
        encoding: str,
        language: str,
        options: TranscribeOptions,
    ) -> TranscriptionResult:
        data = {
            "model": self.model,
            "language": language.split("-")[0],  # "en" from "en-US"
            "response_format": "verbose_json",
        }
        if options.timestamps:
            data["timestamp_granularities[]"] = "word"

        response = await self._client.post(
            TRANSCRIPTIONS_URL,
            headers={"Authorization": f"Bearer {self.config.credential}"},
            data=data,
            files={"file": (f"audio.{_EXTENSIONS[encoding]}", audio, encoding)},
        )
        response.raise_for_status()
        body = response.json()

        return TranscriptionResult(
            text=(body.get("text") or "").strip(),
            provider_id=self.provider_id.value,
            confidence=None,
            language=body.get("language"),
            words=body.get("words") or body.get("segments") or [],
        )
