"""Gemini provider: transcription through generateContent with inline audio."""

import base64

from coach_service.core import audio_utils
from coach_service.core.generation import GEMINI_API_BASE, response_text
from coach_service.core.providers.base import HTTPTranscriptionProvider, ProviderId
from coach_service.core.transcript import TranscribeOptions, TranscriptionResult

TRANSCRIBE_PROMPT = (
    "Transcribe the speech in this audio verbatim in {language}. "
    "Return only the transcript text. If nothing is said, return an empty response."
)


class GeminiTranscriptionProvider(HTTPTranscriptionProvider):
    """Single call; confidence is unknown."""

    provider_id = ProviderId.GEMINI
    display_name = "Gemini"
    supported_encodings = frozenset({
        audio_utils.WAV,
        audio_utils.MP3,
        audio_utils.OGG,
        audio_utils.FLAC,
    })

    model: str = "gemini-2.0-flash"

    async def _transcribe(
        self,
        audio: bytes,
        encoding: str,
        language: str,
        options: TranscribeOptions,
    ) -> TranscriptionResult:
        response = await self._client.post(
            f"{GEMINI_API_BASE}/models/{self.model}:generateContent",
            params={"key": self.config.credential},
            json={
                "contents": [{
                    "role": "user",
                    "parts": [
                        {"inline_data": {
                            "mime_type": encoding,
                            "data": base64.b64encode(audio).decode("ascii"),
                        }},
                        {"text": TRANSCRIBE_PROMPT.format(language=language)},
                    ],
                }],
                "generationConfig": {"temperature": 0.0},
            },
        )
        response.raise_for_status()

        return TranscriptionResult(
            text=response_text(response.json()).strip(),
            provider_id=self.provider_id.value,
            confidence=None,
        )
