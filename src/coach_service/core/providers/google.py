"""Google Cloud Speech-to-Text provider (REST recognize, single call)."""

import base64

from coach_service.core import audio_utils
from coach_service.core.providers.base import HTTPTranscriptionProvider, ProviderId
from coach_service.core.transcript import TranscribeOptions, TranscriptionResult

RECOGNIZE_URL = "https://speech.googleapis.com/v1/speech:recognize"

_GOOGLE_ENCODINGS = {
    audio_utils.WAV: "LINEAR16",
    audio_utils.FLAC: "FLAC",
    audio_utils.OGG: "OGG_OPUS",
    audio_utils.WEBM: "WEBM_OPUS",
}


class GoogleSpeechProvider(HTTPTranscriptionProvider):
    """No results means nothing was said: empty text, not an error."""

    provider_id = ProviderId.GOOGLE
    display_name = "Google Cloud Speech-to-Text"
    supported_encodings = frozenset(_GOOGLE_ENCODINGS)

    async def _transcribe(
        self,
        audio: bytes,
        encoding: str,
        language: str,
        options: TranscribeOptions,
    ) -> TranscriptionResult:
        config = {
            "encoding": _GOOGLE_ENCODINGS[encoding],
            "languageCode": language,
            "enableAutomaticPunctuation": True,
            "enableWordTimeOffsets": options.timestamps,
        }
        if encoding == audio_utils.WAV:
            config["sampleRateHertz"] = audio_utils.wav_sample_rate(audio) or 16000
        if options.diarization:
            config["diarizationConfig"] = {
                "enableSpeakerDiarization": True,
                "minSpeakerCount": 1,
                "maxSpeakerCount": 6,
            }

        response = await self._client.post(
            RECOGNIZE_URL,
            params={"key": self.config.credential},
            json={
                "config": config,
                "audio": {"content": base64.b64encode(audio).decode("ascii")},
            },
        )
        response.raise_for_status()

        results = response.json().get("results") or []
        if not results:
            return TranscriptionResult(text="", provider_id=self.provider_id.value)

        # Each result covers a consecutive stretch of audio
        best = [r["alternatives"][0] for r in results if r.get("alternatives")]
        text = " ".join(a.get("transcript", "").strip() for a in best).strip()
        confidences = [a["confidence"] for a in best if "confidence" in a]
        words = [w for a in best for w in a.get("words", [])]

        return TranscriptionResult(
            text=text,
            provider_id=self.provider_id.value,
            confidence=sum(confidences) / len(confidences) if confidences else None,
            words=words,
        )
