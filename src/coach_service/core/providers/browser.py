"""Placeholder provider for deployments that transcribe on the client only."""

from typing import Optional

from coach_service.core.audio_utils import detect_encoding
from coach_service.core.errors import ErrorKind
from coach_service.core.providers.base import ProviderConfig, ProviderId
from coach_service.core.transcript import TranscribeOptions, TranscriptionResult


class BrowserProvider:
    """
    No server-side transcription.

    Every call fails with ProviderNotConfigured so the client falls back to
    its interim transcript.
    """

    provider_id = ProviderId.BROWSER
    display_name = "Client-side recognition"

    def __init__(self, config: ProviderConfig, client=None):
        self.config = config

    async def transcribe(
        self,
        audio: bytes,
        mime_type: Optional[str] = None,
        options: Optional[TranscribeOptions] = None,
    ) -> TranscriptionResult:
        return TranscriptionResult.failure(
            self.provider_id.value,
            ErrorKind.PROVIDER_NOT_CONFIGURED,
            "Speech recognition runs on the client for this deployment",
            detect_encoding(audio, mime_type),
        )

    async def aclose(self) -> None:
        pass
