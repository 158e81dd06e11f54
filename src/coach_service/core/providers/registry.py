"""Provider dispatch table, catalog and the process-wide provider instance.

The provider is chosen once at startup from configuration and shared by
every request, the same way the speech endpoint receives it.
"""

import logging
from typing import Dict, Optional, Type

import httpx

from coach_service.config import Settings
from coach_service.core.providers.assemblyai import AssemblyAIProvider
from coach_service.core.providers.base import (
    ProviderConfig,
    ProviderId,
    TranscriptionProvider,
)
from coach_service.core.providers.browser import BrowserProvider
from coach_service.core.providers.deepgram import DeepgramProvider
from coach_service.core.providers.gemini import GeminiTranscriptionProvider
from coach_service.core.providers.google import GoogleSpeechProvider
from coach_service.core.providers.whisper import WhisperProvider

logger = logging.getLogger(__name__)

PROVIDERS: Dict[ProviderId, Type] = {
    ProviderId.ASSEMBLYAI: AssemblyAIProvider,
    ProviderId.DEEPGRAM: DeepgramProvider,
    ProviderId.WHISPER: WhisperProvider,
    ProviderId.GOOGLE: GoogleSpeechProvider,
    ProviderId.BROWSER: BrowserProvider,
    ProviderId.GEMINI: GeminiTranscriptionProvider,
}

PROVIDER_INFO: Dict[str, dict] = {
    ProviderId.BROWSER.value: {
        "name": "Web Speech API (Browser)",
        "free": True,
        "realtime": True,
        "requiresBackend": False,
        "accuracy": "Medium",
        "setup": "No setup required - works in browser",
    },
    ProviderId.ASSEMBLYAI.value: {
        "name": "AssemblyAI",
        "free": "$50 free credit",
        "realtime": True,
        "requiresBackend": True,
        "accuracy": "Very High",
        "setup": "Sign up at https://www.assemblyai.com/",
        "pricing": "$0.015/minute",
    },
    ProviderId.DEEPGRAM.value: {
        "name": "Deepgram",
        "free": "$200 free credit",
        "realtime": True,
        "requiresBackend": True,
        "accuracy": "High",
        "setup": "Sign up at https://deepgram.com/",
        "pricing": "$0.0043/minute",
    },
    ProviderId.WHISPER.value: {
        "name": "OpenAI Whisper",
        "free": False,
        "realtime": False,
        "requiresBackend": True,
        "accuracy": "High",
        "setup": "Get API key at https://platform.openai.com/",
        "pricing": "$0.006/minute",
    },
    ProviderId.GOOGLE.value: {
        "name": "Google Cloud Speech-to-Text",
        "free": "60 minutes/month for 12 months",
        "realtime": True,
        "requiresBackend": True,
        "accuracy": "High",
        "setup": "Set up at https://cloud.google.com/speech-to-text",
        "pricing": "$0.006/15 seconds",
    },
    ProviderId.GEMINI.value: {
        "name": "Google Gemini (audio understanding)",
        "free": "Free tier with rate limits",
        "realtime": False,
        "requiresBackend": True,
        "accuracy": "High",
        "setup": "Get API key at https://aistudio.google.com/",
    },
}

_provider: Optional[TranscriptionProvider] = None


def requires_credential(provider_id: ProviderId) -> bool:
    return provider_id != ProviderId.BROWSER


def provider_config_from_settings(config: Settings) -> ProviderConfig:
    """Build the deployment's ProviderConfig. Raises ValueError on an unknown id."""
    try:
        provider_id = ProviderId(config.speech_provider.strip().lower())
    except ValueError:
        known = ", ".join(p.value for p in ProviderId)
        raise ValueError(
            f"Unknown speech provider '{config.speech_provider}'. Expected one of: {known}"
        ) from None

    return ProviderConfig(
        provider_id=provider_id,
        credential=config.speech_api_key,
        language_hint=config.speech_language,
        timeout_seconds=config.provider_timeout_seconds,
        poll_interval_seconds=config.poll_interval_seconds,
        max_poll_attempts=config.max_poll_attempts,
    )


def create_provider(
    config: ProviderConfig, client: Optional[httpx.AsyncClient] = None
) -> TranscriptionProvider:
    """Instantiate the adapter registered for config.provider_id."""
    return PROVIDERS[config.provider_id](config, client)


def init_provider(config: Settings, client: Optional[httpx.AsyncClient] = None) -> TranscriptionProvider:
    """
    Create the deployment's provider. Called once at app startup.

    Args:
        config: Application settings
        client: Shared HTTP client

    Returns:
        The configured provider
    """
    global _provider

    provider_config = provider_config_from_settings(config)
    _provider = create_provider(provider_config, client)

    if requires_credential(provider_config.provider_id) and not provider_config.credential:
        logger.warning(
            f"Speech provider '{provider_config.provider_id.value}' selected "
            f"without COACH_SPEECH_API_KEY; transcription requests will fail"
        )
    else:
        logger.info(f"Speech provider: {provider_config.provider_id.value}")
    return _provider


def get_provider() -> TranscriptionProvider:
    """
    Get the shared provider (FastAPI dependency).

    Raises:
        RuntimeError: If the provider has not been initialized
    """
    if _provider is None:
        raise RuntimeError("Speech provider not initialized. Call init_provider() first.")
    return _provider


def _reset_provider() -> None:
    """Reset provider to uninitialized state. For testing only."""
    global _provider
    _provider = None
