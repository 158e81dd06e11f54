"""Batch speech-to-text provider adapters."""

from coach_service.core.providers.base import (
    HTTPTranscriptionProvider,
    ProviderConfig,
    ProviderId,
    TranscriptionProvider,
)
from coach_service.core.providers.registry import (
    PROVIDER_INFO,
    PROVIDERS,
    create_provider,
    get_provider,
    init_provider,
)

__all__ = [
    "HTTPTranscriptionProvider",
    "PROVIDER_INFO",
    "PROVIDERS",
    "ProviderConfig",
    "ProviderId",
    "TranscriptionProvider",
    "create_provider",
    "get_provider",
    "init_provider",
]
