"""Speech-to-text endpoints."""

import logging
from datetime import datetime, timezone
from typing import Optional

from fastapi import APIRouter, File, Form, HTTPException, UploadFile
from fastapi.responses import JSONResponse

from coach_service.config import get_settings
from coach_service.core.errors import ErrorKind
from coach_service.core.providers.registry import PROVIDER_INFO, get_provider, requires_credential
from coach_service.core.transcript import TranscribeOptions

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api/speech", tags=["speech"])

ERROR_STATUS = {
    ErrorKind.UNSUPPORTED_ENCODING: 415,
    ErrorKind.PROVIDER_RATE_LIMITED: 429,
    ErrorKind.QUOTA_EXCEEDED: 429,
    ErrorKind.PROVIDER_UNAVAILABLE: 503,
    ErrorKind.PROVIDER_NOT_CONFIGURED: 503,
    ErrorKind.REQUEST_TIMEOUT: 504,
    ErrorKind.POLLING_TIMEOUT: 504,
}


def _configured() -> tuple:
    provider = get_provider()
    has_key = bool(provider.config.credential)
    configured = not requires_credential(provider.provider_id) or has_key
    return provider.provider_id.value, has_key, configured


@router.post("/transcribe")
async def transcribe(
    audio: Optional[UploadFile] = File(None),
    language: Optional[str] = Form(None),
    diarization: bool = Form(False),
    timestamps: bool = Form(False),
):
    """
    Transcribe an uploaded recording with the deployment's provider.

    Provider failures return success=false with the error kind; empty
    text with success=true means nothing was said.
    """
    if audio is None:
        raise HTTPException(status_code=400, detail="No audio file provided")

    content_type = (audio.content_type or "").lower()
    if not content_type.startswith("audio/"):
        raise HTTPException(status_code=415, detail="Only audio files are allowed")

    max_bytes = get_settings().max_upload_bytes
    data = await audio.read(max_bytes + 1)
    if len(data) > max_bytes:
        raise HTTPException(status_code=413, detail=f"Audio exceeds {max_bytes} bytes")
    if not data:
        raise HTTPException(status_code=400, detail="Empty audio file")

    logger.info(f"Received audio file: {audio.filename} ({len(data)} bytes, {content_type})")

    provider = get_provider()
    options = TranscribeOptions(
        language_hint=language or None,
        diarization=diarization,
        timestamps=timestamps,
    )
    result = await provider.transcribe(data, content_type, options)

    if not result.ok:
        return JSONResponse(
            status_code=ERROR_STATUS.get(result.error, 502),
            content={
                "success": False,
                "error": result.error.value,
                "message": result.error_message,
                "provider": result.provider_id,
                "encoding": result.encoding,
            },
        )

    return {
        "success": True,
        "text": result.text,
        "confidence": result.confidence,
        "provider": result.provider_id,
        "words": result.words,
        "speakers": result.speakers,
        "language": result.language,
        "encoding": result.encoding,
    }


@router.get("/config")
async def config():
    """Current provider, whether it is usable, and the provider catalog."""
    provider_id, has_key, configured = _configured()
    return {
        "currentProvider": provider_id,
        "hasApiKey": has_key,
        "isConfigured": configured,
        "providerInfo": PROVIDER_INFO.get(provider_id),
        "allProviders": PROVIDER_INFO,
    }


@router.get("/health")
async def health():
    provider_id, _, configured = _configured()
    return {
        "status": "ok",
        "provider": provider_id,
        "configured": configured,
        "timestamp": datetime.now(timezone.utc).isoformat(),
    }


@router.post("/test")
async def test_configuration():
    """Quick configuration check, without calling the provider."""
    provider_id, has_key, configured = _configured()

    if not requires_credential(get_provider().provider_id):
        return {
            "success": True,
            "message": "Browser-based speech recognition should be tested on the client",
            "provider": provider_id,
        }

    if not configured:
        return JSONResponse(
            status_code=400,
            content={
                "success": False,
                "error": "API key not configured",
                "message": f"Set COACH_SPEECH_API_KEY for {provider_id}",
                "provider": provider_id,
            },
        )

    return {
        "success": True,
        "message": f"Speech service configured with {provider_id}",
        "provider": provider_id,
        "hasApiKey": has_key,
    }
