"""Generation proxy endpoint: the server holds the keys, clients send prompts."""

import logging
from typing import Any, Dict, Optional

from fastapi import APIRouter
from fastapi.responses import JSONResponse
from pydantic import BaseModel

from coach_service.config import get_settings
from coach_service.core.dispatcher import dispatch_with_key_rotation
from coach_service.core.errors import (
    ErrorKind,
    ExhaustedError,
    GenerationError,
    NoCredentialsError,
)
from coach_service.core.generation import GeminiGenerationClient
from coach_service.core.retry import RetryPolicy
from coach_service.dependencies import get_http_client, get_key_pool

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api/ai", tags=["ai"])

CAUSE_STATUS = {
    ErrorKind.PROVIDER_RATE_LIMITED: 429,
    ErrorKind.QUOTA_EXCEEDED: 429,
    ErrorKind.PROVIDER_UNAVAILABLE: 503,
    ErrorKind.REQUEST_TIMEOUT: 504,
    ErrorKind.NETWORK_UNAVAILABLE: 502,
}


class GenerateContentRequest(BaseModel):
    """Body of /api/ai/generate-content."""

    model: str = ""
    contents: Any = None
    config: Optional[Dict[str, Any]] = None


def exhaustion_status(error: ExhaustedError) -> int:
    """HTTP status for a spent dispatch, from the last attempt's failure."""
    if error.cause_kind in CAUSE_STATUS:
        return CAUSE_STATUS[error.cause_kind]
    last = error.last_error
    if isinstance(last, GenerationError) and last.status and 400 <= last.status < 600:
        return last.status
    return 502


@router.post("/generate-content")
async def generate_content(body: GenerateContentRequest):
    """Run one generateContent call for the requested model, rotating keys."""
    key_pool = get_key_pool()
    if not key_pool:
        return JSONResponse(status_code=503, content={"error": "AI unavailable"})
    if not body.model or not body.contents:
        return JSONResponse(status_code=400, content={"error": "model and contents required"})

    settings = get_settings()
    policy = RetryPolicy(
        retries=settings.proxy_retries,
        initial_delay_ms=settings.generation_initial_delay_ms,
        per_attempt_timeout_ms=settings.proxy_timeout_ms,
    )
    client = GeminiGenerationClient(get_http_client())

    async def request(model: str, api_key: str):
        return await client.generate_content(model, body.contents, body.config, api_key=api_key)

    try:
        response = await dispatch_with_key_rotation(request, policy, [body.model], key_pool)
    except NoCredentialsError:
        return JSONResponse(status_code=503, content={"error": "AI unavailable"})
    except ExhaustedError as e:
        status = exhaustion_status(e)
        logger.warning(
            f"generate-content for {body.model} failed with {status} "
            f"({e.cause_kind.value if e.cause_kind else 'unknown'})"
        )
        return JSONResponse(status_code=status, content={"error": str(e), "kind": e.kind.value})

    return {"text": response.text, "candidates": response.candidates}
