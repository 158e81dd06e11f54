"""Generative-AI transports: direct Gemini REST and the backend proxy.

Both expose the same generate_content() call so the feedback generator
can dispatch through either. Failures raise GenerationError carrying the
upstream status so the dispatcher can classify them.
"""

import logging
from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional, Protocol, Tuple, Union

import httpx

from coach_service.core.candidates import DEFAULT_MODEL_CANDIDATES
from coach_service.core.errors import GenerationError

logger = logging.getLogger(__name__)

GEMINI_API_BASE = "https://generativelanguage.googleapis.com/v1beta"
GROQ_API_URL = "https://api.groq.com/openai/v1/chat/completions"

GROQ_MODEL_CANDIDATES = (
    "llama-3.3-70b-versatile",
    "llama-3.1-8b-instant",
)

Contents = Union[str, List[Dict[str, Any]]]

# Request config keys that belong at the top level of the REST body
_TOP_LEVEL_CONFIG = ("systemInstruction", "safetySettings", "tools")


@dataclass
class GenerationResponse:
    """Text plus raw candidates, the shape /api/ai/generate-content returns."""

    text: str
    candidates: Optional[List[Dict[str, Any]]] = field(default=None)


class GenerationTransport(Protocol):
    """Anything that can run one generateContent call."""

    default_models: Tuple[str, ...]

    async def generate_content(
        self,
        model: str,
        contents: Contents,
        config: Optional[Dict[str, Any]] = None,
        api_key: Optional[str] = None,
    ) -> GenerationResponse:
        ...


def normalize_contents(contents: Contents) -> List[Dict[str, Any]]:
    """Accept a bare prompt string or REST-shaped contents."""
    if isinstance(contents, str):
        return [{"role": "user", "parts": [{"text": contents}]}]
    return list(contents)


def build_request_body(contents: Contents, config: Optional[Dict[str, Any]] = None) -> Dict[str, Any]:
    """
    Build a generateContent body from contents and an SDK-style config.

    Generation parameters (temperature, responseMimeType, responseSchema, ...)
    go under generationConfig; systemInstruction and friends stay top level.
    """
    body: Dict[str, Any] = {"contents": normalize_contents(contents)}
    generation_config = dict(config or {})

    for key in _TOP_LEVEL_CONFIG:
        if key in generation_config:
            value = generation_config.pop(key)
            if key == "systemInstruction" and isinstance(value, str):
                value = {"parts": [{"text": value}]}
            body[key] = value

    if generation_config:
        body["generationConfig"] = generation_config
    return body


def response_text(body: Dict[str, Any]) -> str:
    """Concatenate the text parts of the first candidate."""
    candidates = body.get("candidates") or []
    if not candidates:
        return ""
    parts = (candidates[0].get("content") or {}).get("parts") or []
    return "".join(p.get("text", "") for p in parts)


def error_from_response(response: httpx.Response) -> GenerationError:
    """Build a GenerationError from an upstream error response."""
    message = ""
    status_text = ""
    try:
        payload = response.json()
    except ValueError:
        payload = None

    if isinstance(payload, dict):
        error = payload.get("error")
        if isinstance(error, dict):
            message = error.get("message") or ""
            status_text = error.get("status") or error.get("type") or ""
        elif isinstance(error, str):
            message = error
            status_text = payload.get("kind") or ""
    if not message:
        message = response.text[:200] or response.reason_phrase

    return GenerationError(message, status=response.status_code, status_text=status_text)


class GeminiGenerationClient:
    """Direct REST calls to the Gemini API, keyed per call."""

    default_models = DEFAULT_MODEL_CANDIDATES

    def __init__(self, client: httpx.AsyncClient, api_base: str = GEMINI_API_BASE):
        self._client = client
        self._api_base = api_base.rstrip("/")

    async def generate_content(
        self,
        model: str,
        contents: Contents,
        config: Optional[Dict[str, Any]] = None,
        api_key: Optional[str] = None,
    ) -> GenerationResponse:
        if not api_key:
            raise GenerationError("API key required", status=401)

        response = await self._client.post(
            f"{self._api_base}/models/{model}:generateContent",
            params={"key": api_key},
            json=build_request_body(contents, config),
        )
        if response.is_error:
            raise error_from_response(response)

        body = response.json()
        return GenerationResponse(text=response_text(body), candidates=body.get("candidates"))


class ProxyGenerationClient:
    """Calls the backend's /api/ai/generate-content; the backend holds the keys."""

    default_models = DEFAULT_MODEL_CANDIDATES

    def __init__(self, client: httpx.AsyncClient, base_url: str):
        self._client = client
        self._url = f"{base_url.rstrip('/')}/api/ai/generate-content"

    async def generate_content(
        self,
        model: str,
        contents: Contents,
        config: Optional[Dict[str, Any]] = None,
        api_key: Optional[str] = None,
    ) -> GenerationResponse:
        response = await self._client.post(
            self._url,
            json={"model": model, "contents": contents, "config": config or {}},
        )
        if response.is_error:
            raise error_from_response(response)

        body = response.json()
        return GenerationResponse(text=body.get("text") or "", candidates=body.get("candidates"))


def chat_messages(contents: Contents, config: Optional[Dict[str, Any]] = None) -> List[Dict[str, str]]:
    """Convert generateContent-style contents into chat-completions messages."""
    messages: List[Dict[str, str]] = []

    system = (config or {}).get("systemInstruction")
    if isinstance(system, dict):
        system = "".join(p.get("text", "") for p in system.get("parts") or [])
    if system:
        messages.append({"role": "system", "content": system})

    for turn in normalize_contents(contents):
        role = "assistant" if turn.get("role") == "model" else turn.get("role") or "user"
        text = "".join(p.get("text", "") for p in turn.get("parts") or [])
        messages.append({"role": role, "content": text})
    return messages


class GroqGenerationClient:
    """
    OpenAI-compatible chat completions on Groq, keyed per call.

    Takes the same contents/config as the Gemini client; temperature and
    maxOutputTokens are carried over, schema hints are left to the prompt.
    """

    default_models = GROQ_MODEL_CANDIDATES
    max_tokens: int = 3000

    def __init__(
        self,
        client: httpx.AsyncClient,
        url: str = GROQ_API_URL,
        timeout_seconds: float = 30.0,
    ):
        self._client = client
        self._url = url
        self._timeout = timeout_seconds

    async def generate_content(
        self,
        model: str,
        contents: Contents,
        config: Optional[Dict[str, Any]] = None,
        api_key: Optional[str] = None,
    ) -> GenerationResponse:
        if not api_key:
            raise GenerationError("API key required", status=401)

        config = config or {}
        response = await self._client.post(
            self._url,
            headers={"Authorization": f"Bearer {api_key}"},
            json={
                "model": model,
                "messages": chat_messages(contents, config),
                "temperature": config.get("temperature", 0.7),
                "max_tokens": config.get("maxOutputTokens", self.max_tokens),
            },
            timeout=self._timeout,
        )
        if response.is_error:
            raise error_from_response(response)

        choices = response.json().get("choices") or []
        text = ((choices[0].get("message") or {}).get("content") or "") if choices else ""
        return GenerationResponse(text=text, candidates=choices)
