"""Structured feedback generation over the retry/fallback dispatcher."""

import json
import logging
import re
from typing import Any, Dict, Optional

from coach_service.core.candidates import resolve_model_candidates
from coach_service.core.dispatcher import dispatch, dispatch_with_key_rotation
from coach_service.core.generation import GenerationTransport
from coach_service.core.key_pool import KeyPool
from coach_service.core.local_store import LocalCredentialStore
from coach_service.core.retry import RetryPolicy

logger = logging.getLogger(__name__)

_FENCED_BLOCK = re.compile(r"```(?:json)?\s*([\s\S]*?)\s*```")
_TRAILING_COMMA = re.compile(r",\s*([}\]])")


def extract_json(text: str) -> Any:
    """
    Parse JSON out of a model response.

    Tries, in order: the whole text, the first fenced code block, the
    slice between the first '{' and the last '}', and that slice with
    trailing commas removed.

    Raises:
        ValueError: If no JSON object can be recovered
    """
    try:
        return json.loads(text)
    except ValueError:
        pass

    match = _FENCED_BLOCK.search(text)
    if match:
        try:
            return json.loads(match.group(1))
        except ValueError:
            pass

    first = text.find("{")
    last = text.rfind("}")
    if first == -1 or last <= first:
        raise ValueError(f"No JSON found in response: {text[:100]!r}")

    candidate = text[first:last + 1]
    try:
        return json.loads(candidate)
    except ValueError:
        pass
    try:
        return json.loads(_TRAILING_COMMA.sub(r"\1", candidate))
    except ValueError:
        raise ValueError(f"Malformed JSON in response: {text[:100]!r}") from None


class FeedbackGenerator:
    """
    Requests schema-constrained feedback from the generation backend.

    With a key pool, every call rotates keys on rate-limit/quota
    exhaustion. Without one (the proxy transport), the backend owns the
    credentials and only model fallback applies.
    """

    temperature: float = 0.2

    def __init__(
        self,
        transport: GenerationTransport,
        policy: Optional[RetryPolicy] = None,
        key_pool: Optional[KeyPool] = None,
        configured_default: Optional[str] = None,
        store: Optional[LocalCredentialStore] = None,
    ):
        """
        Initialize generator.

        Args:
            transport: Gemini, Groq or proxy generation client
            policy: Retry policy (defaults to RetryPolicy())
            key_pool: Keys for direct calls; None when the transport holds them
            configured_default: Deployment default model
            store: Source of the runtime model override
        """
        self._transport = transport
        self._policy = policy or RetryPolicy()
        self._key_pool = key_pool
        self._configured_default = configured_default
        self._store = store

    def candidates(self, model_preference: Optional[str] = None) -> list:
        override = self._store.get_model_override() if self._store else None
        return resolve_model_candidates(
            preferred=model_preference,
            runtime_override=override,
            configured_default=self._configured_default,
            defaults=self._transport.default_models,
        )

    async def generate_feedback(
        self,
        prompt: str,
        schema: Optional[Dict[str, Any]] = None,
        model_preference: Optional[str] = None,
    ) -> Dict[str, Any]:
        """
        Generate feedback as a parsed JSON object.

        A response that cannot be parsed counts as a failed attempt on that
        model, so the next candidate is tried.

        Raises:
            ExhaustedError: If every model (and key) failed
            NoCredentialsError: If direct calls have no key
        """
        config: Dict[str, Any] = {
            "temperature": self.temperature,
            "responseMimeType": "application/json",
        }
        if schema:
            config["responseSchema"] = schema

        candidates = self.candidates(model_preference)

        async def request(model: str, api_key: Optional[str] = None) -> Dict[str, Any]:
            response = await self._transport.generate_content(model, prompt, config, api_key=api_key)
            feedback = extract_json(response.text)
            if not isinstance(feedback, dict):
                raise ValueError(f"Expected a JSON object from {model}, got {type(feedback).__name__}")
            logger.info(f"Feedback generated by {model}")
            return feedback

        if self._key_pool is None:
            return await dispatch(request, self._policy, candidates)
        return await dispatch_with_key_rotation(request, self._policy, candidates, self._key_pool)
