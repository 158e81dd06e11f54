"""Tests for JSON extraction and FeedbackGenerator."""

import json

import httpx
import pytest

from coach_service.core.errors import ExhaustedError, ExhaustionKind
from coach_service.core.feedback import FeedbackGenerator, extract_json
from coach_service.core.generation import GeminiGenerationClient, GroqGenerationClient, ProxyGenerationClient
from coach_service.core.key_pool import KeyPool
from coach_service.core.local_store import LocalCredentialStore
from coach_service.core.retry import RetryPolicy

FAST = RetryPolicy(retries=1, initial_delay_ms=1, per_attempt_timeout_ms=2000)


def gemini_reply(text: str) -> httpx.Response:
    return httpx.Response(200, json={"candidates": [{"content": {"parts": [{"text": text}]}}]})


def model_of(request: httpx.Request) -> str:
    return request.url.path.rsplit("/", 1)[-1].split(":")[0]


class TestExtractJson:
    def test_plain_json(self):
        assert extract_json('{"score": 8}') == {"score": 8}

    def test_fenced_block(self):
        text = 'Here you go:\n```json\n{"score": 8}\n```\nGood luck!'
        assert extract_json(text) == {"score": 8}

    def test_brace_slice(self):
        assert extract_json('Result: {"score": 8, "tips": ["a"]} (end)') == {"score": 8, "tips": ["a"]}

    def test_trailing_commas_cleaned(self):
        assert extract_json('noise {"tips": ["a", "b",], "score": 8,} noise') == {"tips": ["a", "b"], "score": 8}

    def test_no_json(self):
        with pytest.raises(ValueError, match="No JSON"):
            extract_json("I cannot help with that.")

    def test_unrecoverable_json(self):
        with pytest.raises(ValueError):
            extract_json("{not: json at all}")


class TestFeedbackGenerator:
    """Direct Gemini transport with key rotation."""

    async def test_request_carries_schema_and_json_mime(self, http_client, upstream):
        upstream.handler = lambda request: gemini_reply('{"overall_score": 9}')
        generator = FeedbackGenerator(GeminiGenerationClient(http_client), FAST, KeyPool(["k1"]))
        schema = {"type": "OBJECT", "properties": {"overall_score": {"type": "NUMBER"}}}

        feedback = await generator.generate_feedback("Explain photosynthesis", schema)

        assert feedback == {"overall_score": 9}
        body = json.loads(upstream.requests[0].content)
        assert body["contents"][0]["parts"][0]["text"] == "Explain photosynthesis"
        assert body["generationConfig"]["responseMimeType"] == "application/json"
        assert body["generationConfig"]["responseSchema"] == schema
        assert body["generationConfig"]["temperature"] == 0.2
        assert upstream.requests[0].url.params["key"] == "k1"

    async def test_preferred_model_first(self, http_client, upstream):
        upstream.handler = lambda request: gemini_reply("{}")
        generator = FeedbackGenerator(GeminiGenerationClient(http_client), FAST, KeyPool(["k1"]))

        await generator.generate_feedback("p", model_preference="gemini-exp")

        assert model_of(upstream.requests[0]) == "gemini-exp"

    async def test_runtime_override_from_store(self, http_client, upstream, tmp_path):
        store = LocalCredentialStore(tmp_path / "creds.json")
        store.set_model_override("gemini-override")
        upstream.handler = lambda request: gemini_reply("{}")
        generator = FeedbackGenerator(
            GeminiGenerationClient(http_client), FAST, KeyPool(["k1"]),
            configured_default="gemini-configured", store=store,
        )

        assert generator.candidates()[:2] == ["gemini-override", "gemini-configured"]
        await generator.generate_feedback("p")
        assert model_of(upstream.requests[0]) == "gemini-override"

    async def test_unparseable_reply_moves_to_next_model(self, http_client, upstream):
        def handler(request):
            if model_of(request) == "gemini-1.5-flash":
                return gemini_reply("Sorry, here is prose instead of JSON.")
            return gemini_reply('{"ok": true}')

        upstream.handler = handler
        generator = FeedbackGenerator(GeminiGenerationClient(http_client), FAST, KeyPool(["k1"]))

        assert await generator.generate_feedback("p") == {"ok": True}
        assert [model_of(r) for r in upstream.requests] == ["gemini-1.5-flash", "gemini-2.0-flash"]

    async def test_overloaded_model_is_retried(self, http_client, upstream):
        replies = [
            httpx.Response(503, json={"error": {"code": 503, "message": "The model is overloaded.", "status": "UNAVAILABLE"}}),
            gemini_reply('{"ok": 1}'),
        ]
        upstream.handler = lambda request: replies.pop(0)
        generator = FeedbackGenerator(GeminiGenerationClient(http_client), FAST, KeyPool(["k1"]))

        assert await generator.generate_feedback("p") == {"ok": 1}
        assert [model_of(r) for r in upstream.requests] == ["gemini-1.5-flash", "gemini-1.5-flash"]

    async def test_quota_rotates_keys(self, http_client, upstream):
        def handler(request):
            if request.url.params["key"] == "k1":
                return httpx.Response(429, json={"error": {
                    "code": 429, "message": "Quota exceeded", "status": "RESOURCE_EXHAUSTED"}})
            return gemini_reply('{"ok": 2}')

        upstream.handler = handler
        pool = KeyPool(["k1", "k2"])
        generator = FeedbackGenerator(GeminiGenerationClient(http_client), FAST, pool)

        assert await generator.generate_feedback("p") == {"ok": 2}
        assert pool.is_exhausted("k1")

    async def test_everything_rate_limited(self, http_client, upstream):
        upstream.handler = lambda request: httpx.Response(429, json={"error": {"code": 429, "message": "slow down"}})
        generator = FeedbackGenerator(GeminiGenerationClient(http_client), FAST, KeyPool(["k1", "k2"]))

        with pytest.raises(ExhaustedError) as exc_info:
            await generator.generate_feedback("p")

        assert exc_info.value.kind == ExhaustionKind.RATE_LIMITED
        # 3 default models per key, no same-model retries for 429
        assert len(upstream.requests) == 6


class TestProxyTransport:
    """Feedback through the backend proxy (no keys on the client)."""

    async def test_posts_to_proxy(self, http_client, upstream):
        upstream.handler = lambda request: httpx.Response(200, json={"text": '{"score": 5}', "candidates": []})
        generator = FeedbackGenerator(ProxyGenerationClient(http_client, "http://backend.test/"), FAST)

        assert await generator.generate_feedback("p", {"type": "object"}) == {"score": 5}
        request = upstream.requests[0]
        assert str(request.url) == "http://backend.test/api/ai/generate-content"
        body = json.loads(request.content)
        assert body["model"] == "gemini-1.5-flash"
        assert body["config"]["responseMimeType"] == "application/json"

    async def test_proxy_quota_error_is_classified(self, http_client, upstream):
        upstream.handler = lambda request: httpx.Response(
            429, json={"error": "The service is busy right now.", "kind": "quota_exceeded"}
        )
        generator = FeedbackGenerator(ProxyGenerationClient(http_client, "http://backend.test"), FAST)

        with pytest.raises(ExhaustedError) as exc_info:
            await generator.generate_feedback("p")

        assert exc_info.value.kind == ExhaustionKind.QUOTA_EXCEEDED


class TestGroqTransport:
    """Feedback over Groq chat completions with its own key pool."""

    async def test_groq_models_and_key_rotation(self, http_client, upstream):
        def handler(request):
            if request.headers["Authorization"] == "Bearer g1":
                return httpx.Response(429, json={"error": {"message": "Rate limit reached", "type": "tokens"}})
            return httpx.Response(200, json={"choices": [{"message": {"content": '```json\n{"score": 6}\n```'}}]})

        upstream.handler = handler
        pool = KeyPool(["g1", "g2"])
        generator = FeedbackGenerator(GroqGenerationClient(http_client), FAST, pool)

        assert await generator.generate_feedback("Explain tides") == {"score": 6}
        models = [json.loads(r.content)["model"] for r in upstream.requests]
        assert models == ["llama-3.3-70b-versatile", "llama-3.1-8b-instant", "llama-3.3-70b-versatile"]
        assert pool.is_exhausted("g1")
