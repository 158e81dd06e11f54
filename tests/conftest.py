import asyncio
import os
from typing import Callable, List, Optional

import httpx
import pytest
from httpx import ASGITransport, AsyncClient

from coach_service.capture.interim import RecognitionEvent
from coach_service.config import Settings, get_settings
from coach_service.core.errors import CaptureError, ErrorKind
from coach_service.core.transcript import TranscriptionResult


@pytest.fixture(autouse=True)
def isolated_settings(monkeypatch, tmp_path):
    """Settings built from a clean environment and a throwaway credential file."""
    for key in list(os.environ):
        if key.startswith("COACH_"):
            monkeypatch.delenv(key)
    monkeypatch.setenv("COACH_CREDENTIALS_PATH", str(tmp_path / "credentials.json"))
    get_settings.cache_clear()
    yield
    get_settings.cache_clear()


class Upstream:
    """httpx.MockTransport handler recording every outbound request."""

    def __init__(self):
        self.requests: List[httpx.Request] = []
        self.handler: Callable[[httpx.Request], httpx.Response] = lambda request: httpx.Response(404)

    def __call__(self, request: httpx.Request) -> httpx.Response:
        self.requests.append(request)
        return self.handler(request)


@pytest.fixture
def upstream():
    return Upstream()


@pytest.fixture
async def http_client(upstream):
    """Outbound HTTP client whose requests never leave the process."""
    async with httpx.AsyncClient(transport=httpx.MockTransport(upstream)) as client:
        yield client


@pytest.fixture
async def service(http_client):
    """
    Wire app state the way the lifespan does, with outbound HTTP faked.

    Call the returned function with Settings overrides before making requests.
    """
    from coach_service.core.key_pool import KeyPool
    from coach_service.core.local_store import LocalCredentialStore
    from coach_service.core.providers.registry import _reset_provider, init_provider
    from coach_service import dependencies

    def configure(**overrides) -> Settings:
        settings = Settings(**overrides)
        store = LocalCredentialStore(settings.credentials_path)
        dependencies.set_http_client(http_client)
        dependencies.set_key_pool(KeyPool.load(settings.gemini_api_keys(), store.get_api_keys()))
        init_provider(settings, http_client)
        return settings

    yield configure

    dependencies.clear_key_pool()
    dependencies.clear_http_client()
    _reset_provider()


@pytest.fixture
async def client():
    """Async HTTP client for testing the API."""
    from coach_service.main import app

    async with AsyncClient(
        transport=ASGITransport(app=app),
        base_url="http://test"
    ) as client:
        yield client


@pytest.fixture
def pcm_bytes():
    """500ms of 16kHz 16-bit mono PCM."""
    duration_ms = 500
    bytes_per_ms = 32
    return b"\x00\x01" * (duration_ms * bytes_per_ms // 2)


@pytest.fixture
def wav_bytes(pcm_bytes):
    from coach_service.core.audio_utils import pcm16_to_wav

    return pcm16_to_wav(pcm_bytes, 16000)


class FakeStream:
    """Microphone stream that delivers chunks on demand."""

    def __init__(self, on_chunk, on_error, sample_rate=16000, channels=1):
        self.sample_rate = sample_rate
        self.channels = channels
        self.pending: List[bytes] = []  # delivered by flush()
        self.close_calls = 0
        self.flushed = False
        self._on_chunk = on_chunk
        self._on_error = on_error

    @property
    def live(self) -> bool:
        return self.close_calls == 0

    def emit(self, chunk: bytes) -> None:
        self._on_chunk(chunk)

    def fail(self, error: Exception) -> None:
        self._on_error(error)

    async def flush(self) -> None:
        self.flushed = True
        for chunk in self.pending:
            self._on_chunk(chunk)
        self.pending.clear()

    def close(self) -> None:
        self.close_calls += 1


class FakeMicrophone:
    """Microphone backend that grants, denies, or delays access."""

    def __init__(self, error: Optional[ErrorKind] = None, delay: float = 0.0):
        self.error = error
        self.delay = delay
        self.open_calls = 0
        self.streams: List[FakeStream] = []

    @property
    def stream(self) -> FakeStream:
        return self.streams[-1]

    @property
    def live_streams(self) -> List[FakeStream]:
        return [s for s in self.streams if s.live]

    async def open(self, constraints, on_chunk, on_error) -> FakeStream:
        self.open_calls += 1
        if self.delay:
            await asyncio.sleep(self.delay)
        if self.error is not None:
            raise CaptureError(self.error)
        stream = FakeStream(on_chunk, on_error, constraints.sample_rate, constraints.channels)
        self.streams.append(stream)
        return stream


class FakeChannel:
    """Recognition channel driven by the test."""

    def __init__(self, fail_start: bool = False):
        self.fail_start = fail_start
        self.fed: List[bytes] = []
        self.started = False
        self.stopped = False
        self._segment = None
        self._error = None

    def on_segment(self, callback) -> None:
        self._segment = callback

    def on_error(self, callback) -> None:
        self._error = callback

    async def start(self) -> None:
        if self.fail_start:
            raise ConnectionError("recognizer offline")
        self.started = True

    def feed(self, chunk: bytes) -> None:
        self.fed.append(chunk)

    async def stop(self) -> None:
        self.stopped = True

    def emit(self, finals=(), interim: str = "", offset_ms: int = 0) -> None:
        self._segment(RecognitionEvent(tuple(finals), interim, offset_ms))

    def fail(self, error: Exception) -> None:
        self._error(error)


class FakeTranscriber:
    """Batch transcriber returning a fixed result."""

    def __init__(self, result: TranscriptionResult):
        self.result = result
        self.calls = []

    async def transcribe(self, audio, mime_type=None, options=None) -> TranscriptionResult:
        self.calls.append((audio, mime_type, options))
        return self.result


@pytest.fixture
def microphone():
    return FakeMicrophone()


@pytest.fixture
def denied_microphone():
    return FakeMicrophone(error=ErrorKind.PERMISSION_DENIED)


@pytest.fixture
def channel():
    return FakeChannel()


@pytest.fixture
def make_transcriber():
    return FakeTranscriber


@pytest.fixture
def failing_channel():
    return FakeChannel(fail_start=True)


@pytest.fixture
def make_microphone():
    return FakeMicrophone
