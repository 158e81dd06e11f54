"""Deepgram live transcription over a WebSocket, as a RecognitionChannel."""

import asyncio
import json
import logging
from typing import Callable, Optional
from urllib.parse import urlencode

import websockets

from coach_service.capture.interim import RecognitionEvent

logger = logging.getLogger(__name__)

LIVE_URL = "wss://api.deepgram.com/v1/listen"


def parse_deepgram_message(raw) -> Optional[RecognitionEvent]:
    """
    Convert one Deepgram live message into a RecognitionEvent.

    Returns None for metadata, keepalive and utterance-end messages.
    """
    try:
        data = json.loads(raw)
    except ValueError:
        logger.debug("Ignoring non-JSON Deepgram message")
        return None
    if not isinstance(data, dict) or data.get("type") != "Results":
        return None

    alternatives = (data.get("channel") or {}).get("alternatives") or []
    text = (alternatives[0].get("transcript") or "").strip() if alternatives else ""
    offset_ms = int(float(data.get("start") or 0) * 1000)

    if data.get("is_final"):
        return RecognitionEvent(finals=(text,) if text else (), interim="", offset_ms=offset_ms)
    return RecognitionEvent(interim=text, offset_ms=offset_ms)


class DeepgramStreamingChannel:
    """Streams PCM16 chunks to Deepgram and reports interim and final results."""

    def __init__(
        self,
        api_key: str,
        language: str = "en-US",
        sample_rate: int = 16000,
        channels: int = 1,
        model: str = "nova-2",
        close_timeout: float = 5.0,
        url: str = LIVE_URL,
    ):
        self._api_key = api_key
        self._params = {
            "model": model,
            "language": language,
            "encoding": "linear16",
            "sample_rate": sample_rate,
            "channels": channels,
            "interim_results": "true",
            "punctuate": "true",
        }
        self._url = url
        self._close_timeout = close_timeout
        self._on_segment: Callable[[RecognitionEvent], None] = lambda event: None
        self._on_error: Callable[[Exception], None] = lambda error: None
        self._ws = None
        self._queue: Optional[asyncio.Queue] = None
        self._sender: Optional[asyncio.Task] = None
        self._receiver: Optional[asyncio.Task] = None

    def on_segment(self, callback: Callable[[RecognitionEvent], None]) -> None:
        self._on_segment = callback

    def on_error(self, callback: Callable[[Exception], None]) -> None:
        self._on_error = callback

    async def start(self) -> None:
        if not self._api_key:
            raise RuntimeError("Deepgram API key required for live recognition")

        self._ws = await websockets.connect(
            f"{self._url}?{urlencode(self._params)}",
            additional_headers={"Authorization": f"Token {self._api_key}"},
        )
        self._queue = asyncio.Queue()
        self._sender = asyncio.create_task(self._send_loop())
        self._receiver = asyncio.create_task(self._receive_loop())
        logger.info("Deepgram live channel connected")

    def feed(self, chunk: bytes) -> None:
        if self._queue is not None:
            self._queue.put_nowait(chunk)

    async def stop(self) -> None:
        if self._ws is None:
            return
        self._queue.put_nowait(None)  # sender asks Deepgram to flush and close

        try:
            await asyncio.wait_for(asyncio.shield(self._receiver), timeout=self._close_timeout)
        except asyncio.TimeoutError:
            logger.warning("Deepgram live channel did not close in time")
        finally:
            for task in (self._sender, self._receiver):
                task.cancel()
            await self._ws.close()
            self._ws = None
            self._queue = None
            logger.info("Deepgram live channel closed")

    async def _send_loop(self) -> None:
        try:
            while True:
                chunk = await self._queue.get()
                if chunk is None:
                    await self._ws.send(json.dumps({"type": "CloseStream"}))
                    return
                await self._ws.send(chunk)
        except websockets.ConnectionClosed as e:
            self._on_error(e)

    async def _receive_loop(self) -> None:
        try:
            async for message in self._ws:
                event = parse_deepgram_message(message)
                if event is not None:
                    self._on_segment(event)
        except websockets.ConnectionClosedError as e:
            self._on_error(e)
