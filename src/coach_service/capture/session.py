"""Microphone capture session.

AudioCaptureSession owns the microphone stream, the level meter and the
raw audio buffer for one recording. Hardware is released on every exit
from Recording/Stopping/Finalizing, including failures.
"""

import asyncio
import logging
from dataclasses import dataclass
from enum import Enum
from typing import Any, Awaitable, Callable, List, Optional

from coach_service.capture.interim import InterimTranscriber
from coach_service.capture.microphone import (
    CaptureConstraints,
    Microphone,
    MicrophoneStream,
)
from coach_service.core import audio_utils
from coach_service.core.errors import CaptureError, ErrorKind

logger = logging.getLogger(__name__)


class CaptureState(Enum):
    """Lifecycle states for a capture session."""

    IDLE = "idle"
    REQUESTING_PERMISSION = "requesting_permission"
    RECORDING = "recording"
    STOPPING = "stopping"  # flushing the last chunk
    FINALIZING = "finalizing"  # handing audio downstream
    ERROR = "error"


@dataclass
class CapturedAudio:
    """One recording, packaged for batch transcription."""

    data: bytes
    mime_type: str
    duration_ms: float
    interim_text: str = ""


class LevelAnalyser:
    """Amplitude of the most recent chunk, 0-100."""

    def __init__(self):
        self._latest = b""
        self._closed = False

    def push(self, chunk: bytes) -> None:
        if not self._closed:
            self._latest = chunk

    def level(self) -> int:
        if self._closed:
            return 0
        return audio_utils.amplitude_level(self._latest)

    def close(self) -> None:
        self._closed = True
        self._latest = b""


class AudioCaptureSession:
    """
    One microphone recording.

    start() and stop() arriving while a transition is in flight are
    ignored, so one session never holds two microphone streams.
    """

    def __init__(
        self,
        microphone: Microphone,
        interim: Optional[InterimTranscriber] = None,
        constraints: Optional[CaptureConstraints] = None,
        level_interval_s: float = 1 / 30,
        on_level: Optional[Callable[[int], None]] = None,
        on_state_change: Optional[Callable[["CaptureState"], None]] = None,
    ):
        """
        Initialize capture session.

        Args:
            microphone: Microphone backend
            interim: Live transcriber started alongside recording (optional)
            constraints: Requested microphone format and processing
            level_interval_s: Level sampling interval while recording
            on_level: Receives each sampled level (0-100)
            on_state_change: Receives each new state
        """
        self._microphone = microphone
        self._interim = interim
        self._constraints = constraints or CaptureConstraints()
        self._level_interval_s = level_interval_s
        self._on_level = on_level
        self._on_state_change = on_state_change

        self._state = CaptureState.IDLE
        self._error: Optional[ErrorKind] = None
        self._stream: Optional[MicrophoneStream] = None
        self._analyser: Optional[LevelAnalyser] = None
        self._meter_task: Optional[asyncio.Task] = None
        self._chunks: Optional[List[bytes]] = None
        self._level = 0
        self._interim_stop: Optional[asyncio.Task] = None
        self._recovered_text = ""

    @property
    def state(self) -> CaptureState:
        return self._state

    @property
    def error(self) -> Optional[ErrorKind]:
        return self._error

    @property
    def level(self) -> int:
        return self._level

    @property
    def has_stream(self) -> bool:
        return self._stream is not None

    @property
    def is_metering(self) -> bool:
        return self._meter_task is not None and not self._meter_task.done()

    @property
    def buffered_bytes(self) -> Optional[int]:
        """Size of the raw buffer, None when no recording has buffered audio."""
        if self._chunks is None:
            return None
        return sum(len(c) for c in self._chunks)

    @property
    def live_transcript(self) -> str:
        return self._interim.live_transcript if self._interim else ""

    @property
    def recovered_interim_text(self) -> str:
        """Final text frozen when the microphone failed mid-recording."""
        return self._recovered_text

    async def start(self) -> bool:
        """
        Acquire the microphone and start recording.

        Returns:
            True if recording started, False if the call was ignored

        Raises:
            CaptureError: PERMISSION_DENIED or DEVICE_NOT_FOUND; the session is in ERROR
        """
        if self._state not in (CaptureState.IDLE, CaptureState.ERROR):
            logger.debug(f"start() ignored in state {self._state.value}")
            return False

        self._error = None
        self._chunks = None
        self._recovered_text = ""
        self._set_state(CaptureState.REQUESTING_PERMISSION)

        # The previous take's channel must be fully stopped before it restarts
        pending, self._interim_stop = self._interim_stop, None
        if pending is not None:
            await pending

        try:
            self._stream = await self._microphone.open(
                self._constraints, self._on_chunk, self._on_device_error
            )
        except CaptureError as e:
            self._fail(e.kind)
            raise
        except Exception:
            self._fail(ErrorKind.DEVICE_NOT_FOUND)
            raise

        self._chunks = []
        self._analyser = LevelAnalyser()
        self._set_state(CaptureState.RECORDING)
        self._meter_task = asyncio.create_task(self._meter_loop())

        if self._interim is not None:
            await self._interim.start()
        return True

    async def stop(
        self,
        finalize: Optional[Callable[[CapturedAudio], Awaitable[Any]]] = None,
    ) -> Any:
        """
        Flush, package and hand off the recording.

        Args:
            finalize: Downstream consumer awaited while FINALIZING

        Returns:
            finalize's result if given, else the CapturedAudio. None if the
            call was ignored (not recording, or already stopped).
        """
        if self._state != CaptureState.RECORDING:
            logger.debug(f"stop() ignored in state {self._state.value}")
            return None

        self._set_state(CaptureState.STOPPING)
        self._cancel_meter()
        interim_text = self._interim.freeze() if self._interim else ""

        try:
            await self._stream.flush()
            if self._interim is not None:
                await self._interim.stop()

            audio = self._package(interim_text)
            self._release()
            self._set_state(CaptureState.FINALIZING)
            result = await finalize(audio) if finalize is not None else audio
        except CaptureError as e:
            self._fail(e.kind)
            raise
        except Exception:
            self._fail(ErrorKind.UNKNOWN)
            raise
        finally:
            self._release()

        self._set_state(CaptureState.IDLE)
        return result

    async def abort(self) -> None:
        """Drop the recording and release hardware without producing audio."""
        if self._interim is not None:
            await self._interim.stop()
        self._release()
        self._chunks = None
        if self._state != CaptureState.ERROR:
            self._set_state(CaptureState.IDLE)

    async def __aenter__(self) -> "AudioCaptureSession":
        await self.start()
        return self

    async def __aexit__(self, exc_type, exc, tb) -> None:
        if self._state == CaptureState.RECORDING and exc_type is None:
            await self.stop()
        else:
            await self.abort()

    def _package(self, interim_text: str) -> CapturedAudio:
        pcm = b"".join(self._chunks or [])
        sample_rate = self._stream.sample_rate
        channels = self._stream.channels
        return CapturedAudio(
            data=audio_utils.pcm16_to_wav(pcm, sample_rate, channels),
            mime_type=audio_utils.WAV,
            duration_ms=audio_utils.pcm_duration_ms(len(pcm), sample_rate, channels),
            interim_text=interim_text,
        )

    def _on_chunk(self, chunk: bytes) -> None:
        # Late chunks from the flush are still part of the recording
        if self._state not in (CaptureState.RECORDING, CaptureState.STOPPING):
            return
        self._chunks.append(chunk)
        if self._analyser is not None:
            self._analyser.push(chunk)
        if self._interim is not None and self._state == CaptureState.RECORDING:
            self._interim.feed(chunk)

    def _on_device_error(self, error: Exception) -> None:
        if self._state != CaptureState.RECORDING:
            return
        kind = error.kind if isinstance(error, CaptureError) else ErrorKind.DEVICE_NOT_FOUND
        logger.warning(f"Microphone failed while recording: {error}")
        if self._interim is not None:
            self._recovered_text = self._interim.freeze()
            self._interim_stop = asyncio.get_running_loop().create_task(self._interim.stop())
        self._fail(kind)

    async def _meter_loop(self) -> None:
        while self._state == CaptureState.RECORDING and self._analyser is not None:
            self._level = self._analyser.level()
            if self._on_level is not None:
                self._on_level(self._level)
            await asyncio.sleep(self._level_interval_s)

    def _cancel_meter(self) -> None:
        task, self._meter_task = self._meter_task, None
        if task is not None and not task.done():
            task.cancel()
        self._level = 0

    def _release(self) -> None:
        """Release microphone, meter and analyser. Idempotent."""
        self._cancel_meter()
        analyser, self._analyser = self._analyser, None
        if analyser is not None:
            analyser.close()
        stream, self._stream = self._stream, None
        if stream is not None:
            stream.close()
            logger.debug("Capture resources released")

    def _fail(self, kind: ErrorKind) -> None:
        self._release()
        self._error = kind
        self._set_state(CaptureState.ERROR)

    def _set_state(self, state: CaptureState) -> None:
        if state == self._state:
            return
        logger.debug(f"Capture state {self._state.value} -> {state.value}")
        self._state = state
        if self._on_state_change is not None:
            self._on_state_change(state)
