"""Microphone access.

The capture session only sees the Microphone/MicrophoneStream protocols;
SoundDeviceMicrophone is the PortAudio backend. Uses a lazy import so
sounddevice is only required when a real microphone is opened.
"""

import asyncio
import logging
from dataclasses import dataclass
from typing import Callable, Optional, Protocol, runtime_checkable

from coach_service.core.errors import CaptureError, ErrorKind

logger = logging.getLogger(__name__)

ChunkCallback = Callable[[bytes], None]
ErrorCallback = Callable[[Exception], None]

_PERMISSION_MARKERS = ("permission", "access denied", "not authorized", "not permitted")


@dataclass(frozen=True)
class CaptureConstraints:
    """Requested microphone processing and format."""

    sample_rate: int = 16000
    channels: int = 1
    echo_cancellation: bool = True
    noise_suppression: bool = True
    auto_gain_control: bool = True
    chunk_ms: int = 100

    @property
    def blocksize(self) -> int:
        return int(self.sample_rate * self.chunk_ms / 1000)


@runtime_checkable
class MicrophoneStream(Protocol):
    """An open microphone delivering PCM16 chunks."""

    sample_rate: int
    channels: int

    async def flush(self) -> None:
        """Stop capturing and deliver any pending chunk before returning."""
        ...

    def close(self) -> None:
        """Release the device. Safe to call more than once."""
        ...


@runtime_checkable
class Microphone(Protocol):
    """Acquires microphone streams."""

    async def open(
        self,
        constraints: CaptureConstraints,
        on_chunk: ChunkCallback,
        on_error: ErrorCallback,
    ) -> MicrophoneStream:
        """
        Acquire the microphone.

        Raises:
            CaptureError: PERMISSION_DENIED or DEVICE_NOT_FOUND
        """
        ...


def classify_device_error(error: BaseException) -> ErrorKind:
    """Permission problems vs. everything else (missing, busy, invalid device)."""
    message = str(error).lower()
    if isinstance(error, PermissionError) or any(m in message for m in _PERMISSION_MARKERS):
        return ErrorKind.PERMISSION_DENIED
    return ErrorKind.DEVICE_NOT_FOUND


class SoundDeviceStream:
    """A running sounddevice RawInputStream bound to an event loop."""

    def __init__(
        self,
        loop: asyncio.AbstractEventLoop,
        constraints: CaptureConstraints,
        on_chunk: ChunkCallback,
        on_error: ErrorCallback,
    ):
        self.sample_rate = constraints.sample_rate
        self.channels = constraints.channels
        self._loop = loop
        self._on_chunk = on_chunk
        self._on_error = on_error
        self._stream = None
        self._stopping = False

    def attach(self, stream) -> None:
        self._stream = stream

    # PortAudio thread
    def callback(self, indata, frames, time_info, status) -> None:
        if status:
            logger.debug(f"Microphone status: {status}")
        self._loop.call_soon_threadsafe(self._on_chunk, bytes(indata))

    # PortAudio thread
    def finished(self) -> None:
        if not self._stopping:
            self._loop.call_soon_threadsafe(
                self._on_error,
                CaptureError(ErrorKind.DEVICE_NOT_FOUND, "Microphone stopped unexpectedly"),
            )

    async def flush(self) -> None:
        self._stopping = True
        stream = self._stream
        if stream is None or not stream.active:
            return
        # stop() returns once queued buffers have been delivered
        await self._loop.run_in_executor(None, stream.stop)

    def close(self) -> None:
        self._stopping = True
        stream, self._stream = self._stream, None
        if stream is not None:
            stream.close(ignore_errors=True)
            logger.debug("Microphone stream closed")


class SoundDeviceMicrophone:
    """PortAudio microphone via sounddevice."""

    def __init__(self, device: Optional[int] = None):
        self.device = device

    async def open(
        self,
        constraints: CaptureConstraints,
        on_chunk: ChunkCallback,
        on_error: ErrorCallback,
    ) -> SoundDeviceStream:
        try:
            import sounddevice as sd
        except ImportError as e:
            raise RuntimeError(
                "Microphone capture requires sounddevice. "
                "Install with: pip install 'coach-service[capture]'"
            ) from e
        except OSError as e:
            # PortAudio shared library missing
            raise CaptureError(ErrorKind.DEVICE_NOT_FOUND, f"Audio backend unavailable: {e}") from e

        loop = asyncio.get_running_loop()
        handle = SoundDeviceStream(loop, constraints, on_chunk, on_error)

        def start_stream():
            # echo cancellation, noise suppression and AGC are left to the OS input chain
            stream = sd.RawInputStream(
                samplerate=constraints.sample_rate,
                channels=constraints.channels,
                dtype="int16",
                blocksize=constraints.blocksize,
                device=self.device,
                callback=handle.callback,
                finished_callback=handle.finished,
            )
            stream.start()
            return stream

        try:
            handle.attach(await loop.run_in_executor(None, start_stream))
        except (sd.PortAudioError, OSError, ValueError) as e:
            kind = classify_device_error(e)
            logger.warning(f"Microphone unavailable ({kind.value}): {e}")
            raise CaptureError(kind) from e

        logger.info(f"Microphone open: {constraints.sample_rate} Hz, {constraints.channels} channel(s)")
        return handle
