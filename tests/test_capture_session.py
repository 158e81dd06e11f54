"""Tests for AudioCaptureSession state machine and resource release."""

import asyncio

import pytest

from coach_service.capture.interim import InterimTranscriber
from coach_service.capture.microphone import Microphone, classify_device_error
from coach_service.capture.session import AudioCaptureSession, CapturedAudio, CaptureState
from coach_service.core import audio_utils
from coach_service.core.errors import CaptureError, ErrorKind


class SlowStopChannel:
    """Recognition channel whose shutdown takes a while."""

    def __init__(self):
        self.calls = []

    def on_segment(self, callback) -> None:
        pass

    def on_error(self, callback) -> None:
        pass

    async def start(self) -> None:
        self.calls.append("start")

    def feed(self, chunk: bytes) -> None:
        pass

    async def stop(self) -> None:
        self.calls.append("stop-begin")
        await asyncio.sleep(0.01)
        self.calls.append("stop-end")


@pytest.fixture
def states():
    return []


@pytest.fixture
def session(microphone, channel, states):
    return AudioCaptureSession(
        microphone,
        interim=InterimTranscriber(channel),
        level_interval_s=0.001,
        on_state_change=states.append,
    )


class TestStart:
    """Tests for acquiring the microphone."""

    async def test_fake_microphone_satisfies_protocol(self, microphone):
        assert isinstance(microphone, Microphone)

    async def test_start_records_and_meters(self, session, microphone, channel, states):
        assert await session.start() is True

        assert session.state == CaptureState.RECORDING
        assert states == [CaptureState.REQUESTING_PERMISSION, CaptureState.RECORDING]
        assert session.is_metering
        assert session.buffered_bytes == 0
        assert channel.started
        await session.stop()

    async def test_permission_denied_goes_straight_to_error(self, denied_microphone, states):
        """Denied access: ERROR with PermissionDenied and no audio buffer."""
        session = AudioCaptureSession(denied_microphone, on_state_change=states.append)

        with pytest.raises(CaptureError) as exc_info:
            await session.start()

        assert exc_info.value.kind == ErrorKind.PERMISSION_DENIED
        assert session.state == CaptureState.ERROR
        assert session.error == ErrorKind.PERMISSION_DENIED
        assert session.buffered_bytes is None
        assert states == [CaptureState.REQUESTING_PERMISSION, CaptureState.ERROR]
        assert not session.is_metering
        assert not session.has_stream

    async def test_missing_device_is_distinct_from_denial(self, make_microphone):
        session = AudioCaptureSession(make_microphone(error=ErrorKind.DEVICE_NOT_FOUND))

        with pytest.raises(CaptureError) as exc_info:
            await session.start()

        assert exc_info.value.kind == ErrorKind.DEVICE_NOT_FOUND
        assert session.error == ErrorKind.DEVICE_NOT_FOUND
        assert "No microphone" in str(exc_info.value)

    async def test_interim_failure_does_not_block_capture(self, microphone, failing_channel):
        session = AudioCaptureSession(microphone, interim=InterimTranscriber(failing_channel))

        assert await session.start() is True
        assert session.state == CaptureState.RECORDING
        await session.stop()

    async def test_can_start_again_after_error(self, denied_microphone):
        session = AudioCaptureSession(denied_microphone)
        with pytest.raises(CaptureError):
            await session.start()

        denied_microphone.error = None
        assert await session.start() is True
        assert session.state == CaptureState.RECORDING
        assert session.error is None
        await session.stop()


class TestStop:
    """Tests for flushing, packaging and release."""

    async def test_stop_packages_wav_including_flushed_chunk(self, session, microphone, states):
        await session.start()
        stream = microphone.stream
        stream.emit(b"\x01\x00" * 800)
        stream.pending.append(b"\x02\x00" * 800)

        audio = await session.stop()

        assert isinstance(audio, CapturedAudio)
        assert audio.mime_type == audio_utils.WAV
        assert audio.data[:4] == b"RIFF"
        assert len(audio.data) == 44 + 3200
        assert audio.duration_ms == pytest.approx(100.0)
        assert stream.flushed
        assert states[-3:] == [CaptureState.STOPPING, CaptureState.FINALIZING, CaptureState.IDLE]

    async def test_stop_releases_everything(self, session, microphone):
        await session.start()

        await session.stop()

        assert microphone.live_streams == []
        assert not session.is_metering
        assert not session.has_stream
        assert session.state == CaptureState.IDLE

    async def test_second_stop_is_noop(self, session, microphone, states):
        await session.start()
        await session.stop()
        before = list(states)

        assert await session.stop() is None

        assert states == before
        assert microphone.stream.close_calls == 1

    async def test_stop_when_idle_is_noop(self, session):
        assert await session.stop() is None
        assert session.state == CaptureState.IDLE

    async def test_stop_freezes_interim_text(self, session, microphone, channel):
        await session.start()
        channel.emit(finals=["hello"])
        channel.emit(finals=["world"])
        channel.emit(interim="th")

        audio = await session.stop()

        assert audio.interim_text == "hello world"

    async def test_finalize_result_is_returned(self, session):
        await session.start()
        seen = []

        async def finalize(audio):
            seen.append(session.state)
            return "transcribed"

        assert await session.stop(finalize) == "transcribed"
        assert seen == [CaptureState.FINALIZING]
        assert session.state == CaptureState.IDLE

    async def test_finalize_failure_releases_and_errors(self, session, microphone):
        await session.start()

        async def finalize(audio):
            raise RuntimeError("downstream broke")

        with pytest.raises(RuntimeError):
            await session.stop(finalize)

        assert session.state == CaptureState.ERROR
        assert microphone.live_streams == []
        assert not session.is_metering


class TestMetering:
    """Level metering runs only while recording."""

    async def test_levels_reported_while_recording(self, microphone):
        levels = []
        session = AudioCaptureSession(microphone, level_interval_s=0.001, on_level=levels.append)
        await session.start()

        microphone.stream.emit(b"\x00\x40" * 160)  # half scale
        await asyncio.sleep(0.02)

        assert 50 in levels
        await session.stop()
        assert session.level == 0

    async def test_chunks_feed_buffer_and_interim(self, session, microphone, channel):
        await session.start()

        microphone.stream.emit(b"\x00\x00" * 10)

        assert session.buffered_bytes == 20
        assert channel.fed == [b"\x00\x00" * 10]
        await session.stop()


class TestConcurrency:
    """Transitions in flight ignore further start/stop calls."""

    async def test_concurrent_starts_acquire_one_stream(self, make_microphone):
        slow = make_microphone(delay=0.01)
        session = AudioCaptureSession(slow)

        results = await asyncio.gather(session.start(), session.start())

        assert sorted(results) == [False, True]
        assert slow.open_calls == 1
        await session.stop()

    async def test_stop_during_permission_request_is_ignored(self, make_microphone):
        slow = make_microphone(delay=0.01)
        session = AudioCaptureSession(slow)

        start = asyncio.create_task(session.start())
        await asyncio.sleep(0)
        assert await session.stop() is None
        await start

        assert session.state == CaptureState.RECORDING
        await session.stop()

    async def test_concurrent_stops_finalize_once(self, session, microphone):
        await session.start()
        calls = []

        async def finalize(audio):
            calls.append(audio)
            await asyncio.sleep(0)
            return "done"

        results = await asyncio.gather(session.stop(finalize), session.stop(finalize))

        assert sorted(results, key=str) == [None, "done"]
        assert len(calls) == 1


class TestDeviceFailure:
    """Microphone failing mid-recording."""

    async def test_device_loss_moves_to_error_and_releases(self, session, microphone, channel):
        await session.start()
        channel.emit(finals=["partial"])

        microphone.stream.fail(CaptureError(ErrorKind.DEVICE_NOT_FOUND, "unplugged"))
        await asyncio.sleep(0)

        assert session.state == CaptureState.ERROR
        assert session.error == ErrorKind.DEVICE_NOT_FOUND
        assert microphone.live_streams == []
        assert not session.is_metering
        assert await session.stop() is None
        assert session.recovered_interim_text == "partial"

    async def test_restart_waits_for_previous_channel_stop(self, microphone):
        """The lost take's channel shutdown finishes before the channel restarts."""
        channel = SlowStopChannel()
        session = AudioCaptureSession(microphone, interim=InterimTranscriber(channel))
        await session.start()

        microphone.stream.fail(CaptureError(ErrorKind.DEVICE_NOT_FOUND, "unplugged"))
        assert await session.start() is True

        assert channel.calls == ["start", "stop-begin", "stop-end", "start"]
        assert session.recovered_interim_text == ""
        await session.stop()

    def test_classify_device_error(self):
        assert classify_device_error(PermissionError("denied")) == ErrorKind.PERMISSION_DENIED
        assert classify_device_error(OSError("Access denied by system")) == ErrorKind.PERMISSION_DENIED
        assert classify_device_error(OSError("Error querying device -1")) == ErrorKind.DEVICE_NOT_FOUND


class TestContextManager:
    async def test_exit_stops_and_releases(self, microphone):
        async with AudioCaptureSession(microphone) as session:
            assert session.state == CaptureState.RECORDING

        assert session.state == CaptureState.IDLE
        assert microphone.live_streams == []

    async def test_exit_on_exception_releases(self, microphone):
        with pytest.raises(KeyError):
            async with AudioCaptureSession(microphone) as session:
                raise KeyError("boom")

        assert session.state == CaptureState.IDLE
        assert microphone.live_streams == []
