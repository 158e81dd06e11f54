"""Best-effort live transcript from a streaming recognition channel.

Final segments are append-only; the in-progress interim segment is
replaced by every event and discarded on stop. Channel failures never
propagate: batch transcription is the transcript of record.
"""

import logging
from dataclasses import dataclass
from typing import Callable, List, Optional, Protocol, Tuple, runtime_checkable

from coach_service.core.transcript import SegmentOrigin, TranscriptSegment

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class RecognitionEvent:
    """One result event: zero or more finalized segments, at most one interim."""

    finals: Tuple[str, ...] = ()
    interim: str = ""
    offset_ms: int = 0


@runtime_checkable
class RecognitionChannel(Protocol):
    """A continuous recognizer fed with PCM16 chunks while recording."""

    def on_segment(self, callback: Callable[[RecognitionEvent], None]) -> None:
        ...

    def on_error(self, callback: Callable[[Exception], None]) -> None:
        ...

    async def start(self) -> None:
        ...

    def feed(self, chunk: bytes) -> None:
        ...

    async def stop(self) -> None:
        ...


class InterimTranscriber:
    """
    Accumulates final text from a RecognitionChannel.

    live_transcript is final + current interim for display while recording;
    freeze() fixes the final text at the stop transition so late events
    cannot change what the reconciler sees.
    """

    def __init__(self, channel: Optional[RecognitionChannel] = None):
        self._channel = channel
        self._segments: List[TranscriptSegment] = []
        self._interim = ""
        self._active = False
        self._running = False
        self._frozen = False

    @property
    def active(self) -> bool:
        return self._active

    @property
    def frozen(self) -> bool:
        return self._frozen

    @property
    def segments(self) -> Tuple[TranscriptSegment, ...]:
        return tuple(self._segments)

    @property
    def final_text(self) -> str:
        return " ".join(s.text for s in self._segments)

    @property
    def live_transcript(self) -> str:
        return " ".join(t for t in (self.final_text, self._interim) if t)

    async def start(self) -> bool:
        """
        Start the channel for a new recording.

        Returns:
            True if the channel is running, False if interim text is unavailable
        """
        self._segments = []
        self._interim = ""
        self._frozen = False
        self._active = False

        if self._channel is None:
            return False

        self._channel.on_segment(self.handle_event)
        self._channel.on_error(self._handle_error)
        try:
            await self._channel.start()
        except Exception as e:
            logger.warning(f"Interim recognition unavailable: {e}")
            return False

        self._running = True
        self._active = True
        return True

    def feed(self, chunk: bytes) -> None:
        if not self._active:
            return
        try:
            self._channel.feed(chunk)
        except Exception as e:
            self._handle_error(e)

    def handle_event(self, event: RecognitionEvent) -> None:
        """Apply one recognition event (in arrival order)."""
        if self._frozen:
            logger.debug("Ignoring recognition event after stop")
            return

        for text in event.finals:
            text = text.strip()
            if text:
                self._segments.append(
                    TranscriptSegment(text, SegmentOrigin.FINAL, event.offset_ms)
                )
        self._interim = event.interim.strip()

    def freeze(self) -> str:
        """Discard the in-progress segment and fix the final text."""
        self._frozen = True
        self._interim = ""
        return self.final_text

    async def stop(self) -> str:
        """Freeze and shut the channel down. Never raises."""
        text = self.freeze()
        self._active = False
        if self._running:
            self._running = False
            try:
                await self._channel.stop()
            except Exception as e:
                logger.warning(f"Interim recognition did not stop cleanly: {e}")
        return text

    def _handle_error(self, error: Exception) -> None:
        # Keep what was already finalized
        logger.warning(f"Interim recognition failed, continuing without it: {error}")
        self._active = False
