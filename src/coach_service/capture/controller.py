"""Collaborator-facing API: capture, transcribe, reconcile, and get feedback."""

import logging
from enum import Enum
from typing import Any, Dict, Optional, Protocol

from coach_service.capture.session import AudioCaptureSession, CapturedAudio, CaptureState
from coach_service.core.errors import SubmissionInProgress
from coach_service.core.feedback import FeedbackGenerator
from coach_service.core.reconciler import ReconciledTranscript, TranscriptSource, reconcile
from coach_service.core.transcript import TranscribeOptions, TranscriptionResult

logger = logging.getLogger(__name__)


class SubmissionState(Enum):
    """Feedback submission lifecycle."""

    IDLE = "idle"
    SUBMITTING = "submitting"


class BatchTranscriber(Protocol):
    """SpeechApiClient, or a provider adapter used in-process."""

    async def transcribe(
        self,
        audio: bytes,
        mime_type: Optional[str] = None,
        options: Optional[TranscribeOptions] = None,
    ) -> TranscriptionResult:
        ...


class CoachController:
    """
    Glue between capture, batch transcription and feedback generation.

    One controller serves one user: at most one recording and at most one
    feedback submission at a time.
    """

    def __init__(
        self,
        session: AudioCaptureSession,
        transcriber: BatchTranscriber,
        feedback: FeedbackGenerator,
        options: Optional[TranscribeOptions] = None,
    ):
        self._session = session
        self._transcriber = transcriber
        self._feedback = feedback
        self._options = options or TranscribeOptions()
        self._submission = SubmissionState.IDLE
        self._last_transcript = ReconciledTranscript(text="", source=TranscriptSource.NONE)

    @property
    def session(self) -> AudioCaptureSession:
        return self._session

    @property
    def submission_state(self) -> SubmissionState:
        return self._submission

    async def start_capture(self) -> bool:
        """Start recording. Raises CaptureError on permission or device failure."""
        started = await self._session.start()
        if started:
            self._last_transcript = ReconciledTranscript(text="", source=TranscriptSource.NONE)
        return started

    async def stop_capture(self) -> ReconciledTranscript:
        """
        Stop recording and return the reconciled transcript.

        Calling it again after a stop returns the same transcript. If the
        microphone failed mid-recording, the text finalized before the
        failure is returned.
        """
        result = await self._session.stop(self._finalize)
        if result is None:
            if self._session.state is CaptureState.ERROR:
                self._last_transcript = reconcile(None, self._session.recovered_interim_text)
            return self._last_transcript
        self._last_transcript = result
        return result

    def get_live_transcript(self) -> str:
        return self._session.live_transcript

    async def generate_feedback(
        self,
        prompt: str,
        schema: Optional[Dict[str, Any]] = None,
        model_preference: Optional[str] = None,
    ) -> Dict[str, Any]:
        """
        Request feedback for a transcript.

        Raises:
            SubmissionInProgress: If a submission is already in flight
            ExhaustedError: If every model and key failed
        """
        if self._submission is SubmissionState.SUBMITTING:
            raise SubmissionInProgress("A feedback request is already in progress")
        self._submission = SubmissionState.SUBMITTING
        try:
            return await self._feedback.generate_feedback(prompt, schema, model_preference)
        finally:
            self._submission = SubmissionState.IDLE

    async def _finalize(self, audio: CapturedAudio) -> ReconciledTranscript:
        batch = None
        if audio.duration_ms > 0:
            batch = await self._transcriber.transcribe(audio.data, audio.mime_type, self._options)
        else:
            logger.info("No audio captured, skipping batch transcription")

        transcript = reconcile(batch, audio.interim_text)
        logger.info(
            f"Transcript from {transcript.source.value} "
            f"({len(transcript.text)} chars, {audio.duration_ms:.0f} ms audio)"
        )
        return transcript
