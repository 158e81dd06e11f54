"""Combine interim and batch transcription output into one transcript."""

import logging
from dataclasses import dataclass
from enum import Enum
from typing import Optional

from coach_service.core.transcript import TranscriptionResult

logger = logging.getLogger(__name__)


class TranscriptSource(str, Enum):
    """Which channel the reconciled text came from."""

    BATCH = "batch"
    INTERIM = "interim"
    NONE = "none"


@dataclass(frozen=True)
class ReconciledTranscript:
    """Final transcript handed back to the caller."""

    text: str
    source: TranscriptSource
    provider_id: Optional[str] = None
    confidence: Optional[float] = None
    batch: Optional[TranscriptionResult] = None

    @property
    def is_empty(self) -> bool:
        """True for the EmptyTranscript condition (an invitation to retry, not an error)."""
        return self.source is TranscriptSource.NONE


def reconcile(
    batch: Optional[TranscriptionResult],
    interim_final: str,
) -> ReconciledTranscript:
    """
    Pick the authoritative transcript.

    1. A present, non-error, non-empty batch result wins.
    2. Otherwise the frozen interim final text, if non-empty.
    3. Otherwise the EmptyTranscript condition.

    Args:
        batch: Batch provider result, or None if it never arrived
        interim_final: Frozen accumulated final text from the interim channel

    Returns:
        ReconciledTranscript
    """
    if batch is not None and batch.ok and not batch.is_empty:
        return ReconciledTranscript(
            text=batch.text,
            source=TranscriptSource.BATCH,
            provider_id=batch.provider_id,
            confidence=batch.confidence,
            batch=batch,
        )

    if batch is not None and not batch.ok:
        logger.info(f"Batch transcription failed ({batch.error.value}), using interim text")

    interim = interim_final.strip()
    if interim:
        return ReconciledTranscript(
            text=interim,
            source=TranscriptSource.INTERIM,
            provider_id="interim",
            batch=batch,
        )

    return ReconciledTranscript(text="", source=TranscriptSource.NONE, batch=batch)
