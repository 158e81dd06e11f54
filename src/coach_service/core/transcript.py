"""Transcript data types shared by the capture pipeline and the providers."""

from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Dict, List, Optional

from coach_service.core.errors import ErrorKind


class SegmentOrigin(str, Enum):
    """Where a transcript segment came from."""

    INTERIM = "interim"  # replaceable
    FINAL = "final"  # append-only, authoritative once emitted


@dataclass(frozen=True)
class TranscriptSegment:
    """One piece of text from the live recognition channel."""

    text: str
    origin: SegmentOrigin
    timestamp_offset_ms: int = 0


@dataclass
class TranscribeOptions:
    """Per-call options for a batch transcription."""

    language_hint: Optional[str] = None
    diarization: bool = False
    timestamps: bool = False


@dataclass
class TranscriptionResult:
    """
    Outcome of one batch transcription.

    Empty text with error None is a successful transcription of (near)
    silence. A failure always sets error; text is then empty.
    """

    text: str
    provider_id: str
    confidence: Optional[float] = None
    error: Optional[ErrorKind] = None
    error_message: Optional[str] = None
    encoding: Optional[str] = None
    language: Optional[str] = None
    words: List[Dict[str, Any]] = field(default_factory=list)
    speakers: List[Dict[str, Any]] = field(default_factory=list)

    @property
    def ok(self) -> bool:
        return self.error is None

    @property
    def is_empty(self) -> bool:
        return not self.text.strip()

    @classmethod
    def failure(
        cls,
        provider_id: str,
        kind: ErrorKind,
        message: str,
        encoding: Optional[str] = None,
    ) -> "TranscriptionResult":
        return cls(
            text="",
            provider_id=provider_id,
            error=kind,
            error_message=message,
            encoding=encoding,
        )
