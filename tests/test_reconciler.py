"""Tests for transcript reconciliation precedence."""

from coach_service.core.errors import ErrorKind
from coach_service.core.reconciler import TranscriptSource, reconcile
from coach_service.core.transcript import TranscriptionResult


def batch(text="", error=None):
    return TranscriptionResult(text=text, provider_id="deepgram", confidence=0.9, error=error)


def test_batch_text_wins_exactly_over_interim():
    """A non-empty successful batch result is returned verbatim."""
    result = reconcile(batch("  Hello, world.  "), "hello world")

    assert result.text == "  Hello, world.  "
    assert result.source == TranscriptSource.BATCH
    assert result.provider_id == "deepgram"
    assert result.confidence == 0.9


def test_failed_batch_falls_back_to_interim():
    result = reconcile(batch(error=ErrorKind.PROVIDER_UNAVAILABLE), "hello world")

    assert result.text == "hello world"
    assert result.source == TranscriptSource.INTERIM
    assert result.batch.error == ErrorKind.PROVIDER_UNAVAILABLE


def test_empty_batch_falls_back_to_interim():
    result = reconcile(batch(""), "typed by recognizer")

    assert result.text == "typed by recognizer"
    assert result.source == TranscriptSource.INTERIM


def test_missing_batch_falls_back_to_interim():
    assert reconcile(None, "hello").text == "hello"


def test_nothing_anywhere_is_empty_transcript():
    result = reconcile(batch(""), "   ")

    assert result.is_empty
    assert result.text == ""
    assert result.source == TranscriptSource.NONE
