"""Explanation coach service: resilient transcription and feedback orchestration."""

__version__ = "0.1.0"
