"""Stateless audio helpers: level metering, WAV packaging, encoding sniffing."""

import io
import wave
from typing import Optional

import numpy as np

# Canonical MIME types reported for sniffed containers
WAV = "audio/wav"
WEBM = "audio/webm"
OGG = "audio/ogg"
FLAC = "audio/flac"
MP3 = "audio/mpeg"
MP4 = "audio/mp4"
PCM = "audio/pcm"

_MIME_ALIASES = {
    "audio/wave": WAV,
    "audio/x-wav": WAV,
    "audio/vnd.wave": WAV,
    "audio/mp3": MP3,
    "audio/x-flac": FLAC,
    "audio/x-m4a": MP4,
    "audio/m4a": MP4,
    "audio/l16": PCM,
    "audio/raw": PCM,
}


def pcm_bytes_to_float32(audio_bytes: bytes) -> np.ndarray:
    """Convert raw PCM 16-bit little-endian bytes to float32 array in [-1.0, 1.0].

    Args:
        audio_bytes: Raw PCM audio (16-bit signed LE).

    Returns:
        Float32 numpy array normalized to [-1.0, 1.0].
    """
    if len(audio_bytes) < 2:
        return np.array([], dtype=np.float32)

    usable = len(audio_bytes) - (len(audio_bytes) % 2)
    samples = np.frombuffer(audio_bytes[:usable], dtype=np.int16)
    return samples.astype(np.float32) / 32768.0


def amplitude_level(audio_bytes: bytes) -> int:
    """Loudness of a PCM16 frame as an integer percentage of full scale (RMS)."""
    samples = pcm_bytes_to_float32(audio_bytes)
    if len(samples) == 0:
        return 0
    rms = float(np.sqrt(np.mean(np.square(samples))))
    return min(100, round(rms * 100))


def pcm_duration_ms(num_bytes: int, sample_rate: int, channels: int = 1) -> float:
    """Duration of a PCM16 payload in milliseconds."""
    if num_bytes <= 0:
        return 0.0
    return num_bytes / (sample_rate * channels * 2) * 1000


def pcm16_to_wav(audio_bytes: bytes, sample_rate: int, channels: int = 1) -> bytes:
    """Wrap raw PCM16 in a RIFF/WAVE container."""
    buffer = io.BytesIO()
    with wave.open(buffer, "wb") as wav:
        wav.setnchannels(channels)
        wav.setsampwidth(2)
        wav.setframerate(sample_rate)
        wav.writeframes(audio_bytes)
    return buffer.getvalue()


def wav_sample_rate(audio_bytes: bytes) -> Optional[int]:
    """Sample rate from a WAV header, or None if not a readable WAV."""
    try:
        with wave.open(io.BytesIO(audio_bytes), "rb") as wav:
            return wav.getframerate()
    except (wave.Error, EOFError):
        return None


def normalize_mime(mime_type: Optional[str]) -> str:
    """Lower-case MIME type without parameters, with common aliases folded."""
    if not mime_type:
        return ""
    base = mime_type.split(";", 1)[0].strip().lower()
    return _MIME_ALIASES.get(base, base)


def sniff_encoding(audio_bytes: bytes) -> Optional[str]:
    """Identify the container from magic bytes, or None if unrecognised."""
    head = audio_bytes[:12]
    if head[:4] == b"RIFF" and head[8:12] == b"WAVE":
        return WAV
    if head[:4] == b"\x1a\x45\xdf\xa3":
        return WEBM
    if head[:4] == b"OggS":
        return OGG
    if head[:4] == b"fLaC":
        return FLAC
    if head[:3] == b"ID3" or (len(head) >= 2 and head[0] == 0xFF and (head[1] & 0xE0) == 0xE0):
        return MP3
    if head[4:8] == b"ftyp":
        return MP4
    return None


def detect_encoding(audio_bytes: bytes, declared_mime: Optional[str] = None) -> str:
    """
    Determine the encoding actually received.

    Magic bytes win over the declared type, since browsers and form
    libraries routinely mislabel uploads. Falls back to the declared type
    when the payload is not recognisable.

    Args:
        audio_bytes: Uploaded payload
        declared_mime: Content type supplied with the upload

    Returns:
        Normalized MIME type ("" if neither source says anything)
    """
    return sniff_encoding(audio_bytes) or normalize_mime(declared_mime)
