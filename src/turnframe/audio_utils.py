"""Audio helpers."""

from __future__ import annotations

import io
import wave
from typing import Sequence

import numpy as np


def frame_rms(samples: np.ndarray) -> float:
    """RMS of a frame, normalised to [0, 1] for int16 or float input."""
    if samples.size == 0:
        return 0.0
    data = samples.astype(np.float64)
    if np.issubdtype(samples.dtype, np.integer):
        data /= 32768.0
    return float(np.sqrt(np.mean(data**2)))


def to_int16(samples: np.ndarray) -> np.ndarray:
    if samples.dtype == np.int16:
        return samples
    if np.issubdtype(samples.dtype, np.floating):
        clipped = np.clip(samples, -1.0, 1.0)
        return (clipped * 32767).astype(np.int16)
    return samples.astype(np.int16)


def encode_wav(chunks: Sequence[np.ndarray], sample_rate_hz: int, channels: int = 1) -> bytes:
    """Concatenate captured chunks into one 16-bit PCM WAV buffer."""
    if chunks:
        data = np.concatenate([to_int16(chunk).reshape(-1, channels) for chunk in chunks])
    else:
        data = np.zeros((0, channels), dtype=np.int16)
    buffer = io.BytesIO()
    with wave.open(buffer, "wb") as handle:
        handle.setnchannels(channels)
        handle.setsampwidth(2)
        handle.setframerate(sample_rate_hz)
        handle.writeframes(data.tobytes())
    return buffer.getvalue()
