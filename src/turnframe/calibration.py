"""Ambient noise floor calibration."""

from __future__ import annotations

import logging
from typing import List

import numpy as np

from .audio_utils import frame_rms
from .config import CalibrationConfig
from .errors import ValidationError
from .models import CalibrationResult
from .recorder import AudioSource

logger = logging.getLogger(__name__)


def calibrate(
    source: AudioSource,
    duration_seconds: float = 1.6,
    min_baseline: float = 0.01,
    fallback_baseline: float = 0.02,
) -> CalibrationResult:
    """Measure the noise floor as the median frame RMS over ``duration_seconds``.

    The median ignores short clicks and coughs that would drag a mean up.
    The result is never below ``min_baseline``; ``fallback_baseline`` is used
    when no frame arrived at all.
    """
    if duration_seconds <= 0:
        raise ValidationError("duration_seconds must be > 0.")
    if min_baseline <= 0 or fallback_baseline <= 0:
        raise ValidationError("baseline floors must be > 0.")

    levels: List[float] = []
    first = last = None
    with source.open() as stream:
        for frame in stream.frames():
            if first is None:
                first = frame.timestamp
            if frame.timestamp - first >= duration_seconds:
                break
            last = frame.timestamp
            levels.append(frame_rms(frame.samples))

    measured_ms = int(round((last - first) * 1000)) if levels else 0
    if not levels:
        logger.warning("Calibration captured no audio, using fallback %.3f", fallback_baseline)
        return CalibrationResult(baseline=fallback_baseline, samples=0, duration_ms=0)

    median = float(np.median(levels))
    baseline = max(median, min_baseline)
    logger.info("Calibrated baseline %.4f from %d frames (median %.4f)", baseline, len(levels), median)
    return CalibrationResult(baseline=baseline, samples=len(levels), duration_ms=measured_ms)


def calibrate_from_config(source: AudioSource, cfg: CalibrationConfig) -> CalibrationResult:
    return calibrate(
        source,
        duration_seconds=cfg.duration_seconds,
        min_baseline=cfg.min_baseline,
        fallback_baseline=cfg.fallback_baseline,
    )
