"""Turn segmentation state machine.

A turn starts when the frame amplitude reaches ``start_threshold`` times the
calibrated baseline and ends once it has stayed under ``stop_threshold``
times the baseline for ``silence_ms + grace_ms``. The stop threshold is lower
than the start threshold so a level hovering near one boundary does not
toggle the state on every frame.

All timestamps are monotonic seconds; durations are reported in ms.
"""

from __future__ import annotations

import enum
import threading
from dataclasses import dataclass
from typing import Optional

from .config import VadConfig
from .errors import ValidationError


class VadState(enum.Enum):
    IDLE = "idle"
    LISTENING = "listening"
    RECORDING = "recording"
    STOPPED = "stopped"


class StopReason(enum.Enum):
    MAX_DURATION = "max_duration"
    SILENCE = "silence"
    CANCELLED = "cancelled"
    NO_SPEECH = "no_speech"


class CancellationToken:
    """Cooperative stop flag checked on every frame."""

    def __init__(self) -> None:
        self._event = threading.Event()

    def cancel(self) -> None:
        self._event.set()

    @property
    def cancelled(self) -> bool:
        return self._event.is_set()


@dataclass(frozen=True)
class VadParams:
    start_threshold: float = 3.0
    stop_threshold: float = 2.0
    min_duration_ms: int = 1200
    max_duration_ms: int = 180000
    silence_ms: int = 1600
    grace_ms: int = 600
    max_wait_ms: Optional[int] = None

    def __post_init__(self) -> None:
        if self.stop_threshold <= 0:
            raise ValidationError("stop_threshold must be > 0")
        if self.start_threshold <= self.stop_threshold:
            raise ValidationError("start_threshold must be greater than stop_threshold")
        if min(self.min_duration_ms, self.silence_ms, self.grace_ms) < 0:
            raise ValidationError("durations must be >= 0")
        if self.max_duration_ms <= 0 or self.max_duration_ms < self.min_duration_ms:
            raise ValidationError("max_duration_ms must be positive and >= min_duration_ms")
        if self.max_wait_ms is not None and self.max_wait_ms < 0:
            raise ValidationError("max_wait_ms must be >= 0")

    @classmethod
    def from_config(cls, cfg: VadConfig) -> "VadParams":
        return cls(
            start_threshold=cfg.start_threshold,
            stop_threshold=cfg.stop_threshold,
            min_duration_ms=cfg.min_duration_ms,
            max_duration_ms=cfg.max_duration_ms,
            silence_ms=cfg.silence_ms,
            grace_ms=cfg.grace_ms,
            max_wait_ms=cfg.max_wait_ms,
        )


class TurnStateMachine:
    def __init__(
        self,
        baseline: float,
        params: Optional[VadParams] = None,
        cancel: Optional[CancellationToken] = None,
    ) -> None:
        if not baseline > 0:
            raise ValidationError(f"baseline must be > 0, got {baseline!r}")
        self.baseline = baseline
        self.params = params or VadParams()
        self.cancel_token = cancel or CancellationToken()
        self.state = VadState.IDLE
        self.stop_reason: Optional[StopReason] = None
        self.listen_started_at: Optional[float] = None
        self.started_at: Optional[float] = None
        self.last_loud_at: Optional[float] = None
        self.stopped_at: Optional[float] = None

    @property
    def started(self) -> bool:
        return self.started_at is not None

    @property
    def done(self) -> bool:
        return self.state is VadState.STOPPED

    def begin(self, now: float) -> None:
        if self.state is VadState.IDLE:
            self.state = VadState.LISTENING
            self.listen_started_at = now

    def step(self, amplitude: float, now: float) -> bool:
        """Advance one frame. Returns True when the frame belongs to the turn."""
        if self.state is VadState.STOPPED:
            return False
        if self.state is VadState.IDLE:
            self.begin(now)

        ratio = amplitude / self.baseline
        p = self.params

        if self.state is VadState.LISTENING:
            if self.cancel_token.cancelled:
                self._stop(now, StopReason.CANCELLED)
                return False
            if ratio >= p.start_threshold:
                self.state = VadState.RECORDING
                self.started_at = now
                self.last_loud_at = now
            elif p.max_wait_ms is not None and _ms(now - self.listen_started_at) >= p.max_wait_ms:
                self._stop(now, StopReason.NO_SPEECH)
                return False
            else:
                return False

        if ratio >= p.stop_threshold:
            self.last_loud_at = now

        elapsed = _ms(now - self.started_at)
        quiet = _ms(now - self.last_loud_at)
        if elapsed >= p.max_duration_ms:
            self._stop(now, StopReason.MAX_DURATION)
        elif elapsed >= p.min_duration_ms and quiet >= p.silence_ms + p.grace_ms:
            self._stop(now, StopReason.SILENCE)
        elif self.cancel_token.cancelled:
            self._stop(now, StopReason.CANCELLED)
            return False
        return True

    def duration_ms(self) -> int:
        if self.started_at is None:
            return 0
        end = self.stopped_at if self.stopped_at is not None else self.started_at
        span = max(0, int(round(_ms(end - self.started_at))))
        if self.stop_reason is StopReason.MAX_DURATION:
            span = min(span, self.params.max_duration_ms)
        return span

    def interrupt(self, now: float) -> None:
        """Stop immediately, e.g. when the audio stream ends."""
        if self.state is not VadState.STOPPED:
            self._stop(now, StopReason.CANCELLED)

    def _stop(self, now: float, reason: StopReason) -> None:
        self.state = VadState.STOPPED
        self.stop_reason = reason
        self.stopped_at = now


def _ms(seconds: float) -> float:
    # Round away float noise from summed frame timestamps.
    return round(seconds * 1000.0, 6)
