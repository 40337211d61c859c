"""Microphone input and turn recording."""

from __future__ import annotations

import logging
import queue
import threading
import time
from contextlib import contextmanager
from dataclasses import dataclass
from typing import Any, Callable, Dict, Iterator, List, Optional, Protocol

import numpy as np

from .audio_utils import encode_wav, frame_rms
from .errors import HardwareUnavailable
from .vad import CancellationToken, StopReason, TurnStateMachine, VadParams

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class AudioFrame:
    samples: np.ndarray
    timestamp: float


class FrameStream(Protocol):
    sample_rate_hz: int
    channels: int

    def frames(self) -> Iterator[AudioFrame]:
        ...


class AudioSource(Protocol):
    def open(self) -> Any:
        """Context manager yielding a ``FrameStream``."""
        ...


def list_input_devices() -> List[Dict[str, Any]]:
    try:
        import sounddevice as sd
    except Exception as exc:  # pragma: no cover - environment-dependent
        raise HardwareUnavailable("sounddevice is required for device detection.") from exc

    devices = sd.query_devices()
    return [d for d in devices if d.get("max_input_channels", 0) > 0]


def select_preferred_device(
    candidates: List[Dict[str, Any]],
    prefer_name: Optional[str] = None,
) -> Dict[str, Any]:
    if not candidates:
        raise HardwareUnavailable("No input devices found.")
    if prefer_name:
        preferred = [
            d for d in candidates if prefer_name.lower() in d.get("name", "").lower()
        ]
        if preferred:
            return preferred[0]
        logger.warning("Input device %r not found, using %s", prefer_name, candidates[0].get("name"))
    return candidates[0]


class _QueueStream:
    def __init__(self, frames: "queue.Queue[AudioFrame]", sample_rate_hz: int, channels: int, stall_seconds: float) -> None:
        self._queue = frames
        self.sample_rate_hz = sample_rate_hz
        self.channels = channels
        self.stall_seconds = stall_seconds

    def frames(self) -> Iterator[AudioFrame]:
        while True:
            try:
                yield self._queue.get(timeout=self.stall_seconds)
            except queue.Empty as exc:
                raise HardwareUnavailable(
                    f"no audio received for {self.stall_seconds:.1f}s"
                ) from exc


class AudioInput:
    """One microphone. Calibration and recording share it and never overlap."""

    def __init__(
        self,
        device_name: Optional[str] = None,
        sample_rate_hz: int = 16000,
        channels: int = 1,
        frame_ms: int = 50,
        clock: Callable[[], float] = time.monotonic,
        stall_seconds: float = 2.0,
    ) -> None:
        self.device_name = device_name
        self.sample_rate_hz = sample_rate_hz
        self.channels = channels
        self.frame_ms = frame_ms
        self.clock = clock
        self.stall_seconds = stall_seconds
        self._busy = threading.Lock()

    @contextmanager
    def open(self) -> Iterator[_QueueStream]:
        if not self._busy.acquire(blocking=False):
            raise HardwareUnavailable("audio input busy")
        try:
            try:
                import sounddevice as sd
            except Exception as exc:  # pragma: no cover - environment-dependent
                raise HardwareUnavailable("sounddevice is required for recording.") from exc

            device = select_preferred_device(list_input_devices(), self.device_name)
            frames: "queue.Queue[AudioFrame]" = queue.Queue()

            def _callback(indata, _frames, _time, status):
                if status:
                    logger.debug("Input stream status: %s", status)
                frames.put(AudioFrame(samples=indata.copy(), timestamp=self.clock()))

            try:
                stream = sd.InputStream(
                    samplerate=self.sample_rate_hz,
                    channels=self.channels,
                    dtype="float32",
                    device=device.get("index"),
                    blocksize=int(self.sample_rate_hz * self.frame_ms / 1000),
                    callback=_callback,
                )
            except sd.PortAudioError as exc:
                raise HardwareUnavailable(f"cannot open {device.get('name')}: {exc}") from exc
            try:
                stream.start()
            except sd.PortAudioError as exc:
                stream.close()
                raise HardwareUnavailable(f"cannot start {device.get('name')}: {exc}") from exc

            logger.debug("Opened input %s at %d Hz", device.get("name"), self.sample_rate_hz)
            try:
                yield _QueueStream(frames, self.sample_rate_hz, self.channels, self.stall_seconds)
            finally:
                stream.stop()
                stream.close()
        finally:
            self._busy.release()


@dataclass(frozen=True)
class TurnCapture:
    started: bool
    stop_reason: StopReason
    duration_ms: int = 0
    audio: bytes = b""
    mime: str = "audio/wav"


class TurnRecorder:
    def __init__(self, source: AudioSource, params: Optional[VadParams] = None) -> None:
        self.source = source
        self.params = params or VadParams()

    def record(self, baseline: float, cancel: Optional[CancellationToken] = None) -> TurnCapture:
        """Capture one turn.

        Blocks until the speaker stops, the turn hits its maximum length,
        ``cancel`` is set, or no speech arrives within ``max_wait_ms``. The
        input is closed on every exit path, including errors.
        """
        machine = TurnStateMachine(baseline, self.params, cancel)
        chunks: List[np.ndarray] = []
        with self.source.open() as stream:
            last_seen: Optional[float] = None
            for frame in stream.frames():
                last_seen = frame.timestamp
                if machine.step(frame_rms(frame.samples), frame.timestamp):
                    chunks.append(frame.samples)
                if machine.done:
                    break
            else:
                machine.interrupt(last_seen if last_seen is not None else 0.0)
            sample_rate_hz, channels = stream.sample_rate_hz, stream.channels

        if not machine.started:
            logger.info("No turn started (%s)", machine.stop_reason.value)
            return TurnCapture(started=False, stop_reason=machine.stop_reason)

        duration = machine.duration_ms()
        logger.info("Turn captured: %d ms (%s)", duration, machine.stop_reason.value)
        return TurnCapture(
            started=True,
            stop_reason=machine.stop_reason,
            duration_ms=duration,
            audio=encode_wav(chunks, sample_rate_hz, channels),
        )
