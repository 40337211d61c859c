from contextlib import contextmanager
from datetime import datetime, timedelta, timezone

import numpy as np
import pytest

from turnframe.errors import HardwareUnavailable
from turnframe.object_store import MemoryObjectStore
from turnframe.recorder import AudioFrame


class ScriptedInput:
    """Stands in for a microphone: each open() replays the next level script.

    Every frame is ``frame_ms`` long and holds a constant amplitude, so its
    RMS equals the scripted level.
    """

    def __init__(self, *scripts, frame_ms=50, sample_rate_hz=1000, start=100.0, fail_after=None):
        self.scripts = list(scripts)
        self.frame_ms = frame_ms
        self.sample_rate_hz = sample_rate_hz
        self.channels = 1
        self.start = start
        self.fail_after = fail_after
        self.opened = 0
        self.closed = 0
        self.is_open = False
        self.on_frame = None

    @contextmanager
    def open(self):
        script = self.scripts[min(self.opened, len(self.scripts) - 1)]
        self.opened += 1
        self.is_open = True
        try:
            yield _ScriptStream(self, script)
        finally:
            self.is_open = False
            self.closed += 1


class _ScriptStream:
    def __init__(self, owner, levels):
        self.owner = owner
        self.levels = levels
        self.sample_rate_hz = owner.sample_rate_hz
        self.channels = owner.channels

    def frames(self):
        per_frame = self.owner.sample_rate_hz * self.owner.frame_ms // 1000
        for index, level in enumerate(self.levels):
            if self.owner.fail_after is not None and index >= self.owner.fail_after:
                raise HardwareUnavailable("device unplugged")
            if self.owner.on_frame:
                self.owner.on_frame(index)
            yield AudioFrame(
                samples=np.full((per_frame, 1), level, dtype=np.float32),
                timestamp=self.owner.start + index * self.owner.frame_ms / 1000,
            )


def levels(*runs):
    """levels((0.02, 10), (0.08, 41)) -> ten frames at 0.02 then 41 at 0.08."""
    out = []
    for level, count in runs:
        out.extend([level] * count)
    return out


class StepClock:
    def __init__(self, start=datetime(2026, 3, 1, 12, 0, tzinfo=timezone.utc), step_seconds=1):
        self.now = start
        self.step = timedelta(seconds=step_seconds)

    def __call__(self):
        current = self.now
        self.now = self.now + self.step
        return current


@pytest.fixture
def clock():
    return StepClock()


@pytest.fixture
def store(clock):
    return MemoryObjectStore(clock=clock)
