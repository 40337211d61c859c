import io
import sys
import types
import wave

import pytest

from conftest import ScriptedInput, levels
from turnframe.errors import HardwareUnavailable
from turnframe.recorder import AudioInput, TurnRecorder, select_preferred_device
from turnframe.vad import CancellationToken, StopReason, VadParams


def _wav_frames(data):
    with wave.open(io.BytesIO(data), "rb") as handle:
        return handle.getnframes(), handle.getframerate(), handle.getnchannels()


def test_select_preferred_device_prefers_name():
    candidates = [
        {"name": "Built-in Mic", "index": 1},
        {"name": "USB Headset Microphone", "index": 2},
    ]
    result = select_preferred_device(candidates, prefer_name="headset")
    assert result["name"] == "USB Headset Microphone"


def test_select_preferred_device_falls_back_to_first():
    candidates = [
        {"name": "Built-in Mic", "index": 1},
        {"name": "USB Mic", "index": 2},
    ]
    assert select_preferred_device(candidates, prefer_name="missing")["index"] == 1


def test_select_preferred_device_without_candidates():
    with pytest.raises(HardwareUnavailable):
        select_preferred_device([])


def test_records_burst_followed_by_silence():
    source = ScriptedInput(levels((0.02, 10), (0.08, 41), (0.0, 100)))
    capture = TurnRecorder(source).record(baseline=0.02)

    assert capture.started
    assert capture.stop_reason is StopReason.SILENCE
    assert capture.duration_ms == 4200
    assert capture.mime == "audio/wav"
    nframes, rate, channels = _wav_frames(capture.audio)
    # frames 10..94 inclusive, 50 samples each
    assert nframes == 85 * 50
    assert rate == 1000
    assert channels == 1
    assert not source.is_open
    assert source.closed == 1


def test_did_not_start_is_not_an_error():
    source = ScriptedInput([0.02] * 200)
    capture = TurnRecorder(source, VadParams(max_wait_ms=2000)).record(baseline=0.02)

    assert not capture.started
    assert capture.stop_reason is StopReason.NO_SPEECH
    assert capture.audio == b""
    assert capture.duration_ms == 0
    assert source.closed == 1


def test_cancellation_is_checked_every_frame():
    source = ScriptedInput([0.1] * 400)
    token = CancellationToken()
    source.on_frame = lambda index: token.cancel() if index == 30 else None

    capture = TurnRecorder(source).record(baseline=0.02, cancel=token)

    assert capture.started
    assert capture.stop_reason is StopReason.CANCELLED
    assert capture.duration_ms == 1500
    assert _wav_frames(capture.audio)[0] == 30 * 50


def test_stream_ending_mid_turn_keeps_what_was_captured():
    source = ScriptedInput([0.1] * 10)
    capture = TurnRecorder(source).record(baseline=0.02)

    assert capture.started
    assert capture.stop_reason is StopReason.CANCELLED
    assert capture.duration_ms == 450
    assert _wav_frames(capture.audio)[0] == 10 * 50


def test_input_released_when_stream_fails():
    source = ScriptedInput([0.1] * 100, fail_after=5)
    with pytest.raises(HardwareUnavailable):
        TurnRecorder(source).record(baseline=0.02)
    assert not source.is_open
    assert source.closed == 1


def test_audio_input_refuses_overlapping_capture():
    audio = AudioInput()
    audio._busy.acquire()
    try:
        with pytest.raises(HardwareUnavailable, match="busy"):
            with audio.open():
                pass
    finally:
        audio._busy.release()


class _PortAudioError(Exception):
    pass


class _StreamThatWontStart:
    instances = []

    def __init__(self, **kwargs):
        self.closed = False
        _StreamThatWontStart.instances.append(self)

    def start(self):
        raise _PortAudioError("device busy")

    def stop(self):
        pass

    def close(self):
        self.closed = True


def test_stream_closed_when_start_fails(monkeypatch):
    fake_sd = types.SimpleNamespace(
        query_devices=lambda: [{"name": "USB Mic", "index": 3, "max_input_channels": 1}],
        InputStream=_StreamThatWontStart,
        PortAudioError=_PortAudioError,
    )
    monkeypatch.setitem(sys.modules, "sounddevice", fake_sd)
    _StreamThatWontStart.instances.clear()
    audio = AudioInput()

    with pytest.raises(HardwareUnavailable, match="cannot start USB Mic"):
        with audio.open():
            pass

    assert _StreamThatWontStart.instances[0].closed
    assert audio._busy.acquire(blocking=False)
    audio._busy.release()
