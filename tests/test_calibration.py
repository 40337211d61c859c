import pytest

from conftest import ScriptedInput
from turnframe.calibration import calibrate, calibrate_from_config
from turnframe.config import CalibrationConfig
from turnframe.errors import HardwareUnavailable, ValidationError


def test_median_rejects_transients():
    source = ScriptedInput([0.02, 0.9, 0.021, 0.019, 0.02, 0.5, 0.5, 0.5])
    result = calibrate(source, duration_seconds=0.25)

    assert result.samples == 5
    assert result.baseline == pytest.approx(0.02)
    assert result.duration_ms == 200
    assert source.closed == 1


def test_baseline_never_zero():
    source = ScriptedInput([0.0] * 40, start=0.0)
    result = calibrate(source, duration_seconds=1.6)
    assert result.baseline == 0.01
    assert result.samples == 32


def test_no_frames_uses_fallback():
    result = calibrate(ScriptedInput([]), duration_seconds=1.0)
    assert result.baseline == 0.02
    assert result.samples == 0


def test_hardware_failure_propagates_and_releases_input():
    source = ScriptedInput([0.02] * 40, fail_after=3)
    with pytest.raises(HardwareUnavailable):
        calibrate(source)
    assert not source.is_open


def test_rejects_non_positive_duration():
    with pytest.raises(ValidationError):
        calibrate(ScriptedInput([0.02]), duration_seconds=0)


def test_calibrate_from_config_applies_floor():
    cfg = CalibrationConfig(duration_seconds=0.5, min_baseline=0.05)
    result = calibrate_from_config(ScriptedInput([0.02] * 20), cfg)
    assert result.baseline == 0.05
