"""Configuration handling."""

from __future__ import annotations

from dataclasses import asdict, dataclass, field
from typing import Optional
import yaml


@dataclass
class AudioConfig:
    sample_rate_hz: int = 16000
    channels: int = 1
    frame_ms: int = 50
    device_name: Optional[str] = None


@dataclass
class CalibrationConfig:
    duration_seconds: float = 1.6
    min_baseline: float = 0.01
    fallback_baseline: float = 0.02


@dataclass
class VadConfig:
    start_threshold: float = 3.0
    stop_threshold: float = 2.0
    min_duration_ms: int = 1200
    max_duration_ms: int = 180000
    silence_ms: int = 1600
    grace_ms: int = 600
    max_wait_ms: Optional[int] = None


@dataclass
class StorageConfig:
    root_dir: str = "turnframe-store"
    list_limit: int = 2000
    fetch_workers: int = 8


@dataclass
class NotifyConfig:
    enabled: bool = False
    default_to: Optional[str] = None
    smtp_host: str = "localhost"
    smtp_port: int = 587
    smtp_user: Optional[str] = None
    smtp_password: Optional[str] = None
    use_tls: bool = True
    sender: str = "noreply@turnframe.local"
    subject: str = "Interview session summary"


@dataclass
class TranscriptionConfig:
    provider: str = "faster-whisper"
    whisper_model: str = "small"
    language: Optional[str] = None


@dataclass
class InterviewConfig:
    max_turns: Optional[int] = None
    stop_on_completion: bool = True


@dataclass
class Config:
    log_dir: str = "logs"
    audio: AudioConfig = field(default_factory=AudioConfig)
    calibration: CalibrationConfig = field(default_factory=CalibrationConfig)
    vad: VadConfig = field(default_factory=VadConfig)
    storage: StorageConfig = field(default_factory=StorageConfig)
    notify: NotifyConfig = field(default_factory=NotifyConfig)
    transcription: TranscriptionConfig = field(default_factory=TranscriptionConfig)
    interview: InterviewConfig = field(default_factory=InterviewConfig)


def load_config(path: str) -> Config:
    with open(path, "r", encoding="utf-8") as handle:
        data = yaml.safe_load(handle) or {}

    return Config(
        log_dir=data.get("log_dir", "logs"),
        audio=AudioConfig(**(data.get("audio") or {})),
        calibration=CalibrationConfig(**(data.get("calibration") or {})),
        vad=VadConfig(**(data.get("vad") or {})),
        storage=StorageConfig(**(data.get("storage") or {})),
        notify=NotifyConfig(**(data.get("notify") or {})),
        transcription=TranscriptionConfig(**(data.get("transcription") or {})),
        interview=InterviewConfig(**(data.get("interview") or {})),
    )


def save_config(path: str, config: Config) -> None:
    with open(path, "w", encoding="utf-8") as handle:
        yaml.safe_dump(asdict(config), handle, sort_keys=False)
