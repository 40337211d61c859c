"""Transcription providers."""

from __future__ import annotations

import io
import logging
from dataclasses import dataclass
from typing import Any, Dict, Protocol

from .config import TranscriptionConfig
from .errors import TurnframeError, ValidationError

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class Inference:
    transcript: str
    reply_text: str = ""


class Provider(Protocol):
    name: str

    def infer(self, audio: bytes, context: Dict[str, Any]) -> Inference:
        ...


class FasterWhisperProvider:
    """Local transcription; produces no reply text.

    The model is loaded once when the provider is built and reused for every
    turn.
    """

    name = "faster-whisper"

    def __init__(
        self,
        model_name: str = "small",
        language: str | None = None,
        device: str | None = None,
        compute_type: str | None = None,
    ) -> None:
        try:
            from faster_whisper import WhisperModel
        except Exception as exc:  # pragma: no cover
            raise TurnframeError(
                "faster-whisper is required for transcription."
            ) from exc

        kwargs = {}
        if device:
            kwargs["device"] = device
        if compute_type:
            kwargs["compute_type"] = compute_type
        self.language = language
        self.model = WhisperModel(model_name, **kwargs)

    def infer(self, audio: bytes, context: Dict[str, Any]) -> Inference:
        segments, _info = self.model.transcribe(
            io.BytesIO(audio),
            language=self.language,
            initial_prompt=context.get("prompt") or None,
        )
        text = " ".join(seg.text.strip() for seg in segments if seg.text.strip())
        logger.debug("Transcribed turn %s: %d chars", context.get("turn"), len(text))
        return Inference(transcript=text)


class SilentProvider:
    """Stores audio only; used for dry runs and when no model is available."""

    name = "none"

    def infer(self, audio: bytes, context: Dict[str, Any]) -> Inference:
        return Inference(transcript="")


def build_provider(cfg: TranscriptionConfig) -> Provider:
    if cfg.provider in ("none", "", None):
        return SilentProvider()
    if cfg.provider == "faster-whisper":
        return FasterWhisperProvider(model_name=cfg.whisper_model, language=cfg.language)
    raise ValidationError(f"unknown transcription provider: {cfg.provider!r}")
