"""Interview loop: calibrate once, then record, transcribe and save turns."""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from typing import Callable, List, Optional

from .calibration import calibrate_from_config
from .config import CalibrationConfig
from .finalizer import FinalizeResult, SessionFinalizer
from .intents import CompletionIntent, detect_completion_intent
from .models import CalibrationResult
from .persistence import SavedTurn, TurnPersistence
from .recorder import AudioSource, TurnCapture, TurnRecorder
from .storage import validate_session_id
from .transcriber import Inference, Provider
from .vad import CancellationToken

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class TurnOutcome:
    turn_number: int
    capture: TurnCapture
    inference: Inference
    saved: SavedTurn
    intent: CompletionIntent = field(default_factory=CompletionIntent)


class Interview:
    def __init__(
        self,
        session_id: str,
        source: AudioSource,
        recorder: TurnRecorder,
        provider: Provider,
        persistence: TurnPersistence,
        finalizer: SessionFinalizer,
        calibration: Optional[CalibrationConfig] = None,
        stop_on_completion: bool = True,
    ) -> None:
        self.session_id = validate_session_id(session_id)
        self.source = source
        self.recorder = recorder
        self.provider = provider
        self.persistence = persistence
        self.finalizer = finalizer
        self.calibration_cfg = calibration or CalibrationConfig()
        self.stop_on_completion = stop_on_completion
        self.calibration: Optional[CalibrationResult] = None
        self.next_turn = 1
        self.transcripts: List[str] = []

    def calibrate(self) -> CalibrationResult:
        self.calibration = calibrate_from_config(self.source, self.calibration_cfg)
        return self.calibration

    def run_turn(self, cancel: Optional[CancellationToken] = None) -> Optional[TurnOutcome]:
        """Record and store the next turn. Returns None when no turn started."""
        if self.calibration is None:
            self.calibrate()
        capture = self.recorder.record(self.calibration.baseline, cancel)
        if not capture.started:
            return None

        turn_number = self.next_turn
        context = {
            "session_id": self.session_id,
            "turn": turn_number,
            "prompt": " ".join(self.transcripts[-3:]),
        }
        try:
            inference = self.provider.infer(capture.audio, context)
        except (RuntimeError, OSError) as exc:
            logger.warning("Transcription failed for turn %d: %s", turn_number, exc)
            inference = Inference(transcript="")

        saved = self.persistence.save(
            self.session_id,
            turn_number,
            capture.audio,
            mime=capture.mime,
            transcript=inference.transcript,
            reply_text=inference.reply_text,
            provider=self.provider.name,
            duration_ms=capture.duration_ms,
        )
        self.next_turn += 1
        if inference.transcript:
            self.transcripts.append(inference.transcript)
        intent = detect_completion_intent(inference.transcript)
        if intent.should_stop:
            logger.info(
                "Turn %d sounds like a goodbye (%s, %s)",
                turn_number,
                intent.confidence,
                ", ".join(intent.matched_phrases),
            )
        return TurnOutcome(turn_number, capture, inference, saved, intent)

    def run(
        self,
        max_turns: Optional[int] = None,
        cancel: Optional[CancellationToken] = None,
        on_turn: Optional[Callable[[TurnOutcome], None]] = None,
        notify_to: Optional[str] = None,
    ) -> FinalizeResult:
        cancel = cancel or CancellationToken()
        while max_turns is None or self.next_turn <= max_turns:
            outcome = self.run_turn(cancel)
            if outcome is None:
                break
            if on_turn:
                on_turn(outcome)
            if cancel.cancelled:
                break
            if self.stop_on_completion and outcome.intent.should_stop:
                break
        logger.info("Interview %s ended after %d turns", self.session_id, self.next_turn - 1)
        return self.finalizer.finalize(self.session_id, notify_to=notify_to)
