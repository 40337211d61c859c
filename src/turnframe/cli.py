"""CLI entry point."""

from __future__ import annotations

import argparse
import logging
import os
import signal
from dataclasses import dataclass
from typing import Optional

from .calibration import calibrate_from_config
from .config import Config, load_config
from .errors import TurnframeError
from .finalizer import FinalizeResult, SessionFinalizer
from .history import HistoryIndex
from .interview import Interview, TurnOutcome
from .logging_utils import parse_level, setup_logging
from .models import SessionSummary, format_timestamp
from .notifications import build_notifier
from .object_store import LocalObjectStore, ObjectStore
from .persistence import TurnPersistence
from .recorder import AudioInput, TurnRecorder, list_input_devices
from .storage import build_session_id
from .transcriber import build_provider
from .vad import CancellationToken, VadParams


@dataclass
class Services:
    """Process-wide collaborators, built once in ``main``."""

    config: Config
    store: ObjectStore
    finalizer: SessionFinalizer
    history: HistoryIndex

    def audio_input(self) -> AudioInput:
        audio = self.config.audio
        return AudioInput(
            device_name=audio.device_name,
            sample_rate_hz=audio.sample_rate_hz,
            channels=audio.channels,
            frame_ms=audio.frame_ms,
        )


def build_services(cfg: Config, store: Optional[ObjectStore] = None) -> Services:
    store = store or LocalObjectStore(cfg.storage.root_dir)
    finalizer = SessionFinalizer(
        store,
        notifier=build_notifier(cfg.notify),
        default_notify_to=cfg.notify.default_to,
        subject=cfg.notify.subject,
        list_limit=cfg.storage.list_limit,
        workers=cfg.storage.fetch_workers,
    )
    history = HistoryIndex(store, list_limit=cfg.storage.list_limit, workers=cfg.storage.fetch_workers)
    return Services(config=cfg, store=store, finalizer=finalizer, history=history)


def _print_finalize(result: FinalizeResult) -> None:
    totals = result.manifest.totals
    print(f"Session: {result.manifest.session_id}")
    print(f"Turns: {totals.turns} ({totals.duration_ms} ms)")
    if result.manifest.title:
        print(f"Title: {result.manifest.title}")
    print(f"Manifest: {result.manifest_url or 'not written'}")
    if result.omitted:
        print(f"Skipped unreadable turns: {', '.join(result.omitted)}")
    if result.error:
        print(f"Storage error: {result.error}")
    status = result.notification
    if not status.skipped:
        print(f"Notification: {'sent' if status.ok else 'failed: ' + (status.error or '')}")


def _print_summary(summary: SessionSummary, detail: bool = False) -> None:
    print(
        f"{summary.session_id}  turns={summary.total_turns}  "
        f"duration={summary.total_duration_ms / 1000:.1f}s  "
        f"started={format_timestamp(summary.started_at) or '-'}"
    )
    if summary.title:
        print(f"  {summary.title}")
    if detail:
        for turn in summary.turns:
            print(f"  [{turn.turn_number:04d}] {turn.duration_ms} ms  {turn.transcript or '[no transcript]'}")
            if turn.reply_text:
                print(f"         reply: {turn.reply_text}")


def main(argv: Optional[list[str]] = None) -> int:
    parser = argparse.ArgumentParser(prog="turnframe")
    parser.add_argument("--config", default="turnframe_config.yml", help="Config.")
    parser.add_argument("--store-dir", help="Object store directory.")
    parser.add_argument("--log-level", default="INFO", help="Log level.")
    sub = parser.add_subparsers(dest="command")

    devices_cmd = sub.add_parser("devices")
    devices_cmd.add_argument("--match", help="Filter device names by substring.")

    calibrate_cmd = sub.add_parser("calibrate")
    calibrate_cmd.add_argument("--seconds", type=float, help="Calibration length.")
    calibrate_cmd.add_argument("--device", help="Preferred device name substring.")

    interview_cmd = sub.add_parser("interview")
    interview_cmd.add_argument("--session", help="Session id (default: generated).")
    interview_cmd.add_argument("--device", help="Preferred device name substring.")
    interview_cmd.add_argument("--max-turns", type=int, help="Stop after N turns.")
    interview_cmd.add_argument(
        "--max-wait", type=int, help="End the interview after this many ms of no speech."
    )
    interview_cmd.add_argument("--provider", help="Transcription provider (faster-whisper, none).")
    interview_cmd.add_argument("--email", help="Send the summary to this address.")

    finalize_cmd = sub.add_parser("finalize")
    finalize_cmd.add_argument("session_id")
    finalize_cmd.add_argument("--email", help="Send the summary to this address.")

    history_cmd = sub.add_parser("history")
    history_cmd.add_argument("--page", type=int, default=1)
    history_cmd.add_argument("--limit", type=int, default=10)

    show_cmd = sub.add_parser("show")
    show_cmd.add_argument("session_id")

    delete_cmd = sub.add_parser("delete")
    delete_cmd.add_argument("session_id")

    args = parser.parse_args(argv)
    if args.command is None:
        parser.print_help()
        return 0

    cfg = load_config(args.config) if os.path.exists(args.config) else Config()
    if args.store_dir:
        cfg.storage.root_dir = args.store_dir
    if getattr(args, "device", None):
        cfg.audio.device_name = args.device
    _, log_path = setup_logging(cfg.log_dir, parse_level(args.log_level), console=True)
    logger = logging.getLogger("turnframe.cli")

    try:
        return _run(args, build_services(cfg))
    except TurnframeError as exc:
        logger.error("%s failed: %s", args.command, exc)
        print(f"Error: {exc} (see {log_path})")
        return 1


def _run(args: argparse.Namespace, services: Services) -> int:
    cfg = services.config

    if args.command == "devices":
        devices = list_input_devices()
        if args.match:
            devices = [
                d for d in devices if args.match.lower() in d.get("name", "").lower()
            ]
        for device in devices:
            name = device.get("name", "Unknown")
            index = device.get("index", "?")
            channels = device.get("max_input_channels", 0)
            print(f"[{index}] {name} (inputs: {channels})")
        return 0

    if args.command == "calibrate":
        if args.seconds:
            cfg.calibration.duration_seconds = args.seconds
        result = calibrate_from_config(services.audio_input(), cfg.calibration)
        start_level = result.baseline * cfg.vad.start_threshold
        print(f"Baseline RMS: {result.baseline:.4f} ({result.samples} frames)")
        print(f"Turn starts above RMS {start_level:.4f}")
        return 0

    if args.command == "interview":
        if args.max_wait is not None:
            cfg.vad.max_wait_ms = args.max_wait
        if args.provider:
            cfg.transcription.provider = args.provider
        source = services.audio_input()
        interview = Interview(
            session_id=args.session or build_session_id(),
            source=source,
            recorder=TurnRecorder(source, VadParams.from_config(cfg.vad)),
            provider=build_provider(cfg.transcription),
            persistence=TurnPersistence(services.store),
            finalizer=services.finalizer,
            calibration=cfg.calibration,
            stop_on_completion=cfg.interview.stop_on_completion,
        )
        cancel = CancellationToken()
        previous = signal.signal(signal.SIGINT, lambda *_: cancel.cancel())

        def _report(outcome: TurnOutcome) -> None:
            print(
                f"Turn {outcome.turn_number}: {outcome.capture.duration_ms} ms "
                f"({outcome.capture.stop_reason.value}) {outcome.inference.transcript}"
            )
            if outcome.intent.should_stop and cfg.interview.stop_on_completion:
                print("Heard a goodbye, wrapping up.")

        print(f"Session {interview.session_id}: calibrating, stay quiet...")
        try:
            baseline = interview.calibrate().baseline
            print(f"Baseline {baseline:.4f}. Speak when ready; Ctrl+C ends the interview.")
            result = interview.run(
                max_turns=args.max_turns or cfg.interview.max_turns,
                cancel=cancel,
                on_turn=_report,
                notify_to=args.email,
            )
        finally:
            signal.signal(signal.SIGINT, previous)
        _print_finalize(result)
        return 0 if result.ok else 1

    if args.command == "finalize":
        result = services.finalizer.finalize(args.session_id, notify_to=args.email)
        _print_finalize(result)
        return 0 if result.ok else 1

    if args.command == "history":
        summaries = services.history.list(page=args.page, limit=args.limit)
        if not summaries:
            print("No sessions.")
        for summary in summaries:
            _print_summary(summary)
        return 0

    if args.command == "show":
        summary = services.history.get(args.session_id)
        if summary is None:
            print(f"Session not found: {args.session_id}")
            return 1
        _print_summary(summary, detail=True)
        return 0

    if args.command == "delete":
        removed = services.history.delete(args.session_id)
        print(f"Removed {removed} objects.")
        return 0 if removed else 1

    return 0


if __name__ == "__main__":
    raise SystemExit(main())
