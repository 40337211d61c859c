"""Session finalization: fold every readable turn into a session manifest."""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from typing import List, Optional

from .errors import StorageError
from .models import Session, SessionArtifacts, SessionManifest
from .notifications import NotificationStatus, Notifier, build_summary_body
from .object_store import ObjectStore
from .session_io import aggregate_session, load_turn_manifests, render_transcript_json, render_transcript_text
from .storage import (
    is_turn_manifest,
    session_manifest_key,
    session_prefix,
    split_session_key,
    transcript_keys,
    validate_session_id,
)

logger = logging.getLogger(__name__)


@dataclass
class FinalizeResult:
    manifest: SessionManifest
    session: Session
    manifest_url: Optional[str] = None
    omitted: List[str] = field(default_factory=list)
    notification: NotificationStatus = field(default_factory=NotificationStatus.skip)
    error: Optional[str] = None

    @property
    def ok(self) -> bool:
        return self.error is None


class SessionFinalizer:
    def __init__(
        self,
        store: ObjectStore,
        notifier: Optional[Notifier] = None,
        default_notify_to: Optional[str] = None,
        subject: str = "Interview session summary",
        list_limit: int = 2000,
        workers: int = 8,
    ) -> None:
        self.store = store
        self.notifier = notifier
        self.default_notify_to = default_notify_to
        self.subject = subject
        self.list_limit = list_limit
        self.workers = workers

    def finalize(self, session_id: str, notify_to: Optional[str] = None) -> FinalizeResult:
        """Aggregate all turns of ``session_id`` and write its manifest.

        Unreadable turns are skipped and listed in ``omitted``. Storage
        failures on the manifest write and notification failures are
        reported on the result rather than raised. Running this twice over
        the same turns writes the same manifest.
        """
        session_id = validate_session_id(session_id)
        prefix = session_prefix(session_id)

        try:
            listed = self.store.list(prefix, self.list_limit)
        except StorageError as exc:
            logger.warning("Failed to list turns for %s: %s", session_id, exc)
            listed = []

        turn_objects = []
        for obj in listed:
            parts = split_session_key(obj.key)
            if parts and parts[0] == session_id and is_turn_manifest(parts[1]):
                turn_objects.append(obj)
        turn_objects.sort(key=lambda obj: obj.key)

        loaded = load_turn_manifests(self.store, turn_objects, self.workers)
        session = aggregate_session(session_id, loaded)
        omitted = [item.obj.key for item in loaded if not item.ok]

        txt_key, json_key = transcript_keys(session_id)
        error = None
        artifacts = SessionArtifacts()
        manifest_url = None
        try:
            artifacts = SessionArtifacts(
                transcript_txt=self.store.put(
                    txt_key, render_transcript_text(session).encode("utf-8"), "text/plain; charset=utf-8"
                ).url,
                transcript_json=self.store.put(
                    json_key, render_transcript_json(session).encode("utf-8"), "application/json"
                ).url,
            )
            manifest = SessionManifest.from_session(session, artifacts)
            manifest_url = self.store.put(
                session_manifest_key(session_id), manifest.encode(), "application/json"
            ).url
            session.manifest_ref = manifest_url
        except StorageError as exc:
            logger.error("Failed to write manifest for %s: %s", session_id, exc)
            error = str(exc)
            manifest = SessionManifest.from_session(session, artifacts)

        logger.info(
            "Finalized session %s: %d turns, %d ms, %d omitted",
            session_id,
            session.total_turns,
            session.total_duration_ms,
            len(omitted),
        )

        result = FinalizeResult(
            manifest=manifest,
            session=session,
            manifest_url=manifest_url,
            omitted=omitted,
            error=error,
        )
        result.notification = self._notify(notify_to or self.default_notify_to, result)
        return result

    def _notify(self, to: Optional[str], result: FinalizeResult) -> NotificationStatus:
        if not to:
            return NotificationStatus.skip("no recipient")
        if self.notifier is None:
            return NotificationStatus.skip("notifications disabled")
        body = build_summary_body(
            result.session,
            result.manifest_url,
            result.manifest.artifacts.transcript_txt,
            result.manifest.artifacts.transcript_json,
        )
        try:
            return self.notifier.send(to, self.subject, body)
        except Exception as exc:  # notification failures never fail finalize
            logger.warning("Notification for %s failed: %s", result.session.session_id, exc)
            return NotificationStatus(ok=False, error=str(exc) or exc.__class__.__name__)
