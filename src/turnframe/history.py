"""Cross-session history listing."""

from __future__ import annotations

import json
import logging
from dataclasses import dataclass, field
from datetime import datetime
from typing import Dict, List, Optional

from .errors import StorageError
from .models import SessionManifest, SessionSummary
from .object_store import ObjectStore, StoredObject
from .session_io import aggregate_session, load_turn_manifests
from .storage import (
    SESSIONS_PREFIX,
    is_session_manifest,
    is_turn_manifest,
    session_prefix,
    split_session_key,
    validate_session_id,
)

logger = logging.getLogger(__name__)


@dataclass
class _SessionGroup:
    session_id: str
    turn_objects: List[StoredObject] = field(default_factory=list)
    manifest_obj: Optional[StoredObject] = None

    @property
    def latest_turn_at(self) -> Optional[datetime]:
        stamps = [obj.uploaded_at for obj in self.turn_objects if obj.uploaded_at is not None]
        return max(stamps) if stamps else None


def group_sessions(objects: List[StoredObject]) -> Dict[str, _SessionGroup]:
    groups: Dict[str, _SessionGroup] = {}
    for obj in objects:
        parts = split_session_key(obj.key)
        if parts is None:
            continue
        session_id, name = parts
        group = groups.setdefault(session_id, _SessionGroup(session_id))
        if is_turn_manifest(name):
            group.turn_objects.append(obj)
        elif is_session_manifest(name):
            group.manifest_obj = obj
    for group in groups.values():
        group.turn_objects.sort(key=lambda obj: obj.key)
    return groups


def sort_groups(groups: Dict[str, _SessionGroup]) -> List[_SessionGroup]:
    """Newest turn first; sessions without turns go last."""
    with_turns = [g for g in groups.values() if g.latest_turn_at is not None]
    without_turns = [g for g in groups.values() if g.latest_turn_at is None]
    with_turns.sort(key=lambda g: g.session_id)
    with_turns.sort(key=lambda g: g.latest_turn_at, reverse=True)
    without_turns.sort(key=lambda g: g.session_id)
    return with_turns + without_turns


class HistoryIndex:
    def __init__(self, store: ObjectStore, list_limit: int = 2000, workers: int = 8) -> None:
        self.store = store
        self.list_limit = list_limit
        self.workers = workers

    def list(self, page: int = 1, limit: int = 10) -> List[SessionSummary]:
        """One page of session summaries, most recently active first."""
        page = max(1, int(page))
        limit = max(0, int(limit))
        try:
            objects = self.store.list(SESSIONS_PREFIX, self.list_limit)
        except StorageError as exc:
            logger.warning("History listing failed: %s", exc)
            return []
        ordered = sort_groups(group_sessions(objects))
        start = (page - 1) * limit
        return [self._enrich(group) for group in ordered[start : start + limit]]

    def get(self, session_id: str) -> Optional[SessionSummary]:
        session_id = validate_session_id(session_id)
        try:
            objects = self.store.list(session_prefix(session_id), self.list_limit)
        except StorageError as exc:
            logger.warning("Listing %s failed: %s", session_id, exc)
            return None
        group = group_sessions(objects).get(session_id)
        return self._enrich(group) if group else None

    def delete(self, session_id: str) -> int:
        """Remove every object under the session prefix; returns the count removed."""
        session_id = validate_session_id(session_id)
        removed = 0
        for obj in self.store.list(session_prefix(session_id), self.list_limit):
            try:
                if self.store.delete(obj.key):
                    removed += 1
            except StorageError as exc:
                logger.warning("Failed to delete %s: %s", obj.key, exc)
        logger.info("Deleted %d objects for session %s", removed, session_id)
        return removed

    def _enrich(self, group: _SessionGroup) -> SessionSummary:
        loaded = load_turn_manifests(self.store, group.turn_objects, self.workers)
        manifest_url = group.manifest_obj.url if group.manifest_obj else None
        session = aggregate_session(group.session_id, loaded, manifest_ref=manifest_url)
        summary = SessionSummary(
            session_id=session.session_id,
            started_at=session.started_at,
            ended_at=session.ended_at,
            total_turns=session.total_turns,
            total_duration_ms=session.total_duration_ms,
            manifest_ref=manifest_url,
            turns=session.turns,
            title=session.title,
            latest_uploaded_at=group.latest_turn_at,
        )
        if not summary.turns and group.manifest_obj is not None:
            self._apply_session_manifest(summary, group.manifest_obj)
        return summary

    def _apply_session_manifest(self, summary: SessionSummary, obj: StoredObject) -> None:
        try:
            manifest = SessionManifest.model_validate(json.loads(self.store.get(obj.key)))
        except (StorageError, ValueError) as exc:
            logger.warning("Ignoring unreadable session manifest %s: %s", obj.key, exc)
            return
        if manifest.started_at:
            summary.started_at = _parse_stamp(manifest.started_at)
        if manifest.ended_at:
            summary.ended_at = _parse_stamp(manifest.ended_at)
        if manifest.title:
            summary.title = manifest.title
        summary.total_turns = manifest.totals.turns
        summary.total_duration_ms = manifest.totals.duration_ms


def _parse_stamp(value: str) -> Optional[datetime]:
    try:
        return datetime.fromisoformat(value.replace("Z", "+00:00"))
    except ValueError:
        return None
