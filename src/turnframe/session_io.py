"""Reading turn manifests back and folding them into sessions."""

from __future__ import annotations

import json
import logging
from concurrent.futures import ThreadPoolExecutor
from dataclasses import dataclass
from typing import Iterable, List, Optional, Sequence

from .errors import PartialAggregationError, StorageError, TurnDecodeError
from .models import AudioTurn, Session, TurnManifest, format_timestamp
from .object_store import ObjectStore, StoredObject
from .storage import parse_turn_key
from .titles import generate_session_title

logger = logging.getLogger(__name__)


@dataclass
class LoadedTurn:
    obj: StoredObject
    manifest: Optional[TurnManifest] = None
    error: Optional[PartialAggregationError] = None

    @property
    def ok(self) -> bool:
        return self.manifest is not None


def _check_slot(key: str, manifest: TurnManifest) -> TurnManifest:
    # Contents must describe the slot the object is stored in.
    slot = parse_turn_key(key)
    if slot is None:
        raise TurnDecodeError(key, "not a turn manifest key")
    if (manifest.session_id, manifest.turn) != slot:
        raise TurnDecodeError(
            key,
            f"manifest is for session {manifest.session_id!r} turn {manifest.turn}, "
            f"expected {slot[0]!r} turn {slot[1]}",
        )
    return manifest


def _load_one(store: ObjectStore, obj: StoredObject) -> LoadedTurn:
    try:
        manifest = _check_slot(obj.key, TurnManifest.decode(obj.key, store.get(obj.key)))
        return LoadedTurn(obj=obj, manifest=manifest)
    except (StorageError, TurnDecodeError, OSError) as exc:
        return LoadedTurn(obj=obj, error=PartialAggregationError(obj.key, exc))


def load_turn_manifests(
    store: ObjectStore, objects: Sequence[StoredObject], workers: int = 8
) -> List[LoadedTurn]:
    """Fetch and decode manifests concurrently, returned in key order.

    Failures are returned as entries with ``error`` set, never raised.
    """
    if not objects:
        return []
    with ThreadPoolExecutor(max_workers=max(1, min(workers, len(objects)))) as pool:
        loaded = list(pool.map(lambda obj: _load_one(store, obj), objects))
    loaded.sort(key=lambda item: item.obj.key)
    for item in loaded:
        if item.error is not None:
            logger.warning("%s", item.error)
    return loaded


def aggregate_session(
    session_id: str, loaded: Iterable[LoadedTurn], manifest_ref: Optional[str] = None
) -> Session:
    session = Session(session_id=session_id, manifest_ref=manifest_ref)
    for item in loaded:
        if item.manifest is None:
            continue
        turn = item.manifest.to_turn(manifest_ref=item.obj.url)
        if turn.created_at is None:
            turn.created_at = item.obj.uploaded_at
        if turn.created_at is not None:
            if session.started_at is None or turn.created_at < session.started_at:
                session.started_at = turn.created_at
            if session.ended_at is None or turn.created_at > session.ended_at:
                session.ended_at = turn.created_at
        session.total_duration_ms += turn.duration_ms
        session.turns.append(turn)
    session.total_turns = len(session.turns)
    session.title = generate_session_title(
        [(line["role"], line["text"]) for line in _conversation(session.turns)]
    )
    return session


def _conversation(turns: Iterable[AudioTurn]) -> List[dict]:
    lines = []
    for turn in turns:
        if turn.transcript:
            lines.append(
                {"role": "user", "turn": turn.turn_number, "text": turn.transcript, "audio": turn.audio_ref}
            )
        if turn.reply_text:
            lines.append(
                {"role": "assistant", "turn": turn.turn_number, "text": turn.reply_text, "audio": turn.assistant_audio_ref}
            )
    return lines


def render_transcript_text(session: Session) -> str:
    return "\n".join(
        f"{'User' if line['role'] == 'user' else 'Assistant'} (turn {line['turn']}): {line['text']}"
        for line in _conversation(session.turns)
    )


def render_transcript_json(session: Session) -> str:
    payload = {
        "sessionId": session.session_id,
        "createdAt": format_timestamp(session.started_at),
        "turns": _conversation(session.turns),
    }
    return json.dumps(payload, indent=2)
