"""Key naming for session artifacts.

Every artifact of a session lives under ``sessions/<session_id>/``. Turn
numbers are zero-padded to a fixed width so lexicographic key order equals
numeric turn order.
"""

from __future__ import annotations

import re
import uuid
from datetime import datetime
from typing import Any, Optional, Tuple

from .errors import ValidationError

SESSIONS_PREFIX = "sessions/"
TURN_PAD_WIDTH = 4
MAX_TURN_NUMBER = 10**TURN_PAD_WIDTH - 1

TURN_MANIFEST_RE = re.compile(r"^turn-([0-9]+)\.json$")
SESSION_MANIFEST_RE = re.compile(r"^session-.+\.json$")
SESSION_KEY_RE = re.compile(r"^sessions/([^/]+)/(.+)$")


def timestamp_slug(dt: datetime | None = None) -> str:
    now = dt or datetime.now()
    return now.strftime("%Y%m%d-%H%M%S")


def build_session_id(dt: datetime | None = None) -> str:
    return f"{timestamp_slug(dt)}-{uuid.uuid4().hex[:6]}"


def validate_session_id(session_id: Any) -> str:
    if not isinstance(session_id, str) or not session_id.strip():
        raise ValidationError("session id must be a non-empty string")
    if "/" in session_id:
        raise ValidationError(f"session id may not contain '/': {session_id!r}")
    return session_id


def validate_turn_number(turn_number: Any) -> int:
    if isinstance(turn_number, bool):
        raise ValidationError(f"invalid turn number: {turn_number!r}")
    if isinstance(turn_number, str):
        text = turn_number.strip()
        if not (text.isascii() and text.isdecimal()):
            raise ValidationError(f"invalid turn number: {turn_number!r}")
        turn_number = int(text)
    if not isinstance(turn_number, int):
        raise ValidationError(f"invalid turn number: {turn_number!r}")
    if turn_number <= 0 or turn_number > MAX_TURN_NUMBER:
        raise ValidationError(
            f"turn number must be between 1 and {MAX_TURN_NUMBER}, got {turn_number}"
        )
    return turn_number


def turn_pad(turn_number: int) -> str:
    return str(turn_number).zfill(TURN_PAD_WIDTH)


def extension_for_mime(mime: Optional[str], default: str = "webm") -> str:
    if not mime or "/" not in mime:
        return default
    subtype = mime.split("/", 1)[1].split(";", 1)[0].strip().lower()
    return subtype or default


def session_prefix(session_id: str) -> str:
    return f"{SESSIONS_PREFIX}{session_id}/"


def turn_manifest_key(session_id: str, turn_number: int) -> str:
    return f"{session_prefix(session_id)}turn-{turn_pad(turn_number)}.json"


def user_audio_key(session_id: str, turn_number: int, mime: Optional[str]) -> str:
    ext = extension_for_mime(mime)
    return f"{session_prefix(session_id)}user-{turn_pad(turn_number)}.{ext}"


def assistant_audio_key(session_id: str, turn_number: int, mime: Optional[str]) -> str:
    ext = extension_for_mime(mime, default="mp3")
    return f"{session_prefix(session_id)}assistant-{turn_pad(turn_number)}.{ext}"


def session_manifest_key(session_id: str) -> str:
    return f"{session_prefix(session_id)}session-{session_id}.json"


def transcript_keys(session_id: str) -> Tuple[str, str]:
    base = f"{session_prefix(session_id)}transcript-{session_id}"
    return f"{base}.txt", f"{base}.json"


def split_session_key(key: str) -> Optional[Tuple[str, str]]:
    """Return ``(session_id, name)`` for keys under ``sessions/``."""
    match = SESSION_KEY_RE.match(key)
    if not match:
        return None
    return match.group(1), match.group(2)


def is_turn_manifest(name: str) -> bool:
    return bool(TURN_MANIFEST_RE.match(name))


def is_session_manifest(name: str) -> bool:
    return bool(SESSION_MANIFEST_RE.match(name))


def parse_turn_key(key: str) -> Optional[Tuple[str, int]]:
    """``sessions/<id>/turn-NNNN.json`` -> ``(id, NNNN)``; None for other keys."""
    parts = split_session_key(key)
    if parts is None:
        return None
    match = TURN_MANIFEST_RE.match(parts[1])
    if not match:
        return None
    return parts[0], int(match.group(1))
