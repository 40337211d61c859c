"""Turn persistence: one audio object plus one JSON manifest per turn."""

from __future__ import annotations

import logging
from dataclasses import dataclass
from datetime import datetime
from typing import Any, Callable, Optional

from .errors import StorageError, ValidationError
from .models import TurnManifest, utc_now
from .object_store import ObjectStore
from .storage import (
    assistant_audio_key,
    turn_manifest_key,
    user_audio_key,
    validate_session_id,
    validate_turn_number,
)

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class AssistantAudio:
    data: bytes
    mime: str = "audio/mpeg"
    duration_ms: int = 0


@dataclass(frozen=True)
class SavedTurn:
    audio_url: str
    manifest_url: str
    assistant_audio_url: Optional[str] = None


def _non_negative_ms(value: Any, label: str) -> int:
    if isinstance(value, bool):
        raise ValidationError(f"{label} must be a number")
    try:
        number = int(round(float(value)))
    except (TypeError, ValueError, OverflowError) as exc:
        raise ValidationError(f"{label} must be a number, got {value!r}") from exc
    if number < 0:
        raise ValidationError(f"{label} must be >= 0, got {value!r}")
    return number


class TurnPersistence:
    def __init__(self, store: ObjectStore, clock: Optional[Callable[[], datetime]] = None) -> None:
        self.store = store
        self._clock = clock or utc_now

    def save(
        self,
        session_id: str,
        turn_number: Any,
        audio: bytes,
        mime: str = "audio/webm",
        transcript: str = "",
        reply_text: str = "",
        provider: str = "",
        assistant_audio: Optional[AssistantAudio] = None,
        duration_ms: Any = 0,
    ) -> SavedTurn:
        """Write the turn's audio, then its manifest.

        The turn counts as saved only when both writes succeed; any failure
        raises ``StorageError``. Saving the same turn number again overwrites
        the earlier artifacts.
        """
        session_id = validate_session_id(session_id)
        turn_number = validate_turn_number(turn_number)
        if not isinstance(audio, (bytes, bytearray)):
            raise ValidationError("audio must be bytes")
        duration = _non_negative_ms(duration_ms, "duration_ms")
        assistant_duration = (
            _non_negative_ms(assistant_audio.duration_ms, "assistant duration_ms")
            if assistant_audio
            else 0
        )

        audio_obj = self._put(user_audio_key(session_id, turn_number, mime), bytes(audio), mime)

        assistant_url = None
        if assistant_audio is not None:
            assistant_obj = self._put(
                assistant_audio_key(session_id, turn_number, assistant_audio.mime),
                assistant_audio.data,
                assistant_audio.mime,
            )
            assistant_url = assistant_obj.url

        manifest = TurnManifest(
            session_id=session_id,
            turn=turn_number,
            created_at=self._clock(),
            duration_ms=duration,
            user_audio_url=audio_obj.url,
            transcript=transcript or "",
            assistant_reply=reply_text or "",
            provider=provider or "",
            assistant_audio_url=assistant_url,
            assistant_audio_duration_ms=assistant_duration,
        )
        manifest_obj = self._put(
            turn_manifest_key(session_id, turn_number), manifest.encode(), "application/json"
        )
        self._drop_stale(audio_obj.key)
        if assistant_url is not None:
            self._drop_stale(assistant_obj.key)
        logger.info(
            "Saved turn %d of session %s (%d bytes, %d ms)",
            turn_number,
            session_id,
            len(audio),
            duration,
        )
        return SavedTurn(
            audio_url=audio_obj.url,
            manifest_url=manifest_obj.url,
            assistant_audio_url=assistant_url,
        )

    def _drop_stale(self, current_key: str) -> None:
        """Remove audio left under the same slot with another extension."""
        stem = current_key.rsplit(".", 1)[0] + "."
        try:
            for obj in self.store.list(stem):
                if obj.key != current_key:
                    self.store.delete(obj.key)
                    logger.info("Removed replaced audio %s", obj.key)
        except StorageError as exc:
            logger.warning("Could not clean up old audio for %s: %s", current_key, exc)

    def _put(self, key: str, data: bytes, content_type: str):
        try:
            return self.store.put(key, data, content_type)
        except StorageError:
            logger.error("Write failed for %s", key)
            raise
        except OSError as exc:
            logger.error("Write failed for %s: %s", key, exc)
            raise StorageError(f"failed to write {key}: {exc}") from exc
