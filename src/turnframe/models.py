"""Data models for turnframe."""

from __future__ import annotations

import json
import math
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Any, List, Optional

from pydantic import BaseModel, ConfigDict, Field, StrictStr, field_serializer, field_validator
from pydantic import ValidationError as PydanticValidationError

from .errors import TurnDecodeError

TRANSCRIPT_PREVIEW_CHARS = 160


def format_timestamp(value: Optional[datetime]) -> Optional[str]:
    """ISO-8601 in UTC with millisecond precision and a ``Z`` suffix."""
    if value is None:
        return None
    if value.tzinfo is None:
        value = value.replace(tzinfo=timezone.utc)
    stamp = value.astimezone(timezone.utc).isoformat(timespec="milliseconds")
    return stamp.replace("+00:00", "Z")


def utc_now() -> datetime:
    return datetime.now(timezone.utc)


def truncate_preview(text: str, limit: int = TRANSCRIPT_PREVIEW_CHARS) -> str:
    return text if len(text) <= limit else text[:limit]


@dataclass(frozen=True)
class CalibrationResult:
    baseline: float
    samples: int = 0
    duration_ms: int = 0


@dataclass
class AudioTurn:
    session_id: str
    turn_number: int
    audio_ref: Optional[str]
    transcript: str = ""
    reply_text: str = ""
    provider: str = ""
    duration_ms: int = 0
    created_at: Optional[datetime] = None
    role: str = "user"
    manifest_ref: Optional[str] = None
    assistant_audio_ref: Optional[str] = None
    assistant_audio_duration_ms: int = 0


@dataclass
class Session:
    session_id: str
    started_at: Optional[datetime] = None
    ended_at: Optional[datetime] = None
    total_turns: int = 0
    total_duration_ms: int = 0
    manifest_ref: Optional[str] = None
    turns: List[AudioTurn] = field(default_factory=list)
    title: Optional[str] = None


@dataclass
class SessionSummary(Session):
    latest_uploaded_at: Optional[datetime] = None


class TurnManifest(BaseModel):
    """Schema of ``sessions/<id>/turn-NNNN.json``."""

    model_config = ConfigDict(populate_by_name=True, extra="ignore", frozen=True)

    session_id: StrictStr = Field(alias="sessionId", min_length=1)
    turn: int = Field(gt=0, strict=True)
    created_at: Optional[datetime] = Field(default=None, alias="createdAt")
    duration_ms: int = Field(default=0, ge=0, alias="durationMs")
    user_audio_url: StrictStr = Field(alias="userAudioUrl")
    transcript: StrictStr = ""
    assistant_reply: StrictStr = Field(default="", alias="assistantReply")
    provider: StrictStr = ""
    assistant_audio_url: Optional[StrictStr] = Field(default=None, alias="assistantAudioUrl")
    assistant_audio_duration_ms: int = Field(default=0, ge=0, alias="assistantAudioDurationMs")

    @field_validator("duration_ms", "assistant_audio_duration_ms", mode="before")
    @classmethod
    def _coerce_duration(cls, value: Any) -> Any:
        # Missing and non-finite durations count as zero.
        if value is None:
            return 0
        if isinstance(value, bool):
            raise ValueError("duration must be a number")
        if isinstance(value, float):
            if not math.isfinite(value):
                return 0
            return int(round(value))
        return value

    @field_validator("created_at")
    @classmethod
    def _assume_utc(cls, value: Optional[datetime]) -> Optional[datetime]:
        if value is not None and value.tzinfo is None:
            return value.replace(tzinfo=timezone.utc)
        return value

    @field_serializer("created_at")
    def _serialize_created_at(self, value: Optional[datetime]) -> Optional[str]:
        return format_timestamp(value)

    @classmethod
    def decode(cls, key: str, data: bytes) -> "TurnManifest":
        try:
            payload = json.loads(data.decode("utf-8"))
        except (UnicodeDecodeError, json.JSONDecodeError) as exc:
            raise TurnDecodeError(key, f"invalid JSON ({exc})") from exc
        try:
            return cls.model_validate(payload)
        except PydanticValidationError as exc:
            raise TurnDecodeError(key, str(exc)) from exc

    def encode(self) -> bytes:
        return self.model_dump_json(by_alias=True, indent=2).encode("utf-8")

    def to_turn(self, manifest_ref: Optional[str] = None) -> AudioTurn:
        return AudioTurn(
            session_id=self.session_id,
            turn_number=self.turn,
            audio_ref=self.user_audio_url,
            transcript=self.transcript,
            reply_text=self.assistant_reply,
            provider=self.provider,
            duration_ms=self.duration_ms,
            created_at=self.created_at,
            manifest_ref=manifest_ref,
            assistant_audio_ref=self.assistant_audio_url,
            assistant_audio_duration_ms=self.assistant_audio_duration_ms,
        )


class SessionTotals(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    turns: int = 0
    duration_ms: int = Field(default=0, alias="durationMs")


class SessionManifestTurn(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    turn: int
    audio: Optional[str] = None
    manifest: Optional[str] = None
    transcript: str = Field(default="", max_length=TRANSCRIPT_PREVIEW_CHARS)
    duration_ms: int = Field(default=0, alias="durationMs")
    created_at: Optional[str] = Field(default=None, alias="createdAt")


class SessionArtifacts(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    transcript_txt: Optional[str] = Field(default=None, alias="transcriptTxt")
    transcript_json: Optional[str] = Field(default=None, alias="transcriptJson")


class SessionManifest(BaseModel):
    """Schema of ``sessions/<id>/session-<id>.json``."""

    model_config = ConfigDict(populate_by_name=True, extra="ignore")

    session_id: str = Field(alias="sessionId")
    started_at: Optional[str] = Field(default=None, alias="startedAt")
    ended_at: Optional[str] = Field(default=None, alias="endedAt")
    title: Optional[str] = None
    totals: SessionTotals = Field(default_factory=SessionTotals)
    turns: List[SessionManifestTurn] = Field(default_factory=list)
    artifacts: SessionArtifacts = Field(default_factory=SessionArtifacts)

    @classmethod
    def from_session(
        cls, session: Session, artifacts: Optional[SessionArtifacts] = None
    ) -> "SessionManifest":
        return cls(
            session_id=session.session_id,
            started_at=format_timestamp(session.started_at),
            ended_at=format_timestamp(session.ended_at),
            title=session.title,
            totals=SessionTotals(
                turns=session.total_turns, duration_ms=session.total_duration_ms
            ),
            turns=[
                SessionManifestTurn(
                    turn=turn.turn_number,
                    audio=turn.audio_ref,
                    manifest=turn.manifest_ref,
                    transcript=truncate_preview(turn.transcript),
                    duration_ms=turn.duration_ms,
                    created_at=format_timestamp(turn.created_at),
                )
                for turn in session.turns
            ],
            artifacts=artifacts or SessionArtifacts(),
        )

    def encode(self) -> bytes:
        return self.model_dump_json(by_alias=True, indent=2).encode("utf-8")
