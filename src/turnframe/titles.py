"""Session titles picked from the conversation itself."""

from __future__ import annotations

import re
from typing import Iterable, List, Optional, Tuple

TITLE_MAX_CHARS = 120

_SENTENCE_SPLIT = re.compile(r"(?<=[.!?])\s+")
_EDGE_QUOTES = re.compile(r"^['\"“”]+|['\"“”]+$")
_STORY_WORDS = re.compile(r"(because|when|after|before|while|remember|recall|story|moment|detail)", re.IGNORECASE)
_PRONOUNS = re.compile(r"\b(I|We|My|Our|He|She|They)\b")


def split_sentences(text: str) -> List[str]:
    cleaned = " ".join(text.split())
    if not cleaned:
        return []
    sentences = [_EDGE_QUOTES.sub("", s).strip() for s in _SENTENCE_SPLIT.split(cleaned)]
    return [s for s in sentences if s] or [cleaned]


def score_sentence(sentence: str, role: str) -> float:
    score = 0.0
    if len(sentence) >= 12:
        score += min(1.5, len(sentence) / 80)
    if re.search(r"[,:;]", sentence):
        score += 0.2
    if _STORY_WORDS.search(sentence):
        score += 0.6
    if _PRONOUNS.search(sentence):
        score += 0.4
    score += 1.1 if role == "user" else 0.4
    return score


def _finish(sentence: str) -> str:
    result = " ".join(sentence.split())
    if not result:
        return ""
    result = result[0].upper() + result[1:]
    if len(result) > TITLE_MAX_CHARS:
        truncated = result[: TITLE_MAX_CHARS - 1]
        last_space = truncated.rfind(" ")
        if last_space > 40:
            truncated = truncated[:last_space]
        return truncated + "…"
    if result[-1] not in ".!?…":
        result += "."
    return result


def _pick(lines: List[Tuple[str, str]]) -> Optional[str]:
    candidates = [
        (score_sentence(sentence, role), sentence, role)
        for role, text in lines
        for sentence in split_sentences(text)
    ]
    if not candidates:
        return None
    candidates.sort(key=lambda item: item[0], reverse=True)
    preferred = next(
        (c for c in candidates if c[2] == "user" and len(c[1].split(" ")) >= 3), None
    )
    chosen = preferred or candidates[0]
    return _finish(chosen[1]) or None


def generate_session_title(
    lines: Iterable[Tuple[str, Optional[str]]], fallback: Optional[str] = None
) -> Optional[str]:
    """Title a session with its most telling sentence.

    ``lines`` are ``(role, text)`` pairs with role ``"user"`` or
    ``"assistant"``. Sentences from the speaker win; assistant lines are
    only used when the speaker said nothing usable.
    """
    usable = [(role, text) for role, text in lines if text and text.strip()]
    title = _pick([line for line in usable if line[0] == "user"])
    if title:
        return title
    return _pick(usable) or fallback
