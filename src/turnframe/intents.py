"""Detect when the speaker wants to end the interview."""

from __future__ import annotations

import re
from dataclasses import dataclass, field
from typing import List, Optional, Pattern, Tuple

NEGATING_PHRASES: List[Pattern[str]] = [
    re.compile(r"not\s+done"),
    re.compile(r"not\s+finished"),
    re.compile(r"not\s+yet"),
    re.compile(r"(?:when|once)\s+i\s+(?:am|was|were)?\s*(?:done|finished)"),
]

PHRASE_PATTERNS: List[Tuple[Pattern[str], float, str]] = [
    (re.compile(r"(i['\s]?m|i am)\s+(done|finished|good)\b"), 2.5, "i'm done"),
    (re.compile(r"(we['\s]?re|we are)\s+(done|finished)\b"), 2.3, "we are done"),
    (re.compile(r"(that['\s]?s|that is)\s+(it|all|enough)\b"), 2.1, "that's it"),
    (re.compile(r"(let['\s]?s|lets)\s+(stop|wrap up|call it a day|pause)"), 2.2, "let's wrap up"),
    (re.compile(r"(can|could|may|should)\s+we\s+(stop|wrap up|pause|finish)\b"), 2.2, "can we stop"),
    (re.compile(r"(stop|end)\s+(the\s+)?(session|conversation|recording|interview)\b"), 2.4, "stop the session"),
    (re.compile(r"(stop|pause)\s+(here|there|for now)"), 2.1, "stop here"),
    (re.compile(r"call\s+it\s+(a day|there)"), 2.0, "call it a day"),
    (re.compile(r"(pick|take)\s+(this|it)\s+up\s+(later|another time)"), 1.8, "pick this up later"),
    (re.compile(r"(talk|speak|chat)\s+(later|another time|next time)"), 1.8, "talk later"),
    (re.compile(r"(goodbye|bye for now|bye-bye)"), 1.7, "goodbye"),
    (re.compile(r"(no more|nothing else)\s+(questions|for now|today)"), 2.0, "no more questions"),
    (re.compile(r"(that will|that'll)\s+be\s+all"), 2.2, "that will be all"),
    (re.compile(r"(thank you|thanks)[,!\s]+(that['\s]?s|that is)\s+(all|it|enough)"), 2.3, "thanks that's all"),
    (re.compile(r"(i|we)\s+(need|have)\s+to\s+(go|run|leave)"), 1.6, "i have to go"),
    (re.compile(r"(i['\s]?m|i am)\s+(wrapping|signing)\s+off"), 1.9, "i'm wrapping up"),
    (re.compile(r"(enough for|done for|finished for)\s+(now|today|tonight)"), 2.2, "enough for now"),
    (re.compile(r"(stop|end)\s+(asking|with)\s+(questions|that)"), 1.9, "stop with the questions"),
    (re.compile(r"(that['\s]?s|that is)\s+probably\s+(enough|good)"), 1.6, "that's enough"),
    (re.compile(r"(wrap|close)\s+(this|things)\s+up"), 2.0, "wrap this up"),
    (re.compile(r"(i['\s]?ll|i will)\s+(talk|speak|chat)\s+to\s+you\s+(later|soon)"), 1.7, "talk to you later"),
    (re.compile(r"(we can|let's)\s+(be|call it)\s+(done|good)"), 1.7, "call it done"),
]

TOKEN_COMBINATIONS: List[Tuple[Tuple[str, ...], float, str]] = [
    (("wrap", "up"), 1.6, "wrap up"),
    (("stop", "talking"), 1.7, "stop talking"),
    (("stop", "recording"), 1.8, "stop recording"),
    (("all", "done"), 1.6, "all done"),
    (("done", "for", "now"), 1.9, "done for now"),
    (("finished", "for", "now"), 1.9, "finished for now"),
    (("no", "more", "questions"), 2.0, "no more questions"),
    (("ready", "to", "stop"), 1.6, "ready to stop"),
    (("that", "is", "it"), 1.6, "that is it"),
]

STOP_TOKENS = {
    "done", "finished", "stop", "pause", "wrap", "goodbye", "bye",
    "later", "enough", "quit", "exit", "over", "complete",
}
CONTEXT_TOKENS = {
    "now", "today", "tonight", "here", "there", "anymore", "for", "this",
    "session", "conversation",
}
STOP_AND_CONTEXT_WEIGHT = 1.4

HIGH_SCORE = 3.5
MEDIUM_SCORE = 2.2
LOW_SCORE = 1.6


@dataclass(frozen=True)
class CompletionIntent:
    should_stop: bool = False
    confidence: str = "low"
    score: float = 0.0
    matched_phrases: List[str] = field(default_factory=list)


def detect_completion_intent(text: Optional[str]) -> CompletionIntent:
    """Score a transcript for phrases like "I'm done for now".

    Phrases that negate completion ("not done yet", "when I was done")
    short-circuit to no intent.
    """
    normalized = (text or "").strip().lower()
    if not normalized:
        return CompletionIntent()
    if any(neg.search(normalized) for neg in NEGATING_PHRASES):
        return CompletionIntent()

    score = 0.0
    matched: List[str] = []
    for pattern, weight, phrase in PHRASE_PATTERNS:
        if pattern.search(normalized):
            score += weight
            matched.append(phrase)

    tokens = re.sub(r"[^a-z0-9\s]", " ", normalized).split()
    token_set = set(tokens)
    for combo, weight, phrase in TOKEN_COMBINATIONS:
        if token_set.issuperset(combo):
            score += weight
            matched.append(phrase)

    stops = [t for t in tokens if t in STOP_TOKENS]
    contexts = [t for t in tokens if t in CONTEXT_TOKENS]
    if stops and contexts:
        score += STOP_AND_CONTEXT_WEIGHT
        matched.append(f"{stops[0]} {contexts[0]}")

    if score >= HIGH_SCORE:
        confidence = "high"
    elif score >= MEDIUM_SCORE:
        confidence = "medium"
    else:
        confidence = "low"
    return CompletionIntent(
        should_stop=score >= LOW_SCORE,
        confidence=confidence,
        score=round(score, 2),
        matched_phrases=list(dict.fromkeys(matched)),
    )
