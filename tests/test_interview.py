import json

import pytest

from conftest import ScriptedInput, levels
from turnframe.finalizer import SessionFinalizer
from turnframe.interview import Interview
from turnframe.persistence import TurnPersistence
from turnframe.recorder import TurnRecorder
from turnframe.transcriber import Inference
from turnframe.vad import CancellationToken, VadParams


QUIET = [0.02] * 40
FIRST_TURN = levels((0.02, 10), (0.08, 41), (0.0, 100))
SECOND_TURN = levels((0.1, 30), (0.0, 50))
NOBODY_TALKS = [0.02] * 100


class ScriptedProvider:
    name = "scripted"

    def __init__(self, fail_on=()):
        self.fail_on = set(fail_on)
        self.contexts = []

    def infer(self, audio, context):
        self.contexts.append(context)
        if context["turn"] in self.fail_on:
            raise RuntimeError("model crashed")
        return Inference(
            transcript=f"answer {context['turn']}",
            reply_text=f"question {context['turn'] + 1}",
        )


def _interview(store, source, provider, session_id="s1"):
    return Interview(
        session_id=session_id,
        source=source,
        recorder=TurnRecorder(source, VadParams(max_wait_ms=2000)),
        provider=provider,
        persistence=TurnPersistence(store),
        finalizer=SessionFinalizer(store),
    )


def test_full_interview_is_finalized(store):
    source = ScriptedInput(QUIET, FIRST_TURN, SECOND_TURN, NOBODY_TALKS)
    provider = ScriptedProvider()
    interview = _interview(store, source, provider)
    seen = []

    result = interview.run(on_turn=seen.append)

    assert interview.calibration.baseline == pytest.approx(0.02)
    assert [o.turn_number for o in seen] == [1, 2]
    assert [o.capture.duration_ms for o in seen] == [4200, 3650]
    assert result.ok
    assert result.manifest.totals.turns == 2
    assert result.manifest.totals.duration_ms == 7850
    assert provider.contexts[1]["prompt"] == "answer 1"
    assert source.opened == 4
    assert not source.is_open

    turn = json.loads(store.get("sessions/s1/turn-0002.json"))
    assert turn["transcript"] == "answer 2"
    assert turn["assistantReply"] == "question 3"
    assert turn["provider"] == "scripted"
    assert turn["userAudioUrl"] == "memory://sessions/s1/user-0002.wav"


def test_max_turns_limits_the_loop(store):
    source = ScriptedInput(QUIET, FIRST_TURN, SECOND_TURN)
    result = _interview(store, source, ScriptedProvider()).run(max_turns=1)
    assert result.manifest.totals.turns == 1
    assert source.opened == 2


def test_cancel_ends_interview_after_current_turn(store):
    source = ScriptedInput(QUIET, FIRST_TURN, SECOND_TURN)
    token = CancellationToken()
    result = _interview(store, source, ScriptedProvider()).run(
        cancel=token, on_turn=lambda outcome: token.cancel()
    )
    assert result.manifest.totals.turns == 1


def test_transcription_failure_still_saves_turn(store):
    source = ScriptedInput(QUIET, FIRST_TURN, NOBODY_TALKS)
    result = _interview(store, source, ScriptedProvider(fail_on={1})).run()

    assert result.manifest.totals.turns == 1
    assert result.manifest.turns[0].transcript == ""
    assert store.get("sessions/s1/user-0001.wav").startswith(b"RIFF")


def test_silent_session_still_finalizes(store):
    source = ScriptedInput(QUIET, NOBODY_TALKS)
    result = _interview(store, source, ScriptedProvider()).run()
    assert result.ok
    assert result.manifest.totals.turns == 0
    assert result.manifest_url == "memory://sessions/s1/session-s1.json"


class ListProvider:
    name = "list"

    def __init__(self, *transcripts):
        self.transcripts = list(transcripts)

    def infer(self, audio, context):
        return Inference(transcript=self.transcripts[context["turn"] - 1])


def test_goodbye_ends_interview(store):
    source = ScriptedInput(QUIET, FIRST_TURN, SECOND_TURN, FIRST_TURN)
    provider = ListProvider("We lived by the river.", "I think that's enough for today.", "unused")
    seen = []

    result = _interview(store, source, provider).run(on_turn=seen.append)

    assert result.manifest.totals.turns == 2
    assert seen[-1].intent.should_stop
    assert not seen[0].intent.should_stop
    assert source.opened == 3


def test_goodbye_ignored_when_disabled(store):
    source = ScriptedInput(QUIET, FIRST_TURN, NOBODY_TALKS)
    interview = Interview(
        session_id="s1",
        source=source,
        recorder=TurnRecorder(source, VadParams(max_wait_ms=2000)),
        provider=ListProvider("Goodbye, that's all for now."),
        persistence=TurnPersistence(store),
        finalizer=SessionFinalizer(store),
        stop_on_completion=False,
    )
    result = interview.run()
    assert result.manifest.totals.turns == 1
    assert source.opened == 3
