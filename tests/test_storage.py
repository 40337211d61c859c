import pytest

from turnframe.errors import ValidationError
from turnframe.storage import (
    assistant_audio_key,
    build_session_id,
    extension_for_mime,
    is_session_manifest,
    is_turn_manifest,
    parse_turn_key,
    session_manifest_key,
    split_session_key,
    timestamp_slug,
    transcript_keys,
    turn_manifest_key,
    turn_pad,
    user_audio_key,
    validate_session_id,
    validate_turn_number,
)


def test_timestamp_slug_format():
    slug = timestamp_slug()
    assert len(slug) == 15
    assert slug[8] == "-"


def test_build_session_id_is_unique():
    assert build_session_id() != build_session_id()
    assert "/" not in build_session_id()


def test_padded_keys_sort_numerically():
    numbers = [1, 2, 9, 10, 11, 99, 100, 1000, 9999]
    keys = [turn_manifest_key("s1", n) for n in numbers]
    assert sorted(keys) == keys
    assert sorted(reversed(keys)) == keys


def test_turn_keys_are_siblings():
    assert user_audio_key("abc", 3, "audio/webm;codecs=opus") == "sessions/abc/user-0003.webm"
    assert turn_manifest_key("abc", 3) == "sessions/abc/turn-0003.json"
    assert assistant_audio_key("abc", 3, None) == "sessions/abc/assistant-0003.mp3"
    assert session_manifest_key("abc") == "sessions/abc/session-abc.json"
    assert transcript_keys("abc") == (
        "sessions/abc/transcript-abc.txt",
        "sessions/abc/transcript-abc.json",
    )


def test_extension_for_mime():
    assert extension_for_mime("audio/wav") == "wav"
    assert extension_for_mime("audio/ogg; codecs=opus") == "ogg"
    assert extension_for_mime("") == "webm"
    assert extension_for_mime("garbage") == "webm"


@pytest.mark.parametrize("value,expected", [(1, 1), ("12", 12), (9999, 9999)])
def test_validate_turn_number_accepts(value, expected):
    assert validate_turn_number(value) == expected


@pytest.mark.parametrize("value", [0, -1, 10000, 1.5, "x", None, True, "²", "١", "+3"])
def test_validate_turn_number_rejects(value):
    with pytest.raises(ValidationError):
        validate_turn_number(value)


@pytest.mark.parametrize("value", ["", "  ", "a/b", None])
def test_validate_session_id_rejects(value):
    with pytest.raises(ValidationError):
        validate_session_id(value)


def test_split_session_key_and_name_patterns():
    assert split_session_key("sessions/abc/turn-0001.json") == ("abc", "turn-0001.json")
    assert split_session_key("other/abc/turn-0001.json") is None
    assert is_turn_manifest("turn-0001.json")
    assert not is_turn_manifest("user-0001.webm")
    assert is_session_manifest("session-abc.json")
    assert not is_session_manifest("transcript-abc.json")
    assert turn_pad(7) == "0007"


def test_parse_turn_key():
    assert parse_turn_key("sessions/abc/turn-0042.json") == ("abc", 42)
    assert parse_turn_key("sessions/abc/user-0042.webm") is None
    assert parse_turn_key("sessions/abc/turn-²².json") is None
    assert parse_turn_key("elsewhere/turn-0001.json") is None
