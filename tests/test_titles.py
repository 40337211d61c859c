from turnframe.titles import generate_session_title, split_sentences


def test_prefers_speaker_sentences():
    title = generate_session_title(
        [
            ("assistant", "Tell me about a moment when you felt proud of your work, and why it mattered."),
            ("user", "We built the barn ourselves."),
        ]
    )
    assert title == "We built the barn ourselves."


def test_falls_back_to_assistant_lines():
    title = generate_session_title([("user", "  "), ("assistant", "what brought you to the city?")])
    assert title == "What brought you to the city?"


def test_fallback_when_nothing_was_said():
    assert generate_session_title([], fallback="Untitled") == "Untitled"
    assert generate_session_title([("user", None)]) is None


def test_long_sentences_are_cut_at_a_word():
    title = generate_session_title([("user", "word " * 60)])
    assert len(title) <= 120
    assert title.endswith("…")
    assert not title[:-1].endswith(" ")


def test_split_sentences_strips_quotes():
    assert split_sentences('Hello there. She said so!  "Fine"') == ["Hello there.", "She said so!", "Fine"]
