import logging

import pytest

from turnframe import cli
from turnframe.object_store import LocalObjectStore
from turnframe.persistence import TurnPersistence


@pytest.fixture(autouse=True)
def isolated(tmp_path, monkeypatch):
    monkeypatch.chdir(tmp_path)
    logger = logging.getLogger("turnframe")
    saved = list(logger.handlers)
    for handler in saved:
        logger.removeHandler(handler)
    yield
    for handler in list(logger.handlers):
        handler.close()
        logger.removeHandler(handler)
    for handler in saved:
        logger.addHandler(handler)


def _seed(root):
    persistence = TurnPersistence(LocalObjectStore(root))
    persistence.save("s1", 1, b"a", transcript="hello there", reply_text="Where did you grow up?", duration_ms=1500)
    persistence.save("s1", 2, b"a", transcript="on a farm", duration_ms=2500)


def test_no_command_prints_help(capsys):
    assert cli.main([]) == 0
    assert "usage" in capsys.readouterr().out


def test_history_empty(tmp_path, capsys):
    assert cli.main(["--store-dir", str(tmp_path / "store"), "history"]) == 0
    assert "No sessions." in capsys.readouterr().out


def test_finalize_then_show(tmp_path, capsys):
    root = str(tmp_path / "store")
    _seed(root)

    assert cli.main(["--store-dir", root, "finalize", "s1"]) == 0
    out = capsys.readouterr().out
    assert "Turns: 2 (4000 ms)" in out
    assert "session-s1.json" in out
    assert (tmp_path / "store" / "sessions" / "s1" / "session-s1.json").exists()
    assert (tmp_path / "logs" / "turnframe.log").exists()

    assert cli.main(["--store-dir", root, "show", "s1"]) == 0
    out = capsys.readouterr().out
    assert "turns=2" in out
    assert "[0001] 1500 ms  hello there" in out
    assert "reply: Where did you grow up?" in out


def test_history_lists_sessions(tmp_path, capsys):
    root = str(tmp_path / "store")
    _seed(root)
    assert cli.main(["--store-dir", root, "history"]) == 0
    assert "s1  turns=2  duration=4.0s" in capsys.readouterr().out


def test_show_unknown_session(tmp_path, capsys):
    assert cli.main(["--store-dir", str(tmp_path / "store"), "show", "nope"]) == 1
    assert "Session not found: nope" in capsys.readouterr().out


def test_delete(tmp_path, capsys):
    root = str(tmp_path / "store")
    _seed(root)
    assert cli.main(["--store-dir", root, "delete", "s1"]) == 0
    assert "Removed 4 objects." in capsys.readouterr().out
    assert cli.main(["--store-dir", root, "delete", "s1"]) == 1


def test_invalid_session_id_is_reported(tmp_path, capsys):
    assert cli.main(["--store-dir", str(tmp_path / "store"), "finalize", "a/b"]) == 1
    assert "Error:" in capsys.readouterr().out


def test_config_file_is_read(tmp_path, capsys):
    root = tmp_path / "from-config"
    (tmp_path / "turnframe_config.yml").write_text(
        f"storage:\n  root_dir: {root}\n", encoding="utf-8"
    )
    _seed(str(root))
    assert cli.main(["history"]) == 0
    assert "s1" in capsys.readouterr().out


def test_history_prints_titles(tmp_path, capsys):
    root = str(tmp_path / "store")
    _seed(root)
    assert cli.main(["--store-dir", root, "finalize", "s1"]) == 0
    assert "Title: On a farm." in capsys.readouterr().out
    assert cli.main(["--store-dir", root, "history"]) == 0
    assert "  On a farm." in capsys.readouterr().out
