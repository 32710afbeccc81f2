"""Tests for the transcript store and its JSON persistence."""

from __future__ import annotations

import json
from pathlib import Path

import pytest

from chatline.transcript import Transcript, TranscriptError, Turn


def _sample() -> Transcript:
    transcript = Transcript()
    transcript.add_user("What is 2+2?")
    transcript.add_assistant("4")
    transcript.add_user("Ünïcödé and\nnewlines\ttabs \"quotes\"")
    transcript.add_assistant("")
    return transcript


class TestTurn:
    def test_is_immutable(self) -> None:
        turn = Turn(role="user", content="hi")
        with pytest.raises(Exception):
            turn.content = "changed"  # type: ignore[misc]

    def test_to_message(self) -> None:
        assert Turn(role="assistant", content="ok").to_message() == {"role": "assistant", "content": "ok"}

    def test_rejects_unknown_role(self) -> None:
        with pytest.raises(Exception):
            Turn(role="tool", content="x")  # type: ignore[arg-type]


class TestTranscript:
    def test_starts_empty(self) -> None:
        assert len(Transcript()) == 0

    def test_append_preserves_order(self) -> None:
        transcript = _sample()
        assert [t.role for t in transcript] == ["user", "assistant", "user", "assistant"]
        assert transcript.turns[0].content == "What is 2+2?"

    def test_system_turn_rejected(self) -> None:
        transcript = Transcript()
        with pytest.raises(ValueError, match="system"):
            transcript.append(Turn(role="system", content="nope"))
        assert len(transcript) == 0

    def test_turns_returns_copy(self) -> None:
        transcript = _sample()
        transcript.turns.clear()
        assert len(transcript) == 4

    def test_to_messages(self) -> None:
        transcript = Transcript()
        transcript.add_user("hi")
        assert transcript.to_messages() == [{"role": "user", "content": "hi"}]

    def test_replace_is_wholesale(self) -> None:
        transcript = _sample()
        transcript.replace([Turn(role="user", content="only")])
        assert transcript.turns == [Turn(role="user", content="only")]


class TestPersistence:
    def test_format(self, tmp_path: Path) -> None:
        transcript = Transcript()
        transcript.add_user("hi")
        transcript.add_assistant("hello")
        path = transcript.save(tmp_path / "history.json")
        text = path.read_text(encoding="utf-8")
        assert json.loads(text) == [
            {"Role": "user", "Content": "hi"},
            {"Role": "assistant", "Content": "hello"},
        ]
        assert text.startswith("[\n  {")

    def test_empty_transcript_saves_empty_array(self, tmp_path: Path) -> None:
        path = Transcript().save(tmp_path / "history.json")
        assert json.loads(path.read_text()) == []

    def test_round_trip(self, tmp_path: Path) -> None:
        original = _sample()
        path = original.save(tmp_path / "history.json")
        restored = Transcript()
        assert restored.load(path) == 4
        assert restored.turns == original.turns

    def test_save_overwrites(self, tmp_path: Path) -> None:
        path = tmp_path / "history.json"
        path.write_text("old contents")
        _sample().save(path)
        assert len(json.loads(path.read_text())) == 4

    def test_save_to_missing_dir_raises(self, tmp_path: Path) -> None:
        with pytest.raises(TranscriptError):
            _sample().save(tmp_path / "missing" / "history.json")

    def test_load_replaces_not_merges(self, tmp_path: Path) -> None:
        path = tmp_path / "history.json"
        path.write_text(json.dumps([{"Role": "user", "Content": "from disk"}]))
        transcript = _sample()
        transcript.load(path)
        assert transcript.turns == [Turn(role="user", content="from disk")]

    def test_load_missing_file_leaves_transcript(self, tmp_path: Path) -> None:
        transcript = _sample()
        with pytest.raises(TranscriptError):
            transcript.load(tmp_path / "nope.json")
        assert transcript.turns == _sample().turns

    @pytest.mark.parametrize(
        "payload",
        [
            "not json",
            '{"Role": "user", "Content": "x"}',
            '[{"Role": "user"}]',
            '[{"Role": "robot", "Content": "x"}]',
            '[{"Role": "system", "Content": "x"}]',
            '[{"Role": "user", "Content": null}]',
        ],
    )
    def test_load_invalid_leaves_transcript(self, tmp_path: Path, payload: str) -> None:
        path = tmp_path / "history.json"
        path.write_text(payload)
        transcript = _sample()
        with pytest.raises(TranscriptError):
            transcript.load(path)
        assert transcript.turns == _sample().turns
