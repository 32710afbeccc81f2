"""Conversation transcript: ordered user/assistant turns with JSON persistence.

The persisted format is an indented JSON array of ``{"Role": ..., "Content": ...}``
objects in chronological order, with no envelope or version field.  The system
prompt is never part of the transcript; it is injected at request time.
"""

from __future__ import annotations

import json
import logging
from pathlib import Path
from typing import Any, Iterator, Literal

from pydantic import BaseModel, ConfigDict, Field, TypeAdapter, ValidationError

logger = logging.getLogger(__name__)


class TranscriptError(Exception):
    """Raised when a transcript cannot be written, read or parsed."""


class Turn(BaseModel):
    model_config = ConfigDict(frozen=True, populate_by_name=True)

    role: Literal["system", "user", "assistant"] = Field(alias="Role")
    content: str = Field(alias="Content")

    def to_message(self) -> dict[str, str]:
        """Shape used by the chat completions API."""
        return {"role": self.role, "content": self.content}


_TURNS_ADAPTER = TypeAdapter(list[Turn])


class Transcript:
    """Chronological log of user and assistant turns."""

    def __init__(self, turns: list[Turn] | None = None) -> None:
        self._turns: list[Turn] = []
        for turn in turns or []:
            self.append(turn)

    def __len__(self) -> int:
        return len(self._turns)

    def __iter__(self) -> Iterator[Turn]:
        return iter(self._turns)

    @property
    def turns(self) -> list[Turn]:
        return list(self._turns)

    def append(self, turn: Turn) -> None:
        if turn.role == "system":
            raise ValueError("system turns are not stored in the transcript")
        self._turns.append(turn)

    def add_user(self, content: str) -> Turn:
        turn = Turn(role="user", content=content)
        self.append(turn)
        return turn

    def add_assistant(self, content: str) -> Turn:
        turn = Turn(role="assistant", content=content)
        self.append(turn)
        return turn

    def replace(self, turns: list[Turn]) -> None:
        """Swap the whole transcript for ``turns``. Nothing changes if any turn is invalid."""
        fresh = Transcript(turns)
        self._turns = fresh._turns

    def to_messages(self) -> list[dict[str, str]]:
        return [t.to_message() for t in self._turns]

    def to_json(self) -> str:
        data: list[dict[str, Any]] = [t.model_dump(by_alias=True) for t in self._turns]
        return json.dumps(data, indent=2, ensure_ascii=False)

    @staticmethod
    def parse_json(data: str | bytes) -> list[Turn]:
        try:
            turns = _TURNS_ADAPTER.validate_json(data)
        except ValidationError as e:
            raise TranscriptError(f"invalid transcript: {e.error_count()} validation error(s)") from e
        if any(t.role == "system" for t in turns):
            raise TranscriptError("invalid transcript: system turns are not allowed")
        return turns

    def save(self, path: Path) -> Path:
        """Write the transcript to ``path``, overwriting any existing file."""
        try:
            path.write_text(self.to_json(), encoding="utf-8")
        except OSError as e:
            raise TranscriptError(str(e)) from e
        logger.debug("Saved %d turns to %s", len(self._turns), path)
        return path

    def load(self, path: Path) -> int:
        """Replace the transcript with the contents of ``path``.

        On any read or parse failure a TranscriptError is raised and the
        current turns are left untouched. Returns the number of turns loaded.
        """
        try:
            data = path.read_bytes()
        except OSError as e:
            raise TranscriptError(str(e)) from e
        turns = self.parse_json(data)
        self.replace(turns)
        logger.debug("Loaded %d turns from %s", len(turns), path)
        return len(turns)
