"""Static table of REPL meta-commands, with help and completion derived from it."""

from __future__ import annotations

from dataclasses import dataclass
from pathlib import Path
from typing import Any, Callable, Iterable

from prompt_toolkit.completion import Completer, Completion
from prompt_toolkit.document import Document

from ..config import CONFIG_FIELDS


@dataclass(frozen=True)
class CommandSpec:
    name: str
    description: str
    args: tuple[str, ...] = ()  # fixed sub-argument keywords, offered for completion
    usage: str = ""  # help placeholder, shown instead of the keyword list
    takes_paths: bool = False

    def invocation(self, prefix: str) -> str:
        pattern = f"{prefix}{self.name}"
        if self.usage:
            return f"{pattern} {self.usage}"
        if self.args:
            return pattern + " <" + " | ".join(self.args) + ">"
        return pattern


COMMANDS: tuple[CommandSpec, ...] = (
    CommandSpec("system", "Manipulate the system prompt", args=("show", "reset")),
    CommandSpec("embed", "Embed files into the system prompt", usage="<file>...", takes_paths=True),
    CommandSpec("save", "Save the conversation history", usage="[path]", takes_paths=True),
    CommandSpec("load", "Load a conversation history", usage="[path]", takes_paths=True),
    CommandSpec("copy", "Copy the last response to the clipboard"),
    CommandSpec(
        "config",
        "Show the configuration, or set a field",
        args=tuple(f.name for f in CONFIG_FIELDS.values()),
        usage="[<field> <value>]",
    ),
    CommandSpec("help", "Display this help"),
    CommandSpec("exit", "Exit the REPL"),
)

_BY_NAME: dict[str, CommandSpec] = {c.name: c for c in COMMANDS}


def get_command(name: str) -> CommandSpec | None:
    return _BY_NAME.get(name)


def completion_tree() -> dict[str, tuple[str, ...]]:
    """Command name -> sub-argument keywords."""
    return {c.name: c.args for c in COMMANDS}


def help_lines(prefix: str) -> list[str]:
    """Two-column help: invocation pattern, description, aligned to the longest pattern."""
    rows = [(c.invocation(prefix), c.description) for c in COMMANDS]
    width = max(len(pattern) for pattern, _ in rows)
    return [f"    {pattern.ljust(width)}  {desc}" for pattern, desc in rows]


def help_text(prefix: str) -> str:
    return "\n".join(["Help:", *help_lines(prefix)])


class CommandCompleter(Completer):
    """Tab completer for prefixed commands, their keywords and file paths."""

    def __init__(
        self,
        get_prefix: Callable[[], str],
        commands: Iterable[CommandSpec] = COMMANDS,
        wd: str = ".",
    ) -> None:
        self._get_prefix = get_prefix
        self._commands = list(commands)
        self._wd = wd

    def get_completions(self, document: Document, complete_event: Any) -> Any:
        prefix = self._get_prefix()
        text = document.text_before_cursor
        if not text.startswith(prefix):
            return

        words = text[len(prefix) :].split(" ")
        if len(words) == 1:
            for cmd in self._commands:
                if cmd.name.startswith(words[0]):
                    yield Completion(cmd.name, start_position=-len(words[0]), display_meta=cmd.description)
            return

        spec = next((c for c in self._commands if c.name == words[0]), None)
        if spec is None:
            return
        word = words[-1]
        if spec.args and len(words) == 2:
            for arg in spec.args:
                if arg.lower().startswith(word.lower()):
                    yield Completion(arg, start_position=-len(word))
        elif spec.takes_paths:
            yield from self._path_completions(word)

    def _path_completions(self, word: str) -> Any:
        base = Path(self._wd)
        if "/" in word:
            parent_str, stem = word.rsplit("/", 1)
            parent = base / Path(parent_str).expanduser() if parent_str else Path("/")
        else:
            parent = base
            stem = word
            parent_str = None
        try:
            if not parent.is_dir():
                return
            for entry in sorted(parent.iterdir()):
                name = entry.name
                if name.startswith(".") and not stem.startswith("."):
                    continue
                if name.startswith(stem):
                    suffix = "/" if entry.is_dir() else ""
                    full = f"{parent_str}/{name}{suffix}" if parent_str is not None else f"{name}{suffix}"
                    yield Completion(full, start_position=-len(word))
        except OSError:
            pass
