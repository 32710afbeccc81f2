"""Meta-command dispatch: parse a prefixed line and run its handler against the session.

Each handler checks its own arguments.  The commands differ too much (a fixed
keyword, a variadic file list, an optional single path, zero-or-two values)
for one arity rule to fit all of them.
"""

from __future__ import annotations

import logging
from pathlib import Path
from typing import Callable

import pyperclip

from ..config import CONFIG_FIELDS, ConfigError, FieldKind, lookup_field, parse_bool, save_config
from ..session import Session
from ..transcript import TranscriptError
from . import renderer
from .commands import get_command, help_text

logger = logging.getLogger(__name__)


class CommandError(Exception):
    """A meta-command could not run. Reported to the user; the REPL keeps going."""


class UnknownCommandError(CommandError):
    pass


class UsageError(CommandError):
    pass


# A handler returns True when the REPL should terminate
Handler = Callable[[Session, list[str]], bool]


def parse_command(text: str) -> list[str]:
    """Split a command line (prefix already stripped) into non-empty tokens."""
    return text.split()


def dispatch(text: str, session: Session) -> bool:
    """Run the command in ``text``. Returns True when the REPL should terminate."""
    tokens = parse_command(text)
    try:
        if not tokens:
            raise UnknownCommandError(f"No command given. Use `{session.command_prefix}help` for help")
        spec = get_command(tokens[0])
        if spec is None:
            raise UnknownCommandError(f"`{tokens[0]}` is not a valid REPL command")
        logger.debug("Dispatching %s with %d argument(s)", spec.name, len(tokens) - 1)
        return _HANDLERS[spec.name](session, tokens[1:])
    except CommandError as e:
        renderer.render_error(str(e))
        return False


# ---------------------------------------------------------------------------
# Handlers
# ---------------------------------------------------------------------------


def _cmd_system(session: Session, args: list[str]) -> bool:
    usage = f"`{session.command_prefix}system <option>` expects `show` or `reset`"
    if len(args) != 1:
        raise UsageError(usage)
    if args[0] == "show":
        renderer.render_text(session.system_prompt)
    elif args[0] == "reset":
        session.reset_system_prompt()
        renderer.render_info("System prompt has been reset")
    else:
        raise UsageError(usage)
    return False


def _cmd_embed(session: Session, args: list[str]) -> bool:
    if not args:
        raise UsageError(f"`{session.command_prefix}embed <file>...` expects at least one file name")
    for name in args:
        try:
            data = Path(name).expanduser().read_bytes()
        except OSError as e:
            renderer.render_error(f"can't read file `{name}`: {e.strerror or e}")
            continue
        session.embed_file(name, data.decode("utf-8", errors="replace"))
        renderer.render_info(f"Added `{name}` to system prompt")
    return False


def _cmd_save(session: Session, args: list[str]) -> bool:
    if len(args) > 1:
        raise UsageError(f"`{session.command_prefix}save [path]` expects at most one file path")
    path = session.history_path(args[0] if args else None)
    try:
        session.transcript.save(path)
    except TranscriptError as e:
        renderer.render_error(f"saving `{path}` failed: {e}")
        return False
    renderer.render_info(f"History saved to `{path}`")
    return False


def _cmd_load(session: Session, args: list[str]) -> bool:
    if len(args) > 1:
        raise UsageError(f"`{session.command_prefix}load [path]` expects at most one file path")
    path = session.history_path(args[0] if args else None)
    try:
        count = session.transcript.load(path)
    except TranscriptError as e:
        renderer.render_error(f"reading `{path}` failed: {e}")
        return False
    renderer.render_info(f"Loaded {count} messages from `{path}`")
    return False


def _cmd_copy(session: Session, args: list[str]) -> bool:
    if session.last_response is None:
        renderer.render_info("Nothing to copy")
        return False
    try:
        pyperclip.copy(session.last_response)
    except pyperclip.PyperclipException as e:
        renderer.render_error(f"clipboard unavailable: {e}")
        return False
    renderer.render_info("Copied last response to clipboard")
    return False


def _cmd_config(session: Session, args: list[str]) -> bool:
    if not args:
        renderer.render_config({f.name: f.get(session.config) for f in CONFIG_FIELDS.values()})
        return False
    if len(args) != 2:
        raise UsageError(f"`{session.command_prefix}config [<field> <value>]` expects no arguments or two")

    name, raw = args
    field = lookup_field(name)
    if field is None:
        raise UsageError(f"`{name}` is not a configuration field")

    if field.kind is FieldKind.BOOL:
        value: object = parse_bool(raw)
    elif field.kind is FieldKind.TEXT:
        if field.validate is not None:
            try:
                field.validate(raw)
            except ConfigError as e:
                raise UsageError(str(e)) from e
        value = raw
    else:
        raise CommandError(f"unsupported field type `{field.kind.value}` for `{field.name}`")

    field.set(session.config, value)
    try:
        save_config(session.config, session.config_path)
    except OSError as e:
        renderer.render_error(f"{field.name} changed for this session but the config could not be saved: {e}")
        return False
    renderer.render_info(f"{field.name} set to {value!r}")
    return False


def _cmd_help(session: Session, args: list[str]) -> bool:
    renderer.render_text(help_text(session.command_prefix))
    return False


def _cmd_exit(session: Session, args: list[str]) -> bool:
    renderer.render_goodbye()
    return True


_HANDLERS: dict[str, Handler] = {
    "system": _cmd_system,
    "embed": _cmd_embed,
    "save": _cmd_save,
    "load": _cmd_load,
    "copy": _cmd_copy,
    "config": _cmd_config,
    "help": _cmd_help,
    "exit": _cmd_exit,
}
