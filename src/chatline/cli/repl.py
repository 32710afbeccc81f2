"""REPL loop for the chatline CLI."""

from __future__ import annotations

import asyncio
import logging
import platform
import signal
import tempfile
from enum import Enum
from pathlib import Path
from typing import Any

from prompt_toolkit import PromptSession
from prompt_toolkit.formatted_text import HTML
from prompt_toolkit.history import FileHistory

from .. import __version__
from ..services.chat import ChatService, run_chat_turn
from ..session import Session
from . import renderer
from .commands import CommandCompleter
from .dispatcher import dispatch
from .renderer import GOLD

logger = logging.getLogger(__name__)

_IS_WINDOWS = platform.system() == "Windows"

HISTORY_PATH = Path(tempfile.gettempdir()) / "chatline_history"


class ReplState(Enum):
    RUNNING = "running"
    TERMINATED = "terminated"


def _add_signal_handler(loop: asyncio.AbstractEventLoop, sig: int, callback: Any) -> bool:
    """Add a signal handler, returning False on Windows where it's unsupported."""
    if _IS_WINDOWS:
        return False
    try:
        loop.add_signal_handler(sig, callback)
        return True
    except (NotImplementedError, RuntimeError):
        return False


def _remove_signal_handler(loop: asyncio.AbstractEventLoop, sig: int) -> None:
    """Remove a signal handler, no-op on Windows."""
    if _IS_WINDOWS:
        return
    try:
        loop.remove_signal_handler(sig)
    except NotImplementedError:
        pass


def is_command(line: str, prefix: str) -> bool:
    """A line is a meta-command when its first character is the prefix. Empty lines are chat."""
    return line[:1] == prefix


async def _chat(session: Session, service: ChatService, line: str) -> None:
    """Run one chat turn; Ctrl+C while it streams cancels the response."""
    cancel_event = asyncio.Event()
    loop = asyncio.get_running_loop()
    installed = _add_signal_handler(loop, signal.SIGINT, cancel_event.set)
    try:
        await run_chat_turn(session, service, line, cancel_event=cancel_event)
    finally:
        if installed:
            _remove_signal_handler(loop, signal.SIGINT)
        if cancel_event.is_set():
            logger.info("Response cancelled by user")


async def handle_line(line: str, session: Session, service: ChatService) -> ReplState:
    prefix = session.command_prefix
    if is_command(line, prefix):
        if dispatch(line[len(prefix) :], session):
            return ReplState.TERMINATED
        return ReplState.RUNNING
    await _chat(session, service, line)
    return ReplState.RUNNING


def _build_prompt_session(session: Session, history_path: Path = HISTORY_PATH) -> PromptSession[str]:
    completer = CommandCompleter(lambda: session.command_prefix)
    return PromptSession(
        history=FileHistory(str(history_path)),
        completer=completer,
        complete_while_typing=False,
    )


async def run_repl(session: Session, service: ChatService, prompt_session: Any = None) -> None:
    """Read lines until `exit` or end of input, routing each to a command or a chat turn."""
    if prompt_session is None:
        prompt_session = _build_prompt_session(session)

    renderer.render_welcome(session.model, session.command_prefix, __version__)
    prompt_text = HTML(f"<style fg='{GOLD}'>❯</style> ")

    state = ReplState.RUNNING
    while state is ReplState.RUNNING:
        try:
            line = await prompt_session.prompt_async(prompt_text)
        except KeyboardInterrupt:
            continue
        except EOFError:
            break
        except OSError as e:
            logger.warning("Input read failed: %s", e)
            break
        state = await handle_line(line, session, service)
    logger.debug("REPL terminated")
