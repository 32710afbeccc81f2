"""Rich-based terminal output for the chat REPL."""

from __future__ import annotations

import logging
import sys

from rich.console import Console
from rich.markdown import Markdown
from rich.markup import escape
from rich.rule import Rule

logger = logging.getLogger(__name__)

# Chrome (confirmations, errors, banner) goes to stderr; model output to stdout.
# Consoles resolve sys.stdout / sys.stderr lazily, so redirected streams are honoured.
console = Console(stderr=True)
_stdout_console = Console()

# ---------------------------------------------------------------------------
# Color palette
# ---------------------------------------------------------------------------

GOLD = "#C5A059"  # accents
SLATE = "#94A3B8"  # labels
MUTED = "#8b8b8b"  # secondary text
CHROME = "#6b7280"  # status messages, hints

_BOX_TOP = "╭" + "─" * 29 + "╮"
_BOX_BOT = "╰" + "─" * 29 + "╯"
_SEP = " · "


# ---------------------------------------------------------------------------
# Streaming output
# ---------------------------------------------------------------------------


def render_chunk(content: str) -> None:
    """Write one streamed chunk to stdout immediately."""
    sys.stdout.write(content)
    sys.stdout.flush()


def render_response_end() -> None:
    sys.stdout.write("\n")
    sys.stdout.flush()


def render_cancelled() -> None:
    console.print(f"[{CHROME}]Response cancelled[/{CHROME}]")


def render_markdown_block(text: str, theme: str) -> None:
    """Re-render a full response as markdown below the raw stream.

    Best-effort: a failure to render is logged and otherwise ignored.
    """
    try:
        markdown = Markdown(text, code_theme=theme)
        _stdout_console.print(Rule("markdown", style=CHROME))
        _stdout_console.print(markdown)
        _stdout_console.print(Rule(style=CHROME))
    except Exception:
        logger.debug("Markdown rendering failed", exc_info=True)


# ---------------------------------------------------------------------------
# Plain output
# ---------------------------------------------------------------------------


def render_text(text: str) -> None:
    """Print user-supplied text verbatim (no markup, no highlighting, no wrapping)."""
    _stdout_console.print(text, markup=False, highlight=False, emoji=False, soft_wrap=True)


def render_info(message: str) -> None:
    console.print(f"[{CHROME}]{escape(message)}[/{CHROME}]", soft_wrap=True)


def render_error(message: str) -> None:
    console.print(f"[red bold]Error:[/red bold] {escape(message)}", soft_wrap=True)


def render_config(values: dict[str, object]) -> None:
    width = max((len(k) for k in values), default=0)
    for key, value in values.items():
        shown = repr(value) if isinstance(value, str) else value
        render_text(f"{key.ljust(width)} = {shown}")


# ---------------------------------------------------------------------------
# Welcome
# ---------------------------------------------------------------------------


def render_welcome(model: str, prefix: str, version: str = "") -> None:
    console.print()
    console.print(f"[{GOLD}]  {_BOX_TOP}[/]")
    console.print(f"[{GOLD}]  │       [bold]C H A T L I N E[/bold]       │[/]")
    console.print(f"[{GOLD}]  │   [{SLATE}]chat from your terminal[/]   │[/]")
    console.print(f"[{GOLD}]  {_BOX_BOT}[/]")
    console.print()

    parts = [escape(model)]
    if version:
        parts.insert(0, f"v{version}")
    console.print(f"  [{MUTED}]{_SEP.join(parts)}[/{MUTED}]")
    console.print(f"  [{MUTED}]Use {escape(prefix)}help for help[/{MUTED}]\n")


def render_goodbye() -> None:
    console.print(f"[{GOLD}]Goodbye![/]")
