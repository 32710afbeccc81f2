"""Session context shared by the command dispatcher and the chat engine."""

from __future__ import annotations

from dataclasses import dataclass, field
from pathlib import Path

from .config import ChatConfig
from .transcript import Transcript


@dataclass
class Session:
    """Mutable state for one REPL run.

    ``config`` is the live configuration: model, markdown rendering, theme and
    command prefix are read from it on every use, so ``config <field> <value>``
    takes effect immediately.  ``default_system_prompt`` is captured once at
    startup and is what ``system reset`` restores.
    """

    config: ChatConfig
    config_path: Path | None = None
    system_prompt: str = ""
    default_system_prompt: str = ""
    transcript: Transcript = field(default_factory=Transcript)
    # Text of the most recent streamed response; None until a turn completes
    last_response: str | None = None

    @classmethod
    def from_config(cls, config: ChatConfig, config_path: Path | None = None) -> Session:
        return cls(
            config=config,
            config_path=config_path,
            system_prompt=config.system_prompt,
            default_system_prompt=config.system_prompt,
        )

    @property
    def model(self) -> str:
        return self.config.model

    @property
    def render_markdown(self) -> bool:
        return self.config.render_markdown

    @property
    def theme(self) -> str:
        return self.config.theme

    @property
    def command_prefix(self) -> str:
        return self.config.command_prefix

    def reset_system_prompt(self) -> None:
        self.system_prompt = self.default_system_prompt

    def embed_file(self, name: str, content: str) -> None:
        self.system_prompt += f"\nFile `{name}`:\n{content}"

    def history_path(self, override: str | None = None) -> Path:
        return Path(override or self.config.default_history_path).expanduser()
