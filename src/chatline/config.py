"""Configuration loader: YAML key/value file with environment variable fallbacks."""

from __future__ import annotations

import logging
import os
import stat
from dataclasses import dataclass, field
from enum import Enum
from pathlib import Path
from typing import Any, Callable

import yaml
from pygments.styles import get_style_by_name
from pygments.util import ClassNotFound

logger = logging.getLogger(__name__)

DEFAULT_SYSTEM_PROMPT = (
    "You are a terminal-based chat assistant. Give relatively short answers, while being as accurate as possible."
)
DEFAULT_MODEL = "gpt-4o-mini"
DEFAULT_THEME = "monokai"
DEFAULT_COMMAND_PREFIX = "/"
DEFAULT_HISTORY_PATH = "history.json"


class ConfigError(ValueError):
    """Raised when the configuration file is missing, malformed or holds an invalid value."""


@dataclass
class ChatConfig:
    model: str = DEFAULT_MODEL
    render_markdown: bool = False
    theme: str = DEFAULT_THEME
    system_prompt: str = DEFAULT_SYSTEM_PROMPT
    command_prefix: str = DEFAULT_COMMAND_PREFIX
    default_history_path: str = DEFAULT_HISTORY_PATH
    base_url: str = ""
    # Keys we don't know about are written back untouched on save
    extra: dict[str, Any] = field(default_factory=dict)

    def to_dict(self) -> dict[str, Any]:
        data: dict[str, Any] = {
            "Model": self.model,
            "RenderMarkdown": self.render_markdown,
            "Theme": self.theme,
            "SystemPrompt": self.system_prompt,
            "CommandPrefix": self.command_prefix,
            "DefaultHistoryPath": self.default_history_path,
        }
        if self.base_url:
            data["BaseURL"] = self.base_url
        data.update(self.extra)
        return data


def parse_bool(value: Any) -> bool:
    """Only ``true`` and ``1`` (any case) are true; everything else is false."""
    if isinstance(value, bool):
        return value
    return str(value).strip().lower() in ("true", "1")


def validate_command_prefix(value: str) -> None:
    if len(value) != 1:
        raise ConfigError(f"CommandPrefix must be exactly one character, got {value!r}")


def validate_theme(value: str) -> None:
    try:
        get_style_by_name(value)
    except ClassNotFound:
        raise ConfigError(f"Unknown theme {value!r}. See https://pygments.org/styles/ for valid names.") from None


# ---------------------------------------------------------------------------
# Typed field table for `config <field> <value>`
# ---------------------------------------------------------------------------


class FieldKind(Enum):
    BOOL = "bool"
    TEXT = "text"
    INT = "int"


@dataclass(frozen=True)
class ConfigField:
    name: str
    kind: FieldKind
    get: Callable[[ChatConfig], Any]
    set: Callable[[ChatConfig, Any], None]
    validate: Callable[[str], None] | None = None


def _attr_field(name: str, attr: str, kind: FieldKind, validate: Callable[[str], None] | None = None) -> ConfigField:
    return ConfigField(
        name=name,
        kind=kind,
        get=lambda cfg: getattr(cfg, attr),
        set=lambda cfg, value: setattr(cfg, attr, value),
        validate=validate,
    )


CONFIG_FIELDS: dict[str, ConfigField] = {
    f.name.lower(): f
    for f in (
        _attr_field("Model", "model", FieldKind.TEXT),
        _attr_field("RenderMarkdown", "render_markdown", FieldKind.BOOL),
        _attr_field("Theme", "theme", FieldKind.TEXT, validate_theme),
        _attr_field("SystemPrompt", "system_prompt", FieldKind.TEXT),
        _attr_field("CommandPrefix", "command_prefix", FieldKind.TEXT, validate_command_prefix),
        _attr_field("DefaultHistoryPath", "default_history_path", FieldKind.TEXT),
        _attr_field("BaseURL", "base_url", FieldKind.TEXT),
    )
}


def lookup_field(name: str) -> ConfigField | None:
    return CONFIG_FIELDS.get(name.lower())


# ---------------------------------------------------------------------------
# Load / save
# ---------------------------------------------------------------------------


def _resolve_data_dir() -> Path:
    return Path.home() / ".chatline"


def get_config_path(override: str | os.PathLike[str] | None = None) -> Path:
    """Resolve the config file: explicit override, then CHATLINE_CONFIG, then ~/.chatline/config.yaml."""
    if override:
        return Path(override).expanduser()
    env_path = os.environ.get("CHATLINE_CONFIG")
    if env_path:
        return Path(env_path).expanduser()
    return _resolve_data_dir() / "config.yaml"


def load_config(config_path: Path | None = None) -> ChatConfig:
    path = config_path or get_config_path()

    if not path.exists():
        raise ConfigError(f"No configuration file found at {path}. Run 'chatline init' to create one.")

    try:
        with open(path, encoding="utf-8") as f:
            raw = yaml.safe_load(f)
    except yaml.YAMLError as e:
        raise ConfigError(f"Cannot parse {path}: {e}") from e
    except OSError as e:
        raise ConfigError(f"Cannot read {path}: {e}") from e

    if raw is None:
        raw = {}
    if not isinstance(raw, dict):
        raise ConfigError(f"{path} must contain a key/value mapping, got {type(raw).__name__}")

    known = {f.name for f in CONFIG_FIELDS.values()}
    extra = {k: v for k, v in raw.items() if k not in known}

    command_prefix = str(raw.get("CommandPrefix", DEFAULT_COMMAND_PREFIX))
    validate_command_prefix(command_prefix)
    theme = str(raw.get("Theme", DEFAULT_THEME))
    validate_theme(theme)

    system_prompt = raw.get("SystemPrompt", DEFAULT_SYSTEM_PROMPT)
    # safe_load already maps YAML 1.1 yes/on/no/off to bools, so the file accepts
    # more spellings than `config RenderMarkdown <v>`, which only takes true/1.
    config = ChatConfig(
        model=str(raw.get("Model") or DEFAULT_MODEL),
        render_markdown=parse_bool(raw.get("RenderMarkdown", False)),
        theme=theme,
        system_prompt="" if system_prompt is None else str(system_prompt),
        command_prefix=command_prefix,
        default_history_path=str(raw.get("DefaultHistoryPath") or DEFAULT_HISTORY_PATH),
        base_url=str(raw.get("BaseURL") or ""),
        extra=extra,
    )
    logger.debug("Loaded config from %s (model=%s)", path, config.model)
    return config


def save_config(config: ChatConfig, config_path: Path | None = None) -> Path:
    """Write the config back to disk. Raises OSError when the file cannot be written."""
    path = config_path or get_config_path()
    path.parent.mkdir(parents=True, exist_ok=True)
    with open(path, "w", encoding="utf-8") as f:
        yaml.dump(config.to_dict(), f, default_flow_style=False, sort_keys=False, allow_unicode=True)
    try:
        path.chmod(stat.S_IRUSR | stat.S_IWUSR)  # 0600
    except OSError:
        pass  # May fail on Windows or non-owned files
    logger.info("Saved config to %s", path)
    return path


def write_default_config(config_path: Path | None = None, force: bool = False) -> Path:
    """Create a config file populated with defaults. Refuses to overwrite unless ``force``."""
    path = config_path or get_config_path()
    if path.exists() and not force:
        raise ConfigError(f"{path} already exists. Use --force to overwrite it.")
    return save_config(ChatConfig(), path)
