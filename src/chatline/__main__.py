"""CLI entry point for chatline."""

from __future__ import annotations

import argparse
import asyncio
import logging
import sys
from pathlib import Path

from dotenv import find_dotenv, load_dotenv

from . import __version__
from .config import ChatConfig, ConfigError, get_config_path, load_config, write_default_config


def _run_init(config_path: Path, force: bool = False) -> None:
    """Write a default config file."""
    try:
        path = write_default_config(config_path, force=force)
    except ConfigError as e:
        print(f"Error: {e}", file=sys.stderr)
        sys.exit(1)
    except OSError as e:
        print(f"Error: cannot write {config_path}: {e}", file=sys.stderr)
        sys.exit(1)
    print(f"Config written to {path}")


def _load_env_or_exit(env_file: str | None) -> None:
    """Load the API key file. A missing file is fatal; a missing key is not."""
    path = env_file or find_dotenv(usecwd=True)
    if not path or not Path(path).is_file():
        print(f"Error loading .env file{f' {env_file}' if env_file else ''}", file=sys.stderr)
        sys.exit(1)
    load_dotenv(path)


def _load_config_or_exit(config_path: Path) -> ChatConfig:
    try:
        return load_config(config_path)
    except ConfigError as e:
        print(f"Configuration error: {e}", file=sys.stderr)
        sys.exit(1)


async def _chat_main(config: ChatConfig, config_path: Path) -> None:
    from .cli.repl import run_repl
    from .services.chat import ChatService
    from .session import Session

    session = Session.from_config(config, config_path)
    async with ChatService(base_url=config.base_url) as service:
        await run_repl(session, service)


def _run_chat(config: ChatConfig, config_path: Path) -> None:
    """Launch the interactive REPL."""
    try:
        asyncio.run(_chat_main(config, config_path))
    except (KeyboardInterrupt, asyncio.CancelledError):
        pass


def main(argv: list[str] | None = None) -> None:
    parser = argparse.ArgumentParser(prog="chatline", description="Chat with a language model from your terminal")
    subparsers = parser.add_subparsers(dest="command")

    init_parser = subparsers.add_parser("init", help="Write a default config file")
    init_parser.add_argument("--force", action="store_true", help="Overwrite an existing config")

    parser.add_argument("--version", action="version", version=f"%(prog)s {__version__}")
    parser.add_argument(
        "--config",
        dest="config_path",
        default=None,
        help="Config file (default: ~/.chatline/config.yaml)",
    )
    parser.add_argument(
        "--env-file",
        dest="env_file",
        default=None,
        help="File holding OPENAI_API_KEY (default: .env)",
    )
    parser.add_argument("--no-env", dest="no_env", action="store_true", help="Don't load a .env file")
    parser.add_argument("-v", "--verbose", action="store_true", help="Log debug output to stderr")

    args = parser.parse_args(argv)

    if args.verbose:
        logging.basicConfig(level=logging.DEBUG, format="%(asctime)s %(levelname)s %(name)s: %(message)s")

    config_path = get_config_path(args.config_path)

    if args.command == "init":
        _run_init(config_path, force=args.force)
        return

    if not args.no_env:
        _load_env_or_exit(args.env_file)
    config = _load_config_or_exit(config_path)
    _run_chat(config, config_path)


if __name__ == "__main__":
    main()
