"""Command-line entry point: ``python -m gemini_mcp`` or ``gemini-mcp``."""

import argparse
import logging
import sys
from typing import Any

from gemini_mcp.config import ServerSettings, resolve_settings
from gemini_mcp.exceptions import ConfigurationError
from gemini_mcp.server import build_server

logger = logging.getLogger("gemini_mcp")

# FastMCP transport names for the configured transport
_TRANSPORTS = {"stdio": "stdio", "http": "streamable-http"}


def build_parser() -> argparse.ArgumentParser:
    """Flags that override environment configuration."""
    parser = argparse.ArgumentParser(
        description="Gemini MCP server: ask, search and models tools",
        prog="gemini-mcp",
    )
    parser.add_argument("--gemini-model", dest="model", help="Default Gemini model")
    parser.add_argument(
        "--gemini-system-prompt", dest="system_prompt", help="Default system prompt"
    )
    parser.add_argument(
        "--transport", choices=("stdio", "http"), help="MCP transport (default stdio)"
    )
    parser.add_argument(
        "--enable-caching",
        action=argparse.BooleanOptionalAction,
        default=None,
        help="Enable context caching",
    )
    parser.add_argument(
        "--enable-thinking",
        action=argparse.BooleanOptionalAction,
        default=None,
        help="Enable thinking mode",
    )
    parser.add_argument(
        "--file-read-base-dir",
        dest="file_read_base_dir",
        help="Directory that local file_paths are resolved against",
    )
    parser.add_argument("--env-file", help="Path to a .env file to load")
    parser.add_argument(
        "--log-level",
        choices=("DEBUG", "INFO", "WARNING", "ERROR"),
        type=str.upper,
        help="Log level (default INFO)",
    )
    return parser


def settings_from_args(args: argparse.Namespace) -> ServerSettings:
    """Resolve settings with CLI flags taking precedence over the environment."""
    overrides: dict[str, Any] = {
        "model": args.model,
        "system_prompt": args.system_prompt,
        "transport": args.transport,
        "enable_caching": args.enable_caching,
        "enable_thinking": args.enable_thinking,
        "file_read_base_dir": args.file_read_base_dir,
        "log_level": args.log_level,
    }
    return resolve_settings(overrides, env_file=args.env_file)


def configure_logging(level: str) -> None:
    """Log to stderr; stdout carries the stdio protocol stream."""
    logging.basicConfig(
        level=getattr(logging, level.upper(), logging.INFO),
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
        stream=sys.stderr,
    )


def main(argv: list[str] | None = None) -> int:
    """Parse flags, build the server and run it until the transport closes."""
    args = build_parser().parse_args(argv)
    try:
        settings = settings_from_args(args)
        configure_logging(settings.log_level)
        logger.info("Starting Gemini MCP server with %r", settings)

        server = build_server(settings)
    except ConfigurationError as e:
        configure_logging("ERROR")
        logger.error("%s", e)
        return 1

    server.run(transport=_TRANSPORTS[settings.transport])
    return 0


if __name__ == "__main__":
    sys.exit(main())
