"""Public API for the configuration system.

This module provides the main entry point for configuration resolution,
``resolve_settings()``, which merges an optional .env file, GEMINI_*
environment variables and programmatic overrides.
"""

import logging
from pathlib import Path
from typing import Any

from dotenv import load_dotenv
from pydantic import ValidationError as PydanticValidationError

from gemini_mcp.exceptions import ConfigurationError

from .schema import ServerSettings

logger = logging.getLogger(__name__)


def resolve_settings(
    overrides: dict[str, Any] | None = None,
    *,
    env_file: str | Path | None = None,
) -> ServerSettings:
    """Resolve configuration from all sources with proper precedence.

    Precedence: Programmatic > Environment (.env values never override
    variables already set) > Defaults. Overrides whose value is None are
    ignored so CLI flags that were not given fall through.

    Args:
        overrides: Field values with the highest precedence.
        env_file: Optional path to a .env file to load before reading the
            environment.

    Returns:
        Validated ServerSettings.

    Raises:
        ConfigurationError: If the .env file is missing or a value is invalid.

    Example:
        settings = resolve_settings({"transport": "http"}, env_file=".env")
    """
    if env_file is not None:
        env_path = Path(env_file)
        if not env_path.exists():
            raise ConfigurationError(f"Environment file not found: {env_path}")
        load_dotenv(env_path, override=False)
        logger.debug("Loaded environment file %s", env_path)

    programmatic = {k: v for k, v in (overrides or {}).items() if v is not None}
    try:
        return ServerSettings(**programmatic)
    except PydanticValidationError as e:
        raise ConfigurationError(f"Invalid configuration: {e}") from e


def require_api_key(settings: ServerSettings) -> str:
    """Return the API key or fail with the message operators expect."""
    if not settings.api_key:
        raise ConfigurationError(
            "GEMINI_API_KEY environment variable is required. "
            "Set it in the environment, a .env file, or pass it programmatically."
        )
    return settings.api_key
