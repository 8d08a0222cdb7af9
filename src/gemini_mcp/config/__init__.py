"""Configuration management for the Gemini MCP server.

Settings are resolved once at startup and passed explicitly to the server
components that need them:

- ServerSettings: Pydantic schema with GEMINI_* environment binding
- resolve_settings: .env loading plus programmatic overrides
"""

from .api import require_api_key, resolve_settings
from .schema import ServerSettings

__all__ = ["ServerSettings", "require_api_key", "resolve_settings"]
