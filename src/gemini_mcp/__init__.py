"""Gemini MCP bridge: ask, search and model listing over the Model Context Protocol."""

import importlib.metadata
import logging

from gemini_mcp.config import ServerSettings, resolve_settings
from gemini_mcp.core.types import (
    AskRequest,
    CacheEntry,
    CacheRequest,
    Failure,
    FileHandle,
    FileUnit,
    Result,
    SearchRequest,
    SearchResult,
    SearchSource,
    Success,
    ToolResult,
)
from gemini_mcp.exceptions import (
    APIError,
    CacheError,
    ConfigurationError,
    FileError,
    GeminiMCPError,
    SourceError,
    UnsupportedModelError,
    ValidationError,
)
from gemini_mcp.server import build_server
from gemini_mcp.telemetry import TelemetryContext, TelemetryReporter

# Version handling
try:
    __version__ = importlib.metadata.version("gemini-mcp")
except importlib.metadata.PackageNotFoundError:
    __version__ = "development"

# Set up a null handler for the library's root logger.
# This prevents 'No handler found' errors if the consuming app has no logging configured.
logging.getLogger(__name__).addHandler(logging.NullHandler())

# Public API
__all__ = [  # noqa: RUF022
    # Server assembly
    "build_server",
    # Configuration
    "ServerSettings",
    "resolve_settings",
    # Telemetry (extension points)
    "TelemetryContext",
    "TelemetryReporter",
    # Data types
    "AskRequest",
    "SearchRequest",
    "SearchResult",
    "SearchSource",
    "FileUnit",
    "FileHandle",
    "CacheRequest",
    "CacheEntry",
    "ToolResult",
    "Result",
    "Success",
    "Failure",
    # Exceptions
    "GeminiMCPError",
    "APIError",
    "CacheError",
    "ConfigurationError",
    "FileError",
    "SourceError",
    "UnsupportedModelError",
    "ValidationError",
]
