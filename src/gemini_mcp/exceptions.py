"""Basic exceptions for the Gemini MCP server"""  # noqa: D415


class GeminiMCPError(Exception):
    """Base exception for Gemini MCP server errors"""  # noqa: D415


class ValidationError(GeminiMCPError):
    """Raised when input validation fails"""  # noqa: D415


class UnsupportedModelError(ValidationError):
    """Raised when a model identifier is neither known nor a preview build"""  # noqa: D415


class ConfigurationError(GeminiMCPError):
    """Raised when required configuration is missing or invalid"""  # noqa: D415


class FileError(GeminiMCPError):
    """Raised when file operations fail"""  # noqa: D415


class CacheError(GeminiMCPError):
    """Raised when context cache operations fail"""  # noqa: D415


class APIError(GeminiMCPError):
    """Raised when the Gemini API call fails"""  # noqa: D415


class SourceError(GeminiMCPError):
    """Raised when a remote file source cannot be fetched.

    Carries the requested path and, when one was received, the HTTP status so
    callers can report per-file causes.
    """

    def __init__(
        self, message: str, *, path: str | None = None, status: int | None = None
    ) -> None:
        """Store the failing path and optional HTTP status with the message."""
        super().__init__(message)
        self.path = path
        self.status = status
