"""Configuration schema and validation using Pydantic.

This module defines the settings schema that validates and coerces configuration
values from the environment, an optional .env file and programmatic overrides
into the correct types with proper defaults.
"""

from typing import Annotated, Any, Literal

from pydantic import AliasChoices, Field, field_validator, model_validator
from pydantic_settings import BaseSettings, NoDecode, SettingsConfigDict

from gemini_mcp import constants
from gemini_mcp.core.durations import parse_duration


class ServerSettings(BaseSettings):
    """Pydantic settings schema for the Gemini MCP server.

    This handles validation, type coercion, and default values for all
    configuration fields. It integrates with environment variables using
    the GEMINI_ prefix.
    """

    model_config = SettingsConfigDict(
        env_prefix="GEMINI_",
        env_file=None,  # Only used when explicitly requested
        env_file_encoding="utf-8",
        case_sensitive=False,
        extra="ignore",  # Ignore unknown env vars for forward compatibility
        populate_by_name=True,
    )

    # --- Gemini API ---

    api_key: str | None = Field(
        default=None,
        description="Google Gemini API key",
        # Required only when the server is built; see build_server
    )

    model: str = Field(
        default=constants.DEFAULT_MODEL,
        description="Default model for the ask tool",
        min_length=1,
    )

    search_model: str = Field(
        default=constants.DEFAULT_SEARCH_MODEL,
        description="Default model for the search tool",
        min_length=1,
    )

    system_prompt: str = Field(
        default=constants.DEFAULT_SYSTEM_PROMPT,
        description="System prompt for ask when the request has none",
    )

    search_system_prompt: str = Field(
        default=constants.DEFAULT_SEARCH_SYSTEM_PROMPT,
        description="System prompt for search when the request has none",
    )

    temperature: float = Field(
        default=constants.DEFAULT_TEMPERATURE,
        description="Sampling temperature",
        ge=0.0,
        le=1.0,
    )

    # --- Network ---

    timeout: float = Field(
        default=constants.NETWORK_TIMEOUT,
        description="Timeout for outbound HTTP calls in seconds",
        gt=0,
    )

    max_retries: int = Field(default=constants.MAX_RETRIES, ge=0)
    initial_backoff: float = Field(default=constants.RETRY_BASE_DELAY, gt=0)
    max_backoff: float = Field(default=constants.RETRY_MAX_DELAY, gt=0)

    # --- Files ---

    max_file_size: int = Field(
        default=constants.MAX_FILE_SIZE,
        description="Maximum size in bytes for local reads and uploads",
        gt=0,
    )

    allowed_file_types: Annotated[list[str], NoDecode] = Field(
        default_factory=lambda: list(constants.DEFAULT_ALLOWED_FILE_TYPES),
        description="MIME types accepted by the upload registry",
    )

    file_read_base_dir: str | None = Field(
        default=None,
        description="Directory local file_paths are sandboxed to; unset disables them",
    )

    # --- Caching ---

    enable_caching: bool = Field(
        default=True,
        description="Whether to enable context caching",
    )

    default_cache_ttl: str = Field(
        default=constants.DEFAULT_CACHE_TTL,
        description="TTL applied when a cache request omits one",
    )

    # --- Thinking ---

    enable_thinking: bool = Field(default=True)
    thinking_budget_level: str = Field(default=constants.DEFAULT_THINKING_LEVEL)
    thinking_budget: int | None = Field(
        default=None,
        description="Explicit token budget; derived from the level when unset",
        ge=0,
        le=constants.MAX_THINKING_BUDGET,
    )

    # --- GitHub ---

    github_token: str | None = Field(
        default=None,
        validation_alias=AliasChoices("GEMINI_GITHUB_TOKEN", "GITHUB_TOKEN"),
    )
    github_api_base_url: str = Field(default=constants.GITHUB_API_BASE_URL)
    max_github_files: int = Field(default=constants.MAX_GITHUB_FILES, gt=0)
    max_github_file_size: int = Field(default=constants.MAX_GITHUB_FILE_SIZE, gt=0)
    github_rate_limit_max_wait: float = Field(
        default=constants.GITHUB_RATE_LIMIT_MAX_WAIT, ge=0
    )

    # --- Transport & logging ---

    transport: Literal["stdio", "http"] = Field(default="stdio")
    http_host: str = Field(default=constants.DEFAULT_HTTP_HOST)
    http_port: int = Field(default=constants.DEFAULT_HTTP_PORT, gt=0, lt=65536)
    log_level: str = Field(default="INFO")

    # --- Validation Rules ---

    @field_validator("allowed_file_types", mode="before")
    @classmethod
    def parse_allowed_file_types(cls, v: Any) -> Any:
        """Accept a comma-separated string as well as a list."""
        if isinstance(v, str):
            return [item.strip() for item in v.split(",") if item.strip()]
        return v

    @field_validator("thinking_budget_level", mode="before")
    @classmethod
    def parse_thinking_level(cls, v: Any) -> str:
        """Normalize the level; unknown levels are rejected."""
        level = str(v).strip().lower()
        if level not in constants.THINKING_BUDGET_LEVELS:
            raise ValueError(
                f"Invalid thinking_budget_level: {v}. "
                "Must be one of: none, low, medium, high"
            )
        return level

    @field_validator("default_cache_ttl")
    @classmethod
    def check_cache_ttl(cls, v: str) -> str:
        """The default TTL must parse as a positive duration."""
        parse_duration(v)
        return v

    @field_validator("transport", mode="before")
    @classmethod
    def parse_transport(cls, v: Any) -> Any:
        """Case-insensitive transport names."""
        return v.strip().lower() if isinstance(v, str) else v

    @model_validator(mode="after")
    def derive_thinking_budget(self) -> "ServerSettings":
        """Fill the explicit budget from the level when it was not given."""
        if self.thinking_budget is None:
            self.thinking_budget = constants.THINKING_BUDGET_LEVELS[
                self.thinking_budget_level
            ]
        if self.max_backoff < self.initial_backoff:
            raise ValueError("max_backoff must be >= initial_backoff")
        return self

    @property
    def default_cache_ttl_seconds(self) -> float:
        """Default TTL as seconds."""
        return parse_duration(self.default_cache_ttl).total_seconds()

    def __repr__(self) -> str:
        """Repr with redacted secrets for safe logging."""
        api_key_display = "[REDACTED]" if self.api_key else None
        token_display = "[REDACTED]" if self.github_token else None
        return (
            f"ServerSettings(api_key={api_key_display!r}, model={self.model!r}, "
            f"search_model={self.search_model!r}, transport={self.transport!r}, "
            f"enable_caching={self.enable_caching!r}, "
            f"enable_thinking={self.enable_thinking!r}, "
            f"github_token={token_display!r})"
        )

    __str__ = __repr__
