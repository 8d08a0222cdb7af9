"""Core data types that flow through the request pipeline.

This module defines the immutable data structures that represent a tool call
as it moves from the protocol boundary through file gathering, uploads,
caching and generation. Provider SDK shapes never appear here; the adapter
layer converts to and from these neutral types.
"""

from __future__ import annotations

import dataclasses
from datetime import UTC, datetime
import typing

# --- Minimal guard helpers (clarity > boilerplate) ---


def _require(
    *,
    condition: bool,
    message: str,
    exc: type[Exception] = ValueError,
    field_name: str | None = None,
) -> None:
    """Centralized validation with optional field context for clearer errors."""
    if not condition:
        if field_name:
            raise exc(f"{field_name}: {message}")
        raise exc(message)


def utc_now() -> datetime:
    """Timezone-aware current time; all timestamps in this package are UTC."""
    return datetime.now(UTC)


# --- Result Monad for Robust Error Handling ---

TSuccess = typing.TypeVar("TSuccess")
TFailure = typing.TypeVar("TFailure", bound=Exception)


@dataclasses.dataclass(frozen=True, slots=True)
class Success[TSuccess]:
    """A successful result in the pipeline."""

    value: TSuccess


@dataclasses.dataclass(frozen=True, slots=True)
class Failure[TFailure]:
    """A failure in the pipeline, containing the error."""

    error: TFailure


Result = Success[TSuccess] | Failure[TFailure]

# --- File Data ---


@dataclasses.dataclass(frozen=True, slots=True)
class FileUnit:
    """A file normalized by a provider, consumed once by the upload registry."""

    name: str
    mime_type: str
    content: bytes

    @property
    def size(self) -> int:
        """Size of the raw content in bytes."""
        return len(self.content)


@dataclasses.dataclass(frozen=True, slots=True)
class FileHandle:
    """An uploaded file as known to the upstream Files API."""

    id: str
    name: str
    uri: str
    display_name: str
    mime_type: str
    size_bytes: int
    uploaded_at: datetime
    expires_at: datetime

    def __post_init__(self) -> None:
        """Reject handles that cannot be referenced from a request."""
        _require(condition=bool(self.id), message="must not be empty", field_name="id")
        _require(
            condition=bool(self.uri), message="must not be empty", field_name="uri"
        )


# --- Cache Data ---


@dataclasses.dataclass(frozen=True, slots=True)
class CacheRequest:
    """Parameters for building a server-side context cache."""

    model: str
    system_prompt: str | None = None
    file_ids: tuple[str, ...] = ()
    content: str | None = None
    ttl: str | None = None
    display_name: str | None = None


@dataclasses.dataclass(frozen=True, slots=True)
class CacheEntry:
    """A context cache bound to the exact model it was created with."""

    id: str
    name: str
    display_name: str
    model: str
    created_at: datetime
    expires_at: datetime
    file_ids: tuple[str, ...] = ()

    def is_expired(self, now: datetime | None = None) -> bool:
        """Return True once the computed expiry has passed."""
        return (now or utc_now()) >= self.expires_at


# --- Generation Parts ---


@dataclasses.dataclass(frozen=True, slots=True)
class TextPart:
    """A text part of a generation request."""

    text: str


@dataclasses.dataclass(frozen=True, slots=True)
class FileRefPart:
    """A reference to an uploaded file by URI."""

    uri: str
    mime_type: str | None = None


APIPart = TextPart | FileRefPart


@dataclasses.dataclass(frozen=True, slots=True)
class GenerationResponse:
    """Provider-neutral view of a single-shot generation response."""

    text: str
    candidate_count: int
    model: str | None = None
    usage: typing.Mapping[str, int] = dataclasses.field(default_factory=dict)


@dataclasses.dataclass(frozen=True, slots=True)
class SearchSource:
    """A grounding citation returned by a search-backed generation."""

    title: str
    url: str
    type: typing.Literal["web", "retrieved_context"]


@dataclasses.dataclass(frozen=True, slots=True)
class StreamChunk:
    """One incremental piece of a streamed generation response."""

    text: str = ""
    search_queries: tuple[str, ...] = ()
    sources: tuple[SearchSource, ...] = ()


@dataclasses.dataclass(frozen=True, slots=True)
class SearchResult:
    """Folded result of a streamed search response."""

    answer: str
    sources: tuple[SearchSource, ...]
    search_queries: tuple[str, ...]

    def to_dict(self) -> dict[str, typing.Any]:
        """JSON-ready mapping with the wire field names."""
        return {
            "answer": self.answer,
            "sources": [dataclasses.asdict(s) for s in self.sources],
            "search_queries": list(self.search_queries),
        }


# --- Tool Requests ---

ThinkingLevel = typing.Literal["none", "low", "medium", "high"]


@dataclasses.dataclass(frozen=True, slots=True)
class ThinkingOptions:
    """Per-request reasoning controls; None means use the configured default."""

    enabled: bool | None = None
    budget: int | None = None
    level: str | None = None


@dataclasses.dataclass(frozen=True, slots=True)
class AskRequest:
    """Typed arguments of the ``ask`` tool."""

    query: str
    model: str | None = None
    system_prompt: str | None = None
    file_paths: tuple[str, ...] = ()
    github_repo: str | None = None
    github_ref: str | None = None
    github_files: tuple[str, ...] = ()
    use_cache: bool = False
    cache_ttl: str | None = None
    thinking: ThinkingOptions = dataclasses.field(default_factory=ThinkingOptions)
    max_tokens: int | None = None


@dataclasses.dataclass(frozen=True, slots=True)
class SearchRequest:
    """Typed arguments of the ``search`` tool."""

    query: str
    model: str | None = None
    system_prompt: str | None = None
    thinking: ThinkingOptions = dataclasses.field(default_factory=ThinkingOptions)
    max_tokens: int | None = None
    start_time: str | None = None
    end_time: str | None = None


# --- Tool Result Envelope ---


@dataclasses.dataclass(frozen=True, slots=True)
class ToolResult:
    """Protocol-neutral tool outcome: text plus an error flag."""

    text: str
    is_error: bool = False

    @classmethod
    def error(cls, message: str) -> ToolResult:
        """Build an error-flagged result."""
        return cls(text=message, is_error=True)
