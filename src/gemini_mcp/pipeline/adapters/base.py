"""Provider adapter protocols and the neutral records they exchange.

Handlers and registries depend only on these protocols. The concrete Google
GenAI adapter lives in ``gemini_mcp.pipeline.adapters.gemini``; tests inject
small fakes that record calls.
"""

from __future__ import annotations

from collections.abc import AsyncIterator, Mapping
from dataclasses import dataclass
from datetime import datetime
from typing import Protocol, runtime_checkable

from gemini_mcp.core.types import APIPart, FileUnit, GenerationResponse, StreamChunk


@dataclass(frozen=True, slots=True)
class UpstreamFile:
    """A file resource as reported by the provider."""

    name: str
    uri: str | None
    display_name: str | None = None
    mime_type: str | None = None
    size_bytes: int | None = None
    create_time: datetime | None = None
    expiration_time: datetime | None = None


@dataclass(frozen=True, slots=True)
class UpstreamCache:
    """A cached-content resource as reported by the provider."""

    name: str
    model: str | None = None
    display_name: str | None = None
    create_time: datetime | None = None
    expire_time: datetime | None = None


@runtime_checkable
class GenerationAdapter(Protocol):
    """Single-shot content generation."""

    async def generate(
        self,
        *,
        model_name: str,
        api_parts: tuple[APIPart, ...],
        api_config: Mapping[str, object],
    ) -> GenerationResponse:
        """Generate a response for the given parts and neutral config."""
        ...


@runtime_checkable
class StreamingCapability(Protocol):
    """Streaming generation; each chunk carries text and grounding data."""

    def generate_stream(
        self,
        *,
        model_name: str,
        api_parts: tuple[APIPart, ...],
        api_config: Mapping[str, object],
    ) -> AsyncIterator[StreamChunk]:
        """Yield chunks until the provider closes the stream."""
        ...


@runtime_checkable
class FilesCapability(Protocol):
    """Upstream Files API."""

    async def upload_file(self, unit: FileUnit) -> UpstreamFile: ...  # noqa: D102
    async def get_file(self, name: str) -> UpstreamFile: ...  # noqa: D102
    async def delete_file(self, name: str) -> None: ...  # noqa: D102
    async def list_files(self) -> list[UpstreamFile]: ...  # noqa: D102


@runtime_checkable
class CachesCapability(Protocol):
    """Upstream context-cache API."""

    async def create_cache(  # noqa: D102
        self,
        *,
        model_name: str,
        content_parts: tuple[APIPart, ...],
        system_instruction: str | None,
        ttl_seconds: int,
        display_name: str | None = None,
    ) -> UpstreamCache: ...
    async def get_cache(self, name: str) -> UpstreamCache: ...  # noqa: D102
    async def delete_cache(self, name: str) -> None: ...  # noqa: D102
    async def list_caches(self) -> list[UpstreamCache]: ...  # noqa: D102


class ProviderAdapter(
    GenerationAdapter,
    StreamingCapability,
    FilesCapability,
    CachesCapability,
    Protocol,
):
    """Everything the server needs from a provider."""

