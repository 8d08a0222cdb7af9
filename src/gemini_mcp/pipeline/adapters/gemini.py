"""Google GenAI implementation of the provider adapter protocols.

This is the only module that imports the ``google-genai`` SDK. It converts
neutral parts and config mappings into SDK types on the way out, and SDK
responses into neutral records on the way back.
"""

from __future__ import annotations

from collections.abc import AsyncIterator, Iterator, Mapping
from contextlib import contextmanager
from datetime import datetime
import io
import logging
from typing import Any

from google import genai
from google.genai import errors as genai_errors
from google.genai import types
import httpx

from gemini_mcp.core.types import (
    APIPart,
    FileRefPart,
    FileUnit,
    GenerationResponse,
    SearchSource,
    StreamChunk,
    TextPart,
)
from gemini_mcp.exceptions import APIError

from .base import UpstreamCache, UpstreamFile

logger = logging.getLogger(__name__)


@contextmanager
def _translate_errors(operation: str) -> Iterator[None]:
    """Re-raise SDK errors as APIError with the operation named."""
    try:
        yield
    except genai_errors.APIError as e:
        raise APIError(f"{operation} failed: {e}") from e
    except (httpx.HTTPError, OSError) as e:
        # Timeouts and connection failures raised beneath the SDK
        raise APIError(f"{operation} failed: {type(e).__name__}: {e}") from e


class GoogleGenAIAdapter:
    """Adapter over ``genai.Client().aio``."""

    def __init__(self, api_key: str, *, timeout: float | None = None) -> None:
        """Create the SDK client; ``timeout`` is in seconds."""
        http_options = (
            types.HttpOptions(timeout=int(timeout * 1000)) if timeout else None
        )
        self._client = genai.Client(api_key=api_key, http_options=http_options)

    # --- Generation ---

    async def generate(
        self,
        *,
        model_name: str,
        api_parts: tuple[APIPart, ...],
        api_config: Mapping[str, object],
    ) -> GenerationResponse:
        """Single-shot generation."""
        with _translate_errors("generate_content"):
            response = await self._client.aio.models.generate_content(
                model=model_name,
                contents=_to_contents(api_parts),
                config=_to_generate_config(api_config),
            )
        candidates = response.candidates or []
        return GenerationResponse(
            text=_candidate_text(response),
            candidate_count=len(candidates),
            model=getattr(response, "model_version", None),
            usage=_usage(response.usage_metadata),
        )

    async def generate_stream(
        self,
        *,
        model_name: str,
        api_parts: tuple[APIPart, ...],
        api_config: Mapping[str, object],
    ) -> AsyncIterator[StreamChunk]:
        """Streaming generation yielding neutral chunks."""
        with _translate_errors("generate_content_stream"):
            stream = await self._client.aio.models.generate_content_stream(
                model=model_name,
                contents=_to_contents(api_parts),
                config=_to_generate_config(api_config),
            )
            async for response in stream:
                yield _to_chunk(response)

    # --- Files ---

    async def upload_file(self, unit: FileUnit) -> UpstreamFile:
        """Upload raw bytes through the Files API."""
        with _translate_errors(f"upload of {unit.name}"):
            uploaded = await self._client.aio.files.upload(
                file=io.BytesIO(unit.content),
                config=types.UploadFileConfig(
                    mime_type=unit.mime_type, display_name=unit.name
                ),
            )
        return _to_upstream_file(uploaded)

    async def get_file(self, name: str) -> UpstreamFile:
        """Look up one file by resource name."""
        with _translate_errors(f"get file {name}"):
            return _to_upstream_file(await self._client.aio.files.get(name=name))

    async def delete_file(self, name: str) -> None:
        """Delete one file by resource name."""
        with _translate_errors(f"delete file {name}"):
            await self._client.aio.files.delete(name=name)

    async def list_files(self) -> list[UpstreamFile]:
        """Enumerate every file visible to the API key."""
        with _translate_errors("list files"):
            pager = await self._client.aio.files.list()
            return [_to_upstream_file(f) async for f in pager]

    # --- Caches ---

    async def create_cache(
        self,
        *,
        model_name: str,
        content_parts: tuple[APIPart, ...],
        system_instruction: str | None,
        ttl_seconds: int,
        display_name: str | None = None,
    ) -> UpstreamCache:
        """Create cached content bound to ``model_name``."""
        config = types.CreateCachedContentConfig(
            contents=_to_contents(content_parts) if content_parts else None,
            system_instruction=system_instruction or None,
            ttl=f"{ttl_seconds}s",
            display_name=display_name,
        )
        with _translate_errors(f"create cache for {model_name}"):
            cached = await self._client.aio.caches.create(
                model=model_name, config=config
            )
        return _to_upstream_cache(cached)

    async def get_cache(self, name: str) -> UpstreamCache:
        """Look up one cache by resource name."""
        with _translate_errors(f"get cache {name}"):
            return _to_upstream_cache(await self._client.aio.caches.get(name=name))

    async def delete_cache(self, name: str) -> None:
        """Delete one cache by resource name."""
        with _translate_errors(f"delete cache {name}"):
            await self._client.aio.caches.delete(name=name)

    async def list_caches(self) -> list[UpstreamCache]:
        """Enumerate every cache visible to the API key."""
        with _translate_errors("list caches"):
            pager = await self._client.aio.caches.list()
            return [_to_upstream_cache(c) async for c in pager]


# --- Conversions ---


def _to_parts(api_parts: tuple[APIPart, ...]) -> list[types.Part]:
    parts: list[types.Part] = []
    for part in api_parts:
        if isinstance(part, TextPart):
            parts.append(types.Part.from_text(text=part.text))
        elif isinstance(part, FileRefPart):
            parts.append(
                types.Part.from_uri(file_uri=part.uri, mime_type=part.mime_type)
            )
        else:  # pragma: no cover - APIPart is a closed union
            raise APIError(f"Unsupported part type: {type(part).__name__}")
    return parts


def _to_contents(api_parts: tuple[APIPart, ...]) -> list[types.Content]:
    return [types.Content(role="user", parts=_to_parts(api_parts))]


def _to_generate_config(api_config: Mapping[str, object]) -> types.GenerateContentConfig:
    """Map the neutral config mapping onto GenerateContentConfig."""
    kwargs: dict[str, Any] = {}
    for key in ("system_instruction", "temperature", "max_output_tokens", "cached_content"):
        value = api_config.get(key)
        if value is not None:
            kwargs[key] = value

    budget = api_config.get("thinking_budget")
    if isinstance(budget, int) and budget > 0:
        kwargs["thinking_config"] = types.ThinkingConfig(
            include_thoughts=True, thinking_budget=budget
        )

    if api_config.get("google_search"):
        search = types.GoogleSearch()
        time_range = api_config.get("time_range")
        if isinstance(time_range, tuple) and len(time_range) == 2:
            start, end = time_range
            search = types.GoogleSearch(
                time_range_filter=types.Interval(start_time=start, end_time=end)
            )
        kwargs["tools"] = [types.Tool(google_search=search)]

    return types.GenerateContentConfig(**kwargs)


def _candidate_text(response: types.GenerateContentResponse) -> str:
    """Concatenate answer text from the first candidate, skipping thoughts."""
    candidates = response.candidates or []
    if not candidates or candidates[0].content is None:
        return ""
    chunks = [
        part.text
        for part in candidates[0].content.parts or []
        if part.text and not part.thought
    ]
    return "".join(chunks)


def _to_chunk(response: types.GenerateContentResponse) -> StreamChunk:
    queries: tuple[str, ...] = ()
    sources: list[SearchSource] = []
    candidates = response.candidates or []
    metadata = candidates[0].grounding_metadata if candidates else None
    if metadata is not None:
        queries = tuple(q for q in metadata.web_search_queries or () if q)
        for chunk in metadata.grounding_chunks or ():
            if chunk.web is not None and chunk.web.uri:
                sources.append(
                    SearchSource(
                        title=chunk.web.title or "", url=chunk.web.uri, type="web"
                    )
                )
            elif chunk.retrieved_context is not None and chunk.retrieved_context.uri:
                sources.append(
                    SearchSource(
                        title=chunk.retrieved_context.title or "",
                        url=chunk.retrieved_context.uri,
                        type="retrieved_context",
                    )
                )
    return StreamChunk(
        text=_candidate_text(response), search_queries=queries, sources=tuple(sources)
    )


def _usage(usage: Any) -> dict[str, int]:
    if usage is None:
        return {}
    counters = ("prompt_token_count", "candidates_token_count", "total_token_count")
    return {
        name: value
        for name in counters
        if isinstance(value := getattr(usage, name, None), int)
    }


def _to_upstream_file(file: types.File) -> UpstreamFile:
    return UpstreamFile(
        name=file.name or "",
        uri=file.uri,
        display_name=file.display_name,
        mime_type=file.mime_type,
        size_bytes=file.size_bytes,
        create_time=_as_datetime(file.create_time),
        expiration_time=_as_datetime(file.expiration_time),
    )


def _to_upstream_cache(cached: types.CachedContent) -> UpstreamCache:
    return UpstreamCache(
        name=cached.name or "",
        model=cached.model,
        display_name=cached.display_name,
        create_time=_as_datetime(cached.create_time),
        expire_time=_as_datetime(cached.expire_time),
    )


def _as_datetime(value: object) -> datetime | None:
    return value if isinstance(value, datetime) else None
