"""In-memory registries for uploaded files and context caches.

The upstream API is the source of truth; these registries only keep a local
directory of handles so repeated lookups skip a network round-trip. Both are
built on one generic read-through store:

- ``get`` checks the local map under a read lock, falls back to an upstream
  fetch on a miss, and populates the map with the result.
- ``list`` is a full resync that replaces the local map.
- Locks are taken only around map access, never across a network call.

Registries are explicit objects owned by the server and injected into the
handlers; they are process-local and ephemeral.
"""

from __future__ import annotations

import asyncio
from collections.abc import AsyncIterator, Awaitable, Callable, Iterable, Mapping
from contextlib import asynccontextmanager
from datetime import datetime, timedelta
import logging
import math

from gemini_mcp import constants
from gemini_mcp.core.durations import parse_duration
from gemini_mcp.core.models import ModelCatalog
from gemini_mcp.core.types import (
    APIPart,
    CacheEntry,
    CacheRequest,
    FileHandle,
    FileRefPart,
    FileUnit,
    TextPart,
    utc_now,
)
from gemini_mcp.exceptions import (
    APIError,
    CacheError,
    FileError,
    GeminiMCPError,
    UnsupportedModelError,
)
from gemini_mcp.telemetry import TelemetryContext, TelemetryContextProtocol

from .adapters.base import (
    CachesCapability,
    FilesCapability,
    UpstreamCache,
    UpstreamFile,
)

logger = logging.getLogger(__name__)


class AsyncRWLock:
    """Reader/writer lock for coroutines.

    Readers share the lock; a writer waits for active readers to drain and
    blocks new readers while it is queued.
    """

    def __init__(self) -> None:
        """Create an unlocked lock."""
        self._cond = asyncio.Condition()
        self._readers = 0
        self._writer = False
        self._writers_waiting = 0

    @asynccontextmanager
    async def read(self) -> AsyncIterator[None]:
        """Hold the lock in shared mode."""
        async with self._cond:
            await self._cond.wait_for(
                lambda: not self._writer and self._writers_waiting == 0
            )
            self._readers += 1
        try:
            yield
        finally:
            async with self._cond:
                self._readers -= 1
                if self._readers == 0:
                    self._cond.notify_all()

    @asynccontextmanager
    async def write(self) -> AsyncIterator[None]:
        """Hold the lock exclusively."""
        async with self._cond:
            self._writers_waiting += 1
            try:
                await self._cond.wait_for(
                    lambda: not self._writer and self._readers == 0
                )
            finally:
                self._writers_waiting -= 1
                # Readers blocked behind a cancelled writer must re-check
                self._cond.notify_all()
            self._writer = True
        try:
            yield
        finally:
            async with self._cond:
                self._writer = False
                self._cond.notify_all()


class ExpiredEntryError(LookupError):
    """Raised by the read-through store when an entry is no longer live."""


class ReadThroughRegistry[T]:
    """Generic read-through map: ``{lock, dict[id, T], fetch(id) -> T}``."""

    def __init__(
        self,
        fetch: Callable[[str], Awaitable[T]],
        *,
        is_live: Callable[[T], bool] | None = None,
    ) -> None:
        """Wrap an upstream fetch coroutine and an optional liveness check."""
        self._fetch = fetch
        self._is_live = is_live or (lambda _value: True)
        self._entries: dict[str, T] = {}
        self._lock = AsyncRWLock()

    async def get(self, key: str) -> T:
        """Return the local entry, fetching and storing it on a miss.

        Raises:
            ExpiredEntryError: If the entry (local or fetched) is not live.
            Exception: Whatever the upstream fetch raises on failure.
        """
        async with self._lock.read():
            value = self._entries.get(key)
        if value is not None:
            if self._is_live(value):
                return value
            await self.evict(key)
            raise ExpiredEntryError(key)

        value = await self._fetch(key)
        if not self._is_live(value):
            raise ExpiredEntryError(key)
        async with self._lock.write():
            self._entries[key] = value
        return value

    async def peek(self, key: str) -> T | None:
        """Local lookup only; never touches upstream."""
        async with self._lock.read():
            return self._entries.get(key)

    async def put(self, key: str, value: T) -> None:
        """Store or overwrite an entry."""
        async with self._lock.write():
            self._entries[key] = value

    async def evict(self, key: str) -> T | None:
        """Remove an entry locally, returning it if it was present."""
        async with self._lock.write():
            return self._entries.pop(key, None)

    async def replace_all(self, items: Mapping[str, T]) -> None:
        """Swap the whole local map for a freshly listed one."""
        fresh = dict(items)
        async with self._lock.write():
            self._entries = fresh

    async def snapshot(self) -> dict[str, T]:
        """Copy of the local map."""
        async with self._lock.read():
            return dict(self._entries)


def _strip_prefix(value: str, prefix: str) -> str:
    return value.removeprefix(prefix)


class FileRegistry:
    """Upload/File registry: validates and uploads FileUnits, tracks handles."""

    def __init__(
        self,
        adapter: FilesCapability,
        *,
        max_file_size: int = constants.MAX_FILE_SIZE,
        allowed_mime_types: Iterable[str] = constants.DEFAULT_ALLOWED_FILE_TYPES,
        clock: Callable[[], datetime] = utc_now,
        telemetry: TelemetryContextProtocol | None = None,
    ) -> None:
        """Bind to an upstream Files API and the upload limits."""
        self._adapter = adapter
        self.max_file_size = max_file_size
        self.allowed_mime_types = frozenset(allowed_mime_types)
        self._clock = clock
        self._telemetry = telemetry or TelemetryContext()
        self._store: ReadThroughRegistry[FileHandle] = ReadThroughRegistry(
            self._fetch_upstream
        )

    async def upload(self, unit: FileUnit) -> FileHandle:
        """Validate and upload one file, then record its handle.

        Raises:
            FileError: On validation failure or upstream upload failure.
        """
        self._validate(unit)
        with self._telemetry("files.upload", bytes=unit.size):
            try:
                uploaded = await self._adapter.upload_file(unit)
            except APIError as e:
                raise FileError(f"failed to upload file {unit.name}: {e}") from e

        handle = self._to_handle(
            uploaded,
            fallback_name=unit.name,
            fallback_mime=unit.mime_type,
            fallback_size=unit.size,
        )
        if await self._store.peek(handle.id) is not None:
            raise FileError(f"upstream returned an id already in use: {handle.id}")
        await self._store.put(handle.id, handle)
        logger.info("Uploaded %s as %s (%d bytes)", unit.name, handle.id, handle.size_bytes)
        return handle

    async def get(self, file_id: str) -> FileHandle:
        """Read-through lookup by id (``files/`` prefix optional)."""
        key = _strip_prefix(file_id, constants.FILE_NAME_PREFIX)
        try:
            return await self._store.get(key)
        except ExpiredEntryError as e:
            raise FileError(f"file {key} has expired") from e

    async def delete(self, file_id: str) -> None:
        """Delete upstream, then evict locally."""
        key = _strip_prefix(file_id, constants.FILE_NAME_PREFIX)
        try:
            await self._adapter.delete_file(constants.FILE_NAME_PREFIX + key)
        except APIError as e:
            raise FileError(f"failed to delete file {key}: {e}") from e
        await self._store.evict(key)
        logger.info("Deleted file %s", key)

    async def list(self) -> list[FileHandle]:
        """Full resync against upstream."""
        try:
            upstream = await self._adapter.list_files()
        except APIError as e:
            raise FileError(f"failed to list files: {e}") from e
        handles: dict[str, FileHandle] = {}
        for item in upstream:
            try:
                handle = self._to_handle(item)
            except FileError as e:
                logger.warning("Skipping unusable upstream file %s: %s", item.name, e)
                continue
            handles[handle.id] = handle
        await self._store.replace_all(handles)
        return list(handles.values())

    # --- Internal helpers ---

    def _validate(self, unit: FileUnit) -> None:
        if not unit.name:
            raise FileError("filename is required")
        if not unit.mime_type:
            raise FileError("mime type is required")
        if not unit.content:
            raise FileError("content is required")
        if unit.size > self.max_file_size:
            raise FileError(
                f"file size exceeds maximum allowed ({self.max_file_size} bytes)"
            )
        if unit.mime_type not in self.allowed_mime_types:
            raise FileError(f"mime type {unit.mime_type} is not allowed")

    async def _fetch_upstream(self, key: str) -> FileHandle:
        try:
            uploaded = await self._adapter.get_file(constants.FILE_NAME_PREFIX + key)
        except APIError as e:
            raise FileError(f"failed to get file {key}: {e}") from e
        return self._to_handle(uploaded)

    def _to_handle(
        self,
        uploaded: UpstreamFile,
        *,
        fallback_name: str = "",
        fallback_mime: str = "",
        fallback_size: int = 0,
    ) -> FileHandle:
        if not uploaded.uri:
            raise FileError(f"uploaded file {uploaded.name} has no URI")
        uploaded_at = uploaded.create_time or self._clock()
        expires_at = uploaded.expiration_time or uploaded_at + timedelta(
            seconds=constants.FILE_LIFETIME
        )
        try:
            return FileHandle(
                id=_strip_prefix(uploaded.name, constants.FILE_NAME_PREFIX),
                name=uploaded.name,
                uri=uploaded.uri,
                display_name=uploaded.display_name or fallback_name,
                mime_type=uploaded.mime_type or fallback_mime,
                size_bytes=uploaded.size_bytes or fallback_size,
                uploaded_at=uploaded_at,
                expires_at=expires_at,
            )
        except ValueError as e:
            raise FileError(f"unusable upstream file {uploaded.name!r}: {e}") from e


class CacheRegistry:
    """Cache registry: builds upstream context caches and tracks entries."""

    def __init__(
        self,
        adapter: CachesCapability,
        files: FileRegistry,
        catalog: ModelCatalog,
        *,
        enabled: bool = True,
        default_ttl: str = constants.DEFAULT_CACHE_TTL,
        clock: Callable[[], datetime] = utc_now,
        telemetry: TelemetryContextProtocol | None = None,
    ) -> None:
        """Bind to an upstream cache API, the file registry and model catalog."""
        self._adapter = adapter
        self._files = files
        self._catalog = catalog
        self.enabled = enabled
        self.default_ttl = default_ttl
        self._clock = clock
        self._telemetry = telemetry or TelemetryContext()
        self._store: ReadThroughRegistry[CacheEntry] = ReadThroughRegistry(
            self._fetch_upstream,
            is_live=lambda entry: not entry.is_expired(self._clock()),
        )

    async def create(self, request: CacheRequest) -> CacheEntry:
        """Create a cache from a request.

        Validation order: enabled flag, model present, model valid, TTL
        parseable. Every referenced file must resolve or creation aborts.

        Raises:
            CacheError: For any validation or upstream failure.
        """
        if not self.enabled:
            raise CacheError("caching is disabled")
        if not request.model:
            raise CacheError("model is required")
        try:
            self._catalog.validate(request.model)
        except UnsupportedModelError as e:
            raise CacheError(f"invalid model: {e}") from e
        try:
            ttl = parse_duration(request.ttl or self.default_ttl)
        except ValueError as e:
            raise CacheError(f"invalid TTL format: {e}") from e

        parts: list[APIPart] = []
        for file_id in request.file_ids:
            try:
                handle = await self._files.get(file_id)
            except GeminiMCPError as e:
                raise CacheError(f"failed to get file with ID {file_id}: {e}") from e
            parts.append(FileRefPart(uri=handle.uri, mime_type=handle.mime_type))
        if request.content:
            parts.append(TextPart(text=request.content))

        logger.info(
            "Creating cached content with model %s (%d file(s), ttl %s)",
            request.model,
            len(request.file_ids),
            ttl,
        )
        with self._telemetry("caches.create", files=len(request.file_ids)):
            try:
                upstream = await self._adapter.create_cache(
                    model_name=request.model,
                    content_parts=tuple(parts),
                    system_instruction=request.system_prompt,
                    ttl_seconds=max(1, math.ceil(ttl.total_seconds())),
                    display_name=request.display_name,
                )
            except APIError as e:
                raise CacheError(f"failed to create cached content: {e}") from e

        entry = self._to_entry(
            upstream, ttl=ttl, file_ids=request.file_ids, fallback_model=request.model
        )
        await self._store.put(entry.id, entry)
        logger.info("Cache created successfully with ID: %s", entry.id)
        return entry

    async def get(self, cache_id: str) -> CacheEntry:
        """Read-through lookup; expired entries are evicted and reported."""
        key = _strip_prefix(cache_id, constants.CACHE_NAME_PREFIX)
        try:
            return await self._store.get(key)
        except ExpiredEntryError as e:
            raise CacheError(f"cache {key} has expired") from e

    async def delete(self, cache_id: str) -> None:
        """Resolve the upstream name via ``get``, delete upstream, evict."""
        key = _strip_prefix(cache_id, constants.CACHE_NAME_PREFIX)
        try:
            name = (await self.get(key)).name
        except CacheError:
            name = constants.CACHE_NAME_PREFIX + key
        try:
            await self._adapter.delete_cache(name)
        except APIError as e:
            raise CacheError(f"failed to delete cache {key}: {e}") from e
        await self._store.evict(key)
        logger.info("Deleted cache %s", key)

    async def list(self) -> list[CacheEntry]:
        """Full resync against upstream; expired entries are dropped."""
        try:
            upstream = await self._adapter.list_caches()
        except APIError as e:
            raise CacheError(f"failed to list caches: {e}") from e
        now = self._clock()
        entries = {
            entry.id: entry
            for entry in (self._to_entry(item) for item in upstream)
            if not entry.is_expired(now)
        }
        await self._store.replace_all(entries)
        return list(entries.values())

    # --- Internal helpers ---

    async def _fetch_upstream(self, key: str) -> CacheEntry:
        try:
            upstream = await self._adapter.get_cache(constants.CACHE_NAME_PREFIX + key)
        except APIError as e:
            raise CacheError(f"failed to get cache {key}: {e}") from e
        return self._to_entry(upstream)

    def _to_entry(
        self,
        upstream: UpstreamCache,
        *,
        ttl: timedelta | None = None,
        file_ids: tuple[str, ...] = (),
        fallback_model: str = "",
    ) -> CacheEntry:
        created_at = upstream.create_time or self._clock()
        if upstream.expire_time is not None:
            expires_at = upstream.expire_time
        else:
            expires_at = created_at + (ttl or parse_duration(self.default_ttl))
        model = _strip_prefix(upstream.model or fallback_model, constants.MODEL_NAME_PREFIX)
        return CacheEntry(
            id=_strip_prefix(upstream.name, constants.CACHE_NAME_PREFIX),
            name=upstream.name,
            display_name=upstream.display_name or "",
            model=model,
            created_at=created_at,
            expires_at=expires_at,
            file_ids=tuple(file_ids),
        )
