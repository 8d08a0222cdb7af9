"""Concurrent file fetching from the GitHub contents API.

Each requested path is fetched in its own task, with at most
``max_concurrency`` requests in flight over one shared ``httpx.AsyncClient``.
Failures are collected per file: a batch returns both the files that arrived
and the paths that did not, and one failure never cancels the others.

Per-file retries cover transport errors, 5xx responses and short rate-limit
waits, using exponential backoff with jitter. Other 4xx responses fail
immediately with a cause-specific message.
"""

from __future__ import annotations

import asyncio
import base64
import binascii
from collections.abc import Callable, Sequence
from dataclasses import dataclass
import json
import logging
import random
import time
from urllib.parse import quote, urlparse

import httpx

from .. import constants
from ..core.types import FileUnit
from ..exceptions import SourceError, ValidationError
from ..telemetry import TelemetryContext, TelemetryContextProtocol
from .mime import get_mime_type

logger = logging.getLogger(__name__)

# A JSON envelope carries base64 (4/3 of the payload) plus metadata
_ENVELOPE_OVERHEAD = 64 * 1024


@dataclass(frozen=True, slots=True)
class FetchError:
    """A single path that could not be fetched."""

    path: str
    message: str
    status: int | None = None


@dataclass(frozen=True, slots=True)
class FetchBatch:
    """Outcome of a batch fetch: what arrived and what did not."""

    units: tuple[FileUnit, ...]
    errors: tuple[FetchError, ...]

    @property
    def all_failed(self) -> bool:
        """True when nothing arrived but something was requested."""
        return not self.units and bool(self.errors)


class _RetryableFetchError(Exception):
    """Internal signal that an attempt may be retried.

    ``wait`` overrides the computed backoff when the server said how long to
    wait (rate limiting).
    """

    def __init__(
        self, message: str, *, status: int | None = None, wait: float | None = None
    ) -> None:
        super().__init__(message)
        self.status = status
        self.wait = wait


def parse_github_repo(value: str) -> tuple[str, str]:
    """Normalize ``owner/repo``, HTTPS and SSH repository forms to (owner, repo).

    Raises:
        ValidationError: If the string does not name a repository.
    """
    text = value.strip()
    if text.startswith("git@"):
        text = "https://" + text.removeprefix("git@").replace(":", "/", 1)

    parsed = urlparse(text)
    if not parsed.netloc:
        parts = text.split("/")
        if len(parts) == 2 and all(parts):
            return parts[0], parts[1].removesuffix(".git")
        raise ValidationError(f"invalid github_repo format: {value}")

    segments = [s for s in parsed.path.removesuffix(".git").split("/") if s]
    if len(segments) < 2:
        raise ValidationError(f"invalid github_repo URL path: {parsed.path}")
    return segments[0], segments[1].removesuffix(".git")


def validate_repo_paths(paths: Sequence[str]) -> None:
    """Reject paths that could leave the repository's contents endpoint.

    Raises:
        ValidationError: For a path containing ``..`` or starting with ``/``.
    """
    for path in paths:
        if ".." in path or path.startswith("/"):
            raise ValidationError(
                f"invalid file path: {path}. "
                "Path must be relative and within the repository"
            )


class GitHubFetcher:
    """Fetches repository files concurrently with retries and size caps."""

    def __init__(
        self,
        *,
        api_base_url: str = constants.GITHUB_API_BASE_URL,
        token: str | None = None,
        max_files: int = constants.MAX_GITHUB_FILES,
        max_file_size: int = constants.MAX_GITHUB_FILE_SIZE,
        timeout: float = constants.NETWORK_TIMEOUT,
        initial_backoff: float = constants.RETRY_BASE_DELAY,
        max_backoff: float = constants.RETRY_MAX_DELAY,
        rate_limit_max_wait: float = constants.GITHUB_RATE_LIMIT_MAX_WAIT,
        max_concurrency: int = constants.GITHUB_MAX_CONCURRENT_FETCHES,
        attempts: int = constants.GITHUB_FETCH_ATTEMPTS,
        transport: httpx.AsyncBaseTransport | None = None,
        telemetry: TelemetryContextProtocol | None = None,
        clock: Callable[[], float] = time.time,
        jitter: Callable[[float, float], float] = random.uniform,
    ) -> None:
        """Configure limits and retry policy.

        ``transport``, ``clock`` and ``jitter`` exist so tests can run without
        a network, a wall clock or randomness.
        """
        self.api_base_url = api_base_url.rstrip("/")
        self.token = token
        self.max_files = max_files
        self.max_file_size = max_file_size
        self.timeout = timeout
        self.initial_backoff = initial_backoff
        self.max_backoff = max_backoff
        self.rate_limit_max_wait = rate_limit_max_wait
        self.max_concurrency = max_concurrency
        self.attempts = attempts
        self._transport = transport
        self._telemetry = telemetry or TelemetryContext()
        self._clock = clock
        self._jitter = jitter

    async def fetch(
        self, repo: str, ref: str | None, paths: Sequence[str]
    ) -> FetchBatch:
        """Fetch every path; per-file failures are returned, not raised.

        Raises:
            ValidationError: If the repository string is malformed or more
                than ``max_files`` paths are requested.
        """
        owner, name = parse_github_repo(repo)
        validate_repo_paths(paths)
        if len(paths) > self.max_files:
            raise ValidationError(
                f"too many files requested, limit is {self.max_files}"
            )
        logger.info(
            "Fetching %d file(s) from %s/%s (ref: %s, token configured: %s)",
            len(paths),
            owner,
            name,
            ref or "default",
            bool(self.token),
        )

        sem = asyncio.Semaphore(self.max_concurrency)

        async def _one(client: httpx.AsyncClient, path: str) -> FileUnit | FetchError:
            async with sem:
                try:
                    return await self._fetch_with_retry(client, owner, name, ref, path)
                except SourceError as e:
                    return FetchError(path=path, message=str(e), status=e.status)

        with self._telemetry("github.fetch", files=len(paths)) as tele:
            async with httpx.AsyncClient(
                timeout=self.timeout,
                headers=self._headers(),
                transport=self._transport,
            ) as client:
                results = await asyncio.gather(*(_one(client, p) for p in paths))
            units = tuple(r for r in results if isinstance(r, FileUnit))
            errors = tuple(r for r in results if isinstance(r, FetchError))
            tele.count("fetched", len(units))
            tele.count("failed", len(errors))

        for err in errors:
            logger.error("GitHub fetch failed for %s: %s", err.path, err.message)
        logger.info(
            "GitHub fetch completed: %d succeeded, %d failed", len(units), len(errors)
        )
        return FetchBatch(units=units, errors=errors)

    # --- Internal helpers ---

    def _headers(self) -> dict[str, str]:
        headers = {"Accept": constants.GITHUB_ACCEPT, "User-Agent": "gemini-mcp"}
        if self.token:
            headers["Authorization"] = f"token {self.token}"
        return headers

    def backoff_delay(self, attempt: int) -> float:
        """Exponential backoff for a zero-based attempt, capped, with jitter."""
        base = min(self.initial_backoff * (2**attempt), self.max_backoff)
        low, high = constants.RETRY_JITTER_RANGE
        return base * self._jitter(low, high)

    async def _fetch_with_retry(
        self,
        client: httpx.AsyncClient,
        owner: str,
        repo: str,
        ref: str | None,
        path: str,
    ) -> FileUnit:
        for attempt in range(self.attempts):
            try:
                return await self._fetch_once(client, owner, repo, ref, path)
            except _RetryableFetchError as e:
                if attempt == self.attempts - 1:
                    raise SourceError(str(e), path=path, status=e.status) from e
                delay = e.wait if e.wait is not None else self.backoff_delay(attempt)
                logger.warning(
                    "Fetching %s failed (attempt %d/%d): %s; retrying in %.2fs",
                    path,
                    attempt + 1,
                    self.attempts,
                    e,
                    delay,
                )
                # Cancellation during the wait propagates immediately
                await asyncio.sleep(delay)
        raise SourceError(f"failed to fetch {path}: exhausted attempts", path=path)

    async def _fetch_once(
        self,
        client: httpx.AsyncClient,
        owner: str,
        repo: str,
        ref: str | None,
        path: str,
    ) -> FileUnit:
        url = f"{self.api_base_url}/repos/{owner}/{repo}/contents/{quote(path, safe='/')}"
        params = {"ref": ref} if ref else None
        try:
            async with client.stream("GET", url, params=params) as response:
                if response.status_code != httpx.codes.OK:
                    raise self._status_error(response, owner, repo, ref, path)
                is_json = _media_type(response) == "application/json"
                body = await self._read_capped(response, path, is_json=is_json)
        except httpx.TransportError as e:
            raise _RetryableFetchError(f"failed to fetch {path}: {e}") from e
        except httpx.HTTPError as e:
            # Decoding and other non-transport errors are final for this file
            raise SourceError(f"failed to fetch {path}: {e}", path=path) from e

        content = self._decode_envelope(path, body) if is_json else body
        self._check_size(path, len(content))
        logger.debug("Fetched %s (%d bytes)", path, len(content))
        return FileUnit(name=path, mime_type=get_mime_type(path), content=content)

    async def _read_capped(
        self, response: httpx.Response, path: str, *, is_json: bool
    ) -> bytes:
        limit = (
            self.max_file_size * 2 + _ENVELOPE_OVERHEAD
            if is_json
            else self.max_file_size
        )
        declared = response.headers.get("content-length")
        if declared is not None and declared.isdigit() and int(declared) > limit:
            raise self._too_large(path, int(declared))

        body = bytearray()
        async for chunk in response.aiter_bytes():
            body.extend(chunk)
            if len(body) > limit:
                raise self._too_large(path, len(body))
        return bytes(body)

    def _decode_envelope(self, path: str, body: bytes) -> bytes:
        try:
            payload = json.loads(body)
        except ValueError as e:
            raise SourceError(
                f"failed to decode response for {path}: {e}", path=path
            ) from e
        if not isinstance(payload, dict) or "content" not in payload:
            raise SourceError(f"{path} is not a file", path=path)

        encoding = payload.get("encoding")
        if encoding != "base64":
            raise SourceError(
                f"unsupported encoding for {path}: {encoding}", path=path
            )
        declared_size = payload.get("size")
        if isinstance(declared_size, int):
            self._check_size(path, declared_size)
        try:
            return base64.b64decode(payload["content"])
        except (binascii.Error, TypeError, ValueError) as e:
            raise SourceError(
                f"failed to decode content for {path}: {e}", path=path
            ) from e

    def _check_size(self, path: str, size: int) -> None:
        if size > self.max_file_size:
            raise self._too_large(path, size)

    def _too_large(self, path: str, size: int) -> SourceError:
        return SourceError(
            f"file {path} is too large: {size} bytes, limit is {self.max_file_size}",
            path=path,
        )

    def _status_error(
        self,
        response: httpx.Response,
        owner: str,
        repo: str,
        ref: str | None,
        path: str,
    ) -> SourceError | _RetryableFetchError:
        status = response.status_code
        slug = f"{owner}/{repo}"

        if self._is_rate_limited(response):
            message = "rate limit exceeded for GitHub API - try again later"
            wait = self._rate_limit_wait(response)
            if wait is None or wait <= self.rate_limit_max_wait:
                return _RetryableFetchError(message, status=status, wait=wait)
            return SourceError(
                f"{message} (resets in {int(wait)}s)", path=path, status=status
            )
        if status >= 500:
            return _RetryableFetchError(
                f"GitHub API error for {path}: status {status}", status=status
            )

        if status == httpx.codes.NOT_FOUND:
            if not self.token:
                message = (
                    f"repository '{slug}' not found or private "
                    "(no GitHub token configured)"
                )
            else:
                message = (
                    f"file '{path}' not found in repository '{slug}' "
                    f"(ref: {ref or 'default'}) - repository may be private or "
                    "file doesn't exist"
                )
        elif status == httpx.codes.UNAUTHORIZED:
            message = f"authentication failed - check GitHub token permissions for '{slug}'"
        elif status == httpx.codes.FORBIDDEN:
            message = f"access denied to '{slug}' - token may lack required permissions"
        else:
            message = f"GitHub API error for {path}: status {status}"
        return SourceError(message, path=path, status=status)

    @staticmethod
    def _is_rate_limited(response: httpx.Response) -> bool:
        if response.status_code == httpx.codes.TOO_MANY_REQUESTS:
            return True
        return (
            response.status_code == httpx.codes.FORBIDDEN
            and response.headers.get("x-ratelimit-remaining") == "0"
        )

    def _rate_limit_wait(self, response: httpx.Response) -> float | None:
        retry_after = response.headers.get("retry-after")
        if retry_after is not None and retry_after.strip().isdigit():
            return float(retry_after)
        reset = response.headers.get("x-ratelimit-reset")
        if reset is not None and reset.strip().isdigit():
            return max(float(reset) - self._clock(), 0.0)
        return None


def _media_type(response: httpx.Response) -> str:
    return response.headers.get("content-type", "").split(";")[0].strip().lower()
