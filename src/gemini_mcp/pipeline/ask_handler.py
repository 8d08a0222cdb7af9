"""Handler for the ``ask`` tool.

Flow for one request:

- Validate the query and resolve the model (an invalid explicit model falls
  back to the configured default).
- Gather file context from the local sandbox or from GitHub, never both.
- Try the cache path when asked for, supported and not in conflict with
  thinking. Any failure there is remembered and the request falls through.
- Otherwise upload files and generate directly, inlining any file whose
  upload failed.
"""

from __future__ import annotations

import asyncio
import logging
from typing import TYPE_CHECKING

from gemini_mcp import constants
from gemini_mcp.core.types import (
    APIPart,
    AskRequest,
    CacheRequest,
    Failure,
    FileRefPart,
    FileUnit,
    Result,
    Success,
    TextPart,
    ToolResult,
)
from gemini_mcp.exceptions import (
    APIError,
    CacheError,
    GeminiMCPError,
    SourceError,
    UnsupportedModelError,
    ValidationError,
)
from gemini_mcp.files import validate_repo_paths
from gemini_mcp.pipeline.base import BaseAsyncHandler
from gemini_mcp.telemetry import TelemetryContext

from . import generation

if TYPE_CHECKING:
    from gemini_mcp.config import ServerSettings
    from gemini_mcp.core.models import ModelCatalog
    from gemini_mcp.files import GitHubFetcher, LocalFileProvider
    from gemini_mcp.telemetry import TelemetryContextProtocol

    from .dispatcher import Dispatcher
    from .registries import CacheRegistry, FileRegistry

logger = logging.getLogger(__name__)

QUERY_REQUIRED_MESSAGE = "query must be a string and cannot be empty"


class AskHandler(BaseAsyncHandler[AskRequest, ToolResult, GeminiMCPError]):
    """Answers a query, optionally with file context and a context cache."""

    def __init__(
        self,
        settings: ServerSettings,
        *,
        catalog: ModelCatalog,
        dispatcher: Dispatcher,
        files: FileRegistry,
        caches: CacheRegistry,
        local_files: LocalFileProvider,
        github: GitHubFetcher,
        telemetry: TelemetryContextProtocol | None = None,
    ) -> None:
        self._settings = settings
        self._catalog = catalog
        self._dispatcher = dispatcher
        self._files = files
        self._caches = caches
        self._local = local_files
        self._github = github
        self._telemetry = telemetry or TelemetryContext()

    async def handle(self, command: AskRequest) -> Result[ToolResult, GeminiMCPError]:
        """Run one ``ask`` request end to end."""
        try:
            with self._telemetry("tool.ask"):
                return Success(await self._ask(command))
        except GeminiMCPError as e:
            return Failure(e)
        except Exception as e:  # Defensive normalization
            logger.exception("ask failed unexpectedly")
            return Failure(APIError(f"ask handler failed: {e}"))

    async def _ask(self, request: AskRequest) -> ToolResult:
        if not isinstance(request.query, str) or not request.query.strip():
            raise ValidationError(QUERY_REQUIRED_MESSAGE)

        model = self._resolve_model(request.model)
        system_prompt = request.system_prompt or self._settings.system_prompt
        budget = generation.thinking_budget(
            request.thinking, self._settings, self._catalog, model
        )
        max_tokens = generation.max_output_tokens(
            self._catalog, model, request.max_tokens, constants.ASK_MAX_TOKENS_RATIO
        )
        units = await self._gather_files(request)

        use_cache = request.use_cache
        if use_cache and generation.thinking_enabled(request.thinking, self._settings):
            logger.warning(
                "Caching and thinking mode cannot be used together; disabling caching"
            )
            use_cache = False

        cache_error: GeminiMCPError | None = None
        if use_cache and self._settings.enable_caching and units:
            if not self._catalog.supports_caching(model):
                logger.warning(
                    "Model %s does not support caching, falling back to regular request",
                    model,
                )
            else:
                try:
                    return await self._ask_with_cache(
                        request, model, system_prompt, units, max_tokens
                    )
                except GeminiMCPError as e:
                    logger.warning(
                        "Failed to use cache, falling back to regular request: %s", e
                    )
                    cache_error = e

        config = generation.build_config(
            system_prompt=system_prompt,
            temperature=self._settings.temperature,
            max_tokens=max_tokens,
            budget=budget,
        )
        parts = await self._direct_parts(request.query, units)
        try:
            return await self._dispatcher.generate(
                model_name=model, api_parts=parts, api_config=config
            )
        except APIError as e:
            logger.error("Gemini API error: %s", e)
            message = f"Error from Gemini API: {e}"
            if cache_error is not None:
                message += f"\nCache error: {cache_error}"
            return ToolResult.error(message)

    def _resolve_model(self, requested: str | None) -> str:
        model = requested or self._settings.model
        try:
            self._catalog.validate(model)
        except UnsupportedModelError as e:
            logger.warning("%s; using default model %s", e, self._settings.model)
            model = self._settings.model
        return self._catalog.resolve(model)

    async def _gather_files(self, request: AskRequest) -> list[FileUnit]:
        if request.file_paths and request.github_files:
            raise ValidationError(
                "Cannot use both 'file_paths' and 'github_files' in the same request."
            )

        if request.github_files:
            if not request.github_repo:
                raise ValidationError(
                    "'github_repo' is required when using 'github_files'."
                )
            validate_repo_paths(request.github_files)
            batch = await self._github.fetch(
                request.github_repo, request.github_ref, request.github_files
            )
            if batch.all_failed:
                details = "\n".join(f"- {e.path}: {e.message}" for e in batch.errors)
                raise SourceError(f"Error fetching GitHub files:\n{details}")
            for err in batch.errors:
                logger.warning("Continuing without %s: %s", err.path, err.message)
            return list(batch.units)

        if request.file_paths:
            if self._settings.transport != "stdio":
                raise ValidationError(
                    "'file_paths' is not supported in HTTP transport mode. "
                    "Use 'github_files' instead."
                )
            return await asyncio.to_thread(self._local.read, request.file_paths)

        return []

    async def _ask_with_cache(
        self,
        request: AskRequest,
        model: str,
        system_prompt: str,
        units: list[FileUnit],
        max_tokens: int | None,
    ) -> ToolResult:
        file_ids: list[str] = []
        for unit in units:
            try:
                handle = await self._files.upload(unit)
            except GeminiMCPError as e:
                logger.error("Failed to upload %s for caching: %s", unit.name, e)
                continue
            file_ids.append(handle.id)
        if not file_ids:
            raise CacheError("failed to upload any files for caching")

        entry = await self._caches.create(
            CacheRequest(
                model=model,
                system_prompt=system_prompt,
                file_ids=tuple(file_ids),
                content=request.query,
                ttl=request.cache_ttl,
            )
        )
        logger.info("Using cache with ID: %s", entry.id)
        config = generation.cached_config(entry.name, max_tokens=max_tokens, budget=None)
        try:
            return await self._dispatcher.generate(
                model_name=entry.model,
                api_parts=(TextPart(text=request.query),),
                api_config=config,
            )
        except APIError as e:
            raise CacheError(f"failed to generate with cached content: {e}") from e

    async def _direct_parts(
        self, query: str, units: list[FileUnit]
    ) -> tuple[APIPart, ...]:
        parts: list[APIPart] = [TextPart(text=query)]
        for unit in units:
            try:
                handle = await self._files.upload(unit)
            except GeminiMCPError as e:
                logger.error(
                    "Failed to upload %s: %s - falling back to inline content",
                    unit.name,
                    e,
                )
                parts.append(TextPart(text=unit.content.decode("utf-8", "replace")))
                continue
            parts.append(FileRefPart(uri=handle.uri, mime_type=unit.mime_type))
        return tuple(parts)
