"""Handler for the ``search`` tool: grounded generation via Google Search."""

from __future__ import annotations

import json
import logging
from typing import TYPE_CHECKING

from gemini_mcp import constants
from gemini_mcp.core.durations import parse_rfc3339
from gemini_mcp.core.types import (
    Failure,
    Result,
    SearchRequest,
    Success,
    TextPart,
    ToolResult,
)
from gemini_mcp.exceptions import (
    APIError,
    GeminiMCPError,
    UnsupportedModelError,
    ValidationError,
)
from gemini_mcp.pipeline.base import BaseAsyncHandler
from gemini_mcp.telemetry import TelemetryContext

from . import generation
from .ask_handler import QUERY_REQUIRED_MESSAGE

if TYPE_CHECKING:
    from datetime import datetime

    from gemini_mcp.config import ServerSettings
    from gemini_mcp.core.models import ModelCatalog
    from gemini_mcp.telemetry import TelemetryContextProtocol

    from .dispatcher import Dispatcher

logger = logging.getLogger(__name__)


class SearchHandler(BaseAsyncHandler[SearchRequest, ToolResult, GeminiMCPError]):
    """Runs a search-grounded query and returns JSON text."""

    def __init__(
        self,
        settings: ServerSettings,
        *,
        catalog: ModelCatalog,
        dispatcher: Dispatcher,
        telemetry: TelemetryContextProtocol | None = None,
    ) -> None:
        self._settings = settings
        self._catalog = catalog
        self._dispatcher = dispatcher
        self._telemetry = telemetry or TelemetryContext()

    async def handle(
        self, command: SearchRequest
    ) -> Result[ToolResult, GeminiMCPError]:
        """Validate everything up front, then stream and fold the answer."""
        try:
            with self._telemetry("tool.search"):
                return Success(await self._search(command))
        except GeminiMCPError as e:
            return Failure(e)
        except Exception as e:  # Defensive normalization
            logger.exception("search failed unexpectedly")
            return Failure(APIError(f"search handler failed: {e}"))

    async def _search(self, request: SearchRequest) -> ToolResult:
        if not isinstance(request.query, str) or not request.query.strip():
            raise ValidationError(QUERY_REQUIRED_MESSAGE)

        model = request.model or self._settings.search_model
        try:
            self._catalog.validate(model)
        except UnsupportedModelError as e:
            raise ValidationError(f"Invalid model specified: {e}") from e
        model = self._catalog.resolve(model)

        time_range = parse_time_range(request.start_time, request.end_time)
        config = generation.build_config(
            system_prompt=request.system_prompt or self._settings.search_system_prompt,
            temperature=self._settings.temperature,
            max_tokens=generation.max_output_tokens(
                self._catalog,
                model,
                request.max_tokens,
                constants.SEARCH_MAX_TOKENS_RATIO,
            ),
            budget=generation.thinking_budget(
                request.thinking, self._settings, self._catalog, model
            ),
            google_search=True,
            time_range=time_range,
        )

        logger.info("Searching with model %s", model)
        try:
            result = await self._dispatcher.search(
                model_name=model,
                api_parts=(TextPart(text=request.query),),
                api_config=config,
            )
        except APIError as e:
            logger.error("Gemini search error: %s", e)
            return ToolResult.error(f"Error from Gemini API: {e}")

        return ToolResult(text=json.dumps(result.to_dict()))


def parse_time_range(
    start_time: str | None, end_time: str | None
) -> tuple[datetime, datetime] | None:
    """Both bounds or neither; each RFC3339; start not after end."""
    if not start_time and not end_time:
        return None
    if not start_time or not end_time:
        raise ValidationError(
            "Both start_time and end_time must be provided for time range filtering"
        )
    start = _parse_bound("start_time", start_time)
    end = _parse_bound("end_time", end_time)
    if start > end:
        raise ValidationError("start_time must be before or equal to end_time")
    return start, end


def _parse_bound(field: str, value: str) -> datetime:
    try:
        return parse_rfc3339(value)
    except ValueError as e:
        raise ValidationError(
            f"Invalid {field} format: {e}. Must be RFC3339 format "
            "(e.g. '2024-01-01T00:00:00Z')"
        ) from e
