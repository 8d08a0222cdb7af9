"""Thin wrapper over the provider's generate and stream calls.

``generate`` turns a single-shot response into tool text. ``search`` folds a
grounded stream into one ``SearchResult``. Neither call is retried; upstream
failures propagate as ``APIError`` for the handlers to report.
"""

from __future__ import annotations

from collections.abc import Mapping
import logging

from gemini_mcp import constants
from gemini_mcp.core.types import (
    APIPart,
    SearchResult,
    SearchSource,
    ToolResult,
)
from gemini_mcp.telemetry import TelemetryContext, TelemetryContextProtocol

from .adapters.base import GenerationAdapter, StreamingCapability

logger = logging.getLogger(__name__)

EMPTY_CANDIDATES_MESSAGE = "Gemini API returned an empty response"


class Dispatcher:
    """Sends one request upstream and shapes the answer."""

    def __init__(
        self,
        adapter: GenerationAdapter,
        *,
        telemetry: TelemetryContextProtocol | None = None,
    ) -> None:
        self._adapter = adapter
        self._telemetry = telemetry or TelemetryContext()

    async def generate(
        self,
        *,
        model_name: str,
        api_parts: tuple[APIPart, ...],
        api_config: Mapping[str, object],
    ) -> ToolResult:
        """Single-shot generation.

        Raises:
            APIError: When the provider call fails.
        """
        with self._telemetry("api.generate", model=model_name) as tele:
            response = await self._adapter.generate(
                model_name=model_name, api_parts=api_parts, api_config=api_config
            )
            for key, value in response.usage.items():
                tele.gauge(key, value)

        if response.candidate_count == 0:
            logger.error("Gemini API returned no candidates for %s", model_name)
            return ToolResult.error(EMPTY_CANDIDATES_MESSAGE)
        if not response.text:
            logger.warning("Gemini API returned an empty text response")
            return ToolResult(text=constants.EMPTY_RESPONSE_MESSAGE)
        return ToolResult(text=response.text)

    async def search(
        self,
        *,
        model_name: str,
        api_parts: tuple[APIPart, ...],
        api_config: Mapping[str, object],
    ) -> SearchResult:
        """Stream a grounded generation and fold it.

        Text is concatenated in order, the first non-empty query list wins and
        sources are deduplicated by URL keeping the first occurrence.
        """
        if not isinstance(self._adapter, StreamingCapability):
            raise TypeError(f"{type(self._adapter).__name__} cannot stream")

        answer: list[str] = []
        queries: tuple[str, ...] = ()
        sources: dict[str, SearchSource] = {}

        with self._telemetry("api.search", model=model_name) as tele:
            async for chunk in self._adapter.generate_stream(
                model_name=model_name, api_parts=api_parts, api_config=api_config
            ):
                if chunk.text:
                    answer.append(chunk.text)
                if not queries and chunk.search_queries:
                    queries = chunk.search_queries
                for source in chunk.sources:
                    sources.setdefault(source.url, source)
            tele.count("sources", len(sources))

        text = "".join(answer)
        if not text:
            text = constants.EMPTY_SEARCH_MESSAGE
        return SearchResult(
            answer=text, sources=tuple(sources.values()), search_queries=queries
        )
