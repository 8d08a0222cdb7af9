"""MCP server wiring: tools, prompts and the components behind them.

``build_server`` constructs every component once (adapter, registries, file
providers, handlers) and registers the ``ask``, ``search`` and ``models``
tools plus the prompt templates on a FastMCP instance. Tool failures are
returned as error-flagged results, never raised into the transport.
"""

import logging
from typing import Annotated

import httpx
from mcp.server.fastmcp import FastMCP
from mcp.types import CallToolResult, TextContent
from pydantic import Field

from gemini_mcp.config import ServerSettings, require_api_key
from gemini_mcp.core.models import ModelCatalog
from gemini_mcp.core.types import (
    AskRequest,
    Failure,
    Result,
    SearchRequest,
    Success,
    ThinkingOptions,
    ToolResult,
)
from gemini_mcp.exceptions import GeminiMCPError
from gemini_mcp.files import GitHubFetcher, LocalFileProvider
from gemini_mcp.pipeline.adapters.base import ProviderAdapter
from gemini_mcp.pipeline.ask_handler import AskHandler
from gemini_mcp.pipeline.dispatcher import Dispatcher
from gemini_mcp.pipeline.registries import CacheRegistry, FileRegistry
from gemini_mcp.pipeline.search_handler import SearchHandler
from gemini_mcp.prompts import PROMPTS, PromptDefinition
from gemini_mcp.telemetry import (
    LoggingReporter,
    TelemetryContext,
    TelemetryContextProtocol,
)

logger = logging.getLogger(__name__)

SERVER_NAME = "gemini"

SERVER_INSTRUCTIONS = (
    "Bridges MCP clients to Google Gemini. Use `ask` for code analysis and "
    "questions over local or GitHub files, `search` for answers grounded in "
    "Google Search, and `models` to list the available models."
)

def to_call_tool_result(result: Result[ToolResult, GeminiMCPError]) -> CallToolResult:
    """Map a handler result onto the MCP tool result envelope."""
    if isinstance(result, Failure):
        tool_result = ToolResult.error(str(result.error))
    else:
        tool_result = result.value
    return CallToolResult(
        content=[TextContent(type="text", text=tool_result.text)],
        isError=tool_result.is_error,
    )


class GeminiMCPServer:
    """Owns the per-process components and implements the tools."""

    def __init__(
        self,
        settings: ServerSettings,
        *,
        adapter: ProviderAdapter | None = None,
        catalog: ModelCatalog | None = None,
        github_transport: httpx.AsyncBaseTransport | None = None,
        telemetry: TelemetryContextProtocol | None = None,
    ) -> None:
        """Build every component from settings.

        Raises:
            ConfigurationError: If no adapter is given and no API key is set.
        """
        if adapter is None:
            # Imported lazily so tests with fake adapters never touch the SDK
            from gemini_mcp.pipeline.adapters.gemini import GoogleGenAIAdapter

            adapter = GoogleGenAIAdapter(
                require_api_key(settings), timeout=settings.timeout
            )
        self.settings = settings
        self.catalog = catalog or ModelCatalog()
        self.telemetry = telemetry or TelemetryContext(LoggingReporter())

        self.files = FileRegistry(
            adapter,
            max_file_size=settings.max_file_size,
            allowed_mime_types=settings.allowed_file_types,
            telemetry=self.telemetry,
        )
        self.caches = CacheRegistry(
            adapter,
            self.files,
            self.catalog,
            enabled=settings.enable_caching,
            default_ttl=settings.default_cache_ttl,
            telemetry=self.telemetry,
        )
        self.local_files = LocalFileProvider(
            settings.file_read_base_dir, settings.max_file_size
        )
        self.github = GitHubFetcher(
            api_base_url=settings.github_api_base_url,
            token=settings.github_token,
            max_files=settings.max_github_files,
            max_file_size=settings.max_github_file_size,
            timeout=settings.timeout,
            initial_backoff=settings.initial_backoff,
            max_backoff=settings.max_backoff,
            rate_limit_max_wait=settings.github_rate_limit_max_wait,
            attempts=settings.max_retries + 1,
            transport=github_transport,
            telemetry=self.telemetry,
        )
        dispatcher = Dispatcher(adapter, telemetry=self.telemetry)
        self.ask_handler = AskHandler(
            settings,
            catalog=self.catalog,
            dispatcher=dispatcher,
            files=self.files,
            caches=self.caches,
            local_files=self.local_files,
            github=self.github,
            telemetry=self.telemetry,
        )
        self.search_handler = SearchHandler(
            settings,
            catalog=self.catalog,
            dispatcher=dispatcher,
            telemetry=self.telemetry,
        )

    async def ask(self, request: AskRequest) -> CallToolResult:
        """Run the ``ask`` tool."""
        return to_call_tool_result(await self.ask_handler.handle(request))

    async def search(self, request: SearchRequest) -> CallToolResult:
        """Run the ``search`` tool."""
        return to_call_tool_result(await self.search_handler.handle(request))

    def models(self) -> CallToolResult:
        """Run the ``models`` tool."""
        return to_call_tool_result(
            Success(ToolResult(text=self.catalog.render_markdown()))
        )


def build_server(
    settings: ServerSettings,
    *,
    adapter: ProviderAdapter | None = None,
    catalog: ModelCatalog | None = None,
    github_transport: httpx.AsyncBaseTransport | None = None,
    telemetry: TelemetryContextProtocol | None = None,
) -> FastMCP:
    """Create a FastMCP server with every tool and prompt registered."""
    gemini = GeminiMCPServer(
        settings,
        adapter=adapter,
        catalog=catalog,
        github_transport=github_transport,
        telemetry=telemetry,
    )
    mcp = FastMCP(
        SERVER_NAME,
        instructions=SERVER_INSTRUCTIONS,
        host=settings.http_host,
        port=settings.http_port,
    )

    @mcp.tool(
        name="ask",
        description=(
            "Query Google Gemini with an optional code context from local files "
            "or a GitHub repository. Supports context caching and thinking mode."
        ),
    )
    async def ask(  # noqa: PLR0913
        query: Annotated[str, Field(description="The question or task for Gemini")],
        model: Annotated[
            str | None, Field(description="Model or family id to use")
        ] = None,
        systemPrompt: Annotated[  # noqa: N803
            str | None, Field(description="Custom system prompt")
        ] = None,
        file_paths: Annotated[
            list[str] | None,
            Field(description="Local file paths relative to the base directory"),
        ] = None,
        github_repo: Annotated[
            str | None, Field(description="GitHub repository as owner/repo or URL")
        ] = None,
        github_ref: Annotated[
            str | None, Field(description="Branch, tag or commit to read from")
        ] = None,
        github_files: Annotated[
            list[str] | None, Field(description="Paths of files in the repository")
        ] = None,
        use_cache: Annotated[
            bool, Field(description="Cache the file context for reuse")
        ] = False,
        cache_ttl: Annotated[
            str | None, Field(description="Cache lifetime such as '10m' or '1h'")
        ] = None,
        enable_thinking: Annotated[
            bool | None, Field(description="Enable thinking mode")
        ] = None,
        thinking_budget: Annotated[
            int | None, Field(description="Thinking token budget (0-24576)")
        ] = None,
        thinking_budget_level: Annotated[
            str | None,
            Field(description="Predefined thinking budget: none, low, medium or high"),
        ] = None,
        max_tokens: Annotated[
            int | None, Field(description="Maximum output tokens")
        ] = None,
    ) -> CallToolResult:
        return await gemini.ask(
            AskRequest(
                query=query,
                model=model,
                system_prompt=systemPrompt,
                file_paths=tuple(file_paths or ()),
                github_repo=github_repo,
                github_ref=github_ref,
                github_files=tuple(github_files or ()),
                use_cache=use_cache,
                cache_ttl=cache_ttl,
                thinking=ThinkingOptions(
                    enabled=enable_thinking,
                    budget=thinking_budget,
                    level=thinking_budget_level,
                ),
                max_tokens=max_tokens,
            )
        )

    @mcp.tool(
        name="search",
        description=(
            "Answer a question with Gemini grounded in Google Search. Returns JSON "
            "with the answer, its sources and the search queries used."
        ),
    )
    async def search(  # noqa: PLR0913
        query: Annotated[str, Field(description="The question to research")],
        systemPrompt: Annotated[  # noqa: N803
            str | None, Field(description="Custom system prompt")
        ] = None,
        model: Annotated[
            str | None, Field(description="Model or family id to use")
        ] = None,
        enable_thinking: Annotated[
            bool | None, Field(description="Enable thinking mode")
        ] = None,
        thinking_budget: Annotated[
            int | None, Field(description="Thinking token budget (0-24576)")
        ] = None,
        thinking_budget_level: Annotated[
            str | None,
            Field(description="Predefined thinking budget: none, low, medium or high"),
        ] = None,
        max_tokens: Annotated[
            int | None, Field(description="Maximum output tokens")
        ] = None,
        start_time: Annotated[
            str | None, Field(description="RFC3339 start of the search time range")
        ] = None,
        end_time: Annotated[
            str | None, Field(description="RFC3339 end of the search time range")
        ] = None,
    ) -> CallToolResult:
        return await gemini.search(
            SearchRequest(
                query=query,
                model=model,
                system_prompt=systemPrompt,
                thinking=ThinkingOptions(
                    enabled=enable_thinking,
                    budget=thinking_budget,
                    level=thinking_budget_level,
                ),
                max_tokens=max_tokens,
                start_time=start_time,
                end_time=end_time,
            )
        )

    @mcp.tool(name="models", description="List the available Gemini models.")
    def models() -> CallToolResult:
        return gemini.models()

    for definition in PROMPTS:
        _register_prompt(mcp, definition)

    logger.info(
        "Gemini MCP server ready (model: %s, transport: %s, caching: %s, thinking: %s)",
        settings.model,
        settings.transport,
        settings.enable_caching,
        settings.enable_thinking,
    )
    return mcp


def _register_prompt(mcp: FastMCP, definition: PromptDefinition) -> None:
    def render(
        problem_statement: Annotated[
            str, Field(description="The problem or question to work on")
        ] = "",
    ) -> str:
        return definition.render(problem_statement)

    mcp.prompt(name=definition.name, description=definition.description)(render)
