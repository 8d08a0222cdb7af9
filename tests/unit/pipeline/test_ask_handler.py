import logging
from unittest.mock import AsyncMock, MagicMock

from google.genai import types
import httpx
import pytest

from gemini_mcp import constants
from gemini_mcp.config import ServerSettings
from gemini_mcp.core.types import (
    AskRequest,
    Failure,
    FileRefPart,
    Success,
    TextPart,
    ThinkingOptions,
)
from gemini_mcp.exceptions import APIError, SourceError, ValidationError
from gemini_mcp.pipeline.adapters.gemini import GoogleGenAIAdapter
from gemini_mcp.server import GeminiMCPServer
from tests.fakes import FakeProviderAdapter

pytestmark = pytest.mark.unit

PRO = "gemini-2.5-pro-preview-06-05"


def _github(files: dict[str, bytes]) -> httpx.MockTransport:
    def handler(request: httpx.Request) -> httpx.Response:
        path = request.url.path.split("/contents/", 1)[1]
        if path in files:
            return httpx.Response(200, content=files[path])
        return httpx.Response(404)

    return httpx.MockTransport(handler)


def _server(adapter, tmp_path, *, github=None, **overrides):
    options = {"api_key": "k", "file_read_base_dir": str(tmp_path)}
    options.update(overrides)
    return GeminiMCPServer(
        ServerSettings(**options), adapter=adapter, github_transport=github
    )


@pytest.fixture
def workspace(tmp_path):
    (tmp_path / "main.py").write_text("def main():\n    pass\n", encoding="utf-8")
    (tmp_path / "logo.svg").write_text("<svg/>", encoding="utf-8")
    return tmp_path


@pytest.mark.parametrize("query", ["", "   "])
@pytest.mark.asyncio
async def test_empty_query_is_rejected(fake_adapter, tmp_path, query):
    server = _server(fake_adapter, tmp_path)
    result = await server.ask_handler.handle(AskRequest(query=query))
    assert isinstance(result, Failure)
    assert isinstance(result.error, ValidationError)
    assert str(result.error) == "query must be a string and cannot be empty"
    assert fake_adapter.generate_calls == []


@pytest.mark.asyncio
async def test_plain_query_uses_configured_defaults(fake_adapter, tmp_path):
    server = _server(fake_adapter, tmp_path)
    result = await server.ask_handler.handle(AskRequest(query="Explain monads"))

    assert isinstance(result, Success)
    assert result.value.text == "ok"
    call = fake_adapter.generate_calls[0]
    assert call["model"] == PRO
    assert call["parts"] == (TextPart(text="Explain monads"),)
    assert call["cfg"] == {
        "system_instruction": constants.DEFAULT_SYSTEM_PROMPT,
        "temperature": pytest.approx(0.4),
        "max_output_tokens": int(1_048_576 * 0.75),
        "thinking_budget": 4096,
    }


@pytest.mark.asyncio
async def test_invalid_model_falls_back_to_default(fake_adapter, tmp_path, caplog):
    server = _server(fake_adapter, tmp_path)
    with caplog.at_level(logging.WARNING):
        result = await server.ask_handler.handle(
            AskRequest(query="q", model="gpt-4", system_prompt="custom")
        )
    assert isinstance(result, Success)
    assert fake_adapter.generate_calls[0]["model"] == PRO
    assert fake_adapter.generate_calls[0]["cfg"]["system_instruction"] == "custom"
    assert "invalid model ID: gpt-4" in caplog.text


@pytest.mark.asyncio
async def test_request_thinking_and_max_tokens(fake_adapter, tmp_path):
    server = _server(fake_adapter, tmp_path)
    await server.ask_handler.handle(
        AskRequest(
            query="q",
            model="gemini-2.5-flash",
            thinking=ThinkingOptions(level="medium", budget=10),
            max_tokens=1234,
        )
    )
    cfg = fake_adapter.generate_calls[0]["cfg"]
    assert fake_adapter.generate_calls[0]["model"] == "gemini-2.5-flash-preview-05-20"
    assert cfg["thinking_budget"] == 16384
    assert cfg["max_output_tokens"] == 1234


@pytest.mark.asyncio
async def test_local_files_are_uploaded_and_referenced(fake_adapter, workspace):
    server = _server(fake_adapter, workspace)
    result = await server.ask_handler.handle(
        AskRequest(query="Review", file_paths=("main.py",))
    )

    assert isinstance(result, Success)
    parts = fake_adapter.generate_calls[0]["parts"]
    assert parts[0] == TextPart(text="Review")
    assert isinstance(parts[1], FileRefPart)
    assert parts[1].uri.endswith("files/file-1")
    assert parts[1].mime_type == "text/plain"


@pytest.mark.asyncio
async def test_failed_upload_is_inlined_as_text(fake_adapter, workspace):
    server = _server(fake_adapter, workspace)
    await server.ask_handler.handle(
        AskRequest(query="Review", file_paths=("logo.svg", "main.py"))
    )
    parts = fake_adapter.generate_calls[0]["parts"]
    # image/svg+xml is outside the default allow list
    assert parts[1] == TextPart(text="<svg/>")
    assert isinstance(parts[2], FileRefPart)


@pytest.mark.parametrize(
    ("request_", "message"),
    [
        (
            AskRequest(query="q", file_paths=("a.py",), github_repo="o/r", github_files=("b.py",)),
            "Cannot use both 'file_paths' and 'github_files' in the same request.",
        ),
        (
            AskRequest(query="q", github_files=("b.py",)),
            "'github_repo' is required when using 'github_files'.",
        ),
    ],
)
@pytest.mark.asyncio
async def test_file_source_rules(fake_adapter, tmp_path, request_, message):
    result = await _server(fake_adapter, tmp_path).ask_handler.handle(request_)
    assert isinstance(result, Failure)
    assert str(result.error) == message


@pytest.mark.asyncio
async def test_file_paths_rejected_over_http(fake_adapter, workspace):
    server = _server(fake_adapter, workspace, transport="http")
    result = await server.ask_handler.handle(
        AskRequest(query="q", file_paths=("main.py",))
    )
    assert isinstance(result, Failure)
    assert str(result.error) == (
        "'file_paths' is not supported in HTTP transport mode. "
        "Use 'github_files' instead."
    )


@pytest.mark.asyncio
async def test_github_partial_failure_continues_with_successes(fake_adapter, tmp_path):
    github = _github({"a.py": b"a = 1", "c.py": b"c = 3"})
    server = _server(fake_adapter, tmp_path, github=github)
    result = await server.ask_handler.handle(
        AskRequest(
            query="q", github_repo="octo/demo", github_files=("a.py", "b.py", "c.py")
        )
    )
    assert isinstance(result, Success)
    assert [u.name for u in fake_adapter.uploads] == ["a.py", "c.py"]


@pytest.mark.asyncio
async def test_github_total_failure_lists_every_file(fake_adapter, tmp_path):
    server = _server(fake_adapter, tmp_path, github=_github({}))
    result = await server.ask_handler.handle(
        AskRequest(query="q", github_repo="octo/demo", github_files=("a.py", "b.py"))
    )
    assert isinstance(result, Failure)
    assert isinstance(result.error, SourceError)
    assert "a.py" in str(result.error)
    assert "b.py" in str(result.error)
    assert fake_adapter.generate_calls == []


@pytest.mark.parametrize("path", ["../../../user", "/etc/passwd"])
@pytest.mark.asyncio
async def test_github_paths_must_stay_inside_the_repository(fake_adapter, tmp_path, path):
    seen: list[str] = []

    def handler(request: httpx.Request) -> httpx.Response:
        seen.append(request.url.path)
        return httpx.Response(200, content=b"{}")

    server = _server(
        fake_adapter,
        tmp_path,
        github=httpx.MockTransport(handler),
        github_token="operator-token",
    )
    result = await server.ask_handler.handle(
        AskRequest(query="q", github_repo="octo/demo", github_files=("a.py", path))
    )

    assert isinstance(result, Failure)
    assert isinstance(result.error, ValidationError)
    assert str(result.error) == (
        f"invalid file path: {path}. Path must be relative and within the repository"
    )
    assert seen == []
    assert fake_adapter.generate_calls == []


@pytest.mark.asyncio
async def test_cache_path_generates_against_the_cache(fake_adapter, workspace):
    server = _server(fake_adapter, workspace, enable_thinking=False)
    result = await server.ask_handler.handle(
        AskRequest(query="Review", file_paths=("main.py",), use_cache=True, cache_ttl="5m")
    )

    assert isinstance(result, Success)
    created = fake_adapter.created_caches[0]
    assert created["model"] == PRO
    assert created["ttl_seconds"] == 300
    assert created["parts"][-1] == TextPart(text="Review")
    assert len(fake_adapter.generate_calls) == 1
    call = fake_adapter.generate_calls[0]
    assert call["model"] == PRO
    assert call["cfg"]["cached_content"] == "cachedContents/cache-2"
    assert "system_instruction" not in call["cfg"]
    assert call["parts"] == (TextPart(text="Review"),)


@pytest.mark.asyncio
async def test_thinking_disables_caching(fake_adapter, workspace, caplog):
    server = _server(fake_adapter, workspace)
    with caplog.at_level(logging.WARNING):
        result = await server.ask_handler.handle(
            AskRequest(query="q", file_paths=("main.py",), use_cache=True)
        )
    assert isinstance(result, Success)
    assert fake_adapter.created_caches == []
    assert "cached_content" not in fake_adapter.generate_calls[0]["cfg"]
    assert fake_adapter.generate_calls[0]["cfg"]["thinking_budget"] == 4096
    assert "cannot be used together" in caplog.text


@pytest.mark.asyncio
async def test_model_without_caching_never_reaches_cache_registry(
    fake_adapter, workspace, caplog, monkeypatch
):
    server = _server(fake_adapter, workspace, enable_thinking=False)
    create = AsyncMock()
    monkeypatch.setattr(server.caches, "create", create)

    with caplog.at_level(logging.WARNING):
        result = await server.ask_handler.handle(
            AskRequest(
                query="q",
                model="gemini-2.5-flash-lite",
                file_paths=("main.py",),
                use_cache=True,
            )
        )

    assert isinstance(result, Success)
    create.assert_not_awaited()
    assert (
        "Model gemini-2.5-flash-lite-preview-06-17 does not support caching, "
        "falling back to regular request"
    ) in caplog.text
    assert len(fake_adapter.generate_calls) == 1


@pytest.mark.asyncio
async def test_caching_disabled_globally_goes_direct(fake_adapter, workspace):
    server = _server(fake_adapter, workspace, enable_thinking=False, enable_caching=False)
    await server.ask_handler.handle(
        AskRequest(query="q", file_paths=("main.py",), use_cache=True)
    )
    assert fake_adapter.created_caches == []


@pytest.mark.asyncio
async def test_cache_failure_falls_through_to_direct(workspace):
    adapter = FakeProviderAdapter(cache_error=APIError("quota exceeded"))
    server = _server(adapter, workspace, enable_thinking=False)
    result = await server.ask_handler.handle(
        AskRequest(query="q", file_paths=("main.py",), use_cache=True)
    )
    assert isinstance(result, Success)
    assert result.value.text == "ok"
    assert "cached_content" not in adapter.generate_calls[-1]["cfg"]


@pytest.mark.asyncio
async def test_cached_generation_failure_falls_through(workspace):
    adapter = FakeProviderAdapter(cached_generate_error=APIError("cache gone"))
    server = _server(adapter, workspace, enable_thinking=False)
    result = await server.ask_handler.handle(
        AskRequest(query="q", file_paths=("main.py",), use_cache=True)
    )
    assert isinstance(result, Success)
    assert len(adapter.generate_calls) == 2


@pytest.mark.asyncio
async def test_direct_error_reports_cache_error_too(workspace):
    adapter = FakeProviderAdapter(
        cache_error=APIError("quota exceeded"), generate_error=APIError("500 INTERNAL")
    )
    server = _server(adapter, workspace, enable_thinking=False)
    result = await server.ask_handler.handle(
        AskRequest(query="q", file_paths=("main.py",), use_cache=True)
    )
    assert isinstance(result, Success)
    assert result.value.is_error
    text = result.value.text
    assert text.startswith("Error from Gemini API: 500 INTERNAL")
    assert "\nCache error: failed to create cached content: quota exceeded" in text


@pytest.mark.asyncio
async def test_upstream_error_without_cache_attempt(tmp_path):
    adapter = FakeProviderAdapter(generate_error=APIError("403 PERMISSION_DENIED"))
    result = await _server(adapter, tmp_path).ask_handler.handle(AskRequest(query="q"))
    assert isinstance(result, Success)
    assert result.value.is_error
    assert result.value.text == "Error from Gemini API: 403 PERMISSION_DENIED"


@pytest.mark.asyncio
async def test_unexpected_errors_are_normalized(fake_adapter, tmp_path, monkeypatch):
    server = _server(fake_adapter, tmp_path)
    monkeypatch.setattr(
        server.ask_handler, "_ask", AsyncMock(side_effect=RuntimeError("kaboom"))
    )
    result = await server.ask_handler.handle(AskRequest(query="q"))
    assert isinstance(result, Failure)
    assert isinstance(result.error, APIError)
    assert "kaboom" in str(result.error)




def _timing_out_gemini() -> GoogleGenAIAdapter:
    client = MagicMock()
    client.aio.files.upload = AsyncMock(side_effect=httpx.ReadTimeout("upload timed out"))
    client.aio.models.generate_content = AsyncMock(
        return_value=types.GenerateContentResponse(
            candidates=[
                types.Candidate(
                    content=types.Content(role="model", parts=[types.Part(text="ok")])
                )
            ]
        )
    )
    adapter = GoogleGenAIAdapter("test-key")
    adapter._client = client
    return adapter


@pytest.mark.parametrize("use_cache", [False, True])
@pytest.mark.asyncio
async def test_upload_timeout_falls_back_to_inline_content(workspace, use_cache):
    adapter = _timing_out_gemini()
    server = _server(adapter, workspace, enable_thinking=False)

    result = await server.ask_handler.handle(
        AskRequest(query="Review", file_paths=("main.py",), use_cache=use_cache)
    )

    assert isinstance(result, Success)
    assert result.value.text == "ok"
    generate = adapter._client.aio.models.generate_content
    generate.assert_awaited_once()
    parts = generate.await_args.kwargs["contents"][0].parts
    assert [p.text for p in parts] == ["Review", "def main():\n    pass\n"]
    adapter._client.aio.caches.create.assert_not_called()
