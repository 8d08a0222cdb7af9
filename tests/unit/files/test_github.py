import asyncio
import base64
import json
from unittest.mock import AsyncMock, patch

import httpx
import pytest

from gemini_mcp.exceptions import ValidationError
from gemini_mcp.files import GitHubFetcher, parse_github_repo

pytestmark = pytest.mark.unit

CONTENTS = "/repos/octo/demo/contents/"


def _fetcher(handler, **overrides):
    options = {
        "transport": httpx.MockTransport(handler),
        "jitter": lambda _low, _high: 1.0,
        "clock": lambda: 1_000.0,
        "max_file_size": 64,
    }
    options.update(overrides)
    return GitHubFetcher(**options)


def _raw(body: bytes, status: int = 200, headers: dict[str, str] | None = None):
    return httpx.Response(
        status,
        content=body,
        headers={"content-type": "application/vnd.github.raw", **(headers or {})},
    )


def _path(request: httpx.Request) -> str:
    return request.url.path.removeprefix(CONTENTS)


@pytest.mark.asyncio
async def test_partial_failure_keeps_successes_and_reports_404():
    def handler(request):
        if _path(request) == "b.py":
            return httpx.Response(404, json={"message": "Not Found"})
        return _raw(f"content of {_path(request)}".encode())

    batch = await _fetcher(handler).fetch("octo/demo", None, ["a.py", "b.py", "c.py"])

    assert [u.name for u in batch.units] == ["a.py", "c.py"]
    assert batch.units[0].content == b"content of a.py"
    assert batch.units[0].mime_type == "text/plain"
    assert len(batch.errors) == 1
    assert batch.errors[0].path == "b.py"
    assert batch.errors[0].status == 404
    assert "not found" in batch.errors[0].message
    assert not batch.all_failed


@pytest.mark.asyncio
async def test_every_path_is_accounted_for_once():
    paths = [f"f{i}.txt" for i in range(7)]

    def handler(request):
        index = int(_path(request)[1])
        if index % 3 == 0:
            return httpx.Response(404)
        return _raw(b"ok")

    batch = await _fetcher(handler).fetch("octo/demo", None, paths)

    seen = [u.name for u in batch.units] + [e.path for e in batch.errors]
    assert sorted(seen) == sorted(paths)


@pytest.mark.asyncio
async def test_request_shape_headers_and_ref():
    seen: list[httpx.Request] = []

    def handler(request):
        seen.append(request)
        return _raw(b"x")

    fetcher = _fetcher(handler, token="ghp_abc")
    await fetcher.fetch("https://github.com/octo/demo.git", "v1.2", ["dir/my file.py"])

    request = seen[0]
    assert request.url.raw_path.startswith(b"/repos/octo/demo/contents/dir/my%20file.py")
    assert request.url.params["ref"] == "v1.2"
    assert request.headers["accept"] == "application/vnd.github.raw+json"
    assert request.headers["authorization"] == "token ghp_abc"


@pytest.mark.asyncio
async def test_json_envelope_is_base64_decoded():
    payload = base64.b64encode(b"hello world").decode()

    def handler(_request):
        return httpx.Response(
            200, json={"content": payload, "encoding": "base64", "size": 11}
        )

    batch = await _fetcher(handler).fetch("octo/demo", None, ["a.txt"])
    assert batch.units[0].content == b"hello world"


@pytest.mark.asyncio
async def test_json_envelope_with_unsupported_encoding_fails():
    def handler(_request):
        return httpx.Response(200, json={"content": "", "encoding": "none"})

    batch = await _fetcher(handler).fetch("octo/demo", None, ["big.bin"])
    assert "unsupported encoding for big.bin: none" in batch.errors[0].message


@pytest.mark.asyncio
async def test_size_cap_accepts_exact_limit_and_rejects_one_more():
    def handler(request):
        return _raw(b"x" * (64 if _path(request) == "exact.txt" else 65))

    batch = await _fetcher(handler).fetch("octo/demo", None, ["exact.txt", "over.txt"])
    assert [u.name for u in batch.units] == ["exact.txt"]
    assert batch.errors[0].path == "over.txt"
    assert "too large" in batch.errors[0].message


@pytest.mark.asyncio
async def test_envelope_declared_size_over_cap_is_rejected():
    def handler(_request):
        return httpx.Response(
            200,
            content=json.dumps(
                {"content": base64.b64encode(b"x").decode(), "encoding": "base64", "size": 10_000}
            ).encode(),
            headers={"content-type": "application/json; charset=utf-8"},
        )

    batch = await _fetcher(handler).fetch("octo/demo", None, ["a.txt"])
    assert "file a.txt is too large: 10000 bytes, limit is 64" in batch.errors[0].message


@pytest.mark.asyncio
async def test_server_errors_are_retried_with_exponential_backoff():
    calls = 0

    def handler(_request):
        nonlocal calls
        calls += 1
        return httpx.Response(503) if calls < 3 else _raw(b"finally")

    with patch("asyncio.sleep", new_callable=AsyncMock) as sleep:
        batch = await _fetcher(handler, initial_backoff=1.0).fetch(
            "octo/demo", None, ["a.py"]
        )

    assert calls == 3
    assert batch.units[0].content == b"finally"
    assert [c.args[0] for c in sleep.await_args_list] == [1.0, 2.0]


@pytest.mark.asyncio
async def test_gives_up_after_three_attempts():
    calls = 0

    def handler(_request):
        nonlocal calls
        calls += 1
        return httpx.Response(500)

    with patch("asyncio.sleep", new_callable=AsyncMock):
        batch = await _fetcher(handler).fetch("octo/demo", None, ["a.py"])

    assert calls == 3
    assert batch.all_failed
    assert batch.errors[0].status == 500


@pytest.mark.asyncio
async def test_transport_errors_are_retried():
    calls = 0

    def handler(request):
        nonlocal calls
        calls += 1
        if calls == 1:
            raise httpx.ConnectError("connection refused", request=request)
        return _raw(b"ok")

    with patch("asyncio.sleep", new_callable=AsyncMock):
        batch = await _fetcher(handler).fetch("octo/demo", None, ["a.py"])

    assert calls == 2
    assert batch.units[0].content == b"ok"


@pytest.mark.asyncio
async def test_short_rate_limit_waits_for_retry_after():
    calls = 0

    def handler(_request):
        nonlocal calls
        calls += 1
        if calls == 1:
            return httpx.Response(429, headers={"retry-after": "2"})
        return _raw(b"ok")

    with patch("asyncio.sleep", new_callable=AsyncMock) as sleep:
        batch = await _fetcher(handler).fetch("octo/demo", None, ["a.py"])

    assert batch.units
    sleep.assert_awaited_once_with(2.0)


@pytest.mark.asyncio
async def test_long_rate_limit_fails_without_retrying():
    calls = 0

    def handler(_request):
        nonlocal calls
        calls += 1
        return httpx.Response(
            403,
            headers={"x-ratelimit-remaining": "0", "x-ratelimit-reset": "4600"},
        )

    with patch("asyncio.sleep", new_callable=AsyncMock) as sleep:
        batch = await _fetcher(handler).fetch("octo/demo", None, ["a.py"])

    assert calls == 1
    sleep.assert_not_awaited()
    message = batch.errors[0].message
    assert message.startswith("rate limit exceeded for GitHub API - try again later")
    assert "resets in 3600s" in message


@pytest.mark.parametrize(
    ("status", "token", "fragment"),
    [
        (404, None, "repository 'octo/demo' not found or private (no GitHub token configured)"),
        (404, "ghp_x", "file 'a.py' not found in repository 'octo/demo' (ref: main)"),
        (401, "ghp_x", "authentication failed - check GitHub token permissions for 'octo/demo'"),
        (403, "ghp_x", "access denied to 'octo/demo' - token may lack required permissions"),
        (418, None, "GitHub API error for a.py: status 418"),
    ],
)
@pytest.mark.asyncio
async def test_client_errors_are_not_retried_and_explain_the_cause(status, token, fragment):
    calls = 0

    def handler(_request):
        nonlocal calls
        calls += 1
        return httpx.Response(status)

    batch = await _fetcher(handler, token=token).fetch("octo/demo", "main", ["a.py"])
    assert calls == 1
    assert fragment in batch.errors[0].message


@pytest.mark.asyncio
async def test_too_many_files_is_rejected_before_any_request():
    def handler(_request):
        raise AssertionError("no request expected")

    with pytest.raises(ValidationError, match="too many files"):
        await _fetcher(handler, max_files=2).fetch("octo/demo", None, ["a", "b", "c"])


@pytest.mark.parametrize("path", ["../../../user", "src/../../secrets", "/abs.py"])
@pytest.mark.asyncio
async def test_paths_outside_the_repository_are_rejected_before_any_request(path):
    seen: list[str] = []

    def handler(request):
        seen.append(request.url.path)
        return _raw(b"leaked")

    with pytest.raises(ValidationError, match="Path must be relative and within"):
        await _fetcher(handler, token="tok").fetch("octo/demo", None, ["a.py", path])
    assert seen == []


@pytest.mark.asyncio
async def test_corrupt_content_encoding_fails_only_that_file():
    def handler(request):
        if _path(request) == "b.py":
            return httpx.Response(
                200, content=b"not gzip at all", headers={"content-encoding": "gzip"}
            )
        return _raw(b"ok")

    batch = await _fetcher(handler).fetch("octo/demo", None, ["a.py", "b.py", "c.py"])

    assert [u.name for u in batch.units] == ["a.py", "c.py"]
    assert [e.path for e in batch.errors] == ["b.py"]
    assert "failed to fetch b.py" in batch.errors[0].message


@pytest.mark.asyncio
async def test_cancellation_during_backoff_aborts_promptly():
    first_attempt = asyncio.Event()

    async def handler(_request):
        first_attempt.set()
        return httpx.Response(503)

    fetcher = _fetcher(handler, initial_backoff=30.0, max_backoff=30.0)
    task = asyncio.create_task(fetcher.fetch("octo/demo", None, ["a.py"]))
    await asyncio.wait_for(first_attempt.wait(), timeout=1)
    await asyncio.sleep(0.01)

    loop = asyncio.get_running_loop()
    started = loop.time()
    task.cancel()
    with pytest.raises(asyncio.CancelledError):
        await task
    assert loop.time() - started < 1.0


@pytest.mark.asyncio
async def test_at_most_four_requests_in_flight():
    in_flight = 0
    peak = 0

    async def handler(_request):
        nonlocal in_flight, peak
        in_flight += 1
        peak = max(peak, in_flight)
        await asyncio.sleep(0.01)
        in_flight -= 1
        return _raw(b"ok")

    paths = [f"f{i}.txt" for i in range(10)]
    batch = await _fetcher(handler).fetch("octo/demo", None, paths)

    assert len(batch.units) == 10
    assert peak == 4


def test_backoff_is_capped_and_jittered():
    fetcher = GitHubFetcher(initial_backoff=1.0, max_backoff=5.0, jitter=lambda lo, hi: hi)
    assert fetcher.backoff_delay(0) == pytest.approx(1.5)
    assert fetcher.backoff_delay(1) == pytest.approx(3.0)
    assert fetcher.backoff_delay(5) == pytest.approx(7.5)


@pytest.mark.parametrize(
    "value",
    [
        "octo/demo",
        "https://github.com/octo/demo",
        "https://github.com/octo/demo.git",
        "git@github.com:octo/demo.git",
    ],
)
def test_parse_github_repo_forms(value):
    assert parse_github_repo(value) == ("octo", "demo")


@pytest.mark.parametrize("value", ["demo", "octo/", "https://github.com/octo"])
def test_parse_github_repo_rejects_incomplete(value):
    with pytest.raises(ValidationError):
        parse_github_repo(value)
