"""
Global test configuration: environment isolation, markers and shared fixtures.
"""

from contextlib import suppress
import logging
import os

import pytest

from gemini_mcp.config import ServerSettings
from tests.fakes import FakeProviderAdapter


# --- Environment Isolation (Autouse) ---
@pytest.fixture(autouse=True)
def block_dotenv(request, monkeypatch):
    """Prevent python-dotenv from loading project .env files during tests.

    Tests should only see environment that they explicitly set.

    Opt-in escape hatch: mark a test with @pytest.mark.allow_dotenv
    to permit .env loading for that specific test.
    """
    if request.node.get_closest_marker("allow_dotenv"):
        return
    with suppress(Exception):
        monkeypatch.setattr(
            "gemini_mcp.config.api.load_dotenv",
            lambda *_args, **_kwargs: False,
            raising=False,
        )


@pytest.fixture(autouse=True)
def isolate_gemini_env(request, monkeypatch):
    """Ensure a clean GEMINI_* environment for each test.

    - Removes all GEMINI_* variables, GITHUB_TOKEN and debug toggles
    - Leaves other variables intact for stability

    Escape hatches:
      - @pytest.mark.allow_env_pollution: keep current env unchanged
      - tests marked with @pytest.mark.api bypass isolation
    """
    if request.node.get_closest_marker("allow_env_pollution") or (
        "api" in request.node.keywords
    ):
        return

    for key in list(os.environ.keys()):
        if key.startswith("GEMINI_"):
            monkeypatch.delenv(key, raising=False)
    monkeypatch.delenv("GITHUB_TOKEN", raising=False)
    # Avoid DEBUG toggles enabling telemetry
    monkeypatch.delenv("DEBUG", raising=False)


# --- Logging Fixtures ---
@pytest.fixture(scope="session", autouse=True)
def quiet_noisy_libraries():
    """Sets the log level for noisy external libraries to WARNING."""
    logging.getLogger("httpx").setLevel(logging.WARNING)
    logging.getLogger("httpcore").setLevel(logging.WARNING)


def pytest_configure(config):
    """Configure custom markers for test organization."""
    markers = [
        "unit: Fast, isolated unit tests",
        "integration: Component integration tests with mocked APIs",
        "api: Real API integration tests (requires API key)",
        "slow: Tests that take >1 second",
        "allow_dotenv: Permit .env loading for this test",
        "allow_env_pollution: Keep the current environment unchanged",
    ]
    for marker in markers:
        config.addinivalue_line("markers", marker)


def pytest_collection_modifyitems(config, items):  # noqa: ARG001
    """Automatically skip API tests when API key is unavailable."""
    if not (os.getenv("GEMINI_API_KEY") and os.getenv("ENABLE_API_TESTS")):
        skip_api = pytest.mark.skip(
            reason="API tests require GEMINI_API_KEY and ENABLE_API_TESTS=1",
        )
        for item in items:
            if "api" in item.keywords:
                item.add_marker(skip_api)


# --- Core Fixtures ---


@pytest.fixture
def mock_api_key():
    """Provide a consistent, fake API key for tests."""
    return "test_api_key_12345_67890_abcdef_ghijkl"


@pytest.fixture
def settings(mock_api_key, tmp_path):
    """Settings with a fake key and a sandbox rooted in tmp_path."""
    return ServerSettings(api_key=mock_api_key, file_read_base_dir=str(tmp_path))


@pytest.fixture
def fake_adapter():
    """A call-recording provider adapter."""
    return FakeProviderAdapter()
