"""Shared test fixtures for ovrmnd.

Provides isolated config/cache directories, sample service configurations,
a controllable clock, recording mock transports and a CLI runner.  These
fixtures are discovered by pytest and available to every test module.
"""

from __future__ import annotations

import json
import logging
from pathlib import Path
from typing import Any, Callable

import httpx
import pytest

from ovrmnd.models import ServiceConfig
from ovrmnd.output import reset_output


# ---------------------------------------------------------------------------
# Auto-reset global output state between tests
# ---------------------------------------------------------------------------


@pytest.fixture(autouse=True)
def _reset_output_between_tests() -> None:
    """Reset the global OutputManager after every test.

    The OutputManager caches references to sys.stdout/sys.stderr at
    creation time.  When Typer's CliRunner redirects those streams and the
    test finishes, the cached references become stale.  Resetting forces a
    fresh manager on next use.  The ``ovrmnd`` logger is restored for the
    same reason, and so that ``caplog`` sees its records again.
    """
    yield
    reset_output()
    logger = logging.getLogger("ovrmnd")
    for handler in list(logger.handlers):
        logger.removeHandler(handler)
    logger.propagate = True
    logger.setLevel(logging.NOTSET)


# ---------------------------------------------------------------------------
# Config isolation
# ---------------------------------------------------------------------------


@pytest.fixture
def isolated_config(tmp_path: Path, monkeypatch: pytest.MonkeyPatch) -> Path:
    """Point XDG config and cache directories into *tmp_path* and chdir there.

    Returns:
        The tmp_path root for additional file creation.
    """
    monkeypatch.setenv("XDG_CONFIG_HOME", str(tmp_path / "config"))
    monkeypatch.setenv("XDG_CACHE_HOME", str(tmp_path / "cache"))
    monkeypatch.setattr("ovrmnd.config._is_xdg_platform", lambda: True)
    monkeypatch.chdir(tmp_path)
    return tmp_path


# ---------------------------------------------------------------------------
# Clock
# ---------------------------------------------------------------------------


class FakeClock:
    """Epoch-millisecond clock advanced by hand."""

    def __init__(self, start: int = 1_700_000_000_000) -> None:
        self.now = start

    def __call__(self) -> int:
        return self.now

    def advance(self, seconds: float) -> None:
        self.now += int(seconds * 1000)


@pytest.fixture
def clock() -> FakeClock:
    return FakeClock()


# ---------------------------------------------------------------------------
# Sample services
# ---------------------------------------------------------------------------


GITHUB_SERVICE: dict[str, Any] = {
    "serviceName": "github",
    "baseUrl": "https://api.github.com",
    "authentication": {"type": "bearer", "token": "ghp_secret_token_value"},
    "endpoints": [
        {
            "name": "getRepo",
            "method": "GET",
            "path": "/repos/{owner}/{repo}",
            "cacheTTL": 300,
        },
        {
            "name": "listIssues",
            "method": "GET",
            "path": "/repos/{owner}/{repo}/issues",
            "cacheTTL": 60,
            "defaultParams": {"state": "open", "per_page": 30},
            "transform": {"fields": ["items[*].id", "items[*].name"]},
        },
        {
            "name": "createIssue",
            "method": "POST",
            "path": "/repos/{owner}/{repo}/issues",
        },
        {
            "name": "getUser",
            "method": "GET",
            "path": "/users/{username}",
        },
    ],
    "aliases": [
        {
            "name": "my-repo",
            "endpoint": "getRepo",
            "args": {"owner": "octocat", "repo": "hello-world"},
        }
    ],
}


SHOP_SERVICE: dict[str, Any] = {
    "serviceName": "shop",
    "baseUrl": "https://shop.example.com",
    "apiType": "graphql",
    "graphqlEndpoint": "/graphql",
    "authentication": {"type": "apikey", "token": "shpat_123", "header": "X-Shop-Token"},
    "graphqlOperations": [
        {
            "name": "getProduct",
            "operationType": "query",
            "query": "query GetProduct($id: ID!) { product(id: $id) { id title } }",
            "variables": {"currency": "EUR"},
            "cacheTTL": 120,
            "transform": {"rename": {"product.title": "product.name"}},
        },
        {
            "name": "createProduct",
            "operationType": "mutation",
            "query": "mutation CreateProduct($title: String!) { create(title: $title) { id } }",
            "cacheTTL": 120,
        },
    ],
}


@pytest.fixture
def github_raw() -> dict[str, Any]:
    return json.loads(json.dumps(GITHUB_SERVICE))


@pytest.fixture
def github_service(github_raw: dict[str, Any]) -> ServiceConfig:
    return ServiceConfig.model_validate(github_raw)


@pytest.fixture
def shop_raw() -> dict[str, Any]:
    return json.loads(json.dumps(SHOP_SERVICE))


@pytest.fixture
def shop_service(shop_raw: dict[str, Any]) -> ServiceConfig:
    return ServiceConfig.model_validate(shop_raw)


# ---------------------------------------------------------------------------
# Transports
# ---------------------------------------------------------------------------


class RecordingHandler:
    """MockTransport handler that records requests and replies from a callable."""

    def __init__(self, reply: Callable[[httpx.Request], httpx.Response]) -> None:
        self._reply = reply
        self.requests: list[httpx.Request] = []

    def __call__(self, request: httpx.Request) -> httpx.Response:
        self.requests.append(request)
        return self._reply(request)

    @property
    def calls(self) -> int:
        return len(self.requests)


@pytest.fixture
def recording_handler() -> Callable[..., RecordingHandler]:
    """Factory for :class:`RecordingHandler`.

    ``recording_handler(data, status_code=200)`` replies with *data* as JSON
    to every request; ``recording_handler(fn)`` delegates to *fn*.
    """

    def make(reply: Any, status_code: int = 200) -> RecordingHandler:
        if callable(reply):
            return RecordingHandler(reply)
        return RecordingHandler(
            lambda request: httpx.Response(status_code, json=reply)
        )

    return make


@pytest.fixture
def cli_runner():
    """Typer CLI test runner."""
    from typer.testing import CliRunner

    return CliRunner()
