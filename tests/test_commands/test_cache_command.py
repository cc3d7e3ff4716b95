"""Tests for the ``ovrmnd cache`` command group."""

from __future__ import annotations

import json
from pathlib import Path

import pytest

from ovrmnd.app import app
from ovrmnd.cache import CacheStore
from ovrmnd.commands.cache import format_bytes, format_duration
from ovrmnd.config import resolve_cache_dir
from ovrmnd.models import CacheConfig, CacheMetadata


@pytest.fixture
def populated_cache(isolated_config: Path) -> Path:
    directory = resolve_cache_dir(CacheConfig())
    with CacheStore(directory) as store:
        for service, endpoint, ttl in (
            ("github", "getRepo", 300),
            ("github", "listIssues", 300),
            ("shop", "getProduct", 300),
        ):
            store.set(
                f"{service}.{endpoint}.0123456789abcdef",
                {"service": service},
                ttl,
                CacheMetadata(service=service, endpoint=endpoint, url=f"https://{service}/{endpoint}"),
            )
    return directory


def _count(directory: Path) -> int:
    with CacheStore(directory) as store:
        return store.stats().total_entries


class TestFormatting:
    @pytest.mark.parametrize(
        "size, expected", [(512, "512 B"), (1536, "1.5 KB"), (2 * 1024 * 1024, "2.0 MB")]
    )
    def test_format_bytes(self, size: int, expected: str) -> None:
        assert format_bytes(size) == expected

    @pytest.mark.parametrize(
        "seconds, expected", [(45, "45s"), (200, "3m 20s"), (7500, "2h 5m")]
    )
    def test_format_duration(self, seconds: int, expected: str) -> None:
        assert format_duration(seconds) == expected


class TestCacheClear:
    def test_clear_all_forced(self, cli_runner, populated_cache: Path) -> None:
        result = cli_runner.invoke(app, ["--plain", "--no-color", "cache", "clear", "--force"])
        assert result.exit_code == 0, result.output
        assert "Cleared 3 cache entries" in result.output
        assert _count(populated_cache) == 0

    def test_clear_service(self, cli_runner, populated_cache: Path) -> None:
        result = cli_runner.invoke(app, ["--json", "cache", "clear", "github"])
        assert result.exit_code == 0, result.output
        assert json.loads(result.stdout) == {"action": "clear", "target": "github", "cleared": 2}
        assert _count(populated_cache) == 1

    def test_clear_endpoint(self, cli_runner, populated_cache: Path) -> None:
        result = cli_runner.invoke(app, ["--json", "cache", "clear", "github.getRepo"])
        assert json.loads(result.stdout)["cleared"] == 1

    def test_confirmation_declined(self, cli_runner, populated_cache: Path) -> None:
        result = cli_runner.invoke(app, ["--plain", "--no-color", "cache", "clear"], input="n\n")
        assert result.exit_code == 0
        assert "Cancelled" in result.output
        assert _count(populated_cache) == 3

    def test_confirmation_accepted(self, cli_runner, populated_cache: Path) -> None:
        result = cli_runner.invoke(app, ["--plain", "--no-color", "cache", "clear"], input="y\n")
        assert result.exit_code == 0
        assert _count(populated_cache) == 0

    def test_nothing_to_clear(self, cli_runner, isolated_config: Path) -> None:
        result = cli_runner.invoke(app, ["--plain", "--no-color", "cache", "clear", "-f"])
        assert result.exit_code == 0
        assert "No cache entries to clear" in result.output


class TestCacheStats:
    def test_json(self, cli_runner, populated_cache: Path) -> None:
        result = cli_runner.invoke(app, ["--json", "cache", "stats"])
        assert result.exit_code == 0, result.output
        stats = json.loads(result.stdout)
        assert stats["total_entries"] == 3
        assert stats["by_service"]["github"]["entries"] == 2
        assert stats["by_service"]["shop"]["entries"] == 1

    def test_plain(self, cli_runner, populated_cache: Path) -> None:
        result = cli_runner.invoke(app, ["--plain", "--no-color", "cache", "stats"])
        assert result.exit_code == 0, result.output
        assert "Total entries\t3" in result.output
        assert "github\t2" in result.output

    def test_empty(self, cli_runner, isolated_config: Path) -> None:
        result = cli_runner.invoke(app, ["--json", "cache", "stats"])
        assert json.loads(result.stdout)["total_entries"] == 0


class TestCacheList:
    def test_json(self, cli_runner, populated_cache: Path) -> None:
        result = cli_runner.invoke(app, ["--json", "cache", "list"])
        assert result.exit_code == 0, result.output
        entries = json.loads(result.stdout)["entries"]
        assert {f"{e['service']}.{e['endpoint']}" for e in entries} == {
            "github.getRepo",
            "github.listIssues",
            "shop.getProduct",
        }

    def test_filter(self, cli_runner, populated_cache: Path) -> None:
        result = cli_runner.invoke(app, ["--json", "cache", "list", "shop"])
        entries = json.loads(result.stdout)["entries"]
        assert [e["endpoint"] for e in entries] == ["getProduct"]

    def test_plain_table(self, cli_runner, populated_cache: Path) -> None:
        result = cli_runner.invoke(app, ["--plain", "--no-color", "cache", "list"])
        assert result.exit_code == 0, result.output
        assert "Endpoint\tURL\tAge\tTTL left\tSize" in result.output
        assert "https://shop/getProduct" in result.output

    def test_empty(self, cli_runner, isolated_config: Path) -> None:
        result = cli_runner.invoke(app, ["--plain", "--no-color", "cache", "list"])
        assert result.exit_code == 0
        assert "No cached entries found" in result.output
