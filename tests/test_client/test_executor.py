"""Tests for the REST request executor: URL building, errors, caching."""

from __future__ import annotations

import json
from pathlib import Path

import httpx
import pytest

from ovrmnd.cache import CacheStore
from ovrmnd.client import ExecutionStage, HttpTransport, RequestExecutor
from ovrmnd.client.executor import build_url, join_url
from ovrmnd.exceptions import exit_code_for
from ovrmnd.models import MappedRequest, ParamHints, RenameStep, ServiceConfig


@pytest.fixture
def store(tmp_path: Path, clock) -> CacheStore:
    with CacheStore(tmp_path / "cache", clock=clock) as cache:
        yield cache


def _executor(handler, store=None, clock=None) -> RequestExecutor:
    transport = HttpTransport(transport=httpx.MockTransport(handler))
    return RequestExecutor(transport, cache=store, clock=clock)


# ---------------------------------------------------------------------------
# URL helpers
# ---------------------------------------------------------------------------


class TestBuildUrl:
    def test_join_single_slash(self) -> None:
        assert join_url("https://a.test/", "/x") == "https://a.test/x"
        assert join_url("https://a.test", "x") == "https://a.test/x"
        assert join_url("https://a.test/", "") == "https://a.test"

    def test_path_values_encoded(self) -> None:
        url = build_url("https://a.test", "/files/{name}", {"name": "dir/a b"})
        assert url == "https://a.test/files/dir%2Fa%20b"

    def test_query_sorted(self) -> None:
        url = build_url("https://a.test", "/x", {}, {"z": "1", "a": "2"})
        assert url == "https://a.test/x?a=2&z=1"

    def test_query_lists_repeat(self) -> None:
        url = build_url("https://a.test", "/x", {}, {"tag": ["a", "b"]})
        assert url == "https://a.test/x?tag=a&tag=b"

    def test_base_path_kept(self) -> None:
        url = build_url("https://a.test/v2/", "/users/{id}", {"id": "7"})
        assert url == "https://a.test/v2/users/7"


# ---------------------------------------------------------------------------
# Execution
# ---------------------------------------------------------------------------


class TestExecute:
    def test_success(self, github_service: ServiceConfig, recording_handler) -> None:
        handler = recording_handler({"full_name": "octocat/hello"})
        executor = _executor(handler)
        result = executor.execute(
            github_service, github_service.find_endpoint("getRepo"), {"owner": "octocat", "repo": "hello"}
        )
        assert result.success
        assert result.data == {"full_name": "octocat/hello"}
        assert result.metadata.cached is False
        assert result.metadata.status_code == 200

        sent = handler.requests[0]
        assert str(sent.url) == "https://api.github.com/repos/octocat/hello"
        assert sent.headers["authorization"] == "Bearer ghp_secret_token_value"
        assert sent.headers["accept"] == "application/json"

    def test_query_defaults_and_transform(self, github_service: ServiceConfig, recording_handler) -> None:
        handler = recording_handler({"items": [{"id": 1, "name": "a", "body": "..."}], "count": 1})
        executor = _executor(handler)
        result = executor.execute(
            github_service,
            github_service.find_endpoint("listIssues"),
            {"owner": "o", "repo": "r", "state": "closed"},
        )
        assert result.data == {"items": [{"id": 1, "name": "a"}]}
        assert handler.requests[0].url.params["state"] == "closed"
        assert handler.requests[0].url.params["per_page"] == "30"

    def test_no_transform_returns_raw(self, github_service: ServiceConfig, recording_handler) -> None:
        raw = {"items": [{"id": 1, "name": "a", "body": "..."}]}
        executor = _executor(recording_handler(raw))
        result = executor.execute(
            github_service,
            github_service.find_endpoint("listIssues"),
            {"owner": "o", "repo": "r"},
            apply_transform=False,
        )
        assert result.data == raw

    def test_post_sends_json_body(self, github_service: ServiceConfig, recording_handler) -> None:
        handler = recording_handler({"number": 5}, status_code=201)
        executor = _executor(handler)
        result = executor.execute(
            github_service,
            github_service.find_endpoint("createIssue"),
            {"owner": "o", "repo": "r", "title": "Bug", "labels": ["x"]},
        )
        assert result.success
        sent = handler.requests[0]
        assert sent.method == "POST"
        assert json.loads(sent.content) == {"title": "Bug", "labels": ["x"]}

    def test_header_hint_sent(self, github_service: ServiceConfig, recording_handler) -> None:
        handler = recording_handler({})
        executor = _executor(handler)
        executor.execute(
            github_service,
            github_service.find_endpoint("getUser"),
            {"username": "ada", "X-GitHub-Api-Version": "2022-11-28"},
            ParamHints(header={"X-GitHub-Api-Version"}),
        )
        assert handler.requests[0].headers["x-github-api-version"] == "2022-11-28"

    def test_execute_mapped(self, github_service: ServiceConfig, recording_handler) -> None:
        handler = recording_handler({"login": "ada"})
        executor = _executor(handler)
        mapped = MappedRequest(path={"username": "ada"}, query={"v": "1"})
        result = executor.execute_mapped(github_service, github_service.find_endpoint("getUser"), mapped)
        assert result.data == {"login": "ada"}
        assert str(handler.requests[0].url) == "https://api.github.com/users/ada?v=1"


class TestFailures:
    def test_missing_params_fail_before_request(
        self, github_service: ServiceConfig, recording_handler
    ) -> None:
        handler = recording_handler({})
        result = _executor(handler).execute(github_service, github_service.find_endpoint("getRepo"), {})
        assert not result.success
        assert result.error.code == "PARAM_REQUIRED"
        assert result.error.details["missing"] == ["owner", "repo"]
        assert result.error.details["stage"] == ExecutionStage.PENDING.value
        assert handler.calls == 0
        assert exit_code_for(result.error) == 2

    @pytest.mark.parametrize("status, exit_code", [(401, 3), (403, 3), (404, 4), (500, 5), (422, 5)])
    def test_http_error_status(
        self, github_service: ServiceConfig, recording_handler, status: int, exit_code: int
    ) -> None:
        handler = recording_handler({"message": "nope"}, status_code=status)
        result = _executor(handler).execute(
            github_service, github_service.find_endpoint("getUser"), {"username": "x"}
        )
        assert not result.success
        assert result.error.code == "UPSTREAM_HTTP_ERROR"
        assert result.error.details["status_code"] == status
        assert result.error.details["body"] == {"message": "nope"}
        assert result.error.details["stage"] == ExecutionStage.REQUESTED.value
        assert result.metadata.status_code == status
        assert exit_code_for(result.error) == exit_code

    def test_network_error(self, github_service: ServiceConfig) -> None:
        def handler(request: httpx.Request) -> httpx.Response:
            raise httpx.ConnectError("refused", request=request)

        result = _executor(handler).execute(
            github_service, github_service.find_endpoint("getUser"), {"username": "x"}
        )
        assert result.error.code == "TRANSPORT_ERROR"
        assert result.error.details["stage"] == ExecutionStage.CACHE_CHECKED.value
        assert exit_code_for(result.error) == 6

    def test_empty_token_is_auth_error(self, github_raw: dict, recording_handler) -> None:
        github_raw["authentication"]["token"] = ""
        service = ServiceConfig.model_validate(github_raw)
        handler = recording_handler({})
        result = _executor(handler).execute(service, service.find_endpoint("getUser"), {"username": "x"})
        assert result.error.code == "AUTH_INVALID"
        assert handler.calls == 0


# ---------------------------------------------------------------------------
# Caching
# ---------------------------------------------------------------------------


class TestCaching:
    def test_second_call_served_from_cache(
        self, github_service: ServiceConfig, recording_handler, store: CacheStore, clock, monkeypatch
    ) -> None:
        handler = recording_handler({"items": [{"id": 1, "name": "a", "extra": 1}]})
        executor = _executor(handler, store=store, clock=clock)
        endpoint = github_service.find_endpoint("listIssues")

        transforms = []
        from ovrmnd.transform import TransformPipeline

        original = TransformPipeline.transform

        def counting(self, payload):
            transforms.append(payload)
            return original(self, payload)

        monkeypatch.setattr(TransformPipeline, "transform", counting)

        first = executor.execute(github_service, endpoint, {"owner": "o", "repo": "r"})
        second = executor.execute(github_service, endpoint, {"owner": "o", "repo": "r"})

        assert first.metadata.cached is False
        assert second.metadata.cached is True
        assert second.data == first.data == {"items": [{"id": 1, "name": "a"}]}
        assert handler.calls == 1
        assert len(transforms) == 1

    def test_cache_expires(
        self, github_service: ServiceConfig, recording_handler, store: CacheStore, clock
    ) -> None:
        handler = recording_handler({"id": 1})
        executor = _executor(handler, store=store, clock=clock)
        endpoint = github_service.find_endpoint("getRepo")
        params = {"owner": "o", "repo": "r"}

        executor.execute(github_service, endpoint, params)
        clock.advance(299)
        assert executor.execute(github_service, endpoint, params).metadata.cached is True
        clock.advance(1)
        assert executor.execute(github_service, endpoint, params).metadata.cached is False
        assert handler.calls == 2

    def test_different_params_different_entries(
        self, github_service: ServiceConfig, recording_handler, store: CacheStore, clock
    ) -> None:
        handler = recording_handler({"id": 1})
        executor = _executor(handler, store=store, clock=clock)
        endpoint = github_service.find_endpoint("getRepo")
        executor.execute(github_service, endpoint, {"owner": "o", "repo": "a"})
        executor.execute(github_service, endpoint, {"owner": "o", "repo": "b"})
        assert handler.calls == 2
        assert store.stats().total_entries == 2

    def test_credentials_do_not_split_cache(
        self, github_raw: dict, recording_handler, store: CacheStore, clock
    ) -> None:
        handler = recording_handler({"id": 1})
        executor = _executor(handler, store=store, clock=clock)
        alice = ServiceConfig.model_validate(github_raw)
        github_raw["authentication"]["token"] = "another_token"
        bob = ServiceConfig.model_validate(github_raw)

        executor.execute(alice, alice.find_endpoint("getRepo"), {"owner": "o", "repo": "r"})
        result = executor.execute(bob, bob.find_endpoint("getRepo"), {"owner": "o", "repo": "r"})
        assert result.metadata.cached is True
        assert handler.calls == 1

    def test_header_params_split_cache(
        self, github_service: ServiceConfig, recording_handler, store: CacheStore, clock
    ) -> None:
        handler = recording_handler({"id": 1})
        executor = _executor(handler, store=store, clock=clock)
        endpoint = github_service.find_endpoint("getUser").model_copy(update={"cache_ttl": 60})
        hints = ParamHints(header={"X-Tenant"})

        executor.execute(github_service, endpoint, {"username": "u", "X-Tenant": "a"}, hints)
        executor.execute(github_service, endpoint, {"username": "u", "X-Tenant": "b"}, hints)
        assert handler.calls == 2

    def test_no_cache_flag_bypasses(
        self, github_service: ServiceConfig, recording_handler, store: CacheStore, clock
    ) -> None:
        handler = recording_handler({"id": 1})
        executor = _executor(handler, store=store, clock=clock)
        endpoint = github_service.find_endpoint("getRepo")
        params = {"owner": "o", "repo": "r"}
        executor.execute(github_service, endpoint, params)
        result = executor.execute(github_service, endpoint, params, use_cache=False)
        assert result.metadata.cached is False
        assert handler.calls == 2

    def test_no_transform_bypasses_cache(
        self, github_service: ServiceConfig, recording_handler, store: CacheStore, clock
    ) -> None:
        raw = {"items": [{"id": 1, "name": "a", "extra": 1}]}
        handler = recording_handler(raw)
        executor = _executor(handler, store=store, clock=clock)
        endpoint = github_service.find_endpoint("listIssues")
        params = {"owner": "o", "repo": "r"}
        executor.execute(github_service, endpoint, params)
        result = executor.execute(github_service, endpoint, params, apply_transform=False)
        assert result.data == raw
        assert handler.calls == 2

    def test_non_get_not_cached(
        self, github_raw: dict, recording_handler, store: CacheStore, clock
    ) -> None:
        github_raw["endpoints"][2]["cacheTTL"] = 300
        service = ServiceConfig.model_validate(github_raw)
        handler = recording_handler({"number": 1})
        executor = _executor(handler, store=store, clock=clock)
        endpoint = service.find_endpoint("createIssue")
        executor.execute(service, endpoint, {"owner": "o", "repo": "r", "title": "t"})
        executor.execute(service, endpoint, {"owner": "o", "repo": "r", "title": "t"})
        assert handler.calls == 2
        assert store.stats().total_entries == 0

    def test_failures_not_cached(
        self, github_service: ServiceConfig, recording_handler, store: CacheStore, clock
    ) -> None:
        handler = recording_handler({"message": "down"}, status_code=503)
        executor = _executor(handler, store=store, clock=clock)
        endpoint = github_service.find_endpoint("getRepo")
        executor.execute(github_service, endpoint, {"owner": "o", "repo": "r"})
        assert store.stats().total_entries == 0

    def test_cached_entry_metadata(
        self, github_service: ServiceConfig, recording_handler, store: CacheStore, clock
    ) -> None:
        executor = _executor(recording_handler({"id": 1}), store=store, clock=clock)
        executor.execute(github_service, github_service.find_endpoint("getRepo"), {"owner": "o", "repo": "r"})
        [entry] = store.list_all()
        assert entry.service == "github"
        assert entry.endpoint == "getRepo"
        assert entry.url == "https://api.github.com/repos/o/r"
        assert entry.ttl_seconds == 300
        assert entry.key.startswith("github.getRepo.")

    def test_renamed_wildcard_with_gaps_is_cached(
        self, github_service: ServiceConfig, recording_handler, store: CacheStore, clock
    ) -> None:
        handler = recording_handler({"items": [{"id": 1, "name": "a"}, {"id": 2}]})
        executor = _executor(handler, store=store, clock=clock)
        endpoint = github_service.find_endpoint("getRepo").model_copy(
            update={"transform": [RenameStep(mapping={"items[*].name": "names"})]}
        )
        params = {"owner": "o", "repo": "r"}

        first = executor.execute(github_service, endpoint, params)
        second = executor.execute(github_service, endpoint, params)

        assert first.data["names"] == ["a", None]
        assert second.metadata.cached is True
        assert second.data == first.data
        assert handler.calls == 1
