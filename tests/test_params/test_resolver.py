"""Tests for parameter classification and the CLI parameter helpers."""

from __future__ import annotations

import pytest

from ovrmnd.exceptions import ParamInvalidError, ParamRequiredError
from ovrmnd.models import EndpointConfig, ParamHints
from ovrmnd.params import (
    ParamLayer,
    extract_path_parameters,
    hints_from_options,
    merge_param_layers,
    parse_key_value_pairs,
    resolve_params,
)


def _endpoint(method: str = "GET", path: str = "/repos/{owner}/{repo}", **extra) -> EndpointConfig:
    return EndpointConfig(name="ep", method=method, path=path, **extra)


# ---------------------------------------------------------------------------
# Path templates
# ---------------------------------------------------------------------------


class TestExtractPathParameters:
    def test_in_template_order(self) -> None:
        assert extract_path_parameters("/a/{x}/b/{y}") == ["x", "y"]

    def test_duplicates_collapsed(self) -> None:
        assert extract_path_parameters("/{id}/{id}") == ["id"]

    def test_no_placeholders(self) -> None:
        assert extract_path_parameters("/users") == []


# ---------------------------------------------------------------------------
# resolve_params
# ---------------------------------------------------------------------------


class TestPathParameters:
    def test_path_values_from_raw(self) -> None:
        mapped = resolve_params(_endpoint(), {"owner": "octocat", "repo": "hello"})
        assert mapped.path == {"owner": "octocat", "repo": "hello"}
        assert mapped.query == {}
        assert mapped.body is None

    def test_path_value_from_defaults(self) -> None:
        endpoint = _endpoint(defaultParams={"owner": "octocat"})
        mapped = resolve_params(endpoint, {"repo": "hello"})
        assert mapped.path == {"owner": "octocat", "repo": "hello"}

    def test_raw_wins_over_default_for_path(self) -> None:
        endpoint = _endpoint(defaultParams={"owner": "octocat"})
        mapped = resolve_params(endpoint, {"owner": "torvalds", "repo": "linux"})
        assert mapped.path["owner"] == "torvalds"

    def test_all_missing_reported_together(self) -> None:
        with pytest.raises(ParamRequiredError) as exc_info:
            resolve_params(_endpoint(), {})
        assert exc_info.value.missing == ["owner", "repo"]
        assert exc_info.value.code == "PARAM_REQUIRED"
        assert "owner" in exc_info.value.message
        assert "repo" in exc_info.value.message

    def test_none_counts_as_missing(self) -> None:
        with pytest.raises(ParamRequiredError) as exc_info:
            resolve_params(_endpoint(), {"owner": None, "repo": "x"})
        assert exc_info.value.missing == ["owner"]

    def test_scalars_stringified(self) -> None:
        endpoint = _endpoint(path="/items/{id}/{flag}")
        mapped = resolve_params(endpoint, {"id": 42, "flag": True})
        assert mapped.path == {"id": "42", "flag": "true"}


class TestMethodInference:
    def test_get_goes_to_query(self) -> None:
        mapped = resolve_params(_endpoint(), {"owner": "o", "repo": "r", "page": 2})
        assert mapped.query == {"page": "2"}
        assert mapped.body is None

    def test_delete_goes_to_query(self) -> None:
        mapped = resolve_params(_endpoint("DELETE"), {"owner": "o", "repo": "r", "force": True})
        assert mapped.query == {"force": "true"}

    @pytest.mark.parametrize("method", ["POST", "PUT", "PATCH"])
    def test_write_methods_go_to_body(self, method: str) -> None:
        mapped = resolve_params(_endpoint(method), {"owner": "o", "repo": "r", "title": "Bug", "n": 3})
        assert mapped.body == {"title": "Bug", "n": 3}
        assert mapped.query == {}

    def test_list_values_in_query(self) -> None:
        mapped = resolve_params(_endpoint(), {"owner": "o", "repo": "r", "label": ["a", "b"]})
        assert mapped.query == {"label": ["a", "b"]}

    def test_none_and_internal_keys_skipped(self) -> None:
        mapped = resolve_params(
            _endpoint(), {"owner": "o", "repo": "r", "skip": None, "_internal": "x"}
        )
        assert mapped.query == {}


class TestHints:
    def test_header_hint(self) -> None:
        hints = ParamHints(header={"X-Trace"})
        mapped = resolve_params(_endpoint(), {"owner": "o", "repo": "r", "X-Trace": 7}, hints)
        assert mapped.headers == {"X-Trace": "7"}
        assert mapped.query == {}

    def test_body_hint_on_get(self) -> None:
        hints = ParamHints(body={"filter"})
        mapped = resolve_params(_endpoint(), {"owner": "o", "repo": "r", "filter": "x"}, hints)
        assert mapped.body == {"filter": "x"}

    def test_query_hint_on_post(self) -> None:
        hints = ParamHints(query={"dry_run"})
        mapped = resolve_params(
            _endpoint("POST"), {"owner": "o", "repo": "r", "dry_run": True, "title": "t"}, hints
        )
        assert mapped.query == {"dry_run": "true"}
        assert mapped.body == {"title": "t"}

    def test_path_hint_for_placeholder_is_harmless(self) -> None:
        hints = ParamHints(path={"owner"})
        mapped = resolve_params(_endpoint(), {"owner": "o", "repo": "r"}, hints)
        assert mapped.path["owner"] == "o"


class TestDefaults:
    def test_defaults_fill_unset_keys(self) -> None:
        endpoint = _endpoint(defaultParams={"state": "open", "per_page": 30})
        mapped = resolve_params(endpoint, {"owner": "o", "repo": "r"})
        assert mapped.query == {"state": "open", "per_page": "30"}

    def test_defaults_never_overwrite(self) -> None:
        endpoint = _endpoint(defaultParams={"state": "open"})
        mapped = resolve_params(endpoint, {"owner": "o", "repo": "r", "state": "closed"})
        assert mapped.query == {"state": "closed"}

    def test_defaults_follow_hints(self) -> None:
        endpoint = _endpoint(defaultParams={"X-Version": "2"})
        hints = ParamHints(header={"X-Version"})
        mapped = resolve_params(endpoint, {"owner": "o", "repo": "r"}, hints)
        assert mapped.headers == {"X-Version": "2"}

    def test_defaults_go_to_body_for_post(self) -> None:
        endpoint = _endpoint("POST", defaultParams={"draft": False})
        mapped = resolve_params(endpoint, {"owner": "o", "repo": "r"})
        assert mapped.body == {"draft": False}


# ---------------------------------------------------------------------------
# Layers and CLI helpers
# ---------------------------------------------------------------------------


class TestMergeParamLayers:
    def test_later_layers_win(self) -> None:
        merged = merge_param_layers(
            [
                ParamLayer("alias-defaults", {"a": 1, "b": 1}),
                ParamLayer("batch-item", {"b": 2, "c": 2}),
                ParamLayer("cli-overrides", {"c": 3}),
            ]
        )
        assert merged == {"a": 1, "b": 2, "c": 3}

    def test_none_does_not_overwrite(self) -> None:
        merged = merge_param_layers([ParamLayer("a", {"x": 1}), ParamLayer("b", {"x": None})])
        assert merged == {"x": 1}


class TestParseKeyValuePairs:
    def test_basic(self) -> None:
        assert parse_key_value_pairs(["a=1", "b=two"]) == {"a": "1", "b": "two"}

    def test_value_may_contain_equals(self) -> None:
        assert parse_key_value_pairs(["q=a=b"]) == {"q": "a=b"}

    def test_repeated_key_becomes_list(self) -> None:
        assert parse_key_value_pairs(["t=a", "t=b", "t=c"]) == {"t": ["a", "b", "c"]}

    def test_none_is_empty(self) -> None:
        assert parse_key_value_pairs(None) == {}

    @pytest.mark.parametrize("pair", ["novalue", "=x"])
    def test_invalid_pair(self, pair: str) -> None:
        with pytest.raises(ParamInvalidError) as exc_info:
            parse_key_value_pairs([pair])
        assert exc_info.value.help is not None


def test_hints_from_options() -> None:
    hints = hints_from_options(path=["id"], header=["X-A"])
    assert hints.path == {"id"}
    assert hints.header == {"X-A"}
    assert hints.query == set()
    assert hints.body == set()
