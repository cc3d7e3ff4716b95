"""Tests for ``ovrmnd init``."""

from __future__ import annotations

import json
from pathlib import Path

import pytest
import yaml

from ovrmnd.app import app
from ovrmnd.commands.init import build_template
from ovrmnd.config import discover_services, get_local_services_dir, get_services_dir, load_service_file
from ovrmnd.validation import validate_service_file


class TestInitCommand:
    def test_rest_template(self, cli_runner, isolated_config: Path, monkeypatch: pytest.MonkeyPatch) -> None:
        monkeypatch.setenv("MY_API_API_TOKEN", "secret")
        result = cli_runner.invoke(app, ["--plain", "--no-color", "init", "my-api"])
        assert result.exit_code == 0, result.output

        path = get_local_services_dir() / "my-api.yaml"
        assert f"Created {path}" in result.output
        assert path.read_text().startswith("# my-api API configuration\n")
        service = load_service_file(path)
        assert service.base_url == "https://api.my-api.com/v1"
        assert service.authentication.token == "secret"
        assert [e.name for e in service.endpoints] == ["list", "get", "create", "update", "delete"]
        assert service.find_endpoint("list").transform[0].paths == ["id", "name", "created_at"]
        assert service.find_alias("first-item").args == {"id": "1"}
        assert not list(path.parent.glob("*.tmp"))

    def test_graphql_template_global(
        self, cli_runner, isolated_config: Path, monkeypatch: pytest.MonkeyPatch
    ) -> None:
        monkeypatch.setenv("SHOP_API_TOKEN", "secret")
        result = cli_runner.invoke(
            app,
            ["--json", "init", "shop", "--template", "graphql", "--base-url", "https://shop.test", "--global"],
        )
        assert result.exit_code == 0, result.output
        payload = json.loads(result.stdout)
        assert payload["path"] == str(get_services_dir() / "shop.yaml")
        assert payload["nextSteps"][0] == "Set environment variable: SHOP_API_TOKEN"

        service = discover_services()["shop"]
        assert service.api_type == "graphql"
        assert service.graphql_endpoint == "/graphql"
        assert service.find_operation("listItems").is_cacheable
        assert service.find_operation("deleteItem").operation_type == "mutation"

    def test_existing_file_needs_force(self, cli_runner, isolated_config: Path) -> None:
        target = isolated_config / "svc.yaml"
        target.write_text("keep me")
        args = ["--plain", "--no-color", "init", "svc", "--output", str(target)]

        result = cli_runner.invoke(app, args)
        assert result.exit_code == 1
        assert "already exists" in result.output
        assert target.read_text() == "keep me"

        result = cli_runner.invoke(app, [*args, "--force"])
        assert result.exit_code == 0, result.output
        assert "serviceName: svc" in target.read_text()

    @pytest.mark.parametrize("args", [["init", "My API"], ["init", "svc", "--template", "soap"]])
    def test_invalid_arguments(self, cli_runner, isolated_config: Path, args: list[str]) -> None:
        result = cli_runner.invoke(app, ["--plain", "--no-color", *args])
        assert result.exit_code == 2
        assert not get_local_services_dir().exists()


@pytest.mark.parametrize("template", ["rest", "graphql"])
def test_templates_validate_cleanly(tmp_path: Path, monkeypatch: pytest.MonkeyPatch, template: str) -> None:
    monkeypatch.setenv("DEMO_API_TOKEN", "t")
    path = tmp_path / "demo.yaml"
    data = build_template("demo", template, "https://api.demo.test", "DEMO_API_TOKEN")
    path.write_text(yaml.safe_dump(data))
    result = validate_service_file(path)
    assert result.errors == []
    assert result.warnings == []
