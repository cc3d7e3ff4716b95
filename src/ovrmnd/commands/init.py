"""Init command -- scaffold a new service file from a template.

Implements ``ovrmnd init``.  The generated file is a working starting point:
a bearer token read from ``${<SERVICE>_API_TOKEN}``, CRUD endpoints (or
GraphQL operations) on ``items``, one alias and one transform.  It is
validated against :class:`~ovrmnd.models.ServiceConfig` before being
written, and written atomically.
"""

from __future__ import annotations

import re
from pathlib import Path
from typing import Any, Optional

import typer

from ovrmnd.exit_codes import EXIT_GENERIC_FAILURE, EXIT_INVALID_USAGE
from ovrmnd.output import OutputFormat, error, get_output, success, suggest

_SERVICE_NAME_RE = re.compile(r"^[a-z0-9][a-z0-9-]*$")
_TEMPLATES = ("rest", "graphql")


def init_command(
    service: str = typer.Argument(..., help="Service name (lowercase letters, digits, hyphens)."),
    template: str = typer.Option("rest", "--template", "-t", help="Template: rest or graphql."),
    base_url: Optional[str] = typer.Option(None, "--base-url", help="API base URL."),
    output_path: Optional[Path] = typer.Option(
        None, "--output", "-o", help="Write the file here instead of ./.ovrmnd/."
    ),
    force: bool = typer.Option(False, "--force", help="Overwrite an existing file."),
    global_dir: bool = typer.Option(
        False, "--global", "-g", help="Write to the global services directory."
    ),
) -> None:
    """Create a service file from a template.

    Args:
        service: Used as ``serviceName``, the file name and the token's
            environment variable (``my-api`` reads ``MY_API_API_TOKEN``).
        template: ``rest`` for CRUD endpoints on ``/items``, ``graphql``
            for the matching queries and mutations.
        base_url: Defaults to ``https://api.<service>.com/v1``.
        output_path: Explicit destination.  Wins over ``--global``.
        force: Replace a file that already exists.
        global_dir: Write to ``<config dir>/services`` instead of
            ``./.ovrmnd``.

    Raises:
        typer.Exit: With code 2 for an invalid name or template, and 1 when
            the destination exists and ``--force`` was not given.

    Example::

        ovrmnd init myapi
        ovrmnd init shop --template graphql --base-url https://shop.example.com
        ovrmnd init github --global --force
    """
    import yaml

    from ovrmnd.config import atomic_write, get_local_services_dir, get_services_dir
    from ovrmnd.models import ServiceConfig

    if not _SERVICE_NAME_RE.match(service):
        error(f"Invalid service name {service!r}")
        suggest("Use lowercase letters, digits and hyphens, e.g. my-api")
        raise typer.Exit(code=EXIT_INVALID_USAGE)
    if template not in _TEMPLATES:
        error(f"Unknown template {template!r}, expected one of: {', '.join(_TEMPLATES)}")
        raise typer.Exit(code=EXIT_INVALID_USAGE)

    if output_path is not None:
        path = output_path.expanduser()
    else:
        directory = get_services_dir() if global_dir else get_local_services_dir()
        path = directory / f"{service}.yaml"

    if path.exists() and not force:
        error(f"{path} already exists")
        suggest("Use --force to overwrite it")
        raise typer.Exit(code=EXIT_GENERIC_FAILURE)

    env_var = _env_var_name(service)
    data = build_template(service, template, base_url or f"https://api.{service}.com/v1", env_var)
    ServiceConfig.model_validate(data)
    atomic_write(path, _header(service) + yaml.safe_dump(data, sort_keys=False, width=1000))

    next_steps = [
        f"Set environment variable: {env_var}",
        "Update the baseUrl and endpoints as needed",
        f"Check the file: ovrmnd validate {service}",
        f"Test with: ovrmnd call {service}.<endpoint>",
    ]
    output = get_output()
    if output.format == OutputFormat.JSON:
        output.print_json(
            {"success": True, "path": str(path), "service": service, "nextSteps": next_steps}
        )
        return
    success(f"Created {path}")
    for step in next_steps:
        suggest(step)


def _env_var_name(service: str) -> str:
    return f"{service.upper().replace('-', '_')}_API_TOKEN"


def _header(service: str) -> str:
    return (
        f"# {service} API configuration\n"
        "# Generated by ovrmnd init\n"
        "#\n"
        "# Before using it, set the token environment variable, check baseUrl and\n"
        "# replace the example endpoints with the API's own.\n"
        "#\n"
        f"# Usage: ovrmnd call {service}.<endpoint> [key=value ...]\n"
        "\n"
    )


def build_template(service: str, template: str, base_url: str, env_var: str) -> dict[str, Any]:
    """The service file for *template*, as the mapping written to YAML."""
    data: dict[str, Any] = {
        "serviceName": service,
        "baseUrl": base_url,
        "authentication": {"type": "bearer", "token": f"${{{env_var}}}"},
    }
    if template == "graphql":
        data["apiType"] = "graphql"
        data["graphqlEndpoint"] = "/graphql"
        data["graphqlOperations"] = [
            {
                "name": "listItems",
                "operationType": "query",
                "query": "query ListItems($limit: Int, $offset: Int) "
                "{ items(limit: $limit, offset: $offset) { id name description createdAt } }",
                "cacheTTL": 300,
                "transform": {"fields": ["items"]},
            },
            {
                "name": "getItem",
                "operationType": "query",
                "query": "query GetItem($id: ID!) "
                "{ item(id: $id) { id name description createdAt updatedAt } }",
                "cacheTTL": 300,
            },
            {
                "name": "createItem",
                "operationType": "mutation",
                "query": "mutation CreateItem($input: CreateItemInput!) "
                "{ createItem(input: $input) { id name description } }",
            },
            {
                "name": "updateItem",
                "operationType": "mutation",
                "query": "mutation UpdateItem($id: ID!, $input: UpdateItemInput!) "
                "{ updateItem(id: $id, input: $input) { id name description updatedAt } }",
            },
            {
                "name": "deleteItem",
                "operationType": "mutation",
                "query": "mutation DeleteItem($id: ID!) { deleteItem(id: $id) { success message } }",
            },
        ]
        data["aliases"] = [{"name": "first-item", "endpoint": "getItem", "args": {"id": "1"}}]
        return data

    data["endpoints"] = [
        {
            "name": "list",
            "method": "GET",
            "path": "/items",
            "cacheTTL": 300,
            "transform": {"fields": ["id", "name", "created_at"]},
        },
        {"name": "get", "method": "GET", "path": "/items/{id}", "cacheTTL": 300},
        {
            "name": "create",
            "method": "POST",
            "path": "/items",
            "defaultParams": {"name": "Example Item", "description": "Example description"},
        },
        {"name": "update", "method": "PUT", "path": "/items/{id}"},
        {"name": "delete", "method": "DELETE", "path": "/items/{id}"},
    ]
    data["aliases"] = [{"name": "first-item", "endpoint": "get", "args": {"id": "1"}}]
    return data
