"""The ``ovrmnd list`` command -- show configured services and what they offer."""

from __future__ import annotations

from pathlib import Path
from typing import Optional

import typer

from ovrmnd.output import OutputFormat, get_output, print_table, suggest, warning


def list_command(
    service: Optional[str] = typer.Argument(None, help="Show the endpoints of this service."),
    config_dir: Optional[Path] = typer.Option(
        None, "--config", help="Load service files from this directory only."
    ),
) -> None:
    """List services, or one service's endpoints, operations and aliases.

    Example::

        ovrmnd list
        ovrmnd list github
    """
    from ovrmnd.config import discover_services
    from ovrmnd.exceptions import EndpointNotFoundError

    output = get_output()
    services = discover_services(config_dir)

    if service is None:
        if output.format == OutputFormat.JSON:
            output.print_json(
                [
                    {
                        "service": s.service_name,
                        "baseUrl": s.base_url,
                        "apiType": s.api_type,
                        "endpoints": len(s.endpoints) + len(s.graphql_operations),
                        "aliases": len(s.aliases),
                    }
                    for s in services.values()
                ]
            )
            return
        if not services:
            warning("No services configured")
            suggest("Add service YAML files to ./.ovrmnd/ or the global services directory")
            return
        rows = [
            [
                s.service_name,
                s.api_type,
                s.base_url,
                str(len(s.endpoints) + len(s.graphql_operations)),
                str(len(s.aliases)),
            ]
            for s in sorted(services.values(), key=lambda s: s.service_name)
        ]
        print_table(["Service", "Type", "Base URL", "Endpoints", "Aliases"], rows, title="Services")
        return

    config = services.get(service)
    if config is None:
        exc = EndpointNotFoundError(
            f"Service '{service}' not found",
            help=f"Available services: {', '.join(sorted(services)) or 'none'}",
        )
        output.api_error(exc.to_api_error())
        raise typer.Exit(code=exc.exit_code)

    rows = []
    for endpoint in config.endpoints:
        ttl = f"{endpoint.cache_ttl}s" if endpoint.is_cacheable else "-"
        rows.append([endpoint.name, endpoint.method.value, endpoint.path, ttl])
    for operation in config.graphql_operations:
        ttl = f"{operation.cache_ttl}s" if operation.is_cacheable else "-"
        rows.append([operation.name, operation.operation_type, config.graphql_endpoint or "", ttl])
    for alias in config.aliases:
        args = ", ".join(f"{k}={v}" for k, v in alias.args.items())
        rows.append([alias.name, "alias", f"-> {alias.endpoint} {args}".rstrip(), "-"])

    print_table(["Name", "Method", "Path", "Cache TTL"], rows, title=config.service_name)
