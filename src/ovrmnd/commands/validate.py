"""The ``ovrmnd validate`` command -- check service files before calling them."""

from __future__ import annotations

from pathlib import Path
from typing import Callable, Optional

import typer

from ovrmnd.exit_codes import EXIT_GENERIC_FAILURE, EXIT_NOT_FOUND
from ovrmnd.output import OutputFormat, error, get_output, info, success, suggest, warning


def validate_command(
    service: Optional[str] = typer.Argument(
        None, help="Validate only this service (file name or serviceName)."
    ),
    file: Optional[Path] = typer.Option(
        None, "--file", "-f", help="Validate this file instead of the discovered ones."
    ),
    strict: bool = typer.Option(False, "--strict", help="Treat warnings as errors."),
    config_dir: Optional[Path] = typer.Option(
        None, "--config", help="Validate service files in this directory only."
    ),
) -> None:
    """Validate service configuration files.

    Checks YAML syntax, the service schema and common mistakes such as a
    cache TTL on a POST endpoint or an unset ``${VAR}``.  Exits 1 when any
    file has errors, or warnings under ``--strict``.

    Example::

        ovrmnd validate
        ovrmnd validate github --strict
        ovrmnd validate -f ./my-service.yaml
    """
    from ovrmnd.config import find_service_files
    from ovrmnd.validation import files_for_service, validate_service_files

    if file is not None:
        paths = [file]
    else:
        paths = find_service_files(config_dir)
        if service is not None:
            paths = files_for_service(paths, service)
            if not paths:
                error(f"No configuration files found for service '{service}'")
                suggest("Run 'ovrmnd list' to see the available services")
                raise typer.Exit(code=EXIT_NOT_FOUND)

    results = validate_service_files(paths)
    passed = all(r.passed(strict) for r in results)
    output = get_output()

    if output.format == OutputFormat.JSON:
        output.print_json(
            {"results": [{**r.model_dump(exclude_none=True), "valid": r.valid} for r in results]}
        )
        if not passed:
            raise typer.Exit(code=EXIT_GENERIC_FAILURE)
        return

    if not results:
        warning("No service files found")
        suggest("Add service YAML files to ./.ovrmnd/ or the global services directory")
        return

    report_warning: Callable[[str], None] = error if strict else warning
    for result in results:
        if not result.errors and not result.warnings:
            success(f"{result.file}: valid")
            continue
        for issue in result.errors:
            where = f" (line {issue.line})" if issue.line else ""
            error(f"{result.file}{where}: {issue.message}")
            _details(issue.context, issue.suggestion)
        for issue in result.warnings:
            report_warning(f"{result.file}: {issue.message}")
            _details(issue.context, issue.suggestion)

    errors = sum(len(r.errors) for r in results)
    warnings = sum(len(r.warnings) for r in results)
    info(f"Files validated: {len(results)}, errors: {errors}, warnings: {warnings}")
    if passed:
        success("Validation passed")
        return
    error("Validation failed (strict mode)" if strict and not errors else "Validation failed")
    raise typer.Exit(code=EXIT_GENERIC_FAILURE)


def _details(context: Optional[str], suggestion: Optional[str]) -> None:
    if context:
        info(f"  {context}")
    if suggestion:
        suggest(suggestion)
