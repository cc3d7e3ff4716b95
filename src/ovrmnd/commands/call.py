"""The ``ovrmnd call`` command -- invoke an endpoint, operation or alias.

Positional ``key=value`` arguments are classified automatically (query
string for GET/DELETE, JSON body otherwise).  ``--path``, ``--query``,
``--header`` and ``--body`` force a parameter into a location.

With ``--batch-json`` the call runs once per array item, sequentially,
with parameters layered as ``alias args < batch item < command line``.
"""

from __future__ import annotations

from pathlib import Path
from typing import Any, Optional

import typer

from ovrmnd.exit_codes import EXIT_GENERIC_FAILURE
from ovrmnd.models import ApiResult, BatchOutcome, ParamHints
from ovrmnd.output import OutputFormat, get_output


def _collect_params(
    positional: Optional[list[str]],
    path: Optional[list[str]],
    query: Optional[list[str]],
    header: Optional[list[str]],
    body: Optional[list[str]],
) -> tuple[dict[str, Any], ParamHints]:
    """Merge all ``key=value`` sources into CLI overrides plus location hints."""
    from ovrmnd.params import hints_from_options, parse_key_value_pairs

    params = parse_key_value_pairs(positional)
    located = {
        "path": parse_key_value_pairs(path),
        "query": parse_key_value_pairs(query),
        "header": parse_key_value_pairs(header),
        "body": parse_key_value_pairs(body),
    }
    for values in located.values():
        params.update(values)
    hints = hints_from_options(**{name: values.keys() for name, values in located.items()})
    return params, hints


def _report_result(result: ApiResult) -> None:
    output = get_output()
    if result.success:
        if result.metadata.cached:
            output.debug("Served from cache")
        output.format_response(result.data)
        return

    from ovrmnd.exceptions import exit_code_for

    output.api_error(result.error)
    raise typer.Exit(code=exit_code_for(result.error))


def _report_batch(outcome: BatchOutcome) -> None:
    output = get_output()
    if output.format == OutputFormat.JSON:
        output.print_json([r.model_dump(mode="json", exclude_none=True) for r in outcome.results])
    else:
        for index, result in enumerate(outcome.results):
            if result.success:
                output.info(f"[{index + 1}/{outcome.total}]")
                output.format_response(result.data)
            else:
                output.api_error(result.error, prefix=f"Item {index + 1}: ")

    if outcome.halted:
        skipped = outcome.total - len(outcome.results)
        output.warning(f"Stopped after item {len(outcome.results)}; {skipped} item(s) not run")
    failed = len(outcome.failed_indices)
    if failed:
        output.warning(f"{failed} of {len(outcome.results)} item(s) failed")
        raise typer.Exit(code=EXIT_GENERIC_FAILURE)
    output.success(f"All {outcome.total} item(s) succeeded")


def call_command(
    target: str = typer.Argument(help="service.endpoint or service.alias to call."),
    params: Optional[list[str]] = typer.Argument(
        None, help="Parameters as key=value (repeat a key for a list)."
    ),
    path: Optional[list[str]] = typer.Option(None, "--path", help="Force key=value into the URL path."),
    query: Optional[list[str]] = typer.Option(None, "--query", help="Force key=value into the query string."),
    header: Optional[list[str]] = typer.Option(None, "--header", help="Send key=value as a request header."),
    body: Optional[list[str]] = typer.Option(None, "--body", help="Force key=value into the JSON body."),
    batch_json: Optional[str] = typer.Option(
        None, "--batch-json", help="JSON array of parameter objects to run sequentially."
    ),
    fail_fast: bool = typer.Option(False, "--fail-fast", help="Stop a batch at the first failure."),
    no_cache: bool = typer.Option(False, "--no-cache", help="Bypass the response cache."),
    no_transform: bool = typer.Option(False, "--no-transform", help="Return the raw response body."),
    config_dir: Optional[Path] = typer.Option(
        None, "--config", help="Load service files from this directory only."
    ),
) -> None:
    """Call an API endpoint, GraphQL operation or alias.

    Example::

        ovrmnd call github.getRepo owner=octocat repo=hello-world
        ovrmnd call github.listRepos username=octocat --query per_page=5
        ovrmnd call github.getUser --batch-json '[{"username": "a"}, {"username": "b"}]'
    """
    from ovrmnd.cache import CacheStore
    from ovrmnd.client import BatchOrchestrator, HttpTransport, RequestExecutor, parse_batch_json
    from ovrmnd.config import load_global_config, resolve_cache_dir, resolve_target
    from ovrmnd.exceptions import OvrmndError
    from ovrmnd.params import ParamLayer, merge_param_layers

    output = get_output()
    try:
        resolved = resolve_target(target, config_dir=config_dir)
        overrides, hints = _collect_params(params, path, query, header, body)
        items = parse_batch_json(batch_json) if batch_json is not None else None
        config = load_global_config()
    except OvrmndError as exc:
        output.api_error(exc.to_api_error())
        raise typer.Exit(code=exc.exit_code) from None

    output.debug(f"Calling {resolved.service.service_name}.{resolved.name}")
    run = {"use_cache": not no_cache, "apply_transform": not no_transform}

    with HttpTransport(
        timeout=config.request.timeout, verify_ssl=config.request.verify_ssl
    ) as transport, CacheStore(resolve_cache_dir(config.cache), config.cache) as store:
        executor = RequestExecutor(transport, cache=store, cache_config=config.cache)

        if items is not None:
            outcome = BatchOrchestrator(executor).execute_batch(
                resolved.service,
                resolved.target,
                resolved.alias_defaults,
                items,
                overrides,
                hints,
                fail_fast=fail_fast,
                **run,
            )
            _report_batch(outcome)
            return

        merged = merge_param_layers(
            [ParamLayer("alias-defaults", resolved.alias_defaults), ParamLayer("cli-overrides", overrides)]
        )
        if resolved.operation is not None:
            result = executor.execute_operation(resolved.service, resolved.operation, merged, **run)
        else:
            result = executor.execute(resolved.service, resolved.endpoint, merged, hints, **run)
        _report_result(result)
