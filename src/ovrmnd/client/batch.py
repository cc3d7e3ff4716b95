"""Sequential batch execution against one endpoint or operation.

Each batch item is one parameter set.  Items run strictly one after another
(one request in flight) so rate-limited APIs are not flooded.  For item *i*
the parameters are layered as ``alias-defaults < items[i] < cli-overrides``.

Without fail-fast every item produces a result, failures included, and
``results[i]`` always belongs to ``items[i]``.  With fail-fast the batch stops
right after the first failing item; unattempted items get no result entry
and :attr:`~ovrmnd.models.BatchOutcome.halted` is set.
"""

from __future__ import annotations

import json
import logging
from typing import Any, Optional, Union

from ovrmnd.client.executor import RequestExecutor
from ovrmnd.exceptions import ParamInvalidError
from ovrmnd.models import (
    ApiResult,
    BatchOutcome,
    EndpointConfig,
    GraphQLOperationConfig,
    ParamHints,
    ServiceConfig,
)
from ovrmnd.params import ParamLayer, merge_param_layers

logger = logging.getLogger(__name__)

_SCALARS = (str, int, float, bool, type(None))


def parse_batch_json(text: str) -> list[dict[str, Any]]:
    """Parse the ``--batch-json`` argument.

    Args:
        text: A JSON array of objects.  Values must be scalars or arrays of
            scalars.

    Returns:
        The parsed items, in order.

    Raises:
        ParamInvalidError: If *text* is not valid JSON, not a non-empty
            array, or contains a non-object item or a nested value.
    """
    hint = 'Pass a JSON array of objects, e.g. \'[{"id": "1"}, {"id": "2"}]\''
    try:
        items = json.loads(text)
    except json.JSONDecodeError as exc:
        raise ParamInvalidError(f"Invalid batch JSON: {exc.msg}", help=hint) from exc

    if not isinstance(items, list) or not items:
        raise ParamInvalidError("Batch JSON must be a non-empty array", help=hint)

    for index, item in enumerate(items):
        if not isinstance(item, dict):
            raise ParamInvalidError(
                f"Batch item {index} must be an object", details={"index": index}, help=hint
            )
        for key, value in item.items():
            if isinstance(value, list):
                ok = all(isinstance(v, _SCALARS) for v in value)
            else:
                ok = isinstance(value, _SCALARS)
            if not ok:
                raise ParamInvalidError(
                    f"Batch item {index} has a nested value for '{key}'",
                    details={"index": index, "key": key},
                    help="Values must be strings, numbers, booleans or arrays of those",
                )
    return items


class BatchOrchestrator:
    """Run a list of parameter sets through a :class:`RequestExecutor`.

    Args:
        executor: Executes each item.  Its cache is shared by every item.
    """

    def __init__(self, executor: RequestExecutor) -> None:
        self._executor = executor

    def execute_batch(
        self,
        service: ServiceConfig,
        target: Union[EndpointConfig, GraphQLOperationConfig],
        alias_defaults: dict[str, Any],
        items: list[dict[str, Any]],
        cli_overrides: dict[str, Any],
        hints: Optional[ParamHints] = None,
        *,
        fail_fast: bool = False,
        use_cache: bool = True,
        apply_transform: bool = True,
    ) -> BatchOutcome:
        """Execute *items* in order.

        Fail-fast is checked only between items; an item that has started
        always completes.

        Returns:
            A :class:`~ovrmnd.models.BatchOutcome` whose ``results`` are
            index-aligned with *items* for every attempted item.
        """
        results: list[ApiResult] = []
        halted = False

        for index, item in enumerate(items):
            params = merge_param_layers(
                [
                    ParamLayer("alias-defaults", alias_defaults),
                    ParamLayer("batch-item", item),
                    ParamLayer("cli-overrides", cli_overrides),
                ]
            )
            logger.debug("Batch item %d/%d: %s", index + 1, len(items), params)

            if isinstance(target, GraphQLOperationConfig):
                result = self._executor.execute_operation(
                    service, target, params, use_cache=use_cache, apply_transform=apply_transform
                )
            else:
                result = self._executor.execute(
                    service,
                    target,
                    params,
                    hints,
                    use_cache=use_cache,
                    apply_transform=apply_transform,
                )
            results.append(result)

            if fail_fast and not result.success:
                halted = index < len(items) - 1
                logger.debug("Batch halted after failing item %d", index)
                break

        return BatchOutcome(results=results, total=len(items), halted=halted)
