"""Extract/rename steps and the pipeline that chains them.

Steps are already-typed :class:`~ovrmnd.models.ExtractStep` and
:class:`~ovrmnd.models.RenameStep` values, decoded from the YAML shape when
the service file is loaded.  The pipeline applies them in order, each step
consuming the previous step's output.  A failing step is logged and skipped;
:meth:`TransformPipeline.transform` never raises.
"""

from __future__ import annotations

import copy
import json
import logging
import time
from typing import Any, Iterable, Optional, Union

from ovrmnd.models import (
    EndpointConfig,
    ExtractStep,
    GraphQLOperationConfig,
    RenameStep,
)
from ovrmnd.transform.paths import (
    ABSENT,
    Token,
    assign,
    fill_absent,
    has_wildcard,
    output_key_path,
    parse_path,
    remove,
    resolve,
)

logger = logging.getLogger(__name__)

_ITEM_PREFIX = "[*]."


def _strip_item_prefix(path: str) -> str:
    return path[len(_ITEM_PREFIX):] if path.startswith(_ITEM_PREFIX) else path


def extract(data: Any, paths: list[str]) -> Any:
    """Build a new object holding only *paths* of *data*.

    A single wildcard path under a prefix yields a flat aligned list
    (``items[*].id`` gives ``{"items": [1, 2]}``).  Several wildcard paths
    under the same prefix yield one object per element
    (``items[*].id`` and ``items[*].name`` give
    ``{"items": [{"id": 1, "name": "x"}, ...]}``); a non-object element
    becomes ``None``.

    A list payload is handled element by element, with a leading ``[*].``
    removed from each path.  Scalars pass through unchanged.
    """
    if isinstance(data, list):
        item_paths = [_strip_item_prefix(p) for p in paths]
        return [extract(item, item_paths) for item in data]
    if not isinstance(data, dict):
        return data

    groups = _element_groups(paths)
    result: dict[str, Any] = {}
    for path in paths:
        target = output_key_path(path)
        group = groups.get(target)
        if group is not None and len(group[1]) > 1:
            if group[0] != path:
                continue
            source = resolve(data, parse_path(path[: path.index("[*]")]))
            if not isinstance(source, list):
                continue
            value = [extract(item, group[1]) if isinstance(item, dict) else None for item in source]
            assign(result, target, value)
            continue

        value = resolve(data, parse_path(path))
        if value is ABSENT:
            continue
        assign(result, target, copy.deepcopy(fill_absent(value)))
    return result


def _element_groups(paths: list[str]) -> dict[tuple[Token, ...], tuple[str, list[str]]]:
    """Group ``prefix[*].rest`` paths by the key they are written at.

    Maps each output key to the first path of its group and the ``rest``
    parts.  When a prefix carries two or more paths, every element of the
    source list becomes one object holding all of them.
    """
    groups: dict[tuple[Token, ...], tuple[str, list[str]]] = {}
    for path in paths:
        position = path.find("[*].")
        if position <= 0 or "[*]" in path[:position]:
            continue
        _, rests = groups.setdefault(output_key_path(path), (path, []))
        rests.append(path[position + len("[*]."):])
    return groups


def rename(data: Any, mapping: dict[str, str]) -> Any:
    """Move each ``old`` path to ``new`` on a deep copy of *data*, in mapping order.

    A missing ``old`` is skipped and ``old == new`` is a no-op.  The old
    value is removed before the new one is written, so renaming a key into
    one of its own children (``a`` to ``a.b``) keeps the value.
    """
    if isinstance(data, list):
        item_mapping = {_strip_item_prefix(old): _strip_item_prefix(new) for old, new in mapping.items()}
        return [rename(item, item_mapping) for item in data]
    if not isinstance(data, dict):
        return data

    result = copy.deepcopy(data)
    for old, new in mapping.items():
        if old == new:
            continue
        old_tokens = parse_path(old)
        new_tokens = parse_path(new)
        value = resolve(result, old_tokens)
        if value is ABSENT:
            continue
        remove(result, old_tokens)
        if not has_wildcard(new):
            value = fill_absent(value)
        assign(result, new_tokens, value)
    return result


def apply_step(step: Union[ExtractStep, RenameStep], data: Any) -> Any:
    if isinstance(step, ExtractStep):
        return extract(data, step.paths)
    return rename(data, step.mapping)


def _json_size(value: Any) -> int:
    try:
        return len(json.dumps(value, default=str))
    except (TypeError, ValueError):
        return -1


class TransformPipeline:
    """An ordered list of transform steps.

    Args:
        steps: Typed steps, applied first to last.

    Example::

        pipeline = TransformPipeline([
            ExtractStep(paths=["items[*].id", "items[*].name"]),
            RenameStep(mapping={"items[*].name": "items[*].label"}),
        ])
        pipeline.transform({"items": [{"id": 1, "name": "x", "extra": True}]})
        # {"items": [{"id": 1, "label": "x"}]}
    """

    def __init__(self, steps: Optional[Iterable[Union[ExtractStep, RenameStep]]] = None) -> None:
        self._steps = list(steps or [])

    @classmethod
    def for_target(cls, target: Union[EndpointConfig, GraphQLOperationConfig]) -> TransformPipeline:
        return cls(target.transform)

    @property
    def steps(self) -> list[Union[ExtractStep, RenameStep]]:
        return list(self._steps)

    def __len__(self) -> int:
        return len(self._steps)

    def transform(self, payload: Any) -> Any:
        """Run every step over *payload*.

        A step that raises is logged at warning level with its 1-based
        number and its input is handed to the next step unchanged.
        """
        result = payload
        for number, step in enumerate(self._steps, start=1):
            started = time.perf_counter()
            try:
                output = apply_step(step, result)
            except Exception as exc:
                logger.warning(
                    "Transform step %d (%s) failed, keeping its input: %s", number, step.kind, exc
                )
                continue

            if logger.isEnabledFor(logging.DEBUG):
                logger.debug(
                    "Transform step %d (%s) took %.2fms, %d -> %d bytes",
                    number,
                    step.kind,
                    (time.perf_counter() - started) * 1000,
                    _json_size(result),
                    _json_size(output),
                )
            result = output
        return result
