"""Classify raw ``key=value`` parameters into request locations.

:func:`resolve_params` turns a flat parameter dict into a
:class:`~ovrmnd.models.MappedRequest` for one endpoint.

**Mapping rules** (first match wins for each key):

1. **Path** -- every ``{name}`` placeholder of the endpoint's path template
   is required and taken from the raw parameters, else from the endpoint's
   ``defaultParams``.  All missing names are reported together.
2. **Hints** -- a key the caller tagged as header, query or body goes there
   (checked in that order).  A path hint for a name that is not a
   placeholder is ignored.
3. **Method inference** -- remaining keys go to the query string for GET
   and DELETE, and to the JSON body for POST, PUT and PATCH.  ``None``
   values and keys starting with ``_`` are skipped.
4. **Defaults** -- ``defaultParams`` fill in whatever is still unset,
   routed by hint when hinted, else by method.  They never overwrite.

The module also holds the CLI-side helpers that produce the raw parameters:
:func:`parse_key_value_pairs`, :func:`hints_from_options` and the layered
merge :func:`merge_param_layers`.
"""

from __future__ import annotations

import re
from dataclasses import dataclass, field
from typing import Any, Iterable, Optional

from ovrmnd.exceptions import ParamInvalidError, ParamRequiredError
from ovrmnd.models import EndpointConfig, MappedRequest, ParamHints

PLACEHOLDER_RE = re.compile(r"\{([^{}]+)\}")


# ---------------------------------------------------------------------------
# Path templates
# ---------------------------------------------------------------------------


def extract_path_parameters(template: str) -> list[str]:
    """Return the distinct ``{name}`` placeholders of *template*, in order.

    Example::

        >>> extract_path_parameters("/repos/{owner}/{repo}/issues/{owner}")
        ['owner', 'repo']
    """
    names: list[str] = []
    for name in PLACEHOLDER_RE.findall(template):
        if name not in names:
            names.append(name)
    return names


# ---------------------------------------------------------------------------
# Value normalisation
# ---------------------------------------------------------------------------


def _to_str(value: Any) -> str:
    """Stringify a scalar the way it should appear in a URL or header."""
    if isinstance(value, bool):
        return "true" if value else "false"
    return str(value)


def _query_value(value: Any) -> str | list[str]:
    if isinstance(value, (list, tuple)):
        return [_to_str(v) for v in value]
    return _to_str(value)


def _is_internal(key: str) -> bool:
    return key.startswith("_")


# ---------------------------------------------------------------------------
# Resolution
# ---------------------------------------------------------------------------


def resolve_params(
    endpoint: EndpointConfig,
    raw_params: dict[str, Any],
    hints: Optional[ParamHints] = None,
) -> MappedRequest:
    """Map *raw_params* onto path, query, header and body for *endpoint*.

    Args:
        endpoint: The endpoint being called.
        raw_params: Merged caller parameters (alias defaults, batch item and
            CLI arguments already layered).
        hints: Names the caller explicitly tagged with a location.

    Returns:
        The classified request.  ``body`` is ``None`` when no body parameter
        exists.

    Raises:
        ParamRequiredError: If any path placeholder has neither a raw value
            nor a default.  ``missing`` lists every such name.
    """
    hints = hints or ParamHints()
    defaults = endpoint.default_params
    placeholders = extract_path_parameters(endpoint.path)

    path: dict[str, str] = {}
    missing: list[str] = []
    for name in placeholders:
        if raw_params.get(name) is not None:
            path[name] = _to_str(raw_params[name])
        elif defaults.get(name) is not None:
            path[name] = _to_str(defaults[name])
        else:
            missing.append(name)
    if missing:
        raise ParamRequiredError(missing, endpoint=endpoint.name)

    query: dict[str, str | list[str]] = {}
    headers: dict[str, str] = {}
    body: dict[str, Any] = {}
    sends_body = endpoint.method.sends_body

    def place(key: str, value: Any) -> None:
        if key in hints.header:
            headers[key] = _to_str(value)
        elif key in hints.query:
            query[key] = _query_value(value)
        elif key in hints.body:
            body[key] = value
        elif sends_body:
            body[key] = value
        else:
            query[key] = _query_value(value)

    for key, value in raw_params.items():
        if key in path or value is None or _is_internal(key):
            continue
        place(key, value)

    for key, value in defaults.items():
        if key in path or value is None or _is_internal(key):
            continue
        if raw_params.get(key) is not None or key in query or key in headers or key in body:
            continue
        place(key, value)

    return MappedRequest(path=path, query=query, headers=headers, body=body or None)


# ---------------------------------------------------------------------------
# Parameter layers
# ---------------------------------------------------------------------------


@dataclass
class ParamLayer:
    """One named source of parameters, e.g. ``alias-defaults`` or ``cli-overrides``."""

    name: str
    params: dict[str, Any] = field(default_factory=dict)


def merge_param_layers(layers: Iterable[ParamLayer]) -> dict[str, Any]:
    """Combine *layers* left to right; later layers overwrite earlier keys.

    ``None`` values are dropped rather than overwriting an earlier value.
    """
    merged: dict[str, Any] = {}
    for layer in layers:
        for key, value in layer.params.items():
            if value is not None:
                merged[key] = value
    return merged


# ---------------------------------------------------------------------------
# CLI helpers
# ---------------------------------------------------------------------------


def parse_key_value_pairs(pairs: Optional[Iterable[str]]) -> dict[str, Any]:
    """Parse ``key=value`` strings.  A repeated key collects its values in a list.

    Raises:
        ParamInvalidError: If a pair has no ``=`` or an empty key.
    """
    result: dict[str, Any] = {}
    for pair in pairs or []:
        key, sep, value = pair.partition("=")
        key = key.strip()
        if not sep or not key:
            raise ParamInvalidError(
                f"Invalid parameter {pair!r}, expected key=value",
                help="Pass parameters as key=value, e.g. owner=octocat",
            )
        if key in result:
            existing = result[key]
            result[key] = [*existing, value] if isinstance(existing, list) else [existing, value]
        else:
            result[key] = value
    return result


def hints_from_options(
    path: Optional[Iterable[str]] = None,
    query: Optional[Iterable[str]] = None,
    header: Optional[Iterable[str]] = None,
    body: Optional[Iterable[str]] = None,
) -> ParamHints:
    """Build :class:`~ovrmnd.models.ParamHints` from lists of parameter names."""
    return ParamHints(
        path=set(path or ()),
        query=set(query or ()),
        header=set(header or ()),
        body=set(body or ()),
    )
