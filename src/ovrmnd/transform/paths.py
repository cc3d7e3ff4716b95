"""Path grammar for addressing values inside decoded JSON.

A path is a dot-separated list of segments.  Each segment is an optional
key followed by any number of bracket selectors:

* ``user.name`` -- nested object keys.
* ``items[2]`` -- a literal list index.
* ``items[*].id`` -- a wildcard; the rest of the path is applied to every
  element and the results form a position-aligned list.

Reading never raises for missing nodes; it yields :data:`ABSENT` instead.
Inside a wildcard result, absent positions keep the :data:`ABSENT` marker so
writers can skip them; :func:`get_path` turns them into ``None``.
Malformed paths (empty segments, unbalanced brackets, non-numeric indexes)
raise :class:`~ovrmnd.exceptions.TransformPathError`.
"""

from __future__ import annotations

import re
from dataclasses import dataclass
from functools import lru_cache
from typing import Any, Union

from ovrmnd.exceptions import TransformPathError


class _Absent:
    """Marker for a path that resolves to nothing."""

    _instance = None

    def __new__(cls) -> _Absent:
        if cls._instance is None:
            cls._instance = super().__new__(cls)
        return cls._instance

    def __repr__(self) -> str:
        return "ABSENT"

    def __bool__(self) -> bool:
        return False


ABSENT = _Absent()


@dataclass(frozen=True)
class Key:
    name: str


@dataclass(frozen=True)
class Index:
    index: int


@dataclass(frozen=True)
class Wildcard:
    pass


Token = Union[Key, Index, Wildcard]

_SEGMENT_RE = re.compile(r"^([^\[\]]*)((?:\[[^\[\]]*\])*)$")
_SELECTOR_RE = re.compile(r"\[([^\[\]]*)\]")


@lru_cache(maxsize=512)
def parse_path(path: str) -> tuple[Token, ...]:
    """Tokenise *path*.

    Example::

        >>> parse_path("items[*].tags[0]")
        (Key(name='items'), Wildcard(), Key(name='tags'), Index(index=0))

    Raises:
        TransformPathError: On empty segments, unbalanced brackets or a
            selector that is neither ``*`` nor a non-negative integer.
    """
    if not path:
        raise TransformPathError("Empty path")

    tokens: list[Token] = []
    for segment in path.split("."):
        match = _SEGMENT_RE.match(segment)
        if match is None:
            raise TransformPathError(f"Unbalanced brackets in path {path!r}")
        name, selectors = match.groups()
        if not name and not selectors:
            raise TransformPathError(f"Empty segment in path {path!r}")
        if name:
            tokens.append(Key(name))
        for selector in _SELECTOR_RE.findall(selectors):
            if selector == "*":
                tokens.append(Wildcard())
            elif selector.isdigit():
                tokens.append(Index(int(selector)))
            else:
                raise TransformPathError(f"Invalid index [{selector}] in path {path!r}")
    return tuple(tokens)


def has_wildcard(path: str) -> bool:
    return any(isinstance(t, Wildcard) for t in parse_path(path))


# ------------------------------------------------------------------ #
# Reading
# ------------------------------------------------------------------ #


def resolve(node: Any, tokens: tuple[Token, ...]) -> Any:
    """Read *tokens* from *node*, keeping :data:`ABSENT` markers inside wildcard lists."""
    if not tokens:
        return node
    head, rest = tokens[0], tokens[1:]

    if isinstance(head, Key):
        if isinstance(node, dict) and head.name in node:
            return resolve(node[head.name], rest)
        return ABSENT
    if isinstance(head, Index):
        if isinstance(node, list) and head.index < len(node):
            return resolve(node[head.index], rest)
        return ABSENT
    if not isinstance(node, list):
        return ABSENT
    return [resolve(item, rest) for item in node]


def fill_absent(value: Any) -> Any:
    """Replace :data:`ABSENT` markers (at any wildcard depth) with ``None``."""
    if value is ABSENT:
        return None
    if isinstance(value, list):
        return [fill_absent(item) for item in value]
    return value


def get_path(data: Any, path: str, default: Any = None) -> Any:
    """Return the value at *path*, or *default* when it is absent.

    Wildcard paths return a list aligned with the source list, with
    ``None`` at positions where the rest of the path is absent.
    """
    value = resolve(data, parse_path(path))
    if value is ABSENT:
        return default
    return fill_absent(value)


# ------------------------------------------------------------------ #
# Writing
# ------------------------------------------------------------------ #


def _container_for(token: Token) -> Any:
    return {} if isinstance(token, Key) else []


def _new_child(rest: tuple[Token, ...], value: Any) -> Any:
    """Container to create for a missing node that *rest* descends into.

    A wildcard over a missing list creates one element per value so the
    aligned write has somewhere to land.
    """
    if isinstance(rest[0], Wildcard) and isinstance(value, list):
        if len(rest) == 1:
            return []
        return [_container_for(rest[1]) for _ in value]
    return _container_for(rest[0])


def assign(node: Any, tokens: tuple[Token, ...], value: Any) -> None:
    """Write *value* at *tokens* inside *node*, creating intermediate containers.

    Under a wildcard, *value* must be a list aligned with the target list;
    positions holding :data:`ABSENT` are left untouched.
    """
    head, rest = tokens[0], tokens[1:]

    if isinstance(head, Key):
        if not isinstance(node, dict):
            raise TransformPathError(f"Cannot set key {head.name!r} on {type(node).__name__}")
        if not rest:
            node[head.name] = value
            return
        child = node.get(head.name)
        if not isinstance(child, (dict, list)):
            child = _new_child(rest, value)
            node[head.name] = child
        assign(child, rest, value)
        return

    if not isinstance(node, list):
        raise TransformPathError(f"Cannot index into {type(node).__name__}")

    if isinstance(head, Index):
        while len(node) <= head.index:
            node.append(None)
        if not rest:
            node[head.index] = value
            return
        if not isinstance(node[head.index], (dict, list)):
            node[head.index] = _new_child(rest, value)
        assign(node[head.index], rest, value)
        return

    # Wildcard
    if not isinstance(value, list):
        raise TransformPathError("Wildcard write needs a list value")
    if not node and not rest:
        node.extend(value)
        return
    if len(value) != len(node):
        raise TransformPathError(
            f"Wildcard write of {len(value)} values into a list of {len(node)}"
        )
    for position, item_value in enumerate(value):
        if item_value is ABSENT:
            continue
        if not rest:
            node[position] = item_value
        elif isinstance(node[position], (dict, list)):
            assign(node[position], rest, item_value)


def set_path(data: Any, path: str, value: Any) -> None:
    """Write *value* at *path* in place."""
    assign(data, parse_path(path), value)


def remove(node: Any, tokens: tuple[Token, ...]) -> None:
    """Delete the node at *tokens*; a wildcard deletes in every element."""
    head, rest = tokens[0], tokens[1:]

    if isinstance(head, Key):
        if not isinstance(node, dict):
            return
        if not rest:
            node.pop(head.name, None)
        elif head.name in node:
            remove(node[head.name], rest)
        return

    if not isinstance(node, list):
        return
    if isinstance(head, Index):
        if head.index >= len(node):
            return
        if not rest:
            del node[head.index]
        else:
            remove(node[head.index], rest)
        return

    if not rest:
        node.clear()
        return
    for item in node:
        remove(item, rest)


def delete_path(data: Any, path: str) -> None:
    """Delete the value at *path* in place.  Missing nodes are ignored."""
    remove(data, parse_path(path))


def output_key_path(path: str) -> tuple[Token, ...]:
    """Tokens at which an extracted value is written in the output object.

    Each dot segment becomes one literal key, so a literal index stays part
    of the key (``items[0].name`` writes ``{"items[0]": {"name": ...}}``).
    A wildcard path is written at its prefix before the first ``[*]``
    (``data.items[*].id`` writes ``{"data": {"items": [...]}}``).
    """
    parse_path(path)
    keys: list[Token] = []
    for segment in path.split("."):
        if "[*]" in segment:
            prefix = segment[: segment.index("[*]")]
            if prefix:
                keys.append(Key(prefix))
            break
        keys.append(Key(segment))
    if not keys:
        raise TransformPathError(f"Path {path!r} has no key before its wildcard")
    return tuple(keys)
