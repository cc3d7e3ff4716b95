"""Declarative response reshaping.

:mod:`ovrmnd.transform.paths` implements the ``a.b``, ``items[0]`` and
``items[*].id`` path grammar; :class:`TransformPipeline` chains extract and
rename steps over a decoded response body.
"""

from ovrmnd.models import decode_transform_spec
from ovrmnd.transform.paths import delete_path, get_path, parse_path, set_path
from ovrmnd.transform.pipeline import TransformPipeline, apply_step, extract, rename

__all__ = [
    "TransformPipeline",
    "apply_step",
    "decode_transform_spec",
    "delete_path",
    "extract",
    "get_path",
    "parse_path",
    "rename",
    "set_path",
]
