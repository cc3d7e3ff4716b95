"""Parameter resolution: from flat ``key=value`` input to a classified request."""

from ovrmnd.params.resolver import (
    PLACEHOLDER_RE,
    ParamLayer,
    extract_path_parameters,
    hints_from_options,
    merge_param_layers,
    parse_key_value_pairs,
    resolve_params,
)

__all__ = [
    "PLACEHOLDER_RE",
    "ParamLayer",
    "extract_path_parameters",
    "hints_from_options",
    "merge_param_layers",
    "parse_key_value_pairs",
    "resolve_params",
]
