"""Static checks for service files, used by ``ovrmnd validate``.

A file is checked in three passes:

1. **Syntax** -- the YAML must parse to a mapping.  Parse errors carry the
   1-based line number reported by PyYAML.
2. **Schema** -- the raw mapping must validate as a
   :class:`~ovrmnd.models.ServiceConfig`.  Each pydantic error becomes one
   issue.
3. **Semantics** -- likely mistakes that still load: missing
   authentication, a cache TTL that will never apply, hardcoded auth
   headers, aliases that cannot fill their path and so on.  Most are
   warnings; a few (non-positive TTL, repeated path parameters, a base URL
   without an http(s) scheme, names shared by an endpoint and an alias)
   are errors.

Environment placeholders are *not* interpolated, so a file referencing an
unset variable still validates and the variable is reported as a warning.
"""

from __future__ import annotations

import logging
import os
from pathlib import Path
from typing import Any, Iterable, Optional, Union

import yaml
from pydantic import BaseModel, Field, ValidationError

from ovrmnd.config import ENV_VAR_RE, validation_messages
from ovrmnd.models import EndpointConfig, HTTPMethod, ServiceConfig
from ovrmnd.params import PLACEHOLDER_RE

logger = logging.getLogger(__name__)

_AUTH_HEADERS = frozenset({"authorization", "x-api-key"})
_LOCAL_HOSTS = ("localhost", "127.0.0.1")


class ValidationIssue(BaseModel):
    """One problem found in a service file."""

    message: str
    line: Optional[int] = None
    context: Optional[str] = None
    suggestion: Optional[str] = None


class ValidationResult(BaseModel):
    """Every issue found in one file."""

    file: str
    service_name: Optional[str] = None
    errors: list[ValidationIssue] = Field(default_factory=list)
    warnings: list[ValidationIssue] = Field(default_factory=list)

    @property
    def valid(self) -> bool:
        return not self.errors

    def passed(self, strict: bool = False) -> bool:
        """No errors, and no warnings either when *strict*."""
        return self.valid and not (strict and self.warnings)

    def error(self, message: str, **extra: Any) -> None:
        self.errors.append(ValidationIssue(message=message, **extra))

    def warn(self, message: str, **extra: Any) -> None:
        self.warnings.append(ValidationIssue(message=message, **extra))


def validate_service_file(path: Union[str, Path]) -> ValidationResult:
    """Run every check over the service file at *path*.

    Never raises: unreadable and unparsable files are reported as errors
    on the returned result.
    """
    path = Path(path)
    result = ValidationResult(file=str(path))
    try:
        text = path.read_text(encoding="utf-8")
    except OSError as exc:
        result.error(f"Failed to read file: {exc}")
        return result

    try:
        raw = yaml.safe_load(text)
    except yaml.YAMLError as exc:
        mark = getattr(exc, "problem_mark", None)
        result.error(
            f"YAML syntax error: {getattr(exc, 'problem', None) or exc}",
            line=mark.line + 1 if mark is not None else None,
        )
        return result

    if not isinstance(raw, dict):
        result.error("Service file must contain a mapping")
        return result
    if isinstance(raw.get("serviceName"), str):
        result.service_name = raw["serviceName"]

    try:
        service = ServiceConfig.model_validate(raw)
    except ValidationError as exc:
        for message in validation_messages(exc):
            result.error(message)
        return result

    _check_authentication(service, result)
    for endpoint in service.endpoints:
        _check_endpoint(endpoint, result)
    for operation in service.graphql_operations:
        if operation.cache_ttl is not None:
            _check_ttl(operation.name, operation.cache_ttl, result)
            if operation.operation_type == "mutation":
                result.warn(
                    f"Cache TTL on mutation '{operation.name}' will be ignored",
                    suggestion="Remove cacheTTL; only queries are cached",
                )
    _check_aliases(service, result)
    _check_base_url(service.base_url, result)
    _check_env_vars(raw, result)
    logger.debug(
        "Validated %s: %d error(s), %d warning(s)", path, len(result.errors), len(result.warnings)
    )
    return result


def validate_service_files(paths: Iterable[Union[str, Path]]) -> list[ValidationResult]:
    return [validate_service_file(path) for path in paths]


def files_for_service(paths: Iterable[Path], service: str) -> list[Path]:
    """Pick the files that define *service*, by file name or ``serviceName``.

    Matching is case-insensitive.  Files that cannot be read or parsed are
    only matched by name.
    """
    wanted = service.lower()
    matched = []
    for path in paths:
        if path.stem.lower() == wanted:
            matched.append(path)
            continue
        try:
            raw = yaml.safe_load(path.read_text(encoding="utf-8"))
        except (OSError, yaml.YAMLError) as exc:
            logger.debug("Not matching %s by serviceName: %s", path, exc)
            continue
        if isinstance(raw, dict) and str(raw.get("serviceName", "")).lower() == wanted:
            matched.append(path)
    return matched


# --- Checks ---


def _check_authentication(service: ServiceConfig, result: ValidationResult) -> None:
    auth = service.authentication
    if auth is None:
        result.warn(
            "No authentication configured; calls may fail if the API requires it",
            suggestion="Add an authentication section with type bearer or apikey",
        )
        return
    if not auth.token:
        result.error(
            f"{auth.type} authentication requires a token",
            suggestion='Add "token: ${YOUR_API_TOKEN}" to authentication',
        )
    if auth.type == "apikey" and not auth.header:
        result.warn(
            'API key authentication without a header will use "X-API-Key"',
            suggestion="Add header: Your-Header-Name to authentication",
        )


def _path_parameters(path: str) -> list[str]:
    """Every ``{name}`` in *path*, repeats included, ignoring ``${VAR}`` placeholders."""
    return PLACEHOLDER_RE.findall(ENV_VAR_RE.sub("", path))


def _check_ttl(name: str, ttl: int, result: ValidationResult) -> None:
    if ttl <= 0:
        result.error(
            f"Invalid cache TTL for '{name}': must be positive",
            context=f"cacheTTL: {ttl}",
        )


def _check_endpoint(endpoint: EndpointConfig, result: ValidationResult) -> None:
    name = endpoint.name
    if not endpoint.path.startswith(("/", "${")):
        result.warn(
            f"Endpoint '{name}' path should start with '/'",
            context=f"Path: {endpoint.path}",
            suggestion=f"Change to: /{endpoint.path}",
        )

    params = _path_parameters(endpoint.path)
    repeated = sorted({p for p in params if params.count(p) > 1})
    if repeated:
        result.error(
            f"Duplicate path parameters in endpoint '{name}': {', '.join(repeated)}",
            context=f"Path: {endpoint.path}",
        )

    if endpoint.method in (HTTPMethod.GET, HTTPMethod.DELETE):
        query_defaults = [key for key in endpoint.default_params if key not in params]
        if query_defaults:
            result.warn(
                f"{endpoint.method.value} endpoint '{name}' sends its defaultParams "
                "as query parameters",
                context=f"Parameters: {', '.join(query_defaults)}",
                suggestion="Ensure these are intended as query parameters",
            )

    if endpoint.cache_ttl is not None:
        if endpoint.method != HTTPMethod.GET:
            result.warn(
                f"Cache TTL on non-GET endpoint '{name}' will be ignored",
                context=f"Method: {endpoint.method.value}",
                suggestion="Remove cacheTTL or change the method to GET",
            )
        _check_ttl(name, endpoint.cache_ttl, result)

    for header in endpoint.headers:
        lowered = header.lower()
        if lowered == "content-type" and endpoint.method == HTTPMethod.GET:
            result.warn(
                f"Content-Type header on GET endpoint '{name}' is unusual",
                suggestion="Remove the Content-Type header",
            )
        if lowered in _AUTH_HEADERS:
            result.warn(
                f"Authentication header in endpoint '{name}' headers",
                context=f"Header: {header}",
                suggestion="Use the authentication section instead of hardcoding auth headers",
            )


def _check_aliases(service: ServiceConfig, result: ValidationResult) -> None:
    targets = {e.name for e in service.endpoints} | {o.name for o in service.graphql_operations}
    for alias in service.aliases:
        if alias.name in targets:
            result.error(
                f"Alias '{alias.name}' has the same name as an endpoint and can never be called",
                suggestion="Use unique names for endpoints and aliases",
            )
        endpoint = service.find_endpoint(alias.endpoint)
        if endpoint is None:
            continue
        missing = [p for p in dict.fromkeys(_path_parameters(endpoint.path)) if p not in alias.args]
        if missing:
            result.warn(
                f"Alias '{alias.name}' does not set every path parameter",
                context=f"Missing: {', '.join(missing)}",
                suggestion="Add them to args or pass them at call time",
            )


def _check_base_url(base_url: str, result: ValidationResult) -> None:
    if ENV_VAR_RE.fullmatch(base_url):
        return
    if base_url.endswith("/"):
        result.warn(
            "Base URL ends with a slash",
            context=f"URL: {base_url}",
            suggestion="Remove the trailing slash from baseUrl",
        )
    if not base_url.startswith(("http://", "https://", "${")):
        result.error("Base URL must start with http:// or https://", context=f"URL: {base_url}")
    if any(host in base_url for host in _LOCAL_HOSTS):
        result.warn(
            "Base URL points to localhost",
            context=f"URL: {base_url}",
            suggestion="Ensure this is intended for local development only",
        )


def _strings(value: Any) -> Iterable[str]:
    if isinstance(value, str):
        yield value
    elif isinstance(value, dict):
        for item in value.values():
            yield from _strings(item)
    elif isinstance(value, list):
        for item in value:
            yield from _strings(item)


def _check_env_vars(raw: dict[str, Any], result: ValidationResult) -> None:
    seen: set[str] = set()
    for text in _strings(raw):
        for name in ENV_VAR_RE.findall(text):
            if name in seen:
                continue
            seen.add(name)
            if name not in os.environ:
                result.warn(
                    f"Environment variable '{name}' is not set",
                    suggestion=f"export {name}=...",
                )
