"""Run one REST endpoint or GraphQL operation call end to end.

:class:`RequestExecutor` ties the pipeline together:

1. **Parameters** -- raw parameters are classified by
   :func:`~ovrmnd.params.resolve_params` (REST) or merged over the
   operation's default variables (GraphQL).
2. **Cache lookup** -- cacheable calls (GET endpoints and GraphQL queries
   with a positive ``cacheTTL``) are looked up by a credential-free key.  A
   hit returns the stored, already-transformed payload and skips both the
   transport and the transform pipeline.
3. **Request** -- authentication is applied and the request goes through
   the :class:`~ovrmnd.client.transport.Transport`.
4. **Transform** -- the decoded body runs through the target's
   :class:`~ovrmnd.transform.TransformPipeline`.
5. **Cache store** -- the transformed payload is stored for cacheable calls.

Every public method returns an :class:`~ovrmnd.models.ApiResult`; errors
raised inside the pipeline are captured into a failed result whose
``details["stage"]`` names the last stage the call completed.
"""

from __future__ import annotations

import enum
import logging
import re
import time
from dataclasses import dataclass, field
from typing import Any, Callable, Iterable, Optional, Union
from urllib.parse import quote

import httpx

from ovrmnd.cache import DEFAULT_KEY_HEADERS, SECRET_HEADERS, CacheStore, generate_cache_key
from ovrmnd.client.auth import apply_auth, auth_header_names, redact_headers
from ovrmnd.client.transport import Transport, TransportRequest, TransportResponse
from ovrmnd.exceptions import ConfigError, GraphQLError, OvrmndError, UpstreamHTTPError
from ovrmnd.models import (
    ApiResult,
    CacheConfig,
    CacheMetadata,
    EndpointConfig,
    ExtractStep,
    GraphQLOperationConfig,
    MappedRequest,
    ParamHints,
    RenameStep,
    ServiceConfig,
)
from ovrmnd.params import PLACEHOLDER_RE, ParamLayer, merge_param_layers, resolve_params
from ovrmnd.transform import TransformPipeline

logger = logging.getLogger(__name__)

_OPERATION_NAME_RE = re.compile(r"^\s*(?:query|mutation)\s+(\w+)")


class ExecutionStage(str, enum.Enum):
    """Progress of a single call.  ``FAILED`` is reachable from every other stage."""

    PENDING = "pending"
    PARAMS_RESOLVED = "params_resolved"
    CACHE_CHECKED = "cache_checked"
    REQUESTED = "requested"
    TRANSFORMED = "transformed"
    CACHED = "cached"
    RETURNED = "returned"
    FAILED = "failed"


def _epoch_ms() -> int:
    return int(time.time() * 1000)


# ---------------------------------------------------------------------------
# URL helpers
# ---------------------------------------------------------------------------


def join_url(base_url: str, path: str) -> str:
    """Join *base_url* and *path* with exactly one slash between them."""
    if not path:
        return base_url.rstrip("/")
    return f"{base_url.rstrip('/')}/{path.lstrip('/')}"


def build_url(
    base_url: str,
    template: str,
    path_params: dict[str, str],
    query: Optional[dict[str, Union[str, list[str]]]] = None,
) -> str:
    """Build the request URL for a REST endpoint.

    Path values are percent-encoded (``/`` included) and query parameters
    are appended sorted by name, so equal requests yield equal URLs.

    Example::

        >>> build_url("https://api.github.com/", "/repos/{owner}/{repo}",
        ...           {"owner": "octo cat", "repo": "x"}, {"per_page": "5", "page": "2"})
        'https://api.github.com/repos/octo%20cat/x?page=2&per_page=5'
    """
    path = PLACEHOLDER_RE.sub(lambda m: quote(path_params[m.group(1)], safe=""), template)
    url = join_url(base_url, path)
    if not query:
        return url

    pairs: list[tuple[str, str]] = []
    for name in sorted(query):
        value = query[name]
        for item in value if isinstance(value, list) else [value]:
            pairs.append((name, item))
    return str(httpx.URL(url).copy_merge_params(pairs))


def graphql_url(service: ServiceConfig) -> str:
    """Resolve the GraphQL endpoint of *service* against its base URL.

    Raises:
        ConfigError: If the service declares no ``graphqlEndpoint``.
    """
    if not service.graphql_endpoint:
        raise ConfigError(
            f"Service '{service.service_name}' does not have a GraphQL endpoint configured",
            details={"service": service.service_name},
            help='Add "graphqlEndpoint" to the service configuration',
        )
    if service.graphql_endpoint.startswith(("http://", "https://")):
        return service.graphql_endpoint
    return join_url(service.base_url, service.graphql_endpoint)


def operation_name(query: str) -> Optional[str]:
    """Read the operation name from ``query Name`` / ``mutation Name``, if any."""
    match = _OPERATION_NAME_RE.match(query)
    return match.group(1) if match else None


# ---------------------------------------------------------------------------
# Response unwrapping
# ---------------------------------------------------------------------------


def _unwrap_rest(response: TransportResponse) -> Any:
    if not response.is_success:
        raise UpstreamHTTPError(response.status_code, response.body, response.reason)
    return response.body


def _graphql_messages(errors: Iterable[Any]) -> list[str]:
    messages = []
    for error in errors:
        if not isinstance(error, dict):
            messages.append(str(error))
            continue
        message = str(error.get("message", "GraphQL error occurred"))
        path = error.get("path")
        if path:
            message = f"{message} (path: {'.'.join(str(p) for p in path)})"
        messages.append(message)
    return messages


def _unwrap_graphql(response: TransportResponse) -> Any:
    body = response.body
    if isinstance(body, dict) and body.get("errors"):
        raise GraphQLError(_graphql_messages(body["errors"]), response.status_code, response=body)
    if not response.is_success:
        raise UpstreamHTTPError(response.status_code, body, response.reason)
    return body.get("data") if isinstance(body, dict) else body


# ---------------------------------------------------------------------------
# Executor
# ---------------------------------------------------------------------------


@dataclass
class _PreparedCall:
    """Everything needed to send one request, independent of REST or GraphQL."""

    service: ServiceConfig
    name: str
    method: str
    url: str
    headers: dict[str, str]
    json_body: Any
    steps: list[Union[ExtractStep, RenameStep]]
    cache_ttl: int
    cacheable: bool
    key_headers: set[str] = field(default_factory=set)
    variables: Optional[dict[str, Any]] = None
    unwrap: Callable[[TransportResponse], Any] = _unwrap_rest


class RequestExecutor:
    """Execute calls against a transport with optional caching.

    Args:
        transport: Sends requests; see :class:`~ovrmnd.client.transport.Transport`.
        cache: Optional response cache.  ``None`` disables caching entirely.
        cache_config: Supplies extra header names (``key_headers``) that vary
            the cache key.
        clock: Returns the current time in epoch milliseconds.

    Example::

        with HttpTransport() as transport:
            executor = RequestExecutor(transport, cache=store)
            result = executor.execute(service, service.find_endpoint("getRepo"),
                                      {"owner": "octocat", "repo": "hello-world"})
    """

    def __init__(
        self,
        transport: Transport,
        cache: Optional[CacheStore] = None,
        cache_config: Optional[CacheConfig] = None,
        clock: Optional[Callable[[], int]] = None,
    ) -> None:
        self._transport = transport
        self._cache = cache
        self._cache_config = cache_config or CacheConfig()
        self._clock = clock or _epoch_ms

    # ------------------------------------------------------------------ #
    # Public entry points
    # ------------------------------------------------------------------ #

    def execute(
        self,
        service: ServiceConfig,
        endpoint: EndpointConfig,
        raw_params: dict[str, Any],
        hints: Optional[ParamHints] = None,
        *,
        use_cache: bool = True,
        apply_transform: bool = True,
    ) -> ApiResult:
        """Resolve *raw_params* for *endpoint* and run the call."""
        started = self._clock()
        try:
            mapped = resolve_params(endpoint, raw_params, hints)
        except OvrmndError as exc:
            return self._failure(exc, ExecutionStage.PENDING, started)
        return self.execute_mapped(
            service, endpoint, mapped, use_cache=use_cache, apply_transform=apply_transform
        )

    def execute_mapped(
        self,
        service: ServiceConfig,
        endpoint: EndpointConfig,
        mapped: MappedRequest,
        *,
        use_cache: bool = True,
        apply_transform: bool = True,
    ) -> ApiResult:
        """Run a REST call whose parameters are already classified."""
        started = self._clock()
        try:
            url = build_url(service.base_url, endpoint.path, mapped.path, mapped.query)
        except KeyError as exc:
            error = ConfigError(f"Path parameter {exc} has no value", details={"path": endpoint.path})
            return self._failure(error, ExecutionStage.PARAMS_RESOLVED, started)

        headers = {"Accept": "application/json", **endpoint.headers, **mapped.headers}
        call = _PreparedCall(
            service=service,
            name=endpoint.name,
            method=endpoint.method.value,
            url=url,
            headers=headers,
            json_body=mapped.body,
            steps=endpoint.transform,
            cache_ttl=endpoint.cache_ttl or 0,
            cacheable=endpoint.is_cacheable,
            key_headers=set(endpoint.headers) | set(mapped.headers),
        )
        return self._run(call, started, use_cache=use_cache, apply_transform=apply_transform)

    def execute_operation(
        self,
        service: ServiceConfig,
        operation: GraphQLOperationConfig,
        variables: dict[str, Any],
        *,
        use_cache: bool = True,
        apply_transform: bool = True,
    ) -> ApiResult:
        """Run a GraphQL operation.

        Caller *variables* override the operation's default variables.  The
        query text is sent verbatim as ``{query, variables, operationName}``.
        """
        started = self._clock()
        try:
            url = graphql_url(service)
        except ConfigError as exc:
            return self._failure(exc, ExecutionStage.PENDING, started)

        merged = merge_param_layers(
            [
                ParamLayer("operation-defaults", operation.variables),
                ParamLayer("caller", variables),
            ]
        )
        payload: dict[str, Any] = {"query": operation.query, "variables": merged}
        name = operation_name(operation.query)
        if name:
            payload["operationName"] = name

        call = _PreparedCall(
            service=service,
            name=operation.name,
            method="POST",
            url=url,
            headers={"Accept": "application/json", "Content-Type": "application/json"},
            json_body=payload,
            steps=operation.transform,
            cache_ttl=operation.cache_ttl or 0,
            cacheable=operation.is_cacheable,
            variables=merged,
            unwrap=_unwrap_graphql,
        )
        return self._run(call, started, use_cache=use_cache, apply_transform=apply_transform)

    # ------------------------------------------------------------------ #
    # Pipeline
    # ------------------------------------------------------------------ #

    def _run(
        self,
        call: _PreparedCall,
        started: int,
        *,
        use_cache: bool,
        apply_transform: bool,
    ) -> ApiResult:
        stage = ExecutionStage.PARAMS_RESOLVED
        # Stored payloads are post-transform, so --no-transform bypasses the cache.
        cache_key = None
        if call.cacheable and use_cache and apply_transform and self._cache is not None:
            cache_key = self._cache_key(call)
            entry = self._cache.get(cache_key)
            if entry is not None:
                logger.debug("Cache hit for %s.%s (%s)", call.service.service_name, call.name, cache_key)
                return ApiResult.ok(
                    entry.data,
                    cached=True,
                    timestamp=self._clock(),
                    duration_ms=self._clock() - started,
                )
            logger.debug("Cache miss for %s.%s", call.service.service_name, call.name)
        stage = ExecutionStage.CACHE_CHECKED

        try:
            headers = apply_auth(call.service, call.headers)
            logger.debug(
                "%s %s headers=%s",
                call.method,
                call.url,
                redact_headers(headers, auth_header_names(call.service)),
            )
            response = self._transport.send(
                TransportRequest(
                    method=call.method, url=call.url, headers=headers, json_body=call.json_body
                )
            )
            stage = ExecutionStage.REQUESTED
            data = call.unwrap(response)

            if apply_transform and call.steps:
                data = TransformPipeline(call.steps).transform(data)
            stage = ExecutionStage.TRANSFORMED

            if cache_key is not None:
                self._cache.set(
                    cache_key,
                    data,
                    call.cache_ttl,
                    CacheMetadata(service=call.service.service_name, endpoint=call.name, url=call.url),
                )
                stage = ExecutionStage.CACHED
        except OvrmndError as exc:
            return self._failure(exc, stage, started)

        return ApiResult.ok(
            data,
            cached=False,
            timestamp=self._clock(),
            status_code=response.status_code,
            duration_ms=self._clock() - started,
        )

    def _cache_key(self, call: _PreparedCall) -> str:
        allowed = (
            set(DEFAULT_KEY_HEADERS)
            | {h.lower() for h in call.key_headers}
            | {h.lower() for h in self._cache_config.key_headers}
        )
        denied = set(SECRET_HEADERS) | auth_header_names(call.service)
        return generate_cache_key(
            call.service.service_name,
            call.name,
            call.method,
            call.url,
            call.headers,
            allowed_headers=allowed,
            denied_headers=denied,
            variables=call.variables,
        )

    def _failure(self, exc: OvrmndError, stage: ExecutionStage, started: int) -> ApiResult:
        error = exc.to_api_error()
        details = dict(error.details) if isinstance(error.details, dict) else {}
        if error.details is not None and not isinstance(error.details, dict):
            details["detail"] = error.details
        details["stage"] = stage.value
        error.details = details

        status_code = getattr(exc, "status_code", None)
        logger.debug("Call failed at stage %s: %s", stage.value, exc.message)
        return ApiResult.fail(
            error,
            cached=False,
            timestamp=self._clock(),
            status_code=status_code,
            duration_ms=self._clock() - started,
        )
