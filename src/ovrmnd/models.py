"""Canonical Pydantic models shared across all ovrmnd modules.

This is the single source of truth for data shapes in the project.  Every
other module imports from here rather than defining its own models.  The
models fall into three groups:

**Service configuration** -- parsed from the YAML service files:
    :class:`HTTPMethod`, :class:`AuthConfig`, :class:`ExtractStep`,
    :class:`RenameStep`, :class:`EndpointConfig`,
    :class:`GraphQLOperationConfig`, :class:`AliasConfig` and
    :class:`ServiceConfig`.

**Request pipeline** -- produced and consumed by the core:
    :class:`ParamHints`, :class:`MappedRequest`, :class:`CacheEntry`,
    :class:`CacheEntryInfo`, :class:`CacheStats`, :class:`ApiError`,
    :class:`ApiResult` and :class:`BatchOutcome`.

**User settings** -- serialised as JSON in the user's config directory:
    :class:`CacheConfig`, :class:`RequestConfig`, :class:`OutputConfig` and
    :class:`GlobalConfig`.

Service files use camelCase keys (``serviceName``, ``cacheTTL``,
``defaultParams``); the models declare them as aliases and accept the
snake_case field names too (``populate_by_name``).
"""

from __future__ import annotations

import enum
from datetime import datetime
from typing import Annotated, Any, Literal, Optional, Union

from pydantic import BaseModel, ConfigDict, Field, field_validator, model_validator


# --- Service configuration ---


class HTTPMethod(str, enum.Enum):
    """HTTP methods an endpoint may declare."""

    GET = "GET"
    POST = "POST"
    PUT = "PUT"
    PATCH = "PATCH"
    DELETE = "DELETE"

    @property
    def sends_body(self) -> bool:
        """Whether unhinted parameters travel in the request body for this method."""
        return self in (HTTPMethod.POST, HTTPMethod.PUT, HTTPMethod.PATCH)


class AuthConfig(BaseModel):
    """Authentication block of a service.

    Example::

        AuthConfig(type="apikey", token="${SHOP_TOKEN}", header="X-Shopify-Access-Token")
    """

    type: Literal["bearer", "apikey"]
    token: str = Field(description="Credential; may contain ${ENV_VAR} placeholders")
    header: Optional[str] = Field(
        default=None, description="Header name for apikey auth (default X-API-Key)"
    )


class ExtractStep(BaseModel):
    """Keep only the listed paths of a response."""

    kind: Literal["extract"] = "extract"
    paths: list[str]


class RenameStep(BaseModel):
    """Move values from ``old`` to ``new`` paths, in mapping order."""

    kind: Literal["rename"] = "rename"
    mapping: dict[str, str]


TransformStep = Annotated[Union[ExtractStep, RenameStep], Field(discriminator="kind")]


def decode_transform_spec(raw: Any) -> list[dict[str, Any]]:
    """Normalise the loose YAML ``transform`` shape into tagged step dicts.

    The YAML form is either a single object or a list of objects, each
    holding ``fields`` and/or ``rename``.  Within one object ``fields`` is
    applied before ``rename``.  Already-tagged steps (``kind`` present) and
    step models pass through unchanged.

    Raises:
        ValueError: If an entry is neither a mapping nor a step model.
    """
    if raw is None:
        return []
    entries = raw if isinstance(raw, list) else [raw]
    steps: list[Any] = []
    for entry in entries:
        if isinstance(entry, (ExtractStep, RenameStep)):
            steps.append(entry)
            continue
        if not isinstance(entry, dict):
            raise ValueError(f"transform entries must be mappings, got {type(entry).__name__}")
        if "kind" in entry:
            steps.append(entry)
            continue
        if entry.get("fields"):
            steps.append({"kind": "extract", "paths": list(entry["fields"])})
        if entry.get("rename"):
            steps.append({"kind": "rename", "mapping": dict(entry["rename"])})
    return steps


class _TransformingConfig(BaseModel):
    """Shared ``transform`` decoding for endpoints and GraphQL operations."""

    model_config = ConfigDict(populate_by_name=True)

    transform: list[TransformStep] = Field(default_factory=list)

    @field_validator("transform", mode="before")
    @classmethod
    def _decode_transform(cls, value: Any) -> Any:
        return decode_transform_spec(value)


class EndpointConfig(_TransformingConfig):
    """A callable REST operation: method, path template, cache policy and transforms."""

    name: str
    method: HTTPMethod = HTTPMethod.GET
    path: str = Field(description="URL path with {param} placeholders")
    description: Optional[str] = None
    cache_ttl: Optional[int] = Field(default=None, alias="cacheTTL")
    headers: dict[str, str] = Field(default_factory=dict)
    default_params: dict[str, Any] = Field(default_factory=dict, alias="defaultParams")

    @field_validator("method", mode="before")
    @classmethod
    def _upper_method(cls, value: Any) -> Any:
        return value.upper() if isinstance(value, str) else value

    @property
    def is_cacheable(self) -> bool:
        """GET endpoints with a positive TTL are cached."""
        return self.method == HTTPMethod.GET and bool(self.cache_ttl and self.cache_ttl > 0)


class GraphQLOperationConfig(_TransformingConfig):
    """A named GraphQL query or mutation with default variables."""

    name: str
    operation_type: Literal["query", "mutation"] = Field(default="query", alias="operationType")
    query: str
    variables: dict[str, Any] = Field(default_factory=dict)
    cache_ttl: Optional[int] = Field(default=None, alias="cacheTTL")

    @property
    def is_cacheable(self) -> bool:
        """Only queries with a positive TTL are cached; mutations never are."""
        return self.operation_type == "query" and bool(self.cache_ttl and self.cache_ttl > 0)


class AliasConfig(BaseModel):
    """A shortcut name for an endpoint with pre-filled arguments."""

    name: str
    endpoint: str
    args: dict[str, Any] = Field(default_factory=dict)
    description: Optional[str] = None


class ServiceConfig(BaseModel):
    """One service file: base URL, auth, endpoints/operations and aliases.

    See Also:
        :func:`~ovrmnd.config.load_service_file`: parse and validate a file.
    """

    model_config = ConfigDict(populate_by_name=True)

    service_name: str = Field(alias="serviceName")
    base_url: str = Field(alias="baseUrl")
    api_type: Literal["rest", "graphql"] = Field(default="rest", alias="apiType")
    authentication: Optional[AuthConfig] = None
    endpoints: list[EndpointConfig] = Field(default_factory=list)
    graphql_endpoint: Optional[str] = Field(default=None, alias="graphqlEndpoint")
    graphql_operations: list[GraphQLOperationConfig] = Field(
        default_factory=list, alias="graphqlOperations"
    )
    aliases: list[AliasConfig] = Field(default_factory=list)

    def find_endpoint(self, name: str) -> Optional[EndpointConfig]:
        return next((e for e in self.endpoints if e.name == name), None)

    def find_operation(self, name: str) -> Optional[GraphQLOperationConfig]:
        return next((o for o in self.graphql_operations if o.name == name), None)

    def find_alias(self, name: str) -> Optional[AliasConfig]:
        return next((a for a in self.aliases if a.name == name), None)

    @model_validator(mode="after")
    def _check_consistency(self) -> ServiceConfig:
        if self.api_type == "graphql":
            if not self.graphql_endpoint:
                raise ValueError("GraphQL services require graphqlEndpoint")
            if not self.graphql_operations:
                raise ValueError("GraphQL services require graphqlOperations")
        elif not self.endpoints:
            raise ValueError("REST services require endpoints")

        for label, names in (
            ("endpoint", [e.name for e in self.endpoints]),
            ("operation", [o.name for o in self.graphql_operations]),
            ("alias", [a.name for a in self.aliases]),
        ):
            duplicates = sorted({n for n in names if names.count(n) > 1})
            if duplicates:
                raise ValueError(f"Duplicate {label} names: {', '.join(duplicates)}")

        for alias in self.aliases:
            if self.find_endpoint(alias.endpoint) is None and self.find_operation(alias.endpoint) is None:
                raise ValueError(
                    f"Alias '{alias.name}' references unknown endpoint '{alias.endpoint}'"
                )
        return self


# --- Request pipeline ---


class ParamHints(BaseModel):
    """Parameter names the caller explicitly tagged with a location."""

    path: set[str] = Field(default_factory=set)
    query: set[str] = Field(default_factory=set)
    header: set[str] = Field(default_factory=set)
    body: set[str] = Field(default_factory=set)


class MappedRequest(BaseModel):
    """Raw parameters classified into request locations.

    Every ``{name}`` placeholder of the endpoint's path template has an entry
    in ``path``; :func:`~ovrmnd.params.resolve_params` guarantees it.
    """

    path: dict[str, str] = Field(default_factory=dict)
    query: dict[str, Union[str, list[str]]] = Field(default_factory=dict)
    headers: dict[str, str] = Field(default_factory=dict)
    body: Optional[dict[str, Any]] = None


class CacheMetadata(BaseModel):
    """Inspection metadata stored beside each cached payload."""

    service: str = ""
    endpoint: str = ""
    url: str = ""

    @property
    def label(self) -> str:
        """``service.endpoint``, the name cache patterns match against."""
        return f"{self.service}.{self.endpoint}"


class CacheEntry(BaseModel):
    """A cached, already-transformed payload."""

    key: str
    data: Any = None
    timestamp: int = Field(description="Insertion time, epoch milliseconds")
    ttl_seconds: int
    metadata: CacheMetadata = Field(default_factory=CacheMetadata)

    @property
    def expires_at(self) -> int:
        return self.timestamp + self.ttl_seconds * 1000

    def is_expired(self, now_ms: int) -> bool:
        return now_ms >= self.expires_at


class CacheEntryInfo(BaseModel):
    """One row of ``ovrmnd cache list``."""

    key: str
    service: str
    endpoint: str
    url: str
    timestamp: int
    expires_at: int
    age_seconds: int
    ttl_seconds: int
    ttl_remaining: int
    size: int
    expired: bool


class ServiceCacheStats(BaseModel):
    entries: int = 0
    size: int = 0


class CacheStats(BaseModel):
    """Aggregate view over every stored entry."""

    total_entries: int = 0
    total_size_bytes: int = 0
    oldest: Optional[datetime] = None
    newest: Optional[datetime] = None
    by_service: dict[str, ServiceCacheStats] = Field(default_factory=dict)


class ApiError(BaseModel):
    code: str
    message: str
    details: Any = None
    help: Optional[str] = None


class ResultMetadata(BaseModel):
    cached: bool = False
    timestamp: int = 0
    status_code: Optional[int] = None
    duration_ms: Optional[int] = None


class ApiResult(BaseModel):
    """Outcome of one call: either ``data`` (success) or ``error`` (failure).

    Every public entry point of the core returns this instead of raising, so
    callers never need exception handling to interpret an outcome.
    """

    success: bool
    data: Any = None
    error: Optional[ApiError] = None
    metadata: ResultMetadata = Field(default_factory=ResultMetadata)

    @classmethod
    def ok(cls, data: Any, **metadata: Any) -> ApiResult:
        return cls(success=True, data=data, metadata=ResultMetadata(**metadata))

    @classmethod
    def fail(cls, error: ApiError, **metadata: Any) -> ApiResult:
        return cls(success=False, error=error, metadata=ResultMetadata(**metadata))


class BatchOutcome(BaseModel):
    """Results of a sequential batch, index-aligned with the submitted items.

    ``results[i]`` belongs to ``items[i]`` for every attempted item.  After a
    fail-fast halt ``len(results) < total`` and ``halted`` is set; the
    unattempted items have no entry.
    """

    results: list[ApiResult] = Field(default_factory=list)
    total: int = 0
    halted: bool = False

    @property
    def success(self) -> bool:
        return all(r.success for r in self.results)

    @property
    def failed_indices(self) -> list[int]:
        return [i for i, r in enumerate(self.results) if not r.success]


# --- User settings ---


class CacheConfig(BaseModel):
    """Response cache settings stored in :class:`GlobalConfig`."""

    enabled: bool = Field(default=True, description="Enable response caching")
    directory: Optional[str] = Field(
        default=None, description="Cache root; defaults to the XDG cache directory"
    )
    max_size_bytes: int = Field(
        default=50 * 1024 * 1024, description="Evict oldest entries above this total size"
    )
    sweep_interval_seconds: int = Field(
        default=300, description="Minimum seconds between expiry sweeps"
    )
    key_headers: list[str] = Field(
        default_factory=list, description="Extra header names that vary the cache key"
    )


class RequestConfig(BaseModel):
    """HTTP transport settings."""

    timeout: float = Field(default=30.0, description="Request timeout in seconds")
    verify_ssl: bool = Field(default=True, description="Verify SSL certificates")


class OutputConfig(BaseModel):
    """Default output format preferences."""

    format: str = Field(default="auto", description="Output format: auto, json, plain, rich")


class GlobalConfig(BaseModel):
    """User-wide configuration persisted at ``~/.config/ovrmnd/config.json``."""

    output: OutputConfig = Field(default_factory=OutputConfig)
    cache: CacheConfig = Field(default_factory=CacheConfig)
    request: RequestConfig = Field(default_factory=RequestConfig)
