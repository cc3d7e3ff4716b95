"""Deterministic, secret-free cache keys.

A key is ``{service}.{endpoint}.{digest}`` where *digest* is the first 16 hex
characters of the SHA-256 of a canonical JSON object describing the request.
Only allow-listed headers take part, and denied (credential-bearing) headers
never do, so the digest is independent of who is calling.  Two callers with
different credentials therefore share an entry for the same logical request.

Example::

    >>> generate_cache_key("github", "listRepos", "GET",
    ...                    "https://api.github.com/user/repos",
    ...                    {"Accept": "application/json", "Authorization": "Bearer x"})
    'github.listRepos.3f2a...'
"""

from __future__ import annotations

import hashlib
import json
from typing import Any, Iterable, Mapping, Optional

SECRET_HEADERS: frozenset[str] = frozenset(
    {
        "authorization",
        "proxy-authorization",
        "x-api-key",
        "api-key",
        "cookie",
        "x-auth-token",
        "x-access-token",
    }
)

DEFAULT_KEY_HEADERS: frozenset[str] = frozenset({"accept", "accept-language", "content-type"})

DIGEST_LENGTH = 16


def canonical_headers(
    headers: Optional[Mapping[str, str]],
    allowed: Iterable[str],
    denied: Iterable[str],
) -> list[list[str]]:
    """Filter and normalise *headers* for hashing.

    Returns:
        ``[name, value]`` pairs, lower-cased and sorted by name.  Names that
        are not allowed, or that are denied, are dropped.
    """
    if not headers:
        return []
    allow = {h.lower() for h in allowed}
    deny = {h.lower() for h in denied}
    pairs = {}
    for name, value in headers.items():
        lowered = name.lower()
        if lowered in allow and lowered not in deny:
            pairs[lowered] = str(value).lower()
    return [[name, pairs[name]] for name in sorted(pairs)]


def generate_cache_key(
    service: str,
    endpoint: str,
    method: str,
    url: str,
    headers: Optional[Mapping[str, str]] = None,
    *,
    allowed_headers: Iterable[str] = DEFAULT_KEY_HEADERS,
    denied_headers: Iterable[str] = SECRET_HEADERS,
    variables: Optional[dict[str, Any]] = None,
) -> str:
    """Build the cache key for one request.

    Args:
        service: Service name (first key segment).
        endpoint: Endpoint or operation name (second key segment).
        method: HTTP method; upper-cased before hashing.
        url: Fully built request URL including the sorted query string.
        headers: Request headers; filtered through the allow and deny lists.
        allowed_headers: Header names that vary the key.
        denied_headers: Header names that never vary the key, even when allowed.
        variables: GraphQL variables.  Omitted from the canonical object when
            ``None`` so REST keys are unaffected.

    Returns:
        ``"{service}.{endpoint}.{digest}"``.
    """
    canonical: dict[str, Any] = {
        "service": service,
        "endpoint": endpoint,
        "method": method.upper(),
        "url": url,
        "headers": canonical_headers(headers, allowed_headers, denied_headers),
    }
    if variables is not None:
        canonical["variables"] = variables

    serialised = json.dumps(canonical, sort_keys=True, separators=(",", ":"), default=str)
    digest = hashlib.sha256(serialised.encode("utf-8")).hexdigest()[:DIGEST_LENGTH]
    return f"{service}.{endpoint}.{digest}"
