"""On-disk response cache for ovrmnd.

This package provides :func:`generate_cache_key`, which derives a
deterministic, credential-free key from a request, and :class:`CacheStore`,
a TTL store of post-transform payloads built on :mod:`diskcache`.

The store is consumed by :class:`~ovrmnd.client.executor.RequestExecutor`
and is controlled by the ``cache`` section of the global configuration
(:class:`~ovrmnd.models.CacheConfig`).
"""

from ovrmnd.cache.keys import DEFAULT_KEY_HEADERS, SECRET_HEADERS, generate_cache_key
from ovrmnd.cache.store import CacheStore, matches_pattern

__all__ = [
    "CacheStore",
    "DEFAULT_KEY_HEADERS",
    "SECRET_HEADERS",
    "generate_cache_key",
    "matches_pattern",
]
