"""Disk-backed TTL cache for transformed API responses.

Every entry lives in two :class:`diskcache.Cache` stores under the cache
directory, both keyed by the same generated key:

* ``meta/`` -- a small JSON record (service, endpoint, URL, insertion time,
  TTL, payload size) so listing and statistics never touch payloads.
* ``data/`` -- the post-transform payload itself.

The ``meta/`` store also keeps one reserved record with the running payload
total, so writes check the size ceiling without scanning every entry.

Both stores use :class:`diskcache.JSONDisk`.  Expiry and eviction are
decided here from the stored timestamps rather than by diskcache, so the
clock can be injected in tests and eviction is strictly oldest-inserted
first.

Storage failures never propagate: they are logged at warning level and the
operation degrades to a miss, a no-op, or zero.

See Also:
    :func:`~ovrmnd.cache.keys.generate_cache_key` -- builds the keys used here.
"""

from __future__ import annotations

import json
import logging
import sqlite3
import time
from datetime import datetime, timezone
from fnmatch import fnmatchcase
from pathlib import Path
from typing import Any, Callable, Optional

import diskcache
from pydantic import BaseModel

from ovrmnd.exceptions import CacheIOError
from ovrmnd.models import (
    CacheConfig,
    CacheEntry,
    CacheEntryInfo,
    CacheMetadata,
    CacheStats,
    ServiceCacheStats,
)

logger = logging.getLogger(__name__)

_STORAGE_ERRORS = (OSError, sqlite3.Error, diskcache.Timeout, TypeError, ValueError)

_MISSING = object()

# Reserved meta record holding the running payload total.
_SIZE_KEY = "__total_size__"


def _epoch_ms() -> int:
    return int(time.time() * 1000)


def matches_pattern(label: str, pattern: str) -> bool:
    """Match a ``service.endpoint`` label against a clear/list pattern.

    A pattern containing ``*``, ``?`` or ``[`` is an :mod:`fnmatch` glob.
    Otherwise it matches the exact label, or every endpoint of a service
    when it is a prefix ending at a dot boundary (``github`` matches
    ``github.listRepos`` but not ``githubber.x``).
    """
    if any(ch in pattern for ch in "*?["):
        return fnmatchcase(label, pattern)
    return label == pattern or label.startswith(pattern + ".")


class StoredMeta(BaseModel):
    """The record written to the ``meta/`` store."""

    key: str
    timestamp: int
    ttl_seconds: int
    size: int = 0
    service: str = ""
    endpoint: str = ""
    url: str = ""

    @property
    def label(self) -> str:
        return f"{self.service}.{self.endpoint}"

    @property
    def expires_at(self) -> int:
        return self.timestamp + self.ttl_seconds * 1000

    def is_expired(self, now_ms: int) -> bool:
        return now_ms >= self.expires_at


class CacheStore:
    """TTL cache of transformed payloads keyed by generated cache keys.

    Args:
        cache_dir: Root directory; ``meta/`` and ``data/`` are created in it.
        config: Cache settings (``enabled``, ``max_size_bytes``,
            ``sweep_interval_seconds``).  ``enabled=False`` turns
            :meth:`get` and :meth:`set` into no-ops while keeping the
            management operations available.
        clock: Returns the current time in epoch milliseconds.

    Example::

        with CacheStore("/tmp/ovrmnd-cache") as store:
            store.set("github.listRepos.3f2a9c", [{"id": 1}], ttl_seconds=300)
            entry = store.get("github.listRepos.3f2a9c")
    """

    def __init__(
        self,
        cache_dir: str | Path,
        config: Optional[CacheConfig] = None,
        clock: Optional[Callable[[], int]] = None,
    ) -> None:
        self._config = config or CacheConfig()
        self._cache_dir = Path(cache_dir)
        self._clock = clock or _epoch_ms
        self._last_sweep = self._clock()
        self._meta: Optional[diskcache.Cache] = None
        self._data: Optional[diskcache.Cache] = None
        try:
            self._meta = self._open("meta")
            self._data = self._open("data")
        except _STORAGE_ERRORS as exc:
            logger.warning("Cache disabled, cannot open %s: %s", self._cache_dir, exc)
            self.close()

    def _open(self, name: str) -> diskcache.Cache:
        return diskcache.Cache(
            str(self._cache_dir / name),
            disk=diskcache.JSONDisk,
            eviction_policy="none",
        )

    @property
    def directory(self) -> Path:
        return self._cache_dir

    @property
    def enabled(self) -> bool:
        """Whether lookups and writes are active."""
        return self._config.enabled and self._available

    @property
    def _available(self) -> bool:
        return self._meta is not None and self._data is not None

    # ------------------------------------------------------------------ #
    # Lookups and writes
    # ------------------------------------------------------------------ #

    def get(self, key: str) -> Optional[CacheEntry]:
        """Return the live entry for *key*, or ``None``.

        An entry whose TTL has elapsed (``now >= timestamp + ttl``) is a
        miss, and both of its records are deleted.
        """
        if not self.enabled:
            return None
        try:
            raw = self._call("read", self._meta.get, key)
            if raw is None:
                return None
            meta = StoredMeta.model_validate(raw)
            if meta.is_expired(self._clock()):
                logger.debug("Cache entry %s expired", key)
                self._remove(key)
                return None
            data = self._call("read", self._data.get, key, _MISSING)
            if data is _MISSING:
                self._remove(key)
                return None
        except (CacheIOError, ValueError) as exc:
            logger.warning("Cache read failed for %s: %s", key, exc)
            return None

        return CacheEntry(
            key=key,
            data=data,
            timestamp=meta.timestamp,
            ttl_seconds=meta.ttl_seconds,
            metadata=CacheMetadata(service=meta.service, endpoint=meta.endpoint, url=meta.url),
        )

    def set(
        self,
        key: str,
        data: Any,
        ttl_seconds: int,
        metadata: Optional[CacheMetadata] = None,
    ) -> None:
        """Store *data* under *key* for *ttl_seconds*.

        Does nothing when ``ttl_seconds <= 0`` or the store is disabled.
        Runs :meth:`sweep` when the sweep interval has elapsed or the size
        ceiling is exceeded.
        """
        if not self.enabled or ttl_seconds <= 0:
            return
        now = self._clock()
        metadata = metadata or CacheMetadata()
        try:
            size = len(json.dumps(data, separators=(",", ":")).encode("utf-8"))
            record = StoredMeta(
                key=key,
                timestamp=now,
                ttl_seconds=ttl_seconds,
                size=size,
                service=metadata.service,
                endpoint=metadata.endpoint,
                url=metadata.url,
            )
            previous = self._call("read", self._meta.get, key)
            self._call("write", self._data.set, key, data)
            self._call("write", self._meta.set, key, record.model_dump())
            self._add_size(size - _record_size(previous))
        except (CacheIOError, TypeError, ValueError) as exc:
            logger.warning("Cache write failed for %s: %s", key, exc)
            return

        interval_ms = self._config.sweep_interval_seconds * 1000
        if now - self._last_sweep >= interval_ms or self._total_size() > self._config.max_size_bytes:
            self.sweep()

    def delete(self, key: str) -> bool:
        """Remove one entry.  Returns whether it existed."""
        if not self._available:
            return False
        try:
            return self._remove(key)
        except CacheIOError as exc:
            logger.warning("Cache delete failed for %s: %s", key, exc)
            return False

    # ------------------------------------------------------------------ #
    # Management
    # ------------------------------------------------------------------ #

    def clear_all(self) -> int:
        """Remove every entry.  Returns the number of entries removed."""
        if not self._available:
            return 0
        try:
            counted = self._call("read", self._meta.get, _SIZE_KEY) is not None
            count = self._call("clear", self._meta.clear)
            self._call("clear", self._data.clear)
        except CacheIOError as exc:
            logger.warning("Cache clear failed: %s", exc)
            return 0
        return count - 1 if counted else count

    def clear_by_pattern(self, pattern: str) -> int:
        """Remove entries whose ``service.endpoint`` label matches *pattern*.

        See :func:`matches_pattern` for the matching rules.
        """
        removed = 0
        try:
            for record in self._records():
                if matches_pattern(record.label, pattern) and self._remove(record.key):
                    removed += 1
        except CacheIOError as exc:
            logger.warning("Cache clear failed for %r: %s", pattern, exc)
        return removed

    def stats(self) -> CacheStats:
        """Aggregate entry count, byte size and insertion-time range."""
        try:
            records = self._records()
        except CacheIOError as exc:
            logger.warning("Cache stats unavailable: %s", exc)
            return CacheStats()
        if not records:
            return CacheStats()

        by_service: dict[str, ServiceCacheStats] = {}
        for record in records:
            bucket = by_service.setdefault(record.service, ServiceCacheStats())
            bucket.entries += 1
            bucket.size += record.size

        stamps = [r.timestamp for r in records]
        return CacheStats(
            total_entries=len(records),
            total_size_bytes=sum(r.size for r in records),
            oldest=_to_datetime(min(stamps)),
            newest=_to_datetime(max(stamps)),
            by_service=by_service,
        )

    def list_all(self, pattern: Optional[str] = None) -> list[CacheEntryInfo]:
        """Describe stored entries, newest first, without loading payloads.

        Args:
            pattern: Optional ``service.endpoint`` pattern filter.
        """
        try:
            records = self._records()
        except CacheIOError as exc:
            logger.warning("Cache listing unavailable: %s", exc)
            return []

        now = self._clock()
        rows = []
        for record in records:
            if pattern and not matches_pattern(record.label, pattern):
                continue
            rows.append(
                CacheEntryInfo(
                    key=record.key,
                    service=record.service,
                    endpoint=record.endpoint,
                    url=record.url,
                    timestamp=record.timestamp,
                    expires_at=record.expires_at,
                    age_seconds=max(0, (now - record.timestamp) // 1000),
                    ttl_seconds=record.ttl_seconds,
                    ttl_remaining=max(0, (record.expires_at - now) // 1000),
                    size=record.size,
                    expired=record.is_expired(now),
                )
            )
        rows.sort(key=lambda row: row.timestamp, reverse=True)
        return rows

    def sweep(self) -> int:
        """Purge expired entries, then evict the oldest until under the size ceiling.

        Eviction order is insertion time, never access time.

        Returns:
            Number of entries removed.
        """
        now = self._clock()
        self._last_sweep = now
        removed = 0
        try:
            live = []
            for record in self._records():
                if record.is_expired(now):
                    self._remove(record.key)
                    removed += 1
                else:
                    live.append(record)

            total = sum(r.size for r in live)
            live.sort(key=lambda r: r.timestamp)
            while live and total > self._config.max_size_bytes:
                oldest = live.pop(0)
                self._remove(oldest.key)
                total -= oldest.size
                removed += 1
            self._call("write", self._meta.set, _SIZE_KEY, total)
        except CacheIOError as exc:
            logger.warning("Cache sweep interrupted: %s", exc)

        if removed:
            logger.debug("Cache sweep removed %d entries", removed)
        return removed

    def close(self) -> None:
        """Close both underlying stores."""
        for store in (self._meta, self._data):
            if store is not None:
                store.close()
        self._meta = None
        self._data = None

    def __enter__(self) -> CacheStore:
        return self

    def __exit__(self, *args: Any) -> None:
        self.close()

    # ------------------------------------------------------------------ #
    # Internal helpers
    # ------------------------------------------------------------------ #

    def _call(self, action: str, operation: Callable[..., Any], *args: Any) -> Any:
        """Run a diskcache operation, converting storage errors to :class:`CacheIOError`."""
        try:
            return operation(*args)
        except _STORAGE_ERRORS as exc:
            raise CacheIOError(f"cache {action} failed: {exc}") from exc

    def _remove(self, key: str) -> bool:
        raw = self._call("delete", self._meta.pop, key)
        self._call("delete", self._data.delete, key)
        if raw is None:
            return False
        self._add_size(-_record_size(raw))
        return True

    def _records(self) -> list[StoredMeta]:
        if not self._available:
            return []

        def load() -> list[StoredMeta]:
            records = []
            for key in list(self._meta):
                if key == _SIZE_KEY:
                    continue
                raw = self._meta.get(key)
                if raw is not None:
                    records.append(StoredMeta.model_validate(raw))
            return records

        return self._call("scan", load)

    def _add_size(self, delta: int) -> None:
        """Adjust the running total.  An uncounted store is left for :meth:`_total_size`."""
        total = self._call("read", self._meta.get, _SIZE_KEY)
        if total is not None:
            self._call("write", self._meta.set, _SIZE_KEY, max(0, total + delta))

    def _total_size(self) -> int:
        """Payload bytes across all entries.

        Read from the running total; the entries are scanned only when no
        total has been recorded yet.  :meth:`sweep` resets it to the exact sum.
        """
        try:
            total = self._call("read", self._meta.get, _SIZE_KEY)
            if total is None:
                total = sum(r.size for r in self._records())
                self._call("write", self._meta.set, _SIZE_KEY, total)
            return total
        except CacheIOError as exc:
            logger.warning("Cache size check failed: %s", exc)
            return 0


def _record_size(raw: Any) -> int:
    return raw.get("size", 0) if isinstance(raw, dict) else 0


def _to_datetime(epoch_ms: int) -> datetime:
    return datetime.fromtimestamp(epoch_ms / 1000, tz=timezone.utc)
