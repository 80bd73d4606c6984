"""TTL-keyed artifact cache.

Maps a deterministic request fingerprint to a previously produced
artifact (an ingested artifact name, a preprocessed artifact name, or a
polygon collection) so repeated requests skip network and compute work.

Semantics:
    - An expired entry is never returned; it is evicted on lookup.
    - ``set`` on an existing key discards the prior value immediately.
    - Concurrent writers to the same key: last write wins.
    - The cache is advisory. Callers must be able to recompute on a miss,
      and treat a hit whose backing artifact is gone as a miss.

The pipeline owns one instance and injects it where needed; tests build
a fresh instance per case.
"""

from __future__ import annotations

import hashlib
import json
import logging
import threading
import time
from collections import OrderedDict
from dataclasses import dataclass
from typing import TYPE_CHECKING, Any

from climate_ops.core.constants import CACHE_MAX_ENTRIES, CACHE_TTL_SECONDS

if TYPE_CHECKING:
    from collections.abc import Callable

logger = logging.getLogger(__name__)

_FINGERPRINT_LENGTH = 16


@dataclass(frozen=True, slots=True)
class CacheEntry:
    """A cached value and its monotonic expiry time."""

    key: str
    value: Any
    expires_at: float


class ArtifactCache:
    """Thread-safe, size-bounded TTL cache.

    Eviction policy:
        Entries past ``expires_at`` are dropped lazily on ``get``. When
        the cache exceeds ``maxsize`` the least-recently-used entry is
        evicted on insert.
    """

    def __init__(
        self,
        *,
        default_ttl_s: float = CACHE_TTL_SECONDS,
        maxsize: int = CACHE_MAX_ENTRIES,
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        self._default_ttl_s = default_ttl_s
        self._maxsize = maxsize
        self._clock = clock
        self._data: OrderedDict[str, CacheEntry] = OrderedDict()
        self._eviction_count = 0
        self._lock = threading.Lock()

    def get(self, key: str) -> Any | None:
        """Return the live value for *key*, or ``None`` if absent or expired."""
        with self._lock:
            entry = self._data.get(key)
            if entry is None:
                return None
            if self._clock() >= entry.expires_at:
                del self._data[key]
                logger.debug("Cache entry expired | key=%s", key)
                return None
            self._data.move_to_end(key)
            return entry.value

    def set(self, key: str, value: Any, ttl_s: float | None = None) -> None:
        """Store *value* under *key*, replacing any previous entry."""
        ttl = self._default_ttl_s if ttl_s is None else ttl_s
        entry = CacheEntry(key=key, value=value, expires_at=self._clock() + ttl)
        with self._lock:
            if key in self._data:
                self._data.move_to_end(key)
            self._data[key] = entry
            while len(self._data) > self._maxsize:
                evicted_key, _ = self._data.popitem(last=False)
                self._eviction_count += 1
                logger.debug(
                    "Cache eviction | key=%s | size=%d | total_evictions=%d",
                    evicted_key,
                    len(self._data),
                    self._eviction_count,
                )

    def delete(self, key: str) -> None:
        with self._lock:
            self._data.pop(key, None)

    def clear(self) -> None:
        with self._lock:
            self._data.clear()

    def __contains__(self, key: object) -> bool:
        return isinstance(key, str) and self.get(key) is not None

    def __len__(self) -> int:
        with self._lock:
            return len(self._data)

    @property
    def eviction_count(self) -> int:
        """Total number of entries evicted for size since construction."""
        return self._eviction_count


def fingerprint(namespace: str, **params: Any) -> str:
    """Build a deterministic cache key from request parameters.

    Parameters are serialised as canonical JSON (sorted keys, no
    whitespace) so that equal requests always map to the same key
    regardless of argument order.

    Example::

        fingerprint("ingest", bbox=[1, 2, 3, 4], date="2025-01-01")
        # 'ingest:3f0c9a0d5b1e2c47'
    """
    canonical = json.dumps(params, sort_keys=True, separators=(",", ":"), default=str)
    digest = hashlib.sha256(f"{namespace}|{canonical}".encode()).hexdigest()
    return f"{namespace}:{digest[:_FINGERPRINT_LENGTH]}"
