"""Tests for the TTL artifact cache and request fingerprints."""

from __future__ import annotations

import threading
import unittest

from climate_ops.core.cache import ArtifactCache, fingerprint


class FakeClock:
    def __init__(self, now: float = 1000.0) -> None:
        self.now = now

    def __call__(self) -> float:
        return self.now


class TestArtifactCache(unittest.TestCase):
    """get/set/expiry/eviction semantics."""

    def setUp(self) -> None:
        self.clock = FakeClock()
        self.cache = ArtifactCache(default_ttl_s=60.0, maxsize=3, clock=self.clock)

    def test_miss_returns_none(self) -> None:
        assert self.cache.get("absent") is None

    def test_hit_before_expiry(self) -> None:
        self.cache.set("k", "v")
        self.clock.now += 59.9
        assert self.cache.get("k") == "v"

    def test_expired_entry_never_returned_and_evicted(self) -> None:
        self.cache.set("k", "v")
        self.clock.now += 60.0
        assert self.cache.get("k") is None
        assert len(self.cache) == 0

    def test_per_entry_ttl(self) -> None:
        self.cache.set("short", 1, ttl_s=5.0)
        self.cache.set("long", 2)
        self.clock.now += 10.0
        assert self.cache.get("short") is None
        assert self.cache.get("long") == 2

    def test_overwrite_discards_prior_value(self) -> None:
        self.cache.set("k", "old")
        self.cache.set("k", "new")
        assert self.cache.get("k") == "new"
        assert len(self.cache) == 1

    def test_overwrite_resets_expiry(self) -> None:
        self.cache.set("k", "old")
        self.clock.now += 50.0
        self.cache.set("k", "new")
        self.clock.now += 50.0
        assert self.cache.get("k") == "new"

    def test_lru_eviction_when_full(self) -> None:
        for key in ("a", "b", "c"):
            self.cache.set(key, key)
        self.cache.get("a")  # "b" becomes least recently used
        self.cache.set("d", "d")
        assert self.cache.get("b") is None
        assert self.cache.get("a") == "a"
        assert self.cache.eviction_count == 1

    def test_delete_and_clear(self) -> None:
        self.cache.set("a", 1)
        self.cache.set("b", 2)
        self.cache.delete("a")
        self.cache.delete("missing")
        assert "a" not in self.cache
        assert "b" in self.cache
        self.cache.clear()
        assert len(self.cache) == 0

    def test_concurrent_writers_last_write_wins(self) -> None:
        cache = ArtifactCache(default_ttl_s=60.0, maxsize=10)
        barrier = threading.Barrier(8)

        def writer(value: int) -> None:
            barrier.wait()
            for _ in range(200):
                cache.set("shared", value)

        threads = [threading.Thread(target=writer, args=(i,)) for i in range(8)]
        for thread in threads:
            thread.start()
        for thread in threads:
            thread.join()

        assert cache.get("shared") in range(8)
        assert len(cache) == 1


class TestFingerprint:
    """Deterministic cache keys."""

    def test_argument_order_does_not_matter(self) -> None:
        a = fingerprint("ingest", bbox=[1, 2, 3, 4], date="2025-01-01")
        b = fingerprint("ingest", date="2025-01-01", bbox=[1, 2, 3, 4])
        assert a == b

    def test_namespace_and_length(self) -> None:
        key = fingerprint("polygons", artifact="x.png", threshold=128)
        namespace, digest = key.split(":")
        assert namespace == "polygons"
        assert len(digest) == 16

    def test_different_params_differ(self) -> None:
        assert fingerprint("polygons", threshold=128) != fingerprint("polygons", threshold=129)
        assert fingerprint("a", x=1) != fingerprint("b", x=1)
