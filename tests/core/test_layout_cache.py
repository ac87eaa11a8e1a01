"""
Tests for LayoutCacheStore - Two-tier fingerprint -> position map cache

Tests cover:
1. Memory tier round-trip and copies
2. Oldest-write eviction
3. Durable tier persistence, promotion and async reads
4. Durable failures treated as misses
5. filter_to_snapshot
6. Thread safety
"""

import json
import threading

import pytest

from graphlayout.core.layout_cache import (
    DurableLayoutStore,
    FileLayoutStore,
    LayoutCacheStore,
    create_layout_cache,
    filter_to_snapshot,
)
from graphlayout.models.layout_metadata import NodePosition


def positions(**coords):
    return {node_id: NodePosition(x=x, y=y) for node_id, (x, y) in coords.items()}


class BrokenStore(DurableLayoutStore):
    """Durable tier whose disk is gone."""

    def __init__(self):
        self.write_attempts = 0

    def read(self, fingerprint):
        raise OSError("disk unavailable")

    def write(self, fingerprint, positions):
        self.write_attempts += 1
        raise OSError("disk full")

    def delete(self, fingerprint):
        raise OSError("disk unavailable")

    def clear(self):
        return 0


@pytest.fixture
def file_store(tmp_path):
    return FileLayoutStore(tmp_path / "layouts")


@pytest.fixture
def durable_cache(file_store):
    cache = LayoutCacheStore(max_entries=4, durable=file_store)
    yield cache
    cache.close()


# ============================================================================
# Memory tier
# ============================================================================


class TestMemoryTier:

    def test_round_trip(self, memory_cache):
        stored = positions(a=(1, 2), b=(3, 4))
        memory_cache.put("abcd0001", stored)
        assert memory_cache.get("abcd0001") == stored
        assert "abcd0001" in memory_cache
        assert len(memory_cache) == 1

    def test_miss(self, memory_cache):
        assert memory_cache.get("ffffffff") is None
        assert memory_cache.stats.misses == 1

    def test_returns_copies(self, memory_cache):
        memory_cache.put("abcd0001", positions(a=(1, 2)))
        first = memory_cache.get("abcd0001")
        first["b"] = NodePosition(x=0, y=0)
        assert "b" not in memory_cache.get("abcd0001")

    def test_non_finite_dropped_on_put(self, memory_cache):
        memory_cache.put("abcd0001", positions(a=(1, 2), b=(float("inf"), 0)))
        assert set(memory_cache.get("abcd0001")) == {"a"}

    def test_empty_map_not_cached(self, memory_cache):
        memory_cache.put("abcd0001", {})
        assert "abcd0001" not in memory_cache

    def test_evicts_oldest_write(self):
        cache = LayoutCacheStore(max_entries=2)
        cache.put("00000001", positions(a=(0, 0)))
        cache.put("00000002", positions(a=(0, 0)))
        cache.put("00000003", positions(a=(0, 0)))
        assert cache.memory_fingerprints() == ["00000002", "00000003"]
        assert cache.stats.evictions == 1

    def test_rewrite_refreshes_age(self):
        cache = LayoutCacheStore(max_entries=2)
        cache.put("00000001", positions(a=(0, 0)))
        cache.put("00000002", positions(a=(0, 0)))
        cache.put("00000001", positions(a=(5, 5)))
        cache.put("00000003", positions(a=(0, 0)))
        assert cache.memory_fingerprints() == ["00000001", "00000003"]

    def test_reads_do_not_refresh_age(self):
        cache = LayoutCacheStore(max_entries=2)
        cache.put("00000001", positions(a=(0, 0)))
        cache.put("00000002", positions(a=(0, 0)))
        cache.get("00000001")
        cache.put("00000003", positions(a=(0, 0)))
        assert "00000001" not in cache

    def test_invalid_size(self):
        with pytest.raises(ValueError):
            LayoutCacheStore(max_entries=0)

    def test_concurrent_puts_respect_bound(self):
        cache = LayoutCacheStore(max_entries=8)

        def writer(offset):
            for i in range(50):
                cache.put(f"{offset:02d}{i:06d}", positions(a=(i, i)))

        threads = [threading.Thread(target=writer, args=(n,)) for n in range(4)]
        for t in threads:
            t.start()
        for t in threads:
            t.join()
        assert len(cache) == 8
        assert cache.stats.writes == 200


# ============================================================================
# Durable tier
# ============================================================================


class TestDurableTier:

    def test_put_persists_to_file(self, durable_cache, file_store):
        durable_cache.put("abcd0001", positions(a=(1.5, 2)))
        assert durable_cache.flush(timeout=5)

        path = file_store.directory / "abcd0001.layout.json"
        data = json.loads(path.read_text())
        assert data["fingerprint"] == "abcd0001"
        assert data["positions"] == {"a": {"x": 1.5, "y": 2.0}}
        assert "updated_at" in data
        assert file_store.fingerprints() == ["abcd0001"]

    def test_durable_hit_is_promoted(self, durable_cache, file_store):
        durable_cache.put("abcd0001", positions(a=(1, 2)))
        durable_cache.flush(timeout=5)

        restarted = LayoutCacheStore(max_entries=4, durable=file_store)
        try:
            assert "abcd0001" not in restarted
            assert restarted.get("abcd0001") == positions(a=(1, 2))
            assert "abcd0001" in restarted
            assert restarted.stats.durable_hits == 1
        finally:
            restarted.close()

    @pytest.mark.asyncio
    async def test_get_async(self, durable_cache, file_store):
        durable_cache.put("abcd0001", positions(a=(1, 2)))
        durable_cache.flush(timeout=5)

        restarted = LayoutCacheStore(max_entries=4, durable=file_store)
        try:
            assert await restarted.get_async("abcd0001") == positions(a=(1, 2))
            assert await restarted.get_async("00000000") is None
        finally:
            restarted.close()

    def test_evicted_entry_still_on_disk(self, durable_cache):
        for i in range(6):
            durable_cache.put(f"0000000{i}", positions(a=(i, i)))
        durable_cache.flush(timeout=5)
        assert "00000000" not in durable_cache
        assert durable_cache.get("00000000") == positions(a=(0, 0))

    def test_corrupt_file_is_miss(self, durable_cache, file_store):
        file_store.directory.mkdir(parents=True, exist_ok=True)
        (file_store.directory / "abcd0001.layout.json").write_text("{not json")
        assert durable_cache.get("abcd0001") is None
        assert durable_cache.stats.durable_failures == 1

    def test_unknown_keys_tolerated(self, durable_cache, file_store):
        file_store.directory.mkdir(parents=True, exist_ok=True)
        (file_store.directory / "abcd0001.layout.json").write_text(json.dumps({
            "schema": 99,
            "positions": {"a": {"x": 1, "y": 2, "z": 3}, "b": [4, 5], "c": "junk"},
        }))
        assert durable_cache.get("abcd0001") == positions(a=(1, 2), b=(4, 5))

    def test_missing_positions_key_is_miss(self, durable_cache, file_store):
        file_store.directory.mkdir(parents=True, exist_ok=True)
        (file_store.directory / "abcd0001.layout.json").write_text(json.dumps({"fingerprint": "abcd0001"}))
        assert durable_cache.get("abcd0001") is None

    def test_write_failure_does_not_raise(self):
        store = BrokenStore()
        cache = LayoutCacheStore(max_entries=4, durable=store)
        try:
            cache.put("abcd0001", positions(a=(1, 2)))
            assert cache.flush(timeout=5)
            assert store.write_attempts == 1
            assert cache.stats.durable_failures == 1
            # Memory tier still serves it
            assert cache.get("abcd0001") == positions(a=(1, 2))
        finally:
            cache.close()

    def test_read_failure_is_miss(self):
        cache = LayoutCacheStore(max_entries=4, durable=BrokenStore())
        try:
            assert cache.get("abcd0001") is None
            assert cache.stats.misses == 1
        finally:
            cache.close()

    def test_invalid_fingerprint_rejected_by_file_store(self, file_store):
        with pytest.raises(ValueError):
            file_store.write("../escape", positions(a=(0, 0)))

    def test_invalidate(self, durable_cache, file_store):
        durable_cache.put("abcd0001", positions(a=(1, 2)))
        durable_cache.flush(timeout=5)
        durable_cache.invalidate("abcd0001")
        assert durable_cache.get("abcd0001") is None
        assert file_store.fingerprints() == []

    def test_create_layout_cache(self, tmp_path):
        cache = create_layout_cache(max_entries=3, cache_dir=tmp_path)
        assert isinstance(cache.durable, FileLayoutStore)
        assert cache.max_entries == 3
        assert create_layout_cache().durable is None


# ============================================================================
# filter_to_snapshot
# ============================================================================


class TestFilterToSnapshot:

    def test_identical_snapshot(self, expanded_snapshot):
        stored = positions(root=(0, 0), a=(1, 1), b=(2, 2))
        assert filter_to_snapshot(stored, expanded_snapshot) == stored

    def test_drops_unknown_ids(self, expanded_snapshot):
        stored = positions(root=(0, 0), gone=(1, 1))
        assert filter_to_snapshot(stored, expanded_snapshot) == positions(root=(0, 0))

    def test_drops_non_finite(self, expanded_snapshot):
        stored = positions(root=(0, 0), a=(float("nan"), 1))
        assert filter_to_snapshot(stored, expanded_snapshot) == positions(root=(0, 0))

    def test_no_overlap_is_absent(self, expanded_snapshot):
        assert filter_to_snapshot(positions(gone=(1, 1)), expanded_snapshot) is None
        assert filter_to_snapshot({}, expanded_snapshot) is None
        assert filter_to_snapshot(None, expanded_snapshot) is None
