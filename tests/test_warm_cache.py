#tests\test_warm_cache.py

"""Test the advisory warm-container cache."""

import pytest

from workload_engine.functions.warm_cache import WarmContainerCache


class TestWarmContainerCache:
    """Test bounded LRU behaviour."""

    def test_miss(self):
        assert WarmContainerCache().get("fn-1", "nodejs20") is None

    def test_put_and_get(self):
        cache = WarmContainerCache()
        cache.put("fn-1", "nodejs20", "image:1")

        entry = cache.get("fn-1", "nodejs20")

        assert entry.image == "image:1"
        assert entry.invocations == 1

    def test_repeat_put_counts_invocations(self):
        cache = WarmContainerCache()
        cache.put("fn-1", "nodejs20", "image:1")
        cache.put("fn-1", "nodejs20", "image:1")

        assert cache.get("fn-1", "nodejs20").invocations == 2

    def test_new_image_resets_entry(self):
        cache = WarmContainerCache()
        cache.put("fn-1", "nodejs20", "image:1")
        cache.put("fn-1", "nodejs20", "image:2")

        entry = cache.get("fn-1", "nodejs20")
        assert entry.image == "image:2"
        assert entry.invocations == 1

    def test_runtime_is_part_of_key(self):
        cache = WarmContainerCache()
        cache.put("fn-1", "nodejs20", "node")

        assert cache.get("fn-1", "python311") is None

    def test_least_recently_used_is_evicted(self):
        cache = WarmContainerCache(max_entries=2)
        cache.put("fn-1", "nodejs20", "a")
        cache.put("fn-2", "nodejs20", "b")
        cache.get("fn-1", "nodejs20")
        cache.put("fn-3", "nodejs20", "c")

        assert len(cache) == 2
        assert cache.get("fn-2", "nodejs20") is None
        assert cache.get("fn-1", "nodejs20") is not None

    def test_evict(self):
        cache = WarmContainerCache()
        cache.put("fn-1", "nodejs20", "a")

        assert cache.evict("fn-1", "nodejs20") is True
        assert cache.evict("fn-1", "nodejs20") is False

    def test_invalid_size(self):
        with pytest.raises(ValueError):
            WarmContainerCache(max_entries=0)
