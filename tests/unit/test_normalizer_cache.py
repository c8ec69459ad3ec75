"""
Unit tests for the normalizer's multi-tier cache
"""
import pytest

from coursebot.core.exceptions import ConfigurationError
from coursebot.services.normalizer_cache import FUZZY_TIER, LOOKUP_TIER, NormalizerCache


class TestNormalizerCache:
    """Tests for bounded global LRU behaviour"""

    @pytest.mark.unit
    @pytest.mark.parametrize("max_size", [0, -5, "10"])
    def test_invalid_size_rejected(self, max_size):
        with pytest.raises(ConfigurationError):
            NormalizerCache(max_size=max_size)

    @pytest.mark.unit
    def test_size_is_bounded(self):
        cache = NormalizerCache(max_size=3)
        for i in range(10):
            cache.put(LOOKUP_TIER if i % 2 else FUZZY_TIER, f"key{i}", i)

        assert cache.size == 3
        assert cache.stats()["performance_stats"]["evictions"] == 7

    @pytest.mark.unit
    def test_eviction_is_global_lru(self):
        """Test the least recently used entry across both tiers is evicted"""
        cache = NormalizerCache(max_size=3)
        cache.put(LOOKUP_TIER, "a", 1)
        cache.put(FUZZY_TIER, "b", 2)
        cache.put(LOOKUP_TIER, "c", 3)
        cache.get(LOOKUP_TIER, "a")

        cache.put(FUZZY_TIER, "d", 4)

        assert cache.get(FUZZY_TIER, "b") is None
        assert cache.get(LOOKUP_TIER, "a") == 1
        assert cache.get(LOOKUP_TIER, "c") == 3
        assert cache.get(FUZZY_TIER, "d") == 4

    @pytest.mark.unit
    def test_overwrite_does_not_grow(self):
        cache = NormalizerCache(max_size=2)
        cache.put(LOOKUP_TIER, "a", 1)
        cache.put(LOOKUP_TIER, "a", 2)

        assert cache.size == 1
        assert cache.get(LOOKUP_TIER, "a") == 2

    @pytest.mark.unit
    def test_precomputed_is_exempt(self):
        cache = NormalizerCache(max_size=1)
        cache.load_precomputed({"record_course": "record_course", "查詢課表": "query_schedule"})

        cache.put(LOOKUP_TIER, "x", 1)
        cache.put(LOOKUP_TIER, "y", 2)
        cache.clear()

        assert cache.size == 0
        assert cache.precomputed_size == 2
        assert cache.get_precomputed("查詢課表") == "query_schedule"

    @pytest.mark.unit
    def test_clear_single_tier(self):
        cache = NormalizerCache(max_size=10)
        cache.put(LOOKUP_TIER, "a", 1)
        cache.put(FUZZY_TIER, "b", 2)

        cache.clear_tier(FUZZY_TIER)

        assert cache.tier_size(LOOKUP_TIER) == 1
        assert cache.tier_size(FUZZY_TIER) == 0


class TestCacheStats:
    """Tests for statistics and optimization suggestions"""

    @pytest.mark.unit
    def test_hit_ratio(self):
        cache = NormalizerCache(max_size=10)
        for outcome in ("precomputed", "lookup", "fuzzy", "miss"):
            cache.record(outcome, 1.0)

        stats = cache.stats()

        assert stats["performance_stats"]["total_requests"] == 4
        assert stats["performance_stats"]["hit_ratio"] == 0.75
        assert stats["performance_stats"]["avg_response_time_ms"] == 1.0

    @pytest.mark.unit
    def test_stats_shape(self):
        cache = NormalizerCache(max_size=4)
        cache.load_precomputed({"a": "a"})
        cache.put(LOOKUP_TIER, "b", 1)

        stats = cache.stats()

        assert stats["total_cache_size"] == 1
        assert stats["max_cache_size"] == 4
        assert stats["cache_utilization"] == 0.25
        assert stats["cache_breakdown"] == {"precomputed_mappings": 1, "lookup_cache": 1, "fuzzy_cache": 0}

    @pytest.mark.unit
    def test_idle_cache_suggestion(self):
        assert NormalizerCache(max_size=10).stats()["optimization_suggestions"] == ["No optimization needed"]

    @pytest.mark.unit
    def test_low_hit_ratio_and_full_cache_suggestions(self):
        cache = NormalizerCache(max_size=2)
        for i in range(4):
            cache.put(FUZZY_TIER, f"k{i}", i)
            cache.record("miss")

        suggestions = cache.stats()["optimization_suggestions"]

        assert any("hit ratio" in s for s in suggestions)
        assert any("evictions" in s.lower() for s in suggestions)
        assert any("utilization" in s for s in suggestions)

    @pytest.mark.unit
    def test_initialize_stats_keeps_entries(self):
        cache = NormalizerCache(max_size=10)
        cache.put(LOOKUP_TIER, "a", 1)
        cache.record("miss")

        cache.initialize_stats()

        assert cache.stats()["performance_stats"]["total_requests"] == 0
        assert cache.get(LOOKUP_TIER, "a") == 1
