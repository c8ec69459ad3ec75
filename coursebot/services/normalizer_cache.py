"""
Multi-tier cache owned by the semantic normalizer.

Tiers:
    precomputed - built once from the static tables, never evicted
    lookup      - memoized alias / table lookups (LRU)
    fuzzy       - memoized approximate matches (LRU)

The lookup and fuzzy tiers share one size ceiling. Every access stamps the
entry with a global tick so eviction can drop the least recently used entry
across both tiers. All access happens under a single re-entrant lock.
"""
import logging
import threading
import time
from collections import OrderedDict
from typing import Any, Dict, List, Optional, Tuple

from coursebot.core.exceptions import ConfigurationError

logger = logging.getLogger(__name__)

LOOKUP_TIER = "lookup"
FUZZY_TIER = "fuzzy"


class NormalizerCache:
    """Size-bounded two-tier LRU plus an immutable precomputed table"""

    def __init__(self, max_size: int = 2000):
        if not isinstance(max_size, int) or max_size < 1:
            raise ConfigurationError(f"max_cache_size must be a positive integer, got {max_size!r}")

        self.max_size = max_size
        self.lock = threading.RLock()
        self._precomputed: Dict[str, Any] = {}
        self._tiers: Dict[str, "OrderedDict[str, Tuple[int, Any]]"] = {
            LOOKUP_TIER: OrderedDict(),
            FUZZY_TIER: OrderedDict(),
        }
        self._tick = 0
        self.initialize_stats()

    def initialize_stats(self):
        """Reset hit/miss counters; cached entries are untouched"""
        with self.lock:
            self._stats = {
                "requests": 0,
                "precomputed_hits": 0,
                "lookup_hits": 0,
                "fuzzy_hits": 0,
                "misses": 0,
                "evictions": 0,
                "peak_size": self.size,
                "total_response_ms": 0.0,
                "last_reset": time.time(),
            }

    # ==================== precomputed tier ====================

    def load_precomputed(self, mappings: Dict[str, Any]):
        with self.lock:
            self._precomputed.update(mappings)
        logger.info(f"Precomputed {len(mappings)} direct mappings")

    def get_precomputed(self, key: str) -> Optional[Any]:
        with self.lock:
            return self._precomputed.get(key)

    @property
    def precomputed_size(self) -> int:
        return len(self._precomputed)

    # ==================== LRU tiers ====================

    @property
    def size(self) -> int:
        """Combined size of the evictable tiers"""
        return len(self._tiers[LOOKUP_TIER]) + len(self._tiers[FUZZY_TIER])

    def tier_size(self, tier: str) -> int:
        return len(self._tiers[tier])

    def get(self, tier: str, key: str) -> Optional[Any]:
        with self.lock:
            entries = self._tiers[tier]
            entry = entries.get(key)
            if entry is None:
                return None
            self._tick += 1
            entries[key] = (self._tick, entry[1])
            entries.move_to_end(key)
            return entry[1]

    def put(self, tier: str, key: str, value: Any):
        with self.lock:
            entries = self._tiers[tier]
            self._tick += 1
            entries[key] = (self._tick, value)
            entries.move_to_end(key)
            self._evict()
            self._stats["peak_size"] = max(self._stats["peak_size"], self.size)

    def _evict(self):
        """Drop globally least-recently-used entries until within max_size"""
        while self.size > self.max_size:
            victim_tier = None
            oldest_tick = None
            for name, entries in self._tiers.items():
                if not entries:
                    continue
                tick = next(iter(entries.values()))[0]
                if oldest_tick is None or tick < oldest_tick:
                    oldest_tick = tick
                    victim_tier = name
            key, _ = self._tiers[victim_tier].popitem(last=False)
            self._stats["evictions"] += 1
            logger.debug(f"Evicted '{key}' from {victim_tier} cache")

    def clear(self):
        """Empty the lookup and fuzzy tiers; the precomputed table is kept"""
        with self.lock:
            for entries in self._tiers.values():
                entries.clear()
        logger.info("Normalizer caches cleared")

    def clear_tier(self, tier: str):
        with self.lock:
            self._tiers[tier].clear()

    # ==================== statistics ====================

    def record(self, outcome: str, elapsed_ms: float = 0.0):
        """outcome: precomputed | lookup | fuzzy | miss"""
        with self.lock:
            self._stats["requests"] += 1
            if outcome == "miss":
                self._stats["misses"] += 1
            else:
                self._stats[f"{outcome}_hits"] += 1
            self._stats["total_response_ms"] += elapsed_ms

    @property
    def hit_ratio(self) -> float:
        requests = self._stats["requests"]
        if not requests:
            return 0.0
        hits = self._stats["precomputed_hits"] + self._stats["lookup_hits"] + self._stats["fuzzy_hits"]
        return hits / requests

    def stats(self) -> Dict[str, Any]:
        with self.lock:
            size = self.size
            requests = self._stats["requests"]
            avg_ms = self._stats["total_response_ms"] / requests if requests else 0.0
            return {
                "total_cache_size": size,
                "max_cache_size": self.max_size,
                "cache_utilization": round(size / self.max_size, 4),
                "cache_breakdown": {
                    "precomputed_mappings": self.precomputed_size,
                    "lookup_cache": self.tier_size(LOOKUP_TIER),
                    "fuzzy_cache": self.tier_size(FUZZY_TIER),
                },
                "performance_stats": {
                    "total_requests": requests,
                    "precomputed_hits": self._stats["precomputed_hits"],
                    "lookup_hits": self._stats["lookup_hits"],
                    "fuzzy_hits": self._stats["fuzzy_hits"],
                    "cache_misses": self._stats["misses"],
                    "hit_ratio": round(self.hit_ratio, 4),
                    "evictions": self._stats["evictions"],
                    "peak_cache_size": self._stats["peak_size"],
                    "avg_response_time_ms": round(avg_ms, 3),
                    "uptime_seconds": int(time.time() - self._stats["last_reset"]),
                },
                "optimization_suggestions": self._optimization_suggestions(size),
            }

    def _optimization_suggestions(self, size: int) -> List[str]:
        suggestions = []
        requests = self._stats["requests"]

        if requests:
            if self.hit_ratio < 0.5:
                suggestions.append("Low cache hit ratio: consider adding direct mappings for frequent labels")
            elif self.hit_ratio > 0.8:
                suggestions.append("Cache hit ratio is healthy")

            if self._stats["evictions"] > requests * 0.1:
                suggestions.append("Frequent evictions: consider raising max_cache_size")

        if size > self.max_size * 0.9:
            suggestions.append("Cache utilization above 90%: consider raising max_cache_size")

        if not suggestions:
            suggestions.append("No optimization needed")
        return suggestions
