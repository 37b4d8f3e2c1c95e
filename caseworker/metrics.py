"""
Cache hit/miss tracking for performance reports.
"""
import logging
from typing import Any, Dict

logger = logging.getLogger("caseworker.metrics")


class PerformanceMonitor:
    """Counts cache lookups made by the strategies."""

    def __init__(self):
        self._stats = {
            "hits": 0,
            "misses": 0,
        }

    def record_hit(self) -> None:
        self._stats["hits"] += 1

    def record_miss(self) -> None:
        self._stats["misses"] += 1

    @property
    def hit_rate(self) -> float:
        """Hit rate as a percentage (0 when nothing was looked up yet)."""
        total = self._stats["hits"] + self._stats["misses"]
        return (self._stats["hits"] / total * 100) if total > 0 else 0.0

    def reset(self) -> None:
        for key in self._stats:
            self._stats[key] = 0

    def get_stats(self) -> Dict[str, Any]:
        return {
            "hits": self._stats["hits"],
            "misses": self._stats["misses"],
            "hit_rate_percent": round(self.hit_rate, 1),
        }
