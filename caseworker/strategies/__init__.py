"""
Caching strategies, one per routing lane.
"""
from typing import Dict

from ..router import Lane
from .base import Strategy
from .cache_first import CacheFirstStrategy
from .mutation import MutationStrategy
from .network_first import NetworkFirstStrategy
from .stale_while_revalidate import StaleWhileRevalidateStrategy


def default_strategies() -> Dict[Lane, Strategy]:
    """Lane -> strategy table used by the worker's fetch handler."""
    return {
        Lane.CACHE_FIRST: CacheFirstStrategy(),
        Lane.NETWORK_FIRST: NetworkFirstStrategy(),
        Lane.STALE_WHILE_REVALIDATE: StaleWhileRevalidateStrategy(),
        Lane.MUTATION: MutationStrategy(),
    }


__all__ = [
    "Strategy",
    "CacheFirstStrategy",
    "NetworkFirstStrategy",
    "StaleWhileRevalidateStrategy",
    "MutationStrategy",
    "default_strategies",
]
