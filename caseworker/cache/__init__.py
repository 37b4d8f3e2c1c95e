"""
Versioned response stores: generations of static, dynamic and API stores.
"""
from .core import CachedResponse, CacheGeneration, StoreRole
from .storage import CacheStorage, CacheStore

__all__ = [
    # Core types
    "CachedResponse",
    "CacheGeneration",
    "StoreRole",
    # Persistence
    "CacheStorage",
    "CacheStore",
]
