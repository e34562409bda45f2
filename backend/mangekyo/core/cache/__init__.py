"""Translation cache.

- LRUCache: bounded memory tier
- PersistentStore: durable tier (SQLAlchemy or in-memory)
- CacheManager: tiered lookup, fuzzy matching, invalidation and preload
"""

from .lru import LRUCache
from .manager import CacheConfig, CacheManager, PreloadItem, make_cache_key, make_cache_scope
from .models import CacheEntry, CacheLookup, CacheStats, CacheStrategy
from .store import InMemoryCacheStore, PersistentStore, SQLAlchemyCacheStore

__all__ = [
    # Manager
    "CacheConfig",
    "CacheManager",
    "PreloadItem",
    "make_cache_key",
    "make_cache_scope",
    # Models
    "CacheEntry",
    "CacheLookup",
    "CacheStats",
    "CacheStrategy",
    # Tiers
    "InMemoryCacheStore",
    "LRUCache",
    "PersistentStore",
    "SQLAlchemyCacheStore",
]
