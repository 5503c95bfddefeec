"""Cache implementations."""

from nutriscan.infrastructure.cache.request_batcher import RequestBatcher
from nutriscan.infrastructure.cache.ttl_cache import CacheEntry, TTLCache

__all__ = [
    "CacheEntry",
    "RequestBatcher",
    "TTLCache",
]
