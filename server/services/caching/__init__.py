"""Tiered caching: in-process TTL tier in front of optional Redis."""

from .tiered import CacheEntry, LocalTTLCache, RemoteCache, TieredCache, hash_key
from .generation import GenerationCache

__all__ = [
    "CacheEntry",
    "LocalTTLCache",
    "RemoteCache",
    "TieredCache",
    "hash_key",
    "GenerationCache",
]
