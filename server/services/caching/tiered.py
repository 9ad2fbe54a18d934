"""Two-tier cache: bounded in-process tier in front of optional Redis.

Lookup order is local first, then remote. A remote hit is copied into the
local tier so repeated lookups stay in process. Remote failures are logged and
treated as misses; the local tier stays authoritative for this process.
"""

import hashlib
import json
import time
from collections import OrderedDict
from dataclasses import dataclass
from typing import Any, Callable, Dict, Optional, Protocol

from core.logging import get_logger, log_cache_operation
from services.exceptions import CacheBackendDegradedError

logger = get_logger(__name__)


def hash_key(*parts: Any) -> str:
    """Deterministic 16-hex-char digest of ordered key parts.

    Dict and list parts are canonicalised with sorted-key JSON so field order
    never changes the digest.
    """
    normalized = []
    for part in parts:
        if isinstance(part, (dict, list, tuple)):
            normalized.append(json.dumps(part, sort_keys=True, separators=(",", ":"), default=str))
        else:
            normalized.append(str(part))
    return hashlib.sha256(":".join(normalized).encode()).hexdigest()[:16]


class RemoteCache(Protocol):
    """Contract for the shared tier (satisfied by core.cache.CacheService)."""

    async def ping(self) -> bool:
        ...

    async def get(self, key: str) -> Optional[Any]:
        ...

    async def set(self, key: str, value: Any, ttl: Optional[int] = None) -> None:
        ...

    async def delete(self, key: str) -> bool:
        ...


@dataclass
class CacheEntry:
    key: str
    value: Any
    inserted_at: float
    ttl: float

    def expired(self, now: float) -> bool:
        return now - self.inserted_at >= self.ttl


class LocalTTLCache:
    """Bounded insertion-ordered cache with per-entry TTL.

    Eviction removes the oldest insertion. Reads never refresh an entry's
    position, so this is FIFO rather than LRU.
    """

    def __init__(self, max_entries: int, ttl: float,
                 clock: Callable[[], float] = time.monotonic):
        if max_entries < 1:
            raise ValueError("max_entries must be >= 1")
        self.max_entries = max_entries
        self.ttl = ttl
        self._clock = clock
        self._entries: "OrderedDict[str, CacheEntry]" = OrderedDict()

    def get(self, key: str) -> Optional[Any]:
        entry = self._entries.get(key)
        if entry is None:
            return None
        if entry.expired(self._clock()):
            del self._entries[key]
            return None
        return entry.value

    def set(self, key: str, value: Any) -> None:
        # Re-insert so an overwrite counts as the newest insertion
        self._entries.pop(key, None)
        self._entries[key] = CacheEntry(key=key, value=value,
                                        inserted_at=self._clock(), ttl=self.ttl)
        while len(self._entries) > self.max_entries:
            self._entries.popitem(last=False)

    def has(self, key: str) -> bool:
        return self.get(key) is not None

    def delete(self, key: str) -> bool:
        return self._entries.pop(key, None) is not None

    def clear(self) -> None:
        self._entries.clear()

    def __len__(self) -> int:
        return len(self._entries)


class TieredCache:
    """Local TTL cache with an optional best-effort remote tier.

    Args:
        name: Namespace for remote keys and log context.
        ttl: Entry lifetime in seconds, applied to both tiers.
        max_entries: Local tier capacity.
        remote: Shared tier, usually the application CacheService.
    """

    def __init__(self, name: str, ttl: int, max_entries: int,
                 remote: Optional[RemoteCache] = None,
                 clock: Callable[[], float] = time.monotonic):
        self.name = name
        self.ttl = ttl
        self.local = LocalTTLCache(max_entries=max_entries, ttl=ttl, clock=clock)
        self.remote = remote
        self._hits = {"local": 0, "remote": 0}
        self._misses = 0
        self._remote_errors = 0

    def _remote_key(self, key: str) -> str:
        return f"{self.name}:{key}"

    async def _remote_healthy(self) -> bool:
        if self.remote is None:
            return False
        try:
            return await self.remote.ping()
        except Exception as e:
            self._degraded("ping", key=None, error=e)
            return False

    def _degraded(self, operation: str, key: Optional[str], error: Exception) -> None:
        self._remote_errors += 1
        logger.warning("CacheBackendDegraded", cache=self.name, operation=operation,
                       cache_key=key, error=str(error), error_type=type(error).__name__)

    async def get(self, key: str) -> Optional[Any]:
        value = self.local.get(key)
        if value is not None:
            self._hits["local"] += 1
            log_cache_operation(logger, "get", key, hit=True, tier="local", cache=self.name)
            return value

        if await self._remote_healthy():
            try:
                value = await self.remote.get(self._remote_key(key))
            except CacheBackendDegradedError as e:
                self._degraded("get", key, e)
                value = None
            if value is not None:
                self.local.set(key, value)
                self._hits["remote"] += 1
                return value

        self._misses += 1
        log_cache_operation(logger, "get", key, hit=False, cache=self.name)
        return None

    async def set(self, key: str, value: Any) -> None:
        self.local.set(key, value)
        if await self._remote_healthy():
            try:
                await self.remote.set(self._remote_key(key), value, ttl=self.ttl)
            except CacheBackendDegradedError as e:
                self._degraded("set", key, e)

    async def has(self, key: str) -> bool:
        return await self.get(key) is not None

    async def delete(self, key: str) -> None:
        self.local.delete(key)
        if await self._remote_healthy():
            try:
                await self.remote.delete(self._remote_key(key))
            except CacheBackendDegradedError as e:
                self._degraded("delete", key, e)

    def clear(self) -> None:
        """Clear the local tier only."""
        self.local.clear()

    def stats(self) -> Dict[str, Any]:
        return {
            "name": self.name,
            "local_entries": len(self.local),
            "max_entries": self.local.max_entries,
            "ttl": self.ttl,
            "hits_local": self._hits["local"],
            "hits_remote": self._hits["remote"],
            "misses": self._misses,
            "remote_errors": self._remote_errors,
            "remote_configured": self.remote is not None,
        }
