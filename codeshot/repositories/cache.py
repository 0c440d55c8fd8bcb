"""
基础缓存接口 - one key-value abstraction shared by every cache namespace
"""
import time
from abc import ABC, abstractmethod
from typing import Any, Dict, Optional, Tuple

from codeshot.core.logging import get_logger

logger = get_logger(__name__)


class CacheStore(ABC):
    """Narrow async key-value interface used by the scoring caches."""

    @abstractmethod
    async def get(self, key: str) -> Optional[Any]:
        """Return the cached value or ``None`` on miss/expiry."""

    @abstractmethod
    async def set(self, key: str, value: Any, ttl: Optional[int] = None) -> None:
        """Store a JSON-serialisable value; ``ttl=None`` never expires."""

    @abstractmethod
    async def delete_by_prefix(self, prefix: str) -> int:
        """Remove every key starting with ``prefix``; returns the count removed."""


class InMemoryCache(CacheStore):
    """内存缓存实现 - used when Redis is not configured and in tests"""

    def __init__(self):
        # key -> (value, expires_at or None)
        self._storage: Dict[str, Tuple[Any, Optional[float]]] = {}

    async def get(self, key: str) -> Optional[Any]:
        entry = self._storage.get(key)
        if entry is None:
            return None

        value, expires_at = entry
        if expires_at is not None and time.monotonic() >= expires_at:
            # Lazy eviction
            del self._storage[key]
            logger.debug("cache_entry_expired", key=key)
            return None
        return value

    async def set(self, key: str, value: Any, ttl: Optional[int] = None) -> None:
        expires_at = time.monotonic() + ttl if ttl is not None else None
        self._storage[key] = (value, expires_at)

    async def delete_by_prefix(self, prefix: str) -> int:
        keys = [key for key in self._storage if key.startswith(prefix)]
        for key in keys:
            del self._storage[key]
        logger.debug("cache_prefix_deleted", prefix=prefix, count=len(keys))
        return len(keys)

    def __len__(self) -> int:
        return len(self._storage)
