import asyncio
import time
from typing import Any, Callable, Dict, Hashable, Optional, Tuple
from dataclasses import dataclass


@dataclass
class CacheEntry:
    value: Any
    expires_at: float


class TTLCache:
    """Simple in-memory TTL cache with LRU eviction"""

    def __init__(
        self,
        default_ttl: float = 15,
        max_size: int = 1000,
        clock: Callable[[], float] = time.monotonic,
    ):
        self.default_ttl = default_ttl
        self.max_size = max_size
        self._clock = clock
        self._cache: Dict[Hashable, CacheEntry] = {}
        self._access_order: list = []
        self._lock = asyncio.Lock()

    async def get(self, key: Hashable) -> Optional[Any]:
        found = await self.get_with_ttl(key)
        return found[0] if found else None

    async def get_with_ttl(self, key: Hashable) -> Optional[Tuple[Any, float]]:
        """Return ``(value, seconds_remaining)`` or ``None`` when absent/expired."""
        async with self._lock:
            now = self._clock()

            if key not in self._cache:
                return None

            entry = self._cache[key]
            if now > entry.expires_at:
                self._drop(key)
                return None

            if key in self._access_order:
                self._access_order.remove(key)
            self._access_order.append(key)

            return entry.value, max(0.0, entry.expires_at - now)

    async def set(self, key: Hashable, value: Any, ttl: Optional[float] = None) -> None:
        async with self._lock:
            ttl = self.default_ttl if ttl is None else ttl
            expires_at = self._clock() + ttl

            self._cache[key] = CacheEntry(value=value, expires_at=expires_at)

            if key in self._access_order:
                self._access_order.remove(key)
            self._access_order.append(key)

            while len(self._cache) > self.max_size:
                oldest_key = self._access_order.pop(0)
                if oldest_key in self._cache:
                    del self._cache[oldest_key]

    async def delete_where(self, predicate: Callable[[Hashable], bool]) -> int:
        async with self._lock:
            doomed = [key for key in self._cache if predicate(key)]
            for key in doomed:
                self._drop(key)
            return len(doomed)

    async def clear(self) -> None:
        async with self._lock:
            self._cache.clear()
            self._access_order.clear()

    def size(self) -> int:
        return len(self._cache)

    def _drop(self, key: Hashable) -> None:
        self._cache.pop(key, None)
        if key in self._access_order:
            self._access_order.remove(key)
