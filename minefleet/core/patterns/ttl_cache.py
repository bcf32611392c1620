from __future__ import annotations
import time
from typing import Any, Awaitable, Callable, Dict, Generic, Hashable, Optional, Tuple, TypeVar

V = TypeVar("V")


class TtlCache(Generic[V]):
    """key -> value with a fixed lifetime per entry."""

    def __init__(self, ttl: float, clock: Callable[[], float] = time.monotonic):
        self.ttl   = ttl
        self.clock = clock
        self._store: Dict[Hashable, Tuple[float, V]] = {}

    def get(self, key: Hashable) -> Optional[V]:
        entry = self._store.get(key)
        if entry is None:
            return None
        expires_at, value = entry
        if self.clock() >= expires_at:
            del self._store[key]
            return None
        return value

    def set(self, key: Hashable, value: V) -> None:
        self._store[key] = (self.clock() + self.ttl, value)

    def invalidate(self, key: Hashable) -> None:
        self._store.pop(key, None)

    async def get_or_load(self, key: Hashable, supplier: Callable[[], Awaitable[V]]) -> V:
        value = self.get(key)
        if value is None:
            value = await supplier()
            self.set(key, value)
        return value

    def __len__(self) -> int:
        return len(self._store)
