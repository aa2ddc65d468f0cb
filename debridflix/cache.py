"""In-process TTL cache used for indexer results and resolved download links."""

from __future__ import annotations

import time
from collections import OrderedDict
from dataclasses import dataclass
from typing import Any

DEFAULT_TTL_SECONDS = 60 * 60
DEFAULT_MAX_ENTRIES = 1000


@dataclass
class _Entry:
    value: Any
    expires_at: float | None


class MemoryCache:
    """Async TTL store; oldest entries are evicted past ``max_entries``.

    Satisfies the ``CacheStore`` protocol. A missing or expired key reads as ``None``.
    """

    def __init__(
        self,
        default_ttl: float = DEFAULT_TTL_SECONDS,
        max_entries: int = DEFAULT_MAX_ENTRIES,
    ) -> None:
        if max_entries <= 0:
            raise ValueError("max_entries must be greater than 0")
        self.default_ttl = default_ttl
        self.max_entries = max_entries
        self._entries: OrderedDict[str, _Entry] = OrderedDict()
        self.hits = 0
        self.misses = 0

    def _is_expired(self, entry: _Entry, now: float) -> bool:
        return entry.expires_at is not None and entry.expires_at <= now

    async def get(self, key: str) -> Any:
        entry = self._entries.get(key)
        if entry is None or self._is_expired(entry, time.monotonic()):
            if entry is not None:
                self._entries.pop(key, None)
            self.misses += 1
            return None
        self.hits += 1
        return entry.value

    async def set(self, key: str, value: Any, ttl: float | None = None) -> None:
        """Store ``value``; ``ttl`` of 0 means no expiry, ``None`` uses the default."""
        ttl = self.default_ttl if ttl is None else ttl
        expires_at = time.monotonic() + ttl if ttl > 0 else None
        self._entries.pop(key, None)
        self._entries[key] = _Entry(value=value, expires_at=expires_at)
        while len(self._entries) > self.max_entries:
            self._entries.popitem(last=False)

    async def delete(self, key: str) -> bool:
        return self._entries.pop(key, None) is not None

    async def clear(self) -> int:
        count = len(self._entries)
        self._entries.clear()
        return count

    def vacuum(self) -> int:
        """Drop expired entries, return how many were removed."""
        now = time.monotonic()
        expired = [key for key, entry in self._entries.items() if self._is_expired(entry, now)]
        for key in expired:
            self._entries.pop(key, None)
        return len(expired)

    def __len__(self) -> int:
        return len(self._entries)
