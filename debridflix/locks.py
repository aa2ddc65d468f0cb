"""Per-key in-flight markers guaranteeing one running operation per logical key."""

from __future__ import annotations

import asyncio
from contextlib import asynccontextmanager
from typing import AsyncIterator, Callable

# Search: fixed polling while another search for the same Stremio id runs.
SEARCH_POLL_INTERVAL_SECONDS = 0.5

# Download: linear backoff, 50ms steps capped at 300ms.
DOWNLOAD_POLL_STEP_SECONDS = 0.05
DOWNLOAD_POLL_MAX_SECONDS = 0.3

Backoff = Callable[[int], float]


def fixed_interval(seconds: float) -> Backoff:
    return lambda _attempt: seconds


def linear_backoff(step: float, cap: float) -> Backoff:
    return lambda attempt: min(cap, step * attempt)


class InFlightTable:
    """Advisory mutex per key, implemented by polling a shared marker.

    Only safe inside one event loop: the check-then-set runs without an await in
    between, so no other coroutine can interleave.
    """

    def __init__(self, name: str, backoff: Backoff) -> None:
        self.name = name
        self._backoff = backoff
        self._in_progress: dict[str, bool] = {}

    def is_in_progress(self, key: str) -> bool:
        return self._in_progress.get(key, False)

    def __len__(self) -> int:
        return len(self._in_progress)

    async def acquire(self, key: str) -> int:
        """Wait until ``key`` is free, mark it busy. Returns the number of polls."""
        attempt = 0
        while self._in_progress.get(key):
            attempt += 1
            await asyncio.sleep(self._backoff(attempt))
        self._in_progress[key] = True
        return attempt

    def release(self, key: str) -> None:
        self._in_progress.pop(key, None)

    @asynccontextmanager
    async def hold(self, key: str) -> AsyncIterator[int]:
        attempts = await self.acquire(key)
        try:
            yield attempts
        finally:
            self.release(key)


def search_locks() -> InFlightTable:
    return InFlightTable("search", fixed_interval(SEARCH_POLL_INTERVAL_SECONDS))


def download_locks() -> InFlightTable:
    return InFlightTable(
        "download",
        linear_backoff(DOWNLOAD_POLL_STEP_SECONDS, DOWNLOAD_POLL_MAX_SECONDS),
    )
