from __future__ import annotations

import asyncio

import pytest

from debridflix import locks


def test_linear_backoff_caps_delay() -> None:
    backoff = locks.linear_backoff(locks.DOWNLOAD_POLL_STEP_SECONDS, locks.DOWNLOAD_POLL_MAX_SECONDS)

    delays = [backoff(attempt) for attempt in range(1, 9)]

    assert delays[:3] == pytest.approx([0.05, 0.10, 0.15])
    assert max(delays) == pytest.approx(0.3)


@pytest.mark.asyncio
async def test_second_holder_waits_until_release(monkeypatch: pytest.MonkeyPatch) -> None:
    table = locks.search_locks()
    waits: list[float] = []
    real_sleep = asyncio.sleep

    async def _fake_sleep(delay: float) -> None:
        waits.append(delay)
        await real_sleep(0)

    monkeypatch.setattr(locks.asyncio, "sleep", _fake_sleep)
    order: list[str] = []
    first_inside = asyncio.Event()
    release_first = asyncio.Event()

    async def _first() -> None:
        async with table.hold("tt0111161"):
            order.append("first-in")
            first_inside.set()
            await release_first.wait()
            order.append("first-out")

    async def _second() -> None:
        await first_inside.wait()
        async with table.hold("tt0111161") as attempts:
            order.append("second-in")
            assert attempts > 0

    first = asyncio.create_task(_first())
    second = asyncio.create_task(_second())
    await first_inside.wait()
    for _ in range(3):
        await real_sleep(0)
    assert table.is_in_progress("tt0111161")
    assert order == ["first-in"]

    release_first.set()
    await asyncio.gather(first, second)

    assert order == ["first-in", "first-out", "second-in"]
    assert waits and all(delay == locks.SEARCH_POLL_INTERVAL_SECONDS for delay in waits)
    assert len(table) == 0


@pytest.mark.asyncio
async def test_hold_releases_on_exception() -> None:
    table = locks.download_locks()

    with pytest.raises(RuntimeError):
        async with table.hold("download:2:u:tt1:t1"):
            raise RuntimeError("provider exploded")

    assert not table.is_in_progress("download:2:u:tt1:t1")
    assert await table.acquire("download:2:u:tt1:t1") == 0


@pytest.mark.asyncio
async def test_distinct_keys_do_not_block() -> None:
    table = locks.search_locks()

    async with table.hold("tt1"):
        async with table.hold("tt2") as attempts:
            assert attempts == 0
            assert len(table) == 2
