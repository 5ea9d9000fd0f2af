from __future__ import annotations

import asyncio

import pytest

from orchestrator.scheduler import TickScheduler


@pytest.mark.asyncio
async def test_run_once_is_not_reentrant() -> None:
    gate = asyncio.Event()
    calls = []

    async def tick() -> None:
        calls.append(1)
        await gate.wait()

    scheduler = TickScheduler(tick, interval_seconds=60)
    first = asyncio.create_task(scheduler.run_once())
    await asyncio.sleep(0)
    assert scheduler.running is True
    assert await scheduler.run_once() is False
    gate.set()
    assert await first is True
    assert calls == [1]
    assert scheduler.running is False


@pytest.mark.asyncio
async def test_tick_errors_are_logged_not_raised() -> None:
    async def tick() -> None:
        raise RuntimeError("boom")

    scheduler = TickScheduler(tick)
    assert await scheduler.run_once() is True
    assert scheduler.running is False


@pytest.mark.asyncio
async def test_start_ticks_immediately_and_stop_halts_loop() -> None:
    ticked = asyncio.Event()
    calls = []

    async def tick() -> None:
        calls.append(1)
        ticked.set()

    scheduler = TickScheduler(tick, interval_seconds=60)
    scheduler.start()
    await asyncio.wait_for(ticked.wait(), timeout=1)
    await scheduler.stop()

    assert calls == [1]
    assert scheduler.stopped is True
    assert await scheduler.run_once() is False


@pytest.mark.asyncio
async def test_enabling_a_disabled_scheduler_ticks_immediately() -> None:
    ticked = asyncio.Event()

    async def tick() -> None:
        ticked.set()

    scheduler = TickScheduler(tick, interval_seconds=60, enabled=False)
    scheduler.start()
    await asyncio.sleep(0.01)
    assert not ticked.is_set()

    scheduler.update_config(enabled=True)
    await asyncio.wait_for(ticked.wait(), timeout=1)
    await scheduler.stop()


@pytest.mark.asyncio
async def test_interval_drives_repeated_ticks() -> None:
    calls = []

    async def tick() -> None:
        calls.append(1)

    scheduler = TickScheduler(tick, interval_seconds=0.01)
    scheduler.start()
    await asyncio.sleep(0.1)
    await scheduler.stop()
    assert len(calls) >= 3
