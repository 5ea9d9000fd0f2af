"""Cooperative tick loop: one tick at a time, next wait armed only after the tick finishes."""

from __future__ import annotations

import asyncio
import logging
from typing import Any, Awaitable, Callable, Optional

logger = logging.getLogger(__name__)

TickFn = Callable[[], Awaitable[Any]]


class TickScheduler:
    """
    Periodic driver for a tick coroutine.

    ``start`` ticks immediately when enabled, then alternates tick and wait.
    ``update_config`` wakes the wait: enabling triggers an immediate tick,
    disabling parks the loop, and an interval change re-arms the wait.
    ``stop`` wakes the loop and awaits it; an in-flight tick runs to completion.
    """

    def __init__(self, tick: TickFn, *, interval_seconds: float = 60.0, enabled: bool = True) -> None:
        self._tick = tick
        self.interval_seconds = float(interval_seconds)
        self.enabled = bool(enabled)
        self.running = False
        self._stopped = False
        self._pending_tick = False
        self._wake = asyncio.Event()
        self._task: Optional[asyncio.Task] = None

    @property
    def stopped(self) -> bool:
        return self._stopped

    async def run_once(self) -> bool:
        """Run one tick unless one is already running; tick errors are logged, not raised."""
        if self.running or self._stopped:
            return False
        self.running = True
        try:
            await self._tick()
        except Exception:
            logger.exception("tick failed")
        finally:
            self.running = False
        return True

    def start(self) -> asyncio.Task:
        if self._task is None or self._task.done():
            self._stopped = False
            self._task = asyncio.create_task(self._loop(), name="release-engine-scheduler")
            if self.enabled:
                logger.info("scheduler started interval=%.0fs", self.interval_seconds)
            else:
                logger.info("scheduler started disabled")
        return self._task

    async def _wait(self, timeout: Optional[float]) -> bool:
        """Wait for the interval or a wake signal; True when woken."""
        try:
            await asyncio.wait_for(self._wake.wait(), timeout)
            woken = True
        except asyncio.TimeoutError:
            woken = False
        self._wake.clear()
        return woken

    async def _loop(self) -> None:
        tick_now = self.enabled
        while not self._stopped:
            if tick_now and self.enabled:
                await self.run_once()
            if self._stopped:
                break
            woken = await self._wait(self.interval_seconds if self.enabled else None)
            tick_now = (not woken) or self._pending_tick
            self._pending_tick = False
        logger.info("scheduler stopped")

    def update_config(self, *, interval_seconds: Optional[float] = None, enabled: Optional[bool] = None) -> None:
        was_enabled = self.enabled
        if interval_seconds is not None:
            self.interval_seconds = float(interval_seconds)
        if enabled is not None:
            self.enabled = bool(enabled)
        if not was_enabled and self.enabled:
            self._pending_tick = True
        self._wake.set()

    async def stop(self) -> None:
        if self._stopped and self._task is None:
            return
        self._stopped = True
        self._wake.set()
        task, self._task = self._task, None
        if task is not None:
            await task
