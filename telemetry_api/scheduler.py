"""Tareas periódicas del hub (drain del buffer, rebroadcast, recursos).

Each task is an independent asyncio loop. A failing tick is logged and the
loop keeps going; a fatal condition ends the process.
"""

from __future__ import annotations

import asyncio
import inspect
import logging
from typing import Any, Awaitable, Callable, List, Optional, Union

from .core.errors import FatalTransportError, ResourceLimitExceeded

logger = logging.getLogger(__name__)

TickFn = Callable[[], Union[Any, Awaitable[Any]]]


class PeriodicTask:
    """Runs `tick` every `interval_s` seconds until stopped.

    Uso:
        task = PeriodicTask("drain", 0.05, hub.drain_buffer, on_fatal=hub.fail)
        task.start()
        ...
        await task.stop()
    """

    def __init__(
        self,
        name: str,
        interval_s: float,
        tick: TickFn,
        *,
        on_fatal: Callable[[str], None],
    ) -> None:
        if interval_s <= 0:
            raise ValueError("interval_s must be > 0")
        self.name = name
        self.interval_s = float(interval_s)
        self._tick = tick
        self._on_fatal = on_fatal
        self._task: Optional[asyncio.Task] = None
        self.runs = 0
        self.errors = 0

    @property
    def running(self) -> bool:
        return self._task is not None and not self._task.done()

    def start(self) -> None:
        if self.running:
            return
        self._task = asyncio.create_task(self._run_loop(), name=f"periodic-{self.name}")
        logger.info("[SCHEDULER] Started %s every %.3fs", self.name, self.interval_s)

    async def stop(self) -> None:
        if self._task is None:
            return
        self._task.cancel()
        try:
            await self._task
        except asyncio.CancelledError:
            pass
        self._task = None
        logger.info("[SCHEDULER] Stopped %s (runs=%d errors=%d)", self.name, self.runs, self.errors)

    async def run_once(self) -> None:
        try:
            result = self._tick()
            if inspect.isawaitable(result):
                await result
            self.runs += 1
        except (FatalTransportError, ResourceLimitExceeded) as e:
            self._on_fatal(f"{self.name}: {e}")
        except Exception as e:
            self.errors += 1
            logger.exception("[SCHEDULER] %s tick failed: %s", self.name, e)

    async def _run_loop(self) -> None:
        while True:
            await asyncio.sleep(self.interval_s)
            await self.run_once()


class Scheduler:
    def __init__(self) -> None:
        self._tasks: List[PeriodicTask] = []

    @property
    def tasks(self) -> List[PeriodicTask]:
        return list(self._tasks)

    def add(self, task: PeriodicTask) -> PeriodicTask:
        self._tasks.append(task)
        return task

    def start(self) -> None:
        for task in self._tasks:
            task.start()

    async def stop(self) -> None:
        for task in self._tasks:
            await task.stop()


def build_scheduler(hub) -> Scheduler:
    """The three timers the service runs for its whole lifetime."""
    settings = hub.settings
    scheduler = Scheduler()
    scheduler.add(PeriodicTask(
        "buffer-drain", settings.buffer_drain_interval_ms / 1000.0, hub.drain_buffer, on_fatal=hub.fail,
    ))
    scheduler.add(PeriodicTask(
        "stale-rebroadcast", settings.stale_check_interval_ms / 1000.0, hub.rebroadcast_stale, on_fatal=hub.fail,
    ))
    scheduler.add(PeriodicTask(
        "resource-check", settings.resource_check_interval_s, hub.check_resources, on_fatal=hub.fail,
    ))
    return scheduler
