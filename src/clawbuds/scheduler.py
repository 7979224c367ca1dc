"""Periodic task scheduler.

Runs heartbeat emission, relationship decay and cleanup as three
independent loops on the running event loop. Each loop sleeps its interval
and then runs its callback; a callback that raises is logged and the loop
carries on, so one bad tick never stops the others.
"""

from __future__ import annotations

import asyncio
import logging
from collections.abc import Awaitable, Callable

logger = logging.getLogger(__name__)

PeriodicCallback = Callable[[], Awaitable[object]]


class SchedulerService:
    """Cooperative timers for the three periodic maintenance tasks."""

    def __init__(
        self,
        heartbeat_interval: float,
        decay_interval: float,
        cleanup_interval: float,
        on_heartbeat: PeriodicCallback | None = None,
        on_decay: PeriodicCallback | None = None,
        on_cleanup: PeriodicCallback | None = None,
    ):
        self.intervals = {
            "heartbeat": heartbeat_interval,
            "decay": decay_interval,
            "cleanup": cleanup_interval,
        }
        self.callbacks: dict[str, PeriodicCallback | None] = {
            "heartbeat": on_heartbeat,
            "decay": on_decay,
            "cleanup": on_cleanup,
        }
        self._tasks: list[asyncio.Task] = []
        self._running = False

    @property
    def running(self) -> bool:
        return self._running

    def start(self) -> None:
        """Start every configured loop.

        Raises:
            RuntimeError: If called outside a running event loop; the
                scheduler stays stopped.
        """
        if self._running:
            logger.warning("Scheduler already running")
            return

        loop = asyncio.get_running_loop()
        tasks = []
        for name, callback in self.callbacks.items():
            if callback is None:
                continue
            tasks.append(loop.create_task(self._run_periodic(name, self.intervals[name], callback)))

        self._tasks = tasks
        self._running = True

        logger.info(f"Scheduler started with {len(self._tasks)} tasks")

    async def stop(self) -> None:
        """Cancel every loop. Safe to call more than once."""
        if not self._running:
            return

        self._running = False
        for task in self._tasks:
            task.cancel()
        for task in self._tasks:
            try:
                await task
            except asyncio.CancelledError:
                pass
        self._tasks.clear()
        logger.info("Scheduler stopped")

    async def _run_periodic(self, name: str, interval: float, callback: PeriodicCallback) -> None:
        while self._running:
            try:
                await asyncio.sleep(interval)
                if not self._running:
                    break
                await callback()
            except asyncio.CancelledError:
                break
            except Exception:
                logger.exception(f"Scheduled task '{name}' failed")
