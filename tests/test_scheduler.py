"""Tests for the periodic scheduler."""

from __future__ import annotations

import asyncio
from unittest.mock import AsyncMock

import pytest

from clawbuds.scheduler import SchedulerService


def make_scheduler(**callbacks) -> SchedulerService:
    return SchedulerService(
        heartbeat_interval=0.01,
        decay_interval=0.01,
        cleanup_interval=0.01,
        **callbacks,
    )


class TestScheduler:
    """Test scheduler start/stop and fault isolation."""

    @pytest.mark.asyncio
    async def test_runs_callbacks_repeatedly(self):
        heartbeat = AsyncMock()
        scheduler = make_scheduler(on_heartbeat=heartbeat)

        scheduler.start()
        await asyncio.sleep(0.1)
        await scheduler.stop()

        assert heartbeat.await_count >= 2

    @pytest.mark.asyncio
    async def test_failing_task_does_not_stop_others(self):
        decay = AsyncMock(side_effect=RuntimeError("decay failed"))
        cleanup = AsyncMock()
        scheduler = make_scheduler(on_decay=decay, on_cleanup=cleanup)

        scheduler.start()
        await asyncio.sleep(0.1)
        await scheduler.stop()

        assert decay.await_count >= 2
        assert cleanup.await_count >= 2

    def test_start_without_event_loop_stays_stopped(self):
        scheduler = make_scheduler(on_heartbeat=AsyncMock())

        with pytest.raises(RuntimeError):
            scheduler.start()

        assert not scheduler.running
        assert scheduler._tasks == []

    @pytest.mark.asyncio
    async def test_stop_is_idempotent(self):
        scheduler = make_scheduler(on_heartbeat=AsyncMock())

        await scheduler.stop()
        scheduler.start()
        assert scheduler.running
        await scheduler.stop()
        await scheduler.stop()
        assert not scheduler.running

    @pytest.mark.asyncio
    async def test_start_twice_keeps_one_set_of_tasks(self):
        scheduler = make_scheduler(on_heartbeat=AsyncMock(), on_decay=AsyncMock())

        scheduler.start()
        scheduler.start()
        assert len(scheduler._tasks) == 2
        await scheduler.stop()

    @pytest.mark.asyncio
    async def test_no_callbacks_after_stop(self):
        heartbeat = AsyncMock()
        scheduler = make_scheduler(on_heartbeat=heartbeat)

        scheduler.start()
        await asyncio.sleep(0.05)
        await scheduler.stop()
        calls = heartbeat.await_count
        await asyncio.sleep(0.05)

        assert heartbeat.await_count == calls

    @pytest.mark.asyncio
    async def test_missing_callbacks_are_skipped(self):
        scheduler = make_scheduler()
        scheduler.start()
        assert scheduler._tasks == []
        await scheduler.stop()
