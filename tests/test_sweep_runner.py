import asyncio
from datetime import datetime
from unittest.mock import AsyncMock, MagicMock

import pytest

from goalbot.config import Settings
from goalbot.scheduler.jobs import SweepRunner, build_scheduler
from goalbot.services.transitions import SweepReport


def _orchestrator(sweep):
    orch = MagicMock()
    orch.stop_requested = False
    orch.sweep = sweep

    def _stop():
        orch.stop_requested = True

    orch.request_stop.side_effect = _stop
    return orch


@pytest.mark.asyncio
async def test_run_once_returns_report():
    report = SweepReport(now=datetime(2024, 1, 8))
    orch = _orchestrator(AsyncMock(return_value=report))
    runner = SweepRunner(orch, timeout=30)

    assert await runner.run_once() is report
    orch.sweep.assert_awaited_once_with(timeout=30)


@pytest.mark.asyncio
async def test_overlapping_runs_are_skipped():
    release = asyncio.Event()

    async def slow_sweep(timeout=None):
        await release.wait()
        return SweepReport(now=datetime(2024, 1, 8))

    runner = SweepRunner(_orchestrator(slow_sweep))
    first = asyncio.create_task(runner.run_once())
    await asyncio.sleep(0)

    assert runner.running
    assert await runner.run_once() is None

    release.set()
    assert isinstance(await first, SweepReport)
    assert not runner.running


@pytest.mark.asyncio
async def test_drain_stops_and_waits():
    release = asyncio.Event()
    finished = []

    async def slow_sweep(timeout=None):
        await release.wait()
        finished.append(True)
        return SweepReport(now=datetime(2024, 1, 8))

    orch = _orchestrator(slow_sweep)
    runner = SweepRunner(orch)
    task = asyncio.create_task(runner.run_once())
    await asyncio.sleep(0)

    asyncio.get_running_loop().call_later(0.01, release.set)
    await runner.drain(timeout=5)

    orch.request_stop.assert_called_once()
    assert finished == [True]
    await task
    # no new sweep after a stop
    assert await runner.run_once() is None


@pytest.mark.asyncio
async def test_scheduler_registers_interval_job():
    runner = SweepRunner(_orchestrator(AsyncMock()))
    scheduler = build_scheduler(runner, Settings(bot_token="t", sweep_interval_minutes=15))

    job = scheduler.get_job("period_sweep")
    assert job is not None
    assert job.max_instances == 1
    assert job.coalesce is True
    assert job.trigger.interval.total_seconds() == 15 * 60
