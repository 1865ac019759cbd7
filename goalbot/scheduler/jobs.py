# goalbot/scheduler/jobs.py
from __future__ import annotations

import asyncio
import logging
from datetime import datetime, timezone

from apscheduler.schedulers.asyncio import AsyncIOScheduler
from apscheduler.triggers.interval import IntervalTrigger

from goalbot.config.settings import Settings
from goalbot.services.transitions import PeriodTransitionOrchestrator, SweepReport

log = logging.getLogger(__name__)


class SweepRunner:
    """
    Runs the period sweep at most once at a time, from the scheduler or /sweep_now.
    """

    def __init__(self, orchestrator: PeriodTransitionOrchestrator, *, timeout: float | None = None) -> None:
        self.orchestrator = orchestrator
        self.timeout = timeout
        self._task: asyncio.Task[SweepReport] | None = None

    @property
    def running(self) -> bool:
        return self._task is not None and not self._task.done()

    async def run_once(self) -> SweepReport | None:
        """
        Returns None when a sweep is already in flight or a stop was requested.
        """
        if self.running:
            log.info("Sweep already running, skipping")
            return None
        if self.orchestrator.stop_requested:
            return None

        self._task = asyncio.create_task(self.orchestrator.sweep(timeout=self.timeout))
        # the sweep keeps going if the caller (e.g. a handler) is cancelled
        return await asyncio.shield(self._task)

    async def drain(self, timeout: float | None = None) -> None:
        """Stops new goals from being picked up and waits for the in-flight ones."""
        self.orchestrator.request_stop()
        if not self.running:
            return
        try:
            await asyncio.wait_for(asyncio.shield(self._task), timeout=timeout)
        except asyncio.TimeoutError:
            log.warning("Sweep still running after %ss, leaving it", timeout)
        except Exception:
            log.exception("Sweep failed while draining")


async def run_period_sweep(runner: SweepRunner) -> None:
    try:
        await runner.run_once()
    except Exception:
        log.exception("Period sweep crashed")


# -------------------------------------------------
# Scheduler setup
# -------------------------------------------------

def build_scheduler(runner: SweepRunner, settings: Settings) -> AsyncIOScheduler:
    """
    Creates and returns an AsyncIOScheduler with our jobs registered.
    """
    scheduler = AsyncIOScheduler(timezone="UTC")

    # every SWEEP_INTERVAL_MINUTES, plus once right at start-up
    scheduler.add_job(
        run_period_sweep,
        trigger=IntervalTrigger(minutes=settings.sweep_interval_minutes, timezone="UTC"),
        kwargs={"runner": runner},
        id="period_sweep",
        replace_existing=True,
        coalesce=True,
        max_instances=1,
        misfire_grace_time=300,
        next_run_time=datetime.now(timezone.utc),
    )

    return scheduler
