# goalbot/scheduler/__init__.py
from __future__ import annotations

from apscheduler.schedulers.asyncio import AsyncIOScheduler

from goalbot.config.settings import Settings
from goalbot.scheduler.jobs import SweepRunner, build_scheduler


def setup_scheduler(runner: SweepRunner, settings: Settings) -> AsyncIOScheduler:
    scheduler = build_scheduler(runner=runner, settings=settings)
    scheduler.start()
    return scheduler
