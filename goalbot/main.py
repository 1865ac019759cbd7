# goalbot/main.py
import asyncio
import logging

from aiogram import Bot, Dispatcher
from aiogram.client.default import DefaultBotProperties
from aiogram.enums import ParseMode

from goalbot.config import Settings
from goalbot.database import Database
from goalbot.handlers.router import router as handlers_router
from goalbot.scheduler import setup_scheduler
from goalbot.scheduler.jobs import SweepRunner
from goalbot.services.entitlements import AllowListGate
from goalbot.services.goals import GoalService
from goalbot.services.leaderboard import LinearPoints
from goalbot.services.transitions import PeriodTransitionOrchestrator
from goalbot.utils.middleware import DbSessionMiddleware

SHUTDOWN_DRAIN_SECONDS = 30


def setup_logging(is_dev: bool) -> None:
    """
    Clean production logging:
    - app logs: INFO (or DEBUG in dev)
    - SQLAlchemy logs: WARNING+ (no query/pool spam)
    """
    app_level = logging.DEBUG if is_dev else logging.INFO

    logging.basicConfig(
        level=app_level,
        format="%(asctime)s | %(levelname)s | %(name)s | %(message)s",
    )

    for name in (
        "sqlalchemy",
        "sqlalchemy.engine",
        "sqlalchemy.pool",
        "sqlalchemy.orm",
        "asyncpg",
        "aiosqlite",
        "apscheduler",
    ):
        logging.getLogger(name).setLevel(logging.WARNING)


async def main() -> None:
    settings = Settings.load()
    setup_logging(settings.is_dev)
    log = logging.getLogger("goalbot")

    db = Database(settings.database_url)
    await db.init_models()
    log.info("DB initialized")

    bot = Bot(
        token=settings.bot_token,
        default=DefaultBotProperties(parse_mode=ParseMode.HTML),
    )

    orchestrator = PeriodTransitionOrchestrator(db, concurrency=settings.sweep_concurrency)
    sweep_runner = SweepRunner(orchestrator, timeout=settings.sweep_timeout_seconds)
    goal_service = GoalService(
        LinearPoints(
            per_place=settings.leaderboard_points_per_place,
            completion_bonus=settings.leaderboard_completion_bonus,
        )
    )

    dp = Dispatcher()

    # Inject workflow data
    dp.workflow_data["settings"] = settings
    dp.workflow_data["db"] = db
    dp.workflow_data["goal_service"] = goal_service
    dp.workflow_data["orchestrator"] = orchestrator
    dp.workflow_data["sweep_runner"] = sweep_runner
    dp.workflow_data["entitlements"] = AllowListGate(settings.entitled_user_ids)

    # DB session per update
    dp.update.middleware(DbSessionMiddleware(db))

    # Include routers (admin/user/common)
    dp.include_router(handlers_router)

    scheduler = setup_scheduler(runner=sweep_runner, settings=settings)
    log.info("Scheduler started (period sweep every %s min)", settings.sweep_interval_minutes)

    try:
        await dp.start_polling(bot)
    except (asyncio.CancelledError, KeyboardInterrupt):
        pass
    except Exception:
        log.exception("Bot crashed")
        raise
    finally:
        # Stop scheduler, then let an in-flight sweep finish its goals
        try:
            scheduler.shutdown(wait=False)
        except Exception:
            log.exception("Failed to shutdown scheduler")

        try:
            await sweep_runner.drain(timeout=SHUTDOWN_DRAIN_SECONDS)
        except Exception:
            log.exception("Failed to drain period sweep")

        # Close DB + bot session
        try:
            await db.close()
        except Exception:
            log.exception("Failed to close DB")

        try:
            await bot.session.close()
        except Exception:
            log.exception("Failed to close bot session")


def run() -> None:
    asyncio.run(main())


if __name__ == "__main__":
    run()
