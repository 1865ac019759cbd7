# goalbot/scripts/process_periods.py
"""
One-shot period sweep: closes expired periods, carries penalties over and
opens the successors. Safe to run next to the bot.

    python -m goalbot.scripts.process_periods [--dry-run] [--goal ID]
"""
from __future__ import annotations

import argparse
import asyncio
import logging

from goalbot.config import Settings
from goalbot.database.session import Database
from goalbot.main import setup_logging
from goalbot.services.errors import GoalNotFoundError, GoalTransitionError
from goalbot.services.transitions import PeriodTransitionOrchestrator
from goalbot.utils.dates import utc_now

log = logging.getLogger("goalbot.process_periods")


def _parse_args(argv: list[str] | None = None) -> argparse.Namespace:
    p = argparse.ArgumentParser(description="Process group goal periods (close expired, open next).")
    p.add_argument("--dry-run", action="store_true", help="show what would be processed without changing anything")
    p.add_argument("--goal", type=int, default=None, help="only this goal id")
    return p.parse_args(argv)


async def _dry_run(orchestrator: PeriodTransitionOrchestrator, goal_ids: list[int]) -> None:
    now = utc_now()
    log.info("DRY RUN at %s, no changes will be made", now.isoformat())

    due = 0
    for goal_id in goal_ids:
        try:
            goal, plan = await orchestrator.plan_goal(goal_id, now)
        except GoalNotFoundError:
            log.warning("Goal id=%s not found", goal_id)
            continue
        if plan.is_noop:
            continue
        due += 1
        for b in plan.to_finalize:
            log.info("Would close goal id=%s (%s) period %s -> %s", goal.id, goal.name, b.start.isoformat(), b.end.isoformat())
        for b in plan.to_open:
            log.info("Would open goal id=%s (%s) period %s -> %s", goal.id, goal.name, b.start.isoformat(), b.end.isoformat())

    log.info("DRY RUN: %s of %s goals need processing", due, len(goal_ids))


async def main(argv: list[str] | None = None) -> int:
    args = _parse_args(argv)
    settings = Settings.load(require_token=False)
    setup_logging(settings.is_dev)

    db = Database(settings.database_url)
    await db.init_models()
    orchestrator = PeriodTransitionOrchestrator(db, concurrency=settings.sweep_concurrency)

    try:
        goal_ids = [args.goal] if args.goal is not None else await orchestrator.list_due_goal_ids()

        if args.dry_run:
            await _dry_run(orchestrator, goal_ids)
            return 0

        if args.goal is not None:
            try:
                result = await orchestrator.transition_goal(args.goal)
            except GoalTransitionError as e:
                log.error("Goal id=%s failed: %r", args.goal, e.cause)
                return 1
            log.info(
                "Goal id=%s: closed %s, opened %s, active period id=%s",
                result.goal_id,
                result.finalized_period_ids,
                result.opened_period_ids,
                result.active_period_id,
            )
            return 0

        report = await orchestrator.sweep(timeout=settings.sweep_timeout_seconds)
        return 1 if report.failed else 0
    finally:
        await db.close()


def run() -> None:
    raise SystemExit(asyncio.run(main()))


if __name__ == "__main__":
    run()
