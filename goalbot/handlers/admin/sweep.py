# goalbot/handlers/admin/sweep.py
from __future__ import annotations

from aiogram import Router
from aiogram.filters import Command
from aiogram.types import Message

from goalbot.config import Settings
from goalbot.scheduler.jobs import SweepRunner
from goalbot.utils.guards import require_admin_or_reply
from goalbot.utils.reply import reply_safe

router = Router()


@router.message(Command("sweep_now"))
async def sweep_now_cmd(message: Message, settings: Settings, sweep_runner: SweepRunner) -> None:
    authz = await require_admin_or_reply(message, settings)
    if not authz:
        return

    report = await sweep_runner.run_once()
    if report is None:
        await reply_safe(message, "⏳ A sweep is already running.")
        return

    await reply_safe(
        message,
        "✅ <b>Sweep done</b>\n"
        f"• Periods closed: <b>{report.finalized_count}</b>\n"
        f"• Periods opened: <b>{report.opened_count}</b>\n"
        f"• Failed goals: <b>{len(report.failed)}</b>\n"
        f"• Skipped goals: <b>{len(report.skipped)}</b>",
    )
