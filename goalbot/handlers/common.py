# goalbot/handlers/common.py
from __future__ import annotations

from aiogram import Router
from aiogram.filters import Command, CommandStart
from aiogram.types import Message

router = Router(name="common")

HELP_TEXT = (
    "📌 <b>Group goals</b>\n"
    "/goals - goals of this group\n"
    "/log [#goal] amount [YYYY-MM-DD] [note] - add progress\n"
    "/progress [#goal] - your progress, entries and streak\n"
    "/period [#goal] - current period\n"
    "/leaderboard [#goal] - ranking of the current period\n\n"
    "🛠 <b>Admins</b>\n"
    "/newgoal weekly|monthly target unit name\n"
    "/settarget [#goal] amount\n"
    "/endgoal [#goal] · /resumegoal #goal\n"
    "/sweep_now - close due periods now\n\n"
    "Missed targets carry over: what you miss is added to your next target."
)


@router.message(CommandStart())
async def cmd_start(message: Message) -> None:
    await message.answer(
        "👋 Welcome!\n\n"
        "Add me to a group, create a goal with /newgoal and log progress with /log.\n"
        "Use /help to see commands."
    )


@router.message(Command("help"))
async def cmd_help(message: Message) -> None:
    await message.answer(HELP_TEXT)
