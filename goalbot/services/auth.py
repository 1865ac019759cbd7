# goalbot/services/auth.py
from __future__ import annotations

from dataclasses import dataclass

from aiogram import Bot

from goalbot.config import Settings

ADMIN_STATUSES = {"creator", "administrator"}


@dataclass(frozen=True, slots=True)
class AuthResult:
    is_root: bool
    is_admin: bool
    role: str  # "root" | "admin" | "member"


class AuthService:
    def __init__(self, settings: Settings) -> None:
        self.settings = settings

    async def resolve(self, bot: Bot, *, chat_id: int, telegram_id: int) -> AuthResult:
        # Root admins come from env, always takes precedence.
        if telegram_id in self.settings.root_admin_ids:
            return AuthResult(is_root=True, is_admin=True, role="root")

        member = await bot.get_chat_member(chat_id=chat_id, user_id=telegram_id)
        status = getattr(member.status, "value", member.status)
        if status in ADMIN_STATUSES:
            return AuthResult(is_root=False, is_admin=True, role="admin")

        return AuthResult(is_root=False, is_admin=False, role="member")
