# goalbot/utils/guards.py
from __future__ import annotations

from aiogram.types import Message

from goalbot.config import Settings
from goalbot.database.models import Group
from goalbot.services.auth import AuthResult, AuthService
from goalbot.services.entitlements import EntitlementGate
from goalbot.services.errors import NotEntitledError
from goalbot.utils.reply import engine_error_text, reply_safe


async def require_group(message: Message, db_group: Group | None) -> Group | None:
    if db_group is None:
        await reply_safe(message, "ℹ️ Group goals live in group chats. Use this command in your group.")
        return None
    return db_group


async def require_entitled(message: Message, entitlements: EntitlementGate) -> bool:
    tg = message.from_user
    if tg is None:
        return False
    if not await entitlements.can_use_group_goals(tg.id):
        await reply_safe(message, engine_error_text(NotEntitledError(tg.id)))
        return False
    return True


async def require_admin_or_reply(message: Message, settings: Settings) -> AuthResult | None:
    tg = message.from_user
    if not tg:
        await reply_safe(message, "⛔ You are not allowed.")
        return None

    authz = await AuthService(settings).resolve(message.bot, chat_id=message.chat.id, telegram_id=tg.id)
    if not authz.is_admin:
        await reply_safe(message, "⛔ Admins only.")
        return None

    return authz
