# goalbot/utils/middleware.py
from __future__ import annotations

from typing import Any, Awaitable, Callable, Dict

from aiogram import BaseMiddleware
from aiogram.types import TelegramObject

from goalbot.database.repo.users import upsert_membership_from_event, upsert_user_from_event
from goalbot.database.session import Database


class DbSessionMiddleware(BaseMiddleware):
    """
    Creates a DB session per update and injects it into handler data as `session`.

    Upserts the current Telegram user (`db_user`) and, in group chats, the group
    and membership (`db_group`). That part is committed on its own before the
    handler runs, so handler writes start a fresh transaction.
    Auto-commits on success and rolls back on error.
    """

    def __init__(self, db: Database) -> None:
        self.db = db

    async def __call__(
        self,
        handler: Callable[[TelegramObject, Dict[str, Any]], Awaitable[Any]],
        event: TelegramObject,
        data: Dict[str, Any],
    ) -> Any:
        async with self.db.SessionLocal() as session:
            data["session"] = session

            db_user = await upsert_user_from_event(session, event)
            if db_user is not None:
                data["db_user"] = db_user
                db_group = await upsert_membership_from_event(session, event, db_user)
                if db_group is not None:
                    data["db_group"] = db_group
            await session.commit()

            try:
                result = await handler(event, data)
                await session.commit()
                return result
            except Exception:
                await session.rollback()
                raise
