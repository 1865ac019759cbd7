from __future__ import annotations

from datetime import datetime

import pytest
import pytest_asyncio

from goalbot.database import Database
from goalbot.database.models import Group, GroupMember, User
from goalbot.services.goals import GoalCreated, GoalService

# Wednesday of the week 2024-01-01 (Mon) .. 2024-01-08 (Mon)
WEDNESDAY = datetime(2024, 1, 3, 12, 0)


@pytest_asyncio.fixture
async def db(tmp_path):
    # file database: concurrent sessions get real connections and real locking
    database = Database(f"sqlite+aiosqlite:///{tmp_path / 'goalbot-test.db'}")
    await database.init_models()
    try:
        yield database
    finally:
        await database.close()


class Factory:
    """Creates rows through their own committed sessions."""

    def __init__(self, db: Database) -> None:
        self.db = db
        self._next_tg = 1000
        self._next_chat = -1001

    async def user(self, username: str | None = None) -> User:
        self._next_tg += 1
        async with self.db.session() as session:
            user = User(telegram_id=self._next_tg, username=username or f"user{self._next_tg}")
            session.add(user)
            await session.commit()
            return user

    async def group(self, *members: User, title: str = "Runners") -> Group:
        self._next_chat -= 1
        async with self.db.session() as session:
            group = Group(chat_id=self._next_chat, title=title)
            session.add(group)
            await session.flush()
            for m in members:
                session.add(GroupMember(group_id=group.id, user_id=m.id, is_active=True))
            await session.commit()
            return group

    async def add_member(self, group: Group, user: User, *, is_active: bool = True) -> None:
        async with self.db.session() as session:
            session.add(GroupMember(group_id=group.id, user_id=user.id, is_active=is_active))
            await session.commit()

    async def goal(
        self,
        group: Group,
        *,
        base_target: str = "10",
        period_type: str = "weekly",
        name: str = "Run",
        unit: str = "km",
        now: datetime = WEDNESDAY,
    ) -> GoalCreated:
        async with self.db.session() as session:
            return await GoalService.create_goal(
                session,
                group_id=group.id,
                name=name,
                unit=unit,
                period_type=period_type,
                base_target=base_target,
                now=now,
            )


@pytest.fixture
def factory(db) -> Factory:
    return Factory(db)
