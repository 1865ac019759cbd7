# goalbot/database/tx.py
from __future__ import annotations

from contextlib import asynccontextmanager
from typing import AsyncIterator

from sqlalchemy.dialects.postgresql import insert as pg_insert
from sqlalchemy.dialects.sqlite import insert as sqlite_insert
from sqlalchemy.ext.asyncio import AsyncSession


@asynccontextmanager
async def transactional(session: AsyncSession) -> AsyncIterator[AsyncSession]:
    """
    Safe transactional context for SQLAlchemy 2.x autobegin.

    - If a transaction is already active, use SAVEPOINT (begin_nested)
    - Otherwise, start a new transaction (commit on exit, rollback on error)
    """
    if session.in_transaction():
        async with session.begin_nested():
            yield session
    else:
        async with session.begin():
            yield session


def dialect_name(session: AsyncSession) -> str:
    return session.get_bind().dialect.name


def supports_row_locks(session: AsyncSession) -> bool:
    # SQLite has no SELECT ... FOR UPDATE; its database-level write lock serializes writers instead.
    return dialect_name(session) != "sqlite"


def insert_for(session: AsyncSession, model):
    """Dialect insert() so callers get on_conflict_do_update / on_conflict_do_nothing."""
    if dialect_name(session) == "postgresql":
        return pg_insert(model)
    return sqlite_insert(model)
