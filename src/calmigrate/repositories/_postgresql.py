"""
Shared plumbing for the PostgreSQL stores.

A store is given either an AsyncEngine or an AsyncConnection. With an engine
every store call checks out its own connection and writes commit on their
own. With a connection the caller owns the transaction, which lets a host
application run tracking writes inside its own unit of work.
"""

from __future__ import annotations

from collections.abc import AsyncIterator
from contextlib import asynccontextmanager

from sqlalchemy import text
from sqlalchemy.ext.asyncio import AsyncConnection, AsyncEngine

from calmigrate.migrations import split_statements


class PostgreSQLStore:
    """Base for the PostgreSQL repositories: connection handling and lazy DDL."""

    def __init__(self, conn: AsyncConnection | AsyncEngine) -> None:
        self.conn = conn
        self._created: set[str] = set()

    @asynccontextmanager
    async def _writing(self) -> AsyncIterator[AsyncConnection]:
        if isinstance(self.conn, AsyncEngine):
            async with self.conn.begin() as connection:
                yield connection
        else:
            yield self.conn

    @asynccontextmanager
    async def _reading(self) -> AsyncIterator[AsyncConnection]:
        if isinstance(self.conn, AsyncEngine):
            async with self.conn.connect() as connection:
                yield connection
        else:
            yield self.conn

    async def _create_once(self, table: str, ddl: str) -> None:
        """Run a table's DDL the first time this store touches it."""
        if table in self._created:
            return
        async with self._writing() as conn:
            for statement in split_statements(ddl):
                await conn.execute(text(statement))
        self._created.add(table)

    async def _drop_table(self, table: str) -> None:
        async with self._writing() as conn:
            await conn.execute(text(f"DROP TABLE IF EXISTS {table}"))
        self._created.discard(table)


__all__ = ["PostgreSQLStore"]
