"""
Error log repository.

Row-level migration failures are data, not exceptions: each one becomes an
entry here (context, source ID, label, message) and the row is marked as
skipped in the tracking store. The log is append-only for the lifetime of a
run and is shown to the caller once the run completes.
"""

import asyncio
import dataclasses
from datetime import UTC, datetime
from typing import TYPE_CHECKING, Any, Protocol, runtime_checkable

from sqlalchemy import text
from sqlalchemy.ext.asyncio import AsyncConnection, AsyncEngine

from calmigrate.migrations import get_schema, split_statements
from calmigrate.models import ErrorEntry
from calmigrate.observability import Tracer, create_tracer
from calmigrate.observability.attributes import ATTR_MIGRATION_STAGE, ATTR_SOURCE_ID
from calmigrate.repositories._postgresql import PostgreSQLStore

if TYPE_CHECKING:
    import aiosqlite


@runtime_checkable
class ErrorLogRepository(Protocol):
    """
    Protocol for error log repositories.
    """

    async def append(self, entry: ErrorEntry) -> ErrorEntry:
        """
        Append an entry.

        Args:
            entry: Entry to store (its id is ignored)

        Returns:
            The stored entry with its assigned id
        """
        ...

    async def list_entries(self, context: str | None = None) -> list[ErrorEntry]:
        """
        List entries in insertion order.

        Args:
            context: Only return entries of this context (stage name)

        Returns:
            List of ErrorEntry
        """
        ...

    async def count(self, context: str | None = None) -> int:
        """Count entries, optionally for one context."""
        ...

    async def clear(self) -> None:
        """Remove every entry."""
        ...


def _append_attrs(entry: ErrorEntry) -> dict[str, Any]:
    return {ATTR_MIGRATION_STAGE: entry.context, ATTR_SOURCE_ID: entry.source_id}


class PostgreSQLErrorLogRepository(PostgreSQLStore):
    """
    PostgreSQL implementation of the error log.

    Stores entries in the `calmigrate_error_log` table.
    """

    def __init__(
        self,
        conn: AsyncConnection | AsyncEngine,
        tracer: Tracer | None = None,
        enable_tracing: bool = True,
    ) -> None:
        """
        Initialize the error log repository.

        Args:
            conn: Database connection or engine
            tracer: Optional tracer for tracing (if not provided, one will be created)
            enable_tracing: Whether to enable OpenTelemetry tracing (default True)
        """
        self._tracer = tracer or create_tracer(__name__, enable_tracing)
        super().__init__(conn)

    async def _ensure_schema(self) -> None:
        await self._create_once("calmigrate_error_log", get_schema("error_log", "postgresql"))

    async def append(self, entry: ErrorEntry) -> ErrorEntry:
        with self._tracer.span("calmigrate.error_log.append", _append_attrs(entry)):
            await self._ensure_schema()
            query = text("""
                INSERT INTO calmigrate_error_log
                    (context, source_id, label, message, logged_at)
                VALUES (:context, :source_id, :label, :message, :logged_at)
                RETURNING id
            """)
            params = {
                "context": entry.context,
                "source_id": entry.source_id,
                "label": entry.label,
                "message": entry.message,
                "logged_at": entry.logged_at,
            }
            async with self._writing() as conn:
                result = await conn.execute(query, params)
                row = result.fetchone()
            return dataclasses.replace(entry, id=int(row[0]) if row else None)

    async def list_entries(self, context: str | None = None) -> list[ErrorEntry]:
        with self._tracer.span(
            "calmigrate.error_log.list_entries", {"error_log.context": context or ""}
        ):
            await self._ensure_schema()
            where = "WHERE context = :context" if context is not None else ""
            params = {"context": context} if context is not None else {}
            query = text(f"""
                SELECT id, context, source_id, label, message, logged_at
                FROM calmigrate_error_log
                {where}
                ORDER BY id
            """)
            async with self._reading() as conn:
                result = await conn.execute(query, params)
                rows = result.fetchall()
            return [
                ErrorEntry(
                    id=row[0],
                    context=row[1],
                    source_id=row[2],
                    label=row[3],
                    message=row[4],
                    logged_at=row[5],
                )
                for row in rows
            ]

    async def count(self, context: str | None = None) -> int:
        with self._tracer.span(
            "calmigrate.error_log.count", {"error_log.context": context or ""}
        ):
            await self._ensure_schema()
            where = " WHERE context = :context" if context is not None else ""
            params = {"context": context} if context is not None else {}
            query = text(f"SELECT COUNT(*) FROM calmigrate_error_log{where}")
            async with self._reading() as conn:
                result = await conn.execute(query, params)
                row = result.fetchone()
            return int(row[0]) if row else 0

    async def clear(self) -> None:
        with self._tracer.span("calmigrate.error_log.clear", {}):
            await self._ensure_schema()
            async with self._writing() as conn:
                await conn.execute(text("DELETE FROM calmigrate_error_log"))


class InMemoryErrorLogRepository:
    """
    In-memory implementation of the error log for testing.

    Example:
        >>> log = InMemoryErrorLogRepository()
        >>> entry = await log.append(ErrorEntry("events", 7, "Gala", "venue missing"))
        >>> entry.id
        1
    """

    def __init__(
        self,
        tracer: Tracer | None = None,
        enable_tracing: bool = True,
    ) -> None:
        self._tracer = tracer or create_tracer(__name__, enable_tracing)
        self._entries: list[ErrorEntry] = []
        self._next_id = 1
        self._lock: asyncio.Lock = asyncio.Lock()

    async def append(self, entry: ErrorEntry) -> ErrorEntry:
        with self._tracer.span("calmigrate.error_log.append", _append_attrs(entry)):
            async with self._lock:
                stored = dataclasses.replace(entry, id=self._next_id)
                self._next_id += 1
                self._entries.append(stored)
                return stored

    async def list_entries(self, context: str | None = None) -> list[ErrorEntry]:
        with self._tracer.span(
            "calmigrate.error_log.list_entries", {"error_log.context": context or ""}
        ):
            async with self._lock:
                if context is None:
                    return list(self._entries)
                return [entry for entry in self._entries if entry.context == context]

    async def count(self, context: str | None = None) -> int:
        return len(await self.list_entries(context))

    async def clear(self) -> None:
        with self._tracer.span("calmigrate.error_log.clear", {}):
            async with self._lock:
                self._entries.clear()


class SQLiteErrorLogRepository:
    """
    SQLite implementation of the error log.

    SQLite-specific adaptations:
    - Timestamps stored as TEXT in ISO 8601 format
    - id assigned by AUTOINCREMENT and read back from the cursor
    """

    def __init__(
        self,
        connection: "aiosqlite.Connection",
        tracer: Tracer | None = None,
        enable_tracing: bool = True,
    ) -> None:
        """
        Initialize the error log repository.

        Args:
            connection: aiosqlite database connection
            tracer: Optional tracer for tracing (if not provided, one will be created)
            enable_tracing: Whether to enable OpenTelemetry tracing (default True)
        """
        self._tracer = tracer or create_tracer(__name__, enable_tracing)
        self._connection = connection
        self._ready = False

    async def _ensure_schema(self) -> None:
        if self._ready:
            return
        for statement in split_statements(get_schema("error_log", "sqlite")):
            await self._connection.execute(statement)
        await self._connection.commit()
        self._ready = True

    async def append(self, entry: ErrorEntry) -> ErrorEntry:
        with self._tracer.span("calmigrate.error_log.append", _append_attrs(entry)):
            await self._ensure_schema()
            cursor = await self._connection.execute(
                """
                INSERT INTO calmigrate_error_log
                    (context, source_id, label, message, logged_at)
                VALUES (?, ?, ?, ?, ?)
                """,
                (
                    entry.context,
                    entry.source_id,
                    entry.label,
                    entry.message,
                    entry.logged_at.astimezone(UTC).isoformat(),
                ),
            )
            await self._connection.commit()
            return dataclasses.replace(entry, id=cursor.lastrowid)

    async def list_entries(self, context: str | None = None) -> list[ErrorEntry]:
        with self._tracer.span(
            "calmigrate.error_log.list_entries", {"error_log.context": context or ""}
        ):
            await self._ensure_schema()
            if context is None:
                cursor = await self._connection.execute(
                    """
                    SELECT id, context, source_id, label, message, logged_at
                    FROM calmigrate_error_log
                    ORDER BY id
                    """
                )
            else:
                cursor = await self._connection.execute(
                    """
                    SELECT id, context, source_id, label, message, logged_at
                    FROM calmigrate_error_log
                    WHERE context = ?
                    ORDER BY id
                    """,
                    (context,),
                )
            rows = await cursor.fetchall()
            return [
                ErrorEntry(
                    id=row[0],
                    context=row[1],
                    source_id=row[2],
                    label=row[3],
                    message=row[4],
                    logged_at=datetime.fromisoformat(row[5]),
                )
                for row in rows
            ]

    async def count(self, context: str | None = None) -> int:
        with self._tracer.span(
            "calmigrate.error_log.count", {"error_log.context": context or ""}
        ):
            await self._ensure_schema()
            if context is None:
                cursor = await self._connection.execute("SELECT COUNT(*) FROM calmigrate_error_log")
            else:
                cursor = await self._connection.execute(
                    "SELECT COUNT(*) FROM calmigrate_error_log WHERE context = ?",
                    (context,),
                )
            row = await cursor.fetchone()
            return int(row[0]) if row else 0

    async def clear(self) -> None:
        with self._tracer.span("calmigrate.error_log.clear", {}):
            await self._ensure_schema()
            await self._connection.execute("DELETE FROM calmigrate_error_log")
            await self._connection.commit()


__all__ = [
    "ErrorLogRepository",
    "PostgreSQLErrorLogRepository",
    "InMemoryErrorLogRepository",
    "SQLiteErrorLogRepository",
]
