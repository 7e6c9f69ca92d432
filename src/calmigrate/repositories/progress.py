"""
Progress repository for the durable migration progress record.

The orchestrator loads the progress record at the start of every call and
saves it before returning, so the record always reflects the last completed
call. It is stored as a single JSON document per key.
"""

import asyncio
import logging
from datetime import UTC, datetime
from typing import TYPE_CHECKING, Any, Protocol, runtime_checkable

from sqlalchemy import text
from sqlalchemy.ext.asyncio import AsyncConnection, AsyncEngine

from calmigrate.exceptions import ProgressError
from calmigrate.migrations import get_schema, split_statements
from calmigrate.models import ProgressState
from calmigrate.observability import Tracer, create_tracer
from calmigrate.observability.attributes import ATTR_MIGRATION_STAGE, ATTR_RUN_ID
from calmigrate.repositories._postgresql import PostgreSQLStore
from calmigrate.serialization import json_dumps, json_loads

if TYPE_CHECKING:
    import aiosqlite

logger = logging.getLogger(__name__)

DEFAULT_PROGRESS_KEY = "default"


@runtime_checkable
class ProgressRepository(Protocol):
    """
    Protocol for progress repositories.

    A progress repository is a tiny durable key/value store holding one
    ProgressState per key.
    """

    async def load(self, key: str = DEFAULT_PROGRESS_KEY) -> ProgressState | None:
        """
        Load the progress record.

        Args:
            key: Record key

        Returns:
            ProgressState, or None if nothing was saved yet

        Raises:
            ProgressError: If the stored record cannot be decoded
        """
        ...

    async def save(self, state: ProgressState, key: str = DEFAULT_PROGRESS_KEY) -> None:
        """
        Save (upsert) the progress record.

        Args:
            state: Progress to persist
            key: Record key
        """
        ...

    async def clear(self, key: str = DEFAULT_PROGRESS_KEY) -> None:
        """Delete the progress record."""
        ...


def _decode(key: str, raw: Any) -> ProgressState:
    try:
        data = json_loads(raw) if isinstance(raw, str | bytes) else raw
        return ProgressState.from_dict(data)
    except (KeyError, TypeError, ValueError) as e:
        raise ProgressError(f"Corrupt progress record '{key}': {e}") from e


def _save_attrs(state: ProgressState) -> dict[str, Any]:
    return {ATTR_RUN_ID: str(state.run_id), ATTR_MIGRATION_STAGE: state.stage.value}


class PostgreSQLProgressRepository(PostgreSQLStore):
    """
    PostgreSQL implementation of the progress repository.

    Stores the record in the `calmigrate_progress` table as JSONB.
    """

    def __init__(
        self,
        conn: AsyncConnection | AsyncEngine,
        tracer: Tracer | None = None,
        enable_tracing: bool = True,
    ) -> None:
        """
        Initialize the progress repository.

        Args:
            conn: Database connection or engine
            tracer: Optional tracer for tracing (if not provided, one will be created)
            enable_tracing: Whether to enable OpenTelemetry tracing (default True)
        """
        self._tracer = tracer or create_tracer(__name__, enable_tracing)
        super().__init__(conn)

    async def _ensure_schema(self) -> None:
        await self._create_once("calmigrate_progress", get_schema("progress", "postgresql"))

    async def load(self, key: str = DEFAULT_PROGRESS_KEY) -> ProgressState | None:
        with self._tracer.span("calmigrate.progress.load", {"progress.key": key}):
            await self._ensure_schema()
            query = text("SELECT state FROM calmigrate_progress WHERE key = :key")
            async with self._reading() as conn:
                result = await conn.execute(query, {"key": key})
                row = result.fetchone()
            return _decode(key, row[0]) if row else None

    async def save(self, state: ProgressState, key: str = DEFAULT_PROGRESS_KEY) -> None:
        with self._tracer.span("calmigrate.progress.save", _save_attrs(state)):
            await self._ensure_schema()
            query = text("""
                INSERT INTO calmigrate_progress (key, state, updated_at)
                VALUES (:key, CAST(:state AS JSONB), :now)
                ON CONFLICT (key) DO UPDATE
                SET state = EXCLUDED.state,
                    updated_at = EXCLUDED.updated_at
            """)
            params = {"key": key, "state": json_dumps(state.to_dict()), "now": datetime.now(UTC)}
            async with self._writing() as conn:
                await conn.execute(query, params)

    async def clear(self, key: str = DEFAULT_PROGRESS_KEY) -> None:
        with self._tracer.span("calmigrate.progress.clear", {"progress.key": key}):
            await self._ensure_schema()
            query = text("DELETE FROM calmigrate_progress WHERE key = :key")
            async with self._writing() as conn:
                await conn.execute(query, {"key": key})


class InMemoryProgressRepository:
    """
    In-memory implementation of the progress repository for testing.

    Records are stored in their serialized form so that a loaded state never
    aliases the object that was saved.
    """

    def __init__(
        self,
        tracer: Tracer | None = None,
        enable_tracing: bool = True,
    ) -> None:
        self._tracer = tracer or create_tracer(__name__, enable_tracing)
        self._records: dict[str, str] = {}
        self._lock: asyncio.Lock = asyncio.Lock()

    async def load(self, key: str = DEFAULT_PROGRESS_KEY) -> ProgressState | None:
        with self._tracer.span("calmigrate.progress.load", {"progress.key": key}):
            async with self._lock:
                raw = self._records.get(key)
            return _decode(key, raw) if raw is not None else None

    async def save(self, state: ProgressState, key: str = DEFAULT_PROGRESS_KEY) -> None:
        with self._tracer.span("calmigrate.progress.save", _save_attrs(state)):
            async with self._lock:
                self._records[key] = json_dumps(state.to_dict())

    async def clear(self, key: str = DEFAULT_PROGRESS_KEY) -> None:
        with self._tracer.span("calmigrate.progress.clear", {"progress.key": key}):
            async with self._lock:
                self._records.pop(key, None)


class SQLiteProgressRepository:
    """
    SQLite implementation of the progress repository.

    The JSON document is stored as TEXT; the table is created on first use.

    Example:
        >>> async with aiosqlite.connect("migration.db") as db:
        ...     repo = SQLiteProgressRepository(db)
        ...     state = await repo.load()
    """

    def __init__(
        self,
        connection: "aiosqlite.Connection",
        tracer: Tracer | None = None,
        enable_tracing: bool = True,
    ) -> None:
        """
        Initialize the progress repository.

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
        for statement in split_statements(get_schema("progress", "sqlite")):
            await self._connection.execute(statement)
        await self._connection.commit()
        self._ready = True

    async def load(self, key: str = DEFAULT_PROGRESS_KEY) -> ProgressState | None:
        with self._tracer.span("calmigrate.progress.load", {"progress.key": key}):
            await self._ensure_schema()
            cursor = await self._connection.execute(
                "SELECT state FROM calmigrate_progress WHERE key = ?",
                (key,),
            )
            row = await cursor.fetchone()
            return _decode(key, row[0]) if row else None

    async def save(self, state: ProgressState, key: str = DEFAULT_PROGRESS_KEY) -> None:
        with self._tracer.span("calmigrate.progress.save", _save_attrs(state)):
            await self._ensure_schema()
            await self._connection.execute(
                """
                INSERT INTO calmigrate_progress (key, state, updated_at)
                VALUES (?, ?, ?)
                ON CONFLICT (key) DO UPDATE
                SET state = excluded.state,
                    updated_at = excluded.updated_at
                """,
                (key, json_dumps(state.to_dict()), datetime.now(UTC).isoformat()),
            )
            await self._connection.commit()
            logger.debug("Saved progress %s at stage %s", key, state.stage.value)

    async def clear(self, key: str = DEFAULT_PROGRESS_KEY) -> None:
        with self._tracer.span("calmigrate.progress.clear", {"progress.key": key}):
            await self._ensure_schema()
            await self._connection.execute(
                "DELETE FROM calmigrate_progress WHERE key = ?",
                (key,),
            )
            await self._connection.commit()


__all__ = [
    "DEFAULT_PROGRESS_KEY",
    "ProgressRepository",
    "PostgreSQLProgressRepository",
    "InMemoryProgressRepository",
    "SQLiteProgressRepository",
]
