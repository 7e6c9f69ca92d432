"""
Tracking repository mapping source rows to migrated target rows.

The tracking store is the idempotency signal of the migration: a source row
is imported only if it has no tracking record. Each entity kind has its own
table (``calmigrate_tracking_<kind>``) with a unique source_id, which turns
``claim()`` into an atomic test-and-set:

1. claim()       insert a placeholder before the row is transformed
2. confirm()     record the target ID once the target write succeeded
3. mark_skipped() leave a terminal marker when the row cannot be imported

Claims that are never confirmed (the call crashed in between) become stale
after a configurable age and are handled by the owning stage's claim policy.

Tables are created lazily on first use and dropped once the run completes.
"""

import asyncio
import dataclasses
from collections.abc import Iterable
from datetime import UTC, datetime
from typing import TYPE_CHECKING, Any, Protocol, runtime_checkable

from sqlalchemy import text
from sqlalchemy.ext.asyncio import AsyncConnection, AsyncEngine

from calmigrate.exceptions import TrackingError
from calmigrate.migrations import get_schema, get_tracking_table_name, split_statements
from calmigrate.models import Stage, TrackingRecord
from calmigrate.observability import Tracer, create_tracer
from calmigrate.observability.attributes import (
    ATTR_DB_TABLE,
    ATTR_MIGRATION_STAGE,
    ATTR_SOURCE_ID,
    ATTR_TARGET_ID,
)
from calmigrate.repositories._postgresql import PostgreSQLStore

if TYPE_CHECKING:
    import aiosqlite

_COLUMNS = (
    "source_id, source_parent_id, target_id, migrated, skipped, "
    "claimed_at, confirmed_at, message"
)

# SQLite's default limit on bound parameters is 999
_SQLITE_IN_CHUNK = 500


@runtime_checkable
class TrackingRepository(Protocol):
    """
    Protocol for tracking repositories.

    All methods take the entity kind first; implementations keep one table
    (or mapping) per kind.
    """

    async def claim(self, kind: Stage, source_id: int) -> bool:
        """
        Insert a claim placeholder for a source row.

        Never raises on conflict.

        Args:
            kind: Entity kind
            source_id: Source-native identifier

        Returns:
            True if this call created the claim, False if a record of any
            state already existed
        """
        ...

    async def confirm(
        self,
        kind: Stage,
        source_id: int,
        target_id: int,
        source_parent_id: int | None = None,
    ) -> None:
        """
        Mark a claimed row as migrated.

        Args:
            kind: Entity kind
            source_id: Source-native identifier
            target_id: Identifier assigned by the target
            source_parent_id: Source parent identifier (categories)
        """
        ...

    async def mark_skipped(
        self,
        kind: Stage,
        source_id: int,
        message: str,
        migrated: bool = False,
    ) -> None:
        """
        Leave a terminal skip marker for a row.

        Args:
            kind: Entity kind
            source_id: Source-native identifier
            message: Why the row was skipped
            migrated: True when the row counts as handled (policy skip)
        """
        ...

    async def reclaim(self, kind: Stage, source_id: int, older_than: datetime) -> bool:
        """
        Take ownership of a stale claim by refreshing its claimed_at.

        Args:
            kind: Entity kind
            source_id: Source-native identifier
            older_than: The claim must have been made before this instant

        Returns:
            True if the claim was still unconfirmed and stale and is now owned
            by the caller
        """
        ...

    async def get(self, kind: Stage, source_id: int) -> TrackingRecord | None:
        """
        Get the tracking record of a row.

        Returns:
            TrackingRecord or None if the row was never claimed
        """
        ...

    async def get_target_id(self, kind: Stage, source_id: int) -> int | None:
        """
        Resolve a source ID to its target ID.

        Returns:
            The target ID of a migrated (not skipped) row, otherwise None
        """
        ...

    async def find_tracked_ids(self, kind: Stage, source_ids: Iterable[int]) -> set[int]:
        """
        Filter source IDs down to those that have a tracking record.

        Args:
            kind: Entity kind
            source_ids: Candidate source IDs

        Returns:
            The subset of source_ids with a record in any state
        """
        ...

    async def list_stale_claims(
        self,
        kind: Stage,
        older_than: datetime,
        limit: int = 100,
    ) -> list[TrackingRecord]:
        """
        List unconfirmed claims made before a given instant.

        Returns:
            Stale claims ordered by source ID
        """
        ...

    async def list_migrated(
        self,
        kind: Stage,
        limit: int = 500,
        offset: int = 0,
    ) -> list[TrackingRecord]:
        """
        Page through migrated (not skipped) records ordered by source ID.
        """
        ...

    async def count(self, kind: Stage, migrated_only: bool = False) -> int:
        """
        Count tracking records of a kind.

        Args:
            kind: Entity kind
            migrated_only: Count only migrated, not skipped records

        Returns:
            Number of records
        """
        ...

    async def drop(self, kind: Stage) -> None:
        """Drop the tracking table of one kind."""
        ...

    async def drop_all(self) -> None:
        """Drop the tracking tables of every kind."""
        ...


def _now() -> datetime:
    return datetime.now(UTC)


def _table_name(kind: Stage) -> str:
    try:
        return get_tracking_table_name(kind)
    except ValueError as e:
        raise TrackingError(str(e)) from e


def _span_attrs(kind: Stage, source_id: int | None = None) -> dict[str, Any]:
    attrs: dict[str, Any] = {
        ATTR_MIGRATION_STAGE: kind.value,
        ATTR_DB_TABLE: _table_name(kind),
    }
    if source_id is not None:
        attrs[ATTR_SOURCE_ID] = source_id
    return attrs


class PostgreSQLTrackingRepository(PostgreSQLStore):
    """
    PostgreSQL implementation of the tracking repository.

    Example:
        >>> engine = create_async_engine("postgresql+asyncpg://...")
        >>> repo = PostgreSQLTrackingRepository(engine)
        >>> if await repo.claim(Stage.EVENTS, 42):
        ...     await repo.confirm(Stage.EVENTS, 42, target_id=7)
    """

    def __init__(
        self,
        conn: AsyncConnection | AsyncEngine,
        tracer: Tracer | None = None,
        enable_tracing: bool = True,
    ) -> None:
        """
        Initialize the tracking repository.

        Args:
            conn: Database connection or engine
            tracer: Optional tracer for tracing (if not provided, one will be created)
            enable_tracing: Whether to enable OpenTelemetry tracing (default True)
        """
        self._tracer = tracer or create_tracer(__name__, enable_tracing)
        super().__init__(conn)

    async def _ensure_table(self, kind: Stage) -> str:
        table = _table_name(kind)
        await self._create_once(table, get_schema("tracking", "postgresql", kind))
        return table

    async def claim(self, kind: Stage, source_id: int) -> bool:
        with self._tracer.span("calmigrate.tracking.claim", _span_attrs(kind, source_id)):
            table = await self._ensure_table(kind)
            query = text(f"""
                INSERT INTO {table} (source_id, claimed_at)
                VALUES (:source_id, :now)
                ON CONFLICT (source_id) DO NOTHING
                RETURNING id
            """)
            async with self._writing() as conn:
                result = await conn.execute(query, {"source_id": source_id, "now": _now()})
                return result.fetchone() is not None

    async def confirm(
        self,
        kind: Stage,
        source_id: int,
        target_id: int,
        source_parent_id: int | None = None,
    ) -> None:
        attrs = _span_attrs(kind, source_id)
        attrs[ATTR_TARGET_ID] = target_id
        with self._tracer.span("calmigrate.tracking.confirm", attrs):
            table = await self._ensure_table(kind)
            now = _now()
            query = text(f"""
                INSERT INTO {table}
                    (source_id, source_parent_id, target_id, migrated, skipped,
                     claimed_at, confirmed_at)
                VALUES (:source_id, :source_parent_id, :target_id, TRUE, FALSE, :now, :now)
                ON CONFLICT (source_id) DO UPDATE
                SET source_parent_id = EXCLUDED.source_parent_id,
                    target_id = EXCLUDED.target_id,
                    migrated = TRUE,
                    skipped = FALSE,
                    confirmed_at = EXCLUDED.confirmed_at,
                    message = NULL
            """)
            params = {
                "source_id": source_id,
                "source_parent_id": source_parent_id,
                "target_id": target_id,
                "now": now,
            }
            async with self._writing() as conn:
                await conn.execute(query, params)

    async def mark_skipped(
        self,
        kind: Stage,
        source_id: int,
        message: str,
        migrated: bool = False,
    ) -> None:
        with self._tracer.span("calmigrate.tracking.mark_skipped", _span_attrs(kind, source_id)):
            table = await self._ensure_table(kind)
            query = text(f"""
                INSERT INTO {table}
                    (source_id, migrated, skipped, claimed_at, confirmed_at, message)
                VALUES (:source_id, :migrated, TRUE, :now, :now, :message)
                ON CONFLICT (source_id) DO UPDATE
                SET migrated = EXCLUDED.migrated,
                    skipped = TRUE,
                    confirmed_at = EXCLUDED.confirmed_at,
                    message = EXCLUDED.message
            """)
            params = {
                "source_id": source_id,
                "migrated": migrated,
                "now": _now(),
                "message": message,
            }
            async with self._writing() as conn:
                await conn.execute(query, params)

    async def reclaim(self, kind: Stage, source_id: int, older_than: datetime) -> bool:
        with self._tracer.span("calmigrate.tracking.reclaim", _span_attrs(kind, source_id)):
            table = await self._ensure_table(kind)
            query = text(f"""
                UPDATE {table}
                SET claimed_at = :now
                WHERE source_id = :source_id
                  AND migrated = FALSE
                  AND skipped = FALSE
                  AND claimed_at < :older_than
            """)
            params = {"source_id": source_id, "now": _now(), "older_than": older_than}
            async with self._writing() as conn:
                result = await conn.execute(query, params)
                return bool(result.rowcount == 1)

    async def get(self, kind: Stage, source_id: int) -> TrackingRecord | None:
        with self._tracer.span("calmigrate.tracking.get", _span_attrs(kind, source_id)):
            table = await self._ensure_table(kind)
            query = text(f"SELECT {_COLUMNS} FROM {table} WHERE source_id = :source_id")
            async with self._reading() as conn:
                result = await conn.execute(query, {"source_id": source_id})
                row = result.fetchone()
            return self._row_to_record(kind, row) if row else None

    async def get_target_id(self, kind: Stage, source_id: int) -> int | None:
        with self._tracer.span("calmigrate.tracking.get_target_id", _span_attrs(kind, source_id)):
            table = await self._ensure_table(kind)
            query = text(f"""
                SELECT target_id FROM {table}
                WHERE source_id = :source_id AND migrated = TRUE AND skipped = FALSE
            """)
            async with self._reading() as conn:
                result = await conn.execute(query, {"source_id": source_id})
                row = result.fetchone()
            return int(row[0]) if row and row[0] is not None else None

    async def find_tracked_ids(self, kind: Stage, source_ids: Iterable[int]) -> set[int]:
        ids = list(source_ids)
        with self._tracer.span("calmigrate.tracking.find_tracked_ids", _span_attrs(kind)):
            if not ids:
                return set()
            table = await self._ensure_table(kind)
            query = text(f"SELECT source_id FROM {table} WHERE source_id = ANY(:ids)")
            async with self._reading() as conn:
                result = await conn.execute(query, {"ids": ids})
                return {int(row[0]) for row in result.fetchall()}

    async def list_stale_claims(
        self,
        kind: Stage,
        older_than: datetime,
        limit: int = 100,
    ) -> list[TrackingRecord]:
        with self._tracer.span("calmigrate.tracking.list_stale_claims", _span_attrs(kind)):
            table = await self._ensure_table(kind)
            query = text(f"""
                SELECT {_COLUMNS} FROM {table}
                WHERE migrated = FALSE AND skipped = FALSE AND claimed_at < :older_than
                ORDER BY source_id
                LIMIT :limit
            """)
            async with self._reading() as conn:
                result = await conn.execute(query, {"older_than": older_than, "limit": limit})
                rows = result.fetchall()
            return [self._row_to_record(kind, row) for row in rows]

    async def list_migrated(
        self,
        kind: Stage,
        limit: int = 500,
        offset: int = 0,
    ) -> list[TrackingRecord]:
        with self._tracer.span("calmigrate.tracking.list_migrated", _span_attrs(kind)):
            table = await self._ensure_table(kind)
            query = text(f"""
                SELECT {_COLUMNS} FROM {table}
                WHERE migrated = TRUE AND skipped = FALSE
                ORDER BY source_id
                LIMIT :limit OFFSET :offset
            """)
            async with self._reading() as conn:
                result = await conn.execute(query, {"limit": limit, "offset": offset})
                rows = result.fetchall()
            return [self._row_to_record(kind, row) for row in rows]

    async def count(self, kind: Stage, migrated_only: bool = False) -> int:
        with self._tracer.span("calmigrate.tracking.count", _span_attrs(kind)):
            table = await self._ensure_table(kind)
            where = " WHERE migrated = TRUE AND skipped = FALSE" if migrated_only else ""
            query = text(f"SELECT COUNT(*) FROM {table}{where}")
            async with self._reading() as conn:
                result = await conn.execute(query)
                row = result.fetchone()
            return int(row[0]) if row else 0

    async def drop(self, kind: Stage) -> None:
        with self._tracer.span("calmigrate.tracking.drop", _span_attrs(kind)):
            await self._drop_table(_table_name(kind))

    async def drop_all(self) -> None:
        for kind in Stage.ordered():
            await self.drop(kind)

    @staticmethod
    def _row_to_record(kind: Stage, row: Any) -> TrackingRecord:
        return TrackingRecord(
            kind=kind,
            source_id=int(row[0]),
            source_parent_id=row[1],
            target_id=row[2],
            migrated=bool(row[3]),
            skipped=bool(row[4]),
            claimed_at=row[5],
            confirmed_at=row[6],
            message=row[7],
        )


class InMemoryTrackingRepository:
    """
    In-memory implementation of the tracking repository for testing.

    Example:
        >>> repo = InMemoryTrackingRepository()
        >>> await repo.claim(Stage.VENUES, 1)
        True
        >>> await repo.claim(Stage.VENUES, 1)
        False
    """

    def __init__(
        self,
        tracer: Tracer | None = None,
        enable_tracing: bool = True,
    ) -> None:
        """
        Initialize an empty in-memory tracking repository.

        Args:
            tracer: Optional tracer for tracing (if not provided, one will be created)
            enable_tracing: Whether to enable OpenTelemetry tracing (default True)
        """
        self._tracer = tracer or create_tracer(__name__, enable_tracing)
        self._records: dict[Stage, dict[int, TrackingRecord]] = {}
        self._lock: asyncio.Lock = asyncio.Lock()

    def _table(self, kind: Stage) -> dict[int, TrackingRecord]:
        _table_name(kind)
        return self._records.setdefault(kind, {})

    async def claim(self, kind: Stage, source_id: int) -> bool:
        with self._tracer.span("calmigrate.tracking.claim", _span_attrs(kind, source_id)):
            async with self._lock:
                table = self._table(kind)
                if source_id in table:
                    return False
                table[source_id] = TrackingRecord(
                    kind=kind, source_id=source_id, claimed_at=_now()
                )
                return True

    async def confirm(
        self,
        kind: Stage,
        source_id: int,
        target_id: int,
        source_parent_id: int | None = None,
    ) -> None:
        attrs = _span_attrs(kind, source_id)
        attrs[ATTR_TARGET_ID] = target_id
        with self._tracer.span("calmigrate.tracking.confirm", attrs):
            async with self._lock:
                table = self._table(kind)
                now = _now()
                existing = table.get(source_id)
                table[source_id] = TrackingRecord(
                    kind=kind,
                    source_id=source_id,
                    source_parent_id=source_parent_id,
                    target_id=target_id,
                    migrated=True,
                    skipped=False,
                    claimed_at=existing.claimed_at if existing else now,
                    confirmed_at=now,
                )

    async def mark_skipped(
        self,
        kind: Stage,
        source_id: int,
        message: str,
        migrated: bool = False,
    ) -> None:
        with self._tracer.span("calmigrate.tracking.mark_skipped", _span_attrs(kind, source_id)):
            async with self._lock:
                table = self._table(kind)
                now = _now()
                existing = table.get(source_id) or TrackingRecord(
                    kind=kind, source_id=source_id, claimed_at=now
                )
                table[source_id] = dataclasses.replace(
                    existing,
                    migrated=migrated,
                    skipped=True,
                    confirmed_at=now,
                    message=message,
                )

    async def reclaim(self, kind: Stage, source_id: int, older_than: datetime) -> bool:
        with self._tracer.span("calmigrate.tracking.reclaim", _span_attrs(kind, source_id)):
            async with self._lock:
                table = self._table(kind)
                record = table.get(source_id)
                if record is None or not record.is_claimed:
                    return False
                if record.claimed_at is not None and record.claimed_at >= older_than:
                    return False
                table[source_id] = dataclasses.replace(record, claimed_at=_now())
                return True

    async def get(self, kind: Stage, source_id: int) -> TrackingRecord | None:
        with self._tracer.span("calmigrate.tracking.get", _span_attrs(kind, source_id)):
            async with self._lock:
                return self._table(kind).get(source_id)

    async def get_target_id(self, kind: Stage, source_id: int) -> int | None:
        with self._tracer.span("calmigrate.tracking.get_target_id", _span_attrs(kind, source_id)):
            async with self._lock:
                record = self._table(kind).get(source_id)
                return record.target_id if record and record.is_resolved else None

    async def find_tracked_ids(self, kind: Stage, source_ids: Iterable[int]) -> set[int]:
        with self._tracer.span("calmigrate.tracking.find_tracked_ids", _span_attrs(kind)):
            async with self._lock:
                table = self._table(kind)
                return {source_id for source_id in source_ids if source_id in table}

    async def list_stale_claims(
        self,
        kind: Stage,
        older_than: datetime,
        limit: int = 100,
    ) -> list[TrackingRecord]:
        with self._tracer.span("calmigrate.tracking.list_stale_claims", _span_attrs(kind)):
            async with self._lock:
                stale = [
                    record
                    for record in self._table(kind).values()
                    if record.is_claimed
                    and record.claimed_at is not None
                    and record.claimed_at < older_than
                ]
            stale.sort(key=lambda record: record.source_id)
            return stale[:limit]

    async def list_migrated(
        self,
        kind: Stage,
        limit: int = 500,
        offset: int = 0,
    ) -> list[TrackingRecord]:
        with self._tracer.span("calmigrate.tracking.list_migrated", _span_attrs(kind)):
            async with self._lock:
                migrated = [r for r in self._table(kind).values() if r.migrated and not r.skipped]
            migrated.sort(key=lambda record: record.source_id)
            return migrated[offset : offset + limit]

    async def count(self, kind: Stage, migrated_only: bool = False) -> int:
        with self._tracer.span("calmigrate.tracking.count", _span_attrs(kind)):
            async with self._lock:
                records = self._table(kind).values()
                if migrated_only:
                    return sum(1 for r in records if r.migrated and not r.skipped)
                return len(records)

    async def drop(self, kind: Stage) -> None:
        with self._tracer.span("calmigrate.tracking.drop", _span_attrs(kind)):
            async with self._lock:
                self._records.pop(kind, None)

    async def drop_all(self) -> None:
        for kind in Stage.ordered():
            await self.drop(kind)

    async def clear(self) -> None:
        """Clear all tracking records. Useful for test setup/teardown."""
        async with self._lock:
            self._records.clear()


class SQLiteTrackingRepository:
    """
    SQLite implementation of the tracking repository.

    SQLite-specific adaptations:
    - Booleans stored as INTEGER (0/1)
    - Timestamps stored as TEXT in ISO 8601 format (UTC, fixed precision so
      that string comparison orders them correctly)
    - Uses INSERT ... ON CONFLICT (SQLite 3.24+)

    Example:
        >>> async with aiosqlite.connect("migration.db") as db:
        ...     repo = SQLiteTrackingRepository(db)
        ...     await repo.claim(Stage.TAGS, 3)
    """

    def __init__(
        self,
        connection: "aiosqlite.Connection",
        tracer: Tracer | None = None,
        enable_tracing: bool = True,
    ) -> None:
        """
        Initialize the tracking repository.

        Args:
            connection: aiosqlite database connection
            tracer: Optional tracer for tracing (if not provided, one will be created)
            enable_tracing: Whether to enable OpenTelemetry tracing (default True)
        """
        self._tracer = tracer or create_tracer(__name__, enable_tracing)
        self._connection = connection
        self._ready: set[Stage] = set()

    @staticmethod
    def _timestamp(value: datetime) -> str:
        return value.astimezone(UTC).isoformat(timespec="microseconds")

    async def _ensure_table(self, kind: Stage) -> str:
        table = _table_name(kind)
        if kind in self._ready:
            return table
        for statement in split_statements(get_schema("tracking", "sqlite", kind)):
            await self._connection.execute(statement)
        await self._connection.commit()
        self._ready.add(kind)
        return table

    async def claim(self, kind: Stage, source_id: int) -> bool:
        with self._tracer.span("calmigrate.tracking.claim", _span_attrs(kind, source_id)):
            table = await self._ensure_table(kind)
            cursor = await self._connection.execute(
                f"""
                INSERT INTO {table} (source_id, claimed_at)
                VALUES (?, ?)
                ON CONFLICT (source_id) DO NOTHING
                """,
                (source_id, self._timestamp(_now())),
            )
            await self._connection.commit()
            return cursor.rowcount == 1

    async def confirm(
        self,
        kind: Stage,
        source_id: int,
        target_id: int,
        source_parent_id: int | None = None,
    ) -> None:
        attrs = _span_attrs(kind, source_id)
        attrs[ATTR_TARGET_ID] = target_id
        with self._tracer.span("calmigrate.tracking.confirm", attrs):
            table = await self._ensure_table(kind)
            now = self._timestamp(_now())
            await self._connection.execute(
                f"""
                INSERT INTO {table}
                    (source_id, source_parent_id, target_id, migrated, skipped,
                     claimed_at, confirmed_at)
                VALUES (?, ?, ?, 1, 0, ?, ?)
                ON CONFLICT (source_id) DO UPDATE
                SET source_parent_id = excluded.source_parent_id,
                    target_id = excluded.target_id,
                    migrated = 1,
                    skipped = 0,
                    confirmed_at = excluded.confirmed_at,
                    message = NULL
                """,
                (source_id, source_parent_id, target_id, now, now),
            )
            await self._connection.commit()

    async def mark_skipped(
        self,
        kind: Stage,
        source_id: int,
        message: str,
        migrated: bool = False,
    ) -> None:
        with self._tracer.span("calmigrate.tracking.mark_skipped", _span_attrs(kind, source_id)):
            table = await self._ensure_table(kind)
            now = self._timestamp(_now())
            await self._connection.execute(
                f"""
                INSERT INTO {table}
                    (source_id, migrated, skipped, claimed_at, confirmed_at, message)
                VALUES (?, ?, 1, ?, ?, ?)
                ON CONFLICT (source_id) DO UPDATE
                SET migrated = excluded.migrated,
                    skipped = 1,
                    confirmed_at = excluded.confirmed_at,
                    message = excluded.message
                """,
                (source_id, 1 if migrated else 0, now, now, message),
            )
            await self._connection.commit()

    async def reclaim(self, kind: Stage, source_id: int, older_than: datetime) -> bool:
        with self._tracer.span("calmigrate.tracking.reclaim", _span_attrs(kind, source_id)):
            table = await self._ensure_table(kind)
            cursor = await self._connection.execute(
                f"""
                UPDATE {table}
                SET claimed_at = ?
                WHERE source_id = ?
                  AND migrated = 0
                  AND skipped = 0
                  AND claimed_at < ?
                """,
                (self._timestamp(_now()), source_id, self._timestamp(older_than)),
            )
            await self._connection.commit()
            return cursor.rowcount == 1

    async def get(self, kind: Stage, source_id: int) -> TrackingRecord | None:
        with self._tracer.span("calmigrate.tracking.get", _span_attrs(kind, source_id)):
            table = await self._ensure_table(kind)
            cursor = await self._connection.execute(
                f"SELECT {_COLUMNS} FROM {table} WHERE source_id = ?",
                (source_id,),
            )
            row = await cursor.fetchone()
            return self._row_to_record(kind, row) if row else None

    async def get_target_id(self, kind: Stage, source_id: int) -> int | None:
        with self._tracer.span("calmigrate.tracking.get_target_id", _span_attrs(kind, source_id)):
            table = await self._ensure_table(kind)
            cursor = await self._connection.execute(
                f"""
                SELECT target_id FROM {table}
                WHERE source_id = ? AND migrated = 1 AND skipped = 0
                """,
                (source_id,),
            )
            row = await cursor.fetchone()
            return int(row[0]) if row and row[0] is not None else None

    async def find_tracked_ids(self, kind: Stage, source_ids: Iterable[int]) -> set[int]:
        ids = list(source_ids)
        with self._tracer.span("calmigrate.tracking.find_tracked_ids", _span_attrs(kind)):
            if not ids:
                return set()
            table = await self._ensure_table(kind)
            found: set[int] = set()
            for start in range(0, len(ids), _SQLITE_IN_CHUNK):
                chunk = ids[start : start + _SQLITE_IN_CHUNK]
                placeholders = ", ".join("?" for _ in chunk)
                cursor = await self._connection.execute(
                    f"SELECT source_id FROM {table} WHERE source_id IN ({placeholders})",
                    tuple(chunk),
                )
                rows = await cursor.fetchall()
                found.update(int(row[0]) for row in rows)
            return found

    async def list_stale_claims(
        self,
        kind: Stage,
        older_than: datetime,
        limit: int = 100,
    ) -> list[TrackingRecord]:
        with self._tracer.span("calmigrate.tracking.list_stale_claims", _span_attrs(kind)):
            table = await self._ensure_table(kind)
            cursor = await self._connection.execute(
                f"""
                SELECT {_COLUMNS} FROM {table}
                WHERE migrated = 0 AND skipped = 0 AND claimed_at < ?
                ORDER BY source_id
                LIMIT ?
                """,
                (self._timestamp(older_than), limit),
            )
            rows = await cursor.fetchall()
            return [self._row_to_record(kind, row) for row in rows]

    async def list_migrated(
        self,
        kind: Stage,
        limit: int = 500,
        offset: int = 0,
    ) -> list[TrackingRecord]:
        with self._tracer.span("calmigrate.tracking.list_migrated", _span_attrs(kind)):
            table = await self._ensure_table(kind)
            cursor = await self._connection.execute(
                f"""
                SELECT {_COLUMNS} FROM {table}
                WHERE migrated = 1 AND skipped = 0
                ORDER BY source_id
                LIMIT ? OFFSET ?
                """,
                (limit, offset),
            )
            rows = await cursor.fetchall()
            return [self._row_to_record(kind, row) for row in rows]

    async def count(self, kind: Stage, migrated_only: bool = False) -> int:
        with self._tracer.span("calmigrate.tracking.count", _span_attrs(kind)):
            table = await self._ensure_table(kind)
            where = " WHERE migrated = 1 AND skipped = 0" if migrated_only else ""
            cursor = await self._connection.execute(f"SELECT COUNT(*) FROM {table}{where}")
            row = await cursor.fetchone()
            return int(row[0]) if row else 0

    async def drop(self, kind: Stage) -> None:
        with self._tracer.span("calmigrate.tracking.drop", _span_attrs(kind)):
            table = _table_name(kind)
            await self._connection.execute(f"DROP TABLE IF EXISTS {table}")
            await self._connection.commit()
            self._ready.discard(kind)

    async def drop_all(self) -> None:
        for kind in Stage.ordered():
            await self.drop(kind)

    @staticmethod
    def _row_to_record(kind: Stage, row: Any) -> TrackingRecord:
        return TrackingRecord(
            kind=kind,
            source_id=int(row[0]),
            source_parent_id=row[1],
            target_id=row[2],
            migrated=bool(row[3]),
            skipped=bool(row[4]),
            claimed_at=datetime.fromisoformat(row[5]) if row[5] else None,
            confirmed_at=datetime.fromisoformat(row[6]) if row[6] else None,
            message=row[7],
        )


__all__ = [
    "TrackingRepository",
    "PostgreSQLTrackingRepository",
    "InMemoryTrackingRepository",
    "SQLiteTrackingRepository",
]
