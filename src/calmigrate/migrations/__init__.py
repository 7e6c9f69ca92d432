"""
Database schema support for calmigrate.

This module provides the SQL schema templates for the persistence tables
used by the migration engine.

Tables:
    - calmigrate_progress: Durable progress record (JSON document per key)
    - calmigrate_error_log: Append-only log of rows that failed to migrate
    - calmigrate_tracking_<kind>: One tracking table per entity kind,
      created lazily and dropped when the run completes

Supported backends:
    - postgresql (default)
    - sqlite

Usage:
    from calmigrate.migrations import get_schema, split_statements

    progress_sql = get_schema("progress", backend="sqlite")
    tracking_sql = get_schema("tracking", backend="sqlite", kind=Stage.EVENTS)

    for statement in split_statements(tracking_sql):
        await conn.execute(statement)
"""

from __future__ import annotations

from pathlib import Path
from typing import TYPE_CHECKING, Literal

if TYPE_CHECKING:
    from calmigrate.models import Stage

SchemaName = Literal["progress", "error_log", "tracking", "all"]

BackendName = Literal["postgresql", "sqlite"]

TRACKING_TABLE_PREFIX = "calmigrate_tracking_"

_TEMPLATES_DIR = Path(__file__).parent / "templates"

_STATIC_SCHEMAS: tuple[SchemaName, ...] = ("progress", "error_log")


def _get_backend_templates_dir(backend: BackendName) -> Path:
    if backend == "postgresql":
        return _TEMPLATES_DIR
    if backend == "sqlite":
        return _TEMPLATES_DIR / "sqlite"
    raise ValueError(f"Unknown backend '{backend}'. Available backends: postgresql, sqlite")


def get_tracking_table_name(kind: Stage) -> str:
    """
    Get the tracking table name for an entity kind.

    Args:
        kind: Working stage (entity kind)

    Returns:
        Table name, e.g. "calmigrate_tracking_events"

    Raises:
        ValueError: If kind is the terminal stage
    """
    if kind.is_terminal:
        raise ValueError("The complete stage has no tracking table")
    return f"{TRACKING_TABLE_PREFIX}{kind.value}"


def get_template_path(name: SchemaName, backend: BackendName = "postgresql") -> Path:
    """
    Get the path to a SQL template file.

    Args:
        name: The schema name (progress, error_log, tracking)
        backend: The database backend. Defaults to postgresql.

    Returns:
        Path to the SQL template file

    Raises:
        FileNotFoundError: If the template file doesn't exist
    """
    path = _get_backend_templates_dir(backend) / f"{name}.sql"
    if not path.exists():
        raise FileNotFoundError(f"Schema template not found: {path}")
    return path


def get_schema(
    name: SchemaName,
    backend: BackendName = "postgresql",
    kind: Stage | None = None,
) -> str:
    """
    Load a SQL schema template by name and backend.

    Args:
        name: The schema name. One of:
            - "progress": Progress record table
            - "error_log": Error log table
            - "tracking": Tracking table for ``kind`` (rendered)
            - "all": Progress and error log tables combined
        backend: The database backend ("postgresql" or "sqlite")
        kind: Entity kind, required for the tracking schema

    Returns:
        SQL schema definition as a string

    Raises:
        FileNotFoundError: If the schema file doesn't exist
        ValueError: If the tracking schema is requested without a kind

    Example:
        >>> from calmigrate.migrations import get_schema
        >>> sql = get_schema("tracking", backend="sqlite", kind=Stage.VENUES)
        >>> "calmigrate_tracking_venues" in sql
        True
    """
    if name == "all":
        return "\n\n".join(get_schema(part, backend) for part in _STATIC_SCHEMAS)

    sql = get_template_path(name, backend).read_text()

    if name == "tracking":
        if kind is None:
            raise ValueError("The tracking schema requires an entity kind")
        sql = sql.replace("{table_name}", get_tracking_table_name(kind))

    return sql


def split_statements(sql: str) -> list[str]:
    """
    Split a schema script into individual statements.

    Both aiosqlite's ``execute`` and asyncpg accept a single statement per
    call, so schema scripts are executed one statement at a time.

    Args:
        sql: Schema script

    Returns:
        Statements without trailing semicolons, comment-only chunks removed
    """
    statements = []
    for chunk in sql.split(";"):
        lines = [line for line in chunk.splitlines() if not line.strip().startswith("--")]
        statement = "\n".join(lines).strip()
        if statement:
            statements.append(statement)
    return statements


def list_schemas() -> list[str]:
    """List the available schema names."""
    return ["progress", "error_log", "tracking", "all"]


__all__ = [
    "SchemaName",
    "BackendName",
    "TRACKING_TABLE_PREFIX",
    "get_tracking_table_name",
    "get_template_path",
    "get_schema",
    "split_statements",
    "list_schemas",
]
