"""Unit tests for the SQL schema templates."""

from __future__ import annotations

import aiosqlite
import pytest

from calmigrate.migrations import (
    TRACKING_TABLE_PREFIX,
    get_schema,
    get_template_path,
    get_tracking_table_name,
    list_schemas,
    split_statements,
)
from calmigrate.models import Stage


class TestTemplatePaths:
    """Tests for template lookup."""

    @pytest.mark.parametrize("backend", ["postgresql", "sqlite"])
    @pytest.mark.parametrize("name", ["progress", "error_log", "tracking"])
    def test_templates_exist(self, name: str, backend: str) -> None:
        path = get_template_path(name, backend)  # type: ignore[arg-type]

        assert path.exists()
        assert path.name == f"{name}.sql"

    def test_sqlite_templates_live_in_subdirectory(self) -> None:
        assert get_template_path("progress", "sqlite").parent.name == "sqlite"

    def test_unknown_backend(self) -> None:
        with pytest.raises(ValueError, match="Unknown backend 'mysql'"):
            get_template_path("progress", "mysql")  # type: ignore[arg-type]

    def test_missing_template(self) -> None:
        with pytest.raises(FileNotFoundError):
            get_template_path("outbox")  # type: ignore[arg-type]

    def test_list_schemas(self) -> None:
        assert list_schemas() == ["progress", "error_log", "tracking", "all"]


class TestTrackingSchema:
    """Tests for the per-kind tracking table template."""

    def test_table_name(self) -> None:
        assert get_tracking_table_name(Stage.EVENTS) == "calmigrate_tracking_events"
        assert get_tracking_table_name(Stage.VENUES).startswith(TRACKING_TABLE_PREFIX)

    def test_complete_stage_has_no_table(self) -> None:
        with pytest.raises(ValueError, match="no tracking table"):
            get_tracking_table_name(Stage.COMPLETE)

    @pytest.mark.parametrize("backend", ["postgresql", "sqlite"])
    def test_rendered_for_kind(self, backend: str) -> None:
        sql = get_schema("tracking", backend, kind=Stage.ORDERS)  # type: ignore[arg-type]

        assert "CREATE TABLE IF NOT EXISTS calmigrate_tracking_orders" in sql
        assert "idx_calmigrate_tracking_orders_pending" in sql
        assert "{table_name}" not in sql

    def test_requires_kind(self) -> None:
        with pytest.raises(ValueError, match="requires an entity kind"):
            get_schema("tracking")

    def test_postgresql_source_id_is_unique(self) -> None:
        sql = get_schema("tracking", kind=Stage.TAGS)

        assert "source_id BIGINT NOT NULL UNIQUE" in sql


class TestStaticSchemas:
    """Tests for the progress and error log templates."""

    def test_all_combines_progress_and_error_log(self) -> None:
        sql = get_schema("all", "sqlite")

        assert "calmigrate_progress" in sql
        assert "calmigrate_error_log" in sql
        assert "calmigrate_tracking_" not in sql

    def test_split_statements(self) -> None:
        statements = split_statements(get_schema("error_log", "sqlite"))

        assert len(statements) == 2
        assert statements[0].startswith("CREATE TABLE IF NOT EXISTS calmigrate_error_log")
        assert not any(statement.endswith(";") for statement in statements)

    def test_split_statements_drops_comment_chunks(self) -> None:
        assert split_statements("-- only a comment;\n\n;") == []

    async def test_sqlite_schemas_execute(self, sqlite_connection: aiosqlite.Connection) -> None:
        """Every SQLite template runs twice without error."""
        scripts = [get_schema("all", "sqlite")] + [
            get_schema("tracking", "sqlite", kind=kind) for kind in Stage.ordered()
        ]
        for _ in range(2):
            for script in scripts:
                for statement in split_statements(script):
                    await sqlite_connection.execute(statement)

        cursor = await sqlite_connection.execute(
            "SELECT name FROM sqlite_master WHERE type = 'table' AND name LIKE 'calmigrate_%'"
        )
        tables = {row[0] for row in await cursor.fetchall()}
        assert "calmigrate_progress" in tables
        assert "calmigrate_tracking_attendees" in tables
        assert len(tables) == 2 + len(Stage.ordered())
