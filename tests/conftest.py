"""
Shared pytest fixtures for the calmigrate tests.

This module provides:
- Source row factories (venue_row, term_row, event_row, ticket_row,
  order_row, attendee_row)
- In-memory components (source, target, tracking, progress_repo, error_log)
- A RunContext for driving stage processors directly (run_context)
- The in-memory harness (harness)
- SQLite fixtures (sqlite_connection and the SQLite repositories)
"""

from __future__ import annotations

from collections.abc import AsyncGenerator, Callable
from datetime import UTC, datetime, timedelta
from typing import Any

import aiosqlite
import pytest
import pytest_asyncio

from calmigrate.config import MigrationConfig
from calmigrate.models import ProgressState, RunContext, Stage
from calmigrate.observability import MockTracer
from calmigrate.repositories.error_log import (
    InMemoryErrorLogRepository,
    SQLiteErrorLogRepository,
)
from calmigrate.repositories.progress import (
    InMemoryProgressRepository,
    SQLiteProgressRepository,
)
from calmigrate.repositories.tracking import (
    InMemoryTrackingRepository,
    SQLiteTrackingRepository,
)
from calmigrate.source.in_memory import InMemorySourceReader
from calmigrate.target.in_memory import InMemoryTargetSink
from calmigrate.testing import InMemoryMigrationHarness

EVENT_START = datetime(2024, 6, 1, 18, 0, tzinfo=UTC)


def pytest_configure(config: pytest.Config) -> None:
    """Register custom markers."""
    config.addinivalue_line("markers", "sqlite: tests that run against SQLite (aiosqlite)")
    config.addinivalue_line("markers", "postgres: tests that need a PostgreSQL database")


# ============================================================================
# Source Row Factories
# ============================================================================


@pytest.fixture
def venue_row() -> Callable[..., dict[str, Any]]:
    """Factory for raw source venue rows."""

    def factory(venue_id: int, **overrides: Any) -> dict[str, Any]:
        row: dict[str, Any] = {
            "id": venue_id,
            "name": f"Venue {venue_id}",
            "address": f"{venue_id} Main St",
            "city": "Springfield",
            "state": "IL",
            "postal_code": "62701",
            "country": "US",
        }
        row.update(overrides)
        return row

    return factory


@pytest.fixture
def term_row() -> Callable[..., dict[str, Any]]:
    """Factory for raw source category or tag rows."""

    def factory(term_id: int, **overrides: Any) -> dict[str, Any]:
        row: dict[str, Any] = {
            "id": term_id,
            "name": f"Term {term_id}",
            "slug": f"term-{term_id}",
            "parent_id": 0,
        }
        row.update(overrides)
        return row

    return factory


@pytest.fixture
def event_row() -> Callable[..., dict[str, Any]]:
    """Factory for raw source event rows, one day apart."""

    def factory(event_id: int, **overrides: Any) -> dict[str, Any]:
        start = EVENT_START + timedelta(days=event_id)
        row: dict[str, Any] = {
            "id": event_id,
            "title": f"Event {event_id}",
            "content": "<p>Details</p>",
            "status": "publish",
            "start": start,
            "end": start + timedelta(hours=2),
            "timezone": "America/Chicago",
        }
        row.update(overrides)
        return row

    return factory


@pytest.fixture
def ticket_row() -> Callable[..., dict[str, Any]]:
    """Factory for raw source ticket rows."""

    def factory(ticket_id: int, event_id: int, **overrides: Any) -> dict[str, Any]:
        row: dict[str, Any] = {
            "id": ticket_id,
            "event_id": event_id,
            "name": f"Ticket {ticket_id}",
            "price": "25.00",
            "currency": "USD",
            "capacity": 100,
        }
        row.update(overrides)
        return row

    return factory


@pytest.fixture
def order_row() -> Callable[..., dict[str, Any]]:
    """Factory for raw source order rows."""

    def factory(order_id: int, event_id: int | None, **overrides: Any) -> dict[str, Any]:
        row: dict[str, Any] = {
            "id": order_id,
            "event_id": event_id or 0,
            "status": "completed",
            "total": "50.00",
            "currency": "USD",
            "email": f"buyer{order_id}@example.com",
            "first_name": "Pat",
            "last_name": f"Buyer{order_id}",
            "created_at": EVENT_START - timedelta(days=30),
        }
        row.update(overrides)
        return row

    return factory


@pytest.fixture
def attendee_row() -> Callable[..., dict[str, Any]]:
    """Factory for raw source attendee rows."""

    def factory(attendee_id: int, order_id: int, **overrides: Any) -> dict[str, Any]:
        row: dict[str, Any] = {
            "id": attendee_id,
            "order_id": order_id,
            "email": f"guest{attendee_id}@example.com",
            "first_name": "Sam",
            "last_name": f"Guest{attendee_id}",
        }
        row.update(overrides)
        return row

    return factory


# ============================================================================
# In-Memory Component Fixtures
# ============================================================================


@pytest.fixture
def mock_tracer() -> MockTracer:
    """Tracer that records span names for assertions."""
    return MockTracer()


@pytest.fixture
def source() -> InMemorySourceReader:
    """Empty in-memory source reader."""
    return InMemorySourceReader()


@pytest.fixture
def target() -> InMemoryTargetSink:
    """Empty in-memory target sink."""
    return InMemoryTargetSink()


@pytest.fixture
def tracking() -> InMemoryTrackingRepository:
    """In-memory tracking repository with tracing disabled."""
    return InMemoryTrackingRepository(enable_tracing=False)


@pytest.fixture
def progress_repo() -> InMemoryProgressRepository:
    """In-memory progress repository with tracing disabled."""
    return InMemoryProgressRepository(enable_tracing=False)


@pytest.fixture
def error_log() -> InMemoryErrorLogRepository:
    """In-memory error log with tracing disabled."""
    return InMemoryErrorLogRepository(enable_tracing=False)


@pytest.fixture
def config() -> MigrationConfig:
    """Default migration configuration."""
    return MigrationConfig()


@pytest.fixture
def run_context(config: MigrationConfig, error_log: InMemoryErrorLogRepository) -> RunContext:
    """RunContext for driving stage processors without the orchestrator."""
    return RunContext(progress=ProgressState(), config=config, errors=error_log)


@pytest.fixture
def harness() -> InMemoryMigrationHarness:
    """In-memory harness with small batch sizes."""
    return InMemoryMigrationHarness(
        MigrationConfig(batch_sizes={stage: 10 for stage in Stage.ordered()})
    )


# ============================================================================
# SQLite Fixtures
# ============================================================================


@pytest_asyncio.fixture
async def sqlite_connection() -> AsyncGenerator[aiosqlite.Connection, None]:
    """In-memory SQLite connection, closed after the test."""
    connection = await aiosqlite.connect(":memory:")
    try:
        yield connection
    finally:
        await connection.close()


@pytest.fixture
def sqlite_tracking(sqlite_connection: aiosqlite.Connection) -> SQLiteTrackingRepository:
    """SQLite tracking repository."""
    return SQLiteTrackingRepository(sqlite_connection, enable_tracing=False)


@pytest.fixture
def sqlite_progress(sqlite_connection: aiosqlite.Connection) -> SQLiteProgressRepository:
    """SQLite progress repository."""
    return SQLiteProgressRepository(sqlite_connection, enable_tracing=False)


@pytest.fixture
def sqlite_error_log(sqlite_connection: aiosqlite.Connection) -> SQLiteErrorLogRepository:
    """SQLite error log."""
    return SQLiteErrorLogRepository(sqlite_connection, enable_tracing=False)
