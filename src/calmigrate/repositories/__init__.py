"""
Repositories for the migration engine's persistent state.

Each store has a protocol plus in-memory (testing), SQLite and PostgreSQL
implementations:

- TrackingRepository: source ID to target ID mapping, one table per kind
- ProgressRepository: durable progress record
- ErrorLogRepository: append-only log of rows that failed to migrate
"""

from calmigrate.repositories.error_log import (
    ErrorLogRepository,
    InMemoryErrorLogRepository,
    PostgreSQLErrorLogRepository,
    SQLiteErrorLogRepository,
)
from calmigrate.repositories.progress import (
    DEFAULT_PROGRESS_KEY,
    InMemoryProgressRepository,
    PostgreSQLProgressRepository,
    ProgressRepository,
    SQLiteProgressRepository,
)
from calmigrate.repositories.tracking import (
    InMemoryTrackingRepository,
    PostgreSQLTrackingRepository,
    SQLiteTrackingRepository,
    TrackingRepository,
)

__all__ = [
    # Tracking
    "TrackingRepository",
    "PostgreSQLTrackingRepository",
    "InMemoryTrackingRepository",
    "SQLiteTrackingRepository",
    # Progress
    "DEFAULT_PROGRESS_KEY",
    "ProgressRepository",
    "PostgreSQLProgressRepository",
    "InMemoryProgressRepository",
    "SQLiteProgressRepository",
    # Error log
    "ErrorLogRepository",
    "PostgreSQLErrorLogRepository",
    "InMemoryErrorLogRepository",
    "SQLiteErrorLogRepository",
]
