"""
calmigrate - Resumable, batched migration of event calendar data.

This library provides:
- A migration orchestrator that advances one bounded batch per call
- Stage processors for venues, tags, events, categories, tickets, orders
  and attendees, run in dependency order
- Tracking, progress and error log stores with PostgreSQL, SQLite and
  in-memory backends
- A recurrence translator for proprietary recurrence rules
- A relationship rebuilder for category hierarchies and event terms
- A synchronous adapter and an in-memory test harness
"""

from importlib.metadata import PackageNotFoundError, version

try:
    __version__ = version("calmigrate")
except PackageNotFoundError:
    # Package not installed (running from source without install)
    __version__ = "0.0.0.dev0"

from calmigrate.config import (
    DEFAULT_BATCH_SIZES,
    DEFAULT_CLAIM_POLICIES,
    ClaimPolicy,
    MigrationConfig,
)
from calmigrate.exceptions import (
    CalMigrateError,
    InvalidRunStateError,
    MissingSourceDataError,
    ProgressError,
    RowMigrationError,
    RowSkipped,
    TargetWriteError,
    TrackingError,
    UnresolvedReferenceError,
)
from calmigrate.hooks import MigrationHooks
from calmigrate.models import (
    AdvanceResult,
    BatchResult,
    ErrorEntry,
    MigrationDetection,
    NormalizedRecurrence,
    OverallStatus,
    ProcessStatus,
    ProgressState,
    RebuildResult,
    RunContext,
    Stage,
    TrackingRecord,
)
from calmigrate.orchestrator import MigrationOrchestrator
from calmigrate.rebuilder import RelationshipRebuilder
from calmigrate.recurrence import parse_recurrence, translate
from calmigrate.reporting import render_error_html, summarize_errors
from calmigrate.repositories import (
    ErrorLogRepository,
    InMemoryErrorLogRepository,
    InMemoryProgressRepository,
    InMemoryTrackingRepository,
    PostgreSQLErrorLogRepository,
    PostgreSQLProgressRepository,
    PostgreSQLTrackingRepository,
    ProgressRepository,
    SQLiteErrorLogRepository,
    SQLiteProgressRepository,
    SQLiteTrackingRepository,
    TrackingRepository,
)
from calmigrate.source import InMemorySourceReader, SourceReader
from calmigrate.sync import SyncMigrationAdapter
from calmigrate.target import InMemoryTargetSink, TargetSink

__all__ = [
    "__version__",
    # Configuration
    "ClaimPolicy",
    "MigrationConfig",
    "DEFAULT_BATCH_SIZES",
    "DEFAULT_CLAIM_POLICIES",
    # Exceptions
    "CalMigrateError",
    "RowMigrationError",
    "MissingSourceDataError",
    "UnresolvedReferenceError",
    "TargetWriteError",
    "RowSkipped",
    "TrackingError",
    "ProgressError",
    "InvalidRunStateError",
    # Models
    "Stage",
    "OverallStatus",
    "ProcessStatus",
    "TrackingRecord",
    "ProgressState",
    "ErrorEntry",
    "RunContext",
    "NormalizedRecurrence",
    "BatchResult",
    "RebuildResult",
    "AdvanceResult",
    "MigrationDetection",
    # Engine
    "MigrationOrchestrator",
    "RelationshipRebuilder",
    "MigrationHooks",
    "SyncMigrationAdapter",
    # Recurrence and reporting
    "parse_recurrence",
    "translate",
    "render_error_html",
    "summarize_errors",
    # Stores
    "TrackingRepository",
    "PostgreSQLTrackingRepository",
    "InMemoryTrackingRepository",
    "SQLiteTrackingRepository",
    "ProgressRepository",
    "PostgreSQLProgressRepository",
    "InMemoryProgressRepository",
    "SQLiteProgressRepository",
    "ErrorLogRepository",
    "PostgreSQLErrorLogRepository",
    "InMemoryErrorLogRepository",
    "SQLiteErrorLogRepository",
    # Source and target
    "SourceReader",
    "InMemorySourceReader",
    "TargetSink",
    "InMemoryTargetSink",
]
