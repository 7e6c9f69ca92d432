"""
Standard span attributes for calmigrate.

This module defines attribute constants used across all calmigrate components
for consistent span naming. These follow OpenTelemetry semantic conventions
where applicable.

Example:
    >>> from calmigrate.observability.attributes import (
    ...     ATTR_MIGRATION_STAGE,
    ...     ATTR_SOURCE_ID,
    ... )
    >>>
    >>> with tracer.span(
    ...     "calmigrate.stage.process_row",
    ...     {
    ...         ATTR_MIGRATION_STAGE: "events",
    ...         ATTR_SOURCE_ID: 42,
    ...     },
    ... ):
    ...     pass
"""

# =============================================================================
# Run Attributes
# =============================================================================

ATTR_RUN_ID = "calmigrate.run.id"
"""Identifier of the migration run (UUID string)."""

ATTR_MIGRATION_STAGE = "calmigrate.migration.stage"
"""Active stage name (e.g., 'venues', 'events')."""

ATTR_MIGRATION_STATUS = "calmigrate.migration.status"
"""Overall run status ('not_started', 'in_progress', 'complete')."""

ATTR_STAGE_TOTAL = "calmigrate.stage.total"
"""Total number of rows to import for the active stage (integer)."""

ATTR_STAGE_PROCESSED = "calmigrate.stage.processed"
"""Rows processed by a single batch (integer)."""

# =============================================================================
# Row Attributes
# =============================================================================

ATTR_SOURCE_ID = "calmigrate.source.id"
"""Source-native integer identifier of the row being migrated."""

ATTR_TARGET_ID = "calmigrate.target.id"
"""Identifier assigned by the target system."""

ATTR_BATCH_SIZE = "calmigrate.batch.size"
"""Configured batch size for the operation (integer)."""

# =============================================================================
# Database Attributes (OpenTelemetry Semantic Conventions)
# =============================================================================

ATTR_DB_TABLE = "db.sql.table"
"""Table name the operation applies to."""


__all__ = [
    "ATTR_RUN_ID",
    "ATTR_MIGRATION_STAGE",
    "ATTR_MIGRATION_STATUS",
    "ATTR_STAGE_TOTAL",
    "ATTR_STAGE_PROCESSED",
    "ATTR_SOURCE_ID",
    "ATTR_TARGET_ID",
    "ATTR_BATCH_SIZE",
    "ATTR_DB_TABLE",
]
