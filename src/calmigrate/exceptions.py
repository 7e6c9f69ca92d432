"""
Exceptions for the calmigrate package.

Exception Hierarchy:
    CalMigrateError (base)
    +-- RowMigrationError            row-level failure, logged and skipped
    |   +-- MissingSourceDataError
    |   +-- UnresolvedReferenceError
    |   +-- TargetWriteError
    +-- RowSkipped                   row intentionally not written
    +-- TrackingError                tracking store failure, propagates
    +-- ProgressError                progress store failure, propagates
    +-- InvalidRunStateError

Row-level errors never abort a stage: the stage processor records them in
the error log and leaves a terminal skip marker for the row. Storage errors
are not caught; the call fails before progress is saved and the next call
re-derives its state from durable storage.
"""

from __future__ import annotations

from typing import TYPE_CHECKING

if TYPE_CHECKING:
    from calmigrate.models import Stage


class CalMigrateError(Exception):
    """Base exception for the calmigrate package."""

    pass


class RowMigrationError(CalMigrateError):
    """
    Raised when a single source row cannot be migrated.

    Attributes:
        kind: Stage the row belongs to
        source_id: Source-native identifier of the row
        label: Human readable label for the error log (e.g. an event title)
    """

    def __init__(
        self,
        kind: Stage,
        source_id: int,
        message: str,
        label: str | None = None,
    ) -> None:
        self.kind = kind
        self.source_id = source_id
        self.label = label or f"{kind.value} #{source_id}"
        self.message = message
        super().__init__(f"Cannot migrate {kind.value} {source_id}: {message}")


class MissingSourceDataError(RowMigrationError):
    """Raised when a source row is missing or lacks a required field."""

    pass


class UnresolvedReferenceError(RowMigrationError):
    """Raised when a referenced source row has no migrated tracking record."""

    def __init__(
        self,
        kind: Stage,
        source_id: int,
        ref_kind: Stage,
        ref_id: int,
        label: str | None = None,
    ) -> None:
        self.ref_kind = ref_kind
        self.ref_id = ref_id
        super().__init__(
            kind,
            source_id,
            f"referenced {ref_kind.value} {ref_id} has not been migrated",
            label=label,
        )


class TargetWriteError(RowMigrationError):
    """Raised when the target sink refuses a write."""

    pass


class RowSkipped(CalMigrateError):
    """
    Raised by a stage processor to mark a row migrated-but-skipped.

    This is not an error: the row is recorded as handled without a target
    write (for example a ticket for an event that already has ticket data).
    """

    def __init__(self, kind: Stage, source_id: int, reason: str) -> None:
        self.kind = kind
        self.source_id = source_id
        self.reason = reason
        super().__init__(f"Skipped {kind.value} {source_id}: {reason}")


class TrackingError(CalMigrateError):
    """Raised when the tracking store cannot be read or written."""

    pass


class ProgressError(CalMigrateError):
    """Raised when the progress record cannot be loaded or saved."""

    pass


class InvalidRunStateError(CalMigrateError):
    """Raised when a persisted run is corrupt or an operation is not allowed."""

    pass


__all__ = [
    "CalMigrateError",
    "RowMigrationError",
    "MissingSourceDataError",
    "UnresolvedReferenceError",
    "TargetWriteError",
    "RowSkipped",
    "TrackingError",
    "ProgressError",
    "InvalidRunStateError",
]
