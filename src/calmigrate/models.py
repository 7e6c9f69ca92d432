"""
Data models for the calendar migration engine.

Enums:
    - Stage: Entity kinds in fixed dependency order, plus the terminal stage
    - OverallStatus: Lifecycle status of a migration run
    - ProcessStatus: Per-call status of the active stage

Core Models:
    - TrackingRecord: Source ID to target ID mapping row (idempotency signal)
    - ProgressState: Durable record of the current stage and counters
    - RunContext: Explicit per-call context threaded through every component
    - NormalizedRecurrence: Target recurrence representation
    - ErrorEntry: One line of the error log

Results:
    - BatchResult: Outcome of one stage processor batch
    - RebuildResult: Outcome of the relationship rebuild
    - AdvanceResult: Response of one orchestrator call
    - MigrationDetection: "Migration possible / in progress" signal
"""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import UTC, date, datetime
from enum import Enum
from typing import TYPE_CHECKING, Any
from uuid import UUID, uuid4

if TYPE_CHECKING:
    from calmigrate.config import MigrationConfig
    from calmigrate.repositories.error_log import ErrorLogRepository


class Stage(Enum):
    """
    Migration stages, one per entity kind.

    Declaration order is the dependency order: later stages resolve their
    references through the tracking records written by earlier stages
    (an event needs its venue, a ticket needs its event, an attendee needs
    its order). COMPLETE is the terminal pseudo-stage.
    """

    VENUES = "venues"
    TAGS = "tags"
    EVENTS = "events"
    CATEGORIES = "categories"
    TICKETS = "tickets"
    ORDERS = "orders"
    ATTENDEES = "attendees"
    COMPLETE = "complete"

    @classmethod
    def ordered(cls) -> tuple[Stage, ...]:
        """
        Get the working stages in dependency order.

        Returns:
            Tuple of all stages except COMPLETE.
        """
        return tuple(stage for stage in cls if stage is not cls.COMPLETE)

    @property
    def is_terminal(self) -> bool:
        """True only for the COMPLETE pseudo-stage."""
        return self is Stage.COMPLETE

    def next(self) -> Stage:
        """
        Get the stage that follows this one in dependency order.

        Returns:
            The next working stage, or COMPLETE after the last one.
        """
        if self.is_terminal:
            return Stage.COMPLETE
        ordered = Stage.ordered()
        index = ordered.index(self)
        if index + 1 < len(ordered):
            return ordered[index + 1]
        return Stage.COMPLETE


class OverallStatus(Enum):
    """Lifecycle status of a migration run."""

    NOT_STARTED = "not_started"
    IN_PROGRESS = "in_progress"
    COMPLETE = "complete"


class ProcessStatus(Enum):
    """Status of the active stage as reported after a call."""

    IN_PROGRESS = "in_progress"
    COMPLETE = "complete"


def _utcnow() -> datetime:
    return datetime.now(UTC)


def _parse_datetime(value: Any) -> datetime | None:
    if value is None or isinstance(value, datetime):
        return value
    return datetime.fromisoformat(str(value).replace("Z", "+00:00"))


@dataclass(frozen=True)
class TrackingRecord:
    """
    Maps one source row to its migrated target row.

    A record is inserted as a claim (migrated and skipped both False)
    before the row is transformed, then either confirmed (migrated=True,
    target_id set) or turned into a terminal skip marker. The presence of
    a record, in any state, means no other call may import the row again.

    Attributes:
        kind: Stage (entity kind) of the source row.
        source_id: Source-native identifier.
        source_parent_id: Parent row in the source (categories only).
        target_id: Identifier assigned by the target, once migrated.
        migrated: True once the row has been handled successfully.
        skipped: True when the row was not written (failure or policy).
        claimed_at: When the row was claimed.
        confirmed_at: When the claim was confirmed or skipped.
        message: Reason recorded with a skip marker.
    """

    kind: Stage
    source_id: int
    source_parent_id: int | None = None
    target_id: int | None = None
    migrated: bool = False
    skipped: bool = False
    claimed_at: datetime | None = None
    confirmed_at: datetime | None = None
    message: str | None = None

    @property
    def is_claimed(self) -> bool:
        """True while the row is claimed but neither confirmed nor skipped."""
        return not self.migrated and not self.skipped

    @property
    def is_resolved(self) -> bool:
        """True when the row can be used to resolve a reference."""
        return self.migrated and not self.skipped and self.target_id is not None


@dataclass
class ProgressState:
    """
    Durable progress of a migration run.

    This is a mutable dataclass: the orchestrator loads it at the start of
    every call, updates it, and saves it before returning.

    Attributes:
        run_id: Identifier of the tracking generation.
        stage: First stage in dependency order that still has work.
        per_stage_processed: Rows processed so far, per stage.
        stage_totals: Total rows to import per stage, computed once per run.
        overall_status: Run lifecycle status.
        started_at: When the first call of the run happened.
        updated_at: When the record was last saved.
        completed_at: When the run reached COMPLETE.
        summary: Migrated row counts per stage, captured at completion.
        cleanup_pending: The run is complete but its tracking tables and
            per-run counters have not been cleared yet.
    """

    run_id: UUID = field(default_factory=uuid4)
    stage: Stage = Stage.VENUES
    per_stage_processed: dict[Stage, int] = field(default_factory=dict)
    stage_totals: dict[Stage, int] = field(default_factory=dict)
    overall_status: OverallStatus = OverallStatus.NOT_STARTED
    started_at: datetime | None = None
    updated_at: datetime | None = None
    completed_at: datetime | None = None
    summary: dict[Stage, int] = field(default_factory=dict)
    cleanup_pending: bool = False

    @property
    def is_complete(self) -> bool:
        return self.overall_status is OverallStatus.COMPLETE

    def processed_for(self, stage: Stage) -> int:
        """Get the cumulative processed count for a stage."""
        return self.per_stage_processed.get(stage, 0)

    def total_for(self, stage: Stage) -> int | None:
        """Get the cached total for a stage, or None if not computed yet."""
        return self.stage_totals.get(stage)

    def record_batch(self, stage: Stage, processed: int) -> int:
        """
        Add a batch's processed rows to the stage counter.

        Returns:
            The new cumulative count for the stage.
        """
        self.per_stage_processed[stage] = self.processed_for(stage) + processed
        return self.per_stage_processed[stage]

    def to_dict(self) -> dict[str, Any]:
        """
        Convert to dictionary for JSON storage.

        Returns:
            Dictionary representation suitable for JSON serialization.
        """
        return {
            "run_id": str(self.run_id),
            "stage": self.stage.value,
            "per_stage_processed": {k.value: v for k, v in self.per_stage_processed.items()},
            "stage_totals": {k.value: v for k, v in self.stage_totals.items()},
            "overall_status": self.overall_status.value,
            "started_at": self.started_at.isoformat() if self.started_at else None,
            "updated_at": self.updated_at.isoformat() if self.updated_at else None,
            "completed_at": self.completed_at.isoformat() if self.completed_at else None,
            "summary": {k.value: v for k, v in self.summary.items()},
            "cleanup_pending": self.cleanup_pending,
        }

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> ProgressState:
        """
        Create from dictionary.

        Args:
            data: Dictionary produced by to_dict().

        Returns:
            ProgressState instance.

        Raises:
            ValueError: If a stage or status value is unknown.
        """
        return cls(
            run_id=UUID(str(data["run_id"])),
            stage=Stage(data.get("stage", Stage.VENUES.value)),
            per_stage_processed={
                Stage(k): int(v) for k, v in (data.get("per_stage_processed") or {}).items()
            },
            stage_totals={Stage(k): int(v) for k, v in (data.get("stage_totals") or {}).items()},
            overall_status=OverallStatus(
                data.get("overall_status", OverallStatus.NOT_STARTED.value)
            ),
            started_at=_parse_datetime(data.get("started_at")),
            updated_at=_parse_datetime(data.get("updated_at")),
            completed_at=_parse_datetime(data.get("completed_at")),
            summary={Stage(k): int(v) for k, v in (data.get("summary") or {}).items()},
            cleanup_pending=bool(data.get("cleanup_pending", False)),
        )


@dataclass(frozen=True)
class ErrorEntry:
    """
    One entry of the append-only error log.

    Attributes:
        context: Stage (or other context name) the error belongs to.
        source_id: Source-native identifier of the failed row.
        label: Human readable label (e.g. event title).
        message: What went wrong.
        id: Identifier assigned by the error log on append.
        logged_at: When the entry was appended.
    """

    context: str
    source_id: int
    label: str
    message: str
    id: int | None = None
    logged_at: datetime = field(default_factory=_utcnow)

    def to_dict(self) -> dict[str, Any]:
        return {
            "id": self.source_id,
            "label": self.label,
            "context": self.context,
            "message": self.message,
            "logged_at": self.logged_at.isoformat(),
        }


@dataclass
class RunContext:
    """
    Explicit context for one orchestrator call.

    Replaces ambient process-wide state: the orchestrator builds it from
    the progress store at the start of a call and hands it to the stage
    processor and the rebuilder, then saves the progress before returning.

    Attributes:
        progress: Progress loaded for this call.
        config: Active migration configuration.
        errors: Error log of the run.
        total_overrides: Caller supplied per-stage totals.
    """

    progress: ProgressState
    config: MigrationConfig
    errors: ErrorLogRepository
    total_overrides: dict[Stage, int] = field(default_factory=dict)

    @property
    def run_id(self) -> UUID:
        return self.progress.run_id

    async def record_error(
        self,
        context: Stage | str,
        source_id: int,
        label: str,
        message: str,
    ) -> ErrorEntry:
        """Append an entry to the run's error log."""
        context_name = context.value if isinstance(context, Stage) else context
        return await self.errors.append(
            ErrorEntry(
                context=context_name,
                source_id=source_id,
                label=label,
                message=message,
            )
        )


@dataclass(frozen=True)
class NormalizedRecurrence:
    """
    Recurrence in the target's representation.

    Attributes:
        frequency: One of daily, weekly, monthly, yearly.
        interval: Repeat every N periods (>= 1).
        count: Number of occurrences, 0 for unlimited.
        end_date: Last possible occurrence date.
        by_day: Two-letter weekday codes (MO..SU).
        by_month_day: Days of the month.
        by_position: Ordinal of by_day within the period (-1 = last).
        by_month: Month of the year (1-12).
    """

    frequency: str
    interval: int = 1
    count: int = 0
    end_date: date | None = None
    by_day: tuple[str, ...] | None = None
    by_month_day: tuple[int, ...] | None = None
    by_position: int | None = None
    by_month: int | None = None

    def to_dict(self) -> dict[str, Any]:
        """Emit frequency, interval and count plus the populated fields."""
        data: dict[str, Any] = {
            "frequency": self.frequency,
            "interval": self.interval,
            "count": self.count,
        }
        if self.end_date is not None:
            data["end_date"] = self.end_date.isoformat()
        if self.by_day is not None:
            data["by_day"] = list(self.by_day)
        if self.by_month_day is not None:
            data["by_month_day"] = list(self.by_month_day)
        if self.by_position is not None:
            data["by_position"] = self.by_position
        if self.by_month is not None:
            data["by_month"] = self.by_month
        return data


@dataclass(frozen=True)
class BatchResult:
    """
    Outcome of one stage processor batch.

    Attributes:
        stage: Stage that was processed.
        processed: Rows claimed by this call (migrated + skipped + failed).
        migrated: Rows written to the target.
        skipped: Rows marked migrated-but-skipped by policy.
        failed: Rows that failed and were logged.
        stale_skipped: Abandoned claims turned into skip markers by this call.
    """

    stage: Stage
    processed: int = 0
    migrated: int = 0
    skipped: int = 0
    failed: int = 0
    stale_skipped: int = 0


@dataclass(frozen=True)
class RebuildResult:
    """
    Outcome of the relationship rebuild.

    Attributes:
        categories_linked: Categories given a parent term.
        categories_orphaned: Categories whose parent could not be resolved.
        events_associated: Events that received at least one term.
        terms_attached: Total term associations written.
    """

    categories_linked: int = 0
    categories_orphaned: int = 0
    events_associated: int = 0
    terms_attached: int = 0


@dataclass(frozen=True)
class AdvanceResult:
    """
    Response of one orchestrator call.

    Attributes:
        stage: Stage processed by this call (COMPLETE on the terminal call).
        processed: Rows processed by this call.
        progress: Cumulative rows processed for the stage in this run.
        total_to_import: Total rows to import for the stage.
        status: Overall run status after the call.
        process_status: Status of the stage after the call.
        errors: Error log entries (terminal response only).
        error_html: Rendered error list (terminal response only).
        summary: Migrated row counts per stage (terminal response only).
    """

    stage: Stage
    processed: int
    total_to_import: int
    status: OverallStatus
    process_status: ProcessStatus
    errors: tuple[ErrorEntry, ...] = ()
    error_html: str | None = None
    summary: dict[Stage, int] = field(default_factory=dict)
    progress: int = 0

    @property
    def is_complete(self) -> bool:
        return self.status is OverallStatus.COMPLETE

    def to_response(self) -> dict[str, Any]:
        """
        Build the payload returned to a polling caller.

        Returns:
            Dictionary with process, progress, total_number_to_import,
            status and process_status, plus errors, error_html and summary
            when the run is complete.
        """
        response: dict[str, Any] = {
            "process": self.stage.value,
            "progress": self.progress,
            "total_number_to_import": self.total_to_import,
            "status": self.status.value,
            "process_status": self.process_status.value,
        }
        if self.is_complete:
            response["summary"] = {k.value: v for k, v in self.summary.items()}
            if self.errors:
                response["errors"] = [entry.to_dict() for entry in self.errors]
            if self.error_html:
                response["error_html"] = self.error_html
        return response


@dataclass(frozen=True)
class MigrationDetection:
    """
    Signal telling a caller whether a migration can be offered or resumed.

    Attributes:
        possible: Source rows remain and the run is not complete.
        in_progress: A run has started and is not complete.
        complete: The current run has completed.
        pending: Unmigrated source rows per stage.
    """

    possible: bool
    in_progress: bool
    complete: bool
    pending: dict[Stage, int] = field(default_factory=dict)


__all__ = [
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
]
