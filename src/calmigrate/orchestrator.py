"""
Migration orchestrator.

Each call to advance() is one short unit of work: it works out which stage
is active by probing the stages in dependency order, delegates one bounded
batch to that stage's processor, persists the progress record and reports
back to the polling caller. When no stage has work left the run completes:
relationships are rebuilt once, a summary is captured, and the tracking
tables are dropped.

Concurrent or repeated calls are safe. Row ownership is decided by the
claim-then-confirm protocol of the tracking store, and stage selection is
re-derived from the stores on every call.
"""

from __future__ import annotations

import logging
from datetime import UTC, datetime
from typing import TYPE_CHECKING, Any

from calmigrate.config import MigrationConfig
from calmigrate.exceptions import InvalidRunStateError
from calmigrate.hooks import MigrationHooks
from calmigrate.models import (
    AdvanceResult,
    MigrationDetection,
    OverallStatus,
    ProcessStatus,
    ProgressState,
    RunContext,
    Stage,
)
from calmigrate.observability import Tracer, create_tracer, traced
from calmigrate.observability.attributes import (
    ATTR_MIGRATION_STAGE,
    ATTR_MIGRATION_STATUS,
    ATTR_RUN_ID,
    ATTR_STAGE_PROCESSED,
    ATTR_STAGE_TOTAL,
)
from calmigrate.rebuilder import RelationshipRebuilder
from calmigrate.reporting import render_error_html, summarize_errors
from calmigrate.stages import build_processors

if TYPE_CHECKING:
    from calmigrate.repositories.error_log import ErrorLogRepository
    from calmigrate.repositories.progress import ProgressRepository
    from calmigrate.repositories.tracking import TrackingRepository
    from calmigrate.source.interface import SourceReader
    from calmigrate.stages.base import StageProcessor
    from calmigrate.target.interface import TargetSink

logger = logging.getLogger(__name__)


class MigrationOrchestrator:
    """
    Drives a migration run one batch per call.

    Example:
        >>> orchestrator = MigrationOrchestrator(
        ...     source=reader,
        ...     target=sink,
        ...     tracking=InMemoryTrackingRepository(),
        ...     progress=InMemoryProgressRepository(),
        ...     errors=InMemoryErrorLogRepository(),
        ... )
        >>> result = await orchestrator.advance()
        >>> while not result.is_complete:
        ...     result = await orchestrator.advance()
    """

    def __init__(
        self,
        source: SourceReader,
        target: TargetSink,
        tracking: TrackingRepository,
        progress: ProgressRepository,
        errors: ErrorLogRepository,
        config: MigrationConfig | None = None,
        hooks: MigrationHooks | None = None,
        tracer: Tracer | None = None,
        enable_tracing: bool = True,
    ) -> None:
        """
        Initialize the orchestrator.

        Args:
            source: Read-only view of the source system
            target: Sink for the target system
            tracking: Tracking store (source ID to target ID records)
            progress: Progress store
            errors: Error log
            config: Migration configuration (defaults to MigrationConfig())
            hooks: Callback registry (a new one is created if not provided)
            tracer: Optional tracer for tracing (if not provided, one will be created)
            enable_tracing: Whether to enable OpenTelemetry tracing (default True)
        """
        self._source = source
        self._target = target
        self._tracking = tracking
        self._progress = progress
        self._errors = errors
        self._config = config or MigrationConfig()
        self.hooks = hooks or MigrationHooks()
        self._tracer = tracer or create_tracer(__name__, enable_tracing)

        self._processors: dict[Stage, StageProcessor[Any]] = build_processors(
            source,
            target,
            tracking,
            hooks=self.hooks,
            tracer=self._tracer,
        )
        self._rebuilder = RelationshipRebuilder(source, target, tracking, tracer=self._tracer)
        self._calls_in_flight = 0

    @property
    def config(self) -> MigrationConfig:
        """Active migration configuration."""
        return self._config

    @traced("calmigrate.orchestrator.advance")
    async def advance(self, total_overrides: dict[Stage, int] | None = None) -> AdvanceResult:
        """
        Run one unit of migration work.

        Args:
            total_overrides: Caller supplied totals per stage, used instead
                of counting the source

        Returns:
            AdvanceResult describing the stage worked on, or the terminal
            result once the run is complete

        Raises:
            ProgressError: If the progress record cannot be decoded
            Exception: Storage failures of the tracking store or error log
        """
        self._calls_in_flight += 1
        try:
            return await self._advance(total_overrides)
        finally:
            self._calls_in_flight -= 1

    async def _advance(self, total_overrides: dict[Stage, int] | None) -> AdvanceResult:
        state = await self._progress.load()
        if state is None:
            state = ProgressState()
        if state.is_complete:
            return await self._terminal_result(state)
        if state.overall_status is OverallStatus.NOT_STARTED:
            state.overall_status = OverallStatus.IN_PROGRESS
            state.started_at = datetime.now(UTC)
            logger.info(
                "Starting migration run %s",
                state.run_id,
                extra={"run_id": str(state.run_id)},
            )

        ctx = RunContext(
            progress=state,
            config=self._config,
            errors=self._errors,
            total_overrides=dict(total_overrides or {}),
        )

        stage = await self._find_active_stage(ctx)
        if stage is not None:
            return await self._advance_stage(ctx, stage)
        claimed = await self._find_claimed_stage()
        if claimed is not None:
            return await self._wait_for_claims(ctx, claimed)
        return await self._complete(ctx)

    @traced("calmigrate.orchestrator.detect")
    async def detect(self) -> MigrationDetection:
        """
        Tell whether a migration can be offered or resumed.

        Returns:
            MigrationDetection with the number of untracked rows per stage
        """
        state = await self._progress.load()
        if state is not None and state.is_complete:
            return MigrationDetection(possible=False, in_progress=False, complete=True)

        ctx = RunContext(
            progress=state or ProgressState(),
            config=self._config,
            errors=self._errors,
        )
        pending: dict[Stage, int] = {}
        for stage, processor in self._processors.items():
            count = await processor.count_pending(ctx)
            if count:
                pending[stage] = count

        in_progress = state is not None and state.overall_status is OverallStatus.IN_PROGRESS
        return MigrationDetection(
            possible=bool(pending) or in_progress,
            in_progress=in_progress,
            complete=False,
            pending=pending,
        )

    async def status(self) -> ProgressState | None:
        """Get the persisted progress of the current run, if any."""
        return await self._progress.load()

    @traced("calmigrate.orchestrator.reset")
    async def reset(self) -> None:
        """
        Start a new tracking generation.

        Drops every tracking table and clears the progress record and the
        error log. Target data written by earlier runs is left in place.

        Raises:
            InvalidRunStateError: If an advance call of this orchestrator is running
        """
        if self._calls_in_flight:
            raise InvalidRunStateError("Cannot reset while an advance call is running")
        state = await self._progress.load()
        await self._tracking.drop_all()
        await self._progress.clear()
        await self._errors.clear()
        logger.info(
            "Reset migration state",
            extra={"run_id": str(state.run_id) if state else None},
        )

    async def _find_active_stage(self, ctx: RunContext) -> Stage | None:
        for stage in Stage.ordered():
            if await self._processors[stage].has_work(ctx):
                return stage
        return None

    async def _find_claimed_stage(self) -> Stage | None:
        for stage in Stage.ordered():
            if await self._processors[stage].has_open_claims():
                return stage
        return None

    async def _stage_total(self, ctx: RunContext, stage: Stage) -> int:
        override = ctx.total_overrides.get(stage)
        if override is not None:
            ctx.progress.stage_totals[stage] = override
            return override
        total = ctx.progress.total_for(stage)
        if total is None:
            total = await self._processors[stage].count_total()
            ctx.progress.stage_totals[stage] = total
        return total

    async def _advance_stage(self, ctx: RunContext, stage: Stage) -> AdvanceResult:
        state = ctx.progress
        if state.stage is not stage:
            logger.info(
                "Migration moved from %s to %s",
                state.stage.value,
                stage.value,
                extra={"run_id": str(state.run_id), "stage": stage.value},
            )
        state.stage = stage

        processor = self._processors[stage]
        total = await self._stage_total(ctx, stage)

        with self._tracer.span(
            "calmigrate.orchestrator.batch",
            {
                ATTR_RUN_ID: str(state.run_id),
                ATTR_MIGRATION_STAGE: stage.value,
                ATTR_STAGE_TOTAL: total,
            },
        ) as span:
            batch = await processor.process_batch(ctx, self._config.batch_size_for(stage))
            progress = state.record_batch(stage, batch.processed)
            if progress >= total or not await processor.has_work(ctx):
                process_status = ProcessStatus.COMPLETE
            else:
                process_status = ProcessStatus.IN_PROGRESS
            if span is not None:
                span.set_attribute(ATTR_STAGE_PROCESSED, progress)

        if process_status is ProcessStatus.COMPLETE:
            logger.info(
                "Finished %s stage: %d of %d processed",
                stage.value,
                progress,
                total,
                extra={"run_id": str(state.run_id), "stage": stage.value},
            )

        await self.hooks.after_batch(stage, batch)
        await self._save(state)

        return AdvanceResult(
            stage=stage,
            processed=batch.processed,
            progress=progress,
            total_to_import=total,
            status=state.overall_status,
            process_status=process_status,
        )

    async def _wait_for_claims(self, ctx: RunContext, stage: Stage) -> AdvanceResult:
        """Keep the run open while another call still owns unconfirmed rows."""
        state = ctx.progress
        logger.info(
            "Run %s has unconfirmed %s claims, not completing yet",
            state.run_id,
            stage.value,
            extra={"run_id": str(state.run_id), "stage": stage.value},
        )
        state.stage = stage
        total = await self._stage_total(ctx, stage)
        await self._save(state)
        return AdvanceResult(
            stage=stage,
            processed=0,
            progress=state.processed_for(stage),
            total_to_import=total,
            status=state.overall_status,
            process_status=ProcessStatus.IN_PROGRESS,
        )

    async def _complete(self, ctx: RunContext) -> AdvanceResult:
        state = ctx.progress
        with self._tracer.span(
            "calmigrate.orchestrator.complete",
            {ATTR_RUN_ID: str(state.run_id), ATTR_MIGRATION_STATUS: OverallStatus.COMPLETE.value},
        ):
            state.stage = Stage.COMPLETE
            state.overall_status = OverallStatus.COMPLETE

            rebuild = await self._rebuilder.rebuild(ctx)
            await self.hooks.after_rebuild(rebuild)

            state.summary = {
                stage: await self._tracking.count(stage, migrated_only=True)
                for stage in Stage.ordered()
            }
            state.completed_at = datetime.now(UTC)
            # Tracking must outlive the save that marks the run complete
            state.cleanup_pending = True
            await self._save(state)
            await self._clean_up(state)

        entries = await self._errors.list_entries()
        logger.info(
            "Migration run %s complete: %s migrated, %d errors %s",
            state.run_id,
            {stage.value: count for stage, count in state.summary.items()},
            len(entries),
            summarize_errors(entries),
            extra={"run_id": str(state.run_id)},
        )
        return self._build_terminal(state, entries)

    async def _clean_up(self, state: ProgressState) -> None:
        """Drop tracking and per-run counters of a completed run."""
        if self._config.drop_tracking_on_complete:
            await self._tracking.drop_all()
        state.per_stage_processed.clear()
        state.stage_totals.clear()
        state.cleanup_pending = False
        await self._save(state)

    async def _terminal_result(self, state: ProgressState) -> AdvanceResult:
        if state.cleanup_pending:
            logger.warning(
                "Finishing cleanup of completed run %s",
                state.run_id,
                extra={"run_id": str(state.run_id)},
            )
            await self._clean_up(state)
        entries = await self._errors.list_entries()
        return self._build_terminal(state, entries)

    def _build_terminal(self, state: ProgressState, entries: list[Any]) -> AdvanceResult:
        migrated = sum(state.summary.values())
        return AdvanceResult(
            stage=Stage.COMPLETE,
            processed=0,
            progress=migrated,
            total_to_import=migrated,
            status=OverallStatus.COMPLETE,
            process_status=ProcessStatus.COMPLETE,
            errors=tuple(entries),
            error_html=render_error_html(entries) or None,
            summary=dict(state.summary),
        )

    async def _save(self, state: ProgressState) -> None:
        state.updated_at = datetime.now(UTC)
        await self._progress.save(state)


__all__ = ["MigrationOrchestrator"]
