"""
Base class for stage processors.

A stage processor migrates one bounded batch of one entity kind per call:

1. Select up to ``batch_size`` source rows that have no tracking record,
   scanning source IDs in ascending pages. Stale claims left behind by a
   crashed call are handled first, according to the stage's claim policy.
2. Claim each row in the tracking store. A lost claim (another call got
   there first) is ignored.
3. Transform the row (source reads and reference resolution) and write it
   to the target sink.
4. Confirm the claim on success. A RowSkipped outcome marks the row as
   migrated-but-skipped; a row-level failure is written to the error log and
   leaves a terminal skip marker.

Any exception raised while transforming or writing a row is a failure of
that row and never aborts the batch. Failures of claim, confirm and skip
bookkeeping propagate and abort the call; the claim protocol makes the
retry safe, and the orchestrator does not complete a run while claims are
still open.
"""

from __future__ import annotations

import logging
from abc import ABC, abstractmethod
from dataclasses import dataclass
from datetime import UTC, datetime, timedelta
from typing import TYPE_CHECKING, Any, ClassVar, Generic, TypeVar

from calmigrate.config import ClaimPolicy
from calmigrate.exceptions import (
    MissingSourceDataError,
    RowMigrationError,
    RowSkipped,
    TargetWriteError,
    UnresolvedReferenceError,
)
from calmigrate.hooks import MigrationHooks
from calmigrate.models import BatchResult, RunContext, Stage
from calmigrate.observability import Tracer, create_tracer
from calmigrate.observability.attributes import (
    ATTR_BATCH_SIZE,
    ATTR_MIGRATION_STAGE,
    ATTR_RUN_ID,
)

if TYPE_CHECKING:
    from calmigrate.repositories.tracking import TrackingRepository
    from calmigrate.source.interface import SourceReader
    from calmigrate.target.interface import TargetSink

logger = logging.getLogger(__name__)

PayloadT = TypeVar("PayloadT")

INTERRUPTED_MESSAGE = "interrupted before confirmation"

# Every unconfirmed claim was made before this instant
OPEN_CLAIM_CUTOFF = datetime.max.replace(tzinfo=UTC)


@dataclass(frozen=True)
class PreparedRow(Generic[PayloadT]):
    """
    A transformed row, ready to be written.

    Attributes:
        source_id: Source-native identifier
        label: Human readable label used in the error log
        payload: Stage specific data passed to write()
    """

    source_id: int
    label: str
    payload: PayloadT


@dataclass(frozen=True)
class RowOutcome:
    """
    Result of a successful write.

    Attributes:
        target_id: Identifier the target assigned (or reused)
        source_parent_id: Source parent ID to keep for the rebuild
    """

    target_id: int
    source_parent_id: int | None = None


class StageProcessor(ABC, Generic[PayloadT]):
    """
    Abstract base for the per-kind stage processors.

    Subclasses set ``stage`` and implement transform() and write().
    transform() may read the source and resolve references through the
    tracking store; write() should only call the target sink. Any exception
    raised by either is recorded as a failure of that row.
    """

    stage: ClassVar[Stage]

    def __init__(
        self,
        source: SourceReader,
        target: TargetSink,
        tracking: TrackingRepository,
        hooks: MigrationHooks | None = None,
        tracer: Tracer | None = None,
        enable_tracing: bool = True,
    ) -> None:
        """
        Initialize the stage processor.

        Args:
            source: Source reader
            target: Target sink
            tracking: Tracking repository
            hooks: Callback registry (before_transform is run per row)
            tracer: Optional tracer for tracing (if not provided, one will be created)
            enable_tracing: Whether to enable OpenTelemetry tracing (default True)
        """
        self._source = source
        self._target = target
        self._tracking = tracking
        self._hooks = hooks or MigrationHooks()
        self._tracer = tracer or create_tracer(__name__, enable_tracing)

    @abstractmethod
    async def transform(self, ctx: RunContext, source_id: int) -> PreparedRow[PayloadT]:
        """
        Read a source row and build what will be written.

        Raises:
            RowMigrationError: If the row cannot be migrated
            RowSkipped: If the row should be marked migrated without a write
        """
        ...

    @abstractmethod
    async def write(self, ctx: RunContext, prepared: PreparedRow[PayloadT]) -> RowOutcome:
        """
        Write a prepared row to the target sink.

        Raises:
            RowSkipped: If the target already holds equivalent data
        """
        ...

    async def count_total(self) -> int:
        """Number of source rows of this kind."""
        return await self._source.count(self.stage)

    async def has_work(self, ctx: RunContext) -> bool:
        """
        Check whether a call to process_batch() would find anything to do.

        Returns:
            True if a source row has no tracking record or a stale claim
            is waiting to be handled
        """
        if await self._select_untracked(1, ctx.config.scan_page_size):
            return True
        stale = await self._tracking.list_stale_claims(
            self.stage, self._stale_cutoff(ctx), limit=1
        )
        return bool(stale)

    async def has_open_claims(self) -> bool:
        """Check whether any row of this kind is claimed but not yet confirmed."""
        claims = await self._tracking.list_stale_claims(self.stage, OPEN_CLAIM_CUTOFF, limit=1)
        return bool(claims)

    async def count_pending(self, ctx: RunContext) -> int:
        """Count source rows that have no tracking record yet."""
        pending = 0
        after_id: int | None = None
        page_size = ctx.config.scan_page_size
        while True:
            page = await self._source.list_ids(self.stage, after_id=after_id, limit=page_size)
            if not page:
                break
            tracked = await self._tracking.find_tracked_ids(self.stage, page)
            pending += len(page) - len(tracked)
            if len(page) < page_size:
                break
            after_id = page[-1]
        return pending

    async def process_batch(self, ctx: RunContext, batch_size: int) -> BatchResult:
        """
        Migrate one bounded batch of rows.

        Args:
            ctx: Context of the current call
            batch_size: Maximum number of rows to claim

        Returns:
            BatchResult; ``processed`` counts every row this call claimed
        """
        with self._tracer.span(
            f"calmigrate.stage.{self.stage.value}.process_batch",
            {
                ATTR_MIGRATION_STAGE: self.stage.value,
                ATTR_BATCH_SIZE: batch_size,
                ATTR_RUN_ID: str(ctx.run_id),
            },
        ):
            owned, stale_skipped = await self._take_stale_claims(ctx, batch_size)

            remaining = batch_size - len(owned)
            if remaining > 0:
                for source_id in await self._select_untracked(
                    remaining, ctx.config.scan_page_size
                ):
                    if await self._tracking.claim(self.stage, source_id):
                        owned.append(source_id)
                    else:
                        logger.debug(
                            "Lost claim on %s %s to a concurrent call",
                            self.stage.value,
                            source_id,
                        )

            migrated = skipped = failed = 0
            for source_id in owned:
                outcome = await self._process_row(ctx, source_id)
                if outcome == "migrated":
                    migrated += 1
                elif outcome == "skipped":
                    skipped += 1
                else:
                    failed += 1

            result = BatchResult(
                stage=self.stage,
                processed=len(owned),
                migrated=migrated,
                skipped=skipped,
                failed=failed,
                stale_skipped=stale_skipped,
            )
            logger.debug(
                "Processed %s batch: %d claimed, %d migrated, %d skipped, %d failed",
                self.stage.value,
                result.processed,
                result.migrated,
                result.skipped,
                result.failed,
                extra={"run_id": str(ctx.run_id), "stage": self.stage.value},
            )
            return result

    async def _take_stale_claims(self, ctx: RunContext, batch_size: int) -> tuple[list[int], int]:
        """
        Apply the stage's claim policy to abandoned claims.

        Returns:
            Source IDs re-owned by this call (retry policy) and the number of
            claims turned into skip markers (count-as-done policy)
        """
        cutoff = self._stale_cutoff(ctx)
        policy = ctx.config.claim_policy_for(self.stage)
        owned: list[int] = []
        stale_skipped = 0

        if policy is ClaimPolicy.RETRY:
            stale = await self._tracking.list_stale_claims(self.stage, cutoff, limit=batch_size)
            for record in stale:
                if await self._tracking.reclaim(self.stage, record.source_id, cutoff):
                    logger.warning(
                        "Retrying %s %s after an abandoned claim",
                        self.stage.value,
                        record.source_id,
                    )
                    owned.append(record.source_id)
            return owned, stale_skipped

        stale = await self._tracking.list_stale_claims(
            self.stage, cutoff, limit=ctx.config.scan_page_size
        )
        for record in stale:
            await self._tracking.mark_skipped(self.stage, record.source_id, INTERRUPTED_MESSAGE)
            await ctx.record_error(
                self.stage,
                record.source_id,
                f"{self.stage.value} #{record.source_id}",
                INTERRUPTED_MESSAGE,
            )
            logger.warning(
                "Skipping %s %s: %s",
                self.stage.value,
                record.source_id,
                INTERRUPTED_MESSAGE,
            )
            stale_skipped += 1
        return owned, stale_skipped

    async def _process_row(self, ctx: RunContext, source_id: int) -> str:
        await self._hooks.before_transform(self.stage, source_id)

        try:
            prepared = await self.transform(ctx, source_id)
        except RowSkipped as e:
            await self._skip(source_id, e.reason)
            return "skipped"
        except RowMigrationError as e:
            await self._fail(ctx, source_id, e.label, e.message)
            return "failed"
        except Exception as e:
            logger.warning(
                "Could not transform %s %s: %s",
                self.stage.value,
                source_id,
                e,
                exc_info=True,
            )
            label = f"{self.stage.value} #{source_id}"
            await self._fail(ctx, source_id, label, f"transform failed: {e}")
            return "failed"

        try:
            outcome = await self.write(ctx, prepared)
        except RowSkipped as e:
            await self._skip(source_id, e.reason)
            return "skipped"
        except RowMigrationError as e:
            await self._fail(ctx, source_id, prepared.label, e.message)
            return "failed"
        except Exception as e:
            logger.warning(
                "Target rejected %s %s: %s",
                self.stage.value,
                source_id,
                e,
                exc_info=True,
            )
            error = TargetWriteError(
                self.stage, source_id, f"target write failed: {e}", label=prepared.label
            )
            await self._fail(ctx, source_id, error.label, error.message)
            return "failed"

        await self._tracking.confirm(
            self.stage,
            source_id,
            outcome.target_id,
            source_parent_id=outcome.source_parent_id,
        )
        return "migrated"

    async def _skip(self, source_id: int, reason: str) -> None:
        logger.info("Skipping %s %s: %s", self.stage.value, source_id, reason)
        await self._tracking.mark_skipped(self.stage, source_id, reason, migrated=True)

    async def _fail(self, ctx: RunContext, source_id: int, label: str, message: str) -> None:
        logger.warning("Failed to migrate %s %s: %s", self.stage.value, source_id, message)
        await ctx.record_error(self.stage, source_id, label, message)
        await self._tracking.mark_skipped(self.stage, source_id, message)

    async def _select_untracked(self, limit: int, page_size: int) -> list[int]:
        selected: list[int] = []
        after_id: int | None = None
        while len(selected) < limit:
            page = await self._source.list_ids(self.stage, after_id=after_id, limit=page_size)
            if not page:
                break
            tracked = await self._tracking.find_tracked_ids(self.stage, page)
            selected.extend(source_id for source_id in page if source_id not in tracked)
            if len(page) < page_size:
                break
            after_id = page[-1]
        return selected[:limit]

    def _stale_cutoff(self, ctx: RunContext) -> datetime:
        return datetime.now(UTC) - timedelta(seconds=ctx.config.stale_claim_seconds)

    def _missing(self, source_id: int) -> MissingSourceDataError:
        return MissingSourceDataError(self.stage, source_id, "source row no longer exists")

    async def _resolve(
        self,
        source_id: int,
        ref_kind: Stage,
        ref_id: int,
        label: str | None = None,
    ) -> int:
        """
        Resolve a referenced source row to its target ID.

        Raises:
            UnresolvedReferenceError: If the reference has no migrated record
        """
        target_id = await self._tracking.get_target_id(ref_kind, ref_id)
        if target_id is None:
            raise UnresolvedReferenceError(self.stage, source_id, ref_kind, ref_id, label=label)
        return target_id


def describe(value: Any, fallback: str) -> str:
    """Return a non-empty label for the error log."""
    text = str(value).strip() if value is not None else ""
    return text or fallback


__all__ = [
    "INTERRUPTED_MESSAGE",
    "PreparedRow",
    "RowOutcome",
    "StageProcessor",
    "describe",
]
