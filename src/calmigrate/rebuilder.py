"""
Relationship rebuild, run once after every entity kind has been migrated.

Two kinds of relationships can only be written once both ends exist:

- Category hierarchy: a category's parent may be migrated after the
  category itself, so parent links are set from the source parent IDs kept
  on the category tracking records.
- Event associations: events are migrated before categories, so category
  and tag associations are attached at the end, with one batched
  set_event_terms() call per event.

References that cannot be resolved are dropped: a category whose parent was
never migrated stays top-level, and unmigrated terms are left off the event.
"""

from __future__ import annotations

import logging
from typing import TYPE_CHECKING

from calmigrate.exceptions import MissingSourceDataError
from calmigrate.models import RebuildResult, RunContext, Stage
from calmigrate.observability import Tracer, create_tracer, traced
from calmigrate.observability.attributes import ATTR_MIGRATION_STAGE, ATTR_RUN_ID
from calmigrate.target.models import TAXONOMY_CATEGORIES, TAXONOMY_TAGS

if TYPE_CHECKING:
    from calmigrate.repositories.tracking import TrackingRepository
    from calmigrate.source.interface import SourceReader
    from calmigrate.target.interface import TargetSink

logger = logging.getLogger(__name__)


class RelationshipRebuilder:
    """
    Restores relationships that cross entity kinds.

    Example:
        >>> rebuilder = RelationshipRebuilder(source, target, tracking)
        >>> result = await rebuilder.rebuild(ctx)
        >>> result.categories_linked
        3
    """

    def __init__(
        self,
        source: SourceReader,
        target: TargetSink,
        tracking: TrackingRepository,
        tracer: Tracer | None = None,
        enable_tracing: bool = True,
    ) -> None:
        """
        Initialize the rebuilder.

        Args:
            source: Source reader
            target: Target sink
            tracking: Tracking repository (must still hold this run's records)
            tracer: Optional tracer for tracing (if not provided, one will be created)
            enable_tracing: Whether to enable OpenTelemetry tracing (default True)
        """
        self._source = source
        self._target = target
        self._tracking = tracking
        self._tracer = tracer or create_tracer(__name__, enable_tracing)

    @traced("calmigrate.rebuilder.rebuild")
    async def rebuild(self, ctx: RunContext) -> RebuildResult:
        """
        Rebuild the category hierarchy and the event associations.

        Args:
            ctx: Context of the completing call

        Returns:
            RebuildResult with counts of what was written
        """
        linked, orphaned = await self.rebuild_category_hierarchy(ctx)
        events_associated, terms_attached = await self.associate_event_terms(ctx)

        result = RebuildResult(
            categories_linked=linked,
            categories_orphaned=orphaned,
            events_associated=events_associated,
            terms_attached=terms_attached,
        )
        logger.info(
            "Rebuilt relationships: %d categories linked, %d left top-level, "
            "%d events associated with %d terms",
            linked,
            orphaned,
            events_associated,
            terms_attached,
            extra={"run_id": str(ctx.run_id)},
        )
        return result

    async def rebuild_category_hierarchy(self, ctx: RunContext) -> tuple[int, int]:
        """
        Set the parent of every migrated category that has one.

        Returns:
            Tuple of (categories linked, categories left top-level)
        """
        linked = 0
        orphaned = 0
        page_size = ctx.config.scan_page_size

        with self._tracer.span(
            "calmigrate.rebuilder.category_hierarchy",
            {ATTR_MIGRATION_STAGE: Stage.CATEGORIES.value, ATTR_RUN_ID: str(ctx.run_id)},
        ):
            offset = 0
            while True:
                records = await self._tracking.list_migrated(
                    Stage.CATEGORIES, limit=page_size, offset=offset
                )
                for record in records:
                    if record.source_parent_id is None or record.target_id is None:
                        continue

                    parent_id = await self._tracking.get_target_id(
                        Stage.CATEGORIES, record.source_parent_id
                    )
                    if parent_id is None or parent_id == record.target_id:
                        logger.debug(
                            "Category %s keeps no parent: parent %s was not migrated",
                            record.source_id,
                            record.source_parent_id,
                        )
                        orphaned += 1
                        continue

                    try:
                        await self._target.set_term_parent(
                            TAXONOMY_CATEGORIES, record.target_id, parent_id
                        )
                    except Exception as e:
                        logger.warning(
                            "Could not link category %s to its parent: %s", record.source_id, e
                        )
                        await ctx.record_error(
                            Stage.CATEGORIES,
                            record.source_id,
                            f"{Stage.CATEGORIES.value} #{record.source_id}",
                            f"could not set parent category: {e}",
                        )
                        orphaned += 1
                        continue
                    linked += 1

                if len(records) < page_size:
                    break
                offset += page_size

        return linked, orphaned

    async def associate_event_terms(self, ctx: RunContext) -> tuple[int, int]:
        """
        Attach migrated categories and tags to every migrated event.

        Returns:
            Tuple of (events associated, term associations written)
        """
        events_associated = 0
        terms_attached = 0
        page_size = ctx.config.scan_page_size

        with self._tracer.span(
            "calmigrate.rebuilder.event_terms",
            {ATTR_MIGRATION_STAGE: Stage.EVENTS.value, ATTR_RUN_ID: str(ctx.run_id)},
        ):
            offset = 0
            while True:
                records = await self._tracking.list_migrated(
                    Stage.EVENTS, limit=page_size, offset=offset
                )
                for record in records:
                    if record.target_id is None:
                        continue
                    try:
                        event = await self._source.get_event(record.source_id)
                    except MissingSourceDataError:
                        event = None
                    if event is None:
                        continue

                    terms: dict[str, list[int]] = {}
                    categories = await self._resolve_all(Stage.CATEGORIES, event.category_ids)
                    if categories:
                        terms[TAXONOMY_CATEGORIES] = categories
                    tags = await self._resolve_all(Stage.TAGS, event.tag_ids)
                    if tags:
                        terms[TAXONOMY_TAGS] = tags
                    if not terms:
                        continue

                    try:
                        await self._target.set_event_terms(record.target_id, terms)
                    except Exception as e:
                        logger.warning(
                            "Could not attach terms to event %s: %s", record.source_id, e
                        )
                        await ctx.record_error(
                            Stage.EVENTS,
                            record.source_id,
                            event.title,
                            f"could not attach categories and tags: {e}",
                        )
                        continue
                    events_associated += 1
                    terms_attached += sum(len(ids) for ids in terms.values())

                if len(records) < page_size:
                    break
                offset += page_size

        return events_associated, terms_attached

    async def _resolve_all(self, kind: Stage, source_ids: tuple[int, ...]) -> list[int]:
        resolved: list[int] = []
        for source_id in source_ids:
            target_id = await self._tracking.get_target_id(kind, source_id)
            if target_id is None:
                logger.debug("Dropping unmigrated %s %s from event terms", kind.value, source_id)
            elif target_id not in resolved:
                resolved.append(target_id)
        return resolved


__all__ = ["RelationshipRebuilder"]
