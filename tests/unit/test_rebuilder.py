"""
Tests for RelationshipRebuilder.

Tracking records and target terms are written directly so each test only
sets up the relationships it checks.
"""

from __future__ import annotations

from collections.abc import Callable
from datetime import UTC, datetime
from typing import Any

import pytest

from calmigrate.config import MigrationConfig
from calmigrate.models import ProgressState, RunContext, Stage
from calmigrate.observability import MockTracer
from calmigrate.rebuilder import RelationshipRebuilder
from calmigrate.repositories.error_log import InMemoryErrorLogRepository
from calmigrate.repositories.tracking import InMemoryTrackingRepository
from calmigrate.source import InMemorySourceReader
from calmigrate.target import (
    TAXONOMY_CATEGORIES,
    TAXONOMY_TAGS,
    InMemoryTargetSink,
    TargetEvent,
    TargetTerm,
)

RowFactory = Callable[..., dict[str, Any]]


@pytest.fixture
def rebuilder(
    source: InMemorySourceReader,
    target: InMemoryTargetSink,
    tracking: InMemoryTrackingRepository,
) -> RelationshipRebuilder:
    """Rebuilder over the in-memory components."""
    return RelationshipRebuilder(source, target, tracking, enable_tracing=False)


async def _category(
    target: InMemoryTargetSink,
    tracking: InMemoryTrackingRepository,
    source_id: int,
    parent: int | None = None,
) -> int:
    target_id = await target.create_term(
        TargetTerm(taxonomy=TAXONOMY_CATEGORIES, name=f"C{source_id}", slug=f"c{source_id}")
    )
    await tracking.confirm(Stage.CATEGORIES, source_id, target_id, source_parent_id=parent)
    return target_id


async def _tag(
    target: InMemoryTargetSink, tracking: InMemoryTrackingRepository, source_id: int
) -> int:
    target_id = await target.create_term(
        TargetTerm(taxonomy=TAXONOMY_TAGS, name=f"T{source_id}", slug=f"t{source_id}")
    )
    await tracking.confirm(Stage.TAGS, source_id, target_id)
    return target_id


async def _event(
    source: InMemorySourceReader,
    target: InMemoryTargetSink,
    tracking: InMemoryTrackingRepository,
    row: dict[str, Any],
) -> int:
    source.add(Stage.EVENTS, row)
    now = datetime.now(UTC)
    target_id = await target.create_event(TargetEvent(title=row["title"], start=now, end=now))
    await tracking.confirm(Stage.EVENTS, row["id"], target_id)
    return target_id


class TestCategoryHierarchy:
    """Tests for rebuild_category_hierarchy()."""

    async def test_links_children_to_parents(
        self,
        rebuilder: RelationshipRebuilder,
        target: InMemoryTargetSink,
        tracking: InMemoryTrackingRepository,
        run_context: RunContext,
    ) -> None:
        """Parents migrated after their children are still linked."""
        child = await _category(target, tracking, 2, parent=1)
        parent = await _category(target, tracking, 1)

        linked, orphaned = await rebuilder.rebuild_category_hierarchy(run_context)

        assert (linked, orphaned) == (1, 0)
        assert target.terms[TAXONOMY_CATEGORIES][child].parent_id == parent
        assert target.terms[TAXONOMY_CATEGORIES][parent].parent_id is None

    async def test_dangling_parent_stays_top_level(
        self,
        rebuilder: RelationshipRebuilder,
        target: InMemoryTargetSink,
        tracking: InMemoryTrackingRepository,
        run_context: RunContext,
        error_log: InMemoryErrorLogRepository,
    ) -> None:
        orphan = await _category(target, tracking, 3, parent=99)

        linked, orphaned = await rebuilder.rebuild_category_hierarchy(run_context)

        assert (linked, orphaned) == (0, 1)
        assert target.terms[TAXONOMY_CATEGORIES][orphan].parent_id is None
        assert await error_log.count() == 0

    async def test_skipped_parent_is_not_resolved(
        self,
        rebuilder: RelationshipRebuilder,
        target: InMemoryTargetSink,
        tracking: InMemoryTrackingRepository,
        run_context: RunContext,
    ) -> None:
        await _category(target, tracking, 2, parent=1)
        await tracking.mark_skipped(Stage.CATEGORIES, 1, "failed")

        assert await rebuilder.rebuild_category_hierarchy(run_context) == (0, 1)

    async def test_parent_mapping_to_itself_is_ignored(
        self,
        rebuilder: RelationshipRebuilder,
        target: InMemoryTargetSink,
        tracking: InMemoryTrackingRepository,
        run_context: RunContext,
    ) -> None:
        """Two source categories deduplicated onto one term cannot parent it."""
        shared = await _category(target, tracking, 1)
        await tracking.confirm(Stage.CATEGORIES, 2, shared, source_parent_id=1)

        assert await rebuilder.rebuild_category_hierarchy(run_context) == (0, 1)
        assert target.call_counts["set_term_parent"] == 0

    async def test_sink_failure_is_logged(
        self,
        rebuilder: RelationshipRebuilder,
        target: InMemoryTargetSink,
        tracking: InMemoryTrackingRepository,
        run_context: RunContext,
        error_log: InMemoryErrorLogRepository,
    ) -> None:
        await _category(target, tracking, 1)
        await _category(target, tracking, 2, parent=1)
        target.fail_on("set_term_parent")

        linked, orphaned = await rebuilder.rebuild_category_hierarchy(run_context)

        assert (linked, orphaned) == (0, 1)
        [entry] = await error_log.list_entries()
        assert entry.context == "categories"
        assert entry.source_id == 2
        assert entry.message.startswith("could not set parent category")

    async def test_pages_through_records(
        self,
        rebuilder: RelationshipRebuilder,
        target: InMemoryTargetSink,
        tracking: InMemoryTrackingRepository,
        error_log: InMemoryErrorLogRepository,
    ) -> None:
        await _category(target, tracking, 1)
        for source_id in range(2, 8):
            await _category(target, tracking, source_id, parent=1)
        ctx = RunContext(
            progress=ProgressState(),
            config=MigrationConfig(scan_page_size=2),
            errors=error_log,
        )

        assert await rebuilder.rebuild_category_hierarchy(ctx) == (6, 0)


class TestEventTerms:
    """Tests for associate_event_terms()."""

    async def test_attaches_categories_and_tags(
        self,
        rebuilder: RelationshipRebuilder,
        source: InMemorySourceReader,
        target: InMemoryTargetSink,
        tracking: InMemoryTrackingRepository,
        run_context: RunContext,
        event_row: RowFactory,
    ) -> None:
        category = await _category(target, tracking, 1)
        tag_a = await _tag(target, tracking, 5)
        tag_b = await _tag(target, tracking, 6)
        event_id = await _event(
            source, target, tracking, event_row(10, category_ids=[1], tag_ids=[5, 6])
        )

        associated, attached = await rebuilder.associate_event_terms(run_context)

        assert (associated, attached) == (1, 3)
        assert target.event_terms[event_id] == {
            TAXONOMY_CATEGORIES: [category],
            TAXONOMY_TAGS: [tag_a, tag_b],
        }

    async def test_one_call_per_event(
        self,
        rebuilder: RelationshipRebuilder,
        source: InMemorySourceReader,
        target: InMemoryTargetSink,
        tracking: InMemoryTrackingRepository,
        run_context: RunContext,
        event_row: RowFactory,
    ) -> None:
        await _category(target, tracking, 1)
        await _tag(target, tracking, 5)
        for event_id in (10, 11):
            row = event_row(event_id, category_ids=[1], tag_ids=[5])
            await _event(source, target, tracking, row)

        await rebuilder.associate_event_terms(run_context)

        assert target.call_counts["set_event_terms"] == 2

    async def test_unmigrated_terms_are_dropped(
        self,
        rebuilder: RelationshipRebuilder,
        source: InMemorySourceReader,
        target: InMemoryTargetSink,
        tracking: InMemoryTrackingRepository,
        run_context: RunContext,
        event_row: RowFactory,
    ) -> None:
        tag = await _tag(target, tracking, 5)
        event_id = await _event(
            source, target, tracking, event_row(10, category_ids=[1], tag_ids=[5, 7])
        )

        assert await rebuilder.associate_event_terms(run_context) == (1, 1)
        assert target.event_terms[event_id] == {TAXONOMY_TAGS: [tag]}

    async def test_duplicate_targets_are_collapsed(
        self,
        rebuilder: RelationshipRebuilder,
        source: InMemorySourceReader,
        target: InMemoryTargetSink,
        tracking: InMemoryTrackingRepository,
        run_context: RunContext,
        event_row: RowFactory,
    ) -> None:
        tag = await _tag(target, tracking, 5)
        await tracking.confirm(Stage.TAGS, 6, tag)
        event_id = await _event(source, target, tracking, event_row(10, tag_ids=[5, 6]))

        await rebuilder.associate_event_terms(run_context)

        assert target.event_terms[event_id] == {TAXONOMY_TAGS: [tag]}

    async def test_events_without_terms_are_untouched(
        self,
        rebuilder: RelationshipRebuilder,
        source: InMemorySourceReader,
        target: InMemoryTargetSink,
        tracking: InMemoryTrackingRepository,
        run_context: RunContext,
        event_row: RowFactory,
    ) -> None:
        await _event(source, target, tracking, event_row(10))

        assert await rebuilder.associate_event_terms(run_context) == (0, 0)
        assert target.call_counts["set_event_terms"] == 0

    async def test_deleted_source_event_is_skipped(
        self,
        rebuilder: RelationshipRebuilder,
        source: InMemorySourceReader,
        target: InMemoryTargetSink,
        tracking: InMemoryTrackingRepository,
        run_context: RunContext,
        event_row: RowFactory,
    ) -> None:
        await _tag(target, tracking, 5)
        await _event(source, target, tracking, event_row(10, tag_ids=[5]))
        source.remove(Stage.EVENTS, 10)

        assert await rebuilder.associate_event_terms(run_context) == (0, 0)

    async def test_sink_failure_is_logged(
        self,
        rebuilder: RelationshipRebuilder,
        source: InMemorySourceReader,
        target: InMemoryTargetSink,
        tracking: InMemoryTrackingRepository,
        run_context: RunContext,
        error_log: InMemoryErrorLogRepository,
        event_row: RowFactory,
    ) -> None:
        await _tag(target, tracking, 5)
        await _event(source, target, tracking, event_row(10, title="Gala", tag_ids=[5]))
        target.fail_on("set_event_terms")

        assert await rebuilder.associate_event_terms(run_context) == (0, 0)
        [entry] = await error_log.list_entries()
        assert entry.label == "Gala"
        assert entry.context == "events"


class TestRebuild:
    """Tests for rebuild()."""

    async def test_combines_both_passes(
        self,
        rebuilder: RelationshipRebuilder,
        source: InMemorySourceReader,
        target: InMemoryTargetSink,
        tracking: InMemoryTrackingRepository,
        run_context: RunContext,
        event_row: RowFactory,
    ) -> None:
        await _category(target, tracking, 1)
        await _category(target, tracking, 2, parent=1)
        await _category(target, tracking, 3, parent=42)
        await _event(source, target, tracking, event_row(10, category_ids=[1, 2]))

        result = await rebuilder.rebuild(run_context)

        assert result.categories_linked == 1
        assert result.categories_orphaned == 1
        assert result.events_associated == 1
        assert result.terms_attached == 2

    async def test_spans(
        self,
        source: InMemorySourceReader,
        target: InMemoryTargetSink,
        tracking: InMemoryTrackingRepository,
        run_context: RunContext,
    ) -> None:
        tracer = MockTracer()
        rebuilder = RelationshipRebuilder(source, target, tracking, tracer=tracer)

        await rebuilder.rebuild(run_context)

        assert tracer.span_names == [
            "calmigrate.rebuilder.rebuild",
            "calmigrate.rebuilder.category_hierarchy",
            "calmigrate.rebuilder.event_terms",
        ]
