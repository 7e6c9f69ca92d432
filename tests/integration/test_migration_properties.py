"""
End-to-end properties of a migration run over the in-memory harness.

Tests for:
- Full runs over a realistic data set
- Batch coverage per stage
- Idempotence of repeated and overlapping calls
- Resuming after an interrupted call
- Error logging for unresolved references
- Category hierarchy rebuild
- Reset and the terminal response
"""

from __future__ import annotations

import asyncio
import dataclasses
from collections.abc import Callable
from datetime import UTC, datetime, timedelta
from typing import Any

import pytest

from calmigrate.config import ClaimPolicy, MigrationConfig
from calmigrate.models import Stage
from calmigrate.stages.base import INTERRUPTED_MESSAGE
from calmigrate.target import TAXONOMY_CATEGORIES, TAXONOMY_TAGS
from calmigrate.testing import InMemoryMigrationHarness

RowFactory = Callable[..., dict[str, Any]]


@pytest.fixture
def populated(
    harness: InMemoryMigrationHarness,
    venue_row: RowFactory,
    term_row: RowFactory,
    event_row: RowFactory,
    ticket_row: RowFactory,
    order_row: RowFactory,
    attendee_row: RowFactory,
) -> InMemoryMigrationHarness:
    """Harness loaded with a small but complete calendar."""
    source = harness.source
    source.add_many(Stage.VENUES, [venue_row(i) for i in range(1, 4)])
    source.add_many(Stage.TAGS, [term_row(i, name=f"Tag {i}") for i in range(1, 6)])
    source.add_many(
        Stage.CATEGORIES,
        [term_row(1, name="Arts"), term_row(2, name="Music", parent_id=1)],
    )
    source.add_many(
        Stage.EVENTS,
        [
            event_row(i, venue_id=(i % 3) + 1, category_ids=[2], tag_ids=[1, 2])
            for i in range(1, 13)
        ],
    )
    source.add_many(Stage.TICKETS, [ticket_row(i, event_id=i) for i in range(1, 13)])
    source.add_many(Stage.ORDERS, [order_row(i, event_id=i) for i in range(1, 13)])
    source.add_many(Stage.ATTENDEES, [attendee_row(i, order_id=i) for i in range(1, 13)])
    return harness


async def _age_claim(harness: InMemoryMigrationHarness, kind: Stage, source_id: int) -> None:
    record = await harness.tracking.get(kind, source_id)
    assert record is not None
    harness.tracking._records[kind][source_id] = dataclasses.replace(
        record, claimed_at=datetime.now(UTC) - timedelta(hours=1)
    )


class TestFullRun:
    """A complete run over every entity kind."""

    async def test_everything_is_migrated(self, populated: InMemoryMigrationHarness) -> None:
        results = await populated.run_to_completion()

        final = results[-1]
        assert final.summary == {
            Stage.VENUES: 3,
            Stage.TAGS: 5,
            Stage.EVENTS: 12,
            Stage.CATEGORIES: 2,
            Stage.TICKETS: 12,
            Stage.ORDERS: 12,
            Stage.ATTENDEES: 12,
        }
        assert final.errors == ()
        target = populated.target
        assert len(target.venues) == 3
        assert len(target.events) == 12
        assert len(target.event_tickets) == 12
        assert len(target.orders) == 12
        assert len(target.attendees) == 12
        assert len(target.ticket_holders) == 12

    async def test_events_reference_migrated_venues(
        self, populated: InMemoryMigrationHarness
    ) -> None:
        await populated.run_to_completion()

        venue_ids = set(populated.target.venues)
        assert all(event.venue_id in venue_ids for event in populated.target.events.values())

    async def test_batch_coverage(
        self,
        harness: InMemoryMigrationHarness,
        event_row: RowFactory,
    ) -> None:
        """A stage of N rows at batch size B takes ceil(N / B) calls."""
        harness.source.add_many(Stage.EVENTS, [event_row(i) for i in range(1, 26)])

        results = await harness.run_to_completion()

        events = harness.results_for(results, Stage.EVENTS)
        assert [r.processed for r in events] == [10, 10, 5]
        assert [r.progress for r in events] == [10, 20, 25]
        assert events[-1].process_status.value == "complete"

    async def test_stage_order(self, populated: InMemoryMigrationHarness) -> None:
        results = await populated.run_to_completion()

        stages = list(dict.fromkeys(r.stage for r in results))
        assert stages == [*Stage.ordered(), Stage.COMPLETE]


class TestIdempotence:
    """Repeated and overlapping calls never duplicate target data."""

    async def test_calls_after_completion_write_nothing(
        self, populated: InMemoryMigrationHarness
    ) -> None:
        await populated.run_to_completion()
        writes = sum(populated.target.call_counts.values())

        for _ in range(3):
            result = await populated.orchestrator.advance()
            assert result.is_complete

        assert sum(populated.target.call_counts.values()) == writes

    async def test_overlapping_orchestrators(
        self,
        harness: InMemoryMigrationHarness,
        event_row: RowFactory,
    ) -> None:
        """Two callers working the same stage claim disjoint rows."""
        harness.source.add_many(Stage.EVENTS, [event_row(i) for i in range(1, 26)])
        other = harness.create_orchestrator()

        first, second = await asyncio.gather(harness.orchestrator.advance(), other.advance())
        results = await harness.run_to_completion()

        assert first.processed + second.processed == 20
        assert len(harness.target.events) == 25
        titles = [event.title for event in harness.target.events.values()]
        assert len(set(titles)) == 25
        assert results[-1].summary[Stage.EVENTS] == 25

    async def test_new_rows_after_stage_finished(
        self,
        harness: InMemoryMigrationHarness,
        venue_row: RowFactory,
        event_row: RowFactory,
    ) -> None:
        """Rows appearing later are picked up before the run completes."""
        harness.source.add(Stage.VENUES, venue_row(1))
        harness.source.add(Stage.EVENTS, event_row(1))
        await harness.orchestrator.advance()

        harness.source.add(Stage.VENUES, venue_row(2))
        results = await harness.run_to_completion()

        assert len(harness.target.venues) == 2
        assert results[-1].summary[Stage.VENUES] == 2


class TestResume:
    """Resuming after a call died between claim and confirm."""

    async def test_stale_claims_follow_stage_policy(
        self,
        harness: InMemoryMigrationHarness,
        venue_row: RowFactory,
        event_row: RowFactory,
    ) -> None:
        harness.source.add_many(Stage.VENUES, [venue_row(1), venue_row(2)])
        harness.source.add_many(Stage.EVENTS, [event_row(1), event_row(2)])
        await harness.tracking.claim(Stage.VENUES, 1)
        await harness.tracking.claim(Stage.EVENTS, 2)
        await _age_claim(harness, Stage.VENUES, 1)
        await _age_claim(harness, Stage.EVENTS, 2)

        final = (await harness.run_to_completion())[-1]

        assert final.summary[Stage.VENUES] == 2
        assert final.summary[Stage.EVENTS] == 1
        [entry] = final.errors
        assert (entry.context, entry.source_id) == ("events", 2)
        assert entry.message == INTERRUPTED_MESSAGE

    async def test_young_claims_are_left_alone(
        self,
        harness: InMemoryMigrationHarness,
        venue_row: RowFactory,
    ) -> None:
        """A claim that may belong to a running call is not taken over."""
        harness.source.add_many(Stage.VENUES, [venue_row(1), venue_row(2)])
        await harness.tracking.claim(Stage.VENUES, 1)

        result = await harness.orchestrator.advance()

        assert result.processed == 1
        assert list(harness.target.venues.values())[0].name == "Venue 2"

    async def test_retry_policy_for_events(
        self,
        event_row: RowFactory,
    ) -> None:
        config = MigrationConfig(
            batch_sizes={Stage.EVENTS: 10},
            claim_policies={Stage.EVENTS: ClaimPolicy.RETRY},
        )
        harness = InMemoryMigrationHarness(config)
        harness.source.add(Stage.EVENTS, event_row(1))
        await harness.tracking.claim(Stage.EVENTS, 1)
        await _age_claim(harness, Stage.EVENTS, 1)

        final = (await harness.run_to_completion())[-1]

        assert final.summary[Stage.EVENTS] == 1
        assert final.errors == ()


class TestErrorLog:
    """Rows that cannot be migrated end up in the error log."""

    async def test_events_with_unmapped_venues(
        self,
        harness: InMemoryMigrationHarness,
        venue_row: RowFactory,
        event_row: RowFactory,
    ) -> None:
        harness.source.add(Stage.VENUES, venue_row(1))
        harness.source.add_many(
            Stage.EVENTS,
            [event_row(i, venue_id=1 if i % 4 else 99) for i in range(1, 21)],
        )

        final = (await harness.run_to_completion())[-1]

        assert len(final.errors) == 5
        assert {entry.context for entry in final.errors} == {"events"}
        assert all("venues 99" in entry.message for entry in final.errors)
        assert final.summary[Stage.EVENTS] == 15

    async def test_order_for_unmigrated_event_is_not_retried(
        self,
        harness: InMemoryMigrationHarness,
        event_row: RowFactory,
        order_row: RowFactory,
    ) -> None:
        harness.source.add(Stage.EVENTS, event_row(1))
        harness.source.add_many(Stage.ORDERS, [order_row(1, event_id=1), order_row(2, event_id=42)])

        results = await harness.run_to_completion()

        orders = harness.results_for(results, Stage.ORDERS)
        assert sum(r.processed for r in orders) == 2
        [entry] = results[-1].errors
        assert (entry.context, entry.source_id, entry.label) == ("orders", 2, "Order #2")
        assert len(harness.target.orders) == 1

    async def test_failing_target_writes_are_logged(
        self,
        harness: InMemoryMigrationHarness,
        venue_row: RowFactory,
    ) -> None:
        harness.source.add_many(Stage.VENUES, [venue_row(1), venue_row(2, name="Broken")])
        harness.target.fail_on("create_venue", lambda venue: venue.name == "Broken")

        final = (await harness.run_to_completion())[-1]

        [entry] = final.errors
        assert entry.label == "Broken"
        assert entry.message.startswith("target write failed")
        assert final.error_html is not None

    async def test_garbled_recurrence_does_not_lose_the_batch(
        self,
        harness: InMemoryMigrationHarness,
        event_row: RowFactory,
    ) -> None:
        """A recurrence that cannot be translated still migrates one occurrence."""
        events = [event_row(i) for i in range(1, 7)]
        events[1]["recurrence"] = {"type": "Monthly", "number": "--1"}
        harness.source.add_many(Stage.EVENTS, events)

        final = (await harness.run_to_completion())[-1]

        assert final.summary[Stage.EVENTS] == 6
        assert final.errors == ()
        [garbled] = [e for e in harness.target.events.values() if e.title == "Event 2"]
        assert garbled.recurrence is None


class TestRelationships:
    """The relationship rebuild that runs once at completion."""

    async def test_category_hierarchy(
        self,
        harness: InMemoryMigrationHarness,
        term_row: RowFactory,
    ) -> None:
        """Parents resolve whatever order categories migrated in."""
        harness.source.add_many(
            Stage.CATEGORIES,
            [
                term_row(2, name="B", slug="b", parent_id=1),
                term_row(1, name="A", slug="a"),
                term_row(3, name="C", slug="c", parent_id=77),
            ],
        )

        await harness.run_to_completion()

        terms = {term.slug: term for term in harness.target.terms[TAXONOMY_CATEGORIES].values()}
        a_id = await harness.target.find_term_by_slug(TAXONOMY_CATEGORIES, "a")
        assert terms["b"].parent_id == a_id
        assert terms["a"].parent_id is None
        assert terms["c"].parent_id is None

    async def test_event_terms(self, populated: InMemoryMigrationHarness) -> None:
        await populated.run_to_completion()

        for terms in populated.target.event_terms.values():
            assert len(terms[TAXONOMY_CATEGORIES]) == 1
            assert len(terms[TAXONOMY_TAGS]) == 2
        assert len(populated.target.event_terms) == 12


class TestResetAndResponse:
    """Reset and the payload returned to the polling caller."""

    async def test_reset_starts_over(self, populated: InMemoryMigrationHarness) -> None:
        """Target data from the earlier generation is left in place."""
        await populated.run_to_completion()

        await populated.orchestrator.reset()
        detection = await populated.orchestrator.detect()
        results = await populated.run_to_completion()

        assert detection.possible
        assert results[-1].summary[Stage.VENUES] == 3
        assert len(populated.target.venues) == 6

    async def test_terminal_response(
        self,
        harness: InMemoryMigrationHarness,
        venue_row: RowFactory,
        event_row: RowFactory,
    ) -> None:
        harness.source.add(Stage.VENUES, venue_row(1))
        harness.source.add(Stage.EVENTS, event_row(7, title="Gala", venue_id=3))

        response = (await harness.run_to_completion())[-1].to_response()

        assert response["process"] == "complete"
        assert response["status"] == "complete"
        assert response["process_status"] == "complete"
        assert response["progress"] == 1
        assert response["total_number_to_import"] == 1
        assert response["summary"]["venues"] == 1
        assert response["summary"]["events"] == 0
        [error] = response["errors"]
        assert error["id"] == 7
        assert error["label"] == "Gala"
        assert "Gala" in response["error_html"]
