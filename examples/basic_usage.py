"""
Basic Usage Example

This example demonstrates a complete migration run:
- Loading source rows into an in-memory source reader
- Persisting tracking, progress and the error log in SQLite
- Polling advance() one batch at a time, as an admin page would
- Reading the terminal summary and the error report

Run with: python examples/basic_usage.py
"""

import asyncio
import logging
from datetime import UTC, datetime, timedelta

import aiosqlite

from calmigrate import (
    InMemorySourceReader,
    InMemoryTargetSink,
    MigrationConfig,
    MigrationOrchestrator,
    SQLiteErrorLogRepository,
    SQLiteProgressRepository,
    SQLiteTrackingRepository,
    Stage,
)

# =============================================================================
# Step 1: Describe the source calendar
# =============================================================================
# Rows are validated when they are read, so the source only has to hand over
# plain dictionaries.

START = datetime(2025, 3, 1, 19, 0, tzinfo=UTC)


def load_source(source: InMemorySourceReader) -> None:
    source.add_many(
        Stage.VENUES,
        [
            {"id": 1, "name": "Town Hall", "address": "1 Main St", "city": "Springfield"},
            {"id": 2, "name": "Riverside Park", "city": "Springfield"},
        ],
    )
    source.add_many(
        Stage.CATEGORIES,
        [
            {"id": 10, "name": "Music", "slug": "music", "parent_id": 11},
            {"id": 11, "name": "Arts", "slug": "arts"},
        ],
    )
    source.add(Stage.TAGS, {"id": 20, "name": "Outdoor", "slug": "outdoor"})

    events = []
    for event_id in range(100, 125):
        start = START + timedelta(days=event_id - 100)
        events.append(
            {
                "id": event_id,
                "title": f"Concert {event_id - 99}",
                "start": start,
                "end": start + timedelta(hours=2),
                # Every fifth event points at a venue that does not exist
                "venue_id": 99 if event_id % 5 == 0 else 1 + event_id % 2,
                "category_ids": [10],
                "tag_ids": [20],
            }
        )
    source.add_many(Stage.EVENTS, events)

    source.add(Stage.TICKETS, {"id": 300, "event_id": 101, "name": "General", "price": "15.00"})
    source.add(
        Stage.ORDERS,
        {
            "id": 400,
            "event_id": 101,
            "status": "completed",
            "total": "30.00",
            "email": "pat@example.com",
            "first_name": "Pat",
            "last_name": "Smith",
            "created_at": START - timedelta(days=7),
        },
    )
    source.add_many(
        Stage.ATTENDEES,
        [
            {"id": 500, "order_id": 400, "email": "pat@example.com", "first_name": "Pat"},
            {"id": 501, "order_id": 400, "email": "sam@example.com", "first_name": "Sam"},
        ],
    )


# =============================================================================
# Step 2: Poll the orchestrator until the run completes
# =============================================================================


async def main() -> None:
    logging.basicConfig(level=logging.INFO, format="%(levelname)s %(name)s: %(message)s")

    print("=" * 60)
    print("calmigrate - Basic Usage Example")
    print("=" * 60)

    source = InMemorySourceReader()
    target = InMemoryTargetSink()
    load_source(source)

    async with aiosqlite.connect(":memory:") as db:
        orchestrator = MigrationOrchestrator(
            source=source,
            target=target,
            tracking=SQLiteTrackingRepository(db, enable_tracing=False),
            progress=SQLiteProgressRepository(db, enable_tracing=False),
            errors=SQLiteErrorLogRepository(db, enable_tracing=False),
            config=MigrationConfig().with_batch_size(Stage.EVENTS, 10),
            enable_tracing=False,
        )

        detection = await orchestrator.detect()
        print(f"\n1. Migration possible: {detection.possible}")
        for stage, pending in detection.pending.items():
            print(f"   {stage.value}: {pending} rows")

        print("\n2. Advancing:")
        result = await orchestrator.advance()
        while not result.is_complete:
            print(
                f"   {result.stage.value:<11} {result.progress:>3}/{result.total_to_import:<3}"
                f" ({result.process_status.value})"
            )
            result = await orchestrator.advance()

        print("\n3. Summary:")
        for stage, migrated in result.summary.items():
            print(f"   {stage.value}: {migrated} migrated")

        print(f"\n4. Errors ({len(result.errors)}):")
        for entry in result.errors:
            print(f"   [{entry.context}] {entry.label}: {entry.message}")

    print("\n5. Target calendar:")
    print(f"   {len(target.events)} events, {len(target.venues)} venues")
    print(f"   {len(target.orders)} orders, {len(target.ticket_holders)} ticket holders")

    print("\n" + "=" * 60)
    print("Example completed successfully!")
    print("=" * 60)


if __name__ == "__main__":
    asyncio.run(main())
