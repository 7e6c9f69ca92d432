"""
Stage processors, one per entity kind.

build_processors() returns the dispatch table the orchestrator uses, keyed
by Stage in dependency order.
"""

from __future__ import annotations

from typing import TYPE_CHECKING, Any

from calmigrate.hooks import MigrationHooks
from calmigrate.models import Stage
from calmigrate.observability import Tracer
from calmigrate.stages.attendees import AttendeeProcessor
from calmigrate.stages.base import PreparedRow, RowOutcome, StageProcessor
from calmigrate.stages.categories import CategoryProcessor
from calmigrate.stages.events import EventProcessor
from calmigrate.stages.orders import ORDER_STATUS_MAP, OrderProcessor, map_order_status
from calmigrate.stages.tags import TagProcessor
from calmigrate.stages.tickets import TicketProcessor
from calmigrate.stages.venues import VenueProcessor

if TYPE_CHECKING:
    from calmigrate.repositories.tracking import TrackingRepository
    from calmigrate.source.interface import SourceReader
    from calmigrate.target.interface import TargetSink

PROCESSOR_TYPES: dict[Stage, type[StageProcessor[Any]]] = {
    Stage.VENUES: VenueProcessor,
    Stage.TAGS: TagProcessor,
    Stage.EVENTS: EventProcessor,
    Stage.CATEGORIES: CategoryProcessor,
    Stage.TICKETS: TicketProcessor,
    Stage.ORDERS: OrderProcessor,
    Stage.ATTENDEES: AttendeeProcessor,
}


def build_processors(
    source: SourceReader,
    target: TargetSink,
    tracking: TrackingRepository,
    hooks: MigrationHooks | None = None,
    tracer: Tracer | None = None,
    enable_tracing: bool = True,
) -> dict[Stage, StageProcessor[Any]]:
    """
    Build one processor per working stage.

    Args:
        source: Source reader
        target: Target sink
        tracking: Tracking repository
        hooks: Callback registry shared with the orchestrator
        tracer: Optional tracer shared by all processors
        enable_tracing: Whether to enable OpenTelemetry tracing (default True)

    Returns:
        Processors keyed by Stage, in dependency order
    """
    return {
        stage: PROCESSOR_TYPES[stage](
            source,
            target,
            tracking,
            hooks=hooks,
            tracer=tracer,
            enable_tracing=enable_tracing,
        )
        for stage in Stage.ordered()
    }


__all__ = [
    "PROCESSOR_TYPES",
    "build_processors",
    "StageProcessor",
    "PreparedRow",
    "RowOutcome",
    "VenueProcessor",
    "TagProcessor",
    "EventProcessor",
    "CategoryProcessor",
    "TicketProcessor",
    "OrderProcessor",
    "AttendeeProcessor",
    "ORDER_STATUS_MAP",
    "map_order_status",
]
