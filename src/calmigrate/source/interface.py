"""
Source reader protocol.

The migration engine only ever reads from the source system. A reader lists
row IDs per entity kind in ascending order (so batches can page through
them) and fetches single rows as validated models.
"""

from typing import Protocol, runtime_checkable

from calmigrate.models import Stage
from calmigrate.source.models import (
    SourceAttendee,
    SourceEvent,
    SourceOrder,
    SourceTerm,
    SourceTicket,
    SourceVenue,
)

TERM_KINDS = (Stage.TAGS, Stage.CATEGORIES)


@runtime_checkable
class SourceReader(Protocol):
    """
    Protocol for read-only access to the source system.

    Getters return None for rows that do not exist and raise
    MissingSourceDataError for rows that exist but cannot be validated.
    """

    async def list_ids(
        self,
        kind: Stage,
        after_id: int | None = None,
        limit: int = 500,
    ) -> list[int]:
        """
        List source IDs of a kind in ascending order.

        Args:
            kind: Entity kind
            after_id: Only return IDs greater than this one
            limit: Maximum number of IDs to return

        Returns:
            Ascending list of IDs
        """
        ...

    async def count(self, kind: Stage) -> int:
        """Count the source rows of a kind."""
        ...

    async def get_venue(self, source_id: int) -> SourceVenue | None:
        """Fetch a venue."""
        ...

    async def get_term(self, kind: Stage, source_id: int) -> SourceTerm | None:
        """
        Fetch a taxonomy term.

        Args:
            kind: Stage.TAGS or Stage.CATEGORIES
            source_id: Term ID
        """
        ...

    async def get_event(self, source_id: int) -> SourceEvent | None:
        """Fetch an event."""
        ...

    async def get_ticket(self, source_id: int) -> SourceTicket | None:
        """Fetch a ticket definition."""
        ...

    async def get_order(self, source_id: int) -> SourceOrder | None:
        """Fetch an order."""
        ...

    async def get_attendee(self, source_id: int) -> SourceAttendee | None:
        """Fetch an attendee."""
        ...


__all__ = [
    "TERM_KINDS",
    "SourceReader",
]
