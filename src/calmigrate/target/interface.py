"""
Target sink protocol.

The target calendar system is consumed purely as a data sink: the engine
creates records, looks records up for deduplication, and attaches
relationships. Any exception raised by a sink method while a row is being
written is treated as a failure of that row.
"""

from typing import Protocol, runtime_checkable

from calmigrate.target.models import (
    TargetAttendee,
    TargetEvent,
    TargetOrder,
    TargetTerm,
    TargetTicketDefinition,
    TargetTicketHolder,
    TargetVenue,
)


@runtime_checkable
class TargetSink(Protocol):
    """
    Protocol for the target system's storage.
    """

    async def get_default_calendar_id(self, name: str = "Default") -> int:
        """
        Get (creating if needed) the calendar migrated events belong to.

        Args:
            name: Calendar name

        Returns:
            Calendar term ID
        """
        ...

    async def create_venue(self, venue: TargetVenue) -> int:
        """Create a venue and return its ID."""
        ...

    async def find_term_by_slug(self, taxonomy: str, slug: str) -> int | None:
        """
        Look up a term by slug.

        Returns:
            Term ID, or None if the taxonomy has no such slug
        """
        ...

    async def create_term(self, term: TargetTerm) -> int:
        """Create a term and return its ID."""
        ...

    async def set_term_parent(self, taxonomy: str, term_id: int, parent_id: int) -> None:
        """Make parent_id the parent of term_id."""
        ...

    async def create_event(self, event: TargetEvent) -> int:
        """Create an event and return its ID."""
        ...

    async def get_event(self, event_id: int) -> TargetEvent | None:
        """Fetch an event."""
        ...

    async def set_event_terms(self, event_id: int, terms: dict[str, list[int]]) -> None:
        """
        Attach terms to an event in one call.

        Args:
            event_id: Target event ID
            terms: Term IDs keyed by taxonomy
        """
        ...

    async def get_event_ticket(self, event_id: int) -> TargetTicketDefinition | None:
        """Fetch the ticket definition stored on an event."""
        ...

    async def set_event_ticket(self, event_id: int, ticket: TargetTicketDefinition) -> None:
        """Store the ticket definition on an event."""
        ...

    async def create_order(self, order: TargetOrder) -> int:
        """Create an order and return its ID."""
        ...

    async def find_attendee_by_email(self, email: str) -> int | None:
        """Look up an attendee by email (case-insensitive)."""
        ...

    async def create_attendee(self, attendee: TargetAttendee) -> int:
        """Create an attendee and return its ID."""
        ...

    async def create_ticket_holder(self, holder: TargetTicketHolder) -> int:
        """Create a ticket holder record and return its ID."""
        ...


__all__ = ["TargetSink"]
