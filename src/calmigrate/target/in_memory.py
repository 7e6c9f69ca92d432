"""
In-memory target sink for testing and demos.

Stores every record in dictionaries and allocates incrementing IDs per
record type. Write failures can be injected with ``fail_on()`` to exercise
the engine's row-level error handling.
"""

import asyncio
import dataclasses
import itertools
from collections import Counter
from collections.abc import Callable
from typing import Any

from calmigrate.target.models import (
    TAXONOMY_CALENDARS,
    TargetAttendee,
    TargetEvent,
    TargetOrder,
    TargetTerm,
    TargetTicketDefinition,
    TargetTicketHolder,
    TargetVenue,
)


class InjectedWriteError(RuntimeError):
    """Raised by InMemoryTargetSink for writes registered with fail_on()."""

    pass


class InMemoryTargetSink:
    """
    Target sink backed by dictionaries.

    Public attributes expose the stored records for assertions:
    ``venues``, ``terms`` (per taxonomy), ``events``, ``event_terms``,
    ``event_tickets``, ``orders``, ``attendees`` and ``ticket_holders``.
    ``call_counts`` counts sink method calls by name.

    Example:
        >>> sink = InMemoryTargetSink()
        >>> sink.fail_on("create_event", lambda event: event.title == "Broken")
        >>> await sink.create_event(TargetEvent(title="Broken", start=now, end=now))
        Traceback (most recent call last):
        InjectedWriteError: injected failure in create_event
    """

    def __init__(self) -> None:
        self.venues: dict[int, TargetVenue] = {}
        self.terms: dict[str, dict[int, TargetTerm]] = {}
        self.events: dict[int, TargetEvent] = {}
        self.event_terms: dict[int, dict[str, list[int]]] = {}
        self.event_tickets: dict[int, TargetTicketDefinition] = {}
        self.orders: dict[int, TargetOrder] = {}
        self.attendees: dict[int, TargetAttendee] = {}
        self.ticket_holders: dict[int, TargetTicketHolder] = {}
        self.call_counts: Counter[str] = Counter()

        self._ids: dict[str, itertools.count[int]] = {}
        self._failures: list[tuple[str, Callable[[Any], bool] | None]] = []
        self._lock = asyncio.Lock()

    def fail_on(
        self,
        operation: str,
        when: Callable[[Any], bool] | None = None,
    ) -> None:
        """
        Make a sink method raise InjectedWriteError.

        Args:
            operation: Method name (e.g. "create_event")
            when: Predicate on the method's main argument; None fails every call
        """
        self._failures.append((operation, when))

    def clear_failures(self) -> None:
        """Remove every injected failure."""
        self._failures.clear()

    def _next_id(self, collection: str) -> int:
        counter = self._ids.setdefault(collection, itertools.count(1))
        return next(counter)

    def _check(self, operation: str, payload: Any) -> None:
        self.call_counts[operation] += 1
        for failing_operation, when in self._failures:
            if failing_operation == operation and (when is None or when(payload)):
                raise InjectedWriteError(f"injected failure in {operation}")

    async def get_default_calendar_id(self, name: str = "Default") -> int:
        async with self._lock:
            calendars = self.terms.setdefault(TAXONOMY_CALENDARS, {})
            for term_id, term in calendars.items():
                if term.name == name:
                    return term_id
            term_id = self._next_id(f"term:{TAXONOMY_CALENDARS}")
            calendars[term_id] = TargetTerm(
                taxonomy=TAXONOMY_CALENDARS,
                name=name,
                slug=name.strip().lower().replace(" ", "-"),
            )
            return term_id

    async def create_venue(self, venue: TargetVenue) -> int:
        async with self._lock:
            self._check("create_venue", venue)
            venue_id = self._next_id("venue")
            self.venues[venue_id] = venue
            return venue_id

    async def find_term_by_slug(self, taxonomy: str, slug: str) -> int | None:
        async with self._lock:
            for term_id, term in self.terms.get(taxonomy, {}).items():
                if term.slug == slug:
                    return term_id
            return None

    async def create_term(self, term: TargetTerm) -> int:
        async with self._lock:
            self._check("create_term", term)
            taxonomy = self.terms.setdefault(term.taxonomy, {})
            if any(existing.slug == term.slug for existing in taxonomy.values()):
                raise ValueError(f"A {term.taxonomy} term with slug '{term.slug}' already exists")
            term_id = self._next_id(f"term:{term.taxonomy}")
            taxonomy[term_id] = term
            return term_id

    async def set_term_parent(self, taxonomy: str, term_id: int, parent_id: int) -> None:
        async with self._lock:
            self._check("set_term_parent", term_id)
            terms = self.terms.get(taxonomy, {})
            if term_id not in terms or parent_id not in terms:
                raise KeyError(f"Unknown {taxonomy} term {term_id} or parent {parent_id}")
            terms[term_id] = dataclasses.replace(terms[term_id], parent_id=parent_id)

    async def create_event(self, event: TargetEvent) -> int:
        async with self._lock:
            self._check("create_event", event)
            event_id = self._next_id("event")
            self.events[event_id] = event
            return event_id

    async def get_event(self, event_id: int) -> TargetEvent | None:
        async with self._lock:
            return self.events.get(event_id)

    async def set_event_terms(self, event_id: int, terms: dict[str, list[int]]) -> None:
        async with self._lock:
            self._check("set_event_terms", event_id)
            if event_id not in self.events:
                raise KeyError(f"Unknown event {event_id}")
            self.event_terms[event_id] = {taxonomy: list(ids) for taxonomy, ids in terms.items()}

    async def get_event_ticket(self, event_id: int) -> TargetTicketDefinition | None:
        async with self._lock:
            return self.event_tickets.get(event_id)

    async def set_event_ticket(self, event_id: int, ticket: TargetTicketDefinition) -> None:
        async with self._lock:
            self._check("set_event_ticket", ticket)
            if event_id not in self.events:
                raise KeyError(f"Unknown event {event_id}")
            self.event_tickets[event_id] = ticket

    async def create_order(self, order: TargetOrder) -> int:
        async with self._lock:
            self._check("create_order", order)
            order_id = self._next_id("order")
            self.orders[order_id] = order
            return order_id

    async def find_attendee_by_email(self, email: str) -> int | None:
        wanted = email.strip().lower()
        async with self._lock:
            for attendee_id, attendee in self.attendees.items():
                if attendee.email.strip().lower() == wanted:
                    return attendee_id
            return None

    async def create_attendee(self, attendee: TargetAttendee) -> int:
        async with self._lock:
            self._check("create_attendee", attendee)
            attendee_id = self._next_id("attendee")
            self.attendees[attendee_id] = attendee
            return attendee_id

    async def create_ticket_holder(self, holder: TargetTicketHolder) -> int:
        async with self._lock:
            self._check("create_ticket_holder", holder)
            holder_id = self._next_id("ticket_holder")
            self.ticket_holders[holder_id] = holder
            return holder_id


__all__ = [
    "InjectedWriteError",
    "InMemoryTargetSink",
]
