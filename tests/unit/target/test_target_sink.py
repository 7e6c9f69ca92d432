"""Tests for InMemoryTargetSink."""

from __future__ import annotations

from datetime import UTC, datetime
from decimal import Decimal

import pytest

from calmigrate.target import (
    TAXONOMY_CALENDARS,
    TAXONOMY_CATEGORIES,
    TAXONOMY_TAGS,
    InjectedWriteError,
    InMemoryTargetSink,
    OrderStatus,
    TargetAttendee,
    TargetEvent,
    TargetOrder,
    TargetSink,
    TargetTerm,
    TargetTicketDefinition,
    TargetTicketHolder,
    TargetVenue,
)

START = datetime(2024, 6, 1, 18, 0, tzinfo=UTC)


def _event(title: str = "Gala") -> TargetEvent:
    return TargetEvent(title=title, start=START, end=START)


def _order() -> TargetOrder:
    return TargetOrder(
        status=OrderStatus.PAID,
        total=Decimal("10"),
        currency="USD",
        email="a@example.com",
        first_name="A",
        last_name="B",
        created_at=START,
    )


class TestInMemoryTargetSinkBasics:
    """ID allocation and the protocol."""

    def test_implements_protocol(self) -> None:
        assert isinstance(InMemoryTargetSink(), TargetSink)

    async def test_ids_are_per_collection(self, target: InMemoryTargetSink) -> None:
        venue_id = await target.create_venue(TargetVenue(name="Hall"))
        event_id = await target.create_event(_event())
        second_event_id = await target.create_event(_event("Fair"))

        assert venue_id == 1
        assert event_id == 1
        assert second_event_id == 2
        assert target.events[2].title == "Fair"

    async def test_call_counts(self, target: InMemoryTargetSink) -> None:
        await target.create_event(_event())
        await target.create_event(_event())

        assert target.call_counts["create_event"] == 2


class TestCalendarsAndTerms:
    """Default calendar and taxonomy terms."""

    async def test_default_calendar_is_created_once(self, target: InMemoryTargetSink) -> None:
        first = await target.get_default_calendar_id()
        second = await target.get_default_calendar_id()

        assert first == second
        assert target.terms[TAXONOMY_CALENDARS][first].slug == "default"

    async def test_named_calendars(self, target: InMemoryTargetSink) -> None:
        default_id = await target.get_default_calendar_id()
        imported_id = await target.get_default_calendar_id("Imported Events")

        assert default_id != imported_id
        assert target.terms[TAXONOMY_CALENDARS][imported_id].slug == "imported-events"

    async def test_find_term_by_slug(self, target: InMemoryTargetSink) -> None:
        term_id = await target.create_term(
            TargetTerm(taxonomy=TAXONOMY_TAGS, name="Outdoor", slug="outdoor")
        )

        assert await target.find_term_by_slug(TAXONOMY_TAGS, "outdoor") == term_id
        assert await target.find_term_by_slug(TAXONOMY_CATEGORIES, "outdoor") is None

    async def test_duplicate_slug_is_rejected(self, target: InMemoryTargetSink) -> None:
        term = TargetTerm(taxonomy=TAXONOMY_TAGS, name="Outdoor", slug="outdoor")
        await target.create_term(term)

        with pytest.raises(ValueError, match="already exists"):
            await target.create_term(term)

    async def test_set_term_parent(self, target: InMemoryTargetSink) -> None:
        parent = await target.create_term(
            TargetTerm(taxonomy=TAXONOMY_CATEGORIES, name="Arts", slug="arts")
        )
        child = await target.create_term(
            TargetTerm(taxonomy=TAXONOMY_CATEGORIES, name="Music", slug="music")
        )

        await target.set_term_parent(TAXONOMY_CATEGORIES, child, parent)

        assert target.terms[TAXONOMY_CATEGORIES][child].parent_id == parent

    async def test_set_term_parent_unknown_term(self, target: InMemoryTargetSink) -> None:
        with pytest.raises(KeyError):
            await target.set_term_parent(TAXONOMY_CATEGORIES, 1, 2)


class TestEventsAndTickets:
    """Event terms and ticket definitions."""

    async def test_set_event_terms_replaces(self, target: InMemoryTargetSink) -> None:
        event_id = await target.create_event(_event())

        await target.set_event_terms(event_id, {TAXONOMY_TAGS: [1, 2]})
        await target.set_event_terms(event_id, {TAXONOMY_CATEGORIES: [3]})

        assert target.event_terms[event_id] == {TAXONOMY_CATEGORIES: [3]}

    async def test_set_event_terms_unknown_event(self, target: InMemoryTargetSink) -> None:
        with pytest.raises(KeyError):
            await target.set_event_terms(5, {TAXONOMY_TAGS: [1]})

    async def test_event_ticket(self, target: InMemoryTargetSink) -> None:
        event_id = await target.create_event(_event())
        ticket = TargetTicketDefinition(name="General", price=Decimal("25.00"))

        assert await target.get_event_ticket(event_id) is None
        await target.set_event_ticket(event_id, ticket)

        assert await target.get_event_ticket(event_id) == ticket
        assert await target.get_event(event_id) == _event()

    async def test_event_ticket_unknown_event(self, target: InMemoryTargetSink) -> None:
        with pytest.raises(KeyError):
            await target.set_event_ticket(1, TargetTicketDefinition(name="GA", price=Decimal(0)))


class TestOrdersAndAttendees:
    """Orders, attendees and ticket holders."""

    async def test_find_attendee_by_email_ignores_case(self, target: InMemoryTargetSink) -> None:
        attendee_id = await target.create_attendee(TargetAttendee(email="Guest@Example.com"))

        assert await target.find_attendee_by_email(" guest@example.com ") == attendee_id
        assert await target.find_attendee_by_email("other@example.com") is None

    async def test_ticket_holder(self, target: InMemoryTargetSink) -> None:
        order_id = await target.create_order(_order())
        attendee_id = await target.create_attendee(TargetAttendee(email="a@example.com"))

        holder_id = await target.create_ticket_holder(
            TargetTicketHolder(order_id=order_id, attendee_id=attendee_id)
        )

        assert target.ticket_holders[holder_id].attendee_id == attendee_id


class TestFailureInjection:
    """Tests for fail_on() and clear_failures()."""

    async def test_fail_every_call(self, target: InMemoryTargetSink) -> None:
        target.fail_on("create_order")

        with pytest.raises(InjectedWriteError, match="create_order"):
            await target.create_order(_order())

        assert target.orders == {}

    async def test_fail_with_predicate(self, target: InMemoryTargetSink) -> None:
        target.fail_on("create_event", lambda event: event.title == "Broken")

        await target.create_event(_event("Fine"))
        with pytest.raises(InjectedWriteError):
            await target.create_event(_event("Broken"))

        assert [event.title for event in target.events.values()] == ["Fine"]

    async def test_clear_failures(self, target: InMemoryTargetSink) -> None:
        target.fail_on("create_venue")
        target.clear_failures()

        assert await target.create_venue(TargetVenue(name="Hall")) == 1
