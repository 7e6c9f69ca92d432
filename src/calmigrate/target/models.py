"""
Shapes written to the target calendar system.

These are plain dataclasses: the target sink owns storage and assigns
identifiers, so none of these carry an id of their own.
"""

from __future__ import annotations

from dataclasses import dataclass
from datetime import date, datetime
from decimal import Decimal
from enum import Enum

from calmigrate.models import NormalizedRecurrence

TAXONOMY_CALENDARS = "calendars"
TAXONOMY_CATEGORIES = "categories"
TAXONOMY_TAGS = "tags"


class OrderStatus(Enum):
    """Order statuses understood by the target ticketing feature."""

    PAID = "paid"
    PENDING = "pending"
    REFUNDED = "refunded"
    CANCELLED = "cancelled"
    FAILED = "failed"


@dataclass(frozen=True)
class TargetVenue:
    """A venue (location) record."""

    name: str
    address: str = ""
    city: str = ""
    state: str = ""
    postal_code: str = ""
    country: str = ""
    latitude: float | None = None
    longitude: float | None = None
    phone: str | None = None
    url: str | None = None


@dataclass(frozen=True)
class TargetTerm:
    """
    A taxonomy term (calendar, category or tag).

    Attributes:
        taxonomy: One of the TAXONOMY_* names
        name: Display name
        slug: URL slug, unique per taxonomy
        description: Term description
        color: Display colour (#rrggbb), categories only
        parent_id: Target ID of the parent term
    """

    taxonomy: str
    name: str
    slug: str
    description: str = ""
    color: str | None = None
    parent_id: int | None = None


@dataclass(frozen=True)
class TargetEvent:
    """
    An event record.

    Attributes:
        title: Event title
        content: Event body
        status: Publication status
        calendar_id: Calendar term the event belongs to
        start: Start date and time
        end: End date and time
        timezone: IANA timezone name, empty for floating times
        all_day: Whether the event lasts all day
        url: Optional external URL
        featured_image_id: Optional attachment ID
        venue_id: Target venue ID
        location: Venue address as shown with the event
        recurrence: Recurrence, None for single occurrences
    """

    title: str
    start: datetime
    end: datetime
    content: str = ""
    status: str = "publish"
    calendar_id: int | None = None
    timezone: str = ""
    all_day: bool = False
    url: str | None = None
    featured_image_id: int | None = None
    venue_id: int | None = None
    location: str = ""
    recurrence: NormalizedRecurrence | None = None


@dataclass(frozen=True)
class TargetTicketDefinition:
    """Ticket settings stored on an event (one definition per event)."""

    name: str
    price: Decimal
    currency: str = "USD"
    description: str = ""
    capacity: int | None = None
    sale_start: datetime | None = None
    sale_end: datetime | None = None


@dataclass(frozen=True)
class TargetOrder:
    """A ticket order."""

    status: OrderStatus
    total: Decimal
    currency: str
    email: str
    first_name: str
    last_name: str
    created_at: datetime
    transaction_id: str | None = None
    event_id: int | None = None
    event_date: date | None = None


@dataclass(frozen=True)
class TargetAttendee:
    """A person attending events, unique by email."""

    email: str
    first_name: str = ""
    last_name: str = ""


@dataclass(frozen=True)
class TargetTicketHolder:
    """Links an attendee to an order (one purchased ticket)."""

    order_id: int
    attendee_id: int
    event_id: int | None = None
    event_date: date | None = None


__all__ = [
    "TAXONOMY_CALENDARS",
    "TAXONOMY_CATEGORIES",
    "TAXONOMY_TAGS",
    "OrderStatus",
    "TargetVenue",
    "TargetTerm",
    "TargetEvent",
    "TargetTicketDefinition",
    "TargetOrder",
    "TargetAttendee",
    "TargetTicketHolder",
]
