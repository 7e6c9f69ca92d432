"""
Read-only views of source system rows.

Each model validates one raw row as read from the source calendar's storage.
Models are frozen; a row that fails validation is treated by the stage
processors as a row-level failure (logged, skipped), never as a crash.
"""

from __future__ import annotations

from datetime import datetime
from decimal import Decimal
from typing import Any

from pydantic import BaseModel, ConfigDict, Field, field_validator, model_validator


class SourceModel(BaseModel):
    """Base class for source rows: frozen, unknown columns ignored."""

    model_config = ConfigDict(frozen=True, extra="ignore")

    id: int = Field(..., gt=0, description="Source-native identifier")


class SourceVenue(SourceModel):
    """
    A venue (location) in the source system.

    Attributes:
        name: Venue name
        address: Street address
        city: City
        state: State or province
        postal_code: Postal code
        country: Country
        latitude: Optional latitude
        longitude: Optional longitude
        phone: Optional phone number
        url: Optional website
    """

    name: str = Field(..., min_length=1)
    address: str = ""
    city: str = ""
    state: str = ""
    postal_code: str = ""
    country: str = ""
    latitude: float | None = None
    longitude: float | None = None
    phone: str | None = None
    url: str | None = None

    @property
    def full_address(self) -> str:
        """Single-line address built from the populated parts."""
        locality = " ".join(part for part in (self.state, self.postal_code) if part)
        parts = [self.address, self.city, locality, self.country]
        return ", ".join(part.strip() for part in parts if part and part.strip())


class SourceTerm(SourceModel):
    """
    A taxonomy term (category or tag) in the source system.

    Attributes:
        name: Display name
        slug: URL slug, unique per taxonomy
        description: Term description
        parent_id: Source ID of the parent term (categories only)
    """

    name: str = Field(..., min_length=1)
    slug: str = Field(..., min_length=1)
    description: str = ""
    parent_id: int | None = None

    @field_validator("parent_id", mode="before")
    @classmethod
    def _zero_parent_is_none(cls, value: Any) -> Any:
        # The source stores "no parent" as 0
        if value in (0, "0", ""):
            return None
        return value


class SourceEvent(SourceModel):
    """
    An event in the source system.

    Attributes:
        title: Event title
        content: Event body
        status: Publication status (publish, draft, ...)
        featured_image_id: Optional attachment ID of the featured image
        start: Start date and time
        end: End date and time, never before start
        timezone: IANA timezone name, empty for floating times
        all_day: Whether the event lasts all day
        url: Optional external URL
        recurrence: Raw recurrence rule, translated by calmigrate.recurrence
        venue_id: Optional source venue ID
        category_ids: Source category IDs
        tag_ids: Source tag IDs
    """

    title: str = Field(..., min_length=1)
    content: str = ""
    status: str = "publish"
    featured_image_id: int | None = None
    start: datetime
    end: datetime
    timezone: str = ""
    all_day: bool = False
    url: str | None = None
    recurrence: Any = None
    venue_id: int | None = None
    category_ids: tuple[int, ...] = ()
    tag_ids: tuple[int, ...] = ()

    @field_validator("venue_id", "featured_image_id", mode="before")
    @classmethod
    def _zero_is_none(cls, value: Any) -> Any:
        if value in (0, "0", ""):
            return None
        return value

    @model_validator(mode="after")
    def _end_not_before_start(self) -> SourceEvent:
        try:
            reversed_range = self.end < self.start
        except TypeError as e:
            raise ValueError("event start and end mix naive and aware datetimes") from e
        if reversed_range:
            raise ValueError("event end is before its start")
        return self


class SourceTicket(SourceModel):
    """
    A ticket definition attached to a source event.

    Attributes:
        event_id: Source ID of the owning event
        name: Ticket name
        description: Ticket description
        price: Unit price
        currency: ISO currency code
        capacity: Optional number of tickets available
        sale_start: Optional start of sales
        sale_end: Optional end of sales
    """

    event_id: int = Field(..., gt=0)
    name: str = ""
    description: str = ""
    price: Decimal = Field(default=Decimal("0"), ge=0)
    currency: str = "USD"
    capacity: int | None = Field(default=None, ge=0)
    sale_start: datetime | None = None
    sale_end: datetime | None = None


class SourceOrder(SourceModel):
    """
    A ticket order in the source system.

    Attributes:
        event_id: Source ID of the event, None for orders without one
        status: Source order status (completed, pending, refunded, ...)
        total: Order total
        currency: ISO currency code
        email: Purchaser email
        first_name: Purchaser first name
        last_name: Purchaser last name
        transaction_id: Optional payment gateway transaction ID
        created_at: When the order was placed
    """

    event_id: int | None = None
    status: str = "pending"
    total: Decimal = Field(default=Decimal("0"), ge=0)
    currency: str = "USD"
    email: str = ""
    first_name: str = ""
    last_name: str = ""
    transaction_id: str | None = None
    created_at: datetime

    @field_validator("event_id", mode="before")
    @classmethod
    def _zero_event_is_none(cls, value: Any) -> Any:
        if value in (0, "0", ""):
            return None
        return value


class SourceAttendee(SourceModel):
    """
    An attendee holding a ticket from a source order.

    Attributes:
        order_id: Source ID of the order
        email: Attendee email
        first_name: Attendee first name
        last_name: Attendee last name
    """

    order_id: int = Field(..., gt=0)
    email: str = Field(..., min_length=3)
    first_name: str = ""
    last_name: str = ""


__all__ = [
    "SourceModel",
    "SourceVenue",
    "SourceTerm",
    "SourceEvent",
    "SourceTicket",
    "SourceOrder",
    "SourceAttendee",
]
