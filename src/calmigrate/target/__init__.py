"""
Target calendar system, consumed as a data sink.

- Target models: plain dataclasses describing what is written
- TargetSink: protocol the stage processors and rebuilder write through
- InMemoryTargetSink: dictionary-backed sink for tests and demos
"""

from calmigrate.target.in_memory import InjectedWriteError, InMemoryTargetSink
from calmigrate.target.interface import TargetSink
from calmigrate.target.models import (
    TAXONOMY_CALENDARS,
    TAXONOMY_CATEGORIES,
    TAXONOMY_TAGS,
    OrderStatus,
    TargetAttendee,
    TargetEvent,
    TargetOrder,
    TargetTerm,
    TargetTicketDefinition,
    TargetTicketHolder,
    TargetVenue,
)

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
    "TargetSink",
    "InMemoryTargetSink",
    "InjectedWriteError",
]
