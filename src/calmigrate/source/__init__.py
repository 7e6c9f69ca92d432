"""
Read-only view of the source calendar system.

- Source models: validated, frozen pydantic models of source rows
- SourceReader: protocol the stage processors read through
- InMemorySourceReader: dictionary-backed reader for tests and demos
"""

from calmigrate.source.in_memory import InMemorySourceReader
from calmigrate.source.interface import TERM_KINDS, SourceReader
from calmigrate.source.models import (
    SourceAttendee,
    SourceEvent,
    SourceModel,
    SourceOrder,
    SourceTerm,
    SourceTicket,
    SourceVenue,
)

__all__ = [
    "SourceModel",
    "SourceVenue",
    "SourceTerm",
    "SourceEvent",
    "SourceTicket",
    "SourceOrder",
    "SourceAttendee",
    "SourceReader",
    "TERM_KINDS",
    "InMemorySourceReader",
]
