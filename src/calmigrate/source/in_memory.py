"""
In-memory source reader for testing and demos.

Rows are registered as raw dicts, exactly as a database adapter would
return them, and validated lazily when a stage processor reads them. A row
that fails validation therefore surfaces as a row-level error during the
migration instead of at registration time.
"""

import asyncio
import bisect
from collections.abc import Iterable, Mapping
from typing import Any, TypeVar

from pydantic import ValidationError

from calmigrate.exceptions import MissingSourceDataError
from calmigrate.models import Stage
from calmigrate.source.interface import TERM_KINDS
from calmigrate.source.models import (
    SourceAttendee,
    SourceEvent,
    SourceModel,
    SourceOrder,
    SourceTerm,
    SourceTicket,
    SourceVenue,
)

ModelT = TypeVar("ModelT", bound=SourceModel)


def _describe_validation_error(error: ValidationError) -> str:
    parts = []
    for item in error.errors():
        location = ".".join(str(part) for part in item.get("loc", ())) or "row"
        parts.append(f"{location}: {item.get('msg', 'invalid')}")
    return "; ".join(parts)


class InMemorySourceReader:
    """
    Source reader backed by dictionaries of raw rows.

    Example:
        >>> reader = InMemorySourceReader()
        >>> reader.add(Stage.VENUES, {"id": 1, "name": "Town Hall"})
        >>> await reader.list_ids(Stage.VENUES)
        [1]
    """

    def __init__(self) -> None:
        self._rows: dict[Stage, dict[int, dict[str, Any]]] = {
            kind: {} for kind in Stage.ordered()
        }
        self._ids: dict[Stage, list[int]] = {kind: [] for kind in Stage.ordered()}
        self._lock = asyncio.Lock()

    def add(self, kind: Stage, row: Mapping[str, Any]) -> None:
        """
        Register a raw source row.

        Args:
            kind: Entity kind
            row: Raw column values, must include an integer "id"

        Raises:
            ValueError: If the row has no integer id or kind is terminal
        """
        if kind.is_terminal:
            raise ValueError("Cannot add rows to the complete stage")
        source_id = row.get("id")
        if not isinstance(source_id, int) or isinstance(source_id, bool):
            raise ValueError(f"Source row needs an integer 'id', got {source_id!r}")

        rows = self._rows[kind]
        if source_id not in rows:
            bisect.insort(self._ids[kind], source_id)
        rows[source_id] = dict(row)

    def add_many(self, kind: Stage, rows: Iterable[Mapping[str, Any]]) -> None:
        """Register several raw rows of one kind."""
        for row in rows:
            self.add(kind, row)

    def remove(self, kind: Stage, source_id: int) -> None:
        """Forget a row (simulates a deletion in the source)."""
        if self._rows[kind].pop(source_id, None) is not None:
            self._ids[kind].remove(source_id)

    async def list_ids(
        self,
        kind: Stage,
        after_id: int | None = None,
        limit: int = 500,
    ) -> list[int]:
        async with self._lock:
            ids = self._ids[kind]
            start = bisect.bisect_right(ids, after_id) if after_id is not None else 0
            return ids[start : start + limit]

    async def count(self, kind: Stage) -> int:
        async with self._lock:
            return len(self._rows[kind])

    async def get_venue(self, source_id: int) -> SourceVenue | None:
        return await self._get(Stage.VENUES, source_id, SourceVenue)

    async def get_term(self, kind: Stage, source_id: int) -> SourceTerm | None:
        if kind not in TERM_KINDS:
            raise ValueError(f"{kind.value} is not a taxonomy")
        return await self._get(kind, source_id, SourceTerm)

    async def get_event(self, source_id: int) -> SourceEvent | None:
        return await self._get(Stage.EVENTS, source_id, SourceEvent)

    async def get_ticket(self, source_id: int) -> SourceTicket | None:
        return await self._get(Stage.TICKETS, source_id, SourceTicket)

    async def get_order(self, source_id: int) -> SourceOrder | None:
        return await self._get(Stage.ORDERS, source_id, SourceOrder)

    async def get_attendee(self, source_id: int) -> SourceAttendee | None:
        return await self._get(Stage.ATTENDEES, source_id, SourceAttendee)

    async def _get(self, kind: Stage, source_id: int, model: type[ModelT]) -> ModelT | None:
        async with self._lock:
            raw = self._rows[kind].get(source_id)
        if raw is None:
            return None
        try:
            return model.model_validate(raw)
        except ValidationError as e:
            label = raw.get("title") or raw.get("name") or raw.get("email")
            raise MissingSourceDataError(
                kind,
                source_id,
                f"invalid source row ({_describe_validation_error(e)})",
                label=str(label) if label else None,
            ) from e


__all__ = [
    "InMemorySourceReader",
]
