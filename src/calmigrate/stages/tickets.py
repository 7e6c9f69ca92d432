"""
Tickets stage: ticket definitions are stored on their migrated event.

The target keeps a single ticket definition per event. When the event
already carries ticket data the source ticket is marked as migrated without
a write.
"""

from dataclasses import dataclass

from calmigrate.exceptions import RowSkipped
from calmigrate.models import RunContext, Stage
from calmigrate.stages.base import PreparedRow, RowOutcome, StageProcessor, describe
from calmigrate.target.models import TargetTicketDefinition


@dataclass(frozen=True)
class TicketPayload:
    event_id: int
    ticket: TargetTicketDefinition


class TicketProcessor(StageProcessor[TicketPayload]):
    """Attaches each source ticket definition to its target event."""

    stage = Stage.TICKETS

    async def transform(self, ctx: RunContext, source_id: int) -> PreparedRow[TicketPayload]:
        ticket = await self._source.get_ticket(source_id)
        if ticket is None:
            raise self._missing(source_id)

        label = describe(ticket.name, f"Ticket #{source_id}")
        event_id = await self._resolve(source_id, Stage.EVENTS, ticket.event_id, label)

        return PreparedRow(
            source_id=source_id,
            label=label,
            payload=TicketPayload(
                event_id=event_id,
                ticket=TargetTicketDefinition(
                    name=ticket.name,
                    description=ticket.description,
                    price=ticket.price,
                    currency=ticket.currency,
                    capacity=ticket.capacity,
                    sale_start=ticket.sale_start,
                    sale_end=ticket.sale_end,
                ),
            ),
        )

    async def write(self, ctx: RunContext, prepared: PreparedRow[TicketPayload]) -> RowOutcome:
        payload = prepared.payload
        if await self._target.get_event_ticket(payload.event_id) is not None:
            raise RowSkipped(
                self.stage,
                prepared.source_id,
                f"event {payload.event_id} already has ticket data",
            )
        await self._target.set_event_ticket(payload.event_id, payload.ticket)
        return RowOutcome(target_id=payload.event_id)
