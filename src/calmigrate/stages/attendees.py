"""
Attendees stage: each source attendee becomes a ticket holder.

Attendees are people: the target keeps one attendee per email address
(compared case-insensitively) and links it to the migrated order through a
ticket holder record, which also carries the order's event and event date.
The ticket holder is what the tracking record points at.
"""

import logging
from dataclasses import dataclass
from datetime import date

from calmigrate.exceptions import MissingSourceDataError
from calmigrate.models import RunContext, Stage
from calmigrate.stages.base import PreparedRow, RowOutcome, StageProcessor, describe
from calmigrate.target.models import TargetAttendee, TargetTicketHolder

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class AttendeePayload:
    attendee: TargetAttendee
    order_id: int
    event_id: int | None
    event_date: date | None


class AttendeeProcessor(StageProcessor[AttendeePayload]):
    """Creates or reuses the attendee and records the ticket holder."""

    stage = Stage.ATTENDEES

    async def transform(self, ctx: RunContext, source_id: int) -> PreparedRow[AttendeePayload]:
        attendee = await self._source.get_attendee(source_id)
        if attendee is None:
            raise self._missing(source_id)

        full_name = f"{attendee.first_name} {attendee.last_name}"
        label = describe(full_name, attendee.email)
        order_id = await self._resolve(source_id, Stage.ORDERS, attendee.order_id, label)

        event_id: int | None = None
        event_date: date | None = None
        try:
            order = await self._source.get_order(attendee.order_id)
        except MissingSourceDataError:
            order = None
        if order is not None and order.event_id is not None:
            event_id = await self._tracking.get_target_id(Stage.EVENTS, order.event_id)
            try:
                event = await self._source.get_event(order.event_id)
            except MissingSourceDataError:
                event = None
            event_date = event.start.date() if event else None

        return PreparedRow(
            source_id=source_id,
            label=label,
            payload=AttendeePayload(
                attendee=TargetAttendee(
                    email=attendee.email.strip(),
                    first_name=attendee.first_name,
                    last_name=attendee.last_name,
                ),
                order_id=order_id,
                event_id=event_id,
                event_date=event_date,
            ),
        )

    async def write(self, ctx: RunContext, prepared: PreparedRow[AttendeePayload]) -> RowOutcome:
        payload = prepared.payload
        attendee_id = await self._target.find_attendee_by_email(payload.attendee.email)
        if attendee_id is None:
            attendee_id = await self._target.create_attendee(payload.attendee)
        else:
            logger.debug("Reusing attendee %s for %s", attendee_id, payload.attendee.email)

        holder_id = await self._target.create_ticket_holder(
            TargetTicketHolder(
                order_id=payload.order_id,
                attendee_id=attendee_id,
                event_id=payload.event_id,
                event_date=payload.event_date,
            )
        )
        return RowOutcome(target_id=holder_id)
