"""
Events stage: source events become target events.

The venue must already have been migrated: an event referencing a venue
without a migrated tracking record is logged and skipped. Recurrence is
translated into the target representation; unsupported recurrence shapes
are dropped and the event is migrated as a single occurrence. Category and
tag associations are attached later by the relationship rebuilder.
"""

import dataclasses
import logging

from calmigrate.exceptions import MissingSourceDataError
from calmigrate.models import RunContext, Stage
from calmigrate.recurrence import translate
from calmigrate.stages.base import PreparedRow, RowOutcome, StageProcessor
from calmigrate.target.models import TargetEvent

logger = logging.getLogger(__name__)


class EventProcessor(StageProcessor[TargetEvent]):
    """Creates one target event per source event in the default calendar."""

    stage = Stage.EVENTS

    async def transform(self, ctx: RunContext, source_id: int) -> PreparedRow[TargetEvent]:
        event = await self._source.get_event(source_id)
        if event is None:
            raise self._missing(source_id)

        venue_id: int | None = None
        location = ""
        if event.venue_id is not None:
            venue_id = await self._resolve(source_id, Stage.VENUES, event.venue_id, event.title)
            try:
                venue = await self._source.get_venue(event.venue_id)
            except MissingSourceDataError:
                venue = None
            location = venue.full_address if venue else ""

        recurrence = None
        if event.recurrence is not None:
            recurrence = translate(event.recurrence)
            if recurrence is None:
                logger.info(
                    "Event %s has an unsupported recurrence, migrating a single occurrence",
                    source_id,
                )

        return PreparedRow(
            source_id=source_id,
            label=event.title,
            payload=TargetEvent(
                title=event.title,
                content=event.content,
                status=event.status,
                start=event.start,
                end=event.end,
                timezone=event.timezone,
                all_day=event.all_day,
                url=event.url,
                featured_image_id=event.featured_image_id,
                venue_id=venue_id,
                location=location,
                recurrence=recurrence,
            ),
        )

    async def write(self, ctx: RunContext, prepared: PreparedRow[TargetEvent]) -> RowOutcome:
        calendar_id = await self._target.get_default_calendar_id(ctx.config.default_calendar_name)
        event = dataclasses.replace(prepared.payload, calendar_id=calendar_id)
        return RowOutcome(target_id=await self._target.create_event(event))
