"""
Venues stage: source venues become target venue records.
"""

from calmigrate.models import RunContext, Stage
from calmigrate.stages.base import PreparedRow, RowOutcome, StageProcessor
from calmigrate.target.models import TargetVenue


class VenueProcessor(StageProcessor[TargetVenue]):
    """Copies name and address fields of each venue."""

    stage = Stage.VENUES

    async def transform(self, ctx: RunContext, source_id: int) -> PreparedRow[TargetVenue]:
        venue = await self._source.get_venue(source_id)
        if venue is None:
            raise self._missing(source_id)

        return PreparedRow(
            source_id=source_id,
            label=venue.name,
            payload=TargetVenue(
                name=venue.name,
                address=venue.address,
                city=venue.city,
                state=venue.state,
                postal_code=venue.postal_code,
                country=venue.country,
                latitude=venue.latitude,
                longitude=venue.longitude,
                phone=venue.phone,
                url=venue.url,
            ),
        )

    async def write(self, ctx: RunContext, prepared: PreparedRow[TargetVenue]) -> RowOutcome:
        return RowOutcome(target_id=await self._target.create_venue(prepared.payload))
