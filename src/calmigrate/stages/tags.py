"""
Tags stage: source tags become target tag terms.

Tags are deduplicated by slug: when the target already has a tag with the
same slug (created by hand, or by an earlier run) that term is reused.
"""

import logging

from calmigrate.models import RunContext, Stage
from calmigrate.stages.base import PreparedRow, RowOutcome, StageProcessor
from calmigrate.target.models import TAXONOMY_TAGS, TargetTerm

logger = logging.getLogger(__name__)


class TagProcessor(StageProcessor[TargetTerm]):
    """Creates or reuses one tag term per source tag."""

    stage = Stage.TAGS

    async def transform(self, ctx: RunContext, source_id: int) -> PreparedRow[TargetTerm]:
        term = await self._source.get_term(Stage.TAGS, source_id)
        if term is None:
            raise self._missing(source_id)

        return PreparedRow(
            source_id=source_id,
            label=term.name,
            payload=TargetTerm(
                taxonomy=TAXONOMY_TAGS,
                name=term.name,
                slug=term.slug,
                description=term.description,
            ),
        )

    async def write(self, ctx: RunContext, prepared: PreparedRow[TargetTerm]) -> RowOutcome:
        term = prepared.payload
        existing = await self._target.find_term_by_slug(TAXONOMY_TAGS, term.slug)
        if existing is not None:
            logger.debug("Reusing tag %s for slug '%s'", existing, term.slug)
            return RowOutcome(target_id=existing)
        return RowOutcome(target_id=await self._target.create_term(term))
