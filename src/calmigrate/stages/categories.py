"""
Categories stage: source categories become target category terms.

Categories are read directly from the source term data, deduplicated by
slug and given a random display colour. The parent link cannot be set yet
(the parent may not have been migrated), so the source parent ID is kept on
the tracking record and the hierarchy is rebuilt once every category exists.
"""

import logging
import random
from dataclasses import dataclass
from typing import Any

from calmigrate.models import RunContext, Stage
from calmigrate.stages.base import PreparedRow, RowOutcome, StageProcessor
from calmigrate.target.models import TAXONOMY_CATEGORIES, TargetTerm

logger = logging.getLogger(__name__)


def random_color(rng: random.Random) -> str:
    """Return a random ``#rrggbb`` colour."""
    return f"#{rng.randint(0, 0xFFFFFF):06x}"


@dataclass(frozen=True)
class CategoryPayload:
    term: TargetTerm
    source_parent_id: int | None


class CategoryProcessor(StageProcessor[CategoryPayload]):
    """Creates or reuses one category term per source category."""

    stage = Stage.CATEGORIES

    def __init__(self, *args: Any, rng: random.Random | None = None, **kwargs: Any) -> None:
        super().__init__(*args, **kwargs)
        self.rng = rng or random.Random()

    async def transform(self, ctx: RunContext, source_id: int) -> PreparedRow[CategoryPayload]:
        term = await self._source.get_term(Stage.CATEGORIES, source_id)
        if term is None:
            raise self._missing(source_id)

        return PreparedRow(
            source_id=source_id,
            label=term.name,
            payload=CategoryPayload(
                term=TargetTerm(
                    taxonomy=TAXONOMY_CATEGORIES,
                    name=term.name,
                    slug=term.slug,
                    description=term.description,
                    color=random_color(self.rng),
                ),
                source_parent_id=term.parent_id,
            ),
        )

    async def write(
        self, ctx: RunContext, prepared: PreparedRow[CategoryPayload]
    ) -> RowOutcome:
        payload = prepared.payload
        target_id = await self._target.find_term_by_slug(TAXONOMY_CATEGORIES, payload.term.slug)
        if target_id is None:
            target_id = await self._target.create_term(payload.term)
        else:
            logger.debug("Reusing category %s for slug '%s'", target_id, payload.term.slug)
        return RowOutcome(target_id=target_id, source_parent_id=payload.source_parent_id)
