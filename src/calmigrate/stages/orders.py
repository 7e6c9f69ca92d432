"""
Orders stage: source ticket orders become target orders.

An order that references an event is associated with the migrated event.
When that event was never migrated the order is logged and skipped; it is
not retried within the run. Orders without an event are migrated
unassociated.
"""

import logging
from datetime import date

from calmigrate.exceptions import MissingSourceDataError
from calmigrate.models import RunContext, Stage
from calmigrate.stages.base import PreparedRow, RowOutcome, StageProcessor
from calmigrate.target.models import OrderStatus, TargetOrder

logger = logging.getLogger(__name__)

ORDER_STATUS_MAP: dict[str, OrderStatus] = {
    "completed": OrderStatus.PAID,
    "complete": OrderStatus.PAID,
    "paid": OrderStatus.PAID,
    "pending": OrderStatus.PENDING,
    "processing": OrderStatus.PENDING,
    "on-hold": OrderStatus.PENDING,
    "refunded": OrderStatus.REFUNDED,
    "cancelled": OrderStatus.CANCELLED,
    "failed": OrderStatus.FAILED,
}


def map_order_status(status: str) -> OrderStatus:
    """
    Map a source order status onto the target's statuses.

    Args:
        status: Source status, matched case-insensitively

    Returns:
        Target status; unknown statuses become PENDING
    """
    normalized = status.strip().lower()
    mapped = ORDER_STATUS_MAP.get(normalized)
    if mapped is None:
        logger.warning("Unknown order status '%s', importing as pending", status)
        return OrderStatus.PENDING
    return mapped


class OrderProcessor(StageProcessor[TargetOrder]):
    """Creates one target order per source order."""

    stage = Stage.ORDERS

    async def transform(self, ctx: RunContext, source_id: int) -> PreparedRow[TargetOrder]:
        order = await self._source.get_order(source_id)
        if order is None:
            raise self._missing(source_id)

        label = f"Order #{source_id}"
        event_id: int | None = None
        event_date: date | None = None
        if order.event_id is not None:
            event_id = await self._resolve(source_id, Stage.EVENTS, order.event_id, label)
            event_date = await self._event_date(order.event_id)

        return PreparedRow(
            source_id=source_id,
            label=label,
            payload=TargetOrder(
                status=map_order_status(order.status),
                total=order.total,
                currency=order.currency,
                email=order.email,
                first_name=order.first_name,
                last_name=order.last_name,
                created_at=order.created_at,
                transaction_id=order.transaction_id,
                event_id=event_id,
                event_date=event_date,
            ),
        )

    async def write(self, ctx: RunContext, prepared: PreparedRow[TargetOrder]) -> RowOutcome:
        return RowOutcome(target_id=await self._target.create_order(prepared.payload))

    async def _event_date(self, source_event_id: int) -> date | None:
        try:
            event = await self._source.get_event(source_event_id)
        except MissingSourceDataError:
            return None
        return event.start.date() if event else None
