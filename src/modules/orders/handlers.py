"""Event handlers for Orders domain events.

Published in-process after the order transaction commits; the same
events reach external consumers through the outbox relay.
"""

from __future__ import annotations

import structlog

from modules.orders.events import (
    OrderCancelled,
    OrderCreated,
    OrderDelivered,
    OrderStatusChanged,
)
from shared.domain.bus import IEventHandler

logger = structlog.get_logger(__name__)


class OrderCreatedHandler(IEventHandler[OrderCreated]):
    def handle(self, event: OrderCreated) -> None:
        logger.info(
            "order.event.created",
            order_id=str(event.aggregate_id),
            order_number=event.order_number,
            retailer_id=event.retailer_id,
        )


class OrderStatusChangedHandler(IEventHandler[OrderStatusChanged]):
    """Logs every transition, including cancellations and deliveries."""

    def handle(self, event: OrderStatusChanged) -> None:
        log = logger.bind(
            order_id=str(event.aggregate_id),
            old_status=event.old_status,
            new_status=event.new_status,
            changed_by=event.changed_by,
        )
        if isinstance(event, OrderCancelled):
            log.info("order.event.cancelled", reason=event.reason)
        elif isinstance(event, OrderDelivered):
            log.info("order.event.delivered")
        else:
            log.info("order.event.status_changed")


order_created_handler = OrderCreatedHandler()
order_status_changed_handler = OrderStatusChangedHandler()
