"""Event handlers for reservation events."""

from __future__ import annotations

import structlog

from modules.inventory.events import ReservationEvent, ReservationFailed
from shared.domain.bus import IEventHandler

logger = structlog.get_logger(__name__)


class ReservationEventLogger(IEventHandler[ReservationEvent]):
    """Write every reservation event as one structured log line."""

    def handle(self, event: ReservationEvent) -> None:
        payload = event.to_payload()
        log = logger.bind(
            order_id=payload.pop("aggregate_id"),
            event_id=payload.pop("event_id"),
        )
        payload.pop("event_name", None)
        if isinstance(event, ReservationFailed):
            log.warning(event.log_event, **payload)
        else:
            log.info(event.log_event, **payload)


reservation_event_logger = ReservationEventLogger()
