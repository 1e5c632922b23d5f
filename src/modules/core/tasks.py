"""Outbox relay.

Committed ``OutboxEvent`` rows are drained in creation order and emitted
as structured log records, the observability sink of this service.  A
relay failure leaves the row ``FAILED`` with its error so the next run
retries it until ``OutboxEvent.MAX_RETRIES`` is reached.
"""

from typing import Dict

import structlog
from celery import shared_task
from django.conf import settings
from django.db.models import F, Q

from modules.core.models import EventStatus, OutboxEvent

logger = structlog.get_logger(__name__)


def emit_outbox_event(event: OutboxEvent) -> None:
    logger.bind(
        event_id=str(event.id),
        aggregate_id=event.aggregate_id,
        topic=event.topic,
    ).info("outbox.event_relayed", event_type=event.event_type, payload=event.payload)


@shared_task(name="core.relay_outbox_events")
def relay_outbox_events(batch_size: int = None) -> Dict[str, int]:
    batch_size = batch_size or settings.OUTBOX_RELAY_BATCH_SIZE
    retryable = Q(status=EventStatus.PENDING) | Q(
        status=EventStatus.FAILED, retry_count__lt=OutboxEvent.MAX_RETRIES
    )
    events = list(
        OutboxEvent.objects.filter(retryable).order_by(F("created_at").asc(), "id")[
            :batch_size
        ]
    )

    published = failed = 0
    for event in events:
        try:
            emit_outbox_event(event)
        except Exception as exc:  # noqa: BLE001 - recorded on the row for retry
            event.mark_as_failed(str(exc))
            failed += 1
            logger.warning(
                "outbox.relay_failed",
                event_id=str(event.id),
                retry_count=event.retry_count,
                error=str(exc),
            )
            continue
        event.mark_as_published()
        published += 1

    if events:
        logger.info("outbox.relay_completed", published=published, failed=failed)
    return {"published": published, "failed": failed}
