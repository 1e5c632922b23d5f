"""Transactional outbox and in-process event publication.

Order events are written to ``OutboxEvent`` inside the order's unit of
work; reservation and order events reach the in-process bus only after
commit, failures immediately.
"""

from __future__ import annotations

import pytest

from modules.core.models import EventStatus, OutboxEvent
from modules.core.tasks import relay_outbox_events
from modules.inventory.events import (
    DeliveryConfirmed,
    ReservationAttempted,
    ReservationEvent,
    ReservationFailed,
    ReservationReleased,
    ReservationSucceeded,
)
from modules.orders.constants import OrderStatus
from modules.orders.events import OrderCreated, OrderStatusChanged
from modules.orders.exceptions import InsufficientStock
from shared.domain.events import DomainEvent
from shared.infrastructure.bus import event_bus

pytestmark = pytest.mark.integration


class Recorder:
    def __init__(self):
        self.events = []

    def handle(self, event):
        self.events.append(event)

    def types(self):
        return [type(e) for e in self.events]


@pytest.fixture()
def recorder():
    recorder = Recorder()
    event_bus.subscribe(DomainEvent, recorder)
    yield recorder
    event_bus.unsubscribe(DomainEvent, recorder)


def _outbox_types(order_id):
    return list(
        OutboxEvent.objects.filter(aggregate_id=str(order_id))
        .order_by("created_at", "id")
        .values_list("event_type", flat=True)
    )


class TestOutboxRows:
    def test_lifecycle_writes_one_row_per_transition(
        self, order_service, make_order_dto, product, stock
    ):
        order = order_service.place_order(make_order_dto([(product, 1)]))
        order_service.update_status(order.id, OrderStatus.CONFIRMED)
        order_service.cancel_order(order.id, reason="no longer needed")

        assert _outbox_types(order.id) == [
            "OrderCreated",
            "OrderStatusChanged",
            "OrderCancelled",
        ]
        cancelled = OutboxEvent.objects.get(
            aggregate_id=str(order.id), event_type="OrderCancelled"
        )
        assert cancelled.topic == "orders"
        assert cancelled.payload["reason"] == "no longer needed"
        assert cancelled.payload["old_status"] == "confirmed"

    def test_failed_placement_writes_nothing(
        self, order_service, make_order_dto, product, stock
    ):
        with pytest.raises(InsufficientStock):
            order_service.place_order(make_order_dto([(product, 99)]))
        assert not OutboxEvent.objects.exists()


class TestEventPublication:
    def test_success_events_published_after_commit(
        self,
        order_service,
        make_order_dto,
        product,
        stock,
        recorder,
        django_capture_on_commit_callbacks,
    ):
        with django_capture_on_commit_callbacks(execute=False) as callbacks:
            order = order_service.place_order(make_order_dto([(product, 1)]))

        assert recorder.types() == [ReservationAttempted]

        for callback in callbacks:
            callback()

        assert ReservationSucceeded in recorder.types()
        assert OrderCreated in recorder.types()
        succeeded = next(e for e in recorder.events if isinstance(e, ReservationSucceeded))
        assert succeeded.aggregate_id == order.id
        assert succeeded.lines == ((str(product.id), 1),)

    def test_failure_published_immediately(
        self, order_service, make_order_dto, product, stock, recorder
    ):
        with pytest.raises(InsufficientStock):
            order_service.place_order(make_order_dto([(product, 99)]))

        (failed,) = [e for e in recorder.events if isinstance(e, ReservationFailed)]
        assert failed.reason == "insufficient_stock"
        assert failed.shortfalls[0]["available"] == 10

    def test_cancel_and_deliver_events(
        self,
        order_service,
        make_order_dto,
        product,
        stock,
        recorder,
        django_capture_on_commit_callbacks,
    ):
        with django_capture_on_commit_callbacks(execute=True):
            cancelled = order_service.place_order(make_order_dto([(product, 1)]))
            delivered = order_service.place_order(make_order_dto([(product, 1)]))
            order_service.cancel_order(cancelled.id, reason="duplicate")
            for status in (
                OrderStatus.CONFIRMED,
                OrderStatus.PREPARING,
                OrderStatus.OUT_FOR_DELIVERY,
                OrderStatus.DELIVERED,
            ):
                order_service.update_status(delivered.id, status)

        released = [e for e in recorder.events if isinstance(e, ReservationReleased)]
        confirmed = [e for e in recorder.events if isinstance(e, DeliveryConfirmed)]
        assert [e.aggregate_id for e in released] == [cancelled.id]
        assert released[0].reason == "duplicate"
        assert [e.aggregate_id for e in confirmed] == [delivered.id]
        status_events = [e for e in recorder.events if isinstance(e, OrderStatusChanged)]
        assert len(status_events) == 5
        assert all(
            isinstance(e, (ReservationEvent, OrderCreated, OrderStatusChanged))
            for e in recorder.events
        )


class TestRelay:
    def test_relay_publishes_pending_rows(self, order_service, make_order_dto, product, stock):
        order_service.place_order(make_order_dto([(product, 1)]))

        result = relay_outbox_events()

        assert result == {"published": 1, "failed": 0}
        assert OutboxEvent.objects.get().status == EventStatus.PUBLISHED
        assert relay_outbox_events() == {"published": 0, "failed": 0}

    def test_relay_failure_marks_row_for_retry(
        self, order_service, make_order_dto, product, stock, monkeypatch
    ):
        order_service.place_order(make_order_dto([(product, 1)]))

        def broken_sink(event):
            raise ConnectionError("sink unreachable")

        monkeypatch.setattr("modules.core.tasks.emit_outbox_event", broken_sink)
        assert relay_outbox_events() == {"published": 0, "failed": 1}
        event = OutboxEvent.objects.get()
        assert event.status == EventStatus.FAILED
        assert event.retry_count == 1
        assert event.can_retry

        monkeypatch.undo()
        assert relay_outbox_events() == {"published": 1, "failed": 0}
