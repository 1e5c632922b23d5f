"""Unit tests for the in-memory event bus."""

from __future__ import annotations

from uuid import uuid4

import pytest

from modules.orders.events import OrderCancelled, OrderCreated, OrderStatusChanged
from shared.domain.events import DomainEvent
from shared.infrastructure.bus import InMemoryEventBus

pytestmark = pytest.mark.unit


class Recorder:
    def __init__(self):
        self.events = []

    def handle(self, event):
        self.events.append(event)


@pytest.fixture()
def bus():
    return InMemoryEventBus()


def test_delivers_to_subscribed_handler(bus):
    handler = Recorder()
    bus.subscribe(OrderCreated, handler)

    event = OrderCreated(uuid4())
    bus.publish(event)

    assert handler.events == [event]


def test_base_class_subscribers_receive_subclasses(bus):
    handler = Recorder()
    bus.subscribe(OrderStatusChanged, handler)

    bus.publish(OrderCancelled(uuid4(), reason="x"))
    bus.publish(OrderCreated(uuid4()))

    assert [type(e) for e in handler.events] == [OrderCancelled]


def test_handler_on_several_levels_runs_once(bus):
    handler = Recorder()
    bus.subscribe(DomainEvent, handler)
    bus.subscribe(OrderCancelled, handler)

    bus.publish(OrderCancelled(uuid4()))

    assert len(handler.events) == 1


def test_duplicate_subscription_is_ignored(bus):
    handler = Recorder()
    bus.subscribe(OrderCreated, handler)
    bus.subscribe(OrderCreated, handler)

    bus.publish(OrderCreated(uuid4()))

    assert len(handler.events) == 1


def test_unsubscribe(bus):
    handler = Recorder()
    bus.subscribe(OrderCreated, handler)
    bus.unsubscribe(OrderCreated, handler)
    bus.unsubscribe(OrderCreated, handler)

    bus.publish(OrderCreated(uuid4()))

    assert handler.events == []


def test_publish_without_handlers_is_a_noop(bus):
    bus.publish(OrderCreated(uuid4()))
