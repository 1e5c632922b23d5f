"""Idempotent order creation via the ``Idempotency-Key`` header."""

from __future__ import annotations

import pytest
from rest_framework import status

from modules.inventory.models import InventoryItem
from modules.orders.models import Order

pytestmark = pytest.mark.integration

URL = "/api/v1/orders/"


def test_replay_returns_original_order(auth_client, order_payload, stock, product):
    payload = order_payload(quantity=2)

    first = auth_client.post(URL, payload, format="json", HTTP_IDEMPOTENCY_KEY="key-1")
    second = auth_client.post(URL, payload, format="json", HTTP_IDEMPOTENCY_KEY="key-1")

    assert first.status_code == status.HTTP_201_CREATED
    assert second.status_code == status.HTTP_200_OK
    assert second.data["id"] == first.data["id"]
    assert Order.objects.count() == 1
    assert InventoryItem.objects.get(id=stock[product.id].id).reserved_stock == 2


def test_different_keys_create_different_orders(auth_client, order_payload, stock):
    a = auth_client.post(URL, order_payload(), format="json", HTTP_IDEMPOTENCY_KEY="a")
    b = auth_client.post(URL, order_payload(), format="json", HTTP_IDEMPOTENCY_KEY="b")

    assert a.status_code == b.status_code == status.HTTP_201_CREATED
    assert a.data["id"] != b.data["id"]


def test_without_key_every_request_creates_an_order(auth_client, order_payload, stock):
    payload = order_payload()
    auth_client.post(URL, payload, format="json")
    auth_client.post(URL, payload, format="json")

    assert Order.objects.count() == 2


def test_failed_placement_does_not_burn_the_key(auth_client, order_payload, stock):
    failed = auth_client.post(
        URL, order_payload(quantity=50), format="json", HTTP_IDEMPOTENCY_KEY="retry-me"
    )
    assert failed.status_code == status.HTTP_409_CONFLICT

    ok = auth_client.post(
        URL, order_payload(quantity=1), format="json", HTTP_IDEMPOTENCY_KEY="retry-me"
    )
    assert ok.status_code == status.HTTP_201_CREATED
