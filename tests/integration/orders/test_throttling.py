"""Scoped throttling on the order API."""

from __future__ import annotations

import pytest
from django.core.cache import cache
from rest_framework.throttling import ScopedRateThrottle

pytestmark = pytest.mark.integration

URL = "/api/v1/orders/"


@pytest.fixture()
def tight_rates(monkeypatch):
    rates = {**ScopedRateThrottle.THROTTLE_RATES, "order_creation": "3/minute"}
    monkeypatch.setattr(ScopedRateThrottle, "THROTTLE_RATES", rates)
    cache.clear()
    yield
    cache.clear()


def test_order_creation_is_throttled(tight_rates, auth_client, order_payload, stock):
    for _ in range(3):
        response = auth_client.post(URL, order_payload(), format="json")
        assert response.status_code == 201

    response = auth_client.post(URL, order_payload(), format="json")

    assert response.status_code == 429
    assert response.data["errors"][0]["code"] == "throttled"
    assert "Retry-After" in response


def test_order_listing_has_its_own_budget(tight_rates, auth_client):
    for _ in range(5):
        assert auth_client.get(URL).status_code == 200
