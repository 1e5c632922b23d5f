from __future__ import annotations

from decimal import Decimal
from uuid import uuid4

import pytest
from django.contrib.auth import get_user_model
from rest_framework.test import APIClient

from modules.inventory.views import build_ledger
from modules.orders.dtos import PlaceOrderDTO, PlaceOrderItemDTO
from modules.orders.views import build_order_service
from modules.products.models import Product, ProductStatus
from modules.retailers.models import Retailer

User = get_user_model()

# Central Bengaluru; the delivery point is ~0.7 km from the retailer.
RETAILER_LOCATION = (12.9716, 77.5946)
DELIVERY_POINT = (12.9750, 77.6000)


@pytest.fixture(autouse=True)
def _use_db(db):
    """Automatically use the test database for all tests."""


@pytest.fixture()
def api_client():
    """DRF APIClient for testing API endpoints."""
    return APIClient()


@pytest.fixture()
def user():
    return User.objects.create_user(username="operator", password="testpass123")


@pytest.fixture()
def auth_client(user):
    """APIClient with a force-authenticated regular user."""
    client = APIClient()
    client.force_authenticate(user=user)
    return client


@pytest.fixture()
def staff_client():
    """APIClient authenticated as a staff member (stock mutations)."""
    client = APIClient()
    staff = User.objects.create_user(
        username="stockkeeper", password="testpass123", is_staff=True
    )
    client.force_authenticate(user=staff)
    return client


@pytest.fixture()
def api_client_with_correlation(api_client):
    """APIClient pre-configured with a known correlation ID header."""
    cid = "test-correlation-id-fixture"
    api_client.defaults["HTTP_X_REQUEST_ID"] = cid
    return api_client, cid


# ---------------------------------------------------------------------------
# Catalog / directory
# ---------------------------------------------------------------------------


@pytest.fixture()
def product():
    return Product.objects.create(
        sku="RICE-5KG",
        name="Basmati Rice 5kg",
        unit="bag",
        price=Decimal("649.00"),
        status=ProductStatus.ACTIVE,
    )


@pytest.fixture()
def second_product():
    return Product.objects.create(
        sku="DAL-1KG",
        name="Toor Dal 1kg",
        unit="pack",
        price=Decimal("179.50"),
        status=ProductStatus.ACTIVE,
    )


@pytest.fixture()
def inactive_product():
    return Product.objects.create(
        sku="OLD-001",
        name="Discontinued Item",
        price=Decimal("10.00"),
        status=ProductStatus.INACTIVE,
    )


@pytest.fixture()
def retailer():
    return Retailer.objects.create(
        name="Asha Rao",
        shop_name="Asha Kirana Store",
        latitude=RETAILER_LOCATION[0],
        longitude=RETAILER_LOCATION[1],
        service_radius_km=10,
    )


# ---------------------------------------------------------------------------
# Ledger / service
# ---------------------------------------------------------------------------


@pytest.fixture()
def ledger():
    return build_ledger()


@pytest.fixture()
def stock(ledger, retailer, product, second_product):
    """10 units of each product at ``retailer``."""
    return {
        product.id: ledger.stock_in(retailer.id, product.id, 10, actor="test"),
        second_product.id: ledger.stock_in(retailer.id, second_product.id, 10, actor="test"),
    }


@pytest.fixture()
def order_service():
    return build_order_service()


@pytest.fixture()
def make_order_dto():
    def _make(lines, point=DELIVERY_POINT, **overrides):
        fields = {
            "customer_id": uuid4(),
            "items": [
                PlaceOrderItemDTO(product_id=product.id, quantity=quantity)
                for product, quantity in lines
            ],
            "delivery_latitude": point[0],
            "delivery_longitude": point[1],
            "delivery_address": "MG Road",
            "actor": "test",
        }
        fields.update(overrides)
        return PlaceOrderDTO(**fields)

    return _make


@pytest.fixture()
def order_payload(product):
    def _payload(quantity=1, **overrides):
        payload = {
            "customer_id": str(uuid4()),
            "items": [{"product_id": str(product.id), "quantity": quantity}],
            "delivery_latitude": DELIVERY_POINT[0],
            "delivery_longitude": DELIVERY_POINT[1],
            "delivery_address": "MG Road",
        }
        payload.update(overrides)
        return payload

    return _payload
