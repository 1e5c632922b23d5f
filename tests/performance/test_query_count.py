"""Performance regression tests: constant query count (N+1 prevention).

List and retrieve endpoints must execute a bounded number of SQL queries
regardless of how many orders, items or history rows exist.
"""

from __future__ import annotations

from decimal import Decimal

import pytest

from modules.orders.constants import OrderStatus
from modules.products.models import Product, ProductStatus

ORDERS_URL = "/api/v1/orders/"


@pytest.fixture()
def products(ledger, retailer):
    items = []
    for i in range(5):
        product = Product.objects.create(
            sku=f"PERF-{i:03d}",
            name=f"Product {i}",
            price=Decimal("10.00"),
            status=ProductStatus.ACTIVE,
        )
        ledger.stock_in(retailer.id, product.id, 1000)
        items.append(product)
    return items


def _place_orders(order_service, make_order_dto, products, count):
    orders = []
    for _ in range(count):
        order = order_service.place_order(make_order_dto([(p, 1) for p in products]))
        order_service.update_status(order.id, OrderStatus.CONFIRMED)
        orders.append(order)
    return orders


@pytest.mark.parametrize("count", [1, 10])
def test_list_query_count_is_constant(
    auth_client, order_service, make_order_dto, products, count, django_assert_max_num_queries
):
    _place_orders(order_service, make_order_dto, products, count)

    with django_assert_max_num_queries(8):
        response = auth_client.get(ORDERS_URL)

    assert response.status_code == 200
    assert response.data["count"] == count


def test_retrieve_query_count(
    auth_client, order_service, make_order_dto, products, django_assert_max_num_queries
):
    (order,) = _place_orders(order_service, make_order_dto, products, 1)

    with django_assert_max_num_queries(8):
        response = auth_client.get(f"{ORDERS_URL}{order.id}/")

    assert response.status_code == 200
    assert len(response.data["items"]) == 5
    assert len(response.data["status_history"]) == 2
