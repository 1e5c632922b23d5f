"""Stock concurrency integration test.

Proves that concurrent placements against the same inventory row never
oversell, and that racing cancellations release stock only once.

Scenario:
- Retailer holds **5 units** of one product.
- 10 threads attempt to buy 1 unit each simultaneously.
- Exactly 5 succeed, 5 raise ``InsufficientStock``.
- Final ``reserved_stock`` is 5 and never exceeds ``total_stock``.

Uses ``TransactionTestCase`` so each thread sees committed data and row
locking behaves as it does in production.
"""

from __future__ import annotations

import logging
from concurrent.futures import ThreadPoolExecutor, as_completed
from decimal import Decimal
from uuid import uuid4

from django.db import connections
from django.test import TransactionTestCase

from modules.inventory.constants import TransactionType
from modules.inventory.models import InventoryItem, InventoryTransaction
from modules.inventory.views import build_ledger
from modules.orders.dtos import PlaceOrderDTO, PlaceOrderItemDTO
from modules.orders.exceptions import (
    ConcurrencyConflict,
    InsufficientStock,
    InvalidStatusTransition,
)
from modules.orders.models import Order
from modules.orders.views import build_order_service
from modules.products.models import Product, ProductStatus
from modules.retailers.models import Retailer

logger = logging.getLogger(__name__)

INITIAL_STOCK = 5
NUM_WORKERS = 10


class TestStockConcurrency(TransactionTestCase):
    """Prove atomic stock reservation under concurrent load."""

    def setUp(self):
        self.retailer = Retailer.objects.create(
            name="Concurrency Retailer",
            shop_name="Race Mart",
            latitude=12.9716,
            longitude=77.5946,
            service_radius_km=10,
        )
        self.product = Product.objects.create(
            sku="MILK-1L",
            name="Toned Milk 1L",
            price=Decimal("54.00"),
            status=ProductStatus.ACTIVE,
        )
        self.item = build_ledger().stock_in(
            self.retailer.id, self.product.id, INITIAL_STOCK, actor="test"
        )

    def _place_in_thread(self, thread_id: int) -> str:
        """Attempt to place an order. Returns 'success', 'insufficient' or 'conflict'."""
        connections.close_all()
        try:
            dto = PlaceOrderDTO(
                customer_id=uuid4(),
                items=[PlaceOrderItemDTO(product_id=self.product.id, quantity=1)],
                delivery_latitude=12.9750,
                delivery_longitude=77.6000,
                actor=f"thread-{thread_id}",
            )
            try:
                build_order_service().place_order(dto)
            except InsufficientStock:
                logger.warning("Thread %d: InsufficientStock (expected)", thread_id)
                return "insufficient"
            except ConcurrencyConflict:
                logger.warning("Thread %d: ConcurrencyConflict", thread_id)
                return "conflict"
            return "success"
        finally:
            connections.close_all()

    def test_concurrent_orders_never_oversell(self):
        """10 threads buy 1 unit from stock=5: exactly 5 succeed."""
        results = []

        with ThreadPoolExecutor(max_workers=NUM_WORKERS) as pool:
            futures = {
                pool.submit(self._place_in_thread, i): i for i in range(NUM_WORKERS)
            }
            for future in as_completed(futures):
                results.append(future.result())

        successes = results.count("success")
        self.assertEqual(
            successes,
            INITIAL_STOCK,
            f"Expected {INITIAL_STOCK} successes, got {results}",
        )
        self.assertEqual(results.count("insufficient"), NUM_WORKERS - INITIAL_STOCK)

        self.item.refresh_from_db()
        self.assertEqual(self.item.total_stock, INITIAL_STOCK)
        self.assertEqual(self.item.reserved_stock, INITIAL_STOCK)
        self.assertEqual(self.item.available_stock, 0)
        self.assertEqual(Order.objects.count(), INITIAL_STOCK)
        self.assertEqual(
            InventoryTransaction.objects.filter(
                transaction_type=TransactionType.RESERVE
            ).count(),
            INITIAL_STOCK,
        )


class TestConcurrentCancellation(TransactionTestCase):
    """Two cancellations of the same order release its stock once."""

    def setUp(self):
        retailer = Retailer.objects.create(
            name="Cancel Retailer",
            shop_name="Cancel Mart",
            latitude=12.9716,
            longitude=77.5946,
            service_radius_km=10,
        )
        product = Product.objects.create(
            sku="BREAD-400G",
            name="Bread 400g",
            price=Decimal("45.00"),
            status=ProductStatus.ACTIVE,
        )
        self.item = build_ledger().stock_in(retailer.id, product.id, 10, actor="test")
        self.order = build_order_service().place_order(
            PlaceOrderDTO(
                customer_id=uuid4(),
                items=[PlaceOrderItemDTO(product_id=product.id, quantity=4)],
                delivery_latitude=12.9750,
                delivery_longitude=77.6000,
            )
        )

    def _cancel_in_thread(self, thread_id: int) -> str:
        connections.close_all()
        try:
            build_order_service().cancel_order(self.order.id, reason=f"thread {thread_id}")
        except InvalidStatusTransition:
            return "rejected"
        except ConcurrencyConflict:
            return "conflict"
        finally:
            connections.close_all()
        return "cancelled"

    def test_release_happens_once(self):
        with ThreadPoolExecutor(max_workers=2) as pool:
            results = list(pool.map(self._cancel_in_thread, range(2)))

        self.assertEqual(results.count("cancelled"), 1, results)
        self.item.refresh_from_db()
        self.assertEqual(
            (self.item.total_stock, self.item.reserved_stock), (10, 0)
        )
        self.assertEqual(
            InventoryTransaction.objects.filter(
                order_id=self.order.id, transaction_type=TransactionType.RELEASE
            ).count(),
            1,
        )
        self.assertEqual(InventoryItem.objects.get(id=self.item.id).available_stock, 10)
