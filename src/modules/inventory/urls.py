"""Inventory URL configuration."""

from __future__ import annotations

from rest_framework.routers import DefaultRouter

from modules.inventory.views import InventoryItemViewSet, InventoryTransactionViewSet

router = DefaultRouter(trailing_slash=True)
router.register("inventory/items", InventoryItemViewSet, basename="inventory-item")
router.register(
    "inventory/transactions",
    InventoryTransactionViewSet,
    basename="inventory-transaction",
)

urlpatterns = router.urls
