"""Per-retailer stock ledger.

Business rules implemented:
- One ``InventoryItem`` per (retailer, product).
- ``0 <= reserved_stock <= total_stock`` always; enforced by check
  constraints as well as by the conditional updates in the ledger.
- ``available_stock`` is derived: ``total_stock - reserved_stock``.
- ``InventoryTransaction`` rows are append-only: one per stock mutation,
  written in the same transaction as the mutation, never updated or
  deleted.
- An order has at most one reserve row per inventory item and at most one
  settlement row (release or confirm, never both).
"""

from __future__ import annotations

from django.db import models

from modules.core.models import BaseModel
from modules.inventory.constants import (
    ORDER_TRANSACTION_TYPES,
    SETTLEMENT_TRANSACTION_TYPES,
    TransactionType,
)
from modules.inventory.exceptions import ImmutableTransaction


class InventoryItemQuerySet(models.QuerySet):
    def low_stock(self) -> "InventoryItemQuerySet":
        """Rows whose available stock is at or below ``min_stock_level``."""
        return self.filter(
            total_stock__lte=models.F("reserved_stock") + models.F("min_stock_level")
        )


class InventoryItem(BaseModel):
    retailer = models.ForeignKey(
        "retailers.Retailer",
        on_delete=models.PROTECT,
        related_name="inventory_items",
    )
    product = models.ForeignKey(
        "products.Product",
        on_delete=models.PROTECT,
        related_name="inventory_items",
    )
    total_stock = models.PositiveIntegerField(default=0)
    reserved_stock = models.PositiveIntegerField(default=0)
    min_stock_level = models.PositiveIntegerField(default=0)
    is_active = models.BooleanField(default=True)
    total_sold = models.PositiveIntegerField(default=0)
    last_restocked_at = models.DateTimeField(null=True, blank=True)
    last_sold_at = models.DateTimeField(null=True, blank=True)

    objects = InventoryItemQuerySet.as_manager()

    class Meta:
        db_table = "inventory_items"
        ordering = ["retailer_id", "product_id"]
        constraints = [
            models.UniqueConstraint(
                fields=["retailer", "product"],
                name="inventory_items_retailer_product_uniq",
            ),
            models.CheckConstraint(
                condition=models.Q(total_stock__gte=0),
                name="inventory_items_total_non_negative",
            ),
            models.CheckConstraint(
                condition=models.Q(reserved_stock__gte=0),
                name="inventory_items_reserved_non_negative",
            ),
            models.CheckConstraint(
                condition=models.Q(reserved_stock__lte=models.F("total_stock")),
                name="inventory_items_reserved_within_total",
            ),
        ]

    @property
    def available_stock(self) -> int:
        return self.total_stock - self.reserved_stock

    @property
    def is_low_stock(self) -> bool:
        return self.available_stock <= self.min_stock_level

    def __str__(self) -> str:
        return (
            f"{self.retailer_id}/{self.product_id} "
            f"[{self.reserved_stock}/{self.total_stock}]"
        )


class AppendOnlyQuerySet(models.QuerySet):
    def update(self, **kwargs):
        raise ImmutableTransaction("Inventory transactions cannot be updated.")

    def delete(self):
        raise ImmutableTransaction("Inventory transactions cannot be deleted.")


class InventoryTransaction(BaseModel):
    inventory_item = models.ForeignKey(
        InventoryItem,
        on_delete=models.PROTECT,
        related_name="transactions",
    )
    retailer = models.ForeignKey(
        "retailers.Retailer",
        on_delete=models.PROTECT,
        related_name="inventory_transactions",
    )
    product = models.ForeignKey(
        "products.Product",
        on_delete=models.PROTECT,
        related_name="inventory_transactions",
    )
    transaction_type = models.CharField(max_length=20, choices=TransactionType.choices)
    quantity = models.PositiveIntegerField()
    previous_total_stock = models.PositiveIntegerField()
    new_total_stock = models.PositiveIntegerField()
    previous_reserved_stock = models.PositiveIntegerField()
    new_reserved_stock = models.PositiveIntegerField()
    # Opaque reference: the ledger never loads the order.
    order_id = models.UUIDField(null=True, blank=True)
    actor = models.CharField(max_length=150)
    reason = models.CharField(max_length=255, blank=True, default="")
    notes = models.TextField(blank=True, default="")

    objects = AppendOnlyQuerySet.as_manager()

    class Meta:
        db_table = "inventory_transactions"
        ordering = ["created_at", "id"]
        indexes = [
            models.Index(fields=["order_id"], name="inv_txn_order_idx"),
            models.Index(
                fields=["retailer", "created_at"], name="inv_txn_retailer_created_idx"
            ),
            models.Index(fields=["transaction_type"], name="inv_txn_type_idx"),
        ]
        constraints = [
            models.UniqueConstraint(
                fields=["order_id", "inventory_item", "transaction_type"],
                condition=models.Q(transaction_type__in=ORDER_TRANSACTION_TYPES),
                name="inv_txn_once_per_order_item",
            ),
            models.UniqueConstraint(
                fields=["order_id", "inventory_item"],
                condition=models.Q(transaction_type__in=SETTLEMENT_TRANSACTION_TYPES),
                name="inv_txn_single_settlement",
            ),
        ]

    def save(self, *args, **kwargs) -> None:
        if not self._state.adding:
            raise ImmutableTransaction(
                f"Inventory transaction {self.id} cannot be modified."
            )
        super().save(*args, **kwargs)

    def delete(self, *args, **kwargs):
        raise ImmutableTransaction(f"Inventory transaction {self.id} cannot be deleted.")

    def __str__(self) -> str:
        return f"{self.transaction_type} {self.quantity} ({self.inventory_item_id})"
