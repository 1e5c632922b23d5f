"""Inventory repository interface.

Every stock mutation is a *conditional* update: it applies only when the
row still satisfies ``0 <= reserved_stock <= total_stock`` afterwards and
reports whether it did.  The ledger never reads a row, computes new
totals in Python and writes them back.
"""

from __future__ import annotations

from abc import abstractmethod
from typing import TYPE_CHECKING, Any, Dict, Iterable, List, Optional
from uuid import UUID

from modules.core.repositories.interfaces import IRepository

if TYPE_CHECKING:
    from django.db import models

    from modules.inventory.models import InventoryItem, InventoryTransaction


class IInventoryRepository(IRepository["InventoryItem"]):
    """Repository contract for inventory rows and their transaction log."""

    # -- reads ---------------------------------------------------------

    @abstractmethod
    def get_items(
        self, retailer_id: UUID, product_ids: Iterable[UUID], active_only: bool = True
    ) -> Dict[str, "InventoryItem"]:
        """Rows for ``product_ids`` at a retailer, keyed by ``str(product_id)``."""

    @abstractmethod
    def get_item(self, retailer_id: UUID, product_id: UUID) -> Optional["InventoryItem"]:
        """The row for (retailer, product), active or not."""

    @abstractmethod
    def lock_item(self, retailer_id: UUID, product_id: UUID) -> Optional["InventoryItem"]:
        """Like ``get_item`` but holding the row lock until the unit ends."""

    @abstractmethod
    def lock_items(
        self, retailer_id: UUID, product_ids: Iterable[UUID]
    ) -> Dict[str, "InventoryItem"]:
        """Lock the rows for ``product_ids`` in product-id order, active or not."""

    @abstractmethod
    def refresh(self, item_id: UUID) -> "InventoryItem":
        """Re-read a row (after a conditional update)."""

    @abstractmethod
    def transactions(
        self, filters: Optional[Dict[str, Any]] = None
    ) -> "models.QuerySet[InventoryTransaction]":
        """Transaction log, oldest first."""

    @abstractmethod
    def order_transactions(
        self, order_id: UUID, retailer_id: Optional[UUID] = None
    ) -> List["InventoryTransaction"]:
        """Every ledger row recorded for an order."""

    # -- conditional writes --------------------------------------------

    @abstractmethod
    def try_reserve(self, item_id: UUID, quantity: int) -> bool:
        """``reserved += quantity`` if it stays within ``total_stock``."""

    @abstractmethod
    def try_release(self, item_id: UUID, quantity: int) -> bool:
        """``reserved -= quantity`` if at least ``quantity`` is reserved."""

    @abstractmethod
    def try_confirm(self, item_id: UUID, quantity: int) -> bool:
        """``reserved -= quantity`` and ``total -= quantity`` (goods left the shelf)."""

    @abstractmethod
    def add_stock(self, item_id: UUID, quantity: int) -> None:
        """``total += quantity``."""

    @abstractmethod
    def try_set_total(self, item_id: UUID, new_total: int) -> bool:
        """``total = new_total`` if ``new_total >= reserved``."""

    @abstractmethod
    def get_or_create_item(self, retailer_id: UUID, product_id: UUID) -> "InventoryItem":
        """The (retailer, product) row, created empty when missing."""

    @abstractmethod
    def add_transaction(self, **fields: Any) -> "InventoryTransaction":
        """Append one row to the transaction log."""
