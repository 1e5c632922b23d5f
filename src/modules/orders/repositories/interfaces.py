"""Order repository interface.

Extends ``IRepository[Order]`` with methods required by the Order
aggregate: creation from a reservation draft, reservation bookkeeping,
status history tracking, row locking and idempotency-key look-up.

The Service Layer depends exclusively on this contract (DIP).
"""

from __future__ import annotations

from abc import abstractmethod
from typing import TYPE_CHECKING, Any, Dict, Optional
from uuid import UUID

from modules.core.repositories.interfaces import IRepository

if TYPE_CHECKING:
    from django.db import models

    from modules.orders.dtos import ReservationDraftDTO
    from modules.orders.models import Order, OrderStatusHistory


class IOrderRepository(IRepository["Order"]):
    """Repository contract for the Order aggregate root.

    The Order aggregate includes OrderItem children and
    OrderStatusHistory records.  Mutations must run inside the caller's
    unit of work.
    """

    @abstractmethod
    def create(self, draft: ReservationDraftDTO, order_id: Optional[UUID] = None) -> Order:
        """Persist a ``pending`` / ``not_reserved`` order with its items."""

    @abstractmethod
    def mark_reserved(self, order: Order) -> Order:
        """Flag the order and every item as reserved (sets ``reserved_at``)."""

    @abstractmethod
    def mark_released(self, order: Order) -> Order:
        """Reservation returned to stock (sets ``released_at``)."""

    @abstractmethod
    def mark_delivered(self, order: Order) -> Order:
        """Reservation deducted from stock (sets ``delivered_at``)."""

    @abstractmethod
    def get_by_id(self, id: str) -> Optional[Order]:
        """Retrieve an order with prefetched items and status history."""

    @abstractmethod
    def list(self, filters: Optional[Dict[str, Any]] = None) -> "models.QuerySet[Order]":
        """List orders with optional filters."""

    @abstractmethod
    def get_for_update(self, id: str) -> Optional[Order]:
        """Retrieve an order holding its row lock until the unit ends."""

    @abstractmethod
    def add_history(
        self,
        order_id: UUID,
        status: str,
        notes: str = "",
        old_status: Optional[str] = None,
        changed_by: str = "system",
    ) -> OrderStatusHistory:
        """Record a status change in the order's audit trail."""

    @abstractmethod
    def get_by_idempotency_key(self, key: str) -> Optional[Order]:
        """Retrieve an order by its idempotency key."""
