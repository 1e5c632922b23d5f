"""Domain events for the Orders bounded context.

These go through the transactional outbox (see ``OrderDjangoRepository.save``).
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Optional

from shared.domain.events import DomainEvent


@dataclass(frozen=True)
class OrderCreated(DomainEvent):
    """Raised when an order is placed and its stock reserved."""

    order_number: str = ""
    customer_id: Optional[str] = None
    retailer_id: Optional[str] = None
    total_amount: str = "0.00"


@dataclass(frozen=True)
class OrderStatusChanged(DomainEvent):
    """Raised when an order status changes."""

    old_status: str = ""
    new_status: str = ""
    changed_by: str = "system"


@dataclass(frozen=True)
class OrderCancelled(OrderStatusChanged):
    """Raised when an order is cancelled and its stock released."""

    reason: str = ""


@dataclass(frozen=True)
class OrderDelivered(OrderStatusChanged):
    """Raised when an order is delivered and its stock deducted."""
