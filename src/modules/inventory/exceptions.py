"""Inventory ledger exceptions.

Raised by ``InventoryLedger`` and translated by the API layer:
``InsufficientStock`` and ``ReservationAlreadyTerminal`` map to 409,
``ConcurrencyConflict`` to 503 (retryable).
"""

from __future__ import annotations

from dataclasses import asdict, dataclass
from typing import Any, Dict, List, Sequence


@dataclass(frozen=True)
class Shortfall:
    product_id: str
    requested: int
    available: int

    def to_dict(self) -> Dict[str, Any]:
        return asdict(self)


class InsufficientStock(Exception):
    """One or more lines cannot be reserved; nothing was reserved."""

    def __init__(self, retailer_id, shortfalls: Sequence[Shortfall]) -> None:
        self.retailer_id = str(retailer_id)
        self.shortfalls: List[Shortfall] = list(shortfalls)
        detail = ", ".join(
            f"{s.product_id}: requested {s.requested}, available {s.available}"
            for s in self.shortfalls
        )
        super().__init__(f"Insufficient stock at retailer {self.retailer_id} ({detail}).")


class ReservationAlreadyTerminal(Exception):
    """The order's reservation was already delivered or released."""

    def __init__(self, order_id, state: str) -> None:
        self.order_id = str(order_id)
        self.state = state
        super().__init__(f"Reservation for order {self.order_id} is already {state}.")


class ConcurrencyConflict(Exception):
    """A ledger row could not be locked in time. Safe to retry."""

    def __init__(
        self, message: str = "Inventory is busy, please retry.", retry_after: int = 1
    ) -> None:
        self.retry_after = retry_after
        super().__init__(message)


class InventoryItemNotFound(Exception):
    """No inventory row exists for the requested key."""


class InvalidStockAdjustment(Exception):
    """A stock change would break ``0 <= reserved_stock <= total_stock``."""


class LedgerInconsistency(Exception):
    """Stored reservations disagree with the operation being applied."""


class ImmutableTransaction(Exception):
    """Inventory transactions are append-only."""
