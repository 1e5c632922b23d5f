"""Order domain exceptions.

Raised by the Service Layer when business rules are violated.
The API layer (Views) catches these and translates them into
appropriate HTTP responses.

Placement and reservation failures raised by collaborating modules are
re-exported here so callers of the order service import one module.
"""

from __future__ import annotations

from modules.inventory.exceptions import (  # noqa: F401
    ConcurrencyConflict,
    InsufficientStock,
    LedgerInconsistency,
    ReservationAlreadyTerminal,
)
from modules.products.exceptions import InactiveProduct, ProductNotFound  # noqa: F401
from modules.retailers.exceptions import InvalidCoordinates, NoRetailerInRange  # noqa: F401


class OrderNotFound(Exception):
    """The requested order does not exist."""


class InvalidStatusTransition(Exception):
    """The requested status change is not in the transition table."""

    def __init__(self, current: str, requested: str) -> None:
        self.current = str(current)
        self.requested = str(requested)
        super().__init__(f"Cannot transition order from {self.current} to {self.requested}.")


class ReservationNotActive(Exception):
    """The order holds no reservation to release or confirm."""

    def __init__(self, order_id, reservation_status: str) -> None:
        self.order_id = str(order_id)
        self.reservation_status = str(reservation_status)
        super().__init__(
            f"Order {self.order_id} has no active reservation "
            f"(reservation status: {self.reservation_status})."
        )
