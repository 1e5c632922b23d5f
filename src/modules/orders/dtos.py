"""Order DTOs for the Service Layer.

Framework-agnostic data transfer objects using Pydantic v2.
These are the contracts between the API layer (DRF Serializers)
and the Service layer.  DTOs are immutable (``frozen=True``).

- ``PlaceOrderItemDTO``: input for a single order line.
- ``PlaceOrderDTO``: input for order placement (nested items).
- ``ReservationLineDTO``: a priced line of a matched order.
- ``ReservationDraftDTO``: everything needed to persist and reserve an
  order once its retailer is known.
"""

from __future__ import annotations

from decimal import Decimal
from typing import List, Optional
from uuid import UUID

from pydantic import BaseModel, ConfigDict, field_validator, model_validator

from modules.inventory.constants import SYSTEM_ACTOR

# ---------------------------------------------------------------------------
# Input DTOs
# ---------------------------------------------------------------------------


class PlaceOrderItemDTO(BaseModel):
    """Immutable DTO for a single order item in a placement request.

    ``unit_price`` is resolved by the Service Layer from the product catalog.
    """

    model_config = ConfigDict(frozen=True)

    product_id: UUID
    quantity: int

    @field_validator("quantity")
    @classmethod
    def quantity_must_be_positive(cls, v: int) -> int:
        if v < 1:
            raise ValueError("Quantity must be at least 1.")
        return v


class PlaceOrderDTO(BaseModel):
    """Immutable DTO for order placement requests.

    Validates:
    - ``items`` must contain at least one item.
    - Each product appears at most once.

    The delivery coordinate arrives already geocoded; its bounds are
    checked by the service (``InvalidCoordinates``), not here.
    """

    model_config = ConfigDict(frozen=True)

    customer_id: UUID
    items: List[PlaceOrderItemDTO]
    delivery_latitude: float
    delivery_longitude: float
    delivery_address: str = ""
    notes: Optional[str] = ""
    idempotency_key: Optional[str] = None
    actor: str = SYSTEM_ACTOR

    @field_validator("items")
    @classmethod
    def items_must_not_be_empty(
        cls, v: List[PlaceOrderItemDTO]
    ) -> List[PlaceOrderItemDTO]:
        if not v:
            raise ValueError("Order must have at least one item.")
        return v

    @model_validator(mode="after")
    def no_duplicate_products(self):
        """Prevent duplicate product IDs in the same order."""
        product_ids = [item.product_id for item in self.items]
        if len(product_ids) != len(set(product_ids)):
            raise ValueError("Duplicate product IDs are not allowed in the same order.")
        return self


# ---------------------------------------------------------------------------
# Reservation DTOs
# ---------------------------------------------------------------------------


class ReservationLineDTO(BaseModel):
    model_config = ConfigDict(frozen=True)

    product_id: UUID
    quantity: int
    unit_price: Decimal

    @property
    def subtotal(self) -> Decimal:
        return self.quantity * self.unit_price


class ReservationDraftDTO(BaseModel):
    """An order that has been priced and matched but not yet persisted."""

    model_config = ConfigDict(frozen=True)

    customer_id: UUID
    retailer_id: UUID
    assignment_distance_km: float
    delivery_latitude: float
    delivery_longitude: float
    delivery_address: str = ""
    lines: List[ReservationLineDTO]
    notes: str = ""
    idempotency_key: Optional[str] = None
    actor: str = SYSTEM_ACTOR

    @property
    def total_amount(self) -> Decimal:
        return sum((line.subtotal for line in self.lines), Decimal("0.00"))
