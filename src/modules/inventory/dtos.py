"""Inventory ledger DTOs (Pydantic v2, immutable).

- ``LedgerLineDTO``: one (product, quantity) line of a ledger batch.
- ``StockAvailabilityDTO``: advisory availability for one line.
- ``LedgerResultDTO``: outcome of a reserve/release/confirm call.
"""

from __future__ import annotations

from typing import Any, Dict, Iterable, List
from uuid import UUID

from pydantic import BaseModel, ConfigDict, Field


class LedgerLineDTO(BaseModel):
    model_config = ConfigDict(frozen=True)

    product_id: UUID
    quantity: int = Field(ge=1)


class StockAvailabilityDTO(BaseModel):
    model_config = ConfigDict(frozen=True)

    product_id: UUID
    available: int
    requested: int
    sufficient: bool


class LedgerResultDTO(BaseModel):
    """``applied`` is ``False`` when the call was a repeat of an earlier one."""

    model_config = ConfigDict(frozen=True)

    applied: bool
    transaction_ids: List[UUID] = Field(default_factory=list)


def merge_lines(items: Iterable[Any]) -> List[LedgerLineDTO]:
    """Sum quantities per product and sort by product id.

    Accepts anything with ``product_id`` and ``quantity`` attributes
    (DTOs, order items).  The stable order keeps concurrent batches
    locking rows in the same sequence.
    """
    totals: Dict[UUID, int] = {}
    for item in items:
        line = (
            item
            if isinstance(item, LedgerLineDTO)
            else LedgerLineDTO(product_id=item.product_id, quantity=item.quantity)
        )
        totals[line.product_id] = totals.get(line.product_id, 0) + line.quantity
    return [
        LedgerLineDTO(product_id=product_id, quantity=quantity)
        for product_id, quantity in sorted(totals.items(), key=lambda kv: str(kv[0]))
    ]
