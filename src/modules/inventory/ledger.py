"""Inventory ledger (use cases).

Business rules enforced:
- ``reserve`` is all-or-nothing per batch: either every line is reserved
  or nothing is, and ``InsufficientStock`` lists every short line.
- ``release`` and ``confirm`` are idempotent per order: a repeat call is a
  no-op reported as ``applied=False``.  Once one of them has been applied
  the other is refused with ``ReservationAlreadyTerminal``.  The order's
  rows are locked before its history is read, and a unique constraint
  allows a single settlement row per (order, item).
- Each mutation writes exactly one ``InventoryTransaction`` per affected
  row, inside the same unit of work as the row update.
- Lines are merged per product and processed in product-id order so
  concurrent batches lock rows in the same sequence.
- Lock waits are bounded; lock timeouts, deadlocks and serialization
  failures surface as the retryable ``ConcurrencyConflict``.
"""

from __future__ import annotations

from contextlib import contextmanager
from typing import TYPE_CHECKING, Any, Dict, Iterable, Iterator, List, Optional
from uuid import UUID

import structlog
from django.conf import settings
from django.db import DatabaseError, IntegrityError

from modules.core.db import apply_lock_timeout, is_lock_conflict, restore_lock_timeout
from modules.inventory.constants import SYSTEM_ACTOR, TransactionType
from modules.inventory.dtos import (
    LedgerLineDTO,
    LedgerResultDTO,
    StockAvailabilityDTO,
    merge_lines,
)
from modules.inventory.exceptions import (
    ConcurrencyConflict,
    InsufficientStock,
    InvalidStockAdjustment,
    InventoryItemNotFound,
    LedgerInconsistency,
    ReservationAlreadyTerminal,
    Shortfall,
)

if TYPE_CHECKING:
    from django.db import models

    from modules.core.unit_of_work import IUnitOfWork
    from modules.inventory.models import InventoryItem, InventoryTransaction
    from modules.inventory.repositories.interfaces import IInventoryRepository

logger = structlog.get_logger(__name__)


@contextmanager
def translate_lock_errors(duplicates_as_conflict: bool = False) -> Iterator[None]:
    """Re-raise lock-wait, deadlock and serialization failures as ``ConcurrencyConflict``.

    Must wrap the *outermost* atomic block of an attempt so the
    transaction is already rolled back when the conflict surfaces.

    With ``duplicates_as_conflict`` a unique-constraint violation (two
    writers settling the same order at once) is reported the same way.
    On the way out it restores any MySQL session lock wait once no atomic
    block is left open.
    """
    try:
        yield
    except IntegrityError as exc:
        if not duplicates_as_conflict:
            raise
        logger.warning("inventory.duplicate_settlement", error=str(exc))
        raise ConcurrencyConflict() from exc
    except DatabaseError as exc:
        if not is_lock_conflict(exc):
            raise
        logger.warning("inventory.lock_conflict", error=str(exc))
        raise ConcurrencyConflict() from exc
    finally:
        restore_lock_timeout()


class InventoryLedger:
    """Per-(retailer, product) stock ledger.

    Receives its repository and unit of work via constructor injection.
    """

    def __init__(
        self,
        repository: IInventoryRepository,
        unit_of_work: IUnitOfWork,
        lock_timeout_ms: Optional[int] = None,
    ) -> None:
        self._repo = repository
        self._uow = unit_of_work
        if lock_timeout_ms is None:
            lock_timeout_ms = settings.FULFILLMENT_LOCK_TIMEOUT_MS
        self._lock_timeout_ms = lock_timeout_ms

    # ------------------------------------------------------------------
    # Queries
    # ------------------------------------------------------------------

    def check_available(
        self, retailer_id: UUID, items: Iterable[Any]
    ) -> List[StockAvailabilityDTO]:
        """Advisory availability per line. Takes no locks.

        Unknown or inactive inventory rows report ``available=0``.
        """
        lines = merge_lines(items)
        rows = self._repo.get_items(retailer_id, [line.product_id for line in lines])
        result = []
        for line in lines:
            row = rows.get(str(line.product_id))
            available = row.available_stock if row is not None else 0
            result.append(
                StockAvailabilityDTO(
                    product_id=line.product_id,
                    available=available,
                    requested=line.quantity,
                    sufficient=available >= line.quantity,
                )
            )
        return result

    def get_item(self, item_id: UUID) -> InventoryItem:
        item = self._repo.get_by_id(str(item_id))
        if item is None:
            raise InventoryItemNotFound(f"Inventory item {item_id} not found.")
        return item

    def list_items(
        self,
        retailer_id: Optional[UUID] = None,
        low_stock: bool = False,
        filters: Optional[Dict[str, Any]] = None,
    ) -> "models.QuerySet[InventoryItem]":
        lookups = dict(filters or {})
        if retailer_id is not None:
            lookups["retailer_id"] = retailer_id
        queryset = self._repo.list(lookups)
        if low_stock:
            queryset = queryset.low_stock()
        return queryset

    def list_transactions(
        self, filters: Optional[Dict[str, Any]] = None
    ) -> "models.QuerySet[InventoryTransaction]":
        return self._repo.transactions(filters)

    def reservations_for_order(self, order_id: UUID) -> List[InventoryTransaction]:
        return [
            txn
            for txn in self._repo.order_transactions(order_id)
            if txn.transaction_type == TransactionType.RESERVE
        ]

    # ------------------------------------------------------------------
    # Commands
    # ------------------------------------------------------------------

    def reserve(
        self,
        retailer_id: UUID,
        items: Iterable[Any],
        order_id: UUID,
        actor: str = SYSTEM_ACTOR,
    ) -> LedgerResultDTO:
        """Reserve every line or none.

        Raises:
            InsufficientStock: at least one line is short; nothing changed.
            ConcurrencyConflict: a row lock could not be acquired in time.
        """
        lines = merge_lines(items)
        log = logger.bind(retailer_id=str(retailer_id), order_id=str(order_id))

        with translate_lock_errors(), self._uow.atomic():
            apply_lock_timeout(self._lock_timeout_ms)
            rows = self._repo.get_items(retailer_id, [line.product_id for line in lines])

            reserved: List[tuple] = []
            shortfalls: List[Shortfall] = []
            for line in lines:
                row = rows.get(str(line.product_id))
                if row is None:
                    shortfalls.append(Shortfall(str(line.product_id), line.quantity, 0))
                    continue
                if not shortfalls and self._repo.try_reserve(row.id, line.quantity):
                    reserved.append((line, row.id))
                    continue
                # Once a line is short the rest are only checked, never reserved.
                current = self._repo.refresh(row.id)
                available = current.available_stock if current.is_active else 0
                if available < line.quantity or not shortfalls:
                    shortfalls.append(
                        Shortfall(str(line.product_id), line.quantity, available)
                    )

            if shortfalls:
                log.info(
                    "inventory.reserve_rejected",
                    shortfalls=[s.to_dict() for s in shortfalls],
                )
                raise InsufficientStock(retailer_id, shortfalls)

            transaction_ids = []
            for line, item_id in reserved:
                after = self._repo.refresh(item_id)
                txn = self._record(
                    after,
                    TransactionType.RESERVE,
                    line.quantity,
                    previous_total=after.total_stock,
                    previous_reserved=after.reserved_stock - line.quantity,
                    order_id=order_id,
                    actor=actor,
                )
                transaction_ids.append(txn.id)

        log.info("inventory.reserved", line_count=len(lines))
        return LedgerResultDTO(applied=True, transaction_ids=transaction_ids)

    def release(
        self,
        retailer_id: UUID,
        items: Iterable[Any],
        order_id: UUID,
        actor: str = SYSTEM_ACTOR,
        reason: str = "",
    ) -> LedgerResultDTO:
        """Return an order's reserved stock to the available pool.

        Raises:
            ReservationAlreadyTerminal: the order's stock was already confirmed.
            LedgerInconsistency: no matching reservation is recorded.
        """
        return self._settle(
            TransactionType.RELEASE,
            retailer_id,
            items,
            order_id,
            actor,
            reason=reason,
        )

    def confirm(
        self,
        retailer_id: UUID,
        items: Iterable[Any],
        order_id: UUID,
        actor: str = SYSTEM_ACTOR,
    ) -> LedgerResultDTO:
        """Permanently deduct an order's reserved stock (delivered).

        Raises:
            ReservationAlreadyTerminal: the order's stock was already released.
            LedgerInconsistency: no matching reservation is recorded.
        """
        return self._settle(TransactionType.CONFIRM, retailer_id, items, order_id, actor)

    def stock_in(
        self,
        retailer_id: UUID,
        product_id: UUID,
        quantity: int,
        actor: str = SYSTEM_ACTOR,
        notes: str = "",
    ) -> InventoryItem:
        """Receive goods, creating the inventory row on first delivery."""
        if quantity < 1:
            raise InvalidStockAdjustment("Stock-in quantity must be at least 1.")

        with translate_lock_errors(), self._uow.atomic():
            apply_lock_timeout(self._lock_timeout_ms)
            item = self._repo.get_or_create_item(retailer_id, product_id)
            self._repo.add_stock(item.id, quantity)
            after = self._repo.refresh(item.id)
            self._record(
                after,
                TransactionType.STOCK_IN,
                quantity,
                previous_total=after.total_stock - quantity,
                previous_reserved=after.reserved_stock,
                actor=actor,
                notes=notes,
            )

        logger.info(
            "inventory.stock_in",
            retailer_id=str(retailer_id),
            product_id=str(product_id),
            quantity=quantity,
            total_stock=after.total_stock,
        )
        return after

    def adjust(
        self,
        retailer_id: UUID,
        product_id: UUID,
        new_total: int,
        actor: str = SYSTEM_ACTOR,
        reason: str = "",
    ) -> InventoryItem:
        """Set ``total_stock`` after a stock count.

        Raises:
            InventoryItemNotFound: no row for (retailer, product).
            InvalidStockAdjustment: ``new_total`` is negative or below ``reserved_stock``.
        """
        if new_total < 0:
            raise InvalidStockAdjustment("Total stock cannot be negative.")

        with translate_lock_errors(), self._uow.atomic():
            apply_lock_timeout(self._lock_timeout_ms)
            item = self._repo.lock_item(retailer_id, product_id)
            if item is None:
                raise InventoryItemNotFound(
                    f"No inventory for product {product_id} at retailer {retailer_id}."
                )
            previous_total = item.total_stock
            if not self._repo.try_set_total(item.id, new_total):
                raise InvalidStockAdjustment(
                    f"Total stock {new_total} is below reserved stock "
                    f"{item.reserved_stock}."
                )
            after = self._repo.refresh(item.id)
            self._record(
                after,
                TransactionType.ADJUSTMENT,
                abs(new_total - previous_total),
                previous_total=previous_total,
                previous_reserved=after.reserved_stock,
                actor=actor,
                reason=reason,
            )

        logger.info(
            "inventory.adjusted",
            retailer_id=str(retailer_id),
            product_id=str(product_id),
            previous_total=previous_total,
            new_total=new_total,
        )
        return after

    # ------------------------------------------------------------------
    # Helpers
    # ------------------------------------------------------------------

    def _settle(
        self,
        kind: TransactionType,
        retailer_id: UUID,
        items: Iterable[Any],
        order_id: UUID,
        actor: str,
        reason: str = "",
    ) -> LedgerResultDTO:
        opposite = (
            TransactionType.CONFIRM
            if kind == TransactionType.RELEASE
            else TransactionType.RELEASE
        )
        lines = merge_lines(items)
        log = logger.bind(
            retailer_id=str(retailer_id), order_id=str(order_id), operation=kind.value
        )

        with translate_lock_errors(duplicates_as_conflict=True), self._uow.atomic():
            apply_lock_timeout(self._lock_timeout_ms)
            # The history below is only authoritative once the rows are locked.
            self._repo.lock_items(retailer_id, [line.product_id for line in lines])
            history = self._repo.order_transactions(order_id, retailer_id)
            recorded = {str(txn.transaction_type) for txn in history}

            if opposite.value in recorded:
                state = "delivered" if opposite == TransactionType.CONFIRM else "released"
                raise ReservationAlreadyTerminal(order_id, state)
            if kind.value in recorded:
                log.info("inventory.settle_skipped")
                return LedgerResultDTO(applied=False)

            reservations = {
                txn.inventory_item_id: txn
                for txn in history
                if txn.transaction_type == TransactionType.RESERVE
            }
            self._check_matches_reservation(order_id, lines, reservations.values())

            apply = (
                self._repo.try_release
                if kind == TransactionType.RELEASE
                else self._repo.try_confirm
            )
            transaction_ids = []
            for item_id, reservation in sorted(
                reservations.items(), key=lambda kv: str(kv[1].product_id)
            ):
                if not apply(item_id, reservation.quantity):
                    raise LedgerInconsistency(
                        f"Inventory item {item_id} holds less than the "
                        f"{reservation.quantity} units reserved by order {order_id}."
                    )
                after = self._repo.refresh(item_id)
                deducted = reservation.quantity if kind == TransactionType.CONFIRM else 0
                txn = self._record(
                    after,
                    kind,
                    reservation.quantity,
                    previous_total=after.total_stock + deducted,
                    previous_reserved=after.reserved_stock + reservation.quantity,
                    order_id=order_id,
                    actor=actor,
                    reason=reason,
                )
                transaction_ids.append(txn.id)

        log.info("inventory.settled", line_count=len(transaction_ids))
        return LedgerResultDTO(applied=True, transaction_ids=transaction_ids)

    @staticmethod
    def _check_matches_reservation(
        order_id: UUID,
        lines: List[LedgerLineDTO],
        reservations: Iterable[InventoryTransaction],
    ) -> None:
        reserved = {str(txn.product_id): txn.quantity for txn in reservations}
        requested = {str(line.product_id): line.quantity for line in lines}
        if not reserved:
            raise LedgerInconsistency(f"No reservation is recorded for order {order_id}.")
        if reserved != requested:
            raise LedgerInconsistency(
                f"Lines for order {order_id} do not match its reservation "
                f"(reserved {reserved}, given {requested})."
            )

    def _record(
        self,
        after: InventoryItem,
        kind: TransactionType,
        quantity: int,
        previous_total: int,
        previous_reserved: int,
        order_id: Optional[UUID] = None,
        actor: str = SYSTEM_ACTOR,
        reason: str = "",
        notes: str = "",
    ) -> InventoryTransaction:
        return self._repo.add_transaction(
            inventory_item_id=after.id,
            retailer_id=after.retailer_id,
            product_id=after.product_id,
            transaction_type=kind,
            quantity=quantity,
            previous_total_stock=previous_total,
            new_total_stock=after.total_stock,
            previous_reserved_stock=previous_reserved,
            new_reserved_stock=after.reserved_stock,
            order_id=order_id,
            actor=actor or SYSTEM_ACTOR,
            reason=reason,
            notes=notes,
        )
