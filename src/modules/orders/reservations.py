"""Reservation coordinator: binds an order to the inventory ledger.

Business rules enforced:
- An order is persisted only together with its full reservation.  The
  order row, its items and the ledger reservation are written in one unit
  of work; ``InsufficientStock`` aborts the unit and no order survives.
- A non-locking availability pre-check rejects obviously short orders
  before any transaction is opened.
- ``ConcurrencyConflict`` aborts the attempt; the whole attempt is retried
  a bounded number of times with linear backoff, then surfaced.  Retries
  only happen when the coordinator owns the outermost unit of work.  The
  order lifecycle reuses the same policy (``run_with_retries``) for
  release and confirm.
- Release and confirm act only on a ``reserved`` order; a settled order
  is refused with ``ReservationAlreadyTerminal`` and an order that never
  reserved with ``ReservationNotActive``.

Reservation events (attempted / succeeded / failed / released /
delivery confirmed) are the single observability interface of this flow:
failures are published immediately, successes after commit.
"""

from __future__ import annotations

import time
from functools import partial
from typing import TYPE_CHECKING, Callable, Optional, Tuple, TypeVar
from uuid import UUID

import structlog
import uuid6
from django.conf import settings

from modules.inventory.events import (
    DeliveryConfirmed,
    ReservationAttempted,
    ReservationEvent,
    ReservationFailed,
    ReservationReleased,
    ReservationSucceeded,
)
from modules.inventory.exceptions import (
    ConcurrencyConflict,
    InsufficientStock,
    ReservationAlreadyTerminal,
    Shortfall,
)
from modules.inventory.ledger import translate_lock_errors
from modules.orders.constants import TERMINAL_RESERVATION_STATES, ReservationStatus
from modules.orders.exceptions import ReservationNotActive
from shared.infrastructure.bus import event_bus as default_event_bus

if TYPE_CHECKING:
    from modules.core.unit_of_work import IUnitOfWork
    from modules.inventory.ledger import InventoryLedger
    from modules.orders.dtos import ReservationDraftDTO
    from modules.orders.models import Order
    from modules.orders.repositories.interfaces import IOrderRepository
    from shared.domain.bus import IEventBus

logger = structlog.get_logger(__name__)

T = TypeVar("T")


class ReservationCoordinator:
    """Orchestrates reserve / release / confirm on behalf of orders.

    Receives its collaborators via constructor injection (DIP).
    """

    def __init__(
        self,
        order_repository: IOrderRepository,
        ledger: InventoryLedger,
        unit_of_work: IUnitOfWork,
        event_bus: Optional[IEventBus] = None,
        max_retries: Optional[int] = None,
        backoff_ms: Optional[int] = None,
        sleep: Callable[[float], None] = time.sleep,
    ) -> None:
        self._orders = order_repository
        self._ledger = ledger
        self._uow = unit_of_work
        self._bus = event_bus or default_event_bus
        if max_retries is None:
            max_retries = settings.FULFILLMENT_RESERVATION_MAX_RETRIES
        if backoff_ms is None:
            backoff_ms = settings.FULFILLMENT_RESERVATION_RETRY_BACKOFF_MS
        self._max_retries = max_retries
        self._backoff_ms = backoff_ms
        self._sleep = sleep

    # ------------------------------------------------------------------
    # Reserve (order creation transaction)
    # ------------------------------------------------------------------

    def reserve_for_order(
        self,
        draft: ReservationDraftDTO,
        within_unit: Optional[Callable[[Order], None]] = None,
    ) -> Order:
        """Persist ``draft`` as a reserved order, or persist nothing.

        ``within_unit`` runs inside the creation unit after the
        reservation succeeds (history rows, outbox events).

        Raises:
            InsufficientStock: a line cannot be covered; no order exists.
            ConcurrencyConflict: lock contention persisted through every retry.
        """
        order_id = uuid6.uuid7()
        lines = _event_lines(draft.lines)
        context = {"retailer_id": str(draft.retailer_id), "lines": lines}
        log = logger.bind(order_id=str(order_id), retailer_id=str(draft.retailer_id))

        self._precheck(order_id, draft, context)

        def attempt_once(attempt: int) -> Order:
            self._bus.publish(ReservationAttempted(order_id, attempt=attempt, **context))
            try:
                with translate_lock_errors(), self._uow.atomic():
                    order = self._orders.create(draft, order_id=order_id)
                    self._ledger.reserve(
                        draft.retailer_id, order.items.all(), order.id, actor=draft.actor
                    )
                    order = self._orders.mark_reserved(order)
                    if within_unit is not None:
                        within_unit(order)
                    self._uow.on_commit(
                        partial(
                            self._bus.publish,
                            ReservationSucceeded(order_id, attempts=attempt, **context),
                        )
                    )
            except InsufficientStock as exc:
                self._fail(
                    order_id, context, "insufficient_stock", shortfalls=exc.shortfalls
                )
                raise
            log.info("reservation.committed", attempt=attempt)
            return order

        return self.run_with_retries(
            attempt_once,
            log=log,
            on_exhausted=partial(
                self._fail, order_id, context, "concurrency_conflict", retryable=True
            ),
        )

    def run_with_retries(
        self,
        operation: Callable[[int], T],
        log=None,
        on_exhausted: Optional[Callable[[], None]] = None,
    ) -> T:
        """Call ``operation(attempt)`` until it stops raising ``ConcurrencyConflict``.

        ``operation`` must open its own unit of work so a failed attempt is
        fully rolled back before the next one.  Inside a caller's unit there
        is exactly one attempt: that transaction cannot be restarted here.
        Waits ``backoff_ms * attempt`` between attempts.
        """
        log = log or logger
        attempts = 1 if self._uow.in_unit else 1 + self._max_retries
        for attempt in range(1, attempts + 1):
            try:
                return operation(attempt)
            except ConcurrencyConflict:
                if attempt == attempts:
                    if on_exhausted is not None:
                        on_exhausted()
                    raise
                log.warning("reservation.retrying", attempt=attempt)
                self._sleep(self._backoff_ms * attempt / 1000)

        raise ConcurrencyConflict()

    def _precheck(
        self, order_id: UUID, draft: ReservationDraftDTO, context: dict
    ) -> None:
        availability = self._ledger.check_available(draft.retailer_id, draft.lines)
        shortfalls = [
            Shortfall(str(entry.product_id), entry.requested, entry.available)
            for entry in availability
            if not entry.sufficient
        ]
        if shortfalls:
            self._fail(order_id, context, "insufficient_stock", shortfalls=shortfalls)
            raise InsufficientStock(draft.retailer_id, shortfalls)

    def _fail(
        self,
        order_id: UUID,
        context: dict,
        reason: str,
        shortfalls=(),
        retryable: bool = False,
    ) -> None:
        self._bus.publish(
            ReservationFailed(
                order_id,
                reason=reason,
                retryable=retryable,
                shortfalls=tuple(s.to_dict() for s in shortfalls),
                **context,
            )
        )

    # ------------------------------------------------------------------
    # Release / confirm
    # ------------------------------------------------------------------

    def release_for_order(
        self, order: Order, reason: str = "", actor: str = "system"
    ) -> Order:
        """Return the order's reserved stock.  Joins the caller's unit if one is open.

        Raises:
            ReservationAlreadyTerminal: the reservation was already settled.
            ReservationNotActive: the order never reserved stock.
        """
        self._require_reserved(order)
        with self._uow.atomic():
            self._ledger.release(
                order.assigned_retailer_id,
                order.items.all(),
                order.id,
                actor=actor,
                reason=reason,
            )
            order = self._orders.mark_released(order)
            self._publish_after_commit(order, ReservationReleased, reason=reason)
        return order

    def confirm_delivery_for_order(self, order: Order, actor: str = "system") -> Order:
        """Permanently deduct the order's reserved stock.

        Raises:
            ReservationAlreadyTerminal: the reservation was already settled.
            ReservationNotActive: the order never reserved stock.
        """
        self._require_reserved(order)
        with self._uow.atomic():
            self._ledger.confirm(
                order.assigned_retailer_id, order.items.all(), order.id, actor=actor
            )
            order = self._orders.mark_delivered(order)
            self._publish_after_commit(order, DeliveryConfirmed)
        return order

    @staticmethod
    def _require_reserved(order: Order) -> None:
        if order.reservation_status in TERMINAL_RESERVATION_STATES:
            raise ReservationAlreadyTerminal(order.id, order.reservation_status)
        if order.reservation_status != ReservationStatus.RESERVED:
            raise ReservationNotActive(order.id, order.reservation_status)

    def _publish_after_commit(self, order: Order, event_class, **fields) -> None:
        event: ReservationEvent = event_class(
            order.id,
            retailer_id=str(order.assigned_retailer_id),
            lines=_event_lines(order.items.all()),
            **fields,
        )
        self._uow.on_commit(partial(self._bus.publish, event))


def _event_lines(items) -> Tuple[Tuple[str, int], ...]:
    return tuple((str(item.product_id), item.quantity) for item in items)
