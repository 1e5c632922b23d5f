"""Order service layer (Use Cases).

Orchestrates order placement and the order lifecycle.  Every write runs
in one unit of work; the service never talks to the ORM directly.

Business rules enforced:
- Placement: coordinate bounds → product existence/activity and price
  snapshot → nearest in-range retailer → coordinated reservation.  Any
  failure leaves no order behind.
- Idempotency: a repeated ``idempotency_key`` returns the original order.
- Status transitions follow ``VALID_TRANSITIONS``; anything else raises
  ``InvalidStatusTransition`` and leaves the order untouched.
- Entering ``delivered`` confirms the reservation and entering
  ``cancelled`` releases it *before* the status is written; if the
  inventory side fails, so does the transition.
- The order row is locked for the whole transition so concurrent
  cancel/deliver requests cannot both apply.
- History is recorded on every status change.
"""

from __future__ import annotations

from functools import partial
from typing import TYPE_CHECKING, Any, Dict, List, Optional
from uuid import UUID

import structlog
from django.db import IntegrityError

from modules.inventory.constants import SYSTEM_ACTOR
from modules.inventory.ledger import translate_lock_errors
from modules.orders.constants import OrderStatus
from modules.orders.dtos import ReservationDraftDTO, ReservationLineDTO
from modules.orders.events import (
    OrderCancelled,
    OrderCreated,
    OrderDelivered,
    OrderStatusChanged,
)
from modules.orders.exceptions import (
    InactiveProduct,
    InvalidStatusTransition,
    OrderNotFound,
    ProductNotFound,
)
from modules.retailers.geo import Coordinate
from modules.retailers.matcher import RetailerMatcher
from shared.infrastructure.bus import event_bus as default_event_bus

if TYPE_CHECKING:
    from django.db import models

    from modules.core.unit_of_work import IUnitOfWork
    from modules.orders.dtos import PlaceOrderDTO, PlaceOrderItemDTO
    from modules.orders.models import Order
    from modules.orders.repositories.interfaces import IOrderRepository
    from modules.orders.reservations import ReservationCoordinator
    from modules.products.repositories.interfaces import IProductRepository
    from modules.retailers.repositories.interfaces import IRetailerRepository
    from shared.domain.bus import IEventBus

logger = structlog.get_logger(__name__)


class OrderService:
    """Application service for Order use-cases.

    Receives repositories and collaborators via constructor injection (DIP).
    """

    def __init__(
        self,
        order_repository: IOrderRepository,
        product_repository: IProductRepository,
        retailer_repository: IRetailerRepository,
        coordinator: ReservationCoordinator,
        unit_of_work: IUnitOfWork,
        matcher: Optional[RetailerMatcher] = None,
        event_bus: Optional[IEventBus] = None,
    ) -> None:
        self._order_repo = order_repository
        self._product_repo = product_repository
        self._retailer_repo = retailer_repository
        self._coordinator = coordinator
        self._uow = unit_of_work
        self._matcher = matcher or RetailerMatcher()
        self._bus = event_bus or default_event_bus

    # ------------------------------------------------------------------
    # Commands
    # ------------------------------------------------------------------

    def place_order(self, dto: PlaceOrderDTO) -> Order:
        """Match, reserve and persist a new order.

        Raises:
            InvalidCoordinates: delivery coordinate out of bounds.
            ProductNotFound: a product does not exist.
            InactiveProduct: a product is not for sale.
            NoRetailerInRange: no active retailer delivers there.
            InsufficientStock: the matched retailer cannot cover every line.
            ConcurrencyConflict: inventory stayed locked through every retry.
        """
        log = logger.bind(customer_id=str(dto.customer_id))
        log.info("order.placement_started")

        # 0. Idempotency check
        if dto.idempotency_key:
            existing = self._order_repo.get_by_idempotency_key(dto.idempotency_key)
            if existing:
                log.info(
                    "order.idempotency_hit",
                    order_id=str(existing.id),
                    key=dto.idempotency_key,
                )
                return existing

        # 1. Validate the delivery point, then price the lines
        delivery = Coordinate(dto.delivery_latitude, dto.delivery_longitude)
        lines = self._price_lines(dto.items)

        # 2. Match the retailer
        candidates = self._retailer_repo.list_active(
            near=delivery, radius_km=self._matcher.max_search_radius_km
        )
        match = self._matcher.find_best_retailer(delivery, candidates)

        draft = ReservationDraftDTO(
            customer_id=dto.customer_id,
            retailer_id=match.retailer.id,
            assignment_distance_km=round(match.distance_km, 3),
            delivery_latitude=delivery.latitude,
            delivery_longitude=delivery.longitude,
            delivery_address=dto.delivery_address,
            lines=lines,
            notes=dto.notes or "",
            idempotency_key=dto.idempotency_key,
            actor=dto.actor,
        )

        # 3. Persist + reserve atomically
        try:
            order = self._coordinator.reserve_for_order(
                draft, within_unit=partial(self._record_creation, actor=dto.actor)
            )
        except IntegrityError:
            # A concurrent request with the same key won the insert.
            existing = (
                self._order_repo.get_by_idempotency_key(dto.idempotency_key)
                if dto.idempotency_key
                else None
            )
            if existing is None:
                raise
            log.info("order.idempotency_race", order_id=str(existing.id))
            return existing

        log.info(
            "order.created",
            order_id=str(order.id),
            retailer_id=str(match.retailer.id),
            distance_km=round(match.distance_km, 2),
        )
        return self._order_repo.get_by_id(str(order.id)) or order

    def update_status(
        self,
        order_id: UUID,
        new_status: str,
        notes: str = "",
        actor: str = SYSTEM_ACTOR,
    ) -> Order:
        """Transition an order to a new status.

        Raises:
            OrderNotFound: order does not exist.
            InvalidStatusTransition: transition is not in the table.
            ReservationAlreadyTerminal / ReservationNotActive: the inventory
                side refused; the status is unchanged.
            ConcurrencyConflict: the order or its stock rows stayed locked
                through every retry.
        """
        log = logger.bind(order_id=str(order_id), new_status=new_status)
        self._coordinator.run_with_retries(
            partial(self._transition, order_id, new_status, notes, actor, log),
            log=log,
        )
        log.info("order.status_updated")
        return self.get_order(str(order_id))

    def _transition(
        self,
        order_id: UUID,
        new_status: str,
        notes: str,
        actor: str,
        log,
        attempt: int,
    ) -> None:
        """One attempt of ``update_status``: a single unit on the locked order."""
        with translate_lock_errors(), self._uow.atomic():
            order = self._order_repo.get_for_update(str(order_id))
            if not order:
                raise OrderNotFound(f"Order {order_id} not found.")

            if not order.can_transition_to(new_status):
                log.warning("order.invalid_transition", current_status=order.status)
                raise InvalidStatusTransition(order.status, new_status)

            old_status = order.status
            if new_status == OrderStatus.DELIVERED:
                order = self._coordinator.confirm_delivery_for_order(order, actor=actor)
                event = OrderDelivered(
                    order.id, old_status=old_status, new_status=new_status, changed_by=actor
                )
            elif new_status == OrderStatus.CANCELLED:
                reason = notes or "Order cancelled"
                order = self._coordinator.release_for_order(order, reason=reason, actor=actor)
                order.cancellation_reason = reason[:255]
                event = OrderCancelled(
                    order.id,
                    old_status=old_status,
                    new_status=new_status,
                    changed_by=actor,
                    reason=reason,
                )
            else:
                event = OrderStatusChanged(
                    order.id, old_status=old_status, new_status=new_status, changed_by=actor
                )

            order.status = new_status
            order.add_domain_event(event)
            self._save_with_events(order)
            self._order_repo.add_history(
                order_id=order.id,
                status=new_status,
                notes=notes,
                old_status=old_status,
                changed_by=actor,
            )

    def cancel_order(
        self, order_id: UUID, reason: str = "", actor: str = SYSTEM_ACTOR
    ) -> Order:
        """Cancel an order and release its reserved stock.

        Raises:
            OrderNotFound: order does not exist.
            InvalidStatusTransition: cancellation not allowed from current status.
        """
        return self.update_status(
            order_id, OrderStatus.CANCELLED, notes=reason, actor=actor
        )

    # ------------------------------------------------------------------
    # Queries
    # ------------------------------------------------------------------

    def get_order(self, order_id: str) -> Order:
        """Retrieve a single order by ID.

        Raises:
            OrderNotFound: if the order does not exist.
        """
        order = self._order_repo.get_by_id(order_id)
        if not order:
            raise OrderNotFound(f"Order {order_id} not found.")
        return order

    def get_order_by_idempotency_key(self, key: str) -> Optional[Order]:
        return self._order_repo.get_by_idempotency_key(key)

    def list_orders(
        self, filters: Optional[Dict[str, Any]] = None
    ) -> "models.QuerySet[Order]":
        """Return orders, optionally filtered."""
        return self._order_repo.list(filters)

    # ------------------------------------------------------------------
    # Helpers
    # ------------------------------------------------------------------

    def _price_lines(self, items: List[PlaceOrderItemDTO]) -> List[ReservationLineDTO]:
        products = self._product_repo.get_many(str(item.product_id) for item in items)
        lines = []
        for item in items:
            product = products.get(str(item.product_id))
            if product is None:
                raise ProductNotFound(item.product_id)
            if not product.is_active:
                raise InactiveProduct(item.product_id, product.sku)
            lines.append(
                ReservationLineDTO(
                    product_id=item.product_id,
                    quantity=item.quantity,
                    unit_price=product.price,
                )
            )
        return lines

    def _record_creation(self, order: Order, actor: str) -> None:
        """Runs inside the creation unit, right after the reservation."""
        self._order_repo.add_history(
            order_id=order.id,
            status=OrderStatus.PENDING,
            notes="Order created",
            changed_by=actor,
        )
        order.add_domain_event(
            OrderCreated(
                order.id,
                order_number=order.order_number,
                customer_id=str(order.customer_id),
                retailer_id=str(order.assigned_retailer_id),
                total_amount=str(order.total_amount),
            )
        )
        self._save_with_events(order)

    def _save_with_events(self, order: Order) -> None:
        """Write pending events to the outbox and publish them in-process on commit."""
        events = order.domain_events
        self._order_repo.save(order)
        for event in events:
            self._uow.on_commit(partial(self._bus.publish, event))
