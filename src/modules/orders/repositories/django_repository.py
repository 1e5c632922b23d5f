"""Django ORM implementation of the Order repository.

Satisfies ``IOrderRepository`` using Django's QuerySet API.  Methods do
not open transactions of their own; the reservation coordinator and the
order service own the unit of work.

Domain events collected on the aggregate are written to the
transactional outbox by ``save``, inside the same transaction.
"""

from __future__ import annotations

from typing import Any, Dict, Optional
from uuid import UUID

import structlog
from django.core.exceptions import ValidationError
from django.db import models
from django.utils import timezone

from modules.core.models import OutboxEvent
from modules.orders.constants import ReservationStatus
from modules.orders.dtos import ReservationDraftDTO
from modules.orders.models import Order, OrderItem, OrderStatusHistory
from modules.orders.repositories.interfaces import IOrderRepository

logger = structlog.get_logger(__name__)

OUTBOX_TOPIC = "orders"


class OrderDjangoRepository(IOrderRepository):
    """Concrete Order repository backed by Django ORM."""

    # ------------------------------------------------------------------
    # Create (aggregate root + children)
    # ------------------------------------------------------------------

    def create(self, draft: ReservationDraftDTO, order_id: Optional[UUID] = None) -> Order:
        order = Order(
            customer_id=draft.customer_id,
            assigned_retailer_id=draft.retailer_id,
            assignment_distance_km=draft.assignment_distance_km,
            delivery_latitude=draft.delivery_latitude,
            delivery_longitude=draft.delivery_longitude,
            delivery_address=draft.delivery_address,
            total_amount=draft.total_amount,
            notes=draft.notes,
            idempotency_key=draft.idempotency_key,
        )
        if order_id is not None:
            order.id = order_id
        order.save(force_insert=True)

        for line in draft.lines:
            OrderItem(
                order=order,
                product_id=line.product_id,
                quantity=line.quantity,
                unit_price=line.unit_price,
            ).save()

        logger.bind(order_id=str(order.id), item_count=len(draft.lines)).info(
            "order.persisted"
        )
        return order

    # ------------------------------------------------------------------
    # Reservation bookkeeping
    # ------------------------------------------------------------------

    def mark_reserved(self, order: Order) -> Order:
        now = timezone.now()
        order.items.update(
            reserved_quantity=models.F("quantity"), is_reserved=True, updated_at=now
        )
        order.reservation_status = ReservationStatus.RESERVED
        order.reserved_at = now
        order.save(update_fields=["reservation_status", "reserved_at"])
        return order

    def mark_released(self, order: Order) -> Order:
        return self._settle(order, ReservationStatus.RELEASED, "released_at")

    def mark_delivered(self, order: Order) -> Order:
        return self._settle(order, ReservationStatus.DELIVERED, "delivered_at")

    def _settle(self, order: Order, status: str, timestamp_field: str) -> Order:
        now = timezone.now()
        order.items.update(reserved_quantity=0, is_reserved=False, updated_at=now)
        order.reservation_status = status
        setattr(order, timestamp_field, now)
        order.save(update_fields=["reservation_status", timestamp_field])
        return order

    # ------------------------------------------------------------------
    # Read
    # ------------------------------------------------------------------

    def _with_relations(self) -> "models.QuerySet[Order]":
        return Order.objects.select_related("assigned_retailer").prefetch_related(
            "items__product", "status_history"
        )

    def get_by_id(self, id: str) -> Optional[Order]:
        """Retrieve an order with eager-loaded relations.

        Returns ``None`` for non-existent or invalid IDs.
        """
        try:
            return self._with_relations().filter(id=id).first()
        except (ValueError, ValidationError):
            return None

    def list(self, filters: Optional[Dict[str, Any]] = None) -> "models.QuerySet[Order]":
        queryset = self._with_relations()
        if filters:
            queryset = queryset.filter(**filters)
        return queryset

    def get_for_update(self, id: str) -> Optional[Order]:
        """Lock the order row (SELECT FOR UPDATE).

        Items are prefetched after the lock is taken.  Returns ``None``
        for non-existent or invalid IDs.
        """
        try:
            return (
                Order.objects.select_for_update()
                .prefetch_related("items")
                .filter(id=id)
                .first()
            )
        except (ValueError, ValidationError):
            return None

    def get_by_idempotency_key(self, key: str) -> Optional[Order]:
        return self._with_relations().filter(idempotency_key=key).first()

    # ------------------------------------------------------------------
    # Save (IRepository contract) + outbox
    # ------------------------------------------------------------------

    def save(self, entity: Order) -> Order:
        """Persist an order and move its pending domain events to the outbox."""
        entity.save()

        events = entity.domain_events
        for event in events:
            OutboxEvent.objects.create(
                event_type=event.event_name,
                aggregate_id=str(event.aggregate_id),
                payload=event.to_payload(),
                topic=OUTBOX_TOPIC,
            )
        entity.clear_domain_events()

        logger.info("order.saved", order_id=str(entity.id), event_count=len(events))
        return entity

    # ------------------------------------------------------------------
    # History
    # ------------------------------------------------------------------

    def add_history(
        self,
        order_id: UUID,
        status: str,
        notes: str = "",
        old_status: Optional[str] = None,
        changed_by: str = "system",
    ) -> OrderStatusHistory:
        history = OrderStatusHistory.objects.create(
            order_id=order_id,
            old_status=old_status,
            new_status=status,
            notes=notes,
            changed_by=changed_by,
        )
        logger.info(
            "order.history_added",
            order_id=str(order_id),
            old_status=old_status,
            new_status=status,
        )
        return history
