"""Django ORM implementation of the Inventory repository.

Conditional writes are single ``UPDATE ... WHERE`` statements built with
``F()`` expressions, so the database both checks and applies the change
while holding the row lock.
"""

from __future__ import annotations

from typing import Any, Dict, Iterable, List, Optional
from uuid import UUID

from django.core.exceptions import ValidationError
from django.db import models
from django.db.models import F
from django.utils import timezone

from modules.inventory.models import InventoryItem, InventoryTransaction
from modules.inventory.repositories.interfaces import IInventoryRepository


class InventoryDjangoRepository(IInventoryRepository):
    """Concrete Inventory repository backed by Django ORM."""

    # ------------------------------------------------------------------
    # IRepository contract
    # ------------------------------------------------------------------

    def get_by_id(self, id: str) -> Optional[InventoryItem]:
        try:
            return (
                InventoryItem.objects.select_related("retailer", "product")
                .filter(id=id)
                .first()
            )
        except (ValueError, ValidationError):
            return None

    def list(
        self, filters: Optional[Dict[str, Any]] = None
    ) -> "models.QuerySet[InventoryItem]":
        queryset = InventoryItem.objects.select_related("retailer", "product")
        if filters:
            queryset = queryset.filter(**filters)
        return queryset

    def save(self, entity: InventoryItem) -> InventoryItem:
        entity.save()
        return entity

    # ------------------------------------------------------------------
    # Reads
    # ------------------------------------------------------------------

    def get_items(
        self, retailer_id: UUID, product_ids: Iterable[UUID], active_only: bool = True
    ) -> Dict[str, InventoryItem]:
        queryset = InventoryItem.objects.filter(
            retailer_id=retailer_id, product_id__in=list(product_ids)
        )
        if active_only:
            queryset = queryset.filter(is_active=True)
        return {str(item.product_id): item for item in queryset}

    def get_item(self, retailer_id: UUID, product_id: UUID) -> Optional[InventoryItem]:
        return InventoryItem.objects.filter(
            retailer_id=retailer_id, product_id=product_id
        ).first()

    def lock_item(self, retailer_id: UUID, product_id: UUID) -> Optional[InventoryItem]:
        return (
            InventoryItem.objects.select_for_update()
            .filter(retailer_id=retailer_id, product_id=product_id)
            .first()
        )

    def lock_items(
        self, retailer_id: UUID, product_ids: Iterable[UUID]
    ) -> Dict[str, InventoryItem]:
        queryset = (
            InventoryItem.objects.select_for_update()
            .filter(retailer_id=retailer_id, product_id__in=list(product_ids))
            .order_by("product_id")
        )
        return {str(item.product_id): item for item in queryset}

    def refresh(self, item_id: UUID) -> InventoryItem:
        return InventoryItem.objects.get(id=item_id)

    def transactions(
        self, filters: Optional[Dict[str, Any]] = None
    ) -> "models.QuerySet[InventoryTransaction]":
        queryset = InventoryTransaction.objects.select_related("product")
        if filters:
            queryset = queryset.filter(**filters)
        return queryset.order_by("created_at", "id")

    def order_transactions(
        self, order_id: UUID, retailer_id: Optional[UUID] = None
    ) -> List[InventoryTransaction]:
        queryset = InventoryTransaction.objects.filter(order_id=order_id)
        if retailer_id is not None:
            queryset = queryset.filter(retailer_id=retailer_id)
        return list(queryset.order_by("created_at", "id"))

    # ------------------------------------------------------------------
    # Conditional writes
    # ------------------------------------------------------------------

    def try_reserve(self, item_id: UUID, quantity: int) -> bool:
        updated = InventoryItem.objects.filter(
            id=item_id,
            is_active=True,
            total_stock__gte=F("reserved_stock") + quantity,
        ).update(
            reserved_stock=F("reserved_stock") + quantity,
            updated_at=timezone.now(),
        )
        return updated == 1

    def try_release(self, item_id: UUID, quantity: int) -> bool:
        updated = InventoryItem.objects.filter(
            id=item_id, reserved_stock__gte=quantity
        ).update(
            reserved_stock=F("reserved_stock") - quantity,
            updated_at=timezone.now(),
        )
        return updated == 1

    def try_confirm(self, item_id: UUID, quantity: int) -> bool:
        now = timezone.now()
        updated = InventoryItem.objects.filter(
            id=item_id, reserved_stock__gte=quantity, total_stock__gte=quantity
        ).update(
            reserved_stock=F("reserved_stock") - quantity,
            total_stock=F("total_stock") - quantity,
            total_sold=F("total_sold") + quantity,
            last_sold_at=now,
            updated_at=now,
        )
        return updated == 1

    def add_stock(self, item_id: UUID, quantity: int) -> None:
        now = timezone.now()
        InventoryItem.objects.filter(id=item_id).update(
            total_stock=F("total_stock") + quantity,
            last_restocked_at=now,
            updated_at=now,
        )

    def try_set_total(self, item_id: UUID, new_total: int) -> bool:
        updated = InventoryItem.objects.filter(
            id=item_id, reserved_stock__lte=new_total
        ).update(total_stock=new_total, updated_at=timezone.now())
        return updated == 1

    def get_or_create_item(self, retailer_id: UUID, product_id: UUID) -> InventoryItem:
        item, _ = InventoryItem.objects.get_or_create(
            retailer_id=retailer_id, product_id=product_id
        )
        return item

    def add_transaction(self, **fields: Any) -> InventoryTransaction:
        return InventoryTransaction.objects.create(**fields)
