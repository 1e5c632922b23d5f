"""Inventory API views.

Read access to stock rows and the transaction log for dashboards and
reconciliation, plus staff-only stock-in and stock-count adjustment.
Reservation mutations are never exposed here: they only happen through
order placement, cancellation and delivery.
"""

from __future__ import annotations

from django_filters.rest_framework import DjangoFilterBackend
from rest_framework import status
from rest_framework.decorators import action
from rest_framework.filters import OrderingFilter
from rest_framework.permissions import IsAdminUser, IsAuthenticated
from rest_framework.request import Request
from rest_framework.response import Response
from rest_framework.viewsets import GenericViewSet

from modules.core.exceptions import error_response
from modules.core.unit_of_work import DjangoUnitOfWork
from modules.inventory.exceptions import (
    ConcurrencyConflict,
    InvalidStockAdjustment,
    InventoryItemNotFound,
)
from modules.inventory.filters import InventoryItemFilter, InventoryTransactionFilter
from modules.inventory.ledger import InventoryLedger
from modules.inventory.repositories.django_repository import InventoryDjangoRepository
from modules.inventory.serializers import (
    AdjustStockSerializer,
    InventoryItemSerializer,
    InventoryTransactionSerializer,
    StockInSerializer,
)


def build_ledger() -> InventoryLedger:
    return InventoryLedger(
        repository=InventoryDjangoRepository(),
        unit_of_work=DjangoUnitOfWork(),
    )


def _conflict_response(exc: ConcurrencyConflict) -> Response:
    return error_response(
        status.HTTP_503_SERVICE_UNAVAILABLE,
        "concurrency_conflict",
        str(exc),
        headers={"Retry-After": str(exc.retry_after)},
    )


class InventoryItemViewSet(GenericViewSet):
    """Stock rows per (retailer, product)."""

    serializer_class = InventoryItemSerializer
    filterset_class = InventoryItemFilter
    ordering_fields = ["total_stock", "reserved_stock", "updated_at"]
    ordering = ["retailer_id", "product_id"]
    filter_backends = [DjangoFilterBackend, OrderingFilter]

    def __init__(self, **kwargs) -> None:
        super().__init__(**kwargs)
        self._ledger = build_ledger()

    def get_permissions(self):
        if self.action in {"stock_in", "adjust"}:
            return [IsAdminUser()]
        return [IsAuthenticated()]

    def get_queryset(self):
        return self._ledger.list_items()

    # ------------------------------------------------------------------
    # Read
    # ------------------------------------------------------------------

    def list(self, request: Request) -> Response:
        """GET /api/v1/inventory/items/"""
        queryset = self.filter_queryset(self.get_queryset())
        page = self.paginate_queryset(queryset)
        serializer = InventoryItemSerializer(page, many=True)
        return self.get_paginated_response(serializer.data)

    def retrieve(self, request: Request, pk: str | None = None) -> Response:
        """GET /api/v1/inventory/items/{pk}/"""
        try:
            item = self._ledger.get_item(pk)
        except InventoryItemNotFound as exc:
            return error_response(status.HTTP_404_NOT_FOUND, "not_found", str(exc))
        return Response(InventoryItemSerializer(item).data)

    # ------------------------------------------------------------------
    # Stock movements
    # ------------------------------------------------------------------

    @action(detail=False, methods=["post"], url_path="stock-in")
    def stock_in(self, request: Request) -> Response:
        """POST /api/v1/inventory/items/stock-in/"""
        serializer = StockInSerializer(data=request.data)
        serializer.is_valid(raise_exception=True)
        data = serializer.validated_data

        try:
            item = self._ledger.stock_in(
                retailer_id=data["retailer_id"].id,
                product_id=data["product_id"].id,
                quantity=data["quantity"],
                actor=request.user.get_username(),
                notes=data["notes"],
            )
        except ConcurrencyConflict as exc:
            return _conflict_response(exc)

        item = self._ledger.get_item(item.id)
        return Response(InventoryItemSerializer(item).data, status=status.HTTP_201_CREATED)

    @action(detail=True, methods=["post"])
    def adjust(self, request: Request, pk: str | None = None) -> Response:
        """POST /api/v1/inventory/items/{pk}/adjust/"""
        serializer = AdjustStockSerializer(data=request.data)
        serializer.is_valid(raise_exception=True)
        data = serializer.validated_data

        try:
            current = self._ledger.get_item(pk)
            self._ledger.adjust(
                retailer_id=current.retailer_id,
                product_id=current.product_id,
                new_total=data["new_total"],
                actor=request.user.get_username(),
                reason=data["reason"],
            )
        except InventoryItemNotFound as exc:
            return error_response(status.HTTP_404_NOT_FOUND, "not_found", str(exc))
        except InvalidStockAdjustment as exc:
            return error_response(
                status.HTTP_409_CONFLICT, "invalid_stock_adjustment", str(exc), attr="new_total"
            )
        except ConcurrencyConflict as exc:
            return _conflict_response(exc)

        return Response(InventoryItemSerializer(self._ledger.get_item(pk)).data)


class InventoryTransactionViewSet(GenericViewSet):
    """Append-only ledger history (read-only)."""

    serializer_class = InventoryTransactionSerializer
    filterset_class = InventoryTransactionFilter
    ordering_fields = ["created_at"]
    ordering = ["created_at", "id"]
    filter_backends = [DjangoFilterBackend, OrderingFilter]

    def __init__(self, **kwargs) -> None:
        super().__init__(**kwargs)
        self._ledger = build_ledger()

    def get_queryset(self):
        return self._ledger.list_transactions()

    def list(self, request: Request) -> Response:
        """GET /api/v1/inventory/transactions/"""
        queryset = self.filter_queryset(self.get_queryset())
        page = self.paginate_queryset(queryset)
        serializer = InventoryTransactionSerializer(page, many=True)
        return self.get_paginated_response(serializer.data)
