"""Order API views.

Exposes the ``OrderService`` via HTTP using DRF ViewSets.
Domain exceptions are caught and translated into appropriate
HTTP status codes; the view never swallows generic exceptions.
"""

from __future__ import annotations

import structlog
from django_filters.rest_framework import DjangoFilterBackend
from rest_framework import status
from rest_framework.decorators import action
from rest_framework.filters import OrderingFilter, SearchFilter
from rest_framework.request import Request
from rest_framework.response import Response
from rest_framework.throttling import BaseThrottle
from rest_framework.viewsets import GenericViewSet

from modules.core.exceptions import error_response
from modules.core.unit_of_work import DjangoUnitOfWork
from modules.inventory.ledger import InventoryLedger
from modules.inventory.repositories.django_repository import InventoryDjangoRepository
from modules.orders.dtos import PlaceOrderDTO, PlaceOrderItemDTO
from modules.orders.exceptions import (
    ConcurrencyConflict,
    InactiveProduct,
    InsufficientStock,
    InvalidCoordinates,
    InvalidStatusTransition,
    LedgerInconsistency,
    NoRetailerInRange,
    OrderNotFound,
    ProductNotFound,
    ReservationAlreadyTerminal,
    ReservationNotActive,
)
from modules.orders.filters import OrderFilter
from modules.orders.repositories.django_repository import OrderDjangoRepository
from modules.orders.reservations import ReservationCoordinator
from modules.orders.serializers import (
    CancelOrderSerializer,
    CreateOrderSerializer,
    OrderListSerializer,
    OrderSerializer,
    UpdateStatusSerializer,
)
from modules.orders.services import OrderService
from modules.products.repositories.django_repository import ProductDjangoRepository
from modules.retailers.repositories.django_repository import RetailerDjangoRepository

logger = structlog.get_logger(__name__)


def build_order_service() -> OrderService:
    """Wire the Django-backed object graph for one request."""
    unit_of_work = DjangoUnitOfWork()
    order_repository = OrderDjangoRepository()
    ledger = InventoryLedger(
        repository=InventoryDjangoRepository(), unit_of_work=unit_of_work
    )
    return OrderService(
        order_repository=order_repository,
        product_repository=ProductDjangoRepository(),
        retailer_repository=RetailerDjangoRepository(),
        coordinator=ReservationCoordinator(
            order_repository=order_repository,
            ledger=ledger,
            unit_of_work=unit_of_work,
        ),
        unit_of_work=unit_of_work,
    )


def domain_error_response(exc: Exception) -> Response:
    """Translate an order-flow domain exception into the error envelope.

    Unknown exceptions are re-raised.
    """
    if isinstance(exc, InvalidCoordinates):
        return error_response(
            status.HTTP_400_BAD_REQUEST, "invalid_coordinates", str(exc)
        )
    if isinstance(exc, InactiveProduct):
        return error_response(
            status.HTTP_400_BAD_REQUEST, "inactive_product", str(exc), attr="items"
        )
    if isinstance(exc, InvalidStatusTransition):
        return error_response(
            status.HTTP_400_BAD_REQUEST,
            "invalid_status_transition",
            str(exc),
            attr="status",
        )
    if isinstance(exc, ProductNotFound):
        return error_response(
            status.HTTP_404_NOT_FOUND, "product_not_found", str(exc), attr="items"
        )
    if isinstance(exc, OrderNotFound):
        return error_response(status.HTTP_404_NOT_FOUND, "not_found", str(exc))
    if isinstance(exc, NoRetailerInRange):
        return error_response(
            status.HTTP_422_UNPROCESSABLE_ENTITY, "no_retailer_in_range", str(exc)
        )
    if isinstance(exc, InsufficientStock):
        return error_response(
            status.HTTP_409_CONFLICT,
            "insufficient_stock",
            str(exc),
            shortfalls=[shortfall.to_dict() for shortfall in exc.shortfalls],
        )
    if isinstance(exc, ReservationAlreadyTerminal):
        return error_response(
            status.HTTP_409_CONFLICT, "reservation_already_terminal", str(exc)
        )
    if isinstance(exc, ReservationNotActive):
        return error_response(
            status.HTTP_409_CONFLICT, "reservation_not_active", str(exc)
        )
    if isinstance(exc, ConcurrencyConflict):
        return error_response(
            status.HTTP_503_SERVICE_UNAVAILABLE,
            "concurrency_conflict",
            str(exc),
            headers={"Retry-After": str(exc.retry_after)},
        )
    if isinstance(exc, LedgerInconsistency):
        logger.error("order.ledger_inconsistency", error=str(exc))
        return error_response(
            status.HTTP_500_INTERNAL_SERVER_ERROR,
            "ledger_inconsistency",
            "Inventory records for this order are inconsistent.",
        )
    raise exc


PLACEMENT_ERRORS = (
    InvalidCoordinates,
    InactiveProduct,
    ProductNotFound,
    NoRetailerInRange,
    InsufficientStock,
    ConcurrencyConflict,
)

LIFECYCLE_ERRORS = (
    OrderNotFound,
    InvalidStatusTransition,
    ReservationAlreadyTerminal,
    ReservationNotActive,
    ConcurrencyConflict,
    LedgerInconsistency,
)


class OrderViewSet(GenericViewSet):
    """ViewSet for Order operations.

    Uses ``OrderService`` with injected repositories (DIP).
    Does **not** extend ``ModelViewSet``: all ORM access goes through
    the service/repository layer.
    """

    serializer_class = OrderSerializer
    filterset_class = OrderFilter
    search_fields = ["order_number", "delivery_address"]
    ordering_fields = ["created_at", "total_amount", "status"]
    ordering = ["-created_at", "-id"]
    filter_backends = [DjangoFilterBackend, SearchFilter, OrderingFilter]

    def __init__(self, **kwargs) -> None:
        super().__init__(**kwargs)
        self._service = build_order_service()

    def get_throttles(self) -> list[BaseThrottle]:
        throttle_scope: str | None
        if self.action == "create":
            throttle_scope = "order_creation"
        elif self.action in {"list", "retrieve"}:
            throttle_scope = "order_listing"
        else:
            throttle_scope = None
        self.throttle_scope = throttle_scope
        return super().get_throttles()

    def get_queryset(self):
        return self._service.list_orders()

    # ------------------------------------------------------------------
    # Create
    # ------------------------------------------------------------------

    def create(self, request: Request) -> Response:
        """POST /api/v1/orders/

        Supports idempotency via the ``Idempotency-Key`` header.
        Returns 200 if the key was already used, 201 for new orders.
        """
        create_serializer = CreateOrderSerializer(data=request.data)
        create_serializer.is_valid(raise_exception=True)

        data = create_serializer.validated_data
        idempotency_key = request.headers.get("Idempotency-Key") or None
        if idempotency_key:
            existing = self._service.get_order_by_idempotency_key(idempotency_key)
            if existing is not None:
                return Response(OrderSerializer(existing).data, status=status.HTTP_200_OK)

        dto = PlaceOrderDTO(
            customer_id=data["customer_id"],
            items=[
                PlaceOrderItemDTO(
                    product_id=item["product_id"],
                    quantity=item["quantity"],
                )
                for item in data["items"]
            ],
            delivery_latitude=data["delivery_latitude"],
            delivery_longitude=data["delivery_longitude"],
            delivery_address=data["delivery_address"],
            notes=data["notes"],
            idempotency_key=idempotency_key,
            actor=request.user.get_username(),
        )

        try:
            order = self._service.place_order(dto)
        except PLACEMENT_ERRORS as exc:
            return domain_error_response(exc)

        return Response(OrderSerializer(order).data, status=status.HTTP_201_CREATED)

    # ------------------------------------------------------------------
    # List / Retrieve
    # ------------------------------------------------------------------

    def list(self, request: Request) -> Response:
        """GET /api/v1/orders/

        Filtering (status, reservation status, customer, retailer, date
        range, total range) is handled by ``OrderFilter``.  Results are
        paginated.
        """
        queryset = self.filter_queryset(self.get_queryset())
        page = self.paginate_queryset(queryset)
        serializer = OrderListSerializer(page, many=True)
        return self.get_paginated_response(serializer.data)

    def retrieve(self, request: Request, pk: str | None = None) -> Response:
        """GET /api/v1/orders/{pk}/"""
        try:
            order = self._service.get_order(pk)
        except OrderNotFound as exc:
            return domain_error_response(exc)
        return Response(OrderSerializer(order).data)

    # ------------------------------------------------------------------
    # Status Update
    # ------------------------------------------------------------------

    def partial_update(self, request: Request, pk: str | None = None) -> Response:
        """PATCH /api/v1/orders/{pk}/

        Advances the order status.  Cancellations are **not** allowed via
        this endpoint; use ``POST /orders/{id}/cancel/`` instead.
        """
        serializer = UpdateStatusSerializer(data=request.data)
        serializer.is_valid(raise_exception=True)
        data = serializer.validated_data

        try:
            order = self._service.update_status(
                order_id=pk,
                new_status=data["status"],
                notes=data["notes"],
                actor=request.user.get_username(),
            )
        except LIFECYCLE_ERRORS as exc:
            return domain_error_response(exc)

        return Response(OrderSerializer(order).data)

    # ------------------------------------------------------------------
    # Cancel (dedicated action)
    # ------------------------------------------------------------------

    @action(detail=True, methods=["post"])
    def cancel(self, request: Request, pk: str | None = None) -> Response:
        """POST /api/v1/orders/{pk}/cancel/

        Cancels an order and releases its reserved stock.
        """
        serializer = CancelOrderSerializer(data=request.data)
        serializer.is_valid(raise_exception=True)

        try:
            order = self._service.cancel_order(
                order_id=pk,
                reason=serializer.validated_data["reason"],
                actor=request.user.get_username(),
            )
        except LIFECYCLE_ERRORS as exc:
            return domain_error_response(exc)

        return Response(OrderSerializer(order).data)
