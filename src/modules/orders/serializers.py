"""Order DRF serializers for API input/output.

The serializer operates at the Interface layer (API Views).
Business logic lives in the Service Layer, which receives
Pydantic DTOs from ``dtos.py``.

Coordinates are accepted as plain floats here; bounds are checked by the
service so that an out-of-range point surfaces as ``invalid_coordinates``
rather than a generic validation error.
"""

from __future__ import annotations

from rest_framework import serializers

from modules.orders.constants import OrderStatus
from modules.orders.models import Order, OrderItem, OrderStatusHistory

# ---------------------------------------------------------------------------
# Input Serializers
# ---------------------------------------------------------------------------


class CreateOrderItemSerializer(serializers.Serializer):
    """Validates a single item in an order creation request."""

    product_id = serializers.UUIDField()
    quantity = serializers.IntegerField(min_value=1)


class CreateOrderSerializer(serializers.Serializer):
    """Validates the order creation request payload."""

    customer_id = serializers.UUIDField()
    items = CreateOrderItemSerializer(many=True, allow_empty=False)
    delivery_latitude = serializers.FloatField()
    delivery_longitude = serializers.FloatField()
    delivery_address = serializers.CharField(
        required=False, default="", allow_blank=True, max_length=500
    )
    notes = serializers.CharField(required=False, default="", allow_blank=True)

    def validate_items(self, value):
        product_ids = [item["product_id"] for item in value]
        if len(product_ids) != len(set(product_ids)):
            raise serializers.ValidationError(
                "Duplicate product IDs are not allowed in the same order."
            )
        return value


class UpdateStatusSerializer(serializers.Serializer):
    status = serializers.ChoiceField(choices=OrderStatus.choices)
    notes = serializers.CharField(required=False, default="", allow_blank=True)

    def validate_status(self, value):
        if value == OrderStatus.CANCELLED:
            raise serializers.ValidationError(
                "Use the /cancel/ endpoint for cancellations."
            )
        return value


class CancelOrderSerializer(serializers.Serializer):
    reason = serializers.CharField(
        required=False, default="", allow_blank=True, max_length=255
    )


# ---------------------------------------------------------------------------
# Output Serializers (Read)
# ---------------------------------------------------------------------------


class OrderItemSerializer(serializers.ModelSerializer):
    """Read serializer for order items with product snapshot."""

    product_name = serializers.CharField(source="product.name", read_only=True)
    product_sku = serializers.CharField(source="product.sku", read_only=True)

    class Meta:
        model = OrderItem
        fields = [
            "id",
            "product_id",
            "product_name",
            "product_sku",
            "quantity",
            "unit_price",
            "subtotal",
            "reserved_quantity",
            "is_reserved",
        ]
        read_only_fields = fields


class StatusHistorySerializer(serializers.ModelSerializer):
    """Read serializer for order status history records."""

    class Meta:
        model = OrderStatusHistory
        fields = [
            "id",
            "old_status",
            "new_status",
            "changed_by",
            "notes",
            "created_at",
        ]
        read_only_fields = fields


class OrderSerializer(serializers.ModelSerializer):
    """Read serializer for orders with nested items and history."""

    assigned_retailer_name = serializers.CharField(
        source="assigned_retailer.shop_name", read_only=True, default=None
    )
    items = OrderItemSerializer(many=True, read_only=True)
    status_history = StatusHistorySerializer(many=True, read_only=True)

    class Meta:
        model = Order
        fields = [
            "id",
            "order_number",
            "customer_id",
            "status",
            "reservation_status",
            "assigned_retailer",
            "assigned_retailer_name",
            "assignment_distance_km",
            "delivery_latitude",
            "delivery_longitude",
            "delivery_address",
            "total_amount",
            "notes",
            "cancellation_reason",
            "reserved_at",
            "delivered_at",
            "released_at",
            "created_at",
            "updated_at",
            "items",
            "status_history",
        ]
        read_only_fields = fields


class OrderListSerializer(serializers.ModelSerializer):
    """Lightweight serializer for order list (no nested relations)."""

    class Meta:
        model = Order
        fields = [
            "id",
            "order_number",
            "customer_id",
            "status",
            "reservation_status",
            "assigned_retailer",
            "total_amount",
            "created_at",
        ]
        read_only_fields = fields
