from __future__ import annotations

from rest_framework import serializers

from modules.inventory.models import InventoryItem, InventoryTransaction
from modules.products.models import Product
from modules.retailers.models import Retailer


class InventoryItemSerializer(serializers.ModelSerializer):
    product_sku = serializers.CharField(source="product.sku", read_only=True)
    product_name = serializers.CharField(source="product.name", read_only=True)
    available_stock = serializers.IntegerField(read_only=True)
    is_low_stock = serializers.BooleanField(read_only=True)

    class Meta:
        model = InventoryItem
        fields = [
            "id",
            "retailer",
            "product",
            "product_sku",
            "product_name",
            "total_stock",
            "reserved_stock",
            "available_stock",
            "min_stock_level",
            "is_low_stock",
            "is_active",
            "total_sold",
            "last_restocked_at",
            "last_sold_at",
            "updated_at",
        ]
        read_only_fields = fields


class InventoryTransactionSerializer(serializers.ModelSerializer):
    product_sku = serializers.CharField(source="product.sku", read_only=True)

    class Meta:
        model = InventoryTransaction
        fields = [
            "id",
            "inventory_item",
            "retailer",
            "product",
            "product_sku",
            "transaction_type",
            "quantity",
            "previous_total_stock",
            "new_total_stock",
            "previous_reserved_stock",
            "new_reserved_stock",
            "order_id",
            "actor",
            "reason",
            "notes",
            "created_at",
        ]
        read_only_fields = fields


class StockInSerializer(serializers.Serializer):
    retailer_id = serializers.PrimaryKeyRelatedField(queryset=Retailer.objects.all())
    product_id = serializers.PrimaryKeyRelatedField(queryset=Product.objects.all())
    quantity = serializers.IntegerField(min_value=1)
    notes = serializers.CharField(required=False, allow_blank=True, default="")


class AdjustStockSerializer(serializers.Serializer):
    new_total = serializers.IntegerField(min_value=0)
    reason = serializers.CharField(max_length=255)
