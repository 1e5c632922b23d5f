import django_filters

from modules.inventory.constants import TransactionType
from modules.inventory.models import InventoryItem, InventoryTransaction


class InventoryItemFilter(django_filters.FilterSet):
    retailer = django_filters.UUIDFilter(field_name="retailer_id")
    product = django_filters.UUIDFilter(field_name="product_id")
    is_active = django_filters.BooleanFilter(field_name="is_active")
    low_stock = django_filters.BooleanFilter(method="filter_low_stock")

    class Meta:
        model = InventoryItem
        fields = ["retailer", "product", "is_active", "low_stock"]

    def filter_low_stock(self, queryset, name, value):
        if value:
            return queryset.low_stock()
        return queryset


class InventoryTransactionFilter(django_filters.FilterSet):
    order = django_filters.UUIDFilter(field_name="order_id")
    retailer = django_filters.UUIDFilter(field_name="retailer_id")
    product = django_filters.UUIDFilter(field_name="product_id")
    transaction_type = django_filters.ChoiceFilter(choices=TransactionType.choices)
    start_date = django_filters.DateFilter(field_name="created_at", lookup_expr="date__gte")
    end_date = django_filters.DateFilter(field_name="created_at", lookup_expr="date__lte")

    class Meta:
        model = InventoryTransaction
        fields = ["order", "retailer", "product", "transaction_type", "start_date", "end_date"]
