import django_filters

from modules.retailers.models import Retailer


class RetailerFilter(django_filters.FilterSet):
    is_active = django_filters.BooleanFilter(field_name="is_active")
    shop_name = django_filters.CharFilter(field_name="shop_name", lookup_expr="icontains")

    class Meta:
        model = Retailer
        fields = ["is_active", "shop_name"]
