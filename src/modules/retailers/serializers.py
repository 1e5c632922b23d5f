from __future__ import annotations

from rest_framework import serializers

from modules.retailers.models import Retailer


class RetailerSerializer(serializers.ModelSerializer):
    class Meta:
        model = Retailer
        fields = [
            "id",
            "name",
            "shop_name",
            "address",
            "is_active",
            "latitude",
            "longitude",
            "service_radius_km",
            "created_at",
            "updated_at",
        ]
        read_only_fields = fields


class NearbyQuerySerializer(serializers.Serializer):
    latitude = serializers.FloatField()
    longitude = serializers.FloatField()
    radius_km = serializers.FloatField(required=False, min_value=0.0)


class NearbyRetailerSerializer(serializers.Serializer):
    """Renders a ``RetailerMatch``."""

    retailer = RetailerSerializer()
    distance_km = serializers.SerializerMethodField()

    def get_distance_km(self, obj) -> float:
        return round(obj.distance_km, 2)
