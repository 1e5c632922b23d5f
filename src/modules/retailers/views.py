"""Retailer directory API (read-only).

``/nearby/`` exposes the matcher's ranking for a coordinate so clients
can show which shops deliver to an address before ordering.
"""

from __future__ import annotations

from django_filters.rest_framework import DjangoFilterBackend
from rest_framework import status
from rest_framework.decorators import action
from rest_framework.filters import OrderingFilter, SearchFilter
from rest_framework.mixins import ListModelMixin, RetrieveModelMixin
from rest_framework.request import Request
from rest_framework.response import Response
from rest_framework.viewsets import GenericViewSet

from modules.core.exceptions import error_response
from modules.retailers.exceptions import InvalidCoordinates
from modules.retailers.filters import RetailerFilter
from modules.retailers.geo import Coordinate
from modules.retailers.matcher import RetailerMatcher
from modules.retailers.repositories.django_repository import RetailerDjangoRepository
from modules.retailers.serializers import (
    NearbyQuerySerializer,
    NearbyRetailerSerializer,
    RetailerSerializer,
)


class RetailerViewSet(ListModelMixin, RetrieveModelMixin, GenericViewSet):
    serializer_class = RetailerSerializer
    filterset_class = RetailerFilter
    search_fields = ["shop_name", "name", "address"]
    ordering_fields = ["shop_name", "created_at", "service_radius_km"]
    ordering = ["shop_name", "id"]
    filter_backends = [DjangoFilterBackend, SearchFilter, OrderingFilter]

    def __init__(self, **kwargs) -> None:
        super().__init__(**kwargs)
        self._repository = RetailerDjangoRepository()
        self._matcher = RetailerMatcher()

    def get_queryset(self):
        return self._repository.list()

    @action(detail=False, methods=["get"])
    def nearby(self, request: Request) -> Response:
        """GET /api/v1/retailers/nearby/?latitude=&longitude=[&radius_km=]"""
        query = NearbyQuerySerializer(data=request.query_params)
        query.is_valid(raise_exception=True)
        data = query.validated_data

        try:
            point = Coordinate(data["latitude"], data["longitude"])
        except InvalidCoordinates as exc:
            return error_response(
                status.HTTP_400_BAD_REQUEST, "invalid_coordinates", str(exc)
            )

        radius = data.get("radius_km", self._matcher.max_search_radius_km)
        matches = self._matcher.find_nearby_retailers(
            point,
            self._repository.list_active(near=point, radius_km=radius),
            max_search_radius_km=radius,
        )
        serializer = NearbyRetailerSerializer(matches, many=True)
        return Response({"count": len(matches), "results": serializer.data})
