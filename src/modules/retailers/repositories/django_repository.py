"""Django ORM implementation of the Retailer repository."""

from __future__ import annotations

import math
from typing import Any, Dict, List, Optional

from django.core.exceptions import ValidationError
from django.db import models

from modules.retailers.geo import EARTH_RADIUS_KM, Coordinate
from modules.retailers.models import Retailer
from modules.retailers.repositories.interfaces import IRetailerRepository

_KM_PER_DEGREE = math.pi * EARTH_RADIUS_KM / 180


class RetailerDjangoRepository(IRetailerRepository):
    """Concrete Retailer repository backed by Django ORM."""

    def get_by_id(self, id: str) -> Optional[Retailer]:
        try:
            return Retailer.objects.filter(id=id).first()
        except (ValueError, ValidationError):
            return None

    def list(self, filters: Optional[Dict[str, Any]] = None) -> "models.QuerySet[Retailer]":
        queryset = Retailer.objects.all()
        if filters:
            queryset = queryset.filter(**filters)
        return queryset

    def save(self, entity: Retailer) -> Retailer:
        entity.save()
        return entity

    def list_active(
        self, near: Optional[Coordinate] = None, radius_km: Optional[float] = None
    ) -> List[Retailer]:
        queryset = Retailer.objects.filter(
            is_active=True, latitude__isnull=False, longitude__isnull=False
        )
        if near is not None and radius_km is not None:
            queryset = queryset.filter(**_bounding_box(near, radius_km))
        return list(queryset.order_by("id"))


def _bounding_box(center: Coordinate, radius_km: float) -> Dict[str, float]:
    """Latitude/longitude window containing every point within ``radius_km``.

    The longitude bound is dropped near the poles and across the
    antimeridian, where a simple window would exclude valid points.
    """
    d_lat = radius_km / _KM_PER_DEGREE
    box: Dict[str, float] = {
        "latitude__gte": center.latitude - d_lat,
        "latitude__lte": center.latitude + d_lat,
    }
    if abs(center.latitude) + d_lat >= 89.0:
        return box

    max_lat = math.radians(abs(center.latitude) + d_lat)
    d_lng = radius_km / (_KM_PER_DEGREE * math.cos(max_lat))
    if center.longitude - d_lng < -180.0 or center.longitude + d_lng > 180.0:
        return box

    box["longitude__gte"] = center.longitude - d_lng
    box["longitude__lte"] = center.longitude + d_lng
    return box
