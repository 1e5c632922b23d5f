"""Retailer directory.

Business rules implemented:
- A retailer delivers only within its own ``service_radius_km`` (1-100 km,
  50 by default) around its registered location.
- Retailers without a complete location, or inactive ones, are never
  matched to an order.

Profiles are managed by the retailer-management collaborator; the
fulfillment core only reads them.
"""

from __future__ import annotations

from typing import Optional

from django.core.validators import MaxValueValidator, MinValueValidator
from django.db import models

from modules.core.models import BaseModel
from modules.retailers.geo import Coordinate

MIN_SERVICE_RADIUS_KM = 1
MAX_SERVICE_RADIUS_KM = 100
DEFAULT_SERVICE_RADIUS_KM = 50


class Retailer(BaseModel):
    name = models.CharField(max_length=255)
    shop_name = models.CharField(max_length=255)
    contact_number = models.CharField(max_length=20, blank=True, default="")
    address = models.CharField(max_length=500, blank=True, default="")
    is_active = models.BooleanField(default=True)
    latitude = models.FloatField(
        null=True,
        blank=True,
        validators=[MinValueValidator(-90.0), MaxValueValidator(90.0)],
    )
    longitude = models.FloatField(
        null=True,
        blank=True,
        validators=[MinValueValidator(-180.0), MaxValueValidator(180.0)],
    )
    service_radius_km = models.FloatField(
        default=DEFAULT_SERVICE_RADIUS_KM,
        validators=[
            MinValueValidator(MIN_SERVICE_RADIUS_KM),
            MaxValueValidator(MAX_SERVICE_RADIUS_KM),
        ],
    )

    class Meta:
        db_table = "retailers"
        ordering = ["shop_name"]
        indexes = [
            models.Index(fields=["is_active"], name="retailers_active_idx"),
            models.Index(fields=["latitude", "longitude"], name="retailers_location_idx"),
        ]
        constraints = [
            models.CheckConstraint(
                condition=models.Q(
                    service_radius_km__gte=MIN_SERVICE_RADIUS_KM,
                    service_radius_km__lte=MAX_SERVICE_RADIUS_KM,
                ),
                name="retailers_service_radius_range",
            ),
        ]

    @property
    def location(self) -> Optional[Coordinate]:
        """The registered location, or ``None`` when missing or out of bounds."""
        return Coordinate.try_from(self.latitude, self.longitude)

    def __str__(self) -> str:
        return self.shop_name
