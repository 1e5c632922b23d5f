"""Great-circle distance on a spherical Earth."""

from __future__ import annotations

import math
from dataclasses import dataclass
from decimal import Decimal
from numbers import Real
from typing import Any, Optional, Tuple, Union

from modules.retailers.exceptions import InvalidCoordinates

EARTH_RADIUS_KM = 6371.0


def _as_degrees(value: Any) -> Optional[float]:
    if isinstance(value, bool) or not isinstance(value, (Real, Decimal)):
        return None
    number = float(value)
    if not math.isfinite(number):
        return None
    return number


@dataclass(frozen=True)
class Coordinate:
    """Validated (latitude, longitude) pair in decimal degrees."""

    latitude: float
    longitude: float

    def __post_init__(self) -> None:
        lat = _as_degrees(self.latitude)
        lng = _as_degrees(self.longitude)
        if lat is None or lng is None:
            raise InvalidCoordinates(
                self.latitude, self.longitude, "coordinates must be finite numbers"
            )
        if not -90.0 <= lat <= 90.0 or not -180.0 <= lng <= 180.0:
            raise InvalidCoordinates(self.latitude, self.longitude)
        object.__setattr__(self, "latitude", lat)
        object.__setattr__(self, "longitude", lng)

    @classmethod
    def of(cls, value: Union["Coordinate", Tuple[Any, Any]]) -> "Coordinate":
        if isinstance(value, cls):
            return value
        try:
            latitude, longitude = value
        except (TypeError, ValueError):
            raise InvalidCoordinates(value, None, "expected a (latitude, longitude) pair")
        return cls(latitude, longitude)

    @classmethod
    def try_from(cls, latitude: Any, longitude: Any) -> Optional["Coordinate"]:
        """Like the constructor, but ``None`` instead of raising."""
        if latitude is None or longitude is None:
            return None
        try:
            return cls(latitude, longitude)
        except InvalidCoordinates:
            return None


def haversine_km(a: Coordinate, b: Coordinate) -> float:
    lat1, lat2 = math.radians(a.latitude), math.radians(b.latitude)
    d_lat = lat2 - lat1
    d_lng = math.radians(b.longitude - a.longitude)

    h = math.sin(d_lat / 2) ** 2 + math.cos(lat1) * math.cos(lat2) * math.sin(d_lng / 2) ** 2
    # Rounding can push h marginally above 1 for antipodal points.
    h = min(1.0, h)
    return 2 * EARTH_RADIUS_KM * math.asin(math.sqrt(h))


def round_km(distance_km: float) -> float:
    return round(distance_km, 2)
