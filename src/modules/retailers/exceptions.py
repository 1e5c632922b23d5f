"""Retailer matching exceptions."""

from __future__ import annotations

from typing import Any, Optional


class InvalidCoordinates(Exception):
    """A coordinate is outside geographic bounds or not a finite number."""

    def __init__(self, latitude: Any, longitude: Any, reason: Optional[str] = None) -> None:
        self.latitude = latitude
        self.longitude = longitude
        self.reason = reason or "latitude must be in [-90, 90] and longitude in [-180, 180]"
        super().__init__(f"Invalid coordinates ({latitude!r}, {longitude!r}): {self.reason}.")


class NoRetailerInRange(Exception):
    """No active retailer serves the delivery coordinate."""

    def __init__(self, latitude: float, longitude: float, max_search_radius_km: float) -> None:
        self.latitude = latitude
        self.longitude = longitude
        self.max_search_radius_km = max_search_radius_km
        super().__init__(
            f"No active retailer delivers to ({latitude}, {longitude}) "
            f"within {max_search_radius_km} km."
        )
