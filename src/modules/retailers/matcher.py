"""Nearest-retailer selection.

Business rules implemented:
- Only active retailers with a valid location are candidates.
- A retailer is in range when the delivery point lies within
  ``min(service_radius_km, max_search_radius_km)`` of it; a nearer
  retailer whose own radius excludes the point loses to a farther one
  whose radius includes it.
- Ties (equal distance within ``DISTANCE_TOLERANCE_KM``) go to the larger
  service radius, then to the lexicographically smaller id.

Matching is read-only: it never mutates retailers or orders.
"""

from __future__ import annotations

import functools
from dataclasses import dataclass
from typing import Any, Iterable, List, Optional, Protocol, Tuple, Union

import structlog
from django.conf import settings

from modules.retailers.exceptions import NoRetailerInRange
from modules.retailers.geo import Coordinate, haversine_km

logger = structlog.get_logger(__name__)

DISTANCE_TOLERANCE_KM = 1e-9


class RetailerProfile(Protocol):
    id: Any
    is_active: bool
    service_radius_km: float

    @property
    def location(self) -> Optional[Coordinate]: ...


@dataclass(frozen=True)
class RetailerMatch:
    retailer: RetailerProfile
    distance_km: float


def _compare(a: RetailerMatch, b: RetailerMatch) -> int:
    if abs(a.distance_km - b.distance_km) > DISTANCE_TOLERANCE_KM:
        return -1 if a.distance_km < b.distance_km else 1
    radius_a = float(a.retailer.service_radius_km)
    radius_b = float(b.retailer.service_radius_km)
    if radius_a != radius_b:
        return -1 if radius_a > radius_b else 1
    id_a, id_b = str(a.retailer.id), str(b.retailer.id)
    if id_a != id_b:
        return -1 if id_a < id_b else 1
    return 0


class RetailerMatcher:
    """Resolve which retailer fulfils a delivery coordinate."""

    def __init__(self, max_search_radius_km: Optional[float] = None) -> None:
        if max_search_radius_km is None:
            max_search_radius_km = settings.FULFILLMENT_MAX_SEARCH_RADIUS_KM
        self.max_search_radius_km = float(max_search_radius_km)

    def find_best_retailer(
        self,
        delivery: Union[Coordinate, Tuple[Any, Any]],
        candidates: Iterable[RetailerProfile],
        max_search_radius_km: Optional[float] = None,
    ) -> RetailerMatch:
        """Return the single best retailer for ``delivery``.

        Raises ``InvalidCoordinates`` for an out-of-bounds delivery point
        and ``NoRetailerInRange`` when no candidate survives filtering.
        """
        point = Coordinate.of(delivery)
        radius = self._radius(max_search_radius_km)

        best: Optional[RetailerMatch] = None
        for match in self._in_range(point, candidates, radius):
            if best is None or _compare(match, best) < 0:
                best = match

        if best is None:
            logger.info(
                "retailer.no_match",
                latitude=point.latitude,
                longitude=point.longitude,
                max_search_radius_km=radius,
            )
            raise NoRetailerInRange(point.latitude, point.longitude, radius)

        logger.info(
            "retailer.matched",
            retailer_id=str(best.retailer.id),
            distance_km=round(best.distance_km, 2),
        )
        return best

    def find_nearby_retailers(
        self,
        delivery: Union[Coordinate, Tuple[Any, Any]],
        candidates: Iterable[RetailerProfile],
        max_search_radius_km: Optional[float] = None,
    ) -> List[RetailerMatch]:
        """Every in-range retailer, best first (same ordering as matching)."""
        point = Coordinate.of(delivery)
        matches = list(self._in_range(point, candidates, self._radius(max_search_radius_km)))
        return sorted(matches, key=functools.cmp_to_key(_compare))

    # ------------------------------------------------------------------
    # Helpers
    # ------------------------------------------------------------------

    def _radius(self, override: Optional[float]) -> float:
        return self.max_search_radius_km if override is None else float(override)

    @staticmethod
    def _in_range(
        point: Coordinate, candidates: Iterable[RetailerProfile], max_radius_km: float
    ) -> Iterable[RetailerMatch]:
        for retailer in candidates:
            if not retailer.is_active:
                continue
            location = retailer.location
            if location is None:
                continue
            distance = haversine_km(point, location)
            if distance <= min(float(retailer.service_radius_km), max_radius_km):
                yield RetailerMatch(retailer=retailer, distance_km=distance)
