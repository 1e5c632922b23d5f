"""Retailer directory repository interface."""

from __future__ import annotations

from abc import abstractmethod
from typing import TYPE_CHECKING, List, Optional

from modules.core.repositories.interfaces import IRepository
from modules.retailers.geo import Coordinate

if TYPE_CHECKING:
    from modules.retailers.models import Retailer


class IRetailerRepository(IRepository["Retailer"]):
    """Repository contract for retailer profiles (read-mostly)."""

    @abstractmethod
    def list_active(
        self, near: Optional[Coordinate] = None, radius_km: Optional[float] = None
    ) -> List["Retailer"]:
        """Active retailers that have a location.

        When ``near`` and ``radius_km`` are given the result may be narrowed
        to a bounding box around ``near``; callers must still apply exact
        distance filtering.
        """
