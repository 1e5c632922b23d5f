"""Product repository interface.

The catalog is read-only from this service's point of view: only the
look-ups needed to validate and price order lines are exposed.
"""

from __future__ import annotations

from abc import abstractmethod
from typing import TYPE_CHECKING, Dict, Iterable, Optional

from modules.core.repositories.interfaces import IRepository

if TYPE_CHECKING:
    from modules.products.models import Product


class IProductRepository(IRepository["Product"]):
    """Repository contract for the Product catalog."""

    @abstractmethod
    def get_many(self, ids: Iterable[str]) -> Dict[str, "Product"]:
        """Fetch products by id in one query, keyed by ``str(id)``.

        Unknown ids are simply absent from the result.
        """

    @abstractmethod
    def get_by_sku(self, sku: str) -> Optional["Product"]:
        """Retrieve a product by SKU."""
