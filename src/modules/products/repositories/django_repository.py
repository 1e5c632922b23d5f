"""Django ORM implementation of the Product repository.

Methods return ``None`` (or omit entries) for missing products; the
service layer decides how a missing product becomes an error.
"""

from __future__ import annotations

from typing import Any, Dict, Iterable, List, Optional

from django.core.exceptions import ValidationError

from modules.products.models import Product
from modules.products.repositories.interfaces import IProductRepository


class ProductDjangoRepository(IProductRepository):
    """Concrete Product repository backed by Django ORM."""

    def get_by_id(self, id: str) -> Optional[Product]:
        try:
            return Product.objects.filter(id=id).first()
        except (ValueError, ValidationError):
            return None

    def get_many(self, ids: Iterable[str]) -> Dict[str, Product]:
        try:
            products = Product.objects.filter(id__in=list(ids))
            return {str(product.id): product for product in products}
        except (ValueError, ValidationError):
            return {}

    def list(self, filters: Optional[Dict[str, Any]] = None) -> List[Product]:
        queryset = Product.objects.all()
        if filters:
            queryset = queryset.filter(**filters)
        return list(queryset)

    def save(self, entity: Product) -> Product:
        entity.save()
        return entity

    def get_by_sku(self, sku: str) -> Optional[Product]:
        return Product.objects.filter(sku=sku.strip().upper()).first()
