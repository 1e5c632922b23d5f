"""Product catalog exceptions.

Raised by the order service while composing an order; views translate
them into HTTP responses.
"""

from __future__ import annotations


class ProductNotFound(Exception):
    """The referenced product does not exist in the catalog."""

    def __init__(self, product_id) -> None:
        self.product_id = str(product_id)
        super().__init__(f"Product {self.product_id} not found.")


class InactiveProduct(Exception):
    """The referenced product exists but is not available for sale."""

    def __init__(self, product_id, sku: str = "") -> None:
        self.product_id = str(product_id)
        self.sku = sku
        super().__init__(f"Product {sku or self.product_id} is inactive.")
