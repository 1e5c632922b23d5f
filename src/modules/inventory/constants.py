"""Inventory ledger constants."""

from django.db import models


class TransactionType(models.TextChoices):
    RESERVE = "reserve", "Reserve"
    RELEASE = "release", "Release"
    CONFIRM = "confirm", "Confirm"
    STOCK_IN = "stock_in", "Stock in"
    ADJUSTMENT = "adjustment", "Adjustment"


# Types recorded at most once per (order, inventory item).
ORDER_TRANSACTION_TYPES = (
    TransactionType.RESERVE,
    TransactionType.RELEASE,
    TransactionType.CONFIRM,
)

# Mutually exclusive: an order's stock is either released or confirmed.
SETTLEMENT_TRANSACTION_TYPES = (
    TransactionType.RELEASE,
    TransactionType.CONFIRM,
)

SYSTEM_ACTOR = "system"
