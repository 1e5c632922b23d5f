"""Order domain constants.

Defines status choices and the valid transitions of the order state
machine.  Every caller (customer, retailer, admin) goes through the same
table; who may request a transition is an authorization concern of the
API layer.
"""

from django.db import models


class OrderStatus(models.TextChoices):
    PENDING = "pending", "Pending"
    CONFIRMED = "confirmed", "Confirmed"
    PREPARING = "preparing", "Preparing"
    OUT_FOR_DELIVERY = "out_for_delivery", "Out for delivery"
    DELIVERED = "delivered", "Delivered"
    CANCELLED = "cancelled", "Cancelled"


class ReservationStatus(models.TextChoices):
    NOT_RESERVED = "not_reserved", "Not reserved"
    RESERVED = "reserved", "Reserved"
    DELIVERED = "delivered", "Delivered"
    RELEASED = "released", "Released"


VALID_TRANSITIONS: dict[str, set[str]] = {
    OrderStatus.PENDING: {OrderStatus.CONFIRMED, OrderStatus.CANCELLED},
    OrderStatus.CONFIRMED: {OrderStatus.PREPARING, OrderStatus.CANCELLED},
    OrderStatus.PREPARING: {OrderStatus.OUT_FOR_DELIVERY},
    OrderStatus.OUT_FOR_DELIVERY: {OrderStatus.DELIVERED},
    OrderStatus.DELIVERED: set(),
    OrderStatus.CANCELLED: set(),
}

TERMINAL_STATES: set[str] = {OrderStatus.DELIVERED, OrderStatus.CANCELLED}

TERMINAL_RESERVATION_STATES: set[str] = {
    ReservationStatus.DELIVERED,
    ReservationStatus.RELEASED,
}

ORDER_NUMBER_MAX_RETRIES = 5
