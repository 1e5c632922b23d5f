"""Reservation domain events.

Emitted by the order reservation coordinator; ``handlers`` turns them into
structured log records.  Success events are published after commit,
failures immediately.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Any, Dict, Optional, Tuple

from shared.domain.events import DomainEvent


@dataclass(frozen=True)
class ReservationEvent(DomainEvent):
    """Base class; ``aggregate_id`` is the order id."""

    log_event = "reservation.event"

    retailer_id: Optional[str] = None
    lines: Tuple[Tuple[str, int], ...] = ()


@dataclass(frozen=True)
class ReservationAttempted(ReservationEvent):
    log_event = "reservation.attempted"

    attempt: int = 1


@dataclass(frozen=True)
class ReservationSucceeded(ReservationEvent):
    log_event = "reservation.succeeded"

    attempts: int = 1


@dataclass(frozen=True)
class ReservationFailed(ReservationEvent):
    log_event = "reservation.failed"

    reason: str = ""
    retryable: bool = False
    shortfalls: Tuple[Dict[str, Any], ...] = ()


@dataclass(frozen=True)
class ReservationReleased(ReservationEvent):
    log_event = "reservation.released"

    reason: str = ""


@dataclass(frozen=True)
class DeliveryConfirmed(ReservationEvent):
    log_event = "reservation.delivery_confirmed"
