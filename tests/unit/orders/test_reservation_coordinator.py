"""Unit tests for ReservationCoordinator with stubbed collaborators.

Covers:
- Pre-check short-circuits before any unit of work is opened.
- Success / failure events and their timing (after commit vs. immediate).
- Bounded retry with linear backoff on ConcurrencyConflict.
- No retries when the caller already owns the unit of work.
- Release / confirm guards on ``reservation_status``.
"""

from __future__ import annotations

from contextlib import contextmanager
from decimal import Decimal
from types import SimpleNamespace
from unittest.mock import MagicMock
from uuid import uuid4

import pytest

from modules.core.unit_of_work import IUnitOfWork
from modules.inventory.dtos import StockAvailabilityDTO
from modules.inventory.events import (
    DeliveryConfirmed,
    ReservationAttempted,
    ReservationFailed,
    ReservationReleased,
    ReservationSucceeded,
)
from modules.inventory.exceptions import (
    ConcurrencyConflict,
    InsufficientStock,
    ReservationAlreadyTerminal,
    Shortfall,
)
from modules.orders.constants import ReservationStatus
from modules.orders.dtos import ReservationDraftDTO, ReservationLineDTO
from modules.orders.exceptions import ReservationNotActive
from modules.orders.reservations import ReservationCoordinator

pytestmark = pytest.mark.unit


# ---------------------------------------------------------------------------
# Test doubles
# ---------------------------------------------------------------------------


class FakeUnitOfWork(IUnitOfWork):
    """Runs on-commit callbacks when the outermost block exits cleanly."""

    def __init__(self, inside_caller_unit: bool = False) -> None:
        self._depth = 0
        self._inside_caller_unit = inside_caller_unit
        self._pending = []
        self.commits = 0
        self.aborts = 0

    @contextmanager
    def atomic(self):
        outer = self._depth == 0 and not self._inside_caller_unit
        self._depth += 1
        try:
            yield
        except BaseException:
            if outer:
                self._pending.clear()
                self.aborts += 1
            raise
        finally:
            self._depth -= 1
        if outer:
            self.commits += 1
            callbacks, self._pending = self._pending, []
            for callback in callbacks:
                callback()

    def on_commit(self, callback) -> None:
        self._pending.append(callback)

    @property
    def in_unit(self) -> bool:
        return self._inside_caller_unit or self._depth > 0


class RecordingBus:
    def __init__(self) -> None:
        self.events = []

    def publish(self, event) -> None:
        self.events.append(event)

    def types(self):
        return [type(event) for event in self.events]


def _order(reservation_status=ReservationStatus.RESERVED):
    order = MagicMock()
    order.id = uuid4()
    order.assigned_retailer_id = uuid4()
    order.reservation_status = reservation_status
    order.items.all.return_value = [SimpleNamespace(product_id=uuid4(), quantity=2)]
    return order


@pytest.fixture()
def draft():
    return ReservationDraftDTO(
        customer_id=uuid4(),
        retailer_id=uuid4(),
        assignment_distance_km=0.7,
        delivery_latitude=12.97,
        delivery_longitude=77.6,
        lines=[ReservationLineDTO(product_id=uuid4(), quantity=2, unit_price=Decimal("5.00"))],
        actor="tester",
    )


@pytest.fixture()
def ledger(draft):
    ledger = MagicMock()
    ledger.check_available.return_value = [
        StockAvailabilityDTO(
            product_id=line.product_id,
            available=10,
            requested=line.quantity,
            sufficient=True,
        )
        for line in draft.lines
    ]
    return ledger


@pytest.fixture()
def order():
    return _order(ReservationStatus.NOT_RESERVED)


@pytest.fixture()
def repository(order):
    repository = MagicMock()
    repository.create.return_value = order
    repository.mark_reserved.side_effect = lambda o: o
    repository.mark_released.side_effect = lambda o: o
    repository.mark_delivered.side_effect = lambda o: o
    return repository


@pytest.fixture()
def bus():
    return RecordingBus()


@pytest.fixture()
def uow():
    return FakeUnitOfWork()


@pytest.fixture()
def sleep():
    return MagicMock()


@pytest.fixture()
def coordinator(repository, ledger, uow, bus, sleep):
    return ReservationCoordinator(
        order_repository=repository,
        ledger=ledger,
        unit_of_work=uow,
        event_bus=bus,
        max_retries=2,
        backoff_ms=50,
        sleep=sleep,
    )


# ===========================================================================
# reserve_for_order
# ===========================================================================


class TestReserveForOrder:
    def test_happy_path(self, coordinator, draft, repository, ledger, bus, uow, order):
        within_unit = MagicMock()

        result = coordinator.reserve_for_order(draft, within_unit=within_unit)

        assert result is order
        order_id = repository.create.call_args.kwargs["order_id"]
        ledger.reserve.assert_called_once_with(
            draft.retailer_id, order.items.all.return_value, order.id, actor="tester"
        )
        repository.mark_reserved.assert_called_once_with(order)
        within_unit.assert_called_once_with(order)
        assert uow.commits == 1
        assert bus.types() == [ReservationAttempted, ReservationSucceeded]
        assert all(event.aggregate_id == order_id for event in bus.events)
        assert bus.events[1].attempts == 1
        assert bus.events[0].lines == ((str(draft.lines[0].product_id), 2),)

    def test_precheck_rejects_before_opening_a_unit(
        self, coordinator, draft, ledger, repository, bus, uow
    ):
        ledger.check_available.return_value = [
            StockAvailabilityDTO(
                product_id=draft.lines[0].product_id,
                available=1,
                requested=2,
                sufficient=False,
            )
        ]

        with pytest.raises(InsufficientStock) as exc_info:
            coordinator.reserve_for_order(draft)

        assert exc_info.value.shortfalls[0].available == 1
        repository.create.assert_not_called()
        assert uow.commits == uow.aborts == 0
        assert bus.types() == [ReservationFailed]
        assert bus.events[0].reason == "insufficient_stock"
        assert bus.events[0].retryable is False
        assert bus.events[0].shortfalls[0]["requested"] == 2

    def test_shortfall_under_lock_aborts_the_unit(
        self, coordinator, draft, ledger, bus, uow, repository
    ):
        shortfall = Shortfall(str(draft.lines[0].product_id), 2, 0)
        ledger.reserve.side_effect = InsufficientStock(draft.retailer_id, [shortfall])
        within_unit = MagicMock()

        with pytest.raises(InsufficientStock):
            coordinator.reserve_for_order(draft, within_unit=within_unit)

        assert uow.aborts == 1
        repository.mark_reserved.assert_not_called()
        within_unit.assert_not_called()
        assert bus.types() == [ReservationAttempted, ReservationFailed]

    def test_retries_conflicts_with_linear_backoff(
        self, coordinator, draft, ledger, bus, sleep, repository
    ):
        ledger.reserve.side_effect = [ConcurrencyConflict(), ConcurrencyConflict(), None]

        coordinator.reserve_for_order(draft)

        assert repository.create.call_count == 3
        order_ids = {call.kwargs["order_id"] for call in repository.create.call_args_list}
        assert len(order_ids) == 1
        assert [call.args[0] for call in sleep.call_args_list] == [0.05, 0.1]
        assert bus.types() == [
            ReservationAttempted,
            ReservationAttempted,
            ReservationAttempted,
            ReservationSucceeded,
        ]
        assert [e.attempt for e in bus.events[:3]] == [1, 2, 3]
        assert bus.events[-1].attempts == 3

    def test_gives_up_after_max_retries(self, coordinator, draft, ledger, bus, sleep):
        ledger.reserve.side_effect = ConcurrencyConflict()

        with pytest.raises(ConcurrencyConflict):
            coordinator.reserve_for_order(draft)

        assert ledger.reserve.call_count == 3
        assert sleep.call_count == 2
        assert bus.types()[-1] is ReservationFailed
        assert bus.events[-1].retryable is True
        assert ReservationSucceeded not in bus.types()

    def test_no_retry_inside_callers_unit(self, repository, ledger, bus, sleep, draft):
        coordinator = ReservationCoordinator(
            order_repository=repository,
            ledger=ledger,
            unit_of_work=FakeUnitOfWork(inside_caller_unit=True),
            event_bus=bus,
            max_retries=5,
            backoff_ms=50,
            sleep=sleep,
        )
        ledger.reserve.side_effect = ConcurrencyConflict()

        with pytest.raises(ConcurrencyConflict):
            coordinator.reserve_for_order(draft)

        assert ledger.reserve.call_count == 1
        sleep.assert_not_called()

    def test_success_event_waits_for_commit(self, coordinator, draft, bus):
        def check_no_success_yet(order):
            assert ReservationSucceeded not in bus.types()

        coordinator.reserve_for_order(draft, within_unit=check_no_success_yet)

        assert bus.types()[-1] is ReservationSucceeded


# ===========================================================================
# release / confirm
# ===========================================================================


class TestReleaseForOrder:
    def test_releases_and_publishes_after_commit(self, coordinator, ledger, repository, bus):
        order = _order()

        coordinator.release_for_order(order, reason="changed mind", actor="alice")

        ledger.release.assert_called_once_with(
            order.assigned_retailer_id,
            order.items.all.return_value,
            order.id,
            actor="alice",
            reason="changed mind",
        )
        repository.mark_released.assert_called_once_with(order)
        assert bus.types() == [ReservationReleased]
        assert bus.events[0].reason == "changed mind"

    @pytest.mark.parametrize(
        "state", [ReservationStatus.RELEASED, ReservationStatus.DELIVERED]
    )
    def test_refuses_terminal_reservation(self, coordinator, ledger, state):
        with pytest.raises(ReservationAlreadyTerminal):
            coordinator.release_for_order(_order(state))
        ledger.release.assert_not_called()

    def test_refuses_order_without_reservation(self, coordinator, ledger):
        with pytest.raises(ReservationNotActive):
            coordinator.release_for_order(_order(ReservationStatus.NOT_RESERVED))
        ledger.release.assert_not_called()

    def test_ledger_failure_publishes_nothing(self, coordinator, ledger, repository, bus):
        ledger.release.side_effect = ConcurrencyConflict()

        with pytest.raises(ConcurrencyConflict):
            coordinator.release_for_order(_order())

        repository.mark_released.assert_not_called()
        assert bus.events == []


class TestConfirmDeliveryForOrder:
    def test_confirms_and_publishes_after_commit(self, coordinator, ledger, repository, bus):
        order = _order()

        coordinator.confirm_delivery_for_order(order, actor="rider")

        ledger.confirm.assert_called_once_with(
            order.assigned_retailer_id, order.items.all.return_value, order.id, actor="rider"
        )
        repository.mark_delivered.assert_called_once_with(order)
        assert bus.types() == [DeliveryConfirmed]

    def test_refuses_released_reservation(self, coordinator, ledger):
        with pytest.raises(ReservationAlreadyTerminal):
            coordinator.confirm_delivery_for_order(_order(ReservationStatus.RELEASED))
        ledger.confirm.assert_not_called()
