"""
Unit tests for StockLedger with a mocked stock repository.

This module tests:
- Quantity reads and classification
- Single decrements and multi-line commits
- Shortage reporting
- Manual adjustments and their validation
"""

from datetime import date
from decimal import Decimal
from unittest.mock import Mock

import pytest

from pharmalink.core.exceptions import InsufficientStock, InvalidRequest, NotFound
from pharmalink.domain.entities import (
    Actor,
    OrderLineItem,
    StockAdjustment,
    StockEntry,
    StockStatus,
)
from pharmalink.domain.interfaces import IStockRepository
from pharmalink.services.stock_ledger import StockLedger


def _entry(medicine_id=1, quantity=10, **kwargs):
    return StockEntry(
        facility_id=1,
        medicine_id=medicine_id,
        quantity=quantity,
        unit_price=kwargs.pop("unit_price", Decimal("2.00")),
        **kwargs,
    )


@pytest.fixture
def mock_repo() -> Mock:
    return Mock(spec=IStockRepository)


@pytest.fixture
def ledger(mock_repo) -> StockLedger:
    return StockLedger(mock_repo, low_stock_threshold=10, expiry_warning_days=30)


@pytest.mark.unit
@pytest.mark.services
class TestStockReads:
    def test_get_quantity(self, ledger, mock_repo):
        mock_repo.get.return_value = _entry(quantity=7)

        assert ledger.get_quantity(1, 1) == 7
        mock_repo.get.assert_called_once_with(1, 1)

    def test_missing_entry_is_not_found(self, ledger, mock_repo):
        mock_repo.get.return_value = None

        with pytest.raises(NotFound) as exc_info:
            ledger.get_quantity(1, 99)
        assert "medicine 99" in exc_info.value.message

    @pytest.mark.parametrize(
        "quantity,expected",
        [
            (0, StockStatus.OUT_OF_STOCK),
            (1, StockStatus.LOW_STOCK),
            (10, StockStatus.LOW_STOCK),
            (11, StockStatus.IN_STOCK),
        ],
    )
    def test_stock_status(self, ledger, mock_repo, quantity, expected):
        mock_repo.get.return_value = _entry(quantity=quantity)
        assert ledger.stock_status(1, 1) == expected

    def test_low_stock_filter(self, ledger, mock_repo):
        mock_repo.list_for_facility.return_value = [
            _entry(1, 0),
            _entry(2, 5),
            _entry(3, 50),
        ]

        low = ledger.list_inventory(1, low_stock_only=True)

        assert [e.medicine_id for e in low] == [1, 2]

    def test_summarize(self, ledger, mock_repo):
        mock_repo.list_for_facility.return_value = [
            _entry(1, 0),
            _entry(2, 5, expiry_date=date(2026, 3, 20)),
            _entry(3, 20, discount_price=Decimal("1.50")),
        ]

        summary = ledger.summarize(1, today=date(2026, 3, 2))

        assert summary.total_items == 3
        assert summary.total_units == 25
        assert summary.low_stock_items == 1
        assert summary.out_of_stock_items == 1
        assert summary.expiring_soon == 1
        assert summary.stock_value == Decimal("40.00")


@pytest.mark.unit
@pytest.mark.services
class TestReserveAndDecrement:
    def test_success_returns_new_quantity(self, ledger, mock_repo):
        mock_repo.decrement_if_available.return_value = 7

        assert ledger.reserve_and_decrement(1, 1, 3) == 7
        mock_repo.decrement_if_available.assert_called_once_with(1, 1, 3)

    def test_shortage_reports_available(self, ledger, mock_repo):
        mock_repo.decrement_if_available.return_value = None
        mock_repo.get.return_value = _entry(quantity=1)

        with pytest.raises(InsufficientStock) as exc_info:
            ledger.reserve_and_decrement(1, 1, 2)

        (shortage,) = exc_info.value.shortages
        assert shortage.requested == 2
        assert shortage.available == 1
        assert shortage.shortfall == 1

    @pytest.mark.parametrize("quantity", [0, -3, 1.5, True])
    def test_non_positive_quantity_rejected(self, ledger, mock_repo, quantity):
        with pytest.raises(InvalidRequest):
            ledger.reserve_and_decrement(1, 1, quantity)
        mock_repo.decrement_if_available.assert_not_called()


@pytest.mark.unit
@pytest.mark.services
class TestCommitLineItems:
    def test_commits_every_line(self, ledger, mock_repo):
        mock_repo.decrement_if_available.side_effect = [8, 4]
        items = [
            OrderLineItem(medicine_id=1, quantity=2, unit_price=Decimal("1")),
            OrderLineItem(medicine_id=2, quantity=1, unit_price=Decimal("1")),
        ]

        assert ledger.commit_line_items(1, items) == {1: 8, 2: 4}

    def test_same_medicine_lines_are_summed(self, ledger, mock_repo):
        mock_repo.decrement_if_available.return_value = 5
        items = [
            OrderLineItem(medicine_id=1, quantity=2, unit_price=Decimal("1")),
            OrderLineItem(medicine_id=1, quantity=3, unit_price=Decimal("1")),
        ]

        ledger.commit_line_items(1, items)

        mock_repo.decrement_if_available.assert_called_once_with(1, 1, 5)

    def test_reports_every_short_medicine(self, ledger, mock_repo):
        mock_repo.decrement_if_available.side_effect = [None, 3, None]
        mock_repo.get.side_effect = [_entry(1, 1), None]
        items = [
            OrderLineItem(medicine_id=1, quantity=2, unit_price=Decimal("1")),
            OrderLineItem(medicine_id=2, quantity=1, unit_price=Decimal("1")),
            OrderLineItem(medicine_id=3, quantity=4, unit_price=Decimal("1")),
        ]

        with pytest.raises(InsufficientStock) as exc_info:
            ledger.commit_line_items(1, items)

        error = exc_info.value
        assert error.medicine_ids == [1, 3]
        assert error.shortages[1].available == 0
        assert error.details["shortages"][0]["shortfall"] == 1

    def test_rows_are_updated_in_medicine_id_order(self, ledger, mock_repo):
        mock_repo.decrement_if_available.return_value = 1
        items = [
            OrderLineItem(medicine_id=9, quantity=1, unit_price=Decimal("1")),
            OrderLineItem(medicine_id=2, quantity=1, unit_price=Decimal("1")),
            OrderLineItem(medicine_id=5, quantity=1, unit_price=Decimal("1")),
            OrderLineItem(medicine_id=2, quantity=2, unit_price=Decimal("1")),
        ]

        ledger.commit_line_items(1, items)

        called = [c.args for c in mock_repo.decrement_if_available.call_args_list]
        assert called == [(1, 2, 3), (1, 5, 1), (1, 9, 1)]

    def test_release_follows_the_same_order(self, ledger, mock_repo):
        mock_repo.increment.return_value = 4
        items = [
            OrderLineItem(medicine_id=7, quantity=1, unit_price=Decimal("1")),
            OrderLineItem(medicine_id=3, quantity=2, unit_price=Decimal("1")),
        ]

        ledger.release_line_items(1, items)

        called = [c.args for c in mock_repo.increment.call_args_list]
        assert called == [(1, 3, 2), (1, 7, 1)]

    def test_release_adds_units_back(self, ledger, mock_repo):
        mock_repo.increment.return_value = 12
        items = [OrderLineItem(medicine_id=1, quantity=2, unit_price=Decimal("1"))]

        assert ledger.release_line_items(1, items) == {1: 12}
        mock_repo.increment.assert_called_once_with(1, 1, 2)


@pytest.mark.unit
@pytest.mark.services
class TestAdjustStock:
    def test_negative_delta_decrements_and_records(self, ledger, mock_repo):
        mock_repo.decrement_if_available.return_value = 7
        mock_repo.get.return_value = _entry(quantity=7)
        actor = Actor(id=7, role="pharmacist")

        entry = ledger.adjust_stock(1, 1, -3, "Damaged packaging", actor)

        assert entry.quantity == 7
        recorded = mock_repo.record_adjustment.call_args[0][0]
        assert isinstance(recorded, StockAdjustment)
        assert recorded.delta == -3
        assert recorded.resulting_quantity == 7
        assert recorded.actor_id == 7
        assert recorded.actor_role == "pharmacist"

    def test_positive_delta_increments(self, ledger, mock_repo):
        mock_repo.increment.return_value = 25
        mock_repo.get.return_value = _entry(quantity=25)

        ledger.adjust_stock(1, 1, 15, "Restock")

        mock_repo.increment.assert_called_once_with(1, 1, 15)
        assert mock_repo.record_adjustment.call_args[0][0].actor_role == "system"

    def test_decrement_below_zero_records_nothing(self, ledger, mock_repo):
        mock_repo.decrement_if_available.return_value = None
        mock_repo.get.return_value = _entry(quantity=2)

        with pytest.raises(InsufficientStock):
            ledger.adjust_stock(1, 1, -3, "Write-off")
        mock_repo.record_adjustment.assert_not_called()

    def test_zero_delta_rejected(self, ledger, mock_repo):
        with pytest.raises(InvalidRequest, match="zero"):
            ledger.adjust_stock(1, 1, 0, "Nothing")

    @pytest.mark.parametrize("reason", ["", "   ", None, "x" * 201])
    def test_reason_is_validated(self, ledger, mock_repo, reason):
        with pytest.raises(InvalidRequest) as exc_info:
            ledger.adjust_stock(1, 1, 5, reason)
        assert exc_info.value.field == "reason"
        mock_repo.increment.assert_not_called()

    def test_add_duplicate_entry_rejected(self, ledger, mock_repo):
        mock_repo.get.return_value = _entry()

        with pytest.raises(InvalidRequest, match="already stocked"):
            ledger.add_entry(_entry())
        mock_repo.add.assert_not_called()
