"""
Integration tests for the SQLAlchemy repositories against SQLite.
"""

from datetime import date, datetime, time, timedelta, timezone
from decimal import Decimal

import pytest
from sqlalchemy.exc import IntegrityError

from pharmalink.domain.entities import (
    Appointment,
    AppointmentStatus,
    Order,
    OrderLineItem,
    OrderStatus,
    OrderTotals,
    StockAdjustment,
    StockEntry,
    TrackingEntry,
)
from pharmalink.repositories import (
    AppointmentRepository,
    OrderRepository,
    StockRepository,
    TrackingRepository,
)

T0 = datetime(2026, 3, 2, 9, 0, tzinfo=timezone.utc)


def _new_order(patient_id=42, facility_id=1):
    items = [
        OrderLineItem(medicine_id=3, quantity=2, unit_price=Decimal("4.50")),
        OrderLineItem(medicine_id=5, quantity=1, unit_price=Decimal("10.00")),
    ]
    totals = OrderTotals.compute(items, Decimal("0.05"), Decimal("5.00"))
    return Order.with_totals(
        items,
        totals,
        facility_id=facility_id,
        patient_id=patient_id,
        delivery_address="12 Ring Road Central, Accra",
        order_number=f"ORD-{patient_id}-{facility_id}",
        tracking_number=f"TRK{patient_id:08d}{facility_id:04d}",
    )


@pytest.mark.integration
@pytest.mark.repositories
class TestStockRepository:
    def test_add_and_get(self, db_session):
        repo = StockRepository(db_session)

        repo.add(StockEntry(facility_id=1, medicine_id=3, quantity=5, unit_price=Decimal("4.5")))
        entry = repo.get(1, 3)

        assert entry.quantity == 5
        assert entry.unit_price == Decimal("4.50")
        assert entry.created_at.tzinfo is not None
        assert repo.get(1, 4) is None

    def test_duplicate_pair_violates_unique_constraint(self, db_session):
        repo = StockRepository(db_session)
        repo.add(StockEntry(facility_id=1, medicine_id=3, quantity=5))

        with pytest.raises(IntegrityError):
            repo.add(StockEntry(facility_id=1, medicine_id=3, quantity=1))

    def test_conditional_decrement(self, db_session):
        repo = StockRepository(db_session)
        repo.add(StockEntry(facility_id=1, medicine_id=3, quantity=5))

        assert repo.decrement_if_available(1, 3, 5) == 0
        assert repo.decrement_if_available(1, 3, 1) is None
        assert repo.get(1, 3).quantity == 0

    def test_missing_row_cannot_be_decremented_or_incremented(self, db_session):
        repo = StockRepository(db_session)

        assert repo.decrement_if_available(1, 99, 1) is None
        assert repo.increment(1, 99, 1) is None

    def test_adjustments_newest_first(self, db_session):
        repo = StockRepository(db_session)
        repo.add(StockEntry(facility_id=1, medicine_id=3, quantity=5))
        for delta, qty in [(5, 10), (-2, 8)]:
            repo.record_adjustment(
                StockAdjustment(
                    facility_id=1,
                    medicine_id=3,
                    delta=delta,
                    reason="Cycle count",
                    resulting_quantity=qty,
                )
            )

        history = repo.list_adjustments(1, 3)

        assert [a.delta for a in history] == [-2, 5]

    def test_list_for_facility_sorted_by_medicine(self, db_session):
        repo = StockRepository(db_session)
        for medicine_id in (9, 2, 5):
            repo.add(StockEntry(facility_id=1, medicine_id=medicine_id, quantity=1))
        repo.add(StockEntry(facility_id=2, medicine_id=1, quantity=1))

        assert [e.medicine_id for e in repo.list_for_facility(1)] == [2, 5, 9]


@pytest.mark.integration
@pytest.mark.repositories
class TestOrderRepository:
    def test_create_round_trip(self, db_session):
        repo = OrderRepository(db_session)

        created = repo.create(_new_order())
        loaded = repo.get_by_id(created.id)

        assert loaded.status == OrderStatus.PENDING
        assert [i.medicine_id for i in loaded.items] == [3, 5]
        assert loaded.subtotal == Decimal("19.00")
        assert loaded.final_amount == Decimal("24.95")
        assert loaded.totals_are_consistent()
        assert not loaded.stock_committed

    def test_compare_and_set_status(self, db_session):
        repo = OrderRepository(db_session)
        order = repo.create(_new_order())

        assert repo.compare_and_set_status(
            order.id, OrderStatus.PENDING, OrderStatus.CONFIRMED, stock_committed=True
        )
        assert not repo.compare_and_set_status(
            order.id, OrderStatus.PENDING, OrderStatus.CANCELLED, stock_committed=False
        )

        loaded = repo.get_by_id(order.id)
        assert loaded.status == OrderStatus.CONFIRMED
        assert loaded.stock_committed

    def test_compare_and_set_keeps_estimated_delivery(self, db_session):
        repo = OrderRepository(db_session)
        order = repo.create(_new_order())
        eta = T0 + timedelta(hours=4)

        repo.compare_and_set_status(
            order.id,
            OrderStatus.PENDING,
            OrderStatus.CONFIRMED,
            stock_committed=True,
            estimated_delivery=eta,
            notes="Call on arrival",
        )

        loaded = repo.get_by_id(order.id)
        assert loaded.estimated_delivery == eta
        assert loaded.notes == "Call on arrival"

    def test_list_orders_filters(self, db_session):
        repo = OrderRepository(db_session)
        mine = repo.create(_new_order(patient_id=42))
        repo.create(_new_order(patient_id=43))
        repo.create(_new_order(patient_id=42, facility_id=2))

        assert {o.patient_id for o in repo.list_orders(patient_id=42)} == {42}
        assert len(repo.list_orders(patient_id=42, facility_id=1)) == 1
        assert repo.list_orders(status=OrderStatus.CONFIRMED) == []
        assert len(repo.list_orders(limit=2)) == 2
        assert repo.list_statuses()[mine.id] == OrderStatus.PENDING


@pytest.mark.integration
@pytest.mark.repositories
class TestTrackingRepository:
    def test_timeline_ordered_by_timestamp(self, db_session):
        order = OrderRepository(db_session).create(_new_order())
        repo = TrackingRepository(db_session)
        for status, offset in [
            (OrderStatus.CONFIRMED, 2),
            (OrderStatus.PENDING, 1),
        ]:
            repo.append(
                TrackingEntry(
                    order_id=order.id,
                    status=status,
                    timestamp=T0 + timedelta(seconds=offset),
                    tracking_number=order.tracking_number,
                )
            )

        timeline = repo.list_for_order(order.id)

        assert [e.status for e in timeline] == [OrderStatus.PENDING, OrderStatus.CONFIRMED]
        assert timeline[0].timestamp == T0 + timedelta(seconds=1)
        assert repo.latest_for_order(order.id).status == OrderStatus.CONFIRMED
        assert repo.latest_statuses() == {order.id: OrderStatus.CONFIRMED}
        assert len(repo.list_by_tracking_number(order.tracking_number)) == 2

    def test_unknown_order_has_no_latest(self, db_session):
        assert TrackingRepository(db_session).latest_for_order(12345) is None


@pytest.mark.integration
@pytest.mark.repositories
class TestAppointmentRepository:
    def _appointment(self, **overrides):
        data = {
            "facility_id": 1,
            "patient_id": 42,
            "appointment_date": date(2026, 3, 10),
            "appointment_time": time(14, 0),
        }
        data.update(overrides)
        return Appointment(**data)

    def test_find_conflicting_ignores_inactive(self, db_session):
        repo = AppointmentRepository(db_session)
        booked = repo.create(self._appointment())

        assert repo.find_conflicting(1, date(2026, 3, 10), time(14, 0)).id == booked.id
        assert repo.find_conflicting(1, date(2026, 3, 10), time(15, 0)) is None
        assert (
            repo.find_conflicting(1, date(2026, 3, 10), time(14, 0), exclude_id=booked.id)
            is None
        )

        cancelled = self._appointment(id=booked.id, status=AppointmentStatus.CANCELLED)
        assert repo.compare_and_update(cancelled, booked)
        assert repo.find_conflicting(1, date(2026, 3, 10), time(14, 0)) is None

    def test_compare_and_update_detects_stale_copy(self, db_session):
        repo = AppointmentRepository(db_session)
        booked = repo.create(self._appointment())
        confirmed = self._appointment(id=booked.id, status=AppointmentStatus.CONFIRMED)

        assert repo.compare_and_update(confirmed, booked)
        # booked is now stale: its status no longer matches the row
        assert not repo.compare_and_update(
            self._appointment(id=booked.id, status=AppointmentStatus.CANCELLED), booked
        )
        assert repo.get_by_id(booked.id).status == AppointmentStatus.CONFIRMED
