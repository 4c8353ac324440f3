from typing import List, Optional

from sqlalchemy import select, update

from ..db.base import StockAdjustment as StockAdjustmentModel
from ..db.base import StockEntry as StockEntryModel
from ..domain.entities import StockAdjustment, StockEntry, ensure_utc
from ..domain.interfaces import IStockRepository


class StockRepository(IStockRepository):
    """SQLAlchemy stock store.

    Quantity changes are single conditional UPDATE statements so the
    database serializes concurrent writers on the (facility, medicine) row.
    """

    def __init__(self, db_session):
        self.db = db_session

    def _select(self, facility_id: int, medicine_id: int):
        return (
            select(StockEntryModel)
            .where(
                StockEntryModel.facility_id == facility_id,
                StockEntryModel.medicine_id == medicine_id,
            )
            .execution_options(populate_existing=True)
        )

    def get(self, facility_id: int, medicine_id: int) -> Optional[StockEntry]:
        db_entry = self.db.execute(self._select(facility_id, medicine_id)).scalar_one_or_none()
        return self._to_domain(db_entry) if db_entry else None

    def list_for_facility(self, facility_id: int) -> List[StockEntry]:
        rows = self.db.execute(
            select(StockEntryModel)
            .where(StockEntryModel.facility_id == facility_id)
            .order_by(StockEntryModel.medicine_id.asc())
            .execution_options(populate_existing=True)
        ).scalars()
        return [self._to_domain(row) for row in rows]

    def add(self, entry: StockEntry) -> StockEntry:
        db_entry = StockEntryModel(
            facility_id=entry.facility_id,
            medicine_id=entry.medicine_id,
            medicine_name=entry.medicine_name,
            quantity=entry.quantity,
            unit_price=entry.unit_price,
            discount_price=entry.discount_price,
            expiry_date=entry.expiry_date,
            batch_number=entry.batch_number,
        )
        self.db.add(db_entry)
        self.db.flush()
        return self._to_domain(db_entry)

    def decrement_if_available(
        self, facility_id: int, medicine_id: int, quantity: int
    ) -> Optional[int]:
        result = self.db.execute(
            update(StockEntryModel)
            .where(
                StockEntryModel.facility_id == facility_id,
                StockEntryModel.medicine_id == medicine_id,
                StockEntryModel.quantity >= quantity,
            )
            .values(quantity=StockEntryModel.quantity - quantity)
            .execution_options(synchronize_session=False)
        )
        if result.rowcount == 0:
            return None
        return self._current_quantity(facility_id, medicine_id)

    def increment(
        self, facility_id: int, medicine_id: int, quantity: int
    ) -> Optional[int]:
        result = self.db.execute(
            update(StockEntryModel)
            .where(
                StockEntryModel.facility_id == facility_id,
                StockEntryModel.medicine_id == medicine_id,
            )
            .values(quantity=StockEntryModel.quantity + quantity)
            .execution_options(synchronize_session=False)
        )
        if result.rowcount == 0:
            return None
        return self._current_quantity(facility_id, medicine_id)

    def record_adjustment(self, adjustment: StockAdjustment) -> StockAdjustment:
        db_row = StockAdjustmentModel(
            facility_id=adjustment.facility_id,
            medicine_id=adjustment.medicine_id,
            delta=adjustment.delta,
            reason=adjustment.reason,
            resulting_quantity=adjustment.resulting_quantity,
            actor_id=adjustment.actor_id,
            actor_role=adjustment.actor_role,
        )
        self.db.add(db_row)
        self.db.flush()
        return self._adjustment_to_domain(db_row)

    def list_adjustments(
        self, facility_id: int, medicine_id: int
    ) -> List[StockAdjustment]:
        rows = self.db.execute(
            select(StockAdjustmentModel)
            .where(
                StockAdjustmentModel.facility_id == facility_id,
                StockAdjustmentModel.medicine_id == medicine_id,
            )
            .order_by(StockAdjustmentModel.id.desc())
        ).scalars()
        return [self._adjustment_to_domain(row) for row in rows]

    def _current_quantity(self, facility_id: int, medicine_id: int) -> int:
        return self.db.execute(
            select(StockEntryModel.quantity).where(
                StockEntryModel.facility_id == facility_id,
                StockEntryModel.medicine_id == medicine_id,
            )
        ).scalar_one()

    def _to_domain(self, db_entry: StockEntryModel) -> StockEntry:
        return StockEntry(
            id=db_entry.id,
            facility_id=db_entry.facility_id,
            medicine_id=db_entry.medicine_id,
            medicine_name=db_entry.medicine_name,
            quantity=db_entry.quantity,
            unit_price=db_entry.unit_price,
            discount_price=db_entry.discount_price,
            expiry_date=db_entry.expiry_date,
            batch_number=db_entry.batch_number,
            created_at=ensure_utc(db_entry.created_at),
            updated_at=ensure_utc(db_entry.updated_at),
        )

    def _adjustment_to_domain(self, db_row: StockAdjustmentModel) -> StockAdjustment:
        return StockAdjustment(
            id=db_row.id,
            facility_id=db_row.facility_id,
            medicine_id=db_row.medicine_id,
            delta=db_row.delta,
            reason=db_row.reason,
            resulting_quantity=db_row.resulting_quantity,
            actor_id=db_row.actor_id,
            actor_role=db_row.actor_role,
            created_at=ensure_utc(db_row.created_at),
        )
