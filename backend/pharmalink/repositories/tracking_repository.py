from typing import Dict, List, Optional

from sqlalchemy import select

from ..db.base import OrderTracking
from ..domain.entities import OrderStatus, TrackingEntry, ensure_utc
from ..domain.interfaces import ITrackingRepository


class TrackingRepository(ITrackingRepository):
    """Append-only store: rows are inserted, never updated or deleted."""

    def __init__(self, db_session):
        self.db = db_session

    def append(self, entry: TrackingEntry) -> TrackingEntry:
        db_row = OrderTracking(
            order_id=entry.order_id,
            tracking_number=entry.tracking_number,
            status=OrderStatus(entry.status).value,
            description=entry.description,
            location=entry.location,
            actor_id=entry.actor_id,
            actor_role=entry.actor_role,
            timestamp=entry.timestamp,
        )
        self.db.add(db_row)
        self.db.flush()
        return self._to_domain(db_row)

    def list_for_order(self, order_id: int) -> List[TrackingEntry]:
        rows = self.db.execute(
            select(OrderTracking)
            .where(OrderTracking.order_id == order_id)
            .order_by(OrderTracking.timestamp.asc(), OrderTracking.id.asc())
        ).scalars()
        return [self._to_domain(row) for row in rows]

    def latest_for_order(self, order_id: int) -> Optional[TrackingEntry]:
        row = self.db.execute(
            select(OrderTracking)
            .where(OrderTracking.order_id == order_id)
            .order_by(OrderTracking.timestamp.desc(), OrderTracking.id.desc())
            .limit(1)
        ).scalar_one_or_none()
        return self._to_domain(row) if row else None

    def list_by_tracking_number(self, tracking_number: str) -> List[TrackingEntry]:
        rows = self.db.execute(
            select(OrderTracking)
            .where(OrderTracking.tracking_number == tracking_number)
            .order_by(OrderTracking.timestamp.asc(), OrderTracking.id.asc())
        ).scalars()
        return [self._to_domain(row) for row in rows]

    def latest_statuses(self) -> Dict[int, OrderStatus]:
        rows = self.db.execute(
            select(OrderTracking.order_id, OrderTracking.status).order_by(
                OrderTracking.order_id, OrderTracking.timestamp, OrderTracking.id
            )
        )
        # Later rows overwrite earlier ones, leaving the newest per order
        return {order_id: OrderStatus(status) for order_id, status in rows}

    def _to_domain(self, db_row: OrderTracking) -> TrackingEntry:
        return TrackingEntry(
            id=db_row.id,
            order_id=db_row.order_id,
            tracking_number=db_row.tracking_number,
            status=OrderStatus(db_row.status),
            description=db_row.description,
            location=db_row.location,
            actor_id=db_row.actor_id,
            actor_role=db_row.actor_role,
            timestamp=ensure_utc(db_row.timestamp),
        )
