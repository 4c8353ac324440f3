"""
Tracking Ledger - append-only status history per order.
"""

from datetime import datetime, timedelta
from typing import Callable, Dict, Iterator, List, Optional

from ..core.logging_config import get_logger
from ..domain.entities import (
    Actor,
    ConsistencyIssue,
    OrderStatus,
    TrackingEntry,
    utc_now,
)
from ..domain.interfaces import ITrackingRepository
from ..domain.order_rules import describe_status

logger = get_logger(__name__)


class Timeline:
    """Lazy, finite, restartable view of tracking entries.

    Nothing is read until iteration starts, and every iteration re-reads
    the store, so a timeline can be walked any number of times.
    """

    def __init__(self, loader: Callable[[], List[TrackingEntry]]):
        self._loader = loader

    def __iter__(self) -> Iterator[TrackingEntry]:
        return iter(self._loader())

    def to_list(self) -> List[TrackingEntry]:
        return list(self)


class TrackingLedger:
    def __init__(
        self,
        repository: ITrackingRepository,
        clock: Callable[[], datetime] = utc_now,
    ):
        self.repository = repository
        self.clock = clock

    def append_entry(
        self,
        order_id: int,
        status: OrderStatus,
        description: Optional[str] = None,
        location: Optional[str] = None,
        actor: Optional[Actor] = None,
        tracking_number: Optional[str] = None,
    ) -> TrackingEntry:
        """Create one immutable entry timestamped at call time."""
        status = OrderStatus(status)
        timestamp = self.clock()
        latest = self.repository.latest_for_order(order_id)
        if latest is not None:
            # Entries stay strictly ordered even if the clock steps back
            if timestamp <= latest.timestamp:
                timestamp = latest.timestamp + timedelta(microseconds=1)
            tracking_number = tracking_number or latest.tracking_number
        entry = self.repository.append(
            TrackingEntry(
                order_id=order_id,
                status=status,
                timestamp=timestamp,
                description=describe_status(status, description),
                location=location.strip() if location and location.strip() else None,
                actor_id=actor.id if actor else None,
                actor_role=actor.role if actor else None,
                tracking_number=tracking_number,
            )
        )
        logger.debug(
            "Tracking entry appended",
            extra={"context": {"order_id": order_id, "status": status.value}},
        )
        return entry

    def get_timeline(self, order_id: int) -> Timeline:
        """Entries for an order, oldest first."""
        return Timeline(lambda: self.repository.list_for_order(order_id))

    def find_by_tracking_number(self, tracking_number: str) -> Timeline:
        return Timeline(
            lambda: self.repository.list_by_tracking_number(tracking_number)
        )

    def get_current_status(self, order_id: int) -> Optional[OrderStatus]:
        latest = self.repository.latest_for_order(order_id)
        return latest.status if latest else None

    def check_consistency(
        self, order_statuses: Dict[int, OrderStatus]
    ) -> List[ConsistencyIssue]:
        """Orders whose stored status differs from their latest tracking entry."""
        latest = self.repository.latest_statuses()
        issues = [
            ConsistencyIssue(order_id, status, latest.get(order_id))
            for order_id, status in sorted(order_statuses.items())
            if latest.get(order_id) != status
        ]
        for issue in issues:
            logger.error(
                "Order status diverges from tracking ledger",
                extra={
                    "context": {
                        "order_id": issue.order_id,
                        "order_status": issue.order_status.value,
                        "tracking_status": (
                            issue.tracking_status.value if issue.tracking_status else None
                        ),
                    }
                },
            )
        return issues
