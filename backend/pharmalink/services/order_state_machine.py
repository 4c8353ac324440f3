"""
Order State Machine service.

Validates a requested status against the lifecycle table, claims the
order with a compare-and-swap on its current status, applies stock
effects and appends the tracking entry. All of it runs inside the
caller's transaction: any raise means nothing is persisted.
"""

from datetime import datetime
from typing import Optional, Tuple, Union

from ..core.exceptions import InvalidTransition, NotFound
from ..core.logging_config import get_logger
from ..domain.entities import Actor, Order, OrderStatus, TrackingEntry
from ..domain.interfaces import IOrderRepository
from ..domain.order_rules import (
    parse_status,
    releases_stock,
    requires_stock_commit,
    validate_transition,
)
from .stock_ledger import StockLedger
from .tracking_ledger import TrackingLedger

logger = get_logger(__name__)


class OrderStateMachine:
    def __init__(
        self,
        orders: IOrderRepository,
        stock: StockLedger,
        tracking: TrackingLedger,
    ):
        self.orders = orders
        self.stock = stock
        self.tracking = tracking

    def get_order(self, order_id: int) -> Order:
        order = self.orders.get_by_id(order_id)
        if order is None:
            raise NotFound("order", order_id)
        return order

    def apply_transition(
        self,
        order_id: int,
        requested: Union[str, OrderStatus],
        actor: Actor,
        description: Optional[str] = None,
        location: Optional[str] = None,
        estimated_delivery: Optional[datetime] = None,
        notes: Optional[str] = None,
    ) -> Tuple[Order, TrackingEntry]:
        requested = parse_status(requested)
        order = self.get_order(order_id)
        try:
            validate_transition(order.status, requested)
        except InvalidTransition:
            logger.warning(
                "Order transition rejected",
                extra={
                    "context": {
                        "order_id": order_id,
                        "current": order.status.value,
                        "requested": requested.value,
                        "actor_id": actor.id,
                    }
                },
            )
            raise

        commit = requires_stock_commit(requested, order.stock_committed)
        release = releases_stock(requested, order.stock_committed)
        stock_committed = (order.stock_committed or commit) and not release

        # Claim the order first so a losing racer fails before touching stock
        claimed = self.orders.compare_and_set_status(
            order_id,
            order.status,
            requested,
            stock_committed=stock_committed,
            estimated_delivery=estimated_delivery,
            notes=notes,
        )
        if not claimed:
            current = self.get_order(order_id)
            logger.warning(
                "Order changed concurrently",
                extra={
                    "context": {
                        "order_id": order_id,
                        "expected": order.status.value,
                        "current": current.status.value,
                        "requested": requested.value,
                    }
                },
            )
            raise InvalidTransition(current.status.value, requested.value)

        if commit:
            self.stock.commit_line_items(order.facility_id, order.items)
        if release:
            self.stock.release_line_items(order.facility_id, order.items)

        entry = self.tracking.append_entry(
            order_id,
            requested,
            description=description,
            location=location,
            actor=actor,
            tracking_number=order.tracking_number,
        )
        logger.info(
            "Order transition applied",
            extra={
                "context": {
                    "order_id": order_id,
                    "from": order.status.value,
                    "to": requested.value,
                    "stock_committed": commit,
                    "stock_released": release,
                    "actor_id": actor.id,
                    "actor_role": actor.role,
                }
            },
        )
        return self.get_order(order_id), entry
