"""
Order lifecycle rules.

Strict forward progression ``pending -> confirmed -> preparing ->
out_for_delivery -> delivered``; ``cancelled`` is reachable only from
``pending`` or ``confirmed``. Nothing here touches storage.
"""

from typing import Dict, FrozenSet, Optional, Union

from ..core.exceptions import InvalidTransition
from .entities import OrderStatus

ORDER_TRANSITIONS: Dict[OrderStatus, FrozenSet[OrderStatus]] = {
    OrderStatus.PENDING: frozenset({OrderStatus.CONFIRMED, OrderStatus.CANCELLED}),
    OrderStatus.CONFIRMED: frozenset({OrderStatus.PREPARING, OrderStatus.CANCELLED}),
    OrderStatus.PREPARING: frozenset({OrderStatus.OUT_FOR_DELIVERY}),
    OrderStatus.OUT_FOR_DELIVERY: frozenset({OrderStatus.DELIVERED}),
    OrderStatus.DELIVERED: frozenset(),
    OrderStatus.CANCELLED: frozenset(),
}

# Statuses at which line-item stock must already be committed
STOCK_COMMITTING_STATUSES = frozenset(
    {
        OrderStatus.CONFIRMED,
        OrderStatus.PREPARING,
        OrderStatus.OUT_FOR_DELIVERY,
        OrderStatus.DELIVERED,
    }
)

STATUS_DESCRIPTIONS: Dict[OrderStatus, str] = {
    OrderStatus.PENDING: "Order has been placed and is awaiting confirmation",
    OrderStatus.CONFIRMED: "Order has been confirmed and is being processed",
    OrderStatus.PREPARING: "Order is being prepared for delivery",
    OrderStatus.OUT_FOR_DELIVERY: "Order is out for delivery",
    OrderStatus.DELIVERED: "Order has been successfully delivered",
    OrderStatus.CANCELLED: "Order has been cancelled",
}


def parse_status(value: Union[str, OrderStatus]) -> OrderStatus:
    """Coerce a raw value to OrderStatus; unknown values are an invalid transition target."""
    try:
        return OrderStatus(value)
    except ValueError:
        raise InvalidTransition("unknown", str(value)) from None


def allowed_transitions(current: OrderStatus) -> FrozenSet[OrderStatus]:
    return ORDER_TRANSITIONS[OrderStatus(current)]


def can_transition(current: OrderStatus, requested: OrderStatus) -> bool:
    return OrderStatus(requested) in allowed_transitions(current)


def validate_transition(current: OrderStatus, requested: OrderStatus) -> None:
    """Raise InvalidTransition naming both states when ``requested`` is not legal."""
    if not can_transition(current, requested):
        raise InvalidTransition(OrderStatus(current).value, OrderStatus(requested).value)


def requires_stock_commit(requested: OrderStatus, stock_committed: bool) -> bool:
    """True the first time an order reaches a status that needs stock."""
    return not stock_committed and OrderStatus(requested) in STOCK_COMMITTING_STATUSES


def releases_stock(requested: OrderStatus, stock_committed: bool) -> bool:
    """Cancelling an order whose stock was committed hands the units back."""
    return stock_committed and OrderStatus(requested) == OrderStatus.CANCELLED


def describe_status(status: OrderStatus, description: Optional[str] = None) -> str:
    if description and description.strip():
        return description.strip()
    return STATUS_DESCRIPTIONS[OrderStatus(status)]
