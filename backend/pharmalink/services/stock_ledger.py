"""
Stock Ledger - per-facility, per-medicine quantity-on-hand.

Every decrement is a conditional update executed by the repository, so
the non-negative invariant holds no matter how many callers race on the
same (facility, medicine) pair. Multi-line commits rely on the caller's
transaction: when any line is short the ledger raises and the caller
rolls back the lines that did succeed.
"""

from collections import OrderedDict
from datetime import date
from decimal import Decimal
from typing import Dict, Iterable, List, Optional

from ..core.config import EXPIRY_WARNING_DAYS, LOW_STOCK_THRESHOLD
from ..core.exceptions import InsufficientStock, InvalidRequest, NotFound, Shortage
from ..core.logging_config import get_logger
from ..domain.entities import (
    Actor,
    InventorySummary,
    OrderLineItem,
    StockAdjustment,
    StockEntry,
    StockStatus,
    classify_stock,
    to_money,
    utc_now,
)
from ..domain.interfaces import IStockRepository

logger = get_logger(__name__)

MAX_REASON_LENGTH = 200


def _stock_key(facility_id: int, medicine_id: int) -> str:
    return f"facility {facility_id} / medicine {medicine_id}"


class StockLedger:
    def __init__(
        self,
        repository: IStockRepository,
        low_stock_threshold: int = LOW_STOCK_THRESHOLD,
        expiry_warning_days: int = EXPIRY_WARNING_DAYS,
    ):
        self.repository = repository
        self.low_stock_threshold = low_stock_threshold
        self.expiry_warning_days = expiry_warning_days

    # ----- reads -------------------------------------------------------

    def get_entry(self, facility_id: int, medicine_id: int) -> StockEntry:
        entry = self.repository.get(facility_id, medicine_id)
        if entry is None:
            raise NotFound("stock entry", _stock_key(facility_id, medicine_id))
        return entry

    def get_quantity(self, facility_id: int, medicine_id: int) -> int:
        """Current quantity; no side effects."""
        return self.get_entry(facility_id, medicine_id).quantity

    def classify(self, quantity: int) -> StockStatus:
        return classify_stock(quantity, self.low_stock_threshold)

    def stock_status(self, facility_id: int, medicine_id: int) -> StockStatus:
        return self.classify(self.get_quantity(facility_id, medicine_id))

    def list_inventory(
        self, facility_id: int, low_stock_only: bool = False
    ) -> List[StockEntry]:
        entries = self.repository.list_for_facility(facility_id)
        if low_stock_only:
            entries = [
                e for e in entries if self.classify(e.quantity) != StockStatus.IN_STOCK
            ]
        return entries

    def summarize(self, facility_id: int, today: Optional[date] = None) -> InventorySummary:
        today = today or utc_now().date()
        entries = self.repository.list_for_facility(facility_id)
        statuses = [self.classify(e.quantity) for e in entries]
        return InventorySummary(
            facility_id=facility_id,
            total_items=len(entries),
            total_units=sum(e.quantity for e in entries),
            low_stock_items=statuses.count(StockStatus.LOW_STOCK),
            out_of_stock_items=statuses.count(StockStatus.OUT_OF_STOCK),
            expiring_soon=sum(
                1 for e in entries if e.expires_within(self.expiry_warning_days, today)
            ),
            stock_value=to_money(sum((e.stock_value for e in entries), Decimal("0"))),
        )

    def adjustment_history(
        self, facility_id: int, medicine_id: int
    ) -> List[StockAdjustment]:
        self.get_entry(facility_id, medicine_id)
        return self.repository.list_adjustments(facility_id, medicine_id)

    # ----- writes ------------------------------------------------------

    def add_entry(self, entry: StockEntry) -> StockEntry:
        if self.repository.get(entry.facility_id, entry.medicine_id) is not None:
            raise InvalidRequest(
                f"Medicine {entry.medicine_id} is already stocked at facility "
                f"{entry.facility_id}; adjust its quantity instead",
                field="medicine_id",
            )
        created = self.repository.add(entry)
        logger.info(
            "Stock entry added",
            extra={
                "context": {
                    "facility_id": created.facility_id,
                    "medicine_id": created.medicine_id,
                    "quantity": created.quantity,
                }
            },
        )
        return created

    def reserve_and_decrement(
        self, facility_id: int, medicine_id: int, quantity: int
    ) -> int:
        """Take ``quantity`` units or fail with InsufficientStock, leaving stock unchanged."""
        _require_positive_quantity(quantity)
        new_quantity = self.repository.decrement_if_available(
            facility_id, medicine_id, quantity
        )
        if new_quantity is None:
            available = self.get_quantity(facility_id, medicine_id)
            shortage = Shortage(medicine_id, quantity, available)
            logger.warning(
                "Insufficient stock",
                extra={"context": {"facility_id": facility_id, **shortage.to_dict()}},
            )
            raise InsufficientStock([shortage])
        return new_quantity

    def commit_line_items(
        self, facility_id: int, items: Iterable[OrderLineItem]
    ) -> Dict[int, int]:
        """Decrement every line item; raise naming all short medicines.

        Lines for the same medicine are summed first. Returns the new
        quantity per medicine.
        """
        totals = _aggregate(items)
        shortages: List[Shortage] = []
        remaining: Dict[int, int] = {}
        for medicine_id, quantity in totals.items():
            new_quantity = self.repository.decrement_if_available(
                facility_id, medicine_id, quantity
            )
            if new_quantity is not None:
                remaining[medicine_id] = new_quantity
                continue
            entry = self.repository.get(facility_id, medicine_id)
            shortages.append(
                Shortage(medicine_id, quantity, entry.quantity if entry else 0)
            )
        if shortages:
            logger.warning(
                "Stock commit rejected",
                extra={
                    "context": {
                        "facility_id": facility_id,
                        "shortages": [s.to_dict() for s in shortages],
                    }
                },
            )
            raise InsufficientStock(shortages)
        return remaining

    def release_line_items(
        self, facility_id: int, items: Iterable[OrderLineItem]
    ) -> Dict[int, int]:
        """Hand committed units back to stock."""
        restored: Dict[int, int] = {}
        for medicine_id, quantity in _aggregate(items).items():
            new_quantity = self.repository.increment(facility_id, medicine_id, quantity)
            if new_quantity is None:
                raise NotFound("stock entry", _stock_key(facility_id, medicine_id))
            restored[medicine_id] = new_quantity
        return restored

    def adjust_stock(
        self,
        facility_id: int,
        medicine_id: int,
        delta: int,
        reason: str,
        actor: Optional[Actor] = None,
    ) -> StockEntry:
        """Manual correction (restock, correction, write-off)."""
        if isinstance(delta, bool) or not isinstance(delta, int):
            raise InvalidRequest("Delta must be an integer", field="delta")
        if delta == 0:
            raise InvalidRequest("Delta must not be zero", field="delta")
        reason = (reason or "").strip()
        if not reason:
            raise InvalidRequest("A reason is required for stock adjustments", field="reason")
        if len(reason) > MAX_REASON_LENGTH:
            raise InvalidRequest(
                f"Reason must be at most {MAX_REASON_LENGTH} characters", field="reason"
            )
        actor = actor or Actor.system()

        if delta < 0:
            new_quantity = self.reserve_and_decrement(facility_id, medicine_id, -delta)
        else:
            new_quantity = self.repository.increment(facility_id, medicine_id, delta)
            if new_quantity is None:
                raise NotFound("stock entry", _stock_key(facility_id, medicine_id))

        self.repository.record_adjustment(
            StockAdjustment(
                facility_id=facility_id,
                medicine_id=medicine_id,
                delta=delta,
                reason=reason,
                resulting_quantity=new_quantity,
                actor_id=actor.id,
                actor_role=actor.role,
            )
        )
        logger.info(
            "Stock adjusted",
            extra={
                "context": {
                    "facility_id": facility_id,
                    "medicine_id": medicine_id,
                    "delta": delta,
                    "quantity": new_quantity,
                    "reason": reason,
                    "actor_id": actor.id,
                }
            },
        )
        return self.get_entry(facility_id, medicine_id)


def _require_positive_quantity(quantity: int) -> None:
    if isinstance(quantity, bool) or not isinstance(quantity, int) or quantity <= 0:
        raise InvalidRequest("Quantity must be a positive integer", field="quantity")


def _aggregate(items: Iterable[OrderLineItem]) -> "OrderedDict[int, int]":
    """Sum quantities per medicine, keyed in ascending medicine id.

    Stock rows are always updated in this order, so two orders touching
    the same medicines cannot lock each other's rows in opposite order.
    """
    totals: Dict[int, int] = {}
    for item in items:
        totals[item.medicine_id] = totals.get(item.medicine_id, 0) + item.quantity
    return OrderedDict(sorted(totals.items()))
