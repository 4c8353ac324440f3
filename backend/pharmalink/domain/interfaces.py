"""
Abstract interfaces for repositories and collaborators following the
Interface Segregation Principle.

These interfaces define contracts without implementation details,
enabling dependency injection and easier testing. Repository methods
flush but never commit; the caller owns the transaction.
"""

from abc import ABC, abstractmethod
from datetime import date, datetime, time
from typing import Any, Dict, List, Optional

from .entities import (
    Actor,
    Appointment,
    Order,
    OrderStatus,
    StockAdjustment,
    StockEntry,
    TrackingEntry,
)


class IStockReader(ABC):
    """Interface for stock read operations."""

    @abstractmethod
    def get(self, facility_id: int, medicine_id: int) -> Optional[StockEntry]:
        """Get the stock entry for one (facility, medicine) pair."""
        pass

    @abstractmethod
    def list_for_facility(self, facility_id: int) -> List[StockEntry]:
        """List every stock entry held by a facility."""
        pass

    @abstractmethod
    def list_adjustments(
        self, facility_id: int, medicine_id: int
    ) -> List[StockAdjustment]:
        """List manual adjustments, newest first."""
        pass


class IStockWriter(ABC):
    """Interface for stock write operations."""

    @abstractmethod
    def add(self, entry: StockEntry) -> StockEntry:
        """Create a new stock entry."""
        pass

    @abstractmethod
    def decrement_if_available(
        self, facility_id: int, medicine_id: int, quantity: int
    ) -> Optional[int]:
        """Atomically subtract ``quantity`` when at least that much is on hand.

        Returns the new quantity, or None when the entry is missing or short.
        """
        pass

    @abstractmethod
    def increment(
        self, facility_id: int, medicine_id: int, quantity: int
    ) -> Optional[int]:
        """Atomically add ``quantity``; None when the entry is missing."""
        pass

    @abstractmethod
    def record_adjustment(self, adjustment: StockAdjustment) -> StockAdjustment:
        """Append one adjustment audit row."""
        pass


class IStockRepository(IStockReader, IStockWriter):
    """Complete stock repository interface combining read/write operations."""

    pass


class IOrderRepository(ABC):
    """Interface for order persistence."""

    @abstractmethod
    def get_by_id(self, order_id: int) -> Optional[Order]:
        pass

    @abstractmethod
    def create(self, order: Order) -> Order:
        pass

    @abstractmethod
    def compare_and_set_status(
        self,
        order_id: int,
        expected: OrderStatus,
        new: OrderStatus,
        *,
        stock_committed: bool,
        estimated_delivery: Optional[datetime] = None,
        notes: Optional[str] = None,
    ) -> bool:
        """Move the order to ``new`` only if it is still in ``expected``.

        Returns False when another writer got there first.
        """
        pass

    @abstractmethod
    def list_orders(
        self,
        patient_id: Optional[int] = None,
        facility_id: Optional[int] = None,
        status: Optional[OrderStatus] = None,
        limit: int = 50,
        offset: int = 0,
    ) -> List[Order]:
        """List orders newest first."""
        pass

    @abstractmethod
    def list_statuses(self) -> Dict[int, OrderStatus]:
        """Stored status of every order, keyed by order id."""
        pass


class ITrackingRepository(ABC):
    """Interface for the append-only tracking store."""

    @abstractmethod
    def append(self, entry: TrackingEntry) -> TrackingEntry:
        pass

    @abstractmethod
    def list_for_order(self, order_id: int) -> List[TrackingEntry]:
        """Entries for one order, oldest first."""
        pass

    @abstractmethod
    def latest_for_order(self, order_id: int) -> Optional[TrackingEntry]:
        pass

    @abstractmethod
    def list_by_tracking_number(self, tracking_number: str) -> List[TrackingEntry]:
        pass

    @abstractmethod
    def latest_statuses(self) -> Dict[int, OrderStatus]:
        """Status of the most recent entry per order."""
        pass


class IAppointmentRepository(ABC):
    """Interface for appointment persistence."""

    @abstractmethod
    def get_by_id(self, appointment_id: int) -> Optional[Appointment]:
        pass

    @abstractmethod
    def create(self, appointment: Appointment) -> Appointment:
        pass

    @abstractmethod
    def compare_and_update(
        self, appointment: Appointment, expected: Appointment
    ) -> bool:
        """Persist status/date/time/notes of ``appointment`` only if the stored
        row still matches ``expected``."""
        pass

    @abstractmethod
    def find_conflicting(
        self,
        facility_id: int,
        appointment_date: date,
        appointment_time: time,
        exclude_id: Optional[int] = None,
    ) -> Optional[Appointment]:
        """Active appointment holding the same facility slot, if any."""
        pass


class INotificationDispatcher(ABC):
    """Fire-and-forget notifications sent after a committed change."""

    @abstractmethod
    def dispatch(self, event: str, payload: Dict[str, Any]) -> None:
        pass


class IIdentityProvider(ABC):
    """Supplies the actor recorded on audit entries."""

    @abstractmethod
    def current_actor(self) -> Actor:
        pass
