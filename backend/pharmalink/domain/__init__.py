"""
Domain package - Pure business logic layer.

This package contains:
- entities.py: Domain entities with business logic
- order_rules.py / appointment_rules.py: Lifecycle transition tables
- interfaces.py: Repository and collaborator contracts
"""

from .entities import (
    Actor,
    Appointment,
    AppointmentAction,
    AppointmentStatus,
    InventorySummary,
    Order,
    OrderLineItem,
    OrderStatus,
    OrderTotals,
    PaymentMethod,
    StockAdjustment,
    StockEntry,
    StockStatus,
    TrackingEntry,
    classify_stock,
)
from .interfaces import (
    IAppointmentRepository,
    IIdentityProvider,
    INotificationDispatcher,
    IOrderRepository,
    IStockReader,
    IStockRepository,
    IStockWriter,
    ITrackingRepository,
)

__all__ = [
    # Domain entities
    "Actor",
    "Appointment",
    "AppointmentAction",
    "AppointmentStatus",
    "InventorySummary",
    "Order",
    "OrderLineItem",
    "OrderStatus",
    "OrderTotals",
    "PaymentMethod",
    "StockAdjustment",
    "StockEntry",
    "StockStatus",
    "TrackingEntry",
    "classify_stock",
    # Repository and collaborator interfaces
    "IStockReader",
    "IStockWriter",
    "IStockRepository",
    "IOrderRepository",
    "ITrackingRepository",
    "IAppointmentRepository",
    "INotificationDispatcher",
    "IIdentityProvider",
]
