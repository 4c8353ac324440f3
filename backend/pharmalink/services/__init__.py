from .appointment_guard import AppointmentSchedulerGuard
from .fulfillment_orchestrator import FulfillmentOrchestrator
from .notification_dispatcher import LoggingNotificationDispatcher
from .order_state_machine import OrderStateMachine
from .stock_ledger import StockLedger
from .tracking_ledger import Timeline, TrackingLedger

__all__ = [
    "AppointmentSchedulerGuard",
    "FulfillmentOrchestrator",
    "LoggingNotificationDispatcher",
    "OrderStateMachine",
    "StockLedger",
    "Timeline",
    "TrackingLedger",
]
