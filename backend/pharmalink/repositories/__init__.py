from .appointment_repository import AppointmentRepository
from .order_repository import OrderRepository
from .stock_repository import StockRepository
from .tracking_repository import TrackingRepository

__all__ = [
    "AppointmentRepository",
    "OrderRepository",
    "StockRepository",
    "TrackingRepository",
]
