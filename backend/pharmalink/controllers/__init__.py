from .appointment_controller import appointment_bp
from .inventory_controller import inventory_bp
from .orders_controller import orders_bp, tracking_bp

__all__ = ["appointment_bp", "inventory_bp", "orders_bp", "tracking_bp"]
