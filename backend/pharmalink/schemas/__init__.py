from .dtos import (
    AppointmentCreateRequest,
    AppointmentResponse,
    AppointmentStatusRequest,
    Cart,
    CartItem,
    ErrorResponse,
    OrderResponse,
    PlaceOrderRequest,
    RescheduleRequest,
    StatusUpdateRequest,
    StockEntryCreateRequest,
    StockEntryResponse,
    StockUpdateRequest,
    TrackingEntryResponse,
)

__all__ = [
    "AppointmentCreateRequest",
    "AppointmentResponse",
    "AppointmentStatusRequest",
    "Cart",
    "CartItem",
    "ErrorResponse",
    "OrderResponse",
    "PlaceOrderRequest",
    "RescheduleRequest",
    "StatusUpdateRequest",
    "StockEntryCreateRequest",
    "StockEntryResponse",
    "StockUpdateRequest",
    "TrackingEntryResponse",
]
