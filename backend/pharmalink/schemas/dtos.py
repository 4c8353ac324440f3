"""
Data Transfer Objects (DTOs) and validation schemas.

Request DTOs parse raw JSON with ``from_dict`` and check their contract
with ``validate()``; both raise InvalidRequest. Response DTOs hold
JSON-ready primitives built with ``from_domain``.
"""

from dataclasses import asdict, dataclass, field
from datetime import date, datetime, time
from decimal import Decimal, InvalidOperation
from typing import Any, Dict, Iterable, List, Optional
from zoneinfo import ZoneInfo

from ..core.exceptions import InvalidRequest
from ..domain.entities import (
    Appointment,
    AppointmentAction,
    InventorySummary,
    Order,
    OrderLineItem,
    PaymentMethod,
    StockAdjustment,
    StockEntry,
    StockStatus,
    TrackingEntry,
)

MIN_ADDRESS_LENGTH = 10
MAX_ADDRESS_LENGTH = 200


# ===========================
# Parsing helpers
# ===========================


def _int(data: Dict[str, Any], key: str, required: bool = True) -> Optional[int]:
    value = data.get(key)
    if value is None or value == "":
        if required:
            raise InvalidRequest(f"{key} is required", field=key)
        return None
    if isinstance(value, bool):
        raise InvalidRequest(f"{key} must be an integer", field=key)
    if isinstance(value, float) and not value.is_integer():
        raise InvalidRequest(f"{key} must be an integer", field=key)
    try:
        return int(value)
    except (TypeError, ValueError):
        raise InvalidRequest(f"{key} must be an integer", field=key) from None


def _decimal(data: Dict[str, Any], key: str, required: bool = True) -> Optional[Decimal]:
    value = data.get(key)
    if value is None or value == "":
        if required:
            raise InvalidRequest(f"{key} is required", field=key)
        return None
    try:
        parsed = Decimal(str(value))
    except (InvalidOperation, TypeError, ValueError):
        raise InvalidRequest(f"{key} must be a number", field=key) from None
    if not parsed.is_finite():
        raise InvalidRequest(f"{key} must be a number", field=key)
    return parsed


def _date(data: Dict[str, Any], key: str, required: bool = True) -> Optional[date]:
    value = data.get(key)
    if not value:
        if required:
            raise InvalidRequest(f"{key} is required", field=key)
        return None
    try:
        return date.fromisoformat(str(value))
    except ValueError:
        raise InvalidRequest(f"{key} must be an ISO date (YYYY-MM-DD)", field=key) from None


def _time(data: Dict[str, Any], key: str) -> time:
    value = data.get(key)
    if not value:
        raise InvalidRequest(f"{key} is required", field=key)
    try:
        return time.fromisoformat(str(value))
    except ValueError:
        raise InvalidRequest(f"{key} must be an ISO time (HH:MM)", field=key) from None


def _datetime(data: Dict[str, Any], key: str) -> Optional[datetime]:
    value = data.get(key)
    if not value:
        return None
    try:
        return datetime.fromisoformat(str(value))
    except ValueError:
        raise InvalidRequest(f"{key} must be an ISO datetime", field=key) from None


def _text(data: Dict[str, Any], key: str, max_length: int) -> Optional[str]:
    value = data.get(key)
    if value is None:
        return None
    value = str(value).strip()
    if len(value) > max_length:
        raise InvalidRequest(f"{key} must be at most {max_length} characters", field=key)
    return value or None


def _iso(value: Optional[datetime]) -> Optional[str]:
    return value.isoformat() if value else None


def _money(value: Optional[Decimal]) -> Optional[str]:
    return f"{value:.2f}" if value is not None else None


def parse_payment_method(value: Any) -> PaymentMethod:
    try:
        return PaymentMethod(value)
    except ValueError:
        allowed = ", ".join(m.value for m in PaymentMethod)
        raise InvalidRequest(
            f"Payment method must be one of: {allowed}", field="payment_method"
        ) from None


def validate_delivery_address(address: Optional[str]) -> str:
    address = (address or "").strip()
    if not MIN_ADDRESS_LENGTH <= len(address) <= MAX_ADDRESS_LENGTH:
        raise InvalidRequest(
            f"Delivery address must be between {MIN_ADDRESS_LENGTH} and "
            f"{MAX_ADDRESS_LENGTH} characters",
            field="delivery_address",
        )
    return address


# ===========================
# Requests
# ===========================


@dataclass
class CartItem:
    medicine_id: int
    quantity: int
    unit_price: Decimal
    medicine_name: Optional[str] = None

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "CartItem":
        if not isinstance(data, dict):
            raise InvalidRequest("Each cart item must be an object", field="items")
        return cls(
            medicine_id=_int(data, "medicine_id"),
            quantity=_int(data, "quantity"),
            unit_price=_decimal(data, "unit_price"),
            medicine_name=_text(data, "medicine_name", 200),
        )

    def validate(self) -> None:
        if self.medicine_id <= 0:
            raise InvalidRequest("Valid medicine_id is required", field="medicine_id")
        if self.quantity <= 0:
            raise InvalidRequest(
                f"Quantity for medicine {self.medicine_id} must be a positive integer",
                field="quantity",
            )
        if self.unit_price < 0:
            raise InvalidRequest("Unit price cannot be negative", field="unit_price")

    def to_line_item(self) -> OrderLineItem:
        return OrderLineItem(
            medicine_id=self.medicine_id,
            quantity=self.quantity,
            unit_price=self.unit_price,
            medicine_name=self.medicine_name,
        )


@dataclass
class Cart:
    """Checkout cart: one patient buying from one facility."""

    facility_id: int
    patient_id: int
    items: List[CartItem] = field(default_factory=list)
    discount: Decimal = Decimal("0")

    @classmethod
    def from_dict(cls, data: Dict[str, Any], patient_id: Optional[int] = None) -> "Cart":
        raw_items = data.get("items")
        if not isinstance(raw_items, list):
            raise InvalidRequest("items must be a list", field="items")
        return cls(
            facility_id=_int(data, "facility_id"),
            patient_id=patient_id if patient_id is not None else _int(data, "patient_id"),
            items=[CartItem.from_dict(item) for item in raw_items],
            discount=_decimal(data, "discount", required=False) or Decimal("0"),
        )

    def validate(self) -> None:
        if self.facility_id <= 0:
            raise InvalidRequest("Valid facility_id is required", field="facility_id")
        if self.patient_id <= 0:
            raise InvalidRequest("Valid patient_id is required", field="patient_id")
        if not self.items:
            raise InvalidRequest("Cart is empty", field="items")
        for item in self.items:
            item.validate()
        if self.discount < 0:
            raise InvalidRequest("Discount cannot be negative", field="discount")


@dataclass
class PlaceOrderRequest:
    cart: Cart
    payment_method: PaymentMethod
    delivery_address: str
    delivery_instructions: Optional[str] = None
    notes: Optional[str] = None

    @classmethod
    def from_dict(cls, data: Dict[str, Any], patient_id: Optional[int] = None) -> "PlaceOrderRequest":
        return cls(
            cart=Cart.from_dict(data, patient_id=patient_id),
            payment_method=parse_payment_method(data.get("payment_method")),
            delivery_address=validate_delivery_address(data.get("delivery_address")),
            delivery_instructions=_text(data, "delivery_instructions", 500),
            notes=_text(data, "notes", 1000),
        )


@dataclass
class StatusUpdateRequest:
    status: str
    description: Optional[str] = None
    location: Optional[str] = None
    estimated_delivery: Optional[datetime] = None
    notes: Optional[str] = None

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "StatusUpdateRequest":
        status = data.get("status")
        if not status or not isinstance(status, str):
            raise InvalidRequest("status is required", field="status")
        return cls(
            status=status.strip(),
            description=_text(data, "description", 500),
            location=_text(data, "location", 200),
            estimated_delivery=_datetime(data, "estimated_delivery"),
            notes=_text(data, "notes", 1000),
        )


@dataclass
class StockUpdateRequest:
    delta: int
    reason: str

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "StockUpdateRequest":
        return cls(delta=_int(data, "delta"), reason=_text(data, "reason", 200) or "")

    def validate(self) -> None:
        if self.delta == 0:
            raise InvalidRequest("Delta must not be zero", field="delta")
        if not self.reason:
            raise InvalidRequest("A reason is required for stock adjustments", field="reason")


@dataclass
class StockEntryCreateRequest:
    medicine_id: int
    quantity: int
    unit_price: Decimal
    discount_price: Optional[Decimal] = None
    expiry_date: Optional[date] = None
    batch_number: Optional[str] = None
    medicine_name: Optional[str] = None

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "StockEntryCreateRequest":
        return cls(
            medicine_id=_int(data, "medicine_id"),
            quantity=_int(data, "quantity"),
            unit_price=_decimal(data, "unit_price"),
            discount_price=_decimal(data, "discount_price", required=False),
            expiry_date=_date(data, "expiry_date", required=False),
            batch_number=_text(data, "batch_number", 50),
            medicine_name=_text(data, "medicine_name", 200),
        )

    def to_domain(self, facility_id: int) -> StockEntry:
        try:
            return StockEntry(
                facility_id=facility_id,
                medicine_id=self.medicine_id,
                quantity=self.quantity,
                unit_price=self.unit_price,
                discount_price=self.discount_price,
                expiry_date=self.expiry_date,
                batch_number=self.batch_number,
                medicine_name=self.medicine_name,
            )
        except ValueError as e:
            raise InvalidRequest(str(e)) from e


@dataclass
class AppointmentCreateRequest:
    facility_id: int
    patient_id: int
    appointment_date: date
    appointment_time: time
    professional_id: Optional[int] = None
    reason: Optional[str] = None

    @classmethod
    def from_dict(
        cls, data: Dict[str, Any], patient_id: Optional[int] = None
    ) -> "AppointmentCreateRequest":
        return cls(
            facility_id=_int(data, "facility_id"),
            patient_id=patient_id if patient_id is not None else _int(data, "patient_id"),
            appointment_date=_date(data, "appointment_date"),
            appointment_time=_time(data, "appointment_time"),
            professional_id=_int(data, "professional_id", required=False),
            reason=_text(data, "reason", 500),
        )


@dataclass
class RescheduleRequest:
    appointment_date: date
    appointment_time: time

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "RescheduleRequest":
        return cls(
            appointment_date=_date(data, "appointment_date"),
            appointment_time=_time(data, "appointment_time"),
        )

    def new_datetime(self, tz: ZoneInfo) -> datetime:
        return datetime.combine(self.appointment_date, self.appointment_time, tzinfo=tz)


@dataclass
class AppointmentStatusRequest:
    status: str
    notes: Optional[str] = None

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "AppointmentStatusRequest":
        status = data.get("status")
        if not status or not isinstance(status, str):
            raise InvalidRequest("status is required", field="status")
        return cls(status=status.strip(), notes=_text(data, "notes", 1000))


# ===========================
# Responses
# ===========================


@dataclass
class OrderItemResponse:
    medicine_id: int
    medicine_name: Optional[str]
    quantity: int
    unit_price: str
    line_total: str


@dataclass
class OrderResponse:
    """DTO for order API responses."""

    id: int
    order_number: str
    tracking_number: str
    facility_id: int
    patient_id: int
    status: str
    items: List[OrderItemResponse]
    subtotal: str
    tax_amount: str
    delivery_fee: str
    discount_amount: str
    final_amount: str
    delivery_address: str
    delivery_instructions: Optional[str]
    payment_method: str
    estimated_delivery: Optional[str]
    notes: Optional[str]
    created_at: Optional[str]
    updated_at: Optional[str]

    @classmethod
    def from_domain(cls, order: Order) -> "OrderResponse":
        return cls(
            id=order.id,
            order_number=order.order_number,
            tracking_number=order.tracking_number,
            facility_id=order.facility_id,
            patient_id=order.patient_id,
            status=order.status.value,
            items=[
                OrderItemResponse(
                    medicine_id=item.medicine_id,
                    medicine_name=item.medicine_name,
                    quantity=item.quantity,
                    unit_price=_money(item.unit_price),
                    line_total=_money(item.line_total),
                )
                for item in order.items
            ],
            subtotal=_money(order.subtotal),
            tax_amount=_money(order.tax_amount),
            delivery_fee=_money(order.delivery_fee),
            discount_amount=_money(order.discount_amount),
            final_amount=_money(order.final_amount),
            delivery_address=order.delivery_address,
            delivery_instructions=order.delivery_instructions,
            payment_method=order.payment_method.value,
            estimated_delivery=_iso(order.estimated_delivery),
            notes=order.notes,
            created_at=_iso(order.created_at),
            updated_at=_iso(order.updated_at),
        )

    def to_dict(self) -> Dict[str, Any]:
        return asdict(self)


@dataclass
class TrackingEntryResponse:
    order_id: int
    status: str
    timestamp: str
    description: Optional[str]
    location: Optional[str]
    actor_id: Optional[int]
    actor_role: Optional[str]
    tracking_number: Optional[str]

    @classmethod
    def from_domain(cls, entry: TrackingEntry) -> "TrackingEntryResponse":
        return cls(
            order_id=entry.order_id,
            status=entry.status.value,
            timestamp=entry.timestamp.isoformat(),
            description=entry.description,
            location=entry.location,
            actor_id=entry.actor_id,
            actor_role=entry.actor_role,
            tracking_number=entry.tracking_number,
        )

    @staticmethod
    def list_to_dict(entries: Iterable[TrackingEntry]) -> List[Dict[str, Any]]:
        return [asdict(TrackingEntryResponse.from_domain(e)) for e in entries]


@dataclass
class StockEntryResponse:
    facility_id: int
    medicine_id: int
    medicine_name: Optional[str]
    quantity: int
    stock_status: str
    unit_price: str
    discount_price: Optional[str]
    effective_price: str
    expiry_date: Optional[str]
    batch_number: Optional[str]
    updated_at: Optional[str]

    @classmethod
    def from_domain(cls, entry: StockEntry, status: StockStatus) -> "StockEntryResponse":
        return cls(
            facility_id=entry.facility_id,
            medicine_id=entry.medicine_id,
            medicine_name=entry.medicine_name,
            quantity=entry.quantity,
            stock_status=status.value,
            unit_price=_money(entry.unit_price),
            discount_price=_money(entry.discount_price),
            effective_price=_money(entry.effective_price),
            expiry_date=entry.expiry_date.isoformat() if entry.expiry_date else None,
            batch_number=entry.batch_number,
            updated_at=_iso(entry.updated_at or entry.created_at),
        )

    def to_dict(self) -> Dict[str, Any]:
        return asdict(self)


@dataclass
class StockAdjustmentResponse:
    delta: int
    reason: str
    resulting_quantity: int
    actor_id: Optional[int]
    actor_role: str
    created_at: Optional[str]

    @classmethod
    def from_domain(cls, adjustment: StockAdjustment) -> "StockAdjustmentResponse":
        return cls(
            delta=adjustment.delta,
            reason=adjustment.reason,
            resulting_quantity=adjustment.resulting_quantity,
            actor_id=adjustment.actor_id,
            actor_role=adjustment.actor_role,
            created_at=_iso(adjustment.created_at),
        )

    def to_dict(self) -> Dict[str, Any]:
        return asdict(self)


def inventory_summary_to_dict(summary: InventorySummary) -> Dict[str, Any]:
    data = asdict(summary)
    data["stock_value"] = _money(summary.stock_value)
    return data


@dataclass
class AppointmentResponse:
    """DTO for appointment API responses."""

    id: int
    facility_id: int
    patient_id: int
    professional_id: Optional[int]
    appointment_date: str
    appointment_time: str
    status: str
    reason: Optional[str]
    notes: Optional[str]
    allowed_actions: Optional[List[str]] = None

    @classmethod
    def from_domain(
        cls,
        appointment: Appointment,
        allowed_actions: Optional[Iterable[AppointmentAction]] = None,
    ) -> "AppointmentResponse":
        return cls(
            id=appointment.id,
            facility_id=appointment.facility_id,
            patient_id=appointment.patient_id,
            professional_id=appointment.professional_id,
            appointment_date=appointment.appointment_date.isoformat(),
            appointment_time=appointment.appointment_time.strftime("%H:%M"),
            status=appointment.status.value,
            reason=appointment.reason,
            notes=appointment.notes,
            allowed_actions=(
                sorted(a.value for a in allowed_actions)
                if allowed_actions is not None
                else None
            ),
        )

    def to_dict(self) -> Dict[str, Any]:
        data = asdict(self)
        if data["allowed_actions"] is None:
            del data["allowed_actions"]
        return data


@dataclass
class ErrorResponse:
    """DTO for error responses."""

    code: str
    message: str
    details: Optional[Dict[str, Any]] = None

    @classmethod
    def validation_error(cls, message: str) -> "ErrorResponse":
        return cls(code="validation_error", message=message)

    @classmethod
    def not_found(cls, resource: str) -> "ErrorResponse":
        return cls(code="not_found", message=f"{resource} not found")

    @classmethod
    def server_error(cls, message: str = "Internal server error") -> "ErrorResponse":
        return cls(code="server_error", message=message)

    def to_dict(self) -> Dict[str, Any]:
        return asdict(self)
