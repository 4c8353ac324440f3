"""
Domain entities - Pure business logic, no framework dependencies.

Orders, stock entries, tracking entries and appointments are plain
dataclasses. They validate their own invariants on construction so a
malformed aggregate never reaches a repository.
"""

from dataclasses import dataclass, field
from datetime import date, datetime, time, timedelta, timezone
from decimal import ROUND_HALF_UP, Decimal
from enum import Enum
from typing import List, Optional
from zoneinfo import ZoneInfo

CENTS = Decimal("0.01")


def to_money(value) -> Decimal:
    """Coerce a number to a two-decimal Decimal."""
    if isinstance(value, float):
        value = str(value)
    return Decimal(value).quantize(CENTS, rounding=ROUND_HALF_UP)


def utc_now() -> datetime:
    return datetime.now(timezone.utc)


def ensure_utc(value: Optional[datetime]) -> Optional[datetime]:
    """SQLite hands back naive datetimes; every stored timestamp is UTC."""
    if value is None or value.tzinfo is not None:
        return value
    return value.replace(tzinfo=timezone.utc)


class OrderStatus(str, Enum):
    PENDING = "pending"
    CONFIRMED = "confirmed"
    PREPARING = "preparing"
    OUT_FOR_DELIVERY = "out_for_delivery"
    DELIVERED = "delivered"
    CANCELLED = "cancelled"

    @property
    def is_terminal(self) -> bool:
        return self in (OrderStatus.DELIVERED, OrderStatus.CANCELLED)


class PaymentMethod(str, Enum):
    CASH = "cash"
    CARD = "card"
    MOBILE_MONEY = "mobile_money"


class StockStatus(str, Enum):
    IN_STOCK = "in_stock"
    LOW_STOCK = "low_stock"
    OUT_OF_STOCK = "out_of_stock"


class AppointmentStatus(str, Enum):
    PENDING = "pending"
    CONFIRMED = "confirmed"
    COMPLETED = "completed"
    CANCELLED = "cancelled"
    RESCHEDULED = "rescheduled"
    NO_SHOW = "no_show"


class AppointmentAction(str, Enum):
    RESCHEDULE = "reschedule"
    CANCEL = "cancel"
    CONTACT_FACILITY = "contact_facility"


ACTOR_ROLES = ("patient", "pharmacist", "doctor", "delivery", "admin", "system")


def classify_stock(quantity: int, low_stock_threshold: int) -> StockStatus:
    """Single derived stock classification used by every read path."""
    if quantity <= 0:
        return StockStatus.OUT_OF_STOCK
    if quantity <= low_stock_threshold:
        return StockStatus.LOW_STOCK
    return StockStatus.IN_STOCK


@dataclass(frozen=True)
class Actor:
    """Who performed an action, as supplied by the identity provider."""

    id: Optional[int] = None
    role: str = "system"

    def __post_init__(self):
        if self.role not in ACTOR_ROLES:
            raise ValueError(f"Unknown actor role: {self.role}")

    @classmethod
    def system(cls) -> "Actor":
        return cls(id=None, role="system")


@dataclass
class OrderLineItem:
    """One (medicine, quantity, price) entry within an order."""

    medicine_id: int = 0
    quantity: int = 0
    unit_price: Decimal = Decimal("0")
    line_total: Optional[Decimal] = None
    medicine_name: Optional[str] = None
    id: Optional[int] = None

    def __post_init__(self):
        if self.medicine_id <= 0:
            raise ValueError("Valid medicine_id is required")
        if isinstance(self.quantity, bool) or not isinstance(self.quantity, int):
            raise ValueError("Quantity must be an integer")
        if self.quantity <= 0:
            raise ValueError("Quantity must be positive")
        self.unit_price = to_money(self.unit_price)
        if self.unit_price < 0:
            raise ValueError("Unit price cannot be negative")
        expected = to_money(self.unit_price * self.quantity)
        if self.line_total is None:
            self.line_total = expected
        elif to_money(self.line_total) != expected:
            raise ValueError("Line total must equal unit price times quantity")
        else:
            self.line_total = to_money(self.line_total)


@dataclass(frozen=True)
class OrderTotals:
    subtotal: Decimal
    tax_amount: Decimal
    delivery_fee: Decimal
    discount_amount: Decimal
    final_amount: Decimal

    @classmethod
    def compute(
        cls,
        items: List[OrderLineItem],
        tax_rate: Decimal,
        delivery_fee: Decimal,
        discount: Decimal = Decimal("0"),
    ) -> "OrderTotals":
        subtotal = to_money(sum((item.line_total for item in items), Decimal("0")))
        tax_amount = to_money(subtotal * Decimal(tax_rate))
        fee = to_money(delivery_fee)
        discount_amount = to_money(discount)
        if discount_amount < 0:
            raise ValueError("Discount cannot be negative")
        final_amount = subtotal + tax_amount + fee - discount_amount
        if final_amount < 0:
            raise ValueError("Discount cannot exceed the order total")
        return cls(subtotal, tax_amount, fee, discount_amount, final_amount)


@dataclass
class Order:
    """Domain entity for one patient purchase from one facility."""

    facility_id: int = 0
    patient_id: int = 0
    items: List[OrderLineItem] = field(default_factory=list)
    status: OrderStatus = OrderStatus.PENDING
    subtotal: Decimal = Decimal("0")
    tax_amount: Decimal = Decimal("0")
    delivery_fee: Decimal = Decimal("0")
    discount_amount: Decimal = Decimal("0")
    final_amount: Decimal = Decimal("0")
    delivery_address: str = ""
    delivery_instructions: Optional[str] = None
    payment_method: PaymentMethod = PaymentMethod.CASH
    order_number: Optional[str] = None
    tracking_number: Optional[str] = None
    estimated_delivery: Optional[datetime] = None
    notes: Optional[str] = None
    stock_committed: bool = False
    id: Optional[int] = None
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None

    def __post_init__(self):
        """Validate business rules."""
        self.status = OrderStatus(self.status)
        self.payment_method = PaymentMethod(self.payment_method)
        if self.facility_id <= 0:
            raise ValueError("Valid facility_id is required")
        if self.patient_id <= 0:
            raise ValueError("Valid patient_id is required")
        if not self.items:
            raise ValueError("An order needs at least one line item")
        for name in ("subtotal", "tax_amount", "delivery_fee", "discount_amount", "final_amount"):
            setattr(self, name, to_money(getattr(self, name)))
        if not self.totals_are_consistent():
            raise ValueError(
                "Order totals are inconsistent: final_amount must equal "
                "subtotal + tax + delivery_fee - discount and subtotal must "
                "equal the sum of line totals"
            )

    @classmethod
    def with_totals(cls, items: List[OrderLineItem], totals: OrderTotals, **kwargs) -> "Order":
        return cls(
            items=items,
            subtotal=totals.subtotal,
            tax_amount=totals.tax_amount,
            delivery_fee=totals.delivery_fee,
            discount_amount=totals.discount_amount,
            final_amount=totals.final_amount,
            **kwargs,
        )

    def totals_are_consistent(self) -> bool:
        line_sum = sum((item.line_total for item in self.items), Decimal("0"))
        return (
            to_money(line_sum) == self.subtotal
            and self.final_amount
            == self.subtotal + self.tax_amount + self.delivery_fee - self.discount_amount
        )

    @property
    def item_count(self) -> int:
        return sum(item.quantity for item in self.items)


@dataclass
class StockEntry:
    """Quantity-on-hand of one medicine at one facility."""

    facility_id: int = 0
    medicine_id: int = 0
    quantity: int = 0
    unit_price: Decimal = Decimal("0")
    discount_price: Optional[Decimal] = None
    expiry_date: Optional[date] = None
    batch_number: Optional[str] = None
    medicine_name: Optional[str] = None
    id: Optional[int] = None
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None

    def __post_init__(self):
        if self.facility_id <= 0:
            raise ValueError("Valid facility_id is required")
        if self.medicine_id <= 0:
            raise ValueError("Valid medicine_id is required")
        if self.quantity < 0:
            raise ValueError("Quantity cannot be negative")
        self.unit_price = to_money(self.unit_price)
        if self.unit_price < 0:
            raise ValueError("Unit price cannot be negative")
        if self.discount_price is not None:
            self.discount_price = to_money(self.discount_price)
            if self.discount_price < 0 or self.discount_price > self.unit_price:
                raise ValueError("Discount price must be between 0 and the unit price")

    @property
    def effective_price(self) -> Decimal:
        return self.discount_price if self.discount_price is not None else self.unit_price

    @property
    def stock_value(self) -> Decimal:
        return to_money(self.effective_price * self.quantity)

    def status(self, low_stock_threshold: int) -> StockStatus:
        return classify_stock(self.quantity, low_stock_threshold)

    def expires_within(self, days: int, today: date) -> bool:
        if self.expiry_date is None:
            return False
        return today <= self.expiry_date <= today + timedelta(days=days)


@dataclass(frozen=True)
class StockAdjustment:
    """Audit row for one manual stock correction."""

    facility_id: int
    medicine_id: int
    delta: int
    reason: str
    resulting_quantity: int
    actor_id: Optional[int] = None
    actor_role: str = "system"
    id: Optional[int] = None
    created_at: Optional[datetime] = None


@dataclass(frozen=True)
class TrackingEntry:
    """One immutable timestamped status event in an order's audit trail."""

    order_id: int
    status: OrderStatus
    timestamp: datetime
    description: Optional[str] = None
    location: Optional[str] = None
    actor_id: Optional[int] = None
    actor_role: Optional[str] = None
    tracking_number: Optional[str] = None
    id: Optional[int] = None


@dataclass(frozen=True)
class ConsistencyIssue:
    """An order whose stored status disagrees with its latest tracking entry."""

    order_id: int
    order_status: OrderStatus
    tracking_status: Optional[OrderStatus]


@dataclass(frozen=True)
class InventorySummary:
    facility_id: int
    total_items: int
    total_units: int
    low_stock_items: int
    out_of_stock_items: int
    expiring_soon: int
    stock_value: Decimal


@dataclass
class Appointment:
    """Domain entity for a scheduled professional/patient meeting."""

    facility_id: int = 0
    patient_id: int = 0
    appointment_date: Optional[date] = None
    appointment_time: Optional[time] = None
    professional_id: Optional[int] = None
    status: AppointmentStatus = AppointmentStatus.PENDING
    reason: Optional[str] = None
    notes: Optional[str] = None
    id: Optional[int] = None
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None

    def __post_init__(self):
        """Validate business rules."""
        self.status = AppointmentStatus(self.status)
        if self.facility_id <= 0:
            raise ValueError("Valid facility_id is required")
        if self.patient_id <= 0:
            raise ValueError("Valid patient_id is required")
        if self.appointment_date is None or self.appointment_time is None:
            raise ValueError("Appointment date and time are required")

    def scheduled_at(self, tz: ZoneInfo) -> datetime:
        """Appointment wall-clock date/time as an aware datetime in ``tz``."""
        return datetime.combine(self.appointment_date, self.appointment_time, tzinfo=tz)
