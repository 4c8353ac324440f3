"""Shared builders for the fulfillment core tests."""

from datetime import datetime, timedelta
from decimal import Decimal

from pharmalink.schemas.dtos import Cart, CartItem

FACILITY_ID = 1
ADDRESS = "12 Ring Road Central, Accra"


class FrozenClock:
    """Callable clock the tests can move by hand."""

    def __init__(self, now: datetime):
        self.now = now

    def __call__(self) -> datetime:
        return self.now

    def advance(self, **kwargs) -> None:
        self.now = self.now + timedelta(**kwargs)


def make_cart(*lines, facility_id=FACILITY_ID, patient_id=42, discount="0"):
    """Build a cart from ``(medicine_id, quantity, unit_price)`` tuples."""
    return Cart(
        facility_id=facility_id,
        patient_id=patient_id,
        items=[
            CartItem(medicine_id=m, quantity=q, unit_price=Decimal(p))
            for m, q, p in lines
        ],
        discount=Decimal(discount),
    )


def auth_headers(role: str, user_id: int) -> dict:
    """Identity headers the upstream gateway would forward."""
    return {"X-User-Id": str(user_id), "X-User-Role": role}
