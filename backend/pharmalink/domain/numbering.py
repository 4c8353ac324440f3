"""Human-facing order and tracking numbers."""

import secrets
import string
from datetime import datetime
from typing import Optional

from .entities import utc_now

_ALPHANUMERIC = string.ascii_uppercase + string.digits


def generate_order_number(now: Optional[datetime] = None) -> str:
    """``ORD-<epoch millis>-<6 random characters>``."""
    now = now or utc_now()
    suffix = "".join(secrets.choice(_ALPHANUMERIC) for _ in range(6))
    return f"ORD-{int(now.timestamp() * 1000)}-{suffix}"


def generate_tracking_number(now: Optional[datetime] = None) -> str:
    """``TRK`` + last 8 digits of the epoch millis + 4 random characters."""
    now = now or utc_now()
    millis = str(int(now.timestamp() * 1000))[-8:]
    suffix = "".join(secrets.choice(_ALPHANUMERIC) for _ in range(4))
    return f"TRK{millis}{suffix}"
