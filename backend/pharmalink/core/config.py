"""
Centralized configuration module for the fulfillment core.

Every policy constant used by the ledgers and the scheduler guard is read
here once, from environment variables, so call sites never carry their own
copy of a threshold or a cutoff.
"""

import logging
import os
from dataclasses import dataclass, field
from decimal import Decimal, InvalidOperation
from zoneinfo import ZoneInfo

logger = logging.getLogger(__name__)

# ===========================
# Timezone Configuration
# ===========================


def get_app_timezone() -> ZoneInfo:
    """
    Get the application timezone from environment variable.

    Returns:
        ZoneInfo: Application timezone (defaults to UTC if not configured)

    Environment Variables:
        TZ: Timezone identifier used to interpret appointment wall-clock
            date/time values (e.g., 'Africa/Accra', 'UTC'). Default: 'UTC'
    """
    tz_name = os.getenv("TZ", "UTC")

    try:
        return ZoneInfo(tz_name)
    except Exception as e:
        logger.warning(
            f"Invalid timezone '{tz_name}' specified in TZ environment variable. "
            f"Falling back to UTC. Error: {e}"
        )
        return ZoneInfo("UTC")


APP_TZ = get_app_timezone()


# ===========================
# Numeric helpers
# ===========================


def _get_int(name: str, default: int, minimum: int = 0) -> int:
    raw = os.getenv(name)
    if raw is None or raw.strip() == "":
        return default
    try:
        value = int(raw)
    except ValueError:
        logger.warning(
            f"Invalid integer '{raw}' for {name}. Falling back to {default}.",
            extra={"context": {"setting": name}},
        )
        return default
    if value < minimum:
        logger.warning(
            f"{name}={value} is below the minimum of {minimum}. Falling back to {default}.",
            extra={"context": {"setting": name}},
        )
        return default
    return value


def _get_decimal(name: str, default: str) -> Decimal:
    raw = os.getenv(name, default)
    try:
        value = Decimal(raw)
    except (InvalidOperation, TypeError):
        logger.warning(
            f"Invalid decimal '{raw}' for {name}. Falling back to {default}.",
            extra={"context": {"setting": name}},
        )
        return Decimal(default)
    if value < 0:
        logger.warning(
            f"{name} cannot be negative. Falling back to {default}.",
            extra={"context": {"setting": name}},
        )
        return Decimal(default)
    return value


# ===========================
# Inventory Policy
# ===========================


def get_low_stock_threshold() -> int:
    """
    Quantity at or below which an in-stock entry is classified as low stock.

    Environment Variables:
        LOW_STOCK_THRESHOLD: Positive integer. Default: 10
    """
    return _get_int("LOW_STOCK_THRESHOLD", 10, minimum=1)


def get_expiry_warning_days() -> int:
    """Days ahead of expiry at which a stock entry counts as expiring soon."""
    return _get_int("EXPIRY_WARNING_DAYS", 30, minimum=0)


LOW_STOCK_THRESHOLD = get_low_stock_threshold()
EXPIRY_WARNING_DAYS = get_expiry_warning_days()


# ===========================
# Appointment Policy
# ===========================


def get_cancellation_cutoff_hours() -> int:
    """
    Minimum number of hours between now and an appointment for the patient
    to still cancel or reschedule it.

    Environment Variables:
        CANCELLATION_CUTOFF_HOURS: Non-negative integer. Default: 24
    """
    return _get_int("CANCELLATION_CUTOFF_HOURS", 24, minimum=0)


CANCELLATION_CUTOFF_HOURS = get_cancellation_cutoff_hours()


# ===========================
# Pricing Policy
# ===========================

ORDER_TAX_RATE = _get_decimal("ORDER_TAX_RATE", "0.05")
ORDER_DELIVERY_FEE = _get_decimal("ORDER_DELIVERY_FEE", "5.00")


@dataclass(frozen=True)
class PricingPolicy:
    """Tax rate and flat delivery fee applied when an order is placed."""

    tax_rate: Decimal = ORDER_TAX_RATE
    delivery_fee: Decimal = ORDER_DELIVERY_FEE


@dataclass(frozen=True)
class FulfillmentSettings:
    """Bundle of policy values injected into the services."""

    low_stock_threshold: int = LOW_STOCK_THRESHOLD
    cancellation_cutoff_hours: int = CANCELLATION_CUTOFF_HOURS
    expiry_warning_days: int = EXPIRY_WARNING_DAYS
    pricing: PricingPolicy = field(default_factory=PricingPolicy)


def get_settings() -> FulfillmentSettings:
    """Return the settings resolved from the environment at import time."""
    return FulfillmentSettings()


def log_fulfillment_config() -> None:
    """
    Log the active policy configuration.

    Should be called during application startup so the thresholds in effect
    are visible next to the first request logs.
    """
    logger.info(
        "Fulfillment configuration initialized",
        extra={
            "context": {
                "timezone": str(APP_TZ),
                "low_stock_threshold": LOW_STOCK_THRESHOLD,
                "cancellation_cutoff_hours": CANCELLATION_CUTOFF_HOURS,
                "expiry_warning_days": EXPIRY_WARNING_DAYS,
                "tax_rate": str(ORDER_TAX_RATE),
                "delivery_fee": str(ORDER_DELIVERY_FEE),
            }
        },
    )
