import os
import sys

from flask import request
from flask_limiter import Limiter
from flask_limiter.util import get_remote_address


def _under_test() -> bool:
    if os.getenv("TESTING", "").lower().strip() in ("true", "1", "yes"):
        return True
    return "pytest" in sys.modules or bool(os.getenv("PYTEST_CURRENT_TEST"))


def rate_limiting_enabled() -> bool:
    """RATE_LIMIT_ENABLED=0 switches limits off, but only under test runs."""
    return not (_under_test() and os.getenv("RATE_LIMIT_ENABLED", "1") == "0")


def actor_or_address() -> str:
    """Bucket by gateway user id so staff behind one NAT don't share a limit."""
    user_id = request.headers.get("X-User-Id", "").strip()
    if user_id.isdigit():
        return f"user:{user_id}"
    return get_remote_address()


# Shared by every blueprint; create_app turns it off for test runs
limiter = Limiter(
    key_func=actor_or_address,
    default_limits=["300 per hour", "60 per minute"],
    storage_uri=os.getenv("LIMITER_STORAGE_URI", "memory://"),
)
