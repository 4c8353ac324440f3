"""
Request identity for the HTTP surface.

Authentication itself lives outside the fulfillment core: an upstream
gateway vouches for the caller and forwards ``X-User-Id`` and
``X-User-Role``. Flask-Login's request loader turns those headers into an
``AuthenticatedActor`` so controllers can use ``current_user`` and
``login_required`` as usual.
"""

from functools import wraps
from typing import Optional

from flask import Flask
from flask_login import LoginManager, current_user

from ..domain.entities import ACTOR_ROLES, Actor
from ..domain.interfaces import IIdentityProvider
from .api_utils import api_response
from .logging_config import get_logger

logger = get_logger(__name__)

login_manager = LoginManager()


# Explicitly implement Flask-Login interface without inheriting UserMixin
class AuthenticatedActor:
    """Flask-Login user built from gateway headers."""

    def __init__(self, user_id: int, role: str):
        self.id = user_id
        self.role = role

    @property
    def is_active(self) -> bool:
        return True

    @property
    def is_authenticated(self) -> bool:
        return True

    @property
    def is_anonymous(self) -> bool:
        return False

    def get_id(self) -> str:
        return str(self.id)

    def to_actor(self) -> Actor:
        return Actor(id=self.id, role=self.role)


@login_manager.request_loader
def load_actor_from_request(request) -> Optional[AuthenticatedActor]:
    """Load the caller from X-User-Id / X-User-Role headers."""
    raw_id = request.headers.get("X-User-Id")
    role = (request.headers.get("X-User-Role") or "patient").strip().lower()
    if not raw_id:
        return None
    try:
        user_id = int(raw_id)
    except ValueError:
        logger.warning(
            "Rejected non-numeric X-User-Id header",
            extra={"context": {"x_user_id": raw_id[:32]}},
        )
        return None
    if user_id <= 0 or role not in ACTOR_ROLES or role == "system":
        logger.warning(
            "Rejected identity headers",
            extra={"context": {"user_id": user_id, "role": role}},
        )
        return None
    return AuthenticatedActor(user_id, role)


@login_manager.unauthorized_handler
def unauthorized():
    """Return 401 JSON instead of redirecting to a login page."""
    return api_response(
        False,
        "Authentication required",
        status_code=401,
        error={"code": "unauthorized", "message": "Authentication required"},
    )


def init_identity(app: Flask) -> None:
    login_manager.init_app(app)


def current_actor() -> Actor:
    """Actor for the current request; system actor when unauthenticated."""
    if current_user and getattr(current_user, "is_authenticated", False):
        return current_user.to_actor()
    return Actor.system()


def require_role(*roles: str):
    """Decorator: the caller must be authenticated with one of ``roles``."""

    def decorator(f):
        @wraps(f)
        def decorated_function(*args, **kwargs):
            if not (current_user and current_user.is_authenticated):
                return login_manager.unauthorized()
            if roles and current_user.role not in roles:
                logger.warning(
                    "Forbidden: role not permitted",
                    extra={
                        "context": {
                            "user_id": current_user.id,
                            "role": current_user.role,
                            "allowed": list(roles),
                            "endpoint": f.__name__,
                        }
                    },
                )
                return api_response(
                    False,
                    "Forbidden",
                    status_code=403,
                    error={"code": "forbidden", "message": "Role not permitted"},
                )
            return f(*args, **kwargs)

        return decorated_function

    return decorator


class FlaskIdentityProvider(IIdentityProvider):
    """IIdentityProvider backed by the current Flask-Login user."""

    def current_actor(self) -> Actor:
        return current_actor()
