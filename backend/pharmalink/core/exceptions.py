"""
Custom exceptions for the fulfillment core.
Centralized error taxonomy: every rejected action names the invariant that
blocked it through a stable ``code`` and a human-readable ``message``.
"""

from dataclasses import dataclass
from datetime import datetime
from typing import Any, Dict, Iterable, List, Optional


class FulfillmentError(Exception):
    """Base class for every failure surfaced by the core."""

    code = "fulfillment_error"

    def __init__(self, message: str, details: Optional[Dict[str, Any]] = None):
        super().__init__(message)
        self.message = message
        self.details = details or {}

    def to_dict(self) -> Dict[str, Any]:
        return {"code": self.code, "message": self.message, "details": self.details}


class InvalidTransition(FulfillmentError):
    """Requested status is not reachable from the current status."""

    code = "invalid_transition"

    def __init__(self, current: str, requested: str, entity: str = "order"):
        self.current = str(current)
        self.requested = str(requested)
        self.entity = entity
        super().__init__(
            f"Cannot move {entity} from '{self.current}' to '{self.requested}'",
            {"entity": entity, "current": self.current, "requested": self.requested},
        )


@dataclass(frozen=True)
class Shortage:
    """One medicine that cannot be fulfilled at its current quantity."""

    medicine_id: int
    requested: int
    available: int

    @property
    def shortfall(self) -> int:
        return self.requested - self.available

    def to_dict(self) -> Dict[str, int]:
        return {
            "medicine_id": self.medicine_id,
            "requested": self.requested,
            "available": self.available,
            "shortfall": self.shortfall,
        }


class InsufficientStock(FulfillmentError):
    """One or more medicines are short at the facility."""

    code = "insufficient_stock"

    def __init__(self, shortages: Iterable[Shortage]):
        self.shortages: List[Shortage] = list(shortages)
        parts = [
            f"medicine {s.medicine_id} (requested {s.requested}, "
            f"available {s.available}, short by {s.shortfall})"
            for s in self.shortages
        ]
        super().__init__(
            "Insufficient stock for " + "; ".join(parts),
            {"shortages": [s.to_dict() for s in self.shortages]},
        )

    @property
    def medicine_ids(self) -> List[int]:
        return [s.medicine_id for s in self.shortages]


class WithinCutoffWindow(FulfillmentError):
    """Appointment action requested inside the cancellation cutoff window."""

    code = "within_cutoff_window"

    def __init__(self, action: str, hours_remaining: float, cutoff_hours: int):
        self.action = action
        self.hours_remaining = round(hours_remaining, 2)
        self.cutoff_hours = cutoff_hours
        if hours_remaining <= 0:
            message = f"Cannot {action}: appointment time has already passed"
        else:
            message = (
                f"Cannot {action}: appointment is in {hours_remaining:.1f} hours, "
                f"minimum is {cutoff_hours}"
            )
        super().__init__(
            message,
            {
                "action": action,
                "hours_remaining": self.hours_remaining,
                "cutoff_hours": cutoff_hours,
            },
        )


class NotFound(FulfillmentError):
    """Referenced order, appointment or stock entry does not exist."""

    code = "not_found"

    def __init__(self, resource: str, identifier: Any):
        self.resource = resource
        self.identifier = identifier
        super().__init__(
            f"{resource.capitalize()} {identifier} not found",
            {"resource": resource, "identifier": str(identifier)},
        )


class Forbidden(FulfillmentError):
    """The actor may not act on a record that belongs to another patient."""

    code = "forbidden"

    def __init__(self, resource: str, identifier: Any):
        self.resource = resource
        self.identifier = identifier
        super().__init__(
            f"Not your {resource}",
            {"resource": resource, "identifier": str(identifier)},
        )


class PersistenceFailure(FulfillmentError):
    """The store could not complete an atomic operation.

    Never retried inside the core: the caller must re-fetch state before
    trying again.
    """

    code = "persistence_failure"

    def __init__(self, operation: str, detail: str = ""):
        self.operation = operation
        self.detail = detail
        super().__init__(
            f"Could not complete {operation}; re-fetch current state before retrying",
            {"operation": operation, "detail": detail},
        )


class InvalidRequest(FulfillmentError, ValueError):
    """Request data failed validation before any state was touched."""

    code = "validation_error"

    def __init__(self, message: str, field: Optional[str] = None):
        self.field = field
        super().__init__(message, {"field": field} if field else {})


class SlotUnavailable(FulfillmentError):
    """Another active appointment already holds the requested slot."""

    code = "slot_unavailable"

    def __init__(self, facility_id: int, when: datetime):
        self.facility_id = facility_id
        self.when = when
        super().__init__(
            f"Facility {facility_id} already has an appointment at "
            f"{when.strftime('%Y-%m-%d %H:%M')}",
            {"facility_id": facility_id, "when": when.isoformat()},
        )
