"""
Appointment lifecycle rules.

``completed``, ``cancelled`` and ``no_show`` are terminal. A rescheduled
appointment stays active and may be rescheduled again.
"""

from typing import Dict, FrozenSet, Union

from ..core.exceptions import InvalidTransition
from .entities import AppointmentStatus

APPOINTMENT_TRANSITIONS: Dict[AppointmentStatus, FrozenSet[AppointmentStatus]] = {
    AppointmentStatus.PENDING: frozenset(
        {
            AppointmentStatus.CONFIRMED,
            AppointmentStatus.CANCELLED,
            AppointmentStatus.RESCHEDULED,
        }
    ),
    AppointmentStatus.CONFIRMED: frozenset(
        {
            AppointmentStatus.COMPLETED,
            AppointmentStatus.CANCELLED,
            AppointmentStatus.RESCHEDULED,
            AppointmentStatus.NO_SHOW,
        }
    ),
    AppointmentStatus.RESCHEDULED: frozenset(
        {
            AppointmentStatus.CONFIRMED,
            AppointmentStatus.CANCELLED,
            AppointmentStatus.RESCHEDULED,
            AppointmentStatus.COMPLETED,
            AppointmentStatus.NO_SHOW,
        }
    ),
    AppointmentStatus.COMPLETED: frozenset(),
    AppointmentStatus.CANCELLED: frozenset(),
    AppointmentStatus.NO_SHOW: frozenset(),
}

# Statuses that hold a facility time slot
ACTIVE_APPOINTMENT_STATUSES = frozenset(
    {
        AppointmentStatus.PENDING,
        AppointmentStatus.CONFIRMED,
        AppointmentStatus.RESCHEDULED,
    }
)


def parse_appointment_status(value: Union[str, AppointmentStatus]) -> AppointmentStatus:
    try:
        return AppointmentStatus(value)
    except ValueError:
        raise InvalidTransition("unknown", str(value), entity="appointment") from None


def can_transition_appointment(
    current: AppointmentStatus, requested: AppointmentStatus
) -> bool:
    return AppointmentStatus(requested) in APPOINTMENT_TRANSITIONS[AppointmentStatus(current)]


def validate_appointment_transition(
    current: AppointmentStatus, requested: AppointmentStatus
) -> None:
    if not can_transition_appointment(current, requested):
        raise InvalidTransition(
            AppointmentStatus(current).value,
            AppointmentStatus(requested).value,
            entity="appointment",
        )
