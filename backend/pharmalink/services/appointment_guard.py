"""
Appointment Scheduler Guard.

Cancel and reschedule are offered only while the appointment is at least
the cutoff away; contacting the facility is always offered.
"""

from datetime import datetime, timedelta, timezone
from typing import FrozenSet, Optional, Union
from zoneinfo import ZoneInfo

from ..core.config import APP_TZ, CANCELLATION_CUTOFF_HOURS
from ..core.exceptions import WithinCutoffWindow
from ..core.logging_config import get_logger
from ..domain.appointment_rules import (
    can_transition_appointment,
    validate_appointment_transition,
)
from ..domain.entities import Appointment, AppointmentAction, AppointmentStatus

logger = get_logger(__name__)

_TARGET_STATUS = {
    AppointmentAction.CANCEL: AppointmentStatus.CANCELLED,
    AppointmentAction.RESCHEDULE: AppointmentStatus.RESCHEDULED,
}


class AppointmentSchedulerGuard:
    def __init__(
        self,
        cutoff_hours: int = CANCELLATION_CUTOFF_HOURS,
        tz: ZoneInfo = APP_TZ,
    ):
        self.cutoff_hours = cutoff_hours
        self.cutoff = timedelta(hours=cutoff_hours)
        self.tz = tz

    def time_until(self, appointment: Appointment, now: datetime) -> timedelta:
        return appointment.scheduled_at(self.tz) - _aware(now)

    def hours_until(self, appointment: Appointment, now: datetime) -> float:
        return self.time_until(appointment, now).total_seconds() / 3600

    def outside_cutoff(self, appointment: Appointment, now: datetime) -> bool:
        return self.time_until(appointment, now) >= self.cutoff

    def get_allowed_actions(
        self, appointment: Appointment, now: datetime
    ) -> FrozenSet[AppointmentAction]:
        allowed = {AppointmentAction.CONTACT_FACILITY}
        if self.outside_cutoff(appointment, now):
            for action, target in _TARGET_STATUS.items():
                if can_transition_appointment(appointment.status, target):
                    allowed.add(action)
        return frozenset(allowed)

    def ensure_allowed(
        self,
        appointment: Appointment,
        action: Union[str, AppointmentAction],
        now: datetime,
    ) -> None:
        """Raise InvalidTransition or WithinCutoffWindow when ``action`` is not permitted."""
        action = AppointmentAction(action)
        target: Optional[AppointmentStatus] = _TARGET_STATUS.get(action)
        if target is None:
            return
        validate_appointment_transition(appointment.status, target)
        if not self.outside_cutoff(appointment, now):
            hours = self.hours_until(appointment, now)
            logger.warning(
                "Appointment action inside cutoff window",
                extra={
                    "context": {
                        "appointment_id": appointment.id,
                        "action": action.value,
                        "hours_remaining": round(hours, 2),
                        "cutoff_hours": self.cutoff_hours,
                    }
                },
            )
            raise WithinCutoffWindow(action.value, hours, self.cutoff_hours)


def _aware(value: datetime) -> datetime:
    return value if value.tzinfo is not None else value.replace(tzinfo=timezone.utc)
