from datetime import date, time
from typing import Optional

from sqlalchemy import select, update

from ..db.base import Appointment as AppointmentModel
from ..domain.appointment_rules import ACTIVE_APPOINTMENT_STATUSES
from ..domain.entities import Appointment, AppointmentStatus, ensure_utc
from ..domain.interfaces import IAppointmentRepository


class AppointmentRepository(IAppointmentRepository):
    def __init__(self, db_session):
        self.db = db_session

    def get_by_id(self, appointment_id: int) -> Optional[Appointment]:
        db_appt = self.db.execute(
            select(AppointmentModel)
            .where(AppointmentModel.id == appointment_id)
            .execution_options(populate_existing=True)
        ).scalar_one_or_none()
        return self._to_domain(db_appt) if db_appt else None

    def create(self, appointment: Appointment) -> Appointment:
        db_appt = AppointmentModel(
            facility_id=appointment.facility_id,
            patient_id=appointment.patient_id,
            professional_id=appointment.professional_id,
            appointment_date=appointment.appointment_date,
            appointment_time=appointment.appointment_time,
            status=appointment.status.value,
            reason=appointment.reason,
            notes=appointment.notes,
        )
        self.db.add(db_appt)
        self.db.flush()
        return self._to_domain(db_appt)

    def compare_and_update(
        self, appointment: Appointment, expected: Appointment
    ) -> bool:
        result = self.db.execute(
            update(AppointmentModel)
            .where(
                AppointmentModel.id == expected.id,
                AppointmentModel.status == expected.status.value,
                AppointmentModel.appointment_date == expected.appointment_date,
                AppointmentModel.appointment_time == expected.appointment_time,
            )
            .values(
                status=appointment.status.value,
                appointment_date=appointment.appointment_date,
                appointment_time=appointment.appointment_time,
                notes=appointment.notes,
            )
            .execution_options(synchronize_session=False)
        )
        return result.rowcount == 1

    def find_conflicting(
        self,
        facility_id: int,
        appointment_date: date,
        appointment_time: time,
        exclude_id: Optional[int] = None,
    ) -> Optional[Appointment]:
        stmt = select(AppointmentModel).where(
            AppointmentModel.facility_id == facility_id,
            AppointmentModel.appointment_date == appointment_date,
            AppointmentModel.appointment_time == appointment_time,
            AppointmentModel.status.in_([s.value for s in ACTIVE_APPOINTMENT_STATUSES]),
        )
        if exclude_id is not None:
            stmt = stmt.where(AppointmentModel.id != exclude_id)
        db_appt = self.db.execute(stmt.limit(1)).scalar_one_or_none()
        return self._to_domain(db_appt) if db_appt else None

    def _to_domain(self, db_appt: AppointmentModel) -> Appointment:
        return Appointment(
            id=db_appt.id,
            facility_id=db_appt.facility_id,
            patient_id=db_appt.patient_id,
            professional_id=db_appt.professional_id,
            appointment_date=db_appt.appointment_date,
            appointment_time=db_appt.appointment_time,
            status=AppointmentStatus(db_appt.status),
            reason=db_appt.reason,
            notes=db_appt.notes,
            created_at=ensure_utc(db_appt.created_at),
            updated_at=ensure_utc(db_appt.updated_at),
        )
