"""
Integration tests for appointment booking, cancellation and rescheduling.

The orchestrator clock is frozen at 2026-03-02 09:00 UTC.
"""

from datetime import date, datetime, time, timezone

import pytest

from pharmalink.core.exceptions import (
    Forbidden,
    InvalidTransition,
    SlotUnavailable,
    WithinCutoffWindow,
)
from pharmalink.domain.entities import Actor, AppointmentAction, AppointmentStatus
from pharmalink.schemas.dtos import AppointmentCreateRequest


def _request(day=date(2026, 3, 10), at=time(14, 0), facility_id=1, patient_id=42):
    return AppointmentCreateRequest(
        facility_id=facility_id,
        patient_id=patient_id,
        appointment_date=day,
        appointment_time=at,
        reason="Medication review",
    )


@pytest.fixture
def book(orchestrator, patient):
    def _book(**kwargs):
        result = orchestrator.book_appointment(_request(**kwargs), actor=patient)
        assert result.ok, result.error
        return result.value

    return _book


@pytest.mark.integration
@pytest.mark.services
class TestBooking:
    def test_book_future_slot(self, orchestrator, book, notifier):
        appointment = book()

        assert appointment.id is not None
        assert appointment.status == AppointmentStatus.PENDING
        assert notifier.dispatch.call_args[0][0] == "appointment.booked"

    def test_past_slot_rejected(self, orchestrator):
        result = orchestrator.book_appointment(_request(day=date(2026, 3, 1)))
        assert result.error_code == "validation_error"

    def test_taken_slot_rejected(self, orchestrator, book):
        book()

        result = orchestrator.book_appointment(_request(patient_id=43))

        assert isinstance(result.error, SlotUnavailable)

    def test_same_time_other_facility_is_free(self, book):
        book()
        assert book(facility_id=2).facility_id == 2


@pytest.mark.integration
@pytest.mark.services
class TestCancellation:
    def test_cancel_outside_cutoff(self, orchestrator, book, patient):
        appointment = book()

        result = orchestrator.cancel_appointment(appointment.id, patient, "Feeling better")

        assert result.value.status == AppointmentStatus.CANCELLED
        assert result.value.notes == "Feeling better"

    def test_cancel_exactly_at_cutoff_is_allowed(self, orchestrator, book, clock):
        appointment = book()
        clock.now = datetime(2026, 3, 9, 14, 0, tzinfo=timezone.utc)

        assert orchestrator.cancel_appointment(appointment.id).ok

    def test_cancel_inside_cutoff_is_rejected(self, orchestrator, book, clock):
        appointment = book()
        clock.now = datetime(2026, 3, 9, 14, 1, tzinfo=timezone.utc)

        result = orchestrator.cancel_appointment(appointment.id)

        assert isinstance(result.error, WithinCutoffWindow)
        assert result.error.cutoff_hours == 24
        stored, _ = orchestrator.get_allowed_appointment_actions(appointment.id).value
        assert stored.status == AppointmentStatus.PENDING

    def test_cancel_twice_is_invalid_transition(self, orchestrator, book):
        appointment = book()
        orchestrator.cancel_appointment(appointment.id)

        result = orchestrator.cancel_appointment(appointment.id)

        assert isinstance(result.error, InvalidTransition)
        assert result.error.entity == "appointment"

    def test_cancelled_slot_can_be_rebooked(self, orchestrator, book):
        appointment = book()
        orchestrator.cancel_appointment(appointment.id)

        assert book(patient_id=43).status == AppointmentStatus.PENDING

    def test_missing_appointment(self, orchestrator):
        assert orchestrator.cancel_appointment(404).error_code == "not_found"


@pytest.mark.integration
@pytest.mark.services
class TestReschedule:
    def test_reschedule_moves_slot(self, orchestrator, book):
        appointment = book()
        new_time = datetime(2026, 3, 12, 9, 30, tzinfo=timezone.utc)

        result = orchestrator.reschedule_appointment(appointment.id, new_time)

        moved = result.value
        assert moved.status == AppointmentStatus.RESCHEDULED
        assert moved.appointment_date == date(2026, 3, 12)
        assert moved.appointment_time == time(9, 30)

    def test_naive_datetime_uses_application_zone(self, orchestrator, book):
        appointment = book()

        result = orchestrator.reschedule_appointment(
            appointment.id, datetime(2026, 3, 12, 9, 30)
        )

        assert result.value.appointment_time == time(9, 30)

    def test_rescheduled_appointment_can_move_again(self, orchestrator, book):
        appointment = book()
        orchestrator.reschedule_appointment(
            appointment.id, datetime(2026, 3, 12, 9, 30, tzinfo=timezone.utc)
        )

        result = orchestrator.reschedule_appointment(
            appointment.id, datetime(2026, 3, 13, 9, 30, tzinfo=timezone.utc)
        )

        assert result.value.appointment_date == date(2026, 3, 13)

    def test_reschedule_inside_cutoff_is_rejected(self, orchestrator, book, clock):
        appointment = book()
        clock.now = datetime(2026, 3, 10, 2, 0, tzinfo=timezone.utc)

        result = orchestrator.reschedule_appointment(
            appointment.id, datetime(2026, 3, 20, 9, 0, tzinfo=timezone.utc)
        )

        assert result.error_code == "within_cutoff_window"
        assert "12.0 hours" in result.error.message

    def test_reschedule_into_taken_slot(self, orchestrator, book):
        first = book()
        book(at=time(15, 0), patient_id=43)

        result = orchestrator.reschedule_appointment(
            first.id, datetime(2026, 3, 10, 15, 0, tzinfo=timezone.utc)
        )

        assert isinstance(result.error, SlotUnavailable)

    def test_reschedule_into_the_past(self, orchestrator, book):
        appointment = book()

        result = orchestrator.reschedule_appointment(
            appointment.id, datetime(2026, 3, 1, 9, 0, tzinfo=timezone.utc)
        )

        assert result.error_code == "validation_error"


@pytest.mark.integration
@pytest.mark.services
class TestStatusAndActions:
    def test_professional_flow(self, orchestrator, book):
        appointment = book()

        confirmed = orchestrator.update_appointment_status(appointment.id, "confirmed")
        completed = orchestrator.update_appointment_status(
            appointment.id, AppointmentStatus.COMPLETED, notes="Reviewed dosage"
        )

        assert confirmed.value.status == AppointmentStatus.CONFIRMED
        assert completed.value.status == AppointmentStatus.COMPLETED
        assert completed.value.notes == "Reviewed dosage"

    def test_status_update_cannot_bypass_cutoff(self, orchestrator, book):
        appointment = book()

        result = orchestrator.update_appointment_status(appointment.id, "cancelled")

        assert result.error_code == "validation_error"
        assert "cancel action" in result.error.message

    def test_pending_cannot_complete(self, orchestrator, book):
        appointment = book()
        result = orchestrator.update_appointment_status(appointment.id, "completed")
        assert result.error_code == "invalid_transition"

    def test_allowed_actions_follow_the_clock(self, orchestrator, book, clock):
        appointment = book()

        _, early = orchestrator.get_allowed_appointment_actions(appointment.id).value
        clock.now = datetime(2026, 3, 10, 13, 0, tzinfo=timezone.utc)
        _, late = orchestrator.get_allowed_appointment_actions(appointment.id).value

        assert early == frozenset(AppointmentAction)
        assert late == frozenset({AppointmentAction.CONTACT_FACILITY})

    def test_one_minute_short_of_cutoff(self, orchestrator, book):
        appointment = book(day=date(2026, 3, 3), at=time(8, 59))

        _, allowed = orchestrator.get_allowed_appointment_actions(appointment.id).value

        assert allowed == frozenset({AppointmentAction.CONTACT_FACILITY})


@pytest.mark.integration
@pytest.mark.services
class TestOwnership:
    STRANGER = Actor(id=43, role="patient")

    def test_other_patient_cannot_cancel(self, orchestrator, book):
        appointment = book()

        result = orchestrator.cancel_appointment(appointment.id, self.STRANGER)

        assert isinstance(result.error, Forbidden)
        stored, _ = orchestrator.get_allowed_appointment_actions(appointment.id).value
        assert stored.status == AppointmentStatus.PENDING

    def test_other_patient_cannot_reschedule(self, orchestrator, book):
        appointment = book()

        result = orchestrator.reschedule_appointment(
            appointment.id,
            datetime(2026, 3, 12, 9, 30, tzinfo=timezone.utc),
            self.STRANGER,
        )

        assert result.error_code == "forbidden"

    def test_other_patient_cannot_see_allowed_actions(self, orchestrator, book):
        appointment = book()

        result = orchestrator.get_allowed_appointment_actions(appointment.id, self.STRANGER)

        assert result.error_code == "forbidden"

    def test_staff_may_act_for_the_patient(self, orchestrator, book, pharmacist):
        appointment = book()

        result = orchestrator.cancel_appointment(appointment.id, pharmacist)

        assert result.value.status == AppointmentStatus.CANCELLED
