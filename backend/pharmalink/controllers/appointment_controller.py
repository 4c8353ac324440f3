"""
Appointment controller.

Cancel and reschedule are checked against the cutoff window by the
orchestrator; a rejection answers 422 with the hours remaining.
"""

from flask import Blueprint, request
from flask_login import current_user, login_required

from ..core.api_utils import get_json_body, get_orchestrator, result_response
from ..core.identity import current_actor, require_role
from ..core.limiter_config import limiter
from ..schemas.dtos import (
    AppointmentCreateRequest,
    AppointmentResponse,
    AppointmentStatusRequest,
    RescheduleRequest,
)

appointment_bp = Blueprint("appointments", __name__, url_prefix="/appointments")


def _serialize(appointment) -> dict:
    return AppointmentResponse.from_domain(appointment).to_dict()


@appointment_bp.route("", methods=["POST"])
@limiter.limit("30 per minute")
@require_role("patient", "admin")
def book_appointment():
    patient_id = current_user.id if current_user.role == "patient" else None
    payload = AppointmentCreateRequest.from_dict(get_json_body(), patient_id=patient_id)
    result = get_orchestrator().book_appointment(payload, actor=current_actor())
    return result_response(result, "Appointment booked", _serialize, 201)


@appointment_bp.route("/<int:appointment_id>", methods=["GET"])
@limiter.limit("100 per minute")
@login_required
def get_appointment(appointment_id: int):
    """Appointment plus the actions currently allowed on it."""
    result = get_orchestrator().get_allowed_appointment_actions(
        appointment_id, actor=current_actor()
    )
    return result_response(
        result,
        "Appointment retrieved",
        lambda value: AppointmentResponse.from_domain(value[0], value[1]).to_dict(),
    )


@appointment_bp.route("/<int:appointment_id>/cancel", methods=["PATCH"])
@limiter.limit("30 per minute")
@require_role("patient", "admin")
def cancel_appointment(appointment_id: int):
    body = request.get_json(silent=True)
    reason = body.get("reason") if isinstance(body, dict) else None
    result = get_orchestrator().cancel_appointment(
        appointment_id, actor=current_actor(), reason=reason
    )
    return result_response(result, "Appointment cancelled", _serialize)


@appointment_bp.route("/<int:appointment_id>/reschedule", methods=["PATCH"])
@limiter.limit("30 per minute")
@require_role("patient", "admin")
def reschedule_appointment(appointment_id: int):
    orchestrator = get_orchestrator()
    payload = RescheduleRequest.from_dict(get_json_body())
    result = orchestrator.reschedule_appointment(
        appointment_id, payload.new_datetime(orchestrator.tz), actor=current_actor()
    )
    return result_response(result, "Appointment rescheduled", _serialize)


@appointment_bp.route("/<int:appointment_id>/status", methods=["PATCH"])
@limiter.limit("30 per minute")
@require_role("doctor", "pharmacist", "admin")
def update_appointment_status(appointment_id: int):
    payload = AppointmentStatusRequest.from_dict(get_json_body())
    result = get_orchestrator().update_appointment_status(
        appointment_id, payload.status, actor=current_actor(), notes=payload.notes
    )
    return result_response(result, f"Appointment marked {payload.status}", _serialize)
