"""
Order controller: thin HTTP layer over the fulfillment orchestrator.

State changes go through the orchestrator; list endpoints read the
repositories directly.
"""

from flask import Blueprint, request
from flask_login import current_user, login_required

from ..core.api_utils import (
    api_response,
    get_json_body,
    get_orchestrator,
    read_session,
    result_response,
)
from ..core.exceptions import InvalidRequest
from ..core.identity import current_actor, require_role
from ..core.limiter_config import limiter
from ..domain.entities import Order, OrderStatus
from ..repositories.order_repository import OrderRepository
from ..schemas.dtos import (
    OrderResponse,
    PlaceOrderRequest,
    StatusUpdateRequest,
    TrackingEntryResponse,
)

orders_bp = Blueprint("orders", __name__, url_prefix="/orders")
tracking_bp = Blueprint("tracking", __name__, url_prefix="/tracking")

STAFF_ROLES = ("pharmacist", "delivery", "admin")


def _serialize_order(order: Order) -> dict:
    return OrderResponse.from_domain(order).to_dict()


def _forbidden():
    return api_response(
        False,
        "Forbidden",
        status_code=403,
        error={"code": "forbidden", "message": "Not your order"},
    )


def _owns(order: Order) -> bool:
    return current_user.role != "patient" or order.patient_id == current_user.id


def _hidden_from_patient(order_id: int) -> bool:
    """True when the caller is a patient and the order belongs to someone else."""
    if current_user.role != "patient":
        return False
    existing = get_orchestrator().get_order(order_id)
    return existing.ok and not _owns(existing.value)


def _query_int(name: str):
    raw = request.args.get(name)
    if raw is None or raw == "":
        return None
    try:
        return int(raw)
    except ValueError:
        raise InvalidRequest(f"{name} must be an integer", field=name) from None


@orders_bp.route("", methods=["POST"])
@limiter.limit("30 per minute")
@require_role("patient", "admin")
def place_order():
    """Submit a checkout cart; the order starts as pending."""
    patient_id = current_user.id if current_user.role == "patient" else None
    payload = PlaceOrderRequest.from_dict(get_json_body(), patient_id=patient_id)
    result = get_orchestrator().place_order(
        payload.cart,
        payload.payment_method,
        payload.delivery_address,
        actor=current_actor(),
        delivery_instructions=payload.delivery_instructions,
        notes=payload.notes,
    )
    return result_response(result, "Order placed", _serialize_order, 201)


@orders_bp.route("", methods=["GET"])
@limiter.limit("100 per minute")
@login_required
def list_orders():
    """Patients see their own orders; staff filter by facility or patient."""
    status = request.args.get("status")
    if status is not None:
        try:
            status = OrderStatus(status)
        except ValueError:
            raise InvalidRequest("Unknown order status", field="status") from None
    limit = min(_query_int("limit") or 50, 200)
    offset = _query_int("offset") or 0
    patient_id = (
        current_user.id if current_user.role == "patient" else _query_int("patient_id")
    )
    with read_session() as db:
        orders = OrderRepository(db).list_orders(
            patient_id=patient_id,
            facility_id=_query_int("facility_id"),
            status=status,
            limit=limit,
            offset=offset,
        )
        data = [_serialize_order(o) for o in orders]
    return api_response(True, f"{len(data)} orders", data)


@orders_bp.route("/<int:order_id>", methods=["GET"])
@limiter.limit("100 per minute")
@login_required
def get_order(order_id: int):
    result = get_orchestrator().get_order(order_id)
    if result.ok and not _owns(result.value):
        return _forbidden()
    return result_response(result, "Order retrieved", _serialize_order)


@orders_bp.route("/<int:order_id>/status", methods=["PATCH"])
@limiter.limit("30 per minute")
@login_required
def advance_order_status(order_id: int):
    """Move an order along its lifecycle. Patients may only cancel their own orders."""
    payload = StatusUpdateRequest.from_dict(get_json_body())
    orchestrator = get_orchestrator()
    if current_user.role == "patient":
        if payload.status != OrderStatus.CANCELLED.value:
            return api_response(
                False,
                "Forbidden",
                status_code=403,
                error={"code": "forbidden", "message": "Patients may only cancel orders"},
            )
        if _hidden_from_patient(order_id):
            return _forbidden()
    elif current_user.role not in STAFF_ROLES:
        return _forbidden()

    result = orchestrator.advance_order_status(
        order_id,
        payload.status,
        actor=current_actor(),
        description=payload.description,
        location=payload.location,
        estimated_delivery=payload.estimated_delivery,
        notes=payload.notes,
    )
    return result_response(result, f"Order moved to {payload.status}", _serialize_order)


@orders_bp.route("/<int:order_id>/tracking", methods=["GET"])
@limiter.limit("100 per minute")
@login_required
def get_order_tracking(order_id: int):
    if _hidden_from_patient(order_id):
        return _forbidden()
    result = get_orchestrator().get_order_tracking(order_id)
    return result_response(
        result, "Tracking timeline", TrackingEntryResponse.list_to_dict
    )


@tracking_bp.route("/<string:tracking_number>", methods=["GET"])
@limiter.limit("60 per minute")
@login_required
def get_tracking_by_number(tracking_number: str):
    result = get_orchestrator().get_tracking_by_number(tracking_number.strip().upper())
    if result.ok and result.value and _hidden_from_patient(result.value[0].order_id):
        return _forbidden()
    return result_response(
        result, "Tracking timeline", TrackingEntryResponse.list_to_dict
    )
