"""
Inventory controller for handling HTTP requests.

Stock mutations go through the fulfillment orchestrator; listings and
summaries read the stock ledger directly.
"""

from flask import Blueprint, request
from flask_login import login_required

from ..core.api_utils import (
    api_response,
    get_json_body,
    get_orchestrator,
    read_session,
    result_response,
)
from ..core.identity import current_actor, require_role
from ..core.limiter_config import limiter
from ..domain.entities import StockEntry
from ..repositories.stock_repository import StockRepository
from ..schemas.dtos import (
    StockAdjustmentResponse,
    StockEntryCreateRequest,
    StockEntryResponse,
    StockUpdateRequest,
    inventory_summary_to_dict,
)
from ..services.stock_ledger import StockLedger

inventory_bp = Blueprint("inventory", __name__, url_prefix="/inventory")


def _settings():
    return get_orchestrator().settings


def _ledger(db) -> StockLedger:
    settings = _settings()
    return StockLedger(
        StockRepository(db),
        low_stock_threshold=settings.low_stock_threshold,
        expiry_warning_days=settings.expiry_warning_days,
    )


def _serialize_entry(entry: StockEntry) -> dict:
    status = entry.status(_settings().low_stock_threshold)
    return StockEntryResponse.from_domain(entry, status).to_dict()


@inventory_bp.route("/<int:facility_id>", methods=["GET"])
@limiter.limit("100 per minute")
@login_required
def list_inventory(facility_id: int):
    """List a facility's stock; ``?low_stock=1`` keeps low and out-of-stock entries."""
    low_stock_only = request.args.get("low_stock", "").lower() in ("1", "true", "yes")
    with read_session() as db:
        entries = _ledger(db).list_inventory(facility_id, low_stock_only=low_stock_only)
    return api_response(
        True, f"{len(entries)} stock entries", [_serialize_entry(e) for e in entries]
    )


@inventory_bp.route("/<int:facility_id>/summary", methods=["GET"])
@limiter.limit("60 per minute")
@login_required
def inventory_summary(facility_id: int):
    with read_session() as db:
        summary = _ledger(db).summarize(facility_id)
    return api_response(True, "Inventory summary", inventory_summary_to_dict(summary))


@inventory_bp.route("/<int:facility_id>", methods=["POST"])
@limiter.limit("30 per minute")
@require_role("pharmacist", "admin")
def add_stock_entry(facility_id: int):
    """Add a medicine to a facility's inventory."""
    entry = StockEntryCreateRequest.from_dict(get_json_body()).to_domain(facility_id)
    result = get_orchestrator().add_stock_entry(entry, actor=current_actor())
    return result_response(result, "Stock entry created", _serialize_entry, 201)


@inventory_bp.route("/<int:facility_id>/<int:medicine_id>/stock", methods=["PATCH"])
@limiter.limit("30 per minute")
@require_role("pharmacist", "admin")
def update_stock(facility_id: int, medicine_id: int):
    """Apply a signed manual correction (restock, correction, write-off)."""
    payload = StockUpdateRequest.from_dict(get_json_body())
    payload.validate()
    result = get_orchestrator().update_stock(
        facility_id, medicine_id, payload.delta, payload.reason, actor=current_actor()
    )
    return result_response(result, "Stock updated", _serialize_entry)


@inventory_bp.route("/<int:facility_id>/<int:medicine_id>/adjustments", methods=["GET"])
@limiter.limit("60 per minute")
@require_role("pharmacist", "admin")
def adjustment_history(facility_id: int, medicine_id: int):
    with read_session() as db:
        adjustments = _ledger(db).adjustment_history(facility_id, medicine_id)
    return api_response(
        True,
        f"{len(adjustments)} adjustments",
        [StockAdjustmentResponse.from_domain(a).to_dict() for a in adjustments],
    )
