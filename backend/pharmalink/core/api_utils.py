"""
Common API utilities for consistent response formatting across all controllers.
"""

from contextlib import contextmanager
from typing import Any, Iterator, Optional

from flask import current_app, jsonify, request

from .exceptions import FulfillmentError, InvalidRequest
from .results import OperationResult

# Stable mapping from error codes to HTTP status codes
ERROR_STATUS_CODES = {
    "validation_error": 400,
    "forbidden": 403,
    "not_found": 404,
    "invalid_transition": 409,
    "insufficient_stock": 409,
    "slot_unavailable": 409,
    "within_cutoff_window": 422,
    "persistence_failure": 503,
}


def api_response(
    success: bool,
    message: str,
    data: Optional[Any] = None,
    status_code: int = 200,
    error: Optional[dict] = None,
) -> tuple:
    """
    Standardized API response format for all endpoints.

    Args:
        success: Whether the operation was successful
        message: Human-readable message about the operation
        data: Optional data payload
        status_code: HTTP status code
        error: Optional error body (code, message, details)

    Returns:
        Tuple of (json_response, status_code)
    """
    response = {"success": success, "message": message}

    if data is not None:
        response["data"] = data
    if error is not None:
        response["error"] = error

    return jsonify(response), status_code


def error_response(exc: FulfillmentError) -> tuple:
    """Render a FulfillmentError with the status code mapped from its code."""
    return api_response(
        False,
        exc.message,
        status_code=ERROR_STATUS_CODES.get(exc.code, 500),
        error=exc.to_dict(),
    )


def result_response(
    result: OperationResult,
    message: str,
    serializer=None,
    status_code: int = 200,
) -> tuple:
    """Render an OperationResult: the value on success, the mapped error otherwise."""
    if not result.ok:
        return error_response(result.error)
    value = result.value
    data = serializer(value) if serializer is not None else value
    return api_response(True, message, data, status_code)


def get_json_body() -> dict:
    """Request JSON object; InvalidRequest when the body is missing or not an object."""
    data = request.get_json(silent=True)
    if not isinstance(data, dict):
        raise InvalidRequest("Request body must be a JSON object")
    return data


def get_orchestrator():
    return current_app.extensions["pharmalink"]["orchestrator"]


@contextmanager
def read_session() -> Iterator[Any]:
    """Session for read-only endpoints that query the ledgers directly."""
    db = current_app.extensions["pharmalink"]["session_factory"]()
    try:
        yield db
    finally:
        db.close()
