"""Standardised API error responses.

Every error body has the same shape::

    {"error": "<human readable>", "code": "ERR_...", "details": {...}}

``details`` is omitted when empty.

Usage
-----
    from scantrack.utils.errors import api_error, E

    return api_error(E.NOT_FOUND, "Work order not found")
    return api_error(E.BARCODE_INVALID, "Invalid checksum", details={"barcode_id": bid})
"""

from __future__ import annotations

from flask import jsonify


class E:
    """Machine-readable error codes."""

    # 400
    VALIDATION_REQUIRED = "ERR_VALIDATION_REQUIRED"
    VALIDATION_INVALID = "ERR_VALIDATION_INVALID"
    BARCODE_INVALID = "ERR_BARCODE_INVALID"
    # 404
    NOT_FOUND = "ERR_NOT_FOUND"
    # 405
    METHOD_NOT_ALLOWED = "ERR_METHOD_NOT_ALLOWED"
    # 422
    UNPROCESSABLE = "ERR_UNPROCESSABLE"
    # 429
    RATE_LIMITED = "ERR_RATE_LIMITED"
    # 500
    INTERNAL = "ERR_INTERNAL"


_DEFAULT_STATUS: dict[str, int] = {
    E.VALIDATION_REQUIRED: 400,
    E.VALIDATION_INVALID: 400,
    E.BARCODE_INVALID: 400,
    E.NOT_FOUND: 404,
    E.METHOD_NOT_ALLOWED: 405,
    E.UNPROCESSABLE: 422,
    E.RATE_LIMITED: 429,
    E.INTERNAL: 500,
}


def error_body(code: str, message: str, details: dict | None = None) -> dict:
    body: dict = {"error": message, "code": code}
    if details:
        body["details"] = details
    return body


def api_error(code: str, message: str, *, status: int | None = None, details: dict | None = None):
    """Return ``(jsonify(body), http_status)`` for a Flask view.

    ``status`` defaults to the code's usual HTTP status, then 400.
    """
    return jsonify(error_body(code, message, details)), status or _DEFAULT_STATUS.get(code, 400)
