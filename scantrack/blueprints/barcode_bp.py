"""
Barcode blueprint.

Endpoints:
    GET /api/v1/barcodes/decode/<barcode_id>      — decode a label and show its work order context
    GET /api/v1/work-orders/<work_order_id>/barcodes — every label of a work order
"""

import logging

from flask import Blueprint, jsonify

from scantrack.core.exceptions import BarcodeDecodeError, ChecksumError, NotFoundError
from scantrack.services import barcode_codec
from scantrack.services.work_order_store import find_by_barcode_key, get_work_order
from scantrack.utils.errors import E, api_error
from scantrack.utils.helpers import isoformat, round_half_up, utcnow

logger = logging.getLogger(__name__)

barcode_bp = Blueprint("barcode", __name__, url_prefix="/api/v1")


@barcode_bp.errorhandler(NotFoundError)
def _handle_not_found(error: NotFoundError):
    return api_error(E.NOT_FOUND, str(error))


@barcode_bp.route("/barcodes/decode/<path:barcode_id>", methods=["GET"])
def decode_barcode(barcode_id):
    """Decode a barcode and attach the work order, operation and progress it refers to."""
    try:
        parts = barcode_codec.decode(barcode_id)
    except ChecksumError as exc:
        return api_error(E.BARCODE_INVALID, "Invalid checksum", details={
            "barcode_id": barcode_id, "expected": exc.expected, "actual": exc.actual,
        })
    except BarcodeDecodeError as exc:
        return api_error(E.BARCODE_INVALID, str(exc), details={"barcode_id": barcode_id})

    work_order = find_by_barcode_key(parts.work_order_key)
    if work_order is None:
        raise NotFoundError(resource="WorkOrder", resource_id=parts.work_order_key)

    operations = sorted(work_order.operations, key=lambda o: o.sequence)
    operation = operations[parts.operation - 1] if parts.operation <= len(operations) else None
    completed_ops = sum(1 for op in operations if op.status == "completed")

    return jsonify({
        "barcode": {
            "barcode_id": barcode_id,
            **parts.to_dict(),
            "unit_in_range": 1 <= parts.unit <= work_order.quantity,
        },
        "work_order": work_order.to_dict(),
        "operation": {
            "number": parts.operation,
            "operation_type": operation.operation_type,
            "machine_type": operation.machine_type,
            "assigned_machines": [m.name for m in operation.assigned_machines],
            "status": operation.status,
        } if operation else None,
        "progress": {
            "current_unit": parts.unit,
            "total_units": work_order.quantity,
            "current_operation": parts.operation,
            "total_operations": len(operations),
            "completed_operations": completed_ops,
            "completion_percentage": round_half_up(completed_ops / len(operations) * 100) if operations else 0,
        },
        "decoded_at": isoformat(utcnow()),
    })


@barcode_bp.route("/work-orders/<int:work_order_id>/barcodes", methods=["GET"])
def generate_barcodes(work_order_id):
    """All unit × operation labels for a work order."""
    work_order = get_work_order(work_order_id)
    operations = [
        {
            "operation_type": op.operation_type,
            "machine_name": op.primary_machine.name if op.primary_machine else None,
        }
        for op in sorted(work_order.operations, key=lambda o: o.sequence)
    ]
    try:
        labels = barcode_codec.generate_labels(work_order.barcode_key, work_order.quantity, operations)
    except ValueError as exc:
        return api_error(E.UNPROCESSABLE, str(exc), details={"work_order_id": work_order_id})

    return jsonify({
        "barcodes": labels,
        "summary": {
            "work_order_number": work_order.work_order_number,
            "barcode_key": work_order.barcode_key,
            "total_units": work_order.quantity,
            "total_operations": len(operations),
            "total_barcodes": len(labels),
            "generated_at": isoformat(utcnow()),
        },
    })
