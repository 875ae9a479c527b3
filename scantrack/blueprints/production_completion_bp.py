"""
Production completion blueprint.

Read-only views of the completion snapshot the sync engine maintains.

Endpoints (all under /api/v1/work-orders/<work_order_id>):
    GET /completion            — overall and per-operation completion
    GET /operator-performance  — operators with their efficiency per operation
    GET /operations-status     — per-operation completion
    GET /time-analysis         — unit completion times vs. planned time
    GET /efficiency-summary    — efficiency averages by operation/machine/operator
    GET /live-status           — status plus time since the last sync
    GET /invalid-scans         — paged invalid-scan audit (?limit=&offset=)
"""

import logging

from flask import Blueprint, current_app, jsonify

from scantrack.blueprints import paging_args
from scantrack.core.exceptions import NotFoundError, ValidationError
from scantrack.services import completion_views
from scantrack.services.work_order_store import get_work_order
from scantrack.utils.errors import E, api_error

logger = logging.getLogger(__name__)

production_completion_bp = Blueprint("production_completion", __name__, url_prefix="/api/v1")


@production_completion_bp.errorhandler(NotFoundError)
def _handle_not_found(error: NotFoundError):
    return api_error(E.NOT_FOUND, str(error))


@production_completion_bp.errorhandler(ValidationError)
def _handle_validation(error: ValidationError):
    return api_error(E.UNPROCESSABLE, str(error), details=error.details)


# ═════════════════════════════════════════════════════════════════════════
# Completion
# ═════════════════════════════════════════════════════════════════════════


@production_completion_bp.route("/work-orders/<int:work_order_id>/completion", methods=["GET"])
def get_completion(work_order_id):
    """Overall completion summary."""
    work_order = get_work_order(work_order_id)
    return jsonify(completion_views.completion_summary(work_order))


@production_completion_bp.route("/work-orders/<int:work_order_id>/operations-status", methods=["GET"])
def get_operations_status(work_order_id):
    work_order = get_work_order(work_order_id)
    return jsonify(completion_views.operations_status(work_order))


@production_completion_bp.route("/work-orders/<int:work_order_id>/live-status", methods=["GET"])
def get_live_status(work_order_id):
    """Status, completion and how long ago the last sync ran."""
    work_order = get_work_order(work_order_id)
    interval = int(current_app.config.get("SYNC_INTERVAL_SECONDS", 120))
    return jsonify(completion_views.live_status(work_order, interval))


# ═════════════════════════════════════════════════════════════════════════
# Operators & timing
# ═════════════════════════════════════════════════════════════════════════


@production_completion_bp.route("/work-orders/<int:work_order_id>/operator-performance", methods=["GET"])
def get_operator_performance(work_order_id):
    work_order = get_work_order(work_order_id)
    return jsonify(completion_views.operator_performance(work_order))


@production_completion_bp.route("/work-orders/<int:work_order_id>/time-analysis", methods=["GET"])
def get_time_analysis(work_order_id):
    work_order = get_work_order(work_order_id)
    return jsonify(completion_views.time_analysis(work_order))


@production_completion_bp.route("/work-orders/<int:work_order_id>/efficiency-summary", methods=["GET"])
def get_efficiency_summary(work_order_id):
    work_order = get_work_order(work_order_id)
    return jsonify(completion_views.efficiency_summary(work_order))


# ═════════════════════════════════════════════════════════════════════════
# Invalid scans
# ═════════════════════════════════════════════════════════════════════════


@production_completion_bp.route("/work-orders/<int:work_order_id>/invalid-scans", methods=["GET"])
def get_invalid_scans(work_order_id):
    """Invalid scans, newest first. ``total_invalid_scans`` is the exact running count."""
    work_order = get_work_order(work_order_id)
    limit, offset = paging_args(
        default_limit=50,
        max_limit=int(current_app.config.get("INVALID_SCAN_HISTORY_LIMIT", 100)),
    )
    return jsonify(completion_views.invalid_scans_page(work_order, limit=limit, offset=offset))
