"""
Scheduler blueprint.

Endpoints:
    GET   /api/v1/scheduler/jobs                  — all registered jobs with run history
    GET   /api/v1/scheduler/jobs/<job_name>       — one job
    POST  /api/v1/scheduler/jobs/<job_name>/trigger — run a job now
    PATCH /api/v1/scheduler/jobs/<job_name>/toggle  — enable/disable scheduled runs

A manual production_sync trigger goes through the same single-flight guard
as the background ticker; while a tick is running it returns ``skipped``.
"""

import logging

from flask import Blueprint, jsonify, request

from scantrack.models.scheduling import ScheduledJob
from scantrack.services.scheduler_service import SchedulerService
from scantrack.utils.errors import E, api_error

logger = logging.getLogger(__name__)

scheduler_bp = Blueprint("scheduler", __name__, url_prefix="/api/v1")


@scheduler_bp.route("/scheduler/jobs", methods=["GET"])
def list_scheduled_jobs():
    """Every ScheduledJob row, by name."""
    jobs = ScheduledJob.query.order_by(ScheduledJob.job_name).all()
    return jsonify({
        "jobs": [j.to_dict() for j in jobs],
        "total": len(jobs),
        "scheduler_running": SchedulerService.is_running(),
    })


@scheduler_bp.route("/scheduler/jobs/<job_name>", methods=["GET"])
def get_job_status(job_name):
    """One job's schedule and run history."""
    job = SchedulerService.get_job_status(job_name)
    if not job:
        return api_error(E.NOT_FOUND, f"Job '{job_name}' not found")
    return jsonify(job)


@scheduler_bp.route("/scheduler/jobs/<job_name>/trigger", methods=["POST"])
def trigger_job(job_name):
    """Run a job now. A failed run answers 500 with the run record."""
    result = SchedulerService.run_job(job_name, trigger="manual")
    if result.get("status") == "error" and "Unknown job" in (result.get("error") or ""):
        return api_error(E.NOT_FOUND, result["error"])
    status_code = 500 if result.get("status") == "failed" else 200
    return jsonify(result), status_code


@scheduler_bp.route("/scheduler/jobs/<job_name>/toggle", methods=["PATCH"])
def toggle_job_status(job_name):
    """Body: {"enabled": bool}. Disabling stops scheduled runs only."""
    data = request.get_json(silent=True) or {}
    enabled = data.get("enabled")
    if enabled is None:
        return api_error(E.VALIDATION_REQUIRED, "'enabled' field is required (true/false)")
    if not isinstance(enabled, bool):
        return api_error(E.VALIDATION_INVALID, "'enabled' must be a boolean")

    result = SchedulerService.toggle_job(job_name, enabled)
    if not result:
        return api_error(E.NOT_FOUND, f"Job '{job_name}' not found")
    return jsonify(result)
