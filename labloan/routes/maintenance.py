# Overview: Flask API routes for triggering sweeps by hand.

from flask import Blueprint, jsonify, current_app

from ..extensions import db
from ..decorators import require_auth, require_permission
from . import runtime


maintenance_bp = Blueprint("maintenance", __name__, url_prefix="/api/maintenance")


@maintenance_bp.get("/sweeps")
@require_auth
@require_permission("RUN_MAINTENANCE")
def list_sweeps_route():
    scheduler = runtime("scheduler")
    return jsonify({
        "running": scheduler.is_running,
        "jobs": [
            {
                "name": job.name,
                "interval_seconds": int(job.interval.total_seconds()),
                "last_run_at": job.last_run_at.isoformat() if job.last_run_at else None,
                "next_run_at": job.next_run_at.isoformat() if job.next_run_at else None,
                "last_error": job.last_error,
            }
            for job in scheduler.jobs.values()
        ],
    }), 200


@maintenance_bp.post("/sweeps/<job_name>")
@require_auth
@require_permission("RUN_MAINTENANCE")
def run_sweep_route(job_name: str):
    """Run one sweep job now (expiry, stale, return-reminders)."""
    scheduler = runtime("scheduler")
    if job_name not in scheduler.jobs:
        return jsonify({"error": f"Unknown sweep '{job_name}'"}), 404

    try:
        report = scheduler.run_job(job_name, session=db.session)
    except Exception:
        current_app.logger.exception("Failed to run sweep %s", job_name)
        return jsonify({"error": "Internal server error"}), 500

    if report is None:
        return jsonify({"error": f"Sweep '{job_name}' failed, see logs"}), 500
    return jsonify({"report": report.to_dict()}), 200
