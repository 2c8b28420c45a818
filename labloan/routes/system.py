# Overview: Flask API routes for service health and caller identity.

from flask import Blueprint, jsonify, g, current_app
from sqlalchemy import text

from ..extensions import db
from ..decorators import require_auth
from ..permissions import get_permission_definition, get_role_permissions
from . import runtime


system_bp = Blueprint("system", __name__, url_prefix="/api/system")


@system_bp.get("/health")
def health():
    try:
        db.session.execute(text("SELECT 1"))
    except Exception:
        current_app.logger.exception("Health check database query failed")
        return jsonify({"status": "degraded", "database": "unreachable"}), 503

    scheduler = runtime("scheduler")
    return jsonify({
        "status": "ok",
        "database": "ok",
        "scheduler_running": scheduler.is_running,
    }), 200


@system_bp.get("/whoami")
@require_auth
def whoami():
    identity = g.identity
    data = identity.to_dict()
    codes = sorted(get_role_permissions(identity.role, stock_access=identity.stock_access))
    data["permissions"] = [get_permission_definition(code) for code in codes]
    return jsonify(data), 200
