# Overview: Flask API routes for open debts.

from flask import Blueprint, request, jsonify, g, current_app

from ..errors import LoanError
from ..extensions import db
from ..permissions import has_permission
from ..services import debt_service
from ..decorators import require_auth


debts_bp = Blueprint("debts", __name__, url_prefix="/api/debts")


@debts_bp.get("")
@require_auth
def list_debts_route():
    """
    Open debts with material names, ordered by due date.

    Holders of VIEW_ALL_DEBTS see everyone's (optionally ?requester_id=);
    everyone else only sees their own.
    """
    try:
        if has_permission(g.identity, "VIEW_ALL_DEBTS"):
            requester_id = request.args.get("requester_id", type=int)
        else:
            requester_id = g.identity.user_id
        debts = debt_service.list_open_debts(db.session, requester_id)
        return jsonify({"debts": debts}), 200

    except LoanError as e:
        return jsonify(e.to_dict()), e.status_code
    except Exception:
        current_app.logger.exception("Failed to list debts")
        return jsonify({"error": "Internal server error"}), 500
