# Overview: Flask API routes for loan requests; parses input and returns JSON responses.

"""
Loan Request API Routes

DESIGN:
- Students and instructors create requests; instructors are auto-approved
- Instructors/admins approve or reject pending requests
- Storekeepers deliver (possibly partially) and receive returns
- Cancellation: requesters delete their own pending requests, staff
  soft-cancel pending/approved ones

SECURITY:
- Every route requires a bearer token
- Ownership checks (cancel, detail) happen in request_service
"""

from flask import Blueprint, request, jsonify, g, current_app

from ..categories import MaterialRef
from ..errors import LoanError, ValidationError
from ..extensions import db
from ..permissions import has_permission
from ..services import debt_service, request_service
from ..validation import (
    PayloadPolicy,
    validate_payload,
    parse_date,
    parse_int,
    parse_list,
    parse_positive_int,
)
from ..decorators import require_auth, require_permission
from . import runtime


requests_bp = Blueprint("requests", __name__, url_prefix="/api/requests")

CREATE_POLICY = PayloadPolicy(
    writable_fields={"lines", "pickup_date", "return_due_date", "approver_id"},
    required={"lines", "pickup_date", "return_due_date"},
)

DELIVER_POLICY = PayloadPolicy(writable_fields={"lines"}, required={"lines"})

RETURN_POLICY = PayloadPolicy(writable_fields={"lines"}, required={"lines"})


def _parse_request_lines(raw) -> list:
    lines = []
    for index, item in enumerate(parse_list(raw, "lines")):
        if not isinstance(item, dict):
            raise ValidationError(f"lines[{index}] must be an object")
        ref = MaterialRef.of(
            item.get("category"),
            parse_int(item.get("material_id"), f"lines[{index}].material_id", minimum=1),
        )
        lines.append((ref, parse_positive_int(item.get("quantity"), f"lines[{index}].quantity")))
    return lines


def _parse_line_quantities(raw, quantity_key: str, *, allow_empty: bool) -> list:
    pairs = []
    for index, item in enumerate(parse_list(raw, "lines", allow_empty=allow_empty)):
        if not isinstance(item, dict):
            raise ValidationError(f"lines[{index}] must be an object")
        pairs.append((
            parse_int(item.get("line_id"), f"lines[{index}].line_id", minimum=1),
            parse_int(item.get(quantity_key), f"lines[{index}].{quantity_key}", minimum=0),
        ))
    return pairs


# =============================================================================
# CREATION & READS
# =============================================================================

@requests_bp.post("")
@require_auth
@require_permission("CREATE_REQUEST")
def create_request_route():
    """
    Create a loan request.

    Request body:
    {
        "lines": [{"category": "liquid", "material_id": 3, "quantity": 250}],
        "pickup_date": "2025-03-12",
        "return_due_date": "2025-03-14",
        "approver_id": 7  (optional, instructor who should approve)
    }

    Returns:
        201: Request created (pending, or approved for instructors)
        400: Invalid input / insufficient stock on auto-approval
        403: Role cannot create requests
    """
    try:
        data = validate_payload(request.get_json(silent=True), CREATE_POLICY)
        lines = _parse_request_lines(data["lines"])
        pickup_date = parse_date(data["pickup_date"], "pickup_date")
        return_due_date = parse_date(data["return_due_date"], "return_due_date")
        approver_id = data.get("approver_id")
        if approver_id is not None:
            approver_id = parse_int(approver_id, "approver_id", minimum=1)

        req = request_service.create_request(
            db.session,
            g.identity,
            lines,
            pickup_date,
            return_due_date,
            approver_id=approver_id,
            pickup_grace_days=current_app.config["PICKUP_GRACE_DAYS"],
            clock=runtime("clock"),
            notifier=runtime("notifier"),
        )
        return jsonify({"request": request_service.describe_request(db.session, req)}), 201

    except LoanError as e:
        return jsonify(e.to_dict()), e.status_code
    except Exception:
        current_app.logger.exception("Failed to create request")
        return jsonify({"error": "Internal server error"}), 500


@requests_bp.get("")
@require_auth
def list_requests_route():
    """
    List requests, newest first. Optional ?status= filter.

    Staff see every request; instructors see the ones addressed to them;
    students see their own.
    """
    try:
        status = request.args.get("status") or None
        identity = g.identity
        if has_permission(identity, "VIEW_ALL_REQUESTS"):
            requester_id = request.args.get("requester_id", type=int)
            rows = request_service.list_requests(db.session, requester_id=requester_id, status=status)
        elif identity.role == "instructor":
            rows = request_service.list_requests(db.session, approver_id=identity.user_id, status=status)
        else:
            rows = request_service.list_requests(db.session, requester_id=identity.user_id, status=status)
        return jsonify({"requests": [r.to_dict(include_lines=False) for r in rows]}), 200

    except LoanError as e:
        return jsonify(e.to_dict()), e.status_code
    except Exception:
        current_app.logger.exception("Failed to list requests")
        return jsonify({"error": "Internal server error"}), 500


@requests_bp.get("/<int:request_id>")
@require_auth
def get_request_route(request_id: int):
    try:
        req = request_service.get_request(db.session, request_id, viewer=g.identity)
        return jsonify({"request": request_service.describe_request(db.session, req)}), 200

    except LoanError as e:
        return jsonify(e.to_dict()), e.status_code
    except Exception:
        current_app.logger.exception("Failed to get request")
        return jsonify({"error": "Internal server error"}), 500


# =============================================================================
# TRANSITIONS
# =============================================================================

@requests_bp.put("/<int:request_id>/approve")
@require_auth
@require_permission("APPROVE_REQUEST")
def approve_request_route(request_id: int):
    """
    Approve a pending request, reserving stock for every line.

    Returns:
        200: Approved
        400: Insufficient stock (names the material)
        404: Request not found
        409: Request is not pending
    """
    try:
        req = request_service.approve_request(
            db.session,
            request_id,
            actor=g.identity,
            clock=runtime("clock"),
            notifier=runtime("notifier"),
        )
        return jsonify({"request": request_service.describe_request(db.session, req)}), 200

    except LoanError as e:
        return jsonify(e.to_dict()), e.status_code
    except Exception:
        current_app.logger.exception("Failed to approve request")
        return jsonify({"error": "Internal server error"}), 500


@requests_bp.put("/<int:request_id>/reject")
@require_auth
@require_permission("APPROVE_REQUEST")
def reject_request_route(request_id: int):
    try:
        snapshot = request_service.reject_request(
            db.session,
            request_id,
            actor=g.identity,
            notifier=runtime("notifier"),
        )
        return jsonify({"request": snapshot}), 200

    except LoanError as e:
        return jsonify(e.to_dict()), e.status_code
    except Exception:
        current_app.logger.exception("Failed to reject request")
        return jsonify({"error": "Internal server error"}), 500


@requests_bp.put("/<int:request_id>/cancel")
@require_auth
def cancel_request_route(request_id: int):
    """
    Cancel a request.

    The requester's own pending request is deleted ("deleted": true).
    Staff cancellation keeps the request as 'cancelled' ("deleted": false).
    """
    try:
        snapshot = request_service.cancel_request(
            db.session,
            request_id,
            actor=g.identity,
            clock=runtime("clock"),
            notifier=runtime("notifier"),
        )
        return jsonify({"request": snapshot}), 200

    except LoanError as e:
        return jsonify(e.to_dict()), e.status_code
    except Exception:
        current_app.logger.exception("Failed to cancel request")
        return jsonify({"error": "Internal server error"}), 500


@requests_bp.put("/<int:request_id>/deliver")
@require_auth
@require_permission("DELIVER_REQUEST")
def deliver_request_route(request_id: int):
    """
    Deliver an approved request.

    Request body:
    {
        "lines": [{"line_id": 11, "delivered_quantity": 6}]
    }

    Lines left out are not delivered; an empty list is allowed.
    """
    try:
        data = validate_payload(request.get_json(silent=True), DELIVER_POLICY)
        delivered = _parse_line_quantities(data["lines"], "delivered_quantity", allow_empty=True)

        req = request_service.deliver_request(
            db.session,
            request_id,
            delivered,
            actor=g.identity,
            clock=runtime("clock"),
            notifier=runtime("notifier"),
        )
        return jsonify({"request": request_service.describe_request(db.session, req)}), 200

    except LoanError as e:
        return jsonify(e.to_dict()), e.status_code
    except Exception:
        current_app.logger.exception("Failed to deliver request")
        return jsonify({"error": "Internal server error"}), 500


@requests_bp.put("/<int:request_id>/return")
@require_auth
@require_permission("RECEIVE_RETURN")
def return_request_route(request_id: int):
    """
    Register returned material.

    Request body:
    {
        "lines": [{"line_id": 11, "returned_quantity": 3}]
    }

    Returns:
        200: {"result": {"closed": bool, "open_debts": [...]}}
        400: Over-return or invalid quantity
        404: Request (or debt for a line) not found
    """
    try:
        data = validate_payload(request.get_json(silent=True), RETURN_POLICY)
        returns = _parse_line_quantities(data["lines"], "returned_quantity", allow_empty=False)

        outcome = debt_service.resolve_partial(
            db.session,
            request_id,
            returns,
            actor_id=g.identity.user_id,
            notifier=runtime("notifier"),
        )
        return jsonify({"result": outcome.to_dict()}), 200

    except LoanError as e:
        return jsonify(e.to_dict()), e.status_code
    except Exception:
        current_app.logger.exception("Failed to register return")
        return jsonify({"error": "Internal server error"}), 500


@requests_bp.post("/<int:request_id>/notify-overdue")
@require_auth
@require_permission("NOTIFY_OVERDUE")
def notify_overdue_route(request_id: int):
    try:
        count = debt_service.notify_overdue(
            db.session,
            request_id,
            clock=runtime("clock"),
            notifier=runtime("notifier"),
        )
        return jsonify({"overdue_items": count}), 200

    except LoanError as e:
        return jsonify(e.to_dict()), e.status_code
    except Exception:
        current_app.logger.exception("Failed to send overdue notice")
        return jsonify({"error": "Internal server error"}), 500
