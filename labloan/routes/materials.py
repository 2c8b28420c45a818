# Overview: Flask API routes for material stock; parses input and returns JSON responses.

"""
Material stock routes.

SECURITY: All routes require authentication.
- View operations require VIEW_STOCK permission
- Adjustments require ADJUST_STOCK (storekeepers only with stock access)
"""

from flask import Blueprint, request, jsonify, g, current_app

from ..categories import MaterialRef, category_store
from ..errors import LoanError, ValidationError
from ..extensions import db
from ..services import stock_ledger
from ..services.concurrency import atomic
from ..validation import PayloadPolicy, validate_payload, parse_list
from ..decorators import require_auth, require_permission


materials_bp = Blueprint("materials", __name__, url_prefix="/api/materials")

ADJUST_POLICY = PayloadPolicy(
    writable_fields={"category", "quantity", "note"},
    required={"category", "quantity"},
)

BULK_ADJUST_POLICY = PayloadPolicy(writable_fields={"adjustments"}, required={"adjustments"})


@materials_bp.get("")
@require_auth
@require_permission("VIEW_STOCK")
def list_materials_route():
    try:
        category = request.args.get("category") or None
        return jsonify({"materials": stock_ledger.list_materials(db.session, category)}), 200

    except LoanError as e:
        return jsonify(e.to_dict()), e.status_code
    except Exception:
        current_app.logger.exception("Failed to list materials")
        return jsonify({"error": "Internal server error"}), 500


@materials_bp.get("/<category>/<int:material_id>")
@require_auth
@require_permission("VIEW_STOCK")
def get_material_route(category: str, material_id: int):
    """Current stock plus the latest movements (newest first, ?limit= up to 500)."""
    try:
        ref = MaterialRef.of(category, material_id)
        material = stock_ledger.get_material(db.session, ref)
        limit = max(1, min(request.args.get("limit", default=100, type=int) or 100, 500))
        movements = stock_ledger.list_movements(db.session, ref, limit=limit)
        return jsonify({
            "material": category_store(ref.category).describe(material),
            "movements": [m.to_dict() for m in movements],
        }), 200

    except LoanError as e:
        return jsonify(e.to_dict()), e.status_code
    except Exception:
        current_app.logger.exception("Failed to get material")
        return jsonify({"error": "Internal server error"}), 500


@materials_bp.post("/<int:material_id>/adjust")
@require_auth
@require_permission("ADJUST_STOCK")
def adjust_material_route(material_id: int):
    """
    Set stock to an absolute value (physical count correction).

    Request body:
    {
        "category": "solid",
        "quantity": 480,
        "note": "recount"  (optional)
    }

    Returns:
        200: Adjusted; movement carries delta = new - old
        400: Negative or invalid quantity
        403: No stock permission
        404: Material not found
    """
    try:
        data = validate_payload(request.get_json(silent=True), ADJUST_POLICY)
        ref = MaterialRef.of(data["category"], material_id)

        with atomic(db.session):
            movement = stock_ledger.set_absolute(
                db.session,
                ref,
                data["quantity"],
                actor_id=g.identity.user_id,
                note=data.get("note"),
            )
            movement_data = movement.to_dict()

        return jsonify({
            "material": category_store(ref.category).describe(stock_ledger.get_material(db.session, ref)),
            "movement": movement_data,
        }), 200

    except LoanError as e:
        return jsonify(e.to_dict()), e.status_code
    except Exception:
        current_app.logger.exception("Failed to adjust material stock")
        return jsonify({"error": "Internal server error"}), 500


@materials_bp.post("/bulk-adjust")
@require_auth
@require_permission("ADJUST_STOCK")
def bulk_adjust_route():
    """
    Apply relative deltas item by item.

    Request body:
    {
        "adjustments": [{"category": "liquid", "material_id": 1, "delta": -20}]
    }

    Items are independent: a rejected item does not undo the others. The
    response is 200 when every item applied, 400 otherwise; both carry
    per-item results.
    """
    try:
        data = validate_payload(request.get_json(silent=True), BULK_ADJUST_POLICY)
        items = []
        for index, item in enumerate(parse_list(data["adjustments"], "adjustments")):
            if not isinstance(item, dict):
                raise ValidationError(f"adjustments[{index}] must be an object")
            items.append((item.get("category"), item.get("material_id"), item.get("delta")))

        results = stock_ledger.bulk_adjust_relative(db.session, items, actor_id=g.identity.user_id)
        all_ok = all(r.ok for r in results)
        body = {"results": [r.to_dict() for r in results], "applied": sum(1 for r in results if r.ok)}
        if not all_ok:
            body["error"] = "One or more adjustments were rejected"
        return jsonify(body), 200 if all_ok else 400

    except LoanError as e:
        return jsonify(e.to_dict()), e.status_code
    except Exception:
        current_app.logger.exception("Failed to apply bulk adjustment")
        return jsonify({"error": "Internal server error"}), 500
