# Overview: Flask API routes for the caller's notification inbox.

from flask import Blueprint, request, jsonify, g, current_app

from ..errors import LoanError, NotFoundError
from ..extensions import db
from ..models import Notification
from ..services.concurrency import atomic
from ..decorators import require_auth


notifications_bp = Blueprint("notifications", __name__, url_prefix="/api/notifications")


@notifications_bp.get("")
@require_auth
def list_notifications_route():
    """Own notifications, newest first. ?unread=1 hides the ones already read."""
    try:
        query = db.session.query(Notification).filter(Notification.user_id == g.identity.user_id)
        if request.args.get("unread") in ("1", "true"):
            query = query.filter(Notification.is_read.is_(False))
        limit = max(1, min(request.args.get("limit", default=50, type=int) or 50, 200))
        rows = query.order_by(Notification.created_at.desc(), Notification.id.desc()).limit(limit).all()
        return jsonify({"notifications": [n.to_dict() for n in rows]}), 200

    except LoanError as e:
        return jsonify(e.to_dict()), e.status_code
    except Exception:
        current_app.logger.exception("Failed to list notifications")
        return jsonify({"error": "Internal server error"}), 500


@notifications_bp.put("/<int:notification_id>/read")
@require_auth
def mark_read_route(notification_id: int):
    try:
        with atomic(db.session):
            notification = db.session.get(Notification, notification_id)
            if notification is None or notification.user_id != g.identity.user_id:
                raise NotFoundError(f"Notification {notification_id} not found")
            notification.is_read = True
            data = notification.to_dict()
        return jsonify({"notification": data}), 200

    except LoanError as e:
        return jsonify(e.to_dict()), e.status_code
    except Exception:
        current_app.logger.exception("Failed to mark notification as read")
        return jsonify({"error": "Internal server error"}), 500
