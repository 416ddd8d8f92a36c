# backend/rentmarket/routes/notifications.py
"""
Rental Expiry Notification Routes

- GET  /api/notifications                  - Reminder history (admin: all, customer: own)
- POST /api/notifications/check-expiring   - Run one notifier pass now (admin)
"""

from flask import Blueprint, request, jsonify, g, current_app

from ..services import notification_service
from ..models.users import ROLE_ADMIN
from ..validation import ValidationError, parse_positive_int
from ..decorators import require_auth, require_role


notifications_bp = Blueprint("notifications", __name__, url_prefix="/api/notifications")


@notifications_bp.get("")
@require_auth
def list_notifications_route():
    try:
        limit = parse_positive_int(request.args.get("limit", 100), "limit")
    except ValidationError as e:
        return jsonify({"error": str(e)}), 400
    items = notification_service.list_notifications(g.current_user, limit=min(limit, 500))
    return jsonify({"items": [n.to_dict() for n in items]}), 200


@notifications_bp.post("/check-expiring")
@require_auth
@require_role(ROLE_ADMIN)
def check_expiring_route():
    try:
        summary = notification_service.check_and_notify_expiring_rentals()
        return jsonify(summary), 200
    except Exception:
        current_app.logger.exception("Expiry check failed")
        return jsonify({"error": "Internal server error"}), 500
