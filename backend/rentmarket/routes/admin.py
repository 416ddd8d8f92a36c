# backend/rentmarket/routes/admin.py
"""
Admin API Routes

Users:
- GET   /api/admin/users                 - List users (?role=, ?q=)
- GET   /api/admin/users/:id             - User detail
- PATCH /api/admin/users/:id/status      - Activate / deactivate ({"is_active": false})

Orders:
- GET   /api/admin/orders                - Every order (?status=)

Settings:
- GET   /api/admin/settings              - Merged settings + rental periods
- PUT   /api/admin/settings              - {"settings": {...}, "rental_periods": [...]}

Scheduler:
- GET   /api/admin/scheduler             - Expiry scheduler status
- POST  /api/admin/scheduler             - {"action": "start"|"stop"|"run", "interval_minutes": 5}

Coupons (platform-wide):
- GET/POST        /api/admin/coupons
- GET/PUT/DELETE  /api/admin/coupons/:id

Audit:
- GET   /api/admin/audit-log             - ?entity=&entity_id=&limit=
"""

from flask import Blueprint, request, jsonify, g, current_app
import sqlalchemy as sa

from ..extensions import db
from ..models import User
from ..models.users import ROLE_ADMIN, VALID_ROLES
from ..services import audit_service, auth_service, order_service, settings_service
from ..services.order_service import OrderLifecycleError
from ..services.settings_service import SettingsValidationError
from ..services.scheduler import get_scheduler
from ..validation import NotFoundError, ValidationError, parse_positive_int
from ..decorators import require_auth, require_role
from . import coupons as coupon_handlers


admin_bp = Blueprint("admin", __name__, url_prefix="/api/admin")


# ---------------------------------------------------------------------------
# Users
# ---------------------------------------------------------------------------

@admin_bp.get("/users")
@require_auth
@require_role(ROLE_ADMIN)
def list_users_route():
    try:
        query = db.session.query(User)
        role = (request.args.get("role") or "").strip().upper()
        if role:
            if role not in VALID_ROLES:
                return jsonify({"error": f"Invalid role '{role}'"}), 400
            query = query.filter(User.role == role)
        q = (request.args.get("q") or "").strip()
        if q:
            like = f"%{q.lower()}%"
            query = query.filter(sa.or_(
                sa.func.lower(User.email).like(like),
                sa.func.lower(User.first_name).like(like),
                sa.func.lower(User.last_name).like(like),
            ))
        users = query.order_by(User.id.asc()).all()
        return jsonify({"items": [u.to_dict() for u in users], "count": len(users)}), 200
    except Exception:
        current_app.logger.exception("Failed to list users")
        return jsonify({"error": "Internal server error"}), 500


@admin_bp.get("/users/<int:user_id>")
@require_auth
@require_role(ROLE_ADMIN)
def get_user_route(user_id: int):
    user = db.session.get(User, user_id)
    if user is None:
        return jsonify({"error": f"User {user_id} not found"}), 404
    return jsonify({"user": user.to_dict()}), 200


@admin_bp.patch("/users/<int:user_id>/status")
@require_auth
@require_role(ROLE_ADMIN)
def set_user_status_route(user_id: int):
    data = request.get_json(silent=True) or {}
    if not isinstance(data.get("is_active"), bool):
        return jsonify({"error": "is_active must be true or false"}), 400
    try:
        user = auth_service.set_user_active(user_id, data["is_active"], acting_user_id=g.current_user.id)
        audit_service.record(
            user_id=g.current_user.id,
            action="USER_ACTIVATED" if user.is_active else "USER_DEACTIVATED",
            entity="User",
            entity_id=user.id,
        )
        db.session.commit()
        return jsonify({"user": user.to_dict()}), 200
    except NotFoundError as e:
        return jsonify({"error": str(e)}), 404
    except ValidationError as e:
        return jsonify({"error": str(e)}), 400
    except Exception:
        current_app.logger.exception("Failed to update user %s", user_id)
        return jsonify({"error": "Internal server error"}), 500


# ---------------------------------------------------------------------------
# Orders
# ---------------------------------------------------------------------------

@admin_bp.get("/orders")
@require_auth
@require_role(ROLE_ADMIN)
def list_all_orders_route():
    try:
        orders = order_service.list_orders(g.current_user, status=request.args.get("status"))
        return jsonify({
            "items": [o.to_dict(include_lines=False) for o in orders],
            "count": len(orders),
            "by_status": order_service.count_by_status(),
        }), 200
    except OrderLifecycleError as e:
        return jsonify({"error": str(e)}), 400
    except Exception:
        current_app.logger.exception("Failed to list orders")
        return jsonify({"error": "Internal server error"}), 500


# ---------------------------------------------------------------------------
# Settings
# ---------------------------------------------------------------------------

def _settings_body() -> dict:
    return {
        "settings": settings_service.get_system_settings(),
        "rental_periods": [p.to_dict() for p in settings_service.get_rental_periods()],
    }


@admin_bp.get("/settings")
@require_auth
@require_role(ROLE_ADMIN)
def get_settings_route():
    return jsonify(_settings_body()), 200


@admin_bp.put("/settings")
@require_auth
@require_role(ROLE_ADMIN)
def update_settings_route():
    """
    Either key may be omitted; at least one must be present.

    Body:
        {
            "settings": {"gst_percentage": 12, "email_notifications": false},
            "rental_periods": [{"id": 1, "name": "Hourly", "unit": "HOUR", "duration": 1}]
        }
    """
    data = request.get_json(silent=True)
    if not isinstance(data, dict) or not ({"settings", "rental_periods"} & data.keys()):
        return jsonify({"error": "Provide settings and/or rental_periods"}), 400
    try:
        if "settings" in data:
            settings_service.update_settings(data["settings"], user_id=g.current_user.id)
        if "rental_periods" in data:
            settings_service.replace_rental_periods(data["rental_periods"], user_id=g.current_user.id)
        return jsonify(_settings_body()), 200
    except SettingsValidationError as e:
        db.session.rollback()
        return jsonify({"error": str(e)}), 400
    except Exception:
        current_app.logger.exception("Failed to update settings")
        return jsonify({"error": "Internal server error"}), 500


# ---------------------------------------------------------------------------
# Scheduler
# ---------------------------------------------------------------------------

@admin_bp.get("/scheduler")
@require_auth
@require_role(ROLE_ADMIN)
def scheduler_status_route():
    scheduler = get_scheduler(current_app._get_current_object())
    return jsonify({"scheduler": scheduler.status()}), 200


@admin_bp.post("/scheduler")
@require_auth
@require_role(ROLE_ADMIN)
def scheduler_control_route():
    data = request.get_json(silent=True) or {}
    action = str(data.get("action") or "").strip().lower()
    scheduler = get_scheduler(current_app._get_current_object())

    if action == "start":
        raw = data.get("interval_minutes", current_app.config["EXPIRY_CHECK_INTERVAL_MINUTES"])
        try:
            interval = parse_positive_int(raw, "interval_minutes")
        except ValidationError as e:
            return jsonify({"error": str(e)}), 400
        changed = scheduler.start(interval_minutes=interval)
        message = "Scheduler started" if changed else "Scheduler already running"
    elif action == "stop":
        changed = scheduler.stop()
        message = "Scheduler stopped" if changed else "Scheduler was not running"
    elif action == "run":
        scheduler.run_once()
        message = "Expiry check executed"
    else:
        return jsonify({"error": "action must be one of: start, stop, run"}), 400

    audit_service.record(
        user_id=g.current_user.id,
        action=f"SCHEDULER_{action.upper()}",
        entity="Scheduler",
        metadata={"message": message},
    )
    db.session.commit()
    return jsonify({"message": message, "scheduler": scheduler.status()}), 200


# ---------------------------------------------------------------------------
# Coupons
# ---------------------------------------------------------------------------

def _vendor_scope_from_body():
    raw = (request.get_json(silent=True) or {}).get("vendor_id")
    return parse_positive_int(raw, "vendor_id") if raw is not None else None


@admin_bp.get("/coupons")
@require_auth
@require_role(ROLE_ADMIN)
def list_coupons_route():
    return coupon_handlers.list_coupons_response(None)


@admin_bp.post("/coupons")
@require_auth
@require_role(ROLE_ADMIN)
def create_coupon_route():
    try:
        vendor_id = _vendor_scope_from_body()
    except ValidationError as e:
        return jsonify({"error": str(e)}), 400
    return coupon_handlers.create_coupon_response(vendor_id=vendor_id, user_id=g.current_user.id)


@admin_bp.get("/coupons/<int:coupon_id>")
@require_auth
@require_role(ROLE_ADMIN)
def get_coupon_route(coupon_id: int):
    return coupon_handlers.get_coupon_response(coupon_id, vendor_id=None)


@admin_bp.put("/coupons/<int:coupon_id>")
@require_auth
@require_role(ROLE_ADMIN)
def update_coupon_route(coupon_id: int):
    return coupon_handlers.update_coupon_response(coupon_id, vendor_id=None)


@admin_bp.delete("/coupons/<int:coupon_id>")
@require_auth
@require_role(ROLE_ADMIN)
def delete_coupon_route(coupon_id: int):
    return coupon_handlers.delete_coupon_response(coupon_id, vendor_id=None)


# ---------------------------------------------------------------------------
# Audit log
# ---------------------------------------------------------------------------

@admin_bp.get("/audit-log")
@require_auth
@require_role(ROLE_ADMIN)
def audit_log_route():
    try:
        limit = parse_positive_int(request.args.get("limit", 100), "limit")
    except ValidationError as e:
        return jsonify({"error": str(e)}), 400
    entries = audit_service.list_entries(
        entity=request.args.get("entity"),
        entity_id=request.args.get("entity_id"),
        limit=min(limit, 500),
    )
    return jsonify({"items": [e.to_dict() for e in entries]}), 200
