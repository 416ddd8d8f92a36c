# backend/rentmarket/routes/coupons.py
"""
Coupon API Routes

- POST /api/coupons/validate   - Preview a coupon against an order amount

Coupon CRUD lives under /api/vendor/coupons (vendor-scoped) and
/api/admin/coupons (platform-wide); both share the handlers below.
"""

from flask import Blueprint, request, jsonify, current_app

from ..services import coupon_service
from ..services.coupon_service import CouponError
from ..validation import NotFoundError, ValidationError, parse_money_cents, parse_positive_int, require_fields
from ..decorators import require_auth


coupons_bp = Blueprint("coupons", __name__, url_prefix="/api/coupons")


@coupons_bp.post("/validate")
@require_auth
def validate_coupon_route():
    """
    Body:
        {"code": "WELCOME10", "order_amount_cents": 45000, "vendor_id": 1}

    order_amount may be sent instead as a major-unit string ("450.00").
    """
    try:
        data = require_fields(request.get_json(silent=True), "code")
        if data.get("order_amount_cents") is not None:
            amount = parse_positive_int(data["order_amount_cents"], "order_amount_cents", allow_zero=True)
        else:
            amount = parse_money_cents(data.get("order_amount"), "order_amount")
        vendor_id = data.get("vendor_id")
        result = coupon_service.validate_coupon(
            data["code"],
            amount,
            vendor_id=parse_positive_int(vendor_id, "vendor_id") if vendor_id is not None else None,
        )
        return jsonify({"valid": True, **result}), 200
    except NotFoundError as e:
        return jsonify({"valid": False, "error": str(e)}), 404
    except (CouponError, ValidationError) as e:
        return jsonify({"valid": False, "error": str(e)}), 400
    except Exception:
        current_app.logger.exception("Failed to validate coupon")
        return jsonify({"error": "Internal server error"}), 500


# ---------------------------------------------------------------------------
# Shared CRUD handlers
# ---------------------------------------------------------------------------

def _coupon_call(op, description: str, status: int = 200):
    try:
        return op(), status
    except NotFoundError as e:
        return {"error": str(e)}, 404
    except (CouponError, ValidationError) as e:
        return {"error": str(e)}, 400
    except Exception:
        current_app.logger.exception("Failed to %s", description)
        return {"error": "Internal server error"}, 500


def list_coupons_response(vendor_id):
    body, status = _coupon_call(
        lambda: {"items": [c.to_dict() for c in coupon_service.list_coupons(vendor_id=vendor_id)]},
        "list coupons",
    )
    return jsonify(body), status


def create_coupon_response(*, vendor_id, user_id):
    data = request.get_json(silent=True) or {}
    body, status = _coupon_call(
        lambda: {"coupon": coupon_service.create_coupon(data, vendor_id=vendor_id, user_id=user_id).to_dict()},
        "create coupon",
        201,
    )
    return jsonify(body), status


def get_coupon_response(coupon_id: int, *, vendor_id):
    body, status = _coupon_call(
        lambda: {"coupon": coupon_service.get_coupon(coupon_id, vendor_id=vendor_id).to_dict()},
        "get coupon",
    )
    return jsonify(body), status


def update_coupon_response(coupon_id: int, *, vendor_id):
    data = request.get_json(silent=True) or {}
    body, status = _coupon_call(
        lambda: {"coupon": coupon_service.update_coupon(coupon_id, data, vendor_id=vendor_id).to_dict()},
        "update coupon",
    )
    return jsonify(body), status


def delete_coupon_response(coupon_id: int, *, vendor_id):
    def _op():
        coupon_service.delete_coupon(coupon_id, vendor_id=vendor_id)
        return {"message": "Coupon deleted"}

    body, status = _coupon_call(_op, "delete coupon")
    return jsonify(body), status
