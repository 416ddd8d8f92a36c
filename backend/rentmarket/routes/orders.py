# backend/rentmarket/routes/orders.py
"""
Rental Order API Routes

- GET  /api/orders                 - Orders visible to the caller (optional ?status=)
- POST /api/orders                 - Create a QUOTATION (customers)
- GET  /api/orders/:id             - Order detail
- POST /api/orders/:id/send        - QUOTATION -> SENT (owning vendor)
- POST /api/orders/:id/confirm     - SENT -> CONFIRMED, reserves inventory (owning vendor)
- POST /api/orders/:id/pickup      - CONFIRMED -> PICKED_UP (vendor/admin)
- POST /api/orders/:id/return      - PICKED_UP -> RETURNED, computes late fee
- POST /api/orders/:id/cancel      - cancel before pickup, releases inventory (customers: QUOTATION/SENT only)

Error responses:
    400: invalid input or invalid state transition
    403: caller may not act on this order
    404: order not found
    409: not enough units for the rental window
"""

from flask import Blueprint, request, jsonify, g, current_app

from ..services import order_service
from ..services.order_service import OrderLifecycleError, OrderAccessError
from ..services.reservation_service import AvailabilityError
from ..services.coupon_service import CouponError
from ..models.users import ROLE_CUSTOMER
from ..validation import NotFoundError, ValidationError, parse_datetime_field, parse_positive_int, require_fields
from ..decorators import require_auth, require_role


orders_bp = Blueprint("orders", __name__, url_prefix="/api/orders")


def _transition_response(op, order_id: int, message: str, **kwargs):
    try:
        order = op(order_id, user=g.current_user, **kwargs)
        return jsonify({"order": order.to_dict(), "message": message.format(number=order.order_number)}), 200
    except NotFoundError as e:
        return jsonify({"error": str(e)}), 404
    except OrderAccessError as e:
        return jsonify({"error": str(e)}), 403
    except AvailabilityError as e:
        return jsonify({"error": str(e), "availability": [r.to_dict() for r in e.results]}), 409
    except (OrderLifecycleError, CouponError, ValidationError) as e:
        return jsonify({"error": str(e)}), 400
    except Exception:
        current_app.logger.exception("Failed to update order %s", order_id)
        return jsonify({"error": "Internal server error"}), 500


@orders_bp.get("")
@require_auth
def list_orders_route():
    try:
        orders = order_service.list_orders(g.current_user, status=request.args.get("status"))
        return jsonify({"items": [o.to_dict(include_lines=False) for o in orders], "count": len(orders)}), 200
    except OrderLifecycleError as e:
        return jsonify({"error": str(e)}), 400
    except Exception:
        current_app.logger.exception("Failed to list orders")
        return jsonify({"error": "Internal server error"}), 500


@orders_bp.post("")
@require_auth
@require_role(ROLE_CUSTOMER)
def create_order_route():
    """
    Create a priced quotation.

    Body:
        {
            "vendor_id": 1,
            "start_date": "2024-03-15T10:00:00Z",
            "end_date": "2024-03-18T10:00:00Z",
            "lines": [{"product_id": 1, "quantity": 2, "rental_period_id": 2}],
            "coupon_code": "WELCOME10",
            "notes": "..."
        }
    """
    try:
        data = require_fields(request.get_json(silent=True), "vendor_id", "start_date", "end_date", "lines")
        customer = g.current_user.customer_profile
        if customer is None:
            return jsonify({"error": "Customer profile not found"}), 400

        order = order_service.create_order(
            customer=customer,
            vendor_id=parse_positive_int(data["vendor_id"], "vendor_id"),
            start_date=parse_datetime_field(data, "start_date"),
            end_date=parse_datetime_field(data, "end_date"),
            lines=data["lines"],
            coupon_code=data.get("coupon_code"),
            notes=data.get("notes"),
            user_id=g.current_user.id,
        )
        return jsonify({"order": order.to_dict()}), 201
    except NotFoundError as e:
        return jsonify({"error": str(e)}), 404
    except (ValidationError, CouponError) as e:
        return jsonify({"error": str(e)}), 400
    except Exception:
        current_app.logger.exception("Failed to create order")
        return jsonify({"error": "Internal server error"}), 500


@orders_bp.get("/<int:order_id>")
@require_auth
def get_order_route(order_id: int):
    try:
        order = order_service.get_order_for_user(order_id, g.current_user)
        data = order.to_dict()
        data["invoices"] = [
            {"id": inv.id, "invoice_number": inv.invoice_number, "kind": inv.kind, "status": inv.status}
            for inv in order.invoices
        ]
        return jsonify({"order": data}), 200
    except NotFoundError as e:
        return jsonify({"error": str(e)}), 404
    except OrderAccessError as e:
        return jsonify({"error": str(e)}), 403
    except Exception:
        current_app.logger.exception("Failed to get order")
        return jsonify({"error": "Internal server error"}), 500


@orders_bp.post("/<int:order_id>/send")
@require_auth
def send_order_route(order_id: int):
    return _transition_response(order_service.send_order, order_id, "Order {number} sent")


@orders_bp.post("/<int:order_id>/confirm")
@require_auth
def confirm_order_route(order_id: int):
    """
    SENT -> CONFIRMED.

    CRITICAL: inventory is reserved here. If any product lacks units for the
    window the order stays SENT and 409 lists per-product availability.
    """
    return _transition_response(order_service.confirm_order, order_id, "Order {number} confirmed")


@orders_bp.post("/<int:order_id>/pickup")
@require_auth
def pickup_order_route(order_id: int):
    return _transition_response(order_service.pickup_order, order_id, "Order {number} picked up")


@orders_bp.post("/<int:order_id>/return")
@require_auth
def return_order_route(order_id: int):
    """
    PICKED_UP -> RETURNED.

    Body (optional): {"return_date": "..."} defaults to now.
    """
    data = request.get_json(silent=True) or {}
    try:
        return_date = parse_datetime_field(data, "return_date", required=False)
    except ValidationError as e:
        return jsonify({"error": str(e)}), 400
    return _transition_response(order_service.return_order, order_id, "Order {number} returned", return_date=return_date)


@orders_bp.post("/<int:order_id>/cancel")
@require_auth
def cancel_order_route(order_id: int):
    data = request.get_json(silent=True) or {}
    return _transition_response(order_service.cancel_order, order_id, "Order {number} cancelled", reason=data.get("reason"))
