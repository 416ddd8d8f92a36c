# Overview: Flask API routes for the public catalog and availability checks; parses input and returns JSON responses.

from flask import Blueprint, request, jsonify, current_app

from ..services import product_service, reservation_service
from ..services.reservation_service import CartItem
from ..validation import (
    NotFoundError,
    ValidationError,
    parse_datetime_field,
    parse_positive_int,
    require_fields,
    validate_window,
)
from rentmarket.time_utils import utcnow, parse_iso_datetime


products_bp = Blueprint("products", __name__, url_prefix="/api/products")
cart_bp = Blueprint("cart", __name__, url_prefix="/api/cart")


@products_bp.get("")
def list_products_route():
    """
    Published products.

    Query: search, vendor_id, category, page, per_page
    """
    try:
        vendor_id = request.args.get("vendor_id", type=int)
        page = request.args.get("page", type=int)
        per_page = request.args.get("per_page", type=int)
        result = product_service.list_public_products(
            search=request.args.get("search"),
            vendor_id=vendor_id,
            category=request.args.get("category"),
            page=page,
            per_page=per_page,
        )
        return jsonify(result), 200
    except Exception:
        current_app.logger.exception("Failed to list products")
        return jsonify({"error": "Internal server error"}), 500


@products_bp.get("/<int:product_id>")
def get_product_route(product_id: int):
    try:
        product = product_service.get_public_product(product_id)
        return jsonify({"product": product.to_dict()}), 200
    except NotFoundError as e:
        return jsonify({"error": str(e)}), 404
    except Exception:
        current_app.logger.exception("Failed to get product")
        return jsonify({"error": "Internal server error"}), 500


@products_bp.post("/<int:product_id>/availability")
def availability_route(product_id: int):
    """
    Availability of a product over [start_date, end_date).

    Body: start_date, end_date, requested_quantity

    Response: AvailabilityResult with status FULL, PARTIAL or NONE.
    """
    try:
        data = require_fields(request.get_json(silent=True), "start_date", "end_date")
        start = parse_datetime_field(data, "start_date")
        end = parse_datetime_field(data, "end_date")
        validate_window(start, end)
        if start < utcnow():
            raise ValidationError("Start date cannot be in the past")
        requested = parse_positive_int(data.get("requested_quantity", 1), "requested_quantity", allow_zero=True)

        product_service.get_public_product(product_id)
        result = reservation_service.check_availability(product_id, start, end, requested)
        return jsonify(result.to_dict()), 200
    except NotFoundError as e:
        return jsonify({"error": str(e)}), 404
    except ValidationError as e:
        return jsonify({"error": str(e)}), 400
    except Exception:
        current_app.logger.exception("Failed to check availability")
        return jsonify({"error": "Internal server error"}), 500


@products_bp.get("/<int:product_id>/rental-status")
def rental_status_route(product_id: int):
    """Units currently out on rent. Optional query `at` (ISO-8601)."""
    try:
        at_raw = request.args.get("at")
        try:
            at = parse_iso_datetime(at_raw) if at_raw else None
        except ValueError:
            return jsonify({"error": "at must be an ISO-8601 datetime"}), 400
        return jsonify(reservation_service.get_rental_status(product_id, at)), 200
    except NotFoundError as e:
        return jsonify({"error": str(e)}), 404
    except Exception:
        current_app.logger.exception("Failed to get rental status")
        return jsonify({"error": "Internal server error"}), 500


@cart_bp.post("/validate-availability")
def validate_cart_route():
    """
    Body: {"items": [{"product_id", "quantity", "start_date"?, "end_date"?}]}
    """
    try:
        data = request.get_json(silent=True) or {}
        raw_items = data.get("items")
        if not isinstance(raw_items, list):
            return jsonify({"error": "items must be a list"}), 400

        items = []
        for raw in raw_items:
            if not isinstance(raw, dict):
                return jsonify({"error": "Each item must be an object"}), 400
            start = parse_datetime_field(raw, "start_date", required=False)
            end = parse_datetime_field(raw, "end_date", required=False)
            if start and end:
                validate_window(start, end)
            items.append(CartItem(
                product_id=parse_positive_int(raw.get("product_id"), "product_id"),
                quantity=parse_positive_int(raw.get("quantity", 1), "quantity"),
                start=start,
                end=end,
            ))
        return jsonify(reservation_service.validate_cart(items)), 200
    except ValidationError as e:
        return jsonify({"error": str(e)}), 400
    except Exception:
        current_app.logger.exception("Failed to validate cart")
        return jsonify({"error": "Internal server error"}), 500
