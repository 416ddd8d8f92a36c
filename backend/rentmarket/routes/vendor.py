# backend/rentmarket/routes/vendor.py
"""
Vendor API Routes

Every route is scoped to the caller's vendor profile; admins reach the
same products through vendor_id=None (any product).

Products:
- GET    /api/vendor/products
- POST   /api/vendor/products
- GET    /api/vendor/products/:id
- PUT    /api/vendor/products/:id
- DELETE /api/vendor/products/:id
- POST   /api/vendor/products/:id/publish
- POST   /api/vendor/products/:id/unpublish
- POST   /api/vendor/products/:id/variants
- PUT    /api/vendor/products/:id/variants/:variant_id
- DELETE /api/vendor/products/:id/variants/:variant_id

Coupons:
- GET/POST        /api/vendor/coupons
- GET/PUT/DELETE  /api/vendor/coupons/:id
"""

from flask import Blueprint, request, jsonify, g, current_app

from ..services import product_service
from ..models.users import ROLE_ADMIN, ROLE_VENDOR
from ..validation import ConflictError, NotFoundError, ValidationError
from ..decorators import require_auth, require_role, current_vendor_id
from . import coupons as coupon_handlers


vendor_bp = Blueprint("vendor", __name__, url_prefix="/api/vendor")


def _scope():
    """vendor_id to filter by; None for admins."""
    if g.current_user.role == ROLE_ADMIN:
        return None
    return current_vendor_id()


def _product_call(op, description: str, status: int = 200):
    if g.current_user.role == ROLE_VENDOR and current_vendor_id() is None:
        return jsonify({"error": "Vendor profile not found"}), 400
    try:
        return jsonify(op()), status
    except NotFoundError as e:
        return jsonify({"error": str(e)}), 404
    except ConflictError as e:
        return jsonify({"error": str(e)}), 409
    except ValidationError as e:
        return jsonify({"error": str(e)}), 400
    except Exception:
        current_app.logger.exception("Failed to %s", description)
        return jsonify({"error": "Internal server error"}), 500


# ---------------------------------------------------------------------------
# Products
# ---------------------------------------------------------------------------

@vendor_bp.get("/products")
@require_auth
@require_role(ROLE_VENDOR)
def list_products_route():
    return _product_call(
        lambda: {"items": [p.to_dict(include_vendor=False) for p in product_service.list_vendor_products(current_vendor_id())]},
        "list vendor products",
    )


@vendor_bp.post("/products")
@require_auth
@require_role(ROLE_VENDOR)
def create_product_route():
    """
    Body:
        {
            "name": "Professional Camera",
            "category": "Electronics",
            "pricing": [{"rental_period_id": 2, "price": "150.00"}],
            "quantity_on_hand": 5
        }
    """
    payload = request.get_json(silent=True)
    return _product_call(
        lambda: {"product": product_service.create_product(vendor_id=current_vendor_id(), payload=payload).to_dict()},
        "create product",
        201,
    )


@vendor_bp.get("/products/<int:product_id>")
@require_auth
@require_role(ROLE_VENDOR, ROLE_ADMIN)
def get_product_route(product_id: int):
    return _product_call(
        lambda: {"product": product_service.get_vendor_product(product_id, _scope()).to_dict()},
        "get vendor product",
    )


@vendor_bp.put("/products/<int:product_id>")
@require_auth
@require_role(ROLE_VENDOR, ROLE_ADMIN)
def update_product_route(product_id: int):
    payload = request.get_json(silent=True)
    return _product_call(
        lambda: {"product": product_service.update_product(product_id, vendor_id=_scope(), payload=payload).to_dict()},
        "update product",
    )


@vendor_bp.delete("/products/<int:product_id>")
@require_auth
@require_role(ROLE_VENDOR, ROLE_ADMIN)
def delete_product_route(product_id: int):
    def _op():
        product_service.delete_product(product_id, vendor_id=_scope())
        return {"message": "Product deleted"}

    return _product_call(_op, "delete product")


@vendor_bp.post("/products/<int:product_id>/publish")
@require_auth
@require_role(ROLE_VENDOR, ROLE_ADMIN)
def publish_product_route(product_id: int):
    return _product_call(
        lambda: {"product": product_service.set_published(product_id, vendor_id=_scope(), published=True).to_dict()},
        "publish product",
    )


@vendor_bp.post("/products/<int:product_id>/unpublish")
@require_auth
@require_role(ROLE_VENDOR, ROLE_ADMIN)
def unpublish_product_route(product_id: int):
    return _product_call(
        lambda: {"product": product_service.set_published(product_id, vendor_id=_scope(), published=False).to_dict()},
        "unpublish product",
    )


@vendor_bp.post("/products/<int:product_id>/variants")
@require_auth
@require_role(ROLE_VENDOR, ROLE_ADMIN)
def add_variant_route(product_id: int):
    payload = request.get_json(silent=True)
    return _product_call(
        lambda: {"variant": product_service.add_variant(product_id, vendor_id=_scope(), payload=payload).to_dict()},
        "add variant",
        201,
    )


@vendor_bp.put("/products/<int:product_id>/variants/<int:variant_id>")
@require_auth
@require_role(ROLE_VENDOR, ROLE_ADMIN)
def update_variant_route(product_id: int, variant_id: int):
    payload = request.get_json(silent=True)
    return _product_call(
        lambda: {"variant": product_service.update_variant(product_id, variant_id, vendor_id=_scope(), payload=payload).to_dict()},
        "update variant",
    )


@vendor_bp.delete("/products/<int:product_id>/variants/<int:variant_id>")
@require_auth
@require_role(ROLE_VENDOR, ROLE_ADMIN)
def delete_variant_route(product_id: int, variant_id: int):
    def _op():
        product_service.delete_variant(product_id, variant_id, vendor_id=_scope())
        return {"message": "Variant deleted"}

    return _product_call(_op, "delete variant")


# ---------------------------------------------------------------------------
# Coupons
# ---------------------------------------------------------------------------

def _vendor_coupon_guard():
    if current_vendor_id() is None:
        return jsonify({"error": "Vendor profile not found"}), 400
    return None


@vendor_bp.get("/coupons")
@require_auth
@require_role(ROLE_VENDOR)
def list_coupons_route():
    return _vendor_coupon_guard() or coupon_handlers.list_coupons_response(current_vendor_id())


@vendor_bp.post("/coupons")
@require_auth
@require_role(ROLE_VENDOR)
def create_coupon_route():
    return _vendor_coupon_guard() or coupon_handlers.create_coupon_response(
        vendor_id=current_vendor_id(), user_id=g.current_user.id
    )


@vendor_bp.get("/coupons/<int:coupon_id>")
@require_auth
@require_role(ROLE_VENDOR)
def get_coupon_route(coupon_id: int):
    return _vendor_coupon_guard() or coupon_handlers.get_coupon_response(coupon_id, vendor_id=current_vendor_id())


@vendor_bp.put("/coupons/<int:coupon_id>")
@require_auth
@require_role(ROLE_VENDOR)
def update_coupon_route(coupon_id: int):
    return _vendor_coupon_guard() or coupon_handlers.update_coupon_response(coupon_id, vendor_id=current_vendor_id())


@vendor_bp.delete("/coupons/<int:coupon_id>")
@require_auth
@require_role(ROLE_VENDOR)
def delete_coupon_route(coupon_id: int):
    return _vendor_coupon_guard() or coupon_handlers.delete_coupon_response(coupon_id, vendor_id=current_vendor_id())
