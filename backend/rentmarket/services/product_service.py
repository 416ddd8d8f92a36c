# backend/rentmarket/services/product_service.py
"""
Products Service

Vendor-scoped catalog management plus the public (published-only) view.
- create_product / update_product take a validated patch plus nested
  pricing tiers and an inventory quantity
- vendors only ever see and change their own products
- a product with active or upcoming rentals cannot be deleted
"""
from __future__ import annotations

import sqlalchemy as sa

from ..extensions import db
from ..models import Product, ProductPricing, Inventory, ProductVariant, RentalPeriod, Reservation, SaleOrder
from ..validation import (
    ConflictError,
    ModelValidationPolicy,
    NotFoundError,
    ValidationError,
    parse_money_cents,
    parse_positive_int,
    validate_payload,
)

PRODUCT_POLICY = ModelValidationPolicy(
    writable_fields={
        "name",
        "description",
        "category",
        "product_type",
        "is_rentable",
        "image_url",
        "pricing",
        "quantity_on_hand",
    },
    required_on_create={"name", "pricing"},
)

VARIANT_POLICY = ModelValidationPolicy(
    writable_fields={"name", "attributes", "price_cents", "quantity_on_hand"},
    required_on_create={"name"},
)

PRODUCT_COLUMN_FIELDS = {"name", "description", "category", "product_type", "is_rentable", "image_url"}
VALID_PRODUCT_TYPES = {"GOODS", "SERVICE"}


def apply_product_patch(p: Product, patch: dict) -> None:
    for k, v in patch.items():
        if k in PRODUCT_COLUMN_FIELDS:
            setattr(p, k, v)


def _replace_pricing(product: Product, tiers) -> None:
    if not isinstance(tiers, list) or not tiers:
        raise ValidationError("pricing must be a non-empty list")
    seen = set()
    new_rows = []
    for tier in tiers:
        if not isinstance(tier, dict):
            raise ValidationError("Each pricing entry must be an object")
        period_id = parse_positive_int(tier.get("rental_period_id"), "rental_period_id")
        if period_id in seen:
            raise ValidationError(f"Duplicate pricing for rental period {period_id}")
        seen.add(period_id)
        if db.session.get(RentalPeriod, period_id) is None:
            raise ValidationError(f"Rental period {period_id} does not exist")
        raw_price = tier.get("price_cents", tier.get("price"))
        price = parse_money_cents(raw_price, "price_cents")
        if price <= 0:
            raise ValidationError("price_cents must be > 0")
        new_rows.append((period_id, price))

    existing = {p.rental_period_id: p for p in product.pricing}
    for period_id, row in existing.items():
        if period_id not in seen:
            product.pricing.remove(row)
    for period_id, price in new_rows:
        row = existing.get(period_id)
        if row is None:
            product.pricing.append(ProductPricing(rental_period_id=period_id, price_cents=price))
        else:
            row.price_cents = price


def _set_quantity(product: Product, quantity) -> None:
    qty = parse_positive_int(quantity, "quantity_on_hand", allow_zero=True)
    if product.inventory is None:
        product.inventory = Inventory(quantity_on_hand=qty)
    else:
        product.inventory.quantity_on_hand = qty


def _validate_product_type(patch: dict) -> None:
    if "product_type" in patch and patch["product_type"] is not None:
        patch["product_type"] = patch["product_type"].upper()
        if patch["product_type"] not in VALID_PRODUCT_TYPES:
            raise ValidationError("product_type must be GOODS or SERVICE")


# ---------------------------------------------------------------------------
# Public catalog
# ---------------------------------------------------------------------------

def list_public_products(
    *,
    search: str | None = None,
    vendor_id: int | None = None,
    category: str | None = None,
    page: int | None = None,
    per_page: int | None = None,
) -> dict:
    """Published, rentable products with optional filters and pagination."""
    query = db.session.query(Product).filter(Product.published.is_(True), Product.is_rentable.is_(True))
    if search:
        like = f"%{search.strip()}%"
        query = query.filter(sa.or_(Product.name.ilike(like), Product.description.ilike(like)))
    if vendor_id is not None:
        query = query.filter(Product.vendor_id == vendor_id)
    if category:
        query = query.filter(Product.category == category)
    query = query.order_by(Product.name.asc(), Product.id.asc())

    if page is None:
        products = query.all()
        return {"items": [p.to_dict() for p in products], "count": len(products)}

    per_page = min(per_page or 20, 100)
    page = max(page, 1)
    total = query.count()
    total_pages = (total + per_page - 1) // per_page if total > 0 else 1
    products = query.offset((page - 1) * per_page).limit(per_page).all()
    return {
        "items": [p.to_dict() for p in products],
        "count": len(products),
        "pagination": {
            "page": page,
            "per_page": per_page,
            "total": total,
            "total_pages": total_pages,
            "has_next": page < total_pages,
            "has_prev": page > 1,
        },
    }


def get_public_product(product_id: int) -> Product:
    product = db.session.get(Product, product_id)
    if product is None or not product.published:
        raise NotFoundError(f"Product {product_id} not found")
    return product


# ---------------------------------------------------------------------------
# Vendor catalog
# ---------------------------------------------------------------------------

def list_vendor_products(vendor_id: int) -> list[Product]:
    return (
        db.session.query(Product)
        .filter(Product.vendor_id == vendor_id)
        .order_by(Product.created_at.desc(), Product.id.desc())
        .all()
    )


def get_vendor_product(product_id: int, vendor_id: int | None) -> Product:
    """vendor_id None means admin access to any product."""
    product = db.session.get(Product, product_id)
    if product is None or (vendor_id is not None and product.vendor_id != vendor_id):
        raise NotFoundError(f"Product {product_id} not found")
    return product


def create_product(*, vendor_id: int, payload: dict) -> Product:
    patch = validate_payload(model=Product, payload=payload, policy=PRODUCT_POLICY, partial=False)
    _validate_product_type(patch)

    product = Product(vendor_id=vendor_id, published=False)
    apply_product_patch(product, patch)
    _replace_pricing(product, patch["pricing"])
    _set_quantity(product, patch.get("quantity_on_hand", 0))

    db.session.add(product)
    db.session.commit()
    return product


def update_product(product_id: int, *, vendor_id: int | None, payload: dict) -> Product:
    product = get_vendor_product(product_id, vendor_id)
    patch = validate_payload(model=Product, payload=payload, policy=PRODUCT_POLICY, partial=True)
    _validate_product_type(patch)

    apply_product_patch(product, patch)
    if "pricing" in patch:
        _replace_pricing(product, patch["pricing"])
    if "quantity_on_hand" in patch:
        _set_quantity(product, patch["quantity_on_hand"])

    db.session.commit()
    return product


def set_published(product_id: int, *, vendor_id: int | None, published: bool) -> Product:
    product = get_vendor_product(product_id, vendor_id)
    if published and not product.pricing:
        raise ValidationError("Add at least one pricing tier before publishing")
    product.published = bool(published)
    db.session.commit()
    return product


def delete_product(product_id: int, *, vendor_id: int | None) -> None:
    product = get_vendor_product(product_id, vendor_id)
    held = (
        db.session.query(Reservation.id)
        .join(SaleOrder, Reservation.order_id == SaleOrder.id)
        .filter(Reservation.product_id == product.id, SaleOrder.status.in_(("CONFIRMED", "PICKED_UP")))
        .first()
    )
    if held:
        raise ConflictError("Product has active rentals and cannot be deleted")
    ordered = db.session.query(SaleOrder.id).join(SaleOrder.lines).filter_by(product_id=product.id).first()
    if ordered:
        # Past orders reference it; hide instead of deleting
        product.published = False
        product.is_rentable = False
    else:
        db.session.delete(product)
    db.session.commit()


# ---------------------------------------------------------------------------
# Variants
# ---------------------------------------------------------------------------

def _apply_variant_patch(variant: ProductVariant, patch: dict) -> None:
    if "name" in patch:
        variant.name = patch["name"]
    if "attributes" in patch:
        attrs = patch["attributes"] or {}
        if not isinstance(attrs, dict):
            raise ValidationError("attributes must be an object")
        variant.attributes = {str(k): str(v) for k, v in attrs.items()}
    if "price_cents" in patch:
        variant.price_cents = None if patch["price_cents"] is None else parse_money_cents(patch["price_cents"], "price_cents")
    if "quantity_on_hand" in patch:
        variant.quantity_on_hand = parse_positive_int(patch["quantity_on_hand"], "quantity_on_hand", allow_zero=True)


def add_variant(product_id: int, *, vendor_id: int | None, payload: dict) -> ProductVariant:
    product = get_vendor_product(product_id, vendor_id)
    patch = validate_payload(model=ProductVariant, payload=payload, policy=VARIANT_POLICY, partial=False)
    variant = ProductVariant(name=patch["name"], attributes={}, quantity_on_hand=0)
    _apply_variant_patch(variant, patch)
    product.variants.append(variant)
    db.session.commit()
    return variant


def update_variant(product_id: int, variant_id: int, *, vendor_id: int | None, payload: dict) -> ProductVariant:
    product = get_vendor_product(product_id, vendor_id)
    variant = next((v for v in product.variants if v.id == variant_id), None)
    if variant is None:
        raise NotFoundError(f"Variant {variant_id} not found")
    patch = validate_payload(model=ProductVariant, payload=payload, policy=VARIANT_POLICY, partial=True)
    _apply_variant_patch(variant, patch)
    db.session.commit()
    return variant


def delete_variant(product_id: int, variant_id: int, *, vendor_id: int | None) -> None:
    product = get_vendor_product(product_id, vendor_id)
    variant = next((v for v in product.variants if v.id == variant_id), None)
    if variant is None:
        raise NotFoundError(f"Variant {variant_id} not found")
    product.variants.remove(variant)
    db.session.commit()
