# Overview: Service-layer operations for coupons; encapsulates business logic and database work.

from __future__ import annotations

from datetime import datetime
from decimal import Decimal, InvalidOperation, ROUND_HALF_UP
from typing import Any

from ..extensions import db
from ..models import Coupon
from ..validation import NotFoundError, parse_datetime_field, parse_positive_int, validate_window
from rentmarket.time_utils import utcnow


DISCOUNT_PERCENTAGE = "PERCENTAGE"
DISCOUNT_FLAT = "FLAT"
VALID_DISCOUNT_TYPES = {DISCOUNT_PERCENTAGE, DISCOUNT_FLAT}


class CouponError(ValueError):
    """Coupon exists but cannot be applied (expired, exhausted, wrong vendor)."""


def normalize_code(code: Any) -> str:
    return str(code or "").strip().upper()


def compute_discount(coupon: Coupon, subtotal_cents: int) -> int:
    """Discount in cents for `subtotal_cents`, never more than the subtotal."""
    if subtotal_cents <= 0:
        return 0
    if coupon.discount_type == DISCOUNT_PERCENTAGE:
        raw = Decimal(subtotal_cents) * Decimal(coupon.percent_bps or 0) / Decimal(10_000)
        discount = int(raw.quantize(Decimal("1"), rounding=ROUND_HALF_UP))
    else:
        discount = coupon.amount_off_cents or 0
    return max(0, min(discount, subtotal_cents))


def find_applicable_coupon(code: str, *, vendor_id: int | None = None, at: datetime | None = None) -> Coupon:
    """
    Resolve a coupon code for use right now.

    Raises:
        NotFoundError: unknown, inactive or out-of-window code
        CouponError: usage limit reached or coupon scoped to another vendor
    """
    at = at or utcnow()
    coupon = (
        db.session.query(Coupon)
        .filter(
            Coupon.code == normalize_code(code),
            Coupon.is_active.is_(True),
            Coupon.valid_from <= at,
            Coupon.valid_to >= at,
        )
        .first()
    )
    if coupon is None:
        raise NotFoundError("Invalid or expired coupon")
    if coupon.max_uses is not None and coupon.used_count >= coupon.max_uses:
        raise CouponError("Coupon usage limit reached")
    if coupon.vendor_id is not None and vendor_id is not None and coupon.vendor_id != vendor_id:
        raise CouponError("Coupon is not valid for this vendor")
    return coupon


def validate_coupon(code: str, order_amount_cents: int, *, vendor_id: int | None = None) -> dict:
    coupon = find_applicable_coupon(code, vendor_id=vendor_id)
    discount = compute_discount(coupon, order_amount_cents)
    return {
        "coupon": coupon.to_dict(),
        "discount_cents": discount,
        "final_amount_cents": order_amount_cents - discount,
    }


def consume(coupon: Coupon) -> None:
    """Count one use. Caller commits."""
    if coupon.max_uses is not None and coupon.used_count >= coupon.max_uses:
        raise CouponError("Coupon usage limit reached")
    coupon.used_count = (coupon.used_count or 0) + 1


def _apply_value(coupon: Coupon, discount_type: str, value: Any) -> None:
    try:
        amount = Decimal(str(value))
    except InvalidOperation:
        raise CouponError("value must be a number")
    if isinstance(value, bool) or not amount.is_finite() or amount <= 0:
        raise CouponError("value must be greater than 0")

    if discount_type == DISCOUNT_PERCENTAGE:
        if amount > 100:
            raise CouponError("Percentage discount cannot exceed 100")
        coupon.percent_bps = int((amount * 100).quantize(Decimal("1"), rounding=ROUND_HALF_UP))
        coupon.amount_off_cents = None
    else:
        coupon.amount_off_cents = int((amount * 100).quantize(Decimal("1"), rounding=ROUND_HALF_UP))
        coupon.percent_bps = None


def create_coupon(data: dict, *, vendor_id: int | None, user_id: int | None) -> Coupon:
    """
    Create a coupon. `value` is a percent for PERCENTAGE coupons and a
    major-unit amount for FLAT coupons. vendor_id None makes it platform-wide.
    """
    code = normalize_code(data.get("code"))
    if not code:
        raise CouponError("code is required")
    discount_type = str(data.get("discount_type") or "").strip().upper()
    if discount_type not in VALID_DISCOUNT_TYPES:
        raise CouponError("discount_type must be PERCENTAGE or FLAT")
    if db.session.query(Coupon.id).filter_by(code=code).first():
        raise CouponError("Coupon code already exists")

    valid_from = parse_datetime_field(data, "valid_from")
    valid_to = parse_datetime_field(data, "valid_to")
    validate_window(valid_from, valid_to)

    coupon = Coupon(
        code=code,
        discount_type=discount_type,
        valid_from=valid_from,
        valid_to=valid_to,
        max_uses=parse_positive_int(data["max_uses"], "max_uses") if data.get("max_uses") is not None else None,
        used_count=0,
        is_active=bool(data.get("is_active", True)),
        vendor_id=vendor_id,
        created_by_user_id=user_id,
    )
    _apply_value(coupon, discount_type, data.get("value"))
    db.session.add(coupon)
    db.session.commit()
    return coupon


def get_coupon(coupon_id: int, *, vendor_id: int | None = None) -> Coupon:
    """Fetch a coupon; with vendor_id, only that vendor's own coupons are visible."""
    coupon = db.session.get(Coupon, coupon_id)
    if coupon is None or (vendor_id is not None and coupon.vendor_id != vendor_id):
        raise NotFoundError("Coupon not found")
    return coupon


def update_coupon(coupon_id: int, data: dict, *, vendor_id: int | None = None) -> Coupon:
    coupon = get_coupon(coupon_id, vendor_id=vendor_id)

    if "code" in data:
        code = normalize_code(data["code"])
        if not code:
            raise CouponError("code cannot be blank")
        clash = db.session.query(Coupon.id).filter(Coupon.code == code, Coupon.id != coupon.id).first()
        if clash:
            raise CouponError("Coupon code already exists")
        coupon.code = code

    discount_type = coupon.discount_type
    if "discount_type" in data:
        discount_type = str(data["discount_type"] or "").strip().upper()
        if discount_type not in VALID_DISCOUNT_TYPES:
            raise CouponError("discount_type must be PERCENTAGE or FLAT")
    if "value" in data or discount_type != coupon.discount_type:
        if "value" not in data:
            raise CouponError("value is required when changing discount_type")
        _apply_value(coupon, discount_type, data["value"])
        coupon.discount_type = discount_type

    if "valid_from" in data:
        coupon.valid_from = parse_datetime_field(data, "valid_from")
    if "valid_to" in data:
        coupon.valid_to = parse_datetime_field(data, "valid_to")
    validate_window(coupon.valid_from, coupon.valid_to)

    if "max_uses" in data:
        coupon.max_uses = parse_positive_int(data["max_uses"], "max_uses") if data["max_uses"] is not None else None
    if "is_active" in data:
        coupon.is_active = bool(data["is_active"])

    db.session.commit()
    return coupon


def delete_coupon(coupon_id: int, *, vendor_id: int | None = None) -> None:
    coupon = get_coupon(coupon_id, vendor_id=vendor_id)
    if coupon.used_count:
        # Orders still reference it; keep the row for history
        coupon.is_active = False
    else:
        db.session.delete(coupon)
    db.session.commit()


def list_coupons(*, vendor_id: int | None = None) -> list[Coupon]:
    query = db.session.query(Coupon)
    if vendor_id is not None:
        query = query.filter(Coupon.vendor_id == vendor_id)
    return query.order_by(Coupon.created_at.desc(), Coupon.id.desc()).all()
