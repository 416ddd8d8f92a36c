# Overview: Service-layer operations for rental orders; encapsulates business logic and database work.

"""
Rental Order State Machine

================================================================================
PURPOSE: Move a rental order from quotation to invoice without ever letting
inventory promises and order status disagree.
================================================================================

STATE MACHINE:
    QUOTATION -> SENT -> CONFIRMED -> PICKED_UP -> RETURNED -> INVOICED
         \\         \\         \\
          +---------+---------+--> CANCELLED

    QUOTATION: priced draft, holds no inventory
    SENT:      quotation shared with the customer, still holds nothing
    CONFIRMED: reservations created for every line (inventory is promised)
    PICKED_UP: goods are with the customer
    RETURNED:  goods are back, late fee computed, reservations released
    INVOICED:  a returned order has been billed (terminal)
    CANCELLED: reservations released (terminal)

RULES:
1. Transitions only move forward; cancellation is the only side exit and
   is allowed from QUOTATION, SENT and CONFIRMED.
2. A Reservation exists only while the order is CONFIRMED or PICKED_UP.
3. Confirmation checks availability for every line before any write; a
   shortfall leaves the order in SENT with nothing reserved.
4. Every transition writes an AuditLog entry in the same transaction.

CONCURRENCY: transitions load the order with SELECT ... FOR UPDATE and run
under run_with_retry, so a concurrent version_id bump is retried.
================================================================================
"""

from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime, timedelta
from typing import Literal

import sqlalchemy as sa

from ..extensions import db
from ..models import (
    SaleOrder,
    SaleOrderLine,
    Product,
    ProductVariant,
    VendorProfile,
    CustomerProfile,
    User,
)
from ..models.users import ROLE_ADMIN, ROLE_VENDOR, ROLE_CUSTOMER
from ..validation import ValidationError, NotFoundError, parse_positive_int, validate_window
from rentmarket.time_utils import utcnow, ceil_units
from .concurrency import lock_for_update, run_with_retry
from . import audit_service, coupon_service, invoice_service, late_fee_service, reservation_service


STATUS_QUOTATION = "QUOTATION"
STATUS_SENT = "SENT"
STATUS_CONFIRMED = "CONFIRMED"
STATUS_PICKED_UP = "PICKED_UP"
STATUS_RETURNED = "RETURNED"
STATUS_INVOICED = "INVOICED"
STATUS_CANCELLED = "CANCELLED"

VALID_STATUSES = {
    STATUS_QUOTATION,
    STATUS_SENT,
    STATUS_CONFIRMED,
    STATUS_PICKED_UP,
    STATUS_RETURNED,
    STATUS_INVOICED,
    STATUS_CANCELLED,
}
OrderStatus = Literal["QUOTATION", "SENT", "CONFIRMED", "PICKED_UP", "RETURNED", "INVOICED", "CANCELLED"]

ALLOWED_TRANSITIONS = {
    (STATUS_QUOTATION, STATUS_SENT),
    (STATUS_SENT, STATUS_CONFIRMED),
    (STATUS_CONFIRMED, STATUS_PICKED_UP),
    (STATUS_PICKED_UP, STATUS_RETURNED),
    (STATUS_RETURNED, STATUS_INVOICED),
    (STATUS_QUOTATION, STATUS_CANCELLED),
    (STATUS_SENT, STATUS_CANCELLED),
    (STATUS_CONFIRMED, STATUS_CANCELLED),
}

CUSTOMER_CANCELLABLE = {STATUS_QUOTATION, STATUS_SENT}
ADMIN_ACTIONS = {"pick up", "return", "cancel"}

# Quotes may start slightly in the past to absorb client clock skew
START_DATE_TOLERANCE = timedelta(minutes=5)


class OrderLifecycleError(ValueError):
    """
    Raised when an invalid order transition is attempted.

    This is a domain error, not a technical error. It indicates that the
    caller asked for a move the state machine does not allow.
    """
    pass


class OrderAccessError(Exception):
    """Raised when the acting user may not see or change the order."""
    pass


@dataclass
class OrderLineInput:
    product_id: int
    quantity: int
    rental_period_id: int | None = None
    variant_id: int | None = None


def validate_status(status: str) -> None:
    """
    Validate that a status value is one of the allowed states.

    Raises:
        OrderLifecycleError: If status is not in VALID_STATUSES
    """
    if status not in VALID_STATUSES:
        raise OrderLifecycleError(
            f"Invalid status '{status}'. Must be one of: {', '.join(sorted(VALID_STATUSES))}"
        )


def can_transition(from_status: str, to_status: str) -> bool:
    """
    Check if a state transition is valid according to the lifecycle rules.

    Same-state moves are not transitions and return False; terminal states
    (INVOICED, CANCELLED) allow nothing.
    """
    validate_status(from_status)
    validate_status(to_status)
    return (from_status, to_status) in ALLOWED_TRANSITIONS


def _require_transition(order: SaleOrder, to_status: str, verb: str) -> None:
    if not can_transition(order.status, to_status):
        expected = sorted(f for (f, t) in ALLOWED_TRANSITIONS if t == to_status)
        raise OrderLifecycleError(
            f"Cannot {verb} order {order.order_number}: "
            f"current status is '{order.status}', must be {' or '.join(repr(s) for s in expected)}"
        )


# ---------------------------------------------------------------------------
# Access
# ---------------------------------------------------------------------------

def _is_vendor_owner(order: SaleOrder, user: User) -> bool:
    return user.role == ROLE_VENDOR and user.vendor_profile is not None and user.vendor_profile.id == order.vendor_id


def _is_customer_owner(order: SaleOrder, user: User) -> bool:
    return user.role == ROLE_CUSTOMER and user.customer_profile is not None and user.customer_profile.id == order.customer_id


def can_view(order: SaleOrder, user: User) -> bool:
    return user.role == ROLE_ADMIN or _is_vendor_owner(order, user) or _is_customer_owner(order, user)


def _authorize(order: SaleOrder, user: User, action: str) -> None:
    if user.role == ROLE_ADMIN and action in ADMIN_ACTIONS:
        return
    if _is_vendor_owner(order, user):
        return
    if _is_customer_owner(order, user) and action == "cancel" and order.status in CUSTOMER_CANCELLABLE:
        return
    raise OrderAccessError(f"Not allowed to {action} this order")


def get_order_for_user(order_id: int, user: User) -> SaleOrder:
    order = db.session.get(SaleOrder, order_id)
    if order is None:
        raise NotFoundError(f"Order {order_id} not found")
    if not can_view(order, user):
        raise OrderAccessError("Not allowed to view this order")
    return order


def list_orders(user: User, *, status: str | None = None) -> list[SaleOrder]:
    """Orders visible to `user`: all for admins, own vendor/customer orders otherwise."""
    query = db.session.query(SaleOrder)
    if user.role == ROLE_VENDOR:
        if user.vendor_profile is None:
            return []
        query = query.filter(SaleOrder.vendor_id == user.vendor_profile.id)
    elif user.role == ROLE_CUSTOMER:
        if user.customer_profile is None:
            return []
        query = query.filter(SaleOrder.customer_id == user.customer_profile.id)
    elif user.role != ROLE_ADMIN:
        return []
    if status:
        validate_status(status)
        query = query.filter(SaleOrder.status == status)
    return query.order_by(SaleOrder.created_at.desc(), SaleOrder.id.desc()).all()


# ---------------------------------------------------------------------------
# Creation
# ---------------------------------------------------------------------------

def generate_order_number(at: datetime | None = None) -> str:
    """Next number in the per-day sequence, e.g. SO20240315-0007."""
    at = at or utcnow()
    prefix = f"SO{at:%Y%m%d}-"
    last = (
        db.session.query(SaleOrder.order_number)
        .filter(SaleOrder.order_number.like(f"{prefix}%"))
        .order_by(SaleOrder.order_number.desc())
        .first()
    )
    seq = int(last[0][len(prefix):]) + 1 if last else 1
    return f"{prefix}{seq:04d}"


def _select_pricing(product: Product, rental_period_id: int | None):
    if not product.pricing:
        raise ValidationError(f"Product '{product.name}' has no rental pricing")
    if rental_period_id is not None:
        for tier in product.pricing:
            if tier.rental_period_id == rental_period_id:
                return tier
        raise ValidationError(f"Product '{product.name}' has no price for rental period {rental_period_id}")
    return min(product.pricing, key=lambda tier: (tier.rental_period.length, tier.rental_period_id))


def _coerce_lines(lines) -> list[OrderLineInput]:
    if not lines:
        raise ValidationError("Order must contain at least one line")
    result = []
    for raw in lines:
        if isinstance(raw, OrderLineInput):
            result.append(raw)
            continue
        if not isinstance(raw, dict) or raw.get("product_id") is None:
            raise ValidationError("Each line requires product_id and quantity")
        result.append(
            OrderLineInput(
                product_id=parse_positive_int(raw.get("product_id"), "product_id"),
                quantity=parse_positive_int(raw.get("quantity", 1), "quantity"),
                rental_period_id=raw.get("rental_period_id"),
                variant_id=raw.get("variant_id"),
            )
        )
    return result


def _build_line(vendor_id: int, item: OrderLineInput, start: datetime, end: datetime) -> SaleOrderLine:
    product = db.session.get(Product, item.product_id)
    if product is None:
        raise NotFoundError(f"Product {item.product_id} not found")
    if product.vendor_id != vendor_id:
        raise ValidationError(f"Product '{product.name}' does not belong to this vendor")
    if not product.published or not product.is_rentable:
        raise ValidationError(f"Product '{product.name}' is not available for rent")
    if item.quantity <= 0:
        raise ValidationError("quantity must be > 0")

    tier = _select_pricing(product, item.rental_period_id)
    unit_price = tier.price_cents

    variant = None
    if item.variant_id is not None:
        variant = db.session.get(ProductVariant, item.variant_id)
        if variant is None or variant.product_id != product.id:
            raise ValidationError(f"Variant {item.variant_id} does not belong to '{product.name}'")
        if variant.price_cents is not None:
            unit_price = variant.price_cents

    units = ceil_units(end - start, tier.rental_period.length)
    return SaleOrderLine(
        product_id=product.id,
        variant_id=variant.id if variant else None,
        rental_period_id=tier.rental_period_id,
        quantity=item.quantity,
        unit_price_cents=unit_price,
        rental_units=units,
        line_total_cents=unit_price * units * item.quantity,
    )


def create_order(
    *,
    customer: CustomerProfile,
    vendor_id: int,
    start_date: datetime,
    end_date: datetime,
    lines,
    coupon_code: str | None = None,
    notes: str | None = None,
    user_id: int | None = None,
) -> SaleOrder:
    """
    Create a priced QUOTATION order. No inventory is reserved.

    Line price = tier price (chosen rental period, default the shortest)
    * ceil(window / period length) * quantity. A coupon discount is capped
    at the subtotal.

    Raises:
        ValidationError: bad window, foreign/unpublished product, missing pricing
        NotFoundError: unknown vendor, product or coupon
        CouponError: coupon cannot be applied
    """
    validate_window(start_date, end_date)
    now = utcnow()
    if start_date < now - START_DATE_TOLERANCE:
        raise ValidationError("Start date cannot be in the past")

    vendor = db.session.get(VendorProfile, vendor_id)
    if vendor is None:
        raise NotFoundError(f"Vendor {vendor_id} not found")

    order_lines = [_build_line(vendor.id, item, start_date, end_date) for item in _coerce_lines(lines)]
    subtotal = sum(line.line_total_cents for line in order_lines)

    coupon = None
    discount = 0
    if coupon_code:
        coupon = coupon_service.find_applicable_coupon(coupon_code, vendor_id=vendor.id, at=now)
        discount = coupon_service.compute_discount(coupon, subtotal)

    order = SaleOrder(
        order_number=generate_order_number(now),
        customer_id=customer.id,
        vendor_id=vendor.id,
        coupon_id=coupon.id if coupon else None,
        status=STATUS_QUOTATION,
        start_date=start_date,
        end_date=end_date,
        subtotal_cents=subtotal,
        discount_cents=discount,
        total_amount_cents=subtotal - discount,
        late_fee_cents=0,
        notes=notes,
        order_date=now,
    )
    order.lines.extend(order_lines)
    db.session.add(order)
    db.session.flush()

    audit_service.record(
        user_id=user_id,
        action="ORDER_CREATED",
        entity="SaleOrder",
        entity_id=order.id,
        metadata={"order_number": order.order_number, "total_amount_cents": order.total_amount_cents},
    )
    db.session.commit()
    return order


# ---------------------------------------------------------------------------
# Transitions
# ---------------------------------------------------------------------------

def _load_locked(order_id: int) -> SaleOrder:
    order = lock_for_update(db.session.query(SaleOrder).filter_by(id=order_id)).first()
    if order is None:
        raise NotFoundError(f"Order {order_id} not found")
    return order


def _audit_transition(order: SaleOrder, from_status: str, user: User | None, **extra) -> None:
    audit_service.record(
        user_id=user.id if user else None,
        action=f"ORDER_{order.status}",
        entity="SaleOrder",
        entity_id=order.id,
        metadata={"from": from_status, "to": order.status, "order_number": order.order_number, **extra},
    )


def send_order(order_id: int, *, user: User) -> SaleOrder:
    """QUOTATION -> SENT. No side effects besides the audit entry."""
    def _op():
        order = _load_locked(order_id)
        _authorize(order, user, "send")
        _require_transition(order, STATUS_SENT, "send")
        previous = order.status
        order.status = STATUS_SENT
        order.sent_at = utcnow()
        _audit_transition(order, previous, user)
        db.session.commit()
        return order

    return run_with_retry(_op)


def confirm_order(order_id: int, *, user: User) -> SaleOrder:
    """
    SENT -> CONFIRMED.

    Reserves every line for the order window (with an on-hand snapshot)
    and counts one coupon use, all in one transaction.

    Raises:
        AvailabilityError: some product lacks units; nothing is written
        CouponError: the coupon hit its usage limit since quoting
    """
    def _op():
        order = _load_locked(order_id)
        _authorize(order, user, "confirm")
        _require_transition(order, STATUS_CONFIRMED, "confirm")

        if order.coupon is not None and order.coupon.max_uses is not None:
            if order.coupon.used_count >= order.coupon.max_uses:
                raise coupon_service.CouponError("Coupon usage limit reached")

        reservations = reservation_service.reserve_order(order)
        if order.coupon is not None:
            coupon_service.consume(order.coupon)

        previous = order.status
        order.status = STATUS_CONFIRMED
        order.confirmed_at = utcnow()
        _audit_transition(order, previous, user, reservations=len(reservations))
        db.session.commit()
        return order

    return run_with_retry(_op)


def pickup_order(order_id: int, *, user: User) -> SaleOrder:
    """CONFIRMED -> PICKED_UP; stamps pickup_date."""
    def _op():
        order = _load_locked(order_id)
        _authorize(order, user, "pick up")
        _require_transition(order, STATUS_PICKED_UP, "pick up")
        previous = order.status
        order.status = STATUS_PICKED_UP
        order.pickup_date = utcnow()
        _audit_transition(order, previous, user)
        db.session.commit()
        return order

    return run_with_retry(_op)


def return_order(order_id: int, *, user: User, return_date: datetime | None = None) -> SaleOrder:
    """
    PICKED_UP -> RETURNED.

    Computes the late fee against the planned end date, releases the
    order's reservations and routes any fee to billing: onto the draft
    rental invoice if one exists, onto a new LATE_FEE invoice if the rental
    invoice is already posted, otherwise onto the order for the invoice
    generated later. If every invoice of the order is already posted the
    order moves straight on to INVOICED.
    """
    def _op():
        order = _load_locked(order_id)
        _authorize(order, user, "return")
        _require_transition(order, STATUS_RETURNED, "return")

        actual = return_date or utcnow()
        if actual < order.start_date:
            raise ValidationError("Return date cannot be before the rental start")

        fee = late_fee_service.calculate_late_fee(order.end_date, actual, order.total_amount_cents)
        released = reservation_service.release_order(order)

        previous = order.status
        order.status = STATUS_RETURNED
        order.actual_return_date = actual
        order.late_fee_cents = fee
        if fee:
            invoice_service.apply_late_fee(order, fee, user_id=user.id if user else None)

        _audit_transition(order, previous, user, late_fee_cents=fee, released=released)
        if invoice_service.all_invoices_posted(order):
            mark_invoiced(order, user_id=user.id if user else None)
        db.session.commit()
        return order

    return run_with_retry(_op)


def cancel_order(order_id: int, *, user: User, reason: str | None = None) -> SaleOrder:
    """QUOTATION/SENT/CONFIRMED -> CANCELLED; releases any reservations."""
    def _op():
        order = _load_locked(order_id)
        _authorize(order, user, "cancel")
        _require_transition(order, STATUS_CANCELLED, "cancel")

        released = reservation_service.release_order(order)
        previous = order.status
        order.status = STATUS_CANCELLED
        order.cancelled_at = utcnow()
        order.cancel_reason = (reason or "").strip()[:255] or None
        _audit_transition(order, previous, user, released=released, reason=order.cancel_reason)
        db.session.commit()
        return order

    return run_with_retry(_op)


def mark_invoiced(order: SaleOrder, *, user_id: int | None = None) -> bool:
    """
    RETURNED -> INVOICED, called by invoice_service inside its transaction.

    Returns False (and changes nothing) for orders that are not RETURNED.
    """
    if order.status != STATUS_RETURNED:
        return False
    order.status = STATUS_INVOICED
    audit_service.record(
        user_id=user_id,
        action="ORDER_INVOICED",
        entity="SaleOrder",
        entity_id=order.id,
        metadata={"from": STATUS_RETURNED, "to": STATUS_INVOICED, "order_number": order.order_number},
    )
    return True


def count_by_status(*, vendor_id: int | None = None) -> dict[str, int]:
    query = db.session.query(SaleOrder.status, sa.func.count(SaleOrder.id))
    if vendor_id is not None:
        query = query.filter(SaleOrder.vendor_id == vendor_id)
    counts = {status: 0 for status in sorted(VALID_STATUSES)}
    for status, count in query.group_by(SaleOrder.status).all():
        counts[status] = count
    return counts
