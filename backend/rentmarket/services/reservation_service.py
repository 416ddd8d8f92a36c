# Overview: Service-layer operations for reservations; encapsulates business logic and database work.

"""
Reservation / Inventory Tracker

WHY: A product has a fixed number of units on hand. Units are promised to
orders for a time window, not forever, so availability is always asked for
a window:

    available(product, [start, end)) = on_hand - sum(overlapping reservations)

WINDOW SEMANTICS:
- Windows are half-open [start, end). A rental ending at 10:00 does not
  block one starting at 10:00.
- Two windows overlap iff existing.start < requested.end AND
  existing.end > requested.start.
- Only reservations whose order is CONFIRMED or PICKED_UP count. Quotes
  and sent quotes hold nothing; returned and cancelled orders have had
  their reservations released.

Reservations are written inside the caller's transaction (order confirm);
this module never commits.
"""

from __future__ import annotations

from collections import OrderedDict
from dataclasses import dataclass, field
from datetime import datetime
from typing import Iterable

import sqlalchemy as sa

from ..extensions import db
from ..models import Product, Reservation, SaleOrder
from ..validation import NotFoundError, validate_window
from rentmarket.time_utils import to_utc_z, utcnow


ACTIVE_ORDER_STATUSES = ("CONFIRMED", "PICKED_UP")

STATUS_FULL = "FULL"
STATUS_PARTIAL = "PARTIAL"
STATUS_NONE = "NONE"


class AvailabilityError(ValueError):
    """Raised when a reservation cannot be satisfied. Carries per-product results."""

    def __init__(self, message: str, results: list["AvailabilityResult"] | None = None):
        super().__init__(message)
        self.results = results or []


@dataclass
class AvailabilityResult:
    product_id: int
    requested_quantity: int
    available_quantity: int
    total_quantity: int
    booked_quantity: int
    status: str
    message: str
    overlapping_bookings: list[dict] = field(default_factory=list)

    @property
    def is_available(self) -> bool:
        return self.status == STATUS_FULL

    def to_dict(self) -> dict:
        return {
            "product_id": self.product_id,
            "requested_quantity": self.requested_quantity,
            "available_quantity": self.available_quantity,
            "total_quantity": self.total_quantity,
            "booked_quantity": self.booked_quantity,
            "status": self.status,
            "message": self.message,
            "overlapping_bookings": self.overlapping_bookings,
        }


def _overlapping_query(product_id: int, start: datetime, end: datetime, *, exclude_order_id: int | None = None):
    query = (
        db.session.query(Reservation)
        .join(SaleOrder, Reservation.order_id == SaleOrder.id)
        .filter(
            Reservation.product_id == product_id,
            Reservation.start_date < end,
            Reservation.end_date > start,
            SaleOrder.status.in_(ACTIVE_ORDER_STATUSES),
        )
    )
    if exclude_order_id is not None:
        query = query.filter(Reservation.order_id != exclude_order_id)
    return query


def _on_hand(product_id: int) -> int:
    product = db.session.get(Product, product_id)
    if product is None:
        raise NotFoundError(f"Product {product_id} not found")
    return product.quantity_on_hand


def get_reserved_quantity(
    product_id: int,
    start: datetime,
    end: datetime,
    *,
    exclude_order_id: int | None = None,
) -> int:
    validate_window(start, end)
    total = (
        _overlapping_query(product_id, start, end, exclude_order_id=exclude_order_id)
        .with_entities(sa.func.coalesce(sa.func.sum(Reservation.quantity), 0))
        .scalar()
    )
    return int(total or 0)


def get_available_quantity(
    product_id: int,
    start: datetime,
    end: datetime,
    *,
    exclude_order_id: int | None = None,
) -> int:
    on_hand = _on_hand(product_id)
    reserved = get_reserved_quantity(product_id, start, end, exclude_order_id=exclude_order_id)
    return max(0, on_hand - reserved)


def _availability_message(status: str, available: int, total: int) -> str:
    if total == 0:
        return "Product is out of stock"
    if status == STATUS_NONE:
        return "This product is not available for the selected time duration."
    if status == STATUS_PARTIAL:
        noun = "units are" if available > 1 else "unit is"
        return f"Only {available} {noun} available for the selected time duration."
    return "Product is fully available for the selected time duration."


def check_availability(
    product_id: int,
    start: datetime,
    end: datetime,
    requested: int,
    *,
    exclude_order_id: int | None = None,
) -> AvailabilityResult:
    """
    Full availability picture for one product over [start, end).

    Status is NONE when nothing is free, PARTIAL when fewer than
    `requested` units are free, FULL otherwise.
    """
    validate_window(start, end)
    if requested < 0:
        raise ValueError("Requested quantity must be >= 0")

    total = _on_hand(product_id)
    overlapping = _overlapping_query(product_id, start, end, exclude_order_id=exclude_order_id).all()
    booked = sum(r.quantity for r in overlapping)
    available = max(0, total - booked)

    if available == 0:
        status = STATUS_NONE
    elif available < requested:
        status = STATUS_PARTIAL
    else:
        status = STATUS_FULL

    return AvailabilityResult(
        product_id=product_id,
        requested_quantity=requested,
        available_quantity=available,
        total_quantity=total,
        booked_quantity=booked,
        status=status,
        message=_availability_message(status, available, total),
        overlapping_bookings=[
            {
                "order_number": r.order.order_number,
                "quantity": r.quantity,
                "start_date": to_utc_z(r.start_date),
                "end_date": to_utc_z(r.end_date),
                "status": r.order.status,
            }
            for r in overlapping
        ],
    )


def _requested_by_product(order: SaleOrder) -> "OrderedDict[int, int]":
    # Several lines may rent the same product; they share one pool.
    totals: OrderedDict[int, int] = OrderedDict()
    for line in order.lines:
        totals[line.product_id] = totals.get(line.product_id, 0) + line.quantity
    return totals


def reserve_order(order: SaleOrder) -> list[Reservation]:
    """
    Create one reservation per product in `order` for its rental window.

    Every product is checked before anything is added, so a failure leaves
    the session untouched.

    Raises:
        AvailabilityError: if any product lacks units for the window
    """
    if not order.lines:
        raise AvailabilityError("Order has no lines to reserve")

    requested = _requested_by_product(order)
    results = [
        check_availability(
            product_id,
            order.start_date,
            order.end_date,
            quantity,
            exclude_order_id=order.id,
        )
        for product_id, quantity in requested.items()
    ]
    short = [r for r in results if not r.is_available]
    if short:
        names = []
        for r in short:
            product = db.session.get(Product, r.product_id)
            names.append(f"{product.name if product else r.product_id} (available {r.available_quantity}, requested {r.requested_quantity})")
        raise AvailabilityError(f"Insufficient availability: {'; '.join(names)}", results)

    now = utcnow()
    created = []
    for result in results:
        reservation = Reservation(
            product_id=result.product_id,
            quantity=result.requested_quantity,
            start_date=order.start_date,
            end_date=order.end_date,
            quantity_on_hand_snapshot=result.total_quantity,
            created_at=now,
        )
        order.reservations.append(reservation)
        created.append(reservation)
    return created


def release_order(order: SaleOrder) -> int:
    """Delete every reservation held by `order`. Returns how many were removed."""
    released = 0
    for reservation in list(order.reservations):
        order.reservations.remove(reservation)
        db.session.delete(reservation)
        released += 1
    return released


def get_rental_status(product_id: int, at: datetime | None = None) -> dict:
    """Units of a product out on rent at instant `at` (default now)."""
    at = at or utcnow()
    total = _on_hand(product_id)
    active = (
        db.session.query(Reservation)
        .join(SaleOrder, Reservation.order_id == SaleOrder.id)
        .filter(
            Reservation.product_id == product_id,
            Reservation.start_date <= at,
            Reservation.end_date > at,
            SaleOrder.status.in_(ACTIVE_ORDER_STATUSES),
        )
        .order_by(Reservation.end_date.asc())
        .all()
    )
    rented_out = sum(r.quantity for r in active)
    return {
        "product_id": product_id,
        "at": to_utc_z(at),
        "total_quantity": total,
        "rented_quantity": rented_out,
        "available_now": max(0, total - rented_out),
        "is_rented": rented_out > 0,
        "active_rentals": [
            {
                "order_number": r.order.order_number,
                "status": r.order.status,
                "quantity": r.quantity,
                "start_date": to_utc_z(r.start_date),
                "end_date": to_utc_z(r.end_date),
                "customer_name": r.order.customer.user.full_name if r.order.customer else None,
            }
            for r in active
        ],
        "next_available_at": to_utc_z(active[0].end_date) if active and rented_out >= total else None,
    }


@dataclass
class CartItem:
    product_id: int
    quantity: int
    start: datetime | None = None
    end: datetime | None = None


def validate_cart(items: Iterable[CartItem]) -> dict:
    """
    Check a batch of cart items at once.

    Items without a window fall back to a plain stock check. Returns
    {"valid", "results", "invalid_items", "message"}.
    """
    results = []
    for item in items:
        entry = {"product_id": item.product_id, "requested_quantity": item.quantity}
        product = db.session.get(Product, item.product_id)
        if product is None:
            entry.update(valid=False, error="Product not found", available_quantity=0)
            results.append(entry)
            continue

        total = product.quantity_on_hand
        if total == 0:
            entry.update(valid=False, error="Product is out of stock", available_quantity=0, total_quantity=0)
            results.append(entry)
            continue

        if item.start is None or item.end is None:
            ok = total >= item.quantity
            entry.update(
                valid=ok,
                error=None if ok else f"Only {total} units available",
                available_quantity=total,
                total_quantity=total,
            )
            results.append(entry)
            continue

        result = check_availability(item.product_id, item.start, item.end, item.quantity)
        ok = result.available_quantity >= item.quantity
        entry.update(
            valid=ok,
            error=None if ok else f"Only {result.available_quantity} units available for selected dates",
            available_quantity=result.available_quantity,
            total_quantity=result.total_quantity,
            booked_quantity=result.booked_quantity,
            start_date=to_utc_z(item.start),
            end_date=to_utc_z(item.end),
        )
        results.append(entry)

    invalid = [r for r in results if not r["valid"]]
    if not invalid:
        message = "All items are available"
    else:
        message = f"{len(invalid)} item{'s are' if len(invalid) > 1 else ' is'} not available"
    return {"valid": not invalid, "results": results, "invalid_items": invalid, "message": message}
