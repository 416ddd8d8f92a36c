# Overview: Service-layer operations for reporting; encapsulates business logic and database work.

from __future__ import annotations

from datetime import datetime

from sqlalchemy import func

from rentmarket.extensions import db
from rentmarket.models import (
    User,
    SaleOrder,
    SaleOrderLine,
    Product,
    Invoice,
    Payment,
)
from rentmarket.services import order_service, settings_service
from rentmarket.time_utils import parse_iso_datetime, utcnow, to_utc_z


SUPPORTED_FORMATS = {"json"}


class ReportError(Exception):
    """Raised when report generation fails."""
    pass


class ReportFormatNotSupported(ReportError):
    pass


def _parse_range(start: str | None, end: str | None) -> tuple[datetime | None, datetime | None]:
    try:
        start_dt = parse_iso_datetime(start) if start else None
        end_dt = parse_iso_datetime(end) if end else None
    except ValueError:
        raise ReportError("start and end must be ISO-8601 datetimes")
    if start_dt and end_dt and start_dt > end_dt:
        raise ReportError("start must be before end")
    return start_dt, end_dt


def _check_format(fmt: str | None) -> None:
    fmt = (fmt or "json").lower()
    if fmt not in SUPPORTED_FORMATS:
        raise ReportFormatNotSupported(f"Report format '{fmt}' is not supported")


def _order_filters(query, start_dt, end_dt, vendor_id=None):
    if vendor_id is not None:
        query = query.filter(SaleOrder.vendor_id == vendor_id)
    if start_dt:
        query = query.filter(SaleOrder.order_date >= start_dt)
    if end_dt:
        query = query.filter(SaleOrder.order_date <= end_dt)
    return query


def _invoiced_cents(start_dt, end_dt, vendor_id=None) -> int:
    query = db.session.query(func.coalesce(func.sum(Invoice.total_cents), 0)).join(
        SaleOrder, Invoice.order_id == SaleOrder.id
    ).filter(Invoice.status == "POSTED")
    return int(_order_filters(query, start_dt, end_dt, vendor_id).scalar() or 0)


def _collected_cents(start_dt, end_dt, vendor_id=None) -> int:
    query = (
        db.session.query(func.coalesce(func.sum(Payment.amount_cents), 0))
        .join(Invoice, Payment.invoice_id == Invoice.id)
        .join(SaleOrder, Invoice.order_id == SaleOrder.id)
        .filter(Payment.status == "COMPLETED")
    )
    return int(_order_filters(query, start_dt, end_dt, vendor_id).scalar() or 0)


def _orders_by_status(start_dt, end_dt, vendor_id=None) -> dict[str, int]:
    counts = {status: 0 for status in sorted(order_service.VALID_STATUSES)}
    query = db.session.query(SaleOrder.status, func.count(SaleOrder.id))
    for status, count in _order_filters(query, start_dt, end_dt, vendor_id).group_by(SaleOrder.status).all():
        counts[status] = count
    return counts


def _late_fees_cents(start_dt, end_dt, vendor_id=None) -> int:
    query = db.session.query(func.coalesce(func.sum(SaleOrder.late_fee_cents), 0))
    return int(_order_filters(query, start_dt, end_dt, vendor_id).scalar() or 0)


def admin_report(*, start: str | None = None, end: str | None = None, fmt: str | None = None) -> dict:
    _check_format(fmt)
    start_dt, end_dt = _parse_range(start, end)

    users_by_role = {
        role: count
        for role, count in db.session.query(User.role, func.count(User.id)).group_by(User.role).all()
    }
    invoiced = _invoiced_cents(start_dt, end_dt)
    return {
        "generated_at": to_utc_z(utcnow()),
        "range": {"start": to_utc_z(start_dt), "end": to_utc_z(end_dt)},
        "users_by_role": users_by_role,
        "orders_by_status": _orders_by_status(start_dt, end_dt),
        "revenue": {
            "invoiced_cents": invoiced,
            "collected_cents": _collected_cents(start_dt, end_dt),
            "late_fees_cents": _late_fees_cents(start_dt, end_dt),
            "platform_fees_cents": settings_service.calculate_platform_fee(invoiced),
        },
        "currency": settings_service.get_setting("currency"),
    }


def vendor_report(vendor_id: int, *, start: str | None = None, end: str | None = None, fmt: str | None = None, top: int = 5) -> dict:
    _check_format(fmt)
    start_dt, end_dt = _parse_range(start, end)

    invoiced = _invoiced_cents(start_dt, end_dt, vendor_id)
    platform_fee = settings_service.calculate_platform_fee(invoiced)

    top_query = (
        db.session.query(
            Product.id,
            Product.name,
            func.coalesce(func.sum(SaleOrderLine.quantity), 0).label("units"),
            func.coalesce(func.sum(SaleOrderLine.line_total_cents), 0).label("revenue_cents"),
        )
        .join(SaleOrderLine, SaleOrderLine.product_id == Product.id)
        .join(SaleOrder, SaleOrderLine.order_id == SaleOrder.id)
        .filter(SaleOrder.status.in_(("CONFIRMED", "PICKED_UP", "RETURNED", "INVOICED")))
    )
    top_rows = (
        _order_filters(top_query, start_dt, end_dt, vendor_id)
        .group_by(Product.id, Product.name)
        .order_by(func.sum(SaleOrderLine.line_total_cents).desc())
        .limit(top)
        .all()
    )

    return {
        "generated_at": to_utc_z(utcnow()),
        "vendor_id": vendor_id,
        "range": {"start": to_utc_z(start_dt), "end": to_utc_z(end_dt)},
        "orders_by_status": _orders_by_status(start_dt, end_dt, vendor_id),
        "earnings": {
            "invoiced_cents": invoiced,
            "collected_cents": _collected_cents(start_dt, end_dt, vendor_id),
            "late_fees_cents": _late_fees_cents(start_dt, end_dt, vendor_id),
            "platform_fee_cents": platform_fee,
            "net_earnings_cents": invoiced - platform_fee,
            "minimum_payout": settings_service.get_setting("minimum_payout"),
        },
        "top_products": [
            {"product_id": pid, "name": name, "units": int(units), "revenue_cents": int(revenue)}
            for pid, name, units, revenue in top_rows
        ],
        "currency": settings_service.get_setting("currency"),
    }
