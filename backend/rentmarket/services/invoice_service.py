# Overview: Service-layer operations for invoices; encapsulates business logic and database work.

"""
Invoice generation and posting.

TOTALS: order prices are tax-inclusive. For a gross amount G and GST rate r,
    subtotal = round(G / (1 + r/100)),  tax = G - subtotal
and the tax splits into CGST/SGST halves for display.

LIFECYCLE: DRAFT -> POSTED. Posted invoices are never edited; a late fee
found after posting goes on its own LATE_FEE invoice.

ORDER STATUS: generating or posting an invoice for a RETURNED order moves
the order to INVOICED.
"""

from __future__ import annotations

from datetime import timedelta
from decimal import Decimal, ROUND_HALF_UP

from ..extensions import db
from ..models import Invoice, InvoiceLine, SaleOrder, User
from ..models.users import ROLE_ADMIN, ROLE_VENDOR, ROLE_CUSTOMER
from ..validation import NotFoundError
from rentmarket.time_utils import utcnow
from . import audit_service, order_service, settings_service


INVOICE_DRAFT = "DRAFT"
INVOICE_POSTED = "POSTED"
KIND_RENTAL = "RENTAL"
KIND_LATE_FEE = "LATE_FEE"

INVOICEABLE_ORDER_STATUSES = {"CONFIRMED", "PICKED_UP", "RETURNED"}
PAYMENT_TERMS = timedelta(days=7)


class InvoiceError(ValueError):
    pass


def generate_invoice_number(at=None) -> str:
    """Next number in the per-month sequence, e.g. INV-202403-00012."""
    at = at or utcnow()
    prefix = f"{settings_service.get_setting('invoice_prefix') or 'INV'}-{at:%Y%m}-"
    last = (
        db.session.query(Invoice.invoice_number)
        .filter(Invoice.invoice_number.like(f"{prefix}%"))
        .order_by(Invoice.invoice_number.desc())
        .first()
    )
    seq = int(last[0][len(prefix):]) + 1 if last else 1
    return f"{prefix}{seq:05d}"


def split_inclusive_tax(gross_cents: int, gst_percentage: float) -> tuple[int, int]:
    """(subtotal, tax) for a tax-inclusive gross amount."""
    if gross_cents <= 0 or not gst_percentage:
        return gross_cents, 0
    rate = Decimal(str(gst_percentage)) / Decimal(100)
    subtotal = int((Decimal(gross_cents) / (1 + rate)).quantize(Decimal("1"), rounding=ROUND_HALF_UP))
    return subtotal, gross_cents - subtotal


def _recompute_totals(invoice: Invoice) -> None:
    gross = sum(line.amount_cents for line in invoice.lines)
    invoice.total_cents = gross
    invoice.subtotal_cents, invoice.tax_cents = split_inclusive_tax(gross, invoice.gst_percentage)


def gst_breakdown(invoice: Invoice) -> dict[str, int]:
    cgst = invoice.tax_cents // 2
    return {"cgst": cgst, "sgst": invoice.tax_cents - cgst, "total": invoice.tax_cents}


def _new_invoice(order: SaleOrder, kind: str, user_id: int | None) -> Invoice:
    now = utcnow()
    settings = settings_service.get_system_settings()
    invoice = Invoice(
        invoice_number=generate_invoice_number(now),
        order_id=order.id,
        kind=kind,
        status=INVOICE_DRAFT,
        invoice_date=now,
        due_date=now + PAYMENT_TERMS,
        gst_percentage=float(settings.get("gst_percentage") or 0),
        currency=str(settings.get("currency") or "INR"),
        amount_paid_cents=0,
        payment_status="UNPAID",
        created_by_user_id=user_id,
    )
    db.session.add(invoice)
    return invoice


def _late_fee_line(order: SaleOrder, fee_cents: int) -> InvoiceLine:
    return InvoiceLine(
        description=f"Late return fee ({order.order_number})",
        quantity=1,
        unit_price_cents=fee_cents,
        amount_cents=fee_cents,
    )


def can_access(invoice: Invoice, user: User) -> bool:
    return order_service.can_view(invoice.order, user)


def get_invoice_for_user(invoice_id: int, user: User) -> Invoice:
    invoice = db.session.get(Invoice, invoice_id)
    if invoice is None or not can_access(invoice, user):
        raise NotFoundError(f"Invoice {invoice_id} not found")
    return invoice


def generate_from_order(order_id: int, *, user: User) -> Invoice:
    """
    Create the DRAFT rental invoice for an order.

    One line per order line, a negative discount line for coupons and a
    late-fee line when the order already carries one.

    Raises:
        NotFoundError: unknown order
        OrderAccessError: caller is not the vendor or an admin
        InvoiceError: order status not invoiceable, or invoice exists
    """
    order = db.session.get(SaleOrder, order_id)
    if order is None:
        raise NotFoundError(f"Order {order_id} not found")
    if user.role != ROLE_ADMIN and not (
        user.role == ROLE_VENDOR and user.vendor_profile and user.vendor_profile.id == order.vendor_id
    ):
        raise order_service.OrderAccessError("Only the vendor or an admin can invoice this order")
    if order.status not in INVOICEABLE_ORDER_STATUSES:
        raise InvoiceError(
            f"Cannot invoice order {order.order_number} in status '{order.status}'"
        )
    existing = db.session.query(Invoice.id).filter_by(order_id=order.id, kind=KIND_RENTAL).first()
    if existing:
        raise InvoiceError(f"Order {order.order_number} already has an invoice")

    invoice = _new_invoice(order, KIND_RENTAL, user.id)
    for line in order.lines:
        period = line.rental_period.name if line.rental_period else "rental"
        invoice.lines.append(
            InvoiceLine(
                product_id=line.product_id,
                description=f"{line.product.name} x {line.rental_units} {period}",
                quantity=line.quantity,
                unit_price_cents=line.unit_price_cents * line.rental_units,
                amount_cents=line.line_total_cents,
            )
        )
    if order.discount_cents:
        invoice.lines.append(
            InvoiceLine(
                description=f"Coupon {order.coupon.code}" if order.coupon else "Discount",
                quantity=1,
                unit_price_cents=-order.discount_cents,
                amount_cents=-order.discount_cents,
            )
        )
        invoice.discount_cents = order.discount_cents
    if order.late_fee_cents:
        invoice.lines.append(_late_fee_line(order, order.late_fee_cents))
    _recompute_totals(invoice)
    db.session.flush()

    order_service.mark_invoiced(order, user_id=user.id)
    audit_service.record(
        user_id=user.id,
        action="INVOICE_CREATED",
        entity="Invoice",
        entity_id=invoice.id,
        metadata={"invoice_number": invoice.invoice_number, "order_id": order.id, "total_cents": invoice.total_cents},
    )
    db.session.commit()
    return invoice


def apply_late_fee(order: SaleOrder, fee_cents: int, *, user_id: int | None = None) -> Invoice | None:
    """
    Route a late fee to billing. Does not commit.

    Draft rental invoice: gains a late-fee line. Posted rental invoice: a
    new DRAFT LATE_FEE invoice is created. No invoice yet: nothing to do,
    the fee rides on the order until it is invoiced.
    """
    rental = (
        db.session.query(Invoice)
        .filter_by(order_id=order.id, kind=KIND_RENTAL)
        .order_by(Invoice.id.desc())
        .first()
    )
    if rental is None:
        return None
    if rental.status == INVOICE_DRAFT:
        rental.lines.append(_late_fee_line(order, fee_cents))
        _recompute_totals(rental)
        return rental

    invoice = _new_invoice(order, KIND_LATE_FEE, user_id)
    invoice.lines.append(_late_fee_line(order, fee_cents))
    _recompute_totals(invoice)
    db.session.flush()
    audit_service.record(
        user_id=user_id,
        action="LATE_FEE_INVOICE_CREATED",
        entity="Invoice",
        entity_id=invoice.id,
        metadata={"invoice_number": invoice.invoice_number, "order_id": order.id, "late_fee_cents": fee_cents},
    )
    return invoice


def post_invoice(invoice_id: int, *, user: User) -> Invoice:
    """DRAFT -> POSTED. Posting an invoice of a RETURNED order marks the order INVOICED."""
    invoice = db.session.get(Invoice, invoice_id)
    if invoice is None:
        raise NotFoundError(f"Invoice {invoice_id} not found")
    order = invoice.order
    if user.role != ROLE_ADMIN and not (
        user.role == ROLE_VENDOR and user.vendor_profile and user.vendor_profile.id == order.vendor_id
    ):
        raise order_service.OrderAccessError("Only the vendor or an admin can post this invoice")
    if invoice.status != INVOICE_DRAFT:
        raise InvoiceError(
            f"Cannot post invoice {invoice.invoice_number}: current status is '{invoice.status}', must be 'DRAFT'"
        )
    if invoice.total_cents <= 0:
        raise InvoiceError("Cannot post an invoice with a zero total")

    invoice.status = INVOICE_POSTED
    invoice.posted_at = utcnow()
    order_service.mark_invoiced(order, user_id=user.id)
    audit_service.record(
        user_id=user.id,
        action="INVOICE_POSTED",
        entity="Invoice",
        entity_id=invoice.id,
        metadata={"invoice_number": invoice.invoice_number},
    )
    db.session.commit()
    return invoice


def list_invoices(user: User, *, status: str | None = None) -> list[Invoice]:
    query = db.session.query(Invoice).join(SaleOrder, Invoice.order_id == SaleOrder.id)
    if user.role == ROLE_VENDOR:
        if user.vendor_profile is None:
            return []
        query = query.filter(SaleOrder.vendor_id == user.vendor_profile.id)
    elif user.role == ROLE_CUSTOMER:
        if user.customer_profile is None:
            return []
        # Customers only see invoices that have been issued to them
        query = query.filter(
            SaleOrder.customer_id == user.customer_profile.id,
            Invoice.status == INVOICE_POSTED,
        )
    elif user.role != ROLE_ADMIN:
        return []
    if status:
        query = query.filter(Invoice.status == status.upper())
    return query.order_by(Invoice.invoice_date.desc(), Invoice.id.desc()).all()


def invoice_payload(invoice: Invoice) -> dict:
    data = invoice.to_dict()
    data["gst_breakdown"] = gst_breakdown(invoice)
    data["company"] = settings_service.get_company_info()
    data["total_formatted"] = settings_service.format_currency(invoice.total_cents, invoice.currency)
    return data


def all_invoices_posted(order: SaleOrder) -> bool:
    """True when the order has invoices and none of them is still a draft."""
    statuses = [s for (s,) in db.session.query(Invoice.status).filter_by(order_id=order.id).all()]
    return bool(statuses) and all(s == INVOICE_POSTED for s in statuses)
