# Overview: Service-layer operations for payment; encapsulates business logic and database work.

"""
Payment Processing Service

WHY: Customers pay posted invoices online. Gateway integration is out of
scope; the flow is modelled as initiate (PENDING, with a gateway order id)
then confirm (COMPLETED with the gateway's transaction reference) or fail.

DESIGN PRINCIPLES:
- Payments are separate from invoices (many-to-one relationship)
- Partial payments allowed; the invoice tracks UNPAID/PARTIAL/PAID
- A payment can never exceed the invoice balance at initiation or confirmation
"""

import secrets

from ..extensions import db
from ..models import Invoice, Payment, User
from ..models.users import ROLE_ADMIN, ROLE_CUSTOMER
from ..validation import NotFoundError, parse_positive_int
from rentmarket.time_utils import utcnow
from .concurrency import lock_for_update, run_with_retry
from . import audit_service


class PaymentError(Exception):
    """Raised for payment operation errors."""
    pass


# =============================================================================
# STATUS CONSTANTS
# =============================================================================

PAYMENT_PENDING = "PENDING"
PAYMENT_COMPLETED = "COMPLETED"
PAYMENT_FAILED = "FAILED"

INVOICE_UNPAID = "UNPAID"
INVOICE_PARTIAL = "PARTIAL"
INVOICE_PAID = "PAID"

VALID_METHODS = {"ONLINE", "CARD", "UPI", "NETBANKING", "CASH"}


def _is_payer(invoice: Invoice, user: User) -> bool:
    if user.role == ROLE_ADMIN:
        return True
    return (
        user.role == ROLE_CUSTOMER
        and user.customer_profile is not None
        and invoice.order.customer_id == user.customer_profile.id
    )


def payment_status_for(invoice: Invoice) -> str:
    if invoice.amount_paid_cents <= 0:
        return INVOICE_UNPAID
    if invoice.amount_paid_cents < invoice.total_cents:
        return INVOICE_PARTIAL
    return INVOICE_PAID


# =============================================================================
# PAYMENT FLOW
# =============================================================================

def initiate_payment(
    invoice_id: int,
    *,
    user: User,
    amount_cents: int | None = None,
    method: str = "ONLINE",
) -> Payment:
    """
    Create a PENDING payment against a POSTED invoice.

    amount_cents defaults to the outstanding balance.

    Raises:
        NotFoundError: invoice missing or not visible to the payer
        PaymentError: invoice not posted, already paid, bad amount or method
    """
    invoice = db.session.get(Invoice, invoice_id)
    if invoice is None or not _is_payer(invoice, user):
        raise NotFoundError(f"Invoice {invoice_id} not found")
    if invoice.status != "POSTED":
        raise PaymentError("Only posted invoices can be paid")

    balance = invoice.balance_due_cents
    if balance <= 0:
        raise PaymentError("Invoice is already fully paid")

    amount = balance if amount_cents is None else parse_positive_int(amount_cents, "amount_cents")
    if amount > balance:
        raise PaymentError(f"Payment amount exceeds balance due ({balance})")

    method = (method or "ONLINE").strip().upper()
    if method not in VALID_METHODS:
        raise PaymentError(f"Invalid payment method '{method}'. Must be one of: {', '.join(sorted(VALID_METHODS))}")

    payment = Payment(
        invoice_id=invoice.id,
        amount_cents=amount,
        method=method,
        status=PAYMENT_PENDING,
        gateway_order_id=f"pay_{secrets.token_hex(8)}",
        created_by_user_id=user.id,
    )
    db.session.add(payment)
    db.session.flush()
    audit_service.record(
        user_id=user.id,
        action="PAYMENT_INITIATED",
        entity="Payment",
        entity_id=payment.id,
        metadata={"invoice_id": invoice.id, "amount_cents": amount},
    )
    db.session.commit()
    return payment


def _find_payment(payment_id: int | None, gateway_order_id: str | None):
    query = db.session.query(Payment)
    if payment_id is not None:
        query = query.filter_by(id=payment_id)
    elif gateway_order_id:
        query = query.filter_by(gateway_order_id=gateway_order_id)
    else:
        raise PaymentError("payment_id or gateway_order_id is required")
    return lock_for_update(query).first()


def confirm_payment(
    *,
    user: User,
    payment_id: int | None = None,
    gateway_order_id: str | None = None,
    transaction_ref: str | None = None,
    success: bool = True,
) -> Payment:
    """
    Settle a PENDING payment.

    success=True marks it COMPLETED and applies it to the invoice;
    success=False marks it FAILED and leaves the invoice untouched.
    """
    def _op():
        payment = _find_payment(payment_id, gateway_order_id)
        if payment is None or not _is_payer(payment.invoice, user):
            raise NotFoundError("Payment not found")
        if payment.status != PAYMENT_PENDING:
            raise PaymentError(f"Payment is already {payment.status}")

        invoice = lock_for_update(db.session.query(Invoice).filter_by(id=payment.invoice_id)).first()
        now = utcnow()

        if not success:
            payment.status = PAYMENT_FAILED
            payment.completed_at = now
            action = "PAYMENT_FAILED"
        else:
            if not (transaction_ref or "").strip():
                raise PaymentError("transaction_ref is required to confirm a payment")
            if payment.amount_cents > invoice.balance_due_cents:
                raise PaymentError("Payment exceeds the current balance due")
            payment.status = PAYMENT_COMPLETED
            payment.transaction_ref = transaction_ref.strip()
            payment.completed_at = now
            invoice.amount_paid_cents += payment.amount_cents
            invoice.payment_status = payment_status_for(invoice)
            action = "PAYMENT_COMPLETED"

        audit_service.record(
            user_id=user.id,
            action=action,
            entity="Payment",
            entity_id=payment.id,
            metadata={
                "invoice_id": invoice.id,
                "amount_cents": payment.amount_cents,
                "invoice_payment_status": invoice.payment_status,
            },
        )
        db.session.commit()
        return payment

    return run_with_retry(_op)


def list_payments_for_invoice(invoice_id: int, *, user: User) -> list[Payment]:
    invoice = db.session.get(Invoice, invoice_id)
    if invoice is None or not _is_payer(invoice, user):
        raise NotFoundError(f"Invoice {invoice_id} not found")
    return sorted(invoice.payments, key=lambda p: p.id)
