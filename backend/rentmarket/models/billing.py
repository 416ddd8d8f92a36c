from __future__ import annotations

from ..extensions import db
from rentmarket.time_utils import to_utc_z


class Invoice(db.Model):
    """
    Invoice for a rental order. POSTED invoices are immutable; late fees
    discovered after posting get their own LATE_FEE invoice.
    """
    __tablename__ = "invoices"
    __table_args__ = {"sqlite_autoincrement": True}

    id = db.Column(db.Integer, primary_key=True)
    invoice_number = db.Column(db.String(48), nullable=False, unique=True, index=True)
    order_id = db.Column(db.Integer, db.ForeignKey("sale_orders.id"), nullable=False, index=True)

    kind = db.Column(db.String(16), nullable=False, default="RENTAL")  # RENTAL, LATE_FEE
    status = db.Column(db.String(16), nullable=False, default="DRAFT", index=True)  # DRAFT, POSTED

    invoice_date = db.Column(db.DateTime(timezone=True), nullable=False)
    due_date = db.Column(db.DateTime(timezone=True), nullable=True)
    posted_at = db.Column(db.DateTime(timezone=True), nullable=True)

    # Totals are tax-inclusive: total = subtotal + tax
    subtotal_cents = db.Column(db.Integer, nullable=False, default=0)
    tax_cents = db.Column(db.Integer, nullable=False, default=0)
    discount_cents = db.Column(db.Integer, nullable=False, default=0)
    total_cents = db.Column(db.Integer, nullable=False, default=0)
    gst_percentage = db.Column(db.Float, nullable=False, default=0.0)
    currency = db.Column(db.String(8), nullable=False, default="INR")

    amount_paid_cents = db.Column(db.Integer, nullable=False, default=0)
    payment_status = db.Column(db.String(16), nullable=False, default="UNPAID")  # UNPAID, PARTIAL, PAID

    created_by_user_id = db.Column(db.Integer, db.ForeignKey("users.id"), nullable=True)
    created_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now())

    order = db.relationship("SaleOrder", back_populates="invoices")
    lines = db.relationship("InvoiceLine", back_populates="invoice", cascade="all, delete-orphan", lazy=True)
    payments = db.relationship("Payment", back_populates="invoice", lazy=True)

    @property
    def balance_due_cents(self) -> int:
        return max(0, self.total_cents - self.amount_paid_cents)

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "invoice_number": self.invoice_number,
            "order_id": self.order_id,
            "order_number": self.order.order_number if self.order else None,
            "kind": self.kind,
            "status": self.status,
            "invoice_date": to_utc_z(self.invoice_date),
            "due_date": to_utc_z(self.due_date),
            "posted_at": to_utc_z(self.posted_at),
            "subtotal_cents": self.subtotal_cents,
            "tax_cents": self.tax_cents,
            "discount_cents": self.discount_cents,
            "total_cents": self.total_cents,
            "gst_percentage": self.gst_percentage,
            "currency": self.currency,
            "amount_paid_cents": self.amount_paid_cents,
            "balance_due_cents": self.balance_due_cents,
            "payment_status": self.payment_status,
            "lines": [line.to_dict() for line in self.lines],
        }


class InvoiceLine(db.Model):
    __tablename__ = "invoice_lines"
    __table_args__ = {"sqlite_autoincrement": True}

    id = db.Column(db.Integer, primary_key=True)
    invoice_id = db.Column(db.Integer, db.ForeignKey("invoices.id"), nullable=False, index=True)
    product_id = db.Column(db.Integer, db.ForeignKey("products.id"), nullable=True)
    description = db.Column(db.String(255), nullable=False)
    quantity = db.Column(db.Integer, nullable=False, default=1)
    unit_price_cents = db.Column(db.Integer, nullable=False)
    amount_cents = db.Column(db.Integer, nullable=False)

    invoice = db.relationship("Invoice", back_populates="lines")

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "product_id": self.product_id,
            "description": self.description,
            "quantity": self.quantity,
            "unit_price_cents": self.unit_price_cents,
            "amount_cents": self.amount_cents,
        }


class Payment(db.Model):
    """
    Payment against an invoice. Gateway integration is out of scope: a
    payment is created PENDING and confirmed with the gateway's reference.
    """
    __tablename__ = "payments"
    __table_args__ = {"sqlite_autoincrement": True}

    id = db.Column(db.Integer, primary_key=True)
    invoice_id = db.Column(db.Integer, db.ForeignKey("invoices.id"), nullable=False, index=True)
    amount_cents = db.Column(db.Integer, nullable=False)
    method = db.Column(db.String(32), nullable=False, default="ONLINE")
    status = db.Column(db.String(16), nullable=False, default="PENDING", index=True)  # PENDING, COMPLETED, FAILED
    gateway_order_id = db.Column(db.String(64), nullable=True, unique=True)
    transaction_ref = db.Column(db.String(128), nullable=True)
    created_by_user_id = db.Column(db.Integer, db.ForeignKey("users.id"), nullable=True)
    created_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now())
    completed_at = db.Column(db.DateTime(timezone=True), nullable=True)

    invoice = db.relationship("Invoice", back_populates="payments")

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "invoice_id": self.invoice_id,
            "amount_cents": self.amount_cents,
            "method": self.method,
            "status": self.status,
            "gateway_order_id": self.gateway_order_id,
            "transaction_ref": self.transaction_ref,
            "created_at": to_utc_z(self.created_at),
            "completed_at": to_utc_z(self.completed_at),
        }


class Coupon(db.Model):
    """
    Discount code. PERCENTAGE coupons store basis points (1000 = 10%),
    FLAT coupons store cents. vendor_id NULL means platform-wide.
    """
    __tablename__ = "coupons"
    __table_args__ = {"sqlite_autoincrement": True}

    id = db.Column(db.Integer, primary_key=True)
    code = db.Column(db.String(64), nullable=False, unique=True, index=True)
    discount_type = db.Column(db.String(16), nullable=False)  # PERCENTAGE, FLAT
    percent_bps = db.Column(db.Integer, nullable=True)
    amount_off_cents = db.Column(db.Integer, nullable=True)
    valid_from = db.Column(db.DateTime(timezone=True), nullable=False)
    valid_to = db.Column(db.DateTime(timezone=True), nullable=False)
    max_uses = db.Column(db.Integer, nullable=True)
    used_count = db.Column(db.Integer, nullable=False, default=0)
    is_active = db.Column(db.Boolean, nullable=False, default=True)
    vendor_id = db.Column(db.Integer, db.ForeignKey("vendor_profiles.id"), nullable=True, index=True)
    created_by_user_id = db.Column(db.Integer, db.ForeignKey("users.id"), nullable=True)
    created_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now())

    def to_dict(self) -> dict:
        if self.discount_type == "PERCENTAGE":
            value = (self.percent_bps or 0) / 100
        else:
            value = (self.amount_off_cents or 0) / 100
        return {
            "id": self.id,
            "code": self.code,
            "discount_type": self.discount_type,
            "value": value,
            "percent_bps": self.percent_bps,
            "amount_off_cents": self.amount_off_cents,
            "valid_from": to_utc_z(self.valid_from),
            "valid_to": to_utc_z(self.valid_to),
            "max_uses": self.max_uses,
            "used_count": self.used_count,
            "is_active": self.is_active,
            "vendor_id": self.vendor_id,
        }
