from __future__ import annotations

from ..extensions import db
from rentmarket.time_utils import to_utc_z


class SaleOrder(db.Model):
    """
    Rental order between one customer and one vendor.

    Status lifecycle lives in services/order_service.py. Reservations are
    only attached while the order is CONFIRMED or PICKED_UP.
    """
    __tablename__ = "sale_orders"
    __table_args__ = (
        db.Index("ix_sale_orders_vendor_status", "vendor_id", "status"),
        db.Index("ix_sale_orders_status_end_date", "status", "end_date"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    order_number = db.Column(db.String(32), nullable=False, unique=True, index=True)

    customer_id = db.Column(db.Integer, db.ForeignKey("customer_profiles.id"), nullable=False, index=True)
    vendor_id = db.Column(db.Integer, db.ForeignKey("vendor_profiles.id"), nullable=False, index=True)
    coupon_id = db.Column(db.Integer, db.ForeignKey("coupons.id"), nullable=True)

    status = db.Column(db.String(16), nullable=False, default="QUOTATION", index=True)

    # Rental window, half-open [start_date, end_date)
    start_date = db.Column(db.DateTime(timezone=True), nullable=False)
    end_date = db.Column(db.DateTime(timezone=True), nullable=False)
    pickup_date = db.Column(db.DateTime(timezone=True), nullable=True)
    actual_return_date = db.Column(db.DateTime(timezone=True), nullable=True)

    # Money in cents
    subtotal_cents = db.Column(db.Integer, nullable=False, default=0)
    discount_cents = db.Column(db.Integer, nullable=False, default=0)
    total_amount_cents = db.Column(db.Integer, nullable=False, default=0)
    late_fee_cents = db.Column(db.Integer, nullable=False, default=0)

    notes = db.Column(db.Text, nullable=True)
    cancel_reason = db.Column(db.String(255), nullable=True)

    order_date = db.Column(db.DateTime(timezone=True), nullable=False)
    sent_at = db.Column(db.DateTime(timezone=True), nullable=True)
    confirmed_at = db.Column(db.DateTime(timezone=True), nullable=True)
    cancelled_at = db.Column(db.DateTime(timezone=True), nullable=True)
    expiry_notified_at = db.Column(db.DateTime(timezone=True), nullable=True)

    created_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now())
    updated_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now(), onupdate=db.func.now())
    version_id = db.Column(db.Integer, nullable=False, default=1)

    customer = db.relationship("CustomerProfile", backref=db.backref("orders", lazy=True))
    vendor = db.relationship("VendorProfile", backref=db.backref("orders", lazy=True))
    coupon = db.relationship("Coupon")
    lines = db.relationship("SaleOrderLine", back_populates="order", cascade="all, delete-orphan", lazy=True)
    reservations = db.relationship("Reservation", back_populates="order", cascade="all, delete-orphan", lazy=True)
    invoices = db.relationship("Invoice", back_populates="order", lazy=True)

    __mapper_args__ = {"version_id_col": version_id}

    def __repr__(self) -> str:
        return f"<SaleOrder {self.order_number} status={self.status}>"

    def to_dict(self, *, include_lines: bool = True) -> dict:
        data = {
            "id": self.id,
            "order_number": self.order_number,
            "customer_id": self.customer_id,
            "vendor_id": self.vendor_id,
            "coupon_id": self.coupon_id,
            "status": self.status,
            "start_date": to_utc_z(self.start_date),
            "end_date": to_utc_z(self.end_date),
            "pickup_date": to_utc_z(self.pickup_date),
            "actual_return_date": to_utc_z(self.actual_return_date),
            "subtotal_cents": self.subtotal_cents,
            "discount_cents": self.discount_cents,
            "total_amount_cents": self.total_amount_cents,
            "late_fee_cents": self.late_fee_cents,
            "notes": self.notes,
            "cancel_reason": self.cancel_reason,
            "order_date": to_utc_z(self.order_date),
            "confirmed_at": to_utc_z(self.confirmed_at),
            "expiry_notified_at": to_utc_z(self.expiry_notified_at),
            "created_at": to_utc_z(self.created_at),
            "vendor": {"id": self.vendor.id, "company_name": self.vendor.company_name} if self.vendor else None,
        }
        if self.customer is not None and self.customer.user is not None:
            data["customer"] = {
                "id": self.customer.id,
                "name": self.customer.user.full_name,
                "email": self.customer.user.email,
            }
        if include_lines:
            data["lines"] = [line.to_dict() for line in self.lines]
            data["reservations"] = [r.to_dict() for r in self.reservations]
        return data


class SaleOrderLine(db.Model):
    __tablename__ = "sale_order_lines"
    __table_args__ = {"sqlite_autoincrement": True}

    id = db.Column(db.Integer, primary_key=True)
    order_id = db.Column(db.Integer, db.ForeignKey("sale_orders.id"), nullable=False, index=True)
    product_id = db.Column(db.Integer, db.ForeignKey("products.id"), nullable=False, index=True)
    variant_id = db.Column(db.Integer, db.ForeignKey("product_variants.id"), nullable=True)
    rental_period_id = db.Column(db.Integer, db.ForeignKey("rental_periods.id"), nullable=True)

    quantity = db.Column(db.Integer, nullable=False)
    unit_price_cents = db.Column(db.Integer, nullable=False)
    rental_units = db.Column(db.Integer, nullable=False, default=1)
    line_total_cents = db.Column(db.Integer, nullable=False)

    order = db.relationship("SaleOrder", back_populates="lines")
    product = db.relationship("Product")
    variant = db.relationship("ProductVariant")
    rental_period = db.relationship("RentalPeriod")

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "order_id": self.order_id,
            "product_id": self.product_id,
            "product_name": self.product.name if self.product else None,
            "variant_id": self.variant_id,
            "rental_period_id": self.rental_period_id,
            "quantity": self.quantity,
            "unit_price_cents": self.unit_price_cents,
            "rental_units": self.rental_units,
            "line_total_cents": self.line_total_cents,
        }


class Reservation(db.Model):
    """
    Time-bounded hold on product quantity for a confirmed order.

    quantity_on_hand_snapshot records the inventory total when the hold was
    taken, for later audit of overbooking disputes.
    """
    __tablename__ = "reservations"
    __table_args__ = (
        db.Index("ix_reservations_product_window", "product_id", "start_date", "end_date"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    order_id = db.Column(db.Integer, db.ForeignKey("sale_orders.id"), nullable=False, index=True)
    product_id = db.Column(db.Integer, db.ForeignKey("products.id"), nullable=False, index=True)
    quantity = db.Column(db.Integer, nullable=False)
    start_date = db.Column(db.DateTime(timezone=True), nullable=False)
    end_date = db.Column(db.DateTime(timezone=True), nullable=False)
    quantity_on_hand_snapshot = db.Column(db.Integer, nullable=False, default=0)
    created_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now())

    order = db.relationship("SaleOrder", back_populates="reservations")
    product = db.relationship("Product")

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "order_id": self.order_id,
            "product_id": self.product_id,
            "quantity": self.quantity,
            "start_date": to_utc_z(self.start_date),
            "end_date": to_utc_z(self.end_date),
            "quantity_on_hand_snapshot": self.quantity_on_hand_snapshot,
        }
