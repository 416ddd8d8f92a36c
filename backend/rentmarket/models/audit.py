from __future__ import annotations

from ..extensions import db
from rentmarket.time_utils import to_utc_z


class AuditLog(db.Model):
    """Append-only trail of who changed what (order transitions, invoices, settings)."""
    __tablename__ = "audit_logs"
    __table_args__ = (
        db.Index("ix_audit_logs_entity", "entity", "entity_id"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    user_id = db.Column(db.Integer, db.ForeignKey("users.id"), nullable=True, index=True)
    action = db.Column(db.String(64), nullable=False, index=True)
    entity = db.Column(db.String(64), nullable=False)
    entity_id = db.Column(db.String(64), nullable=True)
    # "metadata" is reserved on declarative models
    details = db.Column("metadata", db.JSON, nullable=True)
    created_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now())

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "user_id": self.user_id,
            "action": self.action,
            "entity": self.entity,
            "entity_id": self.entity_id,
            "metadata": self.details or {},
            "created_at": to_utc_z(self.created_at),
        }


class RentalNotification(db.Model):
    """One row per expiry reminder attempt (sent or failed)."""
    __tablename__ = "rental_notifications"
    __table_args__ = {"sqlite_autoincrement": True}

    id = db.Column(db.Integer, primary_key=True)
    order_id = db.Column(db.Integer, db.ForeignKey("sale_orders.id"), nullable=False, index=True)
    user_id = db.Column(db.Integer, db.ForeignKey("users.id"), nullable=False, index=True)
    kind = db.Column(db.String(32), nullable=False, default="RENTAL_EXPIRY")
    email = db.Column(db.String(255), nullable=False)
    product_names = db.Column(db.JSON, nullable=False, default=list)
    expiry_time = db.Column(db.DateTime(timezone=True), nullable=False)
    status = db.Column(db.String(16), nullable=False)  # SENT, FAILED
    transport = db.Column(db.String(16), nullable=True)  # smtp, console
    error = db.Column(db.Text, nullable=True)
    created_at = db.Column(db.DateTime(timezone=True), nullable=False)

    order = db.relationship("SaleOrder")

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "order_id": self.order_id,
            "order_number": self.order.order_number if self.order else None,
            "user_id": self.user_id,
            "kind": self.kind,
            "email": self.email,
            "product_names": self.product_names or [],
            "expiry_time": to_utc_z(self.expiry_time),
            "status": self.status,
            "transport": self.transport,
            "error": self.error,
            "created_at": to_utc_z(self.created_at),
        }
