from __future__ import annotations

from datetime import timedelta

from ..extensions import db
from rentmarket.time_utils import to_utc_z


PERIOD_UNIT_LENGTHS = {
    "HOUR": timedelta(hours=1),
    "DAY": timedelta(days=1),
    "WEEK": timedelta(weeks=1),
    "MONTH": timedelta(days=30),
}


class RentalPeriod(db.Model):
    """
    Pricing unit a vendor can quote against (Hourly, Daily, Weekly, ...).
    Admin-managed through the settings screen.
    """
    __tablename__ = "rental_periods"
    __table_args__ = {"sqlite_autoincrement": True}

    id = db.Column(db.Integer, primary_key=True)
    name = db.Column(db.String(64), nullable=False, unique=True)
    unit = db.Column(db.String(16), nullable=False)
    duration = db.Column(db.Integer, nullable=False, default=1)
    created_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now())

    @property
    def length(self) -> timedelta:
        return PERIOD_UNIT_LENGTHS[self.unit] * self.duration

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "name": self.name,
            "unit": self.unit,
            "duration": self.duration,
        }


class Product(db.Model):
    __tablename__ = "products"
    __table_args__ = (
        db.Index("ix_products_vendor_published", "vendor_id", "published"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    vendor_id = db.Column(db.Integer, db.ForeignKey("vendor_profiles.id"), nullable=False, index=True)
    name = db.Column(db.String(255), nullable=False)
    description = db.Column(db.Text, nullable=True)
    category = db.Column(db.String(120), nullable=True)
    product_type = db.Column(db.String(16), nullable=False, default="GOODS")
    is_rentable = db.Column(db.Boolean, nullable=False, default=True)
    published = db.Column(db.Boolean, nullable=False, default=False)
    image_url = db.Column(db.String(512), nullable=True)
    created_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now())
    updated_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now(), onupdate=db.func.now())

    vendor = db.relationship("VendorProfile", backref=db.backref("products", lazy=True))
    pricing = db.relationship("ProductPricing", back_populates="product", cascade="all, delete-orphan", lazy=True)
    inventory = db.relationship("Inventory", back_populates="product", uselist=False, cascade="all, delete-orphan")
    variants = db.relationship("ProductVariant", back_populates="product", cascade="all, delete-orphan", lazy=True)

    @property
    def quantity_on_hand(self) -> int:
        return self.inventory.quantity_on_hand if self.inventory else 0

    def to_dict(self, *, include_vendor: bool = True) -> dict:
        data = {
            "id": self.id,
            "vendor_id": self.vendor_id,
            "name": self.name,
            "description": self.description,
            "category": self.category,
            "product_type": self.product_type,
            "is_rentable": self.is_rentable,
            "published": self.published,
            "image_url": self.image_url,
            "quantity_on_hand": self.quantity_on_hand,
            "pricing": [p.to_dict() for p in sorted(self.pricing, key=lambda p: p.rental_period.length)],
            "variants": [v.to_dict() for v in self.variants],
            "created_at": to_utc_z(self.created_at),
            "updated_at": to_utc_z(self.updated_at),
        }
        if include_vendor and self.vendor is not None:
            data["vendor"] = {"id": self.vendor.id, "company_name": self.vendor.company_name}
        return data


class ProductPricing(db.Model):
    """Price of one rental period unit (e.g. 1 day) for a product."""
    __tablename__ = "product_pricing"
    __table_args__ = (
        db.UniqueConstraint("product_id", "rental_period_id", name="uq_product_pricing_period"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    product_id = db.Column(db.Integer, db.ForeignKey("products.id"), nullable=False, index=True)
    rental_period_id = db.Column(db.Integer, db.ForeignKey("rental_periods.id"), nullable=False)
    price_cents = db.Column(db.Integer, nullable=False)

    product = db.relationship("Product", back_populates="pricing")
    rental_period = db.relationship("RentalPeriod")

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "rental_period_id": self.rental_period_id,
            "rental_period": self.rental_period.to_dict() if self.rental_period else None,
            "price_cents": self.price_cents,
        }


class Inventory(db.Model):
    """Total units a vendor owns for a product; reservations are netted against it."""
    __tablename__ = "inventory"
    __table_args__ = {"sqlite_autoincrement": True}

    id = db.Column(db.Integer, primary_key=True)
    product_id = db.Column(db.Integer, db.ForeignKey("products.id"), nullable=False, unique=True)
    quantity_on_hand = db.Column(db.Integer, nullable=False, default=0)
    updated_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now(), onupdate=db.func.now())

    product = db.relationship("Product", back_populates="inventory")


class ProductVariant(db.Model):
    __tablename__ = "product_variants"
    __table_args__ = {"sqlite_autoincrement": True}

    id = db.Column(db.Integer, primary_key=True)
    product_id = db.Column(db.Integer, db.ForeignKey("products.id"), nullable=False, index=True)
    name = db.Column(db.String(255), nullable=False)
    # {"Color": "Red", "Size": "Large"}
    attributes = db.Column(db.JSON, nullable=False, default=dict)
    price_cents = db.Column(db.Integer, nullable=True)
    quantity_on_hand = db.Column(db.Integer, nullable=False, default=0)

    product = db.relationship("Product", back_populates="variants")

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "product_id": self.product_id,
            "name": self.name,
            "attributes": self.attributes or {},
            "price_cents": self.price_cents,
            "quantity_on_hand": self.quantity_on_hand,
        }
