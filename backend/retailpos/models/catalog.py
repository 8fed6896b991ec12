from __future__ import annotations

from ..extensions import db
from ..money import cents_to_amount
from ..time_utils import to_utc_z

# Allowed GST slabs (percent)
GST_RATES = (0, 5, 12, 18, 28)


class Category(db.Model):
    """
    Product category with an optional parent (tree).

    Soft-deleted via is_active; names are unique among active siblings
    (enforced in categories_service, since NULL parents defeat a plain
    unique constraint).
    """
    __tablename__ = "categories"
    __table_args__ = (
        db.Index("ix_categories_parent_active", "parent_id", "is_active"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    name = db.Column(db.String(100), nullable=False)
    description = db.Column(db.String(500), nullable=True)
    parent_id = db.Column(db.Integer, db.ForeignKey("categories.id"), nullable=True, index=True)
    is_active = db.Column(db.Boolean, nullable=False, default=True)

    created_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now())
    updated_at = db.Column(
        db.DateTime(timezone=True),
        nullable=False,
        server_default=db.func.now(),
        onupdate=db.func.now(),
    )

    parent = db.relationship("Category", remote_side=[id], backref=db.backref("children", lazy=True))

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "name": self.name,
            "description": self.description,
            "parent_id": self.parent_id,
            "parent_name": self.parent.name if self.parent else None,
            "is_active": self.is_active,
            "created_at": to_utc_z(self.created_at),
            "updated_at": to_utc_z(self.updated_at),
        }


class Product(db.Model):
    """
    Product master data.

    SKU is globally unique; barcode is unique when present. Products are
    never hard-deleted once they exist (sale items keep pointing at them);
    is_active=False removes them from every read path.
    """
    __tablename__ = "products"
    __table_args__ = (
        db.UniqueConstraint("sku", name="uq_products_sku"),
        db.UniqueConstraint("barcode", name="uq_products_barcode"),
        db.Index("ix_products_active_name", "is_active", "name"),
        db.CheckConstraint("gst_rate IN (0, 5, 12, 18, 28)", name="ck_products_gst_rate"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)

    sku = db.Column(db.String(50), nullable=False)
    barcode = db.Column(db.String(100), nullable=True)
    name = db.Column(db.String(200), nullable=False)
    description = db.Column(db.String(1000), nullable=True)

    category_id = db.Column(db.Integer, db.ForeignKey("categories.id"), nullable=False, index=True)

    # Authoritative storage in cents
    purchase_price_cents = db.Column(db.Integer, nullable=False, default=0)
    selling_price_cents = db.Column(db.Integer, nullable=False)
    gst_rate = db.Column(db.Integer, nullable=False, default=0)

    unit = db.Column(db.String(20), nullable=False, default="piece")
    is_active = db.Column(db.Boolean, nullable=False, default=True)

    created_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now())
    updated_at = db.Column(
        db.DateTime(timezone=True),
        nullable=False,
        server_default=db.func.now(),
        onupdate=db.func.now(),
    )

    category = db.relationship("Category", backref=db.backref("products", lazy=True))

    def __repr__(self) -> str:
        return f"<Product id={self.id} sku={self.sku!r} name={self.name!r}>"

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "sku": self.sku,
            "barcode": self.barcode,
            "name": self.name,
            "description": self.description,
            "category_id": self.category_id,
            "category_name": self.category.name if self.category else None,
            "purchase_price": cents_to_amount(self.purchase_price_cents),
            "selling_price": cents_to_amount(self.selling_price_cents),
            "gst_rate": self.gst_rate,
            "unit": self.unit,
            "is_active": self.is_active,
            "created_at": to_utc_z(self.created_at),
            "updated_at": to_utc_z(self.updated_at),
        }
