from __future__ import annotations

from ..extensions import db
from ..time_utils import to_utc_z

TRANSACTION_SALE = "sale"
TRANSACTION_RETURN = "return"
TRANSACTION_PURCHASE = "purchase"
TRANSACTION_ADJUSTMENT = "adjustment"

TRANSACTION_TYPES = (
    TRANSACTION_SALE,
    TRANSACTION_RETURN,
    TRANSACTION_PURCHASE,
    TRANSACTION_ADJUSTMENT,
)


class Inventory(db.Model):
    """
    Stock level per product (one-to-one).

    current_quantity is a cached running total of the ledger. It is only
    written by inventory_service.apply_stock_change(), in the same DB
    transaction as the InventoryTransaction row it reflects.
    """
    __tablename__ = "inventory"
    __table_args__ = (
        db.UniqueConstraint("product_id", name="uq_inventory_product"),
        db.CheckConstraint("current_quantity >= 0", name="ck_inventory_non_negative"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    product_id = db.Column(db.Integer, db.ForeignKey("products.id"), nullable=False)

    current_quantity = db.Column(db.Integer, nullable=False, default=0)
    minimum_threshold = db.Column(db.Integer, nullable=False, default=0)
    maximum_capacity = db.Column(db.Integer, nullable=True)
    reserved_quantity = db.Column(db.Integer, nullable=False, default=0)

    last_updated = db.Column(
        db.DateTime(timezone=True),
        nullable=False,
        server_default=db.func.now(),
    )

    product = db.relationship("Product", backref=db.backref("inventory", uselist=False, lazy=True))

    @property
    def stock_status(self) -> str:
        if self.current_quantity == 0:
            return "out_of_stock"
        if self.current_quantity <= self.minimum_threshold:
            return "low_stock"
        return "in_stock"

    @property
    def capacity_percentage(self) -> float | None:
        if not self.maximum_capacity:
            return None
        return round(self.current_quantity * 100 / self.maximum_capacity, 2)

    def to_dict(self) -> dict:
        return {
            "product_id": self.product_id,
            "current_quantity": self.current_quantity,
            "minimum_threshold": self.minimum_threshold,
            "maximum_capacity": self.maximum_capacity,
            "reserved_quantity": self.reserved_quantity,
            "stock_status": self.stock_status,
            "capacity_percentage": self.capacity_percentage,
            "last_updated": to_utc_z(self.last_updated),
        }


class InventoryTransaction(db.Model):
    """
    Append-only stock ledger.

    IMMUTABLE: rows are never updated or deleted. For every product,
    inventory.current_quantity == SUM(quantity_change).
    """
    __tablename__ = "inventory_transactions"
    __table_args__ = (
        db.Index("ix_invtx_product_created", "product_id", "created_at"),
        db.Index("ix_invtx_type_created", "transaction_type", "created_at"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    product_id = db.Column(db.Integer, db.ForeignKey("products.id"), nullable=False, index=True)

    transaction_type = db.Column(db.String(16), nullable=False)

    # Signed delta; quantity_after snapshots the running total for audits
    quantity_change = db.Column(db.Integer, nullable=False)
    quantity_after = db.Column(db.Integer, nullable=False)

    reason = db.Column(db.String(255), nullable=True)

    # Sale id for sale/return/cancel rows, purchase order id for purchases
    reference_id = db.Column(db.Integer, nullable=True, index=True)

    created_by_user_id = db.Column(db.Integer, db.ForeignKey("users.id"), nullable=True)
    created_at = db.Column(
        db.DateTime(timezone=True),
        nullable=False,
        server_default=db.func.now(),
    )

    product = db.relationship("Product")
    created_by = db.relationship("User")

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "product_id": self.product_id,
            "transaction_type": self.transaction_type,
            "quantity_change": self.quantity_change,
            "quantity_after": self.quantity_after,
            "reason": self.reason,
            "reference_id": self.reference_id,
            "created_by": self.created_by_user_id,
            "created_at": to_utc_z(self.created_at),
        }
