from __future__ import annotations

from ..extensions import db
from ..money import cents_to_amount
from ..time_utils import to_utc_z

SALE_STATUS_PENDING = "pending"
SALE_STATUS_COMPLETED = "completed"
SALE_STATUS_CANCELLED = "cancelled"
SALE_STATUS_REFUNDED = "refunded"

SALE_STATUSES = (
    SALE_STATUS_PENDING,
    SALE_STATUS_COMPLETED,
    SALE_STATUS_CANCELLED,
    SALE_STATUS_REFUNDED,
)

SALE_PAYMENT_METHODS = ("cash", "card", "upi", "mixed")
TENDER_METHODS = ("cash", "card", "upi")
REFUND_METHODS = ("cash", "card", "store_credit")


class Sale(db.Model):
    """
    Sale header.

    Refunds are Sale rows too: status "refunded", negative amounts and
    original_sale_id pointing at the sale they reverse. The original sale
    is never modified by a refund.

    Status transitions:
      pending   -> completed | cancelled
      completed -> (refund creates a new row; status stays completed)
    """
    __tablename__ = "sales"
    __table_args__ = (
        db.UniqueConstraint("sale_number", name="uq_sales_sale_number"),
        db.Index("ix_sales_status_created", "status", "created_at"),
        db.Index("ix_sales_cashier_created", "cashier_id", "created_at"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    sale_number = db.Column(db.String(32), nullable=False)

    subtotal_cents = db.Column(db.Integer, nullable=False, default=0)
    gst_amount_cents = db.Column(db.Integer, nullable=False, default=0)
    discount_amount_cents = db.Column(db.Integer, nullable=False, default=0)
    total_amount_cents = db.Column(db.Integer, nullable=False, default=0)

    payment_method = db.Column(db.String(16), nullable=False)
    status = db.Column(db.String(16), nullable=False, default=SALE_STATUS_COMPLETED)

    customer_name = db.Column(db.String(100), nullable=True)
    customer_phone = db.Column(db.String(20), nullable=True)
    customer_email = db.Column(db.String(255), nullable=True)
    notes = db.Column(db.String(500), nullable=True)

    cashier_id = db.Column(db.Integer, db.ForeignKey("users.id"), nullable=False, index=True)
    original_sale_id = db.Column(db.Integer, db.ForeignKey("sales.id"), nullable=True, index=True)

    created_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now())
    completed_at = db.Column(db.DateTime(timezone=True), nullable=True)

    cancelled_at = db.Column(db.DateTime(timezone=True), nullable=True)
    cancelled_by_user_id = db.Column(db.Integer, db.ForeignKey("users.id"), nullable=True)
    cancel_reason = db.Column(db.String(255), nullable=True)

    cashier = db.relationship("User", foreign_keys=[cashier_id])
    cancelled_by = db.relationship("User", foreign_keys=[cancelled_by_user_id])
    original_sale = db.relationship("Sale", remote_side=[id], backref=db.backref("refunds", lazy=True))

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "sale_number": self.sale_number,
            "subtotal": cents_to_amount(self.subtotal_cents),
            "gst_amount": cents_to_amount(self.gst_amount_cents),
            "discount_amount": cents_to_amount(self.discount_amount_cents),
            "total_amount": cents_to_amount(self.total_amount_cents),
            "payment_method": self.payment_method,
            "status": self.status,
            "customer_name": self.customer_name,
            "customer_phone": self.customer_phone,
            "customer_email": self.customer_email,
            "notes": self.notes,
            "cashier_id": self.cashier_id,
            "cashier_name": self.cashier.full_name if self.cashier else None,
            "original_sale_id": self.original_sale_id,
            "sale_date": to_utc_z(self.created_at),
            "completed_at": to_utc_z(self.completed_at),
            "cancelled_at": to_utc_z(self.cancelled_at),
            "cancelled_by": self.cancelled_by_user_id,
            "cancel_reason": self.cancel_reason,
        }


class SaleItem(db.Model):
    """
    Line item with a price and tax snapshot taken at sale time.

    Refund lines carry negative quantity/amounts and point back at the
    refunded line through refunded_from_item_id.
    """
    __tablename__ = "sale_items"
    __table_args__ = (
        db.Index("ix_sale_items_sale", "sale_id"),
        db.Index("ix_sale_items_refunded_from", "refunded_from_item_id"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    sale_id = db.Column(db.Integer, db.ForeignKey("sales.id"), nullable=False)
    product_id = db.Column(db.Integer, db.ForeignKey("products.id"), nullable=False, index=True)

    quantity = db.Column(db.Integer, nullable=False)
    unit_price_cents = db.Column(db.Integer, nullable=False)
    discount_percentage = db.Column(db.Numeric(5, 2), nullable=False, default=0)

    # Subtotal after the line discount, before tax
    line_subtotal_cents = db.Column(db.Integer, nullable=False)
    gst_rate = db.Column(db.Integer, nullable=False, default=0)
    gst_amount_cents = db.Column(db.Integer, nullable=False, default=0)
    total_amount_cents = db.Column(db.Integer, nullable=False)

    refunded_from_item_id = db.Column(db.Integer, db.ForeignKey("sale_items.id"), nullable=True)

    sale = db.relationship("Sale", backref=db.backref("items", lazy=True, order_by="SaleItem.id"))
    product = db.relationship("Product")

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "sale_id": self.sale_id,
            "product_id": self.product_id,
            "product_name": self.product.name if self.product else None,
            "product_sku": self.product.sku if self.product else None,
            "unit": self.product.unit if self.product else None,
            "quantity": self.quantity,
            "unit_price": cents_to_amount(self.unit_price_cents),
            "discount_percentage": float(self.discount_percentage or 0),
            "line_subtotal": cents_to_amount(self.line_subtotal_cents),
            "gst_rate": self.gst_rate,
            "gst_amount": cents_to_amount(self.gst_amount_cents),
            "total_amount": cents_to_amount(self.total_amount_cents),
            "refunded_from_item_id": self.refunded_from_item_id,
        }


class PaymentDetail(db.Model):
    """One tender applied to a sale (several rows for mixed payment)."""
    __tablename__ = "payment_details"
    __table_args__ = (
        db.Index("ix_payment_details_sale", "sale_id"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    sale_id = db.Column(db.Integer, db.ForeignKey("sales.id"), nullable=False)

    payment_method = db.Column(db.String(16), nullable=False)
    amount_cents = db.Column(db.Integer, nullable=False)
    change_amount_cents = db.Column(db.Integer, nullable=False, default=0)
    reference_number = db.Column(db.String(100), nullable=True)

    created_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now())

    sale = db.relationship("Sale", backref=db.backref("payments", lazy=True, order_by="PaymentDetail.id"))

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "sale_id": self.sale_id,
            "payment_method": self.payment_method,
            "amount": cents_to_amount(self.amount_cents),
            "change_amount": cents_to_amount(self.change_amount_cents),
            "reference_number": self.reference_number,
            "created_at": to_utc_z(self.created_at),
        }


class SaleNumberSequence(db.Model):
    """
    Per-day counter for sale numbers (SL + YYYYMMDD + NNNN).

    next_number is incremented with a single UPDATE inside the sale's
    write transaction.
    """
    __tablename__ = "sale_number_sequences"
    __table_args__ = (
        db.UniqueConstraint("day_key", name="uq_sale_number_sequences_day"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    day_key = db.Column(db.String(8), nullable=False)
    next_number = db.Column(db.Integer, nullable=False, default=1)
