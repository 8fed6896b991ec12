"""
Sales Service - checkout, completion, refunds and cancellation.

Every write workflow here runs as one DB transaction:
  begin_write() -> lock rows -> validate -> persist -> commit
and rolls back on any error. Stock moves only through
inventory_service.apply_stock_change().

Lock order: sale row (when one exists) before inventory rows; inventory
rows in ascending product id.
"""

from __future__ import annotations

import logging
from collections import defaultdict

from flask import current_app
from sqlalchemy import func

from ..errors import NotFoundError, PaymentError, RefundError, SaleStateError, StockError
from ..extensions import db
from ..models import PaymentDetail, Product, Sale, SaleItem
from ..models.inventory import TRANSACTION_ADJUSTMENT, TRANSACTION_RETURN, TRANSACTION_SALE
from ..models.sales import SALE_STATUS_CANCELLED, SALE_STATUS_COMPLETED, SALE_STATUS_PENDING, SALE_STATUS_REFUNDED
from ..money import cents_to_amount
from ..pricing import TenderRecord, compute_totals, price_line, reconcile_payments, refund_share
from ..time_utils import to_utc_z, utcnow
from ..validation import RefundRequest, SaleRequest
from .concurrency import begin_write, lock_for_update
from .inventory_service import apply_stock_change, lock_inventory_rows
from .query_filters import SaleFilter, paginate
from .sequence_service import next_refund_number, next_sale_number

logger = logging.getLogger(__name__)


def _sale_payload(sale: Sale) -> dict:
    return {
        "sale": sale.to_dict(),
        "items": [item.to_dict() for item in sale.items],
        "payments": [payment.to_dict() for payment in sale.payments],
    }


def _lock_sale(sale_id: int) -> Sale | None:
    return lock_for_update(db.session.query(Sale).filter_by(id=sale_id)).first()


# =============================================================================
# Create
# =============================================================================

def _check_stock(request: SaleRequest, products: dict, inventories: dict) -> None:
    required: dict[int, int] = defaultdict(int)
    for item in request.items:
        required[item.product_id] += item.quantity

    for product_id in sorted(required):
        product = products.get(product_id)
        if product is None or not product.is_active:
            raise StockError(
                f"Product {product_id} not found or inactive",
                details={"product_id": product_id},
            )
        inventory = inventories.get(product_id)
        available = inventory.current_quantity if inventory else 0
        if required[product_id] > available:
            raise StockError(
                f"Insufficient stock for {product.name}. Available: {available}, Required: {required[product_id]}",
                details={
                    "product_id": product_id,
                    "product_name": product.name,
                    "available": available,
                    "required": required[product_id],
                },
            )


def create_sale(request: SaleRequest, *, cashier_id: int) -> dict:
    """
    Record a sale and decrement stock atomically.

    Raises StockError, PaymentError or ValidationError; nothing is written
    when any of them is raised.
    """
    try:
        begin_write()

        product_ids = [item.product_id for item in request.items]
        inventories = lock_inventory_rows(product_ids)
        products = {
            p.id: p for p in db.session.query(Product).filter(Product.id.in_(set(product_ids))).all()
        }
        _check_stock(request, products, inventories)

        lines = []
        for item in request.items:
            product = products[item.product_id]
            unit_price = item.unit_price_cents
            if unit_price is None:
                unit_price = product.selling_price_cents
            lines.append(price_line(
                product_id=product.id,
                quantity=item.quantity,
                unit_price_cents=unit_price,
                gst_rate=product.gst_rate,
                discount_percentage=item.discount_percentage,
            ))

        totals = compute_totals(lines, request.discount_cents)
        tenders = reconcile_payments(
            request.payment_method,
            [
                TenderRecord(method=t.method, amount_cents=t.amount_cents, reference_number=t.reference_number)
                for t in request.payment_details
            ],
            totals.total_cents,
        )

        now = utcnow()
        sale = Sale(
            sale_number=next_sale_number(now),
            subtotal_cents=totals.subtotal_cents,
            gst_amount_cents=totals.gst_cents,
            discount_amount_cents=totals.discount_cents,
            total_amount_cents=totals.total_cents,
            payment_method=request.payment_method,
            status=request.status,
            customer_name=request.customer_name,
            customer_phone=request.customer_phone,
            customer_email=request.customer_email,
            notes=request.notes,
            cashier_id=cashier_id,
            created_at=now,
            completed_at=now if request.status == SALE_STATUS_COMPLETED else None,
        )
        db.session.add(sale)
        db.session.flush()

        for line in lines:
            db.session.add(SaleItem(
                sale_id=sale.id,
                product_id=line.product_id,
                quantity=line.quantity,
                unit_price_cents=line.unit_price_cents,
                discount_percentage=line.discount_percentage,
                line_subtotal_cents=line.line_subtotal_cents,
                gst_rate=line.gst_rate,
                gst_amount_cents=line.gst_amount_cents,
                total_amount_cents=line.total_amount_cents,
            ))
            inventory = inventories[line.product_id]
            apply_stock_change(
                inventory,
                new_quantity=inventory.current_quantity - line.quantity,
                transaction_type=TRANSACTION_SALE,
                reason=f"Sale {sale.sale_number}",
                reference_id=sale.id,
                user_id=cashier_id,
            )

        for tender in tenders:
            db.session.add(PaymentDetail(
                sale_id=sale.id,
                payment_method=tender.method,
                amount_cents=tender.amount_cents,
                change_amount_cents=tender.change_cents,
                reference_number=tender.reference_number,
                created_at=now,
            ))

        db.session.commit()
    except (StockError, PaymentError) as exc:
        db.session.rollback()
        logger.warning("Checkout rejected (%s): %s", exc.code, exc.message)
        raise
    except Exception:
        db.session.rollback()
        raise

    logger.info(
        "Sale %s recorded: %d line(s), total %s, status %s",
        sale.sale_number, len(lines), cents_to_amount(sale.total_amount_cents), sale.status,
    )
    return _sale_payload(sale)


def complete_sale(sale_id: int, *, user_id: int) -> dict:
    """Move a held (pending) sale to completed."""
    try:
        begin_write()
        sale = _lock_sale(sale_id)
        if sale is None:
            raise NotFoundError("Sale not found", code="SALE_NOT_FOUND")
        if sale.status != SALE_STATUS_PENDING:
            raise SaleStateError(f"Only pending sales can be completed (status: {sale.status})")
        sale.status = SALE_STATUS_COMPLETED
        sale.completed_at = utcnow()
        db.session.commit()
    except Exception:
        db.session.rollback()
        raise

    logger.info("Sale %s completed by user %s", sale.sale_number, user_id)
    return _sale_payload(sale)


# =============================================================================
# Refund
# =============================================================================

def _already_refunded(item_ids) -> dict[int, dict]:
    """Units, subtotal and GST already returned per original line (positive)."""
    rows = (
        db.session.query(
            SaleItem.refunded_from_item_id,
            func.coalesce(func.sum(SaleItem.quantity), 0),
            func.coalesce(func.sum(SaleItem.line_subtotal_cents), 0),
            func.coalesce(func.sum(SaleItem.gst_amount_cents), 0),
        )
        .filter(SaleItem.refunded_from_item_id.in_(list(item_ids)))
        .group_by(SaleItem.refunded_from_item_id)
        .all()
    )
    # Refund lines carry negative amounts
    return {
        item_id: {"quantity": -int(qty), "subtotal_cents": -int(sub), "gst_cents": -int(gst)}
        for item_id, qty, sub, gst in rows
    }


def refund_sale(sale_id: int, request: RefundRequest, *, user_id: int) -> dict:
    """
    Refund some or all units of a completed sale.

    Creates a new "refunded" Sale with negative lines and payment, returns
    stock, and leaves the original sale untouched. A line can never be
    refunded beyond its sold quantity, across all refunds of the sale.
    """
    try:
        begin_write()
        original = _lock_sale(sale_id)
        if original is None or original.status != SALE_STATUS_COMPLETED:
            raise NotFoundError("Sale not found or cannot be refunded", code="SALE_NOT_REFUNDABLE")

        items_by_id = {item.id: item for item in original.items}

        requested: dict[int, int] = defaultdict(int)
        for entry in request.items:
            if entry.sale_item_id not in items_by_id:
                raise RefundError(
                    f"Sale item {entry.sale_item_id} not found in this sale",
                    details={"sale_item_id": entry.sale_item_id},
                )
            requested[entry.sale_item_id] += entry.quantity

        refunded = _already_refunded(requested.keys())
        for item_id, quantity in requested.items():
            item = items_by_id[item_id]
            refundable = item.quantity - refunded.get(item_id, {}).get("quantity", 0)
            if quantity > refundable:
                raise RefundError(
                    f"Cannot refund {quantity} of {item.product.name}; only {refundable} refundable",
                    details={"sale_item_id": item_id, "requested": quantity, "refundable": refundable},
                )

        inventories = lock_inventory_rows(items_by_id[e.sale_item_id].product_id for e in request.items)

        now = utcnow()
        refund = Sale(
            sale_number=next_refund_number(original),
            payment_method=request.refund_method,
            status=SALE_STATUS_REFUNDED,
            customer_name=original.customer_name,
            customer_phone=original.customer_phone,
            customer_email=original.customer_email,
            notes=f"Refund for sale {original.sale_number}",
            cashier_id=user_id,
            original_sale_id=original.id,
            created_at=now,
            completed_at=now,
        )
        db.session.add(refund)
        db.session.flush()

        subtotal = gst = total = 0
        refunded_items = []
        for entry in request.items:
            item = items_by_id[entry.sale_item_id]
            so_far = refunded.setdefault(item.id, {"quantity": 0, "subtotal_cents": 0, "gst_cents": 0})
            share = refund_share(
                sold_quantity=item.quantity,
                line_subtotal_cents=item.line_subtotal_cents,
                gst_amount_cents=item.gst_amount_cents,
                refund_quantity=entry.quantity,
                refunded_quantity=so_far["quantity"],
                refunded_subtotal_cents=so_far["subtotal_cents"],
                refunded_gst_cents=so_far["gst_cents"],
            )
            so_far["quantity"] += share.quantity
            so_far["subtotal_cents"] += share.line_subtotal_cents
            so_far["gst_cents"] += share.gst_amount_cents
            db.session.add(SaleItem(
                sale_id=refund.id,
                product_id=item.product_id,
                quantity=-entry.quantity,
                unit_price_cents=item.unit_price_cents,
                discount_percentage=item.discount_percentage,
                line_subtotal_cents=-share.line_subtotal_cents,
                gst_rate=item.gst_rate,
                gst_amount_cents=-share.gst_amount_cents,
                total_amount_cents=-share.total_amount_cents,
                refunded_from_item_id=item.id,
            ))

            inventory = inventories[item.product_id]
            apply_stock_change(
                inventory,
                new_quantity=inventory.current_quantity + entry.quantity,
                transaction_type=TRANSACTION_RETURN,
                reason=entry.reason or f"Refund for sale {original.sale_number}",
                reference_id=original.id,
                user_id=user_id,
            )

            subtotal += share.line_subtotal_cents
            gst += share.gst_amount_cents
            total += share.total_amount_cents
            refunded_items.append({
                "sale_item_id": item.id,
                "product_id": item.product_id,
                "product_name": item.product.name if item.product else None,
                "quantity": entry.quantity,
                "refund_amount": cents_to_amount(share.total_amount_cents),
                "reason": entry.reason,
            })

        refund.subtotal_cents = -subtotal
        refund.gst_amount_cents = -gst
        refund.total_amount_cents = -total

        db.session.add(PaymentDetail(
            sale_id=refund.id,
            payment_method=request.refund_method,
            amount_cents=-total,
            created_at=now,
        ))

        db.session.commit()
    except Exception:
        db.session.rollback()
        raise

    logger.info(
        "Refund %s processed for sale %s: %d line(s), total %s via %s",
        refund.sale_number, original.sale_number, len(refunded_items),
        cents_to_amount(total), request.refund_method,
    )
    return {
        "refund": refund.to_dict(),
        "refunded_items": refunded_items,
        "refund_total": cents_to_amount(total),
    }


# =============================================================================
# Cancel
# =============================================================================

def cancel_sale(sale_id: int, *, reason: str, user_id: int) -> dict:
    """
    Cancel a pending sale and put its stock back.

    Completed sales must be refunded instead.
    """
    try:
        begin_write()
        sale = _lock_sale(sale_id)
        if sale is None:
            raise NotFoundError("Sale not found", code="SALE_NOT_FOUND")
        if sale.status == SALE_STATUS_CANCELLED:
            raise SaleStateError("Sale is already cancelled", code="ALREADY_CANCELLED")
        if sale.status == SALE_STATUS_COMPLETED:
            raise SaleStateError(
                "Completed sales cannot be cancelled. Use refund instead.",
                code="CANNOT_CANCEL_COMPLETED",
            )
        if sale.status != SALE_STATUS_PENDING:
            raise SaleStateError(f"Cannot cancel a sale with status {sale.status}")

        inventories = lock_inventory_rows(item.product_id for item in sale.items)
        for item in sale.items:
            inventory = inventories[item.product_id]
            apply_stock_change(
                inventory,
                new_quantity=inventory.current_quantity + item.quantity,
                transaction_type=TRANSACTION_ADJUSTMENT,
                reason=f"Sale cancelled: {reason}",
                reference_id=sale.id,
                user_id=user_id,
            )

        sale.status = SALE_STATUS_CANCELLED
        sale.cancelled_at = utcnow()
        sale.cancelled_by_user_id = user_id
        sale.cancel_reason = reason

        db.session.commit()
    except Exception:
        db.session.rollback()
        raise

    logger.info("Sale %s cancelled by user %s: %s", sale.sale_number, user_id, reason)
    return _sale_payload(sale)


# =============================================================================
# Reads
# =============================================================================

def get_sale(sale_id: int) -> Sale:
    sale = db.session.get(Sale, sale_id)
    if sale is None:
        raise NotFoundError("Sale not found", code="SALE_NOT_FOUND")
    return sale


def get_sale_detail(sale_id: int) -> dict:
    sale = get_sale(sale_id)
    payload = _sale_payload(sale)
    payload["refunds"] = [
        {
            "id": r.id,
            "sale_number": r.sale_number,
            "total_amount": cents_to_amount(r.total_amount_cents),
            "payment_method": r.payment_method,
            "created_at": to_utc_z(r.created_at),
        }
        for r in sorted(sale.refunds, key=lambda r: r.id)
    ]
    return payload


def list_sales(sale_filter: SaleFilter, *, page: int | None = None, per_page: int | None = None) -> dict:
    query = sale_filter.apply(db.session.query(Sale)).order_by(Sale.created_at.desc(), Sale.id.desc())
    sales, pagination = paginate(query, page, per_page)

    counts = {}
    if sales:
        counts = dict(
            db.session.query(SaleItem.sale_id, func.count(SaleItem.id))
            .filter(SaleItem.sale_id.in_([s.id for s in sales]))
            .group_by(SaleItem.sale_id)
            .all()
        )

    rows = []
    for sale in sales:
        row = sale.to_dict()
        row["item_count"] = int(counts.get(sale.id, 0))
        rows.append(row)

    return {"sales": rows, "pagination": pagination}


def shop_info() -> dict:
    config = current_app.config
    return {
        "name": config.get("SHOP_NAME"),
        "address": config.get("SHOP_ADDRESS"),
        "phone": config.get("SHOP_PHONE"),
        "gst_number": config.get("SHOP_GST_NUMBER"),
        "footer_message": config.get("RECEIPT_FOOTER_MESSAGE"),
    }


def get_receipt(sale_id: int) -> dict:
    """Receipt read model; rendering (HTML, ESC/POS) happens client side."""
    sale = get_sale(sale_id)
    payload = _sale_payload(sale)
    payload["shop"] = shop_info()
    payload["generated_at"] = to_utc_z(utcnow())
    return payload
