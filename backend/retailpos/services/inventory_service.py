# Overview: Service-layer operations for inventory; encapsulates business logic and database work.

"""
Inventory invariants (authoritative)

Stock model:
- Inventory.current_quantity is a cached running total of the append-only
  InventoryTransaction ledger. For every product:
      current_quantity == SUM(quantity_change)
- apply_stock_change() is the ONLY code that writes current_quantity. It
  appends the matching ledger row in the same DB transaction.
- Products start at 0; opening stock is a "purchase" ledger row.

Locking:
- Writers call begin_write() and lock inventory rows FOR UPDATE in
  product-id order before reading quantities.

Adjustments:
- add    -> current + q
- remove -> max(0, current - q)   (clamped)
- set    -> q
- Every adjustment writes one "adjustment" row, even when the quantity
  does not change, so the audit trail records the count.
"""

from __future__ import annotations

import logging
from datetime import timedelta

from sqlalchemy import func

from ..errors import InventoryError, NotFoundError, PosError, ValidationError
from ..extensions import db
from ..models import Inventory, InventoryTransaction, Product, Sale, TRANSACTION_TYPES
from ..models.inventory import TRANSACTION_ADJUSTMENT, TRANSACTION_PURCHASE
from ..money import cents_to_amount
from ..time_utils import utcnow
from ..validation import AdjustmentRequest, ReceiveRequest
from .concurrency import begin_write, lock_for_update
from .query_filters import paginate, stock_status_clause

logger = logging.getLogger(__name__)


# =============================================================================
# Single writer
# =============================================================================

def apply_stock_change(
    inventory: Inventory,
    *,
    new_quantity: int,
    transaction_type: str,
    reason: str | None = None,
    reference_id: int | None = None,
    user_id: int | None = None,
) -> InventoryTransaction:
    """
    Set inventory.current_quantity and append the matching ledger row.

    Caller must hold the row lock (lock_inventory_rows) and own the
    transaction; nothing is committed here.
    """
    if transaction_type not in TRANSACTION_TYPES:
        raise InventoryError(f"Unknown transaction type: {transaction_type}", code="INVALID_TYPE")
    if new_quantity < 0:
        raise InventoryError(
            "Inventory quantity cannot be negative",
            code="NEGATIVE_QUANTITY",
            details={"product_id": inventory.product_id, "resulting_quantity": new_quantity},
        )

    previous = inventory.current_quantity
    inventory.current_quantity = new_quantity
    inventory.last_updated = utcnow()

    tx = InventoryTransaction(
        product_id=inventory.product_id,
        transaction_type=transaction_type,
        quantity_change=new_quantity - previous,
        quantity_after=new_quantity,
        reason=reason,
        reference_id=reference_id,
        created_by_user_id=user_id,
        created_at=utcnow(),
    )
    db.session.add(tx)
    db.session.flush()
    return tx


def lock_inventory_rows(product_ids) -> dict[int, Inventory]:
    """Lock inventory rows FOR UPDATE in ascending product-id order."""
    ids = sorted(set(product_ids))
    if not ids:
        return {}
    rows = (
        lock_for_update(
            db.session.query(Inventory)
            .filter(Inventory.product_id.in_(ids))
            .order_by(Inventory.product_id.asc())
        )
        .all()
    )
    return {row.product_id: row for row in rows}


def _locked_active_inventory(product_id: int) -> Inventory:
    product = db.session.query(Product).filter_by(id=product_id, is_active=True).first()
    if product is None:
        raise NotFoundError("Product not found", code="PRODUCT_NOT_FOUND")
    inventory = lock_inventory_rows([product_id]).get(product_id)
    if inventory is None:
        raise NotFoundError("Inventory record not found", code="INVENTORY_NOT_FOUND")
    return inventory


def create_inventory_row(
    product: Product,
    *,
    minimum_threshold: int = 0,
    maximum_capacity: int | None = None,
) -> Inventory:
    inventory = Inventory(
        product_id=product.id,
        current_quantity=0,
        minimum_threshold=minimum_threshold,
        maximum_capacity=maximum_capacity,
        reserved_quantity=0,
        last_updated=utcnow(),
    )
    db.session.add(inventory)
    db.session.flush()
    return inventory


# =============================================================================
# Adjustments
# =============================================================================

def compute_adjusted_quantity(current: int, quantity: int, adjustment_type: str) -> int:
    if adjustment_type == "add":
        return current + quantity
    if adjustment_type == "remove":
        return max(0, current - quantity)
    if adjustment_type == "set":
        return quantity
    raise InventoryError(
        "Invalid adjustment type. Use add, remove, or set",
        code="INVALID_TYPE",
    )


def _adjust_locked(product_id: int, request: AdjustmentRequest, user_id: int | None) -> dict:
    inventory = _locked_active_inventory(product_id)
    previous = inventory.current_quantity
    new_quantity = compute_adjusted_quantity(previous, request.quantity, request.type)

    apply_stock_change(
        inventory,
        new_quantity=new_quantity,
        transaction_type=TRANSACTION_ADJUSTMENT,
        reason=request.reason,
        user_id=user_id,
    )

    return {
        "product_id": product_id,
        "previous_quantity": previous,
        "new_quantity": new_quantity,
        "quantity_change": new_quantity - previous,
        "type": request.type,
        "reason": request.reason,
    }


def adjust_inventory(product_id: int, request: AdjustmentRequest, *, user_id: int | None) -> dict:
    """
    Apply one manual adjustment atomically.

    Returns {"adjustment": {...}, "inventory": {...}}.
    """
    try:
        begin_write()
        adjustment = _adjust_locked(product_id, request, user_id)
        inventory = db.session.query(Inventory).filter_by(product_id=product_id).one()
        db.session.commit()
    except Exception:
        db.session.rollback()
        raise

    adjustment.pop("product_id")
    return {"adjustment": adjustment, "inventory": inventory.to_dict()}


def bulk_adjust_inventory(requests: list[AdjustmentRequest], *, user_id: int | None) -> dict:
    """
    Apply many adjustments in one transaction, one savepoint per item.

    A failing item (missing product, negative result, unknown type) is
    rolled back to its savepoint and reported; the rest are committed.
    """
    results: list[dict] = []
    errors: list[dict] = []

    try:
        begin_write()
        # Lock every row up front, in id order, so item order cannot deadlock
        lock_inventory_rows(r.product_id for r in requests)

        for request in requests:
            try:
                with db.session.begin_nested():
                    adjustment = _adjust_locked(request.product_id, request, user_id)
            except PosError as exc:
                errors.append({"product_id": request.product_id, "error": exc.message, "code": exc.code})
                continue
            adjustment["success"] = True
            results.append(adjustment)

        db.session.commit()
    except Exception:
        db.session.rollback()
        raise

    logger.info(
        "Bulk inventory adjustment: %d requested, %d applied, %d failed",
        len(requests), len(results), len(errors),
    )

    body = {
        "summary": {
            "total_adjustments": len(requests),
            "successful": len(results),
            "failed": len(errors),
        },
        "results": results,
    }
    if errors:
        body["errors"] = errors
    return body


def receive_stock(
    product_id: int,
    request: ReceiveRequest,
    *,
    user_id: int | None,
    commit: bool = True,
) -> InventoryTransaction:
    """
    Add purchased stock ("purchase" ledger row).

    commit=False lets product creation record opening stock inside its own
    transaction.
    """
    try:
        if commit:
            begin_write()
        inventory = _locked_active_inventory(product_id)
        tx = apply_stock_change(
            inventory,
            new_quantity=inventory.current_quantity + request.quantity,
            transaction_type=request.transaction_type or TRANSACTION_PURCHASE,
            reason=request.reason or "Stock received",
            reference_id=request.reference_id,
            user_id=user_id,
        )
        if commit:
            db.session.commit()
    except Exception:
        if commit:
            db.session.rollback()
        raise
    return tx


def update_thresholds(product_id: int, patch: dict) -> dict:
    """Patch minimum_threshold / maximum_capacity; capacity may not drop below the threshold."""
    try:
        begin_write()
        inventory = _locked_active_inventory(product_id)
        minimum = patch.get("minimum_threshold", inventory.minimum_threshold)
        maximum = patch.get("maximum_capacity", inventory.maximum_capacity)
        if maximum is not None and maximum < minimum:
            raise ValidationError(
                "maximum_capacity cannot be below minimum_threshold",
                code="INVALID_THRESHOLDS",
                details={"minimum_threshold": minimum, "maximum_capacity": maximum},
            )
        for key, value in patch.items():
            setattr(inventory, key, value)
        inventory.last_updated = utcnow()
        db.session.commit()
    except Exception:
        db.session.rollback()
        raise
    return inventory.to_dict()


# =============================================================================
# Reads
# =============================================================================

def _overview_row(product: Product, inventory: Inventory) -> dict:
    row = inventory.to_dict()
    row.update({
        "id": product.id,
        "name": product.name,
        "sku": product.sku,
        "selling_price": cents_to_amount(product.selling_price_cents),
        "category_name": product.category.name if product.category else None,
    })
    return row


def get_inventory_overview(
    *,
    status: str | None = None,
    search: str | None = None,
    page: int | None = None,
    per_page: int | None = None,
) -> dict:
    query = (
        db.session.query(Product, Inventory)
        .join(Inventory, Inventory.product_id == Product.id)
        .filter(Product.is_active.is_(True))
    )
    if search:
        pattern = f"%{search.strip()}%"
        query = query.filter(db.or_(Product.name.ilike(pattern), Product.sku.ilike(pattern)))
    if status:
        query = query.filter(stock_status_clause(status))

    # Out of stock first, then low stock, then the rest
    urgency = db.case(
        (Inventory.current_quantity == 0, 1),
        (Inventory.current_quantity <= Inventory.minimum_threshold, 2),
        else_=3,
    )
    query = query.order_by(urgency, Product.name.asc(), Product.id.asc())

    rows, pagination = paginate(query, page, per_page)
    return {
        "inventory": [_overview_row(p, inv) for p, inv in rows],
        "pagination": pagination,
    }


def get_stock_alerts() -> dict:
    base = (
        db.session.query(Product, Inventory)
        .join(Inventory, Inventory.product_id == Product.id)
        .filter(Product.is_active.is_(True))
    )
    low = base.filter(stock_status_clause("low_stock")).order_by(Inventory.current_quantity.asc(), Product.name.asc()).all()
    out = base.filter(stock_status_clause("out_of_stock")).order_by(Product.name.asc()).all()

    def _alert(product, inventory, alert_type):
        return {
            "id": product.id,
            "name": product.name,
            "sku": product.sku,
            "category_name": product.category.name if product.category else None,
            "current_quantity": inventory.current_quantity,
            "minimum_threshold": inventory.minimum_threshold,
            "alert_type": alert_type,
        }

    return {
        "alerts": {
            "low_stock": [_alert(p, i, "low_stock") for p, i in low],
            "out_of_stock": [_alert(p, i, "out_of_stock") for p, i in out],
            "total_alerts": len(low) + len(out),
        }
    }


def get_inventory_stats() -> dict:
    rows = (
        db.session.query(Product, Inventory)
        .join(Inventory, Inventory.product_id == Product.id)
        .filter(Product.is_active.is_(True))
        .all()
    )

    overview = {
        "total_products": len(rows),
        "out_of_stock_count": 0,
        "low_stock_count": 0,
        "in_stock_count": 0,
    }
    purchase_value = 0
    selling_value = 0
    by_category: dict[int, dict] = {}

    for product, inventory in rows:
        overview[f"{inventory.stock_status}_count"] += 1
        purchase_value += inventory.current_quantity * product.purchase_price_cents
        line_value = inventory.current_quantity * product.selling_price_cents
        selling_value += line_value

        bucket = by_category.setdefault(product.category_id, {
            "category_id": product.category_id,
            "category_name": product.category.name if product.category else None,
            "product_count": 0,
            "total_quantity": 0,
            "_value": 0,
        })
        bucket["product_count"] += 1
        bucket["total_quantity"] += inventory.current_quantity
        bucket["_value"] += line_value

    overview["total_inventory_value"] = cents_to_amount(purchase_value)
    overview["total_selling_value"] = cents_to_amount(selling_value)

    categories = sorted(by_category.values(), key=lambda b: b["_value"], reverse=True)
    for bucket in categories:
        bucket["category_value"] = cents_to_amount(bucket.pop("_value"))

    since = utcnow() - timedelta(days=7)
    activity = (
        db.session.query(
            InventoryTransaction.transaction_type,
            func.count(InventoryTransaction.id),
            func.coalesce(func.sum(func.abs(InventoryTransaction.quantity_change)), 0),
        )
        .filter(InventoryTransaction.created_at >= since)
        .group_by(InventoryTransaction.transaction_type)
        .all()
    )
    recent = sorted(
        (
            {"transaction_type": t, "count": int(c), "total_quantity": int(q)}
            for t, c, q in activity
        ),
        key=lambda r: r["total_quantity"],
        reverse=True,
    )

    return {"overview": overview, "by_category": categories, "recent_activity": recent}


def list_transactions(
    *,
    product_id: int | None = None,
    transaction_type: str | None = None,
    page: int | None = None,
    per_page: int | None = None,
) -> dict:
    if transaction_type and transaction_type not in TRANSACTION_TYPES:
        raise ValidationError(f"type must be one of {', '.join(TRANSACTION_TYPES)}")

    query = db.session.query(InventoryTransaction)
    if product_id is not None:
        query = query.filter(InventoryTransaction.product_id == product_id)
    if transaction_type:
        query = query.filter(InventoryTransaction.transaction_type == transaction_type)
    query = query.order_by(InventoryTransaction.created_at.desc(), InventoryTransaction.id.desc())

    rows, pagination = paginate(query, page, per_page)

    sale_ids = {
        tx.reference_id for tx in rows
        if tx.reference_id is not None and tx.transaction_type != TRANSACTION_PURCHASE
    }
    sale_numbers = {}
    if sale_ids:
        sale_numbers = dict(
            db.session.query(Sale.id, Sale.sale_number).filter(Sale.id.in_(sale_ids)).all()
        )

    transactions = []
    for tx in rows:
        item = tx.to_dict()
        item["product_name"] = tx.product.name if tx.product else None
        item["sku"] = tx.product.sku if tx.product else None
        item["created_by_name"] = tx.created_by.full_name if tx.created_by else None
        item["sale_number"] = (
            sale_numbers.get(tx.reference_id) if tx.transaction_type != TRANSACTION_PURCHASE else None
        )
        transactions.append(item)

    return {"transactions": transactions, "pagination": pagination}


def reconcile_inventory() -> dict:
    """
    Compare each cached quantity with the ledger sum.

    Read-only; mismatches are reported, never corrected.
    """
    ledger = dict(
        db.session.query(
            InventoryTransaction.product_id,
            func.coalesce(func.sum(InventoryTransaction.quantity_change), 0),
        )
        .group_by(InventoryTransaction.product_id)
        .all()
    )

    mismatches = []
    checked = 0
    for inventory in db.session.query(Inventory).order_by(Inventory.product_id.asc()).all():
        checked += 1
        ledger_quantity = int(ledger.get(inventory.product_id, 0))
        if ledger_quantity != inventory.current_quantity:
            mismatches.append({
                "product_id": inventory.product_id,
                "current_quantity": inventory.current_quantity,
                "ledger_quantity": ledger_quantity,
                "difference": inventory.current_quantity - ledger_quantity,
            })

    if mismatches:
        logger.warning("Inventory reconciliation found %d mismatched products", len(mismatches))

    return {"checked": checked, "mismatches": mismatches, "ok": not mismatches}

