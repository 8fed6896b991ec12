# backend/retailpos/services/products_service.py
"""
Products Service

Products are soft-deleted only. Creating a product also creates its
inventory row at quantity 0; opening stock (initial_stock) is recorded
as a "purchase" ledger entry in the same transaction.
"""
from __future__ import annotations

from sqlalchemy import or_
from sqlalchemy.exc import IntegrityError

from ..errors import ConflictError, NotFoundError, ValidationError
from ..extensions import db
from ..models import Category, Inventory, Product, SaleItem
from ..validation import (
    PRODUCT_AMOUNT_FIELDS,
    PRODUCT_POLICY,
    ReceiveRequest,
    amounts_to_cents,
    coerce_int,
    enforce_rules_product,
    validate_payload,
)
from .inventory_service import create_inventory_row, receive_stock
from .query_filters import ProductFilter, paginate

# Inventory settings accepted alongside product fields on create
INVENTORY_FIELDS = ("minimum_threshold", "maximum_capacity", "initial_stock")

SEARCH_LIMIT = 10


def product_with_stock(product: Product) -> dict:
    row = product.to_dict()
    inventory = product.inventory
    if inventory is not None:
        row.update({
            "current_quantity": inventory.current_quantity,
            "minimum_threshold": inventory.minimum_threshold,
            "maximum_capacity": inventory.maximum_capacity,
            "stock_status": inventory.stock_status,
        })
    return row


def _get_active_product(product_id: int) -> Product:
    product = db.session.query(Product).filter_by(id=product_id, is_active=True).first()
    if product is None:
        raise NotFoundError("Product not found", code="PRODUCT_NOT_FOUND")
    return product


def _ensure_category(category_id: int) -> None:
    exists = db.session.query(Category.id).filter_by(id=category_id, is_active=True).first()
    if exists is None:
        raise ValidationError("Category not found", code="CATEGORY_NOT_FOUND")


def _ensure_unique(sku: str | None, barcode: str | None, *, exclude_id: int | None = None) -> None:
    clauses = []
    if sku:
        clauses.append(Product.sku == sku)
    if barcode:
        clauses.append(Product.barcode == barcode)
    if not clauses:
        return
    query = db.session.query(Product.id).filter(or_(*clauses))
    if exclude_id is not None:
        query = query.filter(Product.id != exclude_id)
    if query.first() is not None:
        raise ConflictError("Product with this SKU or barcode already exists", code="DUPLICATE_PRODUCT")


def parse_product_payload(payload: dict, *, partial: bool) -> tuple[dict, dict]:
    """Split a request body into (product patch, inventory settings)."""
    if not isinstance(payload, dict):
        raise ValidationError("Invalid JSON payload")

    body = dict(payload)
    inventory_settings = {}
    for key in INVENTORY_FIELDS:
        if key in body:
            raw = body.pop(key)
            if raw is not None:
                inventory_settings[key] = coerce_int(raw, key, minimum=0)

    patch = validate_payload(
        model=Product,
        payload=amounts_to_cents(body, PRODUCT_AMOUNT_FIELDS),
        policy=PRODUCT_POLICY,
        partial=partial,
    )
    enforce_rules_product(patch)
    return patch, inventory_settings


def list_products(product_filter: ProductFilter, *, page: int | None = None, per_page: int | None = None) -> dict:
    query = db.session.query(Product).outerjoin(Inventory, Inventory.product_id == Product.id)
    query = product_filter.apply(query).order_by(Product.name.asc(), Product.id.asc())
    products, pagination = paginate(query, page, per_page)
    return {"products": [product_with_stock(p) for p in products], "pagination": pagination}


def get_product(product_id: int) -> dict:
    return {"product": product_with_stock(_get_active_product(product_id))}


def create_product(patch: dict, inventory_settings: dict | None = None, *, user_id: int | None = None) -> dict:
    inventory_settings = inventory_settings or {}
    _ensure_category(patch["category_id"])
    _ensure_unique(patch.get("sku"), patch.get("barcode"))

    try:
        product = Product(**patch)
        db.session.add(product)
        db.session.flush()

        create_inventory_row(
            product,
            minimum_threshold=inventory_settings.get("minimum_threshold", 0),
            maximum_capacity=inventory_settings.get("maximum_capacity"),
        )

        opening = inventory_settings.get("initial_stock", 0)
        if opening:
            receive_stock(
                product.id,
                ReceiveRequest(quantity=opening, reason="Opening stock"),
                user_id=user_id,
                commit=False,
            )

        db.session.commit()
    except IntegrityError:
        # Lost a race with a concurrent create of the same SKU or barcode
        db.session.rollback()
        raise ConflictError("Product with this SKU or barcode already exists", code="DUPLICATE_PRODUCT")
    except Exception:
        db.session.rollback()
        raise

    return product_with_stock(product)


def update_product(product_id: int, patch: dict) -> dict:
    product = _get_active_product(product_id)
    if "category_id" in patch:
        _ensure_category(patch["category_id"])
    if "sku" in patch or "barcode" in patch:
        _ensure_unique(patch.get("sku"), patch.get("barcode"), exclude_id=product.id)

    for key, value in patch.items():
        setattr(product, key, value)
    db.session.commit()
    return product_with_stock(product)


def delete_product(product_id: int) -> None:
    """Soft delete. Products that appear on any sale stay active."""
    product = _get_active_product(product_id)
    sold = db.session.query(SaleItem.id).filter_by(product_id=product.id).first()
    if sold is not None:
        raise ValidationError(
            "Cannot delete product with sales history. Product can be deactivated instead.",
            code="PRODUCT_HAS_SALES",
        )
    product.is_active = False
    db.session.commit()


def search_products(term: str | None) -> dict:
    """POS lookup by barcode, SKU or name; exact code matches rank first."""
    if not term or not term.strip():
        raise ValidationError("Search query is required", code="SEARCH_QUERY_REQUIRED")
    term = term.strip()
    pattern = f"%{term}%"

    rank = db.case(
        (Product.barcode == term, 1),
        (Product.sku == term, 2),
        else_=3,
    )
    products = (
        db.session.query(Product)
        .filter(
            Product.is_active.is_(True),
            or_(Product.name.ilike(pattern), Product.sku.ilike(pattern), Product.barcode == term),
        )
        .order_by(rank, Product.name.asc())
        .limit(SEARCH_LIMIT)
        .all()
    )
    return {"products": [product_with_stock(p) for p in products]}


def get_product_by_barcode(barcode: str) -> dict:
    product = db.session.query(Product).filter_by(barcode=barcode, is_active=True).first()
    if product is None:
        raise NotFoundError("Product not found", code="PRODUCT_NOT_FOUND")
    return {"product": product_with_stock(product)}


def list_products_by_category(category_id: int, *, page: int | None = None, per_page: int | None = None) -> dict:
    category = db.session.query(Category).filter_by(id=category_id, is_active=True).first()
    if category is None:
        raise NotFoundError("Category not found", code="CATEGORY_NOT_FOUND")
    result = list_products(ProductFilter(category_id=category_id), page=page, per_page=per_page)
    result["category"] = category.to_dict()
    return result
