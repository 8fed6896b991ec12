# Overview: Composable list filters and pagination for catalog, inventory and sales reads.

"""
List endpoints describe their filters as small frozen dataclasses whose
apply() narrows a SQLAlchemy query. Routes build them from query params;
services never concatenate SQL.
"""

from __future__ import annotations

from dataclasses import dataclass
from datetime import date, datetime, time, timedelta

from sqlalchemy import and_, or_

from ..errors import ValidationError
from ..models import Inventory, Product, Sale

STOCK_STATUSES = ("in_stock", "low_stock", "out_of_stock")

DEFAULT_PER_PAGE = 20
MAX_PER_PAGE = 100


def stock_status_clause(status: str):
    """SQL predicate over Inventory matching Inventory.stock_status."""
    if status == "out_of_stock":
        return Inventory.current_quantity == 0
    if status == "low_stock":
        return and_(Inventory.current_quantity > 0, Inventory.current_quantity <= Inventory.minimum_threshold)
    if status == "in_stock":
        return Inventory.current_quantity > Inventory.minimum_threshold
    raise ValidationError(f"status must be one of {', '.join(STOCK_STATUSES)}")


@dataclass(frozen=True)
class ProductFilter:
    search: str | None = None
    category_id: int | None = None
    stock_status: str | None = None
    include_inactive: bool = False

    def apply(self, query):
        if not self.include_inactive:
            query = query.filter(Product.is_active.is_(True))
        if self.search:
            pattern = f"%{self.search.strip()}%"
            query = query.filter(or_(
                Product.name.ilike(pattern),
                Product.sku.ilike(pattern),
                Product.barcode.ilike(pattern),
            ))
        if self.category_id is not None:
            query = query.filter(Product.category_id == self.category_id)
        if self.stock_status:
            query = query.filter(stock_status_clause(self.stock_status))
        return query


@dataclass(frozen=True)
class SaleFilter:
    start_date: date | None = None
    end_date: date | None = None
    cashier_id: int | None = None
    status: str | None = None

    def apply(self, query):
        if self.start_date:
            query = query.filter(Sale.created_at >= datetime.combine(self.start_date, time.min))
        if self.end_date:
            # end_date is inclusive
            query = query.filter(Sale.created_at < datetime.combine(self.end_date + timedelta(days=1), time.min))
        if self.cashier_id is not None:
            query = query.filter(Sale.cashier_id == self.cashier_id)
        if self.status:
            query = query.filter(Sale.status == self.status)
        return query


def paginate(query, page: int | None, per_page: int | None) -> tuple[list, dict]:
    per_page = min(max(per_page or DEFAULT_PER_PAGE, 1), MAX_PER_PAGE)
    page = max(page or 1, 1)

    total = query.order_by(None).count()
    total_pages = (total + per_page - 1) // per_page if total > 0 else 1

    rows = query.offset((page - 1) * per_page).limit(per_page).all()

    return rows, {
        "page": page,
        "per_page": per_page,
        "total": total,
        "total_pages": total_pages,
        "has_next": page < total_pages,
        "has_prev": page > 1,
    }
