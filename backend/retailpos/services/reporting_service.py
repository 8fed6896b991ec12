# Overview: Service-layer operations for reporting; encapsulates business logic and database work.

from __future__ import annotations

from collections import defaultdict
from datetime import date, datetime, time, timedelta

from sqlalchemy import func

from ..errors import ValidationError
from ..extensions import db
from ..models import Product, Sale, SaleItem
from ..models.sales import SALE_STATUS_COMPLETED
from ..money import cents_to_amount
from ..time_utils import utcnow

PERIOD_DAYS = {"today": 0, "week": 7, "month": 30, "year": 365}


def _period_start(period: str, now: datetime) -> datetime:
    if period not in PERIOD_DAYS:
        raise ValidationError(f"period must be one of {', '.join(PERIOD_DAYS)}")
    return datetime.combine(now.date() - timedelta(days=PERIOD_DAYS[period]), time.min)


def _completed_sales(start: datetime, end: datetime | None = None, cashier_id: int | None = None):
    query = db.session.query(Sale).filter(
        Sale.status == SALE_STATUS_COMPLETED,
        Sale.created_at >= start,
    )
    if end is not None:
        query = query.filter(Sale.created_at < end)
    if cashier_id is not None:
        query = query.filter(Sale.cashier_id == cashier_id)
    return query


def _overview(sales: list[Sale], *, with_range: bool = False) -> dict:
    totals = [s.total_amount_cents for s in sales]
    count = len(sales)
    revenue = sum(totals)
    overview = {
        "total_sales": count,
        "total_revenue": cents_to_amount(revenue),
        "total_gst": cents_to_amount(sum(s.gst_amount_cents for s in sales)),
        "average_sale_amount": cents_to_amount(round(revenue / count)) if count else 0.0,
        "unique_customers": len({s.customer_phone for s in sales if s.customer_phone}),
    }
    if with_range:
        overview["min_sale"] = cents_to_amount(min(totals)) if totals else None
        overview["max_sale"] = cents_to_amount(max(totals)) if totals else None
    return overview


def _payment_breakdown(sales: list[Sale]) -> list[dict]:
    buckets: dict[str, list[int]] = defaultdict(lambda: [0, 0])
    for sale in sales:
        buckets[sale.payment_method][0] += 1
        buckets[sale.payment_method][1] += sale.total_amount_cents
    rows = [
        {"payment_method": method, "count": count, "total_amount": cents_to_amount(amount)}
        for method, (count, amount) in buckets.items()
    ]
    rows.sort(key=lambda r: r["total_amount"], reverse=True)
    return rows


def _hourly(sales: list[Sale]) -> list[dict]:
    # Grouped in Python: hour extraction differs across SQL dialects
    buckets: dict[int, list[int]] = defaultdict(lambda: [0, 0])
    for sale in sales:
        buckets[sale.created_at.hour][0] += 1
        buckets[sale.created_at.hour][1] += sale.total_amount_cents
    return [
        {"hour": hour, "sale_count": count, "total_amount": cents_to_amount(amount)}
        for hour, (count, amount) in sorted(buckets.items())
    ]


def _top_products(start: datetime, cashier_id: int | None, limit: int = 10) -> list[dict]:
    query = (
        db.session.query(
            Product.id,
            Product.name,
            Product.sku,
            func.sum(SaleItem.quantity).label("total_quantity"),
            func.sum(SaleItem.total_amount_cents).label("total_revenue"),
        )
        .join(SaleItem, SaleItem.product_id == Product.id)
        .join(Sale, Sale.id == SaleItem.sale_id)
        .filter(Sale.status == SALE_STATUS_COMPLETED, Sale.created_at >= start)
    )
    if cashier_id is not None:
        query = query.filter(Sale.cashier_id == cashier_id)
    rows = (
        query.group_by(Product.id, Product.name, Product.sku)
        .order_by(func.sum(SaleItem.quantity).desc(), Product.name.asc())
        .limit(limit)
        .all()
    )
    return [
        {
            "product_id": pid,
            "name": name,
            "sku": sku,
            "total_quantity": int(qty or 0),
            "total_revenue": cents_to_amount(int(revenue or 0)),
        }
        for pid, name, sku, qty, revenue in rows
    ]


def sales_stats(period: str = "today", cashier_id: int | None = None) -> dict:
    """Completed-sale statistics for today / last 7, 30 or 365 days."""
    start = _period_start(period, utcnow())
    sales = _completed_sales(start, cashier_id=cashier_id).all()

    return {
        "period": period,
        "stats": {
            "overview": _overview(sales),
            "payment_methods": _payment_breakdown(sales),
            "top_products": _top_products(start, cashier_id),
            "hourly_pattern": _hourly(sales) if period == "today" else [],
        },
    }


def daily_summary(day: date | None = None) -> dict:
    day = day or utcnow().date()
    start = datetime.combine(day, time.min)
    sales = _completed_sales(start, start + timedelta(days=1)).all()

    return {
        "date": day.isoformat(),
        "summary": _overview(sales, with_range=True),
        "payment_breakdown": _payment_breakdown(sales),
        "hourly_breakdown": _hourly(sales),
    }
