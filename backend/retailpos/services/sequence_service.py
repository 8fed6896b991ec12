# Overview: Sale and refund number allocation.

from __future__ import annotations

from datetime import datetime

from sqlalchemy import update
from sqlalchemy.exc import IntegrityError

from ..extensions import db
from ..models import Sale, SaleNumberSequence
from ..time_utils import day_key, utcnow

SALE_NUMBER_PREFIX = "SL"
REFUND_NUMBER_PREFIX = "RF"


def next_sale_number(now: datetime | None = None, *, pad: int = 4) -> str:
    """
    Atomically allocate the next sale number for the current day.

    Format: SL + YYYYMMDD + zero-padded sequence (SL202601150001).
    Must run inside the caller's write transaction; the UPDATE holds the
    sequence row until commit.
    """
    key = day_key(now or utcnow())

    stmt = (
        update(SaleNumberSequence)
        .where(SaleNumberSequence.day_key == key)
        .values(next_number=SaleNumberSequence.next_number + 1)
    )

    result = db.session.execute(stmt)
    if result.rowcount:
        next_num = _current_number(key) - 1
    else:
        try:
            with db.session.begin_nested():
                db.session.add(SaleNumberSequence(day_key=key, next_number=2))
            next_num = 1
        except IntegrityError:
            # Another writer created today's row first
            result = db.session.execute(stmt)
            if not result.rowcount:
                raise
            next_num = _current_number(key) - 1

    return f"{SALE_NUMBER_PREFIX}{key}{next_num:0{pad}d}"


def _current_number(key: str) -> int:
    db.session.flush()
    return (
        db.session.query(SaleNumberSequence.next_number)
        .filter_by(day_key=key)
        .scalar()
    )


def next_refund_number(original: Sale) -> str:
    """
    RF<original sale number> for the first refund of a sale,
    RF<original>-<n> for the n-th. Caller holds the lock on the original sale.
    """
    existing = db.session.query(Sale.id).filter(Sale.original_sale_id == original.id).count()
    base = f"{REFUND_NUMBER_PREFIX}{original.sale_number}"
    if existing == 0:
        return base
    return f"{base}-{existing + 1}"
