# Overview: Pure pricing arithmetic for sale lines, sale totals, payments and refunds.

"""
Pricing rules (all amounts in integer cents):

- line gross      = unit_price * quantity
- line subtotal   = round_half_up(gross * (100 - discount_percentage) / 100)
- line gst        = round_half_up(line subtotal * gst_rate / 100)
- line total      = line subtotal + line gst
- sale subtotal   = sum(line subtotal)
- sale total      = sale subtotal - sale discount + sum(line gst)

GST is charged on the line subtotal; the sale-level discount is taken off
after tax is computed and does not reduce it.

Nothing here touches the database.
"""

from __future__ import annotations

from dataclasses import dataclass
from decimal import Decimal

from .errors import PaymentError, ValidationError
from .money import PAYMENT_TOLERANCE_CENTS, cents_to_amount, percent_of_cents, prorate_cents, round_half_up


@dataclass(frozen=True)
class PricedLine:
    product_id: int
    quantity: int
    unit_price_cents: int
    discount_percentage: Decimal
    line_subtotal_cents: int
    gst_rate: int
    gst_amount_cents: int
    total_amount_cents: int


@dataclass(frozen=True)
class SaleTotals:
    subtotal_cents: int
    discount_cents: int
    gst_cents: int
    total_cents: int


@dataclass(frozen=True)
class TenderRecord:
    method: str
    amount_cents: int
    change_cents: int = 0
    reference_number: str | None = None


@dataclass(frozen=True)
class RefundShare:
    quantity: int
    line_subtotal_cents: int
    gst_amount_cents: int
    total_amount_cents: int


def price_line(
    *,
    product_id: int,
    quantity: int,
    unit_price_cents: int,
    gst_rate: int,
    discount_percentage: Decimal = Decimal("0"),
) -> PricedLine:
    gross = unit_price_cents * quantity
    discount_percentage = Decimal(discount_percentage)
    subtotal = int(round_half_up(Decimal(gross) * (Decimal(100) - discount_percentage) / 100))
    gst = percent_of_cents(subtotal, gst_rate)
    return PricedLine(
        product_id=product_id,
        quantity=quantity,
        unit_price_cents=unit_price_cents,
        discount_percentage=discount_percentage,
        line_subtotal_cents=subtotal,
        gst_rate=gst_rate,
        gst_amount_cents=gst,
        total_amount_cents=subtotal + gst,
    )


def compute_totals(lines: list[PricedLine], discount_cents: int = 0) -> SaleTotals:
    subtotal = sum(line.line_subtotal_cents for line in lines)
    gst = sum(line.gst_amount_cents for line in lines)
    if discount_cents < 0:
        raise ValidationError("discount_amount must be >= 0")
    if discount_cents > subtotal:
        raise ValidationError(
            "discount_amount cannot exceed the sale subtotal",
            details={
                "discount_amount": cents_to_amount(discount_cents),
                "subtotal": cents_to_amount(subtotal),
            },
        )
    return SaleTotals(
        subtotal_cents=subtotal,
        discount_cents=discount_cents,
        gst_cents=gst,
        total_cents=subtotal - discount_cents + gst,
    )


def reconcile_payments(payment_method: str, tenders: list[TenderRecord], total_cents: int) -> list[TenderRecord]:
    """
    Check tenders against the sale total and return the rows to persist.

    mixed:  two or more tenders whose sum is within one cent of the total.
    single: at most one tender; it must cover the total (one cent slack),
            the excess is recorded as change. No tender means exact payment
            in payment_method.
    """
    if payment_method == "mixed":
        if len(tenders) < 2:
            raise ValidationError("Mixed payment requires at least two payment_details entries")
        paid = sum(t.amount_cents for t in tenders)
        if abs(paid - total_cents) > PAYMENT_TOLERANCE_CENTS:
            raise PaymentError(
                "Payment amounts do not match the sale total",
                details={"total_amount": cents_to_amount(total_cents), "total_paid": cents_to_amount(paid)},
            )
        return list(tenders)

    if len(tenders) > 1:
        raise ValidationError("Multiple payment_details entries require payment_method 'mixed'")

    if not tenders:
        return [TenderRecord(method=payment_method, amount_cents=total_cents)]

    tender = tenders[0]
    if tender.amount_cents < total_cents - PAYMENT_TOLERANCE_CENTS:
        raise PaymentError(
            "Payment amount is less than the sale total",
            details={"total_amount": cents_to_amount(total_cents), "total_paid": cents_to_amount(tender.amount_cents)},
        )
    return [
        TenderRecord(
            method=tender.method,
            amount_cents=tender.amount_cents,
            change_cents=max(0, tender.amount_cents - total_cents),
            reference_number=tender.reference_number,
        )
    ]


def refund_share(
    *,
    sold_quantity: int,
    line_subtotal_cents: int,
    gst_amount_cents: int,
    refund_quantity: int,
    refunded_quantity: int = 0,
    refunded_subtotal_cents: int = 0,
    refunded_gst_cents: int = 0,
) -> RefundShare:
    """
    Share of an original line for refund_quantity more units, given what
    earlier refunds of the line already returned.

    Subtotal and GST are prorated on the cumulative refunded quantity, so
    partial refunds add up to exactly the line and never beyond it. The
    refund that takes the last units returns whatever is left. The total
    is always subtotal + gst.
    """
    after = refunded_quantity + refund_quantity
    if after >= sold_quantity:
        subtotal = line_subtotal_cents - refunded_subtotal_cents
        gst = gst_amount_cents - refunded_gst_cents
    else:
        subtotal = (
            prorate_cents(line_subtotal_cents, after, sold_quantity)
            - prorate_cents(line_subtotal_cents, refunded_quantity, sold_quantity)
        )
        gst = (
            prorate_cents(gst_amount_cents, after, sold_quantity)
            - prorate_cents(gst_amount_cents, refunded_quantity, sold_quantity)
        )
    return RefundShare(
        quantity=refund_quantity,
        line_subtotal_cents=subtotal,
        gst_amount_cents=gst,
        total_amount_cents=subtotal + gst,
    )
