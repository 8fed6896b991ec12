"""Pricing arithmetic: line pricing, totals, payment reconciliation, refund shares."""

from decimal import Decimal

import pytest

from retailpos.errors import PaymentError, ValidationError
from retailpos.money import cents_to_amount, to_cents
from retailpos.pricing import (
    TenderRecord,
    compute_totals,
    price_line,
    reconcile_payments,
    refund_share,
)


def _line(**overrides):
    args = dict(product_id=1, quantity=2, unit_price_cents=10000, gst_rate=18)
    args.update(overrides)
    return price_line(**args)


class TestMoney:
    def test_to_cents_rounds_half_up(self):
        assert to_cents("0.005") == 1
        assert to_cents("2.675") == 268
        assert to_cents(236) == 23600

    def test_cents_to_amount(self):
        assert cents_to_amount(23600) == 236.0
        assert cents_to_amount(None) is None


class TestPriceLine:
    def test_reference_example(self):
        line = _line()
        assert line.line_subtotal_cents == 20000
        assert line.gst_amount_cents == 3600
        assert line.total_amount_cents == 23600

    def test_line_discount_applied_before_gst(self):
        line = _line(discount_percentage=Decimal("10"))
        assert line.line_subtotal_cents == 18000
        assert line.gst_amount_cents == 3240

    def test_gst_rounds_half_up_to_cents(self):
        # 0.25 * 18% = 0.045 -> 0.05
        line = _line(quantity=1, unit_price_cents=25)
        assert line.gst_amount_cents == 5

    def test_zero_gst(self):
        line = _line(gst_rate=0)
        assert line.gst_amount_cents == 0
        assert line.total_amount_cents == line.line_subtotal_cents


class TestTotals:
    def test_total_is_subtotal_minus_discount_plus_gst(self):
        lines = [_line(), _line(product_id=2, quantity=1, unit_price_cents=5000, gst_rate=5)]
        totals = compute_totals(lines, discount_cents=1000)
        assert totals.subtotal_cents == 25000
        assert totals.gst_cents == 3600 + 250
        assert totals.total_cents == 25000 - 1000 + 3850

    def test_discount_larger_than_subtotal_rejected(self):
        with pytest.raises(ValidationError):
            compute_totals([_line()], discount_cents=20001)


class TestReconcilePayments:
    def test_no_tender_records_exact_payment(self):
        rows = reconcile_payments("card", [], 23600)
        assert rows == [TenderRecord(method="card", amount_cents=23600)]

    def test_overpayment_recorded_as_change(self):
        rows = reconcile_payments("cash", [TenderRecord("cash", 25000)], 23600)
        assert rows[0].change_cents == 1400

    def test_one_cent_short_is_tolerated(self):
        rows = reconcile_payments("cash", [TenderRecord("cash", 23599)], 23600)
        assert rows[0].change_cents == 0

    def test_underpayment_rejected(self):
        with pytest.raises(PaymentError):
            reconcile_payments("cash", [TenderRecord("cash", 20000)], 23600)

    def test_multiple_tenders_require_mixed(self):
        with pytest.raises(ValidationError):
            reconcile_payments("cash", [TenderRecord("cash", 100), TenderRecord("card", 23500)], 23600)

    def test_mixed_requires_two_tenders(self):
        with pytest.raises(ValidationError):
            reconcile_payments("mixed", [TenderRecord("cash", 23600)], 23600)

    def test_mixed_sum_must_match_total(self):
        tenders = [TenderRecord("cash", 10000), TenderRecord("upi", 13600)]
        assert reconcile_payments("mixed", tenders, 23600) == tenders

        with pytest.raises(PaymentError):
            reconcile_payments("mixed", [TenderRecord("cash", 10000), TenderRecord("upi", 14000)], 23600)


class TestRefundShare:
    def test_proportional_share(self):
        share = refund_share(
            sold_quantity=3,
            line_subtotal_cents=1000,
            gst_amount_cents=180,
            refund_quantity=1,
        )
        assert share.line_subtotal_cents == 333
        assert share.gst_amount_cents == 60
        assert share.total_amount_cents == 393

    def test_full_refund_returns_full_line(self):
        share = refund_share(
            sold_quantity=2,
            line_subtotal_cents=20000,
            gst_amount_cents=3600,
            refund_quantity=2,
        )
        assert share.total_amount_cents == 23600

    def test_one_unit_at_a_time_never_exceeds_the_line(self):
        # 3 x 0.60 at 18%: subtotal 1.80, gst 0.32, total 2.12
        refunded = {"quantity": 0, "subtotal": 0, "gst": 0}
        totals = []
        for _ in range(3):
            share = refund_share(
                sold_quantity=3,
                line_subtotal_cents=180,
                gst_amount_cents=32,
                refund_quantity=1,
                refunded_quantity=refunded["quantity"],
                refunded_subtotal_cents=refunded["subtotal"],
                refunded_gst_cents=refunded["gst"],
            )
            refunded["quantity"] += 1
            refunded["subtotal"] += share.line_subtotal_cents
            refunded["gst"] += share.gst_amount_cents
            totals.append(share.total_amount_cents)

        assert sum(totals) == 212
        assert refunded == {"quantity": 3, "subtotal": 180, "gst": 32}

    def test_total_is_subtotal_plus_gst(self):
        # 2 x 1.05 at 50% off: subtotal 1.05, gst 0.19
        share = refund_share(
            sold_quantity=2,
            line_subtotal_cents=105,
            gst_amount_cents=19,
            refund_quantity=1,
        )
        assert share.total_amount_cents == share.line_subtotal_cents + share.gst_amount_cents

    def test_last_units_return_the_remainder(self):
        share = refund_share(
            sold_quantity=3,
            line_subtotal_cents=1000,
            gst_amount_cents=180,
            refund_quantity=2,
            refunded_quantity=1,
            refunded_subtotal_cents=333,
            refunded_gst_cents=60,
        )
        assert share.line_subtotal_cents == 667
        assert share.gst_amount_cents == 120
