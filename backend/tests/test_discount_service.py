# Overview: Pytest coverage for discount/coupon validity, amounts and redemption.

import unittest
from datetime import timedelta
from decimal import Decimal

import pytest

from storefront.models import CouponCode, Discount
from storefront.services import discount_service
from storefront.services.discount_service import (
    STATE_EXPIRED,
    STATE_INACTIVE,
    STATE_NOT_YET_STARTED,
    STATE_USAGE_EXHAUSTED,
    STATE_VALID,
    CouponRejected,
    calculate_discount,
    evaluate_state,
)
from storefront.time_utils import utcnow
from storefront.validation import ValidationError

from conftest import make_coupon, make_discount, make_product


def _rule(**fields):
    """Unsaved discount; the engine only reads attributes."""
    values = dict(name="Rule", type="percentage", value=Decimal("20"), is_active=True, usage_count=0)
    values.update(fields)
    return Discount(**values)


class DiscountAmountTests(unittest.TestCase):
    """Pure amount/state rules; no database needed."""

    def test_capped_percentage_scenario(self):
        rule = _rule(value=Decimal("20"), min_purchase_amount=Decimal("50"), max_discount_amount=Decimal("15"))

        self.assertEqual(calculate_discount(rule, Decimal("40.00")), Decimal("0.00"))
        self.assertEqual(calculate_discount(rule, Decimal("100.00")), Decimal("15.00"))
        self.assertEqual(calculate_discount(rule, Decimal("1000.00")), Decimal("15.00"))

    def test_percentage_under_cap(self):
        rule = _rule(value=Decimal("20"), min_purchase_amount=Decimal("50"), max_discount_amount=Decimal("25"))

        self.assertEqual(calculate_discount(rule, Decimal("100.00")), Decimal("20.00"))
        self.assertEqual(calculate_discount(rule, Decimal("1000.00")), Decimal("25.00"))

    def test_min_purchase_boundary_is_inclusive(self):
        rule = _rule(value=Decimal("10"), min_purchase_amount=Decimal("50"))

        self.assertEqual(calculate_discount(rule, Decimal("49.99")), Decimal("0.00"))
        self.assertEqual(calculate_discount(rule, Decimal("50.00")), Decimal("5.00"))

    def test_fixed_never_exceeds_price(self):
        rule = _rule(type="fixed", value=Decimal("30"))

        self.assertEqual(calculate_discount(rule, Decimal("100.00")), Decimal("30.00"))
        self.assertEqual(calculate_discount(rule, Decimal("12.50")), Decimal("12.50"))
        self.assertEqual(calculate_discount(rule, Decimal("0")), Decimal("0.00"))

    def test_percentage_never_exceeds_price(self):
        rule = _rule(value=Decimal("100"))
        for price in ("0.01", "1.00", "99.99", "12345.67"):
            amount = calculate_discount(rule, Decimal(price))
            self.assertLessEqual(amount, Decimal(price))

    def test_fixed_is_non_decreasing_in_price(self):
        rule = _rule(type="fixed", value=Decimal("30"), max_discount_amount=Decimal("50"))
        prices = [Decimal(p) for p in ("0.00", "5.00", "10.00", "29.99", "30.00", "31.00", "500.00")]
        amounts = [calculate_discount(rule, p) for p in prices]
        self.assertEqual(amounts, sorted(amounts))

    def test_amounts_truncate_to_cents(self):
        rule = _rule(value=Decimal("33.33"))
        # 10.00 * 33.33% = 3.333 -> 3.33; 0.99 * 33.33% = 0.329967 -> 0.32
        self.assertEqual(calculate_discount(rule, Decimal("10.00")), Decimal("3.33"))
        self.assertEqual(calculate_discount(rule, Decimal("0.99")), Decimal("0.32"))

    def test_negative_price_rejected(self):
        with self.assertRaises(ValidationError):
            calculate_discount(_rule(), Decimal("-1.00"))

    def test_invalid_rule_gives_zero(self):
        rule = _rule(is_active=False)
        self.assertEqual(calculate_discount(rule, Decimal("100.00")), Decimal("0.00"))

    def test_state_order(self):
        now = utcnow()
        self.assertEqual(evaluate_state(_rule(is_active=False, end_date=now - timedelta(days=1)), now), STATE_INACTIVE)
        self.assertEqual(evaluate_state(_rule(start_date=now + timedelta(hours=1)), now), STATE_NOT_YET_STARTED)
        self.assertEqual(evaluate_state(_rule(end_date=now - timedelta(seconds=1)), now), STATE_EXPIRED)
        self.assertEqual(evaluate_state(_rule(usage_limit=3, usage_count=3), now), STATE_USAGE_EXHAUSTED)
        self.assertEqual(evaluate_state(_rule(usage_limit=3, usage_count=2), now), STATE_VALID)

    def test_end_date_boundary(self):
        now = utcnow()
        self.assertEqual(evaluate_state(_rule(end_date=now - timedelta(seconds=1)), now), STATE_EXPIRED)
        self.assertEqual(evaluate_state(_rule(end_date=now + timedelta(seconds=1)), now), STATE_VALID)
        self.assertEqual(evaluate_state(_rule(end_date=now), now), STATE_VALID)

    def test_zero_limits_count_as_unset(self):
        self.assertEqual(evaluate_state(_rule(usage_limit=0, usage_count=5)), STATE_VALID)

        uncapped = _rule(value=Decimal("20"), max_discount_amount=Decimal("0"))
        self.assertEqual(calculate_discount(uncapped, Decimal("100.00")), Decimal("20.00"))

        no_minimum = _rule(value=Decimal("20"), min_purchase_amount=Decimal("0.00"))
        self.assertEqual(calculate_discount(no_minimum, Decimal("10.00")), Decimal("2.00"))

    def test_display_text(self):
        self.assertEqual(discount_service.display_text(_rule(value=Decimal("15"))), "15.00% OFF")
        self.assertEqual(discount_service.display_text(_rule(type="fixed", value=Decimal("5"))), "$5.00 OFF")


# =============================================================================
# PRODUCT DISCOUNTS
# =============================================================================


class TestBestProductDiscount:

    def test_picks_largest_valid_amount(self, db_session, product):
        make_discount(db_session, name="Ten", value=Decimal("10"), products=[product])
        best = make_discount(db_session, name="Flat 25", type="fixed", value=Decimal("25"), products=[product])
        make_discount(db_session, name="Expired 50", value=Decimal("50"), products=[product],
                      end_date=utcnow() - timedelta(days=1))

        info = discount_service.best_product_discount(product)

        assert info["discount_id"] == best.id
        assert info["discount_amount"] == "25.00"
        assert info["original_price"] == "100.00"
        assert info["final_price"] == "75.00"
        assert info["discount_percentage"] == "25.00"
        assert info["display_text"] == "$25.00 OFF"

    def test_uses_sale_price(self, db_session):
        product = make_product(db_session, "SALE-1", "80.00", sale_price="60.00")
        make_discount(db_session, value=Decimal("50"), products=[product])

        info = discount_service.best_product_discount(product)

        assert info["original_price"] == "60.00"
        assert info["discount_amount"] == "30.00"

    def test_none_when_nothing_applies(self, db_session, product):
        make_discount(db_session, is_active=False, products=[product])
        assert discount_service.best_product_discount(product) is None

    def test_record_usage_stops_at_limit(self, db_session, product):
        discount = make_discount(db_session, usage_limit=2, products=[product])

        results = [discount_service.record_discount_usage(discount.id) for _ in range(4)]
        db_session.commit()
        db_session.refresh(discount)

        assert results == [True, True, False, False]
        assert discount.usage_count == 2


# =============================================================================
# COUPONS
# =============================================================================


class TestCoupons:

    def test_lookup_is_case_insensitive(self, db_session):
        coupon = make_coupon(db_session, "SAVE10")
        assert discount_service.find_coupon("  save10 ").id == coupon.id
        assert discount_service.find_coupon("") is None

    def test_preview(self, db_session):
        make_coupon(db_session, "SAVE10", value=Decimal("10"))

        preview = discount_service.preview_coupon("save10", Decimal("80.00"))

        assert preview["coupon_discount"] == "8.00"
        assert preview["total"] == "72.00"

    @pytest.mark.parametrize("fields,reason", [
        ({"is_active": False}, STATE_INACTIVE),
        ({"usage_limit": 1, "usage_count": 1}, STATE_USAGE_EXHAUSTED),
        ({"min_purchase_amount": Decimal("100")}, "min_purchase"),
    ])
    def test_rejections(self, db_session, fields, reason):
        make_coupon(db_session, "NOPE", **fields)

        with pytest.raises(CouponRejected) as exc:
            discount_service.check_coupon("NOPE", Decimal("50.00"))

        assert exc.value.reason == reason

    def test_unknown_code(self, db_session):
        with pytest.raises(CouponRejected) as exc:
            discount_service.check_coupon("MISSING", Decimal("50.00"))
        assert exc.value.reason == "not_found"

    def test_redeem_never_overshoots_limit(self, db_session):
        coupon = make_coupon(db_session, "ONCE", usage_limit=1)

        assert discount_service.redeem_coupon(coupon) is True
        db_session.commit()
        assert discount_service.redeem_coupon(coupon) is False
        assert discount_service.redeem_coupon(coupon) is False
        db_session.commit()

        assert db_session.get(CouponCode, coupon.id).usage_count == 1
        assert not discount_service.is_valid(coupon)

    def test_zero_usage_limit_is_unlimited(self, db_session):
        coupon = make_coupon(db_session, "OPEN", usage_limit=0)

        assert [discount_service.redeem_coupon(coupon) for _ in range(3)] == [True, True, True]
        db_session.commit()

        assert db_session.get(CouponCode, coupon.id).usage_count == 3
        assert discount_service.is_valid(coupon)

    def test_can_be_used_by_user_matches_is_valid(self, db_session, customer):
        coupon = make_coupon(db_session, "PERUSER", usage_limit_per_user=1)

        assert discount_service.can_be_used_by_user(coupon, customer.id)
        discount_service.redeem_coupon(coupon)
        db_session.commit()
        # usage_limit_per_user is not tracked; only the global limit counts
        assert discount_service.can_be_used_by_user(coupon, customer.id)
