from decimal import Decimal

from django.test import SimpleTestCase, TestCase, override_settings

from clinic.settlement.commission import (
    calculate_commission,
    completion_commission,
    default_commission,
    split_amount,
)
from clinic.settlement.errors import ProductNotFound

from .factories import make_product


class SplitAmountTests(SimpleTestCase):
    def test_parts_add_up_to_amount_after_rounding(self):
        cases = [
            ("0.00", "10"),
            ("0.01", "33.33"),
            ("10.00", "15"),
            ("19.99", "12.5"),
            ("33.33", "33.33"),
            ("99.99", "100"),
            ("1234.57", "0"),
        ]
        for amount, rate in cases:
            with self.subTest(amount=amount, rate=rate):
                split = split_amount(Decimal(amount), Decimal(rate))
                self.assertEqual(split.platform_fee + split.professional_earning, Decimal(amount))

    def test_fee_is_rounded_half_up_and_earning_derived(self):
        split = split_amount(Decimal("10.05"), Decimal("10"))
        self.assertEqual(split.platform_fee, Decimal("1.01"))
        self.assertEqual(split.professional_earning, Decimal("9.04"))

    def test_zero_amount_yields_zero_split(self):
        split = split_amount(Decimal("0"), Decimal("25"))
        self.assertEqual(split.platform_fee, Decimal("0.00"))
        self.assertEqual(split.professional_earning, Decimal("0.00"))

    def test_rejects_out_of_range_rate(self):
        with self.assertRaises(ValueError):
            split_amount(Decimal("10"), Decimal("101"))
        with self.assertRaises(ValueError):
            split_amount(Decimal("-1"), Decimal("10"))

    def test_completion_split_is_fixed_eighty_twenty(self):
        split = completion_commission(Decimal("75.00"))
        self.assertEqual(split.platform_fee, Decimal("15.00"))
        self.assertEqual(split.professional_earning, Decimal("60.00"))

    @override_settings(DEFAULT_PLATFORM_COMMISSION_PERCENT=Decimal("20"))
    def test_default_rate_applies_without_product(self):
        split = default_commission(Decimal("50.00"))
        self.assertEqual(split.platform_fee, Decimal("10.00"))
        self.assertEqual(split.professional_earning, Decimal("40.00"))


class CalculateCommissionTests(TestCase):
    def test_uses_platform_rate_for_first_visit(self):
        product = make_product(
            platform_commission_percent=Decimal("10"),
            followup_commission_percent=Decimal("30"),
        )
        split = calculate_commission(product.pk, "first", Decimal("200.00"))
        self.assertEqual(split.platform_fee, Decimal("20.00"))
        self.assertEqual(split.professional_earning, Decimal("180.00"))

    def test_followup_rate_overrides_platform_rate(self):
        product = make_product(
            platform_commission_percent=Decimal("10"),
            followup_commission_percent=Decimal("30"),
        )
        split = calculate_commission(product.pk, "followup", Decimal("200.00"))
        self.assertEqual(split.platform_fee, Decimal("60.00"))

    def test_followup_without_override_keeps_platform_rate(self):
        product = make_product(platform_commission_percent=Decimal("12.5"))
        split = calculate_commission(product.pk, "followup", Decimal("80.00"))
        self.assertEqual(split.platform_fee, Decimal("10.00"))

    def test_inactive_or_missing_product_raises(self):
        product = make_product(is_active=False)
        with self.assertRaises(ProductNotFound):
            calculate_commission(product.pk, "first", Decimal("10"))
        with self.assertRaises(ProductNotFound):
            calculate_commission(999999, "first", Decimal("10"))
