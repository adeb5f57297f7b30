from decimal import Decimal

from django.test import SimpleTestCase

from .pricing import (
    LineItem,
    SelectedCustomization,
    calculate_tax,
    compute_summary,
    line_item_total,
)


class PricingTests(SimpleTestCase):
    def test_line_item_total_includes_customizations_per_unit(self):
        extras = (SelectedCustomization("Size", "Large", 5000), SelectedCustomization("Add-ons", "Cheese", 2000))
        self.assertEqual(line_item_total(15000, 2, extras), (15000 + 5000 + 2000) * 2)

    def test_quantity_must_be_positive(self):
        with self.assertRaises(ValueError):
            line_item_total(15000, 0)

    def test_summary_total_invariant(self):
        items = [
            LineItem("a", "Paneer Tikka", 24000, 1),
            LineItem("b", "Butter Naan", 4500, 3, (SelectedCustomization("Extra", "Garlic", 500),)),
        ]
        summary = compute_summary(items, delivery_fee=4000, discount=1000)

        self.assertEqual(summary.subtotal, 24000 + 5000 * 3)
        self.assertEqual(summary.taxes, 1950)
        self.assertEqual(
            summary.total,
            summary.subtotal + summary.delivery_fee + summary.taxes - summary.discount,
        )

    def test_tax_rounds_half_up(self):
        # 5% of 10 paise = 0.5 -> 1, 5% of 29 = 1.45 -> 1, 5% of 30 = 1.5 -> 2
        self.assertEqual(calculate_tax(10), 1)
        self.assertEqual(calculate_tax(29), 1)
        self.assertEqual(calculate_tax(30), 2)
        self.assertEqual(calculate_tax(1000, Decimal("0.18")), 180)

    def test_summary_is_deterministic(self):
        items = [LineItem("a", "Biryani", 29900, 2)]
        self.assertEqual(compute_summary(items, 3000), compute_summary(items, 3000))

    def test_negative_fee_rejected(self):
        with self.assertRaises(ValueError):
            compute_summary([], delivery_fee=-1)
