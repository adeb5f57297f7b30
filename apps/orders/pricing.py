"""
Order pricing.

All money is integer minor units (paise). Decimal is used only for the tax
multiplication so that rounding is exact half-up, never float.
"""
from dataclasses import dataclass, field
from decimal import Decimal, ROUND_HALF_UP
from typing import Iterable, Tuple

DEFAULT_TAX_RATE = Decimal("0.05")  # 5% GST


@dataclass(frozen=True)
class SelectedCustomization:
    group: str
    name: str
    price: int = 0


@dataclass(frozen=True)
class LineItem:
    menu_item_id: str
    name: str
    unit_price: int
    quantity: int
    customizations: Tuple[SelectedCustomization, ...] = field(default_factory=tuple)

    @property
    def item_total(self) -> int:
        return line_item_total(self.unit_price, self.quantity, self.customizations)


@dataclass(frozen=True)
class OrderSummary:
    subtotal: int
    delivery_fee: int
    taxes: int
    discount: int
    total: int

    def as_dict(self):
        return {
            "subtotal": self.subtotal,
            "delivery_fee": self.delivery_fee,
            "taxes": self.taxes,
            "discount": self.discount,
            "total": self.total,
        }


def line_item_total(unit_price: int, quantity: int, customizations: Iterable[SelectedCustomization] = ()) -> int:
    if quantity < 1:
        raise ValueError("Quantity must be at least 1")
    extras = sum(c.price for c in customizations)
    return (unit_price + extras) * quantity


def calculate_tax(subtotal: int, tax_rate: Decimal = DEFAULT_TAX_RATE) -> int:
    taxes = (Decimal(subtotal) * Decimal(tax_rate)).quantize(Decimal("1"), rounding=ROUND_HALF_UP)
    return int(taxes)


def compute_summary(
    items: Iterable[LineItem],
    delivery_fee: int,
    discount: int = 0,
    tax_rate: Decimal = DEFAULT_TAX_RATE,
) -> OrderSummary:
    """
    subtotal = sum(item_total)
    taxes    = round_half_up(subtotal * tax_rate)
    total    = subtotal + delivery_fee + taxes - discount
    """
    if delivery_fee < 0 or discount < 0:
        raise ValueError("Delivery fee and discount cannot be negative")

    subtotal = sum(item.item_total for item in items)
    taxes = calculate_tax(subtotal, tax_rate)
    total = subtotal + delivery_fee + taxes - discount

    return OrderSummary(
        subtotal=subtotal,
        delivery_fee=delivery_fee,
        taxes=taxes,
        discount=discount,
        total=total,
    )
