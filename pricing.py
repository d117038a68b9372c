# pricing.py
import logging
from dataclasses import dataclass
from decimal import Decimal
from typing import Tuple

from errors import DanglingReferenceWarning
from models import CartSession, money

logger = logging.getLogger("craftline.pricing")

ZERO = Decimal("0")
HUNDRED = Decimal("100")


@dataclass(frozen=True)
class PricedLine:
    product_id: str
    product_name: str
    quantity: int
    unit_price: Decimal
    gst_percentage: Decimal

    @property
    def subtotal(self):
        return self.unit_price * self.quantity

    @property
    def gst_amount(self):
        return self.subtotal * self.gst_percentage / HUNDRED

    @property
    def total(self):
        return self.subtotal + self.gst_amount


@dataclass(frozen=True)
class PricedCart:
    """
    Totals for a cart at full Decimal precision. Round with `rounded()`
    only when displaying or freezing onto an order.
    """
    lines: Tuple[PricedLine, ...]
    discount_percentage: Decimal
    warnings: Tuple[DanglingReferenceWarning, ...] = ()

    @property
    def raw_subtotal(self):
        return sum((line.subtotal for line in self.lines), ZERO)

    @property
    def discount_amount(self):
        return self.raw_subtotal * self.discount_percentage / HUNDRED

    @property
    def taxable_amount(self):
        return self.raw_subtotal - self.discount_amount

    @property
    def raw_gst(self):
        return sum((line.gst_amount for line in self.lines), ZERO)

    @property
    def final_gst(self):
        # One blended ratio scales the undiscounted GST; tax is not
        # re-derived per line at the discounted price.
        if self.raw_subtotal <= 0:
            return ZERO
        return self.raw_gst * (self.taxable_amount / self.raw_subtotal)

    @property
    def grand_total(self):
        return self.taxable_amount + self.final_gst

    def rounded(self):
        """Presentation totals, rounded to paise."""
        return {
            'subtotal': money(self.raw_subtotal),
            'discount_amount': money(self.discount_amount),
            'taxable_amount': money(self.taxable_amount),
            'total_gst': money(self.final_gst),
            'grand_total': money(self.grand_total),
        }


def price_cart(cart: CartSession, catalog) -> PricedCart:
    """
    Price the cart against the catalog's current prices.
    Lines with quantity 0 are ignored; lines whose product has gone missing
    are dropped and reported in `warnings`.
    """
    lines = []
    warnings = []
    for cart_line in cart.active_lines:
        product = catalog.get_product(cart_line.product_id)
        if product is None:
            warning = DanglingReferenceWarning(cart_line.product_id)
            logger.warning(str(warning))
            warnings.append(warning)
            continue
        lines.append(PricedLine(
            product_id=product.id,
            product_name=product.name,
            quantity=cart_line.quantity,
            unit_price=product.selling_price,
            gst_percentage=product.gst_percentage,
        ))
    return PricedCart(
        lines=tuple(lines),
        discount_percentage=cart.discount_percentage,
        warnings=tuple(warnings),
    )
