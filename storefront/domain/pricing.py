from decimal import Decimal, ROUND_HALF_UP
from typing import Iterable
from pydantic import BaseModel

from storefront.domain.models import OrderLine

CENT = Decimal("0.01")


class OrderTotals(BaseModel):
    subtotal: Decimal
    shipping_fee: Decimal
    tax: Decimal
    total: Decimal


def compute_totals(lines: Iterable[OrderLine], shipping_fee: Decimal, tax_rate: Decimal) -> OrderTotals:
    subtotal = sum((line.line_total for line in lines), Decimal("0"))
    tax = (subtotal * tax_rate).quantize(CENT, rounding=ROUND_HALF_UP)
    return OrderTotals(
        subtotal=subtotal,
        shipping_fee=shipping_fee,
        tax=tax,
        total=subtotal + shipping_fee + tax
    )


def to_minor_units(amount: Decimal) -> int:
    """Rupees to paise"""
    return int((amount * 100).quantize(Decimal("1"), rounding=ROUND_HALF_UP))
