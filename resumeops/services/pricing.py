"""Order total arithmetic.

Money is summed as Decimal and rounded half-up to cents so totals are
reproducible regardless of the float representation of the inputs.
"""

from __future__ import annotations

from decimal import Decimal, ROUND_HALF_UP
from typing import Iterable

_CENT = Decimal("0.01")


def to_decimal(value) -> Decimal:
    return Decimal(str(value or 0))


def round_money(value: Decimal) -> float:
    return float(value.quantize(_CENT, rounding=ROUND_HALF_UP))


def calculate_order_total(
    base_price: float,
    urgency_fee: float = 0.0,
    additional_prices: Iterable[float] = (),
    discount: float = 0.0,
) -> float:
    """(base + urgency + sum(additional)) * (1 - discount/100), rounded to cents."""
    subtotal = to_decimal(base_price) + to_decimal(urgency_fee)
    subtotal += sum((to_decimal(p) for p in additional_prices), Decimal("0"))
    total = subtotal * (Decimal("1") - to_decimal(discount) / Decimal("100"))
    return round_money(total)


def calculate_net_amount(amount: float, processing_fee: float = 0.0, platform_fee: float = 0.0) -> float:
    return round_money(to_decimal(amount) - to_decimal(processing_fee) - to_decimal(platform_fee))
