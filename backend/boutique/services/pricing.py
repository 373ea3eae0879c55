# Overview: Integer-cents price arithmetic shared by checkout and dispatch.

from __future__ import annotations

from decimal import Decimal, ROUND_HALF_UP, InvalidOperation

ZERO_PERCENT = Decimal("0")
HUNDRED = Decimal("100")


class PricingError(ValueError):
    """Raised for malformed prices or discount percents."""


def to_percent(value) -> Decimal:
    """
    Normalize a discount percent (int, float, str, Decimal) to Decimal(0..100).

    None and "" mean no discount.
    """
    if value is None or value == "":
        return ZERO_PERCENT
    if isinstance(value, bool):
        raise PricingError("discount percent must be a number")
    try:
        pct = Decimal(str(value))
    except (InvalidOperation, ValueError):
        raise PricingError("discount percent must be a number")
    if not pct.is_finite() or pct < 0 or pct > HUNDRED:
        raise PricingError("discount percent must be between 0 and 100")
    return pct.quantize(Decimal("0.01"), rounding=ROUND_HALF_UP)


def apply_percent_off(amount_cents: int, percent) -> int:
    """amount * (100 - percent) / 100, nearest cent, half-up."""
    pct = to_percent(percent)
    if pct == 0:
        return int(amount_cents)
    value = Decimal(int(amount_cents)) * (HUNDRED - pct) / HUNDRED
    return int(value.quantize(Decimal("1"), rounding=ROUND_HALF_UP))


def line_total(effective_unit_cents: int, quantity: int) -> int:
    return int(effective_unit_cents) * int(quantity)


def order_totals(lines: list[tuple[int, int]], order_discount) -> tuple[int, int]:
    """
    (subtotal, total) for [(effective_unit_cents, quantity), ...].

    total = round(subtotal * (1 - order_discount/100)).
    """
    subtotal = sum(line_total(price, qty) for price, qty in lines)
    return subtotal, apply_percent_off(subtotal, order_discount)
