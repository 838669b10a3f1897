from __future__ import annotations

import math
from decimal import Decimal, ROUND_CEILING, ROUND_HALF_UP

TWOPLACES = Decimal("0.01")
THREEPLACES = Decimal("0.001")
ZERO = Decimal("0")
ONE = Decimal("1")
HUNDRED = Decimal("100")
SIXTY = Decimal("60")


def d(val) -> Decimal:
    """Coerce incoming values to Decimal safely."""
    if isinstance(val, Decimal):
        return val
    if val is None:
        return ZERO
    return Decimal(str(val))


def round2(amount) -> Decimal:
    """Round half-up to cents (12.345 -> 12.35)."""
    return d(amount).quantize(TWOPLACES, rounding=ROUND_HALF_UP)


def round3(amount) -> Decimal:
    return d(amount).quantize(THREEPLACES, rounding=ROUND_HALF_UP)


def round_up_to_next_whole(amount: Decimal) -> Decimal:
    """Round a Decimal amount up to the next whole number."""
    return d(amount).to_integral_value(rounding=ROUND_CEILING)


def minutes_to_hours(minutes) -> Decimal:
    return d(minutes) / SIXTY


def margin_percent(margin, price) -> Decimal:
    """margin / price * 100 rounded to cents; 0 when price is not positive."""
    price = d(price)
    if price <= ZERO:
        return ZERO
    return round2(d(margin) / price * HUNDRED)


def floor_int(value) -> int:
    return int(math.floor(float(value)))
