"""
Rounding conventions used by the premium rules.
"""

from decimal import Decimal, ROUND_FLOOR, ROUND_HALF_DOWN, ROUND_HALF_UP

THOUSAND = Decimal('1000')
TEN = Decimal('10')
YEN = Decimal('1')


def to_decimal(value) -> Decimal:
    if isinstance(value, Decimal):
        return value
    return Decimal(str(value))


def round_to_thousand(value) -> Decimal:
    """Round half-up to the nearest 1,000 yen."""
    return (to_decimal(value) / THOUSAND).quantize(YEN, rounding=ROUND_HALF_UP) * THOUSAND


def floor_to_thousand(value) -> Decimal:
    return (to_decimal(value) / THOUSAND).quantize(YEN, rounding=ROUND_FLOOR) * THOUSAND


def floor_to_ten(value) -> Decimal:
    return (to_decimal(value) / TEN).quantize(YEN, rounding=ROUND_FLOOR) * TEN


def floor_to_yen(value) -> Decimal:
    return to_decimal(value).quantize(YEN, rounding=ROUND_FLOOR)


def round_to_yen(value) -> Decimal:
    return to_decimal(value).quantize(YEN, rounding=ROUND_HALF_UP)


def round_fifty_sen(value) -> Decimal:
    """
    Round to the yen at the 50-sen boundary.

    A fraction strictly above 0.5 rounds up; exactly 0.5 or below rounds down.
    """
    return to_decimal(value).quantize(YEN, rounding=ROUND_HALF_DOWN)
