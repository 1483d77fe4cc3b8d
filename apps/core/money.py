"""
Decimal helpers for currency arithmetic.

Amounts are carried at full precision through every calculation and only
rounded to paise/cents when they are stored or shown on a receipt.
"""
from decimal import Decimal, InvalidOperation, ROUND_DOWN, ROUND_HALF_UP

ZERO = Decimal('0')
HUNDRED = Decimal('100')
CENT = Decimal('0.01')


def to_decimal(value, default=ZERO) -> Decimal:
    """Coerce ints, floats, strings and None to Decimal. Garbage becomes `default`."""
    if value is None or value == '':
        return default
    if isinstance(value, Decimal):
        return value
    try:
        # str() first so 0.1 does not become 0.1000000000000000055511151231257827
        return Decimal(str(value))
    except (InvalidOperation, ValueError, TypeError):
        return default


def quantize_money(value) -> Decimal:
    return to_decimal(value).quantize(CENT, rounding=ROUND_HALF_UP)


def money_str(value) -> str:
    """Serialise an amount for JSON / session storage."""
    return str(quantize_money(value))


def allocate_money(amounts, total) -> list:
    """
    Round `amounts` to cents so they add up to `total` rounded to cents.

    Every amount is floored first; the cents left over go one each to the
    amounts that lost the most in flooring (earlier ones win ties). No share
    drops below its floor, so non-negative inputs give non-negative shares.
    """
    amounts = [max(ZERO, to_decimal(a)) for a in amounts]
    if not amounts:
        return []
    floors = [a.quantize(CENT, rounding=ROUND_DOWN) for a in amounts]
    leftover = int((quantize_money(total) - sum(floors, ZERO)) / CENT)
    if leftover <= 0:
        return floors

    order = sorted(range(len(amounts)), key=lambda i: (-(amounts[i] - floors[i]), i))
    for n in range(leftover):
        floors[order[n % len(order)]] += CENT
    return floors
