"""
Money helpers.

All comparisons and sums are done in integer cents. Decimal dollars only
appear on stored claim columns and at the JSON boundary.
"""

from decimal import ROUND_HALF_UP, Decimal
from typing import Iterable, Union

CENT = Decimal("0.01")

Number = Union[Decimal, int, float, str]


def to_decimal(value: Number) -> Decimal:
    """Coerce to a 2dp Decimal. Floats go through str() to avoid binary noise."""
    if isinstance(value, Decimal):
        amount = value
    elif isinstance(value, float):
        amount = Decimal(str(value))
    else:
        amount = Decimal(value)
    return amount.quantize(CENT, rounding=ROUND_HALF_UP)


def to_cents(value: Number) -> int:
    """Convert a currency amount to integer cents, rounding half up."""
    return int((to_decimal(value) * 100).to_integral_value(rounding=ROUND_HALF_UP))


def from_cents(cents: int) -> Decimal:
    """Convert integer cents to a 2dp Decimal."""
    return (Decimal(cents) / 100).quantize(CENT)


def sum_cents(values: Iterable[int]) -> int:
    return sum(int(v) for v in values)


def scale_cents(cents: int, percent: Number) -> int:
    """Apply a percentage to a cent amount, rounding half up to whole cents."""
    scaled = Decimal(cents) * to_percent(percent) / Decimal(100)
    return int(scaled.to_integral_value(rounding=ROUND_HALF_UP))


def to_percent(value: Number) -> Decimal:
    if isinstance(value, float):
        return Decimal(str(value))
    return Decimal(value)


def variance_percent(expected_cents: int, paid_cents: int) -> Decimal:
    """(expected - paid) / expected * 100, 2dp. Zero when nothing is expected."""
    if expected_cents <= 0:
        return Decimal("0.00")
    ratio = Decimal(expected_cents - paid_cents) * 100 / Decimal(expected_cents)
    return ratio.quantize(CENT, rounding=ROUND_HALF_UP)


def allocate_proportionally(total_cents: int, weights: list[int]) -> list[int]:
    """
    Split total_cents across weights so the parts sum exactly to the total.

    Uses the largest-remainder method. Ties go to the earlier index so the
    split is deterministic. All-zero weights give all-zero parts.
    """
    weight_total = sum(weights)
    if weight_total <= 0:
        return [0 for _ in weights]

    floors: list[int] = []
    remainders: list[tuple[int, int]] = []
    for index, weight in enumerate(weights):
        share, remainder = divmod(total_cents * weight, weight_total)
        floors.append(share)
        remainders.append((remainder, index))

    leftover = total_cents - sum(floors)
    for _, index in sorted(remainders, key=lambda r: (-r[0], r[1]))[:leftover]:
        floors[index] += 1
    return floors
