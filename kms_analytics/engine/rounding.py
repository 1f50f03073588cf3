"""
Monetary Rounding

Every rounded figure in every report goes through ``round_money`` so the same
total shows the same cents wherever it appears.
"""

import math
from decimal import ROUND_HALF_UP, Decimal
from typing import Iterable, Optional, Union

Number = Union[int, float, Decimal]

CENTS = Decimal("0.01")


def round_money(value: Optional[Number], places: int = 2) -> Optional[Decimal]:
    """
    Round half away from zero to ``places`` decimals.

    Floats are converted through their shortest repr, so ``2.675`` rounds to
    ``2.68`` rather than following its binary expansion down to ``2.67``.

    Args:
        value: Number to round; None and NaN stay undefined
        places: Decimal places to keep

    Returns:
        Rounded Decimal, or None
    """
    if value is None:
        return None
    if isinstance(value, float):
        if math.isnan(value) or math.isinf(value):
            return None
        value = Decimal(repr(value))
    elif not isinstance(value, Decimal):
        value = Decimal(value)

    quantum = CENTS if places == 2 else Decimal(1).scaleb(-places)
    return value.quantize(quantum, rounding=ROUND_HALF_UP)


def sum_then_round(values: Iterable[Optional[Number]], places: int = 2) -> Decimal:
    """
    Sum unrounded values and round once.

    Nulls are skipped; an empty input sums to zero.
    """
    total = math.fsum(float(v) for v in values if v is not None)
    return round_money(total, places)
