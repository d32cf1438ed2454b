"""Rupiah rounding helpers shared by promo and charge calculations."""
from decimal import Decimal, ROUND_HALF_UP
from typing import Union

Number = Union[int, float]


def round_currency(value: Number) -> float:
    """Round half-up to 2 decimal places."""
    return float(Decimal(str(value)).quantize(Decimal("0.01"), rounding=ROUND_HALF_UP))


def round_to_unit(value: Number) -> int:
    """
    Round half-up to a whole rupiah.

    The gateway only accepts integer amounts, and halves round away from
    zero so -0.5 and 0.5 stay symmetric.
    """
    return int(Decimal(str(value)).quantize(Decimal("1"), rounding=ROUND_HALF_UP))
