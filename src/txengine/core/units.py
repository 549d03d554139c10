"""
Conversion between human-scaled amounts (ether) and base units (wei).
"""

from decimal import Decimal, InvalidOperation
from typing import Union

from txengine.config import BASE_UNIT_SCALE
from txengine.errors import InvalidInput

_SCALE_DIGITS = len(str(BASE_UNIT_SCALE)) - 1

Amount = Union[Decimal, str, int]


def to_base_units(amount: Amount) -> int:
    """
    Convert a human-scaled amount to base units.

    Floats are rejected; pass a Decimal or a string such as "0.01".

    Args:
        amount: Amount in whole coins

    Returns:
        Amount in base units

    Raises:
        InvalidInput: If the amount is negative, not finite, not numeric, or
            has more fractional digits than the base unit allows
    """
    if isinstance(amount, bool) or isinstance(amount, float):
        raise InvalidInput("Amounts must be given as Decimal, str or int, not float")

    try:
        value = Decimal(amount) if not isinstance(amount, Decimal) else amount
    except (InvalidOperation, TypeError, ValueError):
        raise InvalidInput(f"Invalid amount: {amount!r}")

    if not value.is_finite():
        raise InvalidInput(f"Amount must be finite: {amount!r}")

    if value < 0:
        raise InvalidInput(f"Amount must not be negative: {amount!r}")

    scaled = value.scaleb(_SCALE_DIGITS)
    if scaled != scaled.to_integral_value():
        raise InvalidInput(f"Amount has more than {_SCALE_DIGITS} decimal places: {amount!r}")

    return int(scaled)


def from_base_units(value: int, digits: int = _SCALE_DIGITS) -> Decimal:
    """Convert base units to a human-scaled Decimal without trailing zeros."""
    scaled = Decimal(value).scaleb(-digits).normalize()
    # normalize() turns whole numbers such as 20 into 2E+1
    if scaled.as_tuple().exponent > 0:
        return scaled.quantize(Decimal(1))
    return scaled
