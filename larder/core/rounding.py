"""Rounding helpers shared by demand aggregation, list generation and consumption.

Quantities are rounded half-up to 4 decimals after arithmetic and to 2 decimals
for anything stored on a shopping list or shown to a user. Pack counts always
round up.
"""

import math
from decimal import ROUND_HALF_UP, Decimal

from larder.core.config import constants


def _round_half_up(value: float, places: int) -> float:
    exponent = Decimal(1).scaleb(-places)
    return float(Decimal(str(value)).quantize(exponent, rounding=ROUND_HALF_UP))


def round_quantity(value: float) -> float:
    """Round to the internal precision (4 decimals)."""
    return _round_half_up(value, constants.QUANTITY_PRECISION)


def round_display(value: float) -> float:
    """Round to the display precision (2 decimals), used for stored quantities and money."""
    return _round_half_up(value, constants.DISPLAY_PRECISION)


def packs_needed(need: float, package_size: float) -> int:
    """Number of whole packages covering ``need``.

    Never returns less than 1 and never rounds down: ``packs * package_size >= need``
    holds up to ``constants.PACK_TOLERANCE``.

    Raises:
        ValueError: If package_size is not positive
    """
    if package_size <= 0:
        msg = f"Package size must be positive, got {package_size}"
        raise ValueError(msg)

    ratio = need / package_size
    return max(1, math.ceil(ratio - constants.PACK_TOLERANCE))
