"""Conversion between node amounts and stored minor units."""
from decimal import Decimal, ROUND_DOWN, ROUND_HALF_EVEN
from typing import Union

DISPLAY_PLACES = Decimal('0.00000000')

def to_minor_units(value: Union[Decimal, int, float, str], units: int = 8) -> int:
    """Convert a major-unit amount as reported by the node to minor units.

    Floats are routed through str() so 0.1 becomes exactly 10000000 at 8 units.
    """
    amount = Decimal(str(value)) * (Decimal(10) ** units)
    return int(amount.to_integral_value(rounding=ROUND_HALF_EVEN))

def format_amount(minor: int, units: int = 8) -> Decimal:
    """Render a minor-unit amount in major units, quantized to 8 decimal places."""
    major = Decimal(minor) / (Decimal(10) ** units)
    return major.quantize(DISPLAY_PLACES, rounding=ROUND_DOWN)
