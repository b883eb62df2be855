"""
Rounding helpers shared by the analytics services.

Dashboard figures round half-up (toward positive infinity on a tie), so
66.65 becomes 66.7 and -0.05 becomes 0.0. Python's built-in ``round`` uses
banker's rounding and binary floats, which disagree with that on ties, so
values are routed through ``Decimal`` first.
"""

from __future__ import annotations

from decimal import ROUND_FLOOR, Decimal


def round_half_up(value: float, places: int = 1) -> float:
    """Round ``value`` to ``places`` decimals, ties going up."""
    scale = Decimal(10) ** places
    scaled = Decimal(repr(float(value))) * scale + Decimal("0.5")
    result = float(scaled.to_integral_value(rounding=ROUND_FLOOR) / scale)
    # Avoid "-0.0" leaking into outputs
    return result + 0.0


def round_seconds(value: float) -> int:
    """Round a duration to whole seconds, ties going up."""
    return int(round_half_up(value, 0))


def percentage(part: int | float, whole: int | float) -> float:
    """
    Share of ``part`` in ``whole`` as a percentage with one decimal.

    Returns 0.0 when ``whole`` is zero so empty inputs never divide by zero.
    """
    if not whole:
        return 0.0
    return round_half_up(part / whole * 100)
