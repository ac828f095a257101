"""
kpi/rounding.py

Half-up rounding for reported amounts and ratios.

Built-in ``round`` sends ties to the even neighbour (150.5 -> 150); billing
reports round ties upward (150.5 -> 151, 0.25 -> 0.3).
"""

from __future__ import annotations

import math


def round_half_up(value: float) -> int:
    """Nearest integer, ties toward positive infinity."""
    return math.floor(value + 0.5)


def round_half_up_tenth(value: float) -> float:
    """Nearest tenth, ties toward positive infinity."""
    return math.floor(value * 10 + 0.5) / 10
