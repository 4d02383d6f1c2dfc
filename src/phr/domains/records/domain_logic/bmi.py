"""Body-mass index, the derived field of the vitals record."""

from __future__ import annotations

import math
from decimal import ROUND_HALF_UP, Decimal

_ONE_DECIMAL = Decimal("0.1")


def compute_bmi(height_cm: float, weight_kg: float) -> float:
    """Return ``weight / (height/100)^2`` rounded half away from zero to 1 decimal.

    Callers must supply a positive height. A zero height yields ``inf`` (or
    ``nan`` for zero weight) rather than raising, and non-finite results are
    returned unrounded.
    """
    height_m = height_cm / 100
    denominator = height_m * height_m
    if denominator == 0:
        return math.copysign(math.inf, weight_kg) if weight_kg else math.nan

    raw = weight_kg / denominator
    if not math.isfinite(raw):
        return raw
    # Decimal(str(...)) rounds the shortest decimal repr, matching what a user sees
    return float(Decimal(str(raw)).quantize(_ONE_DECIMAL, rounding=ROUND_HALF_UP))
