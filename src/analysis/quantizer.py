"""
Quantizer - Snap prices and quantities to exchange tick / step increments
"""
import math
from decimal import ROUND_CEILING, ROUND_FLOOR, ROUND_HALF_UP, Decimal, InvalidOperation
from enum import Enum
from typing import Union

# Ratios this close to an integer count as exact multiples (float noise such as 0.12 / 0.001)
_SNAP_TOLERANCE = Decimal("1e-9")
_RESULT_PLACES = Decimal("1e-8")


class RoundingMode(str, Enum):
    FLOOR = "floor"
    CEIL = "ceil"
    ROUND = "round"


_ROUNDING = {
    RoundingMode.FLOOR: ROUND_FLOOR,
    RoundingMode.CEIL: ROUND_CEILING,
    RoundingMode.ROUND: ROUND_HALF_UP,
}


def quantize_to_step(value: float, step: float, mode: Union[RoundingMode, str] = RoundingMode.FLOOR) -> float:
    """
    Round value to a multiple of step.

    Non-finite values become 0 and a non-positive (or non-finite) step returns
    the value unchanged. Never raises; callers validate the result.
    """
    try:
        value = float(value)
    except (TypeError, ValueError):
        return 0.0
    if not math.isfinite(value):
        return 0.0
    try:
        step = float(step)
    except (TypeError, ValueError):
        return value
    if not math.isfinite(step) or step <= 0:
        return value

    try:
        rounding = _ROUNDING[RoundingMode(mode)]
    except ValueError:
        rounding = ROUND_FLOOR
    try:
        step_dec = Decimal(repr(step))
        ratio = Decimal(repr(value)) / step_dec
        nearest = ratio.to_integral_value(rounding=ROUND_HALF_UP)
        if abs(ratio - nearest) <= _SNAP_TOLERANCE:
            units = nearest
        else:
            units = ratio.to_integral_value(rounding=rounding)
        result = (units * step_dec).quantize(_RESULT_PLACES, rounding=ROUND_HALF_UP)
    except (InvalidOperation, ValueError):
        return value
    return float(result)
