"""Rounding helpers shared by the analyzers."""

import math


def round_half_up(value: float, digits: int = 0) -> float:
    """Round with halves going up (towards +inf), e.g. -2.5 -> -2.

    The built-in ``round`` uses banker's rounding, which would shift
    percentage tiers on exact halves.
    """
    factor = 10**digits
    return math.floor(value * factor + 0.5) / factor


def round_int(value: float) -> int:
    return int(math.floor(value + 0.5))


def round_to_step(value: float, step: float) -> float:
    """Round a basal rate to the pump's delivery granularity."""
    if step <= 0:
        return value
    steps = round_int(value / step)
    # Trim float noise such as 0.30000000000000004
    return round(steps * step, 5)
