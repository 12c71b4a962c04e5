"""Closed-form battery voltage to percentage fallback.

Used when there are fewer than two calibration samples. The straight line is
derived once from the device's nominal empty and full pack voltages.
"""

# Nominal anchors: 0% at ~50.84V, 100% at ~57.31V.
# Together they give percentage = (170/11) * V - 8642/11.
EMPTY_VOLTAGE = 8642 / 170
FULL_VOLTAGE = 9742 / 170

ANCHOR_POINTS = [
    (EMPTY_VOLTAGE, 0),
    (FULL_VOLTAGE, 100),
]


def _line_through(points: list[tuple[float, int]]) -> tuple[float, float]:
    (v_low, p_low), (v_high, p_high) = points
    slope = (p_high - p_low) / (v_high - v_low)
    return slope, p_low - slope * v_low


FALLBACK_SLOPE, FALLBACK_INTERCEPT = _line_through(ANCHOR_POINTS)


def fallback_percentage(voltage: float) -> float:
    """
    Estimate battery percentage from voltage without calibration data.

    Args:
        voltage: Battery pack voltage in volts

    Returns:
        Raw (unclamped) percentage estimate
    """
    return FALLBACK_SLOPE * voltage + FALLBACK_INTERCEPT
