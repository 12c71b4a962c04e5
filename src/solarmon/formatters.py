"""Shared formatting functions for display values."""

from typing import Any, Optional


def format_value(value: Any) -> str:
    """Format a value for display."""
    if value is None:
        return "N/A"
    if isinstance(value, float):
        return f"{value:.2f}"
    return str(value)


def format_voltage(volts: Optional[float]) -> str:
    if volts is None:
        return "N/A"
    return f"{volts:.2f} V"


def format_percentage(pct: Optional[float]) -> str:
    if pct is None:
        return "N/A"
    return f"{pct:.0f}%"


def format_power(watts: Optional[float]) -> str:
    """Format watts, switching to kW from 1000 W up."""
    if watts is None:
        return "N/A"
    if abs(watts) >= 1000:
        return f"{watts / 1000:.2f} kW"
    return f"{watts:.0f} W"


def format_method(method: Any) -> str:
    """Human label for a calibration method enum or its value."""
    labels = {
        "fallback": "Fixed fallback line",
        "linear": "Linear regression",
        "polynomial": "Polynomial interpolation",
        "spline": "Natural cubic spline",
    }
    key = getattr(method, "value", method)
    return labels.get(key, str(key))
