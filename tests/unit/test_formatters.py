"""Tests for display formatters."""

import pytest

from solarmon.calibration import Method
from solarmon.formatters import (
    format_method,
    format_percentage,
    format_power,
    format_value,
    format_voltage,
)


class TestFormatters:
    @pytest.mark.parametrize(
        "fn",
        [format_value, format_voltage, format_percentage, format_power],
    )
    def test_none_is_na(self, fn):
        assert fn(None) == "N/A"

    def test_value(self):
        assert format_value(3.14159) == "3.14"
        assert format_value(7) == "7"
        assert format_value("text") == "text"

    def test_voltage(self):
        assert format_voltage(12.345) == "12.35 V"

    def test_percentage(self):
        assert format_percentage(49) == "49%"

    @pytest.mark.parametrize(
        "watts,expected",
        [
            (0, "0 W"),
            (495.3, "495 W"),
            (-300.5, "-300 W"),
            (1250, "1.25 kW"),
            (-2000, "-2.00 kW"),
        ],
    )
    def test_power(self, watts, expected):
        assert format_power(watts) == expected


class TestFormatMethod:
    def test_enum(self):
        assert format_method(Method.SPLINE) == "Natural cubic spline"

    def test_plain_value(self):
        assert format_method("linear") == "Linear regression"

    def test_unknown_passthrough(self):
        assert format_method("mystery") == "mystery"
