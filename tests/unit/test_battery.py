"""Tests for the closed-form fallback formula."""

import pytest

from solarmon.battery import (
    ANCHOR_POINTS,
    EMPTY_VOLTAGE,
    FALLBACK_INTERCEPT,
    FALLBACK_SLOPE,
    FULL_VOLTAGE,
    fallback_percentage,
)


class TestFallbackPercentage:
    """The fixed voltage-to-percentage line."""

    @pytest.mark.parametrize("voltage,expected", ANCHOR_POINTS)
    def test_passes_through_anchors(self, voltage: float, expected: int):
        assert fallback_percentage(voltage) == pytest.approx(expected, abs=1e-9)

    def test_matches_device_formula(self):
        """Anchors reproduce (170/11) * V - 8642/11."""
        assert FALLBACK_SLOPE == pytest.approx(170 / 11)
        assert FALLBACK_INTERCEPT == pytest.approx(-8642 / 11)

    @pytest.mark.parametrize("voltage", [0.0, 13.0, 48.0, 54.0, 57.0, 60.0])
    def test_formula_values(self, voltage: float):
        assert fallback_percentage(voltage) == pytest.approx((170 * voltage - 8642) / 11)

    def test_not_clamped(self):
        assert fallback_percentage(13.0) < 0
        assert fallback_percentage(60.0) > 100

    def test_increasing(self):
        assert fallback_percentage(52.0) < fallback_percentage(53.0)


class TestAnchors:
    """The nominal empty/full anchor points."""

    def test_empty_below_full(self):
        assert EMPTY_VOLTAGE < FULL_VOLTAGE

    def test_anchor_values(self):
        assert EMPTY_VOLTAGE == pytest.approx(50.835, abs=1e-3)
        assert FULL_VOLTAGE == pytest.approx(57.306, abs=1e-3)
