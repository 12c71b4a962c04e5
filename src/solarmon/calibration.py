"""Adaptive battery calibration engine.

Turns a battery voltage into a state-of-charge percentage using every stored
(voltage, percentage) calibration sample. The fitting method depends only on
how many samples exist:

    0-1 samples  -> closed-form fallback line (see battery.py)
    2 samples    -> least-squares line
    3-4 samples  -> polynomial of degree n-1 (exact interpolation)
    5+ samples   -> natural cubic spline over voltage-unique knots

Every estimate is bounded to [0, 100] and rounded half up to an int.

Samples are read fresh from a SampleSource on each call; nothing is cached
between calls, so concurrent calibrations share no state.
"""

import math
from dataclasses import dataclass
from enum import Enum
from typing import Callable, Iterable, Protocol, Sequence

import numpy as np
from numpy.polynomial import Polynomial
from scipy.interpolate import CubicSpline

from .battery import fallback_percentage
from . import log


MIN_PERCENTAGE = 0
MAX_PERCENTAGE = 100

# Polynomial fits need every gap between sorted voltages to be at least this
# fraction of the voltage span; closer samples count as repeated.
MIN_RELATIVE_SPACING = 1e-9

# A fitted estimator: voltage in, raw (unclamped) percentage out
Curve = Callable[[float], float]


# =============================================================================
# Errors
# =============================================================================


class CalibrationError(Exception):
    """Base class for calibration failures."""


class StoreReadError(CalibrationError):
    """The sample store could not be read."""


class StoreScanError(CalibrationError):
    """A stored sample could not be interpreted as (voltage, percentage)."""


class FitSingularityError(CalibrationError):
    """The polynomial fit did not yield one independent coefficient per sample."""


# =============================================================================
# Samples
# =============================================================================


@dataclass(frozen=True)
class CalibrationSample:
    """One observed (voltage, percentage) pair."""

    voltage: float
    percentage: int


class SampleSource(Protocol):
    """Anything that can hand over the full set of calibration samples."""

    def read_samples(self) -> list[CalibrationSample]:
        ...


class StaticSampleSource:
    """In-memory sample source, handy for previews and tests."""

    def __init__(self, samples: Iterable[CalibrationSample] = ()):
        self.samples = list(samples)

    def read_samples(self) -> list[CalibrationSample]:
        return list(self.samples)


# =============================================================================
# Method selection
# =============================================================================


class Method(Enum):
    """Estimation strategies, keyed purely by sample count."""

    FALLBACK = "fallback"
    LINEAR = "linear"
    POLYNOMIAL = "polynomial"
    SPLINE = "spline"


def select_method(count: int) -> Method:
    """Pick the estimation strategy for a sample count."""
    if count < 2:
        return Method.FALLBACK
    if count == 2:
        return Method.LINEAR
    if count <= 4:
        return Method.POLYNOMIAL
    return Method.SPLINE


# =============================================================================
# Estimators
# =============================================================================


def _fallback_fit(samples: Sequence[CalibrationSample]) -> Curve:
    return fallback_percentage


def _fallback_estimate(samples: Sequence[CalibrationSample], voltage: float) -> float:
    return fallback_percentage(voltage)


def linear_fit(samples: Sequence[CalibrationSample]) -> Curve:
    """Ordinary least-squares line through the samples.

    When every sample has the same voltage the denominator vanishes; the
    slope is then 0 and the line sits at the mean percentage.
    """
    n = len(samples)
    sum_x = sum(s.voltage for s in samples)
    sum_y = sum(float(s.percentage) for s in samples)
    sum_xy = sum(s.voltage * s.percentage for s in samples)
    sum_x2 = sum(s.voltage * s.voltage for s in samples)

    numerator = n * sum_xy - sum_x * sum_y
    denominator = n * sum_x2 - sum_x * sum_x

    slope = numerator / denominator if denominator != 0 else 0.0
    intercept = (sum_y - slope * sum_x) / n

    return lambda voltage: slope * voltage + intercept


def linear_estimate(samples: Sequence[CalibrationSample], voltage: float) -> float:
    return linear_fit(samples)(voltage)


def _check_spacing(x: np.ndarray) -> None:
    """Reject voltage sets with repeated or nearly repeated values."""
    n = len(x)
    xs = np.sort(x)
    span = xs[-1] - xs[0]
    min_gap = float(np.min(np.diff(xs))) if n > 1 else 0.0

    if span <= 0 or min_gap < MIN_RELATIVE_SPACING * span:
        raise FitSingularityError(
            f"polynomial fit of degree {n - 1} needs {n} distinct voltages "
            f"(closest pair {min_gap:.3g}V apart)"
        )


def polynomial_fit(samples: Sequence[CalibrationSample]) -> Polynomial:
    """Least-squares polynomial of degree n-1 through the samples.

    The fit runs in numpy's scaled domain, so its conditioning depends on
    the spacing of the voltages and not on their magnitude.

    Raises:
        FitSingularityError: repeated voltages, or a rank deficient fit
    """
    n = len(samples)
    x = np.array([s.voltage for s in samples], dtype=float)
    y = np.array([s.percentage for s in samples], dtype=float)

    _check_spacing(x)

    poly, (_, rank, _, _) = Polynomial.fit(x, y, n - 1, full=True)

    if rank < n:
        raise FitSingularityError(
            f"polynomial fit of degree {n - 1} produced rank {rank} "
            f"for {n} samples"
        )
    return poly


def polynomial_coefficients(samples: Sequence[CalibrationSample]) -> list[float]:
    """Fitted coefficients in raw voltage terms, lowest power first."""
    return [float(c) for c in polynomial_fit(samples).convert().coef]


def polynomial_estimate(samples: Sequence[CalibrationSample], voltage: float) -> float:
    return float(polynomial_fit(samples)(voltage))


def dedupe_last_wins(samples: Iterable[CalibrationSample]) -> list[CalibrationSample]:
    """Keep one sample per voltage, the last one seen, sorted by voltage.

    Later samples overwrite earlier ones for the same voltage key.
    """
    by_voltage: dict[float, CalibrationSample] = {}
    for sample in samples:
        by_voltage[sample.voltage] = sample
    return [by_voltage[v] for v in sorted(by_voltage)]


class NaturalSpline:
    """Natural cubic spline through voltage-unique knots.

    Outside the knot range the curve continues as a straight line with the
    slope the spline has at the nearest end knot.
    """

    def __init__(self, knots: Sequence[CalibrationSample]):
        if not knots:
            raise ValueError("spline needs at least one knot")
        self.x = np.array([k.voltage for k in knots], dtype=float)
        self.y = np.array([k.percentage for k in knots], dtype=float)
        self._spline = (
            CubicSpline(self.x, self.y, bc_type="natural") if len(knots) >= 2 else None
        )

    def slope_at(self, voltage: float) -> float:
        if self._spline is None:
            return 0.0
        return float(self._spline(voltage, 1))

    def __call__(self, voltage: float) -> float:
        if self._spline is None:
            return float(self.y[0])

        lo, hi = self.x[0], self.x[-1]
        if voltage < lo:
            return float(self.y[0]) + self.slope_at(lo) * (voltage - lo)
        if voltage > hi:
            return float(self.y[-1]) + self.slope_at(hi) * (voltage - hi)
        return float(self._spline(voltage))


def spline_fit(samples: Sequence[CalibrationSample]) -> Curve:
    return NaturalSpline(dedupe_last_wins(samples))


def spline_estimate(samples: Sequence[CalibrationSample], voltage: float) -> float:
    """Natural cubic spline over de-duplicated, voltage-sorted samples."""
    return spline_fit(samples)(voltage)


ESTIMATORS: dict[Method, Callable[[Sequence[CalibrationSample], float], float]] = {
    Method.FALLBACK: _fallback_estimate,
    Method.LINEAR: linear_estimate,
    Method.POLYNOMIAL: polynomial_estimate,
    Method.SPLINE: spline_estimate,
}

FITTERS: dict[Method, Callable[[Sequence[CalibrationSample]], Curve]] = {
    Method.FALLBACK: _fallback_fit,
    Method.LINEAR: linear_fit,
    Method.POLYNOMIAL: polynomial_fit,
    Method.SPLINE: spline_fit,
}


def fit(samples: Sequence[CalibrationSample]) -> tuple[Method, Curve]:
    """Select the method for samples and fit it once.

    Returns:
        (method used, callable mapping voltage to a raw estimate)
    """
    method = select_method(len(samples))
    return method, FITTERS[method](samples)


# =============================================================================
# Clamp and entry points
# =============================================================================


def clamp_percentage(raw: float) -> int:
    """Bound a raw estimate to [0, 100] and round half up."""
    bounded = min(float(MAX_PERCENTAGE), max(float(MIN_PERCENTAGE), raw))
    return int(math.floor(bounded + 0.5))


def estimate_raw(
    samples: Sequence[CalibrationSample],
    voltage: float,
) -> tuple[Method, float]:
    """Run the selected estimator without clamping.

    Returns:
        (method used, raw estimate)
    """
    method = select_method(len(samples))
    return method, ESTIMATORS[method](samples, voltage)


def estimate(samples: Sequence[CalibrationSample], voltage: float) -> int:
    """Calibrated percentage for voltage from an already-loaded sample set."""
    method, raw = estimate_raw(samples, voltage)
    result = clamp_percentage(raw)
    log.debug(
        f"Calibrated {voltage:.3f}V with {method.value} over "
        f"{len(samples)} samples: raw={raw:.3f} -> {result}%"
    )
    return result


def calibrate_percentage(source: SampleSource, voltage: float) -> int:
    """
    Read all samples from source and estimate the percentage for voltage.

    Args:
        source: Provider of calibration samples, read once per call
        voltage: Battery voltage to convert

    Returns:
        Percentage in [0, 100]

    Raises:
        StoreReadError, StoreScanError: propagated from the source
        FitSingularityError: for a degenerate 3-4 sample polynomial fit
    """
    return estimate(source.read_samples(), voltage)


class CalibrationEngine:
    """Binds a sample source for repeated calibrations."""

    def __init__(self, source: SampleSource):
        self.source = source

    def calibrate(self, voltage: float) -> int:
        return calibrate_percentage(self.source, voltage)

    def current_method(self) -> Method:
        return select_method(len(self.source.read_samples()))

    def curve(self, voltages: Sequence[float]) -> tuple[Method, list[int]]:
        """Evaluate many voltages against one read and one fit of the samples."""
        method, estimator = fit(self.source.read_samples())
        return method, [clamp_percentage(float(estimator(v))) for v in voltages]
