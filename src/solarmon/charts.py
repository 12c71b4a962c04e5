"""Matplotlib-based SVG charts for the calibration curve and battery history."""

import io
from dataclasses import dataclass
from datetime import datetime
from pathlib import Path
from typing import Literal, Optional, Sequence

import matplotlib
matplotlib.use('Agg')  # Non-interactive backend for server-side rendering
import matplotlib.pyplot as plt
import matplotlib.dates as mdates
import numpy as np

from .battery import EMPTY_VOLTAGE, FULL_VOLTAGE
from .calibration import (
    CalibrationEngine,
    CalibrationError,
    CalibrationSample,
    Method,
    StaticSampleSource,
    select_method,
)
from .db import DeviceRecord, SqliteSampleSource, get_all_device_history
from .env import get_config
from . import log


ThemeName = Literal["light", "dark"]

CURVE_POINTS = 120
DATA_TIME_FORMAT = "%Y-%m-%d %H:%M:%S"


@dataclass(frozen=True)
class ChartTheme:
    """Color palette for chart rendering (hex without #)."""

    name: str
    background: str
    canvas: str
    text: str
    axis: str
    grid: str
    line: str
    marker: str


CHART_THEMES: dict[ThemeName, ChartTheme] = {
    "light": ChartTheme(
        name="light",
        background="faf8f5",
        canvas="ffffff",
        text="1a1915",
        axis="8a857a",
        grid="e8e4dc",
        line="b45309",
        marker="1d4ed8",
    ),
    "dark": ChartTheme(
        name="dark",
        background="0f1114",
        canvas="161a1e",
        text="f0efe8",
        axis="706d62",
        grid="252a30",
        line="f59e0b",
        marker="60a5fa",
    ),
}


@dataclass
class CalibrationCurve:
    """Estimator output sampled across a voltage range."""

    method: Method
    voltages: list[float]
    percentages: list[int]

    @property
    def is_empty(self) -> bool:
        return not self.voltages


def curve_range(samples: Sequence[CalibrationSample]) -> tuple[float, float]:
    """Voltage span to plot: sample range plus 5% each side, or the anchors."""
    voltages = [s.voltage for s in samples]
    if len(set(voltages)) < 2:
        return EMPTY_VOLTAGE, FULL_VOLTAGE
    lo, hi = min(voltages), max(voltages)
    pad = (hi - lo) * 0.05
    return lo - pad, hi + pad


def calibration_curve(
    samples: Sequence[CalibrationSample],
    points: int = CURVE_POINTS,
) -> CalibrationCurve:
    """Evaluate the estimator chosen for samples over its plotting range.

    The estimator is fitted once and reused for every point. A degenerate
    fit gives an empty curve rather than an error, so the samples can still
    be drawn.
    """
    method = select_method(len(samples))
    lo, hi = curve_range(samples)
    voltages = [float(v) for v in np.linspace(lo, hi, points)]
    engine = CalibrationEngine(StaticSampleSource(samples))

    try:
        method, percentages = engine.curve(voltages)
    except CalibrationError as e:
        log.warn(f"Cannot draw {method.value} calibration curve: {e}")
        return CalibrationCurve(method=method, voltages=[], percentages=[])

    return CalibrationCurve(method=method, voltages=voltages, percentages=percentages)


def _new_figure(theme: ChartTheme, width: int, height: int):
    dpi = 100
    fig, ax = plt.subplots(figsize=(width / dpi, height / dpi), dpi=dpi)

    fig.patch.set_facecolor(f"#{theme.background}")
    ax.set_facecolor(f"#{theme.canvas}")
    ax.spines['top'].set_visible(False)
    ax.spines['right'].set_visible(False)
    ax.spines['left'].set_color(f"#{theme.grid}")
    ax.spines['bottom'].set_color(f"#{theme.grid}")
    ax.tick_params(colors=f"#{theme.axis}", labelsize=10)
    ax.xaxis.label.set_color(f"#{theme.text}")
    ax.yaxis.label.set_color(f"#{theme.text}")
    ax.grid(True, linestyle='-', alpha=0.5, color=f"#{theme.grid}")
    ax.set_axisbelow(True)
    return fig, ax


def _to_svg(fig) -> str:
    try:
        plt.tight_layout(pad=0.5)
        buffer = io.StringIO()
        fig.savefig(buffer, format='svg', bbox_inches='tight', pad_inches=0.1)
        return buffer.getvalue()
    finally:
        plt.close(fig)


def _no_data(ax, theme: ChartTheme, text: str = "No data available") -> None:
    ax.text(
        0.5, 0.5, text,
        transform=ax.transAxes,
        ha='center', va='center',
        fontsize=12,
        color=f"#{theme.axis}"
    )


def render_calibration_svg(
    samples: Sequence[CalibrationSample],
    theme: ChartTheme,
    width: int = 800,
    height: int = 320,
) -> str:
    """Render stored samples and the fitted curve as SVG."""
    curve = calibration_curve(samples)
    fig, ax = _new_figure(theme, width, height)

    ax.set_xlabel("Battery voltage (V)")
    ax.set_ylabel("State of charge (%)")
    ax.set_ylim(-5, 105)

    if not curve.is_empty:
        ax.plot(curve.voltages, curve.percentages, color=f"#{theme.line}", linewidth=2)
    if samples:
        ax.scatter(
            [s.voltage for s in samples],
            [s.percentage for s in samples],
            color=f"#{theme.marker}",
            s=28,
            zorder=3,
        )
    if curve.is_empty and not samples:
        _no_data(ax, theme)

    ax.set_title(
        f"{curve.method.value} fit over {len(samples)} samples",
        color=f"#{theme.text}",
        fontsize=11,
    )
    return _to_svg(fig)


def _history_points(records: Sequence[DeviceRecord]) -> list[tuple[datetime, int]]:
    points = []
    for record in records:
        if record.battery_percentage is None:
            continue
        try:
            ts = datetime.strptime(record.data_time, DATA_TIME_FORMAT)
        except (TypeError, ValueError):
            log.debug(f"Skipping history row with bad time: {record.data_time!r}")
            continue
        points.append((ts, record.battery_percentage))
    return sorted(points)


def render_history_svg(
    records: Sequence[DeviceRecord],
    theme: ChartTheme,
    width: int = 800,
    height: int = 280,
) -> str:
    """Render calibrated battery percentage over time as SVG."""
    points = _history_points(records)
    fig, ax = _new_figure(theme, width, height)
    ax.set_ylim(0, 100)
    ax.set_ylabel("Battery (%)")

    if not points:
        _no_data(ax, theme)
    else:
        times = [p[0] for p in points]
        values = [p[1] for p in points]
        ax.fill_between(times, values, alpha=0.15, color=f"#{theme.line}")
        ax.plot(times, values, color=f"#{theme.line}", linewidth=2)
        ax.xaxis.set_major_formatter(mdates.DateFormatter('%H:%M'))

    return _to_svg(fig)


def render_all_charts(
    db_path: Optional[Path] = None,
    out_dir: Optional[Path] = None,
) -> list[Path]:
    """Write calibration and history charts in both themes.

    Returns:
        Paths of the generated SVG files
    """
    if out_dir is None:
        out_dir = get_config().out_dir
    charts_dir = out_dir / "assets"
    charts_dir.mkdir(parents=True, exist_ok=True)

    samples = SqliteSampleSource(db_path).read_samples()
    records = get_all_device_history(db_path)

    generated: list[Path] = []
    for theme_name, theme in CHART_THEMES.items():
        for name, svg in (
            ("calibration", render_calibration_svg(samples, theme)),
            ("battery_history", render_history_svg(records, theme)),
        ):
            path = charts_dir / f"{name}_{theme_name}.svg"
            path.write_text(svg)
            generated.append(path)
            log.debug(f"Generated chart: {path}")

    log.info(f"Rendered {len(generated)} charts")
    return generated
