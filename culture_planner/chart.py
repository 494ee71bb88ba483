"""Growth-curve series generation and plotting."""
from __future__ import annotations

import logging
from pathlib import Path
from typing import Any, Dict, Iterator, Optional, Tuple

import matplotlib
matplotlib.use("Agg")
import matplotlib.pyplot as plt  # noqa: E402
import numpy as np  # noqa: E402
import pandas as pd  # noqa: E402

from . import config  # noqa: E402
from .calculator import parse_inputs  # noqa: E402
from .growth import current_od, od_curve, stationary_phase_start  # noqa: E402
from .models import CalculationResult, ChartSeries, GrowthDataPoint, TrackingStatus  # noqa: E402

logger = logging.getLogger("culture_planner.chart")


def chart_max_time(harvest_time: float, stationary_start: float, tracking: Optional[TrackingStatus] = None) -> float:
    """Chart span in minutes: 2 h to 48 h, stretched to keep the live marker visible."""
    max_time = max(harvest_time * 1.5, stationary_start * 1.1)
    max_time = max(max_time, config.CHART_MIN_MINUTES)
    max_time = min(max_time, config.CHART_MAX_MINUTES)
    if tracking is not None and tracking.elapsed_minutes > max_time:
        max_time = tracking.elapsed_minutes * 1.1
    return max_time


def sample_curve(
    start_od: float,
    doubling_time: float,
    lag_time: float,
    capacity: float,
    max_time: float,
    points: int = config.CHART_POINTS,
) -> Iterator[GrowthDataPoint]:
    """Yield ``points + 1`` evenly spaced samples from 0 to ``max_time`` inclusive."""
    for t in np.linspace(0.0, max_time, points + 1):
        time = float(t)
        yield GrowthDataPoint(time=time, od=current_od(time, start_od, doubling_time, lag_time, capacity))


def generate_chart_data(
    state: Any,
    results: CalculationResult,
    tracking: Optional[TrackingStatus] = None,
    points: int = config.CHART_POINTS,
) -> ChartSeries:
    """Build the plotted growth series for an experiment; empty when invalid."""
    if not results.is_valid:
        return ChartSeries()

    inputs = parse_inputs(state)
    capacity = results.carrying_capacity
    harvest_time = results.minutes_to_harvest
    stationary_start = stationary_phase_start(
        inputs.start_od, inputs.doubling_time, inputs.lag_time, capacity, harvest_time
    )
    max_time = chart_max_time(harvest_time, stationary_start, tracking)
    samples = sample_curve(inputs.start_od, inputs.doubling_time, inputs.lag_time, capacity, max_time, points)
    return ChartSeries(points=list(samples), stationary_start=stationary_start, max_time=max_time)


def phase_bounds(state: Any, series: ChartSeries) -> Dict[str, Tuple[float, float]]:
    """Lag, exponential and stationary phase spans (minutes) clipped to the chart."""
    if not series.points:
        return {}
    lag_time = max(0.0, parse_inputs(state).lag_time)
    lag_end = min(lag_time, series.max_time)
    stationary = min(max(series.stationary_start, lag_end), series.max_time)
    return {
        "lag": (0.0, lag_end),
        "exponential": (lag_end, stationary),
        "stationary": (stationary, series.max_time),
    }


def series_to_dataframe(series: ChartSeries) -> pd.DataFrame:
    """Convert a chart series to a DataFrame with minute and hour time columns."""
    if not series.points:
        return pd.DataFrame(columns=["time_min", "time_h", "od"])
    df = pd.DataFrame([{"time_min": p.time, "od": p.od} for p in series.points])
    df.insert(1, "time_h", df["time_min"] / 60.0)
    return df


def plot_growth_curve(
    state: Any,
    results: CalculationResult,
    series: ChartSeries,
    output_path: Path,
    tracking: Optional[TrackingStatus] = None,
    title: str = "Growth Trajectory",
) -> Path:
    """Plot the projected curve with phases, harvest target and live marker."""
    if not series.points:
        raise ValueError("No data available for plotting.")
    output_path.parent.mkdir(parents=True, exist_ok=True)

    inputs = parse_inputs(state)
    dense_t = np.linspace(0.0, series.max_time, 400)
    dense_od = od_curve(dense_t, inputs.start_od, inputs.doubling_time, inputs.lag_time, results.carrying_capacity)

    plt.figure(figsize=(8, 4))
    for (name, (start, end)), alpha in zip(phase_bounds(state, series).items(), (0.03, 0.08, 0.05)):
        if end > start:
            plt.axvspan(start / 60.0, end / 60.0, color="grey", alpha=alpha, label=f"{name} phase")
    plt.plot(dense_t / 60.0, dense_od, color="black", label="projected OD600")
    plt.axhline(inputs.harvest_od, linestyle="--", color="tab:green", label=f"target OD {inputs.harvest_od:.2f}")
    if results.minutes_to_harvest > 0 and results.harvest_date is not None:
        plt.plot(results.minutes_to_harvest / 60.0, inputs.harvest_od, marker="o", color="tab:green")
    if tracking is not None:
        plt.plot(tracking.elapsed_minutes / 60.0, tracking.current_od, marker="o", color="tab:red", label="now")
    plt.title(title)
    plt.xlabel("Time (h)")
    plt.ylabel("OD600")
    plt.legend()
    plt.tight_layout()
    plt.savefig(output_path)
    plt.close()
    logger.info("Wrote growth chart to %s", output_path)
    return output_path
