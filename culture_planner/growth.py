"""Logistic growth with an initial lag phase.

All times are in minutes and densities are OD600 values. The functions are
pure and never raise for numeric edge cases; impossible inversions return
``None`` or a fallback estimate instead.
"""
from __future__ import annotations

import math
from typing import Optional

import numpy as np
from numpy.typing import ArrayLike, NDArray

from . import config

LN2 = math.log(2)


def growth_rate(doubling_time: float) -> float:
    """Specific growth rate (1/min) for a doubling time; 0 when undefined."""
    if not doubling_time > 0:
        return 0.0
    return LN2 / doubling_time


def carrying_capacity(target_harvest_od: float) -> float:
    """Asymptotic OD allowed by the model, always above the harvest target."""
    harvest_od = target_harvest_od if math.isfinite(target_harvest_od) else 0.0
    return max(config.DEFAULT_CARRYING_CAPACITY, harvest_od * config.CAPACITY_MULTIPLIER)


def current_od(
    elapsed_minutes: float,
    start_od: float,
    doubling_time: float,
    lag_time: float,
    capacity: float,
) -> float:
    """OD reached after ``elapsed_minutes``; flat during lag, capped at ``capacity``."""
    if elapsed_minutes <= lag_time:
        return start_od
    mu = growth_rate(doubling_time)
    growth_minutes = elapsed_minutes - lag_time
    od = (capacity * start_od) / (start_od + (capacity - start_od) * math.exp(-mu * growth_minutes))
    return min(od, capacity)


def od_curve(
    times: ArrayLike,
    start_od: float,
    doubling_time: float,
    lag_time: float,
    capacity: float,
) -> NDArray[np.float64]:
    """Vectorised :func:`current_od` over an array of sample times."""
    t = np.asarray(times, dtype=float)
    mu = growth_rate(doubling_time)
    growth_minutes = np.clip(t - lag_time, 0.0, None)
    od = (capacity * start_od) / (start_od + (capacity - start_od) * np.exp(-mu * growth_minutes))
    od = np.where(t <= lag_time, start_od, od)
    return np.minimum(od, capacity)


def time_to_reach_od(
    start_od: float,
    target_od: float,
    doubling_time: float,
    lag_time: float,
    capacity: float,
) -> Optional[float]:
    """Minutes from inoculation until ``target_od`` is reached.

    Returns ``None`` when no growth phase leads to the target: the target is
    not above the start density, is not below the carrying capacity, or the
    logarithm argument is non-positive or not finite (e.g. a start density so
    small that ``capacity / start_od`` overflows).
    """
    if not (doubling_time > 0 and start_od > 0):
        return None
    if target_od <= start_od or target_od >= capacity:
        return None
    numerator = capacity / target_od - 1
    denominator = capacity / start_od - 1
    if numerator <= 0 or denominator <= 0:
        return None
    ratio = numerator / denominator
    if not (math.isfinite(ratio) and ratio > 0):
        return None
    mu = growth_rate(doubling_time)
    minutes = lag_time - (1 / mu) * math.log(ratio)
    return minutes if math.isfinite(minutes) else None


def stationary_phase_start(
    start_od: float,
    doubling_time: float,
    lag_time: float,
    capacity: float,
    harvest_time: float = 0.0,
) -> float:
    """Minutes until the culture reaches the stationary fraction of ``capacity``.

    Only used to annotate charts, so a failed inversion (e.g. ``start_od``
    already at capacity) falls back to ``harvest_time * 1.2``.
    """
    fallback = harvest_time * 1.2 if harvest_time > 0 else 0.0
    try:
        mu = growth_rate(doubling_time)
        term_stationary = 1 / config.STATIONARY_FRACTION - 1
        term_start = capacity / start_od - 1
        growth_minutes = -(1 / mu) * math.log(term_stationary / term_start)
    except (ValueError, ZeroDivisionError):
        return fallback
    if not math.isfinite(growth_minutes):
        return fallback
    return lag_time + max(0.0, growth_minutes)
