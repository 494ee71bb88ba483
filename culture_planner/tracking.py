"""Live OD and progress projection for experiments being tracked."""
from __future__ import annotations

from datetime import datetime
from typing import Any, Optional

from .calculator import parse_inputs
from .growth import current_od
from .models import CalculationResult, TrackingStatus


def format_duration(minutes: float) -> str:
    """Render a duration as ``HH:MM:SS``; hours keep counting past 24."""
    total_seconds = int(max(0.0, minutes) * 60)
    hours, remainder = divmod(total_seconds, 3600)
    mins, seconds = divmod(remainder, 60)
    return f"{hours:02d}:{mins:02d}:{seconds:02d}"


def calculate_tracking(
    state: Any,
    tracking_start_time: Optional[datetime],
    now: datetime,
    results: CalculationResult,
) -> Optional[TrackingStatus]:
    """Project the current OD and completion of a tracked experiment.

    Returns ``None`` when tracking has not started or ``results`` is invalid.
    """
    if tracking_start_time is None or not results.is_valid:
        return None

    elapsed_minutes = (now - tracking_start_time).total_seconds() / 60.0
    inputs = parse_inputs(state)
    capacity = results.carrying_capacity
    od = current_od(max(elapsed_minutes, 0.0), inputs.start_od, inputs.doubling_time, inputs.lag_time, capacity)

    total = results.minutes_to_harvest
    if total > 0:
        completion = min(100.0, max(0.0, elapsed_minutes / total * 100.0))
    else:
        completion = 0.0

    return TrackingStatus(
        elapsed_minutes=elapsed_minutes,
        current_od=min(od, capacity),
        formatted_time=format_duration(elapsed_minutes),
        completion_percentage=completion,
    )
