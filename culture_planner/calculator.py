"""Turn experiment inputs into a dilution recipe and harvest prediction."""
from __future__ import annotations

import math
import re
from dataclasses import dataclass
from datetime import datetime, timedelta
from typing import Any, Iterable, Mapping, Optional

from .dilution import solve_dilution
from .growth import carrying_capacity, time_to_reach_od
from .models import CALCULATION_MODES, MODE_TOTAL_VOLUME, CalculationResult

CAPACITY_ERROR = "Target OD > Capacity ({capacity:.1f})."

# Same prefix rule as JavaScript's parseFloat: "20 min" -> 20, "abc" -> NaN.
_NUMBER_PREFIX = re.compile(r"^\s*[+-]?(?:\d+\.?\d*|\.\d+)(?:[eE][+-]?\d+)?")

_CAMEL_CASE = {
    "inoculum_od": "inoculumOD",
    "target_volume": "targetVolume",
    "target_start_od": "targetStartOD",
    "target_harvest_od": "targetHarvestOD",
    "doubling_time": "doublingTime",
    "lag_time": "lagTime",
    "calculation_mode": "calculationMode",
}


def parse_number(value: Any) -> float:
    """Parse user input into a float, returning NaN instead of raising."""
    if value is None or isinstance(value, bool):
        return math.nan
    if isinstance(value, (int, float)):
        return float(value)
    match = _NUMBER_PREFIX.match(str(value))
    if not match:
        return math.nan
    return float(match.group(0))


def _read(state: Any, name: str) -> Any:
    if isinstance(state, Mapping):
        if name in state:
            return state[name]
        return state.get(_CAMEL_CASE[name])
    return getattr(state, name, None)


@dataclass(frozen=True)
class ParsedInputs:
    """Numeric view of an experiment; NaN marks a field that did not parse."""

    inoculum_od: float
    target_volume: float
    start_od: float
    harvest_od: float
    doubling_time: float
    lag_time: float
    mode: str

    @property
    def is_complete(self) -> bool:
        values = (self.inoculum_od, self.target_volume, self.start_od, self.harvest_od, self.doubling_time)
        if not all(math.isfinite(value) for value in values):
            return False
        return self.inoculum_od > 0 and self.target_volume > 0 and self.start_od > 0 and self.doubling_time > 0


def parse_inputs(state: Any) -> ParsedInputs:
    """Read an Experiment, CalculatorState or mapping into :class:`ParsedInputs`."""
    lag_time = parse_number(_read(state, "lag_time"))
    mode = _read(state, "calculation_mode")
    return ParsedInputs(
        inoculum_od=parse_number(_read(state, "inoculum_od")),
        target_volume=parse_number(_read(state, "target_volume")),
        start_od=parse_number(_read(state, "target_start_od")),
        harvest_od=parse_number(_read(state, "target_harvest_od")),
        doubling_time=parse_number(_read(state, "doubling_time")),
        lag_time=lag_time if math.isfinite(lag_time) else 0.0,
        mode=mode if mode in CALCULATION_MODES else MODE_TOTAL_VOLUME,
    )


def _first_error(candidates: Iterable[Optional[str]]) -> Optional[str]:
    for message in candidates:
        if message:
            return message
    return None


def calculate_results(
    state: Any,
    tracking_start_time: Optional[datetime],
    now: datetime,
) -> CalculationResult:
    """Compute the recipe and harvest prediction for ``state``.

    Unparsable or non-positive inputs produce an invalid, zeroed result with
    no message. Otherwise dilution and growth are both evaluated; when both
    fail, the capacity message is reported over the dilution one. The harvest
    date is anchored to ``tracking_start_time`` while tracking, else ``now``,
    and is ``None`` when it would fall past ``datetime.max``.
    """
    inputs = parse_inputs(state)
    capacity = carrying_capacity(inputs.harvest_od)

    if not inputs.is_complete:
        return CalculationResult(
            inoculum_volume=0.0,
            media_volume=0.0,
            minutes_to_harvest=0.0,
            harvest_date=None,
            is_valid=False,
            carrying_capacity=capacity,
        )

    dilution = solve_dilution(inputs.mode, inputs.inoculum_od, inputs.target_volume, inputs.start_od)

    capacity_error = None
    minutes_to_harvest = 0.0
    if inputs.harvest_od >= capacity:
        capacity_error = CAPACITY_ERROR.format(capacity=capacity)
    elif inputs.harvest_od > inputs.start_od:
        predicted = time_to_reach_od(
            inputs.start_od, inputs.harvest_od, inputs.doubling_time, inputs.lag_time, capacity
        )
        if predicted is not None:
            minutes_to_harvest = predicted

    error = _first_error((capacity_error, dilution.error))
    baseline = tracking_start_time or now
    try:
        harvest_date = baseline + timedelta(minutes=minutes_to_harvest)
    except OverflowError:
        # past datetime.max; the prediction stays in minutes only
        harvest_date = None
    return CalculationResult(
        inoculum_volume=dilution.inoculum_volume,
        media_volume=dilution.media_volume,
        minutes_to_harvest=minutes_to_harvest,
        harvest_date=harvest_date,
        is_valid=error is None,
        carrying_capacity=capacity,
        error=error,
    )
