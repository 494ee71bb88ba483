"""Tests for input parsing and the experiment calculator."""

import math
from datetime import timedelta

import pytest

from culture_planner import config
from culture_planner.calculator import calculate_results, parse_inputs, parse_number
from culture_planner.dilution import INOCULUM_EXCEEDS_TARGET, INOCULUM_OD_TOO_LOW
from culture_planner.models import MODE_FIXED_MEDIA, MODE_TOTAL_VOLUME, CalculatorState


def _minutes_scenario_a():
    return 20 + (-(20 / math.log(2))) * math.log(((4 / 0.8) - 1) / ((4 / 0.1) - 1))


@pytest.mark.parametrize(
    "raw, expected",
    [("2.5", 2.5), (" 20 min", 20.0), (".5", 0.5), ("1e2", 100.0), ("-3", -3.0), (7, 7.0), (0.25, 0.25)],
)
def test_parse_number(raw, expected):
    assert parse_number(raw) == expected


@pytest.mark.parametrize("raw", ["", "abc", None, "Infinity", True, "."])
def test_parse_number_returns_nan(raw):
    assert math.isnan(parse_number(raw))


def test_parse_inputs_defaults_lag_and_mode():
    inputs = parse_inputs({"lag_time": "", "calculation_mode": "unknown"})
    assert inputs.lag_time == 0.0
    assert inputs.mode == MODE_TOTAL_VOLUME
    assert not inputs.is_complete


def test_parse_inputs_accepts_camel_case_mapping():
    inputs = parse_inputs(
        {
            "inoculumOD": "2.5",
            "targetVolume": 500,
            "targetStartOD": "0.1",
            "targetHarvestOD": "0.8",
            "doublingTime": "20",
            "lagTime": "20",
            "calculationMode": "fixed_media",
        }
    )
    assert inputs.is_complete
    assert inputs.mode == MODE_FIXED_MEDIA
    assert inputs.target_volume == 500.0


def test_scenario_a_total_volume(scenario_a, now):
    result = calculate_results(scenario_a, None, now)
    assert result.is_valid
    assert result.error is None
    assert result.inoculum_volume == pytest.approx(20.0)
    assert result.media_volume == pytest.approx(480.0)
    assert result.carrying_capacity == 4.0
    assert result.minutes_to_harvest == pytest.approx(_minutes_scenario_a())
    assert 0 < result.minutes_to_harvest < 180
    assert result.harvest_date == now + timedelta(minutes=result.minutes_to_harvest)


def test_harvest_date_anchored_to_tracking_start(scenario_a, now):
    started = now - timedelta(hours=1)
    result = calculate_results(scenario_a, started, now)
    later = calculate_results(scenario_a, started, now + timedelta(minutes=10))
    assert result.harvest_date == started + timedelta(minutes=result.minutes_to_harvest)
    assert later.harvest_date == result.harvest_date


def test_harvest_date_follows_clock_when_not_tracking(scenario_a, now):
    first = calculate_results(scenario_a, None, now)
    second = calculate_results(scenario_a, None, now + timedelta(seconds=1))
    assert second.harvest_date - first.harvest_date == timedelta(seconds=1)


def test_scenario_b_fixed_media_inoculum_too_dilute(now):
    state = CalculatorState("0.05", "500", "0.1", "0.8", "20", "20", MODE_FIXED_MEDIA)
    result = calculate_results(state, None, now)
    assert not result.is_valid
    assert result.error == INOCULUM_OD_TOO_LOW
    assert result.error.startswith("Inoculum OD must be greater than Start OD")


def test_scenario_c_large_harvest_targets_stay_below_capacity(now):
    for harvest, capacity in (("5.0", 6.0), ("10", 12.0)):
        state = CalculatorState("20", "500", "0.1", harvest, "20", "20", MODE_TOTAL_VOLUME)
        result = calculate_results(state, None, now)
        assert result.is_valid
        assert result.carrying_capacity == pytest.approx(capacity)
        assert result.minutes_to_harvest > 0


def test_capacity_error_when_multiplier_allows_it(monkeypatch, now):
    monkeypatch.setattr(config, "CAPACITY_MULTIPLIER", 1.0)
    state = CalculatorState("20", "500", "0.1", "5", "20", "20", MODE_TOTAL_VOLUME)
    result = calculate_results(state, None, now)
    assert not result.is_valid
    assert result.error == "Target OD > Capacity (5.0)."
    assert result.minutes_to_harvest == 0.0


def test_capacity_error_takes_precedence_over_dilution_error(monkeypatch, now):
    monkeypatch.setattr(config, "CAPACITY_MULTIPLIER", 1.0)
    state = CalculatorState("0.05", "500", "0.1", "4", "20", "20", MODE_FIXED_MEDIA)
    result = calculate_results(state, None, now)
    assert result.error == "Target OD > Capacity (4.0)."


def test_dilution_error_still_predicts_harvest(now):
    state = CalculatorState("0.1", "100", "0.2", "0.8", "20", "0", MODE_TOTAL_VOLUME)
    result = calculate_results(state, None, now)
    assert result.error == INOCULUM_EXCEEDS_TARGET
    assert not result.is_valid
    assert result.minutes_to_harvest > 0


@pytest.mark.parametrize(
    "field, value",
    [
        ("inoculum_od", ""),
        ("target_volume", "-5"),
        ("target_start_od", "0"),
        ("target_harvest_od", "abc"),
        ("doubling_time", "0"),
        ("inoculum_od", math.inf),
    ],
)
def test_awaiting_input_is_zeroed_without_message(scenario_a, now, field, value):
    setattr(scenario_a, field, value)
    result = calculate_results(scenario_a, None, now)
    assert not result.is_valid
    assert result.error is None
    assert result.inoculum_volume == 0.0
    assert result.media_volume == 0.0
    assert result.minutes_to_harvest == 0.0
    assert result.harvest_date is None


def test_no_growth_needed_is_not_an_error(scenario_a, now):
    scenario_a.target_harvest_od = "0.05"
    result = calculate_results(scenario_a, None, now)
    assert result.is_valid
    assert result.minutes_to_harvest == 0.0
    assert result.harvest_date == now


def test_result_serialises_to_plain_data(scenario_a, now):
    data = calculate_results(scenario_a, None, now).to_dict()
    assert data["is_valid"] is True
    assert isinstance(data["harvest_date"], str)
    assert data["error"] is None


def test_vanishing_start_density_does_not_raise(scenario_a, now):
    scenario_a.target_start_od = "1e-320"
    result = calculate_results(scenario_a, None, now)
    assert result.error is None
    assert result.minutes_to_harvest == 0.0
    assert result.harvest_date == now


def test_harvest_date_past_calendar_limit(scenario_a, now):
    scenario_a.lag_time = "1e12"
    result = calculate_results(scenario_a, None, now)
    assert result.is_valid
    assert result.minutes_to_harvest > 1e12
    assert result.harvest_date is None
    assert result.to_dict()["harvest_date"] is None
