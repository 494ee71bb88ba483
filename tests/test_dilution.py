"""Tests for dilution solvers and volume formatting."""

import math

import pytest

from culture_planner.dilution import (
    INOCULUM_EXCEEDS_TARGET,
    INOCULUM_OD_TOO_LOW,
    format_volume,
    solve_dilution,
    solve_fixed_media,
    solve_total_volume,
)
from culture_planner.models import MODE_FIXED_MEDIA, MODE_TOTAL_VOLUME


@pytest.mark.parametrize(
    "inoculum_od, target_volume, start_od",
    [(2.5, 500, 0.1), (1.2, 50, 0.05), (0.9, 10, 0.3), (4.0, 0.2, 0.01)],
)
def test_total_volume_conserves_volume_and_cells(inoculum_od, target_volume, start_od):
    result = solve_total_volume(inoculum_od, target_volume, start_od)
    assert result.is_valid
    assert result.inoculum_volume + result.media_volume == pytest.approx(target_volume)
    assert inoculum_od * result.inoculum_volume == pytest.approx(start_od * target_volume)


@pytest.mark.parametrize(
    "inoculum_od, media_volume, start_od",
    [(2.5, 500, 0.1), (1.2, 50, 0.05), (0.9, 10, 0.3)],
)
def test_fixed_media_conserves_cells(inoculum_od, media_volume, start_od):
    result = solve_fixed_media(inoculum_od, media_volume, start_od)
    assert result.is_valid
    assert result.media_volume == media_volume
    assert inoculum_od * result.inoculum_volume == pytest.approx(
        start_od * (result.media_volume + result.inoculum_volume)
    )


def test_total_volume_rejects_inoculum_larger_than_target():
    result = solve_total_volume(0.1, 100, 0.2)
    assert result.error == INOCULUM_EXCEEDS_TARGET
    assert result.inoculum_volume == pytest.approx(200)
    assert not result.is_valid


@pytest.mark.parametrize("inoculum_od", [0.05, 0.1])
def test_fixed_media_rejects_dilute_inoculum(inoculum_od):
    result = solve_fixed_media(inoculum_od, 100, 0.1)
    assert result.error == INOCULUM_OD_TOO_LOW
    assert result.inoculum_volume == 0.0
    assert result.media_volume == 0.0


@pytest.mark.parametrize("bad", [0.0, -1.0, math.nan, math.inf])
def test_unusable_inputs_give_zeroed_result_without_error(bad):
    for result in (solve_total_volume(bad, 100, 0.1), solve_fixed_media(2.0, bad, 0.1)):
        assert result.inoculum_volume == 0.0
        assert result.media_volume == 0.0
        assert result.error is None


def test_solve_dilution_dispatch():
    assert solve_dilution(MODE_TOTAL_VOLUME, 2.5, 500, 0.1).inoculum_volume == pytest.approx(20)
    assert solve_dilution(MODE_FIXED_MEDIA, 2.5, 480, 0.1).inoculum_volume == pytest.approx(20)
    with pytest.raises(ValueError):
        solve_dilution("serial", 2.5, 500, 0.1)


@pytest.mark.parametrize(
    "volume, expected",
    [
        (0.5, ("500", "µL")),
        (0.0123, ("12.3", "µL")),
        (20.0, ("20", "mL")),
        (480.456, ("480.46", "mL")),
        (1234.5, ("1,234.5", "mL")),
    ],
)
def test_format_volume(volume, expected):
    assert format_volume(volume) == expected
