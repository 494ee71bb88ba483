from datetime import datetime

import pytest

from culture_planner import storage
from culture_planner.models import MODE_TOTAL_VOLUME, CalculatorState


@pytest.fixture(autouse=True)
def clean_db():
    storage.reset_db()
    yield


@pytest.fixture
def now():
    return datetime(2025, 3, 14, 9, 0, 0)


@pytest.fixture
def scenario_a():
    return CalculatorState(
        inoculum_od="2.5",
        target_volume="500",
        target_start_od="0.1",
        target_harvest_od="0.8",
        doubling_time="20",
        lag_time="20",
        calculation_mode=MODE_TOTAL_VOLUME,
    )
