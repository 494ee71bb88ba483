"""Tests for timeline layout, coordinate mapping and drag scheduling."""

from datetime import datetime, timedelta

import pytest

from culture_planner import config
from culture_planner.models import (
    KIND_EXPERIMENT,
    KIND_TIMER,
    TIMER_IDLE,
    TIMER_PAUSED,
    TIMER_RUNNING,
    Experiment,
    StandaloneTimer,
    TimelineItem,
)
from culture_planner.timeline import (
    DragSession,
    ScheduleTimer,
    UnscheduleTimer,
    assign_rows,
    collect_items,
    item_display_text,
    layout_timeline,
    position,
    snap_to_grid,
    time_from_x,
    timeline_height,
    view_window,
)


def make_item(item_id, start, duration, scheduled=False):
    return TimelineItem(
        id=item_id,
        kind=KIND_TIMER,
        label=item_id,
        start=start,
        end=start + timedelta(minutes=duration),
        duration_minutes=duration,
        progress=0.0,
        is_draggable=True,
        is_scheduled=scheduled,
    )


def make_timer(timer_id, status, start_time=None, duration=30.0, remaining=None):
    return StandaloneTimer(
        id=timer_id,
        label=timer_id,
        duration_minutes=duration,
        status=status,
        start_time=start_time,
        paused_time_remaining=remaining,
    )


def make_experiment(tracking_start_time):
    return Experiment(
        id="exp",
        name="Culture",
        tracking_start_time=tracking_start_time,
        **config.DEFAULT_EXPERIMENT,
    )


def test_snap_to_grid_rounds_half_up():
    assert snap_to_grid(datetime(2025, 3, 14, 12, 0, 29)) == datetime(2025, 3, 14, 12, 0)
    assert snap_to_grid(datetime(2025, 3, 14, 12, 0, 30)) == datetime(2025, 3, 14, 12, 1)
    assert snap_to_grid(datetime(2025, 3, 14, 12, 7, 29), 15) == datetime(2025, 3, 14, 12, 0)
    assert snap_to_grid(datetime(2025, 3, 14, 12, 7, 30), 15) == datetime(2025, 3, 14, 12, 15)


def test_position_and_inverse(now):
    view_start, _ = view_window([], now)
    assert position(now, view_start) == pytest.approx(90)
    assert time_from_x(90, view_start) == now
    assert time_from_x(position(now + timedelta(minutes=17), view_start), view_start) == now + timedelta(minutes=17)


def test_view_window(now):
    assert view_window([], now) == (now - timedelta(minutes=30), now + timedelta(minutes=240))
    late = make_item("late", now + timedelta(minutes=200), 100)
    _, view_end = view_window([late], now)
    assert view_end == now + timedelta(minutes=360)


def test_assign_rows_first_fit(now):
    items = [
        make_item("a", now, 30),
        make_item("b", now + timedelta(minutes=10), 30),
        make_item("c", now + timedelta(minutes=35), 30),
    ]
    placed, total_rows = assign_rows(items)
    rows = {item.id: item.row_index for item in placed}
    assert rows == {"a": 0, "b": 1, "c": 0}
    assert total_rows == config.MIN_ROWS
    assert all(item.row_index is None for item in items)


def test_short_items_reserve_minimum_width(now):
    items = [
        make_item("a", now, 5),
        make_item("b", now + timedelta(minutes=20), 5),
        make_item("c", now + timedelta(minutes=25), 5),
    ]
    placed, _ = assign_rows(items)
    assert [item.row_index for item in placed] == [0, 1, 0]


def test_assign_rows_grows_past_minimum(now):
    items = [make_item(str(i), now, 60) for i in range(8)]
    placed, total_rows = assign_rows(items)
    assert total_rows == 8
    assert sorted(item.row_index for item in placed) == list(range(8))


def test_rows_never_overlap(now):
    items = [make_item(str(i), now + timedelta(minutes=(i * 7) % 50), 3 + (i * 11) % 40) for i in range(20)]
    placed, _ = assign_rows(items)
    for row in {item.row_index for item in placed}:
        in_row = sorted((item for item in placed if item.row_index == row), key=lambda item: item.start)
        for first, second in zip(in_row, in_row[1:]):
            footprint = max(first.duration_minutes, 20) + config.ROW_SPACING_MINUTES
            assert first.start + timedelta(minutes=footprint) <= second.start


def test_collect_items_filters_and_sorts(now):
    timers = [
        make_timer("idle", TIMER_IDLE),
        make_timer("paused", TIMER_PAUSED, remaining=10),
        make_timer("later", TIMER_RUNNING, now + timedelta(minutes=90)),
        make_timer("running", TIMER_RUNNING, now - timedelta(minutes=15)),
    ]
    experiments = [make_experiment(now - timedelta(minutes=10)), make_experiment(None)]
    items = collect_items(timers, experiments, now)
    assert [item.id for item in items] == ["running", "exp", "later"]

    running, experiment, later = items
    assert experiment.kind == KIND_EXPERIMENT
    assert not experiment.is_draggable
    assert experiment.progress == pytest.approx(10 / experiment.duration_minutes * 100)
    assert running.progress == pytest.approx(50)
    assert running.status == "Running"
    assert later.is_scheduled
    assert later.progress == 0.0
    assert later.status == "Starts in 1h 30m"


def test_scheduled_status_under_an_hour(now):
    items = collect_items([make_timer("soon", TIMER_RUNNING, now + timedelta(minutes=45))], [], now)
    assert items[0].status == "Starts in 45m"


def test_invalid_experiment_is_not_drawn(now):
    experiment = make_experiment(now - timedelta(minutes=10))
    experiment.doubling_time = "abc"
    assert collect_items([], [experiment], now) == []


def test_item_display_text(now):
    scheduled = make_item("s", now + timedelta(minutes=90), 30, scheduled=True)
    assert item_display_text(scheduled, now) == (now + timedelta(minutes=90)).strftime("%H:%M")
    assert item_display_text(make_item("d", now - timedelta(minutes=40), 30), now) == "Done"
    assert item_display_text(make_item("h", now - timedelta(minutes=10), 100), now) == "1h 30m"
    assert item_display_text(make_item("m", now - timedelta(minutes=18), 30), now) == "12m left"
    eta = make_item("e", now - timedelta(minutes=18), 30)
    assert item_display_text(eta, now, show_eta=True) == eta.end.strftime("%H:%M")


def test_drag_session_keeps_pointer_offset(now):
    view_start = now - timedelta(minutes=30)
    drag = DragSession.begin("t1", pointer_x=100, element_left=90, view_start=view_start)
    assert drag.preview(191) == now + timedelta(minutes=30)
    assert drag.preview_time == now + timedelta(minutes=30)

    drag.leave()
    assert drag.preview_time is None

    command = drag.drop(190)
    assert command == ScheduleTimer("t1", now + timedelta(minutes=30))
    assert drag.preview_time is None
    assert drag.drop_unscheduled() == UnscheduleTimer("t1")


def test_timeline_height():
    assert timeline_height(6) == 500
    assert timeline_height(10) == 580


def test_layout_timeline(now):
    timers = [make_timer("running", TIMER_RUNNING, now - timedelta(minutes=15))]
    layout = layout_timeline(timers, [], now)
    assert layout.total_rows == config.MIN_ROWS
    assert layout.now_px == pytest.approx(90)
    assert layout.width_px == pytest.approx(270 * config.PIXELS_PER_MINUTE)
    assert layout.items[0].row_index == 0
    data = layout.to_dict()
    assert data["items"][0]["start"] == (now - timedelta(minutes=15)).isoformat()


def test_experiment_without_harvest_date_is_not_drawn(now):
    experiment = make_experiment(now - timedelta(minutes=10))
    experiment.lag_time = "1e12"
    assert collect_items([], [experiment], now) == []
