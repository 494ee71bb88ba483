"""Timeline layout for running timers and tracked experiments.

Items are laid out on a horizontal time axis starting half an hour before
``now``; each item is assigned a swimlane row so that no two items drawn in
the same row touch. Dragging a timer onto the axis schedules it at the
snapped drop time, dragging it back to the unscheduled list resets it.
"""
from __future__ import annotations

import math
from dataclasses import dataclass, replace
from datetime import datetime, timedelta, timezone
from typing import Iterable, List, Optional, Sequence, Tuple, Union

from . import config
from .calculator import calculate_results
from .models import (
    KIND_EXPERIMENT,
    KIND_TIMER,
    TIMER_RUNNING,
    Experiment,
    StandaloneTimer,
    TimelineItem,
    TimelineLayout,
)


@dataclass(frozen=True)
class ScheduleTimer:
    timer_id: str
    start_time: datetime


@dataclass(frozen=True)
class UnscheduleTimer:
    timer_id: str


TimerCommand = Union[ScheduleTimer, UnscheduleTimer]


def _minutes_between(start: datetime, end: datetime) -> float:
    return (end - start).total_seconds() / 60.0


def _hours_minutes(total_minutes: int) -> Tuple[int, int]:
    return total_minutes // 60, total_minutes % 60


def starts_in_text(start: datetime, now: datetime) -> str:
    hours, minutes = _hours_minutes(math.ceil(_minutes_between(now, start)))
    return f"Starts in {hours}h {minutes}m" if hours > 0 else f"Starts in {minutes}m"


def experiment_item(experiment: Experiment, now: datetime) -> Optional[TimelineItem]:
    """Timeline entry for a tracked experiment with a valid prediction."""
    if experiment.tracking_start_time is None:
        return None
    results = calculate_results(experiment, experiment.tracking_start_time, now)
    if not results.is_valid or results.harvest_date is None:
        return None
    total = results.minutes_to_harvest
    elapsed = _minutes_between(experiment.tracking_start_time, now)
    progress = min(100.0, max(0.0, elapsed / total * 100.0)) if total > 0 else 0.0
    return TimelineItem(
        id=experiment.id,
        kind=KIND_EXPERIMENT,
        label=experiment.name,
        start=experiment.tracking_start_time,
        end=results.harvest_date,
        duration_minutes=total,
        progress=progress,
        is_draggable=False,
        is_scheduled=False,
        status="Running",
    )


def timer_item(timer: StandaloneTimer, now: datetime) -> Optional[TimelineItem]:
    """Timeline entry for a running or scheduled timer; idle and paused timers are off-axis."""
    if timer.status != TIMER_RUNNING or timer.start_time is None:
        return None
    start = timer.start_time
    is_scheduled = start > now
    if is_scheduled:
        progress = 0.0
        status = starts_in_text(start, now)
    else:
        elapsed = _minutes_between(start, now)
        progress = min(100.0, max(0.0, elapsed / timer.duration_minutes * 100.0)) if timer.duration_minutes > 0 else 100.0
        status = "Running"
    return TimelineItem(
        id=timer.id,
        kind=KIND_TIMER,
        label=timer.label,
        start=start,
        end=start + timedelta(minutes=timer.duration_minutes),
        duration_minutes=timer.duration_minutes,
        progress=progress,
        is_draggable=True,
        is_scheduled=is_scheduled,
        status=status,
    )


def collect_items(
    timers: Iterable[StandaloneTimer],
    experiments: Iterable[Experiment],
    now: datetime,
) -> List[TimelineItem]:
    """Normalise everything drawable on the axis, sorted by start time."""
    items: List[TimelineItem] = []
    for experiment in experiments:
        item = experiment_item(experiment, now)
        if item is not None:
            items.append(item)
    for timer in timers:
        item = timer_item(timer, now)
        if item is not None:
            items.append(item)
    return sorted(items, key=lambda item: item.start)


def view_window(items: Sequence[TimelineItem], now: datetime) -> Tuple[datetime, datetime]:
    """Visible span: recent past, at least four hours ahead, and one hour past the last item."""
    view_start = now - timedelta(minutes=config.VIEW_PAST_MINUTES)
    content_end = max([now] + [item.end for item in items])
    view_end = max(
        now + timedelta(minutes=config.VIEW_LOOKAHEAD_MINUTES),
        content_end + timedelta(minutes=config.VIEW_MARGIN_MINUTES),
    )
    return view_start, view_end


def position(moment: datetime, view_start: datetime, pixels_per_minute: Optional[float] = None) -> float:
    """Horizontal pixel offset of ``moment`` from the left edge of the axis."""
    ppm = pixels_per_minute or config.PIXELS_PER_MINUTE
    return _minutes_between(view_start, moment) * ppm


def time_from_x(x: float, view_start: datetime, pixels_per_minute: Optional[float] = None) -> datetime:
    """Inverse of :func:`position` (unsnapped)."""
    ppm = pixels_per_minute or config.PIXELS_PER_MINUTE
    return view_start + timedelta(minutes=x / ppm)


def snap_to_grid(moment: datetime, snap_minutes: Optional[float] = None) -> datetime:
    """Round to the nearest multiple of ``snap_minutes``, halves rounding up."""
    step_us = int((snap_minutes or config.SNAP_MINUTES) * 60_000_000)
    epoch = datetime(1970, 1, 1, tzinfo=moment.tzinfo and timezone.utc)
    offset_us = (moment - epoch) // timedelta(microseconds=1)
    snapped_us = (offset_us + step_us // 2) // step_us * step_us
    return epoch + timedelta(microseconds=snapped_us)


def visual_end(item: TimelineItem, pixels_per_minute: Optional[float] = None) -> datetime:
    """End of the space an item occupies in its row, including the spacing margin."""
    ppm = pixels_per_minute or config.PIXELS_PER_MINUTE
    visual_minutes = max(item.duration_minutes, config.MIN_ITEM_WIDTH_PX / ppm)
    return item.start + timedelta(minutes=visual_minutes + config.ROW_SPACING_MINUTES)


def assign_rows(
    items: Iterable[TimelineItem],
    pixels_per_minute: Optional[float] = None,
) -> Tuple[List[TimelineItem], int]:
    """First-fit swimlane packing in start order.

    Returns copies of ``items`` with ``row_index`` set, and the number of rows
    to draw (never fewer than ``config.MIN_ROWS``).
    """
    row_ends: List[datetime] = []
    placed: List[TimelineItem] = []
    for item in sorted(items, key=lambda item: item.start):
        end = visual_end(item, pixels_per_minute)
        for row_index, row_end in enumerate(row_ends):
            if row_end <= item.start:
                row_ends[row_index] = end
                break
        else:
            row_index = len(row_ends)
            row_ends.append(end)
        placed.append(replace(item, row_index=row_index))
    return placed, max(len(row_ends), config.MIN_ROWS)


def layout_timeline(
    timers: Iterable[StandaloneTimer],
    experiments: Iterable[Experiment],
    now: datetime,
    pixels_per_minute: Optional[float] = None,
) -> TimelineLayout:
    """Full drawable layout for the current tick."""
    ppm = pixels_per_minute or config.PIXELS_PER_MINUTE
    items = collect_items(timers, experiments, now)
    view_start, view_end = view_window(items, now)
    placed, total_rows = assign_rows(items, ppm)
    return TimelineLayout(
        items=placed,
        total_rows=total_rows,
        view_start=view_start,
        view_end=view_end,
        now=now,
        pixels_per_minute=ppm,
    )


def timeline_height(total_rows: int) -> int:
    return max(config.MIN_TIMELINE_HEIGHT_PX, total_rows * config.ROW_HEIGHT_PX + config.HEADER_HEIGHT_PX + 20)


def item_display_text(item: TimelineItem, now: datetime, show_eta: bool = False) -> str:
    """Short label drawn inside a timeline bar: start, ETA or time left."""
    if item.is_scheduled:
        return item.start.strftime("%H:%M")
    remaining = math.ceil(_minutes_between(now, item.end))
    if remaining <= 0:
        return "Done"
    if show_eta:
        return item.end.strftime("%H:%M")
    hours, minutes = _hours_minutes(remaining)
    if hours > 0:
        return f"{hours}h {minutes}m"
    return f"{minutes}m left"


@dataclass
class DragSession:
    """Pointer drag of a timer card; x coordinates are in axis pixels.

    The pointer's offset from the card's left edge is captured at the start
    so that the card's start, not the pointer, lines up with the drop time.
    """

    timer_id: str
    view_start: datetime
    offset_px: float = 0.0
    preview_time: Optional[datetime] = None
    pixels_per_minute: Optional[float] = None

    @classmethod
    def begin(
        cls,
        timer_id: str,
        pointer_x: float,
        element_left: float,
        view_start: datetime,
        pixels_per_minute: Optional[float] = None,
    ) -> "DragSession":
        return cls(
            timer_id=timer_id,
            view_start=view_start,
            offset_px=pointer_x - element_left,
            pixels_per_minute=pixels_per_minute,
        )

    def _snapped(self, pointer_x: float) -> datetime:
        return snap_to_grid(time_from_x(pointer_x - self.offset_px, self.view_start, self.pixels_per_minute))

    def preview(self, pointer_x: float) -> datetime:
        self.preview_time = self._snapped(pointer_x)
        return self.preview_time

    def leave(self) -> None:
        self.preview_time = None

    def drop(self, pointer_x: float) -> ScheduleTimer:
        self.preview_time = None
        return ScheduleTimer(self.timer_id, self._snapped(pointer_x))

    def drop_unscheduled(self) -> UnscheduleTimer:
        self.preview_time = None
        return UnscheduleTimer(self.timer_id)
