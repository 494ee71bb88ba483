"""Standalone timer state machine.

Transitions are pure: each function returns the field updates to apply to a
:class:`~culture_planner.models.StandaloneTimer`, leaving persistence to the
recorder. ``paused_time_remaining`` is set only while paused and
``start_time`` only while running; a running timer may start in the future
(scheduled) and returns to idle once its window has elapsed.
"""
from __future__ import annotations

import math
from dataclasses import dataclass
from datetime import datetime, timedelta
from typing import Any, Dict, Optional

from .models import TIMER_IDLE, TIMER_PAUSED, TIMER_RUNNING, StandaloneTimer


@dataclass
class TimerProgress:
    percentage: float
    remaining_text: str
    is_paused: bool
    is_done: bool


def end_time(timer: StandaloneTimer) -> Optional[datetime]:
    if timer.start_time is None:
        return None
    return timer.start_time + timedelta(minutes=timer.duration_minutes)


def elapsed_minutes(timer: StandaloneTimer, now: datetime) -> float:
    """Minutes of the duration consumed so far (negative while scheduled)."""
    if timer.status == TIMER_RUNNING and timer.start_time is not None:
        return (now - timer.start_time).total_seconds() / 60.0
    if timer.status == TIMER_PAUSED and timer.paused_time_remaining is not None:
        return timer.duration_minutes - timer.paused_time_remaining
    return 0.0


def is_due(timer: StandaloneTimer, now: datetime) -> bool:
    """Level-triggered completion check, safe to evaluate after missed ticks."""
    finish = end_time(timer)
    return timer.status == TIMER_RUNNING and finish is not None and now >= finish


def start_updates(timer: StandaloneTimer, now: datetime) -> Dict[str, Any]:
    """Start now, or resume a paused timer without losing elapsed time."""
    remaining = timer.duration_minutes
    if timer.status == TIMER_PAUSED and timer.paused_time_remaining is not None:
        remaining = timer.paused_time_remaining
    effective_start = now - timedelta(minutes=timer.duration_minutes - remaining)
    return {"status": TIMER_RUNNING, "start_time": effective_start, "paused_time_remaining": None}


def pause_updates(timer: StandaloneTimer, now: datetime) -> Dict[str, Any]:
    # a scheduled timer that has not started yet keeps its full duration
    elapsed = max(0.0, elapsed_minutes(timer, now))
    remaining = max(0.0, timer.duration_minutes - elapsed)
    return {"status": TIMER_PAUSED, "paused_time_remaining": remaining, "start_time": None}


def toggle_updates(timer: StandaloneTimer, now: datetime) -> Dict[str, Any]:
    if timer.status == TIMER_RUNNING:
        return pause_updates(timer, now)
    return start_updates(timer, now)


def reset_updates() -> Dict[str, Any]:
    return {"status": TIMER_IDLE, "start_time": None, "paused_time_remaining": None}


def schedule_updates(start_time: datetime) -> Dict[str, Any]:
    """Place a timer on the timeline at ``start_time`` (may be in the future)."""
    return {"status": TIMER_RUNNING, "start_time": start_time, "paused_time_remaining": None}


def unschedule_updates() -> Dict[str, Any]:
    return reset_updates()


def format_countdown(minutes: float) -> str:
    """``"4m 30s"`` style countdown text."""
    minutes = max(0.0, minutes)
    whole = math.floor(minutes)
    seconds = math.floor((minutes - whole) * 60)
    return f"{whole}m {seconds}s"


def timer_progress(timer: Optional[StandaloneTimer], now: datetime) -> Optional[TimerProgress]:
    """Progress of a linked timer for checklist display; ``None`` when idle."""
    if timer is None or timer.status not in (TIMER_RUNNING, TIMER_PAUSED):
        return None
    elapsed = elapsed_minutes(timer, now)
    if timer.duration_minutes > 0:
        percentage = min(100.0, max(0.0, elapsed / timer.duration_minutes * 100.0))
    else:
        percentage = 100.0
    return TimerProgress(
        percentage=percentage,
        remaining_text=format_countdown(timer.duration_minutes - elapsed),
        is_paused=timer.status == TIMER_PAUSED,
        is_done=elapsed >= timer.duration_minutes,
    )
