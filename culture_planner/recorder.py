"""High-level interfaces for creating, updating, deleting, and querying records."""
from __future__ import annotations

import logging
import math
from datetime import datetime
from typing import Any, Callable, Dict, List, Optional, Union

from . import config
from .calculator import parse_number
from .models import (
    ACTION_EXPERIMENT,
    ACTION_TIMER,
    CALCULATION_MODES,
    TIMER_IDLE,
    TIMER_PAUSED,
    TIMER_RUNNING,
    Experiment,
    ExperimentDraft,
    Protocol,
    ProtocolDraft,
    ProtocolStep,
    StandaloneTimer,
    StepDraft,
    TimerDraft,
    new_id,
)
from .storage import get_session
from .timeline import ScheduleTimer, TimerCommand, UnscheduleTimer
from .timers import (
    TimerProgress,
    is_due,
    reset_updates,
    schedule_updates,
    timer_progress,
    toggle_updates,
    unschedule_updates,
)

logger = logging.getLogger("culture_planner.recorder")


class ValidationError(ValueError):
    """Raised when user input fails validation."""


NUMERIC_FIELDS = {
    "inoculum_od",
    "target_volume",
    "target_start_od",
    "target_harvest_od",
    "doubling_time",
    "lag_time",
}
EXPERIMENT_FIELDS = NUMERIC_FIELDS | {"name", "calculation_mode"}
TIMER_FIELDS = {"label", "duration_minutes"}


def _as_text(value: Any) -> str:
    if value is None:
        return ""
    return str(value).strip()


def _experiment_values(changes: Dict[str, Any]) -> Dict[str, Any]:
    parsed: Dict[str, Any] = {}
    for key, value in changes.items():
        if key not in EXPERIMENT_FIELDS:
            raise ValidationError(f"Unknown experiment field: {key}")
        if key in NUMERIC_FIELDS or key == "name":
            value = _as_text(value)
        elif key == "calculation_mode" and value not in CALCULATION_MODES:
            raise ValidationError(f"Invalid calculation mode: {value}")
        parsed[key] = value
    return parsed


def _parse_duration(value: Any) -> float:
    duration = parse_number(value)
    if not (math.isfinite(duration) and duration > 0):
        raise ValidationError(f"Invalid timer duration: {value}")
    return duration


# --- Experiments -----------------------------------------------------------


def _require_experiment(session, experiment_id: str) -> Experiment:
    experiment = session.get(Experiment, experiment_id)
    if experiment is None:
        raise ValidationError(f"Experiment {experiment_id} not found")
    return experiment


def add_experiment(now: Optional[datetime] = None, **overrides) -> Experiment:
    """Create an experiment from the defaults with optional field overrides."""
    overrides = {k: v for k, v in overrides.items() if k not in ("id", "created_at")}
    values = _experiment_values({**config.DEFAULT_EXPERIMENT, **overrides})
    with get_session() as session:
        if not values.get("name"):
            values["name"] = f"Exp {session.query(Experiment).count() + 1}"
        experiment = Experiment(id=new_id(), created_at=now or datetime.now(), **values)
        session.add(experiment)
    logger.info("Created experiment %s (%s)", experiment.name, experiment.id)
    return experiment


def update_experiment(experiment_id: str, **changes) -> Experiment:
    """Apply a partial update; inputs are frozen while the experiment is tracking."""
    values = _experiment_values(changes)
    if "name" in values and not values["name"]:
        raise ValidationError("Experiment name is required")
    with get_session() as session:
        experiment = _require_experiment(session, experiment_id)
        frozen = sorted(key for key in values if key in Experiment.INPUT_FIELDS)
        if experiment.is_tracking and frozen:
            raise ValidationError(
                f"Experiment {experiment.name} is tracking; reset tracking before editing {', '.join(frozen)}"
            )
        for key, value in values.items():
            setattr(experiment, key, value)
        return experiment


def start_tracking(experiment_id: str, now: Optional[datetime] = None) -> Experiment:
    with get_session() as session:
        experiment = _require_experiment(session, experiment_id)
        if experiment.is_tracking:
            raise ValidationError(f"Experiment {experiment.name} is already tracking")
        experiment.tracking_start_time = now or datetime.now()
    logger.info("Started tracking %s at %s", experiment.id, experiment.tracking_start_time)
    return experiment


def reset_tracking(experiment_id: str) -> Experiment:
    with get_session() as session:
        experiment = _require_experiment(session, experiment_id)
        experiment.tracking_start_time = None
    return experiment


def get_experiment(experiment_id: str) -> Experiment:
    with get_session() as session:
        return _require_experiment(session, experiment_id)


def list_experiments() -> List[Experiment]:
    with get_session() as session:
        return session.query(Experiment).order_by(Experiment.created_at).all()


def tracked_experiments() -> List[Experiment]:
    with get_session() as session:
        query = session.query(Experiment).filter(Experiment.tracking_start_time.isnot(None))
        return query.order_by(Experiment.tracking_start_time).all()


def delete_experiment(experiment_id: str) -> None:
    with get_session() as session:
        session.delete(_require_experiment(session, experiment_id))
    logger.info("Deleted experiment %s", experiment_id)


# --- Timers ----------------------------------------------------------------


def _require_timer(session, timer_id: str) -> StandaloneTimer:
    timer = session.get(StandaloneTimer, timer_id)
    if timer is None:
        raise ValidationError(f"Timer {timer_id} not found")
    return timer


def add_timer(
    label: str,
    duration_minutes: Union[str, float],
    auto_start: bool = False,
    now: Optional[datetime] = None,
) -> str:
    """Create a timer, optionally already running, and return its id."""
    label = _as_text(label)
    if not label:
        raise ValidationError("Timer label is required")
    duration = _parse_duration(duration_minutes)
    now = now or datetime.now()
    timer = StandaloneTimer(
        id=new_id(),
        label=label,
        duration_minutes=duration,
        start_time=now if auto_start else None,
        paused_time_remaining=None,
        status=TIMER_RUNNING if auto_start else TIMER_IDLE,
        created_at=now,
    )
    with get_session() as session:
        session.add(timer)
    logger.info("Created timer %s (%s, %.2f min)", timer.label, timer.id, timer.duration_minutes)
    return timer.id


def update_timer(timer_id: str, **changes) -> StandaloneTimer:
    """Edit a timer's label or duration; state changes go through the commands below."""
    with get_session() as session:
        timer = _require_timer(session, timer_id)
        for key, value in changes.items():
            if key not in TIMER_FIELDS:
                raise ValidationError(f"Unknown timer field: {key}")
            if key == "duration_minutes":
                value = _parse_duration(value)
            elif not _as_text(value):
                raise ValidationError("Timer label is required")
            setattr(timer, key, value)
        return timer


def _transition(timer_id: str, updates: Callable[[StandaloneTimer], Dict[str, Any]]) -> StandaloneTimer:
    with get_session() as session:
        timer = _require_timer(session, timer_id)
        for key, value in updates(timer).items():
            setattr(timer, key, value)
        return timer


def toggle_timer(timer_id: str, now: Optional[datetime] = None) -> StandaloneTimer:
    """Start, pause or resume a timer."""
    now = now or datetime.now()
    return _transition(timer_id, lambda timer: toggle_updates(timer, now))


def reset_timer(timer_id: str) -> StandaloneTimer:
    return _transition(timer_id, lambda timer: reset_updates())


def schedule_timer(timer_id: str, start_time: datetime) -> StandaloneTimer:
    return _transition(timer_id, lambda timer: schedule_updates(start_time))


def unschedule_timer(timer_id: str) -> StandaloneTimer:
    """Move a timer back to the unscheduled list; the record is kept."""
    return _transition(timer_id, lambda timer: unschedule_updates())


def apply_command(command: TimerCommand) -> StandaloneTimer:
    if isinstance(command, ScheduleTimer):
        return schedule_timer(command.timer_id, command.start_time)
    if isinstance(command, UnscheduleTimer):
        return unschedule_timer(command.timer_id)
    raise ValidationError(f"Unsupported timer command: {command!r}")


def expire_timers(now: Optional[datetime] = None) -> List[str]:
    """Reset every running timer whose window has elapsed; returns their ids."""
    now = now or datetime.now()
    with get_session() as session:
        running = session.query(StandaloneTimer).filter_by(status=TIMER_RUNNING).all()
        expired = [timer for timer in running if is_due(timer, now)]
        for timer in expired:
            for key, value in reset_updates().items():
                setattr(timer, key, value)
    if expired:
        logger.info("Completed timers: %s", ", ".join(timer.label for timer in expired))
    return [timer.id for timer in expired]


def get_timer(timer_id: str) -> StandaloneTimer:
    with get_session() as session:
        return _require_timer(session, timer_id)


def list_timers() -> List[StandaloneTimer]:
    with get_session() as session:
        return session.query(StandaloneTimer).order_by(StandaloneTimer.created_at).all()


def unscheduled_timers() -> List[StandaloneTimer]:
    """Timers shown in the side list rather than on the timeline."""
    with get_session() as session:
        query = session.query(StandaloneTimer).filter(StandaloneTimer.status.in_((TIMER_IDLE, TIMER_PAUSED)))
        return query.order_by(StandaloneTimer.created_at).all()


def active_timers() -> List[StandaloneTimer]:
    with get_session() as session:
        query = session.query(StandaloneTimer).filter(StandaloneTimer.status.in_((TIMER_RUNNING, TIMER_PAUSED)))
        return query.order_by(StandaloneTimer.created_at).all()


def delete_timer(timer_id: str) -> None:
    with get_session() as session:
        session.delete(_require_timer(session, timer_id))


# --- Protocols -------------------------------------------------------------

DEFAULT_PROTOCOLS = [
    ProtocolDraft(
        title="Heat Shock Transformation",
        description="Standard protocol for chemically competent E. coli (e.g., DH5a, BL21).",
        tags=["Cloning", "Bacteria"],
        steps=[
            StepDraft("Thaw competent cells on ice (~10 min).", ACTION_TIMER, "Thaw Cells", 10),
            StepDraft("Add 1-5 µL plasmid DNA to cells. Flick gently to mix. Do not vortex."),
            StepDraft("Incubate on ice for 30 minutes.", ACTION_TIMER, "Ice Incubation", 30),
            StepDraft("Heat shock at 42°C for exactly 45 seconds.", ACTION_TIMER, "Heat Shock", 0.75),
            StepDraft("Place on ice for 2 minutes.", ACTION_TIMER, "Cool Down", 2),
            StepDraft("Add 950 µL SOC media (room temp)."),
            StepDraft("Shake at 37°C for 1 hour at 225 rpm.", ACTION_TIMER, "Recovery", 60),
            StepDraft("Plate 50-100 µL on selective agar plates."),
        ],
    ),
    ProtocolDraft(
        title="Western Blot (Day 1)",
        description="SDS-PAGE electrophoresis and wet transfer to PVDF membrane.",
        tags=["Protein", "Western"],
        steps=[
            StepDraft("Mix protein samples with 4X Loading Buffer."),
            StepDraft("Boil samples at 95°C for 5 min.", ACTION_TIMER, "Boil Samples", 5),
            StepDraft("Load gel and run at 120V.", ACTION_TIMER, "Run Gel", 60),
            StepDraft("Activate PVDF membrane with methanol for 1 min, then rinse."),
            StepDraft("Assemble transfer sandwich (Black-Sponge-Paper-Gel-Membrane-Paper-Sponge-Clear)."),
            StepDraft("Run wet transfer at 100V (cold).", ACTION_TIMER, "Transfer", 60),
            StepDraft("Block membrane in 5% Milk/TBST.", ACTION_TIMER, "Blocking", 60),
            StepDraft("Incubate Primary Antibody overnight at 4°C.", ACTION_TIMER, "Primary Ab", 720),
        ],
    ),
    ProtocolDraft(
        title="Bacterial Growth Setup",
        description="Inoculation calculation and start-up for a growth curve.",
        tags=["Microbiology"],
        steps=[
            StepDraft("Measure OD600 of overnight culture."),
            StepDraft(
                "Calculate volume required for subculture.",
                ACTION_EXPERIMENT,
                experiment_config={"name": "Growth Curve", "target_start_od": "0.05", "target_volume": "50"},
            ),
            StepDraft("Inoculate fresh media."),
            StepDraft("Start shaking incubator at 37°C."),
        ],
    ),
]


def _require_step(session, protocol_id: str, step_id: str) -> ProtocolStep:
    step = session.get(ProtocolStep, step_id)
    if step is None or step.protocol_id != protocol_id:
        raise ValidationError(f"Step {step_id} not found in protocol {protocol_id}")
    return step


def add_protocol(draft: ProtocolDraft, now: Optional[datetime] = None) -> str:
    protocol = Protocol(
        id=new_id(),
        title=draft.title,
        description=draft.description,
        tags=",".join(draft.tags),
        created_at=now or datetime.now(),
        steps=[
            ProtocolStep(
                id=new_id(),
                position=position,
                text=step.text,
                is_completed=False,
                action_type=step.action_type,
                timer_label=step.timer_label,
                duration_minutes=step.duration_minutes,
                experiment_config=step.experiment_config,
            )
            for position, step in enumerate(draft.steps)
        ],
    )
    with get_session() as session:
        session.add(protocol)
    logger.info("Added protocol %s with %d steps", protocol.title, len(protocol.steps))
    return protocol.id


def seed_default_protocols(now: Optional[datetime] = None) -> List[str]:
    """Load the built-in protocol library into an empty store."""
    with get_session() as session:
        if session.query(Protocol).count():
            return []
    return [add_protocol(draft, now) for draft in DEFAULT_PROTOCOLS]


def get_protocol(protocol_id: str) -> Protocol:
    with get_session() as session:
        protocol = session.get(Protocol, protocol_id)
        if protocol is None:
            raise ValidationError(f"Protocol {protocol_id} not found")
        return protocol


def list_protocols() -> List[Protocol]:
    with get_session() as session:
        return session.query(Protocol).order_by(Protocol.created_at).all()


def delete_protocol(protocol_id: str) -> None:
    with get_session() as session:
        protocol = session.get(Protocol, protocol_id)
        if protocol is None:
            raise ValidationError(f"Protocol {protocol_id} not found")
        session.delete(protocol)


def toggle_step(protocol_id: str, step_id: str) -> ProtocolStep:
    with get_session() as session:
        step = _require_step(session, protocol_id, step_id)
        step.is_completed = not step.is_completed
        return step


def run_step_action(protocol_id: str, step_id: str, now: Optional[datetime] = None) -> str:
    """Run a step's action and return the id of the timer or experiment it created.

    Timer actions start immediately and are linked back to the step for
    progress display.
    """
    with get_session() as session:
        step = _require_step(session, protocol_id, step_id)
        action_type = step.action_type
        timer_label = step.timer_label
        duration = step.duration_minutes
        experiment_config = dict(step.experiment_config or {})

    if action_type == ACTION_TIMER:
        timer_id = add_timer(timer_label or "Protocol Timer", duration or 10, auto_start=True, now=now)
        with get_session() as session:
            _require_step(session, protocol_id, step_id).active_timer_id = timer_id
        return timer_id
    if action_type == ACTION_EXPERIMENT:
        return add_experiment(now=now, **experiment_config).id
    raise ValidationError(f"Step {step_id} has no action")


def step_timer_progress(step: ProtocolStep, now: Optional[datetime] = None) -> Optional[TimerProgress]:
    if not step.active_timer_id:
        return None
    with get_session() as session:
        timer = session.get(StandaloneTimer, step.active_timer_id)
    return timer_progress(timer, now or datetime.now())


# --- Drafts ----------------------------------------------------------------


def apply_draft(draft: Union[ExperimentDraft, TimerDraft, ProtocolDraft], now: Optional[datetime] = None) -> str:
    """Create the entity described by an assistant draft and return its id."""
    if isinstance(draft, ExperimentDraft):
        return add_experiment(now=now, **draft.overrides).id
    if isinstance(draft, TimerDraft):
        return add_timer(draft.label, draft.duration_minutes, auto_start=True, now=now)
    if isinstance(draft, ProtocolDraft):
        return add_protocol(draft, now)
    raise ValidationError(f"Unsupported draft: {draft!r}")
