"""Data models for experiments, timers, protocols and derived results."""
from __future__ import annotations

import uuid
from dataclasses import asdict, dataclass, field
from datetime import datetime
from typing import Any, Dict, List, Optional, Union

from sqlalchemy import JSON, Boolean, Column, DateTime, Float, ForeignKey, Integer, String, Text
from sqlalchemy.orm import declarative_base, relationship

Base = declarative_base()

MODE_TOTAL_VOLUME = "total_volume"
MODE_FIXED_MEDIA = "fixed_media"
CALCULATION_MODES = (MODE_TOTAL_VOLUME, MODE_FIXED_MEDIA)

TIMER_IDLE = "idle"
TIMER_RUNNING = "running"
TIMER_PAUSED = "paused"
TIMER_COMPLETED = "completed"
TIMER_STATUSES = (TIMER_IDLE, TIMER_RUNNING, TIMER_PAUSED, TIMER_COMPLETED)

ACTION_TIMER = "timer"
ACTION_EXPERIMENT = "experiment"

KIND_TIMER = "timer"
KIND_EXPERIMENT = "experiment"


def new_id() -> str:
    return str(uuid.uuid4())


class Experiment(Base):
    """ORM model for one tracked culture.

    Numeric inputs are kept as the text the user typed; they are parsed
    defensively by :mod:`culture_planner.calculator` on every calculation.
    """

    __tablename__ = "experiments"

    INPUT_FIELDS = (
        "inoculum_od",
        "target_volume",
        "target_start_od",
        "target_harvest_od",
        "doubling_time",
        "lag_time",
        "calculation_mode",
    )

    id: str = Column(String(36), primary_key=True, default=new_id)
    name: str = Column(String(100), nullable=False)
    inoculum_od: str = Column(String(32), nullable=False, default="")
    target_volume: str = Column(String(32), nullable=False, default="")
    target_start_od: str = Column(String(32), nullable=False, default="")
    target_harvest_od: str = Column(String(32), nullable=False, default="")
    doubling_time: str = Column(String(32), nullable=False, default="")
    lag_time: str = Column(String(32), nullable=False, default="")
    calculation_mode: str = Column(String(16), nullable=False, default=MODE_TOTAL_VOLUME)
    tracking_start_time: Optional[datetime] = Column(DateTime, nullable=True)
    created_at: datetime = Column(DateTime, nullable=False, default=datetime.now)

    @property
    def is_tracking(self) -> bool:
        return self.tracking_start_time is not None

    def __repr__(self) -> str:  # pragma: no cover - debug helper
        return f"<Experiment {self.name!r} mode={self.calculation_mode} tracking={self.is_tracking}>"


class StandaloneTimer(Base):
    """ORM model for a countdown timer that can be scheduled on the timeline."""

    __tablename__ = "timers"

    id: str = Column(String(36), primary_key=True, default=new_id)
    label: str = Column(String(100), nullable=False)
    duration_minutes: float = Column(Float, nullable=False)
    start_time: Optional[datetime] = Column(DateTime, nullable=True)
    paused_time_remaining: Optional[float] = Column(Float, nullable=True)
    status: str = Column(String(10), nullable=False, default=TIMER_IDLE)
    created_at: datetime = Column(DateTime, nullable=False, default=datetime.now)

    def __repr__(self) -> str:  # pragma: no cover - debug helper
        return f"<StandaloneTimer {self.label!r} {self.duration_minutes}m status={self.status}>"


class Protocol(Base):
    __tablename__ = "protocols"

    id: str = Column(String(36), primary_key=True, default=new_id)
    title: str = Column(String(200), nullable=False)
    description: str = Column(Text, nullable=False, default="")
    tags: str = Column(String(200), nullable=False, default="")
    created_at: datetime = Column(DateTime, nullable=False, default=datetime.now)
    steps = relationship(
        "ProtocolStep",
        order_by="ProtocolStep.position",
        cascade="all, delete-orphan",
        lazy="selectin",
    )

    @property
    def tag_list(self) -> List[str]:
        return [tag for tag in self.tags.split(",") if tag]


class ProtocolStep(Base):
    """One checklist step; may carry a timer or experiment action."""

    __tablename__ = "protocol_steps"

    id: str = Column(String(36), primary_key=True, default=new_id)
    protocol_id: str = Column(String(36), ForeignKey("protocols.id"), nullable=False)
    position: int = Column(Integer, nullable=False)
    text: str = Column(Text, nullable=False)
    is_completed: bool = Column(Boolean, nullable=False, default=False)
    action_type: Optional[str] = Column(String(16), nullable=True)
    timer_label: Optional[str] = Column(String(100), nullable=True)
    duration_minutes: Optional[float] = Column(Float, nullable=True)
    experiment_config: Optional[dict] = Column(JSON, nullable=True)
    active_timer_id: Optional[str] = Column(String(36), nullable=True)


@dataclass
class CalculatorState:
    """Plain input record for one-off calculations outside the record store."""

    inoculum_od: Union[str, float, None] = None
    target_volume: Union[str, float, None] = None
    target_start_od: Union[str, float, None] = None
    target_harvest_od: Union[str, float, None] = None
    doubling_time: Union[str, float, None] = None
    lag_time: Union[str, float, None] = None
    calculation_mode: str = MODE_TOTAL_VOLUME


@dataclass
class CalculationResult:
    """Recipe and harvest prediction derived from an experiment."""

    inoculum_volume: float
    media_volume: float
    minutes_to_harvest: float
    harvest_date: Optional[datetime]
    is_valid: bool
    carrying_capacity: float
    error: Optional[str] = None

    @property
    def total_volume(self) -> float:
        return self.inoculum_volume + self.media_volume

    def to_dict(self) -> Dict[str, Any]:
        data = asdict(self)
        data["harvest_date"] = self.harvest_date.isoformat() if self.harvest_date else None
        return data


@dataclass
class TrackingStatus:
    elapsed_minutes: float
    current_od: float
    formatted_time: str
    completion_percentage: float

    def to_dict(self) -> Dict[str, Any]:
        return asdict(self)


@dataclass(frozen=True)
class GrowthDataPoint:
    time: float
    od: float


@dataclass
class ChartSeries:
    points: List[GrowthDataPoint] = field(default_factory=list)
    stationary_start: float = 0.0
    max_time: float = 0.0

    def to_dict(self) -> Dict[str, Any]:
        return asdict(self)


@dataclass
class TimelineItem:
    """A running timer or tracked experiment normalised for the timeline."""

    id: str
    kind: str
    label: str
    start: datetime
    end: datetime
    duration_minutes: float
    progress: float
    is_draggable: bool
    is_scheduled: bool
    status: str = ""
    row_index: Optional[int] = None

    def to_dict(self) -> Dict[str, Any]:
        data = asdict(self)
        data["start"] = self.start.isoformat()
        data["end"] = self.end.isoformat()
        return data


@dataclass
class TimelineLayout:
    items: List[TimelineItem]
    total_rows: int
    view_start: datetime
    view_end: datetime
    now: datetime
    pixels_per_minute: float

    @property
    def width_px(self) -> float:
        return (self.view_end - self.view_start).total_seconds() / 60.0 * self.pixels_per_minute

    @property
    def now_px(self) -> float:
        return (self.now - self.view_start).total_seconds() / 60.0 * self.pixels_per_minute

    def to_dict(self) -> Dict[str, Any]:
        return {
            "items": [item.to_dict() for item in self.items],
            "total_rows": self.total_rows,
            "view_start": self.view_start.isoformat(),
            "view_end": self.view_end.isoformat(),
            "now": self.now.isoformat(),
            "width_px": self.width_px,
        }


@dataclass
class ExperimentDraft:
    """Partial experiment produced by the assistant; keys are Experiment fields."""

    overrides: Dict[str, str] = field(default_factory=dict)


@dataclass
class TimerDraft:
    label: str
    duration_minutes: float


@dataclass
class StepDraft:
    text: str
    action_type: Optional[str] = None
    timer_label: Optional[str] = None
    duration_minutes: Optional[float] = None
    experiment_config: Optional[Dict[str, str]] = None


@dataclass
class ProtocolDraft:
    title: str
    description: str = ""
    steps: List[StepDraft] = field(default_factory=list)
    tags: List[str] = field(default_factory=list)
