"""Data storage layer handling database sessions and exports."""
from __future__ import annotations

import csv
import logging
from contextlib import contextmanager
from datetime import datetime
from pathlib import Path
from typing import Iterator, Optional

from sqlalchemy import create_engine
from sqlalchemy.engine import Engine
from sqlalchemy.orm import Session, sessionmaker
from sqlalchemy.pool import StaticPool

from . import config
from .calculator import calculate_results
from .models import Base, Experiment

logger = logging.getLogger("culture_planner.storage")

_IN_MEMORY_URLS = ("sqlite://", "sqlite:///:memory:")


def _make_engine(url: str) -> Engine:
    if url in _IN_MEMORY_URLS:
        # one shared connection, otherwise every session sees an empty database
        return create_engine(
            url,
            echo=False,
            future=True,
            poolclass=StaticPool,
            connect_args={"check_same_thread": False},
        )
    return create_engine(url, echo=False, future=True)


engine = _make_engine(config.DATABASE_URL)
SessionLocal = sessionmaker(bind=engine, autoflush=False, expire_on_commit=False, future=True)


def init_db() -> None:
    """Create database tables if they do not exist."""
    Base.metadata.create_all(bind=engine)


def reset_db() -> None:
    """Drop and recreate every table."""
    Base.metadata.drop_all(bind=engine)
    Base.metadata.create_all(bind=engine)


@contextmanager
def get_session() -> Iterator[Session]:
    """Provide a transactional scope around a series of operations."""
    session: Session = SessionLocal()
    try:
        yield session
        session.commit()
    except Exception:
        session.rollback()
        raise
    finally:
        session.close()


EXPORT_FIELDS = [
    "id",
    "name",
    "calculation_mode",
    "inoculum_od",
    "target_volume",
    "target_start_od",
    "target_harvest_od",
    "doubling_time",
    "lag_time",
    "created_at",
    "tracking_start_time",
    "inoculum_volume_ml",
    "media_volume_ml",
    "minutes_to_harvest",
    "harvest_date",
    "carrying_capacity",
    "is_valid",
    "error",
]


def export_to_csv(output_path: Optional[Path] = None, now: Optional[datetime] = None) -> Path:
    """Export every experiment with its computed recipe and harvest prediction."""
    output_path = output_path or (config.EXPORTS_DIR / "experiments_export.csv")
    output_path.parent.mkdir(parents=True, exist_ok=True)
    now = now or datetime.now()

    with get_session() as session:
        experiments = session.query(Experiment).order_by(Experiment.created_at).all()

    with output_path.open("w", newline="", encoding="utf-8") as csvfile:
        writer = csv.DictWriter(csvfile, fieldnames=EXPORT_FIELDS)
        writer.writeheader()
        for exp in experiments:
            result = calculate_results(exp, exp.tracking_start_time, now)
            writer.writerow({
                "id": exp.id,
                "name": exp.name,
                "calculation_mode": exp.calculation_mode,
                "inoculum_od": exp.inoculum_od,
                "target_volume": exp.target_volume,
                "target_start_od": exp.target_start_od,
                "target_harvest_od": exp.target_harvest_od,
                "doubling_time": exp.doubling_time,
                "lag_time": exp.lag_time,
                "created_at": exp.created_at.isoformat(),
                "tracking_start_time": exp.tracking_start_time.isoformat() if exp.tracking_start_time else "",
                "inoculum_volume_ml": f"{result.inoculum_volume:.4f}",
                "media_volume_ml": f"{result.media_volume:.4f}",
                "minutes_to_harvest": f"{result.minutes_to_harvest:.2f}",
                "harvest_date": result.harvest_date.isoformat() if result.harvest_date else "",
                "carrying_capacity": result.carrying_capacity,
                "is_valid": result.is_valid,
                "error": result.error or "",
            })

    logger.info("Exported %d experiments to %s", len(experiments), output_path)
    return output_path
