"""Inoculum and media volume calculators for culture dilution."""
from __future__ import annotations

import math
from dataclasses import dataclass
from typing import Optional, Tuple

from .models import MODE_FIXED_MEDIA, MODE_TOTAL_VOLUME

INOCULUM_EXCEEDS_TARGET = "Inoculum volume > target."
INOCULUM_OD_TOO_LOW = "Inoculum OD must be greater than Start OD."

MICROLITERS_PER_ML = 1000.0


@dataclass(frozen=True)
class DilutionResult:
    inoculum_volume: float = 0.0
    media_volume: float = 0.0
    error: Optional[str] = None

    @property
    def is_valid(self) -> bool:
        return self.error is None


def _usable(*values: float) -> bool:
    return all(math.isfinite(value) and value > 0 for value in values)


def solve_total_volume(inoculum_od: float, target_volume: float, start_od: float) -> DilutionResult:
    """Fill to ``target_volume`` mL: C1*V1 = C2*V2."""
    if not _usable(inoculum_od, target_volume, start_od):
        return DilutionResult()
    inoculum_volume = (start_od * target_volume) / inoculum_od
    media_volume = target_volume - inoculum_volume
    error = INOCULUM_EXCEEDS_TARGET if inoculum_volume > target_volume else None
    return DilutionResult(inoculum_volume, media_volume, error)


def solve_fixed_media(inoculum_od: float, media_volume: float, start_od: float) -> DilutionResult:
    """Add inoculum on top of ``media_volume`` mL: C1*V1 = C2*(Vm + V1)."""
    if not _usable(inoculum_od, media_volume, start_od):
        return DilutionResult()
    if inoculum_od <= start_od:
        return DilutionResult(error=INOCULUM_OD_TOO_LOW)
    inoculum_volume = (start_od * media_volume) / (inoculum_od - start_od)
    return DilutionResult(inoculum_volume, media_volume)


def solve_dilution(mode: str, inoculum_od: float, target_volume: float, start_od: float) -> DilutionResult:
    """Dispatch to the solver for ``mode``."""
    if mode == MODE_TOTAL_VOLUME:
        return solve_total_volume(inoculum_od, target_volume, start_od)
    if mode == MODE_FIXED_MEDIA:
        return solve_fixed_media(inoculum_od, target_volume, start_od)
    raise ValueError(f"Unknown calculation mode: {mode}")


def _trim(value: float, digits: int) -> str:
    text = f"{value:,.{digits}f}"
    if "." in text:
        text = text.rstrip("0").rstrip(".")
    return text


def format_volume(volume_ml: float) -> Tuple[str, str]:
    """Return ``(value, unit)`` for display, switching to µL below 1 mL."""
    if volume_ml < 1:
        return _trim(volume_ml * MICROLITERS_PER_ML, 1), "µL"
    return _trim(volume_ml, 2), "mL"
