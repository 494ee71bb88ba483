"""Assistant helpers: turn free text into drafts and ask an LLM for growth estimates."""
from __future__ import annotations

import json
import logging
import re
from typing import Optional, Tuple, Union

import requests

from . import config
from .models import (
    ACTION_EXPERIMENT,
    ACTION_TIMER,
    MODE_TOTAL_VOLUME,
    ExperimentDraft,
    ProtocolDraft,
    StepDraft,
    TimerDraft,
)

logger = logging.getLogger("culture_planner.ai_helper")

Draft = Union[ExperimentDraft, TimerDraft, ProtocolDraft]

PROTOCOL_KEYWORDS = ("protocol", "steps", "procedure", "how to")
TIMER_KEYWORDS = ("timer", "alarm", "wait")
DEFAULT_TIMER_MINUTES = 15

_DURATION = re.compile(r"(\d+)\s*(m|min|minute|h|hour)")
_TIMER_WORDS = re.compile(r"timer|set|minutes|min", re.IGNORECASE)
_OD_VALUE = re.compile(r"od\s*(\d*\.?\d+)", re.IGNORECASE)


def _protocol_draft(lower: str) -> ProtocolDraft:
    if "miniprep" in lower:
        return ProtocolDraft(
            title="Plasmid Miniprep",
            description="Standard alkaline lysis purification.",
            steps=[
                StepDraft("Pellet 1-5 mL bacterial culture by centrifugation."),
                StepDraft("Resuspend pellet in 250 µL Buffer P1."),
                StepDraft("Add 250 µL Buffer P2 and invert gently 4-6 times.", ACTION_TIMER, "Lysis (Max 5m)", 5),
                StepDraft("Add 350 µL Buffer N3 and invert immediately."),
                StepDraft("Centrifuge 10 min at 13,000 rpm.", ACTION_TIMER, "Centrifuge", 10),
            ],
        )
    if "comp" in lower:
        return ProtocolDraft(
            title="Competent Cell Prep",
            description="AI Generated Procedure",
            steps=[
                StepDraft("Inoculate 5mL LB from single colony."),
                StepDraft("Grow overnight at 37°C.", ACTION_TIMER, "Overnight", 960),
                StepDraft(
                    "Dilute 1:100 into fresh LB. Grow to OD 0.4.",
                    ACTION_EXPERIMENT,
                    experiment_config={"name": "Comp Cell Growth", "target_harvest_od": "0.4"},
                ),
            ],
        )
    steps = [
        StepDraft("Prepare reagents and workspace."),
        StepDraft("Execute main reaction steps."),
    ]
    if "incubate" in lower:
        steps.append(StepDraft("Incubate sample.", ACTION_TIMER, "Incubation", 30))
    return ProtocolDraft(title="Custom Protocol", description="AI Generated Procedure", steps=steps)


def _timer_draft(prompt: str, lower: str) -> TimerDraft:
    duration = DEFAULT_TIMER_MINUTES
    match = _DURATION.search(lower)
    if match:
        value = int(match.group(1))
        duration = value * 60 if match.group(2).startswith("h") else value
    label = re.sub(r"\d+", "", _TIMER_WORDS.sub("", prompt)).strip() or "Incubation"
    return TimerDraft(label=label, duration_minutes=duration)


def _experiment_draft(prompt: str, lower: str) -> ExperimentDraft:
    overrides = {"name": "AI Protocol", "calculation_mode": MODE_TOTAL_VOLUME, "lag_time": "20"}
    if "ecoli" in lower:
        overrides["name"] = "E. coli Growth"
        overrides["doubling_time"] = "20"
    if "500ml" in lower:
        overrides["target_volume"] = "500"
    values = sorted(float(value) for value in _OD_VALUE.findall(prompt))
    if len(values) >= 2:
        overrides["target_start_od"] = "0.05"
        overrides["target_harvest_od"] = f"{values[0]:g}"
        overrides["inoculum_od"] = f"{values[1]:g}"
    return ExperimentDraft(overrides=overrides)


def draft_from_prompt(prompt: str) -> Optional[Draft]:
    """Interpret a free-text request as a protocol, timer or experiment draft.

    Returns ``None`` for an empty prompt. Drafts are not validated beyond the
    numeric checks applied when the entity is created.
    """
    if not prompt.strip():
        return None
    lower = prompt.lower()
    if any(keyword in lower for keyword in PROTOCOL_KEYWORDS):
        return _protocol_draft(lower)
    if any(keyword in lower for keyword in TIMER_KEYWORDS) and "od" not in lower:
        return _timer_draft(prompt, lower)
    return _experiment_draft(prompt, lower)


class AIExperimentAssistant:
    """Helper to call an LLM for growth parameter estimates."""

    def __init__(self, api_key: str | None = None, model: str | None = None, api_base: str | None = None):
        self.api_key = api_key or config.OPENAI_API_KEY
        self.model = model or config.OPENAI_MODEL
        self.api_base = api_base or config.OPENAI_API_BASE

    def _call_llm(self, prompt: str) -> str:
        headers = {
            "Content-Type": "application/json",
            "Authorization": f"Bearer {self.api_key}",
        }
        payload = {
            "model": self.model,
            "messages": [
                {"role": "system", "content": "You are a microbiology lab assistant. Answer with JSON only."},
                {"role": "user", "content": prompt},
            ],
            "response_format": {"type": "json_object"},
        }
        response = requests.post(self.api_base, json=payload, headers=headers, timeout=60)
        response.raise_for_status()
        data = response.json()
        return data.get("choices", [{}])[0].get("message", {}).get("content", "")

    def estimate_doubling_time(self, strain: str, temperature: str) -> Tuple[float, str]:
        """Return ``(doubling_time_minutes, explanation)``; 0 minutes when unavailable."""
        if not self.api_key:
            return 0.0, "OPENAI_API_KEY is not set; enter the doubling time manually."
        prompt = (
            f'Estimate the doubling time (generation time) of the bacterial strain "{strain}" grown at {temperature}. '
            'Reply as {"doubling_time": <minutes>, "explanation": "<one sentence, e.g. typical for LB media>"}. '
            "If the strain is unknown or the query is invalid, return 0 for doubling_time and explain why."
        )
        try:
            content = json.loads(self._call_llm(prompt))
            doubling_time = float(content["doubling_time"])
            explanation = str(content.get("explanation", ""))
        except requests.RequestException as exc:
            logger.warning("Doubling time request failed: %s", exc)
            return 0.0, "Failed to retrieve estimate. Please enter manually."
        except (ValueError, KeyError, TypeError) as exc:
            logger.warning("Unreadable doubling time response: %s", exc)
            return 0.0, "Failed to retrieve estimate. Please enter manually."
        return max(0.0, doubling_time), explanation
