"""Command-line interface entrypoints for the culture planner."""
from __future__ import annotations

import logging
from datetime import datetime, timedelta
from typing import List, Optional

from . import config
from .ai_helper import AIExperimentAssistant, draft_from_prompt
from .calculator import calculate_results
from .chart import generate_chart_data, plot_growth_curve
from .dilution import format_volume
from .models import ExperimentDraft, ProtocolDraft, TimerDraft
from .recorder import (
    ValidationError,
    add_experiment,
    add_timer,
    apply_draft,
    expire_timers,
    list_experiments,
    list_protocols,
    list_timers,
    reset_timer,
    reset_tracking,
    run_step_action,
    schedule_timer,
    seed_default_protocols,
    start_tracking,
    toggle_timer,
    tracked_experiments,
    unschedule_timer,
    update_experiment,
)
from .storage import export_to_csv, init_db
from .timeline import item_display_text, layout_timeline, snap_to_grid
from .tracking import calculate_tracking


def choose(items: List, describe, prompt: str):
    if not items:
        print("Nothing to choose from.")
        return None
    for index, item in enumerate(items, start=1):
        print(f"{index}) {describe(item)}")
    value = input(prompt).strip()
    if not value.isdigit() or not 1 <= int(value) <= len(items):
        print("Invalid choice.")
        return None
    return items[int(value) - 1]


def choose_experiment():
    return choose(list_experiments(), lambda e: f"{e.name} ({'tracking' if e.is_tracking else 'planning'})", "Experiment: ")


def choose_timer():
    return choose(list_timers(), lambda t: f"{t.label} {t.duration_minutes:g} min [{t.status}]", "Timer: ")


def prompt_clock_time(prompt: str, now: datetime) -> Optional[datetime]:
    """Read HH:MM as the next occurrence of that clock time."""
    value = input(prompt).strip()
    if not value:
        return None
    parsed = datetime.strptime(value, "%H:%M")
    moment = now.replace(hour=parsed.hour, minute=parsed.minute, second=0, microsecond=0)
    if moment < now - timedelta(minutes=config.VIEW_PAST_MINUTES):
        moment += timedelta(days=1)
    return snap_to_grid(moment)


def show_experiment(experiment, now: datetime) -> None:
    result = calculate_results(experiment, experiment.tracking_start_time, now)
    print(f"=== {experiment.name} ({experiment.calculation_mode}) ===")
    if not result.is_valid and result.error is None:
        print("Waiting for valid inputs.")
        return
    if result.error:
        print(f"Error: {result.error}")
    for label, volume in (("Inoculum", result.inoculum_volume), ("Media", result.media_volume), ("Total", result.total_volume)):
        value, unit = format_volume(volume)
        print(f"{label:<9} {value} {unit}")
    print(f"Carrying capacity K = {result.carrying_capacity:.1f}")
    if result.minutes_to_harvest > 0 and result.harvest_date:
        hours, minutes = divmod(int(result.minutes_to_harvest), 60)
        print(f"Harvest in {hours}h {minutes}m at {result.harvest_date:%Y-%m-%d %H:%M}")
    tracking = calculate_tracking(experiment, experiment.tracking_start_time, now, result)
    if tracking:
        print(
            f"Elapsed {tracking.formatted_time}, OD≈{tracking.current_od:.3f}, "
            f"{tracking.completion_percentage:.0f}% to harvest"
        )


def handle_new_experiment():
    name = input("Experiment name (blank for default): ").strip()
    experiment = add_experiment(**({"name": name} if name else {}))
    print(f"Created {experiment.name}")


def handle_edit_experiment():
    experiment = choose_experiment()
    if experiment is None:
        return
    field = input("Field name: ").strip()
    value = input("New value: ").strip()
    try:
        updated = update_experiment(experiment.id, **{field: value})
        show_experiment(updated, datetime.now())
    except ValidationError as e:
        print(f"Error: {e}")


def handle_show_experiments():
    now = datetime.now()
    for experiment in list_experiments():
        show_experiment(experiment, now)


def handle_tracking():
    experiment = choose_experiment()
    if experiment is None:
        return
    try:
        if experiment.is_tracking:
            reset_tracking(experiment.id)
            print("Tracking reset.")
        else:
            start_tracking(experiment.id)
            print("Tracking started.")
    except ValidationError as e:
        print(f"Error: {e}")


def handle_chart():
    experiment = choose_experiment()
    if experiment is None:
        return
    now = datetime.now()
    result = calculate_results(experiment, experiment.tracking_start_time, now)
    tracking = calculate_tracking(experiment, experiment.tracking_start_time, now, result)
    series = generate_chart_data(experiment, result, tracking, points=config.CHART_POINTS_DETAILED)
    try:
        output = plot_growth_curve(
            experiment, result, series, config.PLOTS_DIR / f"growth_{experiment.id}.png", tracking, experiment.name
        )
        print(f"Saved {output}")
    except ValueError as e:
        print(f"Error: {e}")


def handle_add_timer():
    label = input("Timer label: ").strip()
    duration = input("Duration in minutes (default 15): ").strip() or "15"
    start_now = input("Start now? (y/N): ").strip().lower() == "y"
    try:
        add_timer(label, duration, auto_start=start_now)
        print("Timer added.")
    except ValidationError as e:
        print(f"Error: {e}")


def handle_timer_action():
    timer = choose_timer()
    if timer is None:
        return
    print("1) start/pause  2) reset  3) schedule at HH:MM  4) unschedule")
    choice = input("Action: ").strip()
    now = datetime.now()
    try:
        if choice == "1":
            updated = toggle_timer(timer.id, now)
        elif choice == "2":
            updated = reset_timer(timer.id)
        elif choice == "3":
            start = prompt_clock_time("Start at (HH:MM): ", now)
            if start is None:
                return
            updated = schedule_timer(timer.id, start)
        elif choice == "4":
            updated = unschedule_timer(timer.id)
        else:
            print("Invalid choice.")
            return
        print(f"{updated.label}: {updated.status}")
    except ValueError as e:
        print(f"Error: {e}")


def handle_timeline():
    now = datetime.now()
    expire_timers(now)
    layout = layout_timeline(list_timers(), tracked_experiments(), now)
    print(f"Timeline {layout.view_start:%H:%M} → {layout.view_end:%H:%M} ({layout.total_rows} rows)")
    for row in range(layout.total_rows):
        row_items = [item for item in layout.items if item.row_index == row]
        text = "  |  ".join(
            f"{item.label} {item.start:%H:%M}-{item.end:%H:%M} ({item_display_text(item, now)})" for item in row_items
        )
        print(f"[{row + 1}] {text}")


def handle_protocol_step():
    seed_default_protocols()
    protocol = choose(list_protocols(), lambda p: f"{p.title} ({len(p.steps)} steps)", "Protocol: ")
    if protocol is None:
        return
    actionable = [step for step in protocol.steps if step.action_type]
    step = choose(actionable, lambda s: f"{s.text} [{s.action_type}]", "Step: ")
    if step is None:
        return
    created = run_step_action(protocol.id, step.id)
    print(f"Created {step.action_type} {created}")


def handle_ai_helper():
    print("1) Draft from text  2) Estimate doubling time")
    choice = input("Choice: ").strip()
    if choice == "1":
        draft = draft_from_prompt(input("Describe what you need: "))
        if draft is None:
            return
        if isinstance(draft, ExperimentDraft):
            print(f"Experiment draft: {draft.overrides}")
        elif isinstance(draft, TimerDraft):
            print(f"Timer draft: {draft.label} ({draft.duration_minutes} min)")
        elif isinstance(draft, ProtocolDraft):
            print(f"Protocol draft: {draft.title} with {len(draft.steps)} steps")
        if input("Create it? (y/N): ").strip().lower() == "y":
            print(f"Created {apply_draft(draft)}")
    elif choice == "2":
        assistant = AIExperimentAssistant()
        minutes, explanation = assistant.estimate_doubling_time(input("Strain: ").strip(), input("Temperature: ").strip())
        print(f"{minutes:g} min - {explanation}")


def handle_export():
    path = export_to_csv()
    print(f"Exported CSV: {path}")


def run_cli():
    if config.LOG_LEVEL:
        logging.basicConfig(level=config.LOG_LEVEL.upper())
    init_db()
    add_experiment()
    menu = {
        "1": handle_new_experiment,
        "2": handle_edit_experiment,
        "3": handle_show_experiments,
        "4": handle_tracking,
        "5": handle_chart,
        "6": handle_add_timer,
        "7": handle_timer_action,
        "8": handle_timeline,
        "9": handle_protocol_step,
        "10": handle_ai_helper,
        "11": handle_export,
    }
    while True:
        print("""
=== Culture Planner ===
1. New experiment
2. Edit experiment field
3. Show recipes and harvest predictions
4. Start / reset tracking
5. Export growth chart
6. New timer
7. Timer actions (start/pause, reset, schedule, unschedule)
8. Show timeline
9. Run protocol step
10. AI assistant
11. Export CSV
12. Quit
        """)
        choice = input("Choose: ").strip()
        if choice == "12":
            print("Bye!")
            break
        action = menu.get(choice)
        if action:
            action()
        else:
            print("Invalid option, try again.")


if __name__ == "__main__":
    run_cli()
