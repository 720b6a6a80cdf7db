"""Slotwise CLI - fit open tasks into free calendar time."""

import json
import logging
import sys
from datetime import date, datetime

import click

from .adapters.json_snapshot import SnapshotError
from .config import load_config
from .core.learning import RescheduleReason
from .core.lifecycle import TaskState
from .core.reconcile import ReconcileError
from .service import run_service
from .workflows import (
    get_calendar,
    get_scan_gate,
    list_estimates,
    mark_task,
    record_completion,
    reschedule_insights,
    reschedule_task,
    resolve_conflict,
    run_reconcile,
    run_scan,
    run_week,
    slots_for_day,
    track_event,
)


def _fail(message: str) -> None:
    click.echo(f"Error: {message}", err=True)
    sys.exit(1)


def _parse_day(value: str | None) -> date | None:
    if value is None:
        return None
    try:
        return date.fromisoformat(value)
    except ValueError:
        raise click.BadParameter(f"Expected YYYY-MM-DD, got {value!r}")


@click.group()
@click.version_option()
@click.option("--debug", is_flag=True, help="Enable debug logging")
def main(debug: bool):
    """Slotwise - fit open tasks into free calendar time."""
    logging.basicConfig(
        format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
        level=logging.DEBUG if debug else logging.WARNING,
    )


@main.command()
@click.option("--date", "day", help="Day to inspect (YYYY-MM-DD), default today")
@click.option("--json", "as_json", is_flag=True, help="Output as JSON")
def slots(day: str | None, as_json: bool):
    """List free slots for a day."""
    config = load_config()
    target = _parse_day(day) or date.today()
    try:
        free = slots_for_day(config, get_calendar(config), target, now=datetime.now())
    except SnapshotError as e:
        _fail(str(e))

    if as_json:
        click.echo(
            json.dumps(
                [
                    {
                        "start": s.start.isoformat(),
                        "end": s.end.isoformat(),
                        "minutes": s.duration_minutes(),
                        "energy": s.level.value if s.level else None,
                    }
                    for s in free
                ],
                indent=2,
            )
        )
        return

    if not free:
        click.echo(f"No free slots on {target}.")
        return
    for slot in free:
        click.echo(slot.format())


@main.command()
@click.option("--date", "day", help="Day to scan (YYYY-MM-DD), default today")
@click.option("--json", "as_json", is_flag=True, help="Output as JSON")
def scan(day: str | None, as_json: bool):
    """Match open tasks to today's free slots."""
    config = load_config()
    try:
        result = get_scan_gate(config).run(run_scan, config, day=_parse_day(day))
    except SnapshotError as e:
        _fail(str(e))
    if result is None:
        click.echo("A scan is already running, skipping.")
        return

    if as_json:
        click.echo(json.dumps(result.to_dict(), indent=2))
        return

    click.echo(f"Scan for {result.day} ({len(result.slots)} free slot(s))")
    if not result.result.suggestions:
        click.echo("No suggestions.")
    for suggestion in result.result.suggestions:
        click.echo(f"  {suggestion.format()}  [{suggestion.duration_source.value}]")

    if result.result.residual:
        click.echo("\nNot placed:")
        for residual in result.result.residual:
            minutes = int(residual.remaining.total_seconds() / 60)
            click.echo(f"  {residual.task.title} ({minutes} min, {residual.reason.value})")


@main.command()
@click.option("--date", "day", help="First day of the plan (YYYY-MM-DD), default today")
@click.option("--json", "as_json", is_flag=True, help="Output as JSON")
def week(day: str | None, as_json: bool):
    """Spread open tasks over the rest of the week."""
    config = load_config()
    try:
        plan = get_scan_gate(config).run(run_week, config, as_of=_parse_day(day))
    except SnapshotError as e:
        _fail(str(e))
    if plan is None:
        click.echo("A scan is already running, skipping.")
        return

    if as_json:
        click.echo(json.dumps(plan.to_dict(), indent=2))
        return

    for day_plan in plan.days:
        used = int(day_plan.used.total_seconds() / 60)
        capacity = int(day_plan.capacity.total_seconds() / 60)
        flag = "  OVER-COMMITTED" if day_plan.over_committed else ""
        click.echo(f"{day_plan.day.strftime('%a %b %d')}: {used}/{capacity} min{flag}")
        for planned in day_plan.tasks:
            pin = "*" if planned.pinned else " "
            minutes = int(planned.duration.total_seconds() / 60)
            click.echo(f"  {pin} {planned.task.title} ({minutes} min)")

    if plan.unassigned:
        click.echo("\nUnassigned:")
        for residual in plan.unassigned:
            click.echo(f"  {residual.task.title}")


@main.command()
@click.argument("task_id")
@click.argument("event_id")
@click.argument("start", type=click.DateTime(formats=["%Y-%m-%dT%H:%M", "%Y-%m-%d %H:%M"]))
@click.argument("end", type=click.DateTime(formats=["%Y-%m-%dT%H:%M", "%Y-%m-%d %H:%M"]))
@click.option("--title", default="", help="Task title")
def track(task_id: str, event_id: str, start: datetime, end: datetime, title: str):
    """Approve a suggestion and track its calendar event."""
    config = load_config()
    try:
        change = track_event(config, task_id, event_id, start, end, title)
    except ValueError as e:
        _fail(str(e))
    click.echo(f"{change.task_id}: {change.old_state.value} -> {change.new_state.value}")


@main.command()
@click.argument("task_id")
@click.argument("state", type=click.Choice([s.value for s in TaskState]))
@click.option("--reason", default="", help="Why the state changed")
@click.option("--list", "group", default=None, help="Task list, to learn preferred times from completions")
def mark(task_id: str, state: str, reason: str, group: str | None):
    """Move a tracked task to a new state."""
    config = load_config()
    try:
        change = mark_task(config, task_id, TaskState(state), reason, group_key=group)
    except (ValueError, ReconcileError) as e:
        _fail(str(e))
    click.echo(f"{change.task_id}: {change.old_state.value} -> {change.new_state.value}")


@main.command()
@click.argument("task_id")
@click.argument("reason", type=click.Choice([r.value for r in RescheduleReason]))
@click.option("--list", "group", required=True, help="Task list the task belongs to")
@click.option("--title", default="", help="Task title, defaults to the tracked title")
@click.option("--start", type=click.DateTime(formats=["%Y-%m-%dT%H:%M", "%Y-%m-%d %H:%M"]), help="Block start if untracked")
@click.option("--end", type=click.DateTime(formats=["%Y-%m-%dT%H:%M", "%Y-%m-%d %H:%M"]), help="Block end if untracked")
def reschedule(task_id: str, reason: str, group: str, title: str, start: datetime | None, end: datetime | None):
    """Record why a suggested block was moved."""
    config = load_config()
    try:
        event = reschedule_task(config, task_id, RescheduleReason(reason), group, title, start, end)
    except ValueError as e:
        _fail(str(e))
    click.echo(f"{event.task_id}: rescheduled ({event.reason.value})")


@main.command()
@click.option("--list", "group", default=None, help="Only this task list")
def insights(group: str | None):
    """Summarise recent reschedule patterns."""
    config = load_config()
    found = reschedule_insights(config, group_key=group)
    if not found:
        click.echo("No reschedule patterns yet.")
        return
    for insight in found:
        click.echo(f"{insight.title}: {insight.description}")


@main.command()
@click.argument("task_id")
@click.option("--keep/--cancel", default=True, help="Keep the block alongside the overlap, or cancel it")
def resolve(task_id: str, keep: bool):
    """Decide what happens to a conflicted task."""
    config = load_config()
    try:
        change = resolve_conflict(config, task_id, keep)
    except (ValueError, ReconcileError) as e:
        _fail(str(e))
    click.echo(f"{change.task_id}: {change.old_state.value} -> {change.new_state.value}")


@main.command()
@click.option("--json", "as_json", is_flag=True, help="Output as JSON")
def reconcile(as_json: bool):
    """Check tracked events against the calendar."""
    config = load_config()
    try:
        report = run_reconcile(config)
    except SnapshotError as e:
        _fail(str(e))

    if as_json:
        click.echo(
            json.dumps(
                {
                    "transitions": [t.to_dict() for t in report.transitions],
                    "moves": [
                        {
                            "task_id": m.task_id,
                            "old_start": m.old_start.isoformat(),
                            "new_start": m.new_start.isoformat(),
                            "new_end": m.new_end.isoformat(),
                        }
                        for m in report.moves
                    ],
                    "conflicts": [
                        {
                            "task_id": c.task_id,
                            "overlapping": [o.external_event_id for o in c.overlapping],
                        }
                        for c in report.conflicts
                    ],
                    "errors": [
                        {"task_id": e.task_id, "event_id": e.external_event_id, "error": e.error}
                        for e in report.errors
                    ],
                },
                indent=2,
            )
        )
        return

    if report.is_empty:
        click.echo("Everything is in sync.")
        return
    for move in report.moves:
        click.echo(f"Moved {move.task_id} to {move.new_start.strftime('%a %H:%M')}-{move.new_end.strftime('%H:%M')}")
    for change in report.transitions:
        click.echo(f"{change.task_id}: {change.old_state.value} -> {change.new_state.value} ({change.reason})")
    for failure in report.errors:
        click.echo(f"Skipped {failure.external_event_id}: {failure.error}", err=True)


@main.command()
@click.argument("group")
@click.argument("minutes", type=float)
@click.option("--title", default="", help="Task title, used for keyword history")
def complete(group: str, minutes: float, title: str):
    """Record how long a task actually took."""
    if minutes <= 0:
        _fail("Minutes must be positive")

    config = load_config()
    for estimate in record_completion(config, group, minutes, title):
        click.echo(estimate.format())


@main.command()
@click.option("--json", "as_json", is_flag=True, help="Output as JSON")
def estimates(as_json: bool):
    """Show learned duration estimates."""
    config = load_config()
    snapshots = list_estimates(config)

    if as_json:
        click.echo(
            json.dumps(
                [
                    {
                        "group_key": e.group_key,
                        "keywords": e.keywords,
                        "average_minutes": e.average,
                        "samples": e.sample_count,
                        "last_updated": e.last_updated.isoformat(),
                    }
                    for e in snapshots
                ],
                indent=2,
            )
        )
        return

    if not snapshots:
        click.echo("No duration history yet.")
        return
    for estimate in snapshots:
        click.echo(estimate.format())


@main.command()
def watch():
    """Run the scheduler service."""
    run_service()


if __name__ == "__main__":
    main()
