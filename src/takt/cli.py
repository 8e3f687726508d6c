"""Typer CLI for takt."""

from __future__ import annotations

import asyncio
import logging
from datetime import date
from typing import Annotated, Optional

import typer
from rich.console import Console
from rich.table import Table

from takt import service
from takt.graph import DependencyGraph
from takt.logs import setup_logging
from takt.models import Item, ItemKind, PlannerConfig
from takt.persistence import Store
from takt.placer import Conflict, SchedulePlacer
from takt.session import PlanningSession
from takt.suggest import Suggester
from takt.timeutil import format_hhmm, interval_of, parse_event_start

app = typer.Typer(
    name="takt",
    help="Task dependencies and daily planning from the command line.",
    no_args_is_help=True,
)
dep_app = typer.Typer(help="Manage task dependencies.", no_args_is_help=True)
app.add_typer(dep_app, name="dep")
console = Console()


def _get_store() -> Store:
    return Store()


def _complete_task_id(incomplete: str) -> list[str]:
    """Shell completion for task IDs. Matches against both ID and title."""
    try:
        items = Store().list_items()
    except (OSError, ValueError):
        return []

    q = incomplete.lower()
    # Title first so the shell's prefix matching works on "Title (T-3)".
    return [f"{i.title} ({i.id})" for i in items if q in i.id.lower() or q in i.title.lower()]


def _parse_task_id(task_id_arg: str) -> str:
    """Extract the ID if the user used the autocompleted 'Title (ID)' format."""
    if "(" in task_id_arg and task_id_arg.endswith(")"):
        return task_id_arg.split("(")[-1].strip(")")
    return task_id_arg.strip()


def _fail(message: str) -> None:
    console.print(f"[red]{message}[/red]")
    raise typer.Exit(1)


def _today() -> str:
    return date.today().isoformat()


TaskId = Annotated[str, typer.Argument(autocompletion=_complete_task_id)]


@app.callback()
def main(
    verbose: Annotated[bool, typer.Option("--verbose", "-v", help="Log debug output to stderr")] = False,
) -> None:
    setup_logging(logging.DEBUG if verbose else logging.WARNING)


# ---------------------------------------------------------------------------
# Items
# ---------------------------------------------------------------------------


@app.command()
def init(
    start_hour: Annotated[int, typer.Option(help="First hour of the working window")] = 6,
    end_hour: Annotated[int, typer.Option(help="Hour the working window ends")] = 22,
    default_duration: Annotated[int, typer.Option(help="Minutes used when a task has no estimate")] = 30,
    model: Annotated[Optional[str], typer.Option(help="Model used by 'optimize'")] = None,
) -> None:
    """Initialize (or reinitialize) planner configuration."""
    if not (0 <= start_hour < end_hour <= 24):
        _fail("Working window must satisfy 0 <= start-hour < end-hour <= 24.")
    config = PlannerConfig(day_start_hour=start_hour, day_end_hour=end_hour, default_duration=default_duration)
    if model:
        config.ai_model = model
    _get_store().save_config(config)
    console.print(f"[green]Planner initialized. Window: {start_hour:02d}:00-{end_hour:02d}:00[/green]")


@app.command()
def add(
    title: str,
    duration: Annotated[Optional[int], typer.Option("--duration", "-d", help="Estimated minutes")] = None,
    due: Annotated[Optional[str], typer.Option(help="Due date (YYYY-MM-DD)")] = None,
    event: Annotated[Optional[str], typer.Option("--event", help="Fixed event start (YYYY-MM-DDTHH:MM)")] = None,
    depends: Annotated[Optional[list[str]], typer.Option("--depends", help="Task IDs this depends on")] = None,
    category: Annotated[Optional[str], typer.Option("--category", "-c")] = None,
    description: Annotated[Optional[str], typer.Option(help="Free-form description")] = None,
) -> None:
    """Add a task, or a fixed event with --event.

    Dependencies can be given individually (--depends T-1 --depends T-2)
    or comma-separated (--depends T-1,T-2).
    """
    store = _get_store()
    expanded: list[str] = []
    for d in depends or []:
        expanded.extend(part.strip() for part in d.split(",") if part.strip())

    known = {i.id for i in store.list_items()}
    for dep in expanded:
        if dep not in known:
            _fail(f"Dependency {dep} not found.")

    if event is not None and parse_event_start(event) is None:
        _fail("--event needs a date and time, e.g. 2026-03-02T09:00")

    tid = store.generate_id()
    store.add_item(
        Item(
            id=tid,
            title=title,
            kind=ItemKind.FIXED if event else ItemKind.FLEXIBLE,
            duration_minutes=duration,
            due_date=due,
            description=description,
            category=category,
            start_time=event,
        )
    )
    # A brand-new task has no successors, so these edges cannot form a cycle.
    for dep in expanded:
        service.add_dependency(store, dep, tid)
    console.print(f"[green]Added '{title}' as {tid}[/green]")


def _when(item: Item) -> str:
    if item.is_fixed:
        return item.start_time.replace("T", " ")[:16] if item.start_time else "-"
    if item.is_scheduled:
        return f"{item.scheduled_date} {item.scheduled_start}"
    return "-"


@app.command("list")
def list_items(
    search: Annotated[Optional[str], typer.Option("--search", "-q", help="Filter by title")] = None,
    unscheduled: Annotated[bool, typer.Option("--unscheduled", "-u", help="Only unscheduled open tasks")] = False,
) -> None:
    """List items, predecessors before successors."""
    store = _get_store()
    items = {i.id: i for i in store.list_items()}
    if not items:
        console.print("No items found.")
        return

    graph = DependencyGraph(store.list_edges())
    try:
        order = graph.topological_order(items)
    except ValueError:
        console.print("[yellow]Dependency cycle in store; run 'takt graph-check'.[/yellow]")
        order = list(items)

    filtered = [items[tid] for tid in order]
    if search:
        q = search.lower()
        filtered = [i for i in filtered if q in i.title.lower() or q in i.id.lower()]
    if unscheduled:
        filtered = [i for i in filtered if not i.is_fixed and not i.completed and not i.is_scheduled]
    if not filtered:
        console.print("No items match the filter.")
        return

    table = Table(title="Items")
    for col in ("ID", "Title", "Kind", "Minutes", "Depends On", "When", "Due", "Done"):
        table.add_column(col)
    for i in filtered:
        table.add_row(
            i.id,
            i.title,
            i.kind.value,
            str(i.duration_minutes) if i.duration_minutes else "?",
            ", ".join(graph.direct_predecessors(i.id)) or "-",
            _when(i),
            i.due_date or "-",
            "yes" if i.completed else "",
            style="dim" if i.completed else None,
        )
    console.print(table)


@app.command()
def done(task_id: TaskId) -> None:
    """Mark a task as completed."""
    task_id = _parse_task_id(task_id)
    store = _get_store()
    if store.get_item(task_id) is None:
        _fail(f"Item {task_id} not found.")
    store.update_item(task_id, {"completed": True})
    console.print(f"[green]Completed {task_id}.[/green]")


@app.command()
def delete(task_id: TaskId) -> None:
    """Delete an item and every dependency that references it."""
    task_id = _parse_task_id(task_id)
    if not service.delete_item(_get_store(), task_id):
        _fail(f"Item {task_id} not found.")
    console.print(f"[green]Deleted {task_id}.[/green]")


@app.command()
def chain(
    titles: Annotated[list[str], typer.Argument(help="Task titles, in order")],
    category: Annotated[Optional[str], typer.Option("--category", "-c")] = None,
    after: Annotated[Optional[str], typer.Option(help="Existing task the chain starts after")] = None,
) -> None:
    """Create tasks that each depend on the previous one (all or nothing)."""
    result = service.create_task_chain(_get_store(), titles, category=category, after=after)
    if not result.ok:
        for problem in result.problems:
            console.print(f"[red]{problem}[/red]")
        raise typer.Exit(1)
    console.print(f"[green]Created {len(result.created)} connected tasks:[/green]")
    for item in result.created:
        console.print(f"  {item.id}  {item.title}")


# ---------------------------------------------------------------------------
# Dependencies
# ---------------------------------------------------------------------------


@dep_app.command("add")
def dep_add(predecessor: TaskId, successor: TaskId) -> None:
    """Make SUCCESSOR depend on PREDECESSOR."""
    result = service.add_dependency(_get_store(), _parse_task_id(predecessor), _parse_task_id(successor))
    if not result.ok:
        _fail(f"Cannot add {result.edge.predecessor_id} -> {result.edge.successor_id}: {result.reason}.")
    console.print(f"[green]{result.edge.successor_id} now depends on {result.edge.predecessor_id}.[/green]")


@dep_app.command("remove")
def dep_remove(predecessor: TaskId, successor: TaskId) -> None:
    """Remove the dependency PREDECESSOR -> SUCCESSOR."""
    result = service.remove_dependency(_get_store(), _parse_task_id(predecessor), _parse_task_id(successor))
    if not result.ok:
        console.print(f"[yellow]{result.reason}, skipping.[/yellow]")
        return
    console.print("[green]Dependency removed.[/green]")


@dep_app.command("show")
def dep_show(task_id: TaskId) -> None:
    """Show direct and transitive neighbours of a task."""
    task_id = _parse_task_id(task_id)
    store = _get_store()
    if store.get_item(task_id) is None:
        _fail(f"Item {task_id} not found.")
    graph = DependencyGraph(store.list_edges())

    def _fmt(ids) -> str:
        return ", ".join(sorted(ids)) or "none"

    console.print(f"\n[bold]{task_id}[/bold]")
    console.print(f"  Depends on:      {_fmt(graph.direct_predecessors(task_id))}")
    console.print(f"  Blocks:          {_fmt(graph.direct_successors(task_id))}")
    console.print(f"  All upstream:    {_fmt(graph.all_predecessors(task_id))}")
    console.print(f"  All downstream:  {_fmt(graph.all_successors(task_id))}")
    console.print()


@dep_app.command("options")
def dep_options(task_id: TaskId) -> None:
    """List which tasks may be picked as a new predecessor."""
    task_id = _parse_task_id(task_id)
    store = _get_store()
    items = store.list_items()
    if task_id not in {i.id for i in items}:
        _fail(f"Item {task_id} not found.")
    graph = DependencyGraph(store.list_edges())
    invalid = graph.invalid_predecessors(task_id)
    current = set(graph.direct_predecessors(task_id))

    table = Table(title=f"Predecessor options for {task_id}")
    table.add_column("ID")
    table.add_column("Title")
    table.add_column("Selectable")
    for i in items:
        if i.id in invalid:
            table.add_row(i.id, i.title, "no (would create a cycle)" if i.id != task_id else "no", style="dim")
        elif i.id in current:
            table.add_row(i.id, i.title, "already a predecessor")
        else:
            table.add_row(i.id, i.title, "yes")
    console.print(table)


@app.command("graph-check")
def graph_check() -> None:
    """Report cycles or dangling edges in the stored dependencies."""
    store = _get_store()
    known = {i.id for i in store.list_items()}
    edges = store.list_edges()
    problems = 0
    for e in edges:
        missing = [tid for tid in (e.predecessor_id, e.successor_id) if tid not in known]
        if missing:
            problems += 1
            console.print(f"[red]{e.predecessor_id} -> {e.successor_id} references missing {', '.join(missing)}[/red]")
    cycle = DependencyGraph(edges).find_cycle()
    if cycle:
        problems += 1
        console.print(f"[red]Cycle: {' -> '.join(cycle)}[/red]")
    if problems:
        raise typer.Exit(1)
    console.print(f"[green]{len(edges)} dependencies, no problems.[/green]")


# ---------------------------------------------------------------------------
# Daily planner
# ---------------------------------------------------------------------------


def _day_placer(store: Store) -> tuple[SchedulePlacer, PlannerConfig]:
    config = store.load_config()
    return SchedulePlacer(store.list_items(), config.window, config.default_duration), config


@app.command()
def day(
    when: Annotated[Optional[str], typer.Argument(help="Day (YYYY-MM-DD), default today")] = None,
) -> None:
    """Show the hour grid for a day and the unscheduled pool."""
    when = when or _today()
    placer, config = _day_placer(_get_store())
    index = placer.day_index(when)

    table = Table(title=f"Plan for {when}")
    table.add_column("Hour")
    table.add_column("Items")
    for hour, slot in index.items():
        cells = []
        for item in slot:
            iv = interval_of(item, None if item.is_fixed else config.default_duration)
            span = f"{format_hhmm(iv.start)}-{format_hhmm(iv.end)}" if iv else "?"
            label = f"{span} {item.title} ({item.id})"
            cells.append(f"[bold]{label}[/bold]" if item.is_fixed else label)
        table.add_row(f"{hour:02d}:00", "\n".join(cells))
    console.print(table)

    pool = placer.unscheduled()
    if pool:
        console.print("\n[bold]Unscheduled[/bold]")
        for item in pool:
            est = f"{item.duration_minutes} min" if item.duration_minutes else "no estimate"
            console.print(f"  {item.id}  {item.title}  [dim]({est})[/dim]")


@app.command()
def place(
    task_id: TaskId,
    start: Annotated[str, typer.Argument(help="Start time (HH:MM)")],
    when: Annotated[Optional[str], typer.Option("--day", help="Day (YYYY-MM-DD), default today")] = None,
    duration: Annotated[Optional[int], typer.Option("--duration", "-d", help="Minutes")] = None,
) -> None:
    """Place a task at a start time; refused if it would overlap."""
    task_id = _parse_task_id(task_id)
    result = service.schedule_item(_get_store(), task_id, when or _today(), start, duration)
    if isinstance(result, Conflict):
        _fail(f"Cannot place {task_id}: {result.reason}.")
    console.print(
        f"[green]Placed {task_id} on {result.day} at {result.start_hhmm} for {result.duration_minutes} min.[/green]"
    )


@app.command()
def unplace(task_id: TaskId) -> None:
    """Return a task to the unscheduled pool."""
    task_id = _parse_task_id(task_id)
    if service.unschedule_item(_get_store(), task_id) is None:
        _fail(f"Task {task_id} not found or is a fixed event.")
    console.print(f"[green]Unscheduled {task_id}.[/green]")


@app.command()
def autofill(
    when: Annotated[Optional[str], typer.Argument(help="Day (YYYY-MM-DD), default today")] = None,
    dry_run: Annotated[bool, typer.Option("--dry-run", help="Preview without saving")] = False,
) -> None:
    """Place unscheduled tasks into the earliest free gaps, urgent ones first."""
    when = when or _today()
    placed, left_over = service.autofill_day(_get_store(), when, dry_run=dry_run)
    if dry_run:
        console.print("\n[bold]Dry run, no changes saved[/bold]\n")
    for p in placed:
        console.print(f"  {p.start_hhmm}  {p.item_id}  ({p.duration_minutes} min)")
    if left_over:
        console.print(f"[yellow]No room for: {', '.join(left_over)}[/yellow]")
    if not placed and not left_over:
        console.print("[dim]Nothing to place.[/dim]")


@app.command()
def optimize(
    when: Annotated[Optional[str], typer.Argument(help="Day (YYYY-MM-DD), default today")] = None,
    yes: Annotated[bool, typer.Option("--yes", "-y", help="Apply without asking")] = False,
) -> None:
    """Ask the configured model for a plan, preview it, then apply on confirmation."""
    when = when or _today()
    store = _get_store()
    placer, config = _day_placer(store)
    if not placer.unscheduled():
        console.print("No unscheduled tasks to optimize.")
        return

    session = PlanningSession(placer, when)
    with console.status("Optimizing schedule..."):
        preview = asyncio.run(session.request(Suggester(config)))
    if preview is None:
        _fail("Failed to optimize schedule; no suggestion was produced.")

    table = Table(title=f"Suggested plan for {when}")
    table.add_column("Start")
    table.add_column("ID")
    table.add_column("Title")
    table.add_column("Minutes")
    for s in sorted(preview.accepted, key=lambda s: s.start):
        table.add_row(s.start_hhmm, s.item_id, placer[s.item_id].title, str(s.duration_minutes))
    console.print(table)
    for r in preview.rejected:
        console.print(f"  [yellow]dropped {r.item_id or '#' + str(r.index)}: {r.reason}[/yellow]")
    if preview.reasoning:
        console.print(f"\n[dim]{preview.reasoning}[/dim]\n")

    if not preview.accepted:
        session.reject()
        console.print("Nothing usable to apply.")
        return
    if not yes and not typer.confirm("Apply this plan?"):
        session.reject()
        console.print("Discarded.")
        return

    report = session.apply(service.commit_placement(store))
    console.print(f"[green]Applied {len(report.applied)} placement(s).[/green]")
    if not report.ok:
        console.print(f"[red]Stopped at {report.failed.item_id}: {report.error}[/red]")
        raise typer.Exit(1)
