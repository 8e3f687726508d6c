"""MCP server for takt: exposes dependency and planner tools to AI assistants."""

from __future__ import annotations

import json

from mcp.server.fastmcp import FastMCP

from takt import service
from takt.graph import DependencyGraph
from takt.logs import setup_logging
from takt.models import Item
from takt.persistence import Store
from takt.placer import Conflict, SchedulePlacer
from takt.timeutil import format_hhmm, interval_of

mcp = FastMCP(
    "takt",
    instructions="""\
takt manages tasks and fixed events. Tasks can depend on other tasks \
(predecessor must finish before successor starts); dependencies can never \
form a cycle. A daily planner places flexible tasks into free time between \
fixed events inside a working window (default 06:00-22:00); placements never \
overlap.

Typical workflow:
1. Use get_predecessor_options before proposing a dependency; only ids in \
"selectable" can be added.
2. Use add_dependency / remove_dependency to change the graph.
3. Use get_day to see what occupies a day and which tasks are unscheduled.
4. Use place_item to put a task at a time; a conflict is reported, never forced.
5. Use unplace_item to return a task to the unscheduled pool.\
""",
)


def _get_store() -> Store:
    return Store()


def _item_to_dict(i: Item, default_duration: int) -> dict:
    d = {"id": i.id, "title": i.title, "kind": i.kind.value, "completed": i.completed}
    if i.duration_minutes is not None:
        d["duration_minutes"] = i.duration_minutes
    if i.due_date:
        d["due_date"] = i.due_date
    iv = interval_of(i, None if i.is_fixed else default_duration)
    if iv is not None:
        d["start"] = format_hhmm(iv.start)
        d["end"] = format_hhmm(iv.end)
    return d


@mcp.tool()
def would_create_cycle(predecessor_id: str, successor_id: str) -> bool:
    """Check whether a proposed dependency would create a cycle.

    Args:
        predecessor_id: Task that must finish first (e.g. "T-1")
        successor_id: Task that would wait on it (e.g. "T-4")
    """
    return DependencyGraph(_get_store().list_edges()).would_create_cycle(predecessor_id, successor_id)


@mcp.tool()
def get_predecessor_options(task_id: str) -> str:
    """List which tasks can and cannot be chosen as a new predecessor of a task.

    Args:
        task_id: Task ID (e.g. "T-5")
    """
    store = _get_store()
    items = store.list_items()
    if task_id not in {i.id for i in items}:
        return f"Error: task {task_id} not found."
    invalid = DependencyGraph(store.list_edges()).invalid_predecessors(task_id)
    return json.dumps({
        "task_id": task_id,
        "selectable": [i.id for i in items if i.id not in invalid],
        "invalid": sorted(invalid),
    }, indent=2)


@mcp.tool()
def get_dependencies(task_id: str) -> str:
    """Show direct and transitive predecessors and successors of a task.

    Args:
        task_id: Task ID (e.g. "T-5")
    """
    graph = DependencyGraph(_get_store().list_edges())
    return json.dumps({
        "task_id": task_id,
        "direct_predecessors": graph.direct_predecessors(task_id),
        "direct_successors": graph.direct_successors(task_id),
        "all_predecessors": sorted(graph.all_predecessors(task_id)),
        "all_successors": sorted(graph.all_successors(task_id)),
    }, indent=2)


@mcp.tool()
def add_dependency(predecessor_id: str, successor_id: str) -> str:
    """Make successor_id depend on predecessor_id. Refused if it would create a cycle.

    Args:
        predecessor_id: Task that must finish first
        successor_id: Task that waits on it
    """
    result = service.add_dependency(_get_store(), predecessor_id, successor_id)
    if not result.ok:
        return f"Error: {result.reason}."
    return f"{successor_id} now depends on {predecessor_id}."


@mcp.tool()
def remove_dependency(predecessor_id: str, successor_id: str) -> str:
    """Remove the dependency predecessor_id -> successor_id.

    Args:
        predecessor_id: Task that must finish first
        successor_id: Task that waits on it
    """
    result = service.remove_dependency(_get_store(), predecessor_id, successor_id)
    if not result.ok:
        return f"Error: {result.reason}."
    return "Dependency removed."


@mcp.tool()
def get_day(day: str) -> str:
    """Show everything placed on a day, grouped by hour, plus the unscheduled pool.

    Args:
        day: Date (YYYY-MM-DD)
    """
    store = _get_store()
    config = store.load_config()
    placer = SchedulePlacer(store.list_items(), config.window, config.default_duration)
    by_hour = {
        f"{hour:02d}:00": [_item_to_dict(i, config.default_duration) for i in slot]
        for hour, slot in placer.day_index(day).items()
        if slot
    }
    return json.dumps({
        "day": day,
        "window": [format_hhmm(config.window.start_minute), format_hhmm(config.window.end_minute)],
        "by_hour": by_hour,
        "unscheduled": [_item_to_dict(i, config.default_duration) for i in placer.unscheduled()],
    }, indent=2)


@mcp.tool()
def place_item(task_id: str, day: str, start: str, duration_minutes: int | None = None) -> str:
    """Place a task on a day at a start time. Refused if it overlaps anything.

    Args:
        task_id: Task ID (e.g. "T-5")
        day: Date (YYYY-MM-DD)
        start: Start time (HH:MM)
        duration_minutes: Optional duration override (minimum 15)
    """
    result = service.schedule_item(_get_store(), task_id, day, start, duration_minutes)
    if isinstance(result, Conflict):
        return f"Error: {result.reason}."
    return f"Placed {task_id} on {result.day} at {result.start_hhmm} for {result.duration_minutes} min."


@mcp.tool()
def unplace_item(task_id: str) -> str:
    """Return a task to the unscheduled pool.

    Args:
        task_id: Task ID (e.g. "T-5")
    """
    if service.unschedule_item(_get_store(), task_id) is None:
        return f"Error: task {task_id} not found or is a fixed event."
    return f"Unscheduled {task_id}."


def main():
    setup_logging()
    mcp.run(transport="stdio")


if __name__ == "__main__":
    main()
