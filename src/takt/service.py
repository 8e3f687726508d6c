"""Store mutations gated by the graph and placement checks.

Rejected mutations come back as typed results with a human-readable reason;
nothing is written in that case.
"""

from __future__ import annotations

import logging
from collections.abc import Callable
from dataclasses import dataclass, field

from takt.graph import DependencyGraph, validate_batch
from takt.models import Dependency, Item, ItemKind
from takt.persistence import Store
from takt.placer import Conflict, Placement, SchedulePlacer

logger = logging.getLogger("takt.service")

CYCLE_MESSAGE = "this dependency would create a cycle"


@dataclass(frozen=True)
class EdgeResult:
    ok: bool
    edge: Dependency
    reason: str | None = None


@dataclass
class ChainResult:
    created: list[Item] = field(default_factory=list)
    edges: list[Dependency] = field(default_factory=list)
    problems: list[str] = field(default_factory=list)

    @property
    def ok(self) -> bool:
        return not self.problems


def check_dependency(store: Store, predecessor_id: str, successor_id: str) -> EdgeResult:
    """Validate a proposed edge without writing it."""
    edge = Dependency(predecessor_id, successor_id)
    known = {i.id for i in store.list_items()}
    for tid in (predecessor_id, successor_id):
        if tid not in known:
            return EdgeResult(False, edge, f"task {tid} not found")
    if predecessor_id == successor_id:
        return EdgeResult(False, edge, "a task cannot depend on itself")
    graph = DependencyGraph(store.list_edges())
    if edge in graph:
        return EdgeResult(False, edge, "dependency already exists")
    if graph.would_create_cycle(predecessor_id, successor_id):
        return EdgeResult(False, edge, CYCLE_MESSAGE)
    return EdgeResult(True, edge)


def add_dependency(store: Store, predecessor_id: str, successor_id: str) -> EdgeResult:
    result = check_dependency(store, predecessor_id, successor_id)
    if not result.ok:
        logger.info("Refused dependency %s -> %s: %s", predecessor_id, successor_id, result.reason)
        return result
    store.create_edge(predecessor_id, successor_id)
    return result


def remove_dependency(store: Store, predecessor_id: str, successor_id: str) -> EdgeResult:
    edge = Dependency(predecessor_id, successor_id)
    if not store.delete_edge(predecessor_id, successor_id):
        return EdgeResult(False, edge, f"{successor_id} does not depend on {predecessor_id}")
    return EdgeResult(True, edge)


def delete_item(store: Store, item_id: str) -> bool:
    """Delete an item; its dependencies go with it, other items stay."""
    return store.delete_item(item_id)


def create_task_chain(
    store: Store,
    titles: list[str],
    category: str | None = None,
    after: str | None = None,
) -> ChainResult:
    """Create tasks where each one depends on the one before it.

    *after* optionally links the first new task to an existing task. The
    whole chain is validated before anything is written, and nothing is
    written if any edge would be invalid.
    """
    result = ChainResult()
    titles = [t.strip() for t in titles if t and t.strip()]
    if not titles:
        result.problems.append("no tasks provided for the chain")
        return result

    existing = store.list_items()
    if after is not None and after not in {i.id for i in existing}:
        result.problems.append(f"task {after} not found")
        return result

    next_num = int(store.generate_id().split("-")[1])
    items = [
        Item(id=f"T-{next_num + n}", title=title, kind=ItemKind.FLEXIBLE, category=category)
        for n, title in enumerate(titles)
    ]
    ids = [i.id for i in items]
    if after is not None:
        ids.insert(0, after)
    edges = [Dependency(p, s) for p, s in zip(ids, ids[1:])]

    check = validate_batch(store.list_edges(), edges)
    if not check.ok:
        result.problems.extend(check.problems)
        if check.cycle:
            result.problems.append(f"{CYCLE_MESSAGE}: {' -> '.join(check.cycle)}")
        return result

    store.add_items(items, edges)
    result.created, result.edges = items, edges
    return result


def _placer(store: Store) -> SchedulePlacer:
    config = store.load_config()
    return SchedulePlacer(store.list_items(), config.window, config.default_duration)


def commit_placement(store: Store) -> Callable[[Placement], Item]:
    """Callback that writes an accepted placement onto the item record."""

    def _commit(p: Placement) -> Item:
        return store.update_item(
            p.item_id,
            {"scheduled_date": p.day, "scheduled_start": p.start_hhmm, "duration_minutes": p.duration_minutes},
        )

    return _commit


def schedule_item(
    store: Store,
    item_id: str,
    day: str,
    start_time: str,
    duration_minutes: int | None = None,
) -> Placement | Conflict:
    result = _placer(store).place_at(item_id, day, start_time, duration_minutes)
    if isinstance(result, Placement):
        commit_placement(store)(result)
    return result


def unschedule_item(store: Store, item_id: str) -> Item | None:
    item = store.get_item(item_id)
    if item is None or item.is_fixed:
        return None
    return store.update_item(item_id, {"scheduled_date": None, "scheduled_start": None})


def autofill_day(store: Store, day: str, dry_run: bool = False) -> tuple[list[Placement], list[str]]:
    """First-fit every unscheduled task into *day* and persist the result."""
    placed, left_over = _placer(store).first_fit(day)
    if not dry_run:
        commit = commit_placement(store)
        for p in placed:
            commit(p)
    return placed, left_over
