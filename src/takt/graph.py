"""Dependency graph queries and cycle prevention.

Every function takes a snapshot of the edge set and builds its adjacency once
per call. Unknown task ids are not an error; they simply have no neighbours.
"""

from __future__ import annotations

import logging
from collections import deque
from collections.abc import Iterable
from dataclasses import dataclass, field

import networkx as nx

from takt.models import Dependency

logger = logging.getLogger("takt.graph")

EdgeLike = Dependency | tuple[str, str]


def _pair(edge: EdgeLike) -> tuple[str, str]:
    if isinstance(edge, Dependency):
        return edge.predecessor_id, edge.successor_id
    pred, succ = edge
    return pred, succ


def build_graph(edges: Iterable[EdgeLike], nodes: Iterable[str] = ()) -> nx.DiGraph:
    """Forward adjacency: predecessor -> successor."""
    G = nx.DiGraph()
    G.add_nodes_from(nodes)
    G.add_edges_from(_pair(e) for e in edges)
    return G


def _reach(G: nx.DiGraph, start: str, forward: bool = True) -> set[str]:
    """Breadth-first closure from *start*, excluding *start* unless a cycle returns to it."""
    if start not in G:
        return set()
    neighbours = G.successors if forward else G.predecessors
    found: set[str] = set()
    visited = {start}
    queue = deque([start])
    while queue:
        current = queue.popleft()
        for n in neighbours(current):
            found.add(n)
            if n not in visited:
                visited.add(n)
                queue.append(n)
    return found


class DependencyGraph:
    """Read-only view over one snapshot of dependency edges."""

    def __init__(self, edges: Iterable[EdgeLike] = ()):
        self._edges = [_pair(e) for e in edges]
        self._graph = build_graph(self._edges)

    @property
    def edges(self) -> list[tuple[str, str]]:
        return list(self._edges)

    def __contains__(self, edge: EdgeLike) -> bool:
        pred, succ = _pair(edge)
        return self._graph.has_edge(pred, succ)

    def would_create_cycle(self, predecessor_id: str, successor_id: str) -> bool:
        """True if adding predecessor -> successor would close a cycle."""
        if predecessor_id == successor_id:
            return True
        # With the proposed edge added, a cycle exists iff predecessor is
        # already reachable from successor.
        G = self._graph
        if successor_id not in G:
            return False
        visited: set[str] = set()
        stack = [successor_id]
        while stack:
            current = stack.pop()
            if current == predecessor_id:
                return True
            if current in visited:
                continue
            visited.add(current)
            for n in G.successors(current):
                if n not in visited:
                    stack.append(n)
        return False

    def all_predecessors(self, task_id: str) -> set[str]:
        return _reach(self._graph, task_id, forward=False)

    def all_successors(self, task_id: str) -> set[str]:
        return _reach(self._graph, task_id, forward=True)

    def invalid_predecessors(self, task_id: str) -> set[str]:
        """Ids that may not be picked as a new predecessor of *task_id*."""
        return {task_id} | self.all_successors(task_id)

    def direct_predecessors(self, task_id: str) -> list[str]:
        return [p for p, s in self._edges if s == task_id]

    def direct_successors(self, task_id: str) -> list[str]:
        return [s for p, s in self._edges if p == task_id]

    def find_cycle(self) -> list[str] | None:
        try:
            cycle = nx.find_cycle(self._graph)
        except nx.NetworkXNoCycle:
            return None
        return [u for u, _ in cycle] + [cycle[-1][1]]

    def topological_order(self, task_ids: Iterable[str]) -> list[str]:
        """Order *task_ids* so predecessors come first; ties keep input order.

        Raises ValueError if the edges contain a cycle.
        """
        ids = list(dict.fromkeys(task_ids))
        rank = {tid: i for i, tid in enumerate(ids)}
        sub = build_graph(
            ((p, s) for p, s in self._edges if p in rank and s in rank),
            nodes=ids,
        )
        try:
            return list(nx.lexicographical_topological_sort(sub, key=rank.__getitem__))
        except nx.NetworkXUnfeasible as exc:
            raise ValueError("Circular dependency detected") from exc


@dataclass
class BatchCheck:
    """Outcome of validating a batch of new edges against a snapshot."""

    problems: list[str] = field(default_factory=list)
    cycle: list[str] | None = None

    @property
    def ok(self) -> bool:
        return not self.problems and self.cycle is None


def validate_batch(edges: Iterable[EdgeLike], new_edges: Iterable[EdgeLike]) -> BatchCheck:
    """Check a whole set of proposed edges before any of them is persisted."""
    existing = [_pair(e) for e in edges]
    seen = set(existing)
    check = BatchCheck()
    accepted: list[tuple[str, str]] = []
    for pred, succ in (_pair(e) for e in new_edges):
        if pred == succ:
            check.problems.append(f"{pred} cannot depend on itself")
        elif (pred, succ) in seen:
            check.problems.append(f"dependency {pred} -> {succ} already exists")
        else:
            seen.add((pred, succ))
            accepted.append((pred, succ))
    check.cycle = DependencyGraph(existing + accepted).find_cycle()
    if not check.ok:
        logger.debug("Rejected edge batch: problems=%s cycle=%s", check.problems, check.cycle)
    return check


# ---------------------------------------------------------------------------
# Snapshot functions used by the dependency picker
# ---------------------------------------------------------------------------


def would_create_cycle(edges: Iterable[EdgeLike], predecessor_id: str, successor_id: str) -> bool:
    if predecessor_id == successor_id:
        return True
    return DependencyGraph(edges).would_create_cycle(predecessor_id, successor_id)


def get_all_predecessors(edges: Iterable[EdgeLike], task_id: str) -> set[str]:
    return DependencyGraph(edges).all_predecessors(task_id)


def get_all_successors(edges: Iterable[EdgeLike], task_id: str) -> set[str]:
    return DependencyGraph(edges).all_successors(task_id)


def get_invalid_predecessors(edges: Iterable[EdgeLike], task_id: str) -> set[str]:
    return DependencyGraph(edges).invalid_predecessors(task_id)


def get_direct_predecessors(edges: Iterable[EdgeLike], task_id: str) -> list[str]:
    return [p for p, s in map(_pair, edges) if s == task_id]


def get_direct_successors(edges: Iterable[EdgeLike], task_id: str) -> list[str]:
    return [s for p, s in map(_pair, edges) if p == task_id]


def topological_order(edges: Iterable[EdgeLike], task_ids: Iterable[str]) -> list[str]:
    return DependencyGraph(edges).topological_order(task_ids)


def find_cycle(edges: Iterable[EdgeLike]) -> list[str] | None:
    return DependencyGraph(edges).find_cycle()
