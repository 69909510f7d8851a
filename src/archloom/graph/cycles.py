"""Cycle detection: find every node that lies on a directed cycle.

The search runs in two passes.  A breadth-first pass collects the nodes
within ``max_depth`` hops of the start nodes and caches their successors.
An iterative form of Tarjan's strongly-connected-components search then runs
over that region, so the cost is O(V + E) and Python's recursion limit never
applies.  A node is cyclic when its component has more than one member or it
has an edge to itself.
"""

from __future__ import annotations

import logging
from collections import deque
from collections.abc import Callable, Hashable, Iterable, Iterator
from dataclasses import dataclass, field
from typing import Generic, TypeVar

logger = logging.getLogger(__name__)

DEFAULT_MAX_DEPTH = 100

N = TypeVar("N", bound=Hashable)


@dataclass
class CycleSearchResult(Generic[N]):
    """Outcome of :func:`find_cyclic_nodes`.

    ``truncated`` is True when some successors lay further than ``max_depth``
    nodes from every start node and were left out.  A cycle whose nodes all
    sit within that distance of some start node is always reported, and
    every reported node is on a real cycle.
    """

    cyclic: set[N] = field(default_factory=set)
    truncated: bool = False


def _bounded_region(
    start_nodes: Iterable[N],
    successors: Callable[[N], Iterable[N]],
    max_depth: int,
) -> tuple[dict[N, list[N]], bool]:
    """Collect nodes at most ``max_depth - 1`` hops from a start node.

    Returns each collected node's successors, filtered to the region, and
    whether any successor was dropped.
    """
    depth: dict[N, int] = {}
    queue: deque[N] = deque()
    for node in start_nodes:
        if node not in depth:
            depth[node] = 0
            queue.append(node)

    raw: dict[N, list[N]] = {}
    while queue:
        node = queue.popleft()
        raw[node] = list(successors(node))
        if depth[node] + 1 >= max_depth:
            continue
        for succ in raw[node]:
            if succ not in depth:
                depth[succ] = depth[node] + 1
                queue.append(succ)

    truncated = False
    region: dict[N, list[N]] = {}
    for node, succs in raw.items():
        kept = [s for s in succs if s in raw]
        if len(kept) != len(succs):
            truncated = True
        region[node] = kept
    return region, truncated


def find_cyclic_nodes(
    start_nodes: Iterable[N],
    successors: Callable[[N], Iterable[N]],
    *,
    max_depth: int = DEFAULT_MAX_DEPTH,
) -> CycleSearchResult[N]:
    """Return all nodes on a cycle reachable from *start_nodes*.

    *successors* is called at most once per node.  *max_depth* counts the
    nodes on the shortest path from the nearest start node, so a value of 1
    only looks at the start nodes and the edges among them.
    """
    if max_depth < 1:
        msg = f"max_depth must be positive, got {max_depth}"
        raise ValueError(msg)

    graph, truncated = _bounded_region(start_nodes, successors, max_depth)
    result: CycleSearchResult[N] = CycleSearchResult(truncated=truncated)
    index: dict[N, int] = {}
    lowlink: dict[N, int] = {}
    scc_stack: list[N] = []
    on_stack: set[N] = set()
    counter = 0

    def _enter(node: N) -> tuple[N, Iterator[N]]:
        nonlocal counter
        index[node] = lowlink[node] = counter
        counter += 1
        scc_stack.append(node)
        on_stack.add(node)
        return node, iter(graph[node])

    for root in graph:
        if root in index:
            continue

        work: list[tuple[N, Iterator[N]]] = [_enter(root)]
        while work:
            node, pending = work[-1]
            descended = False
            for succ in pending:
                if succ not in index:
                    work.append(_enter(succ))
                    descended = True
                    break
                if succ in on_stack:
                    lowlink[node] = min(lowlink[node], index[succ])
            if descended:
                continue

            # All successors handled: close the node.
            work.pop()
            if work:
                parent = work[-1][0]
                lowlink[parent] = min(lowlink[parent], lowlink[node])

            if lowlink[node] == index[node]:
                component: list[N] = []
                while True:
                    member = scc_stack.pop()
                    on_stack.discard(member)
                    component.append(member)
                    if member == node:
                        break
                if len(component) > 1 or node in graph[node]:
                    result.cyclic.update(component)

    if result.truncated:
        logger.warning(
            "Cycle search reached max depth %d; longer cycles may be unreported", max_depth
        )
    return result
