"""Wait-for graph and cycle detection.

A **wait-for graph** has one vertex per process and an edge ``p → q``
whenever p is blocked on a resource that q holds.  A directed cycle
means every process on it waits for the next one, forever: that is a
deadlock that already exists, as opposed to the *risk* of one that the
Banker's algorithm guards against.

Cycle detection is a depth-first search with three marks per vertex:

    - **unvisited** — not reached yet.
    - **on_path** — on the current DFS path (an ancestor of the cursor).
    - **finished** — fully explored; no undiscovered cycle runs through it.

An edge into an ``on_path`` vertex is a back edge; the path suffix
starting at that vertex is a cycle.  Roots are tried in ascending id
order and successors in ascending target id, so the output is
deterministic.  The search uses an explicit stack of successor
iterators rather than recursion.
"""

from __future__ import annotations

from enum import StrEnum

from deadlock_oracle.errors import InvalidDimensions


class _Mark(StrEnum):
    UNVISITED = "unvisited"
    ON_PATH = "on_path"
    FINISHED = "finished"


class WaitForGraph:
    """Directed graph of "p waits for q" edges over process ids 0..P-1.

    Successor sets make duplicate edges impossible, so ``add_edge`` is
    idempotent.  The graph is only ever cleared by its owner.
    """

    def __init__(self, num_processes: int) -> None:
        """Create an empty graph over *num_processes* vertices."""
        self._num_processes = num_processes
        self._edges: dict[int, set[int]] = {}

    @property
    def num_processes(self) -> int:
        """Return the number of vertices."""
        return self._num_processes

    def _check(self, pid: int) -> None:
        if not 0 <= pid < self._num_processes:
            msg = f"Process id {pid} out of range [0, {self._num_processes})"
            raise InvalidDimensions(msg)

    def add_edge(self, waiter: int, holder: int) -> None:
        """Record that *waiter* is blocked on a resource *holder* owns.

        Raises:
            InvalidDimensions: If either id is out of range.

        """
        self._check(waiter)
        self._check(holder)
        self._edges.setdefault(waiter, set()).add(holder)

    def has_edge(self, waiter: int, holder: int) -> bool:
        """Return True if the edge ``waiter → holder`` exists."""
        return holder in self._edges.get(waiter, set())

    def successors(self, pid: int) -> list[int]:
        """Return the processes *pid* waits for, in ascending order."""
        return sorted(self._edges.get(pid, set()))

    def edges(self) -> dict[int, set[int]]:
        """Return a copy of the adjacency mapping."""
        return {pid: set(targets) for pid, targets in self._edges.items() if targets}

    def clear(self) -> None:
        """Remove every edge."""
        self._edges.clear()

    def __len__(self) -> int:
        """Return the number of edges."""
        return sum(len(targets) for targets in self._edges.values())


def _canonical(cycle: list[int]) -> tuple[int, ...]:
    """Rotate *cycle* so its smallest id comes first."""
    start = cycle.index(min(cycle))
    return tuple(cycle[start:] + cycle[:start])


def detect_cycles(graph: WaitForGraph) -> list[list[int]]:
    """Find cycles in the wait-for graph.

    Every reported cycle is listed in traversal order.  The same cycle is
    never reported twice, even if it is reachable from several roots.  A
    self-loop ``p → p`` is reported as ``[p]``.

    Returns:
        A list of cycles; empty if and only if the graph is acyclic.

    """
    marks = dict.fromkeys(range(graph.num_processes), _Mark.UNVISITED)
    cycles: list[list[int]] = []
    seen: set[tuple[int, ...]] = set()

    for root in range(graph.num_processes):
        if marks[root] is not _Mark.UNVISITED:
            continue
        marks[root] = _Mark.ON_PATH
        path = [root]
        stack = [iter(graph.successors(root))]

        while stack:
            nxt = next(stack[-1], None)
            if nxt is None:
                stack.pop()
                marks[path.pop()] = _Mark.FINISHED
                continue
            if marks[nxt] is _Mark.ON_PATH:
                cycle = path[path.index(nxt) :]
                key = _canonical(cycle)
                if key not in seen:
                    seen.add(key)
                    cycles.append(cycle)
            elif marks[nxt] is _Mark.UNVISITED:
                marks[nxt] = _Mark.ON_PATH
                path.append(nxt)
                stack.append(iter(graph.successors(nxt)))

    return cycles
