"""Safety engine — Banker's safe-state test and the Wait-Die rule.

**Banker's algorithm** (avoidance):
    Before granting a request, *simulate* granting it and check whether
    the resulting state is **safe** — whether some ordering exists in
    which every process can obtain its remaining claim from the free
    pool, finish, and hand back everything it holds.

    1. work = copy of available; alloc = copy of allocation.
    2. Refuse if the request exceeds the free pool or the requester's
       remaining claim; otherwise pre-grant it.
    3. Scan processes in ascending id order for the first unfinished
       one whose need fits in work.  Pretend it finishes (work += its
       allocation) and restart the scan from the lowest id.
    4. Safe iff every process finished.

    Ties go to the lowest process id, so the result is deterministic.
    Worst case O(P² · R).

**Wait-Die** (timestamp ordering):
    When a requester conflicts with a holder, an *older* requester
    (smaller timestamp) waits; a *younger* one dies (is aborted and
    retried later).  Only older processes ever wait for younger ones, so
    waits can never form a cycle.
"""

from __future__ import annotations

from typing import TYPE_CHECKING

from deadlock_oracle.errors import InvalidRequest, MissingTimestamp

if TYPE_CHECKING:
    from collections.abc import Mapping, Sequence

    from deadlock_oracle.state import AllocationState


def find_safe_sequence(
    state: AllocationState,
    pid: int | None = None,
    request: Sequence[int] | None = None,
) -> list[int] | None:
    """Return a safe finish order after pre-granting *request* to *pid*.

    With no *pid* the current state is tested as-is.

    Returns:
        The process ids in the order they can finish, or None if the
        request cannot be granted or the resulting state is unsafe.

    Raises:
        InvalidDimensions: Bad process id or vector length.
        InvalidRequest: A negative request entry.

    """
    work = state.available
    alloc = state.allocated
    max_need = state.max_need

    if pid is not None:
        state.check_process(pid)
        request = request if request is not None else [0] * state.num_resources
        state.check_vector(request, name="request")
        claim = state.need(pid)
        for r, amount in enumerate(request):
            if amount < 0:
                msg = f"Request for resource {r} is negative ({amount})"
                raise InvalidRequest(msg)
            if amount > work[r] or amount > claim[r]:
                return None
            work[r] -= amount
            alloc[pid][r] += amount

    finished = [False] * state.num_processes
    sequence: list[int] = []
    progressed = True
    while progressed:
        progressed = False
        for q in range(state.num_processes):
            if finished[q]:
                continue
            if all(max_need[q][r] - alloc[q][r] <= work[r] for r in range(state.num_resources)):
                for r in range(state.num_resources):
                    work[r] += alloc[q][r]
                finished[q] = True
                sequence.append(q)
                progressed = True
                break

    if all(finished):
        return sequence
    return None


def is_safe(state: AllocationState, pid: int, request: Sequence[int]) -> bool:
    """Return True if granting *request* to *pid* leaves the state safe."""
    return find_safe_sequence(state, pid, request) is not None


def wait_die(requester: int, holder: int, timestamps: Mapping[int, float]) -> bool:
    """Decide a conflict under Wait-Die.

    Returns:
        True if the requester should wait (it is older than the holder),
        False if it should be aborted.

    Raises:
        MissingTimestamp: If either process has no timestamp.

    """
    for pid in (requester, holder):
        if pid not in timestamps:
            msg = f"No timestamp for process {pid}"
            raise MissingTimestamp(msg)
    return timestamps[requester] < timestamps[holder]
