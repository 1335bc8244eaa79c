"""Allocation state — who holds what, who may ask for what, what is free.

The oracle tracks the textbook Banker's data structures for a fixed
number of resource classes (R) and processes (P):

    - **available[r]** — free units of resource class r.
    - **max_need[p][r]** — the most units of r that process p will ever hold.
    - **allocated[p][r]** — units of r that process p holds right now.
    - **need[p][r]** — ``max_need[p][r] - allocated[p][r]`` (remaining claim).

Invariants kept by the mutation helpers:
    - every ``available[r]`` and ``allocated[p][r]`` stays >= 0;
    - ``allocated[p][r] <= max_need[p][r]`` after a successful allocate;
    - ``available[r] + sum(allocated[p][r])`` (the total inventory) is
      unchanged by allocate and release.

The setters are the exception: ``set_available`` / ``set_max_need``
replace whole vectors with only a shape check, because they define the
session's starting inventory.

Getters always return copies, so callers can never mutate the state
behind the oracle's back.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import TYPE_CHECKING

from deadlock_oracle.errors import InvalidDimensions, InvalidRequest

if TYPE_CHECKING:
    from collections.abc import Sequence


@dataclass(frozen=True)
class StateSnapshot:
    """An immutable copy of the three allocation matrices."""

    available: tuple[int, ...]
    allocated: tuple[tuple[int, ...], ...]
    max_need: tuple[tuple[int, ...], ...]


class AllocationState:
    """Own the available vector and the allocation / maximum-need matrices."""

    def __init__(self, num_resources: int, num_processes: int) -> None:
        """Create a zeroed state for R resource classes and P processes.

        Raises:
            InvalidDimensions: If either count is negative.

        """
        if num_resources < 0 or num_processes < 0:
            msg = f"Counts must be non-negative: R={num_resources}, P={num_processes}"
            raise InvalidDimensions(msg)
        self._num_resources = num_resources
        self._num_processes = num_processes
        self._available: list[int] = [0] * num_resources
        self._allocated: list[list[int]] = [[0] * num_resources for _ in range(num_processes)]
        self._max_need: list[list[int]] = [[0] * num_resources for _ in range(num_processes)]

    # -- Shape checks -------------------------------------------------------

    @property
    def num_resources(self) -> int:
        """Return R, the number of resource classes."""
        return self._num_resources

    @property
    def num_processes(self) -> int:
        """Return P, the number of processes."""
        return self._num_processes

    def check_process(self, pid: int) -> None:
        """Raise InvalidDimensions unless ``0 <= pid < P``."""
        if not 0 <= pid < self._num_processes:
            msg = f"Process id {pid} out of range [0, {self._num_processes})"
            raise InvalidDimensions(msg)

    def check_vector(self, vector: Sequence[int], *, name: str = "vector") -> None:
        """Raise InvalidDimensions unless *vector* has exactly R entries."""
        if len(vector) != self._num_resources:
            msg = f"{name} has length {len(vector)}, expected {self._num_resources}"
            raise InvalidDimensions(msg)

    def _check_matrix(self, matrix: Sequence[Sequence[int]], *, name: str) -> None:
        if len(matrix) != self._num_processes:
            msg = f"{name} has {len(matrix)} rows, expected {self._num_processes}"
            raise InvalidDimensions(msg)
        for row in matrix:
            self.check_vector(row, name=f"{name} row")

    # -- Getters (copies) ---------------------------------------------------

    @property
    def available(self) -> list[int]:
        """Return a copy of the free-units vector."""
        return list(self._available)

    @property
    def allocated(self) -> list[list[int]]:
        """Return a copy of the allocation matrix."""
        return [list(row) for row in self._allocated]

    @property
    def max_need(self) -> list[list[int]]:
        """Return a copy of the maximum-need matrix."""
        return [list(row) for row in self._max_need]

    def need(self, pid: int) -> list[int]:
        """Return the remaining claim of process *pid*."""
        self.check_process(pid)
        return [m - a for m, a in zip(self._max_need[pid], self._allocated[pid], strict=True)]

    def total_inventory(self) -> list[int]:
        """Return free plus held units for each resource class."""
        return [
            self._available[r] + sum(row[r] for row in self._allocated)
            for r in range(self._num_resources)
        ]

    def features(self) -> list[float]:
        """Return allocation rows (row-major) followed by available.

        The vector always has exactly ``R * P + R`` entries.
        """
        features = [float(units) for row in self._allocated for units in row]
        features.extend(float(units) for units in self._available)
        return features

    # -- Setters (whole replacement) ----------------------------------------

    def set_available(self, available: Sequence[int]) -> None:
        """Replace the free-units vector (shape checked only)."""
        self.check_vector(available, name="available")
        self._available = [int(v) for v in available]

    def set_max_need(self, max_need: Sequence[Sequence[int]]) -> None:
        """Replace the maximum-need matrix (shape checked only)."""
        self._check_matrix(max_need, name="max_need")
        self._max_need = [[int(v) for v in row] for row in max_need]

    def set_allocated(self, allocated: Sequence[Sequence[int]]) -> None:
        """Replace the allocation matrix (shape checked only)."""
        self._check_matrix(allocated, name="allocated")
        self._allocated = [[int(v) for v in row] for row in allocated]

    # -- Mutation helpers ---------------------------------------------------

    def allocate(self, pid: int, request: Sequence[int]) -> None:
        """Move *request* units from the free pool to process *pid*.

        Validation happens before any mutation, so a failed call leaves
        the state untouched.

        Raises:
            InvalidDimensions: Bad process id or vector length.
            InvalidRequest: A negative entry, too few free units, or an
                allocation beyond the process's declared maximum.

        """
        self.check_process(pid)
        self.check_vector(request, name="request")
        held = self._allocated[pid]
        for r, amount in enumerate(request):
            if amount < 0:
                msg = f"Request for resource {r} is negative ({amount})"
                raise InvalidRequest(msg)
            if amount > self._available[r]:
                msg = f"Cannot allocate {amount} of resource {r}: only {self._available[r]} available"
                raise InvalidRequest(msg)
            if held[r] + amount > self._max_need[pid][r]:
                msg = (
                    f"Cannot allocate {amount} of resource {r} to process {pid}: "
                    f"exceeds maximum claim {self._max_need[pid][r]} (holds {held[r]})"
                )
                raise InvalidRequest(msg)
        for r, amount in enumerate(request):
            self._available[r] -= amount
            held[r] += amount

    def release(self, pid: int, release: Sequence[int]) -> None:
        """Return *release* units from process *pid* to the free pool.

        Raises:
            InvalidDimensions: Bad process id or vector length.
            InvalidRequest: A negative entry or more units than held.

        """
        self.check_process(pid)
        self.check_vector(release, name="release")
        held = self._allocated[pid]
        for r, amount in enumerate(release):
            if amount < 0:
                msg = f"Release of resource {r} is negative ({amount})"
                raise InvalidRequest(msg)
            if amount > held[r]:
                msg = f"Cannot release {amount} of resource {r}: process {pid} holds {held[r]}"
                raise InvalidRequest(msg)
        for r, amount in enumerate(release):
            held[r] -= amount
            self._available[r] += amount

    # -- Snapshots ----------------------------------------------------------

    def snapshot(self) -> StateSnapshot:
        """Return an immutable copy of the current state."""
        return StateSnapshot(
            available=tuple(self._available),
            allocated=tuple(tuple(row) for row in self._allocated),
            max_need=tuple(tuple(row) for row in self._max_need),
        )

    def restore(self, snapshot: StateSnapshot) -> None:
        """Replace the whole state with *snapshot*.

        Raises:
            InvalidDimensions: If the snapshot shape differs from this state.

        """
        self.check_vector(snapshot.available, name="available")
        self._check_matrix(snapshot.allocated, name="allocated")
        self._check_matrix(snapshot.max_need, name="max_need")
        self.set_available(snapshot.available)
        self.set_allocated(snapshot.allocated)
        self.set_max_need(snapshot.max_need)
