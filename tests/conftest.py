"""Shared fixtures: the classic five-process, three-resource system."""

import pytest

from deadlock_oracle.state import AllocationState

TOTAL = [10, 5, 7]
MAX_NEED = [
    [7, 5, 3],
    [3, 2, 2],
    [9, 0, 2],
    [2, 2, 2],
    [4, 3, 3],
]
TEXTBOOK_ALLOCATION = [
    [0, 1, 0],
    [2, 0, 0],
    [3, 0, 2],
    [2, 1, 1],
    [0, 0, 2],
]
TEXTBOOK_AVAILABLE = [3, 3, 2]


@pytest.fixture
def fresh_state() -> AllocationState:
    """Return the classic system with nothing allocated yet."""
    state = AllocationState(3, 5)
    state.set_available(TOTAL)
    state.set_max_need(MAX_NEED)
    return state


@pytest.fixture
def textbook_state() -> AllocationState:
    """Return the textbook Banker's snapshot (available = 3, 3, 2).

    Process  Alloc(A,B,C)  Max(A,B,C)  Need(A,B,C)
    P0       0,1,0         7,5,3       7,4,3
    P1       2,0,0         3,2,2       1,2,2
    P2       3,0,2         9,0,2       6,0,0
    P3       2,1,1         2,2,2       0,1,1
    P4       0,0,2         4,3,3       4,3,1
    """
    state = AllocationState(3, 5)
    state.set_available(TEXTBOOK_AVAILABLE)
    state.set_max_need(MAX_NEED)
    state.set_allocated(TEXTBOOK_ALLOCATION)
    return state
