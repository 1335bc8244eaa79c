"""The deadlock-safety oracle — classical tests with a learned second opinion.

``DeadlockOracle`` owns the allocation state, the wait-for graph, the
risk model and the training history, and answers one question: *may
this request be granted without risking deadlock?*

Two hybrid rules combine a classical predicate with the risk score:

    - **ML-augmented Banker's** — grant iff the Banker's test says the
      resulting state is safe AND ``risk < bankers_threshold`` (0.5).
    - **ML-augmented Wait-Die** — wait iff Wait-Die says wait AND
      ``risk < wait_die_threshold`` (0.7); otherwise abort.

The risk score is computed from the *current* posture only: allocation
rows (row-major) followed by the available vector, ``R·P + R`` floats.
The candidate request is validated but is not part of the feature, so
two different requests from the same state get the same score.

Outcomes are reported as a ``Decision`` (allocate / deny / wait / abort);
a denial is a normal answer, not an error.
"""

from __future__ import annotations

from enum import StrEnum
from typing import TYPE_CHECKING

from deadlock_oracle.config import OracleConfig
from deadlock_oracle.errors import InvalidDimensions
from deadlock_oracle.graph import WaitForGraph, detect_cycles
from deadlock_oracle.logging import Logger, LogLevel
from deadlock_oracle.model.risk import NeuralRiskModel, RiskModel
from deadlock_oracle.safety import find_safe_sequence, wait_die
from deadlock_oracle.state import AllocationState, StateSnapshot
from deadlock_oracle.training.history import TrainingHistory

if TYPE_CHECKING:
    from collections.abc import Mapping, Sequence
    from pathlib import Path

    import numpy as np


class Decision(StrEnum):
    """Externally observable answers of the decision policy."""

    ALLOCATE = "allocate"
    DENY = "deny"
    WAIT = "wait"
    ABORT = "abort"


class DeadlockOracle:
    """Resource-allocation safety oracle for R resource classes and P processes.

    Usage::

        oracle = DeadlockOracle(3, 5)
        oracle.set_available([10, 5, 7])
        oracle.set_max_need([[7, 5, 3], [3, 2, 2], [9, 0, 2], [2, 2, 2], [4, 3, 3]])
        if oracle.ml_augmented_bankers(0, [1, 0, 2]):
            oracle.allocate(0, [1, 0, 2])

    """

    def __init__(
        self,
        num_resources: int,
        num_processes: int,
        *,
        config: OracleConfig | None = None,
        risk_model: RiskModel | None = None,
        rng: np.random.Generator | None = None,
        logger: Logger | None = None,
    ) -> None:
        """Create an oracle with zeroed state.

        Args:
            num_resources: R, the number of resource classes.
            num_processes: P, the number of processes.
            config: Thresholds and model settings (defaults if None).
            risk_model: A custom risk scorer; a ``NeuralRiskModel`` is
                built from *rng* when omitted.
            rng: Generator used to initialise the default risk model.
            logger: Event log (a fresh one bounded by
                ``config.log_capacity`` if None).

        Raises:
            InvalidDimensions: If the counts are negative or the risk
                model expects a different feature length.

        """
        self._config = config if config is not None else OracleConfig()
        self._state = AllocationState(num_resources, num_processes)
        self._graph = WaitForGraph(num_processes)
        self._history = TrainingHistory(limit=self._config.history_limit)
        self._logger = logger if logger is not None else Logger(capacity=self._config.log_capacity)

        feature_size = num_resources * num_processes + num_resources
        if risk_model is None:
            risk_model = NeuralRiskModel(
                feature_size,
                self._config.hidden_size,
                learning_rate=self._config.learning_rate,
                rng=rng,
            )
        if risk_model.input_size != feature_size:
            msg = f"Risk model expects {risk_model.input_size} features, oracle produces {feature_size}"
            raise InvalidDimensions(msg)
        self._risk_model = risk_model

    # -- Collaborators ------------------------------------------------------

    @property
    def config(self) -> OracleConfig:
        """Return the active configuration."""
        return self._config

    @property
    def logger(self) -> Logger:
        """Return the event log."""
        return self._logger

    @property
    def risk_model(self) -> RiskModel:
        """Return the risk scorer."""
        return self._risk_model

    @property
    def history(self) -> TrainingHistory:
        """Return the accumulated training examples."""
        return self._history

    @property
    def num_resources(self) -> int:
        """Return R, the number of resource classes."""
        return self._state.num_resources

    @property
    def num_processes(self) -> int:
        """Return P, the number of processes."""
        return self._state.num_processes

    @property
    def feature_size(self) -> int:
        """Return the feature-vector length, ``R·P + R``."""
        return self.num_resources * self.num_processes + self.num_resources

    # -- Allocation state ---------------------------------------------------

    @property
    def available(self) -> list[int]:
        """Return a copy of the free-units vector."""
        return self._state.available

    @property
    def allocated(self) -> list[list[int]]:
        """Return a copy of the allocation matrix."""
        return self._state.allocated

    @property
    def max_need(self) -> list[list[int]]:
        """Return a copy of the maximum-need matrix."""
        return self._state.max_need

    def set_available(self, available: Sequence[int]) -> None:
        """Replace the free-units vector."""
        self._state.set_available(available)

    def set_max_need(self, max_need: Sequence[Sequence[int]]) -> None:
        """Replace the maximum-need matrix."""
        self._state.set_max_need(max_need)

    def set_allocated(self, allocated: Sequence[Sequence[int]]) -> None:
        """Replace the allocation matrix."""
        self._state.set_allocated(allocated)

    def need(self, pid: int) -> list[int]:
        """Return the remaining claim of process *pid*."""
        return self._state.need(pid)

    def total_inventory(self) -> list[int]:
        """Return free plus held units for each resource class."""
        return self._state.total_inventory()

    def allocate(self, pid: int, request: Sequence[int]) -> None:
        """Hand *request* units to process *pid* (no safety check)."""
        self._state.allocate(pid, request)
        self._logger.log(LogLevel.DEBUG, f"allocated {list(request)}", source="state", process_id=pid)

    def release(self, pid: int, release: Sequence[int]) -> None:
        """Take *release* units back from process *pid*."""
        self._state.release(pid, release)
        self._logger.log(LogLevel.DEBUG, f"released {list(release)}", source="state", process_id=pid)

    def snapshot(self) -> StateSnapshot:
        """Return an immutable copy of the allocation state."""
        return self._state.snapshot()

    def restore(self, snapshot: StateSnapshot) -> None:
        """Replace the allocation state with *snapshot*."""
        self._state.restore(snapshot)

    # -- Wait-for graph -----------------------------------------------------

    def update_wait_edge(self, pid: int, other_pid: int) -> None:
        """Record that *pid* waits on a resource held by *other_pid*."""
        self._graph.add_edge(pid, other_pid)

    def wait_edges(self) -> dict[int, set[int]]:
        """Return a copy of the wait-for adjacency mapping."""
        return self._graph.edges()

    def clear_wait_edges(self) -> None:
        """Remove every wait-for edge."""
        self._graph.clear()

    def detect_cycles(self) -> list[list[int]]:
        """Return the cycles in the wait-for graph (empty if none)."""
        return detect_cycles(self._graph)

    # -- Classical predicates -----------------------------------------------

    def is_safe(self, pid: int, request: Sequence[int]) -> bool:
        """Return True if granting *request* to *pid* keeps the state safe."""
        return find_safe_sequence(self._state, pid, request) is not None

    def is_safe_state(self) -> bool:
        """Return True if the current state is safe with nothing granted."""
        return find_safe_sequence(self._state) is not None

    def safe_sequence(self, pid: int | None = None, request: Sequence[int] | None = None) -> list[int] | None:
        """Return a safe finish order (after an optional pre-grant), or None."""
        return find_safe_sequence(self._state, pid, request)

    def wait_die(self, requester: int, holder: int, timestamps: Mapping[int, float]) -> bool:
        """Return True if *requester* should wait for *holder* under Wait-Die."""
        return wait_die(requester, holder, timestamps)

    # -- Risk model ---------------------------------------------------------

    def feature_vector(self) -> list[float]:
        """Return allocation rows then available, ``R·P + R`` floats."""
        return self._state.features()

    def predict_deadlock_risk(self, pid: int, request: Sequence[int]) -> float:
        """Score the current posture for a request by *pid*.

        The request is shape-checked but does not enter the feature vector.

        Raises:
            InvalidDimensions: Bad process id or request length.

        """
        self._state.check_process(pid)
        self._state.check_vector(request, name="request")
        risk = self._risk_model.predict(self.feature_vector())
        self._logger.log(LogLevel.DEBUG, f"deadlock risk {risk:.4f}", source="risk", process_id=pid)
        return risk

    def ml_augmented_bankers(self, pid: int, request: Sequence[int]) -> bool:
        """Return True iff Banker's says safe AND the risk is below threshold.

        Raises:
            InvalidDimensions: Bad process id or request length.
            InvalidRequest: A negative request entry; that is malformed
                input, not a risky request, so it is never just denied.

        """
        safe = self.is_safe(pid, request)
        risk = self.predict_deadlock_risk(pid, request)
        return safe and risk < self._config.bankers_threshold

    def ml_augmented_wait_die(self, requester: int, holder: int, timestamps: Mapping[int, float]) -> bool:
        """Return True iff Wait-Die says wait AND the risk is below threshold.

        The risk is scored for a nominal one-unit-of-everything request.
        """
        self._state.check_process(holder)
        should_wait = wait_die(requester, holder, timestamps)
        risk = self.predict_deadlock_risk(requester, [1] * self.num_resources)
        return should_wait and risk < self._config.wait_die_threshold

    # -- Decisions ----------------------------------------------------------

    def decide_request(self, pid: int, request: Sequence[int]) -> Decision:
        """Return ALLOCATE or DENY for a request (state is not changed)."""
        if self.ml_augmented_bankers(pid, request):
            return Decision.ALLOCATE
        self._logger.log(LogLevel.INFO, f"denied request {list(request)}", source="policy", process_id=pid)
        return Decision.DENY

    def decide_conflict(self, requester: int, holder: int, timestamps: Mapping[int, float]) -> Decision:
        """Return WAIT or ABORT for a requester blocked by *holder*."""
        if self.ml_augmented_wait_die(requester, holder, timestamps):
            return Decision.WAIT
        self._logger.log(LogLevel.INFO, f"aborted while waiting on {holder}", source="policy", process_id=requester)
        return Decision.ABORT

    def request(self, pid: int, request: Sequence[int]) -> Decision:
        """Decide a request and apply it when allowed."""
        decision = self.decide_request(pid, request)
        if decision is Decision.ALLOCATE:
            self.allocate(pid, request)
        return decision

    # -- Training -----------------------------------------------------------

    def add_training_example(self, features: Sequence[float], led_to_deadlock: bool) -> None:
        """Append a labelled example to the history.

        Raises:
            InvalidDimensions: If *features* is not ``R·P + R`` long.

        """
        if len(features) != self.feature_size:
            msg = f"Feature vector has length {len(features)}, expected {self.feature_size}"
            raise InvalidDimensions(msg)
        self._history.add(features, led_to_deadlock)

    def train_risk_model(self) -> None:
        """Replay the whole history through the risk model once."""
        if not self._history:
            return
        inputs, targets = self._history.batch()
        self._risk_model.train(inputs, targets)
        self._logger.log(
            LogLevel.INFO,
            f"trained risk model on {len(inputs)} examples ({self._history.positives()} deadlocks)",
            source="risk",
        )

    def save_model(self, path: Path | str) -> None:
        """Persist the risk model parameters to *path*."""
        self._risk_model.save(path)
        self._logger.log(LogLevel.INFO, f"model saved to {path}", source="risk")

    def load_model(self, path: Path | str) -> None:
        """Load risk model parameters from *path*."""
        self._risk_model.load(path)
        self._logger.log(LogLevel.INFO, f"model loaded from {path}", source="risk")
