"""Scenario driver — synthetic rollouts that teach the risk model.

The risk model learns from labelled examples, and the labels come from
here.  One **scenario** is a short random rollout against the oracle:

    1. Capture the feature vector of the starting state.
    2. P times: pick a process at random, draw a random request
       (each coordinate uniform in [0, max_request]) and ask the
       ML-augmented Banker's check.  Granted requests are applied; a
       denied requester is recorded as waiting on every other process
       that holds a unit of something it asked for.  Independently,
       with probability ``release_probability`` (0.5 by default), the
       process releases a random amount
       (uniform in [0, max_release], clipped to what it holds).
    3. Label the scenario 1 if the wait-for graph now has a cycle.
    4. Append (features, label) to the oracle's history.

``train_continuously`` loops scenarios until a ``StopFlag`` is set (or a
scenario budget runs out), retraining every ``train_interval`` scenarios
and writing ``model_checkpoint_<count>.dat`` every
``checkpoint_interval``.  On the way out it always trains once more and
saves ``final_model.dat``.

All randomness comes from one injected ``numpy.random.Generator``, so a
driver and an oracle built from identical seeds replay identically.
"""

from __future__ import annotations

from dataclasses import dataclass
from pathlib import Path
from time import monotonic
from typing import TYPE_CHECKING

import numpy as np

from deadlock_oracle.logging import LogLevel
from deadlock_oracle.signals import StopFlag

if TYPE_CHECKING:
    from deadlock_oracle.oracle import DeadlockOracle

CHECKPOINT_TEMPLATE = "model_checkpoint_{count}.dat"
FINAL_MODEL_NAME = "final_model.dat"


@dataclass(frozen=True)
class TrainingReport:
    """Summary of one ``train_continuously`` run."""

    scenarios: int
    deadlocks: int
    checkpoints: tuple[Path, ...]
    final_model: Path
    elapsed_seconds: float
    stopped: bool


class ScenarioDriver:
    """Generate labelled rollouts against an oracle and train its risk model."""

    def __init__(
        self,
        oracle: DeadlockOracle,
        *,
        rng: np.random.Generator | None = None,
        stop_flag: StopFlag | None = None,
        checkpoint_dir: Path | str = ".",
    ) -> None:
        """Create a driver bound to *oracle*.

        Args:
            oracle: The oracle to exercise and train.
            rng: Source of all randomness (fresh, unseeded if None).
            stop_flag: Polled at the head of every training-loop iteration.
            checkpoint_dir: Directory that receives checkpoint files.

        """
        self._oracle = oracle
        self._config = oracle.config
        self._logger = oracle.logger
        self._rng = rng if rng is not None else np.random.default_rng()
        self._stop_flag = stop_flag if stop_flag is not None else StopFlag()
        self._checkpoint_dir = Path(checkpoint_dir)

    @property
    def stop_flag(self) -> StopFlag:
        """Return the flag that ends ``train_continuously``."""
        return self._stop_flag

    @property
    def checkpoint_dir(self) -> Path:
        """Return the directory checkpoints are written to."""
        return self._checkpoint_dir

    # -- Random draws -------------------------------------------------------

    def _random_vector(self, max_units: int) -> list[int]:
        draws = self._rng.integers(0, max_units + 1, size=self._oracle.num_resources)
        return [int(units) for units in draws]

    def _random_process(self) -> int:
        return int(self._rng.integers(self._oracle.num_processes))

    # -- Scenarios ----------------------------------------------------------

    def _record_waits(self, pid: int, request: list[int]) -> None:
        """Make *pid* wait on every other holder of a class it requested."""
        for holder, held in enumerate(self._oracle.allocated):
            if holder == pid:
                continue
            if any(amount > 0 and units > 0 for amount, units in zip(request, held, strict=True)):
                self._oracle.update_wait_edge(pid, holder)

    def run_scenario(self) -> bool:
        """Play one rollout, record it as a training example, return its label."""
        oracle = self._oracle
        record_waits = self._config.record_wait_edges
        if record_waits:
            oracle.clear_wait_edges()

        features = oracle.feature_vector()

        for _ in range(oracle.num_processes):
            pid = self._random_process()
            request = self._random_vector(self._config.max_request)
            if oracle.ml_augmented_bankers(pid, request):
                oracle.allocate(pid, request)
            elif record_waits:
                self._record_waits(pid, request)

            if self._rng.random() < self._config.release_probability:
                drawn = self._random_vector(self._config.max_release)
                held = oracle.allocated[pid]
                oracle.release(pid, [min(amount, units) for amount, units in zip(drawn, held, strict=True)])

        cycles = oracle.detect_cycles()
        deadlocked = bool(cycles)
        if deadlocked:
            self._logger.log(LogLevel.WARNING, f"deadlock detected between processes {cycles}", source="driver")

        oracle.add_training_example(features, deadlocked)
        return deadlocked

    # -- Training loop ------------------------------------------------------

    def checkpoint_path(self, count: int) -> Path:
        """Return the checkpoint file name for *count* scenarios."""
        return self._checkpoint_dir / CHECKPOINT_TEMPLATE.format(count=count)

    def _log_state(self, count: int, started: float) -> None:
        oracle = self._oracle
        self._logger.log(
            LogLevel.INFO,
            f"available={oracle.available} allocated={oracle.allocated}",
            source="driver",
        )
        self._logger.log(
            LogLevel.INFO,
            f"trained on {count} scenarios in {monotonic() - started:.1f}s, "
            f"accuracy {self.calculate_accuracy():.1f}%",
            source="driver",
        )

    def train_continuously(self, max_scenarios: int | None = None) -> TrainingReport:
        """Run scenarios until stopped, training and checkpointing on cadence.

        The stop flag is polled before each scenario; the scenario in
        flight always completes.  A final train + save happens however
        the loop ends.

        Args:
            max_scenarios: Stop after this many scenarios (None = until
                the stop flag is set).

        Returns:
            A summary of the run.

        """
        config = self._config
        self._checkpoint_dir.mkdir(parents=True, exist_ok=True)
        self._logger.log(
            LogLevel.INFO,
            f"starting continuous training, checkpoint every {config.checkpoint_interval} scenarios",
            source="driver",
        )

        started = monotonic()
        count = 0
        deadlocks = 0
        checkpoints: list[Path] = []

        while not self._stop_flag and (max_scenarios is None or count < max_scenarios):
            if self.run_scenario():
                deadlocks += 1
            count += 1

            if count % config.train_interval == 0:
                self._oracle.train_risk_model()
                self._log_state(count, started)

            if count % config.checkpoint_interval == 0:
                path = self.checkpoint_path(count)
                self._oracle.save_model(path)
                checkpoints.append(path)
                self._logger.log(LogLevel.INFO, f"checkpoint saved to {path}", source="driver")

        stopped = self._stop_flag.is_set
        if stopped:
            self._logger.log(LogLevel.INFO, "stop requested, finishing with a final save", source="driver")

        self._oracle.train_risk_model()
        final_model = self._checkpoint_dir / FINAL_MODEL_NAME
        self._oracle.save_model(final_model)

        elapsed = monotonic() - started
        self._logger.log(
            LogLevel.INFO,
            f"training completed: {count} scenarios ({deadlocks} deadlocks) in {elapsed:.1f}s, "
            f"model saved to {final_model}",
            source="driver",
        )
        return TrainingReport(
            scenarios=count,
            deadlocks=deadlocks,
            checkpoints=tuple(checkpoints),
            final_model=final_model,
            elapsed_seconds=elapsed,
            stopped=stopped,
        )

    # -- Instrumentation ----------------------------------------------------

    def calculate_accuracy(self, probes: int | None = None) -> float:
        """Return how often the risk model agrees with the Banker's test.

        Each probe draws a random process and request; the model "says
        safe" when its risk is below the Banker's threshold.  This is an
        instrumentation metric, not a loss.

        Returns:
            The agreement rate as a percentage (100.0 with no processes).

        """
        probes = probes if probes is not None else self._config.accuracy_probes
        oracle = self._oracle
        if oracle.num_processes == 0 or probes <= 0:
            return 100.0

        agreed = 0
        for _ in range(probes):
            pid = self._random_process()
            request = self._random_vector(self._config.max_request)
            bankers_safe = oracle.is_safe(pid, request)
            risk = oracle.predict_deadlock_risk(pid, request)
            ml_safe = risk < self._config.bankers_threshold
            if ml_safe == bankers_safe:
                agreed += 1
            else:
                self._logger.log(
                    LogLevel.DEBUG,
                    f"model disagreed with Banker's on request {request}: "
                    f"risk {risk:.4f}, Banker's {'safe' if bankers_safe else 'unsafe'}",
                    source="accuracy",
                    process_id=pid,
                )
        return agreed * 100.0 / probes
