"""Tests for the scenario driver.

The driver plays random request/release rollouts against an oracle,
labels each rollout by whether the wait-for graph ended with a cycle,
and trains the risk model on a fixed cadence, writing checkpoints as it
goes.  A stop flag ends the loop cooperatively.
"""

from collections.abc import Sequence
from pathlib import Path

import numpy as np

from deadlock_oracle.config import OracleConfig
from deadlock_oracle.logging import LogLevel
from deadlock_oracle.oracle import DeadlockOracle
from deadlock_oracle.signals import StopFlag
from deadlock_oracle.training.driver import ScenarioDriver

TOTAL = [10, 5, 7]
MAX_NEED = [[7, 5, 3], [3, 2, 2], [9, 0, 2], [2, 2, 2], [4, 3, 3]]


class FixedRiskModel:
    """Risk model that always returns the same score."""

    def __init__(self, input_size: int, risk: float) -> None:
        """Create a stub returning *risk*."""
        self.input_size = input_size
        self.risk = risk

    def predict(self, features: Sequence[float]) -> float:
        """Return the fixed risk."""
        return self.risk

    def train(self, inputs: Sequence[Sequence[float]], targets: Sequence[float]) -> None:
        """Ignore training."""

    def save(self, path: Path | str) -> None:
        """Write a marker file."""
        Path(path).write_text(str(self.risk))

    def load(self, path: Path | str) -> None:
        """Read the marker file back."""
        self.risk = float(Path(path).read_text())


class CountdownFlag(StopFlag):
    """A stop flag that sets itself after a number of polls."""

    def __init__(self, polls: int) -> None:
        """Allow *polls* loop iterations before stopping."""
        super().__init__()
        self._polls = polls

    def __bool__(self) -> bool:
        """Count down, then report set."""
        self._polls -= 1
        if self._polls < 0:
            self.set()
        return super().__bool__()


def _classic(seed: int = 0, **config: float) -> DeadlockOracle:
    """Create the classic five-process system with a seeded network."""
    oracle = DeadlockOracle(3, 5, config=OracleConfig(**config), rng=np.random.default_rng(seed))
    oracle.set_available(TOTAL)
    oracle.set_max_need(MAX_NEED)
    return oracle


def _driver(oracle: DeadlockOracle, seed: int = 0, **kwargs: object) -> ScenarioDriver:
    """Create a driver with a seeded generator."""
    return ScenarioDriver(oracle, rng=np.random.default_rng(seed), **kwargs)  # type: ignore[arg-type]


# -- Single scenarios ----------------------------------------------------------


class TestRunScenario:
    """Verify one rollout."""

    def test_records_one_example(self) -> None:
        """Each scenario appends exactly one example."""
        oracle = _classic()
        driver = _driver(oracle)
        driver.run_scenario()
        driver.run_scenario()
        expected = 2
        assert len(oracle.history) == expected

    def test_example_uses_starting_features(self) -> None:
        """The features are captured before any request is made."""
        oracle = _classic()
        before = oracle.feature_vector()
        _driver(oracle).run_scenario()
        example = next(iter(oracle.history))
        assert list(example.features) == before

    def test_event_log_stays_bounded(self) -> None:
        """Long runs keep only the newest log entries."""
        capacity = 50
        oracle = _classic(log_capacity=capacity)
        driver = _driver(oracle)
        for _ in range(200):
            driver.run_scenario()
        assert len(oracle.logger) == capacity

    def test_invariants_hold_across_rollouts(self) -> None:
        """Releases are clipped, so nothing ever goes negative."""
        oracle = _classic(seed=4)
        driver = _driver(oracle, seed=4)
        for _ in range(200):
            driver.run_scenario()
            assert oracle.total_inventory() == TOTAL
            assert all(units >= 0 for units in oracle.available)
            for held, claim in zip(oracle.allocated, MAX_NEED, strict=True):
                assert all(0 <= h <= c for h, c in zip(held, claim, strict=True))

    def test_caller_edges_kept_when_recording_disabled(self) -> None:
        """Without recording, a caller-inserted cycle labels every scenario."""
        oracle = _classic(record_wait_edges=False)
        oracle.update_wait_edge(0, 1)
        oracle.update_wait_edge(1, 0)
        driver = _driver(oracle)
        labels = [driver.run_scenario() for _ in range(5)]
        assert all(labels)

    def test_no_edges_means_no_deadlock(self) -> None:
        """Without recording and without caller edges, labels are all 0."""
        oracle = _classic(record_wait_edges=False)
        driver = _driver(oracle)
        assert not any(driver.run_scenario() for _ in range(20))
        assert oracle.history.positives() == 0

    def test_denied_requests_create_wait_edges(self) -> None:
        """Mutually blocked holders eventually form a cycle."""
        oracle = DeadlockOracle(
            1,
            2,
            config=OracleConfig(release_probability=0.0),
            risk_model=FixedRiskModel(3, 0.99),
        )
        oracle.set_max_need([[5], [5]])
        oracle.set_allocated([[1], [1]])
        driver = _driver(oracle, seed=1)
        for _ in range(50):
            driver.run_scenario()
        assert oracle.history.positives() > 0
        assert oracle.logger.filter(min_level=LogLevel.WARNING, source="driver")


# -- Continuous training -------------------------------------------------------


class TestTrainContinuously:
    """Verify the training loop's cadence and shutdown."""

    def test_checkpoint_cadence(self, tmp_path: Path) -> None:
        """Checkpoints are written every checkpoint_interval scenarios."""
        oracle = _classic(train_interval=5, checkpoint_interval=10, accuracy_probes=10)
        report = _driver(oracle, checkpoint_dir=tmp_path).train_continuously(max_scenarios=20)
        expected = 20
        assert report.scenarios == expected
        assert report.checkpoints == (
            tmp_path / "model_checkpoint_10.dat",
            tmp_path / "model_checkpoint_20.dat",
        )
        assert all(path.exists() for path in report.checkpoints)
        assert not report.stopped

    def test_final_model_saved(self, tmp_path: Path) -> None:
        """The loop always ends with final_model.dat."""
        oracle = _classic(train_interval=5)
        report = _driver(oracle, checkpoint_dir=tmp_path).train_continuously(max_scenarios=3)
        assert report.final_model == tmp_path / "final_model.dat"
        assert report.final_model.exists()

    def test_final_model_loads(self, tmp_path: Path) -> None:
        """The final save round-trips into a fresh oracle."""
        oracle = _classic(seed=1, train_interval=5)
        report = _driver(oracle, checkpoint_dir=tmp_path).train_continuously(max_scenarios=10)
        fresh = _classic(seed=2)
        fresh.restore(oracle.snapshot())
        fresh.load_model(report.final_model)
        assert fresh.predict_deadlock_risk(0, [0, 0, 0]) == oracle.predict_deadlock_risk(0, [0, 0, 0])

    def test_stop_flag_set_before_start(self, tmp_path: Path) -> None:
        """A pre-set flag runs no scenarios but still saves."""
        flag = StopFlag()
        flag.set()
        oracle = _classic()
        report = _driver(oracle, stop_flag=flag, checkpoint_dir=tmp_path).train_continuously()
        assert report.scenarios == 0
        assert report.stopped
        assert report.final_model.exists()

    def test_stop_flag_polled_at_loop_head(self, tmp_path: Path) -> None:
        """Scenarios in flight finish; the loop ends at the next poll."""
        oracle = _classic()
        driver = _driver(oracle, stop_flag=CountdownFlag(3), checkpoint_dir=tmp_path)
        report = driver.train_continuously()
        expected = 3
        assert report.scenarios == expected
        assert len(oracle.history) == expected
        assert report.stopped

    def test_training_logged(self, tmp_path: Path) -> None:
        """Each training pass logs the state and the accuracy."""
        oracle = _classic(train_interval=2, accuracy_probes=5)
        _driver(oracle, checkpoint_dir=tmp_path).train_continuously(max_scenarios=4)
        messages = [entry.message for entry in oracle.logger.filter(source="driver")]
        assert any("accuracy" in message for message in messages)
        assert any("training completed" in message for message in messages)


# -- Resumption ----------------------------------------------------------------


class TestResumption:
    """A saved-and-reloaded oracle replays the same future."""

    def test_resumed_oracle_produces_identical_labels(self, tmp_path: Path) -> None:
        """Same state, same weights, same generator → same next-N labels."""
        scenarios = 30
        original = _classic(seed=3)
        warmup = _driver(original, seed=10)
        for _ in range(scenarios):
            warmup.run_scenario()
        original.train_risk_model()
        path = tmp_path / "model.dat"
        original.save_model(path)

        resumed = _classic(seed=99)
        resumed.restore(original.snapshot())
        resumed.load_model(path)

        continued = _driver(original, seed=5)
        replayed = _driver(resumed, seed=5)
        labels_a = [continued.run_scenario() for _ in range(scenarios)]
        labels_b = [replayed.run_scenario() for _ in range(scenarios)]
        assert labels_a == labels_b
        assert original.snapshot() == resumed.snapshot()


# -- Accuracy ------------------------------------------------------------------


class TestCalculateAccuracy:
    """Verify the agreement metric."""

    def _always_safe(self, risk: float) -> DeadlockOracle:
        """One process, ample inventory: every probe is Banker's-safe."""
        oracle = DeadlockOracle(1, 1, risk_model=FixedRiskModel(2, risk))
        oracle.set_available([100])
        oracle.set_max_need([[5]])
        return oracle

    def test_full_agreement(self) -> None:
        """A zero-risk model agrees with an always-safe Banker's."""
        full = 100.0
        assert _driver(self._always_safe(0.0)).calculate_accuracy() == full

    def test_full_disagreement(self) -> None:
        """A high-risk model disagrees every time, and says so in the log."""
        oracle = self._always_safe(0.99)
        assert _driver(oracle).calculate_accuracy(probes=10) == 0.0
        disagreements = 10
        assert len(oracle.logger.filter(source="accuracy")) == disagreements

    def test_percentage_range(self) -> None:
        """The real network yields a percentage."""
        accuracy = _driver(_classic()).calculate_accuracy()
        full = 100.0
        assert 0.0 <= accuracy <= full

    def test_no_processes(self) -> None:
        """With P=0 there is nothing to disagree about."""
        full = 100.0
        assert _driver(DeadlockOracle(3, 0)).calculate_accuracy() == full
