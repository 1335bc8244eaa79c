"""Deadlock oracle — Banker's, Wait-Die and a learned risk score.

Re-exports the public surface so callers can write::

    from deadlock_oracle import DeadlockOracle, ScenarioDriver, StopFlag
"""

from deadlock_oracle.config import OracleConfig, load_config
from deadlock_oracle.errors import (
    InvalidDimensions,
    InvalidRequest,
    MissingTimestamp,
    ModelIOFailure,
    OracleError,
)
from deadlock_oracle.graph import WaitForGraph, detect_cycles
from deadlock_oracle.logging import LogEntry, Logger, LogLevel
from deadlock_oracle.model import NeuralRiskModel, RiskModel
from deadlock_oracle.oracle import DeadlockOracle, Decision
from deadlock_oracle.safety import find_safe_sequence, is_safe, wait_die
from deadlock_oracle.signals import StopFlag, install_interrupt_handler
from deadlock_oracle.state import AllocationState, StateSnapshot
from deadlock_oracle.training import ScenarioDriver, TrainingExample, TrainingHistory, TrainingReport

__all__ = [
    "AllocationState",
    "DeadlockOracle",
    "Decision",
    "InvalidDimensions",
    "InvalidRequest",
    "LogEntry",
    "LogLevel",
    "Logger",
    "MissingTimestamp",
    "ModelIOFailure",
    "NeuralRiskModel",
    "OracleConfig",
    "OracleError",
    "RiskModel",
    "ScenarioDriver",
    "StateSnapshot",
    "StopFlag",
    "TrainingExample",
    "TrainingHistory",
    "TrainingReport",
    "WaitForGraph",
    "detect_cycles",
    "find_safe_sequence",
    "install_interrupt_handler",
    "is_safe",
    "load_config",
    "wait_die",
]
