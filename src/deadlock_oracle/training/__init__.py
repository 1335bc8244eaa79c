"""Scenario rollouts and training history for the risk model.

Re-exports public symbols so callers can write::

    from deadlock_oracle.training import ScenarioDriver, TrainingHistory
"""

from deadlock_oracle.training.driver import ScenarioDriver, TrainingReport
from deadlock_oracle.training.history import TrainingExample, TrainingHistory

__all__ = [
    "ScenarioDriver",
    "TrainingExample",
    "TrainingHistory",
    "TrainingReport",
]
