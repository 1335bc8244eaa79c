"""Risk models — learned scorers that estimate how close a state is to deadlock.

Re-exports public symbols so callers can write::

    from deadlock_oracle.model import NeuralRiskModel, RiskModel
"""

from deadlock_oracle.model.risk import NeuralRiskModel, RiskModel

__all__ = [
    "NeuralRiskModel",
    "RiskModel",
]
