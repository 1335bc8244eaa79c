"""Deadlock risk model — a tiny feed-forward regressor.

The Banker's algorithm answers "is this state safe?" exactly, but only
for what the processes have *declared*.  The risk model is a learned
second opinion: it looks at the current allocation posture and scores it
in (0, 1), where higher means "states like this tended to end in a
wait-for cycle during training rollouts".

Architecture (deliberately small so training is reproducible):

    input (R·P + R) ──W1,b1──▶ σ ──▶ hidden (H) ──W2,b2──▶ σ ──▶ risk

Training is plain online SGD: one in-order pass over the batch, one
update per example, mean-squared error at the output, and the logistic
derivative σ(z)(1 − σ(z)) on both layers.  No shuffling, no epochs, no
momentum — the score stays responsive to the most recent rollouts.

Design: Strategy pattern
    The oracle only talks to the ``RiskModel`` protocol, so a richer
    model can be dropped in without touching the decision policy.
"""

from __future__ import annotations

import zipfile
from pathlib import Path
from typing import TYPE_CHECKING, Protocol

import numpy as np

from deadlock_oracle.errors import InvalidDimensions, ModelIOFailure

if TYPE_CHECKING:
    from collections.abc import Sequence

# Pre-activations are clipped so σ stays strictly inside (0, 1) in float64.
_LOGIT_LIMIT = 35.0

_PARAMETER_NAMES = ("w1", "b1", "w2", "b2")


def _sigmoid(z: np.ndarray) -> np.ndarray:
    """Return the logistic function, saturating instead of overflowing."""
    return 1.0 / (1.0 + np.exp(-np.clip(z, -_LOGIT_LIMIT, _LOGIT_LIMIT)))


class RiskModel(Protocol):
    """Interface that every risk scorer must satisfy.

    - predict: map a feature vector to a risk in (0, 1).
    - train: consume a batch of (features, label) pairs.
    - save / load: persist parameters as an opaque blob.
    """

    @property
    def input_size(self) -> int:
        """Return the expected feature-vector length."""
        ...  # pragma: no cover

    def predict(self, features: Sequence[float]) -> float:
        """Return the risk score for one feature vector."""
        ...  # pragma: no cover

    def train(self, inputs: Sequence[Sequence[float]], targets: Sequence[float]) -> None:
        """Run one training pass over a batch."""
        ...  # pragma: no cover

    def save(self, path: Path | str) -> None:
        """Persist the parameters to *path*."""
        ...  # pragma: no cover

    def load(self, path: Path | str) -> None:
        """Replace the parameters with those stored at *path*."""
        ...  # pragma: no cover


class NeuralRiskModel:
    """Single-hidden-layer logistic network scoring deadlock risk.

    Parameters are drawn from N(0, 1) scaled by 0.1 using the supplied
    generator, so two models built from identically seeded generators
    are identical.
    """

    def __init__(
        self,
        input_size: int,
        hidden_size: int = 10,
        *,
        learning_rate: float = 0.1,
        rng: np.random.Generator | None = None,
    ) -> None:
        """Create a randomly initialised model.

        Args:
            input_size: Length of the feature vector (R·P + R).
            hidden_size: Number of hidden units.
            learning_rate: SGD step size.
            rng: Random generator used for initialisation.

        """
        if input_size < 0 or hidden_size <= 0:
            msg = f"Invalid model shape: input={input_size}, hidden={hidden_size}"
            raise InvalidDimensions(msg)
        rng = rng if rng is not None else np.random.default_rng()
        self._input_size = input_size
        self._hidden_size = hidden_size
        self._learning_rate = learning_rate
        self._w1 = rng.standard_normal((input_size, hidden_size)) * 0.1
        self._w2 = rng.standard_normal((hidden_size, 1)) * 0.1
        self._b1 = rng.standard_normal(hidden_size) * 0.1
        self._b2 = rng.standard_normal(1) * 0.1

    @property
    def input_size(self) -> int:
        """Return the expected feature-vector length."""
        return self._input_size

    @property
    def hidden_size(self) -> int:
        """Return the number of hidden units."""
        return self._hidden_size

    @property
    def learning_rate(self) -> float:
        """Return the SGD step size."""
        return self._learning_rate

    def parameters(self) -> dict[str, np.ndarray]:
        """Return copies of the weight matrices and bias vectors."""
        return {
            "w1": self._w1.copy(),
            "b1": self._b1.copy(),
            "w2": self._w2.copy(),
            "b2": self._b2.copy(),
        }

    def _as_input(self, features: Sequence[float]) -> np.ndarray:
        x = np.asarray(features, dtype=np.float64)
        if x.shape != (self._input_size,):
            msg = f"Feature vector has shape {x.shape}, expected ({self._input_size},)"
            raise InvalidDimensions(msg)
        return x

    def _forward(self, x: np.ndarray) -> tuple[np.ndarray, float]:
        hidden = _sigmoid(x @ self._w1 + self._b1)
        output = _sigmoid(hidden @ self._w2 + self._b2)
        return hidden, float(output[0])

    def predict(self, features: Sequence[float]) -> float:
        """Return the risk score for one feature vector.

        Raises:
            InvalidDimensions: If the vector length differs from ``input_size``.

        """
        _, output = self._forward(self._as_input(features))
        return output

    def train(self, inputs: Sequence[Sequence[float]], targets: Sequence[float]) -> None:
        """Run one in-order SGD pass, one update per example.

        Args:
            inputs: Feature vectors.
            targets: Parallel labels in {0, 1}.

        Raises:
            InvalidDimensions: If the batch lengths differ or a vector is
                the wrong size.

        """
        if len(inputs) != len(targets):
            msg = f"Batch mismatch: {len(inputs)} inputs, {len(targets)} targets"
            raise InvalidDimensions(msg)
        lr = self._learning_rate
        for features, target in zip(inputs, targets, strict=True):
            x = self._as_input(features)
            hidden, output = self._forward(x)

            output_delta = (output - float(target)) * output * (1.0 - output)
            hidden_delta = self._w2[:, 0] * output_delta * hidden * (1.0 - hidden)

            self._b2 -= lr * output_delta
            self._w2[:, 0] -= lr * output_delta * hidden
            self._b1 -= lr * hidden_delta
            self._w1 -= lr * np.outer(x, hidden_delta)

    def save(self, path: Path | str) -> None:
        """Write the parameters to *path* (exactly that name, no suffix added).

        Raises:
            ModelIOFailure: If the file cannot be written.

        """
        target = Path(path)
        try:
            with target.open("wb") as fh:
                np.savez(fh, w1=self._w1, b1=self._b1, w2=self._w2, b2=self._b2)
        except OSError as e:
            msg = f"Cannot save model to {target}: {e}"
            raise ModelIOFailure(msg) from e

    def load(self, path: Path | str) -> None:
        """Replace the parameters with those stored at *path*.

        The stored shapes must match this model's shapes; the model is
        left untouched when loading fails.

        Raises:
            ModelIOFailure: If the file is missing, unreadable, truncated,
                or holds parameters of a different shape.

        """
        source = Path(path)
        loaded: dict[str, np.ndarray] | None = None
        try:
            with source.open("rb") as fh:
                archive = np.load(fh, allow_pickle=False)
                # A bare .npy payload loads as an array, not an archive.
                if isinstance(archive, np.lib.npyio.NpzFile):
                    with archive:
                        loaded = {name: np.array(archive[name], dtype=np.float64) for name in _PARAMETER_NAMES}
        except (OSError, ValueError, KeyError, EOFError, zipfile.BadZipFile) as e:
            msg = f"Cannot load model from {source}: {e}"
            raise ModelIOFailure(msg) from e
        if loaded is None:
            msg = f"Cannot load model from {source}: not a parameter archive"
            raise ModelIOFailure(msg)

        current = self.parameters()
        for name in _PARAMETER_NAMES:
            if loaded[name].shape != current[name].shape:
                msg = (
                    f"Cannot load model from {source}: {name} has shape "
                    f"{loaded[name].shape}, expected {current[name].shape}"
                )
                raise ModelIOFailure(msg)

        self._w1 = loaded["w1"]
        self._b1 = loaded["b1"]
        self._w2 = loaded["w2"]
        self._b2 = loaded["b2"]
