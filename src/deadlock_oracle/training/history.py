"""Training history — labelled rollouts waiting to be replayed.

Each scenario rollout produces one ``TrainingExample``: the feature
vector of the state it started from, and whether it ended with a cycle
in the wait-for graph.  Examples are kept in insertion order with no
deduplication; every training pass replays the whole history.

By default the history is unbounded, so memory grows by one example per
scenario.  Passing ``limit`` turns it into a ring buffer that keeps only
the most recent examples.
"""

from __future__ import annotations

from collections import deque
from dataclasses import dataclass
from typing import TYPE_CHECKING

if TYPE_CHECKING:
    from collections.abc import Iterator, Sequence


@dataclass(frozen=True)
class TrainingExample:
    """One labelled rollout."""

    features: tuple[float, ...]
    led_to_deadlock: bool

    @property
    def target(self) -> float:
        """Return the label as a regression target (1.0 or 0.0)."""
        return 1.0 if self.led_to_deadlock else 0.0


class TrainingHistory:
    """Append-only store of training examples, optionally bounded."""

    def __init__(self, *, limit: int | None = None) -> None:
        """Create an empty history.

        Args:
            limit: Keep at most this many recent examples (None = all).

        """
        if limit is not None and limit <= 0:
            msg = f"History limit must be positive, got {limit}"
            raise ValueError(msg)
        self._examples: deque[TrainingExample] = deque(maxlen=limit)

    @property
    def limit(self) -> int | None:
        """Return the maximum number of examples kept, or None."""
        return self._examples.maxlen

    def add(self, features: Sequence[float], led_to_deadlock: bool) -> TrainingExample:
        """Append an example and return it."""
        example = TrainingExample(features=tuple(float(f) for f in features), led_to_deadlock=bool(led_to_deadlock))
        self._examples.append(example)
        return example

    def batch(self) -> tuple[list[list[float]], list[float]]:
        """Return the whole history as parallel (inputs, targets) lists."""
        inputs = [list(example.features) for example in self._examples]
        targets = [example.target for example in self._examples]
        return inputs, targets

    def positives(self) -> int:
        """Return how many examples are labelled as deadlocks."""
        return sum(1 for example in self._examples if example.led_to_deadlock)

    def clear(self) -> None:
        """Drop every example."""
        self._examples.clear()

    def __iter__(self) -> Iterator[TrainingExample]:
        """Iterate over examples in insertion order."""
        return iter(list(self._examples))

    def __len__(self) -> int:
        """Return the number of stored examples."""
        return len(self._examples)
