"""Oracle configuration — policy thresholds and training cadence.

All tunables live in one frozen dataclass so an oracle, its risk model
and its scenario driver agree on the same numbers.  The defaults are the
reference values:

    - **bankers_threshold** (0.5) — ML-augmented Banker's denies at or
      above this risk.
    - **wait_die_threshold** (0.7) — ML-augmented Wait-Die aborts at or
      above this risk.
    - **train_interval** (1000) / **checkpoint_interval** (10000) — how
      often the scenario driver retrains and writes a checkpoint.
    - **log_capacity** (10000) — the newest event-log entries kept by an
      oracle that builds its own logger; training runs until interrupted,
      so the log is a ring buffer unless this is None.

A configuration can also be read from a JSON file, much like a kernel
image is read by a bootloader: missing keys keep their defaults, unknown
keys are rejected so typos don't go unnoticed.
"""

from __future__ import annotations

import json
from dataclasses import asdict, dataclass, fields
from pathlib import Path
from typing import Any


@dataclass(frozen=True)
class OracleConfig:
    """Tunable constants shared by the oracle and the scenario driver."""

    hidden_size: int = 10
    learning_rate: float = 0.1
    bankers_threshold: float = 0.5
    wait_die_threshold: float = 0.7
    max_request: int = 5
    max_release: int = 3
    release_probability: float = 0.5
    train_interval: int = 1000
    checkpoint_interval: int = 10000
    accuracy_probes: int = 100
    history_limit: int | None = None
    record_wait_edges: bool = True
    log_capacity: int | None = 10000

    def __post_init__(self) -> None:
        """Reject values that would make the policy meaningless."""
        for name in ("bankers_threshold", "wait_die_threshold", "release_probability"):
            value = getattr(self, name)
            if not 0.0 <= value <= 1.0:
                msg = f"{name} must be within [0, 1], got {value}"
                raise ValueError(msg)
        for name in ("hidden_size", "train_interval", "checkpoint_interval", "accuracy_probes"):
            value = getattr(self, name)
            if value <= 0:
                msg = f"{name} must be positive, got {value}"
                raise ValueError(msg)
        if self.max_request < 0 or self.max_release < 0:
            msg = "max_request and max_release must be non-negative"
            raise ValueError(msg)
        if self.history_limit is not None and self.history_limit <= 0:
            msg = f"history_limit must be positive or None, got {self.history_limit}"
            raise ValueError(msg)
        if self.log_capacity is not None and self.log_capacity <= 0:
            msg = f"log_capacity must be positive or None, got {self.log_capacity}"
            raise ValueError(msg)

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> OracleConfig:
        """Build a configuration from a plain dict.

        Raises:
            ValueError: If *data* contains an unknown key.

        """
        known = {f.name for f in fields(cls)}
        unknown = sorted(set(data) - known)
        if unknown:
            msg = f"Unknown configuration keys: {', '.join(unknown)}"
            raise ValueError(msg)
        return cls(**data)

    def to_dict(self) -> dict[str, Any]:
        """Return the configuration as a JSON-friendly dict."""
        return asdict(self)


def load_config(path: Path | str) -> OracleConfig:
    """Load a configuration from a JSON file.

    Args:
        path: The JSON file to read.

    Returns:
        The parsed configuration.

    Raises:
        ValueError: If the file is not valid JSON or holds bad values.
        OSError: If the file cannot be read.

    """
    try:
        data = json.loads(Path(path).read_text())
    except json.JSONDecodeError as e:
        msg = f"Cannot parse configuration {path}: {e}"
        raise ValueError(msg) from e
    if not isinstance(data, dict):
        msg = f"Configuration {path} must hold a JSON object"
        raise ValueError(msg)
    return OracleConfig.from_dict(data)
