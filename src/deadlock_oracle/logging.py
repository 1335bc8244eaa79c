"""Oracle event log.

Every decision the oracle makes leaves a structured record behind: which
process asked for what, whether the risk model objected, when a cycle
showed up in the wait-for graph, when a checkpoint was written.  The log
is an in-memory audit trail that tests and embedders can query.

- **LogLevel** — severity levels ordered for filtering (DEBUG < ERROR).
- **LogEntry** — a single structured record (level, message, source, pid).
- **Logger** — an append-only log with filtering and clearing.

Design choices:
    - **IntEnum for levels** so they compare naturally with ``<``.
    - **Frozen dataclass for entries** — log records should be immutable.
    - **Optional capacity** — a training run can last millions of
      scenarios, so the buffer may be bounded; the oldest entries fall
      off first.
"""

from collections import deque
from dataclasses import dataclass
from enum import IntEnum


class LogLevel(IntEnum):
    """Severity levels for log entries."""

    DEBUG = 0
    INFO = 1
    WARNING = 2
    ERROR = 3


@dataclass(frozen=True)
class LogEntry:
    """A single structured log record.

    Attributes:
        level: The severity of this event.
        message: A human-readable description of what happened.
        source: The component that generated the event (e.g. "policy").
        process_id: The process the event concerns, or None.

    """

    level: LogLevel
    message: str
    source: str
    process_id: int | None = None

    def __str__(self) -> str:
        """Format as ``[LEVEL] source: message``."""
        return f"[{self.level.name}] {self.source}: {self.message}"


class Logger:
    """Append-only log buffer with filtering.

    Entries below ``min_level`` are dropped at the door, which keeps the
    per-prediction DEBUG chatter out of long training runs unless asked
    for.
    """

    def __init__(self, *, capacity: int | None = None, min_level: LogLevel = LogLevel.DEBUG) -> None:
        """Create an empty logger.

        Args:
            capacity: Maximum entries kept (None = unbounded).
            min_level: Entries below this level are not recorded.

        """
        if capacity is not None and capacity <= 0:
            msg = f"Logger capacity must be positive, got {capacity}"
            raise ValueError(msg)
        self._entries: deque[LogEntry] = deque(maxlen=capacity)
        self._min_level = min_level

    @property
    def entries(self) -> list[LogEntry]:
        """Return all log entries in chronological order."""
        return list(self._entries)

    @property
    def min_level(self) -> LogLevel:
        """Return the lowest level that is recorded."""
        return self._min_level

    def log(
        self,
        level: LogLevel,
        message: str,
        *,
        source: str,
        process_id: int | None = None,
    ) -> None:
        """Append a new entry to the log.

        Args:
            level: Severity of the event.
            message: Human-readable event description.
            source: Component that generated the event.
            process_id: Process the event concerns.

        """
        if level < self._min_level:
            return
        self._entries.append(LogEntry(level=level, message=message, source=source, process_id=process_id))

    def filter(
        self,
        *,
        min_level: LogLevel | None = None,
        source: str | None = None,
    ) -> list[LogEntry]:
        """Return entries matching the given criteria.

        Args:
            min_level: If set, only return entries at or above this level.
            source: If set, only return entries from this source.

        Returns:
            A filtered list of log entries.

        """
        result = list(self._entries)
        if min_level is not None:
            result = [e for e in result if e.level >= min_level]
        if source is not None:
            result = [e for e in result if e.source == source]
        return result

    def clear(self) -> None:
        """Remove all log entries."""
        self._entries.clear()

    def __len__(self) -> int:
        """Return the number of stored entries."""
        return len(self._entries)
