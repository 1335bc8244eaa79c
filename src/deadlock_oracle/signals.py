"""Cooperative stop signalling for long training runs.

The scenario driver runs until told to stop.  Rather than a module-wide
global poked by a signal handler, the "please stop" bit lives in a
``StopFlag`` object that is handed to the driver.  The driver polls it
at the head of every loop iteration, finishes the scenario in flight,
then does one final train + save before returning.

``install_interrupt_handler`` binds Ctrl+C (SIGINT) to a flag, which is
the usual way to wire it up from a script.
"""

from __future__ import annotations

import signal
from typing import TYPE_CHECKING, Any

if TYPE_CHECKING:
    from types import FrameType


class StopFlag:
    """A settable boolean observed by the training loop."""

    def __init__(self) -> None:
        """Create a cleared flag."""
        self._set = False

    @property
    def is_set(self) -> bool:
        """Return True once a stop has been requested."""
        return self._set

    def set(self) -> None:
        """Request a stop."""
        self._set = True

    def clear(self) -> None:
        """Withdraw the stop request (e.g. before a new run)."""
        self._set = False

    def __bool__(self) -> bool:
        """Return ``is_set`` so the flag reads naturally in conditions."""
        return self._set


def install_interrupt_handler(flag: StopFlag) -> Any:
    """Make SIGINT set *flag* instead of raising KeyboardInterrupt.

    Must be called from the main thread.

    Returns:
        The previously installed SIGINT handler, so callers can restore it.

    """

    def _handler(signum: int, frame: FrameType | None) -> None:  # noqa: ARG001
        flag.set()

    return signal.signal(signal.SIGINT, _handler)
