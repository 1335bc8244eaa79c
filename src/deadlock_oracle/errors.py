"""Error kinds surfaced by the oracle.

Every failure the engine detects is raised to the caller; nothing is
silently corrected.  Each error also subclasses the closest built-in
exception so callers that only know about ``ValueError`` or ``OSError``
still catch the right thing.

    - **InvalidDimensions** — wrong vector length or process id out of range.
    - **InvalidRequest** — an allocate/release would break non-negativity
      (or exceed a process's declared maximum claim).
    - **MissingTimestamp** — Wait-Die asked about a process with no timestamp.
    - **ModelIOFailure** — a model file could not be written or read back.
"""


class OracleError(Exception):
    """Base class for every error raised by the oracle."""


class InvalidDimensions(OracleError, ValueError):
    """Raise when a vector has the wrong length or a process id is out of range."""


class InvalidRequest(OracleError, ValueError):
    """Raise when applying a request or release would violate an invariant."""


class MissingTimestamp(OracleError, KeyError):
    """Raise when Wait-Die is invoked for a process with no timestamp."""

    def __str__(self) -> str:
        """Return the plain message (KeyError would add quotes)."""
        return str(self.args[0]) if self.args else ""


class ModelIOFailure(OracleError, OSError):
    """Raise when model parameters cannot be saved or loaded."""
