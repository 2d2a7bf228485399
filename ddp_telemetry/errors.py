"""
Error types raised by the telemetry and checkpointing subsystem.

Three failure classes exist, each with its own propagation policy:

- FatalIOError: the run directory, log/perf files or a checkpoint could not be
  written. Raised after being logged at CRITICAL; callers are expected to let
  it terminate the process.
- RecoverableLogError: a status line could not be formatted or written. It is
  logged and swallowed, the run continues.
- CollectiveFailure: the cross-worker reduction failed. Never caught inside
  this package.
"""


class TelemetryError(Exception):
    """Base class for all ddp_telemetry errors."""


class FatalIOError(TelemetryError):
    """A master-side write that must succeed has failed."""

    def __init__(self, message: str, path=None):
        super().__init__(message)
        self.path = path


class RecoverableLogError(TelemetryError):
    """A status line was lost. Reported, never raised out of logging calls."""


class CollectiveFailure(TelemetryError):
    """The all-reduce primitive failed or could not be completed."""
