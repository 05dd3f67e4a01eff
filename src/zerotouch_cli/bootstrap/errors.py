"""Error taxonomy for the bootstrap sequence.

Step actions raise these; the sequencer catches them, logs the diagnostic
and aborts the run.
"""

from dataclasses import dataclass, field


@dataclass
class BootstrapError(Exception):
    """Base error class for bootstrap failures."""

    message: str
    step: str | None = None
    output: str = ""
    retryable: bool = False

    def __str__(self) -> str:
        return self.message

    @property
    def kind(self) -> str:
        """Short error kind used in log lines."""
        return type(self).__name__


@dataclass
class PollTimeout(BootstrapError):
    """A readiness condition did not resolve in time.

    The caller decides whether this is fatal. Only waits marked best-effort
    are downgraded to a warning.
    """

    message: str = "Timed out waiting for condition"
    description: str = ""
    elapsed: float = 0.0
    timeout: float = 0.0
    retryable: bool = True


@dataclass
class FatalStepFailure(BootstrapError):
    """A command or action failed with no recovery path."""

    message: str = "Step failed"
    command: list[str] = field(default_factory=list)
    returncode: int | None = None


@dataclass
class PreconditionFailure(BootstrapError):
    """An environment check failed before any stateful work."""

    message: str = "Precondition not met"


def timeout_error(description: str, elapsed: float, timeout: float) -> PollTimeout:
    """Build a PollTimeout for a condition.

    Args:
        description: Condition description
        elapsed: Seconds spent waiting
        timeout: Configured timeout in seconds

    Returns:
        PollTimeout with a readable message
    """
    return PollTimeout(
        message=f"Timeout waiting for: {description} ({elapsed:.0f}s of {timeout:.0f}s)",
        description=description,
        elapsed=elapsed,
        timeout=timeout,
    )
