"""Idempotent, resumable step sequencer.

Runs named steps in order, writes a completion marker after each one,
skips steps that already have a marker, and stops the run at the first
failure. A re-run resumes right after the last completed step.
"""

from __future__ import annotations

import time
from collections.abc import Callable, Sequence
from dataclasses import dataclass, field
from typing import Any

from ..shared.logging import get_logger, log_header
from .errors import BootstrapError
from .state import MarkerStore

logger = get_logger(__name__)


@dataclass(frozen=True)
class Step:
    """One named unit of bootstrap work."""

    name: str
    action: Callable[[Any], None]
    description: str = ""

    @property
    def title(self) -> str:
        return self.description or self.name


@dataclass
class RunResult:
    """Outcome of a sequencer run."""

    success: bool
    executed: list[str] = field(default_factory=list)
    skipped: list[str] = field(default_factory=list)
    failed_step: str | None = None
    error: BaseException | None = None
    cleaned_up: bool = False
    elapsed_seconds: float = 0.0


class StepSequencer:
    """Run steps in order against a marker store."""

    CLEANUP_STEP = "cleanup"

    def __init__(
        self,
        store: MarkerStore,
        cleanup: Callable[[], None] | None = None,
        clock: Callable[[], float] = time.monotonic,
    ):
        """Initialize sequencer.

        Args:
            store: Completion marker store.
            cleanup: Pseudo-step run only after every step succeeded.
            clock: Monotonic clock (injected in tests).
        """
        self.store = store
        self.cleanup = cleanup
        self._clock = clock

    def plan(self, steps: Sequence[Step]) -> list[tuple[Step, bool]]:
        """Pair each step with whether it is already complete."""
        _check_unique(steps)
        return [(step, self.store.is_complete(step.name)) for step in steps]

    def run(self, steps: Sequence[Step], ctx: Any = None) -> RunResult:
        """Run pending steps in order.

        Args:
            steps: Ordered steps. Names must be unique.
            ctx: Passed to every step action.

        Returns:
            RunResult. On failure, failed_step and error identify the step
            that stopped the run; later steps were not invoked.

        Raises:
            ValueError: If two steps share a name.
        """
        _check_unique(steps)
        start = self._clock()
        result = RunResult(success=False)

        for index, step in enumerate(steps, start=1):
            if self.store.is_complete(step.name):
                logger.info("step_skipped", step=step.name, reason="already complete")
                result.skipped.append(step.name)
                continue

            logger.info(
                "step_started",
                index=f"[{index}]",
                step=step.name,
                description=step.title,
            )
            step_start = self._clock()
            try:
                step.action(ctx)
                self.store.mark_complete(step.name)
            except Exception as e:
                if isinstance(e, BootstrapError) and e.step is None:
                    e.step = step.name
                self._report_failure(step, e)
                result.failed_step = step.name
                result.error = e
                result.elapsed_seconds = self._clock() - start
                return result

            result.executed.append(step.name)
            logger.info(
                "step_complete",
                step=step.name,
                elapsed=round(self._clock() - step_start, 1),
            )

        if self.cleanup is not None:
            try:
                self.cleanup()
            except Exception as e:
                self._report_failure(Step(self.CLEANUP_STEP, lambda _: None), e)
                result.failed_step = self.CLEANUP_STEP
                result.error = e
                result.elapsed_seconds = self._clock() - start
                return result
            result.cleaned_up = True

        result.success = True
        result.elapsed_seconds = self._clock() - start
        return result

    def _report_failure(self, step: Step, error: Exception) -> None:
        """Log the failure header and everything needed to diagnose it."""
        log_header(logger, f"BOOTSTRAP FAILED at step: {step.name}", level="error")
        if isinstance(error, BootstrapError):
            logger.error(
                "step_failed",
                step=step.name,
                kind=error.kind,
                error=error.message,
            )
            if error.output:
                logger.error("step_failed_output", step=step.name, output=error.output)
        else:
            logger.exception(
                "step_failed",
                step=step.name,
                kind=type(error).__name__,
                error=str(error),
            )
        logger.error("step_resume_hint", step=step.name, hint="re-run to resume from this step")


def _check_unique(steps: Sequence[Step]) -> None:
    seen: set[str] = set()
    for step in steps:
        if step.name in seen:
            raise ValueError(f"Duplicate step name: {step.name}")
        seen.add(step.name)
