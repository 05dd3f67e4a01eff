"""Readiness polling for bootstrap steps.

This module provides a blocking, constant-interval wait used by step
actions to hold until an external resource is ready.
"""

from __future__ import annotations

import socket
import time
from collections.abc import Callable
from dataclasses import dataclass

import httpx

from ..shared.logging import get_logger
from .errors import timeout_error

logger = get_logger(__name__)

# Log a progress line every this many seconds of waiting
PROGRESS_EVERY = 30.0


@dataclass
class PollCondition:
    """A readiness predicate and its wait budget."""

    description: str
    check: Callable[[], bool]
    interval: float = 10.0
    timeout: float = 300.0
    best_effort: bool = False


@dataclass
class PollResult:
    """Result of a wait."""

    ready: bool
    description: str
    attempts: int = 0
    elapsed_seconds: float = 0.0


class ReadinessPoller:
    """Poll a condition until it holds or its timeout elapses."""

    def __init__(
        self,
        sleep: Callable[[float], None] = time.sleep,
        clock: Callable[[], float] = time.monotonic,
    ):
        """Initialize poller.

        Args:
            sleep: Sleep function (injected in tests).
            clock: Monotonic clock in seconds (injected in tests).
        """
        self._sleep = sleep
        self._clock = clock

    def wait_for(self, condition: PollCondition) -> PollResult:
        """Block until condition.check() returns True.

        Each probe happens one interval after the previous one (or after the
        start of the wait); the last sleep is clamped so the final probe lands
        on the timeout.

        Args:
            condition: Condition to wait for.

        Returns:
            PollResult with ready=True, or ready=False for a best-effort
            condition that timed out.

        Raises:
            PollTimeout: If the condition did not hold in time and is not best-effort.
        """
        logger.info(
            "waiting_for",
            description=condition.description,
            timeout=condition.timeout,
        )
        start = self._clock()
        attempts = 0
        next_progress = PROGRESS_EVERY

        while True:
            elapsed = self._clock() - start
            remaining = condition.timeout - elapsed
            self._sleep(max(0.0, min(condition.interval, remaining)))

            attempts += 1
            if self._probe(condition):
                elapsed = self._clock() - start
                logger.info(
                    "condition_ready",
                    description=condition.description,
                    elapsed=round(elapsed, 1),
                    attempts=attempts,
                )
                return PollResult(True, condition.description, attempts, elapsed)

            elapsed = self._clock() - start
            if elapsed >= condition.timeout:
                break

            if elapsed >= next_progress:
                logger.debug(
                    "still_waiting",
                    description=condition.description,
                    elapsed=round(elapsed),
                    timeout=condition.timeout,
                )
                next_progress += PROGRESS_EVERY

        if condition.best_effort:
            logger.warning(
                "condition_not_ready_continuing",
                description=condition.description,
                elapsed=round(elapsed, 1),
            )
            return PollResult(False, condition.description, attempts, elapsed)

        logger.error(
            "condition_timeout",
            description=condition.description,
            elapsed=round(elapsed, 1),
        )
        raise timeout_error(condition.description, elapsed, condition.timeout)

    def _probe(self, condition: PollCondition) -> bool:
        """Run one check, treating errors as "not ready yet"."""
        try:
            return bool(condition.check())
        except Exception as e:
            logger.debug("probe_failed", description=condition.description, error=str(e))
            return False


@dataclass
class FixedDelay:
    """A named wait for a state change nothing reports on.

    Used where no readiness signal exists, so the assumption stays visible
    in the step and in the log.
    """

    description: str
    seconds: float

    def wait(self, sleep: Callable[[float], None] = time.sleep) -> None:
        """Sleep for the configured delay."""
        logger.info("fixed_delay", description=self.description, seconds=self.seconds)
        sleep(self.seconds)


def endpoint_reachable(url: str, request_timeout: float = 5.0) -> Callable[[], bool]:
    """Build a check that an HTTP(S) endpoint answers.

    The check passes on HTTP 200. For Kubernetes health paths (/healthz,
    /readyz, /livez) the body must also be "ok". Certificates are not
    verified; the API server uses a cluster-local CA.

    Args:
        url: Endpoint URL.
        request_timeout: Timeout for each HTTP request.

    Returns:
        Zero-argument check function.
    """
    health_path = url.rstrip("/").rsplit("/", 1)[-1] in {"healthz", "readyz", "livez"}

    def check() -> bool:
        try:
            with httpx.Client(timeout=request_timeout, verify=False) as client:
                response = client.get(url)
        except httpx.HTTPError:
            return False
        if response.status_code != 200:
            return False
        if health_path:
            return response.text.strip() == "ok"
        return True

    return check



def tcp_reachable(host: str, port: int, connect_timeout: float = 1.0) -> Callable[[], bool]:
    """Build a check that a TCP port accepts connections."""

    def check() -> bool:
        try:
            with socket.create_connection((host, port), timeout=connect_timeout):
                return True
        except OSError:
            return False

    return check
