"""Shared test fixtures for zerotouch-cli tests.

This module provides fixtures used across the bootstrap tests:
- FakeClock: deterministic monotonic clock whose sleep advances time
- config: BootstrapConfig pointing every location at a temp directory
- store: MarkerStore in that temp directory
- fake_ctx: RunContext with mocked collaborators
"""

from __future__ import annotations

from dataclasses import dataclass, field
from pathlib import Path
from unittest.mock import MagicMock

import pytest

from zerotouch_cli.bootstrap import (
    HostTuning,
    Kubectl,
    MarkerStore,
    NetworkProbe,
    ReadinessPoller,
    RunContext,
    ServiceManager,
)
from zerotouch_cli.bootstrap.helm import Helm
from zerotouch_cli.config import BootstrapConfig

# =============================================================================
# Time
# =============================================================================


@dataclass
class FakeClock:
    """Monotonic clock advanced only by sleep()."""

    now: float = 0.0
    sleeps: list[float] = field(default_factory=list)

    def __call__(self) -> float:
        return self.now

    def sleep(self, seconds: float) -> None:
        self.sleeps.append(seconds)
        self.now += seconds


@pytest.fixture
def clock() -> FakeClock:
    """Fresh fake clock starting at zero."""
    return FakeClock()


# =============================================================================
# Configuration and state
# =============================================================================


@pytest.fixture
def config(tmp_path: Path) -> BootstrapConfig:
    """Config with every location under tmp_path and a 1s wait interval."""
    return BootstrapConfig(
        bootstrap_dir=tmp_path / "bootstrap",
        log_file=tmp_path / "log" / "bootstrap.log",
        longhorn_data_dir=str(tmp_path / "longhorn"),
        wait_interval=1,
    )


@pytest.fixture
def store(config: BootstrapConfig) -> MarkerStore:
    """Marker store for the test config."""
    return MarkerStore(config.marker_dir)


@pytest.fixture
def fake_ctx(config: BootstrapConfig, clock: FakeClock) -> RunContext:
    """Run context whose collaborators, poller included, are mocks.

    Fixed delays sleep on the fake clock.
    """
    return RunContext(
        config=config,
        kubectl=MagicMock(spec=Kubectl, kubeconfig=str(config.bootstrap_dir / "admin.conf")),
        helm=MagicMock(spec=Helm),
        services=MagicMock(spec=ServiceManager),
        host=MagicMock(spec=HostTuning),
        network=MagicMock(spec=NetworkProbe),
        poller=MagicMock(spec=ReadinessPoller),
        sleep=clock.sleep,
    )
