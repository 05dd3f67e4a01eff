"""Run context shared by every bootstrap step."""

from __future__ import annotations

import time
from collections.abc import Callable
from dataclasses import dataclass, field

import structlog

from ..config import BootstrapConfig
from ..shared.logging import get_logger
from ..shared.paths import ADMIN_CONF
from .health import ReadinessPoller
from .helm import Helm
from .k8s import Kubectl
from .prerequisites import HostTuning, NetworkProbe, ServiceManager


@dataclass(frozen=True)
class RunContext:
    """Configuration, log sink and collaborators for one bootstrap run.

    Built once at startup and never modified; steps receive it explicitly.
    """

    config: BootstrapConfig
    kubectl: Kubectl
    helm: Helm
    services: ServiceManager
    host: HostTuning
    network: NetworkProbe
    poller: ReadinessPoller
    log: structlog.stdlib.BoundLogger = field(
        default_factory=lambda: get_logger("zerotouch_cli.bootstrap.steps")
    )
    sleep: Callable[[float], None] = time.sleep

    def wait(self, *conditions) -> None:
        """Wait for each condition in turn."""
        for condition in conditions:
            self.poller.wait_for(condition)


def build_context(config: BootstrapConfig) -> RunContext:
    """Create the production run context for a config."""
    services = ServiceManager()
    return RunContext(
        config=config,
        kubectl=Kubectl(ADMIN_CONF),
        helm=Helm(ADMIN_CONF),
        services=services,
        host=HostTuning(services),
        network=NetworkProbe(),
        poller=ReadinessPoller(),
    )
