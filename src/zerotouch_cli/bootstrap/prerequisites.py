"""Host prerequisites for the bootstrap sequence.

This module provides network reachability checks, systemd service
management, and the kernel/swap tuning Kubernetes needs.
"""

from __future__ import annotations

import re
import shutil
import time
from collections.abc import Callable
from dataclasses import dataclass
from pathlib import Path

from ..shared.logging import get_logger
from .errors import FatalStepFailure, PreconditionFailure
from .process import run_command

logger = get_logger(__name__)

KERNEL_MODULES = ("overlay", "br_netfilter")

SYSCTL_SETTINGS = {
    "net.bridge.bridge-nf-call-iptables": "1",
    "net.bridge.bridge-nf-call-ip6tables": "1",
    "net.ipv4.ip_forward": "1",
}


@dataclass
class NetworkStatus:
    """Result of a reachability test."""

    reachable: bool
    target: str
    attempts: int = 0
    error: str | None = None


class NetworkProbe:
    """Check outbound connectivity with ping."""

    def __init__(
        self,
        target: str = "8.8.8.8",
        max_attempts: int = 5,
        interval_seconds: float = 5.0,
        sleep: Callable[[float], None] = time.sleep,
    ):
        """Initialize network probe.

        Args:
            target: Address to ping.
            max_attempts: Number of pings before giving up.
            interval_seconds: Seconds between attempts.
            sleep: Sleep function (injected in tests).
        """
        self.target = target
        self.max_attempts = max_attempts
        self.interval_seconds = interval_seconds
        self._sleep = sleep

    def test(self) -> NetworkStatus:
        """Ping the target until it answers or attempts run out."""
        if not shutil.which("ping"):
            return NetworkStatus(False, self.target, error="ping not found")

        for attempt in range(1, self.max_attempts + 1):
            result = run_command(
                ["ping", "-c", "1", "-W", "5", self.target], check=False, quiet=True
            )
            if result.ok:
                logger.info(
                    "network_ok",
                    target=self.target,
                    attempt=attempt,
                    max_attempts=self.max_attempts,
                )
                return NetworkStatus(True, self.target, attempts=attempt)

            logger.warning(
                "network_unreachable",
                target=self.target,
                attempt=attempt,
                max_attempts=self.max_attempts,
            )
            if attempt < self.max_attempts:
                self._sleep(self.interval_seconds)

        return NetworkStatus(
            False,
            self.target,
            attempts=self.max_attempts,
            error=f"Cannot reach {self.target} after {self.max_attempts} attempts",
        )

    def require(self) -> NetworkStatus:
        """Like test(), but raise PreconditionFailure when unreachable."""
        status = self.test()
        if not status.reachable:
            raise PreconditionFailure(message=f"Network test failed: {status.error}")
        return status


class ServiceManager:
    """Manage host services through systemctl."""

    def _systemctl(self, *args: str, check: bool = True):
        return run_command(["systemctl", *args], check=check)

    def enable(self, service: str) -> None:
        self._systemctl("enable", service)

    def start(self, service: str) -> None:
        self._systemctl("start", service)

    def restart(self, service: str) -> None:
        logger.info("restarting_service", service=service)
        self._systemctl("restart", service)

    def mask(self, unit: str) -> None:
        self._systemctl("mask", unit)

    def is_active(self, service: str) -> bool:
        return run_command(
            ["systemctl", "is-active", "--quiet", service], check=False, quiet=True
        ).ok

    def ensure_running(self, service: str, required: bool = True) -> bool:
        """Enable and start a service, then verify it is active.

        Args:
            service: Unit name.
            required: If False, a failure is logged and False returned.

        Returns:
            True if the service is active.

        Raises:
            FatalStepFailure: If a required service is not active afterwards.
        """
        logger.info("ensuring_service_running", service=service)
        self._systemctl("enable", service, check=required)
        self._systemctl("start", service, check=required)
        if self.is_active(service):
            logger.info("service_running", service=service)
            return True
        if required:
            raise FatalStepFailure(message=f"{service} failed to start")
        logger.warning("optional_service_not_running", service=service)
        return False


class HostTuning:
    """Swap, kernel module and sysctl settings required by kubelet."""

    def __init__(
        self,
        services: ServiceManager | None = None,
        fstab: Path = Path("/etc/fstab"),
        modules_file: Path = Path("/etc/modules-load.d/k8s.conf"),
        sysctl_file: Path = Path("/etc/sysctl.d/k8s.conf"),
    ):
        self.services = services or ServiceManager()
        self.fstab = fstab
        self.modules_file = modules_file
        self.sysctl_file = sysctl_file

    def disable_swap(self) -> None:
        """Turn swap off now and keep it off after reboot."""
        logger.info("disabling_swap")
        run_command(["swapoff", "-a"])
        if self.fstab.exists():
            lines = self.fstab.read_text().splitlines(keepends=True)
            kept = [line for line in lines if not re.search(r"\bswap\b", line)]
            if len(kept) != len(lines):
                self.fstab.write_text("".join(kept))
        self.services.mask("swap.target")

    def configure_kernel_modules(self) -> None:
        """Persist and load the modules container networking needs."""
        logger.info("configuring_kernel_modules", modules=list(KERNEL_MODULES))
        self.modules_file.parent.mkdir(parents=True, exist_ok=True)
        self.modules_file.write_text("\n".join(KERNEL_MODULES) + "\n")
        for module in KERNEL_MODULES:
            run_command(["modprobe", module])

    def configure_sysctl(self) -> None:
        """Persist bridge/forwarding sysctls and reload them."""
        logger.info("configuring_sysctl")
        self.sysctl_file.parent.mkdir(parents=True, exist_ok=True)
        self.sysctl_file.write_text(
            "".join(f"{key} = {value}\n" for key, value in SYSCTL_SETTINGS.items())
        )
        run_command(["sysctl", "--system"], quiet=True)
