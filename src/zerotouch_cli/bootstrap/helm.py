"""Helm chart installation for bootstrap add-ons."""

from __future__ import annotations

from pathlib import Path

from ..shared.logging import get_logger
from ..shared.paths import ADMIN_CONF
from .process import run_command

logger = get_logger(__name__)

# Chart values masked in logs and errors
SECRET_KEYS = frozenset({"rootPassword", "adminPassword"})


class Helm:
    """Install charts with the helm CLI."""

    def __init__(self, kubeconfig: str | Path | None = ADMIN_CONF):
        """Initialize helm wrapper.

        Args:
            kubeconfig: Path to kubeconfig file.
        """
        self.kubeconfig = str(kubeconfig) if kubeconfig else None

    def _helm_cmd(self) -> list[str]:
        """Build base helm command."""
        cmd = ["helm"]
        if self.kubeconfig:
            cmd.extend(["--kubeconfig", self.kubeconfig])
        return cmd

    def add_repo(self, name: str, url: str) -> None:
        """Register a chart repository and refresh the index."""
        logger.info("adding_helm_repo", repo=name, url=url)
        run_command(self._helm_cmd() + ["repo", "add", name, url, "--force-update"])
        run_command(self._helm_cmd() + ["repo", "update"])

    def install(
        self,
        release: str,
        chart: str,
        namespace: str,
        values: dict[str, str] | None = None,
        timeout: str = "10m",
    ) -> None:
        """Install or upgrade a release.

        Uses `upgrade --install` so a step retried after a partial failure
        does not trip over an existing release.

        Args:
            release: Release name.
            chart: Chart reference (repo/chart).
            namespace: Target namespace (created if missing).
            values: --set overrides.
            timeout: Helm timeout (Go duration).
        """
        cmd = self._helm_cmd() + [
            "upgrade",
            "--install",
            release,
            chart,
            "--namespace",
            namespace,
            "--create-namespace",
            f"--timeout={timeout}",
        ]
        secrets = []
        for key, value in (values or {}).items():
            cmd.extend(["--set", f"{key}={value}"])
            if key.rsplit(".", 1)[-1] in SECRET_KEYS:
                secrets.append(value)

        logger.info("installing_helm_release", release=release, chart=chart, namespace=namespace)
        run_command(cmd, secrets=secrets)
        logger.info("helm_release_installed", release=release)
