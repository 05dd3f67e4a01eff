"""Kubernetes operations for the bootstrap sequence.

Thin kubectl wrapper: apply and patch resources, and build read-only
readiness conditions for the poller.
"""

from __future__ import annotations

import json
import time
from collections.abc import Callable
from pathlib import Path
from typing import Any

import yaml

from ..shared.logging import get_logger
from ..shared.paths import ADMIN_CONF
from .errors import FatalStepFailure
from .health import PollCondition
from .process import CommandResult, run_command

logger = get_logger(__name__)

APPLY_ATTEMPTS = 3
APPLY_RETRY_DELAY = 5.0


class Kubectl:
    """Run kubectl against the bootstrap cluster."""

    def __init__(
        self,
        kubeconfig: str | Path | None = ADMIN_CONF,
        sleep: Callable[[float], None] = time.sleep,
    ):
        """Initialize kubectl wrapper.

        Args:
            kubeconfig: Path to kubeconfig file (default: kubeadm admin.conf).
            sleep: Sleep function between apply retries.
        """
        self.kubeconfig = str(kubeconfig) if kubeconfig else None
        self._sleep = sleep

    def _kubectl_cmd(self) -> list[str]:
        """Build base kubectl command."""
        cmd = ["kubectl"]
        if self.kubeconfig:
            cmd.extend(["--kubeconfig", self.kubeconfig])
        return cmd

    def run(
        self,
        *args: str,
        check: bool = True,
        input: str | None = None,
        quiet: bool = False,
    ) -> CommandResult:
        """Run a kubectl subcommand."""
        return run_command(self._kubectl_cmd() + list(args), check=check, input=input, quiet=quiet)

    def _retry(self, description: str, *args: str, input: str | None = None) -> CommandResult:
        """Run a kubectl subcommand, retrying transient failures."""
        for attempt in range(1, APPLY_ATTEMPTS + 1):
            result = self.run(*args, check=False, input=input)
            if result.ok:
                return result
            if attempt < APPLY_ATTEMPTS:
                logger.warning(
                    "kubectl_retry",
                    description=description,
                    attempt=attempt,
                    max_attempts=APPLY_ATTEMPTS,
                )
                self._sleep(APPLY_RETRY_DELAY)

        raise FatalStepFailure(
            message=f"Failed to apply {description} after {APPLY_ATTEMPTS} attempts",
            command=result.command,
            returncode=result.returncode,
            output=result.output,
        )

    # -- mutations ---------------------------------------------------------

    def apply_file(self, manifest: Path, description: str = "manifest") -> None:
        """Apply a manifest file."""
        if not manifest.exists():
            raise FatalStepFailure(message=f"Manifest not found: {manifest}")
        logger.info("applying", description=description)
        self._retry(description, "apply", "-f", str(manifest))
        logger.info("applied", description=description)

    def apply_url(self, url: str, description: str | None = None) -> None:
        """Apply a manifest from a URL."""
        description = description or url
        logger.info("applying", description=description, url=url)
        self._retry(description, "apply", "-f", url)
        logger.info("applied", description=description)

    def apply_manifests(
        self, manifests: list[dict[str, Any]], description: str = "manifests"
    ) -> None:
        """Apply in-memory manifests as multi-document YAML on stdin."""
        body = yaml.dump_all(manifests, default_flow_style=False, sort_keys=False)
        logger.info("applying", description=description, documents=len(manifests))
        self._retry(description, "apply", "-f", "-", input=body)
        logger.info("applied", description=description)

    def patch(
        self,
        kind: str,
        name: str,
        patch: dict[str, Any],
        namespace: str | None = None,
        patch_type: str = "merge",
        check: bool = True,
    ) -> bool:
        """Patch a resource.

        Returns:
            True if the patch applied. With check=False a failure is logged
            and False returned.
        """
        args = ["patch", kind, name]
        if namespace:
            args.extend(["-n", namespace])
        args.extend([f"--type={patch_type}", "-p", json.dumps(patch)])
        result = self.run(*args, check=check)
        if not result.ok:
            logger.warning("patch_failed", kind=kind, name=name, output=result.output)
        return result.ok

    def taint_remove(self, taint: str) -> bool:
        """Remove a taint from every node. Missing taints are not an error."""
        result = self.run("taint", "nodes", "--all", f"{taint}-", check=False)
        if not result.ok:
            logger.info("taint_not_removed", taint=taint, output=result.output)
        return result.ok

    def label_remove(self, label: str) -> bool:
        """Remove a label from every node. Missing labels are not an error."""
        result = self.run("label", "nodes", "--all", f"{label}-", check=False)
        if not result.ok:
            logger.info("label_not_removed", label=label, output=result.output)
        return result.ok

    def create_namespace(self, namespace: str) -> None:
        """Create a namespace if it does not exist."""
        if self.run("get", "namespace", namespace, check=False, quiet=True).ok:
            logger.debug("namespace_exists", namespace=namespace)
            return
        self.run("create", "namespace", namespace)
        logger.info("namespace_created", namespace=namespace)

    # -- queries -----------------------------------------------------------

    def get_json(
        self,
        kind: str,
        name: str | None = None,
        namespace: str | None = None,
        selector: str | None = None,
    ) -> dict[str, Any] | None:
        """Get a resource (or list) as parsed JSON.

        Returns:
            Parsed object, or None if kubectl failed or printed invalid JSON.
        """
        args = ["get", kind]
        if name:
            args.append(name)
        if namespace:
            args.extend(["-n", namespace])
        if selector:
            args.extend(["-l", selector])
        args.extend(["-o", "json"])
        result = self.run(*args, check=False, quiet=True)
        if not result.ok:
            return None
        try:
            return json.loads(result.stdout)
        except json.JSONDecodeError:
            return None

    def load_balancer_ip(self, namespace: str, service: str) -> str | None:
        """Get the first LoadBalancer ingress IP of a service."""
        svc = self.get_json("service", service, namespace)
        if not svc:
            return None
        ingress = svc.get("status", {}).get("loadBalancer", {}).get("ingress") or []
        return ingress[0].get("ip") if ingress else None

    # -- readiness conditions ------------------------------------------------

    def daemonset_ready(
        self,
        namespace: str,
        name: str,
        timeout: float = 300,
        interval: float = 10,
        best_effort: bool = False,
    ) -> PollCondition:
        """Condition: every scheduled daemon set pod is ready."""

        def check() -> bool:
            ds = self.get_json("daemonset", name, namespace)
            if not ds:
                return False
            status = ds.get("status", {})
            desired = status.get("desiredNumberScheduled", 0)
            ready = status.get("numberReady", 0)
            logger.debug("daemonset_status", name=name, ready=ready, desired=desired)
            return desired > 0 and ready == desired

        return PollCondition(f"daemonset {namespace}/{name}", check, interval, timeout, best_effort)

    def deployment_ready(
        self,
        namespace: str,
        name: str,
        timeout: float = 300,
        interval: float = 10,
        best_effort: bool = False,
    ) -> PollCondition:
        """Condition: ready replicas equal the desired replica count."""

        def check() -> bool:
            deploy = self.get_json("deployment", name, namespace)
            if not deploy:
                return False
            desired = deploy.get("spec", {}).get("replicas", 1)
            ready = deploy.get("status", {}).get("readyReplicas", 0)
            logger.debug("deployment_status", name=name, ready=ready, desired=desired)
            return ready == desired

        description = f"deployment {namespace}/{name}"
        return PollCondition(description, check, interval, timeout, best_effort)

    def pods_ready(
        self,
        namespace: str,
        selector: str,
        timeout: float = 300,
        interval: float = 10,
        best_effort: bool = False,
    ) -> PollCondition:
        """Condition: at least one pod matches and all matching pods are Ready."""

        def check() -> bool:
            pods = self.get_json("pods", namespace=namespace, selector=selector)
            items = (pods or {}).get("items", [])
            if not items:
                return False
            return all(_has_condition(pod, "Ready") for pod in items)

        description = f"pods {namespace} [{selector}]"
        return PollCondition(description, check, interval, timeout, best_effort)

    def job_complete(
        self,
        namespace: str,
        name: str,
        timeout: float = 120,
        interval: float = 10,
        best_effort: bool = False,
    ) -> PollCondition:
        """Condition: a job reports Complete."""

        def check() -> bool:
            job = self.get_json("job", name, namespace)
            return bool(job) and _has_condition(job, "Complete")

        return PollCondition(f"job {namespace}/{name}", check, interval, timeout, best_effort)


def _has_condition(obj: dict[str, Any], condition_type: str) -> bool:
    """Check status.conditions for a True condition of the given type."""
    for cond in obj.get("status", {}).get("conditions") or []:
        if cond.get("type") == condition_type:
            return cond.get("status") == "True"
    return False
