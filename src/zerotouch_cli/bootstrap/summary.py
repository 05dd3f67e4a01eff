"""Human-readable summary of what the bootstrap deployed."""

from __future__ import annotations

from pathlib import Path

from ..config import BootstrapConfig
from ..shared.paths import get_kubeconfig_copy, get_minio_password_file, get_summary_file


def build_summary(config: BootstrapConfig, elapsed_seconds: float | None = None) -> list[str]:
    """Build the cluster access lines for enabled add-ons."""
    base = f"http://{config.vip}"
    lines = [
        "==================================",
        "CLUSTER ACCESS INFORMATION",
        "==================================",
        f"VIP: {config.vip}",
    ]
    if config.deploy_welcome_page:
        lines.append(f"Welcome Page: {base}/")
    if config.deploy_portainer:
        lines.append(f"Portainer: {base}/portainer/")
    if config.deploy_grafana:
        lines.append(f"Grafana: {base}/grafana/ (admin/{config.grafana_admin_password})")
        lines.append(f"Prometheus: {base}/prometheus/")
    if config.deploy_longhorn:
        lines.append(f"Longhorn: {base}/longhorn/")
    if config.deploy_minio:
        password_file = get_minio_password_file(config.bootstrap_dir)
        lines.append(f"MinIO: {base}/minio/ ({config.minio_root_user}/[see {password_file}])")
    lines.extend(
        [
            "",
            f"Kubeconfig: {get_kubeconfig_copy(config.bootstrap_dir)}",
            f"Bootstrap log: {config.log_file}",
            "==================================",
        ]
    )
    if elapsed_seconds is not None:
        lines.append(f"Total bootstrap time: {elapsed_seconds:.0f} seconds")
    return lines


def write_summary(config: BootstrapConfig, lines: list[str]) -> Path:
    """Write the summary next to the other bootstrap artifacts."""
    path = get_summary_file(config.bootstrap_dir)
    path.parent.mkdir(parents=True, exist_ok=True)
    path.write_text("\n".join(lines) + "\n")
    return path
