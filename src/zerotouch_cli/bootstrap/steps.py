"""Node-1 bootstrap steps.

Each step takes the run context and either returns (done) or raises.
build_node1_steps() puts them in order and drops disabled add-ons;
run_bootstrap() drives them through the sequencer.
"""

from __future__ import annotations

import os
import time
from collections.abc import Callable
from pathlib import Path

from ..config import ENV_VARS, BootstrapConfig
from ..shared.logging import get_logger, log_header
from ..shared.paths import ADMIN_CONF, CLOUD_INIT_SEED_FILES, get_kubeadm_config
from .context import RunContext
from .credentials import install_kubeconfig, resolve_minio_password, save_minio_password
from .health import FixedDelay, PollCondition, endpoint_reachable
from .manifests import (
    FLANNEL_URL,
    INGRESS_NGINX_URL,
    LONGHORN_URL,
    METALLB_URL,
    PORTAINER_URL,
    build_address_pool,
    build_cluster_ready,
    build_ingress,
    build_kubeadm_config,
    build_welcome_page,
    write_manifest,
)
from .process import run_command
from .sequencer import RunResult, Step, StepSequencer
from .state import MarkerStore
from .summary import build_summary, write_summary

logger = get_logger(__name__)

KUBEADM_TIMEOUT = 600
API_SERVER_URL = "https://localhost:6443/healthz"
API_SERVER_TIMEOUT = 600

FLANNEL_PLUGIN = Path("/opt/cni/bin/flannel")
FLANNEL_PLUGIN_LINK = Path("/usr/lib/cni/flannel")

WEBHOOK_BUFFER_SECONDS = 60


# -- core ------------------------------------------------------------------


def verify_network(ctx: RunContext) -> None:
    """Check the node can reach the internet before changing anything."""
    c = ctx.config
    ctx.log.info(
        "network_configuration",
        interface=c.interface,
        private_ip=f"{c.private_ip}/{c.private_netmask}",
        external_ip=f"{c.external_ip}/{c.external_netmask}",
        gateway=c.gateway,
    )
    # Addresses are applied by cloud-init; this only verifies them
    ctx.network.require()


def prepare_host(ctx: RunContext) -> None:
    ctx.host.disable_swap()
    ctx.host.configure_kernel_modules()
    ctx.host.configure_sysctl()
    ctx.services.ensure_running("containerd")
    # kubelet starts once kubeadm has written its config
    ctx.services.enable("kubelet")


def init_control_plane(ctx: RunContext) -> None:
    """Run kubeadm init, install the admin kubeconfig and open the node to workloads."""
    c = ctx.config
    kubeadm_config = get_kubeadm_config(c.bootstrap_dir)
    write_manifest(kubeadm_config, build_kubeadm_config(c))

    ctx.log.info("initializing_cluster", expected="3-5 minutes", timeout=KUBEADM_TIMEOUT)
    run_command(
        ["kubeadm", "init", "--config", str(kubeadm_config), "--upload-certs"],
        timeout=KUBEADM_TIMEOUT,
    )
    ctx.log.info("cluster_initialized")

    install_kubeconfig(Path(ctx.kubectl.kubeconfig or ADMIN_CONF), c.bootstrap_dir, c.ssh_user)

    ctx.wait(
        PollCondition(
            "Kubernetes API server at localhost:6443",
            endpoint_reachable(API_SERVER_URL),
            interval=c.wait_interval,
            timeout=API_SERVER_TIMEOUT,
        )
    )

    # Single node: the control plane must schedule workloads and announce
    # LoadBalancer addresses
    ctx.kubectl.taint_remove("node-role.kubernetes.io/control-plane")
    ctx.kubectl.taint_remove("node-role.kubernetes.io/master")
    ctx.kubectl.label_remove("node.kubernetes.io/exclude-from-external-load-balancers")


# -- networking add-ons ----------------------------------------------------


def deploy_cni(ctx: RunContext) -> None:
    c = ctx.config
    ctx.kubectl.apply_url(FLANNEL_URL, "Flannel CNI")
    ctx.wait(
        ctx.kubectl.daemonset_ready(
            "kube-flannel", "kube-flannel-ds", timeout=300, interval=c.wait_interval
        )
    )
    link_flannel_plugin(ctx)


def link_flannel_plugin(
    ctx: RunContext,
    source: Path = FLANNEL_PLUGIN,
    target: Path = FLANNEL_PLUGIN_LINK,
) -> bool:
    """Expose the flannel plugin where containerd looks for CNI binaries.

    Returns:
        True if a link was created (and containerd restarted).
    """
    if not source.exists() or target.exists():
        ctx.log.info("flannel_link_not_needed", source=str(source), target=str(target))
        return False

    target.parent.mkdir(parents=True, exist_ok=True)
    os.symlink(source, target)
    ctx.log.info("flannel_link_created", target=str(target))

    ctx.services.restart("containerd")
    ctx.wait(
        PollCondition(
            "containerd active after restart",
            lambda: ctx.services.is_active("containerd"),
            interval=1,
            timeout=30,
        )
    )
    return True


def deploy_metallb(ctx: RunContext) -> None:
    c = ctx.config
    ctx.kubectl.apply_url(
        METALLB_URL.format(version=c.metallb_version), f"MetalLB {c.metallb_version}"
    )
    ctx.wait(
        ctx.kubectl.pods_ready(
            "metallb-system",
            "app=metallb,component=controller",
            timeout=300,
            interval=c.wait_interval,
        ),
        ctx.kubectl.daemonset_ready(
            "metallb-system", "speaker", timeout=300, interval=c.wait_interval
        ),
    )
    # The admission webhook reports ready before it serves requests
    FixedDelay("MetalLB webhook initialization buffer", WEBHOOK_BUFFER_SECONDS).wait(ctx.sleep)

    ctx.log.info("configuring_address_pool", addresses=c.address_pool)
    ctx.kubectl.apply_manifests(build_address_pool(c), "MetalLB address pool")
    ctx.log.info("metallb_deployed", vip=c.vip)


def deploy_ingress(ctx: RunContext) -> None:
    c = ctx.config
    k = ctx.kubectl
    k.apply_url(
        INGRESS_NGINX_URL.format(version=c.ingress_nginx_version),
        f"NGINX Ingress {c.ingress_nginx_version}",
    )
    # Admission jobs are sometimes slow; the controller wait is what matters
    ctx.wait(
        k.job_complete("ingress-nginx", "ingress-nginx-admission-create", best_effort=True),
        k.job_complete("ingress-nginx", "ingress-nginx-admission-patch", best_effort=True),
        k.pods_ready(
            "ingress-nginx",
            "app.kubernetes.io/component=controller",
            timeout=180,
            interval=c.wait_interval,
        ),
    )
    ctx.wait(
        PollCondition(
            "LoadBalancer IP for ingress-nginx-controller",
            lambda: k.load_balancer_ip("ingress-nginx", "ingress-nginx-controller") is not None,
            interval=5,
            timeout=60,
            best_effort=True,
        )
    )
    external_ip = k.load_balancer_ip("ingress-nginx", "ingress-nginx-controller") or "pending"
    ctx.log.info("ingress_deployed", external_ip=external_ip)


# -- storage add-ons -------------------------------------------------------


def deploy_longhorn(ctx: RunContext) -> None:
    c = ctx.config
    k = ctx.kubectl
    ctx.services.ensure_running("iscsid")
    ctx.services.ensure_running("open-iscsi", required=False)

    data_dir = Path(c.longhorn_data_dir)
    data_dir.mkdir(parents=True, exist_ok=True)
    data_dir.chmod(0o755)
    ctx.log.info("longhorn_data_dir", path=str(data_dir))

    k.apply_url(LONGHORN_URL.format(version=c.longhorn_version), f"Longhorn {c.longhorn_version}")
    ctx.wait(
        k.daemonset_ready(
            "longhorn-system", "longhorn-manager", timeout=600, interval=c.wait_interval
        ),
        k.deployment_ready(
            "longhorn-system", "longhorn-driver-deployer", timeout=300, interval=c.wait_interval
        ),
        k.daemonset_ready(
            "longhorn-system", "longhorn-csi-plugin", timeout=300, interval=c.wait_interval
        ),
        # Instance managers may still be pulling images; storage works once they finish
        k.pods_ready(
            "longhorn-system",
            "longhorn.io/component=instance-manager",
            timeout=600,
            interval=c.wait_interval,
            best_effort=True,
        ),
    )

    ctx.log.info("configuring_longhorn_settings")
    # Single node: one replica, keep data local when possible
    k.patch("settings.longhorn.io", "default-replica-count", {"value": "1"}, "longhorn-system")
    k.patch(
        "settings.longhorn.io", "default-data-locality", {"value": "best-effort"}, "longhorn-system"
    )
    k.patch(
        "storageclass",
        "longhorn",
        {"metadata": {"annotations": {"storageclass.kubernetes.io/is-default-class": "true"}}},
    )
    k.apply_manifests(
        [
            build_ingress(
                "longhorn-ingress", "longhorn-system", "/longhorn", "longhorn-frontend", 80
            )
        ],
        "Longhorn ingress",
    )
    ctx.log.info("longhorn_deployed", ui=f"http://{c.vip}/longhorn")


def deploy_minio(ctx: RunContext) -> None:
    c = ctx.config
    ctx.helm.add_repo("minio", "https://charts.min.io/")

    password = resolve_minio_password(c.minio_root_password, c.bootstrap_dir)
    # Saved before install so a retried step reuses the same password
    password_file = save_minio_password(password, c.bootstrap_dir)

    ctx.helm.install(
        "minio",
        "minio/minio",
        "minio-system",
        values={
            "mode": "standalone",
            "persistence.enabled": "true",
            "persistence.storageClass": "longhorn",
            "persistence.size": "50Gi",
            "resources.requests.memory": "1Gi",
            "resources.requests.cpu": "250m",
            "rootUser": c.minio_root_user,
            "rootPassword": password,
            "service.type": "ClusterIP",
            "consoleService.type": "ClusterIP",
        },
        timeout="10m",
    )
    ctx.wait(
        ctx.kubectl.pods_ready("minio-system", "app=minio", timeout=300, interval=c.wait_interval)
    )

    ctx.kubectl.apply_manifests(
        [
            build_ingress(
                "minio-console",
                "minio-system",
                "/minio",
                "minio-console",
                9001,
                rewrite=True,
                annotations={"nginx.ingress.kubernetes.io/proxy-body-size": "0"},
            )
        ],
        "MinIO console ingress",
    )
    ctx.log.info(
        "minio_deployed",
        console=f"http://{c.vip}/minio",
        user=c.minio_root_user,
        password_file=str(password_file),
    )


# -- monitoring and management ---------------------------------------------


def deploy_monitoring(ctx: RunContext) -> None:
    c = ctx.config
    ctx.helm.add_repo("grafana", "https://grafana.github.io/helm-charts")
    ctx.helm.add_repo("prometheus-community", "https://prometheus-community.github.io/helm-charts")

    datasource = "datasources.datasources\\.yaml"
    ctx.helm.install(
        "grafana",
        "grafana/grafana",
        "monitoring",
        values={
            "adminPassword": c.grafana_admin_password,
            "service.type": "ClusterIP",
            "persistence.enabled": "true",
            "persistence.storageClassName": "longhorn",
            "persistence.size": "10Gi",
            "env.GF_SERVER_ROOT_URL": "%(protocol)s://%(domain)s/grafana/",
            "env.GF_SERVER_SERVE_FROM_SUB_PATH": "true",
            f"{datasource}.apiVersion": "1",
            f"{datasource}.datasources[0].name": "Prometheus",
            f"{datasource}.datasources[0].type": "prometheus",
            f"{datasource}.datasources[0].access": "proxy",
            f"{datasource}.datasources[0].url": (
                "http://prometheus-server.monitoring.svc.cluster.local/prometheus"
            ),
            f"{datasource}.datasources[0].isDefault": "true",
        },
    )
    ctx.helm.install(
        "prometheus",
        "prometheus-community/prometheus",
        "monitoring",
        values={
            "server.prefixURL": "/prometheus",
            "server.baseURL": f"http://{c.vip}/prometheus",
            "server.persistentVolume.enabled": "true",
            "server.persistentVolume.storageClass": "longhorn",
            "server.persistentVolume.size": "10Gi",
            "alertmanager.enabled": "false",
            "prometheus-pushgateway.enabled": "false",
            "kube-state-metrics.enabled": "true",
            "prometheus-node-exporter.enabled": "true",
        },
    )
    ctx.wait(
        ctx.kubectl.deployment_ready("monitoring", "grafana", interval=c.wait_interval),
        ctx.kubectl.deployment_ready("monitoring", "prometheus-server", interval=c.wait_interval),
    )
    ctx.kubectl.apply_manifests(
        [
            build_ingress("grafana", "monitoring", "/grafana", "grafana", 80),
            build_ingress("prometheus", "monitoring", "/prometheus", "prometheus-server", 80),
        ],
        "monitoring ingresses",
    )
    ctx.log.info("monitoring_deployed", grafana=f"http://{c.vip}/grafana")


def deploy_portainer(ctx: RunContext) -> None:
    c = ctx.config
    ctx.kubectl.apply_url(PORTAINER_URL, "Portainer")
    ctx.wait(ctx.kubectl.deployment_ready("portainer", "portainer", interval=c.wait_interval))
    # Bound claims reject storage class changes; only matters on a fresh claim
    ctx.kubectl.patch(
        "pvc", "portainer", {"spec": {"storageClassName": "longhorn"}}, "portainer", check=False
    )
    ctx.kubectl.apply_manifests(
        [build_ingress("portainer", "portainer", "/portainer", "portainer", 9000, rewrite=True)],
        "Portainer ingress",
    )
    ctx.log.info("portainer_deployed", ui=f"http://{c.vip}/portainer")


def deploy_welcome_page(ctx: RunContext) -> None:
    c = ctx.config
    ctx.kubectl.apply_manifests(build_welcome_page(c), "welcome page")
    ctx.wait(
        ctx.kubectl.deployment_ready("welcome", "welcome", timeout=180, interval=c.wait_interval)
    )
    ctx.log.info("welcome_page_deployed", url=f"http://{c.vip}/")


def signal_cluster_ready(ctx: RunContext) -> None:
    """Publish the config map joining nodes wait for."""
    ctx.kubectl.apply_manifests(build_cluster_ready(), "cluster ready signal")


# -- sequence --------------------------------------------------------------

# (name, action, description, config toggle)
NODE1_STEPS = [
    ("network", verify_network, "Configuring Network", None),
    ("prerequisites", prepare_host, "Verifying System Prerequisites", None),
    ("k8s-init", init_control_plane, "Initializing Kubernetes Cluster", None),
    ("cni", deploy_cni, "Deploying Flannel CNI", None),
    ("metallb", deploy_metallb, "Deploying MetalLB", None),
    ("ingress", deploy_ingress, "Deploying NGINX Ingress Controller", None),
    ("longhorn", deploy_longhorn, "Deploying Longhorn Distributed Storage", "deploy_longhorn"),
    ("minio", deploy_minio, "Deploying MinIO S3 Storage", "deploy_minio"),
    ("monitoring", deploy_monitoring, "Deploying Monitoring Stack", "deploy_grafana"),
    ("portainer", deploy_portainer, "Deploying Portainer", "deploy_portainer"),
    ("welcome", deploy_welcome_page, "Deploying Welcome Page", "deploy_welcome_page"),
    ("cluster-ready", signal_cluster_ready, "Creating Cluster Ready Signal", None),
]


def build_node1_steps(config: BootstrapConfig) -> list[Step]:
    """Build the ordered node-1 step list, leaving out disabled add-ons."""
    steps = []
    for name, action, description, toggle in NODE1_STEPS:
        if toggle and not getattr(config, toggle):
            logger.info("step_disabled", step=name, reason=f"{ENV_VARS[toggle]}=false")
            continue
        steps.append(Step(name, action, description))
    return steps


def make_cleanup(
    config: BootstrapConfig,
    store: MarkerStore,
    seed_files: tuple[Path, ...] | None = None,
) -> Callable[[], None]:
    """Build the cleanup pseudo-step: marker store and scratch files."""

    def cleanup() -> None:
        logger.info("cleaning_up_bootstrap")
        store.clear()
        seeds = CLOUD_INIT_SEED_FILES if seed_files is None else seed_files
        scratch = [get_kubeadm_config(config.bootstrap_dir), *seeds]
        for path in scratch:
            if path.exists():
                path.unlink()
                logger.debug("removed_scratch_file", path=str(path))
        logger.info("bootstrap_cleanup_complete")

    return cleanup


def run_bootstrap(ctx: RunContext, store: MarkerStore | None = None) -> RunResult:
    """Run the node-1 sequence.

    On success the endpoint summary is written and logged, then (when
    cleanup_bootstrap is set) the marker store and scratch files are removed.
    Both happen in the sequencer's final pseudo-step, so neither runs after
    a failure.
    """
    c = ctx.config
    store = store or MarkerStore(c.marker_dir)
    start = time.monotonic()

    log_header(logger, "NODE 1 INITIALIZATION STARTING")
    cleanup = make_cleanup(c, store) if c.cleanup_bootstrap else None

    def finish() -> None:
        log_header(logger, "BOOTSTRAP COMPLETE")
        lines = build_summary(c, time.monotonic() - start)
        for line in lines:
            logger.info(line)
        write_summary(c, lines)
        if cleanup is not None:
            cleanup()

    sequencer = StepSequencer(store, cleanup=finish)
    result = sequencer.run(build_node1_steps(c), ctx)
    # finish runs on every success; cleanup inside it only when enabled
    result.cleaned_up = result.success and cleanup is not None

    if result.success:
        log_header(logger, "NODE 1 INITIALIZATION COMPLETE")
    return result
