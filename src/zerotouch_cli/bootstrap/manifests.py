"""Manifest generation for the node-1 bootstrap.

Builds the kubeadm configuration and the in-cluster resources the add-on
steps apply (address pool, ingresses, welcome page, ready signal).
"""

from __future__ import annotations

import socket
from datetime import datetime, timezone
from pathlib import Path
from typing import Any

import yaml

from ..config import BootstrapConfig

# Upstream manifest locations
FLANNEL_URL = "https://github.com/flannel-io/flannel/releases/latest/download/kube-flannel.yml"
METALLB_URL = (
    "https://raw.githubusercontent.com/metallb/metallb/{version}"
    "/config/manifests/metallb-native.yaml"
)
INGRESS_NGINX_URL = (
    "https://raw.githubusercontent.com/kubernetes/ingress-nginx/controller-{version}"
    "/deploy/static/provider/cloud/deploy.yaml"
)
LONGHORN_URL = "https://raw.githubusercontent.com/longhorn/longhorn/{version}/deploy/longhorn.yaml"
PORTAINER_URL = "https://downloads.portainer.io/ce2-19/portainer.yaml"

API_SERVER_PORT = 6443
CRI_SOCKET = "unix:///var/run/containerd/containerd.sock"


def write_manifest(path: Path, manifests: list[dict[str, Any]]) -> None:
    """Write manifests to file (multi-document YAML)."""
    path.parent.mkdir(parents=True, exist_ok=True)
    with open(path, "w") as f:
        yaml.dump_all(manifests, f, default_flow_style=False, sort_keys=False)


def build_kubeadm_config(
    config: BootstrapConfig, hostname: str | None = None
) -> list[dict[str, Any]]:
    """Build InitConfiguration, ClusterConfiguration and KubeletConfiguration."""
    hostname = hostname or socket.gethostname()
    endpoint = f"{config.private_ip}:{API_SERVER_PORT}"

    init = {
        "apiVersion": "kubeadm.k8s.io/v1beta3",
        "kind": "InitConfiguration",
        "localAPIEndpoint": {
            "advertiseAddress": config.private_ip,
            "bindPort": API_SERVER_PORT,
        },
        "nodeRegistration": {
            "criSocket": CRI_SOCKET,
            "kubeletExtraArgs": {"node-ip": config.private_ip},
        },
    }

    cluster = {
        "apiVersion": "kubeadm.k8s.io/v1beta3",
        "kind": "ClusterConfiguration",
        "kubernetesVersion": f"v{config.k8s_version.lstrip('v')}",
        "controlPlaneEndpoint": endpoint,
        "networking": {
            "podSubnet": config.pod_cidr,
            "serviceSubnet": config.service_cidr,
        },
        "apiServer": {
            "certSANs": [config.private_ip, config.external_ip, config.vip, hostname],
        },
        "controllerManager": {"extraArgs": {"bind-address": "0.0.0.0"}},
        "scheduler": {"extraArgs": {"bind-address": "0.0.0.0"}},
    }

    kubelet = {
        "apiVersion": "kubelet.config.k8s.io/v1beta1",
        "kind": "KubeletConfiguration",
        "cgroupDriver": "systemd",
    }

    return [init, cluster, kubelet]


def build_address_pool(config: BootstrapConfig) -> list[dict[str, Any]]:
    """Build the MetalLB IPAddressPool and its L2Advertisement."""
    pool = {
        "apiVersion": "metallb.io/v1beta1",
        "kind": "IPAddressPool",
        "metadata": {"name": "external-pool", "namespace": "metallb-system"},
        "spec": {"addresses": [config.address_pool]},
    }
    advertisement = {
        "apiVersion": "metallb.io/v1beta1",
        "kind": "L2Advertisement",
        "metadata": {"name": "external-advertisement", "namespace": "metallb-system"},
        "spec": {"ipAddressPools": ["external-pool"]},
    }
    return [pool, advertisement]


def build_ingress(
    name: str,
    namespace: str,
    path: str,
    service: str,
    port: int,
    rewrite: bool = False,
    annotations: dict[str, str] | None = None,
) -> dict[str, Any]:
    """Build an nginx Ingress routing a path prefix to a service.

    With rewrite=True the prefix is stripped before forwarding, for UIs
    that expect to be served from the root.
    """
    metadata: dict[str, Any] = {"name": name, "namespace": namespace}
    merged = dict(annotations or {})
    if rewrite:
        merged["nginx.ingress.kubernetes.io/rewrite-target"] = "/$2"
        path = f"{path}(/|$)(.*)"
        path_type = "ImplementationSpecific"
    else:
        path_type = "Prefix"
    if merged:
        metadata["annotations"] = merged

    return {
        "apiVersion": "networking.k8s.io/v1",
        "kind": "Ingress",
        "metadata": metadata,
        "spec": {
            "ingressClassName": "nginx",
            "rules": [
                {
                    "http": {
                        "paths": [
                            {
                                "path": path,
                                "pathType": path_type,
                                "backend": {
                                    "service": {"name": service, "port": {"number": port}}
                                },
                            }
                        ]
                    }
                }
            ],
        },
    }


def _welcome_html(config: BootstrapConfig, hostname: str) -> str:
    services: list[tuple[str, str, str]] = []
    if config.deploy_portainer:
        services.append(("Portainer", "/portainer/", "Web-based Kubernetes management"))
    if config.deploy_grafana:
        services.append(("Grafana", "/grafana/", "Monitoring dashboards"))
        services.append(("Prometheus", "/prometheus/", "Metrics and monitoring"))
    if config.deploy_longhorn:
        services.append(("Longhorn", "/longhorn/", "Distributed block storage"))
    if config.deploy_minio:
        services.append(("MinIO", "/minio/", "S3-compatible object storage"))

    items = "\n".join(
        f'      <div class="service"><strong>{name}</strong> - {desc}<br>'
        f'<a href="{path}" target="_blank">Open {name}</a></div>'
        for name, path, desc in services
    )
    return f"""<!DOCTYPE html>
<html>
<head>
  <title>Kubernetes Cluster - Welcome</title>
  <style>
    body {{ font-family: Arial, sans-serif; margin: 40px; background: #f5f5f5; }}
    .container {{ max-width: 800px; margin: 0 auto; background: white; padding: 30px; }}
    h1 {{ color: #326ce5; }}
    .service {{ background: #f0f0f0; padding: 15px; margin: 10px 0; }}
    .info {{ background: #e7f3ff; padding: 10px; border-left: 4px solid #326ce5; }}
  </style>
</head>
<body>
  <div class="container">
    <h1>Zero-Touch Kubernetes Cluster</h1>
    <div class="info">
      <strong>Cluster Status:</strong> Ready<br>
      <strong>VIP:</strong> {config.vip}<br>
      <strong>Node:</strong> {hostname}
    </div>
    <h2>Available Services</h2>
{items}
    <div class="info">
      <strong>Bootstrap Log:</strong> {config.log_file}<br>
      <strong>Kubeconfig:</strong> {config.bootstrap_dir / "kubeconfig"}
    </div>
  </div>
</body>
</html>
"""


def build_welcome_page(
    config: BootstrapConfig, hostname: str | None = None
) -> list[dict[str, Any]]:
    """Build namespace, page content, nginx deployment, service and ingress."""
    hostname = hostname or socket.gethostname()
    ns = "welcome"
    labels = {"app": "welcome"}

    namespace = {"apiVersion": "v1", "kind": "Namespace", "metadata": {"name": ns}}

    config_map = {
        "apiVersion": "v1",
        "kind": "ConfigMap",
        "metadata": {"name": "welcome-html", "namespace": ns},
        "data": {"index.html": _welcome_html(config, hostname)},
    }

    deployment = {
        "apiVersion": "apps/v1",
        "kind": "Deployment",
        "metadata": {"name": "welcome", "namespace": ns},
        "spec": {
            "replicas": 2,
            "selector": {"matchLabels": labels},
            "template": {
                "metadata": {"labels": labels},
                "spec": {
                    "containers": [
                        {
                            "name": "nginx",
                            "image": "nginx:alpine",
                            "ports": [{"containerPort": 80}],
                            "volumeMounts": [
                                {"name": "html", "mountPath": "/usr/share/nginx/html"}
                            ],
                            "resources": {
                                "requests": {"cpu": "10m", "memory": "16Mi"},
                                "limits": {"cpu": "50m", "memory": "32Mi"},
                            },
                        }
                    ],
                    "volumes": [{"name": "html", "configMap": {"name": "welcome-html"}}],
                },
            },
        },
    }

    service = {
        "apiVersion": "v1",
        "kind": "Service",
        "metadata": {"name": "welcome", "namespace": ns},
        "spec": {"selector": labels, "ports": [{"port": 80, "targetPort": 80}]},
    }

    ingress = build_ingress("welcome", ns, "/", "welcome", 80)

    return [namespace, config_map, deployment, service, ingress]


def build_cluster_ready(
    hostname: str | None = None, now: datetime | None = None
) -> list[dict[str, Any]]:
    """Build the config map that tells joining nodes the cluster is ready."""
    now = now or datetime.now(timezone.utc)
    return [
        {
            "apiVersion": "v1",
            "kind": "ConfigMap",
            "metadata": {"name": "cluster-ready", "namespace": "kube-system"},
            "data": {
                "ready": "true",
                "timestamp": now.strftime("%Y-%m-%dT%H:%M:%SZ"),
                "node": hostname or socket.gethostname(),
            },
        }
    ]
