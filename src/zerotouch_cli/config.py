"""Bootstrap configuration management.

Builds the immutable bootstrap configuration once at startup.
Supports an optional YAML config file and environment variable overrides.
"""

import os
from collections.abc import Mapping
from dataclasses import dataclass, field, fields
from pathlib import Path
from typing import Any

import yaml

from .shared.paths import BOOTSTRAP_DIR, BOOTSTRAP_LOG, CONFIG_FILE, get_state_dir

TRUE_VALUES = {"true", "1", "yes", "on"}
FALSE_VALUES = {"false", "0", "no", "off"}


class ConfigError(Exception):
    """Raised when the config file or an override cannot be parsed."""


@dataclass(frozen=True)
class BootstrapConfig:
    """Parameters for a node-1 bootstrap run."""

    # Network
    private_ip: str = "192.168.100.11"
    external_ip: str = "192.168.1.21"
    private_netmask: int = 24
    external_netmask: int = 24
    gateway: str = "192.168.100.1"
    interface: str = "eth0"

    # Cluster
    k8s_version: str = "1.28.0"
    pod_cidr: str = "10.244.0.0/16"
    service_cidr: str = "10.96.0.0/12"
    vip: str = "192.168.1.100"

    # Add-on versions
    metallb_version: str = "v0.14.9"
    metallb_ip_range: str = ""  # empty means "<vip>-<vip>"
    ingress_nginx_version: str = "v1.11.3"
    longhorn_version: str = "v1.7.2"
    longhorn_data_dir: str = "/var/lib/longhorn"

    # Credentials
    minio_root_user: str = "admin"
    minio_root_password: str = ""  # empty means "generate"
    grafana_admin_password: str = "admin"
    ssh_user: str = "k8sadmin"

    # Feature toggles
    deploy_longhorn: bool = True
    deploy_minio: bool = True
    deploy_grafana: bool = True
    deploy_portainer: bool = True
    deploy_welcome_page: bool = True
    cleanup_bootstrap: bool = True

    # Locations and timing
    bootstrap_dir: Path = BOOTSTRAP_DIR
    state_dir: Path | None = None  # None means "<bootstrap_dir>/.state"
    log_file: Path = BOOTSTRAP_LOG
    wait_interval: int = 10

    # Track where each value came from
    _sources: dict[str, str] = field(default_factory=dict, compare=False, repr=False)

    @property
    def marker_dir(self) -> Path:
        """Directory holding completion markers."""
        return self.state_dir or get_state_dir(self.bootstrap_dir)

    @property
    def address_pool(self) -> str:
        """MetalLB address range."""
        return self.metallb_ip_range or f"{self.vip}-{self.vip}"

    def get_source(self, key: str) -> str:
        """Get the source of a config value."""
        return self._sources.get(key, "default")


# Environment variable mappings, named after the cloud-init variables
ENV_VARS = {
    "private_ip": "NODE1_PRIVATE_IP",
    "external_ip": "NODE1_EXTERNAL_IP",
    "private_netmask": "PRIVATE_NETMASK",
    "external_netmask": "EXTERNAL_NETMASK",
    "gateway": "PRIVATE_GATEWAY",
    "interface": "NETWORK_INTERFACE",
    "k8s_version": "K8S_VERSION",
    "pod_cidr": "POD_CIDR",
    "service_cidr": "SERVICE_CIDR",
    "vip": "VIP",
    "metallb_version": "METALLB_VERSION",
    "metallb_ip_range": "METALLB_IP_RANGE",
    "ingress_nginx_version": "INGRESS_NGINX_VERSION",
    "longhorn_version": "LONGHORN_VERSION",
    "longhorn_data_dir": "LONGHORN_DATA_DIR",
    "minio_root_user": "MINIO_ROOT_USER",
    "minio_root_password": "MINIO_ROOT_PASSWORD",
    "grafana_admin_password": "GRAFANA_ADMIN_PASSWORD",
    "ssh_user": "SSH_USER",
    "deploy_longhorn": "DEPLOY_LONGHORN",
    "deploy_minio": "DEPLOY_MINIO",
    "deploy_grafana": "DEPLOY_GRAFANA",
    "deploy_portainer": "DEPLOY_PORTAINER",
    "deploy_welcome_page": "DEPLOY_WELCOME_PAGE",
    "cleanup_bootstrap": "CLEANUP_BOOTSTRAP",
    "bootstrap_dir": "BOOTSTRAP_DIR",
    "state_dir": "BOOTSTRAP_STATE_DIR",
    "log_file": "BOOTSTRAP_LOG",
    "wait_interval": "WAIT_INTERVAL",
}

_FIELD_TYPES = {
    f.name: f.type for f in fields(BootstrapConfig) if not f.name.startswith("_")
}


def _coerce(key: str, value: Any) -> Any:
    """Convert a raw file/environment value to the field's type."""
    kind = _FIELD_TYPES[key]
    if kind is bool:
        if isinstance(value, bool):
            return value
        text = str(value).strip().lower()
        if text in TRUE_VALUES:
            return True
        if text in FALSE_VALUES:
            return False
        raise ConfigError(f"Invalid boolean for {key}: {value!r}")
    if kind is int:
        try:
            return int(value)
        except (TypeError, ValueError) as e:
            raise ConfigError(f"Invalid integer for {key}: {value!r}") from e
    if kind in (Path, Path | None):
        return Path(str(value))
    return str(value)


def get_config_path() -> Path:
    """Get the default config file path.

    Returns:
        Path to /etc/zerotouch/config.yaml
    """
    return CONFIG_FILE


def load_config(
    config_path: str | Path | None = None,
    environ: Mapping[str, str] | None = None,
) -> BootstrapConfig:
    """Load bootstrap configuration.

    Precedence (highest to lowest):
    1. Environment variables
    2. Config file (--config, or /etc/zerotouch/config.yaml if present)
    3. Defaults

    Args:
        config_path: Explicit config file. Must exist when given.
        environ: Environment mapping (default: os.environ)

    Returns:
        BootstrapConfig with values and sources

    Raises:
        ConfigError: If the file is missing, malformed, or a value has the wrong type.
    """
    env = os.environ if environ is None else environ
    values: dict[str, Any] = {}
    sources: dict[str, str] = {key: "default" for key in _FIELD_TYPES}

    path = Path(config_path) if config_path else get_config_path()
    if config_path and not path.exists():
        raise ConfigError(f"Config file not found: {path}")

    if path.exists():
        try:
            with open(path) as f:
                file_config = yaml.safe_load(f) or {}
        except yaml.YAMLError as e:
            raise ConfigError(f"Invalid YAML in {path}: {e}") from e
        if not isinstance(file_config, dict):
            raise ConfigError(f"Config file {path} must contain a mapping")

        for key, raw in file_config.items():
            if key not in _FIELD_TYPES:
                raise ConfigError(f"Unknown config key in {path}: {key}")
            values[key] = _coerce(key, raw)
            sources[key] = "config file"

    for key, var in ENV_VARS.items():
        raw = env.get(var)
        if raw:
            values[key] = _coerce(key, raw)
            sources[key] = "environment"

    return BootstrapConfig(**values, _sources=sources)
