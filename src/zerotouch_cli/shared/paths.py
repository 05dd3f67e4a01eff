"""Path management for zerotouch-cli.

Default locations used by the node bootstrap. Every path can be overridden
through the bootstrap configuration; these are only the fallbacks.
"""

from pathlib import Path

# Base directory for bootstrap artifacts (kubeconfig copy, passwords, summary)
BOOTSTRAP_DIR = Path("/opt/bootstrap")

# Completion markers live in a hidden directory under the bootstrap dir
STATE_DIRNAME = ".state"

# Mirrored log file
BOOTSTRAP_LOG = Path("/var/log/bootstrap.log")

# Optional YAML configuration file
CONFIG_FILE = Path("/etc/zerotouch/config.yaml")

# Admin credential written by kubeadm
ADMIN_CONF = Path("/etc/kubernetes/admin.conf")

# Cloud-init seed files removed on cleanup so the node does not re-provision
CLOUD_INIT_SEED_FILES = (
    Path("/boot/firmware/user-data"),
    Path("/boot/firmware/meta-data"),
    Path("/boot/user-data"),
    Path("/boot/meta-data"),
)


def get_state_dir(bootstrap_dir: Path) -> Path:
    """Get the marker directory for a bootstrap directory.

    Args:
        bootstrap_dir: Bootstrap base directory

    Returns:
        Path to the marker directory
    """
    return bootstrap_dir / STATE_DIRNAME


def get_kubeconfig_copy(bootstrap_dir: Path) -> Path:
    """Get path to the world-readable kubeconfig copy."""
    return bootstrap_dir / "kubeconfig"


def get_minio_password_file(bootstrap_dir: Path) -> Path:
    """Get path to the generated object-storage password file."""
    return bootstrap_dir / "minio-password.txt"


def get_summary_file(bootstrap_dir: Path) -> Path:
    """Get path to the human-readable endpoint summary."""
    return bootstrap_dir / "cluster-info.txt"


def get_kubeadm_config(bootstrap_dir: Path) -> Path:
    """Get path to the scratch kubeadm configuration file."""
    return bootstrap_dir / "kubeadm-config.yaml"


def ensure_dirs(bootstrap_dir: Path, log_file: Path) -> None:
    """Create the bootstrap and log directories if missing.

    Args:
        bootstrap_dir: Bootstrap base directory
        log_file: Mirrored log file (its parent is created)
    """
    bootstrap_dir.mkdir(parents=True, exist_ok=True)
    log_file.parent.mkdir(parents=True, exist_ok=True)
