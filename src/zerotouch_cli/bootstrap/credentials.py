"""Credential artifacts written during bootstrap.

Installs the cluster admin kubeconfig for the users that need it and
generates or reuses the object-storage root password.
"""

from __future__ import annotations

import os
import pwd
import secrets
import shutil
import string
from pathlib import Path

from ..shared.logging import get_logger
from ..shared.paths import get_kubeconfig_copy, get_minio_password_file

logger = get_logger(__name__)

PASSWORD_LENGTH = 32
PASSWORD_ALPHABET = string.ascii_letters + string.digits


def generate_password(length: int = PASSWORD_LENGTH) -> str:
    """Generate a random alphanumeric password."""
    return "".join(secrets.choice(PASSWORD_ALPHABET) for _ in range(length))


def resolve_minio_password(configured: str, bootstrap_dir: Path) -> str:
    """Pick the object-storage root password.

    Order: configured value, then a password file left by an earlier
    attempt of the same step, then a freshly generated one.
    """
    if configured:
        return configured
    password_file = get_minio_password_file(bootstrap_dir)
    if password_file.exists():
        existing = password_file.read_text().strip()
        if existing:
            logger.info("reusing_minio_password", path=str(password_file))
            return existing
    return generate_password()


def save_minio_password(password: str, bootstrap_dir: Path) -> Path:
    """Write the password file readable by root only."""
    password_file = get_minio_password_file(bootstrap_dir)
    password_file.parent.mkdir(parents=True, exist_ok=True)
    fd = os.open(password_file, os.O_WRONLY | os.O_CREAT | os.O_TRUNC, 0o600)
    with os.fdopen(fd, "w") as f:
        f.write(password + "\n")
    os.chmod(password_file, 0o600)
    return password_file


def install_kubeconfig(
    admin_conf: Path,
    bootstrap_dir: Path,
    ssh_user: str,
    home: Path | None = None,
) -> list[Path]:
    """Copy the admin kubeconfig where kubectl users expect it.

    Writes ~/.kube/config for the current user, a 0644 copy in the
    bootstrap directory, and ~<ssh_user>/.kube/config when that account
    exists and is not root.

    Returns:
        Paths written.
    """
    written = []

    home = home or Path.home()
    user_config = home / ".kube" / "config"
    user_config.parent.mkdir(parents=True, exist_ok=True)
    shutil.copyfile(admin_conf, user_config)
    written.append(user_config)

    copy = get_kubeconfig_copy(bootstrap_dir)
    copy.parent.mkdir(parents=True, exist_ok=True)
    shutil.copyfile(admin_conf, copy)
    os.chmod(copy, 0o644)
    written.append(copy)

    if ssh_user and ssh_user != "root":
        try:
            account = pwd.getpwnam(ssh_user)
        except KeyError:
            logger.warning("kubeconfig_user_missing", user=ssh_user)
        else:
            target = Path(account.pw_dir) / ".kube" / "config"
            target.parent.mkdir(parents=True, exist_ok=True)
            shutil.copyfile(admin_conf, target)
            os.chown(target.parent, account.pw_uid, account.pw_gid)
            os.chown(target, account.pw_uid, account.pw_gid)
            written.append(target)
            logger.info("kubeconfig_installed", user=ssh_user)
    else:
        logger.warning("kubeconfig_user_skipped", user=ssh_user or "<unset>")

    return written
