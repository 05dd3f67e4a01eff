"""Shared modules for zerotouch-cli.

This module provides functionality used by every command:
- Default filesystem locations
- Logging configuration
"""

from .logging import configure_logging, get_logger, log_header
from .paths import (
    ADMIN_CONF,
    BOOTSTRAP_DIR,
    BOOTSTRAP_LOG,
    CONFIG_FILE,
    ensure_dirs,
)

__all__ = [
    # Paths
    "ADMIN_CONF",
    "BOOTSTRAP_DIR",
    "BOOTSTRAP_LOG",
    "CONFIG_FILE",
    "ensure_dirs",
    # Logging
    "configure_logging",
    "get_logger",
    "log_header",
]
