"""zerotouch-cli - zero-touch bootstrap for a small Kubernetes cluster."""

from importlib.metadata import PackageNotFoundError, version

try:
    __version__ = version("zerotouch-cli")
except PackageNotFoundError:
    __version__ = "0.0.0.dev0"  # Fallback for editable installs without metadata

__all__ = ["__version__"]
