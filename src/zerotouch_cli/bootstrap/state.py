"""Completion marker store for idempotent bootstrap runs.

One marker file per completed step, kept in a state directory that
survives reboots. A marker means the step's side effects are applied;
it is never re-verified.
"""

from __future__ import annotations

import os
import shutil
from datetime import datetime, timezone
from pathlib import Path

from ..shared.logging import get_logger

MARKER_SUFFIX = ".done"

logger = get_logger(__name__)


class MarkerStore:
    """Filesystem-backed completion markers."""

    def __init__(self, state_dir: Path):
        """Initialize marker store.

        Args:
            state_dir: Directory holding <step>.done files. Created on first write.
        """
        self.state_dir = Path(state_dir)

    def _marker(self, step: str) -> Path:
        if not step or "/" in step or step.startswith("."):
            raise ValueError(f"Invalid step name: {step!r}")
        return self.state_dir / f"{step}{MARKER_SUFFIX}"

    def is_complete(self, step: str) -> bool:
        """Check whether a step has a completion marker."""
        return self._marker(step).is_file()

    def mark_complete(self, step: str) -> Path:
        """Write the completion marker for a step.

        The marker is flushed and fsynced before returning so a crash right
        after a step cannot lose it.

        Args:
            step: Step name.

        Returns:
            Path to the marker file.
        """
        self.state_dir.mkdir(parents=True, exist_ok=True)
        marker = self._marker(step)
        tmp = marker.with_suffix(".tmp")
        with open(tmp, "w") as f:
            f.write(datetime.now(timezone.utc).isoformat() + "\n")
            f.flush()
            os.fsync(f.fileno())
        tmp.replace(marker)
        logger.debug("marked_step_complete", step=step)
        return marker

    def completed_at(self, step: str) -> datetime | None:
        """Get the informational completion time of a step.

        Returns:
            Timestamp from the marker, or None if the step is not complete
            or the marker body is unreadable.
        """
        marker = self._marker(step)
        if not marker.is_file():
            return None
        try:
            return datetime.fromisoformat(marker.read_text().strip())
        except ValueError:
            return None

    def completed_steps(self) -> list[str]:
        """List step names that have markers, sorted by completion time."""
        if not self.state_dir.is_dir():
            return []
        markers = sorted(
            self.state_dir.glob(f"*{MARKER_SUFFIX}"),
            key=lambda p: p.stat().st_mtime,
        )
        return [m.name[: -len(MARKER_SUFFIX)] for m in markers]

    def reset(self, step: str) -> bool:
        """Remove the marker for one step.

        Returns:
            True if a marker was removed, False if none existed.
        """
        marker = self._marker(step)
        if not marker.exists():
            return False
        marker.unlink()
        logger.info("marker_removed", step=step)
        return True

    def clear(self) -> None:
        """Delete the whole marker store."""
        if self.state_dir.exists():
            shutil.rmtree(self.state_dir)
            logger.info("marker_store_cleared", state_dir=str(self.state_dir))
