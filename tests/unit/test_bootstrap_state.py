"""Unit tests for bootstrap state module."""

from __future__ import annotations

import os
from datetime import datetime, timezone

import pytest

from zerotouch_cli.bootstrap import MarkerStore
from zerotouch_cli.bootstrap.state import MARKER_SUFFIX


class TestMarkerStore:
    """Tests for MarkerStore."""

    def test_fresh_store_has_nothing_complete(self, tmp_path):
        """Test a store whose directory does not exist yet."""
        store = MarkerStore(tmp_path / "state")
        assert store.is_complete("network") is False
        assert store.completed_steps() == []
        assert store.completed_at("network") is None

    def test_mark_complete_creates_marker(self, tmp_path):
        """Test marking a step complete writes <step>.done."""
        store = MarkerStore(tmp_path / "state")
        marker = store.mark_complete("k8s-init")

        assert marker == tmp_path / "state" / f"k8s-init{MARKER_SUFFIX}"
        assert marker.is_file()
        assert store.is_complete("k8s-init") is True
        assert not list((tmp_path / "state").glob("*.tmp"))

    def test_marker_holds_timestamp(self, tmp_path):
        """Test the marker body is an ISO timestamp."""
        store = MarkerStore(tmp_path)
        before = datetime.now(timezone.utc)
        store.mark_complete("cni")

        completed = store.completed_at("cni")
        assert completed is not None
        assert completed >= before.replace(microsecond=0)

    def test_completed_at_tolerates_empty_marker(self, tmp_path):
        """Test a marker created by hand (e.g. touch) still counts."""
        store = MarkerStore(tmp_path)
        (tmp_path / f"metallb{MARKER_SUFFIX}").touch()

        assert store.is_complete("metallb") is True
        assert store.completed_at("metallb") is None

    def test_mark_complete_is_idempotent(self, tmp_path):
        """Test marking twice keeps a single marker."""
        store = MarkerStore(tmp_path)
        store.mark_complete("network")
        store.mark_complete("network")
        assert store.completed_steps() == ["network"]

    def test_completed_steps_ordered_by_time(self, tmp_path):
        """Test completed steps are listed oldest first."""
        store = MarkerStore(tmp_path)
        for i, step in enumerate(["network", "prerequisites", "k8s-init"]):
            marker = store.mark_complete(step)
            os.utime(marker, (1000 + i, 1000 + i))

        assert store.completed_steps() == ["network", "prerequisites", "k8s-init"]

    def test_reset_single_step(self, tmp_path):
        """Test resetting one step leaves the others."""
        store = MarkerStore(tmp_path)
        store.mark_complete("network")
        store.mark_complete("cni")

        assert store.reset("cni") is True
        assert store.is_complete("cni") is False
        assert store.is_complete("network") is True

    def test_reset_missing_step(self, tmp_path):
        """Test resetting a step that never completed."""
        store = MarkerStore(tmp_path)
        assert store.reset("cni") is False

    def test_clear_removes_directory(self, tmp_path):
        """Test clear deletes the whole store."""
        state_dir = tmp_path / "state"
        store = MarkerStore(state_dir)
        store.mark_complete("network")

        store.clear()

        assert not state_dir.exists()
        assert store.is_complete("network") is False

    def test_clear_on_missing_directory(self, tmp_path):
        """Test clear is a no-op when nothing was written."""
        MarkerStore(tmp_path / "never-created").clear()

    @pytest.mark.parametrize("name", ["", "../escape", ".hidden", "a/b"])
    def test_invalid_step_names_rejected(self, tmp_path, name):
        """Test step names cannot escape the marker directory."""
        store = MarkerStore(tmp_path)
        with pytest.raises(ValueError):
            store.mark_complete(name)
