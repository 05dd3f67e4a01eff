"""Unit tests for bootstrap prerequisites module."""

from __future__ import annotations

from unittest.mock import MagicMock, patch

import pytest

from zerotouch_cli.bootstrap import (
    FatalStepFailure,
    HostTuning,
    NetworkProbe,
    NetworkStatus,
    PreconditionFailure,
    ServiceManager,
)
from zerotouch_cli.bootstrap.prerequisites import KERNEL_MODULES, SYSCTL_SETTINGS


def _proc(returncode=0, stdout="", stderr=""):
    return MagicMock(returncode=returncode, stdout=stdout, stderr=stderr)


class TestNetworkProbe:
    """Tests for NetworkProbe."""

    @patch("shutil.which", return_value="/usr/bin/ping")
    @patch("subprocess.run")
    def test_reachable_first_try(self, mock_run, mock_which):
        """Test a successful ping."""
        mock_run.return_value = _proc()
        sleep = MagicMock()

        status = NetworkProbe(sleep=sleep).test()

        assert isinstance(status, NetworkStatus)
        assert status.reachable is True
        assert status.attempts == 1
        assert mock_run.call_args.args[0] == ["ping", "-c", "1", "-W", "5", "8.8.8.8"]
        sleep.assert_not_called()

    @patch("shutil.which", return_value="/usr/bin/ping")
    @patch("subprocess.run")
    def test_reachable_after_retries(self, mock_run, mock_which):
        """Test the probe retries until the network comes up."""
        mock_run.side_effect = [_proc(1), _proc(1), _proc()]
        sleep = MagicMock()

        status = NetworkProbe(sleep=sleep).test()

        assert status.reachable is True
        assert status.attempts == 3
        assert sleep.call_count == 2

    @patch("shutil.which", return_value="/usr/bin/ping")
    @patch("subprocess.run")
    def test_unreachable(self, mock_run, mock_which):
        """Test the probe gives up after max_attempts."""
        mock_run.return_value = _proc(1)
        sleep = MagicMock()

        status = NetworkProbe(max_attempts=5, sleep=sleep).test()

        assert status.reachable is False
        assert status.attempts == 5
        assert mock_run.call_count == 5
        assert sleep.call_count == 4
        assert "after 5 attempts" in status.error

    @patch("shutil.which", return_value=None)
    def test_ping_missing(self, mock_which):
        """Test a host without ping."""
        status = NetworkProbe().test()
        assert status.reachable is False
        assert status.error == "ping not found"

    @patch("shutil.which", return_value="/usr/bin/ping")
    @patch("subprocess.run")
    def test_require_raises(self, mock_run, mock_which):
        """Test require turns an unreachable network into a precondition failure."""
        mock_run.return_value = _proc(1)

        with pytest.raises(PreconditionFailure, match="Network test failed"):
            NetworkProbe(max_attempts=2, sleep=MagicMock()).require()


class TestServiceManager:
    """Tests for ServiceManager."""

    @patch("subprocess.run")
    def test_ensure_running(self, mock_run):
        """Test enable, start and verify."""
        mock_run.return_value = _proc()

        assert ServiceManager().ensure_running("containerd") is True

        commands = [c.args[0] for c in mock_run.call_args_list]
        assert commands == [
            ["systemctl", "enable", "containerd"],
            ["systemctl", "start", "containerd"],
            ["systemctl", "is-active", "--quiet", "containerd"],
        ]

    @patch("subprocess.run")
    def test_required_service_not_active(self, mock_run):
        """Test a required service that will not start is fatal."""
        mock_run.side_effect = [_proc(), _proc(), _proc(3)]
        with pytest.raises(FatalStepFailure, match="iscsid failed to start"):
            ServiceManager().ensure_running("iscsid")

    @patch("subprocess.run")
    def test_optional_service_missing(self, mock_run):
        """Test an optional unit that does not exist only warns."""
        mock_run.return_value = _proc(5, stderr="Unit open-iscsi.service not found.")
        assert ServiceManager().ensure_running("open-iscsi", required=False) is False

    @patch("subprocess.run")
    def test_is_active(self, mock_run):
        """Test is_active reflects the exit code."""
        mock_run.return_value = _proc(3)
        assert ServiceManager().is_active("kubelet") is False


class TestHostTuning:
    """Tests for HostTuning."""

    def _tuning(self, tmp_path, services=None):
        return HostTuning(
            services=services or MagicMock(spec=ServiceManager),
            fstab=tmp_path / "fstab",
            modules_file=tmp_path / "modules-load.d" / "k8s.conf",
            sysctl_file=tmp_path / "sysctl.d" / "k8s.conf",
        )

    @patch("subprocess.run")
    def test_disable_swap(self, mock_run, tmp_path):
        """Test swap entries are removed from fstab and swap is masked."""
        mock_run.return_value = _proc()
        services = MagicMock(spec=ServiceManager)
        tuning = self._tuning(tmp_path, services)
        tuning.fstab.write_text("/dev/sda1 / ext4 defaults 0 1\n/swapfile none swap sw 0 0\n")

        tuning.disable_swap()

        assert mock_run.call_args.args[0] == ["swapoff", "-a"]
        assert tuning.fstab.read_text() == "/dev/sda1 / ext4 defaults 0 1\n"
        services.mask.assert_called_once_with("swap.target")

    @patch("subprocess.run")
    def test_disable_swap_without_fstab(self, mock_run, tmp_path):
        """Test a host with no fstab."""
        mock_run.return_value = _proc()
        self._tuning(tmp_path).disable_swap()

    @patch("subprocess.run")
    def test_configure_kernel_modules(self, mock_run, tmp_path):
        """Test modules are persisted and loaded."""
        mock_run.return_value = _proc()
        tuning = self._tuning(tmp_path)

        tuning.configure_kernel_modules()

        assert tuning.modules_file.read_text().split() == list(KERNEL_MODULES)
        commands = [c.args[0] for c in mock_run.call_args_list]
        assert commands == [["modprobe", m] for m in KERNEL_MODULES]

    @patch("subprocess.run")
    def test_configure_sysctl(self, mock_run, tmp_path):
        """Test sysctl settings are written and reloaded."""
        mock_run.return_value = _proc()
        tuning = self._tuning(tmp_path)

        tuning.configure_sysctl()

        content = tuning.sysctl_file.read_text()
        for key, value in SYSCTL_SETTINGS.items():
            assert f"{key} = {value}" in content
        assert mock_run.call_args.args[0] == ["sysctl", "--system"]

    @patch("subprocess.run")
    def test_modprobe_failure_is_fatal(self, mock_run, tmp_path):
        """Test a module that cannot load fails the step."""
        mock_run.return_value = _proc(1, stderr="Module br_netfilter not found")
        with pytest.raises(FatalStepFailure):
            self._tuning(tmp_path).configure_kernel_modules()
