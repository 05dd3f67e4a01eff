"""Integration tests for the bootstrap command.

Tests the full CLI flow with real collaborators and a faked host: every
kubectl, helm, systemctl and kubeadm call is answered by a fake
subprocess.run that behaves like a healthy single-node cluster.
"""

from __future__ import annotations

import json
import logging
from unittest.mock import MagicMock, patch

import pytest
import structlog
from click.testing import CliRunner

from zerotouch_cli.bootstrap import (
    Helm,
    HostTuning,
    Kubectl,
    MarkerStore,
    NetworkProbe,
    ReadinessPoller,
    RunContext,
    ServiceManager,
)
from zerotouch_cli.main import cli

READY = {"type": "Ready", "status": "True"}

CLUSTER_STATE = {
    "daemonset": {"status": {"desiredNumberScheduled": 1, "numberReady": 1}},
    "deployment": {"spec": {"replicas": 1}, "status": {"readyReplicas": 1}},
    "pods": {"items": [{"status": {"conditions": [READY]}}]},
    "job": {"status": {"conditions": [{"type": "Complete", "status": "True"}]}},
    "service": {"status": {"loadBalancer": {"ingress": [{"ip": "192.168.1.100"}]}}},
}


class FakeHost:
    """Answers subprocess.run like a healthy node."""

    def __init__(self):
        self.commands: list[list[str]] = []
        self.fail_kubeadm = False

    def __call__(self, cmd, **kwargs):
        self.commands.append(cmd)
        if cmd[0] == "kubeadm" and self.fail_kubeadm:
            return MagicMock(returncode=1, stdout="", stderr="[ERROR Port-6443]: in use")
        if cmd[0] == "kubectl" and "get" in cmd:
            kind = cmd[cmd.index("get") + 1]
            body = CLUSTER_STATE.get(kind, {})
            return MagicMock(returncode=0, stdout=json.dumps(body), stderr="")
        return MagicMock(returncode=0, stdout="", stderr="")

    def ran(self, binary: str) -> list[list[str]]:
        return [c for c in self.commands if c[0] == binary]


@pytest.fixture(autouse=True)
def reset_logging():
    """Drop handlers bound to the runner's streams after each test."""
    yield
    for handler in logging.getLogger().handlers[:]:
        handler.close()
        logging.getLogger().removeHandler(handler)
    structlog.reset_defaults()


@pytest.fixture
def host(tmp_path):
    """Patch every host-level side effect outside tmp_path."""
    fake = FakeHost()
    api_server = MagicMock()
    api_server.get.return_value = MagicMock(status_code=200, text="ok")
    with patch("subprocess.run", side_effect=fake), patch(
        "shutil.which", return_value="/usr/bin/ping"
    ), patch("httpx.Client") as mock_client, patch(
        "zerotouch_cli.bootstrap.steps.install_kubeconfig"
    ), patch("zerotouch_cli.bootstrap.steps.link_flannel_plugin"), patch(
        "zerotouch_cli.bootstrap.steps.CLOUD_INIT_SEED_FILES", ()
    ):
        mock_client.return_value.__enter__.return_value = api_server
        yield fake


@pytest.fixture
def config_file(tmp_path):
    path = tmp_path / "config.yaml"
    path.write_text(
        f"bootstrap_dir: {tmp_path / 'bootstrap'}\n"
        f"log_file: {tmp_path / 'bootstrap.log'}\n"
        f"longhorn_data_dir: {tmp_path / 'longhorn'}\n"
        "cleanup_bootstrap: false\n"
        "wait_interval: 1\n"
    )
    return path


@pytest.fixture
def context_factory(tmp_path, clock):
    """Build a RunContext with real collaborators on a fake clock."""

    def build(config):
        services = ServiceManager()
        return RunContext(
            config=config,
            kubectl=Kubectl(tmp_path / "admin.conf", sleep=clock.sleep),
            helm=Helm(tmp_path / "admin.conf"),
            services=services,
            host=HostTuning(
                services,
                fstab=tmp_path / "fstab",
                modules_file=tmp_path / "modules.conf",
                sysctl_file=tmp_path / "sysctl.conf",
            ),
            network=NetworkProbe(sleep=clock.sleep),
            poller=ReadinessPoller(sleep=clock.sleep, clock=clock),
            sleep=clock.sleep,
        )

    with patch("zerotouch_cli.commands.bootstrap.build_context", side_effect=build):
        yield build


@pytest.mark.integration
class TestBootstrapFlow:
    """Full node-1 runs through the CLI."""

    def test_fresh_run(self, host, config_file, context_factory, tmp_path):
        """Test a fresh node goes through every step."""
        result = CliRunner().invoke(cli, ["bootstrap", "--config", str(config_file)])

        assert result.exit_code == 0, result.output
        store = MarkerStore(tmp_path / "bootstrap" / ".state")
        assert len(store.completed_steps()) == 12
        assert len(host.ran("kubeadm")) == 1
        assert (tmp_path / "bootstrap" / "cluster-info.txt").exists()
        assert (tmp_path / "bootstrap" / "minio-password.txt").exists()

        releases = [c[c.index("--install") + 1] for c in host.ran("helm") if "--install" in c]
        assert releases == ["minio", "grafana", "prometheus"]

    def test_rerun_is_noop(self, host, config_file, context_factory):
        """Test a second run invokes no external command."""
        CliRunner().invoke(cli, ["bootstrap", "--config", str(config_file)])
        host.commands.clear()

        result = CliRunner().invoke(cli, ["bootstrap", "--config", str(config_file)])

        assert result.exit_code == 0, result.output
        assert host.commands == []

    def test_resume_after_kubeadm_failure(self, host, config_file, context_factory, tmp_path):
        """Test a failed kubeadm init is retried on the next run, and only it."""
        host.fail_kubeadm = True

        first = CliRunner().invoke(cli, ["bootstrap", "--config", str(config_file)])

        assert first.exit_code == 1
        assert "k8s-init" in first.output
        store = MarkerStore(tmp_path / "bootstrap" / ".state")
        assert set(store.completed_steps()) == {"network", "prerequisites"}
        log = (tmp_path / "bootstrap.log").read_text()
        assert "BOOTSTRAP FAILED at step: k8s-init" in log
        assert "Port-6443" in log

        host.fail_kubeadm = False
        host.commands.clear()

        second = CliRunner().invoke(cli, ["bootstrap", "--config", str(config_file)])

        assert second.exit_code == 0, second.output
        assert host.ran("ping") == []
        assert host.ran("swapoff") == []
        assert len(host.ran("kubeadm")) == 1
        assert len(store.completed_steps()) == 12
