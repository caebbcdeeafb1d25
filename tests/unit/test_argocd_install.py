"""Unit tests for cluster creation and ArgoCD installation."""

from __future__ import annotations

import typing as typ

import pytest

from iotctl.argocd.install import recreate_cluster, setup_argocd
from iotctl.config import ARGOCD_INSTALL_MANIFEST, ArgoCDConfig, ClusterConfig
from iotctl.validation import ExecutableNotFoundError

if typ.TYPE_CHECKING:
    from pathlib import Path

    from conftest import ConsoleOutput, FakeCommands

APPLICATION_YAML = """\
apiVersion: argoproj.io/v1alpha1
kind: Application
metadata:
  name: iot-app
  namespace: argocd
spec:
  project: default
"""


@pytest.fixture
def k3d_commands(commands: FakeCommands, tmp_path: Path) -> FakeCommands:
    """Answer k3d with no clusters and a kubeconfig under tmp_path."""
    commands.on("k3d", "cluster", "list", stdout="[]")
    commands.on("k3d", "kubeconfig", "write", stdout=str(tmp_path / "kubeconfig"))
    return commands


@pytest.fixture
def argocd_cfg(tmp_path: Path) -> ArgoCDConfig:
    """Return an ArgoCD configuration whose Application file exists."""
    app_file = tmp_path / "confs" / "argocd-application.yaml"
    app_file.parent.mkdir()
    app_file.write_text(APPLICATION_YAML, encoding="utf-8")
    return ArgoCDConfig(application_file=app_file)


class TestRecreateCluster:
    """Tests for recreate_cluster."""

    def test_creates_when_absent(
        self,
        k3d_commands: FakeCommands,
        sleeps: list[float],
        console_output: ConsoleOutput,
        tmp_path: Path,
    ) -> None:
        """A fresh cluster is created and its kubeconfig returned."""
        env = recreate_cluster(ClusterConfig())

        assert env["KUBECONFIG"] == str(tmp_path / "kubeconfig")
        assert not k3d_commands.called("k3d", "cluster", "delete")
        assert k3d_commands.called("k3d", "cluster", "create", "iot-cluster")
        assert sleeps == []

    def test_deletes_existing_cluster_first(
        self,
        k3d_commands: FakeCommands,
        sleeps: list[float],
        console_output: ConsoleOutput,
    ) -> None:
        """An existing cluster of the same name is deleted before creation."""
        k3d_commands.on("k3d", "cluster", "list", stdout='[{"name": "iot-cluster"}]')

        recreate_cluster(ClusterConfig())

        delete = k3d_commands.calls.index(("k3d", "cluster", "delete", "iot-cluster"))
        create = next(
            i
            for i, call in enumerate(k3d_commands.calls)
            if call[:3] == ("k3d", "cluster", "create")
        )
        assert delete < create
        assert sleeps == [3]
        assert "already exists. Deleting it" in console_output.stdout


class TestSetupArgoCD:
    """Tests for setup_argocd."""

    def test_full_setup(
        self,
        k3d_commands: FakeCommands,
        argocd_cfg: ArgoCDConfig,
        sleeps: list[float],
        all_tools: None,
        console_output: ConsoleOutput,
    ) -> None:
        """Every step runs in order and the Application is applied."""
        assert setup_argocd(ClusterConfig(), argocd_cfg) == 0

        kubectl = [call[1:] for call in k3d_commands.calls if call[0] == "kubectl"]
        assert kubectl[0][:3] == ("wait", "--for=condition=ready", "nodes")
        assert ("get", "namespace", "argocd") in kubectl
        assert ("get", "namespace", "dev") in kubectl
        assert ("apply", "-n", "argocd", "-f", ARGOCD_INSTALL_MANIFEST) in kubectl
        assert (
            "apply",
            "-n",
            "argocd",
            "-f",
            str(argocd_cfg.application_file),
        ) in kubectl
        assert ("get", "applications", "-n", "argocd") in kubectl
        for index in range(1, 7):
            assert f"[{index}/6]" in console_output.stdout
        assert "Applying ArgoCD Application 'iot-app'" in console_output.stdout
        assert sleeps == []

    def test_slow_server_gets_grace_period(
        self,
        k3d_commands: FakeCommands,
        argocd_cfg: ArgoCDConfig,
        sleeps: list[float],
        all_tools: None,
        console_output: ConsoleOutput,
    ) -> None:
        """An unavailable server leads to a 30 s wait instead of failure."""
        k3d_commands.on("kubectl", "wait", "--for=condition=available", returncode=1)

        assert setup_argocd(ClusterConfig(), argocd_cfg) == 0

        assert sleeps == [30.0]
        assert "still starting" in console_output.stdout

    def test_missing_application_file_is_a_warning(
        self,
        k3d_commands: FakeCommands,
        sleeps: list[float],
        all_tools: None,
        console_output: ConsoleOutput,
        tmp_path: Path,
    ) -> None:
        """Setup completes and explains how to apply the file by hand."""
        cfg = ArgoCDConfig(application_file=tmp_path / "missing.yaml")

        assert setup_argocd(ClusterConfig(), cfg) == 0

        assert "Application file not found" in console_output.stdout
        assert not k3d_commands.called("kubectl", "get", "applications")

    def test_requires_docker(
        self,
        commands: FakeCommands,
        monkeypatch: pytest.MonkeyPatch,
        argocd_cfg: ArgoCDConfig,
    ) -> None:
        """Missing prerequisites abort before any cluster work."""
        monkeypatch.setattr(
            "shutil.which", lambda name: None if name == "docker" else f"/bin/{name}"
        )
        with pytest.raises(ExecutableNotFoundError, match="docker"):
            setup_argocd(ClusterConfig(), argocd_cfg)
        assert commands.calls == []
