"""Unit tests for iotctl configuration objects."""

from __future__ import annotations

import dataclasses
from pathlib import Path

import pytest

from iotctl.config import ArgoCDConfig, ClusterConfig, GitLabConfig, ResetConfig


class TestClusterConfig:
    """Tests for ClusterConfig."""

    def test_defaults_match_the_local_cluster(self) -> None:
        """Defaults describe one server, two agents and the ingress ports."""
        cfg = ClusterConfig()
        assert cfg.cluster_name == "iot-cluster"
        assert (cfg.servers, cfg.agents) == (1, 2)
        assert cfg.port_mappings == ("8090:80@loadbalancer", "8443:443@loadbalancer")
        assert cfg.namespaces == ("argocd", "dev")
        assert cfg.context_name == "k3d-iot-cluster"

    def test_is_frozen(self) -> None:
        """Configuration objects are immutable."""
        cfg = ClusterConfig()
        with pytest.raises(dataclasses.FrozenInstanceError):
            cfg.agents = 5  # type: ignore[misc]

    def test_rejects_invalid_cluster_name(self) -> None:
        """Cluster names must be DNS labels."""
        with pytest.raises(ValueError, match="cluster name"):
            ClusterConfig(cluster_name="Bad_Name")

    def test_from_env_overrides(self, monkeypatch: pytest.MonkeyPatch) -> None:
        """IOT_CLUSTER_NAME and IOT_K3D_AGENTS override the defaults."""
        monkeypatch.setenv("IOT_CLUSTER_NAME", "lab")
        monkeypatch.setenv("IOT_K3D_AGENTS", "0")
        cfg = ClusterConfig.from_env()
        assert cfg.cluster_name == "lab"
        assert cfg.agents == 0

    def test_from_env_ignores_blank_values(
        self, monkeypatch: pytest.MonkeyPatch
    ) -> None:
        """Blank variables fall back to defaults."""
        monkeypatch.setenv("IOT_CLUSTER_NAME", "  ")
        assert ClusterConfig.from_env().cluster_name == "iot-cluster"

    @pytest.mark.parametrize(
        ("raw", "error_match"),
        [("two", "must be an integer"), ("-1", "must be >= 0")],
    )
    def test_from_env_rejects_bad_agent_count(
        self, monkeypatch: pytest.MonkeyPatch, raw: str, error_match: str
    ) -> None:
        """Non-numeric or negative agent counts are rejected."""
        monkeypatch.setenv("IOT_K3D_AGENTS", raw)
        with pytest.raises(ValueError, match=error_match):
            ClusterConfig.from_env()


class TestArgoCDConfig:
    """Tests for ArgoCDConfig."""

    def test_url_and_match(self) -> None:
        """The tunnel URL and pkill pattern derive from the fields."""
        cfg = ArgoCDConfig()
        assert cfg.url == "https://localhost:8080"
        assert cfg.portforward_match == "kubectl port-forward.*argocd-server"
        assert cfg.initial_secret == "argocd-initial-admin-secret"

    def test_from_env(self, monkeypatch: pytest.MonkeyPatch) -> None:
        """Application file and local port come from the environment."""
        monkeypatch.setenv("IOT_ARGOCD_APP_FILE", "/srv/app.yaml")
        monkeypatch.setenv("IOT_ARGOCD_PORT", "9443")
        cfg = ArgoCDConfig.from_env()
        assert cfg.application_file == Path("/srv/app.yaml")
        assert cfg.url == "https://localhost:9443"

    def test_from_env_rejects_privileged_port(
        self, monkeypatch: pytest.MonkeyPatch
    ) -> None:
        """Ports below 1024 are rejected with the variable name."""
        monkeypatch.setenv("IOT_ARGOCD_PORT", "443")
        with pytest.raises(ValueError, match="IOT_ARGOCD_PORT"):
            ArgoCDConfig.from_env()


class TestGitLabConfig:
    """Tests for GitLabConfig."""

    def test_host_and_url(self) -> None:
        """Host and URL derive from the domain and port."""
        cfg = GitLabConfig()
        assert cfg.host == "gitlab.k3d.gitlab.com"
        assert cfg.url == "http://gitlab.k3d.gitlab.com:8181"
        assert cfg.root_password_secret == "gitlab-gitlab-initial-root-password"

    def test_helm_set_values(self) -> None:
        """The chart is installed without TLS or cert-manager."""
        values = dict(GitLabConfig(domain="example.test").helm_set_values)
        assert values == {
            "global.hosts.domain": "example.test",
            "global.hosts.externalIP": "0.0.0.0",
            "global.hosts.https": "false",
            "certmanager.install": "false",
            "global.ingress.configureCertmanager": "false",
        }

    def test_from_env(self, monkeypatch: pytest.MonkeyPatch) -> None:
        """Domain and port come from the environment."""
        monkeypatch.setenv("IOT_GITLAB_DOMAIN", "lab.test")
        monkeypatch.setenv("IOT_GITLAB_PORT", "9181")
        cfg = GitLabConfig.from_env()
        assert cfg.url == "http://gitlab.lab.test:9181"


def test_reset_config_matches_k3d_and_k3s_images() -> None:
    """Reset targets k3d resources and both k3d and k3s images."""
    cfg = ResetConfig()
    assert cfg.match == "k3d"
    assert cfg.image_matches == ("k3d", "k3s")
    assert cfg.settle_seconds == 3.0
