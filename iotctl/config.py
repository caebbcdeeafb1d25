"""Configuration for the local k3d, ArgoCD and GitLab environment.

Every configuration object is a frozen dataclass whose defaults match the
environment the command-line tool builds. ``from_env`` classmethods overlay a
small set of ``IOT_*`` environment variables on top of those defaults.

Usage
-----
>>> cfg = ClusterConfig()
>>> cfg.cluster_name
'iot-cluster'

>>> import os
>>> os.environ["IOT_K3D_AGENTS"] = "3"
>>> ClusterConfig.from_env().agents
3

"""

from __future__ import annotations

import dataclasses
import os
from pathlib import Path

from iotctl.validation import validate_host_port, validate_resource_name

ARGOCD_INSTALL_MANIFEST = (
    "https://raw.githubusercontent.com/argoproj/argo-cd/stable/manifests/install.yaml"
)
ARGOCD_CLI_DOWNLOAD_URL = (
    "https://github.com/argoproj/argo-cd/releases/latest/download/argocd-{os}-{arch}"
)
GITLAB_MINIKUBE_VALUES = (
    "https://gitlab.com/gitlab-org/charts/gitlab/raw/master/examples/"
    "values-minikube-minimum.yaml"
)


def _env_str(env_var: str, default: str) -> str:
    """Read a string env var, falling back to a default when blank."""
    raw = os.environ.get(env_var, "")
    return raw.strip() or default


def _env_int(env_var: str, default: int, *, minimum: int = 0) -> int:
    """Read an integer env var no smaller than ``minimum``."""
    raw = os.environ.get(env_var, "")
    if not raw.strip():
        return default
    try:
        value = int(raw)
    except ValueError as exc:
        msg = f"{env_var} must be an integer, got: {raw!r}"
        raise ValueError(msg) from exc
    if value < minimum:
        msg = f"{env_var} must be >= {minimum}, got: {value}"
        raise ValueError(msg)
    return value


def _env_port(env_var: str, default: int) -> int:
    """Read a host port env var and validate its range."""
    port = _env_int(env_var, default)
    try:
        validate_host_port(port)
    except ValueError as exc:
        msg = f"{env_var}: {exc}"
        raise ValueError(msg) from exc
    return port


@dataclasses.dataclass(frozen=True, slots=True)
class ClusterConfig:
    """Shape of the local k3d cluster.

    Attributes
    ----------
    cluster_name
        k3d cluster name. Also forms the kubeconfig context ``k3d-<name>``.
    servers, agents
        Number of control-plane and worker nodes.
    port_mappings
        k3d ``--port`` arguments mapping host ports onto the load balancer.
    namespaces
        Namespaces created right after the nodes become ready.
    node_ready_timeout
        Seconds to wait for every node to report Ready.

    """

    cluster_name: str = "iot-cluster"
    servers: int = 1
    agents: int = 2
    port_mappings: tuple[str, ...] = (
        "8090:80@loadbalancer",
        "8443:443@loadbalancer",
    )
    namespaces: tuple[str, ...] = ("argocd", "dev")
    node_ready_timeout: int = 300

    def __post_init__(self) -> None:
        """Validate the cluster name."""
        validate_resource_name(self.cluster_name, kind="cluster")

    @property
    def context_name(self) -> str:
        """Return the kubeconfig context k3d registers for this cluster."""
        return f"k3d-{self.cluster_name}"

    @classmethod
    def from_env(cls) -> ClusterConfig:
        """Build configuration from ``IOT_CLUSTER_NAME`` and ``IOT_K3D_AGENTS``."""
        defaults = cls()
        return dataclasses.replace(
            defaults,
            cluster_name=_env_str("IOT_CLUSTER_NAME", defaults.cluster_name),
            agents=_env_int("IOT_K3D_AGENTS", defaults.agents),
        )


@dataclasses.dataclass(frozen=True, slots=True)
class ArgoCDConfig:
    """Where ArgoCD lives and how to reach it."""

    namespace: str = "argocd"
    manifest_url: str = ARGOCD_INSTALL_MANIFEST
    application_file: Path = dataclasses.field(
        default_factory=lambda: Path("confs/argocd-application.yaml")
    )
    local_port: int = 8080
    remote_port: int = 443
    server_service: str = "argocd-server"
    server_deployment: str = "argocd-server"
    # S105 false positive: this is the name of a Secret resource, not a password
    initial_secret: str = "argocd-initial-admin-secret"  # noqa: S105
    username: str = "admin"
    ready_timeout: int = 300
    portforward_log: Path = dataclasses.field(
        default_factory=lambda: Path("/tmp/argocd-portforward.log")  # noqa: S108
    )
    cli_download_url: str = ARGOCD_CLI_DOWNLOAD_URL
    cli_install_path: Path = dataclasses.field(
        default_factory=lambda: Path("/usr/local/bin/argocd")
    )

    @property
    def url(self) -> str:
        """Return the local URL served through the port-forward."""
        return f"https://localhost:{self.local_port}"

    @property
    def portforward_match(self) -> str:
        """Return the pkill pattern identifying this tunnel."""
        return f"kubectl port-forward.*{self.server_service}"

    @classmethod
    def from_env(cls) -> ArgoCDConfig:
        """Build configuration from ``IOT_ARGOCD_APP_FILE`` and ``IOT_ARGOCD_PORT``."""
        app_file = os.environ.get("IOT_ARGOCD_APP_FILE", "").strip()
        defaults = cls()
        return dataclasses.replace(
            defaults,
            application_file=Path(app_file) if app_file else defaults.application_file,
            local_port=_env_port("IOT_ARGOCD_PORT", defaults.local_port),
        )


@dataclasses.dataclass(frozen=True, slots=True)
class GitLabConfig:
    """GitLab Helm release, hostname and credentials layout."""

    namespace: str = "gitlab"
    domain: str = "k3d.gitlab.com"
    local_port: int = 8181
    remote_port: int = 8181
    release: str = "gitlab"
    repo_name: str = "gitlab"
    repo_url: str = "https://charts.gitlab.io/"
    chart: str = "gitlab/gitlab"
    values_url: str = GITLAB_MINIKUBE_VALUES
    helm_timeout: int = 600
    ready_timeout: int = 1200
    webservice_selector: str = "app=webservice"
    webservice_service: str = "gitlab-webservice-default"
    # S105 false positive: Secret resource name
    root_password_secret: str = "gitlab-gitlab-initial-root-password"  # noqa: S105
    username: str = "root"
    hosts_file: Path = dataclasses.field(default_factory=lambda: Path("/etc/hosts"))
    portforward_log: Path = dataclasses.field(
        default_factory=lambda: Path("/tmp/gitlab-portforward.log")  # noqa: S108
    )

    @property
    def host(self) -> str:
        """Return the GitLab hostname, e.g. ``gitlab.k3d.gitlab.com``."""
        return f"gitlab.{self.domain}"

    @property
    def url(self) -> str:
        """Return the browser and API base URL reached through the tunnel."""
        return f"http://{self.host}:{self.local_port}"

    @property
    def portforward_match(self) -> str:
        """Return the pkill pattern identifying this tunnel."""
        return "kubectl port-forward.*gitlab-webservice"

    @property
    def helm_set_values(self) -> tuple[tuple[str, str], ...]:
        """Return the ``--set`` overrides for a local, TLS-less install."""
        return (
            ("global.hosts.domain", self.domain),
            ("global.hosts.externalIP", "0.0.0.0"),  # noqa: S104
            ("global.hosts.https", "false"),
            ("certmanager.install", "false"),
            ("global.ingress.configureCertmanager", "false"),
        )

    @classmethod
    def from_env(cls) -> GitLabConfig:
        """Build configuration from ``IOT_GITLAB_DOMAIN`` and ``IOT_GITLAB_PORT``."""
        defaults = cls()
        port = _env_port("IOT_GITLAB_PORT", defaults.local_port)
        return dataclasses.replace(
            defaults,
            domain=_env_str("IOT_GITLAB_DOMAIN", defaults.domain),
            local_port=port,
        )


@dataclasses.dataclass(frozen=True, slots=True)
class ResetConfig:
    """What a full reset is allowed to remove."""

    match: str = "k3d"
    image_matches: tuple[str, ...] = ("k3d", "k3s")
    temp_files: tuple[Path, ...] = (
        Path("/tmp/deployment.yaml"),  # noqa: S108
        Path("/tmp/argocd-app.yaml"),  # noqa: S108
        Path("/tmp/gitlab-root-password.txt"),  # noqa: S108
    )
    settle_seconds: float = 3.0
