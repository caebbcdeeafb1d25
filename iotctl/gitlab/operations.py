"""Day-two GitLab actions: logs, credentials, tunnel and repository creation."""

from __future__ import annotations

import typing as typ
from pathlib import Path

from iotctl import console
from iotctl.gitlab.client import GitLabAPIConfig, GitLabClient
from iotctl.gitlab.repo import credentials_entry, push_directory
from iotctl.k8s import cluster_reachable, pod_logs, read_secret_field, show_resources
from iotctl.logging import get_logger, log_info
from iotctl.port_forward import PortForwardSpec, start_port_forward
from iotctl.validation import (
    ClusterUnreachableError,
    IotctlError,
    SecretNotFoundError,
    require_exe,
)

if typ.TYPE_CHECKING:
    import httpx

    from iotctl.config import GitLabConfig

logger = get_logger(__name__)


def preflight(env: dict[str, str]) -> None:
    """Check kubectl is installed and the cluster answers."""
    require_exe("kubectl")
    if not cluster_reachable(env):
        msg = "Cannot connect to Kubernetes cluster. Is k3d running?"
        raise ClusterUnreachableError(msg)


def root_password(cfg: GitLabConfig, env: dict[str, str]) -> str:
    """Return the generated root password.

    Raises:
        SecretNotFoundError: The secret is missing or empty.

    """
    try:
        password = read_secret_field(
            cfg.root_password_secret, "password", cfg.namespace, env
        )
    except SecretNotFoundError as exc:
        msg = "Could not retrieve password from secret"
        raise SecretNotFoundError(msg) from exc
    if not password:
        msg = "Could not retrieve password from secret"
        raise SecretNotFoundError(msg)
    return password


def show_logs(cfg: GitLabConfig, env: dict[str, str]) -> int:
    """Print the last 100 lines of every webservice pod."""
    console.section("GitLab Logs")
    console.info("Fetching logs from GitLab webservice pods...")
    if pod_logs(cfg.webservice_selector, cfg.namespace, env, tail=100, prefix=True):
        console.success("Logs retrieved successfully")
        return 0

    console.error("Failed to retrieve logs")
    console.info("Checking pod status...")
    show_resources("pods", cfg.namespace, env, selector=cfg.webservice_selector)
    return 1


def show_password(cfg: GitLabConfig, env: dict[str, str]) -> int:
    """Print URL, username and root password."""
    console.section("GitLab Credentials")
    try:
        password = root_password(cfg, env)
    except SecretNotFoundError as exc:
        console.error(str(exc))
        console.info("Check if GitLab is properly deployed")
        return 1
    console.field("URL", cfg.url)
    console.field("Username", cfg.username)
    console.field("Password", password)
    return 0


def port_forward_spec(cfg: GitLabConfig) -> PortForwardSpec:
    """Return the tunnel definition for the GitLab webservice."""
    return PortForwardSpec(
        service=cfg.webservice_service,
        namespace=cfg.namespace,
        local_port=cfg.local_port,
        remote_port=cfg.remote_port,
        log_path=cfg.portforward_log,
        match=cfg.portforward_match,
        url=cfg.url,
    )


def port_forward(cfg: GitLabConfig, env: dict[str, str]) -> int:
    """Restart the GitLab port-forward."""
    console.section("Port Forwarding")
    handle = start_port_forward(port_forward_spec(cfg), env, on_progress=console.info)
    console.success(f"Port forwarding active (PID: {handle.pid})")
    console.info(f"Access GitLab at: {handle.url}")
    console.warning(f"To stop: {handle.stop_hint}")
    console.warning(f"Logs at: {handle.log_path}")
    return 0


def show_all(cfg: GitLabConfig, env: dict[str, str]) -> int:
    """Logs, credentials and a fresh tunnel in one go."""
    codes = [show_logs(cfg, env), show_password(cfg, env), port_forward(cfg, env)]
    return max(codes)


def create_repo(  # noqa: PLR0913
    cfg: GitLabConfig,
    env: dict[str, str],
    *,
    name: str | None = None,
    folder: Path | None = None,
    ask: typ.Callable[[str], str] = console.ask,
    http_client: httpx.Client | None = None,
    credentials_path: Path | None = None,
) -> int:
    """Create a private project and push ``folder`` into it.

    Missing ``name`` or ``folder`` values are prompted for.
    """
    password = root_password(cfg, env)
    repo_name = name or ask("Repo Name")
    if not repo_name:
        msg = "Repository name must not be empty"
        raise IotctlError(msg)
    if folder is None:
        answer = ask("Folder Path")
        if not answer:
            msg = "Folder path must not be empty"
            raise IotctlError(msg)
        folder = Path(answer).expanduser()
    folder_path = folder

    api = GitLabAPIConfig(base_url=cfg.url, username=cfg.username, password=password)
    console.info(f"Creating repo '{repo_name}' on {cfg.url}...")
    with GitLabClient(api, http_client=http_client) as client:
        project = client.create_project(repo_name)
    remote_url = project.http_url_to_repo or api.fallback_repo_url(repo_name)
    console.info(f"Repository URL: {remote_url}")

    push_directory(
        folder_path,
        remote_url,
        credentials=credentials_entry(cfg.url, cfg.username, password),
        credentials_path=credentials_path,
        on_progress=console.info,
    )
    log_info(logger, "pushed %s to %s", folder_path, remote_url)
    console.success("Done!")
    console.field("Repository", remote_url)
    return 0
