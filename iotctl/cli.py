"""Command-line entry point for iotctl.

Usage:
    iotctl init-tools          # Install docker, kubectl, k3d, git, curl, wget
    iotctl up                  # Create the k3d cluster and install ArgoCD
    iotctl down                # Delete the k3d cluster
    iotctl reset --yes         # Remove every k3d cluster and leftover state
    iotctl argocd [CHOICE]     # ArgoCD management menu
    iotctl gitlab-setup        # Install GitLab with Helm
    iotctl gitlab [CHOICE]     # GitLab management menu
    iotctl create-repo         # Create a GitLab project and push a folder

Environment variables:
    IOT_LOG_LEVEL       - Diagnostic log level (default: WARNING)
    IOT_CLUSTER_NAME    - Cluster name (default: iot-cluster)
    IOT_K3D_AGENTS      - Number of agent nodes (default: 2)
    IOT_ARGOCD_APP_FILE - ArgoCD Application manifest to apply after install
    IOT_ARGOCD_PORT     - Local port for the ArgoCD tunnel (default: 8080)
    IOT_GITLAB_DOMAIN   - GitLab domain (default: k3d.gitlab.com)
    IOT_GITLAB_PORT     - Local port for the GitLab tunnel (default: 8181)
"""

from __future__ import annotations

import sys
import typing as typ
from pathlib import Path

from cyclopts import App, Parameter

from iotctl import __version__, console
from iotctl.argocd import build_argocd_menu, setup_argocd
from iotctl.argocd import preflight as argocd_preflight
from iotctl.config import ArgoCDConfig, ClusterConfig, GitLabConfig, ResetConfig
from iotctl.gitlab import build_gitlab_menu, create_repo as gitlab_create_repo
from iotctl.gitlab import preflight as gitlab_preflight
from iotctl.gitlab import setup_gitlab
from iotctl.k3d import cluster_exists, delete_k3d_cluster, kubeconfig_env
from iotctl.logging import LOG_LEVEL_ENV_VAR, configure_logging, get_logger, log_exception
from iotctl.reset import reset_environment
from iotctl.tools import init_tools as run_init_tools
from iotctl.validation import IotctlError, require_exe

logger = get_logger(__name__)

app = App(
    name="iotctl",
    help="Local k3d cluster with ArgoCD and GitLab",
    version=__version__,
)


def _guarded(action: typ.Callable[[], int]) -> int:
    """Run ``action``, turning expected failures into a red message and code 1."""
    try:
        return action()
    except (IotctlError, RuntimeError, ValueError) as exc:
        log_exception(logger, "command failed", exc)
        console.error(str(exc))
        return 1


@app.command
def init_tools() -> int:
    """Install the command-line tools every other command relies on.

    Returns:
        Exit code (0 for success, non-zero for failure).

    """
    return _guarded(run_init_tools)


@app.command
def up() -> int:
    """Create the k3d cluster from scratch and install ArgoCD.

    An existing cluster with the same name is deleted first.

    Returns:
        Exit code (0 for success, non-zero for failure).

    """
    return _guarded(
        lambda: setup_argocd(ClusterConfig.from_env(), ArgoCDConfig.from_env())
    )


@app.command
def down(
    *,
    cluster_name: typ.Annotated[
        str, Parameter(env_var="IOT_CLUSTER_NAME")
    ] = "iot-cluster",
) -> int:
    """Delete the local k3d cluster.

    Args:
        cluster_name: Name of the k3d cluster to delete.

    Returns:
        Exit code (0 for success, non-zero for failure).

    """

    def _down() -> int:
        require_exe("k3d")
        if not cluster_exists(cluster_name):
            console.info(f"Cluster '{cluster_name}' does not exist.")
            return 0
        console.info(f"Deleting cluster '{cluster_name}'...")
        delete_k3d_cluster(cluster_name)
        console.success("Cluster deleted successfully.")
        return 0

    return _guarded(_down)


@app.command
def reset(*, yes: bool = False) -> int:
    """Remove every k3d cluster, container, image, network and volume.

    Args:
        yes: Skip the confirmation prompt.

    Returns:
        Exit code (0 for success, 1 when cancelled).

    """

    def _reset() -> int:
        report = reset_environment(ResetConfig(), assume_yes=yes)
        return 0 if report is not None else 1

    return _guarded(_reset)


@app.command
def argocd(choice: str | None = None) -> int:
    """Open the ArgoCD management menu.

    Args:
        choice: Run a single menu entry (1-8) and exit instead of looping.

    Returns:
        Exit code of the last action.

    """

    def _menu() -> int:
        cfg = ArgoCDConfig.from_env()
        env = kubeconfig_env()
        argocd_preflight(cfg, env)
        return build_argocd_menu(cfg, env).run(choice)

    return _guarded(_menu)


@app.command
def gitlab_setup() -> int:
    """Install GitLab into the current cluster with its Helm chart.

    Returns:
        Exit code (0 for success, non-zero for failure).

    """
    return _guarded(lambda: setup_gitlab(GitLabConfig.from_env(), kubeconfig_env()))


@app.command
def gitlab(choice: str | None = None) -> int:
    """Open the GitLab management menu.

    Args:
        choice: Run a single menu entry (1-4) and exit instead of looping.

    Returns:
        Exit code of the last action.

    """

    def _menu() -> int:
        cfg = GitLabConfig.from_env()
        env = kubeconfig_env()
        gitlab_preflight(env)
        return build_gitlab_menu(cfg, env).run(choice)

    return _guarded(_menu)


@app.command
def create_repo(
    *,
    name: str | None = None,
    folder: Path | None = None,
) -> int:
    """Create a private GitLab project and push a local folder into it.

    Args:
        name: Project name; prompted for when omitted.
        folder: Folder to publish; prompted for when omitted.

    Returns:
        Exit code (0 for success, non-zero for failure).

    """
    return _guarded(
        lambda: gitlab_create_repo(
            GitLabConfig.from_env(), kubeconfig_env(), name=name, folder=folder
        )
    )


@app.meta.default
def launcher(
    *tokens: typ.Annotated[str, Parameter(show=False, allow_leading_hyphen=True)],
    log_level: typ.Annotated[
        str | None, Parameter(env_var=LOG_LEVEL_ENV_VAR)
    ] = None,
) -> int:
    """Configure logging, then dispatch to a subcommand.

    Args:
        tokens: Remaining command-line tokens.
        log_level: Diagnostic log level (TRACE, DEBUG, INFO, WARNING, ERROR).

    """
    configure_logging(log_level)
    return app(tokens)


def main() -> int:
    """Entry point for the CLI."""
    return app.meta()


if __name__ == "__main__":
    sys.exit(main())
