"""Build the k3d cluster and install ArgoCD into it."""

from __future__ import annotations

import time
import typing as typ

from iotctl import console
from iotctl.argocd.manifest import load_application
from iotctl.k3d import (
    cluster_exists,
    create_k3d_cluster,
    delete_k3d_cluster,
    kubeconfig_env,
)
from iotctl.k8s import (
    apply_file,
    apply_url,
    ensure_namespace,
    show_nodes,
    show_resources,
    wait_for_deployment_available,
    wait_for_nodes_ready,
)
from iotctl.logging import get_logger, log_info, log_warning
from iotctl.validation import require_exe

if typ.TYPE_CHECKING:
    from iotctl.config import ArgoCDConfig, ClusterConfig

logger = get_logger(__name__)

REQUIRED_TOOLS: tuple[str, ...] = ("docker", "kubectl", "k3d")
SETUP_STEPS = 6

# Grace period when argocd-server misses its availability deadline
_SLOW_START_SECONDS = 30.0


def recreate_cluster(cluster_cfg: ClusterConfig) -> dict[str, str]:
    """Delete any existing cluster, create a fresh one and return its env."""
    name = cluster_cfg.cluster_name
    if cluster_exists(name):
        console.warning(f"Cluster '{name}' already exists. Deleting it...")
        delete_k3d_cluster(name)
        time.sleep(3)

    console.step(1, SETUP_STEPS, "Creating k3d cluster...")
    create_k3d_cluster(
        name,
        servers=cluster_cfg.servers,
        agents=cluster_cfg.agents,
        port_mappings=cluster_cfg.port_mappings,
    )
    console.success("Cluster created")
    return kubeconfig_env(name)


def _apply_application(argocd_cfg: ArgoCDConfig, env: dict[str, str]) -> bool:
    path = argocd_cfg.application_file
    if not path.is_file():
        console.warning(f"Application file not found at {path}")
        console.warning(f"Apply manually with: kubectl apply -f {path}")
        return False
    manifest = load_application(path)
    console.info(f"Applying ArgoCD Application '{manifest.name}'...")
    apply_file(path, env, namespace=manifest.metadata.namespace)
    console.success("ArgoCD Application created")
    return True


def setup_argocd(cluster_cfg: ClusterConfig, argocd_cfg: ArgoCDConfig) -> int:
    """Create the cluster, install ArgoCD and register the application.

    Returns:
        Exit code 0. Failures propagate as exceptions.

    """
    for tool in REQUIRED_TOOLS:
        require_exe(tool)

    console.section("Creating k3d cluster with ArgoCD")
    env = recreate_cluster(cluster_cfg)

    console.step(2, SETUP_STEPS, "Waiting for nodes to be ready...")
    wait_for_nodes_ready(env, timeout=cluster_cfg.node_ready_timeout)
    console.success("All nodes ready")

    console.step(3, SETUP_STEPS, "Creating namespaces...")
    for namespace in cluster_cfg.namespaces:
        ensure_namespace(namespace, env)
    console.success(f"Namespaces ready: {', '.join(cluster_cfg.namespaces)}")

    console.step(4, SETUP_STEPS, "Installing ArgoCD...")
    apply_url(argocd_cfg.manifest_url, argocd_cfg.namespace, env)

    console.step(5, SETUP_STEPS, "Waiting for ArgoCD server (this can take a few minutes)...")
    if wait_for_deployment_available(
        argocd_cfg.server_deployment,
        argocd_cfg.namespace,
        env,
        timeout=argocd_cfg.ready_timeout,
    ):
        console.success("ArgoCD server available")
    else:
        log_warning(logger, "argocd-server not available after %ds", argocd_cfg.ready_timeout)
        console.warning("ArgoCD server is still starting. Waiting a little longer...")
        time.sleep(_SLOW_START_SECONDS)

    console.step(6, SETUP_STEPS, "Deploying ArgoCD Application...")
    applied = _apply_application(argocd_cfg, env)

    console.heading("Nodes")
    show_nodes(env)
    console.heading("ArgoCD pods")
    show_resources("pods", argocd_cfg.namespace, env)
    if applied:
        console.heading("Applications")
        show_resources("applications", argocd_cfg.namespace, env)

    log_info(logger, "cluster %s ready with ArgoCD", cluster_cfg.cluster_name)
    console.section("Setup complete")
    console.info(f"Password: iotctl argocd 2  (user: {argocd_cfg.username})")
    console.info(f"UI:       iotctl argocd 3  then open {argocd_cfg.url}")
    return 0
