"""k3d cluster lifecycle operations.

This module wraps the k3d CLI to list, create and delete the throwaway local
cluster, and to hand out a KUBECONFIG environment for kubectl and helm.

Public API
----------
- ``list_clusters``: Parsed ``k3d cluster list -o json`` output.
- ``cluster_names``: Names of every k3d cluster on this machine.
- ``cluster_exists``: Check whether a named cluster exists.
- ``create_k3d_cluster``: Create a cluster with servers, agents and port maps.
- ``delete_k3d_cluster``: Delete an existing cluster.
- ``write_kubeconfig`` / ``kubeconfig_env``: Per-cluster KUBECONFIG handling.

Examples
--------
Recreate the cluster from scratch:

    if cluster_exists("iot-cluster"):
        delete_k3d_cluster("iot-cluster")
    create_k3d_cluster(
        "iot-cluster",
        servers=1,
        agents=2,
        port_mappings=("8090:80@loadbalancer", "8443:443@loadbalancer"),
    )

"""

from __future__ import annotations

import json
import os
import subprocess
import typing as typ
from pathlib import Path

from iotctl.logging import get_logger, log_command, log_warning
from iotctl.validation import validate_host_port

logger = get_logger(__name__)

# Default timeout for quick k3d subprocess operations (seconds)
_K3D_SUBPROCESS_TIMEOUT = 60


def _run_k3d_json(args: list[str], *, timeout: float | None = None) -> typ.Any:  # noqa: ANN401
    """Run a k3d command and parse JSON output, returning None on any failure."""
    cmd = ["k3d", *args, "-o", "json"]
    log_command(logger, cmd)
    try:
        # S603/S607: k3d is expected on PATH; shell=False mitigates injection
        result = subprocess.run(  # noqa: S603
            cmd,
            check=True,
            capture_output=True,
            text=True,
            timeout=timeout or _K3D_SUBPROCESS_TIMEOUT,
        )
    except (OSError, subprocess.CalledProcessError, subprocess.TimeoutExpired) as e:
        log_warning(logger, "k3d %s failed: %s", " ".join(args), e)
        return None
    try:
        return json.loads(result.stdout)
    except json.JSONDecodeError:
        log_warning(logger, "k3d %s returned invalid JSON", " ".join(args))
        return None


def list_clusters() -> list[dict] | None:
    """List all k3d clusters as parsed JSON.

    Returns
    -------
    list[dict] or None
        Cluster dicts if k3d answered with a JSON list, None otherwise.

    """
    result = _run_k3d_json(["cluster", "list"])
    if isinstance(result, list):
        return [item for item in result if isinstance(item, dict)]
    return None


def cluster_names() -> list[str]:
    """Return the names of all k3d clusters (empty when k3d is unavailable)."""
    return [
        name
        for cluster in list_clusters() or []
        if isinstance(name := cluster.get("name"), str) and name
    ]


def cluster_exists(cluster_name: str) -> bool:
    """Check if a k3d cluster already exists.

    Returns False if k3d is unavailable or returns invalid output.
    """
    return cluster_name in cluster_names()


def _host_port(mapping: str) -> int | None:
    """Extract the host port from a k3d ``--port`` mapping.

    Accepts ``HOST:CONTAINER@FILTER`` and ``IP:HOST:CONTAINER@FILTER`` forms.
    """
    ports = mapping.split("@", 1)[0].split(":")
    if len(ports) < 2:  # noqa: PLR2004
        return None
    try:
        return int(ports[-2])
    except ValueError:
        return None


def create_k3d_cluster(  # noqa: PLR0913
    cluster_name: str,
    *,
    servers: int = 1,
    agents: int = 2,
    port_mappings: typ.Sequence[str] = (),
    wait: bool = True,
    timeout: float = 600,
) -> None:
    """Create a k3d cluster.

    Parameters
    ----------
    cluster_name : str
        Name for the new cluster.
    servers : int, default 1
        Number of server (control-plane) nodes. Must be >= 1.
    agents : int, default 2
        Number of agent nodes. Must be >= 0.
    port_mappings : Sequence[str]
        k3d ``--port`` values such as ``8090:80@loadbalancer``. Host ports must
        be in the range 1024-65535.
    wait : bool, default True
        Pass ``--wait`` so k3d blocks until the server is up.
    timeout : float, default 600
        Maximum time in seconds to wait for creation.

    Raises
    ------
    ValueError
        If a node count or a host port is out of range.
    RuntimeError
        If cluster creation times out or fails.

    """
    if servers < 1:
        msg = f"servers must be >= 1, got {servers}"
        raise ValueError(msg)
    if agents < 0:
        msg = f"agents must be >= 0, got {agents}"
        raise ValueError(msg)

    cmd = [
        "k3d",
        "cluster",
        "create",
        cluster_name,
        "--servers",
        str(servers),
        "--agents",
        str(agents),
    ]
    for mapping in port_mappings:
        host_port = _host_port(mapping)
        if host_port is None:
            msg = f"invalid port mapping '{mapping}'"
            raise ValueError(msg)
        validate_host_port(host_port)
        cmd.extend(["-p", mapping])
    if wait:
        cmd.append("--wait")

    log_command(logger, cmd)
    try:
        # S603: k3d is expected on PATH; arguments validated above
        subprocess.run(cmd, check=True, timeout=timeout)  # noqa: S603
    except subprocess.TimeoutExpired as e:
        msg = f"k3d cluster creation timed out after {timeout} seconds"
        raise RuntimeError(msg) from e
    except subprocess.CalledProcessError as e:
        msg = f"k3d cluster creation failed for '{cluster_name}': {e}"
        raise RuntimeError(msg) from e


def delete_k3d_cluster(cluster_name: str, timeout: float = 120) -> None:
    """Delete a k3d cluster.

    Raises
    ------
    RuntimeError
        If cluster deletion fails or times out.

    """
    cmd = ["k3d", "cluster", "delete", cluster_name]
    log_command(logger, cmd)
    try:
        # S603: k3d is expected on PATH; shell=False mitigates injection
        subprocess.run(cmd, check=True, timeout=timeout)  # noqa: S603
    except subprocess.TimeoutExpired as e:
        msg = f"k3d cluster deletion timed out after {timeout} seconds"
        raise RuntimeError(msg) from e
    except subprocess.CalledProcessError as e:
        msg = f"k3d cluster deletion failed for '{cluster_name}': {e}"
        raise RuntimeError(msg) from e


def write_kubeconfig(cluster_name: str, timeout: float = 30) -> Path:
    """Write and return the kubeconfig path for a k3d cluster.

    Raises
    ------
    RuntimeError
        If k3d fails, times out, or reports an empty path.

    """
    cmd = ["k3d", "kubeconfig", "write", cluster_name]
    log_command(logger, cmd)
    try:
        # S603: k3d is expected on PATH; shell=False mitigates injection
        result = subprocess.run(  # noqa: S603
            cmd,
            capture_output=True,
            text=True,
            check=True,
            timeout=timeout,
        )
    except subprocess.TimeoutExpired as e:
        msg = f"k3d kubeconfig write timed out after {timeout} seconds"
        raise RuntimeError(msg) from e
    except subprocess.CalledProcessError as e:
        msg = f"k3d kubeconfig write failed for '{cluster_name}': {e}"
        raise RuntimeError(msg) from e

    kubeconfig_path = result.stdout.strip()
    if not kubeconfig_path:
        msg = f"k3d returned empty kubeconfig path for cluster '{cluster_name}'"
        raise RuntimeError(msg)
    return Path(kubeconfig_path)


def kubeconfig_env(cluster_name: str | None = None) -> dict[str, str]:
    """Return an environment dict for kubectl and helm.

    With a cluster name, KUBECONFIG points at that cluster's dedicated file.
    Without one, the caller's current kubeconfig and context are used
    unchanged, which is how the management menus reach whatever cluster the
    operator is pointed at.
    """
    env = dict(os.environ)
    if cluster_name is not None:
        env["KUBECONFIG"] = str(write_kubeconfig(cluster_name))
    return env
