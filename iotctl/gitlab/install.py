"""Install GitLab into the running cluster with its Helm chart."""

from __future__ import annotations

import shutil
import subprocess
import typing as typ

from iotctl import console
from iotctl.gitlab.operations import port_forward, root_password
from iotctl.helm import HelmReleaseSpec, install_release
from iotctl.k8s import ensure_namespace, wait_for_pods_ready
from iotctl.logging import get_logger, log_command, log_info
from iotctl.validation import IotctlError, require_exe

if typ.TYPE_CHECKING:
    from pathlib import Path

    from iotctl.config import GitLabConfig

logger = get_logger(__name__)

LOOPBACK = "127.0.0.1"


def hosts_line(host: str) -> str:
    """Return the ``/etc/hosts`` line pointing ``host`` at loopback."""
    return f"{LOOPBACK} {host}"


def has_hosts_entry(hosts_text: str, host: str) -> bool:
    """Return True when ``hosts_text`` maps ``host`` to 127.0.0.1.

    Comments are ignored and aliases on the same line count.

    Examples
    --------
    >>> has_hosts_entry("127.0.0.1 localhost gitlab.example\\n", "gitlab.example")
    True
    >>> has_hosts_entry("# 127.0.0.1 gitlab.example\\n", "gitlab.example")
    False

    """
    for raw in hosts_text.splitlines():
        fields = raw.split("#", 1)[0].split()
        if len(fields) >= 2 and fields[0] == LOOPBACK and host in fields[1:]:  # noqa: PLR2004
            return True
    return False


def ensure_hosts_entry(host: str, hosts_file: Path) -> bool:
    """Append the loopback mapping for ``host`` with ``sudo tee -a`` if absent.

    Returns:
        True when the file was changed.

    """
    try:
        text = hosts_file.read_text(encoding="utf-8")
    except FileNotFoundError:
        text = ""
    if has_hosts_entry(text, host):
        return False

    cmd = ["sudo", "tee", "-a", str(hosts_file)]
    log_command(logger, cmd)
    try:
        # S603/S607: sudo via PATH; the hosts path comes from configuration
        subprocess.run(  # noqa: S603
            cmd,
            input=f"{hosts_line(host)}\n",
            text=True,
            stdout=subprocess.DEVNULL,
            check=True,
        )
    except subprocess.CalledProcessError as e:
        msg = f"Failed to add {host} to {hosts_file}"
        raise IotctlError(msg) from e
    return True


def ensure_helm() -> None:
    """Install helm from snap when it is not on PATH."""
    if shutil.which("helm"):
        return
    console.info("helm not found. Installing with snap...")
    cmd = ["sudo", "snap", "install", "helm", "--classic"]
    log_command(logger, cmd)
    try:
        subprocess.run(cmd, check=True)  # noqa: S603
    except (OSError, subprocess.CalledProcessError) as e:
        msg = "Failed to install helm with snap"
        raise IotctlError(msg) from e


def release_spec(cfg: GitLabConfig) -> HelmReleaseSpec:
    """Return the Helm release definition for a minimal local GitLab."""
    return HelmReleaseSpec(
        repo_name=cfg.repo_name,
        repo_url=cfg.repo_url,
        release_name=cfg.release,
        chart_name=cfg.chart,
        namespace=cfg.namespace,
        values=(cfg.values_url,),
        set_values=cfg.helm_set_values,
        timeout=cfg.helm_timeout,
    )


def setup_gitlab(cfg: GitLabConfig, env: dict[str, str]) -> int:
    """Install GitLab, then print its URL and root credentials."""
    console.section("Installing GitLab on k3d")
    require_exe("kubectl")
    ensure_helm()

    ensure_namespace(cfg.namespace, env)
    if ensure_hosts_entry(cfg.host, cfg.hosts_file):
        console.success(f"Added {hosts_line(cfg.host)} to {cfg.hosts_file}")
    else:
        console.info(f"{cfg.hosts_file} already maps {cfg.host}")

    install_release(release_spec(cfg), env, on_progress=console.info)

    console.info("Waiting for GitLab webservice pods (this can take up to 20 minutes)...")
    wait_for_pods_ready(
        cfg.webservice_selector, cfg.namespace, env, timeout=cfg.ready_timeout
    )

    password = root_password(cfg, env)
    port_forward(cfg, env)
    log_info(logger, "GitLab ready at %s", cfg.url)

    console.success("GitLab deployed successfully!")
    console.field("URL", cfg.url)
    console.field("Username", cfg.username)
    console.field("Password", password)
    return 0
