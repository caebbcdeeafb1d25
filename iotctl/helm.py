"""Helm repository and release installation."""

from __future__ import annotations

import dataclasses
import subprocess
import typing as typ

from iotctl.k8s import ensure_namespace
from iotctl.logging import get_logger, log_command

logger = get_logger(__name__)

# Timeout for Helm repository operations (in seconds).
_HELM_REPO_TIMEOUT = 60


@dataclasses.dataclass(frozen=True, slots=True)
class HelmReleaseSpec:
    """Specification for a Helm release installation.

    Attributes:
        repo_name: Helm repository alias.
        repo_url: Helm repository URL.
        release_name: Helm release name.
        chart_name: Fully qualified chart name (repo/chart).
        namespace: Target namespace for the release.
        values: Values files or URLs, passed as ``--values`` in order.
        set_values: ``(key, value)`` overrides, passed as ``--set key=value``.
        timeout: Seconds helm may wait for resources (``--timeout``).
        wait: Whether helm should wait for resources to become ready.

    """

    repo_name: str
    repo_url: str
    release_name: str
    chart_name: str
    namespace: str
    values: tuple[str, ...] = ()
    set_values: tuple[tuple[str, str], ...] = ()
    timeout: int = 300
    wait: bool = True

    def upgrade_install_args(self) -> list[str]:
        """Return the full ``helm upgrade --install`` command line."""
        cmd = [
            "helm",
            "upgrade",
            "--install",
            self.release_name,
            self.chart_name,
            "--namespace",
            self.namespace,
        ]
        for source in self.values:
            cmd.extend(["--values", source])
        for key, value in self.set_values:
            cmd.extend(["--set", f"{key}={value}"])
        cmd.extend(["--timeout", f"{self.timeout}s"])
        if self.wait:
            cmd.append("--wait")
        return cmd


def _helm(cmd: list[str], env: dict[str, str], timeout: float, error: str) -> None:
    log_command(logger, cmd)
    try:
        # S603: helm via PATH is standard; args from validated HelmReleaseSpec
        subprocess.run(cmd, check=True, env=env, timeout=timeout)  # noqa: S603
    except subprocess.CalledProcessError as e:
        msg = f"{error}: {e}"
        raise RuntimeError(msg) from e
    except subprocess.TimeoutExpired as e:
        msg = f"{error}: timed out after {timeout} seconds"
        raise RuntimeError(msg) from e


def add_repo(name: str, url: str, env: dict[str, str]) -> None:
    """Add (or refresh) a Helm repository."""
    _helm(
        ["helm", "repo", "add", "--force-update", name, url],
        env,
        _HELM_REPO_TIMEOUT,
        f"Failed to add Helm repo '{name}'",
    )


def update_repos(env: dict[str, str]) -> None:
    """Refresh every configured Helm repository index."""
    _helm(
        ["helm", "repo", "update"],
        env,
        _HELM_REPO_TIMEOUT,
        "Failed to update Helm repositories",
    )


def upgrade_install(spec: HelmReleaseSpec, env: dict[str, str]) -> None:
    """Install or upgrade a release with ``helm upgrade --install``."""
    # Extra buffer beyond helm's own --timeout
    _helm(
        spec.upgrade_install_args(),
        env,
        spec.timeout + 60,
        f"Failed to install Helm chart '{spec.chart_name}'",
    )


def install_release(
    spec: HelmReleaseSpec,
    env: dict[str, str],
    *,
    on_progress: typ.Callable[[str], None] | None = None,
) -> None:
    """Install a Helm release with the standard workflow.

    Adds the repository, updates indexes, ensures the namespace, and runs
    ``helm upgrade --install``.

    Raises:
        RuntimeError: If any Helm operation fails.

    """
    report = on_progress or (lambda _message: None)
    report(f"Adding Helm repository {spec.repo_name}...")
    add_repo(spec.repo_name, spec.repo_url, env)
    update_repos(env)
    ensure_namespace(spec.namespace, env)
    report(f"Installing {spec.chart_name} as release '{spec.release_name}'...")
    upgrade_install(spec, env)
