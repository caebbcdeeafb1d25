"""Installation of the command-line tools the other commands drive.

The installer targets Debian-family hosts: apt provides git, curl and wget,
Docker and k3d come from their upstream install scripts, and kubectl is the
current stable release binary. Steps whose tool is already on PATH are
reported and skipped, so the command can be re-run safely.
"""

from __future__ import annotations

import dataclasses
import getpass
import os
import platform
import shutil
import subprocess
import tempfile
import typing as typ
from pathlib import Path

import httpx

from iotctl import console
from iotctl.logging import get_logger, log_command, log_info
from iotctl.validation import IotctlError, release_arch

logger = get_logger(__name__)

DOCKER_INSTALL_SCRIPT = "https://get.docker.com"
K3D_INSTALL_SCRIPT = "https://raw.githubusercontent.com/k3d-io/k3d/main/install.sh"
KUBECTL_STABLE_URL = "https://dl.k8s.io/release/stable.txt"
KUBECTL_BINARY_URL = "https://dl.k8s.io/release/{version}/bin/{os}/{arch}/kubectl"
KUBECTL_INSTALL_PATH = Path("/usr/local/bin/kubectl")

_DOWNLOAD_TIMEOUT = 120.0


def download(
    url: str, destination: Path, client: httpx.Client | None = None
) -> Path:
    """Stream ``url`` into ``destination``, following redirects.

    Raises:
        httpx.HTTPError: On transport errors or a non-2xx status.

    """
    owns_client = client is None
    http = client or httpx.Client(follow_redirects=True, timeout=_DOWNLOAD_TIMEOUT)
    try:
        with http.stream("GET", url) as response:
            response.raise_for_status()
            with destination.open("wb") as handle:
                for chunk in response.iter_bytes():
                    handle.write(chunk)
    finally:
        if owns_client:
            http.close()
    return destination


def fetch_text(url: str, client: httpx.Client | None = None) -> str:
    """Return the body of a small text document such as ``stable.txt``."""
    owns_client = client is None
    http = client or httpx.Client(follow_redirects=True, timeout=_DOWNLOAD_TIMEOUT)
    try:
        response = http.get(url)
        response.raise_for_status()
        return response.text.strip()
    finally:
        if owns_client:
            http.close()


def _run(cmd: list[str], error: str) -> None:
    log_command(logger, cmd)
    try:
        # S603: installer commands are fixed strings or downloaded paths
        subprocess.run(cmd, check=True)  # noqa: S603
    except (OSError, subprocess.CalledProcessError) as e:
        msg = f"{error}: {e}"
        raise IotctlError(msg) from e


def _apt_install(*packages: str) -> None:
    _run(
        ["sudo", "apt-get", "install", "-y", "-qq", *packages],
        f"Failed to install {' '.join(packages)}",
    )


def update_system() -> None:
    """Refresh apt indexes and upgrade installed packages."""
    _run(["sudo", "apt-get", "update", "-qq"], "apt-get update failed")
    _run(["sudo", "apt-get", "upgrade", "-y", "-qq"], "apt-get upgrade failed")


def install_docker(client: httpx.Client | None = None) -> None:
    """Install Docker with the convenience script and join the docker group."""
    with tempfile.TemporaryDirectory(prefix="iotctl-") as tmp:
        script = download(DOCKER_INSTALL_SCRIPT, Path(tmp) / "get-docker.sh", client)
        _run(["sudo", "sh", str(script)], "Docker installation failed")
    user = os.environ.get("USER") or getpass.getuser()
    _run(["sudo", "usermod", "-aG", "docker", user], "Failed to add user to docker group")


def install_kubectl(client: httpx.Client | None = None) -> None:
    """Install the current stable kubectl release binary."""
    version = fetch_text(KUBECTL_STABLE_URL, client)
    url = KUBECTL_BINARY_URL.format(
        version=version, os=platform.system().lower(), arch=release_arch()
    )
    with tempfile.TemporaryDirectory(prefix="iotctl-") as tmp:
        binary = download(url, Path(tmp) / "kubectl", client)
        _run(
            ["sudo", "install", "-m", "755", str(binary), str(KUBECTL_INSTALL_PATH)],
            "kubectl installation failed",
        )


def install_k3d(client: httpx.Client | None = None) -> None:
    """Install k3d with its upstream install script."""
    with tempfile.TemporaryDirectory(prefix="iotctl-") as tmp:
        script = download(K3D_INSTALL_SCRIPT, Path(tmp) / "install-k3d.sh", client)
        _run(["bash", str(script)], "k3d installation failed")


def install_git(client: httpx.Client | None = None) -> None:  # noqa: ARG001
    """Install git from apt."""
    _apt_install("git")


@dataclasses.dataclass(frozen=True, slots=True)
class ToolStep:
    """One installer step, skipped when ``executable`` is already on PATH."""

    label: str
    executable: str | None
    install: typ.Callable[[httpx.Client | None], None]


def default_steps() -> list[ToolStep]:
    """Return the installer steps in execution order."""
    return [
        ToolStep("system packages", None, lambda _client: update_system()),
        ToolStep("Docker", "docker", install_docker),
        ToolStep("kubectl", "kubectl", install_kubectl),
        ToolStep("k3d", "k3d", install_k3d),
        ToolStep("git", "git", install_git),
        ToolStep("curl and wget", None, lambda _client: _apt_install("curl", "wget")),
    ]


def init_tools(
    steps: typ.Sequence[ToolStep] | None = None,
    *,
    client: httpx.Client | None = None,
) -> int:
    """Run every installer step, skipping tools that are already present.

    Raises:
        IotctlError: If a step fails; later steps are not attempted.

    """
    plan = list(steps) if steps is not None else default_steps()
    console.heading("Installing Required Tools")
    try:
        for index, tool in enumerate(plan, start=1):
            if tool.executable and shutil.which(tool.executable):
                console.step(index, len(plan), f"{tool.label} already installed")
                continue
            console.step(index, len(plan), f"Installing {tool.label}...")
            tool.install(client)
            log_info(logger, "installed %s", tool.label)
    except httpx.HTTPError as exc:
        msg = f"Download failed: {exc}"
        raise IotctlError(msg) from exc
    console.success("Installation complete!")
    return 0
