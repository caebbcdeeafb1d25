"""Day-two ArgoCD actions behind the management menu.

Every action prints its own cyan section banner and returns an exit code, so
the same functions serve the interactive menu and one-shot invocations.
"""

from __future__ import annotations

import platform
import shutil
import subprocess
import tempfile
import time
import typing as typ
from pathlib import Path

import httpx

from iotctl import console
from iotctl.k8s import (
    annotate_resource,
    cluster_reachable,
    list_resource_names,
    namespace_exists,
    patch_resource,
    pod_logs,
    read_secret_field,
    recent_events,
    secret_exists,
    show_resources,
)
from iotctl.logging import get_logger, log_command, log_warning
from iotctl.port_forward import PortForwardSpec, start_port_forward
from iotctl.tools import download
from iotctl.validation import (
    ClusterUnreachableError,
    IotctlError,
    NamespaceNotFoundError,
    SecretNotFoundError,
    release_arch,
    require_exe,
)

if typ.TYPE_CHECKING:
    from iotctl.config import ArgoCDConfig

logger = get_logger(__name__)

COMPONENTS: tuple[str, ...] = (
    "application-controller",
    "server",
    "repo-server",
    "redis",
)
ALL_COMPONENTS = "all"

SYNC_PATCH: dict[str, typ.Any] = {
    "operation": {
        "initiatedBy": {"username": "admin"},
        "sync": {"revision": "HEAD"},
    }
}
REFRESH_ANNOTATION = "argocd.argoproj.io/refresh=normal"

_SYNC_SETTLE_SECONDS = 2.0


def component_selector(component: str) -> str:
    """Return the pod label selector for an ArgoCD component."""
    if component not in COMPONENTS:
        msg = f"unknown ArgoCD component '{component}'"
        raise ValueError(msg)
    return f"app.kubernetes.io/name=argocd-{component}"


def preflight(cfg: ArgoCDConfig, env: dict[str, str]) -> None:
    """Check kubectl, cluster connectivity and the ArgoCD namespace.

    Raises:
        ExecutableNotFoundError: kubectl is missing.
        ClusterUnreachableError: the API server does not answer.
        NamespaceNotFoundError: ArgoCD has not been installed.

    """
    require_exe("kubectl")
    if not cluster_reachable(env):
        msg = "Cannot connect to Kubernetes cluster. Is k3d running?"
        raise ClusterUnreachableError(msg)
    if not namespace_exists(cfg.namespace, env):
        console.info(
            f"To install ArgoCD: kubectl create namespace {cfg.namespace} && "
            f"kubectl apply -n {cfg.namespace} -f {cfg.manifest_url}"
        )
        msg = "ArgoCD namespace not found. Is ArgoCD installed?"
        raise NamespaceNotFoundError(msg)


def show_logs(cfg: ArgoCDConfig, env: dict[str, str], component: str) -> int:
    """Print logs for one component (100 lines) or all of them (50 each)."""
    console.section("ArgoCD Logs")
    if component == ALL_COMPONENTS:
        console.info("Fetching all ArgoCD component logs...")
        for name in COMPONENTS:
            console.heading(f"argocd-{name}")
            if not pod_logs(component_selector(name), cfg.namespace, env, tail=50):
                console.plain("No logs available")
        return 0

    console.info(f"Fetching {component} logs...")
    if not pod_logs(component_selector(component), cfg.namespace, env, tail=100):
        console.error(f"Failed to retrieve {component} logs")
        return 1
    return 0


def choose_component(ask: typ.Callable[[str], str] = console.ask) -> str | None:
    """Prompt for a component; return None for an invalid answer."""
    console.console.print("[blue]Select component:[/blue]")
    labels = ("Application Controller", "API Server", "Repo Server", "Redis")
    for index, label in enumerate(labels, start=1):
        console.plain(f"  {index}) {label}")
    console.plain(f"  {len(labels) + 1}) All components")
    answer = ask(f"Choice [1-{len(labels) + 1}]")
    if answer == str(len(labels) + 1):
        return ALL_COMPONENTS
    if answer.isdigit() and 1 <= int(answer) <= len(COMPONENTS):
        return COMPONENTS[int(answer) - 1]
    return None


def admin_password(cfg: ArgoCDConfig, env: dict[str, str]) -> str:
    """Return the initial admin password.

    Raises:
        SecretNotFoundError: The initial secret was deleted (the password has
            probably been changed) or holds no password.

    """
    if not secret_exists(cfg.initial_secret, cfg.namespace, env):
        msg = "Initial admin secret not found. Password may have been changed."
        raise SecretNotFoundError(msg)
    password = read_secret_field(cfg.initial_secret, "password", cfg.namespace, env)
    if not password:
        msg = "Could not retrieve password"
        raise SecretNotFoundError(msg)
    return password


def show_password(cfg: ArgoCDConfig, env: dict[str, str]) -> int:
    """Print the URL, username and initial admin password."""
    console.section("ArgoCD Credentials")
    try:
        password = admin_password(cfg, env)
    except SecretNotFoundError as exc:
        console.warning(str(exc))
        console.console.print("\n[yellow]To reset the password:[/yellow]")
        console.plain(
            f"kubectl patch secret argocd-secret -n {cfg.namespace} -p "
            "'{\"data\": {\"admin.password\": null, \"admin.passwordMtime\": null}}'"
        )
        return 1

    console.field("URL", cfg.url)
    console.field("Username", cfg.username)
    console.field("Password", password)
    console.console.print(
        "\n[yellow]Note:[/yellow] Use 'argocd account update-password' "
        "to change password"
    )
    return 0


def port_forward_spec(cfg: ArgoCDConfig) -> PortForwardSpec:
    """Return the tunnel definition for the ArgoCD API server."""
    return PortForwardSpec(
        service=cfg.server_service,
        namespace=cfg.namespace,
        local_port=cfg.local_port,
        remote_port=cfg.remote_port,
        log_path=cfg.portforward_log,
        match=cfg.portforward_match,
        url=cfg.url,
    )


def port_forward(cfg: ArgoCDConfig, env: dict[str, str]) -> int:
    """Restart the ArgoCD port-forward."""
    console.section("Port Forwarding")
    handle = start_port_forward(port_forward_spec(cfg), env, on_progress=console.info)
    console.success(f"Port forwarding active (PID: {handle.pid})")
    console.info(f"Access ArgoCD at: {handle.url}")
    console.warning("Accept the self-signed certificate in your browser")
    console.warning(f"To stop: {handle.stop_hint}")
    console.warning(f"Logs at: {handle.log_path}")
    return 0


def show_applications(
    cfg: ArgoCDConfig,
    env: dict[str, str],
    *,
    ask: typ.Callable[[str], str] | None = None,
) -> int:
    """List Applications and optionally dump one as YAML."""
    console.section("ArgoCD Applications")
    if not show_resources("applications", cfg.namespace, env, wide=True):
        msg = "No applications found or CRD not installed"
        raise IotctlError(msg)

    apps = list_resource_names("applications", cfg.namespace, env)
    if not apps:
        console.info("No applications deployed")
        return 0
    if ask is None:
        return 0

    console.console.print(f"[green]Available apps:[/green] {' '.join(apps)}")
    app_name = ask("App name (Enter to skip)")
    if app_name:
        console.heading("Application Details")
        show_resources("application", cfg.namespace, env, name=app_name, output="yaml")
    return 0


def show_status(cfg: ArgoCDConfig, env: dict[str, str]) -> int:
    """Print pods, services, applications and recent events."""
    console.section("ArgoCD Cluster Status")
    console.info("Checking ArgoCD components...")

    console.heading("Pods")
    show_resources("pods", cfg.namespace, env)

    console.heading("Services")
    show_resources("svc", cfg.namespace, env)

    console.heading("Applications")
    if list_resource_names("applications", cfg.namespace, env):
        show_resources("applications", cfg.namespace, env)
    else:
        console.info("No applications found")

    console.heading("Recent Events")
    for line in recent_events(cfg.namespace, env, limit=10):
        console.plain(line)
    return 0


def sync_application(cfg: ArgoCDConfig, env: dict[str, str], app_name: str) -> int:
    """Trigger a sync of ``app_name``.

    The sync is requested by setting the Application's ``operation`` field;
    when the patch is rejected a hard refresh annotation is used instead.
    """
    console.section("Sync Application")
    if not app_name:
        msg = "No application name provided"
        raise IotctlError(msg)

    console.info(f"Triggering sync for application: {app_name}")
    if not patch_resource("application", app_name, cfg.namespace, SYNC_PATCH, env):
        console.warning("Direct patch failed. Trying annotation method...")
        if not annotate_resource(
            "application", app_name, cfg.namespace, REFRESH_ANNOTATION, env
        ):
            msg = f"Could not trigger sync for {app_name}"
            raise IotctlError(msg)

    console.success("Sync triggered. Checking status...")
    time.sleep(_SYNC_SETTLE_SECONDS)
    show_resources("application", cfg.namespace, env, name=app_name)
    return 0


def prompt_and_sync(
    cfg: ArgoCDConfig,
    env: dict[str, str],
    ask: typ.Callable[[str], str] = console.ask,
) -> int:
    """Ask which Application to sync, then sync it."""
    apps = list_resource_names("applications", cfg.namespace, env)
    if not apps:
        msg = "No applications found"
        raise IotctlError(msg)
    console.console.print(f"[green]Available applications:[/green] {' '.join(apps)}")
    return sync_application(cfg, env, ask("Enter application name to sync"))


def cli_download_url(
    cfg: ArgoCDConfig, system: str | None = None, machine: str | None = None
) -> str:
    """Return the release download URL for this host."""
    os_name = (system if system is not None else platform.system()).lower()
    return cfg.cli_download_url.format(os=os_name, arch=release_arch(machine))


def install_cli(cfg: ArgoCDConfig, *, client: httpx.Client | None = None) -> int:
    """Install the ``argocd`` CLI unless it is already on PATH."""
    console.section("Install ArgoCD CLI")
    if shutil.which("argocd"):
        result = subprocess.run(
            ["argocd", "version", "--client", "--short"],  # noqa: S607
            capture_output=True,
            text=True,
            check=False,
        )
        console.success(f"ArgoCD CLI already installed: {result.stdout.strip()}")
        return 0

    console.info("Installing ArgoCD CLI...")
    url = cli_download_url(cfg)
    console.info(f"Downloading from: {url}")

    with tempfile.TemporaryDirectory(prefix="iotctl-") as tmp:
        binary = Path(tmp) / "argocd"
        try:
            download(url, binary, client)
        except httpx.HTTPError as exc:
            log_warning(logger, "argocd download failed: %s", exc)
            msg = "Failed to download ArgoCD CLI"
            raise IotctlError(msg) from exc

        cmd = ["sudo", "install", "-m", "755", str(binary), str(cfg.cli_install_path)]
        log_command(logger, cmd)
        try:
            subprocess.run(cmd, check=True)  # noqa: S603
        except subprocess.CalledProcessError as exc:
            msg = f"Failed to install ArgoCD CLI to {cfg.cli_install_path}"
            raise IotctlError(msg) from exc

    console.success("ArgoCD CLI installed successfully")
    subprocess.run(
        [str(cfg.cli_install_path), "version", "--client"],  # noqa: S603
        check=False,
    )
    return 0


def show_all(cfg: ArgoCDConfig, env: dict[str, str]) -> int:
    """Show password, restart the tunnel, then show status."""
    codes = [
        show_password(cfg, env),
        port_forward(cfg, env),
        show_status(cfg, env),
    ]
    return max(codes)
